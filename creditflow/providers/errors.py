"""Provider error taxonomy.

Error classes for the provisioning and payment provider layers. Every
provisioning failure carries an ErrorKind; the retry policy and the task
processor decide what to do from the kind alone. A fatal error (e.g. the
browser cannot launch) stops the whole batch.
"""

from enum import Enum

__all__ = [
    "ErrorKind",
    "ProviderError",
    "ProvisioningError",
    "TransientProvisioningError",
    "PermanentProvisioningError",
    "FatalProvisioningError",
    "PaymentGatewayError",
]


class ErrorKind(str, Enum):
    """How a failure should be handled.

    RETRYABLE: transient, try the same slot again after a backoff.
    PERMANENT: this slot cannot succeed, fail it and move on.
    FATAL: nothing else in the batch can succeed, abort the task.
    """

    RETRYABLE = "retryable"
    PERMANENT = "permanent"
    FATAL = "fatal"


class ProviderError(Exception):
    """Base class for all provider errors."""

    pass


class ProvisioningError(ProviderError):
    """Account provisioning attempt failed.

    Attributes:
        kind: ErrorKind driving retry and abort decisions.
    """

    kind: ErrorKind = ErrorKind.RETRYABLE

    def __init__(self, message: str, kind: ErrorKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class TransientProvisioningError(ProvisioningError):
    """Timeouts, network blips, flaky browser state."""

    kind = ErrorKind.RETRYABLE


class PermanentProvisioningError(ProvisioningError):
    """The third party rejected this account (e.g. email already taken)."""

    kind = ErrorKind.PERMANENT


class FatalProvisioningError(ProvisioningError):
    """The provisioning runtime itself is unusable."""

    kind = ErrorKind.FATAL


class PaymentGatewayError(ProviderError):
    """Payment provider call failed.

    Attributes:
        status_code: HTTP status returned by the provider, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
