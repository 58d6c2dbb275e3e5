"""Provider abstraction layer.

Exports:
    Error classes for provider error handling
    Retry policy for provisioning attempts
    Factory functions for provider instances
"""

from creditflow.providers.errors import (
    ErrorKind,
    FatalProvisioningError,
    PaymentGatewayError,
    PermanentProvisioningError,
    ProviderError,
    ProvisioningError,
    TransientProvisioningError,
)
from creditflow.providers.factory import (
    get_payment_gateway,
    get_provisioning_client,
    reset_gateways,
)
from creditflow.providers.retry import RetryConfig, RetryPolicy, is_retryable

__all__ = [
    # Errors
    "ErrorKind",
    "ProviderError",
    "ProvisioningError",
    "TransientProvisioningError",
    "PermanentProvisioningError",
    "FatalProvisioningError",
    "PaymentGatewayError",
    # Retry
    "RetryConfig",
    "RetryPolicy",
    "is_retryable",
    # Factory
    "get_payment_gateway",
    "get_provisioning_client",
    "reset_gateways",
]
