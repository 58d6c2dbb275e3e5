"""API error classes.

HTTP status codes and machine-readable error codes shared by every endpoint.
The handlers in main.py render each one as {"error": {code, message, details}}.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401)."""

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to user.
    Foreign resources are never reported as 403.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class PreconditionFailedError(APIError):
    """Request cannot proceed in the current account state (412).

    Raised by task admission when the user lacks the credits to cover
    the requested quantity.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="PRECONDITION_FAILED",
            message=message,
            status_code=412,
            details=details,
        )


class InsufficientCreditsError(PreconditionFailedError):
    """Not enough available credits to reserve a task (412).

    Args:
        available: Credits currently available to the user.
        required: Credits the request needs.
    """

    def __init__(self, available: int, required: int) -> None:
        super().__init__(
            message=(
                f"Insufficient credits: {required} required, {available} available."
            ),
            details=[{"available_credits": available, "required_credits": required}],
        )


class InvalidStateError(APIError):
    """Business rule violation (422).

    Use when request is syntactically valid but violates business rules.
    E.g., trying to cancel a task that is already processing.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="INVALID_STATE_TRANSITION",
            message=message,
            status_code=422,
        )


class PaymentGatewayUnavailableError(APIError):
    """Payment provider call failed (502).

    The provider error text is logged, never returned to the client.
    """

    def __init__(
        self, message: str = "Could not generate the PIX charge. Try again."
    ) -> None:
        super().__init__(
            code="PAYMENT_GATEWAY_ERROR",
            message=message,
            status_code=502,
        )
