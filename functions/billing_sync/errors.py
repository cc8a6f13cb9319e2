"""
Error types for the billing sync engine and its API handlers.
"""

from typing import Optional

from .response_utils import error_response


class APIError(Exception):
    """Error with an HTTP status and a machine-readable code.

    Handlers turn these into responses; direct callers can inspect
    ``code`` and ``details``.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> dict:
        """API Gateway response in the shared error envelope, without CORS."""
        return error_response(self.status_code, self.code, self.message, details=self.details or None)


class AuthenticationFailure(APIError):
    """Raised when a webhook cannot be authenticated.

    Covers a missing or invalid signature as well as a missing signing
    secret. The event never reaches the dispatcher.
    """

    def __init__(self, code: str = "invalid_signature", message: str = "Invalid signature"):
        super().__init__(
            code=code,
            message=message,
            status_code=400,
        )


class StripeNotConfiguredError(APIError):
    """Raised when an outbound Stripe call is attempted without an API key."""

    def __init__(self, message: str = "Stripe not configured"):
        super().__init__(
            code="stripe_not_configured",
            message=message,
            status_code=500,
        )


class RemoteServiceError(APIError):
    """Raised when a Stripe API call fails.

    Carries Stripe's own error detail so direct callers can see it.
    """

    def __init__(self, operation: str, message: str, stripe_code: Optional[str] = None):
        details = {"operation": operation}
        if stripe_code:
            details["stripe_code"] = stripe_code
        super().__init__(
            code="stripe_error",
            message=message,
            status_code=502,
            details=details,
        )
        self.operation = operation


class RecordNotFoundError(APIError):
    """Raised when a direct operation targets a record that does not exist."""

    def __init__(self, entity: str, natural_key: str):
        super().__init__(
            code="not_found",
            message=f"{entity} {natural_key} not found",
            status_code=404,
        )


class InvalidRequestError(APIError):
    """Raised for general invalid request errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            code="invalid_request",
            message=message,
            status_code=400,
            details=details,
        )
