"""API error handling and response helpers."""

from typing import Any, Dict

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AppError(Exception):
    """Base application error."""

    def __init__(self, message: str, code: str, http_status: int = 400):
        """Initialize error."""
        self.message = message
        self.code = code
        self.http_status = http_status
        super().__init__(message)


class ValidationError(AppError):
    """Bad or missing input; rejected before any mutation."""

    def __init__(self, message: str = "Invalid request"):
        super().__init__(message, "validation_error", status.HTTP_400_BAD_REQUEST)


class NotFoundError(AppError):
    """Referenced lease, ledger entry or payment session does not exist."""

    def __init__(self, message: str = "Not found"):
        super().__init__(message, "not_found", status.HTTP_404_NOT_FOUND)


class AuthenticationError(AppError):
    """No caller identity supplied."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, "unauthenticated", status.HTTP_401_UNAUTHORIZED)


class UnauthorizedError(AppError):
    """Actor does not own the lease or ledger entry being acted on."""

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message, "unauthorized", status.HTTP_403_FORBIDDEN)


class InvalidSignatureError(AppError):
    """Webhook signature missing or does not match the shared secret."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, "invalid_signature", status.HTTP_401_UNAUTHORIZED)


class AlreadyProcessedError(AppError):
    """Settlement already happened for this reference or ledger entry.

    Webhook paths treat this as success; landlord actions see a 409.
    """

    def __init__(self, message: str = "Already processed"):
        super().__init__(message, "already_processed", status.HTTP_409_CONFLICT)


class InvalidTransitionError(AppError):
    """Settlement state change not allowed from the current state."""

    def __init__(self, message: str = "Invalid settlement transition"):
        super().__init__(message, "invalid_transition", status.HTTP_409_CONFLICT)


class ExternalServiceError(AppError):
    """Gateway call failed or timed out. Never treated as success.

    Retryable failures (timeouts, gateway 5xx) answer 503. A request the
    gateway refused answers 422 so the caller does not retry it unchanged.
    """

    def __init__(self, message: str = "Payment gateway unavailable", retryable: bool = True):
        self.retryable = retryable
        if retryable:
            super().__init__(
                message, "external_service_error", status.HTTP_503_SERVICE_UNAVAILABLE
            )
        else:
            super().__init__(
                message, "external_service_rejected", status.HTTP_422_UNPROCESSABLE_ENTITY
            )


class ConfigurationError(AppError):
    """Required secret or setting is missing."""

    def __init__(self, message: str = "Service not configured"):
        super().__init__(message, "configuration_error", status.HTTP_503_SERVICE_UNAVAILABLE)


def error_response(error: AppError) -> Dict[str, Any]:
    """Create a standardized error response."""
    return {
        "success": False,
        "error": {
            "code": error.code,
            "message": error.message,
        },
    }


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render an AppError raised anywhere below a route."""
    return JSONResponse(status_code=exc.http_status, content=error_response(exc))


__all__ = [
    "AppError",
    "AlreadyProcessedError",
    "AuthenticationError",
    "ConfigurationError",
    "ExternalServiceError",
    "InvalidSignatureError",
    "InvalidTransitionError",
    "NotFoundError",
    "UnauthorizedError",
    "ValidationError",
    "app_error_handler",
    "error_response",
]
