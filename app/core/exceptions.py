"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception.

    ``extra`` holds additional top-level fields rendered next to ``detail``
    in the JSON error body.
    """

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.extra = extra or {}
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class InvalidRequestError(AppException):
    """Malformed or unrecognised request input."""

    def __init__(self, detail: str = "Invalid request", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            extra={"errors": errors} if errors else None,
        )


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
            extra={"code": "unauthenticated"},
        )


class AuthorizationError(AppException):
    """Authorization denied exception."""

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            extra={"code": "not_authorized"},
        )


class TransitionConflict(AppException):
    """Requested transition does not follow from the booking's stored status.

    Raised both for state-graph violations and for conditional writes that
    lost a race. Carries the booking's actual status and the single action
    that would be accepted from it, so clients can recover without guessing.
    """

    def __init__(
        self,
        current_status: str | None,
        allowed_next_status: str | None,
        detail: str | None = None,
    ) -> None:
        self.current_status = current_status
        self.allowed_next_status = allowed_next_status
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail or f"Invalid transition from status '{current_status}'",
            extra={
                "code": "invalid_transition",
                "currentStatus": current_status,
                "allowedNextStatus": allowed_next_status,
            },
        )


class RateLimitExceeded(AppException):
    """Rate limit exceeded exception."""

    def __init__(self, detail: str = "Too many requests. Please try again later.") -> None:
        super().__init__(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=detail)


class ExternalServiceError(AppException):
    """External service error."""

    def __init__(self, service: str, detail: str | None = None) -> None:
        message = f"External service '{service}' is unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=message)


class InternalServerError(AppException):
    """Unclassified failure (store unreachable and the like)."""

    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)
