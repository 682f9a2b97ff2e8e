"""Core utilities and security modules."""

from app.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    ExternalServiceError,
    InternalServerError,
    InvalidRequestError,
    NotFoundError,
    RateLimitExceeded,
    TransitionConflict,
)
from app.core.security import (
    create_access_token,
    verify_token,
)

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "ExternalServiceError",
    "InternalServerError",
    "InvalidRequestError",
    "NotFoundError",
    "RateLimitExceeded",
    "TransitionConflict",
    "create_access_token",
    "verify_token",
]
