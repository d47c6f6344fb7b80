import logging
from typing import Iterable

from fastapi import HTTPException, status

logger = logging.getLogger(__name__)


class ApiError(HTTPException):
    """HTTPException carrying a machine readable error code and extra payload fields."""

    status_code_default = status.HTTP_400_BAD_REQUEST
    error_code_default = "BAD_REQUEST"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        **extra,
    ):
        super().__init__(status_code=status_code or self.status_code_default, detail=message)
        self.message = message
        self.error_code = error_code or self.error_code_default
        self.extra = extra


class ValidationFailed(ApiError):
    error_code_default = "VALIDATION_ERROR"

    @classmethod
    def from_errors(cls, errors: Iterable[str], **extra) -> "ValidationFailed":
        messages = [message for message in errors if message]
        logger.info("Validation failed: %s", messages)
        return cls(", ".join(messages), errors=messages, **extra)


class NotFoundError(ApiError):
    status_code_default = status.HTTP_404_NOT_FOUND
    error_code_default = "NOT_FOUND"


class ForbiddenError(ApiError):
    status_code_default = status.HTTP_403_FORBIDDEN
    error_code_default = "FORBIDDEN"


class ConflictError(ApiError):
    error_code_default = "CONFLICT"


class StorageError(ApiError):
    error_code_default = "STORAGE_ERROR"


def describe_validation_errors(errors: Iterable[dict]) -> list[str]:
    """Flatten pydantic error dicts into readable ``field: message`` strings."""
    messages = []
    for error in errors:
        location = ".".join(
            str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "form", "header")
        )
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{location}: {message}" if location else message)
    return messages
