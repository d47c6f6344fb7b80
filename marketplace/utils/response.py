import logging

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from marketplace.config import settings
from marketplace.utils.errors import ApiError

logger = logging.getLogger(__name__)

_DEFAULT_ERROR_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
    status.HTTP_429_TOO_MANY_REQUESTS: "RATE_LIMITED",
}


def create_response(
    message: str,
    data=None,
    status_code: int = status.HTTP_200_OK,
) -> JSONResponse:
    """Return the shared success envelope."""
    return JSONResponse(
        status_code=status_code,
        content={
            "statusCode": status_code,
            "api_ver": settings.API_VER,
            "success": True,
            "message": message,
            "data": jsonable_encoder(data),
        },
    )


def error_response(
    message: str,
    status_code: int = status.HTTP_400_BAD_REQUEST,
    error_code: str | None = None,
    **extra,
) -> JSONResponse:
    """Return the shared failure envelope."""
    error = {
        "error_code": error_code or _DEFAULT_ERROR_CODES.get(status_code, "EXCEPTION"),
        "message": message,
    }
    error.update(jsonable_encoder(extra))
    return JSONResponse(
        status_code=status_code,
        content={
            "statusCode": status_code,
            "api_ver": settings.API_VER,
            "success": False,
            "error": error,
        },
    )


def handle_exception(error: Exception, fallback_message: str = "Internal server error") -> JSONResponse:
    """Coerce raised errors into the shared response structure."""
    if isinstance(error, ApiError):
        return error_response(error.message, error.status_code, error.error_code, **error.extra)

    if isinstance(error, HTTPException):
        detail = error.detail if isinstance(error.detail, str) else str(error.detail)
        return error_response(detail, error.status_code)

    logger.exception("Unhandled error: %s", error)
    return error_response(fallback_message, status.HTTP_500_INTERNAL_SERVER_ERROR, "EXCEPTION")
