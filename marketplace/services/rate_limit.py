import logging

from fastapi import Request, status
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from marketplace.config import settings
from marketplace.utils.response import error_response

logger = logging.getLogger(__name__)

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    enabled=settings.RATE_LIMIT_ENABLED,
)


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    logger.warning("Rate limit hit on %s from %s", request.url.path, get_remote_address(request))
    return error_response(
        "Too many requests, please try again later.",
        status.HTTP_429_TOO_MANY_REQUESTS,
        "RATE_LIMITED",
        limit=str(exc.detail),
    )
