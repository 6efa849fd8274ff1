"""slowapi limiter shared by the public onboarding and HR routers."""

import logging
import os

from slowapi import Limiter
from starlette.requests import Request

from onboarding_api.core.config import settings
from onboarding_api.core.deps import get_client_ip

logger = logging.getLogger(__name__)

IS_TESTING = os.getenv("TESTING", "").lower() in ("1", "true", "yes")
MEMORY_STORAGE = "memory://"


def rate_limit_key(request: Request) -> str:
    """Limit by client address (proxy-aware); requests without one share a bucket."""
    return get_client_ip(request) or "unknown"


def _storage_uri() -> str:
    if IS_TESTING or not settings.REDIS_URL:
        return MEMORY_STORAGE
    try:
        import redis

        redis.from_url(settings.REDIS_URL, socket_connect_timeout=1).ping()
    except Exception as exc:
        logger.warning("Redis unavailable for rate limiting, counting in memory: %s", exc)
        return MEMORY_STORAGE
    return settings.REDIS_URL


limiter = Limiter(
    key_func=rate_limit_key,
    storage_uri=_storage_uri(),
    default_limits=[f"{settings.RATE_LIMIT_API}/minute"] if settings.RATE_LIMIT_API > 0 else [],
    enabled=not IS_TESTING,
)
