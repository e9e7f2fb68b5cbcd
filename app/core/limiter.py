from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.settings import settings

# No default limits: only endpoints that opt in through ``limiter.limit`` are throttled.
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.rate_limit_storage_uri,
)

__all__ = ["limiter"]
