"""
Middleware Package

Provides FastAPI middleware for:
- Rate limiting
- Error handling

Rate limiting usage:
    from app.middleware import limiter
    from app.enums import RateLimitType
    from app.config import settings

    @limiter.limit(settings.get_rate_limit(RateLimitType.BATCH))
    async def my_endpoint(request: Request):
        ...
"""

from app.middleware.error_handling import (
    ErrorHandlingMiddleware,
    ServiceError,
    setup_error_handling,
)
from app.middleware.rate_limit import limiter, setup_rate_limiting

__all__ = [
    "setup_rate_limiting",
    "limiter",
    "ErrorHandlingMiddleware",
    "ServiceError",
    "setup_error_handling",
]
