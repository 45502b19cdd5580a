"""Rate limiting middleware."""

import logging
from datetime import datetime, timezone

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from backend.app.api.errors import error_response
from backend.app.config import Settings
from backend.app.errors import RateLimitExceeded
from backend.app.ratelimit import FixedWindowRateLimiter, RateLimitStatus, make_rate_limit_key
from backend.app.utils.metrics import rate_limit_rejections_total

logger = logging.getLogger(__name__)

EXEMPT_PATHS = frozenset({"/health", "/healthz", "/metrics"})


def create_default_bucket_map() -> dict[str, str]:
    """Create default bucket mapping.

    Returns:
        Dictionary mapping path patterns to bucket names
    """
    return {
        "/users/generate-api-key": "auth",
    }


def client_ip(request: Request, trust_forwarded_for: bool = False) -> str:
    """Client identity used for rate limiting.

    ``X-Forwarded-For`` is only honored behind a trusted proxy; otherwise
    any client could pick its own bucket.
    """
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()

    if request.client is None:
        return "unknown"
    return request.client.host


def _limit_headers(status: RateLimitStatus) -> dict[str, str]:
    return {
        "RateLimit-Limit": str(status.limit),
        "RateLimit-Remaining": str(status.remaining),
        "RateLimit-Reset": str(status.reset_after),
    }


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Middleware for rate limiting HTTP requests.

    Maps request paths to buckets and enforces rate limits before any
    downstream work. Limiters are looked up on ``app.state.rate_limiters``
    per request so they can be replaced without rebuilding the stack.
    """

    def __init__(
        self, app: ASGIApp, settings: Settings, bucket_map: dict[str, str] | None = None
    ) -> None:
        """Initialize rate limit middleware.

        Args:
            app: Downstream ASGI app
            settings: Application settings
            bucket_map: Mapping from path patterns to bucket names; unmatched
                paths use the "api" bucket
        """
        super().__init__(app)
        self._settings = settings
        self._bucket_map = bucket_map if bucket_map is not None else create_default_bucket_map()

    def get_bucket(self, path: str) -> str | None:
        """Get bucket name for path.

        Args:
            path: Request path

        Returns:
            Bucket name or None if no rate limit
        """
        if path in EXEMPT_PATHS:
            return None

        for pattern, bucket in self._bucket_map.items():
            if pattern in path:
                return bucket

        return "api"

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        bucket = self.get_bucket(request.url.path)
        limiters: dict[str, FixedWindowRateLimiter] = getattr(
            request.app.state, "rate_limiters", {}
        )
        if bucket is None or bucket not in limiters:
            return await call_next(request)
        limiter = limiters[bucket]

        ip = client_ip(request, self._settings.trust_forwarded_for)
        status = await limiter.check(make_rate_limit_key(ip, bucket), datetime.now(timezone.utc))

        if status.retry_after is not None:
            rate_limit_rejections_total.labels(bucket=bucket).inc()
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "structured": {
                        "bucket": bucket,
                        "client_ip": ip,
                        "path": request.url.path,
                        "retry_after": status.retry_after.seconds,
                    }
                },
            )
            response = error_response(
                RateLimitExceeded(status.retry_after.seconds), self._settings
            )
            response.headers.update(_limit_headers(status))
            return response

        response = await call_next(request)
        response.headers.update(_limit_headers(status))
        return response
