"""
Rate Limiting Middleware
Limits authentication endpoints and write operations per client and user.
"""
from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Tuple, Optional
import threading
import logging

import redis

from app.core.config import settings
from app.core.exceptions import error_response
from app.core.security import decode_access_token

logger = logging.getLogger(__name__)


class MemoryBackend:
    """
    Thread-safe in-memory sliding window counters.
    Only correct for a single process; use RedisBackend behind several workers.
    """

    def __init__(self):
        self._requests: Dict[str, list] = defaultdict(list)
        self._windows: Dict[str, int] = {}
        self._lock = threading.Lock()

    def _cleanup_old_requests(self, now: datetime):
        """Remove requests outside their window and drop keys left empty"""
        for key in list(self._requests):
            cutoff = now - timedelta(seconds=self._windows.get(key, 0))
            timestamps = [t for t in self._requests[key] if t > cutoff]
            if timestamps:
                self._requests[key] = timestamps
            else:
                del self._requests[key]
                self._windows.pop(key, None)

    def hit(self, key: str, limit: int, window: int) -> Tuple[bool, int, int]:
        """Record a request. Returns (allowed, current_count, retry_after_seconds)."""
        now = datetime.utcnow()
        with self._lock:
            self._cleanup_old_requests(now)
            self._windows[key] = window
            timestamps = self._requests[key]
            if len(timestamps) >= limit:
                retry_after = int((min(timestamps) + timedelta(seconds=window) - now).total_seconds())
                return False, len(timestamps), max(1, retry_after)
            timestamps.append(now)
            return True, len(timestamps), 0

    def reset(self):
        with self._lock:
            self._requests.clear()
            self._windows.clear()


class RedisBackend:
    """Fixed window counters shared by every worker through Redis."""

    prefix = "ratelimit:"

    def __init__(self, client):
        self.client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisBackend":
        return cls(redis.from_url(url, decode_responses=True))

    def hit(self, key: str, limit: int, window: int) -> Tuple[bool, int, int]:
        redis_key = f"{self.prefix}{key}"
        count = int(self.client.incr(redis_key))
        if count == 1:
            self.client.expire(redis_key, window)
        if count > limit:
            ttl = self.client.ttl(redis_key)
            return False, count, max(1, int(ttl) if ttl and ttl > 0 else window)
        return True, count, 0


class RateLimiter:
    def __init__(self, backend=None):
        self.backend = backend or MemoryBackend()

        # (max requests, window seconds) keyed by path prefix
        self.limits = {
            '/api/v1/auth/login': (settings.RATE_LIMIT_LOGIN_ATTEMPTS, settings.RATE_LIMIT_LOGIN_WINDOW_SECONDS),
            '/api/v1/auth/register': (3, 300),
            '/api/v1/orders': (20, 60),
            '/api/v1/reviews': (10, 60),
            '/api/v1/admin/profits': (10, 60),
            '/api/v1/admin/financial/ledger/reconcile': (10, 60),
            '/api/v1/admin/stock/adjust': (30, 60),
            'default': (100, 60),
        }

    def _get_client_ip(self, request: Request) -> str:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()

        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            return real_ip

        if request.client:
            return request.client.host

        return "unknown"

    def _get_user_key(self, request: Request) -> str:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            payload = decode_access_token(auth_header[7:])
            if payload and payload.get("sub"):
                return f"user-{payload['sub']}"
        return "anonymous"

    def get_limit(self, path: str) -> Tuple[int, int]:
        if path in self.limits:
            return self.limits[path]
        # Longest matching prefix wins so nested routes get the closest rule
        matches = [p for p in self.limits if p != 'default' and path.startswith(p)]
        if matches:
            return self.limits[max(matches, key=len)]
        return self.limits['default']

    def is_allowed(self, request: Request) -> Tuple[bool, Optional[Dict]]:
        """
        Check if the request is allowed under rate limiting rules.

        Returns:
            Tuple of (is_allowed, rate_limit_info)
        """
        path = request.url.path
        method = request.method

        # Only rate limit write operations and auth endpoints
        if method in ['GET', 'HEAD', 'OPTIONS'] and not path.startswith('/api/v1/auth'):
            return True, None

        limit, window = self.get_limit(path)
        key = f"{path}:{self._get_client_ip(request)}:{self._get_user_key(request)}"

        allowed, count, retry_after = self.backend.hit(key, limit, window)
        if not allowed:
            logger.warning(f"Rate limit exceeded for {key}: {count}/{limit} requests")
            return False, {
                'limit': limit,
                'remaining': 0,
                'reset': retry_after,
                'retry_after': retry_after,
            }

        return True, {
            'limit': limit,
            'remaining': max(0, limit - count),
            'reset': window,
        }


def build_rate_limiter() -> RateLimiter:
    if settings.RATE_LIMIT_REDIS_URL:
        logger.info("Rate limiting backed by Redis")
        return RateLimiter(RedisBackend.from_url(settings.RATE_LIMIT_REDIS_URL))
    return RateLimiter()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """FastAPI middleware for rate limiting"""

    def __init__(self, app, rate_limiter: Optional[RateLimiter] = None, enabled: Optional[bool] = None):
        super().__init__(app)
        self.rate_limiter = rate_limiter or build_rate_limiter()
        self.enabled = settings.RATE_LIMIT_ENABLED if enabled is None else enabled

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or not request.url.path.startswith('/api/'):
            return await call_next(request)

        is_allowed, rate_info = self.rate_limiter.is_allowed(request)

        if not is_allowed:
            return error_response(
                status.HTTP_429_TOO_MANY_REQUESTS,
                "Too many requests. Please try again later.",
                headers={
                    'Retry-After': str(rate_info['retry_after']),
                    'X-RateLimit-Limit': str(rate_info['limit']),
                    'X-RateLimit-Remaining': '0',
                    'X-RateLimit-Reset': str(rate_info['reset']),
                }
            )

        response = await call_next(request)

        if rate_info:
            response.headers['X-RateLimit-Limit'] = str(rate_info['limit'])
            response.headers['X-RateLimit-Remaining'] = str(rate_info['remaining'])
            response.headers['X-RateLimit-Reset'] = str(rate_info['reset'])

        return response
