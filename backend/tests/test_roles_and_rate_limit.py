"""
Unit tests for role permissions and the rate limiter backends.
"""
from datetime import datetime, timedelta

import pytest
from starlette.requests import Request

from app.core.rate_limit import MemoryBackend, RedisBackend, RateLimiter
from app.core.roles import (
    UserRole, Permission, has_permission, can_override_share_limit, is_admin, outranks
)


# ==================== ROLES ====================

def test_role_parse_is_case_insensitive():
    assert UserRole.parse("admin") == UserRole.ADMIN
    assert UserRole.parse(" Super_Admin ") == UserRole.SUPER_ADMIN
    assert UserRole.parse(None) == UserRole.GUEST
    with pytest.raises(ValueError):
        UserRole.parse("OWNER")


def test_only_super_admin_may_override_share_limit():
    assert can_override_share_limit(UserRole.SUPER_ADMIN)
    assert not can_override_share_limit("ADMIN")
    assert not can_override_share_limit("PARTNER")


def test_buyer_permissions():
    assert has_permission("BUYER", Permission.ORDERS_PLACE)
    assert not has_permission("BUYER", Permission.ORDERS_MANAGE)
    assert not has_permission("GUEST", Permission.ORDERS_PLACE)
    assert not has_permission("BUYER", Permission.REVIEWS_MANAGE)
    assert not has_permission("MANAGER", Permission.CUSTOMER_DISCOUNT_MANAGE)
    assert has_permission("ADMIN", Permission.REVIEWS_MANAGE)
    assert has_permission("ADMIN", Permission.CUSTOMER_DISCOUNT_MANAGE)


def test_hierarchy():
    assert is_admin("admin") and is_admin("SUPER_ADMIN")
    assert not is_admin("MANAGER")
    assert outranks("ADMIN", "MANAGER")
    assert not outranks("ADMIN", "ADMIN")


# ==================== RATE LIMITING ====================

class FakeRedis:
    """Just enough of the redis client for fixed window counters."""

    def __init__(self):
        self.store = {}
        self.ttls = {}

    def incr(self, key):
        self.store[key] = self.store.get(key, 0) + 1
        return self.store[key]

    def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    def ttl(self, key):
        return self.ttls.get(key, -1)


def _request(path: str, method: str = "POST") -> Request:
    return Request({
        "type": "http",
        "method": method,
        "path": path,
        "headers": [],
        "query_string": b"",
        "client": ("10.0.0.1", 1234),
    })


def test_memory_backend_blocks_after_limit():
    backend = MemoryBackend()
    assert backend.hit("k", 2, 60) == (True, 1, 0)
    assert backend.hit("k", 2, 60) == (True, 2, 0)
    allowed, count, retry_after = backend.hit("k", 2, 60)
    assert not allowed
    assert count == 2
    assert 1 <= retry_after <= 60

    backend.reset()
    assert backend.hit("k", 2, 60)[0]


def test_memory_backend_drops_idle_keys():
    backend = MemoryBackend()
    backend.hit("idle", 5, 60)
    backend._requests["idle"] = [datetime.utcnow() - timedelta(seconds=120)]

    assert backend.hit("busy", 5, 60) == (True, 1, 0)
    assert "idle" not in backend._requests
    assert "idle" not in backend._windows
    assert list(backend._requests) == ["busy"]


def test_redis_backend_sets_expiry_on_first_hit():
    client = FakeRedis()
    backend = RedisBackend(client)
    assert backend.hit("login", 1, 30) == (True, 1, 0)
    assert client.ttls["ratelimit:login"] == 30

    allowed, count, retry_after = backend.hit("login", 1, 30)
    assert not allowed
    assert count == 2
    assert retry_after == 30


def test_limiter_uses_closest_path_rule():
    limiter = RateLimiter(MemoryBackend())
    assert limiter.get_limit("/api/v1/admin/financial/ledger/reconcile") == (10, 60)
    assert limiter.get_limit("/api/v1/orders/5/cancel") == (20, 60)
    assert limiter.get_limit("/api/v1/admin/costs") == limiter.limits["default"]


def test_limiter_skips_reads_but_not_auth():
    limiter = RateLimiter(MemoryBackend())
    allowed, info = limiter.is_allowed(_request("/api/v1/products", "GET"))
    assert allowed and info is None

    limiter.limits["/api/v1/auth/login"] = (1, 60)
    assert limiter.is_allowed(_request("/api/v1/auth/login"))[0]
    allowed, info = limiter.is_allowed(_request("/api/v1/auth/login"))
    assert not allowed
    assert info["remaining"] == 0
