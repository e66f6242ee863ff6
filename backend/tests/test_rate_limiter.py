import pytest

from app.core.exceptions import RateLimitExceededError
from app.services.rate_limiter import InMemoryRateLimiter


def test_allow_counts_within_window():
    limiter = InMemoryRateLimiter()
    assert [limiter.allow("k", 2, 60, now=100.0) for _ in range(3)] == [True, True, False]


def test_window_slides():
    limiter = InMemoryRateLimiter()
    assert limiter.allow("k", 1, 60, now=100.0)
    assert not limiter.allow("k", 1, 60, now=130.0)
    assert limiter.allow("k", 1, 60, now=161.0)


def test_keys_are_independent():
    limiter = InMemoryRateLimiter()
    assert limiter.allow("a", 1, 60, now=0.0)
    assert limiter.allow("b", 1, 60, now=0.0)


def test_enforce_raises_429():
    limiter = InMemoryRateLimiter()
    limiter.enforce("login", "1.2.3.4:x@y.z", per_minute=1, per_hour=10)
    with pytest.raises(RateLimitExceededError) as exc:
        limiter.enforce("login", "1.2.3.4:x@y.z", per_minute=1, per_hour=10)
    assert exc.value.status_code == 429


def test_reset_clears_buckets():
    limiter = InMemoryRateLimiter()
    limiter.allow("k", 1, 60, now=0.0)
    limiter.reset()
    assert limiter.allow("k", 1, 60, now=0.0)


def test_expired_bucket_is_dropped_on_next_use():
    limiter = InMemoryRateLimiter()
    limiter.allow("k", 1, 60, now=0.0)
    assert len(limiter) == 1
    assert limiter.allow("k", 1, 60, now=61.0)
    assert len(limiter) == 1


def test_purge_drops_stale_buckets_only():
    limiter = InMemoryRateLimiter()
    limiter.allow("old", 5, 60, now=0.0)
    limiter.allow("fresh", 5, 60, now=100.0)
    assert limiter.purge(now=120.0) == 1
    assert len(limiter) == 1
    assert not limiter.allow("fresh", 1, 60, now=120.0)


def test_map_stays_bounded_under_key_spraying():
    limiter = InMemoryRateLimiter(purge_threshold=50)
    for i in range(500):
        limiter.allow(f"login:min:1.2.3.4:user{i}@example.com", 10, 60, now=float(i * 10))
    # Only keys touched within the last minute survive each purge.
    assert len(limiter) <= 50
