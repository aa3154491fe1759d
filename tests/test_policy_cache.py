from decimal import Decimal

from lotto_ledger.schemas.commission import CommissionPolicy
from lotto_ledger.services.commission import PolicyCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def make_policy(percent="5"):
    return CommissionPolicy(version=1, default_percent=Decimal(percent), rules=[])


def test_get_put_and_ttl_expiry():
    clock = FakeClock()
    cache = PolicyCache(ttl=300, max_size=10, clock=clock)
    policy = make_policy()

    assert cache.get("SELLER", "a") == (False, None)
    cache.put("SELLER", "a", policy)
    assert cache.get("SELLER", "a") == (True, policy)

    clock.now = 301
    assert cache.get("SELLER", "a") == (False, None)
    assert len(cache) == 0


def test_absent_policy_is_cached_as_hit():
    cache = PolicyCache()
    cache.put("BANK", "b", None)
    assert cache.get("BANK", "b") == (True, None)


def test_lru_eviction_keeps_recently_used():
    cache = PolicyCache(ttl=300, max_size=2)
    cache.put("SELLER", "a", make_policy())
    cache.put("SELLER", "b", make_policy())
    cache.get("SELLER", "a")
    cache.put("SELLER", "c", make_policy())

    assert cache.get("SELLER", "b")[0] is False
    assert cache.get("SELLER", "a")[0] is True
    assert cache.get("SELLER", "c")[0] is True


def test_invalidate_single_and_whole_kind():
    cache = PolicyCache()
    for key in ("a", "b"):
        cache.put("SELLER", key, make_policy())
    cache.put("WINDOW", "a", make_policy())

    assert cache.invalidate("SELLER", "a") == 1
    assert cache.invalidate("SELLER", "missing") == 0
    assert cache.invalidate("SELLER") == 1
    assert cache.get("WINDOW", "a")[0] is True

    cache.clear()
    assert len(cache) == 0


def test_cleanup_expired():
    clock = FakeClock()
    cache = PolicyCache(ttl=10, clock=clock)
    cache.put("SELLER", "old", make_policy())
    clock.now = 5
    cache.put("SELLER", "new", make_policy())
    clock.now = 12

    assert cache.cleanup_expired() == 1
    assert cache.get("SELLER", "new")[0] is True
