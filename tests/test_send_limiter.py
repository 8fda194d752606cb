"""Tests for the OTP send rate limiter."""

from phoneauth.services.send_limiter import SendRateLimiter


class FakeMonotonic:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_allows_until_limit():
    limiter = SendRateLimiter(window_seconds=60, clock=FakeMonotonic())

    for _ in range(3):
        assert limiter.allows("phone:1", 3)
        limiter.record("phone:1")

    assert not limiter.allows("phone:1", 3)
    assert limiter.allows("phone:2", 3)


def test_window_slides():
    clock = FakeMonotonic()
    limiter = SendRateLimiter(window_seconds=60, clock=clock)
    limiter.record("phone:1")
    assert not limiter.allows("phone:1", 1)

    clock.now += 60
    assert limiter.allows("phone:1", 1)


def test_checks_do_not_create_keys():
    limiter = SendRateLimiter(window_seconds=60, clock=FakeMonotonic())

    for i in range(200):
        limiter.allows(f"phone:{i}", 1)

    assert limiter.tracked_keys == 0


def test_expired_key_is_dropped_on_check():
    clock = FakeMonotonic()
    limiter = SendRateLimiter(window_seconds=60, clock=clock)
    limiter.record("phone:1")
    clock.now += 61

    assert limiter.allows("phone:1", 1)
    assert limiter.tracked_keys == 0


def test_cleanup_inactive():
    clock = FakeMonotonic()
    limiter = SendRateLimiter(window_seconds=60, clock=clock)
    limiter.record("phone:old")
    clock.now += 30
    limiter.record("phone:new")
    clock.now += 31

    assert limiter.cleanup_inactive() == 1
    assert limiter.tracked_keys == 1
    assert not limiter.allows("phone:new", 1)
