import asyncio
import time

import pytest

from bizdesk.config.schema import RateLimitConfig
from bizdesk.ratelimit.limiter import RateLimiter


def make_limiter(clock, **kwargs) -> RateLimiter:
    return RateLimiter(clock=clock, sleep=clock.sleep, **kwargs)


def test_defaults(clock):
    limiter = make_limiter(clock)

    assert limiter.requests_per_second == 10
    assert limiter.requests_per_minute == 300
    assert limiter.burst_size == 20
    assert limiter.initial_backoff_ms == 1000
    assert limiter.max_backoff_ms == 32000
    assert limiter.backoff_multiplier == 2
    assert limiter.current_backoff_ms == 1000
    assert limiter.tokens == 20
    assert limiter.blocked_until == 0


def test_zero_options_fall_back_to_defaults(clock):
    limiter = make_limiter(clock, requests_per_second=0, requests_per_minute=0, max_backoff_ms=0)

    assert limiter.requests_per_second == 10
    assert limiter.requests_per_minute == 300
    assert limiter.max_backoff_ms == 32000


def test_burst_size_defaults_to_twice_rate(clock):
    limiter = make_limiter(clock, requests_per_second=4)
    assert limiter.burst_size == 8


def test_from_config_uses_config_values(clock):
    cfg = RateLimitConfig(requests_per_second=2, requests_per_minute=50, initial_backoff_ms=250)
    limiter = RateLimiter.from_config(cfg, clock=clock, sleep=clock.sleep)

    assert limiter.requests_per_second == 2
    assert limiter.requests_per_minute == 50
    assert limiter.burst_size == 4
    assert limiter.current_backoff_ms == 250


def test_tokens_refill_monotonically_and_cap_at_burst(clock):
    limiter = make_limiter(clock, requests_per_second=5, burst_size=3)
    for _ in range(3):
        limiter.record_request()
    assert limiter.tokens == 0

    previous = limiter.tokens
    for step in (0.1, 50, 120, 0, 900, 120_000):
        clock.advance(step)
        limiter.refill_tokens()
        assert limiter.tokens >= previous
        assert 0 <= limiter.tokens <= limiter.burst_size
        previous = limiter.tokens

    assert limiter.tokens == 3


def test_refill_is_continuous(clock):
    limiter = make_limiter(clock, requests_per_second=10, burst_size=10)
    for _ in range(10):
        limiter.record_request()

    clock.advance(250)
    limiter.refill_tokens()

    assert limiter.tokens == pytest.approx(2.5)


def test_burst_exhaustion_closes_gate_until_one_token_refills(clock):
    limiter = make_limiter(clock, requests_per_second=4, burst_size=3)

    for _ in range(3):
        assert limiter.can_make_request()
        limiter.record_request()

    assert limiter.can_make_request() is False

    clock.advance(1000 / 4)
    assert limiter.can_make_request() is True


def test_can_make_request_does_not_consume(clock):
    limiter = make_limiter(clock, requests_per_second=1, burst_size=1)

    for _ in range(5):
        assert limiter.can_make_request() is True
    assert limiter.tokens == 1


def test_record_request_floors_tokens_at_zero(clock):
    limiter = make_limiter(clock, requests_per_second=1, burst_size=1)

    limiter.record_request()
    limiter.record_request()

    assert limiter.tokens == 0
    assert len(limiter.request_timestamps) == 2


def test_per_minute_ceiling_and_window_expiry(clock):
    limiter = make_limiter(clock, requests_per_minute=3)

    limiter.record_request()
    clock.advance(20_000)
    limiter.record_request()
    clock.advance(20_000)
    assert limiter.check_per_minute_limit() is True
    limiter.record_request()

    assert limiter.check_per_minute_limit() is False

    # First request is now exactly 60s old and drops out of the window
    clock.advance(20_000)
    assert limiter.check_per_minute_limit() is True
    assert len(limiter.request_timestamps) == 2


def test_per_minute_limit_is_independent_of_bucket(clock):
    limiter = make_limiter(clock, requests_per_second=100, requests_per_minute=2)
    limiter.record_request()
    limiter.record_request()

    assert limiter.can_make_request() is True
    assert limiter.check_per_minute_limit() is False


def test_backoff_grows_and_caps(clock):
    limiter = make_limiter(clock, initial_backoff_ms=1000, max_backoff_ms=32000, backoff_multiplier=2)

    seen = []
    for _ in range(5):
        limiter.handle_rate_limit_error()
        seen.append(limiter.current_backoff_ms)

    assert seen == [2000, 4000, 8000, 16000, 32000]

    limiter.handle_rate_limit_error()
    assert limiter.current_backoff_ms == 32000


def test_handle_rate_limit_error_blocks_for_pre_growth_backoff(clock):
    limiter = make_limiter(clock)
    start = clock.now

    limiter.handle_rate_limit_error()
    assert limiter.blocked_until == start + 1000

    clock.advance(10)
    limiter.handle_rate_limit_error()
    assert limiter.blocked_until == start + 10 + 2000


def test_reset_backoff(clock):
    limiter = make_limiter(clock)

    limiter.reset_backoff()
    assert limiter.current_backoff_ms == 1000

    limiter.handle_rate_limit_error()
    limiter.handle_rate_limit_error()
    assert limiter.current_backoff_ms == 4000

    limiter.reset_backoff()
    assert limiter.current_backoff_ms == 1000


def test_reset_backoff_keeps_active_block(clock):
    limiter = make_limiter(clock)
    limiter.handle_rate_limit_error()
    blocked_until = limiter.blocked_until

    limiter.reset_backoff()

    assert limiter.blocked_until == blocked_until
    assert limiter.can_make_request() is False


def test_blocked_window_in_status(clock):
    limiter = make_limiter(clock)
    limiter.handle_rate_limit_error()

    status = limiter.get_status()
    assert status.is_blocked is True
    assert status.blocked_until_ms == 1000
    assert status.current_backoff_ms == 2000
    assert limiter.can_make_request() is False

    clock.advance(999)
    assert limiter.get_status().is_blocked is True

    clock.advance(1)
    status = limiter.get_status()
    assert status.is_blocked is False
    assert status.blocked_until_ms == 0
    assert limiter.can_make_request() is True


def test_status_snapshot_and_camel_case_dict(clock):
    limiter = make_limiter(clock, requests_per_second=2, requests_per_minute=60)
    limiter.record_request()

    status = limiter.get_status()
    assert status.tokens_available == 3
    assert status.recent_request_count == 1

    data = status.to_dict()
    assert data == {
        "tokensAvailable": 3,
        "burstSize": 4,
        "requestsPerSecond": 2,
        "requestsPerMinute": 60,
        "recentRequestCount": 1,
        "isBlocked": False,
        "blockedUntilMs": 0,
        "currentBackoffMs": 1000,
    }


def test_listeners_receive_grown_backoff(clock):
    received = []
    limiter = make_limiter(clock, on_rate_limit_hit=received.append)
    other = []
    limiter.subscribe(other.append)

    limiter.handle_rate_limit_error()

    assert received == [2000]
    assert other == [2000]


def test_unsubscribe_removes_only_that_listener(clock):
    limiter = make_limiter(clock)
    first, second = [], []
    unsubscribe_first = limiter.subscribe(first.append)
    limiter.subscribe(second.append)

    unsubscribe_first()
    limiter.handle_rate_limit_error()

    assert first == []
    assert second == [2000]
    assert len(limiter._listeners) == 1

    # Unknown callbacks are ignored
    limiter.unsubscribe(first.append)


def test_failing_listener_does_not_break_others(clock):
    limiter = make_limiter(clock)
    received = []

    def broken(_backoff_ms):
        raise RuntimeError("display crashed")

    limiter.subscribe(broken)
    limiter.subscribe(received.append)

    limiter.handle_rate_limit_error()

    assert received == [2000]


@pytest.mark.asyncio
async def test_wait_until_ready_returns_zero_when_ready(clock):
    limiter = make_limiter(clock)

    assert await limiter.wait_until_ready() == 0
    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_wait_until_ready_sleeps_out_remaining_block(clock):
    limiter = make_limiter(clock)
    limiter.handle_rate_limit_error()
    clock.advance(400)

    waited = await limiter.wait_until_ready()

    assert waited == 600
    assert clock.sleeps == [pytest.approx(0.6)]
    assert limiter.can_make_request() is True


@pytest.mark.asyncio
async def test_wait_until_ready_waits_for_missing_token_fraction(clock):
    limiter = make_limiter(clock, requests_per_second=4, burst_size=1)
    limiter.record_request()
    clock.advance(125)  # half a token back

    waited = await limiter.wait_until_ready()

    assert waited == pytest.approx(125)
    assert limiter.tokens == pytest.approx(1)
    assert limiter.can_make_request() is True


@pytest.mark.asyncio
async def test_wait_until_ready_ignores_per_minute_window(clock):
    limiter = make_limiter(clock, requests_per_minute=1)
    limiter.record_request()

    assert await limiter.wait_until_ready() == 0
    assert limiter.check_per_minute_limit() is False


@pytest.mark.asyncio
async def test_wait_until_ready_real_clock_bounds():
    limiter = RateLimiter(initial_backoff_ms=80)
    limiter.handle_rate_limit_error()
    remaining = limiter.get_status().blocked_until_ms

    started = time.monotonic()
    waited = await limiter.wait_until_ready()
    elapsed_ms = (time.monotonic() - started) * 1000

    assert waited == pytest.approx(remaining, abs=5)
    assert elapsed_ms >= remaining - 5
    assert elapsed_ms < remaining + 500


@pytest.mark.asyncio
async def test_admission_lock_is_shared_async_lock(clock):
    limiter = make_limiter(clock)

    assert isinstance(limiter.admission_lock, asyncio.Lock)
    async with limiter.admission_lock:
        assert limiter.admission_lock.locked()
    assert not limiter.admission_lock.locked()


@pytest.mark.asyncio
async def test_end_to_end_scenario(clock):
    limiter = make_limiter(
        clock,
        requests_per_second=1,
        burst_size=1,
        requests_per_minute=2,
        initial_backoff_ms=100,
        max_backoff_ms=400,
        backoff_multiplier=2,
    )

    limiter.record_request()
    assert limiter.tokens == 0
    assert limiter.can_make_request() is False

    waited = await limiter.wait_until_ready()
    assert waited == pytest.approx(1000)
    assert limiter.can_make_request() is True

    limiter.record_request()
    assert limiter.check_per_minute_limit() is False

    limiter.handle_rate_limit_error()
    status = limiter.get_status()
    assert status.current_backoff_ms == 200
    assert status.is_blocked is True

    clock.advance(100)
    assert limiter.get_status().is_blocked is False
