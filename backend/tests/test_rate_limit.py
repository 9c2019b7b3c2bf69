# tests/test_rate_limit.py - Sliding window limiter and API throttling
import pytest
from httpx import AsyncClient, ASGITransport

from main import create_app
from rate_limit import SlidingWindowRateLimiter, retry_after_header
from tests.conftest import make_settings


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_allows_up_to_limit_then_blocks():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(3, 60, clock=clock)
    states = [limiter.hit("1.2.3.4") for _ in range(4)]
    assert [s.allowed for s in states] == [True, True, True, False]
    assert [s.remaining for s in states[:3]] == [2, 1, 0]
    assert states[3].retry_after == pytest.approx(60)


def test_window_slides():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(2, 60, clock=clock)
    limiter.hit("k")
    clock.now += 30
    limiter.hit("k")
    assert limiter.check("k").allowed is False
    assert limiter.check("k").retry_after == pytest.approx(30)

    clock.now += 30
    state = limiter.check("k")
    assert state.allowed is True
    assert state.remaining == 1


def test_keys_are_independent_and_resettable():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(1, 60, clock=clock)
    assert limiter.hit("a").allowed
    assert limiter.hit("b").allowed
    assert not limiter.hit("a").allowed

    limiter.reset("a")
    assert limiter.hit("a").allowed
    limiter.reset()
    assert limiter.check("b").remaining == 1


def test_check_does_not_record():
    limiter = SlidingWindowRateLimiter(1, 60, clock=FakeClock())
    for _ in range(3):
        assert limiter.check("k").allowed
    limiter.record("k")
    assert not limiter.check("k").allowed


def test_idle_keys_are_evicted():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(5, 1, clock=clock)
    for i in range(1000):
        limiter.hit(f"client-{i}")
    assert limiter.tracked_keys() == 1000

    clock.now += 3600
    assert limiter.check("client-0").allowed
    assert limiter.tracked_keys() == 999

    limiter.hit("newcomer")
    assert limiter.tracked_keys() == 1


def test_check_does_not_track_unknown_keys():
    limiter = SlidingWindowRateLimiter(1, 60, clock=FakeClock())
    for i in range(50):
        assert limiter.check(f"someone-{i}@example.com").allowed
    assert limiter.tracked_keys() == 0


@pytest.mark.parametrize("seconds,expected", [(0, "1"), (0.2, "1"), (1.0, "1"), (12.3, "13")])
def test_retry_after_header_rounds_up(seconds, expected):
    assert retry_after_header(seconds) == expected


@pytest.mark.asyncio
async def test_api_requests_are_throttled(tmp_path):
    app = create_app(make_settings(tmp_path, "memory", rate_limit_max=3))
    await app.state.storage.init()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        codes = [(await client.get("/api/tasks")).status_code for _ in range(3)]
        assert codes == [401, 401, 401]

        res = await client.get("/api/tasks")
        assert res.status_code == 429
        assert res.headers["retry-after"] == "60"
        assert res.headers["x-ratelimit-remaining"] == "0"
        body = res.json()
        assert body["success"] is False
        assert body["error"]["code"] == "RATE_LIMITED"
        assert body["meta"]["requestId"] == res.headers["x-request-id"]

        health = await client.get("/api/health")
        assert health.status_code == 200
    await app.state.storage.close()
