import pytest

from tutorguard.core.config import Settings
from tutorguard.domain.rate_limiting import RateLimiter, RateLimitPolicy
from tutorguard.infrastructure.rate_limiting import InMemoryCounterStore

# 2023-11-14T22:13:20Z
EPOCH = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock, usable wherever a ``time.time`` is expected."""

    def __init__(self, start: float = EPOCH):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Async sleep replacement that records delays instead of waiting.

    When bound to a clock it also advances that clock, so elapsed time can
    be asserted exactly.
    """

    def __init__(self, clock: FakeClock = None):
        self.calls = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleep_recorder(clock):
    return SleepRecorder(clock)


@pytest.fixture
def memory_store():
    return InMemoryCounterStore()


@pytest.fixture
def policies():
    return [
        RateLimitPolicy("contact", 3, 900, "Contact form submissions"),
        RateLimitPolicy("enrollment", 2, 1800),
        RateLimitPolicy("api", 5, 60, "General API requests"),
        RateLimitPolicy("auth", 5, 900),
    ]


@pytest.fixture
def rate_limiter(policies, memory_store, clock):
    return RateLimiter(policies, fallback_store=memory_store, clock=clock)


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        APP_ENV="test",
        REDIS_HOST="",
        REDIS_URL="",
        LOG_JSON=False,
        RATE_LIMIT_WHITELIST="127.0.0.1",
    )
