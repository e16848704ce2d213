"""Shared helpers for backend tests."""

from gatekeeper.core.errors import StoreUnavailableError

TEST_PASSWORD = "correct-horse-battery"


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class FailingStore:
    """Key-value store whose every call fails like an unreachable Redis."""

    def __init__(self):
        self.calls = 0

    def _fail(self):
        self.calls += 1
        raise StoreUnavailableError("connection refused")

    async def get(self, key):
        self._fail()

    async def set(self, key, value, ttl_seconds):
        self._fail()

    async def delete(self, *keys):
        self._fail()

    async def incr_window(self, key, window_seconds):
        self._fail()

    async def ping(self):
        self._fail()

    async def close(self):
        pass


class FakeClock:
    """Manually advanced monotonic clock for MemoryStore."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
