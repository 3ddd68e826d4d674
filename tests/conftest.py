"""
Pytest configuration shared across all test files.

Environment variables are set here, before any project module is imported,
so config.py picks up test values instead of a developer's .env.
"""

import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-snapcaption-tests-0123456789")
os.environ.setdefault("GROQ_API_KEY_CAPTION", "test-groq-key")

import pytest

from services.rate_limiter import reset_all_limiters


class FakeHandle:
    def __init__(self, when, seq, callback, args):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeLoop:
    """Virtual-time stand-in for an event loop's call_later."""

    def __init__(self):
        self.now = 0.0
        self._seq = 0
        self._timers = []

    def time(self):
        return self.now

    def clock_ms(self):
        return int(round(self.now * 1000))

    def call_later(self, delay, callback, *args):
        handle = FakeHandle(self.now + delay, self._seq, callback, args)
        self._seq += 1
        self._timers.append(handle)
        return handle

    @property
    def pending(self):
        return [h for h in self._timers if not h.cancelled]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [h for h in self._timers if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._timers.remove(handle)
            self.now = handle.when
            handle.callback(*handle.args)
        self.now = target
        self._timers = self.pending


@pytest.fixture
def fake_loop():
    return FakeLoop()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    reset_all_limiters()
    yield
    reset_all_limiters()
