# snapcaption_backend/services/rate_limiter.py
import time
from typing import Callable, Dict, List, Tuple

from fastapi import HTTPException, Request

from config import (
    API_RATE_LIMIT,
    AUTH_RATE_LIMIT,
    POST_RATE_LIMIT,
    USER_STATUS_RATE_LIMIT,
    logger,
)


class FixedWindowRateLimiter:
    """Per-client-IP request counter over fixed time windows.

    Instances are used as FastAPI dependencies.
    """

    def __init__(
        self,
        name: str,
        max_requests: int,
        window_seconds: int,
        message: str,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.message = message
        self._clock = clock
        self._windows: Dict[str, Tuple[float, int]] = {}
        self._last_sweep = clock()

    def hit(self, client_ip: str) -> bool:
        """Counts a request; returns False once the client is over its limit."""
        now = self._clock()
        if now - self._last_sweep >= self.window_seconds:
            self._sweep(now)
        window_start, count = self._windows.get(client_ip, (0.0, 0))
        if now - window_start >= self.window_seconds:
            window_start, count = now, 0
        count += 1
        self._windows[client_ip] = (window_start, count)
        return count <= self.max_requests

    def _sweep(self, now: float) -> None:
        # drop clients whose window has closed
        expired = [
            ip for ip, (window_start, _) in self._windows.items()
            if now - window_start >= self.window_seconds
        ]
        for ip in expired:
            del self._windows[ip]
        self._last_sweep = now

    @property
    def tracked_clients(self) -> int:
        return len(self._windows)

    def reset(self) -> None:
        self._windows.clear()
        self._last_sweep = self._clock()

    async def __call__(self, request: Request) -> None:
        client_ip = request.client.host if request.client else "unknown"
        if not self.hit(client_ip):
            logger.warning(f"[RATE LIMIT] {self.name} exceeded | ip={client_ip} | path={request.url.path}")
            raise HTTPException(status_code=429, detail=self.message)


api_limiter = FixedWindowRateLimiter(
    "api", *API_RATE_LIMIT,
    message="Too many requests from this IP, please try again later.",
)
auth_limiter = FixedWindowRateLimiter(
    "auth", *AUTH_RATE_LIMIT,
    message="Too many authentication attempts, please try again later.",
)
user_status_limiter = FixedWindowRateLimiter(
    "user_status", *USER_STATUS_RATE_LIMIT,
    message="Too many requests, please try again later.",
)
post_limiter = FixedWindowRateLimiter(
    "post", *POST_RATE_LIMIT,
    message="Too many posts created, please wait before creating another.",
)

ALL_LIMITERS: List[FixedWindowRateLimiter] = [
    api_limiter, auth_limiter, user_status_limiter, post_limiter
]


def reset_all_limiters() -> None:
    for limiter in ALL_LIMITERS:
        limiter.reset()
