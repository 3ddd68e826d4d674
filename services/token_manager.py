# snapcaption_backend/services/token_manager.py
import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from config import logger
from services.client_storage import KeyValueStorage, MemoryStorage
from services.session_manager import epoch_ms

TOKEN_EXPIRY_KEY = "tokenExpiry"
CHECK_INTERVAL_SECONDS = 60


def parse_expiry_ms(value: str) -> Optional[int]:
    """ISO-8601 timestamp to epoch milliseconds; None when unparseable."""
    try:
        expires_at = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return int(expires_at.timestamp() * 1000)


class TokenManager:
    """Polls the stored token expiry and reports once the token has lapsed."""

    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        loop: Any = None,
        clock: Callable[[], int] = epoch_ms,
        check_interval_seconds: float = CHECK_INTERVAL_SECONDS,
    ):
        self.storage = storage if storage is not None else MemoryStorage()
        self.check_interval_seconds = check_interval_seconds
        self.on_token_expired: Optional[Callable[[], Any]] = None
        self._loop = loop
        self._clock = clock
        self._handle = None

    @property
    def is_active(self) -> bool:
        return self._handle is not None

    def init(self, on_token_expired: Optional[Callable[[], Any]] = None) -> bool:
        if self.is_active:
            logger.info("Token manager already initialized, skipping...")
            return False

        self.on_token_expired = on_token_expired
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._schedule()
        logger.info(f"Token manager initialized - checking local expiry every {self.check_interval_seconds:g}s")
        return True

    def _schedule(self) -> None:
        self._handle = self._loop.call_later(self.check_interval_seconds, self._tick)

    def _tick(self) -> None:
        self._schedule()
        self.check_local_token_expiry()

    def check_local_token_expiry(self) -> bool:
        raw = self.storage.get_item(TOKEN_EXPIRY_KEY)
        if not raw:
            logger.debug("No token expiry found in client storage")
            return False

        expiry_ms = parse_expiry_ms(raw)
        if expiry_ms is None:
            logger.warning(f"Stored token expiry is not a valid timestamp: {raw!r}")
            return False

        if self._clock() >= expiry_ms:
            logger.info("Token expired based on local expiry time - logging out user")
            self.handle_token_expiry()
            return True
        return False

    def handle_token_expiry(self) -> None:
        self.storage.remove_item(TOKEN_EXPIRY_KEY)
        if self.on_token_expired:
            self.on_token_expired()

    def destroy(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        logger.info("Token manager destroyed")

    def get_status(self) -> Dict[str, Any]:
        return {
            "is_active": self.is_active,
            "check_interval_ms": int(self.check_interval_seconds * 1000),
            "next_check_in": f"< {self.check_interval_seconds:g}s" if self.is_active else "Not running",
        }
