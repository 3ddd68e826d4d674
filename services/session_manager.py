# snapcaption_backend/services/session_manager.py
"""
Client-side inactivity timeout for a logged-in user.

The server token has its own fixed one-hour expiry; this manager decides
when the client should log out on its own because the user went idle,
shows a warning shortly before that happens, and can pause while the
application window is hidden.

Timers are armed through an injected loop (anything providing
``call_later(seconds, callback)`` with cancellable handles, e.g. an asyncio
event loop) and timestamps come from an injected clock returning epoch
milliseconds, so tests can drive the manager with virtual time.

The countdown is dormant after ``init`` until ``start_session``,
``extend_session`` or a settings change arms it. Plain activity
(``record_activity``) refreshes ``last_activity`` without re-arming anything.
"""
import asyncio
import json
import time
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from config import logger
from services.client_storage import KeyValueStorage, MemoryStorage

SETTINGS_KEY = "session_settings"
MS_PER_MINUTE = 60 * 1000
DEFAULT_WARNING_WINDOW_MS = 5 * MS_PER_MINUTE

LOGOUT_TIMEOUT = "timeout"
LOGOUT_MANUAL = "manual"


def epoch_ms() -> int:
    return int(time.time() * 1000)


class SessionSettings(BaseModel):
    """User-tunable session behaviour, stored as camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    session_timeout_minutes: int = Field(30, gt=0)
    show_warnings: bool = True
    auto_logout_on_close: bool = False
    pause_when_hidden: bool = True

    @property
    def timeout_ms(self) -> int:
        return self.session_timeout_minutes * MS_PER_MINUTE

    def merged(self, **changes: Any) -> "SessionSettings":
        """Returns a copy with `changes` applied; raises ValueError on unknown or invalid fields."""
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown session settings: {sorted(unknown)}")
        return type(self).model_validate({**self.model_dump(), **changes})

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str) -> "SessionSettings":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("Stored session settings must be a JSON object")
        # older clients stored the timeout as "sessionTimeout"
        if "sessionTimeout" in data and "sessionTimeoutMinutes" not in data:
            data["sessionTimeoutMinutes"] = data.pop("sessionTimeout")
        return cls.model_validate({**cls().model_dump(by_alias=True), **data})


class SessionManager:
    def __init__(
        self,
        storage: Optional[KeyValueStorage] = None,
        loop: Any = None,
        clock: Callable[[], int] = epoch_ms,
        warning_window_ms: int = DEFAULT_WARNING_WINDOW_MS,
    ):
        self.storage = storage if storage is not None else MemoryStorage()
        self.warning_window_ms = warning_window_ms
        self._loop = loop
        self._clock = clock

        self.settings = SessionSettings()
        self._settings_loaded = False

        now = clock()
        self.last_activity = now
        self.session_start = now
        self.is_warning_shown = False
        self.is_tab_visible = True
        self.is_initialized = False

        self.on_logout: Optional[Callable[[str], Any]] = None
        self.on_warning: Optional[Callable[[int], Any]] = None
        self.on_activity_resume: Optional[Callable[[], Any]] = None

        self._logout_handle = None
        self._warning_handle = None
        self._paused = False

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    @property
    def session_timeout_ms(self) -> Optional[int]:
        """Timeout in milliseconds, or None until settings have been loaded."""
        return self.settings.timeout_ms if self._settings_loaded else None

    def load_settings(self) -> SessionSettings:
        """Reads stored settings; absent settings are written back as defaults."""
        try:
            raw = self.storage.get_item(SETTINGS_KEY)
        except Exception as e:
            logger.warning(f"Session settings storage unavailable, using defaults: {e}")
            raw = None

        if raw is None:
            self.settings = SessionSettings()
            logger.info(f"No saved session settings found, using defaults: {self.settings}")
            self._persist_settings()
        else:
            try:
                self.settings = SessionSettings.from_json(raw)
                logger.info(f"Loaded session settings: {self.settings}")
            except ValueError as e:
                logger.error(f"Failed to parse session settings, using defaults: {e}")
                self.settings = SessionSettings()

        self._settings_loaded = True
        return self.settings

    def _persist_settings(self) -> None:
        try:
            self.storage.set_item(SETTINGS_KEY, self.settings.to_json())
        except Exception as e:
            logger.warning(f"Failed to save session settings: {e}")

    def save_settings(self, **changes: Any) -> SessionSettings:
        """
        Merges `changes` into the current settings and persists them.

        Once initialized, the countdown is re-armed with the new timeout.
        Invalid values raise ValueError and leave the settings untouched.
        """
        self.settings = self.settings.merged(**changes)
        self._settings_loaded = True
        self._persist_settings()
        logger.info(f"Session settings updated: {self.settings}")

        if self.is_initialized:
            self.reset_timer()
        return self.settings

    def set_session_timeout(self, minutes: int) -> SessionSettings:
        logger.info(f"Manual session timeout change from {self.settings.session_timeout_minutes} to {minutes} minutes")
        return self.save_settings(session_timeout_minutes=minutes)

    def reload_settings(self) -> SessionSettings:
        self.load_settings()
        if self.is_initialized:
            self.reset_timer()
        logger.info(f"Settings reloaded - timeout: {self.settings.session_timeout_minutes} minutes")
        return self.settings

    def debug_settings(self) -> Dict[str, Any]:
        try:
            stored = self.storage.get_item(SETTINGS_KEY)
        except Exception as e:
            stored = f"<unavailable: {e}>"

        snapshot = {
            "settings": self.settings.model_dump(),
            "session_timeout_ms": self.session_timeout_ms,
            "stored_settings": stored,
            "is_initialized": self.is_initialized,
            "time_until_expiry": self.get_session_info()["time_until_expiry"],
        }
        logger.info(f"Session manager debug: {snapshot}")
        return snapshot

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(
        self,
        on_logout: Optional[Callable[[str], Any]] = None,
        on_warning: Optional[Callable[[int], Any]] = None,
        on_activity_resume: Optional[Callable[[], Any]] = None,
    ) -> None:
        """
        Loads settings and marks the manager ready.

        Calling it again only swaps in the given callbacks; running timers
        are left alone.
        """
        if self.is_initialized:
            logger.info("Session manager already initialized, updating callbacks only")
            self.on_logout = on_logout or self.on_logout
            self.on_warning = on_warning or self.on_warning
            self.on_activity_resume = on_activity_resume or self.on_activity_resume
            return

        self.on_logout = on_logout
        self.on_warning = on_warning
        self.on_activity_resume = on_activity_resume

        if not self._settings_loaded:
            await asyncio.to_thread(self.load_settings)

        now = self._clock()
        self.session_start = now
        self.last_activity = now
        self.is_initialized = True
        logger.info(
            f"Session manager initialized - timeout {self.settings.session_timeout_minutes} minutes, "
            "timer will start on start_session() or extend_session()"
        )

    def destroy(self) -> None:
        self._clear_timers()
        self._paused = False
        self.is_initialized = False
        logger.info("Session manager destroyed")

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._logout_handle is not None

    def _get_loop(self):
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _clear_timers(self) -> None:
        if self._logout_handle is not None:
            self._logout_handle.cancel()
            self._logout_handle = None
        if self._warning_handle is not None:
            self._warning_handle.cancel()
            self._warning_handle = None

    def _start_timer(self) -> bool:
        self._clear_timers()

        timeout = self.session_timeout_ms
        if not timeout or timeout <= 0:
            logger.warning(f"Invalid session timeout: {timeout}")
            return False

        loop = self._get_loop()
        if self.settings.show_warnings and self.warning_window_ms < timeout:
            warning_delay = timeout - self.warning_window_ms
            self._warning_handle = loop.call_later(warning_delay / 1000, self._show_warning)

        self._logout_handle = loop.call_later(timeout / 1000, self._handle_timeout)
        self._paused = False
        logger.info(f"Session timer started - expires in {timeout / MS_PER_MINUTE:g} minutes")
        return True

    def reset_timer(self) -> bool:
        """Re-arms the countdown unless the window is hidden and pausing is enabled."""
        if self.is_tab_visible or not self.settings.pause_when_hidden:
            return self._start_timer()
        return False

    def _show_warning(self) -> None:
        self._warning_handle = None
        self.is_warning_shown = True
        if self.on_warning:
            self.on_warning(self.warning_window_ms)

    def hide_warning(self) -> None:
        self.is_warning_shown = False

    def _handle_timeout(self) -> None:
        logger.info("Session timeout - logging out user")
        self._logout_handle = None
        self._clear_timers()
        self.is_warning_shown = False
        if self.on_logout:
            self.on_logout(LOGOUT_TIMEOUT)

    # ------------------------------------------------------------------
    # Session actions
    # ------------------------------------------------------------------

    def start_session(self) -> bool:
        if not self.is_initialized:
            logger.warning("Cannot start session - not initialized yet")
            return False
        if self.is_running:
            logger.info("Session already running")
            return False

        self.last_activity = self._clock()
        return self._start_timer()

    def extend_session(self) -> bool:
        """Restarts the countdown from now, starting it if it was not running."""
        self.last_activity = self._clock()
        self.hide_warning()

        if not self.is_running:
            return self._start_timer()
        return self.reset_timer()

    def logout(self) -> None:
        self._clear_timers()
        self._paused = False
        self.is_warning_shown = False
        if self.on_logout:
            self.on_logout(LOGOUT_MANUAL)

    def record_activity(self) -> None:
        """Click/keypress equivalent: refreshes last_activity, leaves timers alone."""
        self.last_activity = self._clock()

    update_last_activity = record_activity

    def set_tab_visible(self, visible: bool) -> None:
        """
        Window visibility change. With pause_when_hidden, hiding stops a running
        countdown and showing the window again restarts it with the full timeout.
        """
        was_visible = self.is_tab_visible
        self.is_tab_visible = visible

        if not self.is_initialized or not self.settings.pause_when_hidden or visible == was_visible:
            return

        if not visible:
            if self.is_running:
                self._clear_timers()
                self._paused = True
                logger.info("Tab hidden - session timer paused")
        elif self._paused:
            self._paused = False
            self.reset_timer()
            logger.info("Tab visible - session timer resumed")
            if self.on_activity_resume:
                self.on_activity_resume()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_session_info(self) -> Dict[str, Any]:
        now = self._clock()
        time_until_expiry = 0
        if self.is_running:
            time_until_expiry = max(0, self.last_activity + (self.session_timeout_ms or 0) - now)

        return {
            "last_activity": self.last_activity,
            "time_until_expiry": time_until_expiry,
            "is_warning_shown": self.is_warning_shown,
            "is_active": self.is_running,
            "settings": self.settings.model_dump(),
        }

    def is_session_valid(self) -> bool:
        timeout = self.session_timeout_ms
        if not timeout:
            return False
        return self._clock() - self.last_activity < timeout
