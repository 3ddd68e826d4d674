"""Tests for the client-side inactivity session manager

All timers run on the virtual-time FakeLoop from conftest, so a 30 minute
timeout is simulated instantly with fake_loop.advance().
"""

import asyncio
import json

import pytest

from services.client_storage import MemoryStorage
from services.session_manager import (
    LOGOUT_MANUAL,
    LOGOUT_TIMEOUT,
    SETTINGS_KEY,
    SessionManager,
    SessionSettings,
)


class BrokenStorage(MemoryStorage):
    def set_item(self, key, value):
        raise OSError("quota exceeded")


def make_manager(fake_loop, storage=None, warning_window_ms=5000, **settings):
    storage = storage if storage is not None else MemoryStorage()
    if settings:
        storage.set_item(SETTINGS_KEY, SessionSettings(**settings).to_json())
    return SessionManager(
        storage=storage,
        loop=fake_loop,
        clock=fake_loop.clock_ms,
        warning_window_ms=warning_window_ms,
    )


def init(manager, **callbacks):
    asyncio.run(manager.init(**callbacks))


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def test_missing_settings_are_defaulted_and_persisted(fake_loop):
    storage = MemoryStorage()
    manager = make_manager(fake_loop, storage=storage)

    settings = manager.load_settings()

    assert settings == SessionSettings()
    assert json.loads(storage.get_item(SETTINGS_KEY)) == {
        "sessionTimeoutMinutes": 30,
        "showWarnings": True,
        "autoLogoutOnClose": False,
        "pauseWhenHidden": True,
    }


def test_stored_settings_are_merged_over_defaults(fake_loop):
    storage = MemoryStorage()
    storage.set_item(SETTINGS_KEY, json.dumps({"sessionTimeoutMinutes": 15}))
    manager = make_manager(fake_loop, storage=storage)

    settings = manager.load_settings()

    assert settings.session_timeout_minutes == 15
    assert settings.show_warnings is True
    assert manager.session_timeout_ms == 15 * 60 * 1000


def test_legacy_timeout_key_is_understood(fake_loop):
    storage = MemoryStorage()
    storage.set_item(SETTINGS_KEY, json.dumps({"sessionTimeout": 45}))
    manager = make_manager(fake_loop, storage=storage)

    assert manager.load_settings().session_timeout_minutes == 45


@pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '{"sessionTimeoutMinutes": 0}', '{"sessionTimeoutMinutes": "soon"}'])
def test_unusable_stored_settings_fall_back_to_defaults(fake_loop, raw):
    storage = MemoryStorage()
    storage.set_item(SETTINGS_KEY, raw)
    manager = make_manager(fake_loop, storage=storage)

    assert manager.load_settings() == SessionSettings()


def test_storage_write_failure_is_not_fatal(fake_loop):
    manager = make_manager(fake_loop, storage=BrokenStorage())

    assert manager.load_settings() == SessionSettings()
    assert manager.save_settings(show_warnings=False).show_warnings is False


def test_save_settings_rejects_invalid_values(fake_loop):
    manager = make_manager(fake_loop)
    manager.load_settings()

    with pytest.raises(ValueError):
        manager.save_settings(session_timeout_minutes=-5)
    with pytest.raises(ValueError):
        manager.save_settings(not_a_setting=True)

    assert manager.settings == SessionSettings()


def test_save_settings_persists_camel_case_json(fake_loop):
    storage = MemoryStorage()
    manager = make_manager(fake_loop, storage=storage)
    manager.load_settings()

    manager.set_session_timeout(10)

    assert json.loads(storage.get_item(SETTINGS_KEY))["sessionTimeoutMinutes"] == 10


# ---------------------------------------------------------------------------
# Lifecycle and timers
# ---------------------------------------------------------------------------


def test_start_before_init_is_a_noop(fake_loop):
    manager = make_manager(fake_loop)

    assert manager.start_session() is False
    assert manager.is_running is False
    assert fake_loop.pending == []


def test_timer_is_dormant_after_init(fake_loop):
    events = []
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager, on_logout=events.append)

    fake_loop.advance(3600)

    assert events == []
    assert manager.is_running is False


def test_warning_then_logout_on_inactivity(fake_loop):
    events = []
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(
        manager,
        on_logout=lambda reason: events.append(("logout", reason, fake_loop.now)),
        on_warning=lambda remaining: events.append(("warning", remaining, fake_loop.now)),
    )

    assert manager.start_session() is True
    fake_loop.advance(54.9)
    assert events == []

    fake_loop.advance(0.2)
    assert events == [("warning", 5000, 55.0)]
    assert manager.is_warning_shown is True

    fake_loop.advance(10)
    assert events == [("warning", 5000, 55.0), ("logout", LOGOUT_TIMEOUT, 60.0)]
    assert manager.is_running is False
    assert manager.is_warning_shown is False


def test_no_warning_when_window_exceeds_timeout(fake_loop):
    events = []
    manager = make_manager(fake_loop, warning_window_ms=5 * 60 * 1000, session_timeout_minutes=1)
    init(manager, on_logout=events.append, on_warning=lambda ms: events.append("warning"))

    manager.start_session()
    fake_loop.advance(60)

    assert events == [LOGOUT_TIMEOUT]


def test_no_warning_when_warnings_disabled(fake_loop):
    warnings = []
    manager = make_manager(fake_loop, session_timeout_minutes=1, show_warnings=False)
    init(manager, on_warning=warnings.append)

    manager.start_session()
    fake_loop.advance(120)

    assert warnings == []


def test_start_session_twice_keeps_original_deadline(fake_loop):
    events = []
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager, on_logout=events.append)

    manager.start_session()
    fake_loop.advance(30)
    assert manager.start_session() is False

    fake_loop.advance(30)
    assert events == [LOGOUT_TIMEOUT]


def test_extend_session_restarts_countdown(fake_loop):
    events = []
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager, on_logout=lambda reason: events.append(fake_loop.now))

    manager.start_session()
    fake_loop.advance(50)
    manager.extend_session()
    assert manager.is_warning_shown is False

    fake_loop.advance(50)
    assert events == []
    fake_loop.advance(10)
    assert events == [110.0]


def test_extend_session_starts_a_dormant_timer(fake_loop):
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager)

    assert manager.extend_session() is True
    assert manager.is_running is True


def test_record_activity_does_not_rearm(fake_loop):
    events = []
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager, on_logout=events.append)

    manager.start_session()
    fake_loop.advance(45)
    manager.record_activity()
    assert manager.last_activity == 45000

    fake_loop.advance(15)
    assert events == [LOGOUT_TIMEOUT]


def test_second_init_only_replaces_callbacks(fake_loop):
    first, second = [], []
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager, on_logout=first.append)
    manager.start_session()

    fake_loop.advance(20)
    init(manager, on_logout=second.append)
    fake_loop.advance(40)

    assert first == []
    assert second == [LOGOUT_TIMEOUT]


def test_manual_logout_cancels_timers(fake_loop):
    events = []
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager, on_logout=events.append)

    manager.start_session()
    manager.logout()
    fake_loop.advance(600)

    assert events == [LOGOUT_MANUAL]
    assert fake_loop.pending == []


def test_destroy_cancels_everything(fake_loop):
    events = []
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager, on_logout=events.append)
    manager.start_session()

    manager.destroy()
    fake_loop.advance(600)

    assert events == []
    assert manager.is_initialized is False


def test_invalid_timeout_does_not_arm_timers(fake_loop):
    manager = make_manager(fake_loop)
    init(manager)
    manager.settings = SessionSettings.model_construct(
        session_timeout_minutes=0,
        show_warnings=True,
        auto_logout_on_close=False,
        pause_when_hidden=True,
    )

    assert manager.start_session() is False
    assert fake_loop.pending == []


def test_saving_settings_rearms_running_timer(fake_loop):
    events = []
    manager = make_manager(fake_loop, session_timeout_minutes=10)
    init(manager, on_logout=lambda reason: events.append(fake_loop.now))
    manager.start_session()

    fake_loop.advance(30)
    manager.set_session_timeout(1)
    fake_loop.advance(60)

    assert events == [90.0]


def test_saving_settings_after_init_arms_timer(fake_loop):
    events = []
    manager = make_manager(fake_loop)
    init(manager, on_logout=events.append)

    manager.set_session_timeout(1)
    assert manager.is_running is True

    fake_loop.advance(60)
    assert events == [LOGOUT_TIMEOUT]


def test_saving_settings_before_init_does_not_arm_timer(fake_loop):
    manager = make_manager(fake_loop)
    manager.load_settings()

    manager.set_session_timeout(5)

    assert manager.is_running is False


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


def test_hidden_tab_pauses_and_visible_tab_restarts(fake_loop):
    logouts, resumes = [], []
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager, on_logout=logouts.append, on_activity_resume=lambda: resumes.append(fake_loop.now))
    manager.start_session()

    fake_loop.advance(30)
    manager.set_tab_visible(False)
    fake_loop.advance(300)
    assert logouts == []
    assert manager.is_running is False

    manager.set_tab_visible(True)
    assert resumes == [330.0]

    fake_loop.advance(59)
    assert logouts == []
    fake_loop.advance(1)
    assert logouts == [LOGOUT_TIMEOUT]

    fake_loop.advance(600)
    assert logouts == [LOGOUT_TIMEOUT]


def test_visibility_change_without_running_timer_does_not_start_one(fake_loop):
    resumes = []
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager, on_activity_resume=lambda: resumes.append(True))

    manager.set_tab_visible(False)
    manager.set_tab_visible(True)

    assert manager.is_running is False
    assert resumes == []


def test_hidden_tab_keeps_counting_when_pausing_disabled(fake_loop):
    logouts = []
    manager = make_manager(fake_loop, session_timeout_minutes=1, pause_when_hidden=False)
    init(manager, on_logout=logouts.append)
    manager.start_session()

    manager.set_tab_visible(False)
    fake_loop.advance(60)

    assert logouts == [LOGOUT_TIMEOUT]


# ---------------------------------------------------------------------------
# Introspection
# ---------------------------------------------------------------------------


def test_session_info_reports_remaining_time(fake_loop):
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager)
    assert manager.get_session_info()["time_until_expiry"] == 0

    manager.start_session()
    fake_loop.advance(20)
    info = manager.get_session_info()

    assert info["is_active"] is True
    assert info["time_until_expiry"] == 40000
    assert info["settings"]["session_timeout_minutes"] == 1


def test_session_info_counts_from_last_activity(fake_loop):
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    init(manager)
    manager.start_session()

    fake_loop.advance(20)
    manager.record_activity()

    assert manager.get_session_info()["time_until_expiry"] == 60000


def test_is_session_valid(fake_loop):
    manager = make_manager(fake_loop, session_timeout_minutes=1)
    assert manager.is_session_valid() is False

    init(manager)
    assert manager.is_session_valid() is True

    fake_loop.advance(61)
    assert manager.is_session_valid() is False


def test_debug_settings_snapshot(fake_loop):
    manager = make_manager(fake_loop, session_timeout_minutes=3)
    init(manager)

    snapshot = manager.debug_settings()

    assert snapshot["session_timeout_ms"] == 180000
    assert snapshot["is_initialized"] is True
    assert json.loads(snapshot["stored_settings"])["sessionTimeoutMinutes"] == 3
