# tests/conftest.py

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from types import SimpleNamespace
from zoneinfo import ZoneInfo

import pytest

from task_companion.core.state import AppState
from task_companion.tasks.task_store import JsonDomainStore

from .fakes import FakeClock, FakeMessenger, FakeTransport

TOKYO = ZoneInfo("Asia/Tokyo")

# Thursday
NOW = datetime(2025, 3, 20, 9, 0, tzinfo=TOKYO)


@pytest.fixture()
def tz() -> ZoneInfo:
    return TOKYO


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the commands.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="tasks-test",
        # Paths (tmp per test run)
        data_dir=tmp_path,
        data_file_path=tmp_path / "data.json",
        # Domain
        timezone="Asia/Tokyo",
        tz=TOKYO,
        notify_hour=12,
        backup_enabled=True,
        # Forms
        date_lookahead_days=24,
        form_timeout_seconds=60.0,
        picker_timeout_seconds=60.0,
        text_form_timeout_seconds=60.0,
        page_size=25,
        panel_page_size=5,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> JsonDomainStore:
    return JsonDomainStore(settings.data_file_path, tz=TOKYO)


@pytest.fixture()
def state(settings: SimpleNamespace, store: JsonDomainStore) -> AppState:
    """
    AppState with a real JSON store and a frozen clock (NOW).
    """
    st = AppState(settings=settings, store=store)
    st.now = lambda: NOW  # type: ignore[method-assign]
    return st


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def messenger() -> FakeMessenger:
    return FakeMessenger()


@pytest.fixture()
def transport(clock: FakeClock) -> FakeTransport:
    return FakeTransport(clock=clock)
