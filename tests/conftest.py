"""Shared pytest fixtures."""

from __future__ import annotations

import pendulum
import pytest

from modstamp.services.settings import Settings

from tests.helpers import FrozenClock, InMemoryHost


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(pendulum.datetime(2024, 1, 1, 15, 0, 0, tz="UTC"))


@pytest.fixture
def host() -> InMemoryHost:
    return InMemoryHost()


@pytest.fixture
def settings() -> Settings:
    return Settings(moment_format="YYYY-MM-DDTHH:mm", timeout=0.01)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> None:
    for name in (
        "MODSTAMP_PROPERTY",
        "MODSTAMP_CREATED_PROPERTY",
        "MODSTAMP_FORMAT",
        "MODSTAMP_DEBUG",
        "MODSTAMP_DEBUG_LOGGING",
        "MODSTAMP_HISTORY",
        "MODSTAMP_ONLY_EXISTING",
        "MODSTAMP_TIMEOUT",
        "MODSTAMP_POLL_INTERVAL",
        "MODSTAMP_SETTINGS_PATH",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("MODSTAMP_LOG_DIR", str(tmp_path_factory.mktemp("logs")))
