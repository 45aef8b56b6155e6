"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from hardbanlab.domain.store import DomainStore
from hardbanlab.events import EventBus
from tests.helpers import FAST_SAVE_CONFIG, FakeGateway, make_snapshot


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep developer credentials and log directories out of the tests."""

    for name in list(os.environ):
        if name.startswith("HARDBANLAB_") or name == "API_KEY":
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("HARDBANLAB_LOG_DIR", str(tmp_path / "logs"))


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway(make_snapshot())


@pytest.fixture
def store(gateway: FakeGateway, event_bus: EventBus) -> DomainStore:
    return DomainStore(gateway, event_bus, save_config=FAST_SAVE_CONFIG)
