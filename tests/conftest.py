"""Shared pytest fixtures for design-sync tests."""

import pytest
from dotenv import load_dotenv

from design_sync.config_schema import SyncConfig
from design_sync.core.bus import EventBus
from design_sync.core.context import SyncContext
from design_sync.sync.engine import SyncEngine

load_dotenv()


@pytest.fixture(autouse=True)
def isolated_config_env(monkeypatch):
    """Keep the developer's DESIGN_SYNC_* / LOG_* settings out of tests."""
    for name in (
        "DESIGN_SYNC_CONFIG",
        "DESIGN_SYNC_MODE",
        "DESIGN_SYNC_CONFLICT_STRATEGY",
        "DESIGN_SYNC_LANGUAGE",
        "LOG_LEVEL",
        "LOG_FILE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def bus():
    """A fresh event bus."""
    return EventBus()


@pytest.fixture
def context(bus):
    """A session context around the ``bus`` fixture."""
    return SyncContext(bus=bus, session_id="test-session")


@pytest.fixture
def recorder(bus):
    """Factory fixture collecting payloads published for an event name.

    ``recorder("source:updated")`` subscribes and returns the list the
    payloads are appended to.
    """

    def _record(event_name):
        received = []
        bus.subscribe(event_name, received.append)
        return received

    return _record


@pytest.fixture
def engine(context):
    """A sync engine with the default config (automatic, preferTree, jsx)."""
    sync_engine = SyncEngine(context, config=SyncConfig())
    yield sync_engine
    sync_engine.close()
