"""
Pytest configuration and shared fixtures for testing.
Provides compressed-timer settings, the in-memory broker stack and
collaborator mocks.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.orm import sessionmaker

# Set testing environment before importing the package
os.environ["ENVIRONMENT"] = "testing"
os.environ["PERSISTENCE_ENABLED"] = "false"
os.environ["ENABLE_TELEMETRY"] = "false"
os.environ["DATABASE_URL"] = "sqlite://"

from livechat.config import Settings
from livechat.database import Base, build_engine
from livechat.services import (
    ConversationRecorder,
    SessionBroker,
    SideEffectOutbox,
    SqlConversationRecorder,
    TimeoutSweeper,
)
from livechat.session import InMemorySessionStore, LiveSession
from livechat.streaming import Broadcaster, EventStream

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


# ===========================
# Settings Fixtures
# ===========================

@pytest.fixture
def test_settings() -> Settings:
    """
    Settings for tests: default timers, no persistence, no telemetry,
    no delay before the admin snapshot.
    """
    return Settings(
        environment="testing",
        debug=True,
        persistence_enabled=False,
        database_url="sqlite://",
        enable_telemetry=False,
        rate_limit_enabled=False,
        push_gateway_url=None,
        initial_data_delay_seconds=0.0,
        outbox_workers=2,
    )


@pytest.fixture
def settings_override(test_settings: Settings, monkeypatch):
    """
    Override settings for individual tests.
    Usage: settings_override({"transfer_resets_claim_timeout": True})
    """
    def _override(overrides: Dict[str, Any]) -> Settings:
        for key, value in overrides.items():
            monkeypatch.setattr(test_settings, key, value)
        return test_settings

    return _override


@pytest.fixture
def t0() -> datetime:
    """Fixed clock origin for deterministic timer tests."""
    return T0


# ===========================
# Broker Stack Fixtures
# ===========================

@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def broadcaster() -> Broadcaster:
    return Broadcaster(max_queue_size=64)


@pytest.fixture
async def outbox():
    box = SideEffectOutbox(num_workers=2, max_size=100)
    await box.start()
    yield box
    await box.stop(timeout=1.0)


@pytest.fixture
def mock_recorder():
    """Recorder double; every operation is an AsyncMock."""
    recorder = AsyncMock(spec=ConversationRecorder)
    recorder.get_agent_name.return_value = None
    recorder.list_push_tokens.return_value = []
    return recorder


@pytest.fixture
def broker(store, broadcaster, outbox, test_settings, mock_recorder) -> SessionBroker:
    return SessionBroker(store, broadcaster, outbox, test_settings, recorder=mock_recorder)


@pytest.fixture
def sweeper(store, broadcaster, outbox, test_settings, mock_recorder) -> TimeoutSweeper:
    return TimeoutSweeper(store, broadcaster, test_settings, outbox=outbox, recorder=mock_recorder)


@pytest.fixture
def make_session(t0):
    """Factory for waiting sessions created at ``t0``."""
    def _make(session_id: str = "s-1", **kwargs) -> LiveSession:
        created = kwargs.pop("created_at", t0)
        defaults = dict(
            id=session_id,
            visitor_name="Dana",
            visitor_email="dana@example.com",
            requested_role="support",
            created_at=created,
            last_activity=created,
            timeout_at=created + timedelta(seconds=120),
        )
        defaults.update(kwargs)
        return LiveSession(**defaults)

    return _make


# ===========================
# Database Fixtures
# ===========================

@pytest.fixture
def test_db_engine():
    """In-memory SQLite engine shared by every connection (StaticPool)."""
    from livechat.models import conversation  # noqa: F401

    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sql_recorder(test_db_engine) -> SqlConversationRecorder:
    return SqlConversationRecorder(
        sessionmaker(autocommit=False, autoflush=False, bind=test_db_engine)
    )


# ===========================
# Stream Helpers
# ===========================

async def drain(stream: EventStream) -> List[Dict[str, Any]]:
    """Every event currently buffered in ``stream`` (end marker excluded)."""
    events = []
    while stream.pending():
        event = await stream.get()
        if event is None:
            break
        events.append(event)
    return events


def of_type(events: List[Dict[str, Any]], event_type: Optional[str]) -> List[Dict[str, Any]]:
    return [e for e in events if e.get("type") == event_type]


# ===========================
# Pytest Configuration
# ===========================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)
