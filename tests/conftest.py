"""Shared pytest fixtures for Codex limits tests."""

from datetime import datetime
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from codex_limits.dispatcher import NotificationDispatcher
from codex_limits.gateway_client import GatewayClient
from codex_limits.models import PollCache
from codex_limits.server import create_app
from codex_limits.settings_store import SettingsStore

USAGE_TEXT = "Usage: 5h 42% left 3h 10m · Day 15% left 6h 0m"


def _status_json(text: str = USAGE_TEXT) -> dict:
    return {"ok": True, "result": {"content": [{"type": "text", "text": text}]}}


@pytest.fixture
def make_status_json():
    """Factory for session_status tool results carrying one text block."""
    return _status_json


@pytest.fixture
def temp_state_file(tmp_path) -> Path:
    """Path for a settings document that doesn't exist yet."""
    return tmp_path / "state.local.json"


@pytest.fixture
def settings_store(temp_state_file: Path) -> SettingsStore:
    """SettingsStore with a 1 minute default interval backed by a temp file."""
    return SettingsStore(state_file=str(temp_state_file), default_interval=1)


@pytest.fixture
def mock_client() -> MagicMock:
    """
    Mock GatewayClient for testing without a gateway.

    Returns:
        MagicMock with fetch_status/send_message as AsyncMocks
    """
    mock = MagicMock(spec=GatewayClient)
    mock.channel = "telegram"
    mock.auth_configured = True
    mock.fetch_status = AsyncMock(return_value=_status_json())
    mock.send_message = AsyncMock(return_value={"ok": True})
    return mock


@pytest.fixture
def noon() -> datetime:
    return datetime(2024, 1, 15, 12, 0, 0)


@pytest.fixture
def dispatcher(mock_client: MagicMock, settings_store: SettingsStore, noon: datetime) -> NotificationDispatcher:
    """Dispatcher wired to the mock client with a fixed clock at noon."""
    return NotificationDispatcher(
        client=mock_client,
        settings=settings_store,
        cache=PollCache(),
        clock=lambda: noon,
    )


@pytest.fixture
def mock_scheduler() -> MagicMock:
    mock = MagicMock()
    mock.min_wait_seconds = 15
    mock.state.value = "scheduled"
    return mock


@pytest.fixture
def test_client(settings_store, dispatcher, mock_scheduler) -> TestClient:
    """FastAPI TestClient with real store/dispatcher and a mock scheduler."""
    app = create_app(
        settings=settings_store,
        dispatcher=dispatcher,
        scheduler=mock_scheduler,
        config={},
    )
    return TestClient(app)
