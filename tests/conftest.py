"""Shared pytest fixtures for claude-tg tests."""

from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from src.config import AppConfig
from src.models import HookEvent
from src.session_registry import SessionRegistry
from src.tmux_controller import TmuxController

TEST_TOKEN = "123456789:" + "A" * 35


@pytest.fixture
def mock_tmux() -> MagicMock:
    """
    Mock TmuxController for testing without actual tmux sessions.

    Returns:
        MagicMock with common tmux methods configured
    """
    mock = MagicMock(spec=TmuxController)
    mock.session_exists.return_value = True
    mock.capture_pane.return_value = "Mock tmux output"
    mock.new_session_attached.return_value = 0
    return mock


@pytest.fixture
def alive_sessions() -> set[str]:
    """Names the fake liveness oracle reports as running."""
    return set()


@pytest.fixture
def sessions_file(tmp_path: Path) -> Path:
    return tmp_path / ".sessions.json"


@pytest.fixture
def registry(sessions_file: Path, alive_sessions: set[str]) -> SessionRegistry:
    """SessionRegistry backed by a temp file and a set-based liveness oracle."""
    return SessionRegistry(
        str(sessions_file),
        is_alive=lambda name: name in alive_sessions,
        clock=lambda: datetime(2024, 2, 14, 13, 52, 7),
    )


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """AppConfig rooted in a temp directory with a registered chat."""
    return AppConfig(bot_token=TEST_TOKEN, chat_id="42", root=tmp_path)


@pytest.fixture
def idle_event() -> HookEvent:
    return HookEvent(
        hook_event_name="Notification",
        notification_type="idle_prompt",
        cwd="/work/project",
        message="Claude is waiting for your input",
    )


@pytest.fixture
def permission_event() -> HookEvent:
    return HookEvent(
        hook_event_name="Notification",
        notification_type="permission_prompt",
        cwd="/work/project",
        message="Claude needs your permission to use Bash",
    )
