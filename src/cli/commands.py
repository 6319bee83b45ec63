"""Launcher command implementations for claude-tg."""

import logging
import os
import re
import shlex
import shutil
import signal
import subprocess
import sys
from pathlib import Path
from typing import Optional

from ..config import AppConfig
from ..session_registry import SessionRegistry
from ..tmux_controller import TmuxController, TmuxError

logger = logging.getLogger(__name__)

PID_FILE = ".bot.pid"
BOT_LOG = "bot.log"


def validate_session_name(name: str) -> tuple[bool, str]:
    """
    Validate a session name for use as a tmux session and a chat argument.

    Returns:
        Tuple of (is_valid, error_message)
        If valid, error_message is empty string
    """
    if not name:
        return False, "Name cannot be empty"

    if not re.match(r'^[a-zA-Z0-9][a-zA-Z0-9-]*$', name):
        return False, f'Invalid session name: "{name}". Use only letters, numbers, and hyphens.'

    return True, ""


def check_prerequisites() -> Optional[str]:
    """Error message if tmux or claude is missing from PATH, else None."""
    if shutil.which("tmux") is None:
        hint = "brew install tmux" if sys.platform == "darwin" else "sudo apt install tmux"
        return f"tmux is required but not installed. Install it with: {hint}"
    if shutil.which("claude") is None:
        return "claude CLI is required but not found in PATH."
    return None


def _read_pid(pid_path: Path) -> Optional[int]:
    try:
        return int(pid_path.read_text().strip())
    except (OSError, ValueError):
        return None


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def start_bot(config: AppConfig) -> int:
    """
    Start the relay bot in the background unless it is already running.

    Returns:
        PID of the running bot
    """
    pid_path = config.root / PID_FILE
    existing = _read_pid(pid_path)
    if existing and _pid_alive(existing):
        return existing
    pid_path.unlink(missing_ok=True)

    logs_dir = config.logs_path
    logs_dir.mkdir(parents=True, exist_ok=True)
    with open(logs_dir / BOT_LOG, "a") as log_file:
        proc = subprocess.Popen(
            [sys.executable, "-m", "src.main"],
            cwd=str(config.root),
            stdin=subprocess.DEVNULL,
            stdout=log_file,
            stderr=log_file,
            start_new_session=True,
        )

    pid_path.write_text(str(proc.pid))
    logger.info(f"bot started (pid {proc.pid})")
    print(f"Bot started (pid {proc.pid})")
    return proc.pid


def stop_bot_if_idle(config: AppConfig, registry: SessionRegistry) -> bool:
    """
    Stop the relay bot when no sessions remain.

    Returns:
        True if a stop was attempted
    """
    if registry.prune().sessions:
        return False

    pid_path = config.root / PID_FILE
    pid = _read_pid(pid_path)
    if pid is None:
        return False

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pass  # already gone
    pid_path.unlink(missing_ok=True)
    logger.info("bot stopped (no active sessions)")
    print("Bot stopped (no active sessions).")
    return True


def build_claude_command(claude_args: list[str]) -> str:
    """Shell command line that runs claude with the pass-through arguments."""
    return shlex.join(["claude", *claude_args])


def cmd_launch(
    config: AppConfig,
    custom_name: Optional[str],
    claude_args: list[str],
    tmux: Optional[TmuxController] = None,
    registry: Optional[SessionRegistry] = None,
) -> int:
    """
    Run Claude Code in a new registered tmux session and wait for it to end.

    Exit codes:
        0: Session ran and ended
        1: Invalid name, name in use, or missing prerequisites
    """
    tmux = tmux or TmuxController()
    registry = registry or SessionRegistry(str(config.sessions_path), is_alive=tmux.session_exists)

    if custom_name:
        valid, error = validate_session_name(custom_name)
        if not valid:
            print(error, file=sys.stderr)
            return 1
        if custom_name in registry.load().sessions and tmux.session_exists(custom_name):
            print(
                f'Session "{custom_name}" already exists. '
                "Pick a different name or use /rename from Telegram.",
                file=sys.stderr,
            )
            return 1

    problem = check_prerequisites()
    if problem:
        print(problem, file=sys.stderr)
        return 1

    start_bot(config)

    session_name = custom_name or registry.next_name()
    cwd = os.getcwd()
    registry.register(session_name, cwd)
    logger.info(f"[{session_name}] session started")
    print(f"Starting Claude Code in session: {session_name}")

    try:
        tmux.new_session_attached(session_name, build_claude_command(claude_args), cwd)
    except TmuxError as e:
        logger.error(f"[{session_name}] tmux session failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
    finally:
        logger.info(f"[{session_name}] session stopped")
        registry.unregister(session_name)
        stop_bot_if_idle(config, registry)

    return 0
