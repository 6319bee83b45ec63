"""tmux operations for driving and observing Claude Code sessions."""

import shutil
import subprocess
from typing import Optional
import logging

logger = logging.getLogger(__name__)


class TmuxError(Exception):
    """A tmux command failed or tmux itself is unavailable."""

    def __init__(self, command: list[str], stderr: str = ""):
        self.command = command
        self.stderr = stderr.strip()
        super().__init__(self.stderr or f"tmux command failed: {' '.join(command)}")


class TmuxController:
    """Controls tmux sessions for Claude Code.

    Every call blocks until tmux returns. ``target_pane`` overrides the
    session name as the send/capture target (e.g. ``"claude:0.1"``).
    """

    # Enough Up presses to reach the top of any Claude Code menu
    MENU_RESET_PRESSES = 10

    def _run_tmux(self, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """Run a tmux command."""
        cmd = ["tmux"] + list(args)
        logger.debug(f"Running tmux command: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise TmuxError(cmd, "tmux not found") from e
        if check and result.returncode != 0:
            raise TmuxError(cmd, result.stderr)
        return result

    @staticmethod
    def _pane_target(session_name: str) -> str:
        """Active pane of exactly ``session_name`` (``=`` disables prefix matching)."""
        return f"={session_name}:"

    def is_available(self) -> bool:
        """Check if the tmux binary is on PATH."""
        return shutil.which("tmux") is not None

    def session_exists(self, session_name: str) -> bool:
        """Check if a tmux session exists."""
        try:
            result = self._run_tmux("has-session", "-t", f"={session_name}", check=False)
        except TmuxError:
            return False
        return result.returncode == 0

    def send_keys(self, session_name: str, text: str, target_pane: Optional[str] = None):
        """
        Type text into the session and submit it.

        The current input line is cleared first so the text is never appended
        to a half-typed draft. Text goes through ``-l --`` so it is sent
        literally even when it starts with ``-``.

        Raises:
            TmuxError: if any of the three tmux calls fails
        """
        target = target_pane or self._pane_target(session_name)
        self._run_tmux("send-keys", "-t", target, "C-u")
        self._run_tmux("send-keys", "-t", target, "-l", "--", text)
        self._run_tmux("send-keys", "-t", target, "Enter")
        logger.info(f"Sent input to {target}: {text[:50]}...")

    def capture_pane(self, session_name: str, lines: int = 50, target_pane: Optional[str] = None) -> str:
        """
        Capture recent output from a session's pane.

        Args:
            session_name: Session to capture from
            lines: Number of scrollback lines to include
            target_pane: Optional explicit pane target

        Returns:
            Captured text, top to bottom
        """
        target = target_pane or self._pane_target(session_name)
        result = self._run_tmux(
            "capture-pane",
            "-t", target,
            "-p",  # Print to stdout
            "-S", f"-{lines}",  # Start from N lines back
        )
        return result.stdout

    def send_named_key(self, session_name: str, key: str, target_pane: Optional[str] = None):
        """Send a single named key (e.g. 'Enter', 'Escape', 'C-c')."""
        target = target_pane or self._pane_target(session_name)
        self._run_tmux("send-keys", "-t", target, key)
        logger.debug(f"Sent key to {target}: {key}")

    def send_interrupt(self, session_name: str, target_pane: Optional[str] = None):
        self.send_named_key(session_name, "C-c", target_pane)

    def send_escape(self, session_name: str, target_pane: Optional[str] = None):
        self.send_named_key(session_name, "Escape", target_pane)

    def send_enter(self, session_name: str, target_pane: Optional[str] = None):
        self.send_named_key(session_name, "Enter", target_pane)

    def send_arrow_up(self, session_name: str, count: int, target_pane: Optional[str] = None):
        """Press Up ``count`` times, one tmux call per keystroke."""
        for _ in range(count):
            self.send_named_key(session_name, "Up", target_pane)

    def send_arrow_down(self, session_name: str, count: int, target_pane: Optional[str] = None):
        """Press Down ``count`` times, one tmux call per keystroke."""
        for _ in range(count):
            self.send_named_key(session_name, "Down", target_pane)

    def select_option(self, session_name: str, number: int, target_pane: Optional[str] = None):
        """
        Pick the numbered entry of the menu currently on screen.

        Navigates to the top of the menu first, then moves down to the
        1-based ``number`` and confirms.
        """
        self.send_arrow_up(session_name, self.MENU_RESET_PRESSES, target_pane)
        if number > 1:
            self.send_arrow_down(session_name, number - 1, target_pane)
        self.send_enter(session_name, target_pane)

    def rename_session(self, old_name: str, new_name: str):
        """Rename a tmux session. The registry must be renamed separately."""
        self._run_tmux("rename-session", "-t", f"={old_name}", new_name)
        logger.info(f"Renamed tmux session {old_name} -> {new_name}")

    def new_session_attached(self, session_name: str, command: str, working_dir: str) -> int:
        """
        Start a tmux session running ``command`` attached to this terminal.

        Blocks until the session ends or the user detaches.

        Returns:
            tmux exit status
        """
        cmd = ["tmux", "new-session", "-s", session_name, "-c", working_dir, command]
        logger.debug(f"Running tmux command: {' '.join(cmd)}")
        try:
            return subprocess.run(cmd).returncode
        except FileNotFoundError as e:
            raise TmuxError(cmd, "tmux not found") from e
