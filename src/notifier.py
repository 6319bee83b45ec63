"""Lifecycle hook handler: turn one Claude Code Notification event into a Telegram alert.

Invoked once per event by Claude Code with the hook payload on stdin. The
process always exits 0 because a failing hook is treated as fatal by the
interactive session; problems are logged instead.
"""

import json
import logging
import os
import select
import sys
import time
from typing import Optional

from .config import AppConfig, ConfigError, configure_logging, load_config
from .formatter import format_notification
from .models import HookEvent, NotificationKind
from .notification_gate import NotificationGate
from .screen_parser import extract_prompt_draft, strip_ansi
from .session_registry import SessionRegistry
from .telegram_client import TelegramAPIError, TelegramClient
from .tmux_controller import TmuxController, TmuxError
from .transcript import get_last_assistant_message

logger = logging.getLogger(__name__)

STDIN_TIMEOUT_SECONDS = 5
CAPTURE_LINES = 50


def read_stdin(timeout: float = STDIN_TIMEOUT_SECONDS, stream=None) -> str:
    """
    Read stdin until EOF or until ``timeout`` seconds have passed.

    Whatever arrived before the deadline is returned.
    """
    stream = stream or sys.stdin
    fd = stream.fileno()
    deadline = time.monotonic() + timeout
    chunks: list[bytes] = []

    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning("Timed out reading hook input, using partial data")
            break
        ready, _, _ = select.select([fd], [], [], remaining)
        if not ready:
            continue
        chunk = os.read(fd, 65536)
        if not chunk:
            break
        chunks.append(chunk)

    return b"".join(chunks).decode("utf-8", errors="replace")


def parse_hook_event(raw: str) -> Optional[HookEvent]:
    """Parse the hook payload, or None if it is not a JSON object."""
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return HookEvent.from_dict(data)


class HookNotifier:
    """Resolve, throttle, format and send one hook event."""

    def __init__(
        self,
        config: AppConfig,
        tmux: Optional[TmuxController] = None,
        registry: Optional[SessionRegistry] = None,
        gate: Optional[NotificationGate] = None,
        client: Optional[TelegramClient] = None,
    ):
        self.config = config
        self.tmux = tmux or TmuxController()
        self.registry = registry or SessionRegistry(
            str(config.sessions_path), is_alive=self.tmux.session_exists
        )
        self.gate = gate or NotificationGate(
            str(config.notify_log_path), idle_cooldown_seconds=config.notify.idle_cooldown
        )
        self.client = client or TelegramClient(config.bot_token)

    def _is_enabled(self, kind: NotificationKind) -> bool:
        if kind == NotificationKind.IDLE:
            return self.config.notify.idle
        if kind == NotificationKind.PERMISSION:
            return self.config.notify.permission
        return True

    def _capture(self, session_name: Optional[str]) -> str:
        if not session_name:
            return ""
        try:
            return strip_ansi(self.tmux.capture_pane(session_name, CAPTURE_LINES)).strip()
        except TmuxError as e:
            logger.warning(f"Could not capture {session_name}: {e}")
            return ""

    def handle(self, event: HookEvent) -> bool:
        """
        Process one hook event.

        Returns:
            True if a notification was sent
        """
        if not self.config.chat_id:
            logger.info("No chat id configured yet, skipping notification")
            return False
        if event.hook_event_name != "Notification":
            return False

        kind = event.kind
        if not self._is_enabled(kind):
            return False

        session_name = self.registry.find_session_for_cwd(event.cwd)
        if session_name:
            self.registry.set_active(session_name)

        # Captured even when the transcript supplies the content: the gate needs the draft
        screen = self._capture(session_name)
        content = screen
        is_structured = False
        if kind != NotificationKind.PERMISSION and event.transcript_path:
            last_message = get_last_assistant_message(event.transcript_path)
            if last_message:
                content = last_message
                is_structured = True

        decision = self.gate.evaluate(kind, extract_prompt_draft(screen))
        if not decision.send:
            logger.info(f"[{session_name or '-'}] {kind.value} suppressed ({decision.reason})")
            return False

        message = format_notification(event, session_name, content, decision.show_hint, is_structured)
        self.client.send_message(self.config.chat_id, message, html=True)
        self.gate.mark_sent(kind)
        logger.info(f"[{session_name or '-'}] {kind.value} notification sent")
        return True


def main() -> int:
    """Entry point for the hook command. Always returns 0."""
    try:
        event = parse_hook_event(read_stdin())
        if event is None:
            return 0
        config = load_config()
        configure_logging(config.logs_path)
    except ConfigError:
        return 0
    except Exception:
        # Exit status stays 0 whatever happens before handling
        logger.exception("Notifier failed before handling the event")
        return 0

    try:
        HookNotifier(config).handle(event)
    except (TelegramAPIError, TmuxError, OSError) as e:
        logger.error(f"Notification failed: {e}")
    except Exception:
        logger.exception("Unexpected error in notifier")
    return 0


def run():
    """Entry point for console script."""
    sys.exit(main())


if __name__ == "__main__":
    run()
