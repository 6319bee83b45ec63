"""Decide whether a lifecycle event should reach the user, and how loudly.

Three independent concerns, evaluated once per event before any send:

* per-kind cooldown for idle and permission notifications, measured from
  the last notification of that kind that was actually sent;
* typing suppression: an idle alert is noise while the user has a draft
  on the prompt line;
* escalating hint: once three or more events land within a minute the
  formatter swaps the call-to-action for an interrupt tip.

The log file is shared by concurrent notifier processes without locking;
it is a best-effort counter.
"""

import json
import logging
import os
import time
from pathlib import Path
from typing import Callable

from .models import GateDecision, NotificationKind, NotificationLog

logger = logging.getLogger(__name__)

HINT_WINDOW_SECONDS = 60
HINT_THRESHOLD = 3
DEFAULT_COOLDOWN_SECONDS = 180


class NotificationGate:
    """Throttling and escalation state machine over the notification log."""

    def __init__(
        self,
        log_file: str,
        idle_cooldown_seconds: float = DEFAULT_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.log_file = Path(log_file)
        self.idle_cooldown_seconds = idle_cooldown_seconds
        self.clock = clock

    def load(self) -> NotificationLog:
        try:
            with open(self.log_file) as f:
                return NotificationLog.from_dict(json.load(f))
        except FileNotFoundError:
            return NotificationLog()
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable notification log {self.log_file}: {e}")
            return NotificationLog()

    def save(self, log: NotificationLog):
        temp_file = self.log_file.with_name(f"{self.log_file.name}.{os.getpid()}.tmp")
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w") as f:
                json.dump(log.to_dict(), f)
            os.replace(temp_file, self.log_file)
        except OSError as e:
            logger.warning(f"Failed to write notification log {self.log_file}: {e}")
            if temp_file.exists():
                temp_file.unlink()

    def _last_sent(self, log: NotificationLog, kind: NotificationKind) -> float:
        if kind == NotificationKind.IDLE:
            return log.last_idle_sent_at
        if kind == NotificationKind.PERMISSION:
            return log.last_permission_sent_at
        return 0.0

    def evaluate(self, kind: NotificationKind, prompt_draft: str = "") -> GateDecision:
        """
        Run one incoming event through the gate.

        The hint window is updated for every event, sent or not. Cooldown
        timestamps are only touched by ``mark_sent``.

        Args:
            kind: Notification kind of the event
            prompt_draft: Text currently typed on the session's prompt line

        Returns:
            GateDecision with ``send`` and ``show_hint``
        """
        now = self.clock()
        log = self.load()

        log.recent_event_timestamps.append(now)
        log.recent_event_timestamps = [
            ts for ts in log.recent_event_timestamps if now - ts < HINT_WINDOW_SECONDS
        ]
        self.save(log)
        show_hint = len(log.recent_event_timestamps) >= HINT_THRESHOLD

        if kind in (NotificationKind.IDLE, NotificationKind.PERMISSION):
            elapsed = now - self._last_sent(log, kind)
            if elapsed < self.idle_cooldown_seconds:
                return GateDecision(send=False, show_hint=show_hint, reason="cooldown")

        if kind == NotificationKind.IDLE and prompt_draft:
            return GateDecision(send=False, show_hint=show_hint, reason="typing")

        return GateDecision(send=True, show_hint=show_hint)

    def mark_sent(self, kind: NotificationKind):
        """Start the cooldown for ``kind`` after a successful send."""
        if kind not in (NotificationKind.IDLE, NotificationKind.PERMISSION):
            return
        log = self.load()
        now = self.clock()
        if kind == NotificationKind.IDLE:
            log.last_idle_sent_at = now
        else:
            log.last_permission_sent_at = now
        self.save(log)
