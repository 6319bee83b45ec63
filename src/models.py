"""Data models for claude-tg."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class NotificationKind(Enum):
    """Kind of lifecycle notification, derived from the hook's notification_type."""
    IDLE = "idle_prompt"
    PERMISSION = "permission_prompt"
    ELICITATION = "elicitation_dialog"
    OTHER = "other"

    @classmethod
    def from_hook(cls, notification_type: Optional[str]) -> "NotificationKind":
        for kind in cls:
            if kind.value == notification_type:
                return kind
        return cls.OTHER

    @property
    def is_dialog(self) -> bool:
        """Permission prompts and elicitation dialogs render a menu on screen."""
        return self in (NotificationKind.PERMISSION, NotificationKind.ELICITATION)


@dataclass
class Session:
    """A named Claude Code session running inside tmux."""
    name: str
    cwd: str
    started_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "cwd": self.cwd,
            "started_at": self.started_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "Session":
        started_at = data.get("started_at")
        return cls(
            name=name,
            cwd=data.get("cwd", ""),
            started_at=datetime.fromisoformat(started_at) if started_at else datetime.now(),
        )


@dataclass
class Registry:
    """Shared record of known sessions and which one is active.

    ``sessions`` preserves insertion order; the most recently inserted
    session is the fallback whenever ``active`` has to be reassigned.
    """
    active: Optional[str] = None
    sessions: dict[str, Session] = field(default_factory=dict)

    def reassign_active(self) -> None:
        """Point ``active`` at the most recently inserted session if it dangles."""
        if self.active is not None and self.active in self.sessions:
            return
        self.active = next(reversed(self.sessions), None) if self.sessions else None

    def to_dict(self) -> dict:
        return {
            "active": self.active,
            "sessions": {name: s.to_dict() for name, s in self.sessions.items()},
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Registry":
        sessions = {
            name: Session.from_dict(name, entry)
            for name, entry in (data.get("sessions") or {}).items()
        }
        registry = cls(active=data.get("active"), sessions=sessions)
        registry.reassign_active()
        return registry


@dataclass
class NotificationLog:
    """Throttling state shared by notifier processes (epoch seconds)."""
    recent_event_timestamps: list[float] = field(default_factory=list)
    last_idle_sent_at: float = 0.0
    last_permission_sent_at: float = 0.0

    def to_dict(self) -> dict:
        return {
            "recent_event_timestamps": self.recent_event_timestamps,
            "last_idle_sent_at": self.last_idle_sent_at,
            "last_permission_sent_at": self.last_permission_sent_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "NotificationLog":
        timestamps = data.get("recent_event_timestamps")
        return cls(
            recent_event_timestamps=[float(t) for t in timestamps] if isinstance(timestamps, list) else [],
            last_idle_sent_at=float(data.get("last_idle_sent_at") or 0),
            last_permission_sent_at=float(data.get("last_permission_sent_at") or 0),
        )


@dataclass
class HookEvent:
    """Lifecycle hook payload delivered on the notifier's stdin."""
    hook_event_name: str = ""
    notification_type: Optional[str] = None
    cwd: Optional[str] = None
    transcript_path: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None

    @property
    def kind(self) -> NotificationKind:
        return NotificationKind.from_hook(self.notification_type)

    @classmethod
    def from_dict(cls, data: dict) -> "HookEvent":
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


@dataclass
class MenuOption:
    """A numbered choice recovered from a dialog on screen."""
    number: int
    label: str


@dataclass
class GateDecision:
    """Outcome of running one event through the notification gate."""
    send: bool
    show_hint: bool
    reason: str = ""
