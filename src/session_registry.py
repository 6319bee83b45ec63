"""Shared session registry persisted as a single JSON document.

The launcher, the relay bot and every notifier process read and write the
same file without locking. Each mutation is a whole-file read-modify-write
and each write replaces the file atomically, so readers never see a torn
document; lost updates between concurrent writers are tolerated and
``prune()`` cleans up whatever a crashed launcher leaves behind.
"""

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from .models import Registry, Session

logger = logging.getLogger(__name__)


class SessionRegistry:
    """Read/mutate/write access to the shared sessions file."""

    def __init__(
        self,
        state_file: str,
        is_alive: Callable[[str], bool],
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            state_file: Path of the shared JSON document
            is_alive: Liveness query for a session name (tmux has-session)
            clock: Wall-clock source, replaceable in tests
        """
        self.state_file = Path(state_file)
        self.is_alive = is_alive
        self.clock = clock

    def load(self) -> Registry:
        """Parse the registry file; a missing or unreadable file is an empty registry."""
        try:
            with open(self.state_file) as f:
                data = json.load(f)
            return Registry.from_dict(data)
        except FileNotFoundError:
            return Registry()
        except (OSError, ValueError, TypeError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable registry {self.state_file}: {e}")
            return Registry()

    def save(self, registry: Registry):
        """
        Replace the registry file atomically.

        Raises:
            OSError: if the document cannot be written
        """
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        # Per-process temp name: concurrent writers must not share one
        temp_file = self.state_file.with_name(f"{self.state_file.name}.{os.getpid()}.tmp")
        try:
            with open(temp_file, "w") as f:
                json.dump(registry.to_dict(), f, indent=2)
                f.write("\n")
            os.replace(temp_file, self.state_file)
        except OSError:
            logger.error(f"Failed to save registry to {self.state_file}")
            temp_file.unlink(missing_ok=True)
            raise

    def register(self, name: str, cwd: str):
        """Insert (or overwrite, keeping its slot) a session and make it active."""
        registry = self.load()
        registry.sessions[name] = Session(name=name, cwd=cwd, started_at=self.clock())
        registry.active = name
        self.save(registry)
        logger.info(f"Registered session {name} in {cwd}")

    def unregister(self, name: str):
        """Remove a session; the active pointer falls back to the newest remaining one."""
        registry = self.load()
        registry.sessions.pop(name, None)
        registry.reassign_active()
        self.save(registry)
        logger.info(f"Unregistered session {name}")

    def set_active(self, name: str):
        """Make ``name`` active. Unknown names are ignored."""
        registry = self.load()
        if name not in registry.sessions:
            return
        registry.active = name
        self.save(registry)

    def rename(self, old_name: str, new_name: str) -> bool:
        """
        Move a session entry to a new key.

        Returns:
            False (and leaves the file untouched) if ``old_name`` is unknown
            or ``new_name`` is taken
        """
        registry = self.load()
        if old_name not in registry.sessions or new_name in registry.sessions:
            return False

        session = registry.sessions.pop(old_name)
        session.name = new_name
        registry.sessions[new_name] = session
        if registry.active == old_name:
            registry.active = new_name
        self.save(registry)
        logger.info(f"Renamed session {old_name} -> {new_name}")
        return True

    def prune(self) -> Registry:
        """Drop sessions whose tmux session no longer exists; persist only on change."""
        registry = self.load()
        dead = [name for name in registry.sessions if not self.is_alive(name)]
        previous_active = registry.active

        for name in dead:
            del registry.sessions[name]
        registry.reassign_active()

        if dead or registry.active != previous_active:
            logger.info(f"Pruned dead sessions: {dead}")
            self.save(registry)
        return registry

    def get_active(self) -> Optional[str]:
        """Active session name after pruning (one liveness query per session)."""
        return self.prune().active

    def list_sessions(self) -> Registry:
        """Pruned view of the whole registry."""
        return self.prune()

    def find_session_for_cwd(self, cwd: Optional[str]) -> Optional[str]:
        """Session started in ``cwd``, falling back to the active session."""
        if not cwd:
            return None
        registry = self.prune()
        for name, session in registry.sessions.items():
            if session.cwd == cwd:
                return name
        return registry.active

    def next_name(self, prefix: str = "claude") -> str:
        """
        Generate a session name like ``claude-0214-1352``.

        On collision the seconds are appended (``claude-0214-135207``), then a
        counter. Uniqueness is best effort: another process may register the
        same name between this call and its own ``register``.
        """
        now = self.clock()
        name = f"{prefix}-{now:%m%d}-{now:%H%M}"
        sessions = self.load().sessions
        if name not in sessions:
            return name

        name = f"{name}{now:%S}"
        candidate, counter = name, 2
        while candidate in sessions:
            candidate = f"{name}-{counter}"
            counter += 1
        return candidate
