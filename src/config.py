"""Configuration loading and logging setup."""

import logging
import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

logger = logging.getLogger(__name__)

BOT_TOKEN_RE = re.compile(r'^\d+:[A-Za-z0-9_-]{35,}$')

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s %(message)s"


class ConfigError(Exception):
    """Missing or malformed configuration."""


def install_root() -> Path:
    """Directory holding config.yaml and the shared state files."""
    env_root = os.environ.get("CLAUDE_TG_HOME")
    if env_root:
        return Path(env_root).expanduser()
    return Path(__file__).resolve().parent.parent


@dataclass
class NotifyConfig:
    idle: bool = True
    permission: bool = True
    idle_cooldown: int = 180


@dataclass
class AppConfig:
    """Resolved configuration for all three process kinds."""
    bot_token: str
    chat_id: Optional[str] = None
    notify: NotifyConfig = field(default_factory=NotifyConfig)
    root: Path = field(default_factory=install_root)
    sessions_file: Path = Path(".sessions.json")
    notify_log: Path = Path(".notify-log.json")
    logs_dir: Path = Path("logs")
    uploads_dir: Path = Path("~/.claude/claude-tg/uploads")
    config_file: Optional[Path] = None

    def resolve(self, path: Path) -> Path:
        """Expand ``~`` and anchor relative paths at the install root."""
        path = Path(path).expanduser()
        return path if path.is_absolute() else self.root / path

    @property
    def sessions_path(self) -> Path:
        return self.resolve(self.sessions_file)

    @property
    def notify_log_path(self) -> Path:
        return self.resolve(self.notify_log)

    @property
    def logs_path(self) -> Path:
        return self.resolve(self.logs_dir)

    @property
    def uploads_path(self) -> Path:
        return self.resolve(self.uploads_dir)


def _read_yaml(path: Path) -> dict:
    if not path.exists():
        return {}
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping")
    return data


def _section(data: dict, key: str, path: Path) -> dict:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{key}' in {path} must be a mapping")
    return section


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load config.yaml from the install root, with BOT_TOKEN / CHAT_ID env overrides.

    Raises:
        ConfigError: if the file, a section, or the bot token is malformed
    """
    root = install_root()
    path = Path(config_path) if config_path else root / "config.yaml"
    data = _read_yaml(path)

    telegram = _section(data, "telegram", path)
    notify = _section(data, "notify", path)
    paths = _section(data, "paths", path)

    token = os.environ.get("BOT_TOKEN") or telegram.get("token")
    if not token:
        raise ConfigError(f"Telegram bot token is not set. Add telegram.token to {path}.")
    token = str(token).strip()
    if not BOT_TOKEN_RE.match(token):
        raise ConfigError("Telegram bot token format is invalid. Should look like: 123456:ABC-DEF...")

    chat_id = os.environ.get("CHAT_ID") or telegram.get("chat_id")

    try:
        idle_cooldown = int(notify.get("idle_cooldown") or 180)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"notify.idle_cooldown must be a number of seconds: {e}") from e

    config = AppConfig(
        bot_token=token,
        chat_id=str(chat_id) if chat_id else None,
        notify=NotifyConfig(
            idle=bool(notify.get("idle", True)),
            permission=bool(notify.get("permission", True)),
            idle_cooldown=idle_cooldown,
        ),
        root=root,
        config_file=path,
    )
    for key in ("sessions_file", "notify_log", "logs_dir", "uploads_dir"):
        value = paths.get(key)
        if not value:
            continue
        if not isinstance(value, str):
            raise ConfigError(f"paths.{key} must be a path string")
        setattr(config, key, Path(value))
    return config


def save_chat_id(config: AppConfig, chat_id: int | str):
    """Persist the chat id into config.yaml, keeping every other setting."""
    path = config.config_file or config.root / "config.yaml"
    data = _read_yaml(path)
    data.setdefault("telegram", {})["chat_id"] = str(chat_id)
    with open(path, "w") as f:
        yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
    config.chat_id = str(chat_id)
    logger.info(f"Saved chat id {chat_id} to {path}")


class _MaxLevelFilter(logging.Filter):
    def __init__(self, max_level: int):
        super().__init__()
        self.max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self.max_level


def configure_logging(logs_dir: Path, console: bool = False, level: int = logging.INFO):
    """
    Route log records to logs/events.log (below ERROR) and logs/errors.log.

    Args:
        logs_dir: Directory for the log files
        console: Also log to stderr (the relay bot's own log file)
        level: Root log level
    """
    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    handlers: list[logging.Handler] = []
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        events = logging.FileHandler(logs_dir / "events.log")
        events.addFilter(_MaxLevelFilter(logging.WARNING))
        errors = logging.FileHandler(logs_dir / "errors.log")
        errors.setLevel(logging.ERROR)
        handlers.extend([events, errors])
    except OSError as e:
        print(f"Cannot open log files in {logs_dir}: {e}", file=sys.stderr)

    if console:
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
