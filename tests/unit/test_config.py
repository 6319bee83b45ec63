"""Unit tests for configuration loading and logging setup."""

import logging
from pathlib import Path

import pytest
import yaml

from src.config import (
    AppConfig,
    ConfigError,
    configure_logging,
    install_root,
    load_config,
    save_chat_id,
)

TOKEN = "123456789:" + "B" * 35


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("CLAUDE_TG_HOME", str(tmp_path))
    monkeypatch.delenv("BOT_TOKEN", raising=False)
    monkeypatch.delenv("CHAT_ID", raising=False)
    return tmp_path


def write_config(home: Path, data: dict) -> Path:
    path = home / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


class TestLoadConfig:
    def test_install_root_from_env(self, home):
        assert install_root() == home

    def test_loads_yaml(self, home):
        write_config(home, {
            "telegram": {"token": TOKEN, "chat_id": 12345},
            "notify": {"idle": False, "idle_cooldown": 60},
        })
        config = load_config()
        assert config.bot_token == TOKEN
        assert config.chat_id == "12345"
        assert config.notify.idle is False
        assert config.notify.permission is True
        assert config.notify.idle_cooldown == 60
        assert config.sessions_path == home / ".sessions.json"
        assert config.notify_log_path == home / ".notify-log.json"

    def test_env_overrides(self, home, monkeypatch):
        write_config(home, {"telegram": {"token": "1:short", "chat_id": "1"}})
        monkeypatch.setenv("BOT_TOKEN", TOKEN)
        monkeypatch.setenv("CHAT_ID", "-100200")
        config = load_config()
        assert config.bot_token == TOKEN
        assert config.chat_id == "-100200"

    def test_env_only(self, home, monkeypatch):
        monkeypatch.setenv("BOT_TOKEN", TOKEN)
        config = load_config()
        assert config.chat_id is None
        assert config.notify.idle_cooldown == 180

    def test_missing_token(self, home):
        write_config(home, {"telegram": {}})
        with pytest.raises(ConfigError, match="token is not set"):
            load_config()

    def test_malformed_token(self, home):
        write_config(home, {"telegram": {"token": "not-a-token"}})
        with pytest.raises(ConfigError, match="format is invalid"):
            load_config()

    def test_unparseable_yaml(self, home):
        (home / "config.yaml").write_text("telegram: [unclosed")
        with pytest.raises(ConfigError):
            load_config()

    def test_non_mapping_yaml(self, home):
        (home / "config.yaml").write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config()

    @pytest.mark.parametrize("data, match", [
        ({"telegram": "oops"}, "'telegram'"),
        ({"telegram": {"token": TOKEN}, "notify": ["idle"]}, "'notify'"),
        ({"telegram": {"token": TOKEN}, "paths": "logs"}, "'paths'"),
        ({"telegram": {"token": TOKEN}, "notify": {"idle_cooldown": "three minutes"}}, "idle_cooldown"),
        ({"telegram": {"token": TOKEN}, "paths": {"logs_dir": 42}}, "paths.logs_dir"),
    ])
    def test_malformed_values_raise_config_error(self, home, data, match):
        write_config(home, data)
        with pytest.raises(ConfigError, match=match):
            load_config()

    def test_path_overrides(self, home, tmp_path):
        write_config(home, {
            "telegram": {"token": TOKEN},
            "paths": {"sessions_file": "state/sessions.json", "uploads_dir": str(tmp_path / "up")},
        })
        config = load_config()
        assert config.sessions_path == home / "state" / "sessions.json"
        assert config.uploads_path == tmp_path / "up"


def test_save_chat_id_keeps_other_settings(home):
    path = write_config(home, {"telegram": {"token": TOKEN}, "notify": {"idle": False}})
    config = load_config()

    save_chat_id(config, 98765)

    data = yaml.safe_load(path.read_text())
    assert data["telegram"] == {"token": TOKEN, "chat_id": "98765"}
    assert data["notify"] == {"idle": False}
    assert config.chat_id == "98765"


def test_relative_paths_resolve_against_root(tmp_path):
    config = AppConfig(bot_token=TOKEN, root=tmp_path)
    assert config.logs_path == tmp_path / "logs"
    assert config.resolve(Path("/abs/file")) == Path("/abs/file")


class TestConfigureLogging:
    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        for handler in root.handlers[:]:
            if handler not in handlers:
                handler.close()
                root.removeHandler(handler)
        root.setLevel(level)

    def test_splits_events_and_errors(self, tmp_path):
        logs_dir = tmp_path / "logs"
        configure_logging(logs_dir)

        log = logging.getLogger("src.test")
        log.info("session started")
        log.warning("retrying send")
        log.error("tmux failed")
        for handler in logging.getLogger().handlers:
            handler.flush()

        events = (logs_dir / "events.log").read_text()
        errors = (logs_dir / "errors.log").read_text()
        assert "session started" in events
        assert "retrying send" in events
        assert "tmux failed" not in events
        assert "tmux failed" in errors
        assert "session started" not in errors

    def test_unwritable_logs_dir_does_not_raise(self, tmp_path, capsys):
        blocker = tmp_path / "file"
        blocker.write_text("")
        configure_logging(blocker / "logs")
        assert "Cannot open log files" in capsys.readouterr().err
