"""Settings loading and the JSON log formatter."""

import json
import logging

import pytest

from streetwatch import config
from streetwatch.logging_setup import JsonFormatter


@pytest.fixture
def clean_env(monkeypatch):
    monkeypatch.setattr(config, "_env_loaded", True)
    for name in ("DATABASE_URL", "DB_URL", "LOG_LEVEL", "LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestSettings:
    def test_defaults(self, clean_env):
        settings = config.get_settings()

        assert settings.database_url is None
        assert settings.log_level == "INFO"
        assert settings.log_dir is None

    def test_database_url_is_required(self, clean_env):
        with pytest.raises(RuntimeError, match="DATABASE_URL is not set"):
            config.get_settings().require_database_url()

    def test_reads_environment(self, clean_env, tmp_path):
        clean_env.setenv("DB_URL", "sqlite:///x.db")
        clean_env.setenv("LOG_LEVEL", " debug ")
        clean_env.setenv("LOG_DIR", str(tmp_path))

        settings = config.get_settings()

        assert settings.require_database_url() == "sqlite:///x.db"
        assert settings.log_level == "DEBUG"
        assert settings.log_dir == tmp_path

    def test_env_path_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text("DATABASE_URL=sqlite:///from-file.db\n")
        # Registered first so teardown also removes the value loaded from the file.
        monkeypatch.setenv("DATABASE_URL", "")
        monkeypatch.delenv("DATABASE_URL")
        monkeypatch.delenv("DB_URL", raising=False)
        monkeypatch.setenv("ENV_PATH", str(env_file))
        monkeypatch.setattr(config, "_env_loaded", False)

        assert config.get_settings().database_url == "sqlite:///from-file.db"


class TestJsonFormatter:
    def _record(self, **extra):
        record = logging.LogRecord("streetwatch.tagging", logging.INFO, __file__, 1, "Reconciled %s", ("f-1",), None)
        record.__dict__.update(extra)
        return record

    def test_event_and_context(self):
        payload = json.loads(JsonFormatter().format(self._record(event="tags_reconciled", context={"content_id": "f-1"})))

        assert payload["message"] == "Reconciled f-1"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "streetwatch.tagging"
        assert payload["event"] == "tags_reconciled"
        assert payload["context"] == {"content_id": "f-1"}

    def test_plain_record(self):
        payload = json.loads(JsonFormatter().format(self._record()))

        assert "event" not in payload
        assert "context" not in payload
