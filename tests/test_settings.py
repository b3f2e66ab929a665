from pathlib import Path

import pytest

from kb_bot import settings
from kb_bot.settings import Config


def test_pipeline_constants():
    assert settings.CONSUMER_BATCH_SIZE == 1
    assert settings.VISIBILITY_TIMEOUT_SECONDS == 600
    assert settings.CONSUMER_TIMEOUT_SECONDS == 300
    assert settings.DEDUP_WINDOW_SECONDS == 300


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("SLACK_SIGNING_SECRET", "secret")
    monkeypatch.setenv("BOT_OAUTH_TOKEN", "xoxb-1")
    monkeypatch.setenv("CHAT_MODEL_ID", "arn:model")
    monkeypatch.setenv("KNOWLEDGE_BASE_ID", "KB1")
    monkeypatch.setenv("SPOOL_DIR", str(tmp_path / "spool"))
    monkeypatch.setenv("WORKER_CONCURRENCY", "8")
    monkeypatch.setenv("MAX_RECEIVE_COUNT", "5")

    config = Config.from_env()

    assert config.knowledge_base_id == "KB1"
    assert config.spool_dir == Path(tmp_path / "spool")
    assert config.worker_concurrency == 8
    assert config.max_receive_count == 5
    assert config.visibility_timeout == 600
    config.validate()
    assert config.spool_dir.is_dir()


def test_validate_collects_all_errors(tmp_path):
    config = Config(spool_dir=tmp_path, worker_concurrency=0, max_receive_count=-1)

    with pytest.raises(ValueError) as exc_info:
        config.validate()

    message = str(exc_info.value)
    assert "SLACK_SIGNING_SECRET is required" in message
    assert "KNOWLEDGE_BASE_ID is required" in message
    assert "WORKER_CONCURRENCY" in message
    assert "MAX_RECEIVE_COUNT" in message
