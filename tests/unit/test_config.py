"""Tests for configuration loading and backend selection."""

import pytest

import formflow.persistence as persistence
from formflow.config import load_config
from formflow.engine import create_engine
from formflow.persistence import (
    InMemoryWorkflowRepository,
    PostgresWorkflowRepository,
    SQLiteWorkflowRepository,
    get_repository,
    open_repository,
)


def test_load_config_from_env(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        """
log_level: debug
engine:
  serialize_submissions: true
  checkpoint_steps: true
handlers:
  webhook:
    timeout: 2.5
"""
    )
    monkeypatch.setenv("FORMFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("FORMFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.log_level == "debug"
    assert config.engine.serialize_submissions is True
    assert config.engine.checkpoint_steps is True
    assert config.handlers.webhook.timeout == 2.5
    assert config.database_url is None


def test_missing_config_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("FORMFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("FORMFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    config = load_config()
    assert config.engine.serialize_submissions is False
    assert config.handlers.webhook.timeout == 10.0


def test_database_url_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("database_url: sqlite://from-file.db\n")
    monkeypatch.setenv("FORMFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("FORMFLOW_DATABASE_URL", "sqlite://from-env.db")

    assert load_config().database_url == "sqlite://from-env.db"


def test_get_repository_uses_config(tmp_path, monkeypatch):
    db_path = tmp_path / "wf.db"
    config_path = tmp_path / "config.yaml"
    config_path.write_text(f"database_url: sqlite://{db_path}\n")
    monkeypatch.setenv("FORMFLOW_CONFIG", str(config_path))
    monkeypatch.delenv("FORMFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(persistence, "_repository_instance", None)

    repo = get_repository()
    assert isinstance(repo, SQLiteWorkflowRepository)
    assert repo.db_path == str(db_path)
    assert get_repository() is repo


def test_create_engine_applies_engine_settings(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("engine:\n  serialize_submissions: true\n")
    monkeypatch.setenv("FORMFLOW_CONFIG", str(config_path))
    repo = InMemoryWorkflowRepository()

    engine = create_engine(repository=repo)

    assert engine.serialize_submissions is True
    assert engine.checkpoint_steps is False
    assert "webhook" in engine.registry


def test_database_url_env_selects_backend(tmp_path, monkeypatch):
    db_path = tmp_path / "env.db"
    monkeypatch.setenv("FORMFLOW_CONFIG", str(tmp_path / "absent.yaml"))
    monkeypatch.delenv("FORMFLOW_DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", f"sqlite://{db_path}")
    monkeypatch.setattr(persistence, "_repository_instance", None)

    repo = get_repository()

    assert isinstance(repo, SQLiteWorkflowRepository)
    assert repo.db_path == str(db_path)


def test_explicit_database_url_replaces_shared_repository(tmp_path, monkeypatch):
    shared = InMemoryWorkflowRepository()
    monkeypatch.setattr(persistence, "_repository_instance", shared)

    repo = get_repository(f"sqlite://{tmp_path / 'wf.db'}")

    assert isinstance(repo, SQLiteWorkflowRepository)
    assert get_repository() is repo


@pytest.mark.parametrize(
    "url, expected",
    [
        (None, InMemoryWorkflowRepository),
        ("", InMemoryWorkflowRepository),
        ("postgresql://u:p@localhost/db", PostgresWorkflowRepository),
        ("postgres://u:p@localhost/db", PostgresWorkflowRepository),
    ],
)
def test_open_repository_picks_backend(url, expected):
    assert isinstance(open_repository(url), expected)


@pytest.mark.parametrize("url", ["mysql://localhost/db", "sqlite://", "wf.db"])
def test_open_repository_rejects_unsupported_urls(url):
    with pytest.raises(ValueError, match="Unsupported database URL"):
        open_repository(url)


def test_log_level_env_overrides_file(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("log_level: INFO\nengine:\n  checkpoint_steps: true\n")
    monkeypatch.setenv("FORMFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("FORMFLOW_LOG_LEVEL", "DEBUG")

    config = load_config()

    assert config.log_level == "DEBUG"
    assert config.engine.checkpoint_steps is True


def test_empty_env_value_does_not_override(tmp_path, monkeypatch):
    config_path = tmp_path / "config.yaml"
    config_path.write_text("log_level: WARNING\n")
    monkeypatch.setenv("FORMFLOW_CONFIG", str(config_path))
    monkeypatch.setenv("FORMFLOW_LOG_LEVEL", "")

    assert load_config().log_level == "WARNING"
