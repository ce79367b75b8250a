"""Tests for configuration management."""

import pytest

from knowledge_ingestion.config import (
    ChunkingSettings,
    DatabaseSettings,
    Environment,
    JobBackend,
    RabbitMQSettings,
    Settings,
    StorageSettings,
)


def test_chunking_defaults(monkeypatch):
    monkeypatch.delenv("CHUNK_SIZE", raising=False)
    monkeypatch.delenv("CHUNK_OVERLAP", raising=False)
    settings = ChunkingSettings()
    assert settings.size == 2000
    assert settings.overlap == 400
    assert settings.boundary_window == 0.3


def test_chunking_env_override(monkeypatch):
    monkeypatch.setenv("CHUNK_SIZE", "1000")
    assert ChunkingSettings().size == 1000


def test_boundary_window_must_be_a_fraction():
    with pytest.raises(ValueError, match="Boundary window"):
        ChunkingSettings(boundary_window=1.5)


def test_storage_configuration():
    assert StorageSettings(connection_string="UseDevelopmentStorage=true").is_configured
    assert StorageSettings(account_name="acct", use_managed_identity=True).is_configured
    assert not StorageSettings(account_name="acct", account_key=None, connection_string=None).is_configured


def test_database_dialect():
    assert DatabaseSettings(url="sqlite+aiosqlite:///:memory:").is_sqlite
    assert not DatabaseSettings(url="postgresql://u:p@db/knowledge").is_sqlite


def test_dead_letter_exchange_name():
    assert RabbitMQSettings(exchange_name="jobs").dead_letter_exchange_name == "jobs-dlx"


def test_nested_settings_are_initialized():
    settings = Settings()
    assert settings.retrieval.many_threshold == 3
    assert settings.retrieval.max_disambiguation_names == 5
    assert settings.deletion.max_empty_pages == 3
    assert settings.jobs.backend in (JobBackend.INPROCESS, JobBackend.RABBITMQ)


def test_environment_parsing():
    assert Settings(environment="PRODUCTION").environment == Environment.PRODUCTION
    assert Settings(environment="unknown").environment == Environment.DEVELOPMENT


def test_invalid_log_level():
    with pytest.raises(ValueError, match="Log level"):
        Settings(log_level="verbose")


def test_production_rejects_sqlite_and_debug():
    settings = Settings(
        environment="production",
        storage=StorageSettings(account_name="acct", use_managed_identity=True),
        database=DatabaseSettings(url="sqlite+aiosqlite:///./dev.db"),
    )
    settings.embedding.openai_api_key = "sk-test"

    with pytest.raises(ValueError, match="PostgreSQL"):
        settings.validate_production_settings()

    settings.debug = True
    with pytest.raises(ValueError, match="DEBUG"):
        settings.validate_production_settings()


def test_development_skips_production_checks():
    Settings(environment="development", debug=True).validate_production_settings()
