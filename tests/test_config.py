import json
import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest
from pydantic import ValidationError

from resumable_upload.config import settings
from resumable_upload.core.config import (
    ConfigManager,
    Environment,
    LoggingConfig,
    LogLevel,
    Settings,
    config_manager,
    seed_environment_from_yaml,
)
from resumable_upload.core.exceptions import ConfigurationException
from resumable_upload.utils.logger import setup_logger


def test_protocol_defaults(monkeypatch):
    for key in ("UPLOAD_CHUNK_SIZE", "CLIENT_PARALLEL_CHUNKS", "CLIENT_PARALLEL_FILES",
                "CLIENT_MAX_RETRIES", "CLIENT_INITIAL_RETRY_DELAY", "GRANT_EXPIRY_SECONDS", "PORT"):
        monkeypatch.delenv(key, raising=False)

    fresh = Settings(_env_file=None)

    assert fresh.upload_chunk_size == 5 * 1024 * 1024
    assert fresh.client_parallel_chunks == 3
    assert fresh.client_parallel_files == 3
    assert fresh.client_max_retries == 5
    assert fresh.client_initial_retry_delay == 1.0
    assert fresh.grant_expiry_seconds == 3600
    assert fresh.port == 3000


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("CLIENT_PARALLEL_FILES", "8")
    monkeypatch.setenv("ENVIRONMENT", "Testing")
    monkeypatch.setenv("LOG_LEVEL", "debug")

    fresh = Settings(_env_file=None)

    assert fresh.client_parallel_files == 8
    assert fresh.environment == Environment.TESTING
    assert fresh.log_level == LogLevel.DEBUG


def test_chunk_size_cannot_exceed_max_upload(monkeypatch):
    monkeypatch.setenv("UPLOAD_CHUNK_SIZE", "100")
    monkeypatch.setenv("MAX_UPLOAD_SIZE", "10")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_typed_configs_mirror_settings():
    client = settings.get_client_config()
    minio = settings.get_minio_config()
    logging_config = settings.get_logging_config()

    assert client.parallel_chunks == settings.client_parallel_chunks
    assert client.verify_attempts == settings.client_verify_attempts
    assert minio.grant_expiry_seconds == settings.grant_expiry_seconds
    assert logging_config.level == settings.log_level
    assert logging_config.file_path == settings.log_file_path


def test_config_manager_is_a_singleton():
    assert ConfigManager() is config_manager
    assert config_manager.settings is settings


def test_setup_logger_writes_rotating_files_to_configured_directory(tmp_path):
    config = LoggingConfig(
        level=LogLevel.WARNING,
        file_path=str(tmp_path / "logs"),
        max_file_size=2 * 1024 * 1024,
        backup_count=2,
        enable_console=False,
        enable_file=True
    )

    logger = setup_logger("resumable-upload.test-file-logging", config=config)
    try:
        handlers = [h for h in logger.handlers if isinstance(h, RotatingFileHandler)]

        assert logger.level == logging.WARNING
        assert len(handlers) == len(logger.handlers)
        assert sorted(Path(h.baseFilename).name for h in handlers) == ["error.log", "upload.log"]
        assert all(Path(h.baseFilename).parent == tmp_path / "logs" for h in handlers)
        assert all(h.maxBytes == 2 * 1024 * 1024 and h.backupCount == 2 for h in handlers)
    finally:
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)


def test_setup_logger_console_only_by_default():
    logger = setup_logger("resumable-upload.test-console-logging", config=LoggingConfig(level=LogLevel.DEBUG))
    try:
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        assert not isinstance(logger.handlers[0], RotatingFileHandler)
    finally:
        for handler in list(logger.handlers):
            logger.removeHandler(handler)


def test_yaml_fills_only_unset_variables(tmp_path, monkeypatch):
    monkeypatch.setattr(os, "environ", {"CLIENT_MAX_RETRIES": "7"})
    config_file = tmp_path / "upload.yaml"
    config_file.write_text(
        "client_max_retries: 2\nclient_parallel_files: 6\ncors_origins:\n  - http://a.test\n",
        encoding="utf-8"
    )

    written = seed_environment_from_yaml(config_file)

    assert sorted(written) == ["CLIENT_PARALLEL_FILES", "CORS_ORIGINS"]
    assert os.environ["CLIENT_MAX_RETRIES"] == "7"
    assert os.environ["CLIENT_PARALLEL_FILES"] == "6"
    assert json.loads(os.environ["CORS_ORIGINS"]) == ["http://a.test"]


def test_yaml_must_be_a_mapping(tmp_path):
    config_file = tmp_path / "upload.yaml"
    config_file.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigurationException):
        seed_environment_from_yaml(config_file)

