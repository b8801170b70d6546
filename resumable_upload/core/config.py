"""Unified configuration management: environment variables, validation, environment switching."""
import json
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from resumable_upload.core.exceptions import ConfigurationException


class Environment(Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(Enum):
    """Log level names."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class DatabaseConfig:
    """Session ledger (MongoDB) settings."""
    url: str
    db_name: str
    max_pool_size: int = 100
    server_selection_timeout_ms: int = 5000
    connect_timeout_ms: int = 5000
    socket_timeout_ms: int = 30000


@dataclass
class MinioConfig:
    """Object storage signing settings."""
    endpoint: str
    access_key: str
    secret_key: str
    bucket_name: str = "chunked-uploads"
    secure: bool = False
    region: Optional[str] = None
    grant_expiry_seconds: int = 3600


@dataclass
class ClientConfig:
    """Upload client tuning knobs."""
    api_url: str
    chunk_size: int = 5 * 1024 * 1024
    parallel_chunks: int = 3
    parallel_files: int = 3
    max_files: int = 20000
    max_retries: int = 5
    initial_retry_delay: float = 1.0
    verify_attempts: int = 3
    request_timeout: int = 300


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: LogLevel = LogLevel.INFO
    file_path: Optional[str] = None
    max_file_size: int = 100 * 1024 * 1024
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False


class Settings(BaseSettings):
    """Application settings managed through pydantic."""

    model_config = SettingsConfigDict(
        env_file=[".env", ".env.local"],
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow"
    )

    # Application
    app_name: str = Field(default="Resumable Upload Broker", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: Environment = Field(default=Environment.DEVELOPMENT, description="Runtime environment")

    # Server
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")
    cors_origins: List[str] = Field(default=["*"])

    # Session ledger
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongo_db_name: str = Field(default="resumable_uploads")
    mongodb_max_pool_size: int = Field(default=100, ge=1, le=1000)
    mongodb_server_selection_timeout_ms: int = Field(default=5000, ge=1000, le=30000)
    mongodb_connect_timeout_ms: int = Field(default=5000, ge=1000, le=30000)
    mongodb_socket_timeout_ms: int = Field(default=30000, ge=1000, le=60000)

    # Object storage
    minio_endpoint: str = Field(default="localhost:9000")
    minio_access_key: str = Field(default="minioadmin")
    minio_secret_key: str = Field(default="minioadmin")
    minio_bucket_name: str = Field(default="chunked-uploads")
    minio_secure: bool = Field(default=False)
    minio_region: Optional[str] = Field(default=None)
    grant_expiry_seconds: int = Field(default=3600, ge=60, le=7 * 24 * 3600)

    # Uploads
    upload_chunk_size: int = Field(default=5 * 1024 * 1024, ge=1, le=5 * 1024 * 1024 * 1024)
    max_upload_size: int = Field(default=5 * 1024 * 1024 * 1024 * 1024, ge=1)

    # Client
    upload_api_url: str = Field(default="http://localhost:3000")
    client_parallel_chunks: int = Field(default=3, ge=1, le=64)
    client_parallel_files: int = Field(default=3, ge=1, le=64)
    client_max_files: int = Field(default=20000, ge=1)
    client_max_retries: int = Field(default=5, ge=0, le=20)
    client_initial_retry_delay: float = Field(default=1.0, ge=0.0, le=60.0)
    client_verify_attempts: int = Field(default=3, ge=1, le=20)
    client_request_timeout: int = Field(default=300, ge=1, le=3600)

    # Logging
    log_level: LogLevel = Field(default=LogLevel.INFO)
    log_file_path: Optional[str] = Field(default=None)
    log_max_file_size: int = Field(default=100 * 1024 * 1024, ge=1024 * 1024, le=1024 * 1024 * 1024)
    log_backup_count: int = Field(default=5, ge=1, le=20)
    log_enable_console: bool = Field(default=True)
    log_enable_file: bool = Field(default=False)

    # Monitoring
    slow_operation_threshold: float = Field(default=1.0, ge=0.01, le=60.0)

    @field_validator("environment", mode="before")
    @classmethod
    def validate_environment(cls, v):
        """Accept environment names in any case."""
        if isinstance(v, str):
            return Environment(v.lower())
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v):
        """Accept log level names in any case."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @model_validator(mode="after")
    def validate_dependencies(self):
        """Cross-field checks."""
        if self.upload_chunk_size > self.max_upload_size:
            raise ValueError("upload_chunk_size cannot exceed max_upload_size")
        if self.environment == Environment.PRODUCTION and self.debug:
            raise ValueError("Debug mode should be disabled in production")
        return self

    def get_database_config(self) -> DatabaseConfig:
        return DatabaseConfig(
            url=self.mongodb_url,
            db_name=self.mongo_db_name,
            max_pool_size=self.mongodb_max_pool_size,
            server_selection_timeout_ms=self.mongodb_server_selection_timeout_ms,
            connect_timeout_ms=self.mongodb_connect_timeout_ms,
            socket_timeout_ms=self.mongodb_socket_timeout_ms
        )

    def get_minio_config(self) -> MinioConfig:
        return MinioConfig(
            endpoint=self.minio_endpoint,
            access_key=self.minio_access_key,
            secret_key=self.minio_secret_key,
            bucket_name=self.minio_bucket_name,
            secure=self.minio_secure,
            region=self.minio_region,
            grant_expiry_seconds=self.grant_expiry_seconds
        )

    def get_client_config(self) -> ClientConfig:
        return ClientConfig(
            api_url=self.upload_api_url,
            chunk_size=self.upload_chunk_size,
            parallel_chunks=self.client_parallel_chunks,
            parallel_files=self.client_parallel_files,
            max_files=self.client_max_files,
            max_retries=self.client_max_retries,
            initial_retry_delay=self.client_initial_retry_delay,
            verify_attempts=self.client_verify_attempts,
            request_timeout=self.client_request_timeout
        )

    def get_logging_config(self) -> LoggingConfig:
        return LoggingConfig(
            level=self.log_level,
            file_path=self.log_file_path,
            max_file_size=self.log_max_file_size,
            backup_count=self.log_backup_count,
            enable_console=self.log_enable_console,
            enable_file=self.log_enable_file
        )


def seed_environment_from_yaml(config_file: Union[str, Path]) -> List[str]:
    """
    Copy top-level keys of a YAML file into the process environment.

    Variables that are already set are left alone; nested values are stored as JSON so
    pydantic-settings can parse them. Returns the variable names that were written.
    """
    with open(config_file, 'r', encoding='utf-8') as f:
        config_data = yaml.safe_load(f) or {}
    if not isinstance(config_data, dict):
        raise ConfigurationException(f"Config file must contain a mapping: {config_file}")

    written = []
    for key, value in config_data.items():
        env_key = str(key).upper()
        if env_key in os.environ:
            continue
        os.environ[env_key] = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
        written.append(env_key)
    return written


class ConfigManager:
    """Process-wide settings holder (singleton).

    ``UPLOAD_CONFIG_FILE`` may point at a YAML file whose keys fill in unset
    environment variables before Settings is built.
    """

    _instance: Optional['ConfigManager'] = None

    def __new__(cls, *args, **kwargs):
        if cls._instance is None:
            cls._instance = super(ConfigManager, cls).__new__(cls)
        return cls._instance

    def __init__(self, config_file: Optional[str] = None):
        if hasattr(self, '_settings'):
            return

        self.config_file = config_file or os.environ.get("UPLOAD_CONFIG_FILE")
        self._settings: Optional[Settings] = None
        self._load_settings()

    def _load_settings(self):
        try:
            if self.config_file and Path(self.config_file).exists():
                seed_environment_from_yaml(self.config_file)
            self._settings = Settings()
        except ConfigurationException:
            raise
        except Exception as e:
            raise ConfigurationException(f"Failed to load settings: {str(e)}")

        for name, value in (("mongodb_url", self._settings.mongodb_url),
                            ("minio_endpoint", self._settings.minio_endpoint),
                            ("minio_bucket_name", self._settings.minio_bucket_name)):
            if not value:
                raise ConfigurationException(f"Required configuration missing: {name}", config_key=name)

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            raise ConfigurationException("Settings not initialized")
        return self._settings


# Global configuration manager
config_manager = ConfigManager()
