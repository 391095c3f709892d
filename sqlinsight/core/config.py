"""
Application configuration management using Pydantic Settings
"""

import json
import os
import sys
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sqlinsight.core.constants import (
    APP_NAME,
    CONFIG_FILE,
    AuthMethod,
    DEFAULT_OLLAMA_HOST,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    DEFAULT_MAX_TOKENS,
    DEFAULT_QUERY_TIMEOUT,
    DEFAULT_PLAN_TIMEOUT,
    DEFAULT_PROBE_TIMEOUT,
    DEFAULT_CONNECTION_TIMEOUT,
    AI_RESPONSE_TIMEOUT,
)
from sqlinsight.core.exceptions import ConfigurationError


def get_app_dir() -> Path:
    """
    Get application data directory.
    Uses the OS-specific user data folder.
    """
    if sys.platform == 'win32':
        base = Path(os.environ.get('LOCALAPPDATA', Path.home() / 'AppData' / 'Local'))
    elif sys.platform == 'darwin':
        base = Path.home() / 'Library' / 'Application Support'
    else:
        base = Path.home() / '.config'

    return base / APP_NAME.replace(' ', '')


class DatabaseSettings(BaseModel):
    """Database connection settings (already resolved by the caller)"""

    server: str = Field(default="localhost")
    port: int = Field(default=1433, ge=1, le=65535)
    database: str = Field(default="master")
    auth_method: AuthMethod = Field(default=AuthMethod.WINDOWS)
    username: str = Field(default="")
    password: str = Field(default="")
    driver: Optional[str] = Field(default=None)
    encrypt: bool = Field(default=True)
    trust_server_certificate: bool = Field(default=False)

    connection_timeout: int = Field(default=DEFAULT_CONNECTION_TIMEOUT, ge=1, le=120)
    query_timeout: int = Field(default=DEFAULT_QUERY_TIMEOUT, ge=1, le=600)
    # 0 disables the timeout; large-table plans may take a long time
    plan_timeout: int = Field(default=DEFAULT_PLAN_TIMEOUT, ge=0)
    probe_timeout: int = Field(default=DEFAULT_PROBE_TIMEOUT, ge=1, le=60)
    echo_sql: bool = Field(default=False)


class AISettings(BaseModel):
    """AI/LLM settings"""

    provider: str = Field(default="ollama")
    host: str = Field(default=DEFAULT_OLLAMA_HOST)
    endpoint: str = Field(default="")
    deployment: str = Field(default="")
    api_key: str = Field(default="")
    model: str = Field(default=DEFAULT_MODEL)
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0.0, le=2.0)
    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=100, le=128000)
    timeout: int = Field(default=AI_RESPONSE_TIMEOUT, ge=10, le=3600)

    # Optional directory of YAML prompt templates
    templates_dir: Optional[Path] = Field(default=None)

    @field_validator('host')
    @classmethod
    def validate_host(cls, v: str) -> str:
        if not v.startswith(('http://', 'https://')):
            v = f"http://{v}"
        return v.rstrip('/')

    @field_validator('endpoint')
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        return v.rstrip('/')


class LoggingSettings(BaseModel):
    """Logging settings"""

    level: str = Field(default="INFO")
    file_enabled: bool = Field(default=True)
    retention_days: int = Field(default=7, ge=1, le=30)

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        v = v.upper()
        if v not in valid_levels:
            v = 'INFO'
        return v


class PipelineSettings(BaseModel):
    """Batch pipeline settings"""

    output_root: Path = Field(default_factory=lambda: Path.cwd() / "sqlinsight_output")
    # Fail the item instead of falling back to the wrapped plan document
    strict_plan_merge: bool = Field(default=False)
    tuning_template: str = Field(default="default_tuning")
    review_template: str = Field(default="default_code_review")


class Settings(BaseSettings):
    """Main application settings"""

    model_config = SettingsConfigDict(
        env_prefix='SQLINSIGHT_',
        env_nested_delimiter='__',
        extra='ignore',
    )

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    ai: AISettings = Field(default_factory=AISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)

    app_dir: Path = Field(default_factory=get_app_dir)

    @property
    def config_dir(self) -> Path:
        return self.app_dir / 'config'

    @property
    def logs_dir(self) -> Path:
        return self.app_dir / 'logs'

    @property
    def settings_file(self) -> Path:
        return self.config_dir / CONFIG_FILE

    @classmethod
    def load(cls, path: Optional[Path] = None) -> 'Settings':
        """
        Load settings from a JSON file.

        File values take precedence over SQLINSIGHT_* environment variables.
        A missing default file yields defaults; an unreadable one is a
        configuration error.
        """
        settings_file = Path(path) if path else cls().settings_file

        if not settings_file.exists():
            if path:
                raise ConfigurationError(f"Settings file not found: {settings_file}")
            return cls()

        try:
            with open(settings_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f"Failed to read settings file: {e}", {"path": str(settings_file)}
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(
                "Settings file must contain a JSON object", {"path": str(settings_file)}
            )
        return cls(**data)


# Global settings instance (cached)
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance (singleton)"""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def set_settings(settings: Settings) -> Settings:
    """Replace the global settings instance (entry point and tests)"""
    global _settings
    _settings = settings
    return _settings
