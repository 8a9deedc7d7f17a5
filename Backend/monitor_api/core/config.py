"""
Configuration management using Pydantic Settings.

The service is driven by a single YAML document (``server``, ``database``,
``redis``, ``log``, ``llm`` and ``jwt`` blocks). Values present in the
document win; anything it omits falls back to environment variables
(``.env`` is loaded first) and then to the defaults below.

When the LLM block changes at runtime only the changed keys of that block
are written back; the rest of the document is left as it was read.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Literal, Optional, Union

import yaml
from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Backend dir is: /path/to/repo/Backend/
ROOT_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE = ROOT_DIR / ".env"

load_dotenv(ENV_FILE)

CONFIG_ENV_VAR = "API_SERVER_CONFIG"
DEFAULT_CONFIG_PATH = "configs/api-server.yaml"

# Blocks of the YAML document that feed the settings sections.
DOCUMENT_SECTIONS = ("server", "database", "redis", "log", "llm", "jwt")


class ServerSettings(BaseSettings):
    """HTTP server configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="SERVER_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app_name: str = "npu-job-monitor"
    app_version: str = "1.0.0"
    host: str = "0.0.0.0"
    port: int = 8080
    mode: Literal["debug", "release"] = "release"
    workers: int = 1
    docs_enabled: bool = True

    # CORS
    cors_origins: str = "*"
    cors_credentials: bool = False

    @property
    def debug(self) -> bool:
        return self.mode == "debug"

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


class DatabaseSettings(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="DB_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Full SQLAlchemy URL; when set the discrete fields below are ignored.
    url: str = ""
    driver: str = "mysql+aiomysql"
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = ""
    database: str = "task_monitor"
    pool_size: int = 20
    max_overflow: int = 10
    pool_recycle: int = 3600
    auto_migrate: bool = True

    @property
    def dsn(self) -> str:
        """Get async database DSN."""
        if self.url:
            return self.url
        auth_part = f"{self.user}:{self.password}@" if self.password else f"{self.user}@"
        query = "?charset=utf8mb4" if self.driver.startswith("mysql") else ""
        return f"{self.driver}://{auth_part}{self.host}:{self.port}/{self.database}{query}"


class RedisSettings(BaseSettings):
    """Redis block, carried in the document for the collectors that share it."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="REDIS_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    enabled: bool = False
    host: str = "localhost"
    port: int = 6379
    password: str = ""
    db: int = 0


class LogSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="LOG_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    level: str = "INFO"
    format: Literal["json", "text"] = "text"
    file: str = ""
    requests: bool = True

    @field_validator("level")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        return v.upper()


class LLMSettings(BaseSettings):
    """OpenAI-compatible LLM endpoint used for job analysis."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="LLM_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    enabled: bool = False
    endpoint: str = ""
    api_key: str = ""
    model: str = ""
    timeout: int = 60


class JWTSettings(BaseSettings):
    """Token signing configuration."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_prefix="JWT_",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    secret: str = "task-monitor-secret-change-me"
    expire_hour: int = Field(default=24, ge=1)


class Settings(BaseSettings):
    """Main settings class that aggregates all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    server: ServerSettings = Field(default_factory=ServerSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    log: LogSettings = Field(default_factory=LogSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    jwt: JWTSettings = Field(default_factory=JWTSettings)


# ============================================================================
# YAML document
# ============================================================================

def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    """Explicit path, then $API_SERVER_CONFIG, then the default location."""
    if path:
        return Path(path)
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)
    return ROOT_DIR / DEFAULT_CONFIG_PATH


def read_document(path: Path) -> dict[str, Any]:
    """Read the YAML document; a missing file is an empty document."""
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as fh:
        document = yaml.safe_load(fh) or {}
    if not isinstance(document, dict):
        raise ValueError(f"config file {path} must contain a mapping, got {type(document).__name__}")
    return document


def load_settings(path: Optional[Union[str, Path]] = None) -> Settings:
    """Build settings from the YAML document at ``path``."""
    document = read_document(resolve_config_path(path))
    sections = {key: value for key, value in document.items() if key in DOCUMENT_SECTIONS and value}
    return Settings(**sections)


def save_llm_block(llm: LLMSettings, path: Union[str, Path], fields: Iterable[str]) -> None:
    """
    Rewrite the ``llm`` block of the document at ``path``.

    The document is re-read and only ``fields`` of its ``llm`` mapping are
    replaced. Other blocks and keys the models do not declare are kept as
    they are, so values that only came from the environment stay out of
    the file.

    Raises:
        OSError: If the file cannot be read or written
    """
    path = Path(path)
    document = read_document(path)
    values = llm.model_dump(mode="json")
    block = dict(document.get("llm") or {})
    block.update({name: values[name] for name in fields if name in values})
    document["llm"] = block
    with path.open("w", encoding="utf-8") as fh:
        yaml.safe_dump(document, fh, sort_keys=False, allow_unicode=True)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return load_settings()


# Global settings instance
settings = get_settings()
