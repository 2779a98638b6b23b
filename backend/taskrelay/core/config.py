from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal, get_args

from dotenv import load_dotenv
from pydantic import BaseModel, Field

Environment = Literal["development", "test", "production"]
LogFormat = Literal["json", "console"]

_TRUTHY = frozenset({"1", "true", "yes", "on"})
_FALSY = frozenset({"0", "false", "no", "off"})
_TEN_MIB = 10 * 1024 * 1024

# Browser origins of the web and mobile clients during local work.
_LOCAL_CLIENT_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "capacitor://localhost",
    "http://localhost",
]


class ConfigurationError(Exception):
    """An environment variable holds a value the service cannot run with."""


class Settings(BaseModel):
    app_name: str = "TaskRelay Backend"
    app_env: Environment = "development"
    debug: bool = True
    testing: bool = False
    host: str = "127.0.0.1"
    port: int = 8000

    database_url: str = "sqlite:///./taskrelay.db"
    db_auto_init: bool = True
    # None lets the engine follow `debug`.
    sqlalchemy_echo: bool | None = None

    log_level: str = "INFO"
    log_format: LogFormat = "json"
    log_file: str | None = None

    local_api_key: str | None = None
    cors_allow_origins: list[str] = Field(default_factory=lambda: list(_LOCAL_CLIENT_ORIGINS))
    cors_allow_credentials: bool = True

    storage_root: Path = Path("./storage")
    storage_public_base_url: str = "/api/v1/files"
    max_upload_bytes: int = Field(default=_TEN_MIB, ge=1)


def _env(name: str) -> str | None:
    """Read a variable, treating whitespace-only values as unset."""
    raw = os.getenv(name)
    if raw is None:
        return None
    stripped = raw.strip()
    return stripped or None


def _flag(name: str) -> bool | None:
    value = _env(name)
    if value is None:
        return None
    lowered = value.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    return None


def _integer(name: str, default: int) -> int:
    value = _env(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from exc


def _environment() -> Environment:
    value = (_env("APP_ENV") or "").lower()
    return value if value in get_args(Environment) else "development"  # type: ignore[return-value]


def _log_format(app_env: Environment) -> LogFormat:
    value = (_env("LOG_FORMAT") or "").lower()
    if value in get_args(LogFormat):
        return value  # type: ignore[return-value]
    return "console" if app_env == "development" else "json"


def _origins() -> list[str]:
    value = _env("CORS_ALLOW_ORIGINS")
    if value is None:
        return list(_LOCAL_CLIENT_ORIGINS)
    origins = [origin.strip() for origin in value.split(",") if origin.strip()]
    return origins or list(_LOCAL_CLIENT_ORIGINS)


def _storage_root(app_env: Environment) -> Path:
    value = _env("STORAGE_ROOT")
    if value is None:
        return Path("./storage_test" if app_env == "test" else "./storage")
    root = Path(value)
    if root.exists() and not root.is_dir():
        raise ConfigurationError(f"STORAGE_ROOT is not a directory: {root}")
    return root


def _default_database_url(app_env: Environment) -> str:
    name = "taskrelay_test.db" if app_env == "test" else "taskrelay.db"
    return f"sqlite:///./{name}"


def load_settings() -> Settings:
    """Build settings from the process environment.

    A dotenv file (``TASKRELAY_ENV_FILE``, default ``.env``) is read first but never
    overrides variables that are already set. Defaults depend on ``APP_ENV``: debug is
    off only in production, ``testing`` is on only in test, and the schema is created
    at startup only in development.
    """
    env_file = Path(os.getenv("TASKRELAY_ENV_FILE", ".env"))
    if env_file.is_file():
        load_dotenv(env_file, override=False)

    app_env = _environment()
    public_base_url = _env("STORAGE_PUBLIC_BASE_URL") or "/api/v1/files"

    def flag_or(name: str, default: bool) -> bool:
        value = _flag(name)
        return default if value is None else value

    return Settings(
        app_name=os.getenv("APP_NAME", "TaskRelay Backend"),
        app_env=app_env,
        debug=flag_or("DEBUG", app_env != "production"),
        testing=flag_or("TESTING", app_env == "test"),
        host=_env("HOST") or "127.0.0.1",
        port=_integer("PORT", 8000),
        database_url=_env("DATABASE_URL") or _default_database_url(app_env),
        db_auto_init=flag_or("DB_AUTO_INIT", app_env == "development"),
        sqlalchemy_echo=_flag("SQLALCHEMY_ECHO"),
        log_level=_env("LOG_LEVEL") or "INFO",
        log_format=_log_format(app_env),
        log_file=_env("LOG_FILE"),
        local_api_key=_env("LOCAL_API_KEY"),
        cors_allow_origins=_origins(),
        cors_allow_credentials=flag_or("CORS_ALLOW_CREDENTIALS", True),
        storage_root=_storage_root(app_env),
        storage_public_base_url=public_base_url.rstrip("/"),
        max_upload_bytes=_integer("MAX_UPLOAD_BYTES", _TEN_MIB),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
