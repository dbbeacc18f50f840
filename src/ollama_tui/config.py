"""Configuration loading and validation for the ollama-tui client."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from .client import DEFAULT_OLLAMA_URL, DEFAULT_OPENAI_URL
from .decoder import DEFAULT_MAX_LINE_BYTES
from .exceptions import ConfigValidationError
from .relay import DEFAULT_RELAY_SIZE

import tomllib  # stdlib since Python 3.11 (project requires >=3.11)

LOGGER = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "ollama-tui"
CONFIG_PATH = CONFIG_DIR / "config.toml"

VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def _require_non_empty(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("Expected a string value.")
    normalized = value.strip()
    if not normalized:
        raise ValueError("String value must not be empty.")
    return normalized


def _require_http_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme.lower() not in {"http", "https"}:
        raise ValueError("URL must use http or https scheme.")
    if not parsed.hostname:
        raise ValueError("URL must include a hostname.")
    return value.rstrip("/")


class AppConfig(BaseModel):
    """Application metadata."""

    title: str = "Ollama TUI"

    @field_validator("title", mode="before")
    @classmethod
    def _validate_title(cls, value: Any) -> str:
        return _require_non_empty(value)


class OllamaConfig(BaseModel):
    """Local generator endpoint settings."""

    host: str = DEFAULT_OLLAMA_URL
    timeout: int = Field(default=120, ge=1, le=3600)

    @field_validator("host", mode="before")
    @classmethod
    def _validate_host(cls, value: Any) -> str:
        return _require_http_url(_require_non_empty(value))


class OpenAIConfig(BaseModel):
    """Hosted chat endpoint settings."""

    base_url: str = DEFAULT_OPENAI_URL
    timeout: int = Field(default=120, ge=1, le=3600)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    api_key_env: str = "OPENAI_API_KEY"

    @field_validator("base_url", mode="before")
    @classmethod
    def _validate_base_url(cls, value: Any) -> str:
        return _require_http_url(_require_non_empty(value))

    @field_validator("api_key_env", mode="before")
    @classmethod
    def _validate_env_name(cls, value: Any) -> str:
        return _require_non_empty(value)


class RelayConfig(BaseModel):
    """Fragment relay sizing."""

    max_size: int = Field(default=DEFAULT_RELAY_SIZE, ge=1, le=100_000)


class DecoderConfig(BaseModel):
    """Wire decoding limits."""

    max_line_bytes: int = Field(
        default=DEFAULT_MAX_LINE_BYTES, ge=1024, le=64 * 1024 * 1024
    )


class KeybindsConfig(BaseModel):
    """Keyboard action mapping."""

    new_conversation: str = "ctrl+n"
    toggle_focus: str = "tab"
    quit: str = "ctrl+c"
    back: str = "escape"

    @field_validator("*", mode="before")
    @classmethod
    def _validate_keybind(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Keybind must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("Keybind must not be empty.")
        return normalized


class SecurityConfig(BaseModel):
    """Security policy for the local generator host."""

    allow_remote_hosts: bool = False
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "::1"]

    @field_validator("allowed_hosts", mode="before")
    @classmethod
    def _validate_allowed_hosts(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            raise ValueError("allowed_hosts must be a list.")
        normalized_hosts = [
            item.strip().lower()
            for item in value
            if isinstance(item, str) and item.strip()
        ]
        if not normalized_hosts:
            raise ValueError("allowed_hosts must contain at least one host.")
        return normalized_hosts


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = "~/.local/state/ollama-tui/app.log"

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        return _require_non_empty(value)


class CredentialsConfig(BaseModel):
    """Where user-supplied provider secrets are persisted."""

    path: str = "~/.config/ollama-tui/credentials.json"

    @field_validator("path", mode="before")
    @classmethod
    def _validate_path(cls, value: Any) -> str:
        return _require_non_empty(value)


class Config(BaseModel):
    """Root configuration model for all sections."""

    app: AppConfig = AppConfig()
    ollama: OllamaConfig = OllamaConfig()
    openai: OpenAIConfig = OpenAIConfig()
    relay: RelayConfig = RelayConfig()
    decoder: DecoderConfig = DecoderConfig()
    keybinds: KeybindsConfig = KeybindsConfig()
    security: SecurityConfig = SecurityConfig()
    logging: LoggingConfig = LoggingConfig()
    credentials: CredentialsConfig = CredentialsConfig()

    @model_validator(mode="after")
    def _validate_security_policy(self) -> Config:
        hostname = (urlparse(self.ollama.host).hostname or "").strip().lower()
        if not self.security.allow_remote_hosts and hostname not in set(
            self.security.allowed_hosts
        ):
            raise ValueError(
                "ollama.host is not in security.allowed_hosts while allow_remote_hosts is false."
            )
        return self


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump()


def ensure_config_dir(config_dir: Path | None = None) -> Path:
    """Ensure that the config directory exists and return its path."""
    directory = config_dir or CONFIG_DIR
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        LOGGER.warning("Unable to create config directory %s: %s", directory, exc)
    return directory


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _enforce_private_permissions(path: Path) -> None:
    """Best-effort enforcement of private file permissions on POSIX systems."""
    if os.name != "posix" or not path.exists():
        return
    try:
        path.chmod(0o600)
    except OSError as exc:
        LOGGER.warning("Unable to enforce 0600 permissions for %s: %s", path, exc)


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fall back to safe defaults when possible."""
    try:
        return Config.model_validate(raw).model_dump()
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return deepcopy(DEFAULT_CONFIG)
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    The optional ``config_path`` argument is intended for tests and tooling.
    """
    target_path = config_path or CONFIG_PATH
    ensure_config_dir(target_path.parent)

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        _enforce_private_permissions(target_path)
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (
            Exception
        ) as exc:  # noqa: BLE001 - we must not crash on invalid user config.
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    merged = (
        _deep_merge(DEFAULT_CONFIG, raw_data)
        if isinstance(raw_data, dict)
        else deepcopy(DEFAULT_CONFIG)
    )
    return _validate_config(merged)
