"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./taurus.yaml (working directory)
3. ~/.taurus/config.yaml (user home)

Environment variables override YAML: TAURUS_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.utils.paths import get_hints_path

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Args:
        value: String potentially containing ${VAR} references.

    Returns:
        String with all ${VAR} references replaced by their env values.
        Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Recursively resolve ${VAR} references in a nested data structure."""
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class BackendConfig(BaseModel):
    """Where the chat backend lives."""

    base_url: str = "http://localhost:5000"
    timeout_seconds: float = 30.0

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class AuthConfig(BaseModel):
    """Credentials issued by the external identity provider."""

    # Env overrides coerce digit-only values to int.
    model_config = ConfigDict(coerce_numbers_to_str=True)

    token: str = ""
    user_id: str | None = None


class PollingConfig(BaseModel):
    """Bounds for the response poller.

    Worst-case wait for an answer is max_attempts * interval_ms.
    """

    max_attempts: int = Field(default=30, ge=1)
    interval_ms: int = Field(default=2000, ge=1)


class StorageConfig(BaseModel):
    """Local durable state. hints_file defaults to the platform data dir."""

    hints_file: str | None = None

    def resolved_hints_path(self) -> Path:
        if self.hints_file:
            return Path(self.hints_file).expanduser()
        return get_hints_path()


class LoggingConfig(BaseModel):
    """Logging options applied once by the CLI entry point."""

    level: str = "warning"
    format: Literal["text", "json"] = "text"
    file: str | None = None


class TaurusConfig(BaseModel):
    """Top-level configuration for the Taurus chat client."""

    backend: BackendConfig = BackendConfig()
    auth: AuthConfig = AuthConfig()
    polling: PollingConfig = PollingConfig()
    storage: StorageConfig = StorageConfig()
    logging: LoggingConfig = LoggingConfig()


def _find_config_file() -> Path | None:
    """Search for config file in standard locations.

    Returns:
        Path to config file if found, None otherwise.
    """
    candidates = [
        Path.cwd() / "taurus.yaml",
        Path.cwd() / "taurus.yml",
        Path.home() / ".taurus" / "config.yaml",
        Path.home() / ".taurus" / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply TAURUS_<SECTION>_<KEY> env var overrides to config data.

    ``TAURUS_POLLING_MAX_ATTEMPTS`` maps to section ``polling``, field
    ``max_attempts``. Values are coerced to int or bool when they look
    like one, otherwise kept as strings.

    Args:
        data: Parsed YAML config dict.

    Returns:
        Config dict with env var overrides applied.
    """
    prefix = "TAURUS_"
    known_sections = sorted(
        TaurusConfig.model_fields.keys(), key=len, reverse=True
    )
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        suffix = key[len(prefix):].lower()
        matched_section = None
        matched_field = None
        for section in known_sections:
            section_prefix = section + "_"
            if suffix.startswith(section_prefix):
                matched_section = section
                matched_field = suffix[len(section_prefix):]
                break
        if matched_section is None or not matched_field:
            continue
        if data.get(matched_section) is None:
            data[matched_section] = {}
        if isinstance(data[matched_section], dict):
            try:
                data[matched_section][matched_field] = int(value)
            except ValueError:
                if value.lower() in ("true", "false"):
                    data[matched_section][matched_field] = value.lower() == "true"
                else:
                    data[matched_section][matched_field] = value
    return data


def load_config(config_path: str | None = None) -> TaurusConfig | None:
    """Load Taurus configuration from YAML file with env var resolution.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.taurus/).

    Returns:
        Parsed and validated TaurusConfig, or None if no config found.

    Raises:
        FileNotFoundError: If an explicit config_path does not exist.
    """
    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()
        if path is None:
            return None

    logger.info("Loading config from %s", path)

    with open(path) as f:
        raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    return TaurusConfig(**data)


def load_config_or_default(config_path: str | None = None) -> TaurusConfig:
    """Like load_config, but falls back to defaults plus env overrides."""
    cfg = load_config(config_path=config_path)
    if cfg is None:
        cfg = TaurusConfig(**_apply_env_overrides({}))
    return cfg
