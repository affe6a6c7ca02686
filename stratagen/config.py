"""Settings loader with YAML file support and environment overrides.

Loads settings from (priority order):
1. Environment variables (TOOL_SERVICE_URL, CRON_SECRET, ...)
2. YAML file named by STRATAGEN_CONFIG_PATH, if set
3. Field defaults

${VAR} references in YAML string values resolve from the environment at
load time.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, model_validator

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

# Settings field -> environment variable(s), first non-empty wins.
_ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "tool_service_url": ("TOOL_SERVICE_URL",),
    "tool_service_token": ("TOOL_SERVICE_TOKEN",),
    "generation_provider_url": ("GENERATION_PROVIDER_URL",),
    "generation_provider_api_key": ("GENERATION_PROVIDER_API_KEY", "OPENAI_API_KEY"),
    "generation_model": ("GENERATION_MODEL",),
    "generation_temperature": ("GENERATION_TEMPERATURE",),
    "generation_max_tokens": ("GENERATION_MAX_TOKENS",),
    "cron_secret": ("CRON_SECRET",),
    "rate_limit_requests": ("RATE_LIMIT_REQUESTS",),
    "rate_limit_window_seconds": ("RATE_LIMIT_WINDOW_SECONDS",),
    "analysis_cache_ttl_seconds": ("ANALYSIS_CACHE_TTL_SECONDS",),
    "analysis_cache_max_entries": ("ANALYSIS_CACHE_MAX_ENTRIES",),
    "url_analysis_timeout_seconds": ("URL_ANALYSIS_TIMEOUT_SECONDS",),
    "provider_timeout_seconds": ("PROVIDER_TIMEOUT_SECONDS",),
    "session_history_limit": ("SESSION_HISTORY_LIMIT",),
    "allowed_origins": ("ALLOWED_ORIGINS",),
    "database_url": ("DATABASE_URL",),
    "sql_echo": ("SQL_ECHO",),
}


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
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class Settings(BaseModel):
    """Runtime settings for the generation pipeline.

    Addresses and credentials for the two upstreams, the scheduled-trigger
    secret, and the sizing of the in-process rate limiter, result cache
    and session history.
    """

    tool_service_url: str = "http://localhost:3001"
    tool_service_token: str = ""
    generation_provider_url: str = "https://api.openai.com"
    generation_provider_api_key: str = ""
    generation_model: str = "gpt-4o-mini"
    generation_temperature: float = Field(0.7, ge=0.0, le=2.0)
    generation_max_tokens: int = Field(4000, gt=0)

    cron_secret: str = ""

    rate_limit_requests: int = Field(10, gt=0)
    rate_limit_window_seconds: float = Field(3600.0, gt=0)
    analysis_cache_ttl_seconds: float = Field(1800.0, gt=0)
    analysis_cache_max_entries: int = Field(100, gt=0)
    url_analysis_timeout_seconds: float = Field(60.0, gt=0)
    provider_timeout_seconds: float = Field(120.0, gt=0)
    session_history_limit: int = Field(10, gt=0)

    allowed_origins: list[str] = []

    database_url: str = "sqlite:///./stratagen.db"
    sql_echo: bool = False

    @model_validator(mode="before")
    @classmethod
    def _split_origins(cls, data: Any) -> Any:
        """Accept ALLOWED_ORIGINS as a comma-separated string."""
        if isinstance(data, dict) and isinstance(data.get("allowed_origins"), str):
            raw = data["allowed_origins"]
            data["allowed_origins"] = [
                origin.strip() for origin in raw.split(",") if origin.strip()
            ]
        return data

    @model_validator(mode="after")
    def _strip_urls(self) -> "Settings":
        self.tool_service_url = self.tool_service_url.rstrip("/")
        self.generation_provider_url = self.generation_provider_url.rstrip("/")
        return self


def _load_yaml(config_path: str) -> dict[str, Any]:
    path = Path(config_path).expanduser()
    if not path.is_file():
        logger.warning("Config file %s not found, using environment only", path)
        return {}
    with open(path) as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return _resolve_env_vars_recursive(raw)


def load_settings(config_path: str | None = None) -> Settings:
    """Build Settings from an optional YAML file and the environment.

    Args:
        config_path: Explicit YAML path. Defaults to STRATAGEN_CONFIG_PATH.

    Returns:
        Validated Settings instance.

    Raises:
        pydantic.ValidationError: If any value fails validation.
    """
    path = config_path or os.environ.get("STRATAGEN_CONFIG_PATH", "").strip()
    data: dict[str, Any] = _load_yaml(path) if path else {}

    for field_name, env_names in _ENV_OVERRIDES.items():
        for env_name in env_names:
            value = os.environ.get(env_name, "").strip()
            if value:
                data[field_name] = value
                break

    return Settings(**data)
