"""Configuration management.

Settings are read from environment variables, after loading a ``.env`` file,
with an optional YAML file (``CAPI_CONFIG_PATH``) for non-secret settings.
Environment values win over YAML values. Credentials come from the
environment only.

The process-wide config is resolved once and available via:
    from capi_dispatch.config import get_config
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml
from dotenv import load_dotenv

from capi_dispatch.constants import (
    DEFAULT_ACTION_SOURCE,
    DEFAULT_API_HOST,
    DEFAULT_API_PORT,
    HTTP_TIMEOUT_S,
    META_GRAPH_API_VERSION,
)
from capi_dispatch.errors import ConfigError
from capi_dispatch.identity import parse_exclusion_list

# Project root (relative to this file)
_project_root = Path(__file__).parent.parent

# Ordered credential sources; the first non-empty one wins
METABASE_TOKEN_SOURCES = ("METABASE_SESSION_TOKEN", "METABASE_API_TOKEN")
META_TOKEN_SOURCES = ("META_ACCESS_TOKEN",)


@dataclass
class MetabaseConfig:
    site_url: str
    token: str
    question_id: str
    date_start: str | None = None
    date_end: str | None = None
    bot_id: str | None = None
    date_start_tag: str = "date_start"
    date_end_tag: str = "date_end"
    bot_id_tag: str = "bot_id"


@dataclass
class AttributionConfig:
    pixel_id: str
    access_token: str
    test_event_code: str | None = None
    action_source: str = DEFAULT_ACTION_SOURCE
    api_version: str = META_GRAPH_API_VERSION


@dataclass
class LedgerConfig:
    url: str
    password: str | None = None


@dataclass
class DispatchConfig:
    test_numbers: frozenset[str] = frozenset()
    http_timeout_s: float = HTTP_TIMEOUT_S


@dataclass
class ApiConfig:
    host: str = DEFAULT_API_HOST
    port: int = DEFAULT_API_PORT


@dataclass
class Config:
    metabase: MetabaseConfig
    attribution: AttributionConfig
    ledger: LedgerConfig
    dispatch: DispatchConfig
    api: ApiConfig


def resolve_credential(sources: Sequence[str], env: Mapping[str, str]) -> str:
    """Return the first non-empty value among ``sources``.

    Raises:
        ConfigError: none of the sources is set.
    """
    for name in sources:
        value = (env.get(name) or "").strip()
        if value:
            return value
    raise ConfigError(f"Missing credential: set one of {', '.join(sources)}")


def load_env_file(env_path: str | None = None) -> Path:
    """Load ``.env`` into the process environment (``CAPI_ENV_PATH`` overrides the path)."""
    raw = env_path or os.getenv("CAPI_ENV_PATH")
    dotenv_path = Path(raw).expanduser() if raw else _project_root / ".env"
    if not dotenv_path.is_absolute():
        dotenv_path = (_project_root / dotenv_path).resolve()
    load_dotenv(dotenv_path)
    return dotenv_path


def _read_yaml(path: str | None) -> dict[str, Any]:
    if not path:
        return {}
    config_file = Path(path).expanduser()
    if not config_file.exists():
        raise ConfigError(f"Config file not found: {config_file}")
    with config_file.open(encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file must contain a mapping: {config_file}")
    return data


class _Settings:
    """Env-first lookup with YAML section fallback."""

    def __init__(self, env: Mapping[str, str], file_data: dict[str, Any]) -> None:
        self._env = env
        self._file = file_data
        self.missing: list[str] = []

    def get(self, env_name: str, section: str, key: str, default: Any = None) -> Any:
        value = self._env.get(env_name)
        if value is not None and value.strip():
            return value.strip()
        section_data = self._file.get(section) or {}
        file_value = section_data.get(key)
        if file_value is None or file_value == "":
            return default
        return file_value

    def require(self, env_name: str, section: str, key: str) -> str:
        value = self.get(env_name, section, key)
        if value is None:
            self.missing.append(env_name)
            return ""
        return str(value)

    def optional(self, env_name: str, section: str, key: str) -> str | None:
        value = self.get(env_name, section, key)
        return None if value is None else str(value)


def load_config(env: Mapping[str, str] | None = None, *, config_path: str | None = None) -> Config:
    """Build a ``Config`` from ``env`` (defaults to ``os.environ``).

    Raises:
        ConfigError: a required setting or credential is missing or invalid.
    """
    env = os.environ if env is None else env
    settings = _Settings(env, _read_yaml(config_path or env.get("CAPI_CONFIG_PATH")))

    metabase_token = resolve_credential(METABASE_TOKEN_SOURCES, env)
    meta_token = resolve_credential(META_TOKEN_SOURCES, env)

    metabase = MetabaseConfig(
        site_url=settings.require("METABASE_SITE_URL", "metabase", "site_url"),
        token=metabase_token,
        question_id=settings.require("METABASE_QUESTION_ID", "metabase", "question_id"),
        date_start=settings.optional("METABASE_DATE_START", "metabase", "date_start"),
        date_end=settings.optional("METABASE_DATE_END", "metabase", "date_end"),
        bot_id=settings.optional("METABASE_BOT_ID", "metabase", "bot_id"),
        date_start_tag=str(settings.get("METABASE_DATE_START_TAG", "metabase", "date_start_tag", "date_start")),
        date_end_tag=str(settings.get("METABASE_DATE_END_TAG", "metabase", "date_end_tag", "date_end")),
        bot_id_tag=str(settings.get("METABASE_BOT_ID_TAG", "metabase", "bot_id_tag", "bot_id")),
    )
    attribution = AttributionConfig(
        pixel_id=settings.require("META_PIXEL_ID", "attribution", "pixel_id"),
        access_token=meta_token,
        test_event_code=settings.optional("META_TEST_EVENT_CODE", "attribution", "test_event_code"),
        action_source=str(settings.get("META_ACTION_SOURCE", "attribution", "action_source", DEFAULT_ACTION_SOURCE)),
        api_version=str(settings.get("META_GRAPH_API_VERSION", "attribution", "api_version", META_GRAPH_API_VERSION)),
    )
    ledger = LedgerConfig(
        url=settings.require("REDIS_URL", "ledger", "url"),
        password=(env.get("REDIS_PASSWORD") or None),
    )

    if settings.missing:
        raise ConfigError(f"Missing required settings: {', '.join(settings.missing)}")

    try:
        dispatch = DispatchConfig(
            test_numbers=parse_exclusion_list(settings.get("TEST_NUMBERS_E164", "dispatch", "test_numbers")),
            http_timeout_s=float(settings.get("CAPI_HTTP_TIMEOUT_S", "dispatch", "http_timeout_s", HTTP_TIMEOUT_S)),
        )
        api = ApiConfig(
            host=str(settings.get("CAPI_API_HOST", "api", "host", DEFAULT_API_HOST)),
            port=int(settings.get("CAPI_API_PORT", "api", "port", DEFAULT_API_PORT)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid setting: {exc}") from exc

    return Config(metabase=metabase, attribution=attribution, ledger=ledger, dispatch=dispatch, api=api)


_config: Config | None = None


def get_config() -> Config:
    """Return the process-wide config, loading ``.env`` and resolving it on first use."""
    global _config
    if _config is None:
        load_env_file()
        _config = load_config()
    return _config


def reset_config() -> None:
    global _config
    _config = None
