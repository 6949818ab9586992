"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    config_dir = _find_config_dir(config_dir)
    default_path = config_dir / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = config_dir / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        refresh: dict[str, Any] | None = None,
        sources: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        api: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.refresh = refresh or {}
        self.sources = sources or {}
        self.storage = storage or {}
        self.api = api or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            refresh=raw.get("refresh"),
            sources=raw.get("sources"),
            storage=raw.get("storage"),
            api=raw.get("api"),
            logging=raw.get("logging"),
        )

    def _source(self, name: str) -> dict[str, Any]:
        section = self.sources.get(name)
        return section if isinstance(section, dict) else {}

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/omnimarket.duckdb")

    @property
    def upsert_chunk_size(self) -> int:
        return int(self.storage.get("upsert_chunk_size", 1000))

    @property
    def refresh_interval_ms(self) -> int:
        return int(self.refresh.get("interval_ms", 60_000))

    @property
    def refresh_interval_sec(self) -> float:
        return self.refresh_interval_ms / 1000.0

    @property
    def stale_threshold_minutes(self) -> int:
        return int(self.refresh.get("stale_threshold_minutes", 24 * 60))

    @property
    def request_timeout_ms(self) -> int:
        return int(self.sources.get("request_timeout_ms", 30_000))

    @property
    def request_timeout_sec(self) -> float:
        return self.request_timeout_ms / 1000.0

    @property
    def polymarket_enabled(self) -> bool:
        return bool(self._source("polymarket").get("enabled", True))

    @property
    def polymarket_api_base(self) -> str:
        return self._source("polymarket").get("api_base", "https://gamma-api.polymarket.com")

    @property
    def polymarket_limit(self) -> int:
        return int(self._source("polymarket").get("limit", 100))

    @property
    def kalshi_enabled(self) -> bool:
        return bool(self._source("kalshi").get("enabled", True))

    @property
    def kalshi_api_base(self) -> str:
        return self._source("kalshi").get(
            "api_base", "https://api.elections.kalshi.com/trade-api/v2"
        )

    @property
    def kalshi_limit(self) -> int:
        return int(self._source("kalshi").get("limit", 100))

    @property
    def api_host(self) -> str:
        return self.api.get("host", "127.0.0.1")

    @property
    def api_port(self) -> int:
        return int(self.api.get("port", 8000))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
