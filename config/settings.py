"""
Configuration loader for the erp-bridge integration layer.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


@dataclass
class PrimaryConfig:
    """Authoritative ERP backend. Credentials may be blank; calls then fail fast."""
    base_url: str = "https://api.sage.com"
    api_key: str = ""
    company_id: str = ""
    timeout_seconds: float = 30.0
    retry_attempts: int = 1             # GET requests only
    retry_backoff: float = 0.5          # multiplier for exponential wait
    endpoints: dict[str, str] = field(default_factory=dict)

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.company_id)


@dataclass
class SecondaryConfig:
    """Local application datastore REST API."""
    base_url: str = "http://localhost:3003/api"
    auth_token: str = ""
    retry_attempts: int = 1
    retry_backoff: float = 0.5
    endpoints: dict[str, str] = field(default_factory=dict)


@dataclass
class SyncConfig:
    enabled: bool = False               # periodic bulk reconciliation
    interval_seconds: int = 3600
    entities: list[str] = field(default_factory=lambda: ["client", "product", "category"])
    journal_size: int = 500             # sync outcomes kept in memory


@dataclass
class Settings:
    app_name: str = "erp-bridge"
    environment: str = "development"
    debug: bool = False
    primary: PrimaryConfig = field(default_factory=PrimaryConfig)
    secondary: SecondaryConfig = field(default_factory=SecondaryConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        return os.environ.get(match.group(1), "")
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file. A missing file yields defaults."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "ERP_BRIDGE_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.environment = raw.get("environment", settings.environment) or settings.environment
        settings.debug = bool(raw.get("debug", settings.debug))

        if "primary" in raw:
            p = raw["primary"] or {}
            defaults = PrimaryConfig()
            settings.primary = PrimaryConfig(
                base_url=p.get("base_url") or defaults.base_url,
                api_key=p.get("api_key", "") or "",
                company_id=p.get("company_id", "") or "",
                timeout_seconds=_as_float(p.get("timeout_seconds"), defaults.timeout_seconds),
                retry_attempts=_as_int(p.get("retry_attempts"), defaults.retry_attempts),
                retry_backoff=_as_float(p.get("retry_backoff"), defaults.retry_backoff),
                endpoints=p.get("endpoints", {}) or {},
            )

        if "secondary" in raw:
            s = raw["secondary"] or {}
            defaults = SecondaryConfig()
            settings.secondary = SecondaryConfig(
                base_url=s.get("base_url") or defaults.base_url,
                auth_token=s.get("auth_token", "") or "",
                retry_attempts=_as_int(s.get("retry_attempts"), defaults.retry_attempts),
                retry_backoff=_as_float(s.get("retry_backoff"), defaults.retry_backoff),
                endpoints=s.get("endpoints", {}) or {},
            )

        if "sync" in raw:
            sy = raw["sync"] or {}
            defaults = SyncConfig()
            settings.sync = SyncConfig(
                enabled=bool(sy.get("enabled", defaults.enabled)),
                interval_seconds=_as_int(sy.get("interval_seconds"), defaults.interval_seconds),
                entities=sy.get("entities") or defaults.entities,
                journal_size=_as_int(sy.get("journal_size"), defaults.journal_size),
            )

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings
