"""
Configuration for tourbook.

Every recognized option is listed on one of the dataclasses below with its
default. config.json mirrors that structure:

    {
        "provider": "peek",
        "acuity": {"user_id": "...", "api_key": "..."},
        "peek": {"api_key": "...", "timeout_seconds": 5},
        "monitoring": {"healthy_max_error_rate": 10},
        "offline": {"store": "dynamodb", "dynamo_table": "tourbook-drafts"}
    }

Only the section of the selected provider is used. Unknown keys are
rejected so a typo never silently falls back to a default.
"""

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional


CONFIG_ENV_VAR = "TOURBOOK_CONFIG"
DEFAULT_CONFIG_PATH = Path("config.json")

PROVIDER_NAMES = ("acuity", "peek")

DEFAULT_API_URLS = {
    "acuity": "https://acuityscheduling.com/api/v1",
    "peek": "https://api.peek.com/v2",
}


class ConfigError(Exception):
    """Raised for unreadable or invalid configuration."""


@dataclass
class ProviderSettings:
    """Settings for the scheduling provider that backs availability and bookings."""
    name: str = "acuity"
    api_url: str = ""
    timeout_seconds: float = 10.0
    user_id: str = ""
    api_key: str = ""
    # Acuity reports no group limit, so it is configured per provider
    max_group_size: int = 8
    currency: str = "EUR"

    def __post_init__(self):
        if self.name not in PROVIDER_NAMES:
            raise ConfigError(f"Unknown provider '{self.name}'. Expected one of: {', '.join(PROVIDER_NAMES)}")
        if not self.api_url:
            self.api_url = DEFAULT_API_URLS[self.name]


@dataclass
class MonitoringSettings:
    max_events: int = 1000
    max_event_age_seconds: float = 24 * 60 * 60
    health_window_seconds: float = 30 * 60
    healthy_max_error_rate: float = 10.0
    degraded_max_error_rate: float = 25.0
    slow_response_ms: float = 5000.0
    alert_error_rate: float = 25.0
    alert_response_ms: float = 3000.0
    alert_consecutive_failures: int = 5
    alert_cooldown_seconds: float = 5 * 60


@dataclass
class OfflineSettings:
    store: str = "file"  # "file" or "dynamodb"
    drafts_dir: str = "drafts"
    dynamo_table: str = "tourbook-drafts"
    region: str = "us-east-1"
    booking_endpoint: str = "http://localhost:8000/booking"
    submit_timeout_seconds: float = 10.0
    replay_interval_seconds: float = 5 * 60

    def __post_init__(self):
        if self.store not in ("file", "dynamodb"):
            raise ConfigError(f"Unknown draft store '{self.store}'. Expected 'file' or 'dynamodb'")


@dataclass
class AppConfig:
    provider: ProviderSettings = field(default_factory=ProviderSettings)
    monitoring: MonitoringSettings = field(default_factory=MonitoringSettings)
    offline: OfflineSettings = field(default_factory=OfflineSettings)


def _build(cls, data: dict, section: str):
    if not isinstance(data, dict):
        raise ConfigError(f"Section '{section}' must be an object")

    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown option(s) in '{section}': {', '.join(unknown)}")

    return cls(**data)


def config_from_dict(data: dict) -> AppConfig:
    """Build an AppConfig from the parsed contents of config.json."""
    provider_name = data.get("provider", "acuity")
    if provider_name not in PROVIDER_NAMES:
        raise ConfigError(f"Unknown provider '{provider_name}'. Expected one of: {', '.join(PROVIDER_NAMES)}")

    allowed = {"provider", "monitoring", "offline", *PROVIDER_NAMES}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ConfigError(f"Unknown top-level option(s): {', '.join(unknown)}")

    provider_data = dict(data.get(provider_name) or {})
    provider_data["name"] = provider_name

    return AppConfig(
        provider=_build(ProviderSettings, provider_data, provider_name),
        monitoring=_build(MonitoringSettings, data.get("monitoring") or {}, "monitoring"),
        offline=_build(OfflineSettings, data.get("offline") or {}, "offline"),
    )


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load configuration from a JSON file.

    The path is taken from the argument, then the TOURBOOK_CONFIG
    environment variable, then ./config.json. A missing default file
    yields the built-in defaults; a missing explicit file is an error.
    """
    explicit = config_path or os.environ.get(CONFIG_ENV_VAR)
    path = Path(explicit) if explicit else DEFAULT_CONFIG_PATH

    if not path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {path}")
        return AppConfig()

    try:
        with open(path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a JSON object")

    return config_from_dict(data)
