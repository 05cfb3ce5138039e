import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

# Package defaults (bundled with code)
PACKAGE_CONFIG_DIR = Path(__file__).parent / "defaults"


def user_config_dir() -> Path:
    """User configs live in ./config unless UNIFIED_LEDGER_CONFIG_DIR says otherwise."""
    override = os.getenv("UNIFIED_LEDGER_CONFIG_DIR")
    if override and override.strip():
        return Path(override).expanduser()
    return Path.cwd() / "config"


class ConfigLoader:
    """Load configuration with user overrides"""

    @staticmethod
    def load_config(config_name: str) -> Dict[str, Any]:
        """
        Load config with fallback: user config -> default config

        Args:
            config_name: Name of the config file (e.g., 'settings.json')

        Raises:
            FileNotFoundError: If no config file was found

        Returns:
            Parsed JSON configuration
        """
        user_config_path = user_config_dir() / config_name
        if user_config_path.exists():
            with open(user_config_path) as f:
                return json.load(f)

        default_config_path = PACKAGE_CONFIG_DIR / config_name
        if default_config_path.exists():
            with open(default_config_path) as f:
                return json.load(f)

        raise FileNotFoundError(
            f"Config file '{config_name}' not found in:\n"
            f" - {user_config_path}\n"
            f" - {default_config_path}"
        )

    @staticmethod
    def load_parsers_config() -> Dict[str, Any]:
        """Load parsers registry configuration"""
        return ConfigLoader.load_config('parsers.json')

    @staticmethod
    def load_demo_categories_config() -> Dict[str, Any]:
        """Load the read-only demo rules and overrides"""
        return ConfigLoader.load_config('demo_categories.json')


@dataclass(frozen=True)
class AppSettings:
    """
    Tunables for caching, locking and reconciliation.

    Usage:
        # Production - loads settings.json through ConfigLoader
        settings = AppSettings.load()

        # Testing - inject values
        settings = AppSettings(stale_after_hours=0.5)
    """
    stale_after_hours: float = 1.0
    lock_ttl_seconds: Dict[str, float] = field(default_factory=lambda: {
        "trading212-export": 90,
        "bank-account-refresh": 60,
        "credit-card-refresh": 60,
    })
    default_lock_ttl_seconds: float = 60
    initial_lookback_days: int = 365
    export_wait_seconds: float = 30
    export_poll_attempts: int = 5
    export_poll_interval_seconds: float = 10
    keepalive_seconds: float = 25
    mirror_amount_tolerance: float = 1.0
    mirror_window_hours: float = 72
    database_path: str = "data/ledger.db"
    truelayer_data_url: str = "https://api.truelayer.com/data/v1"
    trading212_export_url: str = "https://live.trading212.com/api/v0/history/exports"
    trading212_balance_url: str = "https://live.trading212.com/api/v0/equity/account/cash"
    request_timeout_seconds: float = 30
    log_level: str = "WARNING"
    log_levels: Dict[str, str] = field(default_factory=dict)

    def lock_ttl(self, name: str) -> float:
        return float(self.lock_ttl_seconds.get(name, self.default_lock_ttl_seconds))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppSettings":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def load(cls, config: Optional[Dict[str, Any]] = None) -> "AppSettings":
        """
        Load settings.

        Args:
            config: Optional config dict. If None, loads from ConfigLoader.
        """
        if config is None:
            try:
                config = ConfigLoader.load_config('settings.json')
            except FileNotFoundError:
                config = {}
        return cls.from_dict(config)
