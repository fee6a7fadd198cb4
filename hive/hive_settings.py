"""
hive_settings.py — Environment-driven configuration for the Hive engine.

All knobs have working defaults; `HiveSettings.from_env()` overlays whatever
is set in the process environment (main.py loads `.env` first via dotenv).

Environment:
    SUPABASE_URL, SUPABASE_KEY    — record store + auth backend (optional)
    BINANCE_BASE_URL              — price source base URL
    HIVE_SYMBOL                   — market symbol (default BTCUSDT)
    HIVE_DATA_REFRESH_SECONDS     — data refresh period (default 10)
    HIVE_SIMULATION_SECONDS       — auto-simulation period (default 60)
    HIVE_AUTO_SIMULATE            — "0" disables the simulation timer
    HIVE_SCOPE_TO_OWNER           — "0" lists every agent, not just the user's
    HIVE_DEFAULT_GRANULARITY      — 1h | 1d | 1w (default 1d)
    HIVE_FEED_RETRIES             — attempts per automatic candle fetch
    HIVE_LOG_LEVEL                — loguru level for the console sink
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off")


@dataclass
class HiveSettings:
    supabase_url:          Optional[str] = None
    supabase_key:          Optional[str] = None
    binance_base_url:      str = "https://api.binance.com"
    symbol:                str = "BTCUSDT"
    data_refresh_seconds:  float = 10.0
    simulation_seconds:    float = 60.0
    auto_simulate:         bool = True
    scope_to_owner:        bool = True
    default_granularity:   str = "1d"
    reasoning_log_limit:   int = 5
    top_yield_count:       int = 5
    feed_timeout:          float = 8.0
    feed_retries:          int = 3
    feed_retry_backoff:    float = 0.5
    connectivity_timeout:  float = 10.0
    log_level:             str = "INFO"

    @property
    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "HiveSettings":
        defaults = cls()
        return cls(
            supabase_url=os.getenv("SUPABASE_URL") or None,
            supabase_key=os.getenv("SUPABASE_KEY") or os.getenv("SUPABASE_ANON_KEY") or None,
            binance_base_url=os.getenv("BINANCE_BASE_URL", defaults.binance_base_url),
            symbol=os.getenv("HIVE_SYMBOL", defaults.symbol),
            data_refresh_seconds=float(os.getenv("HIVE_DATA_REFRESH_SECONDS", defaults.data_refresh_seconds)),
            simulation_seconds=float(os.getenv("HIVE_SIMULATION_SECONDS", defaults.simulation_seconds)),
            auto_simulate=_env_bool("HIVE_AUTO_SIMULATE", defaults.auto_simulate),
            scope_to_owner=_env_bool("HIVE_SCOPE_TO_OWNER", defaults.scope_to_owner),
            default_granularity=os.getenv("HIVE_DEFAULT_GRANULARITY", defaults.default_granularity),
            feed_retries=int(os.getenv("HIVE_FEED_RETRIES", defaults.feed_retries)),
            log_level=os.getenv("HIVE_LOG_LEVEL", defaults.log_level),
        )
