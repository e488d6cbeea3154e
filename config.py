"""
config.py — runtime settings
=============================
Values come from the environment (optionally a local ``.env`` file).
Reconciliation defaults travel as an explicit ``ReconcileConfig`` so the
parsing core never reads globals.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

load_dotenv()

DEFAULT_HOURLY_RATE = 14.5
EARLIEST_MONTH = "2025-01"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r, using %s", name, raw, default)
        return default


@dataclass(frozen=True)
class ReconcileConfig:
    default_hourly_rate: float = DEFAULT_HOURLY_RATE
    earliest_month: str = EARLIEST_MONTH
    default_manager: str = "N/A"


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str]
    secret_key: str
    app_password: str
    default_restaurant_id: str
    default_hourly_rate: float
    earliest_month: str
    upsert_batch_size: int
    max_upload_mb: int

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL") or None,
            secret_key=os.getenv("FLASK_SECRET_KEY", "kpi-dashboard-dev"),
            app_password=os.getenv("APP_PASSWORD", "changeme"),
            default_restaurant_id=os.getenv("DEFAULT_RESTAURANT_ID", "rosmalen"),
            default_hourly_rate=_env_float("DEFAULT_HOURLY_RATE", DEFAULT_HOURLY_RATE),
            earliest_month=os.getenv("EARLIEST_MONTH", EARLIEST_MONTH),
            upsert_batch_size=_env_int("UPSERT_BATCH_SIZE", 50),
            max_upload_mb=_env_int("MAX_UPLOAD_MB", 50),
        )

    def reconcile_config(self) -> ReconcileConfig:
        return ReconcileConfig(
            default_hourly_rate=self.default_hourly_rate,
            earliest_month=self.earliest_month,
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Settings are read once per process."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
