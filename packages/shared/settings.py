"""
Environment-driven settings for the sync pipeline and the integration client.
"""
from __future__ import annotations

import os

from packages.shared.models import SyncConfig


def _parse_bool_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _parse_float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return float(raw)


SYNC_FRESHNESS_SECONDS = _parse_float_env("SYNC_FRESHNESS_SECONDS", 300.0)
SYNC_MAX_RETRIES = int(os.getenv("SYNC_MAX_RETRIES", "3"))
SYNC_RETRY_BASE_SECONDS = _parse_float_env("SYNC_RETRY_BASE_SECONDS", 1.0)
SYNC_RETRY_CAP_SECONDS = _parse_float_env("SYNC_RETRY_CAP_SECONDS", 30.0)
SYNC_REALTIME_EVENTS = _parse_bool_env("SYNC_REALTIME_EVENTS", False)
SYNC_CACHE_TTL_SECONDS = _parse_float_env("SYNC_CACHE_TTL_SECONDS", 300.0)
AUTO_SYNC_INTERVAL_SECONDS = _parse_float_env("AUTO_SYNC_INTERVAL_SECONDS", 600.0)

INTEGRATION_MODE = os.getenv("INTEGRATION_MODE", "mock").strip().lower()
INTEGRATION_BASE_URL = os.getenv("INTEGRATION_BASE_URL", "").strip()
INTEGRATION_TIMEOUT_SECONDS = _parse_float_env("INTEGRATION_TIMEOUT_SECONDS", 15.0)


def sync_config_from_env() -> SyncConfig:
    return SyncConfig(
        freshness_seconds=SYNC_FRESHNESS_SECONDS,
        max_retries=SYNC_MAX_RETRIES,
        retry_base_seconds=SYNC_RETRY_BASE_SECONDS,
        retry_cap_seconds=SYNC_RETRY_CAP_SECONDS,
        realtime_events=SYNC_REALTIME_EVENTS,
        cache_ttl_seconds=SYNC_CACHE_TTL_SECONDS,
    )
