from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List

import yaml

_CONFIG_PATH = Path(__file__).resolve().parent / "config.yaml"

_DEFAULT_BOARD = {
    "poll_interval_seconds": 5.0,
    "incentive_dwell_seconds": 10.0,
    "met_progress_seconds": 5.0,
    "celebration_message_seconds": 4.5,
    "celebration_detail_hide_seconds": 9.5,
    "celebration_run_seconds": 10.0,
    "until_memory_max_absent_polls": 720,
    "scroller_cycle_seconds": 30.0,
}
_DEFAULT_STATUS_FEED = {
    "status_url": "http://localhost:8081/auction_items.json",
    "api_base": "http://localhost:8090",
    "timeout_seconds": 10.0,
}
_DEFAULT_FLAG_OUTBOX = {
    "retryable_statuses": [429, 502, 503, 504],
    "max_retries": 2,
}
_DEFAULT_SQLITE = {
    "busy_timeout_ms": 30000,
}
_SQLITE_JOURNAL_MODES = {"WAL", "DELETE", "TRUNCATE", "MEMORY"}
_DEFAULT_CORS_ORIGINS = ["*"]


def load_config() -> Dict[str, Any]:
    """Load the application config from YAML, returning an empty mapping on error."""
    try:
        with _CONFIG_PATH.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
            if isinstance(data, dict):
                return data
            logging.warning(
                "Config file %s is not a mapping; using defaults.", _CONFIG_PATH
            )
            return {}
    except FileNotFoundError:
        logging.warning(
            "Configuration file %s not found; using defaults.", _CONFIG_PATH
        )
        return {}
    except Exception as exc:  # noqa: BLE001
        logging.error("Failed to load configuration from %s: %s", _CONFIG_PATH, exc)
        return {}


def _coerce_positive_int(value: Any, fallback: int) -> int:
    try:
        candidate = int(value)
        return candidate if candidate > 0 else fallback
    except Exception:  # noqa: BLE001
        return fallback


def _coerce_positive_float(value: Any, fallback: float) -> float:
    try:
        candidate = float(value)
    except Exception:  # noqa: BLE001
        return fallback
    if candidate != candidate or candidate in (float("inf"), float("-inf")):
        return fallback
    return candidate if candidate > 0 else fallback


def _coerce_url(value: Any, fallback: str) -> str:
    if isinstance(value, str):
        return value.strip().rstrip("/") or fallback
    return fallback


def get_database_url(default: str) -> str:
    """Return the database URL, preferring AUCTION_BOARD_DATABASE_URL over config.yaml."""
    env_value = os.getenv("AUCTION_BOARD_DATABASE_URL")
    if env_value and env_value.strip():
        return env_value.strip()
    config = load_config()
    url = config.get("database_url")
    return str(url) if url else default


def get_sqlite_settings() -> Dict[str, Any]:
    """Return SQLite connection tuning for the configuration store."""
    config = load_config()
    section = config.get("sqlite")
    section = section if isinstance(section, dict) else {}
    settings: Dict[str, Any] = {
        key: _coerce_positive_int(section.get(key), fallback)
        for key, fallback in _DEFAULT_SQLITE.items()
    }
    journal_mode = str(section.get("journal_mode") or "WAL").upper()
    settings["journal_mode"] = journal_mode if journal_mode in _SQLITE_JOURNAL_MODES else "WAL"
    return settings


def get_board_settings() -> Dict[str, Any]:
    """Return board orchestration timings sourced from config with safe defaults."""
    config = load_config()
    section = config.get("board") or {}
    defaults = dict(_DEFAULT_BOARD)

    settings: Dict[str, Any] = {}
    for key in (
        "poll_interval_seconds",
        "incentive_dwell_seconds",
        "met_progress_seconds",
        "celebration_message_seconds",
        "celebration_detail_hide_seconds",
        "celebration_run_seconds",
        "scroller_cycle_seconds",
    ):
        settings[key] = _coerce_positive_float(section.get(key), defaults[key])

    # Stage offsets must stay ordered inside the overlay run.
    if settings["celebration_detail_hide_seconds"] <= settings["celebration_message_seconds"]:
        settings["celebration_message_seconds"] = defaults["celebration_message_seconds"]
        settings["celebration_detail_hide_seconds"] = defaults[
            "celebration_detail_hide_seconds"
        ]
    if settings["celebration_run_seconds"] < settings["celebration_detail_hide_seconds"]:
        settings["celebration_run_seconds"] = settings["celebration_detail_hide_seconds"]

    settings["until_memory_max_absent_polls"] = _coerce_positive_int(
        section.get("until_memory_max_absent_polls"),
        defaults["until_memory_max_absent_polls"],
    )
    return settings


def get_status_feed_settings() -> Dict[str, Any]:
    """
    Return the endpoints the board polls.

    Priority per endpoint:
    1) AUCTION_BOARD_STATUS_URL / AUCTION_BOARD_API_BASE env vars
    2) config.yaml status_feed section
    3) localhost defaults
    """
    config = load_config()
    section = config.get("status_feed") or {}
    defaults = dict(_DEFAULT_STATUS_FEED)

    status_url = os.getenv("AUCTION_BOARD_STATUS_URL") or section.get("status_url")
    api_base = os.getenv("AUCTION_BOARD_API_BASE") or section.get("api_base")
    return {
        "status_url": _coerce_url(status_url, defaults["status_url"]),
        "api_base": _coerce_url(api_base, defaults["api_base"]),
        "timeout_seconds": _coerce_positive_float(
            section.get("timeout_seconds"), defaults["timeout_seconds"]
        ),
    }


def get_flag_outbox_settings() -> Dict[str, Any]:
    """Return the retry policy for incentive flag-clear commands."""
    config = load_config()
    section = config.get("flag_outbox")
    policy = section if isinstance(section, dict) else {}
    merged = dict(_DEFAULT_FLAG_OUTBOX)
    merged["retryable_statuses"] = list(_DEFAULT_FLAG_OUTBOX["retryable_statuses"])

    raw_statuses = policy.get("retryable_statuses")
    if isinstance(raw_statuses, list):
        statuses: List[int] = []
        for value in raw_statuses:
            try:
                status = int(value)
            except Exception:  # noqa: BLE001
                continue
            if 100 <= status <= 599 and status not in statuses:
                statuses.append(status)
        if statuses:
            merged["retryable_statuses"] = statuses

    try:
        candidate = int(policy.get("max_retries"))
    except Exception:  # noqa: BLE001
        candidate = None
    if candidate is not None and candidate >= 0:
        merged["max_retries"] = candidate
    return merged


def get_cors_origins() -> List[str]:
    """Return the origins allowed to call the API; defaults to any origin."""
    config = load_config()
    raw = config.get("cors_origins")
    if isinstance(raw, str) and raw.strip():
        return [raw.strip()]
    if isinstance(raw, list):
        origins = [str(item).strip() for item in raw if str(item).strip()]
        if origins:
            return origins
    return list(_DEFAULT_CORS_ORIGINS)
