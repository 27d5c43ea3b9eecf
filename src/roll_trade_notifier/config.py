from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import tzinfo
from zoneinfo import ZoneInfo

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    cookie: str
    deposit_webhook_url: str
    withdraw_webhook_url: str
    roll_ws_url: str
    roll_api_url: str
    heartbeat_interval_seconds: float
    reconnect_delay_seconds: float
    max_reconnect_attempts: int
    inter_message_delay_seconds: float
    throttle_fallback_seconds: float
    listed_status: str
    timezone: tzinfo
    dedup_ttl_seconds: int
    health_log_interval_seconds: int
    log_level: str


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _optional_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _optional_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def load_settings() -> Settings:
    load_dotenv()
    max_attempts = _optional_int("MAX_RECONNECT_ATTEMPTS", 5)
    if max_attempts < 1:
        raise ValueError("MAX_RECONNECT_ATTEMPTS must be at least 1")
    return Settings(
        cookie=_required("COOKIE"),
        deposit_webhook_url=_required("DISCORD_DEPOSIT_WEBHOOK_URL"),
        withdraw_webhook_url=_required("DISCORD_WITHDRAW_WEBHOOK_URL"),
        roll_ws_url=os.getenv("ROLL_WS_URL", "wss://api.csgoroll.com/graphql").strip(),
        roll_api_url=os.getenv("ROLL_API_URL", "https://api.csgoroll.com/graphql").strip(),
        heartbeat_interval_seconds=_optional_float("HEARTBEAT_INTERVAL_SECONDS", 30.0),
        reconnect_delay_seconds=_optional_float("RECONNECT_DELAY_SECONDS", 1.0),
        max_reconnect_attempts=max_attempts,
        inter_message_delay_seconds=_optional_float("INTER_MESSAGE_DELAY_SECONDS", 1.0),
        throttle_fallback_seconds=_optional_float("THROTTLE_FALLBACK_SECONDS", 5.0),
        listed_status=os.getenv("LISTED_STATUS", "LISTED").strip(),
        timezone=ZoneInfo(os.getenv("NOTIFY_TIMEZONE", "UTC").strip() or "UTC"),
        dedup_ttl_seconds=_optional_int("DEDUP_TTL_SECONDS", 3600),
        health_log_interval_seconds=_optional_int("HEALTH_LOG_INTERVAL_SECONDS", 60),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
