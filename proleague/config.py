"""Runtime configuration read from the environment."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

DAY_MS = 86_400_000


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        return default


DATA_FILE = Path(os.environ.get("LEAGUE_DATA_FILE", "data/league.json"))

PAYOUTS: Dict[str, int] = {
    "elite": _env_int("PAYOUT_ELITE", 1_000_000),
    "mid": _env_int("PAYOUT_MID", 800_000),
    "bottom": _env_int("PAYOUT_BOTTOM", 600_000),
}
STARTING_BALANCE = _env_int("STARTING_BALANCE", 10_000_000)

CUP_BONUSES: Dict[str, int] = {
    "winner": 6_000_000,
    "runner_up": 3_600_000,
    "semifinal": 2_000_000,
    "quarterfinal": 1_200_000,
    "round_of_16": 600_000,
    "participation": 150_000,
    "none": 0,
}
CUP_POINTS: Dict[str, int] = {
    "winner": 60,
    "runner_up": 40,
    "semifinal": 25,
    "quarterfinal": 15,
    "round_of_16": 10,
    "none": 0,
}

DEFAULT_CUP = "UPCL"
CHAMPIONS_CUP_PREFIX = "UPCL_CC"

MANAGER_SESSION_HOURS = _env_int("MANAGER_SESSION_HOURS", 12)
ROSTER_CACHE_TTL = _env_int("ROSTER_CACHE_TTL", 60)


@dataclass
class Settings:
    """Values injected into the web app and the CLI."""

    data_file: Path = DATA_FILE
    secret_key: str = field(default_factory=lambda: os.environ.get("SECRET_KEY", "dev-session-secret"))
    admin_password: str = field(default_factory=lambda: os.environ.get("ADMIN_PASSWORD", ""))
    notify_webhook_url: Optional[str] = field(default_factory=lambda: os.environ.get("NOTIFY_WEBHOOK_URL") or None)
    stats_provider_url: Optional[str] = field(default_factory=lambda: os.environ.get("STATS_PROVIDER_URL") or None)
    payouts: Dict[str, int] = field(default_factory=lambda: dict(PAYOUTS))
    starting_balance: int = STARTING_BALANCE
    manager_session_hours: int = MANAGER_SESSION_HOURS
    roster_cache_ttl: int = ROSTER_CACHE_TTL
    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO"))


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or os.environ.get("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
