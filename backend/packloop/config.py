# backend/packloop/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str) -> int | None:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/packloop.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///packloop.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("PACKLOOP_LOG_LEVEL", "INFO")

    # Loan defaults
    DEFAULT_DUE_BACK_DAYS = int(os.environ.get("PACKLOOP_DUE_BACK_DAYS", "7"))

    # Ledger policy: debit reasons allowed to push a balance below zero
    NEGATIVE_BALANCE_REASONS = frozenset(
        r.strip()
        for r in os.environ.get("PACKLOOP_NEGATIVE_BALANCE_REASONS", "penalty,adjustment").split(",")
        if r.strip()
    )

    # Quality-control policy switches (all off by default)
    FAILED_INSPECTION_MARKS_DAMAGED = _env_flag("PACKLOOP_FAILED_INSPECTION_MARKS_DAMAGED")
    CONTAMINATION_DAMAGE_SEVERITY = _env_int("PACKLOOP_CONTAMINATION_DAMAGE_SEVERITY")

    # Movement policy: reject movements whose origin disagrees with last known location
    STRICT_MOVEMENT_ORIGIN = _env_flag("PACKLOOP_STRICT_MOVEMENT_ORIGIN")
