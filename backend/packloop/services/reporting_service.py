# Overview: Read-only access to the reporting views.

from __future__ import annotations

from sqlalchemy import text

from ..extensions import db
from ..models import V_CUSTOMER_BALANCES, V_INSTANCE_LAST_LOCATION
from packloop.time_utils import to_utc_z


def _as_datetime_str(value):
    # SQLite hands view timestamps back as text
    if value is None or isinstance(value, str):
        return value
    return to_utc_z(value)


def instance_last_locations() -> list[dict]:
    rows = db.session.execute(
        text(f"SELECT instance_id, to_loc_id, moved_at FROM {V_INSTANCE_LAST_LOCATION} ORDER BY instance_id")
    ).mappings()
    return [
        {
            "instance_id": row["instance_id"],
            "to_loc_id": row["to_loc_id"],
            "moved_at": _as_datetime_str(row["moved_at"]),
        }
        for row in rows
    ]


def customer_balances() -> list[dict]:
    rows = db.session.execute(
        text(
            f"SELECT customer_id, name, balance_cents, ledger_sum_cents "
            f"FROM {V_CUSTOMER_BALANCES} ORDER BY customer_id"
        )
    ).mappings()
    return [
        {
            "customer_id": row["customer_id"],
            "name": row["name"],
            "balance_cents": row["balance_cents"],
            "ledger_sum_cents": int(row["ledger_sum_cents"]),
        }
        for row in rows
    ]


def ledger_drift() -> list[dict]:
    """Customers whose stored balance disagrees with their ledger."""
    return [
        row for row in customer_balances()
        if row["balance_cents"] is not None and row["balance_cents"] != row["ledger_sum_cents"]
    ]
