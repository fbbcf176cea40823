"""
Database views consumed by reporting tooling.

Their column shape is a contract:
- v_instance_last_location: (instance_id, to_loc_id, moved_at)
- v_customer_balances:      (customer_id, name, balance_cents, ledger_sum_cents)

They are created/dropped together with the tables via metadata DDL hooks,
so db.create_all() / db.drop_all() (and `flask system reset-db`) manage them.
"""
from __future__ import annotations

from sqlalchemy import DDL, event

from ..extensions import db

V_INSTANCE_LAST_LOCATION = "v_instance_last_location"
V_CUSTOMER_BALANCES = "v_customer_balances"

_LAST_LOCATION_SELECT = """
SELECT instance_id, to_loc_id, moved_at
FROM (
    SELECT m.instance_id, m.to_loc_id, m.moved_at,
           ROW_NUMBER() OVER (
               PARTITION BY m.instance_id ORDER BY m.moved_at DESC, m.id DESC
           ) AS rn
    FROM movements m
) ranked
WHERE rn = 1
"""

_CUSTOMER_BALANCES_SELECT = """
SELECT c.id AS customer_id,
       c.name AS name,
       da.balance_cents AS balance_cents,
       COALESCE(SUM(dt.delta_cents), 0) AS ledger_sum_cents
FROM customers c
LEFT JOIN deposit_accounts da ON da.customer_id = c.id
LEFT JOIN deposit_transactions dt ON dt.account_id = da.id
GROUP BY c.id, c.name, da.balance_cents
"""

_VIEWS = (
    (V_INSTANCE_LAST_LOCATION, _LAST_LOCATION_SELECT),
    (V_CUSTOMER_BALANCES, _CUSTOMER_BALANCES_SELECT),
)

for _name, _select in _VIEWS:
    # SQLite has no CREATE OR REPLACE VIEW; PostgreSQL has no CREATE VIEW IF NOT EXISTS.
    event.listen(
        db.metadata,
        "after_create",
        DDL(f"CREATE VIEW IF NOT EXISTS {_name} AS {_select}").execute_if(dialect="sqlite"),
    )
    event.listen(
        db.metadata,
        "after_create",
        DDL(f"CREATE OR REPLACE VIEW {_name} AS {_select}").execute_if(dialect="postgresql"),
    )
    event.listen(db.metadata, "before_drop", DDL(f"DROP VIEW IF EXISTS {_name}"))
