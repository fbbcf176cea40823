"""
Reporting view tests: v_instance_last_location and v_customer_balances.
"""

from datetime import timedelta

from sqlalchemy import text

from packloop.services import loan_service, reporting_service, telemetry_service

from conftest import T0


def test_last_location_view_matches_service(make_instance, make_location):
    a, b = make_instance(), make_instance()
    x, y, z = make_location("retailer"), make_location("dropbox"), make_location("retailer")

    telemetry_service.record_movement(a.id, to_loc_id=x.id, moved_at=T0)
    telemetry_service.record_movement(a.id, from_loc_id=x.id, to_loc_id=y.id, moved_at=T0 + timedelta(hours=2))
    # out-of-order arrival; the later scan still wins
    telemetry_service.record_movement(a.id, to_loc_id=z.id, moved_at=T0 + timedelta(hours=1))
    telemetry_service.record_movement(b.id, to_loc_id=z.id, moved_at=T0)

    rows = {r["instance_id"]: r["to_loc_id"] for r in reporting_service.instance_last_locations()}
    assert rows == {a.id: y.id, b.id: z.id}
    assert rows[a.id] == telemetry_service.last_known_location(a.id)


def test_last_location_view_omits_instances_without_movements(instance):
    assert reporting_service.instance_last_locations() == []


def test_last_location_view_tie_breaks_on_id(instance, make_location):
    first, second = make_location("retailer"), make_location("dropbox")
    telemetry_service.record_movement(instance.id, to_loc_id=first.id, moved_at=T0)
    telemetry_service.record_movement(instance.id, to_loc_id=second.id, moved_at=T0)

    [row] = reporting_service.instance_last_locations()
    assert row["to_loc_id"] == second.id


def test_customer_balances_view_after_loan_cycle(instance, retailer, make_customer):
    lender = make_customer(name="Lender")
    idle = make_customer(name="Idle", funded_cents=0)
    loan_service.open_checkout(instance.id, retailer.id, lender.id, now=T0)

    rows = {r["customer_id"]: r for r in reporting_service.customer_balances()}
    assert rows[lender.id]["name"] == "Lender"
    assert rows[lender.id]["balance_cents"] == rows[lender.id]["ledger_sum_cents"] == 850
    assert rows[idle.id]["balance_cents"] == 0
    assert rows[idle.id]["ledger_sum_cents"] == 0
    assert reporting_service.ledger_drift() == []


def test_ledger_drift_surfaces_tampered_balance(make_customer, db_session):
    healthy = make_customer(name="Healthy")
    tampered = make_customer(name="Tampered")
    db_session.execute(
        text("UPDATE deposit_accounts SET balance_cents = 999 WHERE customer_id = :id"), {"id": tampered.id}
    )
    db_session.commit()

    drift = reporting_service.ledger_drift()
    assert [(r["customer_id"], r["balance_cents"], r["ledger_sum_cents"]) for r in drift] == [
        (tampered.id, 999, 1000)
    ]
    assert healthy.id not in {r["customer_id"] for r in drift}
