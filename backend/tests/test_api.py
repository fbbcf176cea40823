"""
HTTP API tests: request validation and error-to-status mapping.
"""

from datetime import datetime

from sqlalchemy import text

from packloop import time_utils


def _post(client, url, body):
    return client.post(url, json=body)


def test_health(client, db_session):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["status"] == "healthy"
    assert data["checks"]["database"]["details"] == {"instances": 0, "customers": 0}


def test_loan_cycle_over_http(client, db_session, monkeypatch):
    monkeypatch.setattr(time_utils, "utcnow", lambda: datetime(2026, 3, 1, 12, 0, 0))
    loc = _post(client, "/api/locations", {"name": "Corner Cafe", "kind": "retailer", "lat": "52.5", "lng": 13.4})
    assert loc.status_code == 201
    retailer = _post(client, "/api/retailers", {"location_id": loc.get_json()["id"]})
    assert retailer.status_code == 201
    assert retailer.get_json()["name"] == "Corner Cafe"

    customer = _post(client, "/api/customers", {"name": "Ada", "email": "ada@example.test"})
    assert customer.status_code == 201
    customer_id = customer.get_json()["id"]
    account_id = customer.get_json()["account_id"]
    assert _post(client, f"/api/customers/{customer_id}/adjustments", {"delta_cents": 500}).status_code == 201

    catalog = _post(client, "/api/catalog", {"kind": "cup", "material": "pp", "deposit_amount_cents": 150})
    instance = _post(client, "/api/instances", {"catalog_id": catalog.get_json()["id"], "uid_code": "QR-1"})
    assert instance.get_json()["state"] == "available"
    instance_id = instance.get_json()["id"]

    checkout = _post(client, "/api/checkouts", {
        "instance_id": instance_id,
        "retailer_id": retailer.get_json()["id"],
        "customer_id": customer_id,
        "due_back_days": 7,
        "checkout_time": "2026-03-02T09:00:00Z",
    })
    assert checkout.status_code == 201
    assert checkout.get_json()["due_at"] == "2026-03-09T09:00:00Z"
    assert client.get(f"/api/accounts/{account_id}").get_json()["balance_cents"] == 350

    overdue = client.get("/api/checkouts/overdue", query_string={"as_of": "2026-03-10T09:00:00Z"})
    assert overdue.status_code == 200
    assert overdue.get_json()["count"] == 1
    assert overdue.get_json()["items"][0]["days_overdue"] == 1

    ret = _post(client, "/api/returns", {
        "instance_id": instance_id,
        "location_id": loc.get_json()["id"],
        "return_time": "2026-03-04T12:00:00Z",
    })
    assert ret.status_code == 201
    assert ret.get_json()["customer_id"] == customer_id
    assert client.get(f"/api/instances/{instance_id}").get_json()["state"] == "at_retailer"

    statement = client.get(f"/api/accounts/{account_id}/statement").get_json()["items"]
    assert [row["reason"] for row in statement] == ["adjustment", "checkout_hold", "return_release"]
    assert statement[-1]["running_balance_cents"] == 500

    reconcile = _post(client, f"/api/accounts/{account_id}/reconcile", {})
    assert reconcile.status_code == 200
    assert reconcile.get_json() == {"account_id": account_id, "balance_cents": 500, "consistent": True}


def test_second_checkout_conflict(client, instance, retailer, make_customer):
    first, second = make_customer(name="First"), make_customer(name="Second")
    body = {"instance_id": instance.id, "retailer_id": retailer.id, "customer_id": first.id}
    assert _post(client, "/api/checkouts", body).status_code == 201

    resp = _post(client, "/api/checkouts", {**body, "customer_id": second.id})
    assert resp.status_code == 409
    assert "in_use" in resp.get_json()["error"]


def test_insufficient_funds_is_422(client, instance, retailer, make_customer):
    broke = make_customer(name="Broke", funded_cents=0)
    resp = _post(client, "/api/checkouts", {
        "instance_id": instance.id, "retailer_id": retailer.id, "customer_id": broke.id,
    })
    assert resp.status_code == 422
    assert client.get(f"/api/instances/{instance.id}").get_json()["state"] == "available"


def test_missing_entities_are_404(client, db_session):
    assert client.get("/api/instances/4242").status_code == 404
    assert client.get("/api/accounts/4242").status_code == 404
    assert client.get("/api/checkouts/4242").status_code == 404
    resp = _post(client, "/api/customers/4242/penalties", {"amount_cents": 100})
    assert resp.status_code == 404
    assert "4242 not found" in resp.get_json()["error"]


def test_payload_validation_is_400(client, instance):
    assert _post(client, "/api/checkouts", {"instance_id": instance.id}).status_code == 400
    assert _post(client, "/api/locations", {"name": "X", "kind": "retailer", "owner": "me"}).status_code == 400
    assert _post(client, "/api/locations", {"name": "X", "kind": "castle"}).status_code == 400
    assert _post(client, "/api/locations", {"name": "X", "kind": "retailer", "lat": "NaN"}).status_code == 400
    assert _post(client, "/api/locations", {"name": "X", "kind": "retailer", "lng": "-Infinity"}).status_code == 400
    assert _post(client, "/api/instances", {"catalog_id": 1.5, "uid_code": "QR-X"}).status_code == 400
    assert client.post("/api/movements", json=[1, 2]).status_code == 400
    bad_time = client.get("/api/checkouts/overdue", query_string={"as_of": "yesterday"})
    assert bad_time.status_code == 400


def test_contamination_severity_six_rejected(client, instance):
    resp = _post(client, "/api/contamination-incidents", {
        "instance_id": instance.id, "kind": "microbial", "severity": 6,
    })
    assert resp.status_code == 400
    assert "severity" in resp.get_json()["error"]


def test_reconcile_reports_corruption_as_500(client, customer, db_session):
    account_id = customer.account.id
    db_session.execute(text("UPDATE deposit_accounts SET balance_cents = 1 WHERE id = :id"), {"id": account_id})
    db_session.commit()

    resp = _post(client, f"/api/accounts/{account_id}/reconcile", {})
    assert resp.status_code == 500
    assert "balance" in resp.get_json()["error"].lower()

    drift = client.get("/api/views/ledger-drift").get_json()
    assert drift["consistent"] is False
    assert drift["items"][0]["ledger_sum_cents"] == 1000


def test_wash_cycle_over_http(client, hub, instance):
    moved = _post(client, "/api/movements", {"instance_id": instance.id, "to_loc_id": hub.location_id})
    assert moved.status_code == 201

    cycle = _post(client, "/api/wash-cycles", {
        "hub_id": hub.id, "batch_code": "B-100", "temp_c": 82.5,
        "start_time": "2026-03-02T10:00:00Z", "instance_ids": [instance.id],
    })
    assert cycle.status_code == 201
    wash_id = cycle.get_json()["id"]

    early = _post(client, f"/api/wash-cycles/{wash_id}/complete", {"end_time": "2026-03-02T09:00:00Z"})
    assert early.status_code == 400

    done = _post(client, f"/api/wash-cycles/{wash_id}/complete", {"end_time": "2026-03-02T11:00:00Z"})
    assert done.status_code == 200
    again = _post(client, f"/api/wash-cycles/{wash_id}/complete", {"end_time": "2026-03-02T12:00:00Z"})
    assert again.status_code == 409

    released = _post(client, f"/api/instances/{instance.id}/release", {})
    assert released.get_json()["state"] == "available"


def test_delete_location_in_use_is_409(client, retailer):
    resp = client.delete(f"/api/locations/{retailer.location_id}")
    assert resp.status_code == 409
    assert client.get(f"/api/locations/{retailer.location_id}").status_code == 200
