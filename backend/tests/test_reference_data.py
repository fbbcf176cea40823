"""
Reference data tests: creation rules and deletion semantics.
"""

from datetime import timedelta

import pytest

from packloop.errors import ConflictError, NotFound, ReferenceInUse, ValidationError
from packloop.models import AuditLog, DepositAccount, DepositTransaction, Movement, Return, SensorReading
from packloop.services import loan_service, reference_service, telemetry_service

from conftest import T0


def test_location_kind_validated(db_session):
    with pytest.raises(ValidationError):
        reference_service.create_location(name="Moon Base", kind="spaceport")


def test_location_name_unique(make_location):
    make_location("retailer", name="Same Name")
    with pytest.raises(ConflictError):
        make_location("dropbox", name="Same Name")


def test_location_coordinates_range(db_session):
    with pytest.raises(ValidationError):
        reference_service.create_location(name="Nowhere", kind="dropbox", lat=91, lng=0)
    loc = reference_service.create_location(name="Somewhere", kind="dropbox", lat=52.52, lng=13.405)
    assert loc.to_dict()["lat"] == pytest.approx(52.52)


@pytest.mark.parametrize("coords", [{"lat": "NaN"}, {"lng": "Infinity"}, {"lat": float("nan")}, {"lat": "north"}])
def test_location_coordinates_must_be_finite_numbers(db_session, coords):
    with pytest.raises(ValidationError):
        reference_service.create_location(name="Nowhere", kind="dropbox", **coords)


def test_retailer_requires_retailer_location(make_location):
    hub_loc = make_location("hub")
    with pytest.raises(ValidationError):
        reference_service.create_retailer(location_id=hub_loc.id)
    with pytest.raises(NotFound):
        reference_service.create_retailer(location_id=999999)


def test_location_wrapped_only_once(make_location):
    loc = make_location("hub")
    reference_service.create_hub(location_id=loc.id)
    with pytest.raises(ConflictError):
        reference_service.create_hub(location_id=loc.id)


def test_location_kind_frozen_once_wrapped(retailer, make_location):
    with pytest.raises(ValidationError):
        reference_service.update_location(retailer.location_id, {"kind": "hub"})

    loose = make_location("dropbox")
    updated = reference_service.update_location(loose.id, {"kind": "retailer", "address": "1 Main St"})
    assert updated.kind == "retailer"
    assert updated.address == "1 Main St"


def test_customer_gets_exactly_one_account(db_session):
    customer = reference_service.create_customer(name="Grace", email="grace@example.test", now=T0)
    accounts = db_session.query(DepositAccount).filter_by(customer_id=customer.id).all()
    assert len(accounts) == 1
    assert accounts[0].balance_cents == 0
    assert customer.created_at == T0


def test_customer_email_unique(db_session):
    reference_service.create_customer(name="One", email="dup@example.test")
    with pytest.raises(ConflictError):
        reference_service.create_customer(name="Two", email="dup@example.test")


def test_catalog_deposit_rules(db_session):
    with pytest.raises(ValidationError):
        reference_service.create_catalog_entry(kind="jar", material="glass", deposit_amount_cents=-1)
    with pytest.raises(ValidationError):
        reference_service.create_catalog_entry(kind="mug", material="glass", deposit_amount_cents=100)
    with pytest.raises(ValidationError):
        reference_service.create_catalog_entry(kind="jar", material="glass", deposit_amount_cents=100, capacity_ml=0)


def test_delete_customer_cascades_account_and_ledger(make_customer, db_session):
    customer = make_customer(funded_cents=500)
    customer_id = customer.id
    account_id = db_session.query(DepositAccount.id).filter_by(customer_id=customer.id).scalar()

    reference_service.delete_customer(customer_id)

    assert db_session.get(DepositAccount, account_id) is None
    assert db_session.query(DepositTransaction).filter_by(account_id=account_id).count() == 0
    # audit entries are not owned by the customer
    assert db_session.query(AuditLog).filter_by(entity_type="customer", entity_id=customer_id).count() == 1


def test_delete_customer_with_checkouts_refused(instance, retailer, customer):
    loan_service.open_checkout(instance.id, retailer.id, customer.id, now=T0)
    with pytest.raises(ReferenceInUse):
        reference_service.delete_customer(customer.id)
    assert reference_service.get_customer(customer.id) is not None


def test_delete_customer_nulls_return_customer(instance, dropbox, make_customer, db_session):
    walker = make_customer(name="Walker", funded_cents=0)
    ret = loan_service.close_return(instance.id, dropbox.id, customer_id=walker.id, now=T0)

    reference_service.delete_customer(walker.id)

    kept = db_session.get(Return, ret.id)
    assert kept is not None
    assert kept.customer_id is None


def test_delete_location_refused_while_referenced(retailer, instance, dropbox, make_location):
    with pytest.raises(ReferenceInUse):
        reference_service.delete_location(retailer.location_id)

    loan_service.close_return(instance.id, dropbox.id, now=T0)
    with pytest.raises(ReferenceInUse):
        reference_service.delete_location(dropbox.id)

    origin = make_location("retailer")
    telemetry_service.record_movement(instance.id, from_loc_id=origin.id, moved_at=T0 + timedelta(hours=1))
    with pytest.raises(ReferenceInUse):
        reference_service.delete_location(origin.id)


def test_delete_location_nulls_movement_destination_and_readings(instance, make_location, db_session):
    loc = make_location("dropbox")
    loc_id = loc.id
    mv = telemetry_service.record_movement(instance.id, to_loc_id=loc.id, moved_at=T0)
    reading = telemetry_service.record_sensor_reading(sensor_type="humidity", value=40, location_id=loc.id)

    reference_service.delete_location(loc_id)

    assert db_session.get(Movement, mv.id).to_loc_id is None
    assert db_session.get(SensorReading, reading.id).location_id is None
    assert telemetry_service.last_known_location(instance.id) is None
    with pytest.raises(NotFound):
        reference_service.get_location(loc_id)
