# Overview: Reference data (locations, retailers, hubs, customers, catalog) and their delete rules.

"""
Reference Data Service

Slow-changing master data everything else points at. Rules enforced here
(on top of the schema constraints):

- A Retailer/Hub wraps exactly one Location of the matching kind.
- A Location's kind is frozen once a Retailer/Hub references it.
- Creating a Customer also opens its single DepositAccount (balance 0).
- Deletes never cascade into operational history: they either null the
  reference (returns.customer_id, movements.to_loc_id,
  sensor_readings.location_id) or are refused with ReferenceInUse.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, NotFound, ReferenceInUse, ValidationError
from ..models import (
    Checkout,
    Customer,
    DepositAccount,
    Hub,
    Location,
    LocationKind,
    Movement,
    PackagingCatalog,
    PackagingKind,
    Retailer,
    Return,
)
from ..validation import enforce_rules_catalog, enforce_rules_location, parse_choice
from .concurrency import run_atomic
from packloop.time_utils import resolve_now


def get_or_404(model, entity_id: int, label: str):
    obj = db.session.get(model, entity_id)
    if obj is None:
        raise NotFound(label, entity_id)
    return obj


def get_location(location_id: int) -> Location:
    return get_or_404(Location, location_id, "Location")


def get_retailer(retailer_id: int) -> Retailer:
    return get_or_404(Retailer, retailer_id, "Retailer")


def get_hub(hub_id: int) -> Hub:
    return get_or_404(Hub, hub_id, "Hub")


def get_customer(customer_id: int) -> Customer:
    return get_or_404(Customer, customer_id, "Customer")


def get_catalog_entry(catalog_id: int) -> PackagingCatalog:
    return get_or_404(PackagingCatalog, catalog_id, "Catalog entry")


# =============================================================================
# LOCATIONS
# =============================================================================

def _coordinate(value, field: str) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")


def _location_is_wrapped(location_id: int) -> bool:
    return (
        db.session.query(Retailer.id).filter_by(location_id=location_id).first() is not None
        or db.session.query(Hub.id).filter_by(location_id=location_id).first() is not None
    )


def create_location(
    *,
    name: str,
    kind: str,
    address: str | None = None,
    lat: Decimal | float | None = None,
    lng: Decimal | float | None = None,
) -> Location:
    kind_value = parse_choice(LocationKind, kind, "kind").value
    lat = _coordinate(lat, "lat")
    lng = _coordinate(lng, "lng")
    enforce_rules_location({"lat": lat, "lng": lng})

    def _op():
        if db.session.query(Location.id).filter_by(name=name).first() is not None:
            raise ConflictError(f"Location name '{name}' already exists")
        loc = Location(name=name, kind=kind_value, address=address, lat=lat, lng=lng)
        db.session.add(loc)
        db.session.flush()
        return loc

    return run_atomic(_op)


def update_location(location_id: int, patch: dict) -> Location:
    """
    Apply a validated patch (name, kind, address, lat, lng).

    Changing `kind` is refused once a Retailer/Hub wraps the location.
    """
    def _op():
        loc = get_location(location_id)

        if "kind" in patch:
            new_kind = parse_choice(LocationKind, patch["kind"], "kind").value
            if new_kind != loc.kind and _location_is_wrapped(loc.id):
                raise ValidationError(
                    f"Location {loc.id} kind is fixed at '{loc.kind}' because a retailer/hub references it"
                )
            loc.kind = new_kind

        if "name" in patch and patch["name"] != loc.name:
            clash = db.session.query(Location.id).filter(
                Location.name == patch["name"], Location.id != loc.id
            ).first()
            if clash is not None:
                raise ConflictError(f"Location name '{patch['name']}' already exists")
            loc.name = patch["name"]

        enforce_rules_location(patch)
        for field in ("address", "lat", "lng"):
            if field in patch:
                setattr(loc, field, patch[field])

        db.session.flush()
        return loc

    return run_atomic(_op)


def delete_location(location_id: int) -> None:
    """
    Delete a location that no retained history depends on.

    Movements ending here and sensor readings taken here keep their rows
    with the location nulled out (ON DELETE SET NULL).
    """
    def _op():
        loc = get_location(location_id)
        blockers = {
            "retailer": db.session.query(Retailer.id).filter_by(location_id=loc.id).count(),
            "hub": db.session.query(Hub.id).filter_by(location_id=loc.id).count(),
            "returns": db.session.query(Return.id).filter_by(location_id=loc.id).count(),
            "movement origins": db.session.query(Movement.id).filter_by(from_loc_id=loc.id).count(),
        }
        in_use = {k: v for k, v in blockers.items() if v}
        if in_use:
            detail = ", ".join(f"{k}={v}" for k, v in sorted(in_use.items()))
            raise ReferenceInUse(f"Location {loc.id} is still referenced ({detail})")
        db.session.delete(loc)
        db.session.flush()

    run_atomic(_op)
    # ON DELETE SET NULL happened in the database; drop stale identity-map copies
    db.session.expire_all()


# =============================================================================
# RETAILERS / HUBS
# =============================================================================

def _wrap_location(model, location_id: int, expected_kind: LocationKind, **fields):
    loc = get_location(location_id)
    if loc.kind != expected_kind.value:
        raise ValidationError(
            f"Location {loc.id} is a '{loc.kind}', expected '{expected_kind.value}'"
        )
    if db.session.query(model.id).filter_by(location_id=loc.id).first() is not None:
        raise ConflictError(f"Location {loc.id} already has a {expected_kind.value} record")
    row = model(location_id=loc.id, **fields)
    db.session.add(row)
    db.session.flush()
    return row


def create_retailer(*, location_id: int, contact_email: str | None = None) -> Retailer:
    return run_atomic(
        lambda: _wrap_location(Retailer, location_id, LocationKind.RETAILER, contact_email=contact_email)
    )


def create_hub(*, location_id: int, washer_model: str | None = None) -> Hub:
    return run_atomic(
        lambda: _wrap_location(Hub, location_id, LocationKind.HUB, washer_model=washer_model)
    )


# =============================================================================
# CUSTOMERS
# =============================================================================

def create_customer(
    *,
    name: str,
    email: str | None = None,
    phone: str | None = None,
    now: Optional[datetime] = None,
) -> Customer:
    """Create a customer together with its (single) deposit account."""
    if not name or not name.strip():
        raise ValidationError("name cannot be blank")

    def _op():
        if email and db.session.query(Customer.id).filter_by(email=email).first() is not None:
            raise ConflictError(f"Customer email '{email}' already exists")

        customer = Customer(name=name.strip(), email=email, phone=phone, created_at=resolve_now(now))
        customer.account = DepositAccount(balance_cents=0)
        db.session.add(customer)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"Customer email '{email}' already exists")
        return customer

    return run_atomic(_op)


def delete_customer(customer_id: int) -> None:
    """
    Delete a customer, its deposit account and ledger.

    Refused while checkouts reference the customer; returns keep their rows
    with customer_id nulled.
    """
    def _op():
        customer = get_customer(customer_id)
        loans = db.session.query(Checkout.id).filter_by(customer_id=customer.id).count()
        if loans:
            raise ReferenceInUse(f"Customer {customer.id} has {loans} checkout(s) on record")
        db.session.delete(customer)
        db.session.flush()

    run_atomic(_op)
    db.session.expire_all()


# =============================================================================
# CATALOG
# =============================================================================

def create_catalog_entry(
    *,
    kind: str,
    material: str,
    deposit_amount_cents: int,
    sku: str | None = None,
    capacity_ml: int | None = None,
) -> PackagingCatalog:
    kind_value = parse_choice(PackagingKind, kind, "kind").value
    if isinstance(deposit_amount_cents, bool) or not isinstance(deposit_amount_cents, int):
        raise ValidationError("deposit_amount_cents must be an integer")
    enforce_rules_catalog({"deposit_amount_cents": deposit_amount_cents, "capacity_ml": capacity_ml})
    if not material or not material.strip():
        raise ValidationError("material cannot be blank")

    def _op():
        if sku and db.session.query(PackagingCatalog.id).filter_by(sku=sku).first() is not None:
            raise ConflictError(f"SKU '{sku}' already exists")
        entry = PackagingCatalog(
            sku=sku,
            kind=kind_value,
            material=material.strip(),
            capacity_ml=capacity_ml,
            deposit_amount_cents=deposit_amount_cents,
        )
        db.session.add(entry)
        db.session.flush()
        return entry

    return run_atomic(_op)
