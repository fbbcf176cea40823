from __future__ import annotations

from ..extensions import db
from packloop.time_utils import to_utc_z
from .enums import LocationKind, PackagingKind, check_in


def _num(value):
    return float(value) if value is not None else None


class Location(db.Model):
    """
    A physical place packaging passes through: retailer counter, wash hub or dropbox.

    `kind` is fixed once a Retailer or Hub row wraps the location; the
    service layer refuses kind changes after that point.
    """
    __tablename__ = "locations"
    __table_args__ = (
        db.CheckConstraint(check_in("kind", LocationKind), name="ck_locations_kind"),
        db.Index("idx_locations_kind", "kind"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    kind = db.Column(db.String(20), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    lat = db.Column(db.Numeric(9, 6), nullable=True)
    lng = db.Column(db.Numeric(9, 6), nullable=True)

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "kind": self.kind,
            "address": self.address,
            "lat": _num(self.lat),
            "lng": _num(self.lng),
        }


class Retailer(db.Model):
    """Retail partner; exactly one per location of kind 'retailer'."""
    __tablename__ = "retailers"
    __table_args__ = (
        db.UniqueConstraint("location_id", name="uq_retailers_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(
        db.Integer, db.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    contact_email = db.Column(db.String(190), nullable=True)

    location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "contact_email": self.contact_email,
            "name": self.location.name if self.location else None,
        }


class Hub(db.Model):
    """Washing facility; exactly one per location of kind 'hub'."""
    __tablename__ = "hubs"
    __table_args__ = (
        db.UniqueConstraint("location_id", name="uq_hubs_location"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(
        db.Integer, db.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    washer_model = db.Column(db.String(80), nullable=True)

    location = db.relationship("Location")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "location_id": self.location_id,
            "washer_model": self.washer_model,
            "name": self.location.name if self.location else None,
        }


class Customer(db.Model):
    """
    End customer borrowing packaging.

    Owns exactly one DepositAccount; deleting the customer cascades to the
    account and its ledger.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(190), nullable=True, unique=True)
    phone = db.Column(db.String(40), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship(
        "DepositAccount",
        back_populates="customer",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
            "account_id": self.account.id if self.account else None,
        }


class PackagingCatalog(db.Model):
    """
    Packaging type (SKU). Defines the deposit charged per checkout.

    There is no update path: a changed deposit means a new catalog entry.
    """
    __tablename__ = "packaging_catalog"
    __table_args__ = (
        db.CheckConstraint(check_in("kind", PackagingKind), name="ck_catalog_kind"),
        db.CheckConstraint("deposit_amount_cents >= 0", name="ck_catalog_deposit"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=True, unique=True)
    kind = db.Column(db.String(20), nullable=False)
    material = db.Column(db.String(30), nullable=False)
    capacity_ml = db.Column(db.Integer, nullable=True)
    deposit_amount_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sku": self.sku,
            "kind": self.kind,
            "material": self.material,
            "capacity_ml": self.capacity_ml,
            "deposit_amount_cents": self.deposit_amount_cents,
        }
