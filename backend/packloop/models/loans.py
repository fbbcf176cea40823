from __future__ import annotations

from datetime import datetime, timedelta

from ..extensions import db
from packloop.time_utils import to_utc_z


class Checkout(db.Model):
    """
    Loan of one instance from a retailer to a customer.

    OPEN CHECKOUT: no Return references it yet. `is_open` mirrors that fact
    so the partial unique index can guarantee at most one open checkout per
    instance even under concurrent writers. loan_service clears it in the
    same transaction that inserts the closing Return.
    """
    __tablename__ = "checkouts"
    __table_args__ = (
        db.CheckConstraint("due_back_days >= 0", name="ck_co_due_nonnegative"),
        db.Index("idx_co_instance", "instance_id"),
        db.Index("idx_co_customer_time", "customer_id", "checkout_time"),
        db.Index(
            "uq_checkouts_open_instance",
            "instance_id",
            unique=True,
            sqlite_where=db.text("is_open = 1"),
            postgresql_where=db.text("is_open"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer, db.ForeignKey("packaging_instances.id", ondelete="RESTRICT"), nullable=False
    )
    retailer_id = db.Column(
        db.Integer, db.ForeignKey("retailers.id", ondelete="RESTRICT"), nullable=False
    )
    customer_id = db.Column(
        db.Integer, db.ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False
    )
    checkout_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    due_back_days = db.Column(db.Integer, nullable=False, default=7, server_default="7")
    is_open = db.Column(db.Boolean, nullable=False, default=True)

    instance = db.relationship("PackagingInstance")
    retailer = db.relationship("Retailer")
    customer = db.relationship("Customer")

    @property
    def due_at(self) -> datetime:
        return self.checkout_time + timedelta(days=self.due_back_days)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "retailer_id": self.retailer_id,
            "customer_id": self.customer_id,
            "checkout_time": to_utc_z(self.checkout_time),
            "due_back_days": self.due_back_days,
            "due_at": to_utc_z(self.due_at),
            "is_open": self.is_open,
        }


class Return(db.Model):
    """
    An instance handed back at a retailer or dropbox.

    customer_id is optional (anonymous dropbox returns). checkout_id links
    the loan it closes; a checkout can be closed by at most one return.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("checkout_id", name="uq_returns_checkout"),
        db.Index("idx_ret_instance_time", "instance_id", "return_time"),
        db.Index("idx_ret_location_time", "location_id", "return_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer, db.ForeignKey("packaging_instances.id", ondelete="RESTRICT"), nullable=False
    )
    customer_id = db.Column(
        db.Integer, db.ForeignKey("customers.id", ondelete="SET NULL"), nullable=True
    )
    location_id = db.Column(
        db.Integer, db.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=False
    )
    return_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    checkout_id = db.Column(
        db.Integer, db.ForeignKey("checkouts.id", ondelete="SET NULL"), nullable=True
    )

    instance = db.relationship("PackagingInstance")
    location = db.relationship("Location")
    checkout = db.relationship("Checkout")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "customer_id": self.customer_id,
            "location_id": self.location_id,
            "return_time": to_utc_z(self.return_time),
            "checkout_id": self.checkout_id,
        }
