from __future__ import annotations

from ..extensions import db
from packloop.time_utils import to_utc_z
from .enums import DepositReason, check_in


class DepositAccount(db.Model):
    """
    Per-customer deposit balance (integer cents).

    INVARIANT: balance_cents == SUM(deposit_transactions.delta_cents) for this
    account. Only services.ledger_service writes balance_cents, always in the
    same transaction as the ledger row it reflects.
    """
    __tablename__ = "deposit_accounts"
    __table_args__ = (
        db.UniqueConstraint("customer_id", name="uq_deposit_customer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(
        db.Integer, db.ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    balance_cents = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", back_populates="account")
    transactions = db.relationship(
        "DepositTransaction",
        back_populates="account",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="DepositTransaction.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "balance_cents": self.balance_cents,
            "version_id": self.version_id,
        }


class DepositTransaction(db.Model):
    """
    Append-only deposit ledger entry: +credit / -debit.

    ref_table/ref_id is a loose pointer to the originating row
    (e.g. "checkouts", 42); it is not a foreign key.
    """
    __tablename__ = "deposit_transactions"
    __table_args__ = (
        db.CheckConstraint(check_in("reason", DepositReason), name="ck_tx_reason"),
        db.CheckConstraint("delta_cents <> 0", name="ck_tx_delta_nonzero"),
        db.Index("idx_tx_account_time", "account_id", "created_at"),
        db.Index("idx_tx_ref", "ref_table", "ref_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    account_id = db.Column(
        db.Integer, db.ForeignKey("deposit_accounts.id", ondelete="CASCADE"), nullable=False
    )
    delta_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(120), nullable=False)
    ref_table = db.Column(db.String(40), nullable=True)
    ref_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    account = db.relationship("DepositAccount", back_populates="transactions")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "delta_cents": self.delta_cents,
            "reason": self.reason,
            "ref_table": self.ref_table,
            "ref_id": self.ref_id,
            "created_at": to_utc_z(self.created_at),
        }
