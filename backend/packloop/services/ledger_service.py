# Overview: Deposit ledger; account balances plus the append-only transaction log.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import InsufficientFunds, LedgerCorruption, NotFound, ValidationError
from ..models import DepositAccount, DepositReason, DepositTransaction
from ..validation import parse_choice, require_positive_cents
from .audit_service import EVENT_ADJUST, EVENT_PENALTY, record_audit_event
from .concurrency import lock_for_update, run_atomic
from packloop.time_utils import resolve_now
"""
Deposit Ledger Invariants (authoritative)

- balance_cents == SUM(delta_cents) over the account's transactions, always.
- Transactions are append-only: never updated, never deleted by the service.
- Every balance change writes exactly one transaction with the same delta,
  in the same DB transaction, against a row-locked versioned account.
- A drift between the two is LedgerCorruption: logged at CRITICAL, raised,
  never repaired automatically.
- Only reasons in NEGATIVE_BALANCE_REASONS may take a balance below zero;
  checkout_hold never may.
"""

CHECKOUT_REF_TABLE = "checkouts"


# =============================================================================
# ACCOUNT LOOKUPS
# =============================================================================

def get_account(account_id: int) -> DepositAccount:
    account = db.session.get(DepositAccount, account_id)
    if account is None:
        raise NotFound("Deposit account", account_id)
    return account


def lock_account(account_id: int) -> DepositAccount:
    account = lock_for_update(
        db.session.query(DepositAccount).filter(DepositAccount.id == account_id)
    ).first()
    if account is None:
        raise NotFound("Deposit account", account_id)
    return account


def lock_account_for_customer(customer_id: int) -> DepositAccount:
    account = lock_for_update(
        db.session.query(DepositAccount).filter(DepositAccount.customer_id == customer_id)
    ).first()
    if account is None:
        raise NotFound("Deposit account for customer", customer_id)
    return account


def ledger_sum(account_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(DepositTransaction.delta_cents), 0))
        .filter(DepositTransaction.account_id == account_id)
        .scalar()
    )
    return int(total or 0)


# =============================================================================
# POSTING (caller owns the transaction)
# =============================================================================

def _may_overdraw(reason: DepositReason) -> bool:
    allowed = current_app.config.get("NEGATIVE_BALANCE_REASONS", frozenset())
    if reason is DepositReason.CHECKOUT_HOLD:
        return False
    return reason.value in allowed


def post_transaction(
    account: DepositAccount,
    delta_cents: int,
    reason,
    *,
    ref_table: str | None = None,
    ref_id: int | None = None,
    now: Optional[datetime] = None,
) -> DepositTransaction:
    """
    Append one ledger row and move the balance by the same delta.

    Does not commit. `account` should be loaded with lock_account*().

    Raises:
        ValidationError: zero delta or unknown reason
        InsufficientFunds: debit would go negative for a reason that may not overdraw
    """
    reason = parse_choice(DepositReason, reason, "reason")
    if isinstance(delta_cents, bool) or not isinstance(delta_cents, int) or delta_cents == 0:
        raise ValidationError("delta_cents must be a non-zero integer")

    new_balance = account.balance_cents + delta_cents
    if delta_cents < 0 and new_balance < 0 and not _may_overdraw(reason):
        raise InsufficientFunds(
            f"Deposit account {account.id}: balance {account.balance_cents} cannot cover "
            f"{-delta_cents} for '{reason.value}'"
        )

    tx = DepositTransaction(
        account_id=account.id,
        delta_cents=delta_cents,
        reason=reason.value,
        ref_table=ref_table,
        ref_id=ref_id,
        created_at=resolve_now(now),
    )
    account.balance_cents = new_balance
    db.session.add(tx)
    db.session.flush()
    return tx


def hold_deposit(
    account: DepositAccount, amount_cents: int, *, checkout_id: int, now: Optional[datetime] = None
) -> Optional[DepositTransaction]:
    """Debit the deposit for a checkout. A zero deposit writes nothing."""
    if amount_cents == 0:
        return None
    return post_transaction(
        account,
        -amount_cents,
        DepositReason.CHECKOUT_HOLD,
        ref_table=CHECKOUT_REF_TABLE,
        ref_id=checkout_id,
        now=now,
    )


def held_amount(checkout_id: int) -> int:
    """Net amount still held for a checkout (holds minus releases)."""
    total = (
        db.session.query(func.coalesce(func.sum(DepositTransaction.delta_cents), 0))
        .filter(
            DepositTransaction.ref_table == CHECKOUT_REF_TABLE,
            DepositTransaction.ref_id == checkout_id,
            DepositTransaction.reason.in_(
                [DepositReason.CHECKOUT_HOLD.value, DepositReason.RETURN_RELEASE.value]
            ),
        )
        .scalar()
    )
    return -int(total or 0)


def release_deposit(
    account: DepositAccount, *, checkout_id: int, now: Optional[datetime] = None
) -> Optional[DepositTransaction]:
    """Credit back exactly what the checkout still holds."""
    amount = held_amount(checkout_id)
    if amount <= 0:
        return None
    return post_transaction(
        account,
        amount,
        DepositReason.RETURN_RELEASE,
        ref_table=CHECKOUT_REF_TABLE,
        ref_id=checkout_id,
        now=now,
    )


# =============================================================================
# PUBLIC OPERATIONS (own their transaction)
# =============================================================================

def credit(
    account_id: int,
    amount_cents: int,
    reason,
    *,
    ref_table: str | None = None,
    ref_id: int | None = None,
    now: Optional[datetime] = None,
) -> DepositTransaction:
    amount_cents = require_positive_cents(amount_cents)

    def _op():
        account = lock_account(account_id)
        return post_transaction(account, amount_cents, reason, ref_table=ref_table, ref_id=ref_id, now=now)

    return run_atomic(_op)


def debit(
    account_id: int,
    amount_cents: int,
    reason,
    *,
    ref_table: str | None = None,
    ref_id: int | None = None,
    now: Optional[datetime] = None,
) -> DepositTransaction:
    amount_cents = require_positive_cents(amount_cents)

    def _op():
        account = lock_account(account_id)
        return post_transaction(account, -amount_cents, reason, ref_table=ref_table, ref_id=ref_id, now=now)

    return run_atomic(_op)


def assess_penalty(
    customer_id: int,
    amount_cents: int,
    *,
    ref_table: str | None = None,
    ref_id: int | None = None,
    note: str | None = None,
    now: Optional[datetime] = None,
) -> DepositTransaction:
    """Debit a penalty (may overdraw by default policy) and audit it."""
    amount_cents = require_positive_cents(amount_cents)

    def _op():
        account = lock_account_for_customer(customer_id)
        tx = post_transaction(
            account, -amount_cents, DepositReason.PENALTY, ref_table=ref_table, ref_id=ref_id, now=now
        )
        record_audit_event(
            entity_type="customer",
            entity_id=customer_id,
            event_type=EVENT_PENALTY,
            detail={
                "account_id": account.id,
                "transaction_id": tx.id,
                "amount_cents": amount_cents,
                "ref_table": ref_table,
                "ref_id": ref_id,
                "note": note,
            },
            now=now,
        )
        return tx

    return run_atomic(_op)


def post_adjustment(
    customer_id: int,
    delta_cents: int,
    *,
    note: str | None = None,
    now: Optional[datetime] = None,
) -> DepositTransaction:
    """Signed manual correction (reason `adjustment`), audited."""
    if isinstance(delta_cents, bool) or not isinstance(delta_cents, int) or delta_cents == 0:
        raise ValidationError("delta_cents must be a non-zero integer")

    def _op():
        account = lock_account_for_customer(customer_id)
        tx = post_transaction(account, delta_cents, DepositReason.ADJUSTMENT, now=now)
        record_audit_event(
            entity_type="customer",
            entity_id=customer_id,
            event_type=EVENT_ADJUST,
            detail={
                "account_id": account.id,
                "transaction_id": tx.id,
                "delta_cents": delta_cents,
                "note": note,
            },
            now=now,
        )
        return tx

    return run_atomic(_op)


# =============================================================================
# RECONCILIATION / READS
# =============================================================================

def reconcile(account_id: int) -> int:
    """
    Verify balance_cents against the ledger sum.

    Returns the balance when they agree; otherwise logs CRITICAL and raises
    LedgerCorruption.
    """
    # column query: read the stored balance, not a cached identity-map copy
    balance = (
        db.session.query(DepositAccount.balance_cents)
        .filter(DepositAccount.id == account_id)
        .scalar()
    )
    if balance is None:
        raise NotFound("Deposit account", account_id)
    total = ledger_sum(account_id)
    if total != balance:
        current_app.logger.critical(
            "LEDGER CORRUPTION account=%s balance_cents=%s ledger_sum_cents=%s",
            account_id, balance, total,
        )
        raise LedgerCorruption(account_id, balance, total)
    return balance


def reconcile_all() -> list[dict]:
    """Reconcile every account; return the ones that drifted."""
    drifted = []
    account_ids = [row.id for row in db.session.query(DepositAccount.id).order_by(DepositAccount.id)]
    for account_id in account_ids:
        try:
            reconcile(account_id)
        except LedgerCorruption as exc:
            drifted.append({
                "account_id": exc.account_id,
                "balance_cents": exc.balance_cents,
                "ledger_sum_cents": exc.ledger_sum_cents,
            })
    return drifted


def account_statement(account_id: int) -> list[dict]:
    """Transactions in posting order, each with the running balance after it."""
    get_account(account_id)
    rows = (
        db.session.query(DepositTransaction)
        .filter(DepositTransaction.account_id == account_id)
        .order_by(DepositTransaction.id.asc())
        .all()
    )
    running = 0
    statement = []
    for tx in rows:
        running += tx.delta_cents
        entry = tx.to_dict()
        entry["running_balance_cents"] = running
        statement.append(entry)
    return statement
