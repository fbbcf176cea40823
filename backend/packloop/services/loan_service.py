# Overview: Loan cycle; checkout/return pairing, deposit hold/release and overdue detection.

"""
Loan Cycle Service

================================================================================
CHECKOUT:  instance (available | at_retailer) -> in_use
           + checkout_hold debit of the catalog deposit
RETURN:    instance -> at_retailer (retailer or dropbox location)
           + return_release credit of exactly the held amount, if matched
           (a matched return of a damaged/retired instance settles the loan
            and keeps the instance state)
================================================================================

Both are a single unit of work (run_atomic): the Checkout/Return row, the
ledger posting, the instance transition and its audit entry commit together
or not at all.

Mutual exclusion:
- uq_checkouts_open_instance (partial unique index on is_open) means two
  concurrent checkouts of the same instance cannot both commit.
- uq_returns_checkout means two concurrent returns cannot both close the
  same checkout.
Losing either race surfaces as DuplicateOpenCheckout / DuplicateReturn.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

from flask import current_app
from sqlalchemy import exists
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import (
    DuplicateOpenCheckout,
    DuplicateReturn,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from ..models import Checkout, LocationKind, Return
from . import instance_service, ledger_service
from .concurrency import run_atomic
from .reference_service import get_customer, get_location, get_retailer
from packloop.time_utils import resolve_now


RETURN_LOCATION_KINDS = frozenset({LocationKind.RETAILER.value, LocationKind.DROPBOX.value})


@dataclass(frozen=True)
class OverdueCheckout:
    checkout: Checkout
    due_at: datetime
    days_overdue: int

    def to_dict(self) -> dict:
        data = self.checkout.to_dict()
        data["days_overdue"] = self.days_overdue
        return data


def get_checkout(checkout_id: int) -> Checkout:
    checkout = db.session.get(Checkout, checkout_id)
    if checkout is None:
        raise NotFound("Checkout", checkout_id)
    return checkout


def open_checkout_for(instance_id: int) -> Optional[Checkout]:
    """The instance's open checkout (no return recorded yet), or None."""
    return (
        db.session.query(Checkout)
        .filter(Checkout.instance_id == instance_id, Checkout.is_open.is_(True))
        .order_by(Checkout.checkout_time.desc(), Checkout.id.desc())
        .first()
    )


def _resolve_due_back_days(due_back_days: Optional[int]) -> int:
    if due_back_days is None:
        return int(current_app.config.get("DEFAULT_DUE_BACK_DAYS", 7))
    if isinstance(due_back_days, bool) or not isinstance(due_back_days, int):
        raise ValidationError("due_back_days must be an integer")
    if due_back_days < 0:
        raise ValidationError("due_back_days must be >= 0")
    return due_back_days


def open_checkout(
    instance_id: int,
    retailer_id: int,
    customer_id: int,
    *,
    due_back_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Checkout:
    """
    Lend an instance to a customer at a retailer.

    Raises:
        NotFound: instance, retailer or customer missing
        InvalidStateTransition: instance not eligible or already on an open checkout
        InsufficientFunds: account cannot cover the deposit hold
        DuplicateOpenCheckout: a concurrent checkout of the same instance won
    """
    days = _resolve_due_back_days(due_back_days)
    ts = resolve_now(now)

    def _op():
        instance = instance_service.get_instance_for_update(instance_id)
        get_retailer(retailer_id)
        get_customer(customer_id)

        target = instance_service.target_state(instance_service.EVENT_CHECKOUT).value
        if open_checkout_for(instance.id) is not None:
            raise InvalidStateTransition(
                instance.id, instance.state, target, instance_service.EVENT_CHECKOUT,
                reason="instance already has an open checkout",
            )
        if not instance_service.can_transition(instance.state, instance_service.EVENT_CHECKOUT):
            raise InvalidStateTransition(instance.id, instance.state, target, instance_service.EVENT_CHECKOUT)

        account = ledger_service.lock_account_for_customer(customer_id)

        checkout = Checkout(
            instance_id=instance.id,
            retailer_id=retailer_id,
            customer_id=customer_id,
            checkout_time=ts,
            due_back_days=days,
            is_open=True,
        )
        db.session.add(checkout)
        try:
            db.session.flush()
        except IntegrityError:
            raise DuplicateOpenCheckout(f"Instance {instance_id} already has an open checkout")

        ledger_service.hold_deposit(
            account, instance.catalog.deposit_amount_cents, checkout_id=checkout.id, now=ts
        )
        instance_service.transition(instance, instance_service.EVENT_CHECKOUT, now=ts)
        return checkout

    return run_atomic(_op)


def close_return(
    instance_id: int,
    location_id: int,
    *,
    customer_id: Optional[int] = None,
    checkout_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Return:
    """
    Record an instance handed back at a retailer or dropbox.

    With no checkout_id the latest open checkout of the instance is matched;
    if there is none the return is recorded unmatched (no ledger effect).
    A matched return without customer_id takes the checkout's customer.
    A matched return always closes the checkout and releases the deposit;
    if the instance was damaged or retired meanwhile its state is kept.

    Raises:
        NotFound: instance, location, customer or checkout missing
        ValidationError: wrong location kind, checkout of another instance,
            or return time before the checkout time
        DuplicateReturn: checkout already closed
        InvalidStateTransition: unmatched return of an instance whose state does not allow one
    """
    ts = resolve_now(now)

    def _op():
        instance = instance_service.get_instance_for_update(instance_id)
        location = get_location(location_id)
        if location.kind not in RETURN_LOCATION_KINDS:
            raise ValidationError(
                f"Returns must be made at a retailer or dropbox (location {location.id} is a '{location.kind}')"
            )
        if customer_id is not None:
            get_customer(customer_id)

        if checkout_id is not None:
            checkout = get_checkout(checkout_id)
            if checkout.instance_id != instance.id:
                raise ValidationError(
                    f"Checkout {checkout.id} belongs to instance {checkout.instance_id}, not {instance.id}"
                )
            already_closed = (
                not checkout.is_open
                or db.session.query(Return.id).filter(Return.checkout_id == checkout.id).first() is not None
            )
            if already_closed:
                raise DuplicateReturn(f"Checkout {checkout.id} is already closed")
        else:
            checkout = open_checkout_for(instance.id)

        if checkout is not None and ts < checkout.checkout_time:
            raise ValidationError(f"Return time precedes checkout {checkout.id}")

        returnable = instance_service.can_transition(instance.state, instance_service.EVENT_RETURN)
        if not returnable and checkout is None:
            target = instance_service.target_state(instance_service.EVENT_RETURN).value
            raise InvalidStateTransition(instance.id, instance.state, target, instance_service.EVENT_RETURN)

        ret = Return(
            instance_id=instance.id,
            customer_id=customer_id if customer_id is not None else (checkout.customer_id if checkout else None),
            location_id=location.id,
            return_time=ts,
            checkout_id=checkout.id if checkout else None,
        )
        db.session.add(ret)
        try:
            db.session.flush()
        except IntegrityError:
            raise DuplicateReturn(f"Checkout {checkout.id if checkout else None} is already closed")

        if checkout is not None:
            checkout.is_open = False
            account = ledger_service.lock_account_for_customer(checkout.customer_id)
            ledger_service.release_deposit(account, checkout_id=checkout.id, now=ts)

        if returnable:
            instance_service.transition(instance, instance_service.EVENT_RETURN, now=ts)
        else:
            # damaged/retired while on loan: the loan still settles, the state stays
            current_app.logger.warning(
                "instance %s returned on checkout %s in state '%s'; state left unchanged",
                instance.id, checkout.id, instance.state,
            )
        return ret

    return run_atomic(_op)


def overdue_checkouts(as_of: Optional[datetime] = None) -> Iterator[OverdueCheckout]:
    """
    Yield open checkouts past their due date, most overdue first.

    Open means no Return references the checkout. Due is
    checkout_time + due_back_days; a checkout is overdue when as_of is
    strictly later. days_overdue counts whole days past due. Ties are broken
    by checkout id. Each call re-queries the database.
    """
    as_of = resolve_now(as_of)
    has_return = exists().where(Return.checkout_id == Checkout.id)
    candidates = (
        db.session.query(Checkout)
        .filter(~has_return)
        .filter(Checkout.checkout_time < as_of)
        .order_by(Checkout.id.asc())
        .all()
    )

    overdue = []
    for checkout in candidates:
        due_at = checkout.due_at
        if as_of > due_at:
            overdue.append(OverdueCheckout(checkout, due_at, (as_of - due_at).days))

    overdue.sort(key=lambda row: (-row.days_overdue, row.checkout.id))
    yield from overdue
