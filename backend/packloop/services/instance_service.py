# Overview: Asset instance registry and the instance state machine.

"""
PackLoop Instance State Machine

================================================================================
PURPOSE: Every state change of a physical packaging instance goes through here
================================================================================

STATES:
    available, in_use, at_retailer, at_hub, washing, damaged, lost, retired

    retired is TERMINAL: nothing leaves it, retired_at is stamped once.

TRANSITIONS (event: allowed predecessors -> target):

    checkout:           available, at_retailer           -> in_use
    return:             in_use, available, at_retailer,
                        lost                             -> at_retailer
    arrive_hub:         available, at_retailer, lost,
                        at_hub                           -> at_hub
    wash_start:         at_hub                           -> washing
    wash_complete:      washing                          -> at_hub
    release:            at_hub                           -> available
    inspection_failed,
    contamination,
    mark_damaged:       any non-terminal                 -> damaged
    mark_lost:          any non-terminal                 -> lost
    retire:             any non-terminal                 -> retired

RULES:
1. transition() never commits; the caller's unit of work does (run_atomic).
2. Every applied transition appends an instance/STATE_CHANGE audit entry
   with {from, to, event} in the same transaction.
3. Anything not in the table raises InvalidStateTransition.
================================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ConflictError, InvalidStateTransition, NotFound, ValidationError
from ..models import InstanceState, PackagingInstance
from .audit_service import EVENT_STATE_CHANGE, record_audit_event
from .concurrency import lock_for_update, run_atomic
from .reference_service import get_catalog_entry
from packloop.time_utils import resolve_now


TERMINAL_STATES = frozenset({InstanceState.RETIRED})
NON_TERMINAL_STATES = frozenset(s for s in InstanceState if s not in TERMINAL_STATES)

EVENT_CHECKOUT = "checkout"
EVENT_RETURN = "return"
EVENT_ARRIVE_HUB = "arrive_hub"
EVENT_WASH_START = "wash_start"
EVENT_WASH_COMPLETE = "wash_complete"
EVENT_RELEASE = "release"
EVENT_INSPECTION_FAILED = "inspection_failed"
EVENT_CONTAMINATION = "contamination"
EVENT_MARK_DAMAGED = "mark_damaged"
EVENT_MARK_LOST = "mark_lost"
EVENT_RETIRE = "retire"

S = InstanceState
TRANSITIONS: dict[str, tuple[frozenset, InstanceState]] = {
    EVENT_CHECKOUT: (frozenset({S.AVAILABLE, S.AT_RETAILER}), S.IN_USE),
    EVENT_RETURN: (frozenset({S.IN_USE, S.AVAILABLE, S.AT_RETAILER, S.LOST}), S.AT_RETAILER),
    EVENT_ARRIVE_HUB: (frozenset({S.AVAILABLE, S.AT_RETAILER, S.LOST, S.AT_HUB}), S.AT_HUB),
    EVENT_WASH_START: (frozenset({S.AT_HUB}), S.WASHING),
    EVENT_WASH_COMPLETE: (frozenset({S.WASHING}), S.AT_HUB),
    EVENT_RELEASE: (frozenset({S.AT_HUB}), S.AVAILABLE),
    EVENT_INSPECTION_FAILED: (NON_TERMINAL_STATES, S.DAMAGED),
    EVENT_CONTAMINATION: (NON_TERMINAL_STATES, S.DAMAGED),
    EVENT_MARK_DAMAGED: (NON_TERMINAL_STATES, S.DAMAGED),
    EVENT_MARK_LOST: (NON_TERMINAL_STATES, S.LOST),
    EVENT_RETIRE: (NON_TERMINAL_STATES, S.RETIRED),
}
del S


def can_transition(current: str, event: str) -> bool:
    """True if `event` is allowed from state `current`."""
    rule = TRANSITIONS.get(event)
    if rule is None:
        return False
    allowed, _target = rule
    return InstanceState(current) in allowed


def target_state(event: str) -> InstanceState:
    try:
        return TRANSITIONS[event][1]
    except KeyError:
        raise ValidationError(f"Unknown lifecycle event '{event}'")


def transition(instance: PackagingInstance, event: str, *, now: Optional[datetime] = None) -> PackagingInstance:
    """
    Apply `event` to `instance` inside the caller's transaction.

    Args:
        instance: Instance row, ideally loaded with lock_for_update
        event: One of the EVENT_* names
        now: Clock reading for retired_at and the audit entry

    Raises:
        ValidationError: unknown event
        InvalidStateTransition: event not allowed from the current state
    """
    target = target_state(event)
    current = instance.state
    if not can_transition(current, event):
        raise InvalidStateTransition(instance.id, current, target.value, event)

    ts = resolve_now(now)
    instance.state = target.value
    if target is InstanceState.RETIRED and instance.retired_at is None:
        instance.retired_at = ts

    record_audit_event(
        entity_type="instance",
        entity_id=instance.id,
        event_type=EVENT_STATE_CHANGE,
        detail={"from": current, "to": target.value, "event": event},
        now=ts,
    )
    current_app.logger.info(
        "instance %s: %s -> %s (%s)", instance.id, current, target.value, event
    )
    return instance


def get_instance(instance_id: int) -> PackagingInstance:
    instance = db.session.get(PackagingInstance, instance_id)
    if instance is None:
        raise NotFound("Instance", instance_id)
    return instance


def get_instance_for_update(instance_id: int) -> PackagingInstance:
    """Load an instance with a row lock for the current transaction."""
    instance = lock_for_update(
        db.session.query(PackagingInstance).filter(PackagingInstance.id == instance_id)
    ).first()
    if instance is None:
        raise NotFound("Instance", instance_id)
    return instance


def register_instance(*, catalog_id: int, uid_code: str, now: Optional[datetime] = None) -> PackagingInstance:
    """Birth a new instance of a catalog entry in state `available`."""
    if not uid_code or not uid_code.strip():
        raise ValidationError("uid_code cannot be blank")
    uid_code = uid_code.strip()

    def _op():
        get_catalog_entry(catalog_id)
        if db.session.query(PackagingInstance.id).filter_by(uid_code=uid_code).first() is not None:
            raise ConflictError(f"Instance uid_code '{uid_code}' already exists")
        instance = PackagingInstance(
            catalog_id=catalog_id,
            uid_code=uid_code,
            state=InstanceState.AVAILABLE.value,
            birthed_at=resolve_now(now),
        )
        db.session.add(instance)
        try:
            db.session.flush()
        except IntegrityError:
            raise ConflictError(f"Instance uid_code '{uid_code}' already exists")
        return instance

    return run_atomic(_op)


def apply_event(instance_id: int, event: str, *, now: Optional[datetime] = None) -> PackagingInstance:
    def _op():
        instance = get_instance_for_update(instance_id)
        return transition(instance, event, now=now)

    return run_atomic(_op)


def mark_lost(instance_id: int, *, now: Optional[datetime] = None) -> PackagingInstance:
    return apply_event(instance_id, EVENT_MARK_LOST, now=now)


def mark_damaged(instance_id: int, *, now: Optional[datetime] = None) -> PackagingInstance:
    return apply_event(instance_id, EVENT_MARK_DAMAGED, now=now)


def retire_instance(instance_id: int, *, now: Optional[datetime] = None) -> PackagingInstance:
    return apply_event(instance_id, EVENT_RETIRE, now=now)

