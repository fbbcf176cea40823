# Overview: Quality-control pipeline; wash cycles, inspections and contamination incidents.

"""
Quality Control Service

WASH CYCLE:
    start_wash_cycle     open cycle at a hub, listed instances at_hub -> washing
    add_to_wash_cycle    more instances while the cycle is open
    complete_wash_cycle  stamp end_time once; still-washing items -> at_hub
    release_instance     at_hub -> available (back into circulation)

INSPECTION / CONTAMINATION:
    Recorded as plain facts. Whether they also damage the instance is
    policy, read from app config:

    FAILED_INSPECTION_MARKS_DAMAGED   bool, default False
    CONTAMINATION_DAMAGE_SEVERITY     int 1..5 or None (disabled), default None
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, CycleAlreadyClosed, NotFound, ValidationError
from ..models import (
    ContaminationIncident,
    ContaminationKind,
    Inspection,
    InspectionResult,
    InstanceState,
    PackagingInstance,
    WashCycle,
    WashCycleItem,
)
from ..validation import parse_choice, require_severity
from . import instance_service
from .concurrency import lock_for_update, run_atomic
from .reference_service import get_hub
from packloop.time_utils import resolve_now


def get_wash_cycle(wash_id: int) -> WashCycle:
    cycle = db.session.get(WashCycle, wash_id)
    if cycle is None:
        raise NotFound("Wash cycle", wash_id)
    return cycle


def _lock_wash_cycle(wash_id: int) -> WashCycle:
    cycle = lock_for_update(db.session.query(WashCycle).filter(WashCycle.id == wash_id)).first()
    if cycle is None:
        raise NotFound("Wash cycle", wash_id)
    return cycle


def _parse_temp(temp_c) -> Optional[Decimal]:
    if temp_c is None:
        return None
    if isinstance(temp_c, bool):
        raise ValidationError("temp_c must be a number")
    try:
        value = Decimal(str(temp_c).strip())
    except InvalidOperation:
        raise ValidationError("temp_c must be a number")
    if not value.is_finite():
        raise ValidationError("temp_c must be a finite number")
    return value


def _enlist(cycle: WashCycle, instance_id: int, ts: datetime) -> WashCycleItem:
    if any(item.instance_id == instance_id for item in cycle.items):
        raise ConflictError(f"Instance {instance_id} is already in wash cycle {cycle.id}")
    instance = instance_service.get_instance_for_update(instance_id)
    instance_service.transition(instance, instance_service.EVENT_WASH_START, now=ts)
    item = WashCycleItem(instance_id=instance.id)
    cycle.items.append(item)
    db.session.flush()
    return item


def start_wash_cycle(
    hub_id: int,
    batch_code: str,
    *,
    temp_c=None,
    detergent: Optional[str] = None,
    instance_ids: Iterable[int] = (),
    now: Optional[datetime] = None,
) -> WashCycle:
    if not batch_code or not str(batch_code).strip():
        raise ValidationError("batch_code cannot be blank")
    temp = _parse_temp(temp_c)
    ts = resolve_now(now)
    ids = list(dict.fromkeys(instance_ids))

    def _op():
        hub = get_hub(hub_id)
        cycle = WashCycle(
            hub_id=hub.id,
            batch_code=str(batch_code).strip(),
            start_time=ts,
            temp_c=temp,
            detergent=detergent,
        )
        db.session.add(cycle)
        db.session.flush()
        for instance_id in ids:
            _enlist(cycle, instance_id, ts)
        return cycle

    return run_atomic(_op)


def add_to_wash_cycle(wash_id: int, instance_id: int, *, now: Optional[datetime] = None) -> WashCycleItem:
    ts = resolve_now(now)

    def _op():
        cycle = _lock_wash_cycle(wash_id)
        if not cycle.is_open:
            raise CycleAlreadyClosed(f"Wash cycle {cycle.id} is already completed")
        return _enlist(cycle, instance_id, ts)

    return run_atomic(_op)


def complete_wash_cycle(wash_id: int, *, end_time: Optional[datetime] = None) -> WashCycle:
    """
    Close a wash cycle.

    Raises:
        CycleAlreadyClosed: end_time already set
        ValidationError: end_time earlier than start_time
    """
    ts = resolve_now(end_time)

    def _op():
        cycle = _lock_wash_cycle(wash_id)
        if not cycle.is_open:
            raise CycleAlreadyClosed(f"Wash cycle {cycle.id} is already completed")
        if ts < cycle.start_time:
            raise ValidationError(f"Wash cycle {cycle.id}: end_time precedes start_time")
        cycle.end_time = ts

        for item in cycle.items:
            instance = instance_service.get_instance_for_update(item.instance_id)
            # items pulled out mid-cycle (damaged, lost, ...) keep their state
            if instance.state == InstanceState.WASHING.value:
                instance_service.transition(instance, instance_service.EVENT_WASH_COMPLETE, now=ts)
        db.session.flush()
        return cycle

    return run_atomic(_op)


def release_instance(instance_id: int, *, now: Optional[datetime] = None) -> PackagingInstance:
    """Hub stock back into circulation (at_hub -> available)."""
    return instance_service.apply_event(instance_id, instance_service.EVENT_RELEASE, now=now)


def record_inspection(
    instance_id: int,
    result,
    *,
    wash_id: Optional[int] = None,
    inspector: Optional[str] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Inspection:
    outcome = parse_choice(InspectionResult, result, "result")
    ts = resolve_now(now)

    def _op():
        instance = instance_service.get_instance_for_update(instance_id)
        if wash_id is not None:
            get_wash_cycle(wash_id)
        inspection = Inspection(
            instance_id=instance.id,
            wash_id=wash_id,
            inspector=inspector,
            result=outcome.value,
            notes=notes,
            inspected_at=ts,
        )
        db.session.add(inspection)
        db.session.flush()

        if outcome is InspectionResult.FAIL:
            if current_app.config.get("FAILED_INSPECTION_MARKS_DAMAGED") and instance_service.can_transition(
                instance.state, instance_service.EVENT_INSPECTION_FAILED
            ):
                instance_service.transition(instance, instance_service.EVENT_INSPECTION_FAILED, now=ts)
            else:
                current_app.logger.info(
                    "instance %s failed inspection %s (state '%s' unchanged)",
                    instance.id, inspection.id, instance.state,
                )
        return inspection

    return run_atomic(_op)


def record_contamination(
    instance_id: int,
    kind,
    severity,
    *,
    description: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ContaminationIncident:
    contamination = parse_choice(ContaminationKind, kind, "kind")
    level = require_severity(severity)
    ts = resolve_now(now)

    def _op():
        instance = instance_service.get_instance_for_update(instance_id)
        incident = ContaminationIncident(
            instance_id=instance.id,
            kind=contamination.value,
            severity=level,
            description=description,
            detected_at=ts,
        )
        db.session.add(incident)
        db.session.flush()

        threshold = current_app.config.get("CONTAMINATION_DAMAGE_SEVERITY")
        if (
            threshold is not None
            and level >= threshold
            and instance_service.can_transition(instance.state, instance_service.EVENT_CONTAMINATION)
        ):
            instance_service.transition(instance, instance_service.EVENT_CONTAMINATION, now=ts)
        return incident

    return run_atomic(_op)
