# Overview: Movement and sensor-reading streams; last known location and dwell time.

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Optional

from flask import current_app

from ..extensions import db
from ..errors import NotFound, ValidationError
from ..models import LocationKind, Movement, PackagingInstance, SensorReading, SensorType
from ..validation import parse_choice
from . import instance_service
from .concurrency import run_atomic
from .reference_service import get_location
from packloop.time_utils import resolve_now
"""
Telemetry Invariants

- Movements and sensor readings are append-only; nothing here updates or
  deletes them.
- Per instance, the movement with the greatest (moved_at, id) is the
  latest; its to_loc_id is the last known location. No ordering across
  instances is assumed.
- A movement whose from_loc_id disagrees with the previous to_loc_id is
  advisory (logged) unless STRICT_MOVEMENT_ORIGIN is set.
"""


def _latest_movements(instance_id: int, limit: int) -> list[Movement]:
    return (
        db.session.query(Movement)
        .filter(Movement.instance_id == instance_id)
        .order_by(Movement.moved_at.desc(), Movement.id.desc())
        .limit(limit)
        .all()
    )


def record_movement(
    instance_id: int,
    *,
    from_loc_id: Optional[int] = None,
    to_loc_id: Optional[int] = None,
    note: Optional[str] = None,
    moved_at: Optional[datetime] = None,
) -> Movement:
    """
    Append a chain-of-custody scan.

    Arriving at a hub moves the instance to at_hub when its state allows it;
    otherwise the movement is still kept and only a warning is logged.
    """
    ts = resolve_now(moved_at)

    def _op():
        instance = instance_service.get_instance_for_update(instance_id)
        if from_loc_id is not None:
            get_location(from_loc_id)
        destination = get_location(to_loc_id) if to_loc_id is not None else None

        previous = _latest_movements(instance.id, 1)
        if from_loc_id is not None and previous and previous[0].to_loc_id != from_loc_id:
            msg = (
                f"Instance {instance.id}: movement origin {from_loc_id} does not match "
                f"last known location {previous[0].to_loc_id}"
            )
            if current_app.config.get("STRICT_MOVEMENT_ORIGIN"):
                raise ValidationError(msg)
            current_app.logger.warning(msg)

        movement = Movement(
            instance_id=instance.id,
            from_loc_id=from_loc_id,
            to_loc_id=to_loc_id,
            moved_at=ts,
            note=note,
        )
        db.session.add(movement)
        db.session.flush()

        if destination is not None and destination.kind == LocationKind.HUB.value:
            if instance_service.can_transition(instance.state, instance_service.EVENT_ARRIVE_HUB):
                instance_service.transition(instance, instance_service.EVENT_ARRIVE_HUB, now=ts)
            else:
                current_app.logger.warning(
                    "instance %s arrived at hub location %s in state '%s'; state left unchanged",
                    instance.id, destination.id, instance.state,
                )
        return movement

    return run_atomic(_op)


def last_known_location(instance_id: int) -> Optional[int]:
    """to_loc_id of the latest movement; None when unknown or never moved."""
    instance_service.get_instance(instance_id)
    latest = _latest_movements(instance_id, 1)
    return latest[0].to_loc_id if latest else None


def dwell_time(instance_id: int) -> Optional[timedelta]:
    """Gap between the two most recent movements; None with fewer than two."""
    instance_service.get_instance(instance_id)
    latest = _latest_movements(instance_id, 2)
    if len(latest) < 2:
        return None
    return latest[0].moved_at - latest[1].moved_at


def record_sensor_reading(
    *,
    sensor_type,
    value,
    instance_id: Optional[int] = None,
    location_id: Optional[int] = None,
    measured_at: Optional[datetime] = None,
) -> SensorReading:
    kind = parse_choice(SensorType, sensor_type, "sensor_type")
    if isinstance(value, bool):
        raise ValidationError("value must be a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError("value must be a number")
    if not amount.is_finite():
        raise ValidationError("value must be a finite number")

    def _op():
        if instance_id is not None and db.session.get(PackagingInstance, instance_id) is None:
            raise NotFound("Instance", instance_id)
        if location_id is not None:
            get_location(location_id)
        reading = SensorReading(
            instance_id=instance_id,
            location_id=location_id,
            sensor_type=kind.value,
            value=amount,
            measured_at=resolve_now(measured_at),
        )
        db.session.add(reading)
        db.session.flush()
        return reading

    return run_atomic(_op)


def latest_readings(instance_id: int) -> dict[str, SensorReading]:
    """Most recent reading per sensor type for one instance."""
    instance_service.get_instance(instance_id)
    rows = (
        db.session.query(SensorReading)
        .filter(SensorReading.instance_id == instance_id)
        .order_by(SensorReading.measured_at.asc(), SensorReading.id.asc())
        .all()
    )
    latest: dict[str, SensorReading] = {}
    for row in rows:
        latest[row.sensor_type] = row
    return latest
