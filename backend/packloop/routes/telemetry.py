# Overview: Flask API routes for telemetry ingestion; movements and sensor readings.

from flask import Blueprint

from ..decorators import json_body, json_errors
from ..models import Movement, SensorReading
from ..services import telemetry_service
from ..validation import ModelValidationPolicy, validate_payload

MOVEMENT_POLICY = ModelValidationPolicy(
    writable_fields={"instance_id", "from_loc_id", "to_loc_id", "moved_at", "note"},
    required_on_create={"instance_id"},
)
READING_POLICY = ModelValidationPolicy(
    writable_fields={"instance_id", "location_id", "sensor_type", "value", "measured_at"},
    required_on_create={"sensor_type", "value"},
)

telemetry_bp = Blueprint("telemetry", __name__, url_prefix="/api")


@telemetry_bp.post("/movements")
@json_errors
def record_movement():
    """
    Append a chain-of-custody scan.

    Request body:
    {
        "instance_id": int,
        "from_loc_id": int | null (optional, unknown origin),
        "to_loc_id": int | null (optional, unknown destination),
        "moved_at": ISO-8601 (optional),
        "note": str (optional)
    }
    """
    patch = validate_payload(model=Movement, payload=json_body(), policy=MOVEMENT_POLICY, partial=False)
    movement = telemetry_service.record_movement(
        patch["instance_id"],
        from_loc_id=patch.get("from_loc_id"),
        to_loc_id=patch.get("to_loc_id"),
        note=patch.get("note"),
        moved_at=patch.get("moved_at"),
    )
    return movement.to_dict(), 201


@telemetry_bp.post("/sensor-readings")
@json_errors
def record_sensor_reading():
    patch = validate_payload(model=SensorReading, payload=json_body(), policy=READING_POLICY, partial=False)
    reading = telemetry_service.record_sensor_reading(
        sensor_type=patch["sensor_type"],
        value=patch["value"],
        instance_id=patch.get("instance_id"),
        location_id=patch.get("location_id"),
        measured_at=patch.get("measured_at"),
    )
    return reading.to_dict(), 201
