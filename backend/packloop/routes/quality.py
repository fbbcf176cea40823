# Overview: Flask API routes for quality control; wash cycles, inspections, contamination incidents.

from flask import Blueprint

from ..decorators import json_body, json_errors
from ..errors import ValidationError
from ..models import ContaminationIncident, Inspection, WashCycle
from ..services import quality_service
from ..validation import ModelValidationPolicy, validate_payload

WASH_CYCLE_POLICY = ModelValidationPolicy(
    writable_fields={"hub_id", "batch_code", "temp_c", "detergent", "start_time"},
    required_on_create={"hub_id", "batch_code"},
)
COMPLETE_POLICY = ModelValidationPolicy(writable_fields={"end_time"})
INSPECTION_POLICY = ModelValidationPolicy(
    writable_fields={"instance_id", "wash_id", "inspector", "result", "notes", "inspected_at"},
    required_on_create={"instance_id", "result"},
)
CONTAMINATION_POLICY = ModelValidationPolicy(
    writable_fields={"instance_id", "kind", "severity", "description", "detected_at"},
    required_on_create={"instance_id", "kind", "severity"},
)

quality_bp = Blueprint("quality", __name__, url_prefix="/api")


def _instance_ids(raw) -> list[int]:
    if raw is None:
        return []
    if not isinstance(raw, list) or any(isinstance(v, bool) or not isinstance(v, int) for v in raw):
        raise ValidationError("instance_ids must be a list of integers")
    return raw


@quality_bp.post("/wash-cycles")
@json_errors
def start_wash_cycle():
    """
    Start a wash cycle at a hub.

    Request body:
    {
        "hub_id": int,
        "batch_code": str,
        "temp_c": number (optional),
        "detergent": str (optional),
        "start_time": ISO-8601 (optional),
        "instance_ids": [int] (optional; each must be at_hub)
    }
    """
    payload = dict(json_body())
    instance_ids = _instance_ids(payload.pop("instance_ids", None))
    patch = validate_payload(model=WashCycle, payload=payload, policy=WASH_CYCLE_POLICY, partial=False)
    cycle = quality_service.start_wash_cycle(
        patch["hub_id"],
        patch["batch_code"],
        temp_c=patch.get("temp_c"),
        detergent=patch.get("detergent"),
        instance_ids=instance_ids,
        now=patch.get("start_time"),
    )
    return cycle.to_dict(), 201


@quality_bp.post("/wash-cycles/<int:wash_id>/items")
@json_errors
def add_to_wash_cycle(wash_id: int):
    payload = json_body()
    instance_id = payload.get("instance_id")
    if isinstance(instance_id, bool) or not isinstance(instance_id, int):
        raise ValidationError("instance_id must be an integer")
    quality_service.add_to_wash_cycle(wash_id, instance_id)
    return quality_service.get_wash_cycle(wash_id).to_dict(), 201


@quality_bp.post("/wash-cycles/<int:wash_id>/complete")
@json_errors
def complete_wash_cycle(wash_id: int):
    """
    Request body (optional):
    {
        "end_time": ISO-8601
    }

    Returns:
        200: completed
        400: end_time before start_time
        409: already completed
    """
    patch = validate_payload(model=WashCycle, payload=json_body(), policy=COMPLETE_POLICY, partial=True)
    cycle = quality_service.complete_wash_cycle(wash_id, end_time=patch.get("end_time"))
    return cycle.to_dict(), 200


@quality_bp.post("/inspections")
@json_errors
def record_inspection():
    patch = validate_payload(model=Inspection, payload=json_body(), policy=INSPECTION_POLICY, partial=False)
    inspection = quality_service.record_inspection(
        patch["instance_id"],
        patch["result"],
        wash_id=patch.get("wash_id"),
        inspector=patch.get("inspector"),
        notes=patch.get("notes"),
        now=patch.get("inspected_at"),
    )
    return inspection.to_dict(), 201


@quality_bp.post("/contamination-incidents")
@json_errors
def record_contamination():
    """
    Returns:
        201: recorded
        400: unknown kind or severity outside 1..5
    """
    patch = validate_payload(
        model=ContaminationIncident, payload=json_body(), policy=CONTAMINATION_POLICY, partial=False
    )
    incident = quality_service.record_contamination(
        patch["instance_id"],
        patch["kind"],
        patch["severity"],
        description=patch.get("description"),
        now=patch.get("detected_at"),
    )
    return incident.to_dict(), 201
