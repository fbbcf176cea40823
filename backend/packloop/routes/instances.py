# Overview: Flask API routes for packaging instances; registration, admin transitions, whereabouts.

from flask import Blueprint

from ..decorators import json_body, json_errors
from ..models import PackagingInstance
from ..services import instance_service, quality_service, telemetry_service
from ..validation import ModelValidationPolicy, validate_payload

INSTANCE_POLICY = ModelValidationPolicy(
    writable_fields={"catalog_id", "uid_code", "birthed_at"},
    required_on_create={"catalog_id", "uid_code"},
)

instances_bp = Blueprint("instances", __name__, url_prefix="/api/instances")


@instances_bp.post("")
@json_errors
def register_instance():
    """
    Register a new physical instance (state `available`).

    Request body:
    {
        "catalog_id": int,
        "uid_code": str,
        "birthed_at": ISO-8601 (optional)
    }
    """
    patch = validate_payload(model=PackagingInstance, payload=json_body(), policy=INSTANCE_POLICY, partial=False)
    instance = instance_service.register_instance(
        catalog_id=patch["catalog_id"],
        uid_code=patch["uid_code"],
        now=patch.get("birthed_at"),
    )
    return instance.to_dict(), 201


@instances_bp.get("/<int:instance_id>")
@json_errors
def get_instance(instance_id: int):
    return instance_service.get_instance(instance_id).to_dict(), 200


@instances_bp.post("/<int:instance_id>/lost")
@json_errors
def mark_lost(instance_id: int):
    return instance_service.mark_lost(instance_id).to_dict(), 200


@instances_bp.post("/<int:instance_id>/damaged")
@json_errors
def mark_damaged(instance_id: int):
    return instance_service.mark_damaged(instance_id).to_dict(), 200


@instances_bp.post("/<int:instance_id>/retire")
@json_errors
def retire(instance_id: int):
    return instance_service.retire_instance(instance_id).to_dict(), 200


@instances_bp.post("/<int:instance_id>/release")
@json_errors
def release(instance_id: int):
    return quality_service.release_instance(instance_id).to_dict(), 200


@instances_bp.get("/<int:instance_id>/location")
@json_errors
def whereabouts(instance_id: int):
    """Last known location and dwell time; null means unknown / n/a."""
    dwell = telemetry_service.dwell_time(instance_id)
    return {
        "instance_id": instance_id,
        "last_known_location_id": telemetry_service.last_known_location(instance_id),
        "dwell_seconds": dwell.total_seconds() if dwell is not None else None,
    }, 200


@instances_bp.get("/<int:instance_id>/readings")
@json_errors
def latest_readings(instance_id: int):
    readings = telemetry_service.latest_readings(instance_id)
    return {"instance_id": instance_id, "readings": {k: r.to_dict() for k, r in sorted(readings.items())}}, 200

