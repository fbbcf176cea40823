# Overview: Flask API routes for reference data; parses input and returns JSON responses.

# backend/packloop/routes/reference.py
"""
Reference data routes: locations, retailers, hubs, customers, catalog.
"""
from flask import Blueprint

from ..decorators import json_body, json_errors
from ..models import Customer, Hub, Location, PackagingCatalog, Retailer
from ..services import reference_service
from ..validation import ModelValidationPolicy, validate_payload

LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "kind", "address", "lat", "lng"},
    required_on_create={"name", "kind"},
)
RETAILER_POLICY = ModelValidationPolicy(
    writable_fields={"location_id", "contact_email"},
    required_on_create={"location_id"},
)
HUB_POLICY = ModelValidationPolicy(
    writable_fields={"location_id", "washer_model"},
    required_on_create={"location_id"},
)
CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "phone"},
    required_on_create={"name"},
)
CATALOG_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "kind", "material", "capacity_ml", "deposit_amount_cents"},
    required_on_create={"kind", "material", "deposit_amount_cents"},
)

reference_bp = Blueprint("reference", __name__, url_prefix="/api")


@reference_bp.post("/locations")
@json_errors
def create_location():
    """
    Create a location.

    Request body:
    {
        "name": str,
        "kind": "retailer" | "hub" | "dropbox",
        "address": str (optional),
        "lat": number (optional),
        "lng": number (optional)
    }
    """
    patch = validate_payload(model=Location, payload=json_body(), policy=LOCATION_POLICY, partial=False)
    location = reference_service.create_location(**patch)
    return location.to_dict(), 201


@reference_bp.get("/locations/<int:location_id>")
@json_errors
def get_location(location_id: int):
    return reference_service.get_location(location_id).to_dict(), 200


@reference_bp.patch("/locations/<int:location_id>")
@json_errors
def update_location(location_id: int):
    patch = validate_payload(model=Location, payload=json_body(), policy=LOCATION_POLICY, partial=True)
    location = reference_service.update_location(location_id, patch)
    return location.to_dict(), 200


@reference_bp.delete("/locations/<int:location_id>")
@json_errors
def delete_location(location_id: int):
    reference_service.delete_location(location_id)
    return {"ok": True}, 200


@reference_bp.post("/retailers")
@json_errors
def create_retailer():
    patch = validate_payload(model=Retailer, payload=json_body(), policy=RETAILER_POLICY, partial=False)
    retailer = reference_service.create_retailer(**patch)
    return retailer.to_dict(), 201


@reference_bp.post("/hubs")
@json_errors
def create_hub():
    patch = validate_payload(model=Hub, payload=json_body(), policy=HUB_POLICY, partial=False)
    hub = reference_service.create_hub(**patch)
    return hub.to_dict(), 201


@reference_bp.post("/customers")
@json_errors
def create_customer():
    """Create a customer; the response includes its new deposit account."""
    patch = validate_payload(model=Customer, payload=json_body(), policy=CUSTOMER_POLICY, partial=False)
    customer = reference_service.create_customer(**patch)
    return customer.to_dict(), 201


@reference_bp.get("/customers/<int:customer_id>")
@json_errors
def get_customer(customer_id: int):
    return reference_service.get_customer(customer_id).to_dict(), 200


@reference_bp.delete("/customers/<int:customer_id>")
@json_errors
def delete_customer(customer_id: int):
    reference_service.delete_customer(customer_id)
    return {"ok": True}, 200


@reference_bp.post("/catalog")
@json_errors
def create_catalog_entry():
    patch = validate_payload(model=PackagingCatalog, payload=json_body(), policy=CATALOG_POLICY, partial=False)
    entry = reference_service.create_catalog_entry(**patch)
    return entry.to_dict(), 201
