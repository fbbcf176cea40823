# Overview: Flask API routes for the loan cycle; checkouts, returns, overdue listing.

from flask import Blueprint, request

from ..decorators import json_body, json_errors
from ..errors import ValidationError
from ..models import Checkout, Return
from ..services import loan_service
from ..validation import ModelValidationPolicy, validate_payload
from packloop.time_utils import parse_iso_datetime

CHECKOUT_POLICY = ModelValidationPolicy(
    writable_fields={"instance_id", "retailer_id", "customer_id", "due_back_days", "checkout_time"},
    required_on_create={"instance_id", "retailer_id", "customer_id"},
)
RETURN_POLICY = ModelValidationPolicy(
    writable_fields={"instance_id", "location_id", "customer_id", "checkout_id", "return_time"},
    required_on_create={"instance_id", "location_id"},
)

loans_bp = Blueprint("loans", __name__, url_prefix="/api")


@loans_bp.post("/checkouts")
@json_errors
def open_checkout():
    """
    Lend an instance.

    Request body:
    {
        "instance_id": int,
        "retailer_id": int,
        "customer_id": int,
        "due_back_days": int (optional, default DEFAULT_DUE_BACK_DAYS),
        "checkout_time": ISO-8601 (optional)
    }

    Returns:
        201: Checkout opened, deposit held
        404: instance/retailer/customer not found
        409: instance not eligible / already checked out
        422: insufficient funds for the deposit hold
    """
    patch = validate_payload(model=Checkout, payload=json_body(), policy=CHECKOUT_POLICY, partial=False)
    checkout = loan_service.open_checkout(
        patch["instance_id"],
        patch["retailer_id"],
        patch["customer_id"],
        due_back_days=patch.get("due_back_days"),
        now=patch.get("checkout_time"),
    )
    return checkout.to_dict(), 201


@loans_bp.get("/checkouts/overdue")
@json_errors
def overdue():
    """
    Open checkouts past due, most overdue first.

    Query params:
    - as_of: ISO-8601 (optional, default now)
    """
    raw = request.args.get("as_of")
    try:
        as_of = parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 datetime")
    items = [row.to_dict() for row in loan_service.overdue_checkouts(as_of)]
    return {"items": items, "count": len(items)}, 200


@loans_bp.get("/checkouts/<int:checkout_id>")
@json_errors
def get_checkout(checkout_id: int):
    return loan_service.get_checkout(checkout_id).to_dict(), 200


@loans_bp.post("/returns")
@json_errors
def close_return():
    """
    Record a return at a retailer or dropbox.

    Request body:
    {
        "instance_id": int,
        "location_id": int,
        "customer_id": int (optional),
        "checkout_id": int (optional; latest open checkout is matched otherwise),
        "return_time": ISO-8601 (optional)
    }
    """
    patch = validate_payload(model=Return, payload=json_body(), policy=RETURN_POLICY, partial=False)
    ret = loan_service.close_return(
        patch["instance_id"],
        patch["location_id"],
        customer_id=patch.get("customer_id"),
        checkout_id=patch.get("checkout_id"),
        now=patch.get("return_time"),
    )
    return ret.to_dict(), 201
