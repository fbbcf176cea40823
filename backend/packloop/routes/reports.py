# Overview: Flask API routes exposing the reporting views as JSON.

from flask import Blueprint

from ..decorators import json_errors
from ..services import reporting_service

reports_bp = Blueprint("reports", __name__, url_prefix="/api/views")


@reports_bp.get("/last-locations")
@json_errors
def last_locations():
    """Rows of v_instance_last_location."""
    return {"items": reporting_service.instance_last_locations()}, 200


@reports_bp.get("/customer-balances")
@json_errors
def customer_balances():
    """Rows of v_customer_balances."""
    return {"items": reporting_service.customer_balances()}, 200


@reports_bp.get("/ledger-drift")
@json_errors
def ledger_drift():
    """Customers whose stored balance disagrees with their ledger; empty when healthy."""
    items = reporting_service.ledger_drift()
    return {"items": items, "consistent": not items}, 200
