# Overview: Flask API routes for deposit accounts; balance, statement, reconciliation, penalties.

from flask import Blueprint

from ..decorators import json_body, json_errors
from ..errors import ValidationError
from ..services import ledger_service

deposits_bp = Blueprint("deposits", __name__, url_prefix="/api")


def _int_field(payload: dict, field: str, *, required: bool = True):
    value = payload.get(field)
    if value is None:
        if required:
            raise ValidationError(f"Missing required field: {field}")
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    return value


@deposits_bp.get("/accounts/<int:account_id>")
@json_errors
def get_account(account_id: int):
    return ledger_service.get_account(account_id).to_dict(), 200


@deposits_bp.get("/accounts/<int:account_id>/statement")
@json_errors
def account_statement(account_id: int):
    """Ledger entries oldest first with running balance."""
    return {"account_id": account_id, "items": ledger_service.account_statement(account_id)}, 200


@deposits_bp.post("/accounts/<int:account_id>/reconcile")
@json_errors
def reconcile(account_id: int):
    """
    Verify balance == sum(ledger).

    Returns:
        200: consistent
        500: LedgerCorruption (manual remediation required)
    """
    balance = ledger_service.reconcile(account_id)
    return {"account_id": account_id, "balance_cents": balance, "consistent": True}, 200


@deposits_bp.post("/customers/<int:customer_id>/penalties")
@json_errors
def assess_penalty(customer_id: int):
    """
    Request body:
    {
        "amount_cents": int > 0,
        "ref_table": str (optional),
        "ref_id": int (optional),
        "note": str (optional)
    }
    """
    payload = json_body()
    tx = ledger_service.assess_penalty(
        customer_id,
        _int_field(payload, "amount_cents"),
        ref_table=payload.get("ref_table"),
        ref_id=_int_field(payload, "ref_id", required=False),
        note=payload.get("note"),
    )
    return tx.to_dict(), 201


@deposits_bp.post("/customers/<int:customer_id>/adjustments")
@json_errors
def post_adjustment(customer_id: int):
    """
    Request body:
    {
        "delta_cents": int != 0,
        "note": str (optional)
    }
    """
    payload = json_body()
    tx = ledger_service.post_adjustment(
        customer_id,
        _int_field(payload, "delta_cents"),
        note=payload.get("note"),
    )
    return tx.to_dict(), 201
