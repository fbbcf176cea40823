from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from packloop.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any, TypeVar

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Deposits above 9,999,999 minor units are data-entry errors, not real SKUs
MAX_DEPOSIT_CENTS = 9_999_999

MIN_SEVERITY = 1
MAX_SEVERITY = 5

E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def parse_choice(enum_cls: type[E], value: Any, field: str) -> E:
    """
    Coerce a raw value into a member of a closed enumeration.

    Unknown values are rejected here, at the boundary, so services never see
    a state/kind/result string outside the schema's check constraints.
    """
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed} (got {value!r})")


def require_positive_cents(amount: Any, field: str = "amount_cents") -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValidationError(f"{field} must be an integer")
    if amount <= 0:
        raise ValidationError(f"{field} must be > 0")
    return amount


def require_severity(severity: Any) -> int:
    if isinstance(severity, bool) or not isinstance(severity, int):
        raise ValidationError("severity must be an integer")
    if not MIN_SEVERITY <= severity <= MAX_SEVERITY:
        raise ValidationError(f"severity must be between {MIN_SEVERITY} and {MAX_SEVERITY} (got {severity})")
    return severity


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            if 'e' in stripped.lower() or '.' in stripped:
                raise ValidationError(f"{col.key} must be a plain integer")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Fixed-point numbers (coordinates, temperatures, sensor values)
    if isinstance(coltype, Numeric):
        if isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a number")
        try:
            return Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{col.key} must be a number")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_catalog(patch: dict) -> None:
    """Business rules for catalog entries not captured by column metadata."""
    deposit = patch.get("deposit_amount_cents")
    if deposit is not None:
        if deposit < 0:
            raise ValidationError("deposit_amount_cents must be >= 0")
        if deposit > MAX_DEPOSIT_CENTS:
            raise ValidationError(f"deposit_amount_cents cannot exceed {MAX_DEPOSIT_CENTS}")

    capacity = patch.get("capacity_ml")
    if capacity is not None and capacity <= 0:
        raise ValidationError("capacity_ml must be > 0")


def enforce_rules_location(patch: dict) -> None:
    lat = patch.get("lat")
    if lat is not None:
        if not lat.is_finite():
            raise ValidationError("lat must be a finite number")
        if not Decimal(-90) <= lat <= Decimal(90):
            raise ValidationError("lat must be between -90 and 90")
    lng = patch.get("lng")
    if lng is not None:
        if not lng.is_finite():
            raise ValidationError("lng must be a finite number")
        if not Decimal(-180) <= lng <= Decimal(180):
            raise ValidationError("lng must be between -180 and 180")
