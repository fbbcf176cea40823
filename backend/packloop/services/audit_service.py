# Overview: Append-only audit sink; no referential checks on the entity it describes.

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

from ..extensions import db
from ..models import AuditLog
from packloop.time_utils import resolve_now
"""
Audit Log Invariants

- Append-only. No updates, no deletes.
- entity_type/entity_id is a weak back-reference; the entity may not exist
  (or may have been deleted) and that is fine.
- Written inside the caller's transaction: it commits or rolls back with
  the domain change it describes.
"""

EVENT_STATE_CHANGE = "STATE_CHANGE"
EVENT_PENALTY = "PENALTY"
EVENT_ADJUST = "ADJUST"


def record_audit_event(
    *,
    entity_type: str,
    entity_id: int,
    event_type: str,
    detail: Any = None,
    now: Optional[datetime] = None,
) -> AuditLog:
    """
    Append one audit record. Dict/list details are stored as JSON text.

    Does not commit; flushes so the id is available to the caller.
    """
    if detail is not None and not isinstance(detail, str):
        detail = json.dumps(detail, sort_keys=True, default=str)

    entry = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        event_type=event_type,
        detail=detail,
        created_at=resolve_now(now),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def audit_trail(entity_type: str, entity_id: int) -> list[AuditLog]:
    """Entries for one entity, oldest first."""
    return (
        db.session.query(AuditLog)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        .all()
    )
