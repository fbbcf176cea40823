from __future__ import annotations

import json

from ..extensions import db
from packloop.time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Free-form audit record.

    No foreign keys on purpose: entity_type/entity_id is a weak back-reference
    so history survives deletion of the entity it describes.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("idx_audit_entity", "entity_type", "entity_id"),
        db.Index("idx_audit_created", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    event_type = db.Column(db.String(40), nullable=False)
    detail = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def detail_json(self):
        """Parsed detail when it holds JSON, else the raw text."""
        if self.detail is None:
            return None
        try:
            return json.loads(self.detail)
        except ValueError:
            return self.detail

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "event_type": self.event_type,
            "detail": self.detail_json(),
            "created_at": to_utc_z(self.created_at),
        }
