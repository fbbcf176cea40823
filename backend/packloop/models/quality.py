from __future__ import annotations

from ..extensions import db
from packloop.time_utils import to_utc_z
from .enums import ContaminationKind, InspectionResult, check_in


class WashCycle(db.Model):
    """
    One washer run at a hub. end_time NULL means the cycle is in progress;
    once set it is never cleared.
    """
    __tablename__ = "wash_cycles"
    __table_args__ = (
        db.Index("idx_wash_hub_time", "hub_id", "start_time"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    hub_id = db.Column(db.Integer, db.ForeignKey("hubs.id", ondelete="RESTRICT"), nullable=False)
    batch_code = db.Column(db.String(40), nullable=False)
    start_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    temp_c = db.Column(db.Numeric(5, 2), nullable=True)
    detergent = db.Column(db.String(40), nullable=True)

    hub = db.relationship("Hub")
    items = db.relationship(
        "WashCycleItem",
        back_populates="wash_cycle",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def is_open(self) -> bool:
        return self.end_time is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "hub_id": self.hub_id,
            "batch_code": self.batch_code,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "temp_c": float(self.temp_c) if self.temp_c is not None else None,
            "detergent": self.detergent,
            "instance_ids": [item.instance_id for item in self.items],
        }


class WashCycleItem(db.Model):
    """Batch membership: which instances went through which wash cycle."""
    __tablename__ = "wash_cycle_items"
    __table_args__ = (
        db.UniqueConstraint("wash_id", "instance_id", name="uq_wash_items_wash_instance"),
        db.Index("idx_wash_items_instance", "instance_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    wash_id = db.Column(db.Integer, db.ForeignKey("wash_cycles.id", ondelete="CASCADE"), nullable=False)
    instance_id = db.Column(
        db.Integer, db.ForeignKey("packaging_instances.id", ondelete="RESTRICT"), nullable=False
    )

    wash_cycle = db.relationship("WashCycle", back_populates="items")
    instance = db.relationship("PackagingInstance")


class Inspection(db.Model):
    """Post-wash (or ad-hoc) inspection result."""
    __tablename__ = "inspections"
    __table_args__ = (
        db.CheckConstraint(check_in("result", InspectionResult), name="ck_insp_result"),
        db.Index("idx_insp_instance_time", "instance_id", "inspected_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer, db.ForeignKey("packaging_instances.id", ondelete="RESTRICT"), nullable=False
    )
    wash_id = db.Column(db.Integer, db.ForeignKey("wash_cycles.id", ondelete="SET NULL"), nullable=True)
    inspector = db.Column(db.String(80), nullable=True)
    result = db.Column(db.String(12), nullable=False)
    notes = db.Column(db.String(255), nullable=True)
    inspected_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "wash_id": self.wash_id,
            "inspector": self.inspector,
            "result": self.result,
            "notes": self.notes,
            "inspected_at": to_utc_z(self.inspected_at),
        }


class ContaminationIncident(db.Model):
    __tablename__ = "contamination_incidents"
    __table_args__ = (
        db.CheckConstraint(check_in("kind", ContaminationKind), name="ck_contam_kind"),
        db.CheckConstraint("severity BETWEEN 1 AND 5", name="ck_contam_severity"),
        db.Index("idx_contam_instance_time", "instance_id", "detected_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer, db.ForeignKey("packaging_instances.id", ondelete="RESTRICT"), nullable=False
    )
    kind = db.Column(db.String(30), nullable=False)
    severity = db.Column(db.SmallInteger, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    detected_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "kind": self.kind,
            "severity": self.severity,
            "description": self.description,
            "detected_at": to_utc_z(self.detected_at),
        }
