from __future__ import annotations

from ..extensions import db
from packloop.time_utils import to_utc_z
from .enums import SensorType, check_in


class SensorReading(db.Model):
    """IoT reading tied to an instance and/or a location. Never updated."""
    __tablename__ = "sensor_readings"
    __table_args__ = (
        db.CheckConstraint(check_in("sensor_type", SensorType), name="ck_sr_type"),
        db.Index("idx_sr_instance_time", "instance_id", "measured_at"),
        db.Index("idx_sr_location_time", "location_id", "measured_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer, db.ForeignKey("packaging_instances.id", ondelete="SET NULL"), nullable=True
    )
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    sensor_type = db.Column(db.String(20), nullable=False)
    value = db.Column(db.Numeric(10, 3), nullable=False)
    measured_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "location_id": self.location_id,
            "sensor_type": self.sensor_type,
            "value": float(self.value),
            "measured_at": to_utc_z(self.measured_at),
        }


class Movement(db.Model):
    """
    Chain-of-custody scan: instance moved from one location to another.

    from_loc_id NULL = origin unknown; to_loc_id NULL = destination
    unknown/removed. Ordered by (moved_at, id) per instance, the last row's
    to_loc_id is the instance's last known location.
    """
    __tablename__ = "movements"
    __table_args__ = (
        db.Index("idx_mv_instance_time", "instance_id", "moved_at"),
        db.Index("idx_mv_to_time", "to_loc_id", "moved_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer, db.ForeignKey("packaging_instances.id", ondelete="RESTRICT"), nullable=False
    )
    from_loc_id = db.Column(db.Integer, db.ForeignKey("locations.id", ondelete="RESTRICT"), nullable=True)
    to_loc_id = db.Column(db.Integer, db.ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    moved_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    note = db.Column(db.String(120), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "from_loc_id": self.from_loc_id,
            "to_loc_id": self.to_loc_id,
            "moved_at": to_utc_z(self.moved_at),
            "note": self.note,
        }
