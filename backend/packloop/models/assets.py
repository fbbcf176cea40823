from __future__ import annotations

from ..extensions import db
from packloop.time_utils import to_utc_z
from .enums import InstanceState, check_in


class PackagingInstance(db.Model):
    """
    One physical, individually tracked unit (QR/RFID code in uid_code).

    State changes go through services.instance_service only; the column is
    guarded by a check constraint and versioned for optimistic locking.
    """
    __tablename__ = "packaging_instances"
    __table_args__ = (
        db.UniqueConstraint("uid_code", name="uq_instances_uid"),
        db.CheckConstraint(check_in("state", InstanceState), name="ck_instances_state"),
        db.Index("idx_instances_catalog", "catalog_id"),
        db.Index("idx_instances_state", "state"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    catalog_id = db.Column(
        db.Integer, db.ForeignKey("packaging_catalog.id", ondelete="RESTRICT"), nullable=False
    )
    uid_code = db.Column(db.String(64), nullable=False)
    state = db.Column(db.String(20), nullable=False, default=InstanceState.AVAILABLE.value)
    birthed_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    retired_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    catalog = db.relationship("PackagingCatalog")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PackagingInstance id={self.id} uid={self.uid_code!r} state={self.state}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "catalog_id": self.catalog_id,
            "uid_code": self.uid_code,
            "state": self.state,
            "birthed_at": to_utc_z(self.birthed_at),
            "retired_at": to_utc_z(self.retired_at) if self.retired_at else None,
            "version_id": self.version_id,
        }
