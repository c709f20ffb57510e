from __future__ import annotations

from ..extensions import db
from stockbook.time_utils import to_utc_z


BATCH_STATUSES = ("pending", "completed", "cancelled")


class ClientBatch(db.Model):
    """
    Saved draft of a challan for one client.

    LIFECYCLE:
    1. pending: movement records, line overrides and manual lines collected
       over time; nothing is consumed and no stock moves
    2. completed: issued as a challan (challan_id set) in the same transaction
       that consumed its records
    3. cancelled: abandoned; its records stay available for other challans

    Lines are stored as JSON in the shape issue_challan accepts, with money
    as decimal strings.
    """
    __tablename__ = "client_batches"
    __table_args__ = (
        db.Index("ix_client_batches_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(120), nullable=False)

    # pending, completed, cancelled
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)

    audit_ids = db.Column(db.JSON, nullable=False, default=list)
    line_overrides = db.Column(db.JSON, nullable=False, default=list)
    manual_items = db.Column(db.JSON, nullable=False, default=list)

    client_name = db.Column(db.String(255), nullable=True)
    client_address = db.Column(db.Text, nullable=True)
    client_mobile = db.Column(db.String(32), nullable=True)
    client_gst_number = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    challan_id = db.Column(db.Integer, db.ForeignKey("challans.id"), nullable=True, index=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    challan = db.relationship("Challan", foreign_keys=[challan_id])
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<ClientBatch id={self.id} label={self.label!r} status={self.status}>"

    def client_details(self) -> dict | None:
        details = {
            "name": self.client_name or "",
            "address": self.client_address or "",
            "mobile": self.client_mobile or "",
            "gst_number": self.client_gst_number or "",
        }
        return details if any(details.values()) else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "status": self.status,
            "audit_ids": list(self.audit_ids or []),
            "line_overrides": list(self.line_overrides or []),
            "manual_items": list(self.manual_items or []),
            "client_details": self.client_details(),
            "notes": self.notes,
            "challan_id": self.challan_id,
            "challan_number": self.challan.number if self.challan is not None else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
