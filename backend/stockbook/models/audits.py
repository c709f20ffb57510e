from __future__ import annotations

from ..extensions import db
from stockbook.time_utils import to_utc_z


# Actions that moved stock; only these may back a challan line
STOCK_ACTIONS = ("add", "subtract")

# Informational actions recorded for history only
INFO_ACTIONS = (
    "create_challan",
    "cancel_challan",
    "create_box",
    "update_box",
)

AUDIT_ACTIONS = STOCK_ACTIONS + INFO_ACTIONS


class BoxAudit(db.Model):
    """
    Movement record: one row per stock mutation (append-only).

    LIFECYCLE:
    1. Created with used=False in the same transaction as the stock change
    2. Consumed exactly once by a challan: used=True, challan_id set

    The used/challan_id transition is the ONLY update ever applied to a row.
    It is performed by a conditional UPDATE (WHERE used = false) so two
    challans can never claim the same record.
    """
    __tablename__ = "box_audits"
    __table_args__ = (
        db.Index("ix_box_audits_used_created", "used", "created_at"),
        db.Index("ix_box_audits_box_used", "box_id", "used"),
        db.CheckConstraint("quantity >= 0", name="ck_box_audits_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    box_id = db.Column(db.Integer, db.ForeignKey("boxes.id"), nullable=True, index=True)

    # Supplied by the auth collaborator; not a foreign key (users live elsewhere)
    user_id = db.Column(db.Integer, nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    color = db.Column(db.String(64), nullable=True)
    action = db.Column(db.String(32), nullable=False, default="subtract", index=True)
    note = db.Column(db.String(255), nullable=True)

    used = db.Column(db.Boolean, nullable=False, default=False, index=True)
    challan_id = db.Column(db.Integer, db.ForeignKey("challans.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    box = db.relationship("Box")
    challan = db.relationship("Challan", foreign_keys=[challan_id], backref=db.backref("movements", lazy=True))

    def __repr__(self) -> str:
        return (
            f"<BoxAudit id={self.id} box_id={self.box_id} action={self.action} "
            f"color={self.color!r} qty={self.quantity} used={self.used}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "box_id": self.box_id,
            "box": self.box.snapshot() if self.box is not None else None,
            "user_id": self.user_id,
            "quantity": self.quantity,
            "color": self.color,
            "action": self.action,
            "note": self.note,
            "used": self.used,
            "challan_id": self.challan_id,
            "created_at": to_utc_z(self.created_at),
        }
