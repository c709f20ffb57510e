from __future__ import annotations

from sqlalchemy.orm import validates

from ..extensions import db
from stockbook.time_utils import to_utc_z


class Box(db.Model):
    """
    Product master data (a box design sold in one or more colours).

    Catalog fields (title, category, sizes, image) are owned by catalog
    management; the ledger only reads code/title/category/colours and
    snapshots them onto challan lines.

    STOCK DESIGN DECISION:
    Per-colour stock does NOT live on this row. It lives in BoxColorStock,
    one row per (box_id, normalized colour), so each bucket can be updated
    with a single conditional UPDATE instead of read-modify-write of a map.
    """
    __tablename__ = "boxes"
    __table_args__ = (
        db.Index("ix_boxes_category_title", "category", "title"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Business key, always stored uppercase
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    title = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)

    # Display colour names in catalog order; stock keys are the normalized forms
    colours = db.Column(db.JSON, nullable=False, default=list)

    # Authoritative storage in paise (frontend may only format for display)
    price_paise = db.Column(db.Integer, nullable=True)
    assembly_charge_paise = db.Column(db.Integer, nullable=False, default=0)

    # Default "cavity" shown on challan lines
    inner_size = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @validates("code")
    def _uppercase_code(self, key, value):
        return value.strip().upper() if isinstance(value, str) else value

    def __repr__(self) -> str:
        return f"<Box id={self.id} code={self.code!r} title={self.title!r}>"

    def snapshot(self) -> dict:
        """Fields copied onto challan lines at issue time."""
        return {
            "box_id": self.id,
            "box_title": self.title,
            "box_code": self.code,
            "box_category": self.category,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "title": self.title,
            "category": self.category,
            "colours": list(self.colours or []),
            "price_paise": self.price_paise,
            "assembly_charge_paise": self.assembly_charge_paise,
            "inner_size": self.inner_size,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class BoxColorStock(db.Model):
    """
    One stock bucket: quantity on hand of a box in a normalized colour.

    INVARIANTS:
    - color is always the output of normalize_color (never raw input)
    - quantity >= 0 (enforced by CHECK and by conditional UPDATEs)
    - total stock for a box = SUM(quantity) over its buckets
    """
    __tablename__ = "box_color_stock"
    __table_args__ = (
        db.UniqueConstraint("box_id", "color", name="uq_box_color_stock_box_color"),
        db.CheckConstraint("quantity >= 0", name="ck_box_color_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    box_id = db.Column(db.Integer, db.ForeignKey("boxes.id"), nullable=False, index=True)
    color = db.Column(db.String(64), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    box = db.relationship("Box", backref=db.backref("stock_buckets", lazy=True))

    def to_dict(self) -> dict:
        return {
            "box_id": self.box_id,
            "color": self.color,
            "quantity": self.quantity,
            "updated_at": to_utc_z(self.updated_at),
        }
