from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from stockbook.time_utils import to_utc_z


TAX_TYPES = ("GST", "NON_GST")
INVENTORY_MODES = ("dispatch", "inward", "record_only")
CHALLAN_STATUSES = ("ACTIVE", "CANCELLED")

# Inward receipts are numbered in their own series (SR/YY-YY/NNN)
DOC_TYPES = ("OUTWARD_CHALLAN", "STOCK_INWARD_RECEIPT")
RECEIPT_SERIES = "RECEIPT"
SEQUENCE_SERIES = TAX_TYPES + (RECEIPT_SERIES,)


def _rupees(paise: int | None) -> str | None:
    if paise is None:
        return None
    return str((Decimal(paise) / 100).quantize(Decimal("0.01")))


def _percent(bps: int | None) -> str | None:
    if bps is None:
        return None
    return str((Decimal(bps) / 100).quantize(Decimal("0.01")))


class Challan(db.Model):
    """
    Delivery challan (outward dispatch or record-only) or stock inward receipt.

    LIFECYCLE:
    1. ACTIVE: issued with a fresh number; totals are final
    2. CANCELLED: manual stock moves reversed; number is never reused

    DESIGN PRINCIPLES:
    - Totals are computed once at issue time and stored here; renderers must
      print these values, never recompute them
    - Lines snapshot box title/code/category so later catalog edits do not
      rewrite history
    - number is unique; outward challans draw from the per tax type series,
      inward receipts from the RECEIPT series
    """
    __tablename__ = "challans"
    __table_args__ = (
        db.UniqueConstraint("financial_year", "doc_type", "tax_type", "sequence", name="uq_challans_fy_doc_tax_seq"),
        db.Index("ix_challans_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "VPP/25-26/001")
    number = db.Column(db.String(64), nullable=False, unique=True, index=True)
    sequence = db.Column(db.Integer, nullable=False, index=True)
    financial_year = db.Column(db.String(5), nullable=False, index=True)
    tax_type = db.Column(db.String(16), nullable=False, default="GST", index=True)

    # OUTWARD_CHALLAN, STOCK_INWARD_RECEIPT
    doc_type = db.Column(db.String(32), nullable=False, default="OUTWARD_CHALLAN", index=True)

    # dispatch, inward, record_only
    inventory_mode = db.Column(db.String(16), nullable=False, default="dispatch", index=True)

    # ACTIVE, CANCELLED
    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)

    # Totals (paise) as computed by totals_service at issue time
    items_subtotal_paise = db.Column(db.Integer, nullable=False, default=0)
    assembly_total_paise = db.Column(db.Integer, nullable=False, default=0)
    packaging_charges_paise = db.Column(db.Integer, nullable=False, default=0)
    pre_discount_subtotal_paise = db.Column(db.Integer, nullable=False, default=0)
    # Percentages in basis points (10% = 1000)
    discount_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_amount_paise = db.Column(db.Integer, nullable=False, default=0)
    taxable_subtotal_paise = db.Column(db.Integer, nullable=False, default=0)
    gst_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    gst_amount_paise = db.Column(db.Integer, nullable=False, default=0)
    total_before_round_paise = db.Column(db.Integer, nullable=False, default=0)
    round_off_paise = db.Column(db.Integer, nullable=False, default=0)
    grand_total_paise = db.Column(db.Integer, nullable=False, default=0)

    # Client details (all optional)
    client_name = db.Column(db.String(255), nullable=True, index=True)
    client_address = db.Column(db.Text, nullable=True)
    client_mobile = db.Column(db.String(32), nullable=True, index=True)
    client_gst_number = db.Column(db.String(32), nullable=True)

    notes = db.Column(db.Text, nullable=True)
    hsn_code = db.Column(db.String(16), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    items = db.relationship(
        "ChallanItem",
        backref="challan",
        lazy=True,
        order_by="ChallanItem.position",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Challan id={self.id} number={self.number!r} status={self.status}>"

    def client_details(self) -> dict | None:
        details = {
            "name": self.client_name or "",
            "address": self.client_address or "",
            "mobile": self.client_mobile or "",
            "gst_number": self.client_gst_number or "",
        }
        return details if any(details.values()) else None

    def totals_dict(self) -> dict:
        return {
            "items_subtotal": _rupees(self.items_subtotal_paise),
            "assembly_total": _rupees(self.assembly_total_paise),
            "packaging_charges": _rupees(self.packaging_charges_paise),
            "pre_discount_subtotal": _rupees(self.pre_discount_subtotal_paise),
            "discount_pct": _percent(self.discount_bps),
            "discount_amount": _rupees(self.discount_amount_paise),
            "taxable_subtotal": _rupees(self.taxable_subtotal_paise),
            "gst_rate": _percent(self.gst_rate_bps),
            "gst_amount": _rupees(self.gst_amount_paise),
            "total_before_round": _rupees(self.total_before_round_paise),
            "round_off": _rupees(self.round_off_paise),
            "grand_total": _rupees(self.grand_total_paise),
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "number": self.number,
            "sequence": self.sequence,
            "financial_year": self.financial_year,
            "tax_type": self.tax_type,
            "doc_type": self.doc_type,
            "inventory_mode": self.inventory_mode,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "totals": self.totals_dict(),
            "client_details": self.client_details(),
            "notes": self.notes,
            "hsn_code": self.hsn_code,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
        }


class ChallanItem(db.Model):
    """
    Individual line on a challan.

    Audited lines point at the BoxAudit they consume (audit_id is unique, so
    a movement record can back at most one line anywhere). Manual lines have
    audit_id = NULL and manual_entry = True.
    """
    __tablename__ = "challan_items"
    __table_args__ = (
        db.UniqueConstraint("audit_id", name="uq_challan_items_audit"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    challan_id = db.Column(db.Integer, db.ForeignKey("challans.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    audit_id = db.Column(db.Integer, db.ForeignKey("box_audits.id"), nullable=True)
    manual_entry = db.Column(db.Boolean, nullable=False, default=False)

    # Product snapshot at issue time
    box_id = db.Column(db.Integer, db.ForeignKey("boxes.id"), nullable=False, index=True)
    box_title = db.Column(db.String(255), nullable=True)
    box_code = db.Column(db.String(64), nullable=True)
    box_category = db.Column(db.String(120), nullable=True)

    cavity = db.Column(db.String(64), nullable=True)
    color = db.Column(db.String(64), nullable=True)
    colours = db.Column(db.JSON, nullable=False, default=list)

    quantity = db.Column(db.Integer, nullable=False)
    rate_paise = db.Column(db.Integer, nullable=False, default=0)
    assembly_charge_paise = db.Column(db.Integer, nullable=False, default=0)
    packaging_charge_paise = db.Column(db.Integer, nullable=False, default=0)

    audited_at = db.Column(db.DateTime(timezone=True), nullable=True)

    audit = db.relationship("BoxAudit", foreign_keys=[audit_id])

    def to_dict(self) -> dict:
        return {
            "position": self.position,
            "audit_id": self.audit_id,
            "manual_entry": self.manual_entry,
            "box": {
                "id": self.box_id,
                "title": self.box_title,
                "code": self.box_code,
                "category": self.box_category,
            },
            "cavity": self.cavity,
            "color": self.color,
            "colours": list(self.colours or []),
            "quantity": self.quantity,
            "rate": _rupees(self.rate_paise),
            "assembly_charge": _rupees(self.assembly_charge_paise),
            "packaging_charge": _rupees(self.packaging_charge_paise),
            "audited_at": to_utc_z(self.audited_at) if self.audited_at else None,
        }


class ChallanCounter(db.Model):
    """
    Atomic per (financial year, series) document sequences.

    series is GST or NON_GST for outward challans, RECEIPT for inward
    receipts.

    WHY: Prevent race conditions when minting challan numbers. last_value is
    the last sequence handed out (0 = none yet); increments are a single
    UPDATE ... SET last_value = last_value + 1, never read-then-write.
    """
    __tablename__ = "challan_counters"
    __table_args__ = (
        db.UniqueConstraint("financial_year", "series", name="uq_challan_counters_fy_series"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    financial_year = db.Column(db.String(5), nullable=False, index=True)
    series = db.Column(db.String(16), nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "financial_year": self.financial_year,
            "series": self.series,
            "last_value": self.last_value,
            "updated_at": to_utc_z(self.updated_at),
        }
