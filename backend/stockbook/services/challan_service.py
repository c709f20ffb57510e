# Overview: Service-layer operations for challans; issuance, cancellation and lookup in one transaction per call.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyConsumed, ConflictRetryable, NotFound, ValidationError
from ..extensions import db
from ..models import (
    Box, BoxAudit, Challan, ChallanItem,
    STOCK_ACTIONS, TAX_TYPES, INVENTORY_MODES, DOC_TYPES, RECEIPT_SERIES,
)
from ..time_utils import business_date, parse_iso_datetime, utcnow
from ..validation import MAX_PRICE_PAISE, MAX_QUANTITY
from .audit_service import _mark_consumed_inner, record_movement
from .colors import normalize_color
from .concurrency import lock_for_update, run_with_retry
from .sequence_service import (
    _next_sequence_inner,
    compute_financial_year,
    format_document_number,
    prefix_for,
    series_for,
)
from .stock_service import apply_add, apply_subtract
from .totals_service import CENT, compute_totals, round2, to_decimal, to_paise


TAX_TYPE_ALIASES = {"NONGST": "NON_GST", "NON-GST": "NON_GST"}
INVENTORY_MODE_ALIASES = {"add": "inward", "subtract": "dispatch"}
SERIES_ALIASES = {"SR": RECEIPT_SERIES, "STOCK_RECEIPT": RECEIPT_SERIES}

# Fields a caller may override on an audited line
OVERRIDE_FIELDS = ("rate", "assembly_charge", "packaging_charge", "cavity", "colours")

CLIENT_FIELDS = ("name", "address", "mobile", "gst_number")

MAX_MONEY = Decimal(MAX_PRICE_PAISE) / 100


def normalize_tax_type(value) -> str:
    raw = (value or "GST").strip().upper() if isinstance(value, str) else value
    tax_type = TAX_TYPE_ALIASES.get(raw, raw)
    if tax_type not in TAX_TYPES:
        raise ValidationError(f"Invalid tax type: {value}", details={"tax_type": value})
    return tax_type


def normalize_series(value) -> str:
    """Counter series from user input: a tax type, or RECEIPT (alias SR)."""
    raw = value.strip().upper() if isinstance(value, str) else value
    if raw == RECEIPT_SERIES or raw in SERIES_ALIASES:
        return RECEIPT_SERIES
    return normalize_tax_type(value)


def normalize_inventory_mode(value) -> str:
    raw = (value or "dispatch").strip().lower() if isinstance(value, str) else value
    mode = INVENTORY_MODE_ALIASES.get(raw, raw)
    if mode not in INVENTORY_MODES:
        raise ValidationError(f"Invalid inventory mode: {value}", details={"inventory_mode": value})
    return mode


def doc_type_for(inventory_mode: str) -> str:
    return "STOCK_INWARD_RECEIPT" if inventory_mode == "inward" else "OUTWARD_CHALLAN"


def _money(value, field: str) -> Decimal:
    try:
        amount = to_decimal(value, field)
    except ValueError as exc:
        raise ValidationError(str(exc), details={field: value}) from exc
    if amount < 0:
        raise ValidationError(f"{field} cannot be negative", details={field: str(amount)})
    if amount > MAX_MONEY:
        raise ValidationError(f"{field} cannot exceed {MAX_MONEY}", details={field: str(amount)})
    return round2(amount)


def _discount(value) -> Decimal:
    try:
        discount = to_decimal(value, "discount_pct")
    except ValueError as exc:
        raise ValidationError(str(exc), details={"discount_pct": value}) from exc
    if discount < 0 or discount > 100:
        raise ValidationError("discount_pct must be between 0 and 100", details={"discount_pct": str(discount)})
    # Stored in basis points; a third decimal would not survive storage
    if discount != discount.quantize(CENT):
        raise ValidationError("discount_pct allows at most 2 decimal places", details={"discount_pct": str(discount)})
    return discount


def _clean_text(value, limit: int | None = None) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if limit:
        text = text[:limit]
    return text or None


def _clean_client(client_details) -> dict:
    if not client_details:
        return {field: None for field in CLIENT_FIELDS}
    if not isinstance(client_details, dict):
        raise ValidationError("client_details must be an object")
    return {
        "name": _clean_text(client_details.get("name"), 255),
        "address": _clean_text(client_details.get("address")),
        "mobile": _clean_text(client_details.get("mobile"), 32),
        "gst_number": _clean_text(client_details.get("gst_number"), 32),
    }


def _clean_colours(value, fallback: str | None) -> list[str]:
    if value is None:
        return [fallback] if fallback else []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValidationError("colours must be a list of strings", details={"colours": value})
    return [c.strip() for c in value if isinstance(c, str) and c.strip()]


def _parse_overrides(line_overrides, audit_ids: list[int]) -> dict[int, dict]:
    """Accepts a list of {audit_id, ...} dicts or a {audit_id: {...}} mapping."""
    if not line_overrides:
        return {}
    if isinstance(line_overrides, dict):
        entries = [dict(v or {}, audit_id=k) for k, v in line_overrides.items()]
    else:
        entries = list(line_overrides)

    overrides: dict[int, dict] = {}
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("audit_id") is None:
            raise ValidationError("each line override needs an audit_id")
        try:
            audit_id = int(entry["audit_id"])
        except (TypeError, ValueError):
            raise ValidationError("audit_id must be an integer", details={"audit_id": entry["audit_id"]})
        if audit_id not in audit_ids:
            raise ValidationError(
                "line override refers to an audit that is not selected",
                details={"audit_id": audit_id},
            )
        unknown = set(entry) - set(OVERRIDE_FIELDS) - {"audit_id"}
        if unknown:
            raise ValidationError(
                "quantity and colour of an audited line come from its movement record",
                details={"audit_id": audit_id, "fields": sorted(unknown)},
            )
        parsed = {}
        for field in ("rate", "assembly_charge", "packaging_charge"):
            if entry.get(field) is not None:
                parsed[field] = _money(entry[field], field)
        if "cavity" in entry:
            parsed["cavity"] = _clean_text(entry["cavity"], 64)
        if "colours" in entry:
            parsed["colours"] = _clean_colours(entry["colours"], None)
        overrides[audit_id] = parsed
    return overrides


def _parse_manual_items(manual_items) -> list[dict]:
    parsed = []
    for index, item in enumerate(manual_items or []):
        if not isinstance(item, dict):
            raise ValidationError("manual item must be an object", details={"index": index})
        try:
            box_id = int(item.get("box_id"))
        except (TypeError, ValueError):
            raise ValidationError("manual item needs a box_id", details={"index": index})
        color = normalize_color(item.get("color"))
        if not color:
            raise ValidationError("manual item needs a color", details={"index": index, "color": item.get("color")})
        qty = item.get("quantity")
        if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
            raise ValidationError(
                "manual item quantity must be a positive integer",
                details={"index": index, "quantity": qty},
            )
        if qty > MAX_QUANTITY:
            raise ValidationError(
                f"manual item quantity cannot exceed {MAX_QUANTITY}",
                details={"index": index, "quantity": qty},
            )
        parsed.append({
            "box_id": box_id,
            "color": color,
            "quantity": qty,
            "rate": _money(item.get("rate"), "rate"),
            "assembly_charge": _money(item.get("assembly_charge"), "assembly_charge"),
            "packaging_charge": _money(item.get("packaging_charge"), "packaging_charge"),
            "cavity": _clean_text(item.get("cavity"), 64),
            "colours": _clean_colours(item.get("colours"), item.get("color").strip()),
        })
    return parsed


def _parse_audit_ids(audit_ids) -> list[int]:
    ids: list[int] = []
    for raw in audit_ids or []:
        try:
            audit_id = int(raw)
        except (TypeError, ValueError):
            raise ValidationError("audit ids must be integers", details={"audit_id": raw})
        if audit_id not in ids:
            ids.append(audit_id)
    return ids


def _load_audits(ids: list[int]) -> dict[int, BoxAudit]:
    if not ids:
        return {}
    audits = {a.id: a for a in BoxAudit.query.filter(BoxAudit.id.in_(ids)).all()}
    missing = [i for i in ids if i not in audits]
    if missing:
        raise NotFound("audit not found", details={"missing_ids": missing})
    consumed = [i for i in ids if audits[i].used]
    if consumed:
        raise AlreadyConsumed(consumed_ids=consumed)
    for audit in audits.values():
        if audit.action not in STOCK_ACTIONS or audit.box_id is None:
            raise ValidationError(
                "only stock add/subtract records can be put on a challan",
                details={"audit_id": audit.id, "action": audit.action},
            )
    return audits


def _box_defaults(box: Box) -> dict:
    return {
        "rate": Decimal(box.price_paise or 0) / 100,
        "assembly_charge": Decimal(box.assembly_charge_paise or 0) / 100,
        "packaging_charge": Decimal(0),
        "cavity": box.inner_size,
    }


def _prepare_issue(
    *,
    audit_ids=(),
    line_overrides=(),
    manual_items=(),
    packaging_charges_overall=0,
    discount_pct=0,
    tax_type: str = "GST",
    inventory_mode: str = "dispatch",
    client_details: dict | None = None,
    notes: str | None = None,
    issued_at: datetime | str | None = None,
) -> dict:
    """Validate and normalize an issuance request before any database work."""
    ids = _parse_audit_ids(audit_ids)
    manual = _parse_manual_items(manual_items)
    if not ids and not manual:
        raise ValidationError("a challan needs at least one line")

    if isinstance(issued_at, str):
        try:
            issued_at = parse_iso_datetime(issued_at)
        except ValueError as exc:
            raise ValidationError("issued_at must be an ISO-8601 datetime", details={"issued_at": issued_at}) from exc

    return {
        "tax_type": normalize_tax_type(tax_type),
        "inventory_mode": normalize_inventory_mode(inventory_mode),
        "ids": ids,
        "overrides": _parse_overrides(line_overrides, ids),
        "manual": manual,
        "discount": _discount(discount_pct),
        "packaging": _money(packaging_charges_overall, "packaging_charges_overall"),
        "client": _clean_client(client_details),
        "notes": _clean_text(notes),
        "issued_at": issued_at,
    }


def _issue_inner(req: dict, *, user_id: int) -> Challan:
    """
    Issue a challan from a prepared request without committing.

    Order inside the transaction:
    load records -> move stock for manual lines -> allocate number ->
    compute totals -> persist -> consume movement records -> add lines.
    """
    when = req["issued_at"] or utcnow()
    ids = req["ids"]
    inventory_mode = req["inventory_mode"]
    tax_type = req["tax_type"]
    audits = _load_audits(ids)

    lines: list[dict] = []
    for position, audit_id in enumerate(ids, start=1):
        audit = audits[audit_id]
        box = audit.box
        line = _box_defaults(box)
        line.update(colours=[audit.color] if audit.color else [])
        line.update(req["overrides"].get(audit_id, {}))
        line.update(
            position=position,
            audit_id=audit.id,
            manual_entry=False,
            snapshot=box.snapshot(),
            color=audit.color,
            quantity=audit.quantity,
            audited_at=audit.created_at,
        )
        lines.append(line)

    # Manual lines move stock here; their records are consumed with the rest
    generated_ids: list[int] = []
    for offset, item in enumerate(req["manual"], start=len(lines) + 1):
        box = db.session.get(Box, item["box_id"])
        if box is None:
            raise NotFound("box not found", details={"box_id": item["box_id"]})
        if inventory_mode == "dispatch":
            audit = apply_subtract(box=box, color=item["color"], quantity=item["quantity"], user_id=user_id, note="Challan dispatch")
            generated_ids.append(audit.id)
        elif inventory_mode == "inward":
            audit = apply_add(box=box, color=item["color"], quantity=item["quantity"], user_id=user_id, note="Challan inward")
            generated_ids.append(audit.id)
        lines.append(dict(
            item,
            position=offset,
            audit_id=None,
            manual_entry=True,
            snapshot=box.snapshot(),
            audited_at=None,
        ))

    doc_type = doc_type_for(inventory_mode)
    series = series_for(doc_type, tax_type)
    fy = compute_financial_year(business_date(when, current_app.config["BUSINESS_TIMEZONE"]))
    sequence = _next_sequence_inner(fy, series)
    number = format_document_number(prefix_for(series), fy, sequence)

    totals = compute_totals(
        lines,
        packaging_charges_overall=req["packaging"],
        discount_pct=req["discount"],
        tax_type=tax_type,
    )

    client = req["client"]
    challan = Challan(
        number=number,
        sequence=sequence,
        financial_year=fy,
        tax_type=tax_type,
        doc_type=doc_type,
        inventory_mode=inventory_mode,
        status="ACTIVE",
        client_name=client["name"],
        client_address=client["address"],
        client_mobile=client["mobile"],
        client_gst_number=client["gst_number"],
        notes=req["notes"],
        hsn_code=current_app.config.get("CHALLAN_HSN_CODE"),
        created_by_user_id=user_id,
        created_at=when,
        **totals.to_paise(),
    )
    db.session.add(challan)
    try:
        db.session.flush()
    except IntegrityError as exc:
        raise ConflictRetryable("challan number already taken", details={"number": number}) from exc

    marker = record_movement(
        box_id=None,
        user_id=user_id,
        color=None,
        quantity=0,
        action="create_challan",
        note=number,
    )
    _mark_consumed_inner(ids + generated_ids + [marker.id], challan.id)

    for line in lines:
        db.session.add(ChallanItem(
            challan_id=challan.id,
            position=line["position"],
            audit_id=line["audit_id"],
            manual_entry=line["manual_entry"],
            **line["snapshot"],
            cavity=line.get("cavity"),
            color=line["color"],
            colours=line.get("colours") or [],
            quantity=line["quantity"],
            rate_paise=to_paise(line["rate"]),
            assembly_charge_paise=to_paise(line["assembly_charge"]),
            packaging_charge_paise=to_paise(line["packaging_charge"]),
            audited_at=line["audited_at"],
        ))
    db.session.flush()
    return challan


def issue_challan(
    *,
    user_id: int,
    audit_ids=(),
    line_overrides=(),
    manual_items=(),
    packaging_charges_overall=0,
    discount_pct=0,
    tax_type: str = "GST",
    inventory_mode: str = "dispatch",
    client_details: dict | None = None,
    notes: str | None = None,
    issued_at: datetime | str | None = None,
) -> Challan:
    """
    Issue a numbered challan from movement records and/or manual lines.

    Everything happens in ONE transaction:
    validate -> move stock for manual lines -> allocate number ->
    compute totals -> persist -> consume movement records -> commit.

    Any failure rolls back all of it, including the counter increment, so a
    failed issuance leaves no document, no consumed record, no stock change
    and no gap in the numbering. Inward documents are stock receipts numbered
    in the RECEIPT series, so they never leave gaps in outward numbering.
    """
    if user_id is None:
        raise ValidationError("user_id is required")

    req = _prepare_issue(
        audit_ids=audit_ids,
        line_overrides=line_overrides,
        manual_items=manual_items,
        packaging_charges_overall=packaging_charges_overall,
        discount_pct=discount_pct,
        tax_type=tax_type,
        inventory_mode=inventory_mode,
        client_details=client_details,
        notes=notes,
        issued_at=issued_at,
    )

    def _op() -> Challan:
        challan = _issue_inner(req, user_id=user_id)
        db.session.commit()
        current_app.logger.info(
            "Issued challan %s (%s, %d lines, total %s) by user %s",
            challan.number,
            challan.inventory_mode,
            len(req["ids"]) + len(req["manual"]),
            challan.totals_dict()["grand_total"],
            user_id,
        )
        return challan

    return run_with_retry(_op)


def get_challan(challan_id: int) -> Challan:
    challan = db.session.get(Challan, challan_id)
    if challan is None:
        raise NotFound("challan not found", details={"challan_id": challan_id})
    return challan


def get_challan_by_number(number: str) -> Challan:
    challan = Challan.query.filter_by(number=(number or "").strip()).first()
    if challan is None:
        raise NotFound("challan not found", details={"number": number})
    return challan


def list_challans(
    *,
    tax_type: str | None = None,
    financial_year: str | None = None,
    status: str | None = None,
    doc_type: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Challan]:
    q = Challan.query
    if tax_type:
        q = q.filter(Challan.tax_type == normalize_tax_type(tax_type))
    if financial_year:
        q = q.filter(Challan.financial_year == financial_year)
    if status:
        q = q.filter(Challan.status == status.upper())
    if doc_type:
        doc_type = doc_type.upper()
        if doc_type not in DOC_TYPES:
            raise ValidationError(f"Invalid document type: {doc_type}", details={"doc_type": doc_type})
        q = q.filter(Challan.doc_type == doc_type)
    limit = max(1, min(int(limit), 500))
    offset = max(0, int(offset))
    return q.order_by(Challan.created_at.desc(), Challan.id.desc()).offset(offset).limit(limit).all()


def cancel_challan(challan_id: int, *, user_id: int, reason: str | None = None) -> Challan:
    """
    Cancel an ACTIVE challan and reverse the stock it moved itself.

    Only manual lines touched stock at issue time, so only they are reversed:
    dispatch lines are added back, inward lines are subtracted again (which
    fails with InsufficientStock if that stock has since left). Audited lines
    stay consumed and the number is never handed out again.
    """
    if user_id is None:
        raise ValidationError("user_id is required")

    def _op() -> Challan:
        challan = lock_for_update(Challan.query.filter_by(id=challan_id)).first()
        if challan is None:
            raise NotFound("challan not found", details={"challan_id": challan_id})
        if challan.status != "ACTIVE":
            raise ValidationError(
                f"Challan {challan.number} is already {challan.status.lower()}",
                details={"challan_id": challan.id, "status": challan.status},
            )

        challan.status = "CANCELLED"
        challan.cancelled_at = utcnow()
        challan.cancelled_by_user_id = user_id
        challan.cancel_reason = _clean_text(reason, 255)
        # Version check: a concurrent cancel fails here with StaleDataError
        db.session.flush()

        reversal_ids: list[int] = []
        for item in challan.items:
            if not item.manual_entry:
                continue
            box = db.session.get(Box, item.box_id)
            note = f"Cancel {challan.number}"
            if challan.inventory_mode == "dispatch":
                audit = apply_add(box=box, color=item.color, quantity=item.quantity, user_id=user_id, note=note)
                reversal_ids.append(audit.id)
            elif challan.inventory_mode == "inward":
                audit = apply_subtract(box=box, color=item.color, quantity=item.quantity, user_id=user_id, note=note)
                reversal_ids.append(audit.id)

        marker = record_movement(
            box_id=None,
            user_id=user_id,
            color=None,
            quantity=0,
            action="cancel_challan",
            note=challan.number,
        )
        _mark_consumed_inner(reversal_ids + [marker.id], challan.id)

        db.session.commit()
        current_app.logger.info(
            "Cancelled challan %s by user %s (%d stock reversals)",
            challan.number, user_id, len(reversal_ids),
        )
        return challan

    return run_with_retry(_op)


def search_clients(query: str, limit: int = 10) -> list[dict]:
    """Distinct client details from past challans matching name, mobile or address."""
    term = (query or "").strip()
    if not term:
        return []
    pattern = f"%{term}%"
    limit = max(1, min(int(limit), 50))

    last_used = func.max(Challan.created_at).label("last_used_at")
    usage = func.count(Challan.id).label("usage_count")
    rows = (
        db.session.query(
            Challan.client_name,
            Challan.client_mobile,
            Challan.client_address,
            Challan.client_gst_number,
            last_used,
            usage,
        )
        .filter(or_(
            Challan.client_name.ilike(pattern),
            Challan.client_mobile.ilike(pattern),
            Challan.client_address.ilike(pattern),
        ))
        .group_by(
            Challan.client_name,
            Challan.client_mobile,
            Challan.client_address,
            Challan.client_gst_number,
        )
        .order_by(last_used.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "name": row.client_name or "",
            "mobile": row.client_mobile or "",
            "address": row.client_address or "",
            "gst_number": row.client_gst_number or "",
            "last_used_at": row.last_used_at,
            "usage_count": int(row.usage_count),
        }
        for row in rows
    ]
