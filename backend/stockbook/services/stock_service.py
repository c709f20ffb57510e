# Overview: Service-layer operations for the per-colour stock ledger; encapsulates business logic and database work.

from __future__ import annotations

# backend/stockbook/services/stock_service.py

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictRetryable, InsufficientStock, NotFound, ValidationError
from ..extensions import db
from ..models import Box, BoxColorStock, BoxAudit
from ..validation import MAX_QUANTITY
from .audit_service import record_movement
from .colors import colors_match, normalize_color
from .concurrency import run_with_retry
"""
Stock Ledger Invariants (authoritative)

Storage:
- Stock is held per (box_id, normalized colour) in BoxColorStock rows.
- Every colour key goes through normalize_color; nothing else decides identity.

Business invariants:
- A bucket never goes negative. Over-subtraction is rejected with
  InsufficientStock and nothing changes (no clamp-to-zero).
- Validate-then-mutate is ONE statement: UPDATE ... SET quantity = quantity - n
  WHERE quantity >= n. Two concurrent subtracts cannot both pass a check
  against the same stale quantity.
- Colours can be added with a 0 bucket; a colour holding stock cannot be removed.

Audit:
- Each successful add/subtract appends exactly one BoxAudit in the same DB
  transaction (see audit_service).
"""


def _require_box(box_id: int) -> Box:
    box = db.session.query(Box).filter_by(id=box_id).first()
    if box is None:
        raise NotFound("box not found", details={"box_id": box_id})
    return box


def _require_quantity(qty) -> int:
    if not isinstance(qty, int) or isinstance(qty, bool) or qty <= 0:
        raise ValidationError("quantity must be a positive integer", details={"quantity": qty})
    if qty > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}", details={"quantity": qty})
    return qty


def _require_color(raw) -> str:
    color = normalize_color(raw)
    if not color:
        raise ValidationError("color is required", details={"color": raw})
    return color


def _bucket_quantity(box_id: int, color: str) -> int:
    qty = db.session.query(BoxColorStock.quantity).filter_by(box_id=box_id, color=color).scalar()
    return int(qty or 0)


def get_stock(box_id: int) -> dict[str, int]:
    """Normalized {colour: quantity} map for a box."""
    _require_box(box_id)
    rows = (
        db.session.query(BoxColorStock.color, BoxColorStock.quantity)
        .filter_by(box_id=box_id)
        .order_by(BoxColorStock.color)
        .all()
    )
    return {row.color: int(row.quantity) for row in rows}


def get_color_stock(box_id: int, color: str) -> int:
    _require_box(box_id)
    norm = normalize_color(color)
    if not norm:
        return 0
    return _bucket_quantity(box_id, norm)


def get_total_stock(box_id: int) -> int:
    _require_box(box_id)
    total = (
        db.session.query(func.coalesce(func.sum(BoxColorStock.quantity), 0))
        .filter(BoxColorStock.box_id == box_id)
        .scalar()
    )
    return int(total or 0)


def get_color_availability(box_id: int) -> list[dict]:
    return [
        {"color": color, "available": qty}
        for color, qty in sorted(get_stock(box_id).items())
    ]


def validate_stock(box_id: int, requests) -> bool:
    """
    Check requested {color, qty} pairs against current stock without mutating.

    Entries with an empty colour or non-positive qty are skipped. Requests for
    the same normalized colour are summed first. This is advisory only: the
    real guarantee is the conditional UPDATE in apply_subtract.
    """
    box = _require_box(box_id)
    wanted: dict[str, int] = {}
    for item in requests or []:
        color = normalize_color(item.get("color"))
        try:
            qty = int(item.get("qty") or 0)
        except (TypeError, ValueError):
            continue
        if not color or qty <= 0:
            continue
        wanted[color] = wanted.get(color, 0) + qty

    stock = get_stock(box_id)
    for color, requested in wanted.items():
        available = stock.get(color, 0)
        if available < requested:
            raise InsufficientStock(
                color=color,
                available=available,
                requested=requested,
                box_id=box_id,
                box_code=box.code,
            )
    return True


def apply_add(*, box: Box, color: str, quantity: int, user_id: int, note: str | None = None) -> BoxAudit:
    """Core ADD logic without retry or commit. color must already be normalized."""
    stmt = (
        update(BoxColorStock)
        .where(BoxColorStock.box_id == box.id, BoxColorStock.color == color)
        .values(quantity=BoxColorStock.quantity + quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            db.session.add(BoxColorStock(box_id=box.id, color=color, quantity=quantity))
            db.session.flush()
        except IntegrityError as exc:
            # Another transaction created the bucket first; retry the whole unit of work
            raise ConflictRetryable(
                "stock bucket created concurrently",
                details={"box_id": box.id, "color": color},
            ) from exc

    audit = record_movement(
        box_id=box.id,
        user_id=user_id,
        color=color,
        quantity=quantity,
        action="add",
        note=note,
    )
    current_app.logger.info("Stock add box=%s color=%s qty=%s audit=%s", box.code, color, quantity, audit.id)
    return audit


def apply_subtract(*, box: Box, color: str, quantity: int, user_id: int, note: str | None = None) -> BoxAudit:
    """Core SUBTRACT logic without retry or commit. color must already be normalized."""
    stmt = (
        update(BoxColorStock)
        .where(
            BoxColorStock.box_id == box.id,
            BoxColorStock.color == color,
            BoxColorStock.quantity >= quantity,
        )
        .values(quantity=BoxColorStock.quantity - quantity)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        raise InsufficientStock(
            color=color,
            available=_bucket_quantity(box.id, color),
            requested=quantity,
            box_id=box.id,
            box_code=box.code,
        )

    audit = record_movement(
        box_id=box.id,
        user_id=user_id,
        color=color,
        quantity=quantity,
        action="subtract",
        note=note,
    )
    current_app.logger.info("Stock subtract box=%s color=%s qty=%s audit=%s", box.code, color, quantity, audit.id)
    return audit


def add_stock(box_id: int, color: str, quantity: int, *, user_id: int, note: str | None = None) -> BoxAudit:
    """Increase a colour bucket (creating it if absent) and record the movement."""
    norm = _require_color(color)
    qty = _require_quantity(quantity)

    def _op():
        box = _require_box(box_id)
        audit = apply_add(box=box, color=norm, quantity=qty, user_id=user_id, note=note)
        db.session.commit()
        return audit

    return run_with_retry(_op)


def subtract_stock(box_id: int, color: str, quantity: int, *, user_id: int, note: str | None = None) -> BoxAudit:
    """Decrease a colour bucket; fails with InsufficientStock rather than going negative."""
    norm = _require_color(color)
    qty = _require_quantity(quantity)

    def _op():
        box = _require_box(box_id)
        audit = apply_subtract(box=box, color=norm, quantity=qty, user_id=user_id, note=note)
        db.session.commit()
        return audit

    return run_with_retry(_op)


def add_colour(box_id: int, colour: str, *, user_id: int) -> Box:
    """Add a colour to the box's catalog list with an empty (0) bucket."""
    norm = _require_color(colour)

    def _op():
        box = _require_box(box_id)
        colours = list(box.colours or [])
        if not any(colors_match(c, norm) for c in colours):
            colours.append(colour.strip())
            box.colours = colours
        if not db.session.query(BoxColorStock.id).filter_by(box_id=box.id, color=norm).first():
            db.session.add(BoxColorStock(box_id=box.id, color=norm, quantity=0))
        record_movement(
            box_id=box.id,
            user_id=user_id,
            color=norm,
            quantity=0,
            action="update_box",
            note=f"Added colour {norm}",
        )
        db.session.commit()
        return box

    return run_with_retry(_op)


def remove_colour(box_id: int, colour: str, *, user_id: int) -> Box:
    """
    Remove a colour from the box; refused while its bucket still holds stock.

    The bucket is deleted only WHERE quantity = 0, so stock added by a
    concurrent transaction is never deleted along with it.
    """
    norm = _require_color(colour)

    def _op():
        box = _require_box(box_id)
        deleted = (
            db.session.query(BoxColorStock)
            .filter(
                BoxColorStock.box_id == box.id,
                BoxColorStock.color == norm,
                BoxColorStock.quantity == 0,
            )
            .delete(synchronize_session=False)
        )
        if not deleted:
            on_hand = _bucket_quantity(box.id, norm)
            if on_hand > 0:
                raise ValidationError(
                    "cannot remove a colour that still has stock",
                    details={"box_id": box.id, "color": norm, "quantity": on_hand},
                )
        box.colours = [c for c in (box.colours or []) if not colors_match(c, norm)]
        record_movement(
            box_id=box.id,
            user_id=user_id,
            color=norm,
            quantity=0,
            action="update_box",
            note=f"Removed colour {norm}",
        )
        db.session.commit()
        return box

    return run_with_retry(_op)


def get_box_by_code(code: str) -> Box:
    box = db.session.query(Box).filter_by(code=(code or "").strip().upper()).first()
    if box is None:
        raise NotFound("box not found", details={"code": code})
    return box


def create_box(
    *,
    code: str,
    title: str,
    user_id: int,
    category: str | None = None,
    colours=(),
    price_paise: int | None = None,
    assembly_charge_paise: int = 0,
    inner_size: str | None = None,
) -> Box:
    """
    Create a box with an empty (0) bucket per colour.

    Catalog editing belongs elsewhere; this exists for bootstrap and tests.
    """
    display: list[str] = []
    seen: set[str] = set()
    for raw in colours or []:
        norm = normalize_color(raw)
        if norm and norm not in seen:
            seen.add(norm)
            display.append(raw.strip())

    def _op():
        if db.session.query(Box.id).filter_by(code=code.strip().upper()).first():
            raise ValidationError("box code already exists", details={"code": code})
        box = Box(
            code=code,
            title=title,
            category=category,
            colours=display,
            price_paise=price_paise,
            assembly_charge_paise=assembly_charge_paise or 0,
            inner_size=inner_size,
        )
        db.session.add(box)
        db.session.flush()
        for colour in display:
            db.session.add(BoxColorStock(box_id=box.id, color=normalize_color(colour), quantity=0))
        record_movement(
            box_id=box.id,
            user_id=user_id,
            color=None,
            quantity=0,
            action="create_box",
            note=f"Created box {box.code}",
        )
        db.session.commit()
        current_app.logger.info("Created box %s with colours %s", box.code, display)
        return box

    return run_with_retry(_op)
