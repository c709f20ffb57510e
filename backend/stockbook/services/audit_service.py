# Overview: Service-layer operations for the movement audit log; append-only records and exactly-once consumption.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import AlreadyConsumed, ValidationError
from ..extensions import db
from ..models import BoxAudit, AUDIT_ACTIONS
from .colors import normalize_color
from .concurrency import run_with_retry
"""
Movement Audit Log Invariants (authoritative)

- One BoxAudit row per successful stock add/subtract, written in the same
  DB transaction as the stock change (callers never commit in between).
- Rows are never updated except for the single used=False -> True
  transition that attaches them to a challan.
- That transition is a conditional UPDATE ... WHERE used = false. A batch
  either flips every requested row or none of them.
"""


def record_movement(
    *,
    box_id: int | None,
    user_id: int,
    color: str | None,
    quantity: int,
    action: str,
    note: str | None = None,
) -> BoxAudit:
    """
    Append a movement record (used=False) without committing.

    Stock-bearing actions need a valid colour and a positive quantity;
    informational actions may carry quantity 0 and no colour.
    """
    if action not in AUDIT_ACTIONS:
        raise ValidationError(f"unknown audit action: {action}")
    if user_id is None:
        raise ValidationError("user_id is required")

    norm = normalize_color(color) if color else ""
    if action in ("add", "subtract"):
        if not norm:
            raise ValidationError("color is required", details={"color": color})
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer", details={"quantity": quantity})

    audit = BoxAudit(
        box_id=box_id,
        user_id=user_id,
        color=norm or None,
        quantity=quantity or 0,
        action=action,
        note=(note or "").strip()[:255] or None,
        used=False,
    )
    db.session.add(audit)
    db.session.flush()
    return audit


def list_unused(
    *,
    box_id: int | None = None,
    action: str | None = None,
    user_id: int | None = None,
    color: str | None = None,
) -> list[BoxAudit]:
    """Challan candidates: stock movements not yet attached to any challan, newest first."""
    q = BoxAudit.query.filter(BoxAudit.used.is_(False))
    if action is not None:
        q = q.filter(BoxAudit.action == action)
    else:
        q = q.filter(BoxAudit.action.in_(["add", "subtract"]))
    if box_id is not None:
        q = q.filter(BoxAudit.box_id == box_id)
    if user_id is not None:
        q = q.filter(BoxAudit.user_id == user_id)
    if color:
        q = q.filter(BoxAudit.color == normalize_color(color))
    return q.order_by(BoxAudit.created_at.desc(), BoxAudit.id.desc()).all()


def list_audits(*, box_id: int | None = None, used: bool | None = None, limit: int = 200) -> list[BoxAudit]:
    q = BoxAudit.query
    if box_id is not None:
        q = q.filter(BoxAudit.box_id == box_id)
    if used is not None:
        q = q.filter(BoxAudit.used.is_(used))
    limit = max(1, min(limit, 1000))
    return q.order_by(BoxAudit.created_at.desc(), BoxAudit.id.desc()).limit(limit).all()


def _mark_consumed_inner(audit_ids, challan_id: int) -> int:
    """
    Flip used=False -> True for every id in one statement, without committing.

    Raises AlreadyConsumed when the affected row count is short; the caller's
    transaction must then be rolled back (run_with_retry does this).
    """
    ids = sorted({int(i) for i in audit_ids})
    if not ids:
        return 0

    db.session.flush()
    stmt = (
        update(BoxAudit)
        .where(BoxAudit.id.in_(ids), BoxAudit.used.is_(False))
        .values(used=True, challan_id=challan_id)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != len(ids):
        rows = db.session.query(BoxAudit.id, BoxAudit.used, BoxAudit.challan_id).filter(BoxAudit.id.in_(ids)).all()
        found = {r.id for r in rows}
        # Rows flipped by this statement now read used=True with our challan_id
        consumed = {r.id for r in rows if r.used and r.challan_id != challan_id}
        missing = set(ids) - found
        raise AlreadyConsumed(consumed_ids=consumed, missing_ids=missing)

    db.session.expire_all()
    return len(ids)


def mark_consumed(audit_ids, challan_id: int) -> int:
    """
    Attach a batch of movement records to a challan, all-or-nothing.

    A failure means no record in the batch was touched.
    """
    def _op():
        count = _mark_consumed_inner(audit_ids, challan_id)
        db.session.commit()
        current_app.logger.info("Consumed %d audits for challan %s", count, challan_id)
        return count

    return run_with_retry(_op)
