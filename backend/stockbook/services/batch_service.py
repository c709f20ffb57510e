# Overview: Service-layer operations for client batches; saved challan drafts collected over time and issued in one go.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Box, Challan, ClientBatch, BATCH_STATUSES
from .challan_service import (
    _clean_client,
    _clean_text,
    _issue_inner,
    _load_audits,
    _parse_audit_ids,
    _parse_manual_items,
    _parse_overrides,
    _prepare_issue,
)
from .concurrency import lock_for_update, run_with_retry
"""
Client Batch Invariants (authoritative)

- A batch is a draft. Creating, appending, removing or moving lines never
  consumes a movement record and never moves stock.
- Records are checked (exist, unused, stock movements) when they enter a
  batch, and checked again at issue time; a record may sit in several drafts
  but only the first challan consumes it.
- Only pending batches change. Issuing consumes the records, creates the
  challan and marks the batch completed in ONE transaction.
"""


def _jsonable(entry: dict) -> dict:
    return {k: str(v) if isinstance(v, Decimal) else v for k, v in entry.items()}


def _require_batch(batch_id: int, *, lock: bool = False) -> ClientBatch:
    q = ClientBatch.query.filter_by(id=batch_id)
    if lock:
        q = lock_for_update(q)
    batch = q.first()
    if batch is None:
        raise NotFound("client batch not found", details={"batch_id": batch_id})
    return batch


def _require_pending(batch_id: int, *, lock: bool = False) -> ClientBatch:
    batch = _require_batch(batch_id, lock=lock)
    if batch.status != "pending":
        raise ValidationError(
            f"Client batch {batch.id} is {batch.status}",
            details={"batch_id": batch.id, "status": batch.status},
        )
    return batch


def _check_boxes(manual: list[dict]) -> None:
    for item in manual:
        if db.session.get(Box, item["box_id"]) is None:
            raise NotFound("box not found", details={"box_id": item["box_id"]})


def _apply_client(batch: ClientBatch, client: dict) -> None:
    batch.client_name = client["name"]
    batch.client_address = client["address"]
    batch.client_mobile = client["mobile"]
    batch.client_gst_number = client["gst_number"]


def create_batch(
    *,
    user_id: int,
    label: str,
    audit_ids=(),
    line_overrides=(),
    manual_items=(),
    client_details: dict | None = None,
    notes: str | None = None,
) -> ClientBatch:
    """Save a pending batch; needs a label and at least one record or manual line."""
    if user_id is None:
        raise ValidationError("user_id is required")
    clean_label = _clean_text(label, 120)
    if not clean_label:
        raise ValidationError("label is required to save a client batch")

    ids = _parse_audit_ids(audit_ids)
    overrides = _parse_overrides(line_overrides, ids)
    manual = _parse_manual_items(manual_items)
    if not ids and not manual:
        raise ValidationError("add at least one audit or manual item before saving a batch")
    client = _clean_client(client_details)

    def _op() -> ClientBatch:
        _load_audits(ids)
        _check_boxes(manual)
        batch = ClientBatch(
            label=clean_label,
            status="pending",
            audit_ids=ids,
            line_overrides=[dict(_jsonable(fields), audit_id=audit_id) for audit_id, fields in overrides.items()],
            manual_items=[_jsonable(item) for item in manual],
            notes=_clean_text(notes),
            created_by_user_id=user_id,
        )
        _apply_client(batch, client)
        db.session.add(batch)
        db.session.commit()
        current_app.logger.info(
            "Saved client batch %s %r (%d records, %d manual lines) by user %s",
            batch.id, batch.label, len(ids), len(manual), user_id,
        )
        return batch

    return run_with_retry(_op)


def list_batches(status: str | None = "pending") -> list[ClientBatch]:
    q = ClientBatch.query
    if status:
        status = status.lower()
        if status not in BATCH_STATUSES:
            raise ValidationError(f"Invalid batch status: {status}", details={"status": status})
        q = q.filter(ClientBatch.status == status)
    return q.order_by(ClientBatch.created_at.asc(), ClientBatch.id.asc()).all()


def get_batch(batch_id: int) -> ClientBatch:
    return _require_batch(batch_id)


def append_to_batch(
    batch_id: int,
    *,
    audit_ids=(),
    line_overrides=(),
    manual_items=(),
    client_details: dict | None = None,
    notes: str | None = None,
) -> ClientBatch:
    """
    Add records and manual lines to a pending batch.

    Records already in the batch are skipped, and so are their overrides.
    Non-empty client details replace the saved ones.
    """
    incoming = _parse_audit_ids(audit_ids)
    overrides = _parse_overrides(line_overrides, incoming)
    manual = _parse_manual_items(manual_items)
    client = _clean_client(client_details) if client_details else None

    def _op() -> ClientBatch:
        batch = _require_pending(batch_id)
        existing = list(batch.audit_ids or [])
        new_ids = [i for i in incoming if i not in existing]
        _load_audits(new_ids)
        _check_boxes(manual)

        batch.audit_ids = existing + new_ids
        batch.line_overrides = list(batch.line_overrides or []) + [
            dict(_jsonable(overrides[i]), audit_id=i) for i in new_ids if i in overrides
        ]
        batch.manual_items = list(batch.manual_items or []) + [_jsonable(item) for item in manual]
        if client is not None and any(client.values()):
            _apply_client(batch, client)
        if notes is not None:
            batch.notes = _clean_text(notes)
        db.session.commit()
        current_app.logger.info(
            "Appended %d records and %d manual lines to client batch %s",
            len(new_ids), len(manual), batch.id,
        )
        return batch

    return run_with_retry(_op)


def _take_audit(batch: ClientBatch, audit_id: int) -> list[dict]:
    """Drop audit_id (and its overrides) from batch; returns the removed overrides."""
    kept, taken = [], []
    for entry in batch.line_overrides or []:
        (taken if int(entry["audit_id"]) == audit_id else kept).append(entry)
    batch.audit_ids = [i for i in (batch.audit_ids or []) if i != audit_id]
    batch.line_overrides = kept
    return taken


def remove_audit_from_batch(batch_id: int, audit_id) -> ClientBatch:
    [audit_id] = _parse_audit_ids([audit_id])

    def _op() -> ClientBatch:
        batch = _require_pending(batch_id)
        _take_audit(batch, audit_id)
        db.session.commit()
        return batch

    return run_with_retry(_op)


def move_audit_between_batches(audit_id, *, from_batch_id: int, to_batch_id: int) -> tuple[ClientBatch, ClientBatch]:
    """Move one record (with its overrides) from a pending batch into another."""
    [audit_id] = _parse_audit_ids([audit_id])
    try:
        from_batch_id, to_batch_id = int(from_batch_id), int(to_batch_id)
    except (TypeError, ValueError):
        raise ValidationError("batch ids must be integers", details={"from": from_batch_id, "to": to_batch_id})
    if from_batch_id == to_batch_id:
        raise ValidationError("select a different client batch to move into", details={"batch_id": to_batch_id})

    def _op():
        source = _require_pending(from_batch_id)
        target = _require_pending(to_batch_id)
        if audit_id not in (source.audit_ids or []):
            raise ValidationError(
                "audit does not exist inside the source batch",
                details={"audit_id": audit_id, "batch_id": source.id},
            )
        moved = _take_audit(source, audit_id)
        if audit_id not in (target.audit_ids or []):
            target.audit_ids = list(target.audit_ids or []) + [audit_id]
            target.line_overrides = list(target.line_overrides or []) + moved
        db.session.commit()
        current_app.logger.info("Moved audit %s from client batch %s to %s", audit_id, source.id, target.id)
        return source, target

    return run_with_retry(_op)


def cancel_batch(batch_id: int) -> ClientBatch:
    def _op() -> ClientBatch:
        batch = _require_pending(batch_id)
        batch.status = "cancelled"
        db.session.commit()
        current_app.logger.info("Cancelled client batch %s", batch.id)
        return batch

    return run_with_retry(_op)


def issue_batch(
    batch_id: int,
    *,
    user_id: int,
    packaging_charges_overall=0,
    discount_pct=0,
    tax_type: str = "GST",
    inventory_mode: str = "dispatch",
    issued_at: datetime | str | None = None,
) -> Challan:
    """
    Issue a pending batch as a challan and mark it completed.

    Same guarantees as issue_challan: if any record was consumed elsewhere
    in the meantime, nothing is issued and the batch stays pending.
    """
    if user_id is None:
        raise ValidationError("user_id is required")

    def _op() -> Challan:
        batch = _require_pending(batch_id, lock=True)
        req = _prepare_issue(
            audit_ids=batch.audit_ids,
            line_overrides=batch.line_overrides,
            manual_items=batch.manual_items,
            packaging_charges_overall=packaging_charges_overall,
            discount_pct=discount_pct,
            tax_type=tax_type,
            inventory_mode=inventory_mode,
            client_details=batch.client_details(),
            notes=batch.notes,
            issued_at=issued_at,
        )
        challan = _issue_inner(req, user_id=user_id)
        batch.status = "completed"
        batch.challan_id = challan.id
        db.session.commit()
        current_app.logger.info("Issued client batch %s as challan %s by user %s", batch.id, challan.number, user_id)
        return challan

    return run_with_retry(_op)
