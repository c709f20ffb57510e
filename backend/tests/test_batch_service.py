"""
Client batches: saved challan drafts.

Covers draft editing without side effects, moving records between drafts,
and issuing a draft as one challan in a single transaction.
"""

from datetime import datetime

import pytest

from stockbook.errors import AlreadyConsumed, NotFound, ValidationError
from stockbook.extensions import db
from stockbook.models import BoxAudit, Challan, ClientBatch
from stockbook.services import batch_service, challan_service, sequence_service, stock_service


ISSUED = datetime(2025, 6, 1, 10, 0)


def _dispatch_audit(box, color, qty, user_id):
    return stock_service.subtract_stock(box.id, color, qty, user_id=user_id)


def test_create_batch_has_no_side_effects(stocked_box, user_id):
    audit = _dispatch_audit(stocked_box, "red", 4, user_id)

    batch = batch_service.create_batch(
        user_id=user_id,
        label="  Sharma Sweets - Diwali ",
        audit_ids=[audit.id],
        line_overrides=[{"audit_id": audit.id, "rate": "12.50"}],
        manual_items=[{"box_id": stocked_box.id, "color": "Blue", "quantity": 2}],
        client_details={"name": "Sharma Sweets", "mobile": "9876543210"},
        notes="Deliver Friday",
    )

    assert batch.label == "Sharma Sweets - Diwali"
    assert batch.status == "pending"
    assert batch.audit_ids == [audit.id]
    assert batch.line_overrides == [{"audit_id": audit.id, "rate": "12.50"}]
    assert batch.manual_items[0]["color"] == "blue"
    assert batch.manual_items[0]["quantity"] == 2
    assert batch.client_details()["name"] == "Sharma Sweets"
    assert batch.created_by_user_id == user_id

    assert db.session.get(BoxAudit, audit.id).used is False
    assert stock_service.get_stock(stocked_box.id) == {"blue": 5, "red": 16}
    assert sequence_service.current_sequence("25-26", "GST") == 0

    body = batch.to_dict()
    assert body["challan_number"] is None
    assert body["client_details"]["mobile"] == "9876543210"


def test_create_batch_needs_label_and_lines(stocked_box, user_id):
    audit = _dispatch_audit(stocked_box, "red", 1, user_id)

    with pytest.raises(ValidationError):
        batch_service.create_batch(user_id=user_id, label="  ", audit_ids=[audit.id])
    with pytest.raises(ValidationError):
        batch_service.create_batch(user_id=user_id, label="Empty")
    with pytest.raises(NotFound):
        batch_service.create_batch(user_id=user_id, label="Ghost", audit_ids=[424242])
    with pytest.raises(NotFound):
        batch_service.create_batch(
            user_id=user_id,
            label="No box",
            manual_items=[{"box_id": 4040, "color": "red", "quantity": 1}],
        )
    assert ClientBatch.query.count() == 0


def test_consumed_record_cannot_enter_a_batch(stocked_box, user_id):
    audit = _dispatch_audit(stocked_box, "red", 1, user_id)
    challan_service.issue_challan(user_id=user_id, audit_ids=[audit.id], issued_at=ISSUED)

    with pytest.raises(AlreadyConsumed):
        batch_service.create_batch(user_id=user_id, label="Late", audit_ids=[audit.id])


def test_append_skips_records_already_in_batch(stocked_box, user_id):
    a1 = _dispatch_audit(stocked_box, "red", 1, user_id)
    a2 = _dispatch_audit(stocked_box, "red", 2, user_id)
    batch = batch_service.create_batch(
        user_id=user_id,
        label="Gupta Bakers",
        audit_ids=[a1.id],
        client_details={"name": "Gupta Bakers"},
    )

    batch = batch_service.append_to_batch(
        batch.id,
        audit_ids=[a1.id, a2.id],
        line_overrides=[{"audit_id": a1.id, "rate": 1}, {"audit_id": a2.id, "cavity": "6x6"}],
        manual_items=[{"box_id": stocked_box.id, "color": "blue", "quantity": 1}],
    )

    assert batch.audit_ids == [a1.id, a2.id]
    assert batch.line_overrides == [{"audit_id": a2.id, "cavity": "6x6"}]
    assert len(batch.manual_items) == 1
    # Empty client details keep the saved ones
    assert batch.client_details()["name"] == "Gupta Bakers"

    batch = batch_service.append_to_batch(batch.id, client_details={"name": "Gupta & Sons"}, notes="Call first")
    assert batch.client_details()["name"] == "Gupta & Sons"
    assert batch.notes == "Call first"


def test_remove_audit_drops_its_overrides(stocked_box, user_id):
    a1 = _dispatch_audit(stocked_box, "red", 1, user_id)
    a2 = _dispatch_audit(stocked_box, "red", 1, user_id)
    batch = batch_service.create_batch(
        user_id=user_id,
        label="Two lines",
        audit_ids=[a1.id, a2.id],
        line_overrides=[{"audit_id": a1.id, "rate": 5}],
    )

    batch = batch_service.remove_audit_from_batch(batch.id, a1.id)

    assert batch.audit_ids == [a2.id]
    assert batch.line_overrides == []
    assert db.session.get(BoxAudit, a1.id).used is False


def test_move_audit_between_batches(stocked_box, user_id):
    a1 = _dispatch_audit(stocked_box, "red", 1, user_id)
    a2 = _dispatch_audit(stocked_box, "red", 1, user_id)
    source = batch_service.create_batch(
        user_id=user_id,
        label="Source",
        audit_ids=[a1.id, a2.id],
        line_overrides=[{"audit_id": a1.id, "cavity": "10x10"}],
    )
    target = batch_service.create_batch(user_id=user_id, label="Target", audit_ids=[a2.id])

    source, target = batch_service.move_audit_between_batches(
        a1.id, from_batch_id=source.id, to_batch_id=str(target.id),
    )

    assert source.audit_ids == [a2.id]
    assert source.line_overrides == []
    assert target.audit_ids == [a2.id, a1.id]
    assert target.line_overrides == [{"audit_id": a1.id, "cavity": "10x10"}]

    with pytest.raises(ValidationError):
        batch_service.move_audit_between_batches(a2.id, from_batch_id=source.id, to_batch_id=source.id)
    with pytest.raises(ValidationError):
        batch_service.move_audit_between_batches(a1.id, from_batch_id=source.id, to_batch_id=target.id)
    with pytest.raises(NotFound):
        batch_service.move_audit_between_batches(a2.id, from_batch_id=source.id, to_batch_id=9999)


def test_cancelled_batch_is_frozen(stocked_box, user_id):
    audit = _dispatch_audit(stocked_box, "red", 1, user_id)
    batch = batch_service.create_batch(user_id=user_id, label="Abandoned", audit_ids=[audit.id])

    cancelled = batch_service.cancel_batch(batch.id)
    assert cancelled.status == "cancelled"

    assert batch_service.list_batches() == []
    assert [b.id for b in batch_service.list_batches(status="cancelled")] == [batch.id]
    with pytest.raises(ValidationError):
        batch_service.append_to_batch(batch.id, audit_ids=[audit.id])
    with pytest.raises(ValidationError):
        batch_service.issue_batch(batch.id, user_id=user_id, issued_at=ISSUED)

    # Its record is still free for a challan
    challan = challan_service.issue_challan(user_id=user_id, audit_ids=[audit.id], issued_at=ISSUED)
    assert challan.number == "VPP/25-26/001"


def test_list_batches(stocked_box, user_id):
    first = batch_service.create_batch(
        user_id=user_id, label="First", manual_items=[{"box_id": stocked_box.id, "color": "red", "quantity": 1}],
    )
    second = batch_service.create_batch(
        user_id=user_id, label="Second", manual_items=[{"box_id": stocked_box.id, "color": "red", "quantity": 1}],
    )

    assert [b.id for b in batch_service.list_batches()] == [first.id, second.id]
    assert len(batch_service.list_batches(status=None)) == 2
    with pytest.raises(ValidationError):
        batch_service.list_batches(status="archived")
    with pytest.raises(NotFound):
        batch_service.get_batch(123456)


def test_issue_batch_creates_challan_and_completes_batch(stocked_box, user_id):
    audit = _dispatch_audit(stocked_box, "red", 4, user_id)
    batch = batch_service.create_batch(
        user_id=user_id,
        label="Sharma",
        audit_ids=[audit.id],
        line_overrides=[{"audit_id": audit.id, "rate": "50", "assembly_charge": 0}],
        manual_items=[{"box_id": stocked_box.id, "color": "blue", "quantity": 2, "rate": "25.50"}],
        client_details={"name": "Sharma Sweets"},
        notes="Festival order",
    )

    challan = batch_service.issue_batch(
        batch.id,
        user_id=user_id,
        discount_pct="10",
        packaging_charges_overall=20,
        issued_at=ISSUED,
    )

    assert challan.number == "VPP/25-26/001"
    assert challan.client_details()["name"] == "Sharma Sweets"
    assert challan.notes == "Festival order"
    items = {item.color: item for item in challan.items}
    assert items["red"].rate_paise == 5000
    assert items["red"].assembly_charge_paise == 0
    assert items["blue"].rate_paise == 2550
    assert items["blue"].manual_entry is True

    # Only the manual line moves stock, and only at issue time
    assert stock_service.get_stock(stocked_box.id) == {"blue": 3, "red": 16}
    assert db.session.get(BoxAudit, audit.id).challan_id == challan.id

    completed = batch_service.get_batch(batch.id)
    assert completed.status == "completed"
    assert completed.challan_id == challan.id
    assert completed.to_dict()["challan_number"] == "VPP/25-26/001"

    with pytest.raises(ValidationError):
        batch_service.issue_batch(batch.id, user_id=user_id, issued_at=ISSUED)
    assert Challan.query.count() == 1


def test_issue_batch_with_consumed_record_changes_nothing(stocked_box, user_id):
    audit = _dispatch_audit(stocked_box, "red", 1, user_id)
    batch = batch_service.create_batch(
        user_id=user_id,
        label="Raced",
        audit_ids=[audit.id],
        manual_items=[{"box_id": stocked_box.id, "color": "blue", "quantity": 1}],
    )
    sold = challan_service.issue_challan(user_id=user_id, audit_ids=[audit.id], issued_at=ISSUED)

    with pytest.raises(AlreadyConsumed):
        batch_service.issue_batch(batch.id, user_id=user_id, issued_at=ISSUED)

    assert batch_service.get_batch(batch.id).status == "pending"
    assert batch_service.get_batch(batch.id).challan_id is None
    assert [c.id for c in Challan.query.all()] == [sold.id]
    assert stock_service.get_color_stock(stocked_box.id, "blue") == 5
    assert sequence_service.current_sequence("25-26", "GST") == 1

    # Dropping the consumed record lets the batch go through
    batch_service.remove_audit_from_batch(batch.id, audit.id)
    challan = batch_service.issue_batch(batch.id, user_id=user_id, issued_at=ISSUED)
    assert challan.number == "VPP/25-26/002"


def test_issue_batch_as_inward_receipt(stocked_box, user_id):
    batch = batch_service.create_batch(
        user_id=user_id,
        label="Supplier delivery",
        manual_items=[{"box_id": stocked_box.id, "color": "red", "quantity": 30}],
    )

    receipt = batch_service.issue_batch(batch.id, user_id=user_id, inventory_mode="inward", issued_at=ISSUED)

    assert receipt.number == "SR/25-26/001"
    assert receipt.doc_type == "STOCK_INWARD_RECEIPT"
    assert stock_service.get_color_stock(stocked_box.id, "red") == 50


def test_issue_batch_rejects_bad_options_and_stays_pending(stocked_box, user_id):
    batch = batch_service.create_batch(
        user_id=user_id,
        label="Options",
        manual_items=[{"box_id": stocked_box.id, "color": "red", "quantity": 1}],
    )

    for kwargs in ({"discount_pct": "12.345"}, {"tax_type": "VAT"}, {"packaging_charges_overall": "1e20"}):
        with pytest.raises(ValidationError):
            batch_service.issue_batch(batch.id, user_id=user_id, issued_at=ISSUED, **kwargs)

    assert batch_service.get_batch(batch.id).status == "pending"
    assert Challan.query.count() == 0


def test_batch_routes(client, auth_headers, stocked_box, user_id):
    audit = _dispatch_audit(stocked_box, "red", 3, user_id)

    response = client.post(
        "/api/client-batches",
        json={"label": "Route batch", "audit_ids": [audit.id], "client_details": {"name": "Mehta"}},
        headers=auth_headers,
    )
    assert response.status_code == 201
    batch = response.get_json()["batch"]
    assert batch["status"] == "pending"

    other = client.post(
        "/api/client-batches",
        json={"label": "Other", "manual_items": [{"box_id": stocked_box.id, "color": "blue", "quantity": 1}]},
        headers=auth_headers,
    ).get_json()["batch"]

    response = client.post(
        "/api/client-batches/move-audit",
        json={"audit_id": audit.id, "from_batch_id": batch["id"], "to_batch_id": other["id"]},
        headers=auth_headers,
    )
    assert response.status_code == 200
    assert response.get_json()["to_batch"]["audit_ids"] == [audit.id]

    response = client.post(f"/api/client-batches/{other['id']}/remove-audit", json={}, headers=auth_headers)
    assert response.status_code == 400

    response = client.post(
        f"/api/client-batches/{batch['id']}/append",
        json={"label": "Renamed"},
        headers=auth_headers,
    )
    assert response.status_code == 400

    response = client.get("/api/client-batches", headers=auth_headers)
    assert [b["label"] for b in response.get_json()["batches"]] == ["Route batch", "Other"]

    response = client.post(
        f"/api/client-batches/{other['id']}/issue",
        json={"discount_pct": 5, "issued_at": "2025-06-01T10:00:00Z"},
        headers=auth_headers,
    )
    assert response.status_code == 201
    body = response.get_json()
    assert body["challan"]["number"] == "VPP/25-26/001"
    assert body["batch"]["status"] == "completed"
    assert body["batch"]["challan_number"] == "VPP/25-26/001"

    response = client.delete(f"/api/client-batches/{batch['id']}", headers=auth_headers)
    assert response.status_code == 200
    assert response.get_json()["batch"]["status"] == "cancelled"

    response = client.get("/api/client-batches/999", headers=auth_headers)
    assert response.status_code == 404
    assert response.get_json()["error"] == "not_found"
