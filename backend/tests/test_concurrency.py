"""
Concurrency safeguards on a real file database.

Each worker thread runs in its own app context (own session and connection),
so these exercise the conditional UPDATEs and retries rather than a shared
in-memory connection.
"""

import threading
from datetime import datetime

import pytest

from stockbook import create_app
from stockbook.errors import AlreadyConsumed, InsufficientStock, ValidationError
from stockbook.extensions import db
from stockbook.models import Box, BoxAudit, Challan
from stockbook.services import challan_service, sequence_service, stock_service


USER_ID = 11
ISSUED = datetime(2025, 9, 1, 9, 30)


@pytest.fixture
def file_app(tmp_path):
    db_path = tmp_path / "concurrency.db"
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{db_path}",
        'RETRY_ATTEMPTS': 10,
        'RETRY_BACKOFF_BASE': 0.005,
    })

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def seeded_box_id(file_app):
    with file_app.app_context():
        box = stock_service.create_box(code="CC-1", title="Concurrent Box", colours=["Red"], user_id=USER_ID)
        stock_service.add_stock(box.id, "red", 10, user_id=USER_ID)
        return box.id


def _run_threads(app, target, count, args_for=lambda i: ()):
    results = []
    lock = threading.Lock()

    def worker(i):
        with app.app_context():
            try:
                value = target(*args_for(i))
                with lock:
                    results.append(value)
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_concurrent_sequences_are_unique_and_gapless(file_app):
    results = _run_threads(file_app, lambda: sequence_service.next_sequence("25-26", "GST"), 10)

    assert not [r for r in results if isinstance(r, Exception)]
    assert sorted(results) == list(range(1, 11))


def test_concurrent_subtracts_never_oversell(file_app, seeded_box_id):
    def subtract():
        stock_service.subtract_stock(seeded_box_id, "red", 3, user_id=USER_ID)
        return "ok"

    results = _run_threads(file_app, subtract, 6)

    succeeded = [r for r in results if r == "ok"]
    failed = [r for r in results if isinstance(r, InsufficientStock)]
    assert len(succeeded) == 3
    assert len(failed) == 3

    with file_app.app_context():
        assert stock_service.get_color_stock(seeded_box_id, "red") == 1
        assert BoxAudit.query.filter_by(action="subtract").count() == 3


def test_concurrent_issuers_consume_a_record_once(file_app, seeded_box_id):
    with file_app.app_context():
        audit_id = stock_service.subtract_stock(seeded_box_id, "red", 2, user_id=USER_ID).id

    def issue():
        return challan_service.issue_challan(user_id=USER_ID, audit_ids=[audit_id], issued_at=ISSUED).number

    results = _run_threads(file_app, issue, 5)

    numbers = [r for r in results if isinstance(r, str)]
    conflicts = [r for r in results if isinstance(r, AlreadyConsumed)]
    assert numbers == ["VPP/25-26/001"]
    assert len(conflicts) == 4

    with file_app.app_context():
        assert Challan.query.count() == 1
        assert sequence_service.current_sequence("25-26", "GST") == 1
        assert db.session.get(BoxAudit, audit_id).used is True


def test_colour_removal_keeps_stock_added_meanwhile(file_app, monkeypatch):
    with file_app.app_context():
        box_id = stock_service.create_box(code="CC-2", title="Race Box", colours=["Red"], user_id=USER_ID).id

    original = stock_service._require_box
    interleaved = []
    fired = threading.Event()

    def require_box_then_restock(box_id_):
        box = original(box_id_)
        if not fired.is_set():
            fired.set()
            # Stock arrives between loading the box and deleting its bucket
            interleaved.extend(
                _run_threads(file_app, lambda: stock_service.add_stock(box_id, "red", 5, user_id=USER_ID).id, 1)
            )
        return box

    monkeypatch.setattr(stock_service, "_require_box", require_box_then_restock)

    with file_app.app_context():
        with pytest.raises(ValidationError) as excinfo:
            stock_service.remove_colour(box_id, "Red", user_id=USER_ID)
        assert excinfo.value.details["quantity"] == 5

    monkeypatch.undo()
    assert not [r for r in interleaved if isinstance(r, Exception)]

    with file_app.app_context():
        assert stock_service.get_color_stock(box_id, "red") == 5
        assert db.session.get(Box, box_id).colours == ["Red"]
        db.session.remove()
