"""
Financial-year math, document number formatting and atomic challan counters.
"""

from datetime import date, datetime

import pytest

from stockbook.errors import ValidationError
from stockbook.models import ChallanCounter
from stockbook.services import sequence_service
from stockbook.time_utils import business_date


@pytest.mark.parametrize(
    "day, label",
    [
        (date(2026, 3, 31), "25-26"),
        (date(2026, 4, 1), "26-27"),
        (date(2025, 4, 1), "25-26"),
        (date(2026, 1, 15), "25-26"),
        (date(2099, 12, 31), "99-00"),
    ],
)
def test_financial_year_boundaries(day, label):
    assert sequence_service.compute_financial_year(day) == label


def test_financial_year_accepts_datetimes():
    assert sequence_service.compute_financial_year(datetime(2026, 4, 1, 0, 0)) == "26-27"


def test_business_date_crosses_midnight_in_india():
    # 20:00 UTC on 31 March is 01:30 on 1 April in Asia/Kolkata
    instant = datetime(2026, 3, 31, 20, 0)
    assert business_date(instant, "Asia/Kolkata") == date(2026, 4, 1)
    assert sequence_service.compute_financial_year(business_date(instant, "Asia/Kolkata")) == "26-27"
    assert sequence_service.compute_financial_year(business_date(instant, "UTC")) == "25-26"


def test_financial_year_range():
    assert sequence_service.financial_year_range("25-26") == (date(2025, 4, 1), date(2026, 3, 31))


@pytest.mark.parametrize("label", ["2025-26", "25-27", "", "ab-cd", None])
def test_financial_year_range_rejects_malformed_labels(label):
    with pytest.raises(ValidationError):
        sequence_service.financial_year_range(label)


def test_format_document_number(app):
    assert sequence_service.format_document_number("VPP", "25-26", 7) == "VPP/25-26/007"
    assert sequence_service.format_document_number("VPP-NG", "25-26", 42, pad=3) == "VPP-NG/25-26/042"
    # Wider than the pad when needed
    assert sequence_service.format_document_number("VPP", "25-26", 12345) == "VPP/25-26/12345"


def test_format_document_number_rejects_non_positive(app):
    with pytest.raises(ValidationError):
        sequence_service.format_document_number("VPP", "25-26", 0)


def test_prefix_for_tax_types(app):
    assert sequence_service.prefix_for("GST") == "VPP"
    assert sequence_service.prefix_for("NON_GST") == "VPP-NG"
    with pytest.raises(ValidationError):
        sequence_service.prefix_for("VAT")


def test_first_sequence_is_one_then_increments(db_session):
    assert sequence_service.current_sequence("25-26", "GST") == 0
    assert sequence_service.next_sequence("25-26", "GST") == 1
    assert sequence_service.next_sequence("25-26", "GST") == 2
    assert sequence_service.next_sequence("25-26", "GST") == 3
    assert sequence_service.current_sequence("25-26", "GST") == 3


def test_counters_are_independent_per_key(db_session):
    assert sequence_service.next_sequence("25-26", "GST") == 1
    assert sequence_service.next_sequence("25-26", "NON_GST") == 1
    assert sequence_service.next_sequence("26-27", "GST") == 1
    assert sequence_service.next_sequence("25-26", "GST") == 2

    assert db_session.query(ChallanCounter).count() == 3


def test_current_sequence_does_not_mutate(db_session):
    sequence_service.next_sequence("25-26", "GST")
    for _ in range(3):
        assert sequence_service.current_sequence("25-26", "GST") == 1
    assert sequence_service.next_sequence("25-26", "GST") == 2


def test_reset_sequence(db_session):
    for _ in range(5):
        sequence_service.next_sequence("25-26", "GST")

    sequence_service.reset_sequence("25-26", "GST", 2)
    assert sequence_service.current_sequence("25-26", "GST") == 2
    assert sequence_service.next_sequence("25-26", "GST") == 3


def test_reset_sequence_creates_missing_counter(db_session):
    sequence_service.reset_sequence("27-28", "NON_GST", 10)
    assert sequence_service.next_sequence("27-28", "NON_GST") == 11


def test_invalid_keys_are_rejected(db_session):
    with pytest.raises(ValidationError):
        sequence_service.next_sequence("25-26", "VAT")
    with pytest.raises(ValidationError):
        sequence_service.next_sequence("2025", "GST")
    with pytest.raises(ValidationError):
        sequence_service.reset_sequence("25-26", "GST", -1)


def test_receipt_series(app):
    assert sequence_service.prefix_for("RECEIPT") == "SR"
    assert sequence_service.series_for("STOCK_INWARD_RECEIPT", "GST") == "RECEIPT"
    assert sequence_service.series_for("STOCK_INWARD_RECEIPT", "NON_GST") == "RECEIPT"
    assert sequence_service.series_for("OUTWARD_CHALLAN", "NON_GST") == "NON_GST"


def test_receipt_counter_is_independent(db_session):
    assert sequence_service.next_sequence("25-26", "RECEIPT") == 1
    assert sequence_service.next_sequence("25-26", "GST") == 1
    assert sequence_service.next_sequence("25-26", "RECEIPT") == 2
    assert sequence_service.current_sequence("25-26", "GST") == 1
