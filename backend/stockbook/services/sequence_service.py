# Overview: Service-layer operations for challan sequences; financial-year math and atomic per-series counters.

from __future__ import annotations

import re
from datetime import date, datetime

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictRetryable, ValidationError
from ..extensions import db
from ..models import Challan, ChallanCounter, RECEIPT_SERIES, SEQUENCE_SERIES
from .concurrency import run_with_retry


_FY_LABEL = re.compile(r"^(\d{2})-(\d{2})$")

# Legacy business format tops out at 9999 documents per FY per series.
SOFT_SEQUENCE_LIMIT = 9999


def compute_financial_year(value: date | datetime) -> str:
    """
    Indian financial year label ("YY-YY") for a date.

    The year runs 1 April to 31 March, so January-March belong to the
    year that started the previous April:
        2026-01-15 -> "25-26", 2026-04-01 -> "26-27"
    """
    if isinstance(value, datetime):
        value = value.date()
    if not isinstance(value, date):
        raise ValidationError(f"Invalid date: {value!r}")
    start_year = value.year if value.month >= 4 else value.year - 1
    return f"{start_year % 100:02d}-{(start_year + 1) % 100:02d}"


def financial_year_range(fy: str) -> tuple[date, date]:
    """Inclusive (1 April, 31 March) dates of a "YY-YY" label. Assumes 20YY."""
    match = _FY_LABEL.match(fy or "")
    if not match:
        raise ValidationError(f"Invalid financial year label: {fy!r}", details={"financial_year": fy})
    start_yy, end_yy = int(match.group(1)), int(match.group(2))
    if (start_yy + 1) % 100 != end_yy:
        raise ValidationError(
            f"Invalid financial year label: {fy!r}. End year must be start year + 1",
            details={"financial_year": fy},
        )
    start_year = 2000 + start_yy
    return date(start_year, 4, 1), date(start_year + 1, 3, 31)


def format_document_number(prefix: str, fy: str, sequence: int, pad: int | None = None) -> str:
    """
    PREFIX/YY-YY/NNN with the sequence zero-padded to at least `pad` digits.

    format_document_number("VPP", "25-26", 7) -> "VPP/25-26/007"
    format_document_number("VPP", "25-26", 12345) -> "VPP/25-26/12345"
    """
    if pad is None:
        pad = current_app.config.get("CHALLAN_SEQUENCE_PAD", 3)
    if not isinstance(sequence, int) or sequence < 1:
        raise ValidationError(f"Invalid sequence number: {sequence}", details={"sequence": sequence})
    return f"{prefix}/{fy}/{sequence:0{pad}d}"


def series_for(doc_type: str, tax_type: str) -> str:
    """Counter series of a document: its tax type, or RECEIPT for inward receipts."""
    if doc_type == "STOCK_INWARD_RECEIPT":
        return RECEIPT_SERIES
    return tax_type


def prefix_for(series: str) -> str:
    if series == "GST":
        return current_app.config.get("CHALLAN_PREFIX_GST", "VPP")
    if series == "NON_GST":
        return current_app.config.get("CHALLAN_PREFIX_NON_GST", "VPP-NG")
    if series == RECEIPT_SERIES:
        return current_app.config.get("CHALLAN_PREFIX_RECEIPT", "SR")
    raise ValidationError(f"Invalid counter series: {series}", details={"series": series})


def _check_key(fy: str, series: str) -> None:
    if series not in SEQUENCE_SERIES:
        raise ValidationError(f"Invalid counter series: {series}", details={"series": series})
    financial_year_range(fy)


def _next_sequence_inner(fy: str, series: str) -> int:
    """
    Increment-and-fetch without committing.

    The UPDATE takes the row's write lock, so the read-back inside the same
    transaction sees our own value and no other transaction can interleave
    until commit. A missing row is inserted with last_value=1; losing that
    insert race raises ConflictRetryable so the caller retries from scratch.
    """
    _check_key(fy, series)

    stmt = (
        update(ChallanCounter)
        .where(
            ChallanCounter.financial_year == fy,
            ChallanCounter.series == series,
        )
        .values(last_value=ChallanCounter.last_value + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        value = (
            db.session.query(ChallanCounter.last_value)
            .filter_by(financial_year=fy, series=series)
            .scalar()
        )
    else:
        try:
            db.session.add(ChallanCounter(financial_year=fy, series=series, last_value=1))
            db.session.flush()
        except IntegrityError as exc:
            raise ConflictRetryable(
                "challan counter created concurrently",
                details={"financial_year": fy, "series": series},
            ) from exc
        value = 1

    if value > SOFT_SEQUENCE_LIMIT:
        current_app.logger.warning(
            "Challan sequence %s for %s/%s exceeds legacy 4-digit range", value, fy, series
        )
    return int(value)


def next_sequence(fy: str, series: str) -> int:
    """Atomically allocate the next sequence number for (fy, series); first call returns 1."""
    def _op() -> int:
        value = _next_sequence_inner(fy, series)
        db.session.commit()
        current_app.logger.info("Allocated challan sequence %s/%s #%s", fy, series, value)
        return value

    return run_with_retry(_op)


def current_sequence(fy: str, series: str) -> int:
    """
    Last issued sequence for (fy, series), 0 if none.

    Diagnostics only. Never derive the next number from this value.
    """
    _check_key(fy, series)
    value = (
        db.session.query(ChallanCounter.last_value)
        .filter_by(financial_year=fy, series=series)
        .scalar()
    )
    return int(value or 0)


def highest_issued(fy: str, series: str) -> int:
    """Largest sequence already printed on a challan (active or cancelled) in this series."""
    _check_key(fy, series)
    q = db.session.query(func.max(Challan.sequence)).filter(Challan.financial_year == fy)
    if series == RECEIPT_SERIES:
        q = q.filter(Challan.doc_type == "STOCK_INWARD_RECEIPT")
    else:
        q = q.filter(Challan.doc_type == "OUTWARD_CHALLAN", Challan.tax_type == series)
    return int(q.scalar() or 0)


def reset_sequence(fy: str, series: str, value: int = 0) -> ChallanCounter:
    """
    Maintenance: set the last issued value so the next challan gets value + 1.

    Refused below the highest sequence already on a challan in the series;
    the next issuance would collide with that number on every retry.
    """
    _check_key(fy, series)
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError("value must be a non-negative integer", details={"value": value})

    def _op():
        issued = highest_issued(fy, series)
        if value < issued:
            raise ValidationError(
                f"Counter {fy}/{series} cannot go below {issued}; that number is already issued",
                details={"financial_year": fy, "series": series, "value": value, "highest_issued": issued},
            )
        counter = db.session.query(ChallanCounter).filter_by(financial_year=fy, series=series).first()
        if counter is None:
            counter = ChallanCounter(financial_year=fy, series=series, last_value=value)
            db.session.add(counter)
        else:
            counter.last_value = value
        db.session.commit()
        current_app.logger.warning("Challan counter %s/%s reset to %s", fy, series, value)
        return counter

    return run_with_retry(_op)
