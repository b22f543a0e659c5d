# Overview: Atomic allocation of human-readable document numbers.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from ..time_utils import utcnow


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _current_value(document_type: str, period: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, period=period)
        .scalar()
    )


def next_sequence_value(*, document_type: str, period: str) -> int:
    """
    Atomically take the next number for (document_type, period).

    The increment is a single UPDATE ... SET next_number = next_number + 1 so
    concurrent callers serialize on the row. The first caller of a period
    inserts the row inside a savepoint; losing that insert race falls back to
    the UPDATE path.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if not period:
        raise DocumentSequenceError("period is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        return _current_value(document_type, period) - 1

    try:
        with db.session.begin_nested():
            db.session.add(DocumentSequence(document_type=document_type, period=period, next_number=2))
        return 1
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise DocumentSequenceError(f"Could not allocate {document_type} number for {period}")
        return _current_value(document_type, period) - 1


def next_sale_number(now: datetime | None = None) -> str:
    """SALE-YYMMDD-NNNN; the counter restarts every day."""
    now = now or utcnow()
    period = now.strftime("%y%m%d")
    number = next_sequence_value(document_type="SALE", period=period)
    return f"SALE-{period}-{number:04d}"
