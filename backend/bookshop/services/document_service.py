# Overview: Allocation of human-readable bill and account numbers.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import ConcurrencyConflict

BILL = "BILL"
ACCOUNT = "ACCOUNT"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""


class SequenceInitRace(DocumentSequenceError, ConcurrencyConflict):
    """Another session inserted the counter row for this type first."""


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Allocate the next number for a document type, e.g. "B000042".

    The counter row is bumped with a single UPDATE so two sessions never hand
    out the same number. The first allocation for a type inserts the row; losing
    that insert race raises SequenceInitRace, which run_with_retry replays.
    Nothing is committed here; the number belongs to the caller's transaction.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(document_type=document_type, next_number=2)
        db.session.add(seq)
        try:
            db.session.flush()
        except IntegrityError:
            # The whole unit of work starts over under run_with_retry
            db.session.rollback()
            raise SequenceInitRace(f"{document_type} sequence was initialized concurrently")
        next_num = 1

    return f"{prefix}{str(next_num).zfill(pad)}"


def next_bill_number() -> str:
    return next_document_number(
        document_type=BILL,
        prefix=current_app.config["BILL_NUMBER_PREFIX"],
    )


def next_account_number() -> str:
    return next_document_number(
        document_type=ACCOUNT,
        prefix=current_app.config["ACCOUNT_NUMBER_PREFIX"],
    )
