# Overview: Atomic document numbering shared by every writer of numbered documents.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


DOCUMENT_PURCHASE_RETURN = "purchase_return"


def _advance(document_type: str) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    db.session.flush()
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Atomically allocate the next number for a document type.

    The UPDATE holds the sequence row until the caller commits, so two
    concurrent writers can never receive the same number. Call this before
    staging any other rows: the first-use path may roll back the session.

    Returns:
        e.g. "PR-000001"
    """
    next_num = _advance(document_type)
    if next_num is None:
        db.session.add(DocumentSequence(document_type=document_type, next_number=2))
        try:
            db.session.flush()
            next_num = 1
        except IntegrityError:
            # Another writer created the row first
            db.session.rollback()
            next_num = _advance(document_type)
            if next_num is None:
                raise
    return f"{prefix}{next_num:0{pad}d}"
