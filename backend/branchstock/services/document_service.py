# Overview: Document number allocation (transfers, delivery notes, invoices).

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import EntityNotFound, ValidationError
from ..extensions import db
from ..models import Branch, DocumentSequence
from ..time_utils import business_now
from .concurrency import insert_if_absent


TRANSFER = "TRANSFER"
DELIVERY_NOTE = "DELIVERY_NOTE"
INVOICE = "INVOICE"

PREFIXES = {
    TRANSFER: "TRF",
    DELIVERY_NOTE: "DN",
    INVOICE: "INV",
}


def current_period() -> str:
    now = business_now(current_app.config.get("BUSINESS_TIMEZONE", "UTC"))
    return f"{now.year:04d}/{now.month:02d}"


def format_document_number(prefix: str, branch_code: str, period: str, seq: int, pad: int = 3) -> str:
    return f"{prefix}/{branch_code}/{period}/{seq:0{pad}d}"


def next_sequence_value(*, branch_id: int, document_type: str, period: str) -> int:
    """
    Atomically allocate the next counter value for (branch, type, period).

    Must run inside the caller's transaction: the UPDATE holds the row
    write lock until that transaction commits, so concurrent callers
    serialize and never receive the same value.
    """
    insert_if_absent(
        DocumentSequence,
        {"branch_id": branch_id, "document_type": document_type, "period": period, "next_number": 1},
        ["branch_id", "document_type", "period"],
    )

    db.session.execute(
        update(DocumentSequence)
        .where(
            DocumentSequence.branch_id == branch_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(branch_id=branch_id, document_type=document_type, period=period)
        .scalar()
    )
    return current - 1


def next_document_number(*, branch_id: int, document_type: str, pad: int = 3) -> str:
    """
    Allocate e.g. "TRF/JKT/2024/05/007" for the branch.

    The sequence restarts at 001 every month and is independent per branch
    and per document type.
    """
    prefix = PREFIXES.get(document_type)
    if prefix is None:
        raise ValidationError(f"Unknown document type: {document_type}")

    branch = db.session.get(Branch, branch_id)
    if branch is None:
        raise EntityNotFound(f"Branch {branch_id} not found", {"branch_id": branch_id})

    period = current_period()
    seq = next_sequence_value(branch_id=branch_id, document_type=document_type, period=period)
    return format_document_number(prefix, branch.code, period, seq, pad)
