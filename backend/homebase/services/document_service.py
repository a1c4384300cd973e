# Overview: Shared document mechanics: number allocation, totals, and status transitions.

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ValidationError
from homebase.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .totals_service import LineItem, DocumentTotals, calculate_totals, percent_to_bps


DEFAULT_MAX_ATTEMPTS = 100
SEQUENCE_WIDTH = 3

# Money columns are signed 64-bit integers
MAX_STORED_CENTS = 2 ** 63 - 1


class DocumentError(Exception):
    """Raised for invoice/estimate operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class DocumentNotFoundError(DocumentError):
    """Document missing or owned by someone else (callers cannot tell which)."""


class DocumentNumberExhaustedError(DocumentError):
    """No free document number was found within the retry bound."""


# =============================================================================
# Document numbering
# =============================================================================

def format_document_number(prefix: str, year: int, sequence: int) -> str:
    """("INV", 2025, 7) -> "INV2025-007". Sequences past 999 simply widen."""
    return f"{prefix}{year:04d}-{sequence:0{SEQUENCE_WIDTH}d}"


def parse_sequence(number: str | None) -> int | None:
    """Sequence part of a document number, or None if it does not parse."""
    if not number or "-" not in number:
        return None
    tail = number.rsplit("-", 1)[1]
    if not tail.isdigit():
        return None
    return int(tail)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _max_attempts(max_attempts: int | None) -> int:
    if max_attempts is not None:
        return max_attempts
    return current_app.config.get("NUMBER_ALLOCATION_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)


def _highest_number(model, owner_id: int, year: int, prefix: str) -> str | None:
    """
    Highest number issued to owner_id for prefix+year.

    Ordering by length first keeps the order numeric once a sequence grows
    past three digits; below that it is plain zero-padded string order.
    """
    pattern = f"{_escape_like(prefix)}{year:04d}-%"
    column = model.document_number
    return (
        db.session.query(column)
        .filter(model.owner_id == owner_id, column.like(pattern, escape="\\"))
        .order_by(func.length(column).desc(), column.desc())
        .limit(1)
        .scalar()
    )


def _number_taken(model, owner_id: int, candidate: str) -> bool:
    return (
        db.session.query(model.id)
        .filter(model.owner_id == owner_id, model.document_number == candidate)
        .first()
        is not None
    )


def allocate_document_number(
    *,
    model,
    owner_id: int,
    year: int,
    prefix: str = "",
    max_attempts: int | None = None,
) -> str:
    """
    Find the next free number for (owner_id, year) in model's table.

    Must run inside the transaction that writes the document carrying the
    number: the number is reserved only by that row, and the unique
    (owner_id, document_number) constraint rejects a racing duplicate at
    flush time. Wrap the whole write in run_with_number_retry.
    """
    if owner_id is None:
        raise DocumentError("owner_id is required")
    if year is None:
        raise DocumentError("year is required")

    attempts = _max_attempts(max_attempts)
    highest = _highest_number(model, owner_id, year, prefix)
    sequence = (parse_sequence(highest) or 0) + 1

    for _ in range(attempts):
        candidate = format_document_number(prefix, year, sequence)
        if not _number_taken(model, owner_id, candidate):
            return candidate
        current_app.logger.warning(
            "Document number %s already taken for owner %s; trying next", candidate, owner_id
        )
        sequence += 1

    raise DocumentNumberExhaustedError(
        "Could not find an available document number",
        details={"owner_id": owner_id, "year": year, "prefix": prefix, "attempts": attempts},
    )


def preview_document_number(*, model, owner_id: int, year: int, prefix: str = "") -> str:
    """The number allocate_document_number would return right now. Reserves nothing."""
    highest = _highest_number(model, owner_id, year, prefix)
    return format_document_number(prefix, year, (parse_sequence(highest) or 0) + 1)


def is_number_conflict(exc: BaseException) -> bool:
    """True for a unique-constraint violation on (owner_id, document_number)."""
    if not isinstance(exc, IntegrityError):
        return False
    message = str(getattr(exc, "orig", None) or exc)
    # SQLite names the columns, PostgreSQL and MySQL name the constraint
    return "document_number" in message or "_owner_docnum" in message


def _retryable(exc: BaseException) -> bool:
    return not isinstance(exc, IntegrityError) or is_number_conflict(exc)


def run_with_number_retry(func, *, attempts: int | None = None):
    """
    Run a read-allocate-write-commit operation, retrying lost races.

    A duplicate number, a lock timeout or a stale version
    rolls the whole transaction back and re-runs func. When the bound is
    used up on a duplicate, DocumentNumberExhaustedError is raised. Other
    integrity errors are not retried and propagate unchanged.
    """
    attempts = _max_attempts(attempts)
    try:
        return run_with_retry(
            func,
            attempts=attempts,
            backoff_base=0.005,
            max_backoff=0.25,
            retry_on=(IntegrityError, OperationalError, StaleDataError),
            should_retry=_retryable,
        )
    except IntegrityError as exc:
        if not is_number_conflict(exc):
            raise
        raise DocumentNumberExhaustedError(
            "Could not allocate a unique document number",
            details={"attempts": attempts},
        ) from exc
    except Exception:
        # No half-written document (or its number) may survive a failed write
        db.session.rollback()
        raise


# =============================================================================
# Totals and status transitions
# =============================================================================

def apply_totals(
    document,
    line_items: Iterable[LineItem] | None = None,
    document_discount: Decimal | None = None,
) -> DocumentTotals:
    """
    Recompute and store the document's monetary columns.

    None for either input means "keep what is stored".
    """
    items = list(line_items) if line_items is not None else document.get_line_items()
    discount = document_discount if document_discount is not None else document.document_discount

    totals = calculate_totals(items, discount)
    cents = totals.to_cents()
    if any(abs(value) > MAX_STORED_CENTS for value in cents.values()):
        raise ValidationError("Document totals exceed the supported amount range")

    document.line_items = [item.to_dict() for item in items]
    document.document_discount_bps = percent_to_bps(discount)
    for name, value in cents.items():
        setattr(document, f"{name}_cents", value)
    return totals


def apply_status(
    document,
    new_status: str | None,
    *,
    year: int,
    prefix: str,
    max_attempts: int | None = None,
) -> bool:
    """
    Move document to new_status. Returns True when the status actually changed.

    Entering a numbered status while unnumbered allocates the number. An
    existing number is kept whatever the status does afterwards.
    """
    if new_status is None or new_status == document.status:
        return False

    if new_status not in document.STATUSES:
        raise DocumentError(f"Invalid status: {new_status}", details={"allowed": list(document.STATUSES)})

    document.status = new_status
    document.status_changed_at = utcnow()

    if new_status in document.NUMBERED_STATUSES and not document.document_number:
        document.document_number = allocate_document_number(
            model=type(document),
            owner_id=document.owner_id,
            year=year,
            prefix=prefix,
            max_attempts=max_attempts,
        )
        current_app.logger.info(
            "Allocated %s %s for owner %s",
            type(document).__tablename__,
            document.document_number,
            document.owner_id,
        )
    return True


def get_owned(model, owner_id: int, document_id: int, *, for_update: bool = False):
    query = db.session.query(model).filter_by(id=document_id, owner_id=owner_id)
    if for_update:
        query = lock_for_update(query)
    document = query.first()
    if not document:
        raise DocumentNotFoundError(f"{model.__name__} not found")
    return document


def recalculate_totals(model, owner_id: int | None = None) -> int:
    """Recompute stored totals for every document of model. Returns how many changed."""
    query = db.session.query(model)
    if owner_id is not None:
        query = query.filter_by(owner_id=owner_id)

    changed = 0
    for document in query.all():
        before = document.totals_dict()
        apply_totals(document)
        if document.totals_dict() != before:
            changed += 1
    db.session.commit()
    return changed
