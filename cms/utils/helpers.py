"""Shared utility functions.

parse_datetime:      ISO date / datetime parsing for request input
clamp_paging:        page / limit normalisation for list endpoints
db_commit_or_raise:  commit-or-rollback for service-owned transactions
"""
import logging
from datetime import date, datetime, time, timezone

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from cms.core.exceptions import ConflictError
from cms.models import db

logger = logging.getLogger(__name__)


def parse_datetime(value):
    """Parse an ISO date or datetime string to an aware UTC datetime.

    Returns None for empty input.  Raises ValueError on unparseable input so
    callers can turn it into a 400 / ValidationError.

    - YYYY-MM-DD            → midnight UTC of that day
    - YYYY-MM-DDTHH:MM:SS   → as given; naive values are taken as UTC
    - trailing "Z" accepted
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError("Invalid date format. Use ISO 8601 (YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS).") from exc
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def clamp_paging(page, limit, *, default_limit=20, max_limit=100):
    """Normalise raw page/limit query values.

    page is 1-indexed and at least 1; limit is within [1, max_limit].
    Garbage input falls back to the defaults.

    Returns:
        (page, limit)
    """
    try:
        page = max(int(page), 1)
    except (TypeError, ValueError):
        page = 1
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = default_limit
    limit = min(max(limit, 1), max_limit)
    return page, limit


def db_commit_or_raise(*, resource="Record", field="key", value=None):
    """Commit the current session; on failure roll back and re-raise.

    Services own their transactions: a transition's status change, audit row
    and notification rows become visible together or not at all.

    A unique-constraint violation becomes ConflictError(resource, field,
    value) so the caller answers 409 instead of 500.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Integrity error on commit: %s", exc.orig)
        raise ConflictError(resource, field, value) from exc
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Database error on commit")
        raise
