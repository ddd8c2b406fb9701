"""
Content Management Backend
Shared SQLAlchemy instance.

Every model module imports ``db`` from here; ``create_app`` binds it to the
Flask application with ``db.init_app(app)``.
"""

from datetime import timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utc_isoformat(value):
    """ISO 8601 with an explicit UTC offset, or None.

    SQLite hands timezone-aware columns back naive; those values were
    written as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()
