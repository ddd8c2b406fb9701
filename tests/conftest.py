"""
Shared pytest fixtures for the workflow engine test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_user: user factory with optional role grants
    - creator / reviewer / other_reviewer / admin: ready-made users
    - auth_headers: Bearer header builder for a user
    - review_required: config row forcing human review for "content"
"""

import itertools

import pytest

from cms import create_app
from cms.models import db as _db
from cms.models.auth import User
from cms.services import workflow_policy
from cms.services.jwt_service import generate_access_token
from cms.services.permission_service import assign_role


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Users & auth ─────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: make_user("Name", roles=["editor"]) -> committed User."""
    seq = itertools.count(1)

    def _make(full_name="Test User", roles=()):
        n = next(seq)
        user = User(
            email=f"{full_name.lower().replace(' ', '.')}.{n}@example.com",
            full_name=full_name,
        )
        _db.session.add(user)
        _db.session.flush()
        for role in roles:
            assign_role(user.id, role)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def creator(make_user):
    return make_user("Casey Creator", roles=["editor"])


@pytest.fixture()
def reviewer(make_user):
    return make_user("Robin Reviewer", roles=["reviewer"])


@pytest.fixture()
def other_reviewer(make_user):
    return make_user("Riley Reviewer", roles=["reviewer"])


@pytest.fixture()
def admin(make_user):
    return make_user("Alex Admin", roles=["admin"])


@pytest.fixture()
def auth_headers():
    """auth_headers(user) -> {"Authorization": "Bearer ..."}"""

    def _headers(user_or_id):
        user_id = getattr(user_or_id, "id", user_or_id)
        return {"Authorization": f"Bearer {generate_access_token(user_id)}"}

    return _headers


# ── Policy ───────────────────────────────────────────────────────────────


@pytest.fixture()
def review_required():
    """Content submissions go to review; nobody bypasses it."""
    return workflow_policy.upsert_config("content", {"requires_approval": True})
