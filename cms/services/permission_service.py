"""
Role lookups for the workflow engine.

Grants are administered by the RBAC service.  The engine reads
``user_roles`` on every check so a grant or revocation made after the token
was issued applies on the next request.
"""

import logging

from sqlalchemy import select

from cms.core.exceptions import NotFoundError
from cms.models import db
from cms.models.auth import Role, User, UserRole

logger = logging.getLogger(__name__)


def get_user_or_404(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def get_user_role_names(user_id: int) -> list[str]:
    """Role slugs the user holds, sorted and unique."""
    stmt = (
        select(Role.name)
        .join(UserRole, UserRole.role_id == Role.id)
        .where(UserRole.user_id == user_id)
        .distinct()
    )
    return sorted(db.session.scalars(stmt))


def assign_role(user_id: int, role_name: str) -> UserRole:
    """Grant ``role_name`` to the user, creating the role on first use.

    Idempotent; flushes but does not commit.  Seed scripts and tests call it.
    """
    role = db.session.scalar(select(Role).where(Role.name == role_name))
    if role is None:
        role = Role(name=role_name)
        db.session.add(role)
        db.session.flush()

    grant = db.session.scalar(
        select(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role.id)
    )
    if grant is None:
        grant = UserRole(user_id=user_id, role_id=role.id)
        db.session.add(grant)
        db.session.flush()
        logger.info("Role %s granted to user %s", role_name, user_id)
    return grant
