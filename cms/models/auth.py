"""
Identity rows read by the workflow engine.

Users and role grants are written by the authentication and RBAC services.
Here they serve two purposes:
    - users.id is the actor carried in the JWT ``sub`` claim, and the target
      of workflow creator / assignee / reviewer foreign keys
    - roles.name is the slug the auto-approval policy matches against
"""

from datetime import datetime, timezone

from cms.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), nullable=False, unique=True, index=True)
    full_name = db.Column(db.String(200))
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    grants = db.relationship("UserRole", back_populates="user", cascade="all, delete-orphan")

    @property
    def display_name(self):
        return self.full_name or self.email

    def to_summary(self):
        """Identity block embedded in workflow and history responses."""
        return {"id": self.id, "email": self.email, "full_name": self.full_name}

    def __repr__(self):
        return f"<User {self.id} {self.email}>"


class Role(db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)  # "editor", "admin", ...

    def __repr__(self):
        return f"<Role {self.name}>"


class UserRole(db.Model):
    __tablename__ = "user_roles"
    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", name="uq_user_role"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False)
    granted_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    user = db.relationship("User", back_populates="grants")
    role = db.relationship("Role")
