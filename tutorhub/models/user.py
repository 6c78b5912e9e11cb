"""User model.

Stores authentication credentials and profile info.
Flask-Login integration via UserMixin. Roles live in user_roles so a
single account can be both learner and tutor.
"""

import uuid

from flask_login import UserMixin

from tutorhub.extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email = db.Column(db.String(255), unique=True, nullable=False)
    password_hash = db.Column(db.String(255), nullable=False)
    first_name = db.Column(db.String(120))
    last_name = db.Column(db.String(120))
    avatar_url = db.Column(db.String(1000))
    bio = db.Column(db.Text)
    phone = db.Column(db.String(50))
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    roles = db.relationship(
        "UserRole", back_populates="user", cascade="all, delete-orphan"
    )
    tutor_profile = db.relationship(
        "Tutor",
        back_populates="user",
        uselist=False,
        foreign_keys="Tutor.user_id",
    )
    audit_events = db.relationship(
        "AuditEvent", back_populates="actor", lazy="dynamic"
    )

    @property
    def full_name(self):
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts)

    @property
    def role_names(self):
        return sorted(r.role for r in self.roles)

    @property
    def is_admin(self):
        return self.has_role("admin")

    def has_role(self, role):
        return any(r.role == role for r in self.roles)

    def grant_role(self, role):
        """Add a role if the user doesn't already have it."""
        if role not in UserRole.ROLES:
            raise ValueError(f"Invalid role '{role}'.")
        if not self.has_role(role):
            self.roles.append(UserRole(role=role))

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "avatar_url": self.avatar_url,
            "roles": self.role_names,
        }

    def __repr__(self):
        return f"<User {self.email}>"


class UserRole(db.Model):
    __tablename__ = "user_roles"
    __table_args__ = (
        db.UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )

    ROLES = ["learner", "tutor", "admin"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    role = db.Column(
        db.String(20), default="learner", nullable=False
    )  # learner | tutor | admin
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    user = db.relationship("User", back_populates="roles")

    def __repr__(self):
        return f"<UserRole {self.role}>"
