"""Tutor application / profile model.

One row per user who has applied to teach. status moves through
pending -> approved | rejected, and approved tutors can be suspended.
Only approved tutors are listed to learners and can be booked.
"""

import uuid

from tutorhub.extensions import db


class Tutor(db.Model):
    __tablename__ = "tutors"

    # -- Valid statuses --
    STATUSES = ["pending", "approved", "rejected", "suspended"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), unique=True, nullable=False
    )
    status = db.Column(
        db.String(20), default="pending", nullable=False
    )  # pending | approved | rejected | suspended
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=True)
    education = db.Column(db.Text, nullable=True)
    experience_years = db.Column(db.Integer, nullable=True)
    languages = db.Column(db.JSON, default=list)
    certifications = db.Column(db.JSON, default=list)
    availability = db.Column(db.JSON, nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_by = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=True
    )
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    user = db.relationship(
        "User", back_populates="tutor_profile", foreign_keys=[user_id]
    )
    subjects = db.relationship(
        "TutorSubject", back_populates="tutor", cascade="all, delete-orphan"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "hourly_rate": float(self.hourly_rate) if self.hourly_rate is not None else None,
            "education": self.education,
            "experience_years": self.experience_years,
            "languages": self.languages or [],
            "certifications": self.certifications or [],
            "availability": self.availability,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "subjects": [ts.subject.to_dict() for ts in self.subjects if ts.subject],
            "profile": self.user.to_dict() if self.user else None,
        }

    def __repr__(self):
        return f"<Tutor user={self.user_id} ({self.status})>"
