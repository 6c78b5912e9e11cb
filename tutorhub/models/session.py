"""Tutoring session model (table: tutoring_sessions).

tutor_id and learner_id both reference users.id. Status transitions are
enforced in session_service via VALID_TRANSITIONS.
"""

import uuid

from tutorhub.extensions import db


class TutoringSession(db.Model):
    __tablename__ = "tutoring_sessions"

    # -- Valid statuses --
    STATUSES = ["scheduled", "in_progress", "completed", "cancelled"]

    # -- Valid status transitions (enforced in session_service) --
    VALID_TRANSITIONS = {
        "scheduled": ["in_progress", "cancelled"],
        "in_progress": ["completed", "cancelled"],
    }

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    tutor_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    learner_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    subject_id = db.Column(
        db.String(36), db.ForeignKey("subjects.id"), nullable=True
    )
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    scheduled_start = db.Column(db.DateTime(timezone=True), nullable=False)
    scheduled_end = db.Column(db.DateTime(timezone=True), nullable=False)
    actual_start = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end = db.Column(db.DateTime(timezone=True), nullable=True)
    status = db.Column(
        db.String(20), default="scheduled", nullable=False
    )  # scheduled | in_progress | completed | cancelled
    session_notes = db.Column(db.Text, nullable=True)
    rating = db.Column(db.Integer, nullable=True)  # 1..5, set by learner
    feedback = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    tutor = db.relationship("User", foreign_keys=[tutor_id])
    learner = db.relationship("User", foreign_keys=[learner_id])
    subject = db.relationship("Subject")
    payments = db.relationship(
        "Payment", back_populates="session", lazy="dynamic"
    )
    messages = db.relationship(
        "Message",
        back_populates="session",
        lazy="dynamic",
        order_by="Message.created_at",
    )

    def is_participant(self, user_id):
        return user_id in (self.tutor_id, self.learner_id)

    def __repr__(self):
        return f"<TutoringSession {self.title[:30]} ({self.status})>"
