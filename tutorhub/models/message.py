"""Chat message model.

Messages are immutable once inserted. Committed inserts are announced
by store triggers (see tutorhub.models.change_log) and fanned out by
tutorhub.realtime.
"""

import uuid

from tutorhub.extensions import db


class Message(db.Model):
    __tablename__ = "messages"

    # -- Valid message types --
    TYPES = ["text", "file", "image"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    session_id = db.Column(
        db.String(36), db.ForeignKey("tutoring_sessions.id"), nullable=False
    )
    sender_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    content = db.Column(db.Text, nullable=False)
    message_type = db.Column(
        db.String(20), default="text", nullable=False
    )  # text | file | image
    file_url = db.Column(db.String(1000), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    session = db.relationship("TutoringSession", back_populates="messages")
    sender = db.relationship("User")

    def __repr__(self):
        return f"<Message session={self.session_id} type={self.message_type}>"
