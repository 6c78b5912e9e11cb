"""Payment model.

One row per checkout attempt for a tutoring session. Created 'pending'
when the PayPal order is created, moved to 'completed' by capture.
'failed' and 'refunded' exist for manual/admin action only.

No unique constraint on session_id: retries create additional rows.
"""

import uuid

from tutorhub.extensions import db


class Payment(db.Model):
    __tablename__ = "payments"

    # -- Valid statuses --
    STATUSES = ["pending", "completed", "failed", "refunded"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    session_id = db.Column(
        db.String(36), db.ForeignKey("tutoring_sessions.id"), nullable=False
    )
    payer_id = db.Column(db.String(36), nullable=False)  # learner user id
    payee_id = db.Column(db.String(36), nullable=False)  # tutor user id
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    currency = db.Column(db.String(3), default="USD", nullable=False)
    status = db.Column(
        db.String(20), default="pending", nullable=False
    )  # pending | completed | failed | refunded
    paypal_order_id = db.Column(db.String(64), nullable=True, index=True)
    paypal_payment_id = db.Column(db.String(64), nullable=True)  # PayerID from approval redirect
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # --- Relationships ---
    session = db.relationship("TutoringSession", back_populates="payments")

    def __repr__(self):
        return f"<Payment {self.amount} {self.currency} ({self.status})>"
