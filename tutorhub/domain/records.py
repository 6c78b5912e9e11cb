"""Typed records for rows crossing from the store into application logic.

ORM rows stay inside services. Everything handed to blueprints, the chat
feed, or tests is one of these frozen records, validated on construction
so an unexpected status or message type fails at the boundary.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

SESSION_STATUSES = ("scheduled", "in_progress", "completed", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")
MESSAGE_TYPES = ("text", "file", "image")


def _iso(value):
    return value.isoformat() if value else None


@dataclass(frozen=True)
class SenderRecord:
    """Display fields of a message sender."""

    first_name: Optional[str]
    last_name: Optional[str]
    avatar_url: Optional[str]
    email: Optional[str]

    @classmethod
    def from_model(cls, user):
        return cls(
            first_name=user.first_name,
            last_name=user.last_name,
            avatar_url=user.avatar_url,
            email=user.email,
        )

    @property
    def initials(self):
        if self.first_name and self.last_name:
            return f"{self.first_name[0]}{self.last_name[0]}"
        return (self.email or "U")[0].upper()

    def to_dict(self):
        return {
            "first_name": self.first_name,
            "last_name": self.last_name,
            "avatar_url": self.avatar_url,
            "email": self.email,
        }


@dataclass(frozen=True)
class SessionRecord:
    id: str
    tutor_id: str
    learner_id: str
    title: str
    scheduled_start: datetime
    scheduled_end: datetime
    status: str
    subject_id: Optional[str] = None
    description: Optional[str] = None
    actual_start: Optional[datetime] = None
    actual_end: Optional[datetime] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None
    is_paid: bool = False

    def __post_init__(self):
        if self.status not in SESSION_STATUSES:
            raise ValueError(f"Unknown session status '{self.status}'")
        if not self.id or not self.tutor_id or not self.learner_id:
            raise ValueError("Session requires id, tutor_id and learner_id")

    @classmethod
    def from_model(cls, row, is_paid=False):
        return cls(
            id=row.id,
            tutor_id=row.tutor_id,
            learner_id=row.learner_id,
            title=row.title,
            scheduled_start=row.scheduled_start,
            scheduled_end=row.scheduled_end,
            status=row.status,
            subject_id=row.subject_id,
            description=row.description,
            actual_start=row.actual_start,
            actual_end=row.actual_end,
            rating=row.rating,
            feedback=row.feedback,
            is_paid=is_paid,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "tutor_id": self.tutor_id,
            "learner_id": self.learner_id,
            "subject_id": self.subject_id,
            "title": self.title,
            "description": self.description,
            "scheduled_start": _iso(self.scheduled_start),
            "scheduled_end": _iso(self.scheduled_end),
            "actual_start": _iso(self.actual_start),
            "actual_end": _iso(self.actual_end),
            "status": self.status,
            "rating": self.rating,
            "feedback": self.feedback,
            "is_paid": self.is_paid,
        }


@dataclass(frozen=True)
class PaymentRecord:
    id: str
    session_id: str
    payer_id: str
    payee_id: str
    amount: Decimal
    currency: str
    status: str
    paypal_order_id: Optional[str] = None
    paypal_payment_id: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    def __post_init__(self):
        if self.status not in PAYMENT_STATUSES:
            raise ValueError(f"Unknown payment status '{self.status}'")
        if len(self.currency or "") != 3:
            raise ValueError(f"Invalid currency '{self.currency}'")

    @classmethod
    def from_model(cls, row):
        return cls(
            id=row.id,
            session_id=row.session_id,
            payer_id=row.payer_id,
            payee_id=row.payee_id,
            amount=Decimal(str(row.amount)),
            currency=row.currency,
            status=row.status,
            paypal_order_id=row.paypal_order_id,
            paypal_payment_id=row.paypal_payment_id,
            created_at=row.created_at,
            processed_at=row.processed_at,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "payer_id": self.payer_id,
            "payee_id": self.payee_id,
            "amount": float(self.amount),
            "currency": self.currency,
            "status": self.status,
            "paypal_order_id": self.paypal_order_id,
            "paypal_payment_id": self.paypal_payment_id,
            "created_at": _iso(self.created_at),
            "processed_at": _iso(self.processed_at),
        }


@dataclass(frozen=True)
class MessageRecord:
    id: str
    session_id: str
    sender_id: str
    content: str
    message_type: str
    created_at: Optional[datetime]
    file_url: Optional[str] = None
    sender: Optional[SenderRecord] = None

    def __post_init__(self):
        if self.message_type not in MESSAGE_TYPES:
            raise ValueError(f"Unknown message type '{self.message_type}'")

    @classmethod
    def from_model(cls, row):
        return cls(
            id=row.id,
            session_id=row.session_id,
            sender_id=row.sender_id,
            content=row.content,
            message_type=row.message_type or "text",
            created_at=row.created_at,
            file_url=row.file_url,
            sender=SenderRecord.from_model(row.sender) if row.sender else None,
        )

    def to_dict(self):
        return {
            "id": self.id,
            "session_id": self.session_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "message_type": self.message_type,
            "file_url": self.file_url,
            "created_at": _iso(self.created_at),
            "sender": self.sender.to_dict() if self.sender else None,
        }
