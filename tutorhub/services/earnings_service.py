"""Earnings service — payment history and revenue aggregates.

Completed payments are dated by processed_at, falling back to
created_at. Amounts are summed as Decimal and reported as floats.
"""

from datetime import datetime, timezone
from decimal import Decimal

from tutorhub.domain.records import PaymentRecord
from tutorhub.models.payment import Payment
from tutorhub.models.session import TutoringSession
from tutorhub.models.tutor import Tutor
from tutorhub.models.user import User


def _aware(dt):
    # SQLite hands back naive datetimes even for timezone=True columns.
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _payment_date(payment):
    return _aware(payment.processed_at or payment.created_at)


def _month_start(now):
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _year_start(now):
    return now.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)


def _sum(payments):
    return sum((p.amount for p in payments), Decimal("0"))


def payment_history(user_id):
    """Payments made by the user (as payer), newest first."""
    rows = (
        Payment.query
        .filter_by(payer_id=user_id)
        .order_by(Payment.created_at.desc())
        .all()
    )
    return [PaymentRecord.from_model(p) for p in rows]


def earnings_summary(user_id, now=None):
    """Aggregate a tutor's payments (as payee).

    Returns dict with total_earnings, this_month_earnings,
    this_year_earnings, completed_sessions, pending_payments,
    avg_session_rate and the payment list (newest first).
    """
    now = _aware(now) or datetime.now(timezone.utc)
    month_start = _month_start(now)
    year_start = _year_start(now)

    payments = (
        Payment.query
        .filter_by(payee_id=user_id)
        .order_by(Payment.created_at.desc())
        .all()
    )
    completed = [p for p in payments if p.status == "completed"]
    pending = [p for p in payments if p.status == "pending"]

    total = _sum(completed)
    this_month = _sum(
        p for p in completed if month_start <= _payment_date(p) <= now
    )
    this_year = _sum(
        p for p in completed if year_start <= _payment_date(p) <= now
    )
    avg = total / len(completed) if completed else Decimal("0")

    return {
        "total_earnings": float(total),
        "this_month_earnings": float(this_month),
        "this_year_earnings": float(this_year),
        "completed_sessions": len(completed),
        "pending_payments": float(_sum(pending)),
        "avg_session_rate": round(float(avg), 2),
        "payments": [PaymentRecord.from_model(p).to_dict() for p in payments],
    }


def platform_overview(now=None):
    """Admin dashboard counters."""
    now = _aware(now) or datetime.now(timezone.utc)
    month_start = _month_start(now)

    completed = Payment.query.filter_by(status="completed").all()
    total_revenue = _sum(completed)
    this_month_revenue = _sum(
        p for p in completed if _payment_date(p) >= month_start
    )

    return {
        "total_users": User.query.count(),
        "pending_applications": Tutor.query.filter_by(status="pending").count(),
        "approved_tutors": Tutor.query.filter_by(status="approved").count(),
        "total_sessions": TutoringSession.query.count(),
        "completed_sessions": TutoringSession.query.filter_by(status="completed").count(),
        "total_revenue": float(total_revenue),
        "this_month_revenue": float(this_month_revenue),
    }
