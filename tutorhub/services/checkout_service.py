"""Checkout service — PayPal order lifecycle for tutoring sessions.

Responsible for:
- Creating a PayPal order for a session and recording a pending Payment
- Capturing an approved order and marking its Payment completed
- Looking up payment status by PayPal order id

Known gaps, kept as-is:
- No idempotency: every create_order call makes a new PayPal order and a
  new Payment row, even for the same session.
- If the Payment insert fails after PayPal accepted the order, the
  order is left orphaned at PayPal (no cancel call).
- If the status update fails after a successful capture, the money is
  captured but the row stays 'pending'. Nothing reconciles it.
"""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from tutorhub.domain.records import PaymentRecord
from tutorhub.errors import (
    NotFound,
    PermissionDenied,
    UpstreamQueryError,
    ValidationError,
)
from tutorhub.extensions import db
from tutorhub.models.audit import AuditEvent
from tutorhub.models.payment import Payment
from tutorhub.models.session import TutoringSession
from tutorhub.services import paypal_client

logger = logging.getLogger(__name__)


def _parse_amount(amount):
    if amount is None or isinstance(amount, bool):
        raise ValidationError("amount is required.")
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid amount '{amount}'.")
    if not value.is_finite() or value <= 0:
        raise ValidationError("amount must be a positive number.")
    return value.quantize(Decimal("0.01"))


def _parse_currency(currency):
    currency = (currency or current_app.config["PAYPAL_DEFAULT_CURRENCY"]).strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ValidationError(f"Invalid currency '{currency}'.")
    return currency


def create_order(session_id, amount, currency=None, caller_id=None, origin=None):
    """Create a PayPal order for a tutoring session.

    Args:
        session_id: TutoringSession UUID string.
        amount: Positive decimal amount (number or numeric string).
        currency: 3-letter code, defaults to PAYPAL_DEFAULT_CURRENCY.
        caller_id: If given, must be the session's learner.
        origin: Base URL for the return/cancel redirects
                (falls back to APP_BASE_URL).

    Returns:
        {"orderId": ..., "approvalUrl": ...}

    Raises:
        ConfigurationError, UpstreamAuthError, NotFound, PermissionDenied,
        ValidationError, UpstreamRequestError, UpstreamQueryError.
    """
    if not session_id:
        raise ValidationError("sessionId is required.")
    value = _parse_amount(amount)
    currency = _parse_currency(currency)

    access_token = paypal_client.get_access_token()

    session = db.session.get(TutoringSession, session_id)
    if session is None:
        raise NotFound("Session not found")

    if caller_id is not None and caller_id != session.learner_id:
        raise PermissionDenied("Only the session's learner can pay for it.")

    base_url = (origin or current_app.config["APP_BASE_URL"]).rstrip("/")

    order = paypal_client.create_order(
        access_token,
        amount=value,
        currency=currency,
        description=f"Tutoring Session: {session.title}",
        custom_id=session_id,
        return_url=f"{base_url}/payment-success",
        cancel_url=f"{base_url}/payment-cancelled",
    )
    order_id = order.get("id")

    payment = Payment(
        session_id=session_id,
        payer_id=session.learner_id,
        payee_id=session.tutor_id,
        amount=value,
        currency=currency,
        status="pending",
        paypal_order_id=order_id,
    )
    try:
        db.session.add(payment)
        db.session.add(AuditEvent(
            actor_user_id=caller_id,
            action="payment.order_created",
            metadata_={
                "session_id": session_id,
                "paypal_order_id": order_id,
                "amount": str(value),
                "currency": currency,
            },
        ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        # PayPal order stays orphaned; there is no compensating cancel.
        logger.error(f"Failed to store payment record for PayPal order {order_id}: {e}")
        raise UpstreamQueryError("Failed to store payment record") from e

    logger.info(f"Created PayPal order {order_id} for session {session_id} ({value} {currency})")

    return {
        "orderId": order_id,
        "approvalUrl": paypal_client.find_approval_url(order),
    }


def capture_order(order_id, payer_reference_id=None):
    """Capture an approved PayPal order and complete its Payment row(s).

    Args:
        order_id: PayPal order id returned by create_order.
        payer_reference_id: PayerID from the approval redirect, stored as
                            paypal_payment_id.

    Returns:
        {"success": True, "captureId": ...}

    Calling this twice for the same order calls PayPal twice.
    """
    if not order_id:
        raise ValidationError("Order ID is required for capture")

    access_token = paypal_client.get_access_token()
    capture = paypal_client.capture_order(access_token, order_id)

    now = datetime.now(timezone.utc)
    try:
        payments = Payment.query.filter_by(paypal_order_id=order_id).all()
        if not payments:
            logger.warning(f"Captured PayPal order {order_id} has no payment record")
        for payment in payments:
            payment.status = "completed"
            payment.paypal_payment_id = payer_reference_id
            payment.processed_at = now
        db.session.add(AuditEvent(
            action="payment.captured",
            metadata_={
                "paypal_order_id": order_id,
                "capture_id": capture.get("id"),
                "payments_updated": len(payments),
            },
        ))
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        # Captured at PayPal, still pending locally.
        logger.error(f"Failed to update payment record for PayPal order {order_id}: {e}")

    logger.info(f"Captured PayPal order {order_id}")

    return {"success": True, "captureId": capture.get("id")}


def get_payment_status(order_id, user_id=None):
    """Return the PaymentRecord for a PayPal order id.

    If user_id is given, only payments where the user is payer or payee
    are visible.

    Raises NotFound if no payment carries that order id.
    """
    if not order_id:
        raise ValidationError("orderId is required.")

    query = Payment.query.filter_by(paypal_order_id=order_id)
    if user_id is not None:
        query = query.filter(
            db.or_(Payment.payer_id == user_id, Payment.payee_id == user_id)
        )
    payment = query.order_by(Payment.created_at.desc()).first()
    if payment is None:
        raise NotFound("Payment not found")
    return PaymentRecord.from_model(payment)


def list_stale_pending(older_than_minutes, now=None):
    """Pending payments created more than N minutes ago, oldest first.

    Read-only: used to surface captured-but-pending or abandoned orders
    for manual follow-up.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(minutes=older_than_minutes)
    rows = (
        Payment.query
        .filter(Payment.status == "pending", Payment.created_at < cutoff)
        .order_by(Payment.created_at.asc())
        .all()
    )
    return [PaymentRecord.from_model(p) for p in rows]
