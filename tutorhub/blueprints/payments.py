"""Payments blueprint — payment history, status checks, tutor earnings.

Route Map:
  GET /payments          — payments I made (as learner)
  GET /payments/status   — status of my payment by PayPal order id (?orderId=)
  GET /earnings          — my earnings summary (as tutor)
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from tutorhub.services import checkout_service, earnings_service

payments_bp = Blueprint("payments", __name__)


@payments_bp.route("/payments")
@login_required
def history():
    records = earnings_service.payment_history(current_user.id)
    return jsonify([r.to_dict() for r in records])


@payments_bp.route("/payments/status")
@login_required
def status():
    """Polled by the client after the PayPal window closes."""
    record = checkout_service.get_payment_status(
        request.args.get("orderId"), user_id=current_user.id
    )
    return jsonify({
        "orderId": record.paypal_order_id,
        "status": record.status,
        "processed_at": record.processed_at.isoformat() if record.processed_at else None,
    })


@payments_bp.route("/earnings")
@login_required
def earnings():
    return jsonify(earnings_service.earnings_summary(current_user.id))
