"""Checkout blueprint — /functions/v1/paypal-checkout

The payment function. CSRF-exempt, CORS-open.

Route Map:
  POST    /functions/v1/paypal-checkout               — create PayPal order
          body {sessionId, amount, currency?} -> {orderId, approvalUrl}
  GET     /functions/v1/paypal-checkout?orderId=&paymentId=
                                                      — capture approved order
          -> {success, captureId}
  OPTIONS /functions/v1/paypal-checkout               — CORS preflight
  other methods                                       — 405

Every failure is returned as HTTP 500 with {"error": message}, whatever
its cause.
"""

import logging

from flask import Blueprint, jsonify, make_response, request
from flask_login import current_user

from tutorhub.extensions import limiter
from tutorhub.services import checkout_service

logger = logging.getLogger(__name__)

checkout_bp = Blueprint("checkout", __name__, url_prefix="/functions/v1")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def _cors_response(response):
    """Add CORS headers so the browser client can call the function."""
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response


def _caller_id():
    return current_user.id if current_user.is_authenticated else None


@checkout_bp.route(
    "/paypal-checkout",
    methods=["GET", "POST", "OPTIONS", "PUT", "PATCH", "DELETE"],
    provide_automatic_options=False,
)
@limiter.limit("30 per minute", methods=["POST", "GET"])
def paypal_checkout():
    """Create or capture a PayPal order depending on the HTTP method."""
    if request.method == "OPTIONS":
        return _cors_response(make_response("", 200))

    try:
        if request.method == "POST":
            data = request.get_json(silent=True) or {}
            result = checkout_service.create_order(
                session_id=data.get("sessionId"),
                amount=data.get("amount"),
                currency=data.get("currency"),
                caller_id=_caller_id(),
                origin=request.headers.get("Origin"),
            )
            return _cors_response(jsonify(result))

        if request.method == "GET":
            result = checkout_service.capture_order(
                order_id=request.args.get("orderId"),
                payer_reference_id=request.args.get("paymentId"),
            )
            return _cors_response(jsonify(result))

        return _cors_response(make_response("Method not allowed", 405))

    except Exception as e:
        logger.error(f"PayPal checkout error: {e}", exc_info=True)
        return _cors_response(jsonify({"error": str(e)})), 500
