"""PayPal REST client — token exchange, order create, order capture.

Thin wrapper over the Orders v2 API using requests. Every call fetches
a fresh access token; nothing is cached between calls. No retries.

Endpoints (relative to PAYPAL_API_BASE):
- POST /v1/oauth2/token                       (client credentials grant)
- POST /v2/checkout/orders                    (create order, intent=CAPTURE)
- POST /v2/checkout/orders/<order_id>/capture (capture approved order)
"""

import logging

import requests
from flask import current_app

from tutorhub.errors import ConfigurationError, UpstreamAuthError, UpstreamRequestError

logger = logging.getLogger(__name__)


def _api_base():
    return current_app.config["PAYPAL_API_BASE"].rstrip("/")


def _timeout():
    return current_app.config.get("PAYPAL_TIMEOUT", 30)


def get_credentials():
    """Return (client_id, client_secret) or raise ConfigurationError."""
    client_id = current_app.config.get("PAYPAL_CLIENT_ID")
    client_secret = current_app.config.get("PAYPAL_CLIENT_SECRET")
    if not client_id or not client_secret:
        raise ConfigurationError("PayPal credentials not configured")
    return client_id, client_secret


def get_access_token():
    """Exchange client credentials for a short-lived bearer token.

    Raises:
        ConfigurationError: credentials missing.
        UpstreamAuthError: PayPal refused or could not be reached.
    """
    client_id, client_secret = get_credentials()

    try:
        resp = requests.post(
            f"{_api_base()}/v1/oauth2/token",
            auth=(client_id, client_secret),
            headers={
                "Content-Type": "application/x-www-form-urlencoded",
                "Accept": "application/json",
            },
            data={"grant_type": "client_credentials"},
            timeout=_timeout(),
        )
    except requests.RequestException as e:
        logger.error(f"PayPal token request failed: {e}")
        raise UpstreamAuthError("Failed to get PayPal access token") from e

    if not resp.ok:
        logger.error(f"PayPal token exchange rejected ({resp.status_code}): {resp.text}")
        raise UpstreamAuthError("Failed to get PayPal access token")

    token = resp.json().get("access_token")
    if not token:
        raise UpstreamAuthError("Failed to get PayPal access token")
    return token


def _auth_headers(access_token):
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {access_token}",
    }


def create_order(access_token, amount, currency, description, custom_id,
                 return_url, cancel_url):
    """Create a CAPTURE-intent order with a single purchase unit.

    amount is a Decimal; it is sent as a 2-decimal string.
    custom_id is an opaque correlation token echoed back by PayPal.

    Returns the order JSON (id, status, links...).
    Raises UpstreamRequestError if PayPal rejects the order.
    """
    body = {
        "intent": "CAPTURE",
        "purchase_units": [{
            "amount": {
                "currency_code": currency,
                "value": f"{amount:.2f}",
            },
            "description": description,
            "custom_id": custom_id,
        }],
        "application_context": {
            "return_url": return_url,
            "cancel_url": cancel_url,
        },
    }

    try:
        resp = requests.post(
            f"{_api_base()}/v2/checkout/orders",
            headers=_auth_headers(access_token),
            json=body,
            timeout=_timeout(),
        )
    except requests.RequestException as e:
        logger.error(f"PayPal order creation request failed: {e}")
        raise UpstreamRequestError("Failed to create PayPal order") from e

    if not resp.ok:
        logger.error(f"PayPal order creation failed: {resp.text}")
        raise UpstreamRequestError("Failed to create PayPal order")

    return resp.json()


def capture_order(access_token, order_id):
    """Capture an approved order. Returns the capture response JSON.

    Raises UpstreamRequestError if PayPal rejects the capture.
    """
    try:
        resp = requests.post(
            f"{_api_base()}/v2/checkout/orders/{order_id}/capture",
            headers=_auth_headers(access_token),
            timeout=_timeout(),
        )
    except requests.RequestException as e:
        logger.error(f"PayPal capture request failed for {order_id}: {e}")
        raise UpstreamRequestError("Failed to capture PayPal payment") from e

    if not resp.ok:
        logger.error(f"PayPal capture failed for {order_id}: {resp.text}")
        raise UpstreamRequestError("Failed to capture PayPal payment")

    return resp.json()


def find_approval_url(order):
    """Return the href of the order's rel="approve" link, or None."""
    for link in order.get("links") or []:
        if link.get("rel") == "approve":
            return link.get("href")
    return None
