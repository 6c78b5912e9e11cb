"""Tests for the PayPal payment function (/functions/v1/paypal-checkout).

Covers:
- Order creation: happy path, pending Payment row, return/cancel URLs
- Order capture: happy path, completed row, double capture
- Method dispatch: OPTIONS preflight, unsupported methods
- Failure mapping: every error is a 500 with {"error": message}
- Known gaps: duplicate orders, orphaned order on persistence failure,
  captured-but-pending row on update failure
- Payment status lookup and the stale pending listing
"""

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from tutorhub.errors import NotFound
from tutorhub.extensions import db
from tutorhub.models.audit import AuditEvent
from tutorhub.models.payment import Payment
from tutorhub.services import checkout_service

URL = "/functions/v1/paypal-checkout"
POST_TARGET = "tutorhub.services.paypal_client.requests.post"


def _resp(status=200, payload=None):
    resp = MagicMock()
    resp.ok = status < 400
    resp.status_code = status
    resp.json.return_value = payload or {}
    resp.text = json.dumps(payload or {})
    return resp


def fake_paypal(order_id="O-123", capture_id="C-77", token_status=200,
                order_status=201, capture_status=201):
    """Build a requests.post side effect that routes by PayPal endpoint."""

    def _post(url, **kwargs):
        if url.endswith("/v1/oauth2/token"):
            return _resp(token_status, {"access_token": "A21-token"})
        if url.endswith("/capture"):
            return _resp(capture_status, {"id": capture_id, "status": "COMPLETED"})
        if url.endswith("/v2/checkout/orders"):
            return _resp(order_status, {
                "id": order_id,
                "status": "CREATED",
                "links": [
                    {"rel": "self", "href": f"https://provider/orders/{order_id}"},
                    {"rel": "approve", "href": f"https://provider/approve/{order_id}"},
                ],
            })
        raise AssertionError(f"Unexpected PayPal call: {url}")

    return _post


def _calls_to(mock_post, suffix):
    return [c for c in mock_post.call_args_list if c.args[0].endswith(suffix)]


# ──────────────────────────────────────────────
# POST — create order
# ──────────────────────────────────────────────


class TestCreateOrder:
    """POST creates a PayPal order and a pending Payment."""

    @patch(POST_TARGET)
    def test_returns_order_id_and_approval_url(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal()

        resp = client.post(URL, json={
            "sessionId": seed_data["session_id"],
            "amount": 45.00,
            "currency": "USD",
        })

        assert resp.status_code == 200
        assert resp.get_json() == {
            "orderId": "O-123",
            "approvalUrl": "https://provider/approve/O-123",
        }
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    @patch(POST_TARGET)
    def test_records_one_pending_payment(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal()

        client.post(URL, json={"sessionId": seed_data["session_id"], "amount": 45})

        payments = Payment.query.all()
        assert len(payments) == 1
        payment = payments[0]
        assert payment.paypal_order_id == "O-123"
        assert payment.status == "pending"
        assert Decimal(str(payment.amount)) == Decimal("45.00")
        assert payment.currency == "USD"
        assert payment.payer_id == seed_data["learner_id"]
        assert payment.payee_id == seed_data["tutor_user_id"]
        assert payment.processed_at is None

    @patch(POST_TARGET)
    def test_sends_session_title_and_redirect_urls(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal()

        client.post(
            URL,
            json={"sessionId": seed_data["session_id"], "amount": "30.5", "currency": "eur"},
            headers={"Origin": "https://app.example.com"},
        )

        (order_call,) = _calls_to(mock_post, "/v2/checkout/orders")
        body = order_call.kwargs["json"]
        assert body["intent"] == "CAPTURE"
        unit = body["purchase_units"][0]
        assert unit["amount"] == {"currency_code": "EUR", "value": "30.50"}
        assert unit["description"] == "Tutoring Session: Algebra basics"
        assert unit["custom_id"] == seed_data["session_id"]
        assert body["application_context"] == {
            "return_url": "https://app.example.com/payment-success",
            "cancel_url": "https://app.example.com/payment-cancelled",
        }
        assert order_call.kwargs["headers"]["Authorization"] == "Bearer A21-token"

    @patch(POST_TARGET)
    def test_redirect_urls_fall_back_to_app_base_url(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal()

        client.post(URL, json={"sessionId": seed_data["session_id"], "amount": 10})

        (order_call,) = _calls_to(mock_post, "/v2/checkout/orders")
        context = order_call.kwargs["json"]["application_context"]
        assert context["return_url"] == "http://localhost:5000/payment-success"

    @patch(POST_TARGET)
    def test_writes_audit_event(self, mock_post, client, seed_data, login):
        mock_post.side_effect = fake_paypal()
        login("learner@tutorhub.local")

        client.post(URL, json={"sessionId": seed_data["session_id"], "amount": 45})

        event = AuditEvent.query.filter_by(action="payment.order_created").one()
        assert event.actor_user_id == seed_data["learner_id"]
        assert event.metadata_["paypal_order_id"] == "O-123"

    @patch(POST_TARGET)
    def test_duplicate_requests_create_duplicate_orders(self, mock_post, client, seed_data):
        """No idempotency: two POSTs for the same session mean two orders."""
        orders = iter(["O-1", "O-2"])

        def _post(url, **kwargs):
            if url.endswith("/v2/checkout/orders"):
                return fake_paypal(order_id=next(orders))(url, **kwargs)
            return fake_paypal()(url, **kwargs)

        mock_post.side_effect = _post
        body = {"sessionId": seed_data["session_id"], "amount": 45}

        first = client.post(URL, json=body).get_json()
        second = client.post(URL, json=body).get_json()

        assert first["orderId"] == "O-1"
        assert second["orderId"] == "O-2"
        rows = Payment.query.filter_by(session_id=seed_data["session_id"]).all()
        assert sorted(p.paypal_order_id for p in rows) == ["O-1", "O-2"]
        assert all(p.status == "pending" for p in rows)

    @patch(POST_TARGET)
    def test_non_learner_caller_rejected(self, mock_post, client, seed_data, login):
        mock_post.side_effect = fake_paypal()
        login("outsider@tutorhub.local")

        resp = client.post(URL, json={"sessionId": seed_data["session_id"], "amount": 45})

        assert resp.status_code == 500
        assert "learner" in resp.get_json()["error"]
        assert _calls_to(mock_post, "/v2/checkout/orders") == []
        assert Payment.query.count() == 0


class TestCreateOrderFailures:
    """Every create failure is a 500 and leaves no Payment row."""

    @patch(POST_TARGET)
    def test_missing_credentials(self, mock_post, client, seed_data, app, monkeypatch):
        monkeypatch.setitem(app.config, "PAYPAL_CLIENT_ID", None)

        resp = client.post(URL, json={"sessionId": seed_data["session_id"], "amount": 45})

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "PayPal credentials not configured"}
        mock_post.assert_not_called()
        assert Payment.query.count() == 0

    @patch(POST_TARGET)
    def test_token_exchange_rejected(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal(token_status=401)

        resp = client.post(URL, json={"sessionId": seed_data["session_id"], "amount": 45})

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Failed to get PayPal access token"}
        assert Payment.query.count() == 0

    @patch(POST_TARGET)
    def test_unknown_session(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal()

        resp = client.post(URL, json={"sessionId": "no-such-session", "amount": 45})

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Session not found"}
        assert _calls_to(mock_post, "/v2/checkout/orders") == []
        assert Payment.query.count() == 0

    @patch(POST_TARGET)
    def test_order_rejected_by_provider(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal(order_status=422)

        resp = client.post(URL, json={"sessionId": seed_data["session_id"], "amount": 45})

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Failed to create PayPal order"}
        assert Payment.query.count() == 0

    @pytest.mark.parametrize("amount", [None, 0, -5, "abc", "NaN"])
    @patch(POST_TARGET)
    def test_invalid_amount(self, mock_post, amount, client, seed_data):
        resp = client.post(URL, json={"sessionId": seed_data["session_id"], "amount": amount})

        assert resp.status_code == 500
        assert "amount" in resp.get_json()["error"]
        mock_post.assert_not_called()

    @patch(POST_TARGET)
    def test_missing_body(self, mock_post, client, seed_data):
        resp = client.post(URL, data="not json", content_type="text/plain")

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "sessionId is required."}
        mock_post.assert_not_called()

    @patch(POST_TARGET)
    def test_persistence_failure_orphans_provider_order(self, mock_post, client, seed_data):
        """The provider order exists but no Payment row does. Nothing cancels it."""
        mock_post.side_effect = fake_paypal()

        with patch.object(db.session, "commit", side_effect=SQLAlchemyError("disk full")):
            resp = client.post(URL, json={"sessionId": seed_data["session_id"], "amount": 45})

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Failed to store payment record"}
        assert len(_calls_to(mock_post, "/v2/checkout/orders")) == 1
        assert Payment.query.count() == 0


# ──────────────────────────────────────────────
# GET — capture order
# ──────────────────────────────────────────────


def _pending_payment(seed_data, order_id="O-123", amount="45.00"):
    payment = Payment(
        session_id=seed_data["session_id"],
        payer_id=seed_data["learner_id"],
        payee_id=seed_data["tutor_user_id"],
        amount=Decimal(amount),
        currency="USD",
        status="pending",
        paypal_order_id=order_id,
    )
    db.session.add(payment)
    db.session.commit()
    return payment


class TestCaptureOrder:
    """GET captures an approved order and completes the Payment."""

    @patch(POST_TARGET)
    def test_capture_completes_payment(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal()
        payment = _pending_payment(seed_data)

        resp = client.get(f"{URL}?orderId=O-123&paymentId=PAYER-9")

        assert resp.status_code == 200
        assert resp.get_json() == {"success": True, "captureId": "C-77"}
        db.session.refresh(payment)
        assert payment.status == "completed"
        assert payment.paypal_payment_id == "PAYER-9"
        assert payment.processed_at is not None

    @patch(POST_TARGET)
    def test_capture_uses_fresh_token(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal()
        _pending_payment(seed_data)

        client.get(f"{URL}?orderId=O-123&paymentId=PAYER-9")

        assert len(_calls_to(mock_post, "/v1/oauth2/token")) == 1
        (capture_call,) = _calls_to(mock_post, "/capture")
        assert capture_call.args[0].endswith("/v2/checkout/orders/O-123/capture")

    @patch(POST_TARGET)
    def test_capture_twice_calls_provider_twice(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal()
        _pending_payment(seed_data)

        client.get(f"{URL}?orderId=O-123&paymentId=PAYER-9")
        client.get(f"{URL}?orderId=O-123&paymentId=PAYER-9")

        assert len(_calls_to(mock_post, "/capture")) == 2

    @patch(POST_TARGET)
    def test_capture_updates_every_row_for_order(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal()
        _pending_payment(seed_data)
        _pending_payment(seed_data)

        client.get(f"{URL}?orderId=O-123&paymentId=PAYER-9")

        rows = Payment.query.filter_by(paypal_order_id="O-123").all()
        assert len(rows) == 2
        assert all(p.status == "completed" for p in rows)

    @patch(POST_TARGET)
    def test_missing_order_id(self, mock_post, client, seed_data):
        resp = client.get(URL)

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Order ID is required for capture"}
        mock_post.assert_not_called()

    @patch(POST_TARGET)
    def test_capture_rejected_leaves_payment_pending(self, mock_post, client, seed_data):
        mock_post.side_effect = fake_paypal(capture_status=422)
        payment = _pending_payment(seed_data)

        resp = client.get(f"{URL}?orderId=O-123&paymentId=PAYER-9")

        assert resp.status_code == 500
        assert resp.get_json() == {"error": "Failed to capture PayPal payment"}
        db.session.refresh(payment)
        assert payment.status == "pending"

    @patch(POST_TARGET)
    def test_update_failure_still_reports_success(self, mock_post, client, seed_data):
        """Money is captured; the row stays pending and only a log records it."""
        mock_post.side_effect = fake_paypal()
        payment = _pending_payment(seed_data)
        payment_id = payment.id

        with patch.object(db.session, "commit", side_effect=SQLAlchemyError("lost connection")):
            resp = client.get(f"{URL}?orderId=O-123&paymentId=PAYER-9")

        assert resp.status_code == 200
        assert resp.get_json() == {"success": True, "captureId": "C-77"}
        assert db.session.get(Payment, payment_id).status == "pending"


# ──────────────────────────────────────────────
# Method dispatch
# ──────────────────────────────────────────────


class TestMethodDispatch:

    def test_options_preflight(self, client):
        resp = client.options(URL)

        assert resp.status_code == 200
        assert resp.headers["Access-Control-Allow-Origin"] == "*"
        assert resp.headers["Access-Control-Allow-Headers"] == (
            "authorization, x-client-info, apikey, content-type"
        )

    @pytest.mark.parametrize("method", ["put", "patch", "delete"])
    def test_other_methods_not_allowed(self, client, method):
        resp = getattr(client, method)(URL)

        assert resp.status_code == 405
        assert resp.get_data(as_text=True) == "Method not allowed"
        assert resp.headers["Access-Control-Allow-Origin"] == "*"

    def test_checkout_is_csrf_exempt(self, app, client, seed_data, monkeypatch):
        monkeypatch.setitem(app.config, "WTF_CSRF_ENABLED", True)

        with patch(POST_TARGET, side_effect=fake_paypal()):
            resp = client.post(URL, json={"sessionId": seed_data["session_id"], "amount": 45})

        assert resp.status_code == 200


# ──────────────────────────────────────────────
# Status lookup and stale listing
# ──────────────────────────────────────────────


class TestPaymentStatus:

    def test_status_by_order_id(self, client, seed_data, login):
        _pending_payment(seed_data, order_id="O-555")
        login("learner@tutorhub.local")

        resp = client.get("/payments/status?orderId=O-555")

        assert resp.status_code == 200
        data = resp.get_json()
        assert data["orderId"] == "O-555"
        assert data["status"] == "pending"
        assert data["processed_at"] is None

    def test_status_hidden_from_unrelated_user(self, client, seed_data, login):
        _pending_payment(seed_data, order_id="O-555")
        login("outsider@tutorhub.local")

        resp = client.get("/payments/status?orderId=O-555")

        assert resp.status_code == 404

    def test_status_unknown_order_raises(self, seed_data):
        with pytest.raises(NotFound):
            checkout_service.get_payment_status("O-missing")


class TestStalePending:

    def test_lists_only_old_pending(self, seed_data):
        now = datetime.now(timezone.utc)
        old = _pending_payment(seed_data, order_id="O-old")
        old.created_at = now - timedelta(hours=2)
        fresh = _pending_payment(seed_data, order_id="O-fresh")
        fresh.created_at = now - timedelta(minutes=5)
        done = _pending_payment(seed_data, order_id="O-done")
        done.created_at = now - timedelta(hours=3)
        done.status = "completed"
        db.session.commit()

        stale = checkout_service.list_stale_pending(60, now=now)

        assert [p.paypal_order_id for p in stale] == ["O-old"]

    def test_cli_lists_stale_payments(self, app, seed_data):
        payment = _pending_payment(seed_data, order_id="O-cli")
        payment.created_at = datetime.now(timezone.utc) - timedelta(days=2)
        db.session.commit()

        result = app.test_cli_runner().invoke(args=["pending-payments", "--older-than", "60"])

        assert result.exit_code == 0
        assert "1 payment(s) pending" in result.output
        assert "order=O-cli" in result.output

    def test_cli_reports_nothing_stale(self, app, seed_data):
        result = app.test_cli_runner().invoke(args=["pending-payments"])

        assert result.exit_code == 0
        assert "No payments pending" in result.output
