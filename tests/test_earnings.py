"""Tests for payment history and tutor earnings aggregates."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from tutorhub.extensions import db
from tutorhub.models.payment import Payment
from tutorhub.services import earnings_service

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def _payment(seed_data, amount, status="completed", processed_at=None, order_id=None):
    payment = Payment(
        session_id=seed_data["session_id"],
        payer_id=seed_data["learner_id"],
        payee_id=seed_data["tutor_user_id"],
        amount=Decimal(amount),
        currency="USD",
        status=status,
        paypal_order_id=order_id,
        processed_at=processed_at,
        created_at=processed_at or NOW,
    )
    db.session.add(payment)
    return payment


class TestEarningsSummary:

    def test_aggregates_completed_payments(self, seed_data):
        _payment(seed_data, "40.00", processed_at=NOW - timedelta(days=2))         # this month
        _payment(seed_data, "60.00", processed_at=datetime(2026, 2, 1, tzinfo=timezone.utc))  # this year
        _payment(seed_data, "50.00", processed_at=datetime(2025, 12, 1, tzinfo=timezone.utc))  # last year
        _payment(seed_data, "45.00", status="pending")
        _payment(seed_data, "30.00", status="failed")
        db.session.commit()

        summary = earnings_service.earnings_summary(seed_data["tutor_user_id"], now=NOW)

        assert summary["total_earnings"] == 150.0
        assert summary["this_month_earnings"] == 40.0
        assert summary["this_year_earnings"] == 100.0
        assert summary["completed_sessions"] == 3
        assert summary["pending_payments"] == 45.0
        assert summary["avg_session_rate"] == 50.0
        assert len(summary["payments"]) == 5

    def test_no_payments(self, seed_data):
        summary = earnings_service.earnings_summary(seed_data["tutor_user_id"], now=NOW)

        assert summary["total_earnings"] == 0.0
        assert summary["avg_session_rate"] == 0.0
        assert summary["payments"] == []

    def test_learner_has_no_earnings(self, seed_data):
        _payment(seed_data, "40.00", processed_at=NOW)
        db.session.commit()

        summary = earnings_service.earnings_summary(seed_data["learner_id"], now=NOW)

        assert summary["completed_sessions"] == 0


class TestPaymentHistory:

    def test_payer_sees_own_payments(self, seed_data):
        _payment(seed_data, "40.00", processed_at=NOW, order_id="O-1")
        db.session.commit()

        history = earnings_service.payment_history(seed_data["learner_id"])

        assert [p.paypal_order_id for p in history] == ["O-1"]
        assert history[0].amount == Decimal("40.00")
        assert earnings_service.payment_history(seed_data["tutor_user_id"]) == []

    def test_routes(self, client, seed_data, login):
        _payment(seed_data, "40.00", processed_at=NOW, order_id="O-1")
        db.session.commit()

        login("learner@tutorhub.local")
        history = client.get("/payments").get_json()
        assert history[0]["amount"] == 40.0
        assert history[0]["status"] == "completed"

    def test_earnings_route(self, client, seed_data, login):
        _payment(seed_data, "40.00", processed_at=datetime.now(timezone.utc))
        db.session.commit()

        login("tutor@tutorhub.local")
        resp = client.get("/earnings")

        assert resp.status_code == 200
        assert resp.get_json()["total_earnings"] == 40.0

    def test_routes_require_login(self, client, seed_data):
        assert client.get("/payments").status_code == 401
        assert client.get("/earnings").status_code == 401


class TestPlatformOverview:

    def test_counters(self, seed_data):
        _payment(seed_data, "40.00", processed_at=NOW - timedelta(days=1))
        _payment(seed_data, "20.00", processed_at=NOW - timedelta(days=90))
        db.session.commit()

        overview = earnings_service.platform_overview(now=NOW)

        assert overview["total_users"] == 4
        assert overview["approved_tutors"] == 1
        assert overview["pending_applications"] == 0
        assert overview["total_sessions"] == 1
        assert overview["total_revenue"] == 60.0
        assert overview["this_month_revenue"] == 40.0
