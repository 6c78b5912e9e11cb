"""Tests for the dashboard counters and the tutor's student roster."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import make_user
from tutorhub.errors import NotFound
from tutorhub.extensions import db
from tutorhub.models.message import Message
from tutorhub.models.payment import Payment
from tutorhub.models.session import TutoringSession
from tutorhub.models.subject import Subject
from tutorhub.services import dashboard_service

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)


def _session(seed_data, learner_id, start, status="scheduled", subject_id=None, rating=None):
    session = TutoringSession(
        tutor_id=seed_data["tutor_user_id"],
        learner_id=learner_id,
        subject_id=subject_id,
        title="Extra practice",
        scheduled_start=start,
        scheduled_end=start + timedelta(hours=1),
        status=status,
        rating=rating,
    )
    db.session.add(session)
    db.session.flush()
    return session


def _paid(seed_data, session, amount, status="completed"):
    db.session.add(Payment(
        session_id=session.id,
        payer_id=session.learner_id,
        payee_id=seed_data["tutor_user_id"],
        amount=Decimal(amount),
        currency="USD",
        status=status,
    ))


class TestDashboardStats:

    def test_learner_counters(self, seed_data):
        seed_data["session"].scheduled_start = NOW + timedelta(days=1)
        seed_data["session"].scheduled_end = NOW + timedelta(days=1, hours=1)
        _session(seed_data, seed_data["learner_id"], NOW - timedelta(days=3), status="completed")
        db.session.add(Message(
            session_id=seed_data["session_id"], sender_id=seed_data["learner_id"], content="hi",
        ))
        db.session.add(Message(
            session_id=seed_data["session_id"], sender_id=seed_data["tutor_user_id"], content="yo",
        ))
        db.session.commit()

        stats = dashboard_service.dashboard_stats(seed_data["learner_id"], now=NOW)

        assert stats["total_sessions"] == 2
        assert stats["upcoming_sessions"] == 1
        assert stats["messages_sent"] == 1
        assert stats["roles"] == ["learner"]
        assert stats["tutor_status"] is None

    def test_past_or_cancelled_sessions_not_upcoming(self, seed_data):
        _session(seed_data, seed_data["learner_id"], NOW + timedelta(days=2), status="cancelled")
        _session(seed_data, seed_data["learner_id"], NOW - timedelta(hours=1))
        seed_data["session"].scheduled_start = NOW - timedelta(days=1)
        db.session.commit()

        stats = dashboard_service.dashboard_stats(seed_data["learner_id"], now=NOW)

        assert stats["total_sessions"] == 3
        assert stats["upcoming_sessions"] == 0

    def test_tutor_only_account_counts_taught_sessions(self, seed_data):
        solo = make_user("solo@tutorhub.local", "Sol", "Tutor", "tutor")
        db.session.commit()

        stats = dashboard_service.dashboard_stats(solo.id, now=NOW)

        assert stats["total_sessions"] == 0
        assert stats["roles"] == ["tutor"]

    def test_dual_role_account_counts_both_sides(self, seed_data):
        # The seeded tutor also holds the learner role.
        other_tutor = make_user("other@tutorhub.local", "Olga", "Other", "tutor")
        db.session.add(TutoringSession(
            tutor_id=other_tutor.id,
            learner_id=seed_data["tutor_user_id"],
            title="Learning too",
            scheduled_start=NOW + timedelta(days=3),
            scheduled_end=NOW + timedelta(days=3, hours=1),
        ))
        db.session.commit()

        stats = dashboard_service.dashboard_stats(seed_data["tutor_user_id"], now=NOW)

        assert stats["total_sessions"] == 2
        assert stats["tutor_status"] == "approved"

    def test_unknown_user(self, seed_data):
        with pytest.raises(NotFound):
            dashboard_service.dashboard_stats("missing")

    def test_dashboard_route(self, client, seed_data, login):
        login("learner@tutorhub.local")

        resp = client.get("/dashboard")

        assert resp.status_code == 200
        assert resp.get_json()["total_sessions"] == 1

    def test_dashboard_requires_login(self, client, seed_data):
        assert client.get("/dashboard").status_code == 401


class TestStudentsSummary:

    def test_groups_sessions_by_learner(self, seed_data):
        geometry = Subject(name="Geometry", category="Mathematics")
        db.session.add(geometry)
        db.session.flush()

        seed_data["session"].scheduled_start = NOW - timedelta(days=10)
        seed_data["session"].status = "completed"
        seed_data["session"].rating = 4
        _paid(seed_data, seed_data["session"], "45.00")

        latest = _session(
            seed_data, seed_data["learner_id"], NOW - timedelta(days=1),
            status="completed", subject_id=geometry.id, rating=5,
        )
        _paid(seed_data, latest, "50.00")
        _session(seed_data, seed_data["learner_id"], NOW + timedelta(days=2))
        db.session.commit()

        (student,) = dashboard_service.students_summary(seed_data["tutor_user_id"])

        assert student["id"] == seed_data["learner_id"]
        assert student["first_name"] == "Lena"
        assert student["email"] == "learner@tutorhub.local"
        assert student["session_count"] == 3
        assert student["completed_sessions"] == 2
        assert student["total_earnings"] == 95.0
        assert student["avg_rating"] == 4.5
        assert student["subjects"] == ["Geometry", "Algebra"]
        assert student["last_session"].startswith((NOW + timedelta(days=2)).date().isoformat())

    def test_pending_payments_and_open_sessions_not_counted(self, seed_data):
        _paid(seed_data, seed_data["session"], "45.00", status="pending")
        done = _session(seed_data, seed_data["learner_id"], NOW - timedelta(days=1), status="completed")
        _paid(seed_data, done, "30.00", status="pending")
        db.session.commit()

        (student,) = dashboard_service.students_summary(seed_data["tutor_user_id"])

        assert student["total_earnings"] == 0.0
        assert student["avg_rating"] == 0

    def test_most_recent_learner_first_and_search(self, seed_data):
        newcomer = make_user("nina@tutorhub.local", "Nina", "Newcomer", "learner")
        seed_data["session"].scheduled_start = NOW - timedelta(days=5)
        _session(seed_data, newcomer.id, NOW + timedelta(days=5))
        db.session.commit()

        roster = dashboard_service.students_summary(seed_data["tutor_user_id"])
        assert [s["first_name"] for s in roster] == ["Nina", "Lena"]

        found = dashboard_service.students_summary(seed_data["tutor_user_id"], search="LEARNER@")
        assert [s["first_name"] for s in found] == ["Lena"]

    def test_requires_tutor_profile(self, seed_data):
        with pytest.raises(NotFound):
            dashboard_service.students_summary(seed_data["learner_id"])

    def test_students_route(self, client, seed_data, login):
        login("tutor@tutorhub.local")

        resp = client.get("/dashboard/students?q=lena")

        assert resp.status_code == 200
        assert [s["email"] for s in resp.get_json()] == ["learner@tutorhub.local"]

    def test_students_route_404_without_profile(self, client, seed_data, login):
        login("learner@tutorhub.local")
        assert client.get("/dashboard/students").status_code == 404
