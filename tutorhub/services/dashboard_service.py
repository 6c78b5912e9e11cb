"""Dashboard service — per-user counters and the tutor's student roster.

Read-only aggregates over sessions, payments and messages.
"""

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.orm import joinedload

from tutorhub.errors import NotFound
from tutorhub.extensions import db
from tutorhub.models.message import Message
from tutorhub.models.payment import Payment
from tutorhub.models.session import TutoringSession
from tutorhub.models.tutor import Tutor
from tutorhub.models.user import User


def _aware(dt):
    # SQLite hands back naive datetimes even for timezone=True columns.
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _session_scope(user):
    """Filter for the sessions a user's dashboard counts.

    Learner-only accounts see sessions they booked, tutor-only accounts
    the sessions they teach, and accounts holding both roles see both.
    """
    is_learner = user.has_role("learner")
    is_tutor = user.has_role("tutor")
    if is_tutor and not is_learner:
        return TutoringSession.tutor_id == user.id
    if is_learner and not is_tutor:
        return TutoringSession.learner_id == user.id
    return or_(
        TutoringSession.tutor_id == user.id,
        TutoringSession.learner_id == user.id,
    )


def dashboard_stats(user_id, now=None):
    """Counters for the signed-in user's dashboard.

    Returns dict with total_sessions, upcoming_sessions (scheduled and
    starting at or after `now`), messages_sent, roles and tutor_status
    (None without an application).
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found.")
    now = _aware(now) or datetime.now(timezone.utc)

    scope = _session_scope(user)
    total = TutoringSession.query.filter(scope).count()
    upcoming = (
        TutoringSession.query
        .filter(scope)
        .filter(TutoringSession.status == "scheduled")
        .filter(TutoringSession.scheduled_start >= now)
        .count()
    )
    messages_sent = Message.query.filter_by(sender_id=user_id).count()
    tutor = Tutor.query.filter_by(user_id=user_id).first()

    return {
        "total_sessions": total,
        "upcoming_sessions": upcoming,
        "messages_sent": messages_sent,
        "roles": user.role_names,
        "tutor_status": tutor.status if tutor else None,
    }


def students_summary(tutor_user_id, search=None):
    """One entry per learner the tutor has had sessions with.

    Each entry has the learner's profile fields, session_count,
    completed_sessions, total_earnings (completed payments for completed
    sessions), avg_rating (over rated sessions, 0 when none), subjects
    (first seen first, newest session first) and last_session.
    Entries are ordered by last_session, most recent first.

    Raises:
        NotFound: The user has never applied to teach.
    """
    if Tutor.query.filter_by(user_id=tutor_user_id).first() is None:
        raise NotFound("No tutor profile found.")

    sessions = (
        TutoringSession.query
        .options(
            joinedload(TutoringSession.learner),
            joinedload(TutoringSession.subject),
        )
        .filter(TutoringSession.tutor_id == tutor_user_id)
        .order_by(TutoringSession.scheduled_start.desc())
        .all()
    )

    paid = {}
    if sessions:
        for payment in Payment.query.filter(
            Payment.session_id.in_([s.id for s in sessions]),
            Payment.payee_id == tutor_user_id,
            Payment.status == "completed",
        ):
            paid[payment.session_id] = paid.get(payment.session_id, Decimal("0")) + payment.amount

    students = {}
    ratings = {}
    for session in sessions:
        learner = session.learner
        entry = students.get(session.learner_id)
        if entry is None:
            entry = students[session.learner_id] = {
                "id": session.learner_id,
                "first_name": learner.first_name or "",
                "last_name": learner.last_name or "",
                "email": learner.email,
                "avatar_url": learner.avatar_url or "",
                "session_count": 0,
                "completed_sessions": 0,
                "total_earnings": Decimal("0"),
                "avg_rating": 0,
                "subjects": [],
                "last_session": None,
            }
        entry["session_count"] += 1
        if session.status == "completed":
            entry["completed_sessions"] += 1
            entry["total_earnings"] += paid.get(session.id, Decimal("0"))
        if session.subject and session.subject.name not in entry["subjects"]:
            entry["subjects"].append(session.subject.name)
        start = _aware(session.scheduled_start)
        if entry["last_session"] is None or start > entry["last_session"]:
            entry["last_session"] = start
        if session.rating:
            ratings.setdefault(session.learner_id, []).append(session.rating)

    if search:
        needle = search.strip().lower()
        students = {
            learner_id: entry for learner_id, entry in students.items()
            if needle in f"{entry['first_name']} {entry['last_name']}".lower()
            or needle in (entry["email"] or "").lower()
        }

    result = []
    for learner_id, entry in students.items():
        rated = ratings.get(learner_id)
        entry["avg_rating"] = round(sum(rated) / len(rated), 2) if rated else 0
        entry["total_earnings"] = float(entry["total_earnings"])
        result.append(entry)

    result.sort(key=lambda e: e["last_session"], reverse=True)
    for entry in result:
        entry["last_session"] = entry["last_session"].isoformat()
    return result
