"""Session service — booking, status machine, ratings, listings.

Status transitions are enforced via TutoringSession.VALID_TRANSITIONS.
Starting a session stamps actual_start, completing it stamps actual_end.

Functions flush but do NOT commit — the caller commits.
"""

from datetime import datetime, timezone

from tutorhub.domain.records import SessionRecord
from tutorhub.errors import NotFound, PermissionDenied, ValidationError
from tutorhub.extensions import db
from tutorhub.models.audit import AuditEvent
from tutorhub.models.payment import Payment
from tutorhub.models.session import TutoringSession
from tutorhub.models.subject import Subject
from tutorhub.models.tutor import Tutor
from tutorhub.models.user import User
from tutorhub.services.sanitize import clean_text


def parse_timestamp(value, field):
    """Parse an ISO-8601 string (or pass a datetime through) as aware UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        if not value:
            raise ValidationError(f"{field} is required.")
        try:
            dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 timestamp.")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _is_paid(session_id):
    return (
        Payment.query
        .filter_by(session_id=session_id, status="completed")
        .first()
        is not None
    )


def _get_or_404(session_id):
    session = db.session.get(TutoringSession, session_id)
    if session is None:
        raise NotFound(f"Session {session_id} not found.")
    return session


def get_session(session_id):
    session = _get_or_404(session_id)
    return SessionRecord.from_model(session, is_paid=_is_paid(session.id))


def book_session(learner_id, tutor_user_id, title, scheduled_start, scheduled_end,
                 subject_id=None, description=None):
    """Book a session with an approved tutor.

    Returns:
        The created TutoringSession (status 'scheduled').

    Raises:
        ValidationError: Missing title, bad times, self-booking, or tutor
                         not approved.
        NotFound: Subject does not exist.
    """
    title = clean_text(title, "Title")
    description = clean_text(description, "Description")
    if not title:
        raise ValidationError("Title is required.")

    start = parse_timestamp(scheduled_start, "scheduled_start")
    end = parse_timestamp(scheduled_end, "scheduled_end")
    if end <= start:
        raise ValidationError("scheduled_end must be after scheduled_start.")

    if learner_id == tutor_user_id:
        raise ValidationError("You cannot book a session with yourself.")

    tutor = Tutor.query.filter_by(user_id=tutor_user_id, status="approved").first()
    if tutor is None:
        raise ValidationError("Tutor is not available for booking.")

    if subject_id and db.session.get(Subject, subject_id) is None:
        raise NotFound(f"Subject {subject_id} not found.")

    session = TutoringSession(
        tutor_id=tutor_user_id,
        learner_id=learner_id,
        subject_id=subject_id,
        title=title,
        description=description,
        scheduled_start=start,
        scheduled_end=end,
        status="scheduled",
    )
    db.session.add(session)
    db.session.flush()

    db.session.add(AuditEvent(
        actor_user_id=learner_id,
        action="session.booked",
        metadata_={"session_id": session.id, "tutor_id": tutor_user_id},
    ))
    db.session.flush()

    return session


def update_status(session_id, new_status, actor_user_id):
    """Change a session's status, enforcing valid transitions.

    Only the session's tutor or an admin may change status.

    Raises:
        NotFound, PermissionDenied, ValidationError (invalid status or
        transition not allowed).
    """
    session = _get_or_404(session_id)

    actor = db.session.get(User, actor_user_id)
    if actor is None or (actor.id != session.tutor_id and not actor.is_admin):
        raise PermissionDenied("Only the tutor can change this session's status.")

    if new_status not in TutoringSession.STATUSES:
        raise ValidationError(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(TutoringSession.STATUSES)}"
        )

    old_status = session.status
    if old_status == new_status:
        return session  # no-op

    allowed = TutoringSession.VALID_TRANSITIONS.get(old_status, [])
    if new_status not in allowed:
        raise ValidationError(
            f"Cannot transition from '{old_status}' to '{new_status}'. "
            f"Allowed: {', '.join(allowed) if allowed else 'none (terminal state)'}"
        )

    now = datetime.now(timezone.utc)
    session.status = new_status
    if new_status == "in_progress":
        session.actual_start = now
    elif new_status == "completed":
        session.actual_end = now
    db.session.flush()

    db.session.add(AuditEvent(
        actor_user_id=actor_user_id,
        action="session.status_changed",
        metadata_={
            "session_id": session_id,
            "old_status": old_status,
            "new_status": new_status,
        },
    ))
    db.session.flush()

    return session


def rate_session(session_id, learner_id, rating, feedback=None):
    """Learner rates a completed session (1-5), once."""
    session = _get_or_404(session_id)

    if session.learner_id != learner_id:
        raise PermissionDenied("Only the learner can rate this session.")
    if session.status != "completed":
        raise ValidationError("Only completed sessions can be rated.")
    if session.rating is not None:
        raise ValidationError("This session has already been rated.")

    try:
        rating = int(rating)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("Rating must be a whole number from 1 to 5.")
    if not 1 <= rating <= 5:
        raise ValidationError("Rating must be a whole number from 1 to 5.")

    session.rating = rating
    session.feedback = clean_text(feedback, "Feedback") or None
    db.session.flush()
    return session


def list_sessions(user_id, role="learner", status=None):
    """Sessions where the user is learner (or tutor), newest first."""
    if role not in ("learner", "tutor"):
        raise ValidationError("role must be 'learner' or 'tutor'.")
    if status and status not in TutoringSession.STATUSES:
        raise ValidationError(f"Invalid status '{status}'.")

    column = TutoringSession.learner_id if role == "learner" else TutoringSession.tutor_id
    query = TutoringSession.query.filter(column == user_id)
    if status:
        query = query.filter(TutoringSession.status == status)
    rows = query.order_by(TutoringSession.scheduled_start.desc()).all()

    paid_ids = {
        p.session_id
        for p in Payment.query.filter(
            Payment.session_id.in_([r.id for r in rows]),
            Payment.status == "completed",
        ).all()
    } if rows else set()

    return [SessionRecord.from_model(r, is_paid=r.id in paid_ids) for r in rows]
