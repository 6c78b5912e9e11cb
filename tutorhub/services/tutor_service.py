"""Tutor service — applications, admin review, directory listing.

Functions flush but do NOT commit — the caller commits.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from tutorhub.errors import NotFound, ValidationError
from tutorhub.extensions import db
from tutorhub.models.audit import AuditEvent
from tutorhub.models.subject import Subject, TutorSubject
from tutorhub.models.tutor import Tutor
from tutorhub.models.user import User
from tutorhub.services.sanitize import clean_list, clean_text

logger = logging.getLogger(__name__)


def submit_application(user_id, hourly_rate=None, education=None,
                       experience_years=None, languages=None,
                       certifications=None, availability=None,
                       subject_ids=None):
    """Create (or resubmit) a tutor application.

    A user has at most one application. Re-applying is only allowed
    after a rejection, and resets the application to pending.

    Returns:
        The Tutor row (flushed, not committed).

    Raises:
        ValidationError: Bad rate/experience, or an application is
                         already pending/approved/suspended.
        NotFound: User or a subject id does not exist.
    """
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound(f"User {user_id} not found.")

    if hourly_rate is not None:
        try:
            hourly_rate = Decimal(str(hourly_rate))
        except (InvalidOperation, ValueError):
            raise ValidationError("Hourly rate must be a number.")
        if not hourly_rate.is_finite() or hourly_rate <= 0:
            raise ValidationError("Hourly rate must be a positive number.")

    if experience_years is not None:
        try:
            experience_years = int(experience_years)
        except (TypeError, ValueError, OverflowError):
            raise ValidationError("Experience must be a whole number of years.")
        if experience_years < 0:
            raise ValidationError("Experience cannot be negative.")

    if subject_ids is not None and not isinstance(subject_ids, (list, tuple)):
        raise ValidationError("subject_ids must be a list.")

    subjects = []
    for subject_id in subject_ids or []:
        subject = db.session.get(Subject, subject_id)
        if subject is None:
            raise NotFound(f"Subject {subject_id} not found.")
        subjects.append(subject)

    tutor = Tutor.query.filter_by(user_id=user_id).first()
    if tutor is not None and tutor.status != "rejected":
        raise ValidationError(
            f"You already have an application ({tutor.status})."
        )

    if tutor is None:
        tutor = Tutor(user_id=user_id)
        db.session.add(tutor)

    tutor.status = "pending"
    tutor.hourly_rate = hourly_rate
    tutor.education = clean_text(education, "Education")
    tutor.experience_years = experience_years
    tutor.languages = clean_list(languages, "Languages")
    tutor.certifications = clean_list(certifications, "Certifications")
    tutor.availability = availability
    tutor.approved_at = None
    tutor.approved_by = None
    tutor.subjects = [TutorSubject(subject_id=s.id) for s in subjects]

    user.grant_role("tutor")
    db.session.flush()

    db.session.add(AuditEvent(
        actor_user_id=user_id,
        action="tutor.application_submitted",
        metadata_={"tutor_id": tutor.id},
    ))
    db.session.flush()

    return tutor


def review_application(tutor_id, new_status, admin_user_id):
    """Set an application's status. Approval stamps approved_at / approved_by."""
    tutor = db.session.get(Tutor, tutor_id)
    if tutor is None:
        raise NotFound(f"Application {tutor_id} not found.")

    if new_status not in Tutor.STATUSES:
        raise ValidationError(
            f"Invalid status '{new_status}'. Must be one of: {', '.join(Tutor.STATUSES)}"
        )

    old_status = tutor.status
    tutor.status = new_status
    if new_status == "approved":
        tutor.approved_at = datetime.now(timezone.utc)
        tutor.approved_by = admin_user_id
    db.session.flush()

    db.session.add(AuditEvent(
        actor_user_id=admin_user_id,
        action="tutor.application_reviewed",
        metadata_={
            "tutor_id": tutor_id,
            "old_status": old_status,
            "new_status": new_status,
        },
    ))
    db.session.flush()

    logger.info(f"Tutor application {tutor_id}: {old_status} -> {new_status}")
    return tutor


def get_application(user_id):
    return Tutor.query.filter_by(user_id=user_id).first()


def list_applications(status=None):
    """Applications for admin review, newest first."""
    query = Tutor.query
    if status:
        if status not in Tutor.STATUSES:
            raise ValidationError(f"Invalid status '{status}'.")
        query = query.filter_by(status=status)
    return query.order_by(Tutor.created_at.desc()).all()


def list_approved_tutors(subject_id=None, category=None, search=None):
    """Directory of approved tutors with optional subject/category/name filters."""
    tutors = (
        Tutor.query
        .filter_by(status="approved")
        .order_by(Tutor.created_at.desc())
        .all()
    )

    results = []
    needle = (search or "").strip().lower()
    for tutor in tutors:
        subjects = [ts.subject for ts in tutor.subjects if ts.subject]
        if subject_id and not any(s.id == subject_id for s in subjects):
            continue
        if category and not any(s.category == category for s in subjects):
            continue
        if needle:
            haystack = " ".join(
                [tutor.user.full_name, tutor.user.email] + [s.name for s in subjects]
            ).lower()
            if needle not in haystack:
                continue
        results.append(tutor)
    return results


def list_subjects():
    return Subject.query.order_by(Subject.name.asc()).all()
