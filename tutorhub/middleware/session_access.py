"""Session access middleware — resolves session_id to session context.

Runs before every request to session routes (/sessions/<session_id>/*).
Sets g.tutoring_session and g.participant_role.

Participant roles (computed from the logged-in user):
    "tutor"    — current user is the session's tutor
    "learner"  — current user is the session's learner
    "admin"    — not a participant, but an administrator
    None       — anonymous or unrelated user
"""

from flask import abort, g, request
from flask_login import current_user

from tutorhub.extensions import db
from tutorhub.models.session import TutoringSession


def resolve_session():
    """Before-request hook for session routes.

    Only runs on routes that have a `session_id` URL parameter under
    /sessions/. Skips the payment function and static files.
    """
    if request.view_args is None:
        return
    session_id = request.view_args.get("session_id")
    if session_id is None:
        return

    if not request.path.startswith("/sessions/"):
        return

    session = db.session.get(TutoringSession, session_id)
    if session is None:
        abort(404)

    g.tutoring_session = session

    if not current_user.is_authenticated:
        g.participant_role = None
    elif current_user.id == session.tutor_id:
        g.participant_role = "tutor"
    elif current_user.id == session.learner_id:
        g.participant_role = "learner"
    elif current_user.is_admin:
        g.participant_role = "admin"
    else:
        g.participant_role = None


def init_session_access_middleware(app):
    """Register the session resolver as a before_request hook."""
    app.before_request(resolve_session)
