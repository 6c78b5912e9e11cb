"""
Custom route decorators for access control.

- session_participant_required: ensures user is logged in AND is the
  tutor or learner of the session resolved from session_id (admins pass).
- admin_required: ensures user is logged in AND has the admin role.
"""

from functools import wraps

from flask import abort, g
from flask_login import current_user, login_required


def session_participant_required(f):
    """Require login + participation in the current session_id."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        # g.tutoring_session is set by session access middleware
        if getattr(g, "tutoring_session", None) is None:
            abort(404)

        if getattr(g, "participant_role", None) is None:
            abort(403)

        return f(*args, **kwargs)

    return decorated


def admin_required(f):
    """Require login + admin role."""

    @wraps(f)
    @login_required
    def decorated(*args, **kwargs):
        if not current_user.is_admin:
            abort(403)
        return f(*args, **kwargs)

    return decorated
