"""Auth blueprint — /auth/*

JSON registration, login, logout and current-user lookup for the
browser client. Sessions are cookie-based via Flask-Login.

Route Map:
  GET  /auth/csrf-token  — CSRF token for subsequent POSTs
  POST /auth/register    — create learner account and log in
  POST /auth/login       — log in
  POST /auth/logout      — log out
  GET  /auth/me          — current user profile + roles
"""

import logging
import re

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash, generate_password_hash

from tutorhub.extensions import db, limiter
from tutorhub.models.audit import AuditEvent
from tutorhub.models.user import User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

# Sanity check only, not RFC 5322
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _form():
    """Accept JSON or form-encoded bodies."""
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@auth_bp.route("/csrf-token")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


# ──────────────────────────────────────────────
# POST /auth/register
# ──────────────────────────────────────────────

@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
def register():
    """Create a learner account. Tutors apply separately via /tutors/apply."""
    data = _form()
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""
    first_name = (data.get("first_name") or "").strip()
    last_name = (data.get("last_name") or "").strip()

    # --- Validation ---
    errors = []

    if not email:
        errors.append("Email is required.")
    elif not EMAIL_RE.match(email):
        errors.append("Email address is invalid.")
    if not password:
        errors.append("Password is required.")
    elif len(password) < 8:
        errors.append("Password must be at least 8 characters.")

    if email and User.query.filter_by(email=email).first():
        errors.append("An account with this email already exists.")

    if errors:
        return jsonify({"error": errors[0], "errors": errors}), 400

    # --- Create user ---
    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        first_name=first_name or None,
        last_name=last_name or None,
    )
    user.grant_role("learner")
    db.session.add(user)
    db.session.flush()  # get user.id

    db.session.add(AuditEvent(
        actor_user_id=user.id,
        action="user.registered",
        metadata_={"email": email},
    ))
    db.session.commit()

    login_user(user)
    logger.info(f"Registered user {email}")
    return jsonify(user.to_dict()), 201


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():
    data = _form()
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        return jsonify({"error": "Invalid email or password."}), 401

    if not user.is_active:
        return jsonify({"error": "This account has been deactivated."}), 403

    login_user(user, remember=bool(data.get("remember")))
    return jsonify(user.to_dict())


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})


@auth_bp.route("/me")
@login_required
def me():
    payload = current_user.to_dict()
    tutor = current_user.tutor_profile
    payload["tutor_status"] = tutor.status if tutor else None
    return jsonify(payload)
