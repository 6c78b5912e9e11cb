"""Admin blueprint — /admin/*

Platform overview, tutor application review, user and payment lists.
All routes protected by @admin_required decorator.

Route Map:
  GET  /admin/                                 — Dashboard counters
  GET  /admin/applications                     — Tutor applications (?status=)
  POST /admin/applications/<tutor_id>/review   — Approve / reject / suspend
  GET  /admin/users                            — Users with roles and tutor status
  GET  /admin/payments                         — All payments (?status=)
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user

from tutorhub.decorators import admin_required
from tutorhub.domain.records import PaymentRecord
from tutorhub.errors import ValidationError
from tutorhub.extensions import db
from tutorhub.models.payment import Payment
from tutorhub.models.session import TutoringSession
from tutorhub.models.user import User
from tutorhub.services import earnings_service, tutor_service

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.route("/")
@admin_required
def dashboard():
    return jsonify(earnings_service.platform_overview())


@admin_bp.route("/applications")
@admin_required
def applications():
    tutors = tutor_service.list_applications(status=request.args.get("status") or None)
    return jsonify([t.to_dict() for t in tutors])


@admin_bp.route("/applications/<tutor_id>/review", methods=["POST"])
@admin_required
def review_application(tutor_id):
    data = request.get_json(silent=True) or {}
    tutor = tutor_service.review_application(
        tutor_id, data.get("status"), current_user.id
    )
    db.session.commit()
    return jsonify(tutor.to_dict())


@admin_bp.route("/users")
@admin_required
def users():
    rows = User.query.order_by(User.created_at.desc()).all()

    # Learner session counts in one grouped query
    counts = dict(
        db.session.query(TutoringSession.learner_id, db.func.count(TutoringSession.id))
        .group_by(TutoringSession.learner_id)
        .all()
    )

    role = request.args.get("role")
    payload = []
    for user in rows:
        if role and not user.has_role(role):
            continue
        item = user.to_dict()
        item["is_active"] = user.is_active
        item["tutor_status"] = user.tutor_profile.status if user.tutor_profile else None
        item["session_count"] = counts.get(user.id, 0)
        payload.append(item)
    return jsonify(payload)


@admin_bp.route("/payments")
@admin_required
def payments():
    status = request.args.get("status")
    query = Payment.query
    if status:
        if status not in Payment.STATUSES:
            raise ValidationError(f"Invalid status '{status}'.")
        query = query.filter_by(status=status)
    rows = query.order_by(Payment.created_at.desc()).all()
    return jsonify([PaymentRecord.from_model(p).to_dict() for p in rows])
