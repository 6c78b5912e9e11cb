"""Tutors blueprint — /tutors/*

Route Map:
  GET  /tutors           — approved tutor directory (?subject_id=&category=&q=)
  GET  /tutors/subjects  — subject catalogue
  POST /tutors/apply     — submit (or resubmit after rejection) an application
  GET  /tutors/me        — my application
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from tutorhub.extensions import db, limiter
from tutorhub.services import tutor_service

tutors_bp = Blueprint("tutors", __name__, url_prefix="/tutors")


@tutors_bp.route("", methods=["GET"])
def directory():
    tutors = tutor_service.list_approved_tutors(
        subject_id=request.args.get("subject_id") or None,
        category=request.args.get("category") or None,
        search=request.args.get("q") or None,
    )
    return jsonify([t.to_dict() for t in tutors])


@tutors_bp.route("/subjects", methods=["GET"])
def subjects():
    return jsonify([s.to_dict() for s in tutor_service.list_subjects()])


@tutors_bp.route("/apply", methods=["POST"])
@login_required
@limiter.limit("5 per hour")
def apply():
    data = request.get_json(silent=True) or {}
    tutor = tutor_service.submit_application(
        current_user.id,
        hourly_rate=data.get("hourly_rate"),
        education=data.get("education"),
        experience_years=data.get("experience_years"),
        languages=data.get("languages"),
        certifications=data.get("certifications"),
        availability=data.get("availability"),
        subject_ids=data.get("subject_ids"),
    )
    db.session.commit()
    return jsonify(tutor.to_dict()), 201


@tutors_bp.route("/me", methods=["GET"])
@login_required
def my_application():
    tutor = tutor_service.get_application(current_user.id)
    if tutor is None:
        return jsonify({"error": "No application found."}), 404
    return jsonify(tutor.to_dict())
