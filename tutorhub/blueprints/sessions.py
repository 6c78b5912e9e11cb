"""Sessions blueprint — /sessions/*

Route Map:
  GET  /sessions                       — my sessions (?role=learner|tutor&status=)
  POST /sessions                       — book a session with an approved tutor
  GET  /sessions/<session_id>          — session detail (participants only)
  POST /sessions/<session_id>/status   — tutor changes status
  POST /sessions/<session_id>/rating   — learner rates a completed session
"""

from flask import Blueprint, g, jsonify, request
from flask_login import current_user, login_required

from tutorhub.decorators import session_participant_required
from tutorhub.domain.records import SessionRecord
from tutorhub.extensions import db
from tutorhub.services import session_service

sessions_bp = Blueprint("sessions", __name__, url_prefix="/sessions")


@sessions_bp.route("", methods=["GET"])
@login_required
def index():
    records = session_service.list_sessions(
        current_user.id,
        role=request.args.get("role", "learner"),
        status=request.args.get("status") or None,
    )
    return jsonify([r.to_dict() for r in records])


@sessions_bp.route("", methods=["POST"])
@login_required
def book():
    data = request.get_json(silent=True) or {}
    session = session_service.book_session(
        learner_id=current_user.id,
        tutor_user_id=data.get("tutor_id"),
        title=data.get("title"),
        scheduled_start=data.get("scheduled_start"),
        scheduled_end=data.get("scheduled_end"),
        subject_id=data.get("subject_id"),
        description=data.get("description"),
    )
    db.session.commit()
    return jsonify(SessionRecord.from_model(session).to_dict()), 201


@sessions_bp.route("/<session_id>", methods=["GET"])
@session_participant_required
def detail(session_id):
    record = session_service.get_session(session_id)
    payload = record.to_dict()
    payload["viewer_role"] = g.participant_role
    return jsonify(payload)


@sessions_bp.route("/<session_id>/status", methods=["POST"])
@session_participant_required
def change_status(session_id):
    data = request.get_json(silent=True) or {}
    session_service.update_status(session_id, data.get("status"), current_user.id)
    db.session.commit()
    return jsonify(session_service.get_session(session_id).to_dict())


@sessions_bp.route("/<session_id>/rating", methods=["POST"])
@session_participant_required
def rate(session_id):
    data = request.get_json(silent=True) or {}
    session_service.rate_session(
        session_id,
        current_user.id,
        data.get("rating"),
        feedback=data.get("feedback"),
    )
    db.session.commit()
    return jsonify(session_service.get_session(session_id).to_dict())
