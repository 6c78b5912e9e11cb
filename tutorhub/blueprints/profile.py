"""Profile blueprint — /profile/*

Route Map:
  GET   /profile          — current user's profile
  PATCH /profile          — update name, bio, phone
  POST  /profile/uploads  — upload avatar / identity document / certificate
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from tutorhub.errors import ValidationError
from tutorhub.extensions import db
from tutorhub.services import storage_service
from tutorhub.services.sanitize import clean_text

profile_bp = Blueprint("profile", __name__, url_prefix="/profile")

EDITABLE_FIELDS = ("first_name", "last_name", "bio", "phone")


@profile_bp.route("", methods=["GET"])
@login_required
def show():
    payload = current_user.to_dict()
    payload.update({"bio": current_user.bio, "phone": current_user.phone})
    return jsonify(payload)


@profile_bp.route("", methods=["PATCH"])
@login_required
def update():
    data = request.get_json(silent=True) or {}
    for field in EDITABLE_FIELDS:
        if field in data:
            value = clean_text(data[field], field)
            setattr(current_user, field, value or None)
    db.session.commit()
    return show()


@profile_bp.route("/uploads", methods=["POST"])
@login_required
def upload():
    """Upload a profile file. form fields: file, purpose.

    Session materials go through /sessions/<id>/messages/files instead.
    """
    purpose = request.form.get("purpose", "profile_avatar")
    if purpose == "session_material" or purpose not in storage_service.BUCKETS:
        raise ValidationError(f"Invalid upload purpose '{purpose}'.")

    record, public_url = storage_service.store_upload(
        request.files.get("file"), current_user.id, purpose
    )
    if purpose == "profile_avatar":
        current_user.avatar_url = public_url
    db.session.commit()

    return jsonify({
        "id": record.id,
        "file_name": record.file_name,
        "file_path": record.file_path,
        "url": public_url,
    }), 201
