"""Dashboard blueprint — signed-in user's overview.

Route Map:
  GET /dashboard           — session, upcoming and message counters
  GET /dashboard/students  — learners I have taught (?q= name or email)
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from tutorhub.services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/dashboard")


@dashboard_bp.route("", methods=["GET"])
@login_required
def overview():
    return jsonify(dashboard_service.dashboard_stats(current_user.id))


@dashboard_bp.route("/students", methods=["GET"])
@login_required
def students():
    return jsonify(dashboard_service.students_summary(
        current_user.id, search=request.args.get("q") or None
    ))
