"""Chat blueprint — /sessions/<session_id>/messages/*

Route Map:
  GET  /sessions/<session_id>/messages         — history, oldest first
  POST /sessions/<session_id>/messages         — send a text message
  POST /sessions/<session_id>/messages/files   — share a file (multipart)
  GET  /sessions/<session_id>/messages/stream  — live messages (Server-Sent Events)

Sending returns 201 with the new message id only. The message itself
reaches every open stream, the sender's included, after commit.
"""

import json
import logging

from flask import Blueprint, Response, current_app, jsonify, request, stream_with_context
from flask_login import current_user

from tutorhub.decorators import session_participant_required
from tutorhub.extensions import db, limiter
from tutorhub.services import chat_service

logger = logging.getLogger(__name__)

chat_bp = Blueprint("chat", __name__, url_prefix="/sessions")


@chat_bp.route("/<session_id>/messages", methods=["GET"])
@session_participant_required
def history(session_id):
    records = chat_service.load_history(session_id)
    return jsonify([r.to_dict() for r in records])


@chat_bp.route("/<session_id>/messages", methods=["POST"])
@session_participant_required
@limiter.limit("60 per minute")
def send(session_id):
    data = request.get_json(silent=True) or {}
    msg = chat_service.send_message(
        session_id,
        current_user.id,
        data.get("content"),
    )
    db.session.commit()
    return jsonify({"id": msg.id}), 201


@chat_bp.route("/<session_id>/messages/files", methods=["POST"])
@session_participant_required
@limiter.limit("20 per minute")
def share_file(session_id):
    msg = chat_service.share_file(
        session_id,
        current_user.id,
        request.files.get("file"),
    )
    db.session.commit()
    return jsonify({
        "id": msg.id,
        "message_type": msg.message_type,
        "file_url": msg.file_url,
    }), 201


def event_stream(subscription, keepalive, limit=None):
    """Yield SSE frames for a subscription until closed or `limit` messages sent.

    The request's DB session is closed before every wait so an idle stream
    holds no pooled connection.
    """
    sent = 0
    try:
        db.session.close()
        yield ": connected\n\n"
        while limit is None or sent < limit:
            record = subscription.next_message(timeout=keepalive)
            db.session.close()
            if record is None:
                yield ": keep-alive\n\n"
                continue
            yield f"event: message\ndata: {json.dumps(record.to_dict())}\n\n"
            sent += 1
    finally:
        subscription.close()
        logger.debug(f"Closed chat stream for session {subscription.session_id}")


@chat_bp.route("/<session_id>/messages/stream", methods=["GET"])
@session_participant_required
def stream(session_id):
    """Live messages as text/event-stream.

    The subscription starts now; anything sent before connecting must be
    read from the history endpoint. Optional ?limit=N closes the stream
    after N messages.
    """
    limit = request.args.get("limit", type=int)
    subscription = chat_service.subscribe(session_id)
    keepalive = current_app.config.get("CHAT_STREAM_KEEPALIVE", 15)

    response = Response(
        stream_with_context(event_stream(subscription, keepalive, limit)),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
    # Unsubscribe even if the client disconnects before the first frame.
    response.call_on_close(subscription.close)
    return response
