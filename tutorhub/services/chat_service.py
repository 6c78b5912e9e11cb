"""Chat service — session message history, sending, and live subscription.

History is ordered by created_at ascending (ties in store order).

Live updates come from the change feed: a subscription receives one
INSERT event per message committed to its session by any process, point-fetches the full
message (with sender display fields) and appends it to its local list
in arrival order. Arrival order is not re-sorted, so messages from two
senders committed close together can appear in either order. A failed
point-fetch drops that message for this viewer; a fresh load_history()
is the only way to recover it.

Sending does not touch any local list: senders see their own messages
through their subscription like everybody else.

Functions flush but do NOT commit — the caller commits.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from tutorhub.domain.records import MessageRecord
from tutorhub.errors import NotFound, UpstreamQueryError, ValidationError
from tutorhub.extensions import db
from tutorhub.models.message import Message
from tutorhub.models.session import TutoringSession
from tutorhub import realtime
from tutorhub.services import storage_service
from tutorhub.services.sanitize import clean_text

logger = logging.getLogger(__name__)


# ──────────────────────────────────────────────
# Reads
# ──────────────────────────────────────────────

def load_history(session_id):
    """All messages for a session, oldest first, with sender fields.

    Returns an empty list when the session has no messages.
    Raises UpstreamQueryError if the store query fails.
    """
    try:
        rows = (
            Message.query
            .options(joinedload(Message.sender))
            .filter_by(session_id=session_id)
            .order_by(Message.created_at.asc())
            .all()
        )
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to load messages for session {session_id}: {e}")
        raise UpstreamQueryError("Error loading messages") from e

    return [MessageRecord.from_model(row) for row in rows]


def get_message(message_id):
    """Point-fetch one message with sender fields. None if absent."""
    try:
        row = (
            Message.query
            .options(joinedload(Message.sender))
            .filter_by(id=message_id)
            .first()
        )
    except SQLAlchemyError as e:
        db.session.rollback()
        raise UpstreamQueryError(f"Error loading message {message_id}") from e

    return MessageRecord.from_model(row) if row else None


# ──────────────────────────────────────────────
# Writes
# ──────────────────────────────────────────────

def send_message(session_id, sender_id, content, message_type="text", file_url=None):
    """Insert one message into a session's conversation.

    Args:
        session_id: TutoringSession UUID string.
        sender_id: Sender's user UUID string (explicit caller identity).
        content: Message body (will be sanitized).
        message_type: text | file | image.
        file_url: Required for file and image messages.

    Returns:
        The created Message row (flushed, not committed). It reaches live
        subscribers, including the sender, once the caller commits.

    Raises:
        ValidationError: Empty or non-string text, unknown type, or missing
                         file URL.
        NotFound: Session does not exist.
    """
    if message_type not in Message.TYPES:
        raise ValidationError(
            f"Invalid message type '{message_type}'. Must be one of: {', '.join(Message.TYPES)}"
        )

    content = clean_text(content, "Message")
    if message_type == "text" and not content:
        raise ValidationError("Message cannot be empty.")
    if message_type != "text" and not file_url:
        raise ValidationError(f"A file URL is required for {message_type} messages.")

    if db.session.get(TutoringSession, session_id) is None:
        raise NotFound(f"Session {session_id} not found.")

    msg = Message(
        session_id=session_id,
        sender_id=sender_id,
        content=content or "",
        message_type=message_type,
        file_url=file_url,
    )
    db.session.add(msg)
    db.session.flush()
    return msg


def share_file(session_id, sender_id, file):
    """Upload a file to session materials and post it as a chat message.

    Images become 'image' messages, everything else 'file'.

    Returns the created Message row (flushed, not committed).
    """
    if db.session.get(TutoringSession, session_id) is None:
        raise NotFound(f"Session {session_id} not found.")

    upload, public_url = storage_service.store_upload(
        file, sender_id, "session_material", session_id=session_id
    )
    message_type = "image" if storage_service.is_image(upload.file_name, upload.file_type) else "file"

    return send_message(
        session_id,
        sender_id,
        "Shared an image" if message_type == "image" else "Shared a file",
        message_type=message_type,
        file_url=public_url,
    )


# ──────────────────────────────────────────────
# Live subscription
# ──────────────────────────────────────────────

class ChatSubscription:
    """Live view of one session's new messages.

    Consumes the change-feed channel in arrival order. `messages` is the
    local sequence, appended to once per successfully fetched event.
    Usable as a context manager; leaving the block unsubscribes.
    """

    def __init__(self, session_id, channel):
        self.session_id = session_id
        self.channel = channel
        self.messages = []

    @property
    def closed(self):
        return self.channel.closed

    def next_message(self, timeout=None):
        """Wait for the next insert event and append its message.

        Returns the appended MessageRecord, or None on timeout or when
        the event had to be dropped.
        """
        self._pump()
        change = self.channel.get(timeout=timeout)
        if change is None:
            return None
        return self._handle(change)

    def drain(self):
        """Handle every event already queued. Returns the appended records."""
        appended = []
        self._pump()
        while True:
            change = self.channel.get(timeout=0)
            if change is None:
                return appended
            record = self._handle(change)
            if record is not None:
                appended.append(record)

    def _pump(self):
        if self.closed:
            return
        try:
            realtime.pump()
        except SQLAlchemyError as e:
            logger.warning(f"Change feed read failed for session {self.session_id}: {e}")

    def _handle(self, change):
        message_id = change.new.get("id")
        try:
            record = get_message(message_id)
        except UpstreamQueryError as e:
            logger.warning(f"Dropped live message {message_id} for session {self.session_id}: {e}")
            return None

        if record is None:
            logger.warning(f"Live message {message_id} vanished before fetch; dropped")
            return None

        self.messages.append(record)
        return record

    def close(self):
        self.channel.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


def subscribe(session_id):
    """Subscribe to new messages in a session. Call close() when done."""
    channel = realtime.subscribe(
        "messages", realtime.INSERT, row_filter=f"session_id=eq.{session_id}"
    )
    return ChatSubscription(session_id, channel)
