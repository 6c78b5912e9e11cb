"""Realtime change feed — store-driven insert events fanned out to subscribers.

The database announces committed inserts on tracked tables (see
tutorhub.models.change_log). One listener per app turns those
announcements into ChangeEvents and publishes them on the process-wide
ChangeFeed:

- NotifyListener (PostgreSQL): LISTENs on a dedicated psycopg2
  connection and publishes each NOTIFY payload.
- ChangeLogListener (other dialects): polls the change_log table by
  increasing id.

Because the store does the announcing, a message committed by any
process reaches the subscribers of every process. A rolled-back insert
is never announced.

Each subscriber owns a Channel: a thread-safe FIFO of ChangeEvents
filtered by table, event type and an equality row filter
("session_id=eq.<id>"). Whoever holds the channel drains it in arrival
order. Nothing is buffered for a channel before it subscribes, and
nothing is replayed after it closes.

Events carry only the row identity (id, session_id), which is why the
chat feed point-fetches every message it is told about.

With CHANGE_FEED_LISTENER enabled the listener runs in a daemon thread.
Disabled (tests, one-off scripts), nothing runs in the background and
consumers call pump() to read the store on demand.
"""

import json
import logging
import queue
import select
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from flask import current_app
from sqlalchemy import delete, func
from sqlalchemy import select as sa_select

from tutorhub.extensions import db
from tutorhub.models.change_log import NOTIFY_CHANNEL, ChangeLogEntry

logger = logging.getLogger(__name__)

INSERT = "INSERT"

# Tables whose inserts are announced by store triggers.
TRACKED_TABLES = {"messages"}

_LISTENER_KEY = "tutorhub.change_listener"
_listener_lock = threading.Lock()


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str
    new: dict = field(default_factory=dict)


def parse_filter(expression):
    """Parse a row filter such as "session_id=eq.abc" into {"session_id": "abc"}.

    Only equality filters are supported. An empty expression matches
    every row.
    """
    if not expression:
        return {}
    column, sep, rest = expression.partition("=")
    op, dot, value = rest.partition(".")
    if not sep or not dot or op != "eq" or not column:
        raise ValueError(f"Unsupported row filter '{expression}'")
    return {column.strip(): value}


class Channel:
    """One subscription on the change feed."""

    def __init__(self, feed, table, event_type, row_filter):
        self.id = str(uuid.uuid4())
        self.table = table
        self.event_type = event_type
        self.row_filter = dict(row_filter or {})
        self.closed = False
        self._feed = feed
        self._queue = queue.Queue()

    def matches(self, change):
        if change.table != self.table or change.event_type != self.event_type:
            return False
        return all(
            str(change.new.get(column)) == str(value)
            for column, value in self.row_filter.items()
        )

    def put(self, change):
        if not self.closed:
            self._queue.put(change)

    def get(self, timeout=None):
        """Return the next ChangeEvent, or None if none arrives in time.

        timeout=0 never blocks.
        """
        try:
            if timeout == 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def pending(self):
        return self._queue.qsize()

    def close(self):
        if not self.closed:
            self.closed = True
            self._feed.unsubscribe(self)

    def __repr__(self):
        return f"<Channel {self.table}/{self.event_type} {self.row_filter}>"


class ChangeFeed:
    """Registry of channels. Publishing fans an event out to every match."""

    def __init__(self):
        self._lock = threading.Lock()
        self._channels = []

    def subscribe(self, table, event_type=INSERT, row_filter=None):
        if isinstance(row_filter, str):
            row_filter = parse_filter(row_filter)
        channel = Channel(self, table, event_type, row_filter)
        with self._lock:
            self._channels.append(channel)
        logger.debug(f"Subscribed {channel}")
        return channel

    def unsubscribe(self, channel):
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)
        logger.debug(f"Unsubscribed {channel}")

    def publish(self, change):
        """Deliver a change to every matching channel. Returns the count."""
        with self._lock:
            targets = [c for c in self._channels if c.matches(change)]
        for channel in targets:
            channel.put(change)
        return len(targets)

    def subscriber_count(self, table=None):
        with self._lock:
            if table is None:
                return len(self._channels)
            return sum(1 for c in self._channels if c.table == table)


feed = ChangeFeed()


# ──────────────────────────────────────────────
# Store listeners
# ──────────────────────────────────────────────

class FeedListener:
    """Reads store announcements and publishes them on a ChangeFeed."""

    def __init__(self, engine, feed, interval=0.5):
        self.engine = engine
        self.feed = feed
        self.interval = interval
        self._stop = threading.Event()
        self._thread = None
        self._poll_lock = threading.Lock()

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the background thread (idempotent)."""
        if self.running:
            return
        # Position at "now" before subscribers start waiting.
        self.poll()
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"{type(self).__name__}", daemon=True
        )
        self._thread.start()
        logger.info(f"Started {type(self).__name__} (interval={self.interval}s)")

    def stop(self, timeout=5):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self.close()

    def poll(self):
        """Publish everything announced since the last poll. Returns the count."""
        raise NotImplementedError

    def close(self):
        pass

    def _wait(self):
        self._stop.wait(self.interval)

    def _housekeeping(self):
        pass

    def _dispatch(self, change):
        if change.table not in TRACKED_TABLES:
            return
        delivered = self.feed.publish(change)
        logger.debug(
            f"Published {change.event_type} on {change.table} "
            f"id={change.new.get('id')} to {delivered} subscriber(s)"
        )

    def _run(self):
        while not self._stop.is_set():
            try:
                self._wait()
                if self._stop.is_set():
                    break
                self.poll()
                self._housekeeping()
            except Exception as e:
                logger.error(f"{type(self).__name__} failed, retrying: {e}", exc_info=True)
                self.close()
                self._stop.wait(min(self.interval * 10, 5))


class ChangeLogListener(FeedListener):
    """Polls the change_log table by increasing id."""

    def __init__(self, engine, feed, interval=0.5, retention_minutes=60):
        super().__init__(engine, feed, interval)
        self.retention = timedelta(minutes=retention_minutes)
        self._cursor = None
        self._last_prune = time.monotonic()

    def poll(self):
        with self._poll_lock:
            with self.engine.connect() as conn:
                if self._cursor is None:
                    self._cursor = conn.execute(
                        sa_select(func.max(ChangeLogEntry.id))
                    ).scalar() or 0
                    return 0
                rows = conn.execute(
                    sa_select(
                        ChangeLogEntry.id,
                        ChangeLogEntry.table_name,
                        ChangeLogEntry.event_type,
                        ChangeLogEntry.row_id,
                        ChangeLogEntry.session_id,
                    )
                    .where(ChangeLogEntry.id > self._cursor)
                    .order_by(ChangeLogEntry.id.asc())
                ).all()

            for row in rows:
                self._cursor = row.id
                self._dispatch(ChangeEvent(
                    row.table_name,
                    row.event_type,
                    {"id": row.row_id, "session_id": row.session_id},
                ))
            return len(rows)

    def prune(self):
        """Delete log rows older than the retention window."""
        cutoff = (datetime.now(timezone.utc) - self.retention).replace(tzinfo=None)
        with self.engine.begin() as conn:
            result = conn.execute(
                delete(ChangeLogEntry).where(ChangeLogEntry.created_at < cutoff)
            )
        if result.rowcount:
            logger.debug(f"Pruned {result.rowcount} change_log row(s)")
        return result.rowcount

    def _housekeeping(self):
        if time.monotonic() - self._last_prune >= 60:
            self._last_prune = time.monotonic()
            self.prune()


class NotifyListener(FeedListener):
    """LISTENs for pg_notify() payloads on a dedicated connection."""

    def __init__(self, engine, feed, interval=0.5):
        super().__init__(engine, feed, interval)
        self._conn = None

    def _connection(self):
        if self._conn is None or self._conn.closed:
            import psycopg2
            from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT

            url = self.engine.url.set(drivername="postgresql")
            conn = psycopg2.connect(url.render_as_string(hide_password=False))
            conn.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
            with conn.cursor() as cur:
                cur.execute(f"LISTEN {NOTIFY_CHANNEL};")
            self._conn = conn
            logger.info(f"Listening on '{NOTIFY_CHANNEL}'")
        return self._conn

    def _wait(self):
        conn = self._connection()
        select.select([conn], [], [], self.interval)

    def poll(self):
        with self._poll_lock:
            conn = self._connection()
            conn.poll()
            count = 0
            while conn.notifies:
                notify = conn.notifies.pop(0)
                change = decode_notification(notify.payload)
                if change is None:
                    logger.warning(f"Ignored malformed notification: {notify.payload!r}")
                    continue
                self._dispatch(change)
                count += 1
            return count

    def close(self):
        if self._conn is not None:
            self._conn.close()
            self._conn = None


def decode_notification(payload):
    """Turn a pg_notify JSON payload into a ChangeEvent, or None."""
    try:
        data = json.loads(payload)
        return ChangeEvent(data["table"], data["type"], dict(data.get("new") or {}))
    except (ValueError, KeyError, TypeError):
        return None


def create_listener(engine, config):
    interval = config.get("CHANGE_FEED_POLL_INTERVAL", 0.5)
    if engine.dialect.name == "postgresql":
        return NotifyListener(engine, feed, interval)
    return ChangeLogListener(
        engine, feed, interval,
        retention_minutes=config.get("CHANGE_FEED_RETENTION_MINUTES", 60),
    )


def get_listener(app=None):
    """The app's listener, created on first use."""
    app = app or current_app._get_current_object()
    listener = app.extensions.get(_LISTENER_KEY)
    if listener is None:
        with _listener_lock:
            listener = app.extensions.get(_LISTENER_KEY)
            if listener is None:
                with app.app_context():
                    engine = db.engine
                listener = create_listener(engine, app.config)
                app.extensions[_LISTENER_KEY] = listener
    return listener


def stop_listener(app):
    """Stop and forget the app's listener, if one was created."""
    listener = app.extensions.pop(_LISTENER_KEY, None)
    if listener is not None:
        listener.stop()


def subscribe(table, event_type=INSERT, row_filter=None):
    """Open a Channel, making sure the app's listener is feeding the feed."""
    listener = get_listener()
    if current_app.config.get("CHANGE_FEED_LISTENER", True):
        listener.start()
    else:
        # Skip whatever the store announced before this subscription.
        listener.poll()
    return feed.subscribe(table, event_type, row_filter=row_filter)


def pump():
    """Read the store now when no background listener is running."""
    listener = get_listener()
    if not listener.running:
        return listener.poll()
    return 0
