"""Store-side change capture for the live feed.

Inserts on `messages` are announced by the database itself, so every
writer (any worker process, a migration, a manual SQL session) reaches
every listener:

- PostgreSQL: an AFTER INSERT trigger calls pg_notify() on the
  `tutorhub_changes` channel. NOTIFY is transactional, so listeners only
  hear about committed rows and never about rolled-back ones.
- Other dialects (SQLite in development and tests): the trigger appends
  a row to `change_log`, which listeners poll by increasing id.

The triggers are attached to the messages table with DDL events so
db.create_all() installs them; the Alembic migration installs the same
SQL for managed databases.
"""

from sqlalchemy import DDL, event

from tutorhub.extensions import db
from tutorhub.models.message import Message

NOTIFY_CHANNEL = "tutorhub_changes"


class ChangeLogEntry(db.Model):
    __tablename__ = "change_log"
    # Ids are never reused, even after old rows are pruned.
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    table_name = db.Column(db.String(63), nullable=False)
    event_type = db.Column(db.String(10), nullable=False)
    row_id = db.Column(db.String(36), nullable=False)
    session_id = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<ChangeLogEntry {self.id} {self.event_type} {self.table_name}:{self.row_id}>"


# --- SQLite: append to change_log ---
SQLITE_MESSAGES_TRIGGER = DDL(
    "CREATE TRIGGER IF NOT EXISTS messages_change_log "
    "AFTER INSERT ON messages "
    "BEGIN "
    "INSERT INTO change_log (table_name, event_type, row_id, session_id) "
    "VALUES ('messages', 'INSERT', NEW.id, NEW.session_id); "
    "END"
)

# --- PostgreSQL: NOTIFY with the row identity ---
PG_NOTIFY_FUNCTION = DDL(
    "CREATE OR REPLACE FUNCTION tutorhub_notify_message_insert() "
    "RETURNS trigger AS $$ "
    "BEGIN "
    f"PERFORM pg_notify('{NOTIFY_CHANNEL}', json_build_object("
    "'table', TG_TABLE_NAME, "
    "'type', TG_OP, "
    "'new', json_build_object('id', NEW.id, 'session_id', NEW.session_id)"
    ")::text); "
    "RETURN NEW; "
    "END; "
    "$$ LANGUAGE plpgsql"
)

PG_MESSAGES_TRIGGER = DDL(
    "CREATE TRIGGER messages_notify_insert "
    "AFTER INSERT ON messages "
    "FOR EACH ROW EXECUTE FUNCTION tutorhub_notify_message_insert()"
)

event.listen(
    Message.__table__, "after_create",
    SQLITE_MESSAGES_TRIGGER.execute_if(dialect="sqlite"),
)
event.listen(
    Message.__table__, "after_create",
    PG_NOTIFY_FUNCTION.execute_if(dialect="postgresql"),
)
event.listen(
    Message.__table__, "after_create",
    PG_MESSAGES_TRIGGER.execute_if(dialect="postgresql"),
)
