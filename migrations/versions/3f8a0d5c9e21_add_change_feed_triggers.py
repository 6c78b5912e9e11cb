"""Announce message inserts from the store: change_log table and triggers.

PostgreSQL gets a pg_notify() trigger on the tutorhub_changes channel.
Other dialects get a trigger that appends to change_log.

Revision ID: 3f8a0d5c9e21
Revises: add_lookup_indexes
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


revision = "3f8a0d5c9e21"
down_revision = "add_lookup_indexes"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "change_log",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("table_name", sa.String(length=63), nullable=False),
        sa.Column("event_type", sa.String(length=10), nullable=False),
        sa.Column("row_id", sa.String(length=36), nullable=False),
        sa.Column("session_id", sa.String(length=36), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("(CURRENT_TIMESTAMP)"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )

    if op.get_bind().dialect.name == "postgresql":
        op.execute(
            """
            CREATE OR REPLACE FUNCTION tutorhub_notify_message_insert()
            RETURNS trigger AS $$
            BEGIN
                PERFORM pg_notify('tutorhub_changes', json_build_object(
                    'table', TG_TABLE_NAME,
                    'type', TG_OP,
                    'new', json_build_object('id', NEW.id, 'session_id', NEW.session_id)
                )::text);
                RETURN NEW;
            END;
            $$ LANGUAGE plpgsql
            """
        )
        op.execute(
            "CREATE TRIGGER messages_notify_insert "
            "AFTER INSERT ON messages "
            "FOR EACH ROW EXECUTE FUNCTION tutorhub_notify_message_insert()"
        )
    else:
        op.execute(
            "CREATE TRIGGER IF NOT EXISTS messages_change_log "
            "AFTER INSERT ON messages "
            "BEGIN "
            "INSERT INTO change_log (table_name, event_type, row_id, session_id) "
            "VALUES ('messages', 'INSERT', NEW.id, NEW.session_id); "
            "END"
        )


def downgrade():
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TRIGGER IF EXISTS messages_notify_insert ON messages")
        op.execute("DROP FUNCTION IF EXISTS tutorhub_notify_message_insert()")
    else:
        op.execute("DROP TRIGGER IF EXISTS messages_change_log")
    op.drop_table("change_log")
