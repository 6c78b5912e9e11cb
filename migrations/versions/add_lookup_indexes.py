"""Add indexes for chat history, session lists and payment lookups.

Revision ID: add_lookup_indexes
Revises: 7c1e4b9a2f30
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


revision = "add_lookup_indexes"
down_revision = "7c1e4b9a2f30"
branch_labels = None
depends_on = None


def upgrade():
    # Messages - history is always per session, oldest first
    op.create_index(
        "ix_messages_session_id_created_at",
        "messages",
        ["session_id", "created_at"],
    )

    # Sessions - listed per learner and per tutor
    op.create_index(
        "ix_tutoring_sessions_learner_id", "tutoring_sessions", ["learner_id"]
    )
    op.create_index(
        "ix_tutoring_sessions_tutor_id", "tutoring_sessions", ["tutor_id"]
    )

    # Payments - earnings roll up per payee, stale-pending scan by status
    op.create_index("ix_payments_payee_id", "payments", ["payee_id"])
    op.create_index("ix_payments_payer_id", "payments", ["payer_id"])
    op.create_index("ix_payments_status", "payments", ["status"])

    # Tutors - directory filters on status
    op.create_index("ix_tutors_status", "tutors", ["status"])


def downgrade():
    op.drop_index("ix_tutors_status", table_name="tutors")
    op.drop_index("ix_payments_status", table_name="payments")
    op.drop_index("ix_payments_payer_id", table_name="payments")
    op.drop_index("ix_payments_payee_id", table_name="payments")
    op.drop_index("ix_tutoring_sessions_tutor_id", table_name="tutoring_sessions")
    op.drop_index("ix_tutoring_sessions_learner_id", table_name="tutoring_sessions")
    op.drop_index("ix_messages_session_id_created_at", table_name="messages")
