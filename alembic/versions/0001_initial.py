"""Council schema: applicants, interviews, transcript, votes, verdicts, audit events.

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _interview_fk() -> sa.Column:
    return sa.Column(
        "interview_id",
        postgresql.UUID(as_uuid=False),
        sa.ForeignKey("interviews.id", ondelete="CASCADE"),
        nullable=False,
    )


def upgrade() -> None:
    # Applicants
    op.create_table(
        "agents",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("human_handle", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_agents_human_handle", "agents", ["human_handle"])

    op.create_table(
        "applications",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "agent_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("agents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", sa.String(), server_default="submitted"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=True),
    )

    # Interviews: one per application, metadata holds red flags and key claims
    op.create_table(
        "interviews",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "application_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("status", sa.String(), server_default="pending"),
        sa.Column("turn_count", sa.Integer(), server_default="0"),
        sa.Column("current_judge", sa.String(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("metadata", postgresql.JSONB(), server_default="{}"),
    )
    op.create_index("ix_interviews_status", "interviews", ["status"])

    op.create_table(
        "interview_messages",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        _interview_fk(),
        sa.Column("role", sa.String(), nullable=False),
        sa.Column("judge_name", sa.String(), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("turn_number", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_interview_messages_interview_id", "interview_messages", ["interview_id"])

    # Deliberation
    op.create_table(
        "council_votes",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        _interview_fk(),
        sa.Column("judge_name", sa.String(), nullable=False),
        sa.Column("vote", sa.String(), nullable=False),
        sa.Column("statement", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("interview_id", "judge_name", name="uq_council_votes_interview_judge"),
    )

    op.create_table(
        "verdicts",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        sa.Column(
            "interview_id",
            postgresql.UUID(as_uuid=False),
            sa.ForeignKey("interviews.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("verdict", sa.String(), nullable=False),
        sa.Column("teaser_quote", sa.Text(), nullable=False),
        sa.Column("teaser_author", sa.String(), nullable=False),
        sa.Column("claim_token", sa.String(), nullable=True, unique=True),
        sa.Column("claimed", sa.Boolean(), server_default="false"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # Audit log
    op.create_table(
        "interview_events",
        sa.Column("id", postgresql.UUID(as_uuid=False), primary_key=True),
        _interview_fk(),
        sa.Column("event", sa.String(), nullable=False),
        sa.Column("judge_name", sa.String(), nullable=True),
        sa.Column("turn_number", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("details", postgresql.JSONB(), server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_interview_events_interview_id", "interview_events", ["interview_id"])


def downgrade() -> None:
    op.drop_table("interview_events")
    op.drop_table("verdicts")
    op.drop_table("council_votes")
    op.drop_table("interview_messages")
    op.drop_table("interviews")
    op.drop_table("applications")
    op.drop_table("agents")
