"""SQLAlchemy models for the council interview database."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

JSONType = JSON().with_variant(JSONB, "postgresql")


class InterviewStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    DELIBERATING = "deliberating"
    COMPLETE = "complete"


class MessageRole(StrEnum):
    JUDGE = "judge"
    APPLICANT = "applicant"
    SYSTEM = "system"


class ApplicationStatus(StrEnum):
    SUBMITTED = "submitted"
    INTERVIEWING = "interviewing"
    DECIDED = "decided"


class VoteType(StrEnum):
    ACCEPT = "accept"
    REJECT = "reject"
    ABSTAIN = "abstain"


class VerdictType(StrEnum):
    ACCEPT = "accept"
    PROVISIONAL = "provisional"
    REJECT = "reject"
    UNANIMOUS_REJECT = "unanimous_reject"
    DEFER = "defer"


def _uuid() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Base class for all models."""

    type_annotation_map = {
        dict[str, Any]: JSONType,
    }


# =============================================================================
# APPLICANTS
# =============================================================================


class Agent(Base):
    """An AI agent applying on behalf of its human."""

    __tablename__ = "agents"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String, nullable=False)
    human_handle: Mapped[str] = mapped_column(String, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    applications: Mapped[list[Application]] = relationship(back_populates="agent")


class Application(Base):
    """One application attempt; owns exactly one interview."""

    __tablename__ = "applications"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
    agent_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("agents.id", ondelete="CASCADE")
    )
    status: Mapped[str] = mapped_column(String, default=ApplicationStatus.SUBMITTED.value)
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    agent: Mapped[Agent] = relationship(back_populates="applications")
    interview: Mapped[Interview | None] = relationship(back_populates="application")


# =============================================================================
# INTERVIEW-SCOPED TABLES
# =============================================================================


class Interview(Base):
    """One applicant's full session. Never deleted."""

    __tablename__ = "interviews"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
    application_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("applications.id", ondelete="CASCADE"), unique=True
    )
    status: Mapped[str] = mapped_column(String, default=InterviewStatus.PENDING.value, index=True)
    turn_count: Mapped[int] = mapped_column(Integer, default=0)
    current_judge: Mapped[str | None] = mapped_column(String, nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    # red_flags, key_claims, skill_source, skill_verified, total_penalty
    metadata_: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)

    application: Mapped[Application] = relationship(back_populates="interview")
    messages: Mapped[list[InterviewMessage]] = relationship(
        back_populates="interview", cascade="all, delete-orphan"
    )
    votes: Mapped[list[CouncilVote]] = relationship(
        back_populates="interview", cascade="all, delete-orphan"
    )
    verdict: Mapped[Verdict | None] = relationship(back_populates="interview")
    events: Mapped[list[InterviewEvent]] = relationship(
        back_populates="interview", cascade="all, delete-orphan"
    )


class InterviewMessage(Base):
    """One utterance within an interview. Append-only."""

    __tablename__ = "interview_messages"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
    interview_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("interviews.id", ondelete="CASCADE"), index=True
    )
    role: Mapped[str] = mapped_column(String, nullable=False)  # 'judge', 'applicant', 'system'
    judge_name: Mapped[str | None] = mapped_column(String, nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    turn_number: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    interview: Mapped[Interview] = relationship(back_populates="messages")


class CouncilVote(Base):
    """One judge's deliberation output. Immutable once written."""

    __tablename__ = "council_votes"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
    interview_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("interviews.id", ondelete="CASCADE")
    )
    judge_name: Mapped[str] = mapped_column(String, nullable=False)
    vote: Mapped[str] = mapped_column(String, nullable=False)
    statement: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("interview_id", "judge_name", name="uq_council_votes_interview_judge"),
    )

    interview: Mapped[Interview] = relationship(back_populates="votes")


class Verdict(Base):
    """Final decision record, written exactly once per interview."""

    __tablename__ = "verdicts"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
    interview_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("interviews.id", ondelete="CASCADE"), unique=True
    )
    verdict: Mapped[str] = mapped_column(String, nullable=False)
    teaser_quote: Mapped[str] = mapped_column(Text, nullable=False)
    teaser_author: Mapped[str] = mapped_column(String, nullable=False)
    claim_token: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
    claimed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    interview: Mapped[Interview] = relationship(back_populates="verdict")


class InterviewEvent(Base):
    """Audit trail of lifecycle events."""

    __tablename__ = "interview_events"

    id: Mapped[str] = mapped_column(Uuid(as_uuid=False), primary_key=True, default=_uuid)
    interview_id: Mapped[str] = mapped_column(
        Uuid(as_uuid=False), ForeignKey("interviews.id", ondelete="CASCADE"), index=True
    )
    event: Mapped[str] = mapped_column(String, nullable=False)
    judge_name: Mapped[str | None] = mapped_column(String, nullable=True)
    turn_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    interview: Mapped[Interview] = relationship(back_populates="events")
