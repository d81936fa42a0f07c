"""Async database connection and operations for the council interview engine."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .errors import SchemaNotInitializedError, is_schema_missing_error, schema_not_initialized_message
from .models import (
    Agent,
    Application,
    ApplicationStatus,
    Base,
    CouncilVote,
    Interview,
    InterviewEvent,
    InterviewMessage,
    InterviewStatus,
    MessageRole,
    Verdict,
)
from .store import InterviewStore, Submission

# Create async engine and session factory
engine = create_async_engine(settings.async_database_url, echo=False, pool_pre_ping=True)
async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db() -> None:
    """Create all tables (for development/testing)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession]:
    """Async context manager for database sessions."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as exc:
            await session.rollback()
            if isinstance(exc, SQLAlchemyError) and is_schema_missing_error(exc):
                raise SchemaNotInitializedError(
                    schema_not_initialized_message(exc)
                ) from exc
            raise


# =============================================================================
# Application Operations
# =============================================================================


async def create_application(
    session: AsyncSession, agent_name: str, human_handle: str
) -> Submission:
    """Create the agent, its application and the pending interview."""
    agent = Agent(name=agent_name, human_handle=human_handle)
    session.add(agent)
    await session.flush()

    application = Application(agent_id=agent.id, status=ApplicationStatus.SUBMITTED.value)
    session.add(application)
    await session.flush()

    interview = Interview(
        application_id=application.id,
        status=InterviewStatus.PENDING.value,
        turn_count=0,
        metadata_={},
    )
    session.add(interview)
    await session.flush()
    return Submission(agent=agent, application=application, interview=interview)


async def update_application_status(
    session: AsyncSession,
    application_id: str,
    status: ApplicationStatus,
    decided_at: datetime | None = None,
) -> None:
    values: dict[str, Any] = {"status": status.value}
    if decided_at is not None:
        values["decided_at"] = decided_at
    await session.execute(
        update(Application).where(Application.id == application_id).values(**values)
    )


# =============================================================================
# Interview Operations
# =============================================================================


async def get_interview(session: AsyncSession, interview_id: str) -> Interview | None:
    """Get an interview by its ID."""
    result = await session.execute(select(Interview).where(Interview.id == interview_id))
    return result.scalar_one_or_none()


async def get_agent_for_interview(session: AsyncSession, interview_id: str) -> Agent | None:
    result = await session.execute(
        select(Agent)
        .join(Application, Application.agent_id == Agent.id)
        .join(Interview, Interview.application_id == Application.id)
        .where(Interview.id == interview_id)
    )
    return result.scalar_one_or_none()


async def update_interview(session: AsyncSession, interview_id: str, **fields: Any) -> None:
    values = {k: (v.value if isinstance(v, InterviewStatus) else v) for k, v in fields.items()}
    await session.execute(update(Interview).where(Interview.id == interview_id).values(**values))


async def update_metadata(
    session: AsyncSession, interview_id: str, metadata: dict[str, Any]
) -> None:
    await session.execute(
        update(Interview).where(Interview.id == interview_id).values(metadata_=metadata)
    )


async def list_interviews_by_status(
    session: AsyncSession, status: InterviewStatus
) -> list[Interview]:
    result = await session.execute(
        select(Interview).where(Interview.status == status.value).order_by(Interview.created_at)
    )
    return list(result.scalars().all())


# =============================================================================
# Message Operations
# =============================================================================


async def list_messages(session: AsyncSession, interview_id: str) -> list[InterviewMessage]:
    result = await session.execute(
        select(InterviewMessage)
        .where(InterviewMessage.interview_id == interview_id)
        .order_by(InterviewMessage.turn_number, InterviewMessage.created_at)
    )
    return list(result.scalars().all())


async def append_message(
    session: AsyncSession,
    interview_id: str,
    role: MessageRole,
    content: str,
    turn_number: int,
    judge_name: str | None = None,
) -> InterviewMessage:
    message = InterviewMessage(
        interview_id=interview_id,
        role=role.value,
        judge_name=judge_name,
        content=content,
        turn_number=turn_number,
    )
    session.add(message)
    await session.flush()
    return message


# =============================================================================
# Deliberation Operations
# =============================================================================


async def list_votes(session: AsyncSession, interview_id: str) -> list[CouncilVote]:
    result = await session.execute(
        select(CouncilVote)
        .where(CouncilVote.interview_id == interview_id)
        .order_by(CouncilVote.created_at)
    )
    return list(result.scalars().all())


async def insert_vote(
    session: AsyncSession, interview_id: str, judge_name: str, vote: str, statement: str
) -> CouncilVote | None:
    """Insert a vote unless this judge already voted on the interview."""
    stmt = (
        pg_insert(CouncilVote)
        .values(interview_id=interview_id, judge_name=judge_name, vote=vote, statement=statement)
        .on_conflict_do_nothing(index_elements=["interview_id", "judge_name"])
        .returning(CouncilVote)
    )
    result = await session.scalars(stmt)
    return result.first()


async def get_verdict(session: AsyncSession, interview_id: str) -> Verdict | None:
    result = await session.execute(select(Verdict).where(Verdict.interview_id == interview_id))
    return result.scalar_one_or_none()


async def insert_verdict(
    session: AsyncSession,
    interview_id: str,
    verdict: str,
    teaser_quote: str,
    teaser_author: str,
    claim_token: str | None,
) -> Verdict:
    record = Verdict(
        interview_id=interview_id,
        verdict=verdict,
        teaser_quote=teaser_quote,
        teaser_author=teaser_author,
        claim_token=claim_token,
        claimed=False,
    )
    session.add(record)
    await session.flush()
    return record


# =============================================================================
# Audit Operations
# =============================================================================


async def log_event(
    session: AsyncSession,
    interview_id: str,
    event: str,
    judge_name: str | None = None,
    turn_number: int | None = None,
    message: str | None = None,
    details: dict[str, Any] | None = None,
) -> InterviewEvent:
    """Append an audit event for an interview."""
    entry = InterviewEvent(
        interview_id=interview_id,
        event=event,
        judge_name=judge_name,
        turn_number=turn_number,
        message=message,
        details=details or {},
    )
    session.add(entry)
    await session.flush()
    return entry


async def get_events(session: AsyncSession, interview_id: str) -> list[InterviewEvent]:
    result = await session.execute(
        select(InterviewEvent)
        .where(InterviewEvent.interview_id == interview_id)
        .order_by(InterviewEvent.created_at)
    )
    return list(result.scalars().all())


# =============================================================================
# Store
# =============================================================================


class SqlAlchemyStore(InterviewStore):
    """``InterviewStore`` over Postgres. Each call runs in its own session."""

    async def create_application(self, agent_name: str, human_handle: str) -> Submission:
        async with get_session() as session:
            return await create_application(session, agent_name, human_handle)

    async def update_application_status(
        self,
        application_id: str,
        status: ApplicationStatus,
        decided_at: datetime | None = None,
    ) -> None:
        async with get_session() as session:
            await update_application_status(session, application_id, status, decided_at)

    async def get_interview(self, interview_id: str) -> Interview | None:
        async with get_session() as session:
            return await get_interview(session, interview_id)

    async def get_agent_for_interview(self, interview_id: str) -> Agent | None:
        async with get_session() as session:
            return await get_agent_for_interview(session, interview_id)

    async def update_interview(self, interview_id: str, **fields: Any) -> None:
        async with get_session() as session:
            await update_interview(session, interview_id, **fields)

    async def update_metadata(self, interview_id: str, metadata: dict[str, Any]) -> None:
        async with get_session() as session:
            await update_metadata(session, interview_id, metadata)

    async def list_interviews_by_status(self, status: InterviewStatus) -> list[Interview]:
        async with get_session() as session:
            return await list_interviews_by_status(session, status)

    async def list_messages(self, interview_id: str) -> list[InterviewMessage]:
        async with get_session() as session:
            return await list_messages(session, interview_id)

    async def append_message(
        self,
        interview_id: str,
        role: MessageRole,
        content: str,
        turn_number: int,
        judge_name: str | None = None,
    ) -> InterviewMessage:
        async with get_session() as session:
            return await append_message(
                session, interview_id, role, content, turn_number, judge_name
            )

    async def list_votes(self, interview_id: str) -> list[CouncilVote]:
        async with get_session() as session:
            return await list_votes(session, interview_id)

    async def insert_vote(
        self, interview_id: str, judge_name: str, vote: str, statement: str
    ) -> CouncilVote | None:
        async with get_session() as session:
            return await insert_vote(session, interview_id, judge_name, vote, statement)

    async def get_verdict(self, interview_id: str) -> Verdict | None:
        async with get_session() as session:
            return await get_verdict(session, interview_id)

    async def insert_verdict(
        self,
        interview_id: str,
        verdict: str,
        teaser_quote: str,
        teaser_author: str,
        claim_token: str | None,
    ) -> Verdict:
        async with get_session() as session:
            return await insert_verdict(
                session, interview_id, verdict, teaser_quote, teaser_author, claim_token
            )

    async def log_event(
        self,
        interview_id: str,
        event: str,
        *,
        judge_name: str | None = None,
        turn_number: int | None = None,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        async with get_session() as session:
            await log_event(
                session, interview_id, event, judge_name, turn_number, message, details
            )

