"""
Persistence contract consumed by the interview core.

Every method is a single-record operation. Nothing here promises a
transaction spanning more than one call.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from .models import (
    Agent,
    Application,
    ApplicationStatus,
    CouncilVote,
    Interview,
    InterviewMessage,
    InterviewStatus,
    MessageRole,
    Verdict,
)


@dataclass
class Submission:
    agent: Agent
    application: Application
    interview: Interview


class InterviewStore(ABC):
    # Applications

    @abstractmethod
    async def create_application(self, agent_name: str, human_handle: str) -> Submission:
        """Create agent, application (submitted) and interview (pending, turn 0)."""

    @abstractmethod
    async def update_application_status(
        self,
        application_id: str,
        status: ApplicationStatus,
        decided_at: datetime | None = None,
    ) -> None: ...

    # Interviews

    @abstractmethod
    async def get_interview(self, interview_id: str) -> Interview | None: ...

    @abstractmethod
    async def get_agent_for_interview(self, interview_id: str) -> Agent | None: ...

    @abstractmethod
    async def update_interview(self, interview_id: str, **fields: Any) -> None:
        """Set plain columns (status, turn_count, current_judge, timestamps)."""

    @abstractmethod
    async def update_metadata(self, interview_id: str, metadata: dict[str, Any]) -> None: ...

    @abstractmethod
    async def list_interviews_by_status(self, status: InterviewStatus) -> list[Interview]: ...

    # Messages

    @abstractmethod
    async def list_messages(self, interview_id: str) -> list[InterviewMessage]:
        """Messages ordered by (turn_number, created_at)."""

    @abstractmethod
    async def append_message(
        self,
        interview_id: str,
        role: MessageRole,
        content: str,
        turn_number: int,
        judge_name: str | None = None,
    ) -> InterviewMessage: ...

    # Deliberation

    @abstractmethod
    async def list_votes(self, interview_id: str) -> list[CouncilVote]: ...

    @abstractmethod
    async def insert_vote(
        self, interview_id: str, judge_name: str, vote: str, statement: str
    ) -> CouncilVote | None:
        """Insert one judge's vote; returns None when that judge already voted."""

    @abstractmethod
    async def get_verdict(self, interview_id: str) -> Verdict | None: ...

    @abstractmethod
    async def insert_verdict(
        self,
        interview_id: str,
        verdict: str,
        teaser_quote: str,
        teaser_author: str,
        claim_token: str | None,
    ) -> Verdict: ...

    # Audit

    @abstractmethod
    async def log_event(
        self,
        interview_id: str,
        event: str,
        *,
        judge_name: str | None = None,
        turn_number: int | None = None,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None: ...
