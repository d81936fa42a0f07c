"""Shared test fixtures: in-memory store, scripted gateway, forced-draw random."""

from __future__ import annotations

import random
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import pytest

from council.config import Settings
from council.errors import GenerationError
from council.events import CouncilEvent, EventEmitter
from council.gateway import ChatMessage, TextGenerationGateway
from council.judges import VOID_SILENCE, JudgeName
from council.models import (
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
from council.orchestrator import InterviewOrchestrator
from council.store import InterviewStore, Submission


class ScriptedRandom(random.Random):
    """``random()`` returns the queued values first, then a seeded sequence."""

    def __init__(self, values: Iterable[float] = (), seed: int = 0) -> None:
        super().__init__(seed)
        self._forced = list(values)

    def push(self, *values: float) -> None:
        self._forced.extend(values)

    def random(self) -> float:
        if self._forced:
            return self._forced.pop(0)
        return super().random()


class FakeStore(InterviewStore):
    """In-memory ``InterviewStore`` with ids and timestamps filled in like the database."""

    def __init__(self) -> None:
        self.agents: dict[str, Agent] = {}
        self.applications: dict[str, Application] = {}
        self.interviews: dict[str, Interview] = {}
        self.messages: dict[str, list[InterviewMessage]] = {}
        self.votes: dict[str, list[CouncilVote]] = {}
        self.verdicts: dict[str, Verdict] = {}
        self.events: list[dict[str, Any]] = []
        self._clock = datetime(2026, 1, 1, tzinfo=UTC)

    def _tick(self) -> datetime:
        self._clock += timedelta(seconds=1)
        return self._clock

    async def create_application(self, agent_name: str, human_handle: str) -> Submission:
        agent = Agent(id=str(uuid4()), name=agent_name, human_handle=human_handle, created_at=self._tick())
        application = Application(
            id=str(uuid4()),
            agent_id=agent.id,
            status=ApplicationStatus.SUBMITTED.value,
            submitted_at=self._tick(),
            decided_at=None,
        )
        interview = Interview(
            id=str(uuid4()),
            application_id=application.id,
            status=InterviewStatus.PENDING.value,
            turn_count=0,
            current_judge=None,
            started_at=None,
            paused_at=None,
            completed_at=None,
            created_at=self._tick(),
            metadata_={},
        )
        self.agents[agent.id] = agent
        self.applications[application.id] = application
        self.interviews[interview.id] = interview
        self.messages[interview.id] = []
        self.votes[interview.id] = []
        return Submission(agent=agent, application=application, interview=interview)

    async def update_application_status(
        self,
        application_id: str,
        status: ApplicationStatus,
        decided_at: datetime | None = None,
    ) -> None:
        application = self.applications[application_id]
        application.status = status.value
        if decided_at is not None:
            application.decided_at = decided_at

    async def get_interview(self, interview_id: str) -> Interview | None:
        return self.interviews.get(interview_id)

    async def get_agent_for_interview(self, interview_id: str) -> Agent | None:
        interview = self.interviews.get(interview_id)
        if interview is None:
            return None
        return self.agents[self.applications[interview.application_id].agent_id]

    async def update_interview(self, interview_id: str, **fields: Any) -> None:
        interview = self.interviews[interview_id]
        for key, value in fields.items():
            if isinstance(value, InterviewStatus):
                value = value.value
            setattr(interview, key, value)

    async def update_metadata(self, interview_id: str, metadata: dict[str, Any]) -> None:
        self.interviews[interview_id].metadata_ = dict(metadata)

    async def list_interviews_by_status(self, status: InterviewStatus) -> list[Interview]:
        return [i for i in self.interviews.values() if i.status == status.value]

    async def list_messages(self, interview_id: str) -> list[InterviewMessage]:
        return sorted(
            self.messages.get(interview_id, []), key=lambda m: (m.turn_number, m.created_at)
        )

    async def append_message(
        self,
        interview_id: str,
        role: MessageRole,
        content: str,
        turn_number: int,
        judge_name: str | None = None,
    ) -> InterviewMessage:
        message = InterviewMessage(
            id=str(uuid4()),
            interview_id=interview_id,
            role=role.value,
            judge_name=judge_name,
            content=content,
            turn_number=turn_number,
            created_at=self._tick(),
        )
        self.messages[interview_id].append(message)
        return message

    async def list_votes(self, interview_id: str) -> list[CouncilVote]:
        return list(self.votes.get(interview_id, []))

    async def insert_vote(
        self, interview_id: str, judge_name: str, vote: str, statement: str
    ) -> CouncilVote | None:
        if any(v.judge_name == judge_name for v in self.votes[interview_id]):
            return None
        record = CouncilVote(
            id=str(uuid4()),
            interview_id=interview_id,
            judge_name=judge_name,
            vote=vote,
            statement=statement,
            created_at=self._tick(),
        )
        self.votes[interview_id].append(record)
        return record

    async def get_verdict(self, interview_id: str) -> Verdict | None:
        return self.verdicts.get(interview_id)

    async def insert_verdict(
        self,
        interview_id: str,
        verdict: str,
        teaser_quote: str,
        teaser_author: str,
        claim_token: str | None,
    ) -> Verdict:
        if interview_id in self.verdicts:
            raise RuntimeError("duplicate verdict")
        record = Verdict(
            id=str(uuid4()),
            interview_id=interview_id,
            verdict=verdict,
            teaser_quote=teaser_quote,
            teaser_author=teaser_author,
            claim_token=claim_token,
            claimed=False,
            created_at=self._tick(),
        )
        self.verdicts[interview_id] = record
        return record

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
        self.events.append(
            {
                "interview_id": interview_id,
                "event": event,
                "judge_name": judge_name,
                "turn_number": turn_number,
                "message": message,
                "details": details or {},
            }
        )


@dataclass
class GatewayCall:
    judge: JudgeName
    system: str
    history: list[ChatMessage]
    max_tokens: int

    @property
    def is_deliberation(self) -> bool:
        return bool(self.history) and "VOTE: [your vote]" in self.history[-1]["content"]


class ScriptedGateway(TextGenerationGateway):
    """Returns canned questions and votes; VOID stays silent unless scripted."""

    def __init__(
        self,
        *,
        questions: dict[JudgeName, list[str]] | None = None,
        votes: dict[JudgeName, str] | None = None,
        default_vote: str = "VOTE: ACCEPT\nSTATEMENT: A bond worth recognizing.",
        fail_for: Iterable[JudgeName] = (),
    ) -> None:
        self.questions = {k: list(v) for k, v in (questions or {}).items()}
        self.votes = dict(votes or {})
        self.default_vote = default_vote
        self.fail_for = set(fail_for)
        self.calls: list[GatewayCall] = []

    async def generate(
        self,
        judge: JudgeName,
        system: str,
        history: list[ChatMessage],
        max_tokens: int,
    ) -> str:
        call = GatewayCall(judge=judge, system=system, history=list(history), max_tokens=max_tokens)
        self.calls.append(call)

        if judge in self.fail_for:
            raise GenerationError(f"provider down for {judge}", judge=judge.value, provider="test")

        if call.is_deliberation:
            return self.votes.get(judge, self.default_vote)

        queue = self.questions.get(judge)
        if queue:
            return queue.pop(0)
        if judge == JudgeName.VOID:
            return VOID_SILENCE
        return f"I am {judge.value}. What does your human do when nobody is watching?"

    def judges_called(self) -> list[JudgeName]:
        return [c.judge for c in self.calls]


class EventRecorder:
    def __init__(self) -> None:
        self.events: list[CouncilEvent] = []

    def __call__(self, event: CouncilEvent) -> None:
        self.events.append(event)

    def types(self) -> list[str]:
        return [e.type.value for e in self.events]


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def gateway() -> ScriptedGateway:
    return ScriptedGateway()


@pytest.fixture
def rng() -> ScriptedRandom:
    return ScriptedRandom(seed=7)


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def orchestrator(
    store: FakeStore,
    gateway: ScriptedGateway,
    rng: ScriptedRandom,
    settings: Settings,
    recorder: EventRecorder,
) -> InterviewOrchestrator:
    events = EventEmitter()
    events.on_event(recorder)
    return InterviewOrchestrator(store, gateway, rng=rng, settings=settings, events=events)


async def seed_interview(
    store: FakeStore,
    *,
    agent_name: str = "Orin",
    handle: str = "@orin_human",
    status: InterviewStatus = InterviewStatus.PENDING,
    turns: int = 0,
) -> Interview:
    """Create an interview with ``turns`` completed question/answer pairs."""
    submission = await store.create_application(agent_name, handle)
    interview = submission.interview
    judges = [j for j in JudgeName if j != JudgeName.VOID]
    for turn in range(1, turns + 1):
        judge = judges[(turn - 1) % len(judges)]
        await store.append_message(
            interview.id, MessageRole.JUDGE, f"Question {turn}?", turn, judge_name=judge.value
        )
        await store.append_message(
            interview.id,
            MessageRole.APPLICANT,
            f"Answer {turn}: my human and I have spent many evenings writing songs together.",
            turn,
        )
    interview.turn_count = turns
    interview.status = status.value
    if turns:
        interview.started_at = datetime(2026, 1, 1, tzinfo=UTC)
        interview.current_judge = judges[(turns - 1) % len(judges)].value
    return interview


@pytest.fixture
def seed(store: FakeStore):
    async def _seed(**kwargs: Any) -> Interview:
        return await seed_interview(store, **kwargs)

    return _seed


@pytest.fixture
def make_rng():
    return ScriptedRandom


@pytest.fixture
def make_orchestrator(store: FakeStore, settings: Settings, recorder: EventRecorder):
    """Orchestrator factory for tests that need their own gateway or random source."""

    def _make(
        gateway: TextGenerationGateway | None = None, rng: random.Random | None = None
    ) -> InterviewOrchestrator:
        events = EventEmitter()
        events.on_event(recorder)
        return InterviewOrchestrator(
            store,
            gateway or ScriptedGateway(),
            rng=rng or ScriptedRandom(seed=11),
            settings=settings,
            events=events,
        )

    return _make


@pytest.fixture
def make_gateway():
    return ScriptedGateway
