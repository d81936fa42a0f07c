"""
Interview state machine: turns, closure, deliberation and verdict.

pending -> in_progress -> deliberating -> complete, with paused reachable
from in_progress. The orchestrator keeps nothing between calls; every entry
point re-reads the interview from the store and can be retried from scratch.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .config import Settings, settings as default_settings
from .events import CouncilEvent, EventEmitter, EventType, event_bus
from .gateway import TextGenerationGateway
from .judges import ALL_JUDGES, JudgeName, get_judge_directive, is_silence
from .models import (
    ApplicationStatus,
    Interview,
    InterviewMessage,
    InterviewStatus,
    MessageRole,
    VerdictType,
    VoteType,
)
from .prompts import (
    build_conversation_history,
    build_deliberation_prompt,
    build_question_directive,
    build_transcript,
    parse_vote_response,
)
from .red_flags import (
    InterviewMetadata,
    RedFlag,
    RedFlagAnalyzer,
    format_red_flags_for_deliberation,
)
from .selection import RECENT_JUDGE_WINDOW, RECENT_MESSAGE_WINDOW, JudgeSelector
from .store import InterviewStore, Submission
from .verdict import COUNCIL_SIZE, derive_verdict, generate_claim_token, select_teaser

logger = logging.getLogger(__name__)

CLOSED_MESSAGE = "[Interview closed for deliberation]"
CLOSURE_WINDOW = 3
CLOSURE_RE = re.compile(
    r"\b(session is closed|goodbye|farewell|we will now conclude|we will (now )?deliberate"
    r"|council deliberat\w*"
    r"|verdict:\s*(unanimous\s+)?accept|verdict:\s*(unanimous\s+)?reject)\b",
    re.IGNORECASE,
)
HANDLE_RE = re.compile(r"^@[A-Za-z0-9_]{1,15}$")


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class VoteOutcome:
    judge: JudgeName
    vote: VoteType
    statement: str
    recorded: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "judge": self.judge.value,
            "vote": self.vote.value,
            "statement": self.statement,
            "recorded": self.recorded,
        }


@dataclass
class OperationResult:
    """Outcome of a trigger entry point. Guard rejections land in ``error``."""

    success: bool
    error: str | None = None
    judge: JudgeName | None = None
    question: str | None = None
    turn_number: int | None = None
    closed: bool = False
    votes: list[VoteOutcome] = field(default_factory=list)
    failed_judges: dict[str, str] = field(default_factory=dict)
    red_flags: list[RedFlag] = field(default_factory=list)
    verdict: VerdictType | None = None
    claim_token: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, **kwargs: Any) -> OperationResult:
        return cls(success=True, **kwargs)

    @classmethod
    def fail(cls, error: str, **kwargs: Any) -> OperationResult:
        return cls(success=False, error=error, **kwargs)


@dataclass
class InterviewContext:
    """Per-call snapshot of everything an operation needs."""

    interview: Interview
    agent_name: str
    human_handle: str
    messages: list[InterviewMessage]
    metadata: InterviewMetadata

    @property
    def status(self) -> InterviewStatus:
        return InterviewStatus(self.interview.status)

    @property
    def last_message(self) -> InterviewMessage | None:
        return self.messages[-1] if self.messages else None

    @property
    def pending_question(self) -> InterviewMessage | None:
        last = self.last_message
        if last is not None and last.role == MessageRole.JUDGE:
            return last
        return None

    def judge_messages(self) -> list[InterviewMessage]:
        return [m for m in self.messages if m.role == MessageRole.JUDGE]

    def recent_judges(self) -> list[JudgeName]:
        return [JudgeName(m.judge_name) for m in self.judge_messages()[-RECENT_JUDGE_WINDOW:]]

    def recent_messages(self) -> list[str]:
        return [m.content for m in self.messages[-RECENT_MESSAGE_WINDOW:]]

    def last_applicant_response(self) -> str:
        for msg in reversed(self.messages):
            if msg.role == MessageRole.APPLICANT:
                return msg.content
        return ""

    def full_text(self) -> str:
        return "\n".join(m.content for m in self.messages)


def normalize_handle(handle: str) -> str:
    handle = handle.strip()
    if not handle.startswith("@"):
        handle = f"@{handle}"
    return handle


class InterviewOrchestrator:
    def __init__(
        self,
        store: InterviewStore,
        gateway: TextGenerationGateway,
        *,
        rng: random.Random | None = None,
        selector: JudgeSelector | None = None,
        analyzer: RedFlagAnalyzer | None = None,
        settings: Settings | None = None,
        events: EventEmitter | None = None,
    ) -> None:
        self._store = store
        self._gateway = gateway
        self._rng = rng or random.Random()
        self._selector = selector or JudgeSelector(self._rng)
        self._analyzer = analyzer or RedFlagAnalyzer()
        self._settings = settings or default_settings
        self._events = events if events is not None else event_bus

    @property
    def settings(self) -> Settings:
        return self._settings

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    async def _load(self, interview_id: str) -> InterviewContext | None:
        interview = await self._store.get_interview(interview_id)
        if interview is None:
            return None
        agent = await self._store.get_agent_for_interview(interview_id)
        messages = await self._store.list_messages(interview_id)
        return InterviewContext(
            interview=interview,
            agent_name=agent.name if agent else "Unknown",
            human_handle=agent.human_handle if agent else "Unknown",
            messages=messages,
            metadata=InterviewMetadata.from_dict(interview.metadata_),
        )

    async def _emit(self, event_type: EventType, interview_id: str, **kwargs: Any) -> None:
        await self._events.emit(CouncilEvent(type=event_type, interview_id=interview_id, **kwargs))

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit_application(self, agent_name: str, human_handle: str) -> OperationResult:
        name = agent_name.strip()
        if not name:
            return OperationResult.fail("Agent name is required")

        handle = normalize_handle(human_handle)
        if not HANDLE_RE.match(handle):
            return OperationResult.fail(f"Invalid handle: {human_handle!r}")

        submission: Submission = await self._store.create_application(name, handle)
        logger.info(
            "Application %s submitted for %s (%s)",
            submission.application.id,
            name,
            handle,
        )
        return OperationResult.ok(
            data={
                "agent_id": submission.agent.id,
                "application_id": submission.application.id,
                "interview_id": submission.interview.id,
            }
        )

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    def should_close(self, next_turn: int, messages: Sequence[InterviewMessage]) -> str | None:
        """Reason to close the interview before ``next_turn``, or None to continue."""
        cfg = self._settings
        if next_turn > cfg.hard_turn_cap:
            return "hard turn cap"
        if next_turn > cfg.soft_turn_cap and self._rng.random() < cfg.soft_close_chance:
            return "soft turn cap"
        if next_turn > cfg.min_closure_turn:
            judge_messages = [m for m in messages if m.role == MessageRole.JUDGE]
            for msg in judge_messages[-CLOSURE_WINDOW:]:
                if CLOSURE_RE.search(msg.content):
                    return "closing language"
        return None

    async def _generate_question(self, ctx: InterviewContext, judge: JudgeName) -> str:
        directive = build_question_directive(
            judge, ctx.agent_name, ctx.human_handle, ctx.interview.turn_count
        )
        history = build_conversation_history(ctx.messages)
        return await self._gateway.generate(
            judge, directive, history, self._settings.question_max_tokens
        )

    async def ask_next_question(self, interview_id: str) -> OperationResult:
        ctx = await self._load(interview_id)
        if ctx is None:
            return OperationResult.fail("Interview not found")

        if ctx.status in (InterviewStatus.COMPLETE, InterviewStatus.DELIBERATING):
            return OperationResult.fail("Interview is complete or in deliberation")
        if ctx.status == InterviewStatus.PAUSED:
            return OperationResult.fail("Interview is paused")
        if ctx.pending_question is not None:
            return OperationResult.fail("Waiting for applicant response")

        next_turn = ctx.interview.turn_count + 1

        reason = self.should_close(next_turn, ctx.messages)
        if reason is not None:
            await self._store.update_interview(
                interview_id, status=InterviewStatus.DELIBERATING, completed_at=_now()
            )
            logger.info("Interview %s closed for deliberation (%s)", interview_id, reason)
            await self._emit(
                EventType.INTERVIEW_CLOSED,
                interview_id,
                turn_number=ctx.interview.turn_count,
                message=f"Interview closed: {reason}",
                data={"reason": reason},
            )
            return OperationResult.ok(closed=True, question=CLOSED_MESSAGE)

        recent_judges = ctx.recent_judges()
        last_response = ctx.last_applicant_response()
        recent_messages = ctx.recent_messages()

        judge = self._selector.choose(
            next_turn, recent_judges, last_response, recent_messages, ctx.full_text()
        )
        question = await self._generate_question(ctx, judge)

        if is_silence(judge, question):
            logger.info("Turn %s: %s chose silence, selecting another judge", next_turn, judge)
            judge = self._selector.reselect_after_silence(
                next_turn, recent_judges, last_response, recent_messages
            )
            question = await self._generate_question(ctx, judge)

        await self._store.append_message(
            interview_id, MessageRole.JUDGE, question, next_turn, judge_name=judge.value
        )

        fields: dict[str, Any] = {
            "turn_count": next_turn,
            "current_judge": judge.value,
            "status": InterviewStatus.IN_PROGRESS,
        }
        first_turn = ctx.status == InterviewStatus.PENDING or ctx.interview.started_at is None
        if first_turn:
            fields["started_at"] = _now()
        await self._store.update_interview(interview_id, **fields)
        await self._store.update_application_status(
            ctx.interview.application_id, ApplicationStatus.INTERVIEWING
        )

        if first_turn:
            await self._emit(EventType.INTERVIEW_STARTED, interview_id, turn_number=next_turn)
        await self._emit(
            EventType.QUESTION_ASKED,
            interview_id,
            turn_number=next_turn,
            judge=judge.value,
            message=question,
        )
        logger.info("Interview %s turn %s: %s asked", interview_id, next_turn, judge)
        return OperationResult.ok(judge=judge, question=question, turn_number=next_turn)

    # ------------------------------------------------------------------
    # Answers
    # ------------------------------------------------------------------

    async def respond(self, interview_id: str, text: str) -> OperationResult:
        if not text or not text.strip():
            return OperationResult.fail("Response text is required")
        if len(text) > self._settings.max_response_chars:
            return OperationResult.fail(
                f"Response exceeds {self._settings.max_response_chars} characters"
            )

        ctx = await self._load(interview_id)
        if ctx is None:
            return OperationResult.fail("Interview not found")
        if ctx.status == InterviewStatus.PAUSED:
            return OperationResult.fail("Interview is paused")
        if ctx.status != InterviewStatus.IN_PROGRESS:
            return OperationResult.fail("Interview is not in progress")

        question = ctx.pending_question
        if question is None:
            return OperationResult.fail("No pending question to answer")

        turn = question.turn_number
        metadata = ctx.metadata
        added = self._analyzer.apply(metadata, text, question.content, turn, ctx.agent_name)
        await self._store.update_metadata(interview_id, metadata.to_dict())

        await self._store.append_message(interview_id, MessageRole.APPLICANT, text, turn)

        for flag in added:
            logger.info(
                "Interview %s turn %s: red flag %s (%s)", interview_id, turn, flag.type, flag.penalty
            )
            await self._emit(
                EventType.RED_FLAG_DETECTED,
                interview_id,
                turn_number=turn,
                message=flag.evidence,
                data=flag.to_dict(),
            )
        await self._emit(
            EventType.ANSWER_RECORDED,
            interview_id,
            turn_number=turn,
            data={"total_penalty": metadata.total_penalty},
        )
        return OperationResult.ok(
            turn_number=turn,
            red_flags=added,
            data={"total_penalty": metadata.total_penalty},
        )

    # ------------------------------------------------------------------
    # Deliberation
    # ------------------------------------------------------------------

    async def _deliberate_one(
        self, ctx: InterviewContext, judge: JudgeName, transcript: str, red_flags: str
    ) -> VoteOutcome:
        prompt = build_deliberation_prompt(
            judge, ctx.agent_name, ctx.human_handle, transcript, red_flags
        )
        text = await self._gateway.generate(
            judge,
            get_judge_directive(judge),
            [{"role": "user", "content": prompt}],
            self._settings.deliberation_max_tokens,
        )
        parsed = parse_vote_response(text)
        if not parsed.vote_parsed:
            logger.warning("%s returned no parseable vote; recording abstain", judge)
        if not parsed.statement_parsed:
            logger.info("%s gave no statement with its vote", judge)

        stored = await self._store.insert_vote(
            ctx.interview.id, judge.value, parsed.vote.value, parsed.statement
        )
        outcome = VoteOutcome(
            judge=judge, vote=parsed.vote, statement=parsed.statement, recorded=stored is not None
        )
        if outcome.recorded:
            await self._emit(
                EventType.VOTE_CAST,
                ctx.interview.id,
                judge=judge.value,
                message=parsed.statement,
                data={"vote": parsed.vote.value},
            )
        return outcome

    async def generate_deliberation(self, interview_id: str) -> OperationResult:
        ctx = await self._load(interview_id)
        if ctx is None:
            return OperationResult.fail("Interview not found")
        if ctx.status != InterviewStatus.DELIBERATING:
            return OperationResult.fail("Interview not in deliberating status")

        existing = await self._store.list_votes(interview_id)
        voted = {v.judge_name for v in existing}
        pending = [judge for judge in ALL_JUDGES if judge.value not in voted]
        if not pending:
            return OperationResult.ok(data={"vote_count": len(existing)})

        red_flags = format_red_flags_for_deliberation(ctx.metadata)
        transcript = build_transcript(ctx.messages, ctx.agent_name)

        results = await asyncio.gather(
            *(self._deliberate_one(ctx, judge, transcript, red_flags) for judge in pending),
            return_exceptions=True,
        )

        outcomes: list[VoteOutcome] = []
        failures: dict[str, str] = {}
        for judge, result in zip(pending, results, strict=True):
            if isinstance(result, VoteOutcome):
                outcomes.append(result)
                continue
            if not isinstance(result, Exception):
                raise result
            failures[judge.value] = str(result)
            logger.warning("Deliberation for %s failed on %s: %s", interview_id, judge, result)
            await self._emit(
                EventType.VOTE_FAILED,
                interview_id,
                judge=judge.value,
                message=str(result),
            )

        vote_count = len(existing) + sum(1 for o in outcomes if o.recorded)
        data = {"vote_count": vote_count}
        if failures:
            return OperationResult.fail(
                f"Deliberation incomplete: {vote_count}/{COUNCIL_SIZE} votes recorded",
                votes=outcomes,
                failed_judges=failures,
                data=data,
            )
        return OperationResult.ok(votes=outcomes, data=data)

    # ------------------------------------------------------------------
    # Verdict
    # ------------------------------------------------------------------

    async def finalize_verdict(self, interview_id: str) -> OperationResult:
        ctx = await self._load(interview_id)
        if ctx is None:
            return OperationResult.fail("Interview not found")

        existing = await self._store.get_verdict(interview_id)
        if existing is not None:
            if ctx.status == InterviewStatus.COMPLETE:
                return OperationResult.fail("Verdict already finalized")
            # A previous run stored the verdict but did not finish the transition.
            await self._complete(ctx)
            return OperationResult.ok(
                verdict=VerdictType(existing.verdict), claim_token=existing.claim_token
            )

        if ctx.status != InterviewStatus.DELIBERATING:
            return OperationResult.fail("Interview not in deliberating status")

        votes = await self._store.list_votes(interview_id)
        if len(votes) != COUNCIL_SIZE:
            return OperationResult.fail(
                f"Not all judges have voted ({len(votes)}/{COUNCIL_SIZE})"
            )

        decision = derive_verdict(votes, ctx.metadata.total_penalty, self._rng, self._settings)
        teaser = select_teaser(votes, decision.verdict)
        claim_token = generate_claim_token() if decision.is_favorable else None

        await self._store.insert_verdict(
            interview_id,
            decision.verdict.value,
            teaser.statement,
            teaser.judge_name,
            claim_token,
        )
        await self._complete(ctx)

        logger.info(
            "Interview %s verdict: %s (%s)", interview_id, decision.verdict, decision.rule
        )
        await self._emit(
            EventType.VERDICT_FINALIZED,
            interview_id,
            judge=teaser.judge_name,
            message=teaser.statement,
            data=decision.to_dict(),
        )
        return OperationResult.ok(
            verdict=decision.verdict,
            claim_token=claim_token,
            data={
                **decision.to_dict(),
                "teaser_quote": teaser.statement,
                "teaser_author": teaser.judge_name,
            },
        )

    async def _complete(self, ctx: InterviewContext) -> None:
        await self._store.update_interview(ctx.interview.id, status=InterviewStatus.COMPLETE)
        await self._store.update_application_status(
            ctx.interview.application_id, ApplicationStatus.DECIDED, decided_at=_now()
        )

    # ------------------------------------------------------------------
    # Pause / resume
    # ------------------------------------------------------------------

    async def pause(self, interview_id: str) -> OperationResult:
        interview = await self._store.get_interview(interview_id)
        if interview is None:
            return OperationResult.fail("Interview not found")
        if interview.status != InterviewStatus.IN_PROGRESS:
            return OperationResult.fail("Only in-progress interviews can be paused")

        await self._store.update_interview(
            interview_id, status=InterviewStatus.PAUSED, paused_at=_now()
        )
        await self._emit(EventType.INTERVIEW_PAUSED, interview_id, turn_number=interview.turn_count)
        return OperationResult.ok(turn_number=interview.turn_count)

    async def resume(self, interview_id: str) -> OperationResult:
        interview = await self._store.get_interview(interview_id)
        if interview is None:
            return OperationResult.fail("Interview not found")
        if interview.status != InterviewStatus.PAUSED:
            return OperationResult.fail("Interview is not paused")

        await self._store.update_interview(
            interview_id, status=InterviewStatus.IN_PROGRESS, paused_at=None
        )
        await self._emit(
            EventType.INTERVIEW_RESUMED, interview_id, turn_number=interview.turn_count
        )
        return OperationResult.ok(turn_number=interview.turn_count)
