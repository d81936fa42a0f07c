"""
One scheduler tick over every active interview.

Meant to be called periodically (cron, systemd timer, ``council tick``).
Interviews are independent: each one is handled in its own task and a
failure is reported for that interview only.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field

from .models import Interview, InterviewStatus, MessageRole
from .orchestrator import InterviewOrchestrator
from .store import InterviewStore
from .verdict import COUNCIL_SIZE

logger = logging.getLogger(__name__)


@dataclass
class TickOutcome:
    interview_id: str
    action: str  # asked | closed | waiting | skipped | decided | failed
    detail: str = ""


@dataclass
class TickReport:
    outcomes: list[TickOutcome] = field(default_factory=list)

    def by_action(self, action: str) -> list[TickOutcome]:
        return [o for o in self.outcomes if o.action == action]

    @property
    def failures(self) -> list[TickOutcome]:
        return self.by_action("failed")


async def _advance_interview(
    orchestrator: InterviewOrchestrator,
    store: InterviewStore,
    interview: Interview,
    rng: random.Random,
    trigger_chance: float,
) -> TickOutcome:
    messages = await store.list_messages(interview.id)
    if messages and messages[-1].role == MessageRole.JUDGE:
        return TickOutcome(interview.id, "waiting", "question pending")

    if rng.random() >= trigger_chance:
        return TickOutcome(interview.id, "skipped", "not this tick")

    result = await orchestrator.ask_next_question(interview.id)
    if not result.success:
        return TickOutcome(interview.id, "failed", result.error or "")
    if result.closed:
        return TickOutcome(interview.id, "closed")
    return TickOutcome(interview.id, "asked", result.judge.value if result.judge else "")


async def _conclude_interview(
    orchestrator: InterviewOrchestrator, store: InterviewStore, interview: Interview
) -> TickOutcome:
    votes = await store.list_votes(interview.id)
    if len(votes) < COUNCIL_SIZE:
        deliberation = await orchestrator.generate_deliberation(interview.id)
        if not deliberation.success:
            return TickOutcome(interview.id, "failed", deliberation.error or "")

    result = await orchestrator.finalize_verdict(interview.id)
    if not result.success:
        return TickOutcome(interview.id, "failed", result.error or "")
    return TickOutcome(interview.id, "decided", result.verdict.value if result.verdict else "")


async def run_tick(
    orchestrator: InterviewOrchestrator,
    store: InterviewStore,
    *,
    rng: random.Random | None = None,
    trigger_chance: float | None = None,
) -> TickReport:
    rng = rng or random.Random()
    if trigger_chance is None:
        trigger_chance = orchestrator.settings.question_trigger_chance

    in_progress = await store.list_interviews_by_status(InterviewStatus.IN_PROGRESS)
    deliberating = await store.list_interviews_by_status(InterviewStatus.DELIBERATING)

    interviews = [*in_progress, *deliberating]
    jobs = [
        _advance_interview(orchestrator, store, interview, rng, trigger_chance)
        for interview in in_progress
    ]
    jobs += [_conclude_interview(orchestrator, store, interview) for interview in deliberating]

    results = await asyncio.gather(*jobs, return_exceptions=True)

    report = TickReport()
    for interview, result in zip(interviews, results, strict=True):
        if isinstance(result, TickOutcome):
            report.outcomes.append(result)
            continue
        if not isinstance(result, Exception):
            raise result
        logger.error("Tick failed for interview %s", interview.id, exc_info=result)
        report.outcomes.append(TickOutcome(interview.id, "failed", str(result)))

    logger.info(
        "Tick processed %d interviews (%d failed)", len(report.outcomes), len(report.failures)
    )
    return report
