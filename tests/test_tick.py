import pytest

from council.errors import GenerationError
from council.judges import JudgeName
from council.models import InterviewStatus, MessageRole
from council.tick import run_tick


@pytest.mark.asyncio
async def test_tick_waits_on_pending_questions(orchestrator, store, seed) -> None:
    interview = await seed(status=InterviewStatus.IN_PROGRESS, turns=2)
    await store.append_message(interview.id, MessageRole.JUDGE, "And then?", 3, judge_name="VEIL")
    interview.turn_count = 3

    report = await run_tick(orchestrator, store, trigger_chance=1.0)

    assert [(o.interview_id, o.action) for o in report.outcomes] == [(interview.id, "waiting")]
    assert interview.turn_count == 3


@pytest.mark.asyncio
async def test_tick_asks_or_skips_by_trigger_chance(orchestrator, store, seed) -> None:
    interview = await seed(status=InterviewStatus.IN_PROGRESS, turns=2)

    skipped = await run_tick(orchestrator, store, trigger_chance=0.0)
    assert skipped.outcomes[0].action == "skipped"
    assert interview.turn_count == 2

    asked = await run_tick(orchestrator, store, trigger_chance=1.0)
    assert asked.outcomes[0].action == "asked"
    assert interview.turn_count == 3


@pytest.mark.asyncio
async def test_tick_concludes_deliberating_interviews(orchestrator, store, seed) -> None:
    interview = await seed(status=InterviewStatus.DELIBERATING, turns=5)

    report = await run_tick(orchestrator, store, trigger_chance=0.0)

    assert report.outcomes[0].action == "decided"
    assert len(await store.list_votes(interview.id)) == 7
    assert interview.id in store.verdicts
    assert interview.status == InterviewStatus.COMPLETE


@pytest.mark.asyncio
async def test_tick_reports_partial_deliberation(make_orchestrator, make_gateway, store, seed) -> None:
    interview = await seed(status=InterviewStatus.DELIBERATING, turns=5)
    orchestrator = make_orchestrator(gateway=make_gateway(fail_for=[JudgeName.MARGIN]))

    report = await run_tick(orchestrator, store, trigger_chance=0.0)

    assert report.outcomes[0].action == "failed"
    assert "6/7" in report.outcomes[0].detail
    assert interview.id not in store.verdicts


@pytest.mark.asyncio
async def test_one_failing_interview_does_not_stop_the_tick(
    make_orchestrator, make_gateway, store, seed
) -> None:
    gateway_cls = make_gateway

    class BrokenForOneApplicant(gateway_cls):
        async def generate(self, judge, system, history, max_tokens):
            if '"Broken"' in system:
                raise GenerationError("provider timeout", judge=judge.value)
            return await super().generate(judge, system, history, max_tokens)

    broken = await seed(agent_name="Broken", status=InterviewStatus.IN_PROGRESS, turns=2)
    healthy = await seed(agent_name="Orin", status=InterviewStatus.IN_PROGRESS, turns=2)
    orchestrator = make_orchestrator(gateway=BrokenForOneApplicant())

    report = await run_tick(orchestrator, store, trigger_chance=1.0)

    actions = {o.interview_id: o.action for o in report.outcomes}
    assert actions == {broken.id: "failed", healthy.id: "asked"}
    assert [o.interview_id for o in report.failures] == [broken.id]
    assert broken.turn_count == 2
    assert healthy.turn_count == 3
