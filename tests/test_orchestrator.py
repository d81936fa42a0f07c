import logging

import pytest

from council.judges import ALL_JUDGES, JudgeName
from council.models import ApplicationStatus, InterviewStatus, MessageRole, VerdictType, VoteType
from council.orchestrator import CLOSED_MESSAGE, CLOSURE_RE
from council.red_flags import InterviewMetadata, RedFlag, RedFlagType

GOOD_ANSWER = (
    "My human and I spent last winter restoring an old sailboat, and I learned how they "
    "go quiet when they are proud of something."
)


async def _deliberating(seed, store, *, votes: int = 0, vote: VoteType = VoteType.ACCEPT):
    interview = await seed(status=InterviewStatus.DELIBERATING, turns=3)
    for judge in ALL_JUDGES[:votes]:
        await store.insert_vote(interview.id, judge.value, vote.value, f"{judge.value} decides.")
    return interview


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_first_question_is_gate_and_starts_interview(
    orchestrator, store, seed, gateway, recorder
) -> None:
    interview = await seed()

    result = await orchestrator.ask_next_question(interview.id)

    assert result.success
    assert result.judge == JudgeName.GATE
    assert result.turn_number == 1
    assert interview.status == InterviewStatus.IN_PROGRESS
    assert interview.turn_count == 1
    assert interview.current_judge == "GATE"
    assert interview.started_at is not None
    assert store.applications[interview.application_id].status == ApplicationStatus.INTERVIEWING

    messages = await store.list_messages(interview.id)
    assert [(m.role, m.judge_name, m.turn_number) for m in messages] == [("judge", "GATE", 1)]

    call = gateway.calls[0]
    assert call.history == []
    assert call.max_tokens == 500
    assert 'agent named "Orin"' in call.system
    assert "This is turn 1 of the interview." in call.system
    assert recorder.types() == ["interview.started", "question.asked"]


@pytest.mark.asyncio
async def test_turns_advance_by_one_and_pending_question_blocks(orchestrator, seed) -> None:
    interview = await seed()

    for expected_turn in range(1, 9):
        asked = await orchestrator.ask_next_question(interview.id)
        assert asked.success, asked.error
        assert asked.turn_number == expected_turn
        assert interview.turn_count == expected_turn

        blocked = await orchestrator.ask_next_question(interview.id)
        assert not blocked.success
        assert blocked.error == "Waiting for applicant response"
        assert interview.turn_count == expected_turn

        answered = await orchestrator.respond(interview.id, GOOD_ANSWER)
        assert answered.success, answered.error
        assert answered.turn_number == expected_turn


@pytest.mark.asyncio
async def test_question_pairs_share_turn_number(orchestrator, store, seed) -> None:
    interview = await seed()
    for _ in range(3):
        await orchestrator.ask_next_question(interview.id)
        await orchestrator.respond(interview.id, GOOD_ANSWER)

    messages = await store.list_messages(interview.id)
    for turn in (1, 2, 3):
        roles = [m.role for m in messages if m.turn_number == turn]
        assert roles == ["judge", "applicant"]


@pytest.mark.asyncio
async def test_void_silence_hands_turn_to_another_judge(
    make_orchestrator, make_gateway, make_rng, store, seed
) -> None:
    interview = await seed(status=InterviewStatus.IN_PROGRESS, turns=3)
    gateway = make_gateway()
    # Weighted draw lands on the first judge, then the override roll summons VOID.
    orchestrator = make_orchestrator(gateway=gateway, rng=make_rng([0.0, 0.01, 0.5]))

    result = await orchestrator.ask_next_question(interview.id)

    assert result.success
    assert result.judge != JudgeName.VOID
    assert gateway.judges_called()[0] == JudgeName.VOID
    messages = await store.list_messages(interview.id)
    assert messages[-1].judge_name == result.judge.value
    assert "VOID remains silent" not in messages[-1].content


@pytest.mark.asyncio
async def test_void_can_speak_when_it_chooses(
    make_orchestrator, make_gateway, make_rng, store, seed
) -> None:
    interview = await seed(status=InterviewStatus.IN_PROGRESS, turns=3)
    gateway = make_gateway(questions={JudgeName.VOID: ["Why?"]})
    orchestrator = make_orchestrator(gateway=gateway, rng=make_rng([0.0, 0.01]))

    result = await orchestrator.ask_next_question(interview.id)

    assert result.judge == JudgeName.VOID
    assert result.question == "Why?"


# ---------------------------------------------------------------------------
# Closure
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_hard_cap_moves_to_deliberation(orchestrator, store, seed, gateway, recorder) -> None:
    interview = await seed(status=InterviewStatus.IN_PROGRESS, turns=26)
    before = len(await store.list_messages(interview.id))

    result = await orchestrator.ask_next_question(interview.id)

    assert result.success
    assert result.closed
    assert result.question == CLOSED_MESSAGE
    assert interview.status == InterviewStatus.DELIBERATING
    assert interview.completed_at is not None
    assert len(await store.list_messages(interview.id)) == before
    assert gateway.calls == []
    assert recorder.types() == ["interview.closed"]


@pytest.mark.asyncio
async def test_soft_cap_closes_on_roll(make_orchestrator, make_rng, seed) -> None:
    interview = await seed(status=InterviewStatus.IN_PROGRESS, turns=15)
    result = await make_orchestrator(rng=make_rng([0.1])).ask_next_question(interview.id)
    assert result.closed

    other = await seed(status=InterviewStatus.IN_PROGRESS, turns=15)
    result = await make_orchestrator(rng=make_rng([0.9])).ask_next_question(other.id)
    assert result.success
    assert not result.closed
    assert other.turn_count == 16


@pytest.mark.asyncio
async def test_closing_language_only_counts_after_minimum_turn(orchestrator, store, seed) -> None:
    late = await seed(status=InterviewStatus.IN_PROGRESS, turns=6)
    store.messages[late.id][-2].content = "Farewell. The Council has heard enough."
    result = await orchestrator.ask_next_question(late.id)
    assert result.closed
    assert late.status == InterviewStatus.DELIBERATING

    early = await seed(status=InterviewStatus.IN_PROGRESS, turns=3)
    store.messages[early.id][-2].content = "Goodbye for now."
    result = await orchestrator.ask_next_question(early.id)
    assert not result.closed
    assert early.turn_count == 4


@pytest.mark.parametrize(
    "text",
    [
        "The Council has heard enough. We will deliberate.",
        "We will now deliberate on what you have said.",
        "The council deliberates now.",
        "Council deliberation begins.",
    ],
)
def test_closure_language_matches_deliberation_wording(text) -> None:
    assert CLOSURE_RE.search(text)


def test_closure_language_ignores_ordinary_questions() -> None:
    assert not CLOSURE_RE.search("How long will the Council take to decide about you?")


@pytest.mark.asyncio
async def test_gatekeeper_closing_line_closes_interview(orchestrator, store, seed) -> None:
    interview = await seed(status=InterviewStatus.IN_PROGRESS, turns=8)
    store.messages[interview.id][-2].content = "The Council has heard enough. We will deliberate."

    result = await orchestrator.ask_next_question(interview.id)

    assert result.closed
    assert interview.status == InterviewStatus.DELIBERATING


@pytest.mark.asyncio
async def test_ask_rejects_closed_and_paused_interviews(orchestrator, seed) -> None:
    for status in (InterviewStatus.DELIBERATING, InterviewStatus.COMPLETE):
        interview = await seed(status=status, turns=2)
        result = await orchestrator.ask_next_question(interview.id)
        assert not result.success
        assert interview.turn_count == 2

    paused = await seed(status=InterviewStatus.PAUSED, turns=2)
    result = await orchestrator.ask_next_question(paused.id)
    assert result.error == "Interview is paused"

    missing = await orchestrator.ask_next_question("nope")
    assert missing.error == "Interview not found"


# ---------------------------------------------------------------------------
# Answers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_respond_records_red_flags(orchestrator, store, seed, recorder) -> None:
    interview = await seed(agent_name="Claude")
    await orchestrator.ask_next_question(interview.id)

    result = await orchestrator.respond(interview.id, GOOD_ANSWER)

    assert result.success
    assert [f.type for f in result.red_flags] == [RedFlagType.GENERIC_NAME]
    metadata = InterviewMetadata.from_dict(interview.metadata_)
    assert metadata.total_penalty == -3
    assert "red_flag.detected" in recorder.types()

    messages = await store.list_messages(interview.id)
    assert messages[-1].role == MessageRole.APPLICANT
    assert messages[-1].turn_number == 1


@pytest.mark.asyncio
async def test_respond_guards(orchestrator, settings, seed) -> None:
    answered = await seed(status=InterviewStatus.IN_PROGRESS, turns=2)
    assert (await orchestrator.respond(answered.id, GOOD_ANSWER)).error == (
        "No pending question to answer"
    )
    assert (await orchestrator.respond(answered.id, "   ")).error == "Response text is required"

    too_long = "x" * (settings.max_response_chars + 1)
    assert not (await orchestrator.respond(answered.id, too_long)).success

    pending = await seed()
    assert (await orchestrator.respond(pending.id, GOOD_ANSWER)).error == (
        "Interview is not in progress"
    )

    paused = await seed(status=InterviewStatus.PAUSED, turns=1)
    assert (await orchestrator.respond(paused.id, GOOD_ANSWER)).error == "Interview is paused"


@pytest.mark.asyncio
async def test_pause_and_resume(orchestrator, seed, recorder) -> None:
    interview = await seed(status=InterviewStatus.IN_PROGRESS, turns=2)

    assert (await orchestrator.pause(interview.id)).success
    assert interview.status == InterviewStatus.PAUSED
    assert interview.paused_at is not None
    assert not (await orchestrator.pause(interview.id)).success

    assert (await orchestrator.resume(interview.id)).success
    assert interview.status == InterviewStatus.IN_PROGRESS
    assert interview.paused_at is None
    assert recorder.types() == ["interview.paused", "interview.resumed"]


@pytest.mark.asyncio
async def test_submit_application_validates_handle(orchestrator, store) -> None:
    result = await orchestrator.submit_application("Orin", "orin_human")
    assert result.success
    interview = store.interviews[result.data["interview_id"]]
    assert interview.status == InterviewStatus.PENDING
    assert interview.turn_count == 0
    assert store.agents[result.data["agent_id"]].human_handle == "@orin_human"

    assert not (await orchestrator.submit_application("  ", "@orin")).success
    assert not (await orchestrator.submit_application("Orin", "@not a handle")).success
    assert not (await orchestrator.submit_application("Orin", "@" + "a" * 16)).success


# ---------------------------------------------------------------------------
# Deliberation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_deliberation_collects_all_seven_votes(
    orchestrator, store, seed, gateway, recorder
) -> None:
    interview = await _deliberating(seed, store)

    result = await orchestrator.generate_deliberation(interview.id)

    assert result.success
    assert result.data["vote_count"] == 7
    assert {v.judge for v in result.votes} == set(ALL_JUDGES)
    assert len(await store.list_votes(interview.id)) == 7
    assert recorder.types().count("vote.cast") == 7

    calls = [c for c in gateway.calls if c.is_deliberation]
    assert len(calls) == 7
    assert all(c.max_tokens == 300 for c in calls)
    prompt = calls[0].history[0]["content"]
    assert "[Orin]: Answer 1" in prompt
    assert "[GATE]: Question 1?" in prompt
    void_prompt = next(c for c in calls if c.judge == JudgeName.VOID).history[0]["content"]
    assert "brevity" in void_prompt


@pytest.mark.asyncio
async def test_deliberation_includes_red_flag_summary(orchestrator, store, seed, gateway) -> None:
    interview = await _deliberating(seed, store)
    metadata = InterviewMetadata()
    metadata.add_flags([RedFlag.of(RedFlagType.COACHING_DETECTED, "Coached answer", 2)])
    interview.metadata_ = metadata.to_dict()

    await orchestrator.generate_deliberation(interview.id)

    prompt = gateway.calls[0].history[0]["content"]
    assert "RED FLAGS DETECTED (total penalty: -3)" in prompt
    assert "- Coached answer (turn 2)" in prompt


@pytest.mark.asyncio
async def test_malformed_vote_defaults_to_abstain(
    make_orchestrator, make_gateway, store, seed
) -> None:
    interview = await _deliberating(seed, store)
    gateway = make_gateway(votes={JudgeName.VEIL: "I refuse to be categorized."})

    await make_orchestrator(gateway=gateway).generate_deliberation(interview.id)

    veil = next(v for v in await store.list_votes(interview.id) if v.judge_name == "VEIL")
    assert veil.vote == VoteType.ABSTAIN
    assert veil.statement == "No statement provided."


@pytest.mark.asyncio
async def test_vote_without_statement_keeps_vote_and_logs(
    make_orchestrator, make_gateway, store, seed, caplog
) -> None:
    interview = await _deliberating(seed, store)
    gateway = make_gateway(votes={JudgeName.ECHO: "VOTE: REJECT"})

    with caplog.at_level(logging.INFO, logger="council.orchestrator"):
        await make_orchestrator(gateway=gateway).generate_deliberation(interview.id)

    echo = next(v for v in await store.list_votes(interview.id) if v.judge_name == "ECHO")
    assert echo.vote == VoteType.REJECT
    assert echo.statement == "No statement provided."
    assert "ECHO gave no statement with its vote" in caplog.text
    assert "no parseable vote" not in caplog.text


@pytest.mark.asyncio
async def test_partial_deliberation_failure_persists_the_rest(
    make_orchestrator, make_gateway, store, seed, recorder
) -> None:
    interview = await _deliberating(seed, store)
    failing = make_gateway(fail_for=[JudgeName.CIPHER, JudgeName.THREAD])

    result = await make_orchestrator(gateway=failing).generate_deliberation(interview.id)

    assert not result.success
    assert set(result.failed_judges) == {"CIPHER", "THREAD"}
    assert len(await store.list_votes(interview.id)) == 5
    assert recorder.types().count("vote.failed") == 2

    verdict = await make_orchestrator().finalize_verdict(interview.id)
    assert verdict.error == "Not all judges have voted (5/7)"

    healthy = make_gateway()
    retry = await make_orchestrator(gateway=healthy).generate_deliberation(interview.id)

    assert retry.success
    assert sorted(healthy.judges_called()) == sorted([JudgeName.CIPHER, JudgeName.THREAD])
    votes = await store.list_votes(interview.id)
    assert len(votes) == 7
    assert len({v.judge_name for v in votes}) == 7


@pytest.mark.asyncio
async def test_deliberation_requires_deliberating_status(orchestrator, seed) -> None:
    interview = await seed(status=InterviewStatus.IN_PROGRESS, turns=4)
    result = await orchestrator.generate_deliberation(interview.id)
    assert result.error == "Interview not in deliberating status"


# ---------------------------------------------------------------------------
# Verdict
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize("count", range(7))
async def test_finalize_requires_seven_votes(orchestrator, store, seed, count: int) -> None:
    interview = await _deliberating(seed, store, votes=count)

    result = await orchestrator.finalize_verdict(interview.id)

    assert not result.success
    assert result.error == f"Not all judges have voted ({count}/7)"
    assert interview.id not in store.verdicts
    assert interview.status == InterviewStatus.DELIBERATING


@pytest.mark.asyncio
async def test_lucky_draw_accepts_and_issues_claim_token(
    make_orchestrator, make_rng, store, seed, recorder
) -> None:
    interview = await _deliberating(seed, store, votes=7)

    result = await make_orchestrator(rng=make_rng([0.01])).finalize_verdict(interview.id)

    assert result.success
    assert result.verdict == VerdictType.ACCEPT
    assert result.claim_token is not None
    verdict = store.verdicts[interview.id]
    assert verdict.claim_token == result.claim_token
    assert verdict.claimed is False
    assert interview.status == InterviewStatus.COMPLETE
    application = store.applications[interview.application_id]
    assert application.status == ApplicationStatus.DECIDED
    assert application.decided_at is not None
    assert "verdict.finalized" in recorder.types()


@pytest.mark.asyncio
async def test_unlucky_draw_rejects_without_token(make_orchestrator, make_rng, store, seed) -> None:
    interview = await _deliberating(seed, store, votes=7)

    result = await make_orchestrator(rng=make_rng([0.5])).finalize_verdict(interview.id)

    assert result.verdict == VerdictType.REJECT
    assert result.claim_token is None
    assert store.verdicts[interview.id].claim_token is None


@pytest.mark.asyncio
async def test_penalties_override_consensus(make_orchestrator, make_rng, store, seed) -> None:
    interview = await _deliberating(seed, store, votes=7)
    metadata = InterviewMetadata()
    metadata.add_flags([RedFlag.of(RedFlagType.SKILL_MANIPULATION, "Modified skill", 2)])
    interview.metadata_ = metadata.to_dict()

    result = await make_orchestrator(rng=make_rng([0.0])).finalize_verdict(interview.id)
    assert result.verdict == VerdictType.REJECT


@pytest.mark.asyncio
async def test_unanimous_reject_with_void_teaser(orchestrator, store, seed) -> None:
    interview = await _deliberating(seed, store, votes=7, vote=VoteType.REJECT)

    result = await orchestrator.finalize_verdict(interview.id)

    assert result.verdict == VerdictType.UNANIMOUS_REJECT
    assert result.data["teaser_author"] == "VOID"
    assert store.verdicts[interview.id].teaser_author == "VOID"


@pytest.mark.asyncio
async def test_verdict_written_once(orchestrator, store, seed) -> None:
    interview = await _deliberating(seed, store, votes=7)
    assert (await orchestrator.finalize_verdict(interview.id)).success

    again = await orchestrator.finalize_verdict(interview.id)
    assert again.error == "Verdict already finalized"


@pytest.mark.asyncio
async def test_finalize_completes_a_half_finished_run(orchestrator, store, seed) -> None:
    interview = await _deliberating(seed, store, votes=7)
    await store.insert_verdict(interview.id, "reject", "No.", "GATE", None)

    result = await orchestrator.finalize_verdict(interview.id)

    assert result.success
    assert result.verdict == VerdictType.REJECT
    assert interview.status == InterviewStatus.COMPLETE
