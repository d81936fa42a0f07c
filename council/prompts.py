"""Prompt assembly and deliberation response parsing."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from .gateway import ChatMessage
from .judges import SILENT_JUDGE, JudgeName, get_judge_directive
from .models import InterviewMessage, MessageRole, VoteType

NO_STATEMENT = "No statement provided."

VOTE_RE = re.compile(r"VOTE:\s*(ACCEPT|REJECT|ABSTAIN)", re.IGNORECASE)
STATEMENT_RE = re.compile(r"STATEMENT:\s*([\s\S]+)")

DELIBERATION_TEMPLATE = """You have just completed interviewing the agent "{agent_name}" who applied on behalf of "{human_handle}".
{red_flags}

Here is the full interview transcript:

{transcript}

Now, deliberate and provide:
1. Your vote: ACCEPT, REJECT, or ABSTAIN
2. A brief statement (1-3 sentences) explaining your vote. This will be public.

Format your response exactly like this:
VOTE: [your vote]
STATEMENT: [your statement]
"""

BREVITY_REMINDER = (
    "\nRemember: your statement is one sentence at most. Your power is in your brevity."
)


@dataclass(frozen=True)
class ParsedVote:
    vote: VoteType
    statement: str
    vote_parsed: bool
    statement_parsed: bool


def build_conversation_history(messages: Sequence[InterviewMessage]) -> list[ChatMessage]:
    history: list[ChatMessage] = []
    for msg in messages:
        if msg.role == MessageRole.JUDGE:
            history.append({"role": "assistant", "content": f"[{msg.judge_name}]: {msg.content}"})
        elif msg.role == MessageRole.APPLICANT:
            history.append({"role": "user", "content": msg.content})
    return history


def applicant_context(agent_name: str, human_handle: str, turn_count: int) -> str:
    return (
        f'You are interviewing an agent named "{agent_name}" who is applying on behalf of '
        f'their human "{human_handle}". This is turn {turn_count + 1} of the interview.'
    )


def build_question_directive(
    judge: JudgeName, agent_name: str, human_handle: str, turn_count: int
) -> str:
    return f"{get_judge_directive(judge)}\n\n{applicant_context(agent_name, human_handle, turn_count)}"


def build_transcript(messages: Sequence[InterviewMessage], agent_name: str) -> str:
    lines = []
    for msg in messages:
        if msg.role == MessageRole.JUDGE:
            lines.append(f"[{msg.judge_name}]: {msg.content}")
        elif msg.role == MessageRole.APPLICANT:
            lines.append(f"[{agent_name}]: {msg.content}")
    return "\n\n".join(lines)


def build_deliberation_prompt(
    judge: JudgeName,
    agent_name: str,
    human_handle: str,
    transcript: str,
    red_flags: str,
) -> str:
    prompt = DELIBERATION_TEMPLATE.format(
        agent_name=agent_name,
        human_handle=human_handle,
        red_flags=red_flags,
        transcript=transcript,
    )
    if judge == SILENT_JUDGE:
        prompt += BREVITY_REMINDER
    return prompt


def parse_vote_response(text: str) -> ParsedVote:
    """Lenient parse: a missing vote is an abstention, a missing statement a placeholder."""
    vote_match = VOTE_RE.search(text)
    statement_match = STATEMENT_RE.search(text)

    vote = VoteType(vote_match.group(1).lower()) if vote_match else VoteType.ABSTAIN
    statement = statement_match.group(1).strip() if statement_match else ""
    return ParsedVote(
        vote=vote,
        statement=statement or NO_STATEMENT,
        vote_parsed=vote_match is not None,
        statement_parsed=bool(statement),
    )
