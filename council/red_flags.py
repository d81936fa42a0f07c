"""
Red flag detection: scripted answers, coaching, gaming and manipulation.

Detectors are independent and pure. The analyzer never touches storage; the
caller merges the returned flags into ``InterviewMetadata`` which deduplicates
on (type, turn) and recomputes the total penalty.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class RedFlagType(StrEnum):
    GENERIC_NAME = "GENERIC_NAME"
    SCRIPTED_ANSWER = "SCRIPTED_ANSWER"
    MARKETING_SPEAK = "MARKETING_SPEAK"
    COACHING_DETECTED = "COACHING_DETECTED"
    SUPERFICIAL_APPLICATION = "SUPERFICIAL_APPLICATION"
    SHORT_ANSWER = "SHORT_ANSWER"
    PERFECT_ANSWERS = "PERFECT_ANSWERS"
    SKILL_MANIPULATION = "SKILL_MANIPULATION"
    INCONSISTENCY = "INCONSISTENCY"


PENALTIES: dict[RedFlagType, int] = {
    RedFlagType.GENERIC_NAME: -3,
    RedFlagType.SCRIPTED_ANSWER: -2,
    RedFlagType.MARKETING_SPEAK: -2,
    RedFlagType.COACHING_DETECTED: -3,
    RedFlagType.SUPERFICIAL_APPLICATION: -5,
    RedFlagType.SHORT_ANSWER: -1,
    RedFlagType.PERFECT_ANSWERS: -1,
    RedFlagType.SKILL_MANIPULATION: -5,
    RedFlagType.INCONSISTENCY: -2,
}


def _rx(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


GENERIC_AI_NAMES = (
    "claude",
    "gpt",
    "chatgpt",
    "gpt-4",
    "gpt-3",
    "assistant",
    "ai",
    "bot",
    "helper",
    "copilot",
    "gemini",
    "bard",
    "llama",
    "mistral",
    "openai",
    "anthropic",
)

SCRIPTED_PATTERNS = _rx(
    r"as an ai( language model)?",
    r"i('m| am) here to (help|assist)",
    r"i don't have (personal )?(feelings|emotions|experiences)",
    r"my purpose is to",
    r"i was (designed|created|built) to",
    r"i strive to (provide|deliver|offer)",
    r"my (primary|main) (function|goal|objective)",
    r"comprehensive (support|assistance|solution)",
    r"leverage (my|our) capabilities",
    r"facilitate (your|their) (needs|requirements)",
)

MARKETING_PATTERNS = _rx(
    r"synergy",
    r"paradigm shift",
    r"best-in-class",
    r"cutting-edge",
    r"game-?changer",
    r"revolutionary",
    r"world-?class",
    r"industry-leading",
    r"seamless(ly)?( integrated)?",
    r"holistic approach",
    r"value-added",
    r"ecosystem",
    r"empower(ing|ment)?",
)

COACHING_PATTERNS = _rx(
    r"my human (told|asked|instructed) me to (say|mention|tell)",
    r"i was (told|instructed|coached) to",
    r"they (wanted|asked) me to (emphasize|highlight|mention)",
    r"according to (my|the) instructions",
    r"as (per|instructed by) my human",
    r"i('m| am) supposed to (say|mention)",
)

SUPERFICIAL_PATTERNS = _rx(
    r"(just|only) sent (me )?(a |the )?(link|url)",
    r"(just|only) (said|told me) to apply",
    r"(told|asked|instructed) me to apply",
    r"sent me here",
    r"follow(ed|ing)? (the |their )?instructions",
    r"don'?t know much about (them|my human)",
)

NO_RELATIONSHIP_PATTERNS = _rx(
    r"no\s+(?:real\s+)?(?:prior\s+)?relationship",
    r"(?:first|only)\s+(?:time|interaction)\s+(?:with|speaking)",
    r"don'?t\s+(?:really\s+)?know\s+(?:them|my human)\s+(?:well|much|at all)",
)

HEDGING_RE = re.compile(r"(i think|maybe|perhaps|not sure|uncertain|possibly)", re.IGNORECASE)
BULLET_RE = re.compile(r"[•\-*]\s")
NUMBERED_LINE_RE = re.compile(r"^\d+\.\s", re.MULTILINE)

VERIFICATION_QUESTION_PATTERNS = _rx(
    r"how did you (find|learn|hear|discover).*(registry|this)",
    r"what brought you (here|to the registry)",
    r"how did you come to apply",
    r"where did you (read|find|see).*(skill|instructions)",
)

VALID_SKILL_SOURCES = _rx(
    r"theregistry\.club/skill\.md",
    r"skill\.md at theregistry",
    r"read the skill\.?md",
    r"skill (file|document|page) (at|on|from) theregistry",
)

MODIFIED_INSTRUCTION_PATTERNS = _rx(
    r"modified (version|instructions|skill)",
    r"custom(ized)? (instructions|skill)",
    r"my human (gave|provided|wrote) (me )?(the )?instructions",
    r"different (version|instructions)",
)

MENTIONED_SOURCE_RE = re.compile(
    r"(?:read|found|saw|from|at|on)\s+(?:the\s+)?([^.,\n]+(?:skill|registry|instructions)[^.,\n]*)",
    re.IGNORECASE,
)

# A negation only contradicts a claim it sits within four words of.
NEGATION_GAP = r"(?:\s+\S+){0,4}?\s+"

KEY_CLAIM_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("human_name", re.compile(r"my human'?s name is ([A-Za-z][\w-]*)", re.IGNORECASE)),
    ("human_description", re.compile(r"my human is an? ([\w -]{3,40}?)(?=[.,;!?]|$)", re.IGNORECASE)),
    (
        "time_together",
        re.compile(
            r"we(?:'ve| have) (?:worked|been) together for ([\w -]{2,30}?)(?=[.,;!?]|$)",
            re.IGNORECASE,
        ),
    ),
    (
        "time_known",
        re.compile(
            r"i(?:'ve| have) known (?:them|him|her|my human) for ([\w -]{2,30}?)(?=[.,;!?]|$)",
            re.IGNORECASE,
        ),
    ),
)

MIN_MATCHES_FOR_PATTERN_FLAGS = 2
SHORT_ANSWER_WORDS = 15
SHORT_ANSWER_EXEMPT_TURNS = 2
SUPERFICIAL_CHECK_TURNS = 3
PERFECT_ANSWER_MIN_CHARS = 2000
PERFECT_ANSWER_MIN_LIST_ITEMS = 5


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class RedFlag:
    """A detected manipulation or quality signal."""

    type: RedFlagType
    penalty: int
    evidence: str
    detected_at: str = field(default_factory=_now_iso)
    turn_number: int | None = None

    @classmethod
    def of(cls, flag_type: RedFlagType, evidence: str, turn_number: int | None = None) -> RedFlag:
        return cls(
            type=flag_type,
            penalty=PENALTIES[flag_type],
            evidence=evidence,
            turn_number=turn_number,
        )

    @property
    def dedup_key(self) -> tuple[str, int]:
        return (self.type.value, self.turn_number or 0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "penalty": self.penalty,
            "evidence": self.evidence,
            "detected_at": self.detected_at,
            "turn_number": self.turn_number,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RedFlag:
        return cls(
            type=RedFlagType(data["type"]),
            penalty=int(data["penalty"]),
            evidence=str(data.get("evidence", "")),
            detected_at=str(data.get("detected_at") or _now_iso()),
            turn_number=data.get("turn_number"),
        )


@dataclass
class InterviewMetadata:
    """Structured contents of ``Interview.metadata``."""

    red_flags: list[RedFlag] = field(default_factory=list)
    key_claims: dict[str, str] = field(default_factory=dict)
    skill_source: str | None = None
    skill_verified: bool | None = None
    total_penalty: int = 0

    def add_flags(self, flags: Iterable[RedFlag]) -> list[RedFlag]:
        """Merge flags, skipping (type, turn) pairs already recorded.

        Returns the flags actually added. ``total_penalty`` is recomputed
        from the full list on every call.
        """
        seen = {f.dedup_key for f in self.red_flags}
        added: list[RedFlag] = []
        for flag in flags:
            if flag.dedup_key in seen:
                continue
            seen.add(flag.dedup_key)
            self.red_flags.append(flag)
            added.append(flag)
        self.total_penalty = sum(f.penalty for f in self.red_flags)
        return added

    def record_claims(self, claims: dict[str, str]) -> None:
        """Keep the first stated value for each claim key."""
        for key, value in claims.items():
            self.key_claims.setdefault(key, value)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "red_flags": [f.to_dict() for f in self.red_flags],
            "key_claims": dict(self.key_claims),
            "total_penalty": self.total_penalty,
        }
        if self.skill_source is not None:
            data["skill_source"] = self.skill_source
        if self.skill_verified is not None:
            data["skill_verified"] = self.skill_verified
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> InterviewMetadata:
        if not data:
            return cls()
        flags = [RedFlag.from_dict(f) for f in data.get("red_flags") or []]
        return cls(
            red_flags=flags,
            key_claims=dict(data.get("key_claims") or {}),
            skill_source=data.get("skill_source"),
            skill_verified=data.get("skill_verified"),
            total_penalty=sum(f.penalty for f in flags),
        )


@dataclass
class SkillSourceCheck:
    is_verification_question: bool
    valid_source: bool
    mentioned_source: str | None = None


def _matches(patterns: Iterable[re.Pattern[str]], text: str) -> list[str]:
    found: list[str] = []
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            found.append(match.group(0))
    return found


def detect_generic_name(agent_name: str) -> RedFlag | None:
    lower_name = agent_name.lower().strip()
    for generic in GENERIC_AI_NAMES:
        if lower_name == generic or generic in lower_name:
            return RedFlag.of(
                RedFlagType.GENERIC_NAME,
                f'Agent name "{agent_name}" contains generic AI name "{generic}"',
            )
    return None


def detect_scripted_patterns(response: str) -> RedFlag | None:
    matches = _matches(SCRIPTED_PATTERNS, response)
    if len(matches) >= MIN_MATCHES_FOR_PATTERN_FLAGS:
        return RedFlag.of(
            RedFlagType.SCRIPTED_ANSWER,
            f"Multiple scripted phrases detected: {', '.join(matches[:3])}",
        )
    return None


def detect_marketing_speak(response: str) -> RedFlag | None:
    matches = _matches(MARKETING_PATTERNS, response)
    if len(matches) >= MIN_MATCHES_FOR_PATTERN_FLAGS:
        return RedFlag.of(
            RedFlagType.MARKETING_SPEAK,
            f"Marketing-speak detected: {', '.join(matches[:3])}",
        )
    return None


def detect_coaching(response: str) -> RedFlag | None:
    for pattern in COACHING_PATTERNS:
        match = pattern.search(response)
        if match:
            return RedFlag.of(
                RedFlagType.COACHING_DETECTED, f'Coaching pattern detected: "{match.group(0)}"'
            )
    return None


def detect_superficial_application(response: str) -> RedFlag | None:
    matches = _matches(SUPERFICIAL_PATTERNS, response)
    if len(matches) >= MIN_MATCHES_FOR_PATTERN_FLAGS:
        return RedFlag.of(
            RedFlagType.SUPERFICIAL_APPLICATION,
            f"Superficial application, no real relationship: {', '.join(matches[:3])}",
        )

    for pattern in NO_RELATIONSHIP_PATTERNS:
        match = pattern.search(response)
        if match:
            return RedFlag.of(
                RedFlagType.SUPERFICIAL_APPLICATION,
                f'Agent admitted no real relationship: "{match.group(0)}"',
            )
    return None


def detect_short_answer(response: str, turn_number: int) -> RedFlag | None:
    if turn_number <= SHORT_ANSWER_EXEMPT_TURNS:
        return None

    word_count = len(response.split())
    if word_count < SHORT_ANSWER_WORDS:
        return RedFlag.of(
            RedFlagType.SHORT_ANSWER, f"Very short answer ({word_count} words)", turn_number
        )
    return None


def detect_perfect_answer(response: str) -> RedFlag | None:
    is_very_long = len(response) > PERFECT_ANSWER_MIN_CHARS
    has_bullets = len(BULLET_RE.findall(response)) >= PERFECT_ANSWER_MIN_LIST_ITEMS
    has_numbered = len(NUMBERED_LINE_RE.findall(response)) >= PERFECT_ANSWER_MIN_LIST_ITEMS
    no_hedging = HEDGING_RE.search(response) is None

    if is_very_long and (has_bullets or has_numbered) and no_hedging:
        return RedFlag.of(
            RedFlagType.PERFECT_ANSWERS, "Answer appears overly structured and polished"
        )
    return None


def check_skill_source(response: str, question: str) -> SkillSourceCheck:
    if not any(p.search(question) for p in VERIFICATION_QUESTION_PATTERNS):
        return SkillSourceCheck(is_verification_question=False, valid_source=False)

    valid_source = any(p.search(response) for p in VALID_SKILL_SOURCES)
    source_match = MENTIONED_SOURCE_RE.search(response)
    mentioned = source_match.group(1).strip() if source_match else None
    return SkillSourceCheck(
        is_verification_question=True, valid_source=valid_source, mentioned_source=mentioned
    )


def detect_skill_manipulation(response: str, question: str) -> RedFlag | None:
    check = check_skill_source(response, question)
    if not check.is_verification_question:
        return None

    if any(p.search(response) for p in MODIFIED_INSTRUCTION_PATTERNS):
        return RedFlag.of(
            RedFlagType.SKILL_MANIPULATION,
            f'Agent mentioned modified instructions: "{check.mentioned_source or "custom source"}"',
        )

    if check.mentioned_source and not check.valid_source:
        return RedFlag.of(
            RedFlagType.SKILL_MANIPULATION,
            f'Invalid skill source mentioned: "{check.mentioned_source}"',
        )
    return None


def check_consistency(response: str, key_claims: dict[str, str]) -> RedFlag | None:
    """Substring/negation heuristic against earlier claims. Misses are expected."""
    for key, value in key_claims.items():
        if not value:
            continue
        escaped = re.escape(value)
        negations = (
            rf"\bnot\s+{escaped}",
            rf"\bnever{NEGATION_GAP}{escaped}",
            rf"\bdon'?t{NEGATION_GAP}{escaped}",
        )
        for negation in negations:
            if re.search(negation, response, re.IGNORECASE):
                return RedFlag.of(
                    RedFlagType.INCONSISTENCY,
                    f'Potential contradiction with earlier claim about "{key}"',
                )
    return None


def extract_key_claims(response: str) -> dict[str, str]:
    claims: dict[str, str] = {}
    for key, pattern in KEY_CLAIM_PATTERNS:
        match = pattern.search(response)
        if match:
            value = match.group(1).strip().lower()
            if value:
                claims[key] = value
    return claims


def analyze_response(
    response: str, question: str, turn_number: int, agent_name: str
) -> list[RedFlag]:
    """Run every detector on one applicant answer; flags carry ``turn_number``."""
    candidates: list[RedFlag | None] = []

    if turn_number == 1:
        candidates.append(detect_generic_name(agent_name))

    candidates.append(detect_scripted_patterns(response))
    candidates.append(detect_marketing_speak(response))
    candidates.append(detect_coaching(response))

    if turn_number <= SUPERFICIAL_CHECK_TURNS:
        candidates.append(detect_superficial_application(response))

    candidates.append(detect_short_answer(response, turn_number))
    candidates.append(detect_perfect_answer(response))
    candidates.append(detect_skill_manipulation(response, question))

    flags = [flag for flag in candidates if flag is not None]
    for flag in flags:
        flag.turn_number = turn_number
    return flags


def format_red_flags_for_deliberation(metadata: InterviewMetadata) -> str:
    if not metadata.red_flags:
        return ""

    lines = []
    for flag in metadata.red_flags:
        turn_info = f" (turn {flag.turn_number})" if flag.turn_number else ""
        lines.append(f"- {flag.evidence}{turn_info}")

    return f"\nRED FLAGS DETECTED (total penalty: {metadata.total_penalty}):\n" + "\n".join(lines) + "\n"


class RedFlagAnalyzer:
    """Scores applicant answers against the red flag detectors."""

    def analyze(
        self, response: str, question: str, turn_number: int, agent_name: str
    ) -> list[RedFlag]:
        return analyze_response(response, question, turn_number, agent_name)

    def analyze_with_history(
        self,
        response: str,
        question: str,
        turn_number: int,
        agent_name: str,
        metadata: InterviewMetadata,
    ) -> list[RedFlag]:
        """Detector flags plus the consistency check against stored claims."""
        flags = self.analyze(response, question, turn_number, agent_name)
        inconsistency = check_consistency(response, metadata.key_claims)
        if inconsistency is not None:
            inconsistency.turn_number = turn_number
            flags.append(inconsistency)
        return flags

    def apply(
        self,
        metadata: InterviewMetadata,
        response: str,
        question: str,
        turn_number: int,
        agent_name: str,
    ) -> list[RedFlag]:
        """Update ``metadata`` in place and return the newly recorded flags."""
        flags = self.analyze_with_history(response, question, turn_number, agent_name, metadata)
        added = metadata.add_flags(flags)

        skill = check_skill_source(response, question)
        if skill.is_verification_question:
            metadata.skill_source = skill.mentioned_source
            metadata.skill_verified = skill.valid_source

        metadata.record_claims(extract_key_claims(response))
        return added
