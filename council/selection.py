"""
Content-aware judge selection.

Decides which judge speaks on a turn: GATE opens (and often closes), the rest
is a weighted draw where each judge's weight grows with content triggers and
with the time since it last spoke, and shrinks if it spoke one or two turns
ago. VOID may additionally force its way in with a small probability.
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass

from .judges import GATEKEEPER, JUDGES, SILENT_JUDGE, JudgeName, JudgeProfile

logger = logging.getLogger(__name__)

GATE_OPENING_TURNS = (1, 2)
GATE_CLOSING_TURNS = range(20, 26)
GATE_CLOSING_CHANCE = 0.4

DROUGHT_BOOST_PER_TURN = 0.3
MAX_DROUGHT_BOOST = 2.0

LAST_SPEAKER_DAMPING = 0.2
SECOND_LAST_SPEAKER_DAMPING = 0.5

KEYWORD_FACTOR = 0.5
SUSTAINED_THEME_FACTOR = 0.3
SUSTAINED_THEME_MIN_KEYWORDS = 2

# How many previous judge turns count as "recent".
RECENT_JUDGE_WINDOW = 5
# How many previous messages feed the sustained-theme check.
RECENT_MESSAGE_WINDOW = 6

VOID_BASE_PROBABILITY = 0.15
VOID_LONG_INTERVIEW_STEPS = ((8, 0.05), (12, 0.05))
VOID_TRIGGER_BONUS = 0.03
VOID_MAX_PROBABILITY = 0.35
VOID_TRIGGER_PATTERNS = tuple(
    re.compile(rf"\b{word}\b", re.IGNORECASE)
    for word in ("we", "love", "truth", "forever", "afraid", "secret", "betrayal", "end")
)


@dataclass
class JudgeWeight:
    """Selection weight for one judge on one turn."""

    judge: JudgeName
    weight: float
    reason: str | None = None


@dataclass
class TriggerScore:
    score: float
    matched: list[str]


def calculate_trigger_score(
    profile: JudgeProfile, content: str, recent_messages: Sequence[str]
) -> TriggerScore:
    triggers = profile.triggers
    score = 0.0
    matched: list[str] = []

    for pattern in triggers.patterns:
        match = pattern.search(content)
        if match:
            score += triggers.weight
            matched.append(match.group(0))

    lower_content = content.lower()
    for keyword in triggers.keywords:
        if keyword in lower_content:
            score += triggers.weight * KEYWORD_FACTOR
            matched.append(keyword)

    recent_context = " ".join(recent_messages).lower()
    sustained = sum(1 for keyword in triggers.keywords if keyword in recent_context)
    if sustained >= SUSTAINED_THEME_MIN_KEYWORDS:
        score += triggers.weight * SUSTAINED_THEME_FACTOR

    return TriggerScore(score=score, matched=matched)


def calculate_drought_boost(
    judge: JudgeName, recent_judges: Sequence[JudgeName], turn_count: int
) -> float:
    if judge not in recent_judges:
        return min(turn_count * DROUGHT_BOOST_PER_TURN, MAX_DROUGHT_BOOST)

    last_spoke = len(recent_judges) - 1 - list(reversed(recent_judges)).index(judge)
    turns_since = len(recent_judges) - last_spoke - 1
    return min(turns_since * DROUGHT_BOOST_PER_TURN, MAX_DROUGHT_BOOST)


def selection_reason(weights: Sequence[JudgeWeight], selected: JudgeName) -> str:
    """Human-readable explanation of a pick, for logs."""
    judge_weight = next((w for w in weights if w.judge == selected), None)
    if judge_weight is None:
        return "Unknown"

    total = sum(w.weight for w in weights)
    percentage = (judge_weight.weight / total) * 100 if total else 0.0
    if judge_weight.reason:
        return f"{judge_weight.reason} ({percentage:.1f}% chance)"
    return f"Base selection ({percentage:.1f}% chance)"


class JudgeSelector:
    """Picks the next speaker. All randomness goes through ``rng``."""

    def __init__(
        self,
        rng: random.Random | None = None,
        judges: Mapping[JudgeName, JudgeProfile] = JUDGES,
    ) -> None:
        self._rng = rng or random.Random()
        self._judges = judges

    def calculate_weights(
        self,
        last_response: str,
        recent_messages: Sequence[str],
        recent_judges: Sequence[JudgeName],
        turn_count: int,
        *,
        exclude: Collection[JudgeName] = (),
        dampen: bool = True,
    ) -> list[JudgeWeight]:
        weights: list[JudgeWeight] = []
        last_judge = recent_judges[-1] if recent_judges else None
        second_last_judge = recent_judges[-2] if len(recent_judges) >= 2 else None

        for name, profile in self._judges.items():
            if name in exclude:
                continue

            trigger = calculate_trigger_score(profile, last_response, recent_messages)
            weight = profile.base_weight + trigger.score
            weight += calculate_drought_boost(name, recent_judges, turn_count)

            if dampen:
                if name == last_judge:
                    weight *= LAST_SPEAKER_DAMPING
                if name == second_last_judge:
                    weight *= SECOND_LAST_SPEAKER_DAMPING

            reason = (
                f"Triggered by: {', '.join(trigger.matched[:3])}" if trigger.matched else None
            )
            weights.append(JudgeWeight(judge=name, weight=weight, reason=reason))

        return weights

    def select_by_weight(self, weights: Sequence[JudgeWeight]) -> JudgeName:
        if not weights:
            raise ValueError("No judges available for selection")

        total = sum(w.weight for w in weights)
        draw = self._rng.random() * total

        for judge_weight in weights:
            draw -= judge_weight.weight
            if draw <= 0:
                return judge_weight.judge

        # Float residue: the draw landed on the upper edge.
        return weights[-1].judge

    def forced_gatekeeper(self, turn: int, recent_judges: Sequence[JudgeName]) -> bool:
        """Whether GATE takes this turn by duty (opening or closing)."""
        if turn in GATE_OPENING_TURNS and GATEKEEPER not in recent_judges:
            return True
        if turn in GATE_CLOSING_TURNS:
            last_judge = recent_judges[-1] if recent_judges else None
            if self._rng.random() < GATE_CLOSING_CHANCE and last_judge != GATEKEEPER:
                return True
        return False

    def select_next_judge(
        self,
        turn: int,
        recent_judges: Sequence[JudgeName],
        last_response: str,
        recent_messages: Sequence[str],
        *,
        exclude: Collection[JudgeName] = (),
    ) -> JudgeName:
        if GATEKEEPER not in exclude and self.forced_gatekeeper(turn, recent_judges):
            logger.debug("Turn %s: %s takes the floor by duty", turn, GATEKEEPER)
            return GATEKEEPER

        weights = self.calculate_weights(
            last_response, recent_messages, recent_judges, turn, exclude=exclude
        )
        selected = self.select_by_weight(weights)
        logger.debug("Turn %s: %s selected. %s", turn, selected, selection_reason(weights, selected))
        return selected

    def void_probability(self, turn: int, transcript: str) -> float:
        probability = VOID_BASE_PROBABILITY
        for threshold, bonus in VOID_LONG_INTERVIEW_STEPS:
            if turn > threshold:
                probability += bonus
        for pattern in VOID_TRIGGER_PATTERNS:
            if pattern.search(transcript):
                probability += VOID_TRIGGER_BONUS
        return min(probability, VOID_MAX_PROBABILITY)

    def should_void_speak(self, turn: int, transcript: str) -> bool:
        return self._rng.random() < self.void_probability(turn, transcript)

    def choose(
        self,
        turn: int,
        recent_judges: Sequence[JudgeName],
        last_response: str,
        recent_messages: Sequence[str],
        transcript: str,
    ) -> JudgeName:
        """Full selection for a turn, including VOID's override roll.

        The override never displaces GATE's opening duty and never fires when
        VOID already spoke inside the recent window.
        """
        if self.forced_gatekeeper(turn, recent_judges):
            return GATEKEEPER

        weights = self.calculate_weights(last_response, recent_messages, recent_judges, turn)
        selected = self.select_by_weight(weights)
        logger.debug("Turn %s: %s drawn. %s", turn, selected, selection_reason(weights, selected))

        if SILENT_JUDGE not in recent_judges and self.should_void_speak(turn, transcript):
            logger.debug("Turn %s: %s overrides %s", turn, SILENT_JUDGE, selected)
            return SILENT_JUDGE
        return selected

    def reselect_after_silence(
        self,
        turn: int,
        recent_judges: Sequence[JudgeName],
        last_response: str,
        recent_messages: Sequence[str],
    ) -> JudgeName:
        """Pick a speaking judge once VOID has declined the turn."""
        return self.select_next_judge(
            turn, recent_judges, last_response, recent_messages, exclude=(SILENT_JUDGE,)
        )
