"""
Verdict derivation from the council's seven votes.

Consensus alone never admits an applicant: a unanimous, clean accept still
has to clear a random exclusivity gate.
"""

from __future__ import annotations

import random
import secrets
import string
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass

from .config import Settings, settings as default_settings
from .judges import ALL_JUDGES, SILENT_JUDGE
from .models import CouncilVote, VerdictType, VoteType

COUNCIL_SIZE = len(ALL_JUDGES)
CLAIM_TOKEN_LENGTH = 32
CLAIM_TOKEN_ALPHABET = string.ascii_letters + string.digits

FAVORABLE_VERDICTS = frozenset({VerdictType.ACCEPT, VerdictType.PROVISIONAL})


@dataclass
class VoteTally:
    accept: int
    reject: int
    abstain: int

    @classmethod
    def of(cls, votes: Sequence[CouncilVote]) -> VoteTally:
        counts = Counter(VoteType(v.vote) for v in votes)
        return cls(
            accept=counts[VoteType.ACCEPT],
            reject=counts[VoteType.REJECT],
            abstain=counts[VoteType.ABSTAIN],
        )

    @property
    def total(self) -> int:
        return self.accept + self.reject + self.abstain

    def to_dict(self) -> dict:
        return {"accept": self.accept, "reject": self.reject, "abstain": self.abstain}


@dataclass
class VerdictDecision:
    verdict: VerdictType
    tally: VoteTally
    total_penalty: int
    draw: float | None
    rule: str

    @property
    def is_favorable(self) -> bool:
        return self.verdict in FAVORABLE_VERDICTS

    def to_dict(self) -> dict:
        return {
            "verdict": self.verdict.value,
            "votes": self.tally.to_dict(),
            "total_penalty": self.total_penalty,
            "draw": round(self.draw, 4) if self.draw is not None else None,
            "rule": self.rule,
        }


def derive_verdict(
    votes: Sequence[CouncilVote],
    total_penalty: int,
    rng: random.Random,
    settings: Settings | None = None,
) -> VerdictDecision:
    """Apply the verdict rules in priority order.

    The random draw happens only on the unanimous-and-clean path so that
    every other outcome is fully determined by votes and penalty.
    """
    cfg = settings or default_settings
    tally = VoteTally.of(votes)
    if tally.total != COUNCIL_SIZE:
        raise ValueError(f"Verdict requires {COUNCIL_SIZE} votes, got {tally.total}")

    if tally.reject == COUNCIL_SIZE:
        return VerdictDecision(
            VerdictType.UNANIMOUS_REJECT, tally, total_penalty, None, "unanimous reject"
        )

    if tally.accept == COUNCIL_SIZE:
        if total_penalty < cfg.max_penalty_for_acceptance:
            return VerdictDecision(
                VerdictType.REJECT, tally, total_penalty, None, "unanimous accept, penalty too severe"
            )

        draw = rng.random()
        accept_band = cfg.base_acceptance_rate
        provisional_band = cfg.base_acceptance_rate * cfg.provisional_band_multiplier
        if draw < accept_band:
            verdict, rule = VerdictType.ACCEPT, "unanimous accept, inside acceptance band"
        elif draw < provisional_band:
            verdict, rule = VerdictType.PROVISIONAL, "unanimous accept, inside provisional band"
        else:
            verdict, rule = VerdictType.REJECT, "unanimous accept, outside exclusivity gate"
        return VerdictDecision(verdict, tally, total_penalty, draw, rule)

    return VerdictDecision(VerdictType.REJECT, tally, total_penalty, None, "split council")


def select_teaser(votes: Sequence[CouncilVote], verdict: VerdictType) -> CouncilVote:
    """VOID's word wins when it voted; otherwise a vote that matches the outcome."""
    if not votes:
        raise ValueError("No votes to choose a teaser from")

    for vote in votes:
        if vote.judge_name == SILENT_JUDGE and vote.vote != VoteType.ABSTAIN:
            return vote

    wanted = VoteType.ACCEPT if verdict in FAVORABLE_VERDICTS else VoteType.REJECT
    for vote in votes:
        if vote.vote == wanted:
            return vote

    return votes[0]


def generate_claim_token(length: int = CLAIM_TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(CLAIM_TOKEN_ALPHABET) for _ in range(length))
