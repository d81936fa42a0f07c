"""
The Council

A multi-judge interview engine: seven personas interview an AI agent applying
on behalf of its human, vote on it, and an exclusivity-gated verdict decides.
"""

__version__ = "0.1.0"

# Configuration
from council.config import Settings

# Judges and selection
from council.judges import ALL_JUDGES, JUDGES, JudgeName, JudgeProfile
from council.selection import JudgeSelector, JudgeWeight

# Red flags
from council.red_flags import InterviewMetadata, RedFlag, RedFlagAnalyzer, RedFlagType

# Verdict
from council.verdict import VerdictDecision, derive_verdict

# Orchestration
from council.gateway import ProviderGateway, TextGenerationGateway
from council.orchestrator import InterviewOrchestrator, OperationResult
from council.store import InterviewStore
from council.tick import TickReport, run_tick

__all__ = [
    # Version
    "__version__",
    # Config
    "Settings",
    # Judges
    "JudgeName",
    "JudgeProfile",
    "JUDGES",
    "ALL_JUDGES",
    "JudgeSelector",
    "JudgeWeight",
    # Red flags
    "RedFlag",
    "RedFlagType",
    "RedFlagAnalyzer",
    "InterviewMetadata",
    # Verdict
    "VerdictDecision",
    "derive_verdict",
    # Orchestration
    "TextGenerationGateway",
    "ProviderGateway",
    "InterviewStore",
    "InterviewOrchestrator",
    "OperationResult",
    "TickReport",
    "run_tick",
]
