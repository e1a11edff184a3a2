"""Scoring and winner determination for debate battles."""

from .engine import (
    OPTIMIZED_HYBRID,
    SINGLE_PARTICIPANT,
    ScoredCast,
    SideResolution,
    SideSelection,
    WinnerDeterminationEngine,
    WinnerRecord,
)
from .keywords import extract_keywords
from .scoring import COMPONENTS, SubmissionScores, score_submission

__all__ = [
    "COMPONENTS",
    "OPTIMIZED_HYBRID",
    "SINGLE_PARTICIPANT",
    "ScoredCast",
    "SideResolution",
    "SideSelection",
    "SubmissionScores",
    "WinnerDeterminationEngine",
    "WinnerRecord",
    "extract_keywords",
    "score_submission",
]
