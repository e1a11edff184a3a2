"""Non-LLM scoring functions for judging casts.

Every component returns a value clamped to ``[1, 10]`` and the component
weights sum to ``1.0``, so the weighted total is bounded to ``[1, 10]`` too.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Mapping, Sequence

from .keywords import count_matching, extract_keywords

MIN_SCORE = 1.0
MAX_SCORE = 10.0
BASE_SCORE = 5.0

EVIDENCE_WORDS = (
    "because",
    "since",
    "due to",
    "evidence",
    "data",
    "study",
    "research",
    "proves",
    "shows",
)
ARGUMENT_WORDS = (
    "however",
    "although",
    "despite",
    "furthermore",
    "moreover",
    "therefore",
    "thus",
)
OFF_TOPIC_WORDS = ("unrelated", "random", "whatever", "idk", "lol", "haha")
STRONG_OPINION_WORDS = ("wrong", "right", "should", "must", "never", "always", "best", "worst")
CALL_TO_ACTION_WORDS = ("think", "consider", "imagine", "suppose", "believe")

_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_DIGIT = re.compile(r"\d")


@dataclass(frozen=True)
class ScoreComponent:
    """Definition of one weighted scoring axis.

    Attributes
    ----------
    key : str
        Identifier used in :class:`SubmissionScores` and log output.
    weight : float
        Share of the weighted total contributed by this component.
    description : str
        Human-readable summary of the heuristic.
    """

    key: str
    weight: float
    description: str


COMPONENTS: tuple[ScoreComponent, ...] = (
    ScoreComponent("quality", 0.35, "Length, sentence rhythm, evidence and argument connectives."),
    ScoreComponent("relevance", 0.25, "Keyword overlap with the battle title and description."),
    ScoreComponent("engagement", 0.15, "Questions, exclamations, numbers and opinionated wording."),
    ScoreComponent("popularity", 0.15, "Logarithm of the like count."),
    ScoreComponent("originality", 0.10, "Low keyword overlap with the other casts."),
)
WEIGHTS: Mapping[str, float] = {component.key: component.weight for component in COMPONENTS}


@dataclass(frozen=True)
class SubmissionScores:
    """Per-component scores of one cast and their weighted total."""

    quality: float
    relevance: float
    engagement: float
    popularity: float
    originality: float

    @property
    def total(self) -> float:
        # Clamped again only to absorb float rounding at the bounds.
        return clamp_score(sum(getattr(self, key) * weight for key, weight in WEIGHTS.items()))

    def as_dict(self) -> dict[str, float]:
        values = {key: getattr(self, key) for key in WEIGHTS}
        values["total"] = self.total
        return values


def clamp_score(value: float) -> float:
    """Clamp ``value`` into the ``[1, 10]`` score range."""
    return min(max(float(value), MIN_SCORE), MAX_SCORE)


def _contains_any(text: str, words: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(word in lowered for word in words)


def quality_score(content: str) -> float:
    """Score argument quality from length, sentence shape and wording."""

    score = BASE_SCORE
    length = len(content)
    if 50 <= length <= 120:
        score += 2
    elif 30 <= length <= 140:
        score += 1

    sentences = [s for s in _SENTENCE_SPLIT.split(content) if s.strip()]
    if sentences:
        avg_words = len(content.split()) / len(sentences)
        if 8 <= avg_words <= 15:
            score += 1

    if _contains_any(content, EVIDENCE_WORDS):
        score += 1
    if _contains_any(content, ARGUMENT_WORDS):
        score += 1
    return clamp_score(score)


def relevance_score(content: str, topic_text: str) -> float:
    """Score how much of the topic's vocabulary the cast picks up."""

    score = BASE_SCORE
    topic_keywords = extract_keywords(topic_text)
    content_keywords = extract_keywords(content)
    overlap = count_matching(topic_keywords, content_keywords)
    ratio = overlap / max(len(topic_keywords), 1)
    if ratio >= 0.3:
        score += 3
    elif ratio >= 0.1:
        score += 2
    elif ratio >= 0.05:
        score += 1

    if _contains_any(content, OFF_TOPIC_WORDS):
        score -= 2
    return clamp_score(score)


def engagement_score(content: str) -> float:
    """Score the cast's potential to spark discussion."""

    score = BASE_SCORE
    score += min(content.count("?"), 2)
    score += min(content.count("!"), 1)
    if _DIGIT.search(content):
        score += 1
    if _contains_any(content, STRONG_OPINION_WORDS):
        score += 1
    if _contains_any(content, CALL_TO_ACTION_WORDS):
        score += 1
    return clamp_score(score)


def popularity_score(like_count: int) -> float:
    """Map a like count onto the score range logarithmically.

    Zero likes is neutral (5); otherwise ``2 * ln(likes + 1)``, so a flood of
    likes cannot dominate the total.
    """

    if like_count <= 0:
        return BASE_SCORE
    return clamp_score(min(math.log(like_count + 1) * 2, MAX_SCORE))


def originality_score(content: str, peer_contents: Sequence[str]) -> float:
    """Score the cast higher the fewer keywords it shares with its peers.

    ``peer_contents`` holds every *other* cast of the battle.
    """

    score = BASE_SCORE
    keywords = extract_keywords(content)
    shared = 0
    for peer in peer_contents:
        shared += count_matching(keywords, extract_keywords(peer))
    average = shared / max(len(peer_contents), 1)
    if average < 2:
        score += 3
    elif average < 4:
        score += 2
    elif average < 6:
        score += 1
    return clamp_score(score)


def score_submission(
    content: str,
    *,
    like_count: int,
    topic_text: str,
    peer_contents: Sequence[str],
) -> SubmissionScores:
    """Compute every component score for a single cast."""

    return SubmissionScores(
        quality=quality_score(content),
        relevance=relevance_score(content, topic_text),
        engagement=engagement_score(content),
        popularity=popularity_score(like_count),
        originality=originality_score(content, peer_contents),
    )


__all__ = [
    "COMPONENTS",
    "ScoreComponent",
    "SubmissionScores",
    "WEIGHTS",
    "clamp_score",
    "engagement_score",
    "originality_score",
    "popularity_score",
    "quality_score",
    "relevance_score",
    "score_submission",
]
