"""Topic candidates and their structural validation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from ..exceptions import TopicValidationError
from ..models.battle import BATTLE_CATEGORIES

logger = logging.getLogger(__name__)

TITLE_LENGTH = (10, 200)
DESCRIPTION_LENGTH = (20, 1000)
MIN_POINTS_PER_SIDE = 2
MIN_POINT_LENGTH = 10


class TopicStrategy:
    """Generation strategies, one per pipeline attempt."""

    DEFAULT = "default"
    DIFFERENT_CATEGORY = "different_category"
    BROAD_TOPIC = "broad_topic"

    ORDER = (DEFAULT, DIFFERENT_CATEGORY, BROAD_TOPIC)

    @classmethod
    def for_attempt(cls, attempt: int) -> str:
        """Return the strategy of a 1-based attempt number; later attempts reuse the last."""
        if attempt < 1:
            raise ValueError("attempt numbers start at 1")
        return cls.ORDER[min(attempt, len(cls.ORDER)) - 1]


@dataclass(frozen=True)
class TopicCandidate:
    """A topic as returned by a topic source, before validation."""

    title: str
    description: str
    category: str
    support_points: tuple[str, ...]
    oppose_points: tuple[str, ...]
    source: str = "AI Generated"
    source_url: Optional[str] = None
    strategy: str = TopicStrategy.DEFAULT

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], strategy: str) -> "TopicCandidate":
        """Build a candidate from a loosely shaped generation payload.

        Accepts either ``supportPoints``/``opposePoints`` (or their snake_case
        spellings) or a nested ``debatePoints`` mapping with ``Support`` and
        ``Oppose`` lists. Missing pieces become empty values so validation can
        report them.
        """

        points = payload.get("debatePoints") or {}
        support = (
            payload.get("support_points")
            or payload.get("supportPoints")
            or points.get("Support")
            or points.get("support")
            or ()
        )
        oppose = (
            payload.get("oppose_points")
            or payload.get("opposePoints")
            or points.get("Oppose")
            or points.get("oppose")
            or ()
        )
        return cls(
            title=str(payload.get("title") or "").strip(),
            description=str(payload.get("description") or "").strip(),
            category=str(payload.get("category") or "").strip().lower(),
            support_points=tuple(str(p).strip() for p in support),
            oppose_points=tuple(str(p).strip() for p in oppose),
            source=str(payload.get("source") or "AI Generated"),
            source_url=payload.get("source_url") or payload.get("articleUrl"),
            strategy=strategy,
        )


@dataclass(frozen=True)
class ValidatedTopic(TopicCandidate):
    """A candidate that passed validation and the similarity check.

    Attributes
    ----------
    attempt : int
        1-based pipeline attempt that produced the topic.
    similarity : float
        Highest similarity to a recent battle at acceptance time.
    """

    attempt: int = 1
    similarity: float = 0.0

    @classmethod
    def accept(
        cls, candidate: TopicCandidate, *, attempt: int, similarity: float
    ) -> "ValidatedTopic":
        values = {f.name: getattr(candidate, f.name) for f in fields(TopicCandidate)}
        return cls(**values, attempt=attempt, similarity=similarity)


def topic_problems(candidate: TopicCandidate) -> list[str]:
    """Return every structural problem with ``candidate`` (empty when valid)."""

    problems: list[str] = []
    min_title, max_title = TITLE_LENGTH
    if not min_title <= len(candidate.title) <= max_title:
        problems.append(
            f"title length {len(candidate.title)} outside [{min_title}, {max_title}]"
        )
    min_desc, max_desc = DESCRIPTION_LENGTH
    if not min_desc <= len(candidate.description) <= max_desc:
        problems.append(
            f"description length {len(candidate.description)} outside [{min_desc}, {max_desc}]"
        )
    if candidate.category.lower() not in BATTLE_CATEGORIES:
        problems.append(f"category {candidate.category!r} is not allowed")
    for side, points in (("support", candidate.support_points), ("oppose", candidate.oppose_points)):
        if len(points) < MIN_POINTS_PER_SIDE:
            problems.append(f"{side} side has {len(points)} points, needs {MIN_POINTS_PER_SIDE}")
        short = [p for p in points if len(p) < MIN_POINT_LENGTH]
        if short:
            problems.append(f"{side} side has {len(short)} point(s) shorter than {MIN_POINT_LENGTH}")
    return problems


def validate_topic(candidate: TopicCandidate) -> TopicCandidate:
    """Return ``candidate`` unchanged or raise :class:`TopicValidationError`."""

    problems = topic_problems(candidate)
    if problems:
        logger.info("Topic %r rejected: %s", candidate.title, "; ".join(problems))
        raise TopicValidationError(problems)
    return candidate


__all__ = [
    "DESCRIPTION_LENGTH",
    "TITLE_LENGTH",
    "TopicCandidate",
    "TopicStrategy",
    "ValidatedTopic",
    "topic_problems",
    "validate_topic",
]
