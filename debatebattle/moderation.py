"""Advisory moderation of casts by the generation service.

Verdicts only decide whether a cast is appropriate. Their scores are kept
for reporting and are never fed into the winner determination scoring.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional, Protocol, Sequence

if TYPE_CHECKING:
    from .models import Battle, Cast

logger = logging.getLogger(__name__)

MODERATION_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "isAppropriate": {"type": "boolean"},
        "qualityScore": {"type": "integer", "minimum": 1, "maximum": 10},
        "relevanceScore": {"type": "integer", "minimum": 1, "maximum": 10},
        "engagementScore": {"type": "integer", "minimum": 1, "maximum": 10},
        "reason": {"type": "string"},
    },
    "required": ["isAppropriate", "qualityScore", "relevanceScore", "engagementScore"],
}


class StructuredGenerator(Protocol):
    def generate_structured(self, prompt: str, schema: Mapping[str, Any]) -> Mapping[str, Any]: ...


@dataclass(frozen=True)
class ModerationVerdict:
    """Moderation result for one cast.

    Attributes
    ----------
    cast_id : int
        The moderated cast.
    appropriate : bool
        Whether the cast may take part in judging.
    quality_score, relevance_score, engagement_score : Optional[int]
        Advisory 1-10 scores; ``None`` when moderation failed.
    reason : Optional[str]
        Short explanation from the moderator, if any.
    error : Optional[str]
        Failure message when the verdict is a fallback.
    """

    cast_id: int
    appropriate: bool
    quality_score: Optional[int] = None
    relevance_score: Optional[int] = None
    engagement_score: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[str] = None


def _advisory_score(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        number = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return min(max(number, 1), 10)


class CastModerator:
    """Asks the generation service whether casts are fit for judging."""

    def __init__(self, generator: StructuredGenerator) -> None:
        self._generator = generator

    def moderate(self, cast: "Cast", battle: "Battle") -> ModerationVerdict:
        """Moderate one cast; failures produce a non-appropriate verdict."""

        prompt = (
            "You moderate a public debate. Judge the following argument.\n\n"
            f'DEBATE TOPIC: "{battle.title}"\n'
            f'TOPIC DESCRIPTION: "{battle.description}"\n'
            f"SIDE: {cast.side}\n"
            f'ARGUMENT: "{cast.content}"\n\n'
            "Decide whether it is appropriate (no hate speech, harassment, spam "
            "or explicit content) and rate its quality, relevance to the topic "
            "and engagement from 1 to 10."
        )
        try:
            payload = self._generator.generate_structured(prompt, MODERATION_SCHEMA)
            appropriate = payload["isAppropriate"]
        except Exception as exc:
            logger.warning("Moderation failed for cast %s: %s", cast.id, exc)
            return ModerationVerdict(cast_id=cast.id, appropriate=False, error=str(exc))

        return ModerationVerdict(
            cast_id=cast.id,
            appropriate=appropriate is True or str(appropriate).lower() == "true",
            quality_score=_advisory_score(payload.get("qualityScore")),
            relevance_score=_advisory_score(payload.get("relevanceScore")),
            engagement_score=_advisory_score(payload.get("engagementScore")),
            reason=payload.get("reason"),
        )

    def moderate_all(
        self, casts: Sequence["Cast"], battle: "Battle"
    ) -> dict[int, ModerationVerdict]:
        verdicts = {cast.id: self.moderate(cast, battle) for cast in casts}
        flagged = sum(1 for verdict in verdicts.values() if not verdict.appropriate)
        logger.info(
            "Moderated %d casts for battle %s (%d not appropriate)",
            len(verdicts),
            battle.id,
            flagged,
        )
        return verdicts


__all__ = ["CastModerator", "MODERATION_SCHEMA", "ModerationVerdict"]
