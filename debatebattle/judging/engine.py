"""Winner determination for completed battles."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Iterable,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    TypeVar,
    Union,
)

from .scoring import score_submission
from ..models.cast import CastSide

if TYPE_CHECKING:
    from ..models import Battle, Cast
    from ..moderation import ModerationVerdict

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOP_K = 3
EXCERPT_LENGTH = 50

SINGLE_PARTICIPANT = "single-participant"
OPTIMIZED_HYBRID = "optimized-hybrid"


class SideResolution:
    """How the winning side of a battle was decided."""

    SINGLE = "single"
    HIGHER_MEAN = "higher_mean"
    UNCONTESTED = "uncontested"
    QUALITY_TIEBREAK = "quality_tiebreak"
    RANDOM_TIEBREAK = "random_tiebreak"


class RandomSource(Protocol):
    """The subset of :class:`random.Random` the engine relies on."""

    def choice(self, seq: Sequence[T]) -> T: ...


class InsightGenerator(Protocol):
    def generate_text(self, prompt: str) -> str: ...


@dataclass(frozen=True)
class ScoredCast:
    """A cast together with its judging scores.

    Attributes
    ----------
    cast_id : int
        Identifier of the scored cast.
    user_id : int
        Author of the cast.
    side : str
        ``SUPPORT`` or ``OPPOSE``.
    content : str
        Cast text, kept for candidate excerpts and insight prompts.
    total : float
        Weighted total in ``[1, 10]``.
    quality : float
        Unweighted quality component, used by the side tie-break.
    like_count : int
        Likes at judging time.
    breakdown : Mapping[str, float]
        Every component score, for reporting.
    """

    cast_id: int
    user_id: int
    side: str
    content: str
    total: float
    quality: float
    like_count: int = 0
    breakdown: Mapping[str, float] = field(default_factory=dict)

    def as_candidate(self) -> dict[str, Any]:
        excerpt = self.content
        if len(excerpt) > EXCERPT_LENGTH:
            excerpt = excerpt[:EXCERPT_LENGTH] + "..."
        return {
            "cast_id": self.cast_id,
            "user_id": self.user_id,
            "score": round(self.total, 2),
            "like_count": self.like_count,
            "content": excerpt,
        }


@dataclass(frozen=True)
class SideSelection:
    winning_side: str
    resolution: str
    support_score: Optional[float] = None
    oppose_score: Optional[float] = None


@dataclass
class WinnerRecord:
    """Outcome of :meth:`WinnerDeterminationEngine.determine_winner`."""

    battle_id: int
    cast_id: int
    user_id: int
    side: str
    score: float
    selection_method: str
    side_resolution: str
    reasoning: str
    candidates: list[dict[str, Any]]
    support_score: Optional[float] = None
    oppose_score: Optional[float] = None
    insights: Optional[str] = None

    @property
    def candidate_ids(self) -> list[int]:
        return [candidate["cast_id"] for candidate in self.candidates]


def _group_mean(group: Sequence[ScoredCast]) -> float:
    if not group:
        return 0.0
    return sum(cast.total for cast in group) / len(group)


class WinnerDeterminationEngine:
    """Scores casts, picks the winning side and draws a winner from its top casts.

    The final pick is a uniform draw among the top :data:`TOP_K` casts of the
    winning side rather than the single highest scorer, which caps what can be
    gained by gaming the keyword and length heuristics.
    """

    def __init__(
        self,
        *,
        insight_generator: Optional[InsightGenerator] = None,
        rng: Optional[RandomSource] = None,
        top_k: int = TOP_K,
    ) -> None:
        """Create a winner determination engine.

        Parameters
        ----------
        insight_generator : Optional[InsightGenerator], default: None
            Text generation service used for the post-judging insight
            summary. When omitted, no insights are produced.
        rng : Optional[RandomSource], default: None
            Source of randomness for the side tie-break and the final draw.
            Tests inject a seeded :class:`random.Random` or a scripted fake.
        top_k : int, default: 3
            Number of winning-side casts eligible for the final draw.
        """

        if top_k < 1:
            raise ValueError("top_k must be at least 1")
        self._insight_generator = insight_generator
        self._rng: RandomSource = rng or random.Random()
        self._top_k = top_k

    def determine_winner(
        self,
        battle: "Battle",
        casts: Sequence["Cast"],
        verdicts: Union[Mapping[int, "ModerationVerdict"], Iterable["ModerationVerdict"], None] = None,
    ) -> WinnerRecord:
        """Judge ``casts`` of ``battle`` and return the winner record.

        Parameters
        ----------
        battle : Battle
            The battle being judged. Its title and description drive the
            relevance score and the insight prompt.
        casts : Sequence[Cast]
            Every cast of the battle. Must not be empty; a battle without casts
            is completed without calling the engine.
        verdicts : Mapping or Iterable of ModerationVerdict, optional
            Moderation results keyed by cast id. Used only as a filter.

        Returns
        -------
        WinnerRecord
            Winner, candidates and insight text (``None`` when insight
            generation fails or is not configured).

        Raises
        ------
        ValueError
            If ``casts`` is empty.
        """

        if not casts:
            raise ValueError("Cannot determine a winner for a battle without casts")

        eligible = self.filter_casts(casts, verdicts)
        logger.info(
            "Judging battle %s: %d of %d casts eligible", battle.id, len(eligible), len(casts)
        )
        scored = self.score_casts(battle, eligible)
        record = self.select(battle.id, scored)
        by_id = {cast.cast_id: cast for cast in scored}
        finalists = [by_id[cast_id] for cast_id in record.candidate_ids]
        record.insights = self.generate_insights(battle, finalists)
        logger.info(
            "Battle %s winner: cast %s (%s, %s, score %.2f)",
            battle.id,
            record.cast_id,
            record.side,
            record.selection_method,
            record.score,
        )
        return record

    @staticmethod
    def filter_casts(
        casts: Sequence["Cast"],
        verdicts: Union[Mapping[int, "ModerationVerdict"], Iterable["ModerationVerdict"], None],
    ) -> list["Cast"]:
        """Keep casts marked appropriate, or every cast if none are.

        Moderation is advisory: it can narrow the field but never empty it.
        """

        if verdicts is None:
            by_cast: Mapping[int, Any] = {}
        elif isinstance(verdicts, Mapping):
            by_cast = verdicts
        else:
            by_cast = {verdict.cast_id: verdict for verdict in verdicts}

        appropriate = [
            cast
            for cast in casts
            if by_cast.get(cast.id) is not None and by_cast[cast.id].appropriate
        ]
        if not appropriate:
            if by_cast:
                logger.warning(
                    "No cast passed moderation; judging all %d casts instead", len(casts)
                )
            return list(casts)
        return appropriate

    @staticmethod
    def score_casts(battle: "Battle", casts: Sequence["Cast"]) -> list[ScoredCast]:
        """Score every cast against the battle topic and its peers."""

        topic_text = f"{battle.title} {battle.description}"
        scored: list[ScoredCast] = []
        for index, cast in enumerate(casts):
            peers = [other.content for i, other in enumerate(casts) if i != index]
            scores = score_submission(
                cast.content,
                like_count=cast.like_count or 0,
                topic_text=topic_text,
                peer_contents=peers,
            )
            scored.append(
                ScoredCast(
                    cast_id=cast.id,
                    user_id=cast.user_id,
                    side=cast.side,
                    content=cast.content,
                    total=scores.total,
                    quality=scores.quality,
                    like_count=cast.like_count or 0,
                    breakdown=scores.as_dict(),
                )
            )
        return scored

    def choose_side(self, scored: Sequence[ScoredCast]) -> SideSelection:
        """Pick the winning side from at least two scored casts.

        The side with the strictly higher mean total wins. Equal means fall
        back to the sum of quality scores, then to a coin flip.
        """

        support = [cast for cast in scored if cast.side == CastSide.SUPPORT]
        oppose = [cast for cast in scored if cast.side == CastSide.OPPOSE]

        if not support or not oppose:
            side = CastSide.SUPPORT if support else CastSide.OPPOSE
            return SideSelection(
                winning_side=side,
                resolution=SideResolution.UNCONTESTED,
                support_score=_group_mean(support) if support else None,
                oppose_score=_group_mean(oppose) if oppose else None,
            )

        support_mean = _group_mean(support)
        oppose_mean = _group_mean(oppose)
        if support_mean != oppose_mean:
            side = CastSide.SUPPORT if support_mean > oppose_mean else CastSide.OPPOSE
            return SideSelection(side, SideResolution.HIGHER_MEAN, support_mean, oppose_mean)

        support_quality = sum(cast.quality for cast in support)
        oppose_quality = sum(cast.quality for cast in oppose)
        if support_quality != oppose_quality:
            side = CastSide.SUPPORT if support_quality > oppose_quality else CastSide.OPPOSE
            return SideSelection(side, SideResolution.QUALITY_TIEBREAK, support_mean, oppose_mean)

        side = self._rng.choice([CastSide.SUPPORT, CastSide.OPPOSE])
        return SideSelection(side, SideResolution.RANDOM_TIEBREAK, support_mean, oppose_mean)

    def top_candidates(self, scored: Sequence[ScoredCast], side: str) -> list[ScoredCast]:
        """Return the best :attr:`top_k` casts of ``side``, highest total first."""

        group = [cast for cast in scored if cast.side == side]
        return sorted(group, key=lambda cast: cast.total, reverse=True)[: self._top_k]

    def select(self, battle_id: int, scored: Sequence[ScoredCast]) -> WinnerRecord:
        """Choose the winner among already scored casts (no insights)."""

        if not scored:
            raise ValueError("Cannot select a winner from an empty cast list")

        if len(scored) == 1:
            only = scored[0]
            return WinnerRecord(
                battle_id=battle_id,
                cast_id=only.cast_id,
                user_id=only.user_id,
                side=only.side,
                score=only.total,
                selection_method=SINGLE_PARTICIPANT,
                side_resolution=SideResolution.SINGLE,
                reasoning="Only 1 cast submitted - automatic winner",
                candidates=[only.as_candidate()],
                support_score=only.total if only.side == CastSide.SUPPORT else None,
                oppose_score=only.total if only.side == CastSide.OPPOSE else None,
            )

        selection = self.choose_side(scored)
        candidates = self.top_candidates(scored, selection.winning_side)
        winner = self._rng.choice(candidates)
        return WinnerRecord(
            battle_id=battle_id,
            cast_id=winner.cast_id,
            user_id=winner.user_id,
            side=winner.side,
            score=winner.total,
            selection_method=OPTIMIZED_HYBRID,
            side_resolution=selection.resolution,
            reasoning=self._describe(selection, scored, len(candidates)),
            candidates=[candidate.as_candidate() for candidate in candidates],
            support_score=selection.support_score,
            oppose_score=selection.oppose_score,
        )

    @staticmethod
    def _describe(selection: SideSelection, scored: Sequence[ScoredCast], pool: int) -> str:
        side = selection.winning_side
        draw = f"winner drawn at random from the top {pool} {side} casts"
        if selection.resolution == SideResolution.UNCONTESTED:
            return f"Only the {side} side received casts; {draw}."
        support = selection.support_score or 0.0
        oppose = selection.oppose_score or 0.0
        if selection.resolution == SideResolution.HIGHER_MEAN:
            winning, losing = (support, oppose) if side == CastSide.SUPPORT else (oppose, support)
            return (
                f"{side} side won with an average score of {winning:.2f} "
                f"against {losing:.2f}; {draw}."
            )
        if selection.resolution == SideResolution.QUALITY_TIEBREAK:
            quality = {
                s: sum(cast.quality for cast in scored if cast.side == s) for s in CastSide.ALL
            }
            other = CastSide.OPPOSE if side == CastSide.SUPPORT else CastSide.SUPPORT
            return (
                f"Both sides averaged {support:.2f}; {side} won on total quality "
                f"({quality[side]:.2f} against {quality[other]:.2f}); {draw}."
            )
        return (
            f"Both sides averaged {support:.2f} with equal total quality; "
            f"{side} was chosen at random; {draw}."
        )

    def generate_insights(
        self, battle: "Battle", candidates: Sequence[ScoredCast]
    ) -> Optional[str]:
        """Ask the insight generator what made the top casts work.

        The prompt carries each candidate's full text; the stored candidate
        list only keeps excerpts.

        Any failure yields ``None``; insights never block a battle from
        completing.
        """

        if self._insight_generator is None or not candidates:
            return None

        contributions = "\n".join(
            f"{index}. Score: {round(candidate.total, 2)}/10\n   Content: \"{candidate.content}\""
            for index, candidate in enumerate(candidates, start=1)
        )
        prompt = (
            "Analyze the debate contributions and generate insights about the winning arguments.\n\n"
            f"BATTLE TOPIC: \"{battle.title}\"\n"
            f"BATTLE DESCRIPTION: \"{battle.description}\"\n\n"
            f"TOP CONTRIBUTIONS:\n{contributions}\n\n"
            "TASK: Generate insights about:\n"
            "1. What made these arguments successful?\n"
            "2. Common themes or patterns?\n"
            "3. Key insights about the debate topic?\n"
            "4. What can we learn from the winning side?\n\n"
            "Provide a concise but insightful analysis (max 200 words)."
        )
        try:
            text = self._insight_generator.generate_text(prompt)
        except Exception as exc:
            logger.warning("Insight generation failed for battle %s: %s", battle.id, exc)
            return None
        text = (text or "").strip()
        return text or None


__all__ = [
    "OPTIMIZED_HYBRID",
    "SINGLE_PARTICIPANT",
    "TOP_K",
    "RandomSource",
    "ScoredCast",
    "SideResolution",
    "SideSelection",
    "WinnerDeterminationEngine",
    "WinnerRecord",
]
