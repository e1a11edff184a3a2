"""Generates a validated, deduplicated topic for the next battle."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .cache import TTLCache
from .history import TopicHistory
from .similarity import SimilarityComparator
from .source import TopicSource
from .validation import TopicStrategy, ValidatedTopic, validate_topic
from ..config import BattleConfig
from ..db.utils import ensure_utc
from ..exceptions import (
    QuotaExceededError,
    TopicGenerationError,
    TopicValidationError,
    is_quota_error,
)

logger = logging.getLogger(__name__)

RECENT_BATTLES_CHECKED = 2
TOPIC_CACHE_TTL_SECONDS = 12 * 60 * 60


class AttemptOutcome:
    ACCEPTED = "accepted"
    INVALID = "invalid"
    TOO_SIMILAR = "too_similar"
    ERROR = "error"
    QUOTA = "quota"


@dataclass(frozen=True)
class AttemptRecord:
    """What happened during one pipeline attempt."""

    attempt: int
    strategy: str
    outcome: str
    similarity: Optional[float] = None
    error: Optional[str] = None


class TopicTooSimilarError(Exception):
    """Internal signal that a candidate matched a recent battle too closely."""

    def __init__(self, similarity: float, threshold: float) -> None:
        super().__init__(
            f"Topic similarity {similarity:.3f} exceeds threshold {threshold:.3f}"
        )
        self.similarity = similarity


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def half_day_window(moment: datetime) -> str:
    """``"am"`` for 00:00-12:00 UTC, ``"pm"`` for 12:00-24:00 UTC."""
    return "am" if ensure_utc(moment).hour < 12 else "pm"


class TopicPipeline:
    """Retry loop that turns topic-source output into an accepted topic.

    Each attempt fetches a candidate with the attempt's strategy, validates
    it structurally and rejects it when it is too similar to the most recent
    completed battles. Rate-limit failures end the loop at once; any other
    failure is retried after ``attempt * config.topic_backoff_seconds``.

    Accepted topics are cached per UTC day, half-day window and same-day
    battle sequence number.

    Parameters
    ----------
    source : TopicSource
        Produces raw candidates for a strategy.
    comparator : SimilarityComparator
        Scores a candidate against recent battle descriptions.
    history : TopicHistory
        Supplies recent descriptions and the count of battles created today.
    config : Optional[BattleConfig]
        Threshold, attempt count and backoff unit.
    cache : Optional[TTLCache]
        Accepted-topic cache shared for the process lifetime.
    sleep : Callable[[float], None]
        Backoff sleeper, replaced in tests.
    now : Callable[[], datetime]
        Aware UTC clock used for cache keys.
    """

    def __init__(
        self,
        source: TopicSource,
        comparator: SimilarityComparator,
        history: TopicHistory,
        *,
        config: Optional[BattleConfig] = None,
        cache: Optional[TTLCache[str, ValidatedTopic]] = None,
        sleep: Callable[[float], None] = time.sleep,
        now: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.source = source
        self.comparator = comparator
        self.history = history
        self.config = config or BattleConfig()
        self.cache: TTLCache[str, ValidatedTopic] = (
            cache if cache is not None else TTLCache(TOPIC_CACHE_TTL_SECONDS)
        )
        self._sleep = sleep
        self._now = now
        self.attempts: list[AttemptRecord] = []

    def cache_key(self, moment: Optional[datetime] = None) -> str:
        moment = ensure_utc(moment or self._now())
        day_start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
        try:
            created_today = self.history.count_created_between(
                day_start, day_start + timedelta(days=1)
            )
        except Exception:
            logger.exception("Could not count today's battles; assuming none")
            created_today = 0
        sequence = created_today + 1
        return f"daily_battle_{moment.date().isoformat()}_{half_day_window(moment)}_{sequence}"

    def generate_topic(self) -> ValidatedTopic:
        """Return an accepted topic, from the cache when possible.

        Raises
        ------
        QuotaExceededError
            The source reported a rate-limit or quota condition. No further
            attempts are made.
        TopicGenerationError
            Every attempt failed. ``attempts`` lists what happened.
        """

        key = self.cache_key()
        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Returning cached topic %r for %s", cached.title, key)
            return cached

        self.attempts = []
        max_attempts = self.config.topic_max_attempts
        last_error: Optional[BaseException] = None

        for attempt in range(1, max_attempts + 1):
            strategy = TopicStrategy.for_attempt(attempt)
            logger.info(
                "Topic attempt %d/%d using %s strategy", attempt, max_attempts, strategy
            )
            try:
                topic = self._attempt(attempt, strategy)
            except TopicValidationError as exc:
                self._record(attempt, strategy, AttemptOutcome.INVALID, error=str(exc))
                last_error = exc
            except TopicTooSimilarError as exc:
                self._record(
                    attempt,
                    strategy,
                    AttemptOutcome.TOO_SIMILAR,
                    similarity=exc.similarity,
                    error=str(exc),
                )
                last_error = exc
            except Exception as exc:
                if is_quota_error(exc):
                    self._record(attempt, strategy, AttemptOutcome.QUOTA, error=str(exc))
                    logger.error("Topic generation hit a rate limit; not retrying: %s", exc)
                    if isinstance(exc, QuotaExceededError):
                        raise
                    raise QuotaExceededError(str(exc)) from exc
                self._record(attempt, strategy, AttemptOutcome.ERROR, error=str(exc))
                logger.warning("Topic attempt %d failed: %s", attempt, exc)
                last_error = exc
            else:
                self._record(
                    attempt, strategy, AttemptOutcome.ACCEPTED, similarity=topic.similarity
                )
                self.cache.set(key, topic)
                logger.info(
                    "Accepted topic %r on attempt %d (similarity %.3f)",
                    topic.title,
                    attempt,
                    topic.similarity,
                )
                return topic

            if attempt < max_attempts:
                self._sleep(attempt * self.config.topic_backoff_seconds)

        logger.error("All %d topic attempts failed. Last error: %s", max_attempts, last_error)
        raise TopicGenerationError(
            f"Failed to generate battle topic after {max_attempts} attempts: {last_error}",
            self.attempts,
        ) from last_error

    def _attempt(self, attempt: int, strategy: str) -> ValidatedTopic:
        candidate = validate_topic(self.source.fetch(strategy))
        recent = self.history.recent_descriptions(RECENT_BATTLES_CHECKED)
        similarity = self.comparator.max_similarity(candidate.title, recent)
        if similarity > self.config.similarity_threshold:
            raise TopicTooSimilarError(similarity, self.config.similarity_threshold)
        return ValidatedTopic.accept(candidate, attempt=attempt, similarity=similarity)

    def _record(self, attempt: int, strategy: str, outcome: str, **details) -> None:
        self.attempts.append(AttemptRecord(attempt, strategy, outcome, **details))


__all__ = [
    "AttemptOutcome",
    "AttemptRecord",
    "RECENT_BATTLES_CHECKED",
    "TopicPipeline",
    "half_day_window",
]
