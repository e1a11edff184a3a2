"""Similarity between topic strings, service-backed with a lexical fallback."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from .cache import SIMILARITY_TTL_SECONDS, TTLCache
from ..exceptions import GenerationServiceError

logger = logging.getLogger(__name__)


class TextGenerator(Protocol):
    def generate_text(self, prompt: str) -> str: ...


class SimilarityMethod:
    SERVICE = "service"
    CACHED = "cached"
    LEXICAL = "lexical"


@dataclass(frozen=True)
class SimilarityResult:
    score: float
    method: str


def pair_key(left: str, right: str) -> str:
    """Cache key for an unordered pair of strings."""
    first, second = sorted((left, right))
    digest = hashlib.sha256()
    digest.update(first.encode("utf-8"))
    digest.update(b"\x00")
    digest.update(second.encode("utf-8"))
    return digest.hexdigest()


def lexical_similarity(left: str, right: str) -> float:
    """Jaccard similarity of the lowercase whitespace-separated words."""
    words_left = set(left.lower().split())
    words_right = set(right.lower().split())
    union = words_left | words_right
    if not union:
        return 0.0
    return len(words_left & words_right) / len(union)


def parse_similarity(text: str) -> float:
    """Parse a bare ``0.0``-``1.0`` number out of a service response."""
    try:
        value = float(str(text).strip())
    except ValueError as exc:
        raise GenerationServiceError(f"Invalid similarity score: {text!r}") from exc
    if not 0.0 <= value <= 1.0:
        raise GenerationServiceError(f"Similarity score out of range: {value}")
    return value


class SimilarityComparator:
    """Compares topic strings, caching service results by unordered pair.

    Parameters
    ----------
    generator : Optional[TextGenerator]
        Text generation service asked for a semantic similarity score. When
        ``None`` every comparison uses :func:`lexical_similarity`.
    cache : Optional[TTLCache]
        Cache shared for the lifetime of the process. A fresh 24 hour cache
        is created when omitted.
    """

    def __init__(
        self,
        generator: Optional[TextGenerator] = None,
        cache: Optional[TTLCache[str, float]] = None,
    ) -> None:
        self._generator = generator
        self.cache: TTLCache[str, float] = (
            cache if cache is not None else TTLCache(SIMILARITY_TTL_SECONDS)
        )

    def compare(self, left: str, right: str) -> SimilarityResult:
        key = pair_key(left, right)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Using cached similarity %.3f", cached)
            return SimilarityResult(cached, SimilarityMethod.CACHED)

        if self._generator is not None:
            try:
                score = parse_similarity(self._generator.generate_text(self._prompt(left, right)))
            except Exception as exc:
                logger.warning("Similarity service failed, using lexical fallback: %s", exc)
            else:
                self.cache.set(key, score)
                return SimilarityResult(score, SimilarityMethod.SERVICE)

        return SimilarityResult(lexical_similarity(left, right), SimilarityMethod.LEXICAL)

    def max_similarity(self, text: str, others: Sequence[str]) -> float:
        """Highest similarity of ``text`` to any of ``others`` (0 when empty)."""
        best = 0.0
        for other in others:
            result = self.compare(text, other)
            best = max(best, result.score)
        return best

    @staticmethod
    def _prompt(left: str, right: str) -> str:
        return (
            "Compare these two debate topics and return a similarity score from 0.0 to 1.0:\n\n"
            f'Topic 1: "{left}"\n'
            f'Topic 2: "{right}"\n\n'
            "Consider:\n"
            "- Core concepts and themes\n"
            "- Subject matter overlap\n"
            "- Debate angle similarity\n"
            "- Overall topic scope\n\n"
            "Return only a number between 0.0 and 1.0 "
            "(e.g., 0.85 for very similar, 0.15 for very different):"
        )


__all__ = [
    "SimilarityComparator",
    "SimilarityMethod",
    "SimilarityResult",
    "lexical_similarity",
    "pair_key",
    "parse_similarity",
]
