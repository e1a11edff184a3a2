"""Exception hierarchy for the debate battle core."""

from __future__ import annotations

import re
from typing import Any, Optional, Sequence

_STATUS_429 = re.compile(r"\b429\b")


class DebateBattleError(Exception):
    """Root of all errors raised by this package."""


class GenerationServiceError(DebateBattleError):
    """The text/struct generation service failed or returned garbage."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class QuotaExceededError(GenerationServiceError):
    """The generation service reported a rate-limit or quota condition.

    Callers must not retry within the same scheduling cycle.
    """


class TopicValidationError(DebateBattleError):
    """A generated topic failed structural validation."""

    def __init__(self, reasons: Sequence[str]) -> None:
        self.reasons = list(reasons)
        super().__init__("Topic failed validation: " + "; ".join(self.reasons))


class TopicGenerationError(DebateBattleError):
    """The topic pipeline exhausted its attempts without an accepted topic."""

    def __init__(self, message: str, attempts: Sequence[Any] = ()) -> None:
        super().__init__(message)
        self.attempts = list(attempts)


class LedgerError(DebateBattleError):
    """Settlement with the external ledger failed."""


def is_quota_error(exc: BaseException) -> bool:
    """Return ``True`` when ``exc`` looks like a rate-limit/quota failure."""

    if isinstance(exc, QuotaExceededError):
        return True
    if getattr(exc, "status_code", None) == 429:
        return True
    message = str(exc).lower()
    return (
        _STATUS_429.search(message) is not None
        or "rate limit" in message
        or "quota" in message
        or "resource_exhausted" in message
    )


__all__ = [
    "DebateBattleError",
    "GenerationServiceError",
    "LedgerError",
    "QuotaExceededError",
    "TopicGenerationError",
    "TopicValidationError",
    "is_quota_error",
]
