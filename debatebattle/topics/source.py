"""Topic sources: where raw topic candidates come from."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

from .validation import TopicCandidate, TopicStrategy
from ..models.battle import BATTLE_CATEGORIES

logger = logging.getLogger(__name__)


class StructuredGenerator(Protocol):
    def generate_structured(self, prompt: str, schema: Mapping[str, Any]) -> Mapping[str, Any]: ...


class TopicSource(Protocol):
    def fetch(self, strategy: str) -> TopicCandidate: ...


TOPIC_SCHEMA: Mapping[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "category": {"type": "string", "enum": list(BATTLE_CATEGORIES)},
        "source": {"type": "string"},
        "supportPoints": {"type": "array", "items": {"type": "string"}},
        "opposePoints": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["title", "description", "category", "supportPoints", "opposePoints"],
}

STRATEGY_HINTS = {
    TopicStrategy.DEFAULT: (
        "Pick the most engaging trending news story of the day in politics, "
        "economics, technology or crypto."
    ),
    TopicStrategy.DIFFERENT_CATEGORY: (
        "Pick a story from technology, business or health, avoiding the "
        "categories of the most recent debates."
    ),
    TopicStrategy.BROAD_TOPIC: (
        "Pick a broad, general-interest issue from world news, science or "
        "society rather than a single narrow headline."
    ),
}


class GeneratedTopicSource:
    """Asks a structured generation service for a debate topic."""

    def __init__(self, generator: StructuredGenerator) -> None:
        self._generator = generator

    def fetch(self, strategy: str) -> TopicCandidate:
        if strategy not in STRATEGY_HINTS:
            raise ValueError(f"Unknown topic strategy: {strategy}")
        logger.info("Requesting debate topic with %s strategy", strategy)
        payload = self._generator.generate_structured(self.build_prompt(strategy), TOPIC_SCHEMA)
        return TopicCandidate.from_payload(payload, strategy)

    @staticmethod
    def build_prompt(strategy: str) -> str:
        categories = ", ".join(BATTLE_CATEGORIES)
        return (
            "You are curating a one-hour public debate.\n"
            f"{STRATEGY_HINTS[strategy]}\n\n"
            "Turn it into a debate topic and respond with JSON containing:\n"
            "- title: a neutral debate question, 10 to 200 characters\n"
            "- description: 20 to 1000 characters of background\n"
            f"- category: one of {categories}\n"
            "- source: the outlet or origin of the story\n"
            "- supportPoints: 2 to 4 arguments for the proposition, each at least 10 characters\n"
            "- opposePoints: 2 to 4 arguments against it, each at least 10 characters\n"
        )


__all__ = ["GeneratedTopicSource", "STRATEGY_HINTS", "TOPIC_SCHEMA", "TopicSource"]
