"""Topic generation, validation and deduplication."""

from .cache import TTLCache
from .history import SQLTopicHistory, TopicHistory
from .pipeline import AttemptOutcome, AttemptRecord, TopicPipeline
from .similarity import SimilarityComparator, lexical_similarity
from .source import GeneratedTopicSource, TopicSource
from .validation import TopicCandidate, TopicStrategy, ValidatedTopic, validate_topic

__all__ = [
    "AttemptOutcome",
    "AttemptRecord",
    "GeneratedTopicSource",
    "SQLTopicHistory",
    "SimilarityComparator",
    "TTLCache",
    "TopicCandidate",
    "TopicHistory",
    "TopicPipeline",
    "TopicSource",
    "TopicStrategy",
    "ValidatedTopic",
    "lexical_similarity",
    "validate_topic",
]
