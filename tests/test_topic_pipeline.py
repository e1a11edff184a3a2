import unittest
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from debatebattle.config import BattleConfig
from debatebattle.db.engine import get_sessionmaker, make_engine
from debatebattle.exceptions import (
    GenerationServiceError,
    QuotaExceededError,
    TopicGenerationError,
)
from debatebattle.models import Base
from debatebattle.topics.cache import TTLCache
from debatebattle.topics.history import SQLTopicHistory
from debatebattle.topics.pipeline import (
    TOPIC_CACHE_TTL_SECONDS,
    AttemptOutcome,
    TopicPipeline,
    half_day_window,
)
from debatebattle.topics.similarity import SimilarityComparator
from debatebattle.topics.source import GeneratedTopicSource
from debatebattle.topics.validation import TopicCandidate
from debatebattle.workflows import complete_battle, create_battle


def make_candidate(title="Should remote work become a legal right?", **overrides):
    candidate = TopicCandidate(
        title=title,
        description="Governments are debating whether employees may demand remote work.",
        category="society",
        support_points=("Workers save hours of commuting", "Offices waste energy and space"),
        oppose_points=("Teams lose informal mentoring", "Some jobs cannot be done from home"),
    )
    return replace(candidate, **overrides)


class ScriptedSource:
    def __init__(self, *results):
        self.results = list(results)
        self.calls = []

    def fetch(self, strategy):
        self.calls.append(strategy)
        result = self.results.pop(0)
        if isinstance(result, BaseException):
            raise result
        return replace(result, strategy=strategy)


class ScriptedGenerator:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []

    def generate_text(self, prompt):
        self.prompts.append(prompt)
        return self.responses.pop(0)


class FakeHistory:
    def __init__(self, descriptions=(), created_today=0):
        self.descriptions = list(descriptions)
        self.created_today = created_today
        self.limits = []

    def recent_descriptions(self, limit):
        self.limits.append(limit)
        return self.descriptions[:limit]

    def count_created_between(self, start, end):
        return self.created_today


class MutableClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class FakeMonotonic:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


MORNING = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
RECENT = ["Last battle was about whether cities should ban private cars downtown."]


class TestTopicPipeline(unittest.TestCase):
    def build(self, source, generator=None, history=None, clock=None, cache=None, **config):
        self.sleeps = []
        return TopicPipeline(
            source,
            SimilarityComparator(generator),
            history or FakeHistory(RECENT),
            config=BattleConfig(**config),
            cache=cache,
            sleep=self.sleeps.append,
            now=clock or MutableClock(MORNING),
        )

    def test_accepts_first_valid_unique_topic(self):
        source = ScriptedSource(make_candidate())
        generator = ScriptedGenerator("0.1")
        history = FakeHistory(RECENT)
        pipeline = self.build(source, generator, history)
        topic = pipeline.generate_topic()
        self.assertEqual(topic.attempt, 1)
        self.assertEqual(topic.strategy, "default")
        self.assertEqual(topic.similarity, 0.1)
        self.assertEqual(history.limits, [2])
        self.assertIn(topic.title, generator.prompts[0])
        self.assertEqual(self.sleeps, [])

    def test_too_similar_then_accepted_with_different_category(self):
        source = ScriptedSource(
            make_candidate("Should cities ban private cars downtown?"),
            make_candidate("Should sugary drinks carry a health tax?"),
        )
        generator = ScriptedGenerator("0.85", "0.2")
        pipeline = self.build(source, generator)
        topic = pipeline.generate_topic()
        self.assertEqual(topic.attempt, 2)
        self.assertEqual(topic.strategy, "different_category")
        self.assertEqual(source.calls, ["default", "different_category"])
        self.assertEqual(
            [a.outcome for a in pipeline.attempts],
            [AttemptOutcome.TOO_SIMILAR, AttemptOutcome.ACCEPTED],
        )
        self.assertEqual(pipeline.attempts[0].similarity, 0.85)
        self.assertEqual(self.sleeps, [2.0])

    def test_similarity_at_threshold_is_accepted(self):
        pipeline = self.build(ScriptedSource(make_candidate()), ScriptedGenerator("0.7"))
        self.assertEqual(pipeline.generate_topic().similarity, 0.7)

    def test_quota_error_aborts_immediately(self):
        source = ScriptedSource(QuotaExceededError("quota exceeded", status_code=429), make_candidate())
        pipeline = self.build(source, ScriptedGenerator("0.1"))
        with self.assertRaises(QuotaExceededError):
            pipeline.generate_topic()
        self.assertEqual(source.calls, ["default"])
        self.assertEqual(len(pipeline.attempts), 1)
        self.assertEqual(pipeline.attempts[0].outcome, AttemptOutcome.QUOTA)
        self.assertEqual(self.sleeps, [])

    def test_rate_limit_message_is_treated_as_quota(self):
        source = ScriptedSource(RuntimeError("HTTP 429 Too Many Requests"), make_candidate())
        pipeline = self.build(source)
        with self.assertRaises(QuotaExceededError) as ctx:
            pipeline.generate_topic()
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)
        self.assertEqual(len(source.calls), 1)

    def test_request_id_containing_429_is_retried(self):
        source = ScriptedSource(RuntimeError("upstream failure for req-84291"), make_candidate())
        pipeline = self.build(source, ScriptedGenerator("0.1"))
        topic = pipeline.generate_topic()
        self.assertEqual(topic.attempt, 2)
        self.assertEqual(pipeline.attempts[0].outcome, AttemptOutcome.ERROR)
        self.assertEqual(self.sleeps, [2.0])

    def test_transient_errors_retry_with_linear_backoff(self):
        source = ScriptedSource(
            GenerationServiceError("connection reset"),
            make_candidate(title="bad"),
            make_candidate(),
        )
        pipeline = self.build(source, ScriptedGenerator("0.05"))
        topic = pipeline.generate_topic()
        self.assertEqual(topic.attempt, 3)
        self.assertEqual(topic.strategy, "broad_topic")
        self.assertEqual(
            [a.outcome for a in pipeline.attempts],
            [AttemptOutcome.ERROR, AttemptOutcome.INVALID, AttemptOutcome.ACCEPTED],
        )
        self.assertEqual(self.sleeps, [2.0, 4.0])

    def test_exhaustion_raises_with_attempts(self):
        source = ScriptedSource(*(make_candidate(title="bad") for _ in range(3)))
        pipeline = self.build(source)
        with self.assertRaises(TopicGenerationError) as ctx:
            pipeline.generate_topic()
        self.assertEqual(len(ctx.exception.attempts), 3)
        self.assertEqual(
            [a.strategy for a in ctx.exception.attempts],
            ["default", "different_category", "broad_topic"],
        )
        self.assertEqual(self.sleeps, [2.0, 4.0])

    def test_same_window_returns_cached_topic(self):
        clock = MutableClock(MORNING)
        source = ScriptedSource(make_candidate(), make_candidate("Should voting be mandatory for adults?"))
        generator = ScriptedGenerator("0.1", "0.1")
        pipeline = self.build(source, generator, clock=clock)

        first = pipeline.generate_topic()
        clock.now = MORNING + timedelta(hours=2)
        second = pipeline.generate_topic()
        self.assertIs(first, second)
        self.assertEqual(len(source.calls), 1)

        clock.now = MORNING + timedelta(hours=4)
        third = pipeline.generate_topic()
        self.assertEqual(len(source.calls), 2)
        self.assertNotEqual(third.title, first.title)

    def test_new_battle_today_changes_cache_key(self):
        history = FakeHistory(RECENT, created_today=0)
        source = ScriptedSource(make_candidate(), make_candidate("Should voting be mandatory for adults?"))
        pipeline = self.build(source, ScriptedGenerator("0.1", "0.1"), history)
        pipeline.generate_topic()
        history.created_today = 1
        pipeline.generate_topic()
        self.assertEqual(len(source.calls), 2)

    def test_cache_key_format(self):
        pipeline = self.build(ScriptedSource(), history=FakeHistory(created_today=2))
        self.assertEqual(pipeline.cache_key(MORNING), "daily_battle_2026-03-01_am_3")
        evening = MORNING.replace(hour=18)
        self.assertEqual(pipeline.cache_key(evening), "daily_battle_2026-03-01_pm_3")

    def test_half_day_window(self):
        self.assertEqual(half_day_window(MORNING.replace(hour=11, minute=59)), "am")
        self.assertEqual(half_day_window(MORNING.replace(hour=12)), "pm")

    def test_naive_moments_are_read_as_utc(self):
        afternoon = datetime(2026, 3, 1, 13, 0)
        self.assertEqual(half_day_window(afternoon), "pm")
        pipeline = self.build(ScriptedSource(), history=FakeHistory(created_today=0))
        self.assertEqual(pipeline.cache_key(afternoon), "daily_battle_2026-03-01_pm_1")

    def test_empty_injected_cache_is_kept(self):
        topics = TTLCache(TOPIC_CACHE_TTL_SECONDS)
        pipeline = self.build(ScriptedSource(), cache=topics)
        self.assertIs(pipeline.cache, topics)

    def test_cached_topic_expires_after_half_a_day(self):
        ticks = FakeMonotonic()
        source = ScriptedSource(make_candidate(), make_candidate("Should voting be mandatory for adults?"))
        pipeline = self.build(
            source,
            ScriptedGenerator("0.1", "0.1"),
            cache=TTLCache(TOPIC_CACHE_TTL_SECONDS, clock=ticks),
        )
        first = pipeline.generate_topic()
        ticks.now += TOPIC_CACHE_TTL_SECONDS - 1
        self.assertIs(pipeline.generate_topic(), first)
        ticks.now += 1
        second = pipeline.generate_topic()
        self.assertEqual(len(source.calls), 2)
        self.assertNotEqual(second.title, first.title)


class DummyStructuredGenerator:
    def __init__(self, payload):
        self.payload = payload
        self.calls = []

    def generate_structured(self, prompt, schema):
        self.calls.append((prompt, schema))
        return self.payload


class TestGeneratedTopicSource(unittest.TestCase):
    def test_fetch_builds_candidate_with_strategy(self):
        generator = DummyStructuredGenerator(
            {
                "title": "Should cryptocurrencies be legal tender?",
                "description": "A second country is weighing bitcoin as official money.",
                "category": "crypto",
                "supportPoints": ["Cheaper remittances for migrants", "Hedge against inflation"],
                "opposePoints": ["Prices swing wildly each day", "Hard to tax and regulate"],
            }
        )
        candidate = GeneratedTopicSource(generator).fetch("broad_topic")
        self.assertEqual(candidate.strategy, "broad_topic")
        self.assertEqual(candidate.category, "crypto")
        prompt, schema = generator.calls[0]
        self.assertIn("broad", prompt)
        self.assertIn("supportPoints", schema["required"])

    def test_unknown_strategy(self):
        with self.assertRaises(ValueError):
            GeneratedTopicSource(DummyStructuredGenerator({})).fetch("surprise")


class TestSQLTopicHistory(unittest.TestCase):
    def setUp(self):
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)

    def tearDown(self):
        self.engine.dispose()

    def test_recent_descriptions_and_daily_count(self):
        with self.Session.begin() as session:
            for hour in range(3):
                battle = create_battle(
                    session,
                    make_candidate(description=f"Background number {hour} of this debate"),
                    duration_hours=1,
                    start_time=MORNING + timedelta(hours=hour),
                )
                complete_battle(session, battle, now=battle.end_time)
            create_battle(session, make_candidate(), duration_hours=1, start_time=MORNING + timedelta(hours=3))

        history = SQLTopicHistory(self.Session)
        self.assertEqual(
            history.recent_descriptions(2),
            ["Background number 2 of this debate", "Background number 1 of this debate"],
        )
        day = MORNING.replace(hour=0)
        self.assertEqual(history.count_created_between(day, day + timedelta(days=1)), 4)
        self.assertEqual(
            history.count_created_between(day + timedelta(days=1), day + timedelta(days=2)), 0
        )


if __name__ == "__main__":
    unittest.main()
