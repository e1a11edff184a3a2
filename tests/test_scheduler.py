import random
import threading
import unittest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from sqlalchemy import select

from debatebattle.config import BattleConfig
from debatebattle.db.engine import get_sessionmaker, make_engine
from debatebattle.exceptions import LedgerError, QuotaExceededError, TopicGenerationError
from debatebattle.judging.engine import WinnerDeterminationEngine
from debatebattle.ledger.api import LedgerClient
from debatebattle.models import (
    Base,
    Battle,
    BattleHistory,
    BattleStatus,
    BattleWinner,
    CastSide,
    LedgerTransaction,
    User,
)
from debatebattle.moderation import ModerationVerdict
from debatebattle.scheduler import BattleScheduler
from debatebattle.topics.validation import TopicCandidate, ValidatedTopic
from debatebattle.workflows import claim_battle_for_completion, create_battle, submit_cast

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)

TOPIC = ValidatedTopic.accept(
    TopicCandidate(
        title="Should cities ban private cars downtown?",
        description="Several capitals are testing car-free centres this year.",
        category="society",
        support_points=("Cleaner air for residents", "Safer streets for children"),
        oppose_points=("Hurts small shops in the centre", "Penalises people with disabilities"),
    ),
    attempt=1,
    similarity=0.1,
)


class MutableClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class FakePipeline:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def generate_topic(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return TOPIC


class FailingEngine:
    def determine_winner(self, battle, casts, verdicts=None):
        raise RuntimeError("scoring blew up")


class FlaggingModerator:
    def __init__(self, appropriate_ids=(), error=None):
        self.appropriate_ids = set(appropriate_ids)
        self.error = error

    def moderate_all(self, casts, battle):
        if self.error is not None:
            raise self.error
        return {
            cast.id: ModerationVerdict(cast_id=cast.id, appropriate=cast.id in self.appropriate_ids)
            for cast in casts
        }


class DummyLedgerClient(LedgerClient):
    def __init__(self, error=None):
        self.error = error
        self.declared = []

    def is_debate_completed(self, debate_id):
        return False

    def declare_winner(self, debate_id, winner_address):
        self.declared.append((debate_id, winner_address))
        if self.error is not None:
            raise self.error
        return {"tx_hash": f"0x{debate_id}"}


class SchedulerTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)
        self.clock = MutableClock(T0)
        self.pipeline = FakePipeline()

    def tearDown(self):
        self.engine.dispose()

    def make_scheduler(self, **kwargs):
        kwargs.setdefault("engine", WinnerDeterminationEngine(rng=random.Random(7)))
        kwargs.setdefault("config", BattleConfig(duration_hours=1.0, winner_reward_points=100))
        return BattleScheduler(self.Session, self.pipeline, clock=self.clock, **kwargs)

    def seed_battle(self, casts=(), debate_id=None, duration_hours=1.0, start=T0):
        """Create a battle starting at ``start`` with ``casts`` as (address, side, text)."""
        with self.Session.begin() as session:
            battle = create_battle(
                session, TOPIC, duration_hours=duration_hours, start_time=start, debate_id=debate_id
            )
            cast_ids = []
            for address, side, content in casts:
                user = User.get_by_address(session, address)
                if user is None:
                    user = User(address=address)
                    session.add(user)
                    session.flush()
                cast = submit_cast(
                    session, battle, user, side, content, now=start + timedelta(minutes=1)
                )
                cast_ids.append(cast.id)
            return battle.id, cast_ids

    def battle(self, battle_id):
        with self.Session() as session:
            return session.get(Battle, battle_id)

    def points(self, address):
        with self.Session() as session:
            return User.get_by_address(session, address).points


ARGUMENTS = [
    ("0xa", CastSide.SUPPORT, "Because car-free centres cut pollution, cities should act now."),
    ("0xb", CastSide.SUPPORT, "Research shows fewer cars means safer streets for children."),
    ("0xc", CastSide.OPPOSE, "Small shops lose customers who can no longer drive downtown."),
]


class TestTick(SchedulerTestCase):
    def test_creates_battle_when_none_is_active(self):
        report = self.make_scheduler().tick()
        self.assertTrue(report.ok)
        self.assertIsNotNone(report.created_battle_id)
        battle = self.battle(report.created_battle_id)
        self.assertEqual(battle.status, BattleStatus.ACTIVE)
        self.assertEqual(battle.title, TOPIC.title)
        self.assertEqual(battle.duration_hours, 1.0)
        self.assertEqual(battle.end_time.replace(tzinfo=timezone.utc), T0 + timedelta(hours=1))

    def test_running_battle_is_left_alone(self):
        self.seed_battle()
        self.clock.now = T0 + timedelta(minutes=30)
        report = self.make_scheduler().tick()
        self.assertEqual(report.completed, [])
        self.assertIsNone(report.created_battle_id)
        self.assertEqual(self.pipeline.calls, 0)

    def test_expired_battle_is_judged_rewarded_and_replaced(self):
        battle_id, cast_ids = self.seed_battle(ARGUMENTS)
        self.clock.now = T0 + timedelta(hours=1)
        scheduler = self.make_scheduler()

        report = scheduler.tick()

        self.assertTrue(report.ok, report.errors)
        self.assertEqual(report.completed, [battle_id])
        self.assertIn(report.winners[battle_id], cast_ids)
        self.assertIsNotNone(report.created_battle_id)
        self.assertNotEqual(report.created_battle_id, battle_id)

        with self.Session() as session:
            battle = session.get(Battle, battle_id)
            self.assertEqual(battle.status, BattleStatus.COMPLETED)
            winner = battle.winner
            self.assertEqual(winner.cast_id, report.winners[battle_id])
            self.assertEqual(winner.selection_method, "optimized-hybrid")
            self.assertEqual(battle.history.total_casts, 3)
            self.assertEqual(battle.history.winner_address, winner.user.address)
            self.assertEqual(winner.user.points, 100)
            self.assertEqual(session.scalars(select(LedgerTransaction)).all(), [])

        status = scheduler.status()
        self.assertEqual(status.ticks_run, 1)
        self.assertEqual(status.consecutive_failures, 0)
        self.assertEqual(status.last_success_at, self.clock.now)

    def test_single_participant_wins(self):
        battle_id, cast_ids = self.seed_battle(ARGUMENTS[:1])
        self.clock.now = T0 + timedelta(hours=2)
        report = self.make_scheduler().tick()
        self.assertEqual(report.winners[battle_id], cast_ids[0])
        with self.Session() as session:
            self.assertEqual(
                session.get(Battle, battle_id).winner.selection_method, "single-participant"
            )
        self.assertEqual(self.points("0xa"), 100)

    def test_battle_without_casts_completes_without_winner(self):
        battle_id, _ = self.seed_battle()
        self.clock.now = T0 + timedelta(hours=1)
        report = self.make_scheduler().tick()
        self.assertEqual(report.winners, {battle_id: None})
        with self.Session() as session:
            battle = session.get(Battle, battle_id)
            self.assertEqual(battle.status, BattleStatus.COMPLETED)
            self.assertIsNone(battle.winner)
            self.assertEqual(battle.history.total_casts, 0)

    def test_expired_battles_complete_oldest_first(self):
        first, _ = self.seed_battle(start=T0)
        second, _ = self.seed_battle(start=T0 + timedelta(hours=1))
        self.clock.now = T0 + timedelta(hours=5)
        report = self.make_scheduler().tick()
        self.assertEqual(report.completed, [first, second])

    def test_judging_failure_still_completes(self):
        battle_id, _ = self.seed_battle(ARGUMENTS)
        self.clock.now = T0 + timedelta(hours=1)
        report = self.make_scheduler(engine=FailingEngine()).tick()
        self.assertTrue(report.ok)
        self.assertEqual(report.winners, {battle_id: None})
        self.assertEqual(self.battle(battle_id).status, BattleStatus.COMPLETED)
        self.assertEqual(self.points("0xa"), 0)

    def test_moderation_narrows_the_field(self):
        battle_id, cast_ids = self.seed_battle(ARGUMENTS)
        self.clock.now = T0 + timedelta(hours=1)
        moderator = FlaggingModerator(appropriate_ids=[cast_ids[2]])
        report = self.make_scheduler(moderator=moderator).tick()
        self.assertEqual(report.winners[battle_id], cast_ids[2])
        self.assertEqual(self.points("0xc"), 100)

    def test_moderation_failure_judges_every_cast(self):
        battle_id, cast_ids = self.seed_battle(ARGUMENTS)
        self.clock.now = T0 + timedelta(hours=1)
        moderator = FlaggingModerator(error=RuntimeError("moderation offline"))
        report = self.make_scheduler(moderator=moderator).tick()
        self.assertIn(report.winners[battle_id], cast_ids)

    def test_lost_claim_is_skipped(self):
        battle_id, _ = self.seed_battle(ARGUMENTS)
        self.clock.now = T0 + timedelta(hours=1)
        with patch("debatebattle.workflows.claim_battle_for_completion", return_value=False):
            report = self.make_scheduler().tick()
        self.assertEqual(report.skipped, [battle_id])
        self.assertEqual(report.completed, [])
        self.assertEqual(self.battle(battle_id).status, BattleStatus.ACTIVE)
        self.assertEqual(self.pipeline.calls, 0)

    def test_claimed_battle_is_not_processed_twice(self):
        battle_id, _ = self.seed_battle(ARGUMENTS)
        with self.Session.begin() as session:
            claim_battle_for_completion(session, battle_id)
        self.clock.now = T0 + timedelta(hours=1)
        report = self.make_scheduler().tick()
        self.assertEqual(report.completed, [])
        self.assertEqual(self.battle(battle_id).status, BattleStatus.COMPLETING)

    def test_completion_failure_releases_claim(self):
        battle_id, _ = self.seed_battle(ARGUMENTS)
        self.clock.now = T0 + timedelta(hours=1)
        scheduler = self.make_scheduler()
        with patch("debatebattle.workflows.complete_battle", side_effect=RuntimeError("disk full")):
            report = scheduler.tick()
        self.assertFalse(report.ok)
        self.assertIn("disk full", report.errors[0])
        with self.Session() as session:
            self.assertEqual(session.get(Battle, battle_id).status, BattleStatus.ACTIVE)
            self.assertEqual(session.scalars(select(BattleWinner)).all(), [])

        retry = scheduler.tick()
        self.assertEqual(retry.completed, [battle_id])
        self.assertEqual(scheduler.status().consecutive_failures, 0)

    def test_topic_failure_is_reported(self):
        battle_id, _ = self.seed_battle()
        self.clock.now = T0 + timedelta(hours=1)
        self.pipeline.error = TopicGenerationError("no topic", attempts=[])
        scheduler = self.make_scheduler()
        report = scheduler.tick()
        self.assertEqual(report.completed, [battle_id])
        self.assertIsNone(report.created_battle_id)
        self.assertIn("no topic", report.errors[0])
        status = scheduler.status()
        self.assertEqual(status.consecutive_failures, 1)
        self.assertIn("no topic", status.last_error)

    def test_quota_failure_waits_for_next_tick(self):
        self.pipeline.error = QuotaExceededError("quota exhausted", status_code=429)
        scheduler = self.make_scheduler()
        self.assertFalse(scheduler.tick().ok)
        self.assertEqual(self.pipeline.calls, 1)

        self.pipeline.error = None
        report = scheduler.tick()
        self.assertTrue(report.ok)
        self.assertIsNotNone(report.created_battle_id)


class TestSettlement(SchedulerTestCase):
    def test_winner_is_declared_on_the_ledger(self):
        battle_id, _ = self.seed_battle(ARGUMENTS[:1], debate_id=11)
        self.clock.now = T0 + timedelta(hours=1)
        client = DummyLedgerClient()
        report = self.make_scheduler(ledger_client=client).tick()
        self.assertTrue(report.ok)
        self.assertEqual(client.declared, [(11, "0xa")])
        with self.Session() as session:
            tx = session.scalars(select(LedgerTransaction)).one()
            self.assertEqual(tx.status, "confirmed")
            self.assertEqual(tx.tx_hash, "0x11")
            self.assertEqual(tx.battle_id, battle_id)

    def test_settlement_failure_keeps_completion_and_reward(self):
        battle_id, _ = self.seed_battle(ARGUMENTS[:1], debate_id=11)
        self.clock.now = T0 + timedelta(hours=1)
        client = DummyLedgerClient(error=LedgerError("gateway down"))
        report = self.make_scheduler(ledger_client=client).tick()
        self.assertTrue(report.ok)
        self.assertEqual(self.battle(battle_id).status, BattleStatus.COMPLETED)
        self.assertEqual(self.points("0xa"), 100)
        with self.Session() as session:
            tx = session.scalars(select(LedgerTransaction)).one()
            self.assertEqual(tx.status, "failed")

    def test_battle_without_debate_is_not_settled(self):
        self.seed_battle(ARGUMENTS[:1])
        self.clock.now = T0 + timedelta(hours=1)
        client = DummyLedgerClient()
        self.make_scheduler(ledger_client=client).tick()
        self.assertEqual(client.declared, [])


class TestStartup(SchedulerTestCase):
    def test_duration_change_force_completes_running_battle(self):
        battle_id, _ = self.seed_battle(ARGUMENTS, duration_hours=2.0)
        self.clock.now = T0 + timedelta(minutes=10)
        scheduler = self.make_scheduler()
        self.assertTrue(scheduler.startup())
        with self.Session() as session:
            battle = session.get(Battle, battle_id)
            self.assertEqual(battle.status, BattleStatus.COMPLETED)
            self.assertIsNone(battle.winner)
            self.assertIsNotNone(session.scalars(select(BattleHistory)).one())

        report = scheduler.tick()
        self.assertIsNotNone(report.created_battle_id)

    def test_small_drift_is_tolerated(self):
        battle_id, _ = self.seed_battle(duration_hours=1.005)
        self.clock.now = T0 + timedelta(minutes=10)
        self.assertFalse(self.make_scheduler().startup())
        self.assertEqual(self.battle(battle_id).status, BattleStatus.ACTIVE)

    def test_no_running_battle(self):
        self.assertFalse(self.make_scheduler().check_duration_drift())

    def test_release_stale_claims(self):
        battle_id, _ = self.seed_battle()
        with self.Session.begin() as session:
            claim_battle_for_completion(session, battle_id)
        scheduler = self.make_scheduler()
        with self.assertLogs("debatebattle.scheduler", level="WARNING"):
            scheduler.startup()
        self.assertEqual(scheduler.release_stale_claims(), [battle_id])
        self.assertEqual(self.battle(battle_id).status, BattleStatus.ACTIVE)
        self.assertEqual(scheduler.release_stale_claims(), [])

    def test_run_forever_stops_on_event(self):
        scheduler = self.make_scheduler(config=BattleConfig(check_interval_seconds=0.01))
        stop = threading.Event()
        ticks = []

        def tick():
            ticks.append(scheduler.status().running)
            stop.set()

        scheduler.tick = tick
        scheduler.run_forever(stop)
        self.assertEqual(ticks, [True])
        self.assertFalse(scheduler.status().running)


if __name__ == "__main__":
    unittest.main()
