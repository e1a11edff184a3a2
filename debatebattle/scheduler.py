"""Lifecycle scheduler: completes expired battles and starts the next one."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable, Optional

from sqlalchemy.orm import Session

from . import workflows
from .config import DURATION_DRIFT_TOLERANCE_HOURS, BattleConfig
from .exceptions import LedgerError, QuotaExceededError, TopicGenerationError
from .models import Battle, BattleWinner, Cast, User

if TYPE_CHECKING:
    from .judging.engine import WinnerDeterminationEngine
    from .ledger.api import LedgerClient
    from .moderation import CastModerator, ModerationVerdict
    from .topics.pipeline import TopicPipeline

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TickReport:
    """What a single :meth:`BattleScheduler.tick` did."""

    started_at: datetime
    completed: list[int] = field(default_factory=list)
    winners: dict[int, Optional[int]] = field(default_factory=dict)
    skipped: list[int] = field(default_factory=list)
    created_battle_id: Optional[int] = None
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass
class SchedulerStatus:
    running: bool
    ticks_run: int
    last_tick_at: Optional[datetime]
    last_success_at: Optional[datetime]
    consecutive_failures: int
    last_error: Optional[str]


class BattleScheduler:
    """Drives every battle through ``ACTIVE -> COMPLETING -> COMPLETED``.

    Expired battles are processed one at a time. Each is claimed with a
    conditional status update before judging, so a second scheduler working
    on the same database skips battles it did not claim. Settlement and
    reward crediting are best-effort and never undo a completion.

    Parameters
    ----------
    session_factory : Callable[[], Session]
        Typically the sessionmaker from :func:`debatebattle.db.engine.get_sessionmaker`.
    pipeline : TopicPipeline
        Produces the topic of each new battle.
    engine : WinnerDeterminationEngine
        Judges expired battles.
    config : Optional[BattleConfig]
        Duration, participant cap, reward and tick interval.
    moderator : Optional[CastModerator]
        When given, casts are moderated before judging.
    ledger_client : Optional[LedgerClient]
        When given, winners of battles with a ``debate_id`` are declared on
        the ledger.
    clock : Callable[[], datetime]
        Aware UTC clock.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        pipeline: "TopicPipeline",
        engine: "WinnerDeterminationEngine",
        *,
        config: Optional[BattleConfig] = None,
        moderator: Optional["CastModerator"] = None,
        ledger_client: Optional["LedgerClient"] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.session_factory = session_factory
        self.pipeline = pipeline
        self.engine = engine
        self.config = config or BattleConfig()
        self.moderator = moderator
        self.ledger_client = ledger_client
        self._clock = clock

        self._running = False
        self._ticks_run = 0
        self._last_tick_at: Optional[datetime] = None
        self._last_success_at: Optional[datetime] = None
        self._consecutive_failures = 0
        self._last_error: Optional[str] = None

    # -------- lifecycle --------
    def startup(self) -> bool:
        """Run the one-off checks that precede the first tick.

        Returns
        -------
        bool
            ``True`` if the running battle was force-completed because its
            stored duration no longer matches the configuration.
        """

        with self.session_factory() as session:
            stale = workflows.get_stale_claims(session)
            for battle in stale:
                logger.warning(
                    "Battle %s is still COMPLETING from an earlier run; "
                    "release it with release_stale_claims() if no other scheduler owns it",
                    battle.id,
                )
        return self.check_duration_drift()

    def check_duration_drift(self) -> bool:
        """Complete the running battle without winners if its duration is stale."""

        now = self._clock()
        with self.session_factory() as session:
            current = workflows.get_current_battle(session, now=now)
            if current is None:
                return False
            drift = abs(current.duration_hours - self.config.duration_hours)
            if drift <= DURATION_DRIFT_TOLERANCE_HOURS:
                return False

            logger.warning(
                "Battle %s was created for %.2fh but the configured duration is %.2fh; "
                "completing it without winners",
                current.id,
                current.duration_hours,
                self.config.duration_hours,
            )
            if not workflows.claim_battle_for_completion(session, current.id):
                session.rollback()
                return False
            workflows.complete_battle(session, current, winner=None, now=now)
            session.commit()
            return True

    def release_stale_claims(self) -> list[int]:
        """Return every ``COMPLETING`` battle to ``ACTIVE``.

        Only safe when no other scheduler instance is running.
        """

        released: list[int] = []
        with self.session_factory() as session:
            for battle in workflows.get_stale_claims(session):
                if workflows.release_battle_claim(session, battle.id):
                    released.append(battle.id)
            session.commit()
        if released:
            logger.info("Released stale claims on battles %s", released)
        return released

    def run_forever(self, stop_event: Optional[threading.Event] = None) -> None:
        """Call :meth:`startup` once, then :meth:`tick` every check interval.

        Returns when ``stop_event`` is set.
        """

        stop_event = stop_event or threading.Event()
        self.startup()
        self._running = True
        logger.info(
            "Battle scheduler started (interval %.0fs, duration %.2fh)",
            self.config.check_interval_seconds,
            self.config.duration_hours,
        )
        try:
            while not stop_event.is_set():
                self.tick()
                stop_event.wait(self.config.check_interval_seconds)
        finally:
            self._running = False
            logger.info("Battle scheduler stopped")

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            running=self._running,
            ticks_run=self._ticks_run,
            last_tick_at=self._last_tick_at,
            last_success_at=self._last_success_at,
            consecutive_failures=self._consecutive_failures,
            last_error=self._last_error,
        )

    # -------- tick --------
    def tick(self) -> TickReport:
        """Complete expired battles, then make sure one battle is running.

        Never raises: every failure is logged and listed in the report.
        """

        now = self._clock()
        report = TickReport(started_at=now)

        try:
            with self.session_factory() as session:
                expired_ids = [b.id for b in workflows.get_expired_battles(session, now=now)]
        except Exception as exc:
            logger.exception("Could not load expired battles")
            report.errors.append(f"expired battle lookup failed: {exc}")
            expired_ids = []

        if expired_ids:
            logger.info("Found %d expired battle(s): %s", len(expired_ids), expired_ids)
        for battle_id in expired_ids:
            try:
                self._complete_battle(battle_id, report)
            except Exception as exc:
                logger.exception("Failed to complete battle %s", battle_id)
                report.errors.append(f"battle {battle_id}: {exc}")

        try:
            self._ensure_active_battle(report)
        except (TopicGenerationError, QuotaExceededError) as exc:
            logger.error("Could not create a new battle: %s", exc)
            report.errors.append(f"battle creation failed: {exc}")
        except Exception as exc:
            logger.exception("Could not create a new battle")
            report.errors.append(f"battle creation failed: {exc}")

        self._record_tick(report)
        return report

    def _record_tick(self, report: TickReport) -> None:
        self._ticks_run += 1
        self._last_tick_at = report.started_at
        if report.ok:
            self._last_success_at = report.started_at
            self._consecutive_failures = 0
            self._last_error = None
        else:
            self._consecutive_failures += 1
            self._last_error = report.errors[-1]

    def _complete_battle(self, battle_id: int, report: TickReport) -> None:
        with self.session_factory() as session:
            if not workflows.claim_battle_for_completion(session, battle_id):
                session.rollback()
                logger.info("Battle %s was claimed elsewhere; skipping", battle_id)
                report.skipped.append(battle_id)
                return
            session.commit()

            try:
                battle = session.get(Battle, battle_id)
                casts = workflows.get_casts_for_battle(session, battle_id)
                winner = self._judge(session, battle, casts)
                workflows.complete_battle(session, battle, winner=winner, now=self._clock())
                session.commit()
            except Exception:
                session.rollback()
                if workflows.release_battle_claim(session, battle_id):
                    session.commit()
                raise

            report.completed.append(battle_id)
            report.winners[battle_id] = winner.cast_id if winner is not None else None
            if winner is None:
                return

            address = session.get(User, winner.user_id).address
            self._settle(session, battle, address)
            self._reward(session, winner)

    def _judge(
        self, session: Session, battle: Battle, casts: list[Cast]
    ) -> Optional[BattleWinner]:
        if not casts:
            logger.info("Battle %s ended without casts; no winner", battle.id)
            return None

        verdicts = self._moderate(battle, casts)
        try:
            record = self.engine.determine_winner(battle, casts, verdicts)
        except Exception:
            logger.exception(
                "Winner determination failed for battle %s; completing without winner",
                battle.id,
            )
            return None
        return workflows.record_winner(session, record)

    def _moderate(
        self, battle: Battle, casts: list[Cast]
    ) -> Optional[dict[int, "ModerationVerdict"]]:
        if self.moderator is None:
            return None
        try:
            return self.moderator.moderate_all(casts, battle)
        except Exception:
            logger.exception("Moderation failed for battle %s; judging all casts", battle.id)
            return None

    def _settle(self, session: Session, battle: Battle, address: str) -> None:
        if self.ledger_client is None or battle.debate_id is None:
            return
        try:
            workflows.settle_battle(session, battle, address, self.ledger_client)
            session.commit()
        except LedgerError as exc:
            # Keep the failed transaction row for operators.
            session.commit()
            logger.error("Settlement failed for battle %s: %s", battle.id, exc)
        except Exception:
            session.rollback()
            logger.exception("Settlement failed for battle %s", battle.id)

    def _reward(self, session: Session, winner: BattleWinner) -> None:
        points = self.config.winner_reward_points
        try:
            balance = workflows.award_points(session, winner.user_id, points)
            session.commit()
        except Exception:
            session.rollback()
            logger.exception("Could not credit %d points to user %s", points, winner.user_id)
            return
        logger.info(
            "Credited %d points to user %s (balance %d)", points, winner.user_id, balance
        )

    def _ensure_active_battle(self, report: TickReport) -> None:
        with self.session_factory() as session:
            active = workflows.get_active_battles(session)
        if active:
            return

        logger.info("No active battle; generating a new topic")
        topic = self.pipeline.generate_topic()
        with self.session_factory() as session:
            battle = workflows.create_battle(
                session,
                topic,
                duration_hours=self.config.duration_hours,
                max_participants=self.config.max_participants,
                start_time=self._clock(),
            )
            session.commit()
            report.created_battle_id = battle.id


__all__ = ["BattleScheduler", "SchedulerStatus", "TickReport"]
