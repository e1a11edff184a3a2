from __future__ import annotations

import argparse
import logging
import os
import signal
import threading

from dotenv import load_dotenv

from debatebattle.config import load_config
from debatebattle.db.engine import get_sessionmaker, make_engine
from debatebattle.generation.api import GenerationClient
from debatebattle.judging.engine import WinnerDeterminationEngine
from debatebattle.moderation import CastModerator
from debatebattle.scheduler import BattleScheduler
from debatebattle.topics.cache import SIMILARITY_TTL_SECONDS, TTLCache
from debatebattle.topics.history import SQLTopicHistory
from debatebattle.topics.pipeline import TopicPipeline
from debatebattle.topics.similarity import SimilarityComparator
from debatebattle.topics.source import GeneratedTopicSource

logger = logging.getLogger("debatebattle.run_scheduler")


def build_scheduler(*, with_ledger: bool, with_moderation: bool) -> BattleScheduler:
    config = load_config()
    Session = get_sessionmaker(make_engine())
    generator = GenerationClient()

    pipeline = TopicPipeline(
        GeneratedTopicSource(generator),
        SimilarityComparator(generator, TTLCache(SIMILARITY_TTL_SECONDS)),
        SQLTopicHistory(Session),
        config=config,
    )

    ledger_client = None
    if with_ledger:
        from debatebattle.ledger.api import LedgerClient

        ledger_client = LedgerClient()

    return BattleScheduler(
        Session,
        pipeline,
        WinnerDeterminationEngine(insight_generator=generator),
        config=config,
        moderator=CastModerator(generator) if with_moderation else None,
        ledger_client=ledger_client,
    )


def main() -> None:
    load_dotenv()
    parser = argparse.ArgumentParser(description="Run the debate battle scheduler.")
    parser.add_argument("--once", action="store_true", help="run a single tick and exit")
    parser.add_argument("--no-ledger", action="store_true", help="skip on-ledger settlement")
    parser.add_argument("--no-moderation", action="store_true", help="judge casts unmoderated")
    parser.add_argument(
        "--release-stale-claims",
        action="store_true",
        help="return battles stuck in COMPLETING to ACTIVE before starting",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    scheduler = build_scheduler(
        with_ledger=not args.no_ledger, with_moderation=not args.no_moderation
    )
    if args.release_stale_claims:
        scheduler.release_stale_claims()

    if args.once:
        scheduler.startup()
        report = scheduler.tick()
        logger.info(
            "Tick finished: completed=%s created=%s errors=%s",
            report.completed,
            report.created_battle_id,
            report.errors,
        )
        return

    stop_event = threading.Event()

    def _stop(signum, _frame):
        logger.info("Received signal %s, stopping after the current tick", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    scheduler.run_forever(stop_event)


if __name__ == "__main__":
    main()
