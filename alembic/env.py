from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy.engine import Connection, Engine
from dotenv import load_dotenv

# Ensure project root is on path and load environment variables
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))
load_dotenv(ROOT_DIR / ".env")

from debatebattle.db.engine import DEFAULT_SQLITE_URL, make_engine  # noqa: E402
from debatebattle.db.utils import resolve_sqlite_url  # noqa: E402
from debatebattle.models import Base  # noqa: E402,F401 - import populates metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# Battles, casts, winners, history and ledger transactions.
target_metadata = Base.metadata

COMPARE_OPTIONS = {"compare_type": True, "compare_server_default": True}


def _database_url() -> str:
    # An explicit -x db_url=... wins over the environment.
    override = context.get_x_argument(as_dictionary=True).get("db_url")
    if override:
        return resolve_sqlite_url(override, ROOT_DIR)
    env_url = os.getenv("DB_URL")
    if env_url:
        return resolve_sqlite_url(env_url, ROOT_DIR)
    return DEFAULT_SQLITE_URL


DATABASE_URL = _database_url()

# Percent signs need to be escaped due to ConfigParser interpolation rules.
config.set_main_option("sqlalchemy.url", DATABASE_URL.replace("%", "%%"))


def run_migrations_offline() -> None:
    """Emit SQL for the battle schema without a live connection."""

    context.configure(
        url=DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMPARE_OPTIONS,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations through an engine built by ``make_engine``."""

    connectable: Engine | Connection = make_engine(database_url=DATABASE_URL)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.engine.dialect.name == "sqlite",
            **COMPARE_OPTIONS,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
