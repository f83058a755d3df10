"""
billsplit/migrations/env.py — Alembic environment.

The database URL comes from the same config classes the app uses:
TestingConfig when TEST_RUN is set, otherwise the class named by FLASK_ENV
(development by default). SQLite targets run in batch mode so ALTERs work.
"""

from __future__ import annotations

import os
import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context
from sqlalchemy import engine_from_config, pool

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

# Alembic may be run from inside billsplit/; make the project importable.
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from billsplit.app.extensions import db  # noqa: E402
from billsplit.app.models import (  # noqa: E402,F401
    expense,
    group,
    group_balance,
    membership,
    refresh_token,
    settlement,
    split,
    user,
)
from billsplit.config import DevelopmentConfig, TestingConfig, config_by_name  # noqa: E402


def _database_url() -> str:
    if os.getenv("TEST_RUN"):
        config_class = TestingConfig
    else:
        config_class = config_by_name.get(os.getenv("FLASK_ENV", "development"), DevelopmentConfig)
    url = config_class.SQLALCHEMY_DATABASE_URI
    if not url:
        raise RuntimeError(
            f"No database URL configured for {config_class.__name__}; set DATABASE_URL."
        )
    return url


target_metadata = db.metadata
db_url = _database_url()
render_as_batch = db_url.startswith("sqlite")

config = context.config
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def run_migrations_offline() -> None:
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=render_as_batch,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=render_as_batch,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
