"""
groupledger/migrations/env.py — Alembic environment.

The target database comes from groupledger.config: DATABASE_URL, or
TEST_DATABASE_URL when TEST_RUN is set. Run from the project root:

    alembic upgrade head
    TEST_RUN=1 alembic upgrade head
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from groupledger.app.extensions import db
from groupledger.app.models import (  # noqa: F401  (registers every table on db.metadata)
    expense,
    group,
    ledger_entry,
    member,
    membership,
    receipt,
    settlement,
    split,
)
from groupledger.config import database_url

alembic_config = context.config
if alembic_config.config_file_name is not None:
    fileConfig(alembic_config.config_file_name)

url = database_url(testing=bool(os.getenv("TEST_RUN")))
if not url:
    raise RuntimeError("Set DATABASE_URL (or TEST_DATABASE_URL with TEST_RUN=1) before migrating.")
alembic_config.set_main_option("sqlalchemy.url", url)


def _configure(**kwargs) -> None:
    context.configure(target_metadata=db.metadata, compare_type=True, **kwargs)
    with context.begin_transaction():
        context.run_migrations()


if context.is_offline_mode():
    _configure(url=url, literal_binds=True, dialect_opts={"paramstyle": "named"})
else:
    engine = engine_from_config(
        alembic_config.get_section(alembic_config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        _configure(connection=connection)
