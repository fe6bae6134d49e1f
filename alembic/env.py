"""Migration environment for the marketplace tables.

The database URL comes from, in order: a ``sqlalchemy.url`` set on the
Alembic config (tests do this), then ``Settings.database_url`` (which reads
``DATABASE_URL`` and the .env files).
"""
from __future__ import annotations

import sys
from logging.config import fileConfig
from pathlib import Path

from alembic import context

# Project modules live one directory up
sys.path.append(str(Path(__file__).resolve().parent.parent))

from database import Base, build_engine  # noqa: E402
import models  # noqa: E402,F401  # registers the tables on Base.metadata
from settings import get_settings  # noqa: E402

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def database_url() -> str:
    return config.get_main_option("sqlalchemy.url") or get_settings().database_url


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of touching a database."""
    context.configure(
        url=database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    # Same engine setup (SQLite pragmas included) as the running service
    engine = build_engine(database_url())
    try:
        with engine.connect() as connection:
            context.configure(
                connection=connection,
                target_metadata=target_metadata,
                render_as_batch=True,
                compare_type=True,
            )
            with context.begin_transaction():
                context.run_migrations()
    finally:
        engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
