"""
Alembic environment for the users/habits schema.

The habit tables may share a database with the app that owns them, so
autogenerate only compares tables declared in core.tables and never
proposes dropping anything else.

Override the target database with: alembic -x database_url=... upgrade head
"""

import os
import sys
from logging.config import fileConfig

from alembic import context
from dotenv import load_dotenv
from sqlalchemy import create_engine, pool

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

load_dotenv(".env")
load_dotenv(".env.local", override=True)

from core.database import get_sync_database_url, with_driver
from core.tables import metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def _migration_url() -> str:
    override = context.get_x_argument(as_dictionary=True).get("database_url")
    if override:
        return with_driver(override, None)
    return get_sync_database_url()


def _include_object(obj, name, type_, reflected, compare_to):
    if type_ == "table":
        return name in metadata.tables
    return True


def _configure(**kwargs) -> None:
    context.configure(
        target_metadata=metadata,
        include_object=_include_object,
        compare_type=True,
        compare_server_default=True,
        **kwargs,
    )


def run_migrations_offline() -> None:
    _configure(
        url=_migration_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = create_engine(_migration_url(), poolclass=pool.NullPool)
    with engine.connect() as connection:
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
