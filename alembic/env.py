import logging
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool

import models  # noqa: F401  registers the tables on Base.metadata
from config import get_settings
from database import Base, build_engine

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

database_url = get_settings().database_url
is_sqlite = database_url.startswith("sqlite")


def run_migrations_offline() -> None:
    context.configure(
        url=database_url,
        target_metadata=Base.metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=is_sqlite,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = build_engine(database_url, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=Base.metadata,
            render_as_batch=is_sqlite,
        )
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


logger.info(f"migrations: dialect={database_url.split('://', 1)[0]}")
if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
