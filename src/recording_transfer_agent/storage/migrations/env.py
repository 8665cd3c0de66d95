"""
Alembic env.py.

- metadata берём из ORM-моделей встреч
- URL базы не хранится в alembic.ini: подставляем POSTGRES_DSN из настроек
- ALEMBIC_DATABASE_URL (если задан) имеет приоритет, удобно для разовых прогонов
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from recording_transfer_agent.common.config import get_settings
from recording_transfer_agent.storage.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _database_url() -> str:
    override = (os.getenv("ALEMBIC_DATABASE_URL") or "").strip()
    return override or get_settings().postgres_dsn


def run_offline() -> None:
    context.configure(
        url=_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = create_engine(_database_url(), poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
