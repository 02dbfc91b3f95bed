"""
env.py — Alembic migration environment for ShopSync

Takes DATABASE_URL from shopsync settings and imports every model so
autogenerate sees the inventory, sync, import and API log tables.

Called by: alembic CLI
Depends on: shopsync.models (Base + all tables), shopsync.config (Settings)
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from shopsync.config import Settings
from shopsync.models import Base  # noqa: F401 — registers all tables on Base.metadata

config = context.config

# sqlalchemy.url comes from settings, never from alembic.ini
config.set_main_option("sqlalchemy.url", Settings().database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
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
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
