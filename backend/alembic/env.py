"""Migration environment for the events, event_tags and bookings tables.

The URL always comes from ``DATABASE_URL`` (devevents.config), never from
alembic.ini, so migrations and the running API target the same store.
"""
from logging.config import fileConfig

from alembic import context
from sqlalchemy import create_engine, pool

from devevents.config import settings
from devevents.database import Base
from devevents.models.event import Event, EventTag  # noqa: F401
from devevents.models.booking import Booking        # noqa: F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Emit SQL for DATABASE_URL's dialect without connecting."""
    context.configure(
        url=settings.DATABASE_URL,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Apply migrations over a single unpooled connection."""
    engine = create_engine(settings.DATABASE_URL, poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
        with context.begin_transaction():
            context.run_migrations()
    engine.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
