"""
Alembic migration environment for the terms/bookings schema.

The URL comes from DATABASE_URL_SYNC unless overridden on the command line
(`alembic -x url=sqlite:///local.db upgrade head`). SQLite needs batch mode for
ALTERs, so it is switched on automatically for that dialect.
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from fitstudio.db.base import Base
from fitstudio.models import User, Term, Booking  # noqa: F401 - Import models for autogenerate
from fitstudio.core.config import get_settings

config = context.config
settings = get_settings()

url = context.get_x_argument(as_dictionary=True).get("url", settings.DATABASE_URL_SYNC)
config.set_main_option("sqlalchemy.url", url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def _is_sqlite(db_url: str) -> bool:
    return db_url.startswith("sqlite")


def run_migrations_offline() -> None:
    """Generate SQL script without connecting to the database."""
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=_is_sqlite(url),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations against a live database connection."""
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
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
