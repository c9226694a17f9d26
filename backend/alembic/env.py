"""
Alembic migration environment for the seat reservation schema.

The database URL comes from DATABASE_URL_SYNC, or from `-x url=...` on the
command line (e.g. `alembic -x url=sqlite:///./seats.db upgrade head`).
SQLite runs in batch mode so ALTER-style migrations work there too.
"""

from logging.config import fileConfig
from sqlalchemy import engine_from_config, pool
from alembic import context

from library_seats.db.base import Base
from library_seats.db.types import UTCDateTime
from library_seats.models import User, Seat, Reservation, Violation  # noqa: F401 - registers tables on Base.metadata
from library_seats.core.config import get_settings

config = context.config

url = context.get_x_argument(as_dictionary=True).get("url") or get_settings().DATABASE_URL_SYNC
config.set_main_option("sqlalchemy.url", url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def render_item(type_, obj, autogen_context):
    """Write UTCDateTime columns as plain timezone-aware DateTime in migrations."""
    if type_ == "type" and isinstance(obj, UTCDateTime):
        return "sa.DateTime(timezone=True)"
    return False


def configure_kwargs(url: str) -> dict:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_item": render_item,
        "render_as_batch": url.startswith("sqlite"),
    }


def run_migrations_offline() -> None:
    """Generate SQL script without connecting to the database."""
    context.configure(
        url=url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **configure_kwargs(url),
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
        context.configure(connection=connection, **configure_kwargs(url))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
