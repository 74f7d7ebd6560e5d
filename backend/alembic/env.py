"""
Alembic environment for the settlement schema.

The URL comes from settings (DATABASE_URL_SYNC), never from alembic.ini,
so migrations and the app always target the same database. Autogenerate
compares column types too, since the ledger counters and money columns
are all integers whose width matters.
"""

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from settlement.core.config import get_settings
from settlement.db.base import Base
from settlement.models import (  # noqa: F401 - registers every table on Base.metadata
    BundleTier,
    CreditTransaction,
    Event,
    EventStaff,
    Order,
    OrderItem,
    OrganizerCredits,
    SeatingChart,
    SeatReservation,
    StaffSale,
    Ticket,
    TicketBundle,
    TicketTier,
    User,
)

config = context.config
config.set_main_option("sqlalchemy.url", get_settings().DATABASE_URL_SYNC)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata

# Tables owned by other tools sharing the database
IGNORED_TABLES = {"alembic_version", "spatial_ref_sys"}


def include_object(obj, name, type_, reflected, compare_to):
    if type_ == "table" and name in IGNORED_TABLES:
        return False
    return True


def _configure(**kwargs) -> None:
    url = config.get_main_option("sqlalchemy.url")
    context.configure(
        target_metadata=target_metadata,
        include_object=include_object,
        compare_type=True,
        # SQLite cannot ALTER constraints in place
        render_as_batch=url.startswith("sqlite"),
        **kwargs,
    )


def run_migrations_offline() -> None:
    """Emit the migration as SQL without a database connection."""
    _configure(
        url=config.get_main_option("sqlalchemy.url"),
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
        _configure(connection=connection)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
