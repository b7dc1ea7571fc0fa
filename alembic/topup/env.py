"""Alembic environment bound to the shared top-up metadata."""

from alembic import context
from sqlalchemy import engine_from_config, pool

import topup.services.fulfillment.models  # noqa: F401
import topup.services.order.models  # noqa: F401
import topup.services.payment.models  # noqa: F401
from topup.common.config import settings
from topup.common.db import Base

config = context.config
config.set_main_option("sqlalchemy.url", settings.postgres_dsn)
target_metadata = Base.metadata


def run_migrations_offline() -> None:
    context.configure(url=settings.postgres_dsn, target_metadata=target_metadata, literal_binds=True)
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
