"""Database bootstrap helpers shared by all services."""

from sqlalchemy import create_engine, insert
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from topup.common.config import settings


# Single SQLAlchemy engine per process; every service shares one relational store.
engine = create_engine(settings.postgres_dsn, pool_pre_ping=True)
# `expire_on_commit=False` keeps ORM objects readable after commit in handlers.
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


class Base(DeclarativeBase):
    """Declarative base for SQLAlchemy models."""

    pass


def insert_or_ignore(db, model, values: dict, conflict_column: str):
    """Build an INSERT that is a no-op when `conflict_column` already exists."""

    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model).values(**values).on_conflict_do_nothing(index_elements=[conflict_column])
    if dialect == "sqlite":
        return sqlite.insert(model).values(**values).on_conflict_do_nothing(index_elements=[conflict_column])
    if dialect in ("mysql", "mariadb"):
        stmt = mysql.insert(model).values(**values)
        return stmt.on_duplicate_key_update({conflict_column: stmt.inserted[conflict_column]})
    # Other dialects get a plain insert; callers treat conflicts as storage errors.
    return insert(model).values(**values)


def _register_models() -> None:
    # Model modules register their tables on import.
    import topup.services.fulfillment.models  # noqa: F401
    import topup.services.order.models  # noqa: F401
    import topup.services.payment.models  # noqa: F401


def create_tables(bind=None) -> None:
    """Create any missing tables registered on `Base`."""

    _register_models()
    Base.metadata.create_all(bind=bind if bind is not None else engine)


def reset_tables(bind=None) -> None:
    """Drop and recreate every table registered on `Base`."""

    _register_models()
    bind = bind if bind is not None else engine
    Base.metadata.drop_all(bind=bind)
    Base.metadata.create_all(bind=bind)
