import os
import random
import threading

# Must be set before any topup module builds the process-wide engine/settings.
os.environ.setdefault("POSTGRES_DSN", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("MESSAGE_TRANSPORT", "memory")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from topup.common.db import reset_tables


class ScriptedRandom(random.Random):
    """`random.Random` with pinnable draws for the outcome and publish-count paths."""

    def __init__(self, randrange_value=None, publish_count=None, seed=0):
        super().__init__(seed)
        self.randrange_values = list(randrange_value) if isinstance(randrange_value, (list, tuple)) else None
        self.randrange_value = None if self.randrange_values is not None else randrange_value
        self.publish_count = publish_count

    def randrange(self, *args, **kwargs):
        if self.randrange_values:
            return self.randrange_values.pop(0)
        if self.randrange_value is not None:
            return self.randrange_value
        return super().randrange(*args, **kwargs)

    def choices(self, population, weights=None, *, cum_weights=None, k=1):
        if self.publish_count is not None:
            return [self.publish_count] * k
        return super().choices(population, weights, cum_weights=cum_weights, k=k)


@pytest.fixture()
def engine(tmp_path):
    # File-backed so each worker thread gets its own connection.
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'topup.db'}",
        connect_args={"check_same_thread": False},
    )
    reset_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture()
def scripted_random():
    return ScriptedRandom


def rendezvous(func, parties):
    """Wrap `func` so that `parties` concurrent callers all return together.

    Each caller runs `func` first and then waits for the others, which pins
    every check in a check-then-insert sequence ahead of every insert.
    """

    barrier = threading.Barrier(parties, timeout=5)

    def wrapper(*args, **kwargs):
        result = func(*args, **kwargs)
        barrier.wait()
        return result

    return wrapper


@pytest.fixture()
def held_together():
    return rendezvous
