# tests/conftest.py

import os

# Settings are cached on first import; keep the app off the real database and disk
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOCAL_STORE_PATH", "")
os.environ.setdefault("APP_DEBUG", "false")

import pytest  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import create_engine  # noqa: E402

from glowroutine.database import create_db_and_tables  # noqa: E402
from glowroutine.services.routine import RoutineService  # noqa: E402
from glowroutine.stores.base import Backend  # noqa: E402
from glowroutine.stores.local import LocalKeyValueStore  # noqa: E402
from helpers import (  # noqa: E402
    TODAY,
    CountingStepStore,
    FlakyCompletionStore,
    RecordingProducts,
)


@pytest.fixture
def kv():
    return LocalKeyValueStore()


@pytest.fixture
def products():
    return RecordingProducts()


@pytest.fixture
def step_store(kv):
    return CountingStepStore(kv)


@pytest.fixture
def completion_store(kv):
    return FlakyCompletionStore(kv)


@pytest.fixture
def backend(step_store, completion_store, products):
    return Backend(
        scope="local",
        steps=step_store,
        completions=completion_store,
        products=products,
    )


@pytest.fixture
async def routine(backend):
    service = RoutineService(backend, debounce_seconds=0.01, clock=lambda: TODAY)
    await service.reload()
    yield service
    await service.aclose()


@pytest.fixture
def sql_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_db_and_tables(engine)
    yield engine
    engine.dispose()
