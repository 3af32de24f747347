from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.pool import StaticPool

from applinks.adapters.memory import InMemoryAppStateStore
from applinks.adapters.sqlalchemy import create_all_tables, shutdown, startup
from applinks.domain.resolution import ListenerRegistry
from tests.helpers.fakes import FakeServiceClient, RecordingListener, run_inline

os.environ.setdefault("APPLINKS_DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Iterator


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        future=True,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_all_tables(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_adapter(sqlite_engine: Engine) -> Iterator[Engine]:
    startup(engine=sqlite_engine, force=True)
    try:
        yield sqlite_engine
    finally:
        shutdown()


@pytest.fixture
def state_store() -> InMemoryAppStateStore:
    return InMemoryAppStateStore()


@pytest.fixture
def registry() -> ListenerRegistry:
    return ListenerRegistry(dispatcher=run_inline)


@pytest.fixture
def service_client() -> FakeServiceClient:
    return FakeServiceClient()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()
