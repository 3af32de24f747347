"""SQLAlchemy table metadata for persisted AppLinks state."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Column, Integer, MetaData, String, Table

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

metadata = MetaData()

app_state_table = Table(
    "app_state",
    metadata,
    Column("key", String, primary_key=True),
    Column("value", String, nullable=False),
)

processed_visit_table = Table(
    "processed_visit",
    metadata,
    Column("position", Integer, primary_key=True, autoincrement=True),
    Column("visit_id", String, nullable=False, unique=True),
)


def create_all_tables(engine: Engine) -> None:
    metadata.create_all(engine)
