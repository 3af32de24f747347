"""SQLAlchemy-backed store for the first-launch flag and processed visit ids."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, delete, insert, select

from applinks.config.storage import get_database_uri
from applinks.domain.ports.persistence import AppStateStore

from .mappings import app_state_table, create_all_tables, processed_visit_table

if TYPE_CHECKING:
    from collections.abc import Sequence

    from sqlalchemy.engine import Engine

log = getLogger(__name__)

FIRST_LAUNCH_COMPLETED_KEY = "first_launch_completed"


class StartupError(RuntimeError):
    """Raised when the SQLAlchemy adapter is used before initialisation."""


@dataclass(slots=True)
class _AdapterState:
    engine: Engine | None = None


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> Engine:
    """Initialise the SQLAlchemy engine and create the state tables."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_engine(database_uri or get_database_uri(), future=True)
    create_all_tables(resolved_engine)
    _STATE.engine = resolved_engine
    return resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class SqlAlchemyAppStateStore:
    """Persist AppLinks state in two small tables.

    Processed visit ids are rewritten as a whole on save; their ``position``
    column preserves insertion order.
    """

    def __init__(self, engine: Engine | None = None) -> None:
        resolved = engine or _STATE.engine
        if resolved is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call applinks.adapters.sqlalchemy."
                "startup() or pass an engine."
            )
        self._engine = resolved

    def is_first_launch_completed(self) -> bool:
        stmt = select(app_state_table.c.value).where(
            app_state_table.c.key == FIRST_LAUNCH_COMPLETED_KEY
        )
        with self._engine.connect() as connection:
            value = connection.execute(stmt).scalar_one_or_none()
        return value == "true"

    def mark_first_launch_completed(self) -> None:
        with self._engine.begin() as connection:
            connection.execute(
                delete(app_state_table).where(app_state_table.c.key == FIRST_LAUNCH_COMPLETED_KEY)
            )
            connection.execute(
                insert(app_state_table).values(key=FIRST_LAUNCH_COMPLETED_KEY, value="true")
            )

    def reset_first_launch(self) -> None:
        with self._engine.begin() as connection:
            connection.execute(
                delete(app_state_table).where(app_state_table.c.key == FIRST_LAUNCH_COMPLETED_KEY)
            )

    def load_processed_ids(self) -> list[str]:
        stmt = select(processed_visit_table.c.visit_id).order_by(processed_visit_table.c.position)
        with self._engine.connect() as connection:
            return list(connection.execute(stmt).scalars())

    def save_processed_ids(self, ids: Sequence[str]) -> None:
        with self._engine.begin() as connection:
            connection.execute(delete(processed_visit_table))
            if ids:
                connection.execute(
                    insert(processed_visit_table),
                    [
                        {"position": index, "visit_id": visit_id}
                        for index, visit_id in enumerate(ids)
                    ],
                )
        log.debug("Persisted %s processed visit id(s)", len(ids))


if TYPE_CHECKING:

    def _store_check(store: SqlAlchemyAppStateStore) -> AppStateStore:
        return store
