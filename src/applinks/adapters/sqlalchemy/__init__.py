"""SQLAlchemy adapter package for AppLinks."""

from __future__ import annotations

from .mappings import app_state_table, create_all_tables, metadata, processed_visit_table
from .state_store import (
    SqlAlchemyAppStateStore,
    StartupError,
    configured_engine,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyAppStateStore",
    "StartupError",
    "app_state_table",
    "configured_engine",
    "create_all_tables",
    "metadata",
    "processed_visit_table",
    "shutdown",
    "startup",
]
