"""Database layer for Quarry."""

from quarry.db.connection import Database
from quarry.db.migrations import run_migrations

__all__ = ["Database", "run_migrations"]
