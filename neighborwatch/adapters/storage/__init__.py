"""
Storage adapters for NeighborWatch hexagonal architecture.

This module contains the local SQLite alert store and the in-process
change feed it publishes committed writes to.
"""

from .local_feed import LocalChangeFeed
from .sqlite_store import SQLiteAlertStore

__all__ = ["LocalChangeFeed", "SQLiteAlertStore"]
