"""
Adapters for NeighborWatch hexagonal architecture.

This module contains the concrete implementations of port interfaces
that handle external I/O and infrastructure concerns.
"""

from .storage import LocalChangeFeed, SQLiteAlertStore
from .supabase import SupabaseAlertStore, SupabaseAuth, SupabaseClient, SupabaseRealtime
from .geocoding.bigdatacloud import BigDataCloudGeocoder
from .geolocation import FixedPositionProvider

__all__ = [
    "LocalChangeFeed", "SQLiteAlertStore", "SupabaseAlertStore", "SupabaseAuth",
    "SupabaseClient", "SupabaseRealtime", "BigDataCloudGeocoder", "FixedPositionProvider",
]
