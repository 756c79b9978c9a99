"""
Supabase adapters for NeighborWatch.

This module provides the implementations of the store, auth,
edge function and realtime ports for a hosted Supabase project.
"""

from .client import SupabaseClient
from .store import SupabaseAlertStore
from .auth import SupabaseAuth
from .functions import SupabaseDelivery, SupabaseStatusFunction
from .realtime import SupabaseRealtime

__all__ = [
    "SupabaseClient", "SupabaseAlertStore", "SupabaseAuth",
    "SupabaseDelivery", "SupabaseStatusFunction", "SupabaseRealtime",
]
