"""
Port interfaces for NeighborWatch hexagonal architecture.

This module defines the port interfaces (Protocols) that define
the contracts between the core domain and external adapters.
"""

from .auth import AuthPort
from .dispatch import DeliveryPort, StatusFunctionPort
from .location import GeocoderPort, GeolocationPort
from .realtime import ChangeFeedPort
from .store import AlertStorePort

__all__ = [
    "AuthPort", "DeliveryPort", "StatusFunctionPort", "GeocoderPort",
    "GeolocationPort", "ChangeFeedPort", "AlertStorePort",
]
