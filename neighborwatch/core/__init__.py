"""
Core domain models and pure functions for NeighborWatch.

This module contains the domain models and pure business logic
that are independent of external I/O and infrastructure concerns.
"""

from .models import (
    AlertFilters, AlertResponse, AlertStatus, EmergencyContact, EntityRef,
    Notification, PanicEvent, Profile, SafetyAlert, Severity,
)
from .correlation import CORRELATION_WINDOW, find_correlated_panic
from .status import validate_status, safety_alert_changes, panic_changes

__all__ = [
    "AlertFilters", "AlertResponse", "AlertStatus", "EmergencyContact", "EntityRef",
    "Notification", "PanicEvent", "Profile", "SafetyAlert", "Severity",
    "CORRELATION_WINDOW", "find_correlated_panic",
    "validate_status", "safety_alert_changes", "panic_changes",
]
