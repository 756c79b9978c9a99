"""
Orchestrators for NeighborWatch.

This module contains the orchestrators that coordinate
the flow between ports and adapters.
"""
from .status_update import StatusUpdateService
from .correlation import CorrelationResolver, ResolutionResult
from .panic import FanoutNotifier, NotificationDispatchResult, PanicOrchestrator, PanicTriggerResult
from .incident import IncidentReporter

__all__ = [
    "StatusUpdateService", "CorrelationResolver", "ResolutionResult", "FanoutNotifier",
    "NotificationDispatchResult", "PanicOrchestrator", "PanicTriggerResult", "IncidentReporter",
]
