"""
Metrics definitions for NeighborWatch.

This module defines Prometheus metrics for monitoring
the panic fan-out and status propagation pipeline.
"""

from prometheus_client import Counter, Histogram, Gauge

# 카운터 메트릭
panic_triggered = Counter(
    "panic_triggered_total",
    "Number of panic events created",
    ["situation_type"]
)

notifications_created = Counter(
    "notifications_created_total",
    "Number of in-app notification rows created",
    ["notification_type"]
)

contacts_skipped = Counter(
    "fanout_contacts_skipped_total",
    "Emergency contacts skipped during fan-out",
    ["reason"]
)

dispatch_failures = Counter(
    "dispatch_failures_total",
    "Delivery edge function failures"
)

status_updates = Counter(
    "status_updates_total",
    "Applied status updates",
    ["entity", "status"]
)

correlation_outcomes = Counter(
    "correlation_outcomes_total",
    "Correlation resolver routing decisions",
    ["path"]
)

realtime_events = Counter(
    "realtime_events_total",
    "Realtime change events handled",
    ["table", "event"]
)

realtime_fallbacks = Counter(
    "realtime_poll_fallbacks_total",
    "Realtime channels that fell back to polling",
    ["table"]
)

# 히스토그램 메트릭
panic_trigger_seconds = Histogram(
    "panic_trigger_duration_seconds",
    "Time from panic request to safety alert creation",
    buckets=[0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0]
)

resolve_seconds = Histogram(
    "resolve_and_apply_duration_seconds",
    "Time spent resolving correlation and applying a status",
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

# 게이지 메트릭
active_subscriptions = Gauge(
    "realtime_active_subscriptions",
    "Currently open realtime channels"
)

background_tasks = Gauge(
    "background_tasks_in_flight",
    "Fire-and-forget side effects still running"
)

uptime_seconds = Gauge(
    "uptime_seconds",
    "Service uptime in seconds"
)
