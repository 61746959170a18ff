"""Metric definitions for realtime messaging and persistence."""

from __future__ import annotations

from .registry import registry


realtime_events_total = registry.counter(
    "realtime_events_total",
    "Count of realtime events processed by the websocket gateway and fan-out modules.",
    label_names=("topic", "direction", "action"),
)

realtime_connections = registry.gauge(
    "realtime_active_connections",
    "Number of active websocket connections handled locally.",
    label_names=("scope",),
)

realtime_online_users = registry.gauge(
    "realtime_online_users",
    "Number of users currently registered as online on this instance.",
)

realtime_subscriptions = registry.gauge(
    "realtime_pubsub_subscriptions",
    "Number of active broker subscriptions.",
    label_names=("topic", "backend"),
)

realtime_publish_errors_total = registry.counter(
    "realtime_publish_errors_total",
    "Failures while publishing realtime events to the broker.",
    label_names=("topic", "backend", "reason"),
)

realtime_transport_restarts_total = registry.counter(
    "realtime_transport_restarts_total",
    "Number of times the broker connection was re-established.",
    label_names=("backend", "reason"),
)

persistence_failures_total = registry.counter(
    "realtime_persistence_failures_total",
    "Detached persistence writes that failed after the realtime event was delivered.",
    label_names=("kind",),
)
