"""
Prometheus metrics configuration for Chat Relay.

Defines custom metrics and instrumentation logic.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Use standard Prometheus naming conventions: namespace_subsystem_name_unit
NAMESPACE = "chatrelay"


# ============================================================================
# Realtime Metrics
# ============================================================================

ws_connections_active = Gauge(
    f"{NAMESPACE}_websocket_connections_active",
    "Number of currently active realtime connections",
)

ws_connections_total = Counter(
    f"{NAMESPACE}_websocket_connections_total",
    "Total number of realtime connections accepted",
)

ws_messages_total = Counter(
    f"{NAMESPACE}_websocket_messages_total",
    "Total number of realtime frames processed",
    ["direction"],  # "inbound" or "outbound"
)

ws_deliveries_dropped_total = Counter(
    f"{NAMESPACE}_websocket_deliveries_dropped_total",
    "Room events dropped because a viewer's outbox was full",
)

ws_handshakes_total = Counter(
    f"{NAMESPACE}_websocket_handshakes_total",
    "Realtime handshake attempts",
    ["outcome"],  # "success" or "failure"
)


# ============================================================================
# Database Metrics
# ============================================================================

db_pool_connections = Gauge(
    f"{NAMESPACE}_db_pool_connections",
    "Number of database connections by state",
    ["state"],  # "free" or "used"
)

db_query_duration_seconds = Histogram(
    f"{NAMESPACE}_db_query_duration_seconds",
    "Database query duration in seconds",
    ["query_type"],  # "select", "insert"
    buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)


# ============================================================================
# Pipeline & Provider Metrics
# ============================================================================

pipeline_outcomes_total = Counter(
    f"{NAMESPACE}_pipeline_outcomes_total",
    "Chat pipeline runs by terminal state",
    ["state"],  # "done", "rejected_input", "persist_failed", "route_failed", "provider_failed"
)

provider_requests_total = Counter(
    f"{NAMESPACE}_provider_requests_total",
    "Completion requests sent to providers",
    ["provider", "outcome"],  # outcome: "success", "error", "empty"
)

provider_request_duration_seconds = Histogram(
    f"{NAMESPACE}_provider_request_duration_seconds",
    "Provider completion latency in seconds",
    ["provider"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)
