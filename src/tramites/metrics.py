"""Prometheus metrics helpers for the process engine."""

from __future__ import annotations

import threading

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

_LOCK = threading.Lock()
_REGISTRY: CollectorRegistry | None = None

# Prometheus collectors (initialised lazily so tests can reset the registry)
_TOOL_CALL_COUNTER: Counter
_TOOL_LATENCY_SECONDS: Histogram
_PROCESSES_GENERATED: Counter
_TRANSITION_COUNTER: Counter
_NOTIFICATION_COUNTER: Counter
_HTTP_REQUEST_COUNTER: Counter
_HTTP_REQUEST_LATENCY_SECONDS: Histogram


def _initialise_registry() -> None:
    global _REGISTRY
    global _TOOL_CALL_COUNTER, _TOOL_LATENCY_SECONDS
    global _PROCESSES_GENERATED, _TRANSITION_COUNTER, _NOTIFICATION_COUNTER
    global _HTTP_REQUEST_COUNTER, _HTTP_REQUEST_LATENCY_SECONDS

    registry = CollectorRegistry()

    _TOOL_CALL_COUNTER = Counter(
        "tramites_tool_calls_total",
        "Number of tool invocations grouped by tool and status.",
        ["tool", "status"],
        registry=registry,
    )
    _TOOL_LATENCY_SECONDS = Histogram(
        "tramites_tool_latency_seconds",
        "Execution time of tool invocations.",
        ["tool"],
        registry=registry,
    )
    _PROCESSES_GENERATED = Counter(
        "tramites_processes_generated_total",
        "Processes created, grouped by origin (template or budget).",
        ["origin"],
        registry=registry,
    )
    _TRANSITION_COUNTER = Counter(
        "tramites_process_transitions_total",
        "Process state transitions grouped by source, target and outcome.",
        ["source", "target", "outcome"],
        registry=registry,
    )
    _NOTIFICATION_COUNTER = Counter(
        "tramites_notifications_total",
        "Notifications added to the feed, grouped by kind.",
        ["kind"],
        registry=registry,
    )
    _HTTP_REQUEST_COUNTER = Counter(
        "tramites_http_requests_total",
        "HTTP requests handled by the streamable HTTP server.",
        ["method", "path", "status"],
        registry=registry,
    )
    _HTTP_REQUEST_LATENCY_SECONDS = Histogram(
        "tramites_http_request_seconds",
        "HTTP handler latency for the streamable HTTP server.",
        ["method", "path"],
        registry=registry,
    )

    _REGISTRY = registry


def _ensure_registry() -> None:
    if _REGISTRY is None:
        with _LOCK:
            if _REGISTRY is None:
                _initialise_registry()


def record_tool_invocation(tool: str, status: str, duration_seconds: float) -> None:
    """Record a tool invocation."""

    _ensure_registry()
    _TOOL_CALL_COUNTER.labels(tool=tool, status=status).inc()
    _TOOL_LATENCY_SECONDS.labels(tool=tool).observe(duration_seconds)


def record_processes_generated(origin: str, count: int) -> None:
    _ensure_registry()
    _PROCESSES_GENERATED.labels(origin=origin).inc(count)


def record_transition(source: str, target: str, outcome: str) -> None:
    _ensure_registry()
    _TRANSITION_COUNTER.labels(source=source, target=target, outcome=outcome).inc()


def record_notification(kind: str) -> None:
    _ensure_registry()
    _NOTIFICATION_COUNTER.labels(kind=kind).inc()


def record_http_request(
    method: str,
    path: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """Record an HTTP request handled by the streamable HTTP server."""

    _ensure_registry()
    _HTTP_REQUEST_COUNTER.labels(
        method=method,
        path=path,
        status=str(status_code),
    ).inc()
    _HTTP_REQUEST_LATENCY_SECONDS.labels(method=method, path=path).observe(duration_seconds)


def metrics_payload() -> tuple[bytes, str]:
    """Return the Prometheus metrics payload and content type."""

    _ensure_registry()
    return generate_latest(_REGISTRY or CollectorRegistry()), CONTENT_TYPE_LATEST


def reset_metrics_for_tests() -> None:  # pragma: no cover - test utility
    """Reset the registry so tests can run with a clean state."""

    with _LOCK:
        _initialise_registry()
