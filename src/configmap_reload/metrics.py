"""Prometheus metrics describing the reload delivery pipeline."""
from __future__ import annotations

from enum import Enum
from typing import Optional, Protocol

from prometheus_client import CollectorRegistry, Counter, Gauge

NAMESPACE = "configmap_reload"


class FailureReason(str, Enum):
    """Label values for ``request_errors_total``."""

    CLIENT_REQUEST_CREATE = "client_request_create"
    CLIENT_REQUEST_DO = "client_request_do"
    CLIENT_RESPONSE = "client_response"
    RETRIES_EXHAUSTED = "retries_exhausted"

    @property
    def terminal(self) -> bool:
        """Whether this reason ends delivery to a target for the current change."""

        return self in (FailureReason.CLIENT_REQUEST_CREATE, FailureReason.RETRIES_EXHAUSTED)


class MetricsSink(Protocol):
    """Write side of the metrics used by the webhook dispatcher."""

    def record_failure(self, target: str, reason: FailureReason) -> None:
        ...

    def record_success(self, target: str, duration_seconds: float) -> None:
        ...

    def record_status_code(self, target: str, status_code: int) -> None:
        ...

    def record_watcher_error(self) -> None:
        ...


class PrometheusMetrics:
    """Metrics sink backed by prometheus_client collectors.

    Collectors live in their own registry so tests and embedders do not share
    process-global state; the exporter serves ``self.registry``.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        self.last_reload_error = Gauge(
            "last_reload_error",
            "Whether the last reload resulted in an error (1 for error, 0 for success)",
            labelnames=("webhook",),
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.request_duration = Gauge(
            "last_request_duration_seconds",
            "Duration of last webhook request",
            labelnames=("webhook",),
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.success_reloads = Counter(
            "success_reloads_total",
            "Total success reload calls",
            labelnames=("webhook",),
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.request_errors = Counter(
            "request_errors_total",
            "Total request errors by reason",
            labelnames=("webhook", "reason"),
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.watcher_errors = Counter(
            "watcher_errors_total",
            "Total filesystem watcher errors",
            namespace=NAMESPACE,
            registry=self.registry,
        )
        self.requests = Counter(
            "requests_total",
            "Total requests by response status code",
            labelnames=("webhook", "status_code"),
            namespace=NAMESPACE,
            registry=self.registry,
        )

    def record_failure(self, target: str, reason: FailureReason) -> None:
        self.request_errors.labels(webhook=target, reason=reason.value).inc()
        if reason.terminal:
            self.last_reload_error.labels(webhook=target).set(1)

    def record_success(self, target: str, duration_seconds: float) -> None:
        self.request_duration.labels(webhook=target).set(duration_seconds)
        self.success_reloads.labels(webhook=target).inc()
        self.last_reload_error.labels(webhook=target).set(0)

    def record_status_code(self, target: str, status_code: int) -> None:
        self.requests.labels(webhook=target, status_code=str(status_code)).inc()

    def record_watcher_error(self) -> None:
        self.watcher_errors.inc()
