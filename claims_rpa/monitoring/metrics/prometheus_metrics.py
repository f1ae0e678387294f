"""Prometheus metrics collection for the claims RPA batches."""

import time
from contextlib import contextmanager
from typing import Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
)

from claims_rpa.core.config import settings


class MetricsCollector:
    """Centralized metrics collection for Prometheus."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics collector on its own registry."""
        self.registry = registry or CollectorRegistry()
        self._setup_metrics()

    def _setup_metrics(self) -> None:
        """Setup all Prometheus metrics."""

        self.visits_processed_total = Counter(
            "rpa_visits_processed_total",
            "Visits handled by a batch stage",
            ["stage", "outcome"],
            registry=self.registry,
        )

        self.visit_processing_seconds = Histogram(
            "rpa_visit_processing_seconds",
            "Time taken to process one visit",
            ["stage"],
            buckets=[1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0, 300.0],
            registry=self.registry,
        )

        self.runs_finalized_total = Counter(
            "rpa_runs_finalized_total",
            "Extraction runs reaching a terminal status",
            ["run_type", "status"],
            registry=self.registry,
        )

        self.routing_overrides_total = Counter(
            "rpa_routing_overrides_total",
            "Portal-instructed sub-system switches",
            ["from_context", "to_context"],
            registry=self.registry,
        )

        self.policy_blocks_total = Counter(
            "rpa_policy_blocks_total",
            "Live submissions blocked by the submission policy",
            ["portal"],
            registry=self.registry,
        )

        self.submissions_total = Counter(
            "rpa_submissions_total",
            "Claim submission results by portal and reason",
            ["portal", "reason"],
            registry=self.registry,
        )

        self.batch_size_visits = Histogram(
            "rpa_batch_size_visits",
            "Number of visits in a batch",
            ["stage"],
            buckets=[1, 5, 10, 25, 50, 100, 250, 500],
            registry=self.registry,
        )

        self.validation_issues = Gauge(
            "rpa_validation_issues",
            "Issues found by the last extraction validation scan",
            ["issue"],
            registry=self.registry,
        )

        self.application_info = Info(
            "rpa_application",
            "Application information",
            registry=self.registry,
        )

    def increment_visits_processed(self, stage: str, outcome: str, count: int = 1) -> None:
        """Increment processed visits counter."""
        self.visits_processed_total.labels(stage=stage, outcome=outcome).inc(count)

    def observe_visit_latency(self, stage: str, duration: float) -> None:
        self.visit_processing_seconds.labels(stage=stage).observe(duration)

    def increment_runs_finalized(self, run_type: str, status: str) -> None:
        self.runs_finalized_total.labels(run_type=run_type, status=status).inc()

    def increment_routing_overrides(self, from_context: str, to_context: str) -> None:
        self.routing_overrides_total.labels(from_context=from_context, to_context=to_context).inc()

    def increment_policy_blocks(self, portal: str) -> None:
        self.policy_blocks_total.labels(portal=portal).inc()

    def increment_submissions(self, portal: Optional[str], reason: str) -> None:
        self.submissions_total.labels(portal=portal or "unknown", reason=reason).inc()

    def observe_batch_size(self, stage: str, size: int) -> None:
        """Observe batch size."""
        self.batch_size_visits.labels(stage=stage).observe(size)

    def set_validation_issue(self, issue: str, count: int) -> None:
        self.validation_issues.labels(issue=issue).set(count)

    @contextmanager
    def time_visit(self, stage: str):
        """Context manager to time one visit through a stage."""
        start_time = time.time()
        try:
            yield
        finally:
            self.observe_visit_latency(stage, time.time() - start_time)

    def set_application_info(self, version: str, environment: str) -> None:
        """Set application information."""
        self.application_info.info({
            "version": version,
            "environment": environment,
            "name": settings.app_name,
        })

    def start_metrics_server(self) -> None:
        """Start Prometheus metrics HTTP server."""
        if settings.enable_metrics:
            start_http_server(settings.prometheus_port, registry=self.registry)


# Global metrics collector instance
metrics = MetricsCollector()
