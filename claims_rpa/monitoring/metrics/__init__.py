from .prometheus_metrics import MetricsCollector, metrics

__all__ = ["MetricsCollector", "metrics"]
