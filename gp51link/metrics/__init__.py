from gp51link.metrics.prometheus import MetricsCollector

__all__ = ["MetricsCollector"]
