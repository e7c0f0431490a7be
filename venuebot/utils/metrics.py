"""
Prometheus Metrics Collector

Lightweight pipeline metrics without external dependencies.
Generates Prometheus text exposition format (text/plain; version=0.0.4).
"""
import threading
from typing import Dict, List, Optional
from dataclasses import dataclass, field


@dataclass
class MetricValue:
    """Single metric value with optional labels."""
    value: float
    labels: Dict[str, str] = field(default_factory=dict)
    suffix: str = ""


class _Metric:
    kind = "untyped"

    def __init__(self, name: str, description: str, labels: Optional[List[str]] = None):
        self.name = name
        self.description = description
        self.label_names = labels or []
        self._values: Dict[tuple, float] = {}
        self._lock = threading.Lock()

    def _label_key(self, labels: Dict[str, str]) -> tuple:
        """Create hashable key from labels."""
        return tuple(sorted((k, str(v)) for k, v in labels.items()))

    def value(self, **labels: str) -> float:
        """Current value for one label set (0 if never touched)."""
        with self._lock:
            return self._values.get(self._label_key(labels), 0.0)

    def collect(self) -> List[MetricValue]:
        with self._lock:
            return [MetricValue(value=v, labels=dict(k)) for k, v in self._values.items()]


class Counter(_Metric):
    """Cumulative metric that only goes up (sent, failed, retried ...)."""
    kind = "counter"

    def inc(self, amount: float = 1.0, **labels: str) -> None:
        if amount < 0:
            raise ValueError("Counters can only increase")
        key = self._label_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + amount


class Gauge(_Metric):
    """Metric that can go up and down (queue depth)."""
    kind = "gauge"

    def set(self, value: float, **labels: str) -> None:
        key = self._label_key(labels)
        with self._lock:
            self._values[key] = value


class Histogram(_Metric):
    """Samples observations into cumulative buckets."""
    kind = "histogram"

    DEFAULT_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 300.0)

    def __init__(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None,
        buckets: Optional[tuple] = None
    ):
        super().__init__(name, description, labels)
        self.buckets = tuple(sorted(buckets or self.DEFAULT_BUCKETS))
        self._series: Dict[tuple, Dict] = {}

    def observe(self, value: float, **labels: str) -> None:
        key = self._label_key(labels)
        with self._lock:
            series = self._series.setdefault(
                key, {"buckets": [0] * len(self.buckets), "sum": 0.0, "count": 0}
            )
            series["sum"] += value
            series["count"] += 1
            for index, bound in enumerate(self.buckets):
                if value <= bound:
                    series["buckets"][index] += 1

    def count(self, **labels: str) -> int:
        with self._lock:
            series = self._series.get(self._label_key(labels))
            return series["count"] if series else 0

    def collect(self) -> List[MetricValue]:
        result = []
        with self._lock:
            for key, series in self._series.items():
                base = dict(key)
                for bound, hits in zip(self.buckets, series["buckets"]):
                    result.append(MetricValue(hits, {**base, "le": str(bound)}, "_bucket"))
                result.append(MetricValue(series["count"], {**base, "le": "+Inf"}, "_bucket"))
                result.append(MetricValue(series["sum"], base, "_sum"))
                result.append(MetricValue(series["count"], base, "_count"))
        return result


class MetricsRegistry:
    """
    Central registry for pipeline metrics.

    Provides singleton access and Prometheus text format export.
    """

    _instance: Optional["MetricsRegistry"] = None
    _lock = threading.Lock()

    def __new__(cls) -> "MetricsRegistry":
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self._metrics: Dict[str, _Metric] = {}
        self._initialized = True
        self._setup_metrics()

    def _setup_metrics(self) -> None:
        """Initialize all pipeline metrics."""

        # ============================================
        # QUEUE DEPTH
        # ============================================
        self.inbound_queue_depth = self.gauge(
            "vb_inbound_queue_depth",
            "Inbound webhook updates not yet processed or failed"
        )

        self.outbound_queue_depth = self.gauge(
            "vb_outbound_queue_depth",
            "Outbox messages not yet sent or failed"
        )

        # ============================================
        # QUEUE OUTCOMES
        # ============================================
        self.queue_completed = self.counter(
            "vb_queue_completed_total",
            "Entries that reached terminal success",
            ["queue"]
        )

        self.queue_retried = self.counter(
            "vb_queue_retried_total",
            "Attempts that ended in a scheduled retry",
            ["queue"]
        )

        self.queue_failed = self.counter(
            "vb_queue_failed_total",
            "Entries that reached terminal failure",
            ["queue", "reason"]
        )

        # ============================================
        # LATENCY
        # ============================================
        self.webhook_processing_lag = self.histogram(
            "vb_webhook_processing_lag_seconds",
            "Delay between receiving a Telegram update and starting to process it"
        )

        self.rate_limit_waits = self.counter(
            "vb_rate_limit_waits_total",
            "Sends that had to wait for a per-chat slot"
        )

        self.ingested_updates = self.counter(
            "vb_ingested_updates_total",
            "Raw updates seen by the ingestion path by outcome",
            ["outcome"]
        )

    def counter(self, name: str, description: str, labels: Optional[List[str]] = None) -> Counter:
        """Create and register a counter."""
        metric = Counter(name, description, labels)
        self._metrics[name] = metric
        return metric

    def gauge(self, name: str, description: str, labels: Optional[List[str]] = None) -> Gauge:
        """Create and register a gauge."""
        metric = Gauge(name, description, labels)
        self._metrics[name] = metric
        return metric

    def histogram(
        self,
        name: str,
        description: str,
        labels: Optional[List[str]] = None,
        buckets: Optional[tuple] = None
    ) -> Histogram:
        """Create and register a histogram."""
        metric = Histogram(name, description, labels, buckets)
        self._metrics[name] = metric
        return metric

    def export(self) -> str:
        """
        Export all metrics in Prometheus text exposition format.

        Format specification:
        https://prometheus.io/docs/instrumenting/exposition_formats/
        """
        lines = []

        for name, metric in self._metrics.items():
            lines.append(f"# HELP {name} {metric.description}")
            lines.append(f"# TYPE {name} {metric.kind}")

            for mv in metric.collect():
                lines.append(f"{name}{mv.suffix}{self._format_labels(mv.labels)} {mv.value}")

            lines.append("")  # Empty line between metrics

        return "\n".join(lines)

    def _format_labels(self, labels: Dict[str, str]) -> str:
        """Format labels as Prometheus label string."""
        if not labels:
            return ""

        parts = [f'{k}="{v}"' for k, v in sorted(labels.items())]
        return "{" + ",".join(parts) + "}"

    def reset(self) -> None:
        """Reset all metrics. Useful for testing."""
        self._metrics.clear()
        self._setup_metrics()


# Global metrics instance
metrics = MetricsRegistry()
