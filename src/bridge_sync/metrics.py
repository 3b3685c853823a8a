"""
metrics.py - Observability for the sync engine.

Provides:
- Prometheus-compatible counters, gauges and histograms
- The sync series recorded by SyncManager
- Structured JSON logging setup
"""

import json
import logging
import os
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, List


@dataclass
class MetricValue:
    """Single metric value with labels."""
    name: str
    value: float
    labels: Dict[str, str] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class _Metric:
    def __init__(self, name: str, help_text: str, labels: List[str] = None):
        self.name = name
        self.help = help_text
        self.labels = labels or []
        self._values: Dict[tuple, float] = {}
        self._lock = threading.Lock()

    def get(self, **label_values) -> float:
        key = self._label_key(label_values)
        return self._values.get(key, 0)

    def collect(self) -> List[MetricValue]:
        with self._lock:
            return [
                MetricValue(name=self.name, value=value, labels=dict(zip(self.labels, key)))
                for key, value in self._values.items()
            ]

    def _label_key(self, label_values: dict) -> tuple:
        return tuple(str(label_values.get(l, "")) for l in self.labels)


class Counter(_Metric):
    """Prometheus-style counter metric."""

    def inc(self, value: float = 1, **label_values) -> None:
        key = self._label_key(label_values)
        with self._lock:
            self._values[key] = self._values.get(key, 0) + value


class Gauge(_Metric):
    """Prometheus-style gauge metric."""

    def set(self, value: float, **label_values) -> None:
        key = self._label_key(label_values)
        with self._lock:
            self._values[key] = value


class Histogram:
    """Prometheus-style histogram metric."""

    DEFAULT_BUCKETS = (0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, float('inf'))

    def __init__(
        self,
        name: str,
        help_text: str,
        labels: List[str] = None,
        buckets: tuple = None
    ):
        self.name = name
        self.help = help_text
        self.labels = labels or []
        self.buckets = buckets or self.DEFAULT_BUCKETS
        self._values: Dict[tuple, dict] = {}
        self._lock = threading.Lock()

    def observe(self, value: float, **label_values) -> None:
        key = tuple(str(label_values.get(l, "")) for l in self.labels)
        with self._lock:
            data = self._values.setdefault(
                key, {"count": 0, "sum": 0.0, "buckets": {b: 0 for b in self.buckets}}
            )
            data["count"] += 1
            data["sum"] += value
            for bucket in self.buckets:
                if value <= bucket:
                    data["buckets"][bucket] += 1

    def count(self, **label_values) -> int:
        key = tuple(str(label_values.get(l, "")) for l in self.labels)
        data = self._values.get(key)
        return data["count"] if data else 0

    @contextmanager
    def time(self, **label_values):
        """Context manager to time an operation."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(time.perf_counter() - start, **label_values)

    def collect(self) -> List[MetricValue]:
        results = []
        with self._lock:
            for key, data in self._values.items():
                labels = dict(zip(self.labels, key))
                results.append(MetricValue(name=f"{self.name}_sum", value=data["sum"], labels=labels))
                results.append(MetricValue(name=f"{self.name}_count", value=data["count"], labels=labels))
                for le, count in data["buckets"].items():
                    results.append(MetricValue(
                        name=f"{self.name}_bucket",
                        value=count,
                        labels={**labels, "le": str(le)},
                    ))
        return results


class MetricsRegistry:
    """Registry of named metrics sharing a prefix."""

    def __init__(self, prefix: str = "bridge_sync"):
        self.prefix = prefix
        self._metrics: Dict[str, Counter | Gauge | Histogram] = {}
        self._lock = threading.Lock()

    def _register(self, name: str, factory):
        full_name = f"{self.prefix}_{name}"
        with self._lock:
            if full_name not in self._metrics:
                self._metrics[full_name] = factory(full_name)
            return self._metrics[full_name]

    def counter(self, name: str, help_text: str, labels: List[str] = None) -> Counter:
        return self._register(name, lambda n: Counter(n, help_text, labels))

    def gauge(self, name: str, help_text: str, labels: List[str] = None) -> Gauge:
        return self._register(name, lambda n: Gauge(n, help_text, labels))

    def histogram(
        self, name: str, help_text: str, labels: List[str] = None, buckets: tuple = None
    ) -> Histogram:
        return self._register(name, lambda n: Histogram(n, help_text, labels, buckets))

    def collect_all(self) -> List[MetricValue]:
        results = []
        with self._lock:
            for metric in self._metrics.values():
                results.extend(metric.collect())
        return results

    def export_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = []
        for metric in self.collect_all():
            if metric.labels:
                label_str = ",".join(f'{k}="{v}"' for k, v in metric.labels.items())
                lines.append(f"{metric.name}{{{label_str}}} {metric.value}")
            else:
                lines.append(f"{metric.name} {metric.value}")
        return "\n".join(lines)


class SyncMetrics:
    """Series recorded by the push and pull coordinators."""

    def __init__(self, registry: MetricsRegistry):
        self.registry = registry
        self.operations_total = registry.counter(
            "operations_total",
            "Sync attempts by direction and outcome",
            labels=["direction", "outcome"],
        )
        self.duration_seconds = registry.histogram(
            "duration_seconds",
            "Duration of sync attempts in seconds",
            labels=["direction"],
        )
        self.payload_bytes = registry.histogram(
            "payload_bytes",
            "Size of push payloads in bytes",
            buckets=(10240, 102400, 1048576, 8388608, 33554432, float('inf')),
        )
        self.rows_pulled_total = registry.counter(
            "rows_pulled_total",
            "Rows fetched from the remote store",
            labels=["table"],
        )
        self.last_success_timestamp = registry.gauge(
            "last_success_timestamp",
            "Timestamp of the last successful sync",
            labels=["direction"],
        )


_registry = MetricsRegistry()


def get_registry() -> MetricsRegistry:
    """Get the global metrics registry."""
    return _registry


# =============================================================================
# Structured Logging
# =============================================================================

_RESERVED_RECORD_KEYS = frozenset((
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName',
))


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def __init__(self, include_extra: bool = True):
        super().__init__()
        self.include_extra = include_extra
        self._hostname = os.environ.get("HOSTNAME", "unknown")

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "hostname": self._hostname
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if self.include_extra:
            for key, value in record.__dict__.items():
                if key not in _RESERVED_RECORD_KEYS:
                    log_data[key] = value

        return json.dumps(log_data, default=str)


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: str = None
) -> None:
    """
    Configure logging for production.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatting
        log_file: Optional log file path
    """
    handlers = []

    console = logging.StreamHandler()
    if json_format:
        console.setFormatter(JSONFormatter())
    else:
        console.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))
    handlers.append(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=handlers,
        force=True,
    )
