"""Metrics for CORS decisions, published through logging.

Counting is done by :class:`MetricsObserver`, an observer like any other:
each event adds one to ``cors.accepted``, ``cors.rejected`` or
``cors.invalid``. Metrics are opt-in via log level configuration.

Example:
    import logging
    from corsmachine import CORS
    from corsmachine.metrics import METRICS, MetricsObserver

    logger = logging.getLogger("corsmachine.metrics")
    logger.setLevel(METRICS)
    logger.addHandler(logging.StreamHandler())

    cors = CORS(origins="*", observers=[MetricsObserver()])

Each published record is one JSON object::

    {"timestamp": 1700000000000,
     "dimensions": {"request_type": "preflight"},
     "metrics": {"cors.rejected": {"unit": "Count", "values": [1]}},
     "metadata": {"reason": "method_not_allowed", "origin": "https://a.com"}}
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .telemetry import CORSEvent

# Custom log level for metrics (between INFO=20 and WARNING=30)
METRICS = 25
logging.addLevelName(METRICS, 'METRICS')

METRIC_PREFIX = "cors"

# (request_type, reason code, origin)
GroupKey = Tuple[str, Optional[str], Optional[str]]


class MetricUnit(str, Enum):
    """Metric units used by corsmachine."""
    Count = "Count"
    Milliseconds = "Milliseconds"
    NoUnit = "None"


@dataclass
class MetricValue:
    value: float
    unit: MetricUnit = MetricUnit.NoUnit
    timestamp: Optional[int] = None  # Unix timestamp in milliseconds


class MetricsCollector:
    """Collects metric values, dimensions and metadata until published.

    Example:
        metrics = MetricsCollector()
        metrics.set_default_dimensions(service="api")
        metrics.add_metric("cors.accepted", 1, unit=MetricUnit.Count)
        metrics.add_dimension("request_type", "simple")
        metrics.add_metadata("origin", "https://app.example.com")
    """

    def __init__(self):
        # Metrics can have multiple values (for aggregation)
        self.metrics: Dict[str, List[MetricValue]] = {}
        self.dimensions: Dict[str, str] = {}
        self.default_dimensions: Dict[str, str] = {}
        # High-cardinality context, not for grouping
        self.metadata: Dict[str, Any] = {}

    def set_default_dimensions(self, **dimensions: str):
        """Set dimensions that survive :meth:`clear_metrics`."""
        self.default_dimensions.update({k: str(v) for k, v in dimensions.items()})

    def add_metric(self, name: str, value: float,
                   unit: Union[MetricUnit, str] = MetricUnit.NoUnit,
                   timestamp: Optional[int] = None):
        """Add a metric value.

        Multiple calls with the same name accumulate values in a list.

        Raises:
            ValueError: If value is not numeric
        """
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"Metric value must be numeric, got {type(value)}")

        if isinstance(unit, str) and not isinstance(unit, MetricUnit):
            try:
                unit = MetricUnit(unit)
            except ValueError:
                unit = MetricUnit.NoUnit

        metric_value = MetricValue(
            value=value,
            unit=unit,
            timestamp=timestamp or int(time.time() * 1000)
        )
        self.metrics.setdefault(name, []).append(metric_value)

    def add_dimension(self, key: str, value: str):
        self.dimensions[key] = str(value)

    def add_metadata(self, key: str, value: Any):
        self.metadata[key] = value

    def get_all_dimensions(self) -> Dict[str, str]:
        """Default dimensions overridden by the current ones."""
        all_dims = dict(self.default_dimensions)
        all_dims.update(self.dimensions)
        return all_dims

    def clear_metrics(self):
        """Clear all metrics (but preserve default dimensions)."""
        self.metrics.clear()
        self.dimensions.clear()
        self.metadata.clear()

    def to_dict(self) -> Dict[str, Any]:
        metrics = {}
        for name, values in self.metrics.items():
            metrics[name] = {
                "unit": values[0].unit.value,
                "values": [v.value for v in values],
            }
        return {
            "timestamp": int(time.time() * 1000),
            "dimensions": self.get_all_dimensions(),
            "metrics": metrics,
            "metadata": dict(self.metadata),
        }


class MetricsPublisher(ABC):
    """Base for metrics publishers.

    Publishers turn collected metrics into a concrete output format.
    """

    @abstractmethod
    def publish(self, collector: MetricsCollector):
        """Publish the metrics of ``collector``."""

    @abstractmethod
    def is_enabled(self) -> bool:
        """True if metrics should be collected and published."""


class LoggingMetricsPublisher(MetricsPublisher):
    """Writes metrics as one JSON record at the ``METRICS`` log level."""

    def __init__(self, logger_name: str = __name__):
        self.logger = logging.getLogger(logger_name)

    def is_enabled(self) -> bool:
        return self.logger.isEnabledFor(METRICS)

    def publish(self, collector: MetricsCollector):
        if not self.is_enabled() or not collector.metrics:
            return
        self.logger.log(METRICS, json.dumps(collector.to_dict(), default=str))


class MetricsObserver:
    """Observer counting CORS events.

    Every event adds ``1`` to ``cors.<kind>``. Events are grouped by request
    type, rejection reason and origin; each group is recorded in its own
    collector carrying the ``request_type`` dimension and the ``reason`` and
    ``origin`` metadata of that group only. With ``auto_publish`` (the
    default) each event is published immediately; otherwise call
    :meth:`publish` when convenient, e.g. once per request. Publishing writes
    one record per group.

    The observer can be shared by concurrently handled requests: pending
    groups are swapped out under a lock before they are published.

    Args:
        publisher: Destination of published metrics
                   (a :class:`LoggingMetricsPublisher` by default)
        auto_publish: Publish after every event
        default_dimensions: Dimensions added to every record, e.g. ``service``
    """

    def __init__(self, publisher: Optional[MetricsPublisher] = None,
                 auto_publish: bool = True,
                 default_dimensions: Optional[Dict[str, str]] = None):
        self.publisher = publisher if publisher is not None else LoggingMetricsPublisher()
        self.auto_publish = auto_publish
        self.default_dimensions = dict(default_dimensions or {})
        self._pending: Dict[GroupKey, MetricsCollector] = {}
        self._lock = threading.Lock()

    @property
    def pending(self) -> List[MetricsCollector]:
        """Collectors recorded since the last :meth:`publish`."""
        with self._lock:
            return list(self._pending.values())

    def _new_collector(self, key: GroupKey) -> MetricsCollector:
        request_type, reason, origin = key
        collector = MetricsCollector()
        collector.set_default_dimensions(**self.default_dimensions)
        collector.add_dimension("request_type", request_type)
        if reason is not None:
            collector.add_metadata("reason", reason)
        if origin is not None:
            collector.add_metadata("origin", origin)
        return collector

    def __call__(self, event: CORSEvent) -> None:
        if not self.publisher.is_enabled():
            return

        key = (
            event.request_type.value,
            event.reason.code if event.reason is not None else None,
            event.origin,
        )
        with self._lock:
            collector = self._pending.get(key)
            if collector is None:
                collector = self._pending[key] = self._new_collector(key)
            collector.add_metric(f"{METRIC_PREFIX}.{event.kind.value}", 1, unit=MetricUnit.Count)

        if self.auto_publish:
            self.publish()

    def publish(self) -> None:
        """Publish every pending group, then forget them."""
        with self._lock:
            pending, self._pending = self._pending, {}
        for collector in pending.values():
            self.publisher.publish(collector)
