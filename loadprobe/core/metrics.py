"""Metrics, offenders and assertions collected during a run.

The store is the only mutable state shared by modules, the network tracker
and the session. All writes happen on the event loop thread.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from .errors import MarkerBeforeResponseError
from .events import Event, EventBus
from ..models.report import AssertResult, Metric, MetricValue, Report, RunStatus

logger = logging.getLogger(__name__)

ASSERT_PARAM_PREFIXES = ("assert-", "assert_")


class MetricStream(Protocol):
    """Sink notified about every final metric value."""

    def push(self, *data: Any) -> None:
        ...


class NullMetricStream:
    """Metric stream that drops everything."""

    def push(self, *data: Any) -> None:
        pass


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class MetricsStore:
    """Holds named metrics, offenders and assertion thresholds.

    Assertions pass when the metric value meets or exceeds the threshold.
    A metric that was never set, or whose value is not numeric, fails its
    assertion.
    """

    def __init__(
        self,
        bus: EventBus,
        clock: Callable[[], float],
        metric_stream: Optional[MetricStream] = None,
    ):
        """Initialize metrics store.

        Args:
            bus: Event bus receiving ``metric`` events for final values
            clock: Returns the current time in milliseconds
            metric_stream: External sink for final metric values
        """
        self._bus = bus
        self._clock = clock
        self._metric_stream = metric_stream or NullMetricStream()

        self._metrics: Dict[str, Metric] = {}
        self._offenders: Dict[str, List[str]] = {}
        self._asserts: Dict[str, float] = {}

        self.generator: Optional[str] = None
        self.url: Optional[str] = None
        self.response_end_time: Optional[float] = None

    # metrics

    def set_metric(self, name: str, value: Any = None, is_final: bool = False) -> None:
        """Store ``value`` under ``name``; absent values become zero.

        A final metric keeps its value until another final write replaces it.
        Values other than numbers and strings are stored as JSON text.
        """
        if not isinstance(value, str):
            value = value or 0
        if not isinstance(value, (int, float, str)):
            logger.warning(f"Metric {name} got a {type(value).__name__} value, storing it as JSON")
            value = json.dumps(value, default=str)

        metric = self._metrics.get(name)
        if metric is None:
            metric = self._metrics[name] = Metric(name=name)
        elif metric.is_final and not is_final:
            logger.warning(f"Metric {name} is final, ignoring non-final write of {value!r}")
            return

        metric.value = value
        metric.is_final = metric.is_final or is_final

        if is_final:
            self._bus.emit(Event.METRIC, name, value)
            self._metric_stream.push(name, value)

    def incr_metric(self, name: str, incr: MetricValue = 1) -> None:
        """Add ``incr`` to the current value (zero when unset)."""
        current = self.get_metric(name) or 0
        self.set_metric(name, current + incr)

    def mark_response_end(self, timestamp: Optional[float] = None) -> None:
        """Record when the main document response completed."""
        self.response_end_time = self._clock() if timestamp is None else timestamp

    def set_marker_metric(self, name: str) -> float:
        """Record the time elapsed since response end as a final metric.

        Raises:
            MarkerBeforeResponseError: If the response has not completed yet
        """
        if self.response_end_time is None:
            raise MarkerBeforeResponseError(name)

        value = round(self._clock() - self.response_end_time)
        self.set_metric(name, value, is_final=True)
        return value

    def get_metric(self, name: str) -> Optional[MetricValue]:
        metric = self._metrics.get(name)
        return metric.value if metric else None

    def is_final(self, name: str) -> bool:
        metric = self._metrics.get(name)
        return bool(metric and metric.is_final)

    def get_metrics_names(self) -> List[str]:
        return list(self._metrics.keys())

    def get_metrics(self) -> Dict[str, MetricValue]:
        return {name: metric.value for name, metric in self._metrics.items()}

    # offenders

    def add_offender(self, metric_name: str, message: str, *args: Any) -> None:
        """Append a diagnostic message, %-formatted with ``args``."""
        if args:
            message = message % args
        self._offenders.setdefault(metric_name, []).append(message)

    def get_offenders(self, metric_name: str) -> List[str]:
        return list(self._offenders.get(metric_name, []))

    def get_all_offenders(self) -> Dict[str, List[str]]:
        return {name: list(messages) for name, messages in self._offenders.items()}

    # asserts

    def set_assert(self, metric_name: str, threshold: float) -> None:
        self._asserts[metric_name] = float(threshold)

    def set_asserts(self, asserts: Optional[Mapping[str, Any]]) -> None:
        """Register thresholds from a mapping; non-numeric ones are ignored."""
        for name, threshold in (asserts or {}).items():
            value = _as_number(threshold)
            if not name or value is None:
                logger.debug(f"Ignoring assert {name!r}={threshold!r}")
                continue
            self.set_assert(name, value)

    def set_asserts_from_params(self, params: Mapping[str, Any]) -> None:
        """Register asserts from ``assert-<metric>`` style parameters."""
        for key, raw in params.items():
            prefix = next((p for p in ASSERT_PARAM_PREFIXES if key.startswith(p)), None)
            if prefix is None:
                continue

            name = key[len(prefix):]
            value = _as_number(raw)
            if name and value is not None:
                self.set_assert(name, value)

    def get_asserts(self) -> Dict[str, float]:
        return dict(self._asserts)

    def assert_metric(self, name: str) -> bool:
        """Check the current value of ``name`` against its threshold."""
        threshold = self._asserts.get(name)
        if threshold is None:
            return True

        value = _as_number(self.get_metric(name)) if name in self._metrics else None
        if value is None:
            return False
        return value >= threshold

    def evaluate_asserts(self) -> List[str]:
        """Return the names of failing assertions, in registration order."""
        return [name for name in self._asserts if not self.assert_metric(name)]

    def get_assert_results(self) -> List[AssertResult]:
        return [
            AssertResult(
                metric=name,
                threshold=threshold,
                value=self.get_metric(name),
                passed=self.assert_metric(name),
            )
            for name, threshold in self._asserts.items()
        ]

    # report

    def set_generator(self, generator: str) -> None:
        self.generator = generator

    def set_url(self, url: Optional[str]) -> None:
        self.url = url

    def build_report(self, status: RunStatus = RunStatus.SUCCESS) -> Report:
        return Report(
            generator=self.generator or "loadprobe",
            url=self.url,
            status=status,
            timed_out=status == RunStatus.TIMED_OUT,
            metrics=self.get_metrics(),
            offenders=self.get_all_offenders(),
            asserts=self.get_assert_results(),
            failed_asserts=self.evaluate_asserts(),
        )

    def __repr__(self) -> str:
        return (
            f"MetricsStore(metrics={len(self._metrics)}, "
            f"offenders={sum(len(v) for v in self._offenders.values())}, "
            f"asserts={len(self._asserts)})"
        )
