"""Prometheus-compatible counters for a gpsd session.

The read loop recovers from every stream error on its own, so these
counters are the only way to see how often it reconnected, how many
records were dropped and which report classes were delivered.

Example usage:
    session = GpsdSession.dial("localhost:2947")
    session.start()
    ...
    print(f"Reconnects: {session.metrics.reconnects.get()}")
    print(session.metrics.to_prometheus_text())
"""

from collections import defaultdict
from threading import RLock
from typing import Any, Dict, Optional, Tuple


class Counter:
    """A monotonically increasing counter metric.

    Supports labels for multi-dimensional metrics.

    Example:
        counter = Counter("reports_total", "Reports delivered", ("class",))
        counter.inc(labels={"class": "TPV"})
    """

    def __init__(self, name: str, description: str = "", label_names: Tuple[str, ...] = ()):
        """Initialize the counter.

        Args:
            name: Metric name (should follow Prometheus naming conventions)
            description: Human-readable description
            label_names: Names of labels this counter supports
        """
        self.name = name
        self.description = description
        self.label_names = label_names
        self._values: Dict[Tuple[str, ...], float] = defaultdict(float)
        self._lock = RLock()

    def inc(self, amount: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
        """Increment the counter.

        Args:
            amount: Amount to increment by (must be positive)
            labels: Label values as a dict

        Raises:
            ValueError: If amount is negative
        """
        if amount < 0:
            raise ValueError("Counter can only be incremented by positive values")

        label_key = self._make_label_key(labels)
        with self._lock:
            self._values[label_key] += amount

    def get(self, labels: Optional[Dict[str, str]] = None) -> float:
        """Get the current counter value for the given labels."""
        label_key = self._make_label_key(labels)
        with self._lock:
            return self._values.get(label_key, 0.0)

    def total(self) -> float:
        """Sum over all label combinations."""
        with self._lock:
            return sum(self._values.values())

    def get_all(self) -> Dict[Tuple[str, ...], float]:
        """Get all counter values with their label combinations."""
        with self._lock:
            return dict(self._values)

    def reset(self) -> None:
        """Reset all counter values to zero."""
        with self._lock:
            self._values.clear()

    def _make_label_key(self, labels: Optional[Dict[str, str]]) -> Tuple[str, ...]:
        """Convert labels dict to a hashable tuple."""
        if labels is None or not self.label_names:
            return ()
        return tuple(labels.get(name, "") for name in self.label_names)

    def to_prometheus_text(self) -> str:
        """Export in Prometheus text format."""
        lines = []
        if self.description:
            lines.append(f"# HELP {self.name} {self.description}")
        lines.append(f"# TYPE {self.name} counter")

        with self._lock:
            for label_key, value in self._values.items():
                if label_key:
                    label_str = ",".join(
                        f'{name}="{val}"'
                        for name, val in zip(self.label_names, label_key)
                        if val
                    )
                    lines.append(f"{self.name}{{{label_str}}} {value}")
                else:
                    lines.append(f"{self.name} {value}")

        return "\n".join(lines)


class Gauge:
    """A metric that can go up or down, such as the connection state."""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._value = 0.0
        self._lock = RLock()

    def set(self, value: float) -> None:
        with self._lock:
            self._value = value

    def get(self) -> float:
        with self._lock:
            return self._value

    def reset(self) -> None:
        self.set(0.0)

    def to_prometheus_text(self) -> str:
        """Export in Prometheus text format."""
        lines = []
        if self.description:
            lines.append(f"# HELP {self.name} {self.description}")
        lines.append(f"# TYPE {self.name} gauge")
        lines.append(f"{self.name} {self.get()}")
        return "\n".join(lines)


class SessionMetrics:
    """Diagnostic counters maintained by a GpsdSession's read loop.

    Attributes:
        reports_delivered: Reports handed to subscribers, by class
        records_skipped: Records dropped because nobody subscribed
        decode_errors: Records of a subscribed class that failed to decode
        stream_ends: Times the read loop saw the stream end
        reconnects: Successful reconnects
        reconnect_failures: Failed reconnect attempts
        connected: 1 while a connection is open, 0 otherwise
    """

    def __init__(self, prefix: str = "gpsd"):
        self.reports_delivered = Counter(
            f"{prefix}_reports_delivered_total",
            "Reports delivered to subscribers",
            ("class",),
        )
        self.records_skipped = Counter(
            f"{prefix}_records_skipped_total",
            "Records dropped without decoding because no subscriber wanted them",
        )
        self.decode_errors = Counter(
            f"{prefix}_decode_errors_total",
            "Records that failed to decode",
            ("class",),
        )
        self.stream_ends = Counter(
            f"{prefix}_stream_ends_total",
            "Times the gpsd stream ended or failed",
        )
        self.reconnects = Counter(
            f"{prefix}_reconnects_total",
            "Successful reconnects to gpsd",
        )
        self.reconnect_failures = Counter(
            f"{prefix}_reconnect_failures_total",
            "Failed reconnect attempts",
        )
        self.connected = Gauge(
            f"{prefix}_connected",
            "Whether the session currently holds an open connection",
        )

    def _all(self):
        return (
            self.reports_delivered,
            self.records_skipped,
            self.decode_errors,
            self.stream_ends,
            self.reconnects,
            self.reconnect_failures,
            self.connected,
        )

    def to_prometheus_text(self) -> str:
        """Export all metrics in Prometheus text format."""
        return "\n\n".join(metric.to_prometheus_text() for metric in self._all()) + "\n"

    def to_dict(self) -> Dict[str, Any]:
        """Snapshot of all metrics as plain values."""
        return {
            "reports_delivered": {
                key[0]: value for key, value in self.reports_delivered.get_all().items()
            },
            "records_skipped": self.records_skipped.get(),
            "decode_errors": self.decode_errors.total(),
            "stream_ends": self.stream_ends.get(),
            "reconnects": self.reconnects.get(),
            "reconnect_failures": self.reconnect_failures.get(),
            "connected": bool(self.connected.get()),
        }

    def reset(self) -> None:
        """Reset all metrics."""
        for metric in self._all():
            metric.reset()

    def __repr__(self) -> str:
        return (
            f"SessionMetrics(delivered={self.reports_delivered.total():.0f}, "
            f"reconnects={self.reconnects.get():.0f})"
        )
