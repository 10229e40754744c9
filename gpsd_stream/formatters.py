"""Output formatters for CLI reports.

This module provides formatters to convert decoded reports into various
output formats: human-readable plain text, JSON lines, and compact summaries.

Example usage:
    from gpsd_stream.formatters import PlainFormatter

    formatter = PlainFormatter(use_color=True)
    print(formatter.format(report))
"""

import json
import sys
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from .parser import encode
from .reports import Mode, Report


def _clock(ts: Optional[datetime]) -> str:
    return ts.strftime("%H:%M:%S") if ts is not None else "--:--:--"


_MODE_LABELS = {
    Mode.NO_VALUE_SEEN: "unknown",
    Mode.NO_FIX: "no fix",
    Mode.MODE_2D: "2D",
    Mode.MODE_3D: "3D",
}


class OutputFormatter(ABC):
    """Base class for report formatters."""

    @abstractmethod
    def format(self, report: Report) -> str:
        """Format a report for output.

        Args:
            report: The report to format

        Returns:
            Formatted string representation
        """
        pass


class PlainFormatter(OutputFormatter):
    """Human-readable plain text output with optional colors.

    Example output:
        [14:32:05] TPV 3D fix 46.498293, 7.567411 alt 1343.1m 0.09m/s
        [14:32:05] SKY 7/11 satellites used hdop 1.04
    """

    COLORS = {
        "reset": "\033[0m",
        "bold": "\033[1m",
        "dim": "\033[2m",
        "red": "\033[31m",
        "green": "\033[32m",
        "yellow": "\033[33m",
        "blue": "\033[34m",
        "cyan": "\033[36m",
    }

    def __init__(self, use_color: bool = True):
        """Initialize the formatter.

        Args:
            use_color: Whether to use ANSI color codes. Auto-detected
                      based on terminal if True.
        """
        # Auto-detect color support
        if use_color:
            self._use_color = hasattr(sys.stdout, "isatty") and sys.stdout.isatty()
        else:
            self._use_color = False

    def _color(self, name: str, text: str) -> str:
        """Apply color to text if colors are enabled."""
        if not self._use_color:
            return text
        return f"{self.COLORS.get(name, '')}{text}{self.COLORS['reset']}"

    def format(self, report: Report) -> str:
        """Format a report as human-readable text."""
        tag = report.report_class
        ts = _clock(getattr(report, "time", None))
        label = self._color("bold", tag)

        if tag == "TPV":
            mode = _MODE_LABELS.get(report.mode, str(int(report.mode)))
            if not report.has_fix:
                return f"[{ts}] {label} {self._color('yellow', mode)}"
            return (
                f"[{ts}] {label} {self._color('green', mode + ' fix')} "
                f"{report.lat:.6f}, {report.lon:.6f} "
                f"alt {report.alt:.1f}m {report.speed:.2f}m/s"
            )

        elif tag == "SKY":
            return (
                f"[{ts}] {label} {report.satellites_used}/{len(report.satellites)} "
                f"satellites used hdop {report.hdop:.2f}"
            )

        elif tag == "GST":
            return (
                f"[{ts}] {label} rms {report.rms:.3f} "
                f"lat err {report.lat:.3f}m lon err {report.lon:.3f}m"
            )

        elif tag == "ATT":
            return (
                f"[{ts}] {label} heading {report.heading:.1f} "
                f"pitch {report.pitch:.1f} roll {report.roll:.1f}"
            )

        elif tag == "VERSION":
            return (
                f"[{ts}] {label} gpsd {report.release} "
                f"(protocol {report.proto_major}.{report.proto_minor})"
            )

        elif tag == "DEVICES":
            paths = ", ".join(device.path for device in report.devices) or "none"
            return f"[{ts}] {label} {len(report.devices)} device(s): {paths}"

        elif tag == "DEVICE":
            return f"[{ts}] {label} {report.path} {report.driver} {report.bps}bps"

        elif tag == "PPS":
            return (
                f"[{ts}] {label} {report.device} real {report.real_sec}.{report.real_nsec:09d} "
                f"clock {report.clock_sec}.{report.clock_nsec:09d}"
            )

        elif tag == "ERROR":
            return f"[{ts}] {self._color('red', tag)}: {report.message}"

        return f"[{ts}] {label}"


class JsonFormatter(OutputFormatter):
    """JSON lines output, one gpsd-shaped object per report.

    Suitable for piping to tools like jq.

    Example output:
        {"class": "TPV", "mode": 3, "time": "2024-01-15T14:32:05.000Z", ...}
    """

    def format(self, report: Report) -> str:
        """Format a report as a JSON line."""
        return json.dumps(encode(report), default=str, ensure_ascii=False)


class CompactFormatter(OutputFormatter):
    """Single-line compact output.

    Example output:
        14:32:05 | TPV | 3 | 46.498293 | 7.567411
        14:32:05 | SKY | 7/11
    """

    def format(self, report: Report) -> str:
        """Format a report as a compact single line."""
        tag = report.report_class
        parts = [_clock(getattr(report, "time", None)), tag]

        if tag == "TPV":
            parts.append(str(int(report.mode)))
            if report.has_fix:
                parts.append(f"{report.lat:.6f}")
                parts.append(f"{report.lon:.6f}")
        elif tag == "SKY":
            parts.append(f"{report.satellites_used}/{len(report.satellites)}")
        elif tag == "GST":
            parts.append(f"{report.rms:.3f}")
        elif tag == "ATT":
            parts.append(f"{report.heading:.1f}")
        elif tag == "VERSION":
            parts.append(report.release)
        elif tag == "DEVICES":
            parts.append(str(len(report.devices)))
        elif tag == "DEVICE":
            parts.append(report.path)
        elif tag == "PPS":
            parts.append(str(report.real_sec))
        elif tag == "ERROR":
            parts.append(report.message[:40])

        return " | ".join(parts)


def get_formatter(name: str, use_color: bool = True) -> OutputFormatter:
    """Get a formatter by name.

    Args:
        name: Formatter name ("plain", "json", or "compact")
        use_color: Whether to use colors (for plain formatter)

    Returns:
        OutputFormatter instance

    Raises:
        ValueError: If formatter name is unknown
    """
    formatters = {
        "plain": lambda: PlainFormatter(use_color=use_color),
        "json": JsonFormatter,
        "compact": CompactFormatter,
    }

    if name not in formatters:
        raise ValueError(f"Unknown formatter: {name}. Choose from: {list(formatters.keys())}")

    return formatters[name]()
