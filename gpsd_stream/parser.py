"""Classification and decoding of raw gpsd records.

Records are decoded in two steps. ``classify`` peeks at the ``class``
tag only, so the read loop can drop records nobody subscribed to
without paying for a full decode. ``decode`` then builds the typed
report for a known tag.
"""

import json
import logging
from dataclasses import fields
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Type, Union

from .errors import DecodeFailed
from .reports import (
    REPORT_TYPES,
    DeviceReport,
    Mode,
    Report,
    Satellite,
)

logger = logging.getLogger(__name__)

RawLine = Union[str, bytes]


def parse_timestamp(ts: str) -> Optional[datetime]:
    """Parse ISO-8601 timestamp string to datetime (always UTC).

    Returns None for empty or unparseable values.
    """
    if not ts:
        return None
    # Handle various ISO formats
    ts = ts.replace("Z", "+00:00")
    try:
        dt = datetime.fromisoformat(ts)
        # Ensure timezone-aware
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    except ValueError:
        logger.debug("unparseable timestamp %r", ts)
        return None


def format_timestamp(dt: datetime) -> str:
    """Format a datetime the way gpsd writes it (UTC, ``Z`` suffix)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    timespec = "milliseconds" if dt.microsecond % 1000 == 0 else "microseconds"
    return dt.replace(tzinfo=None).isoformat(timespec=timespec) + "Z"


def _load(line: RawLine) -> Any:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    return json.loads(line)


def classify(line: RawLine) -> str:
    """Return the ``class`` tag of a raw record.

    Only the tag is inspected. Malformed input (empty lines, non-JSON
    text, JSON that is not an object, or a missing ``class``) yields an
    empty string, which no subscriber can match.

    Args:
        line: One raw record as read from the socket

    Returns:
        The class tag, or "" if it cannot be determined
    """
    if not line or not line.strip():
        return ""

    # json raises RecursionError on deeply nested arrays or objects
    try:
        entry = _load(line)
    except (ValueError, RecursionError) as e:
        logger.debug("failed to parse class type: %s", e)
        return ""

    if not isinstance(entry, dict):
        logger.debug("record is not a JSON object: %r", line[:80])
        return ""

    report_class = entry.get("class")
    if not isinstance(report_class, str):
        logger.debug("record has no class tag: %r", line[:80])
        return ""

    return report_class


# --- Field converters ---


def _as_str(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {type(value).__name__}")
    return value


def _as_float(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected number, got {type(value).__name__}")
    return float(value)


def _as_int(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected integer, got {type(value).__name__}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"expected integer, got {value!r}")
    return int(value)


def _as_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected boolean, got {type(value).__name__}")
    return value


def _as_mode(value: Any) -> Mode:
    return Mode(_as_int(value))


def _as_timestamp(value: Any) -> Optional[datetime]:
    return parse_timestamp(_as_str(value))


def _as_tuple_of(cls: Type) -> Callable[[Any], Tuple]:
    def convert(value: Any) -> Tuple:
        if not isinstance(value, list):
            raise TypeError(f"expected list, got {type(value).__name__}")
        items = []
        for item in value:
            if not isinstance(item, dict):
                raise TypeError(f"expected object in list, got {type(item).__name__}")
            items.append(_build(cls, item))
        return tuple(items)

    return convert


_CONVERTERS: Dict[Any, Callable[[Any], Any]] = {
    str: _as_str,
    float: _as_float,
    int: _as_int,
    bool: _as_bool,
    Mode: _as_mode,
    Optional[datetime]: _as_timestamp,
    Tuple[Satellite, ...]: _as_tuple_of(Satellite),
    Tuple[DeviceReport, ...]: _as_tuple_of(DeviceReport),
}


def _build(cls: Type, entry: Dict[str, Any]) -> Any:
    """Build a dataclass instance from a wire dict, field by field."""
    values: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name == "report_class":
            continue
        wire_name = f.metadata.get("wire", f.name)
        raw = entry.get(wire_name)
        if raw is None:
            # Missing fields keep the zero value
            continue
        try:
            values[f.name] = _CONVERTERS[f.type](raw)
        except (TypeError, ValueError) as e:
            raise ValueError(f"field {wire_name!r}: {e}") from e
    return cls(**values)


def decode(report_class: str, line: RawLine) -> Optional[Report]:
    """Decode a raw record into the typed report for its class.

    Args:
        report_class: Tag returned by ``classify`` for this line
        line: The raw record

    Returns:
        The decoded report, or None if the tag is not recognised

    Raises:
        DecodeFailed: If the line is not valid JSON or a field has the
            wrong type
    """
    cls = REPORT_TYPES.get(report_class)
    if cls is None:
        return None

    raw_text = line.decode("utf-8", errors="replace") if isinstance(line, bytes) else line

    try:
        entry = _load(line)
    except (ValueError, RecursionError) as e:
        raise DecodeFailed(report_class, f"JSON parse error: {e}", raw_text) from e

    if not isinstance(entry, dict):
        raise DecodeFailed(report_class, "record is not a JSON object", raw_text)

    try:
        return _build(cls, entry)
    except ValueError as e:
        raise DecodeFailed(report_class, str(e), raw_text) from e


def _encode_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Mode):
        return int(value)
    if isinstance(value, tuple):
        return [encode(item) for item in value]
    return value


def encode(report: Any) -> Dict[str, Any]:
    """Convert a report back into its wire-shaped dict.

    Timestamps are written in gpsd's ISO-8601 form and unset
    timestamps are omitted. Nested satellites and devices are encoded
    recursively.

    Args:
        report: Any report dataclass (or a ``Satellite``)

    Returns:
        JSON-serializable dictionary using the gpsd field names
    """
    result: Dict[str, Any] = {}
    report_class = getattr(report, "report_class", None)
    if report_class:
        result["class"] = report_class

    for f in fields(report):
        if f.name == "report_class":
            continue
        value = getattr(report, f.name)
        if value is None:
            continue
        result[f.metadata.get("wire", f.name)] = _encode_value(value)

    return result


class ReportDecoder:
    """Decoder used by the session read loop.

    Counts how many records were actually decoded, which makes the
    "skip records nobody listens to" shortcut observable.

    Example:
        >>> decoder = ReportDecoder()
        >>> decoder.decode("TPV", '{"class":"TPV","mode":3}').mode
        <Mode.MODE_3D: 3>
        >>> decoder.decode_count
        1
    """

    def __init__(self):
        self.decode_count = 0

    def classify(self, line: RawLine) -> str:
        return classify(line)

    def decode(self, report_class: str, line: RawLine) -> Optional[Report]:
        self.decode_count += 1
        return decode(report_class, line)
