"""
gpsd-stream - Streaming client for the gpsd JSON protocol.

Usage:
    from gpsd_stream import GpsdSession

    session = GpsdSession.dial("localhost:2947")

    @session.on("TPV")
    def on_fix(report):
        print(report.mode, report.lat, report.lon)

    session.subscribe("SKY", lambda r: print(len(r.satellites), "satellites"))

    session.start()   # background read loop, reconnects on its own
    ...
    session.close()
"""

from .commands import build_command, WATCH_ENABLE, WATCH_DISABLE
from .connection import Connection, DEFAULT_ADDRESS, parse_address
from .emitter import SubscriptionRegistry
from .errors import GpsdError, ConnectFailed, DecodeFailed, SessionStateError
from .metrics import SessionMetrics
from .parser import classify, decode, encode, ReportDecoder
from .reports import (
    Mode, Satellite, VersionReport, TPVReport, SKYReport, GSTReport, ATTReport,
    DevicesReport, DeviceReport, PPSReport, ErrorReport, Report, REPORT_TYPES,
)
from .session import GpsdSession, SessionConfig, SessionState
from .async_session import AsyncGpsdSession


__version__ = "0.1.0"

__all__ = [
    # Session
    "GpsdSession",
    "SessionConfig",
    "SessionState",
    "AsyncGpsdSession",
    "DEFAULT_ADDRESS",
    # Building blocks
    "Connection",
    "SubscriptionRegistry",
    "ReportDecoder",
    "SessionMetrics",
    "classify",
    "decode",
    "encode",
    "build_command",
    "parse_address",
    "WATCH_ENABLE",
    "WATCH_DISABLE",
    # Reports
    "Mode",
    "Satellite",
    "VersionReport",
    "TPVReport",
    "SKYReport",
    "GSTReport",
    "ATTReport",
    "DevicesReport",
    "DeviceReport",
    "PPSReport",
    "ErrorReport",
    "Report",
    "REPORT_TYPES",
    # Errors
    "GpsdError",
    "ConnectFailed",
    "DecodeFailed",
    "SessionStateError",
]
