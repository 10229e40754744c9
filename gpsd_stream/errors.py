"""Exceptions raised by the gpsd streaming client."""


class GpsdError(Exception):
    """Base class for all gpsd-stream errors."""


class ConnectFailed(GpsdError):
    """Raised when the TCP connection to gpsd cannot be established.

    Covers DNS failures, refused connections, the dial timeout and a
    daemon that closes the socket before sending its banner line.
    """

    def __init__(self, address: str, reason: str):
        super().__init__(f"failed to connect to gpsd at {address}: {reason}")
        self.address = address
        self.reason = reason


class DecodeFailed(GpsdError):
    """Raised when a record of a known class cannot be decoded."""

    def __init__(self, report_class: str, reason: str, raw_line: str = ""):
        super().__init__(f"failed to decode {report_class} report: {reason}")
        self.report_class = report_class
        self.reason = reason
        self.raw_line = raw_line[:1024]


class SessionStateError(GpsdError):
    """Raised when a session lifecycle method is called in the wrong state."""
