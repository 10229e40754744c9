"""Shared pytest fixtures for gpsd-stream tests."""

import json
import socket
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

import pytest


SAMPLE_DEVICE = "/dev/ttyUSB0"

BANNER = (
    '{"class":"VERSION","release":"3.25","rev":"3.25",'
    '"proto_major":3,"proto_minor":15}\n'
)

# One well-formed record per supported class, as gpsd writes them
SAMPLE_RECORDS: Dict[str, Dict[str, Any]] = {
    "VERSION": {
        "class": "VERSION",
        "release": "3.25",
        "rev": "3.25-1",
        "proto_major": 3,
        "proto_minor": 15,
    },
    "TPV": {
        "class": "TPV",
        "device": SAMPLE_DEVICE,
        "mode": 3,
        "time": "2024-01-15T10:30:00.000Z",
        "ept": 0.005,
        "lat": 46.498293369,
        "lon": 7.567411672,
        "alt": 1343.127,
        "epx": 10.354,
        "epy": 15.085,
        "epv": 33.92,
        "track": 10.3788,
        "speed": 0.091,
        "climb": -0.085,
        "eps": 30.17,
        "epc": 67.84,
    },
    "SKY": {
        "class": "SKY",
        "device": SAMPLE_DEVICE,
        "time": "2024-01-15T10:30:00.000Z",
        "xdop": 0.69,
        "ydop": 0.9,
        "vdop": 1.51,
        "tdop": 0.88,
        "hdop": 1.04,
        "gdop": 2.05,
        "pdop": 1.83,
        "satellites": [
            {"PRN": 1, "az": 10, "el": 5, "ss": 30, "used": True},
            {"PRN": 2, "az": 20, "el": 15, "ss": 0, "used": False},
        ],
    },
    "GST": {
        "class": "GST",
        "device": SAMPLE_DEVICE,
        "time": "2024-01-15T10:30:00.000Z",
        "rms": 2.44,
        "major": 3.1,
        "minor": 2.0,
        "orient": 45.0,
        "lat": 1.2,
        "lon": 1.5,
        "alt": 3.3,
    },
    "ATT": {
        "class": "ATT",
        "device": SAMPLE_DEVICE,
        "time": "2024-01-15T10:30:00.000Z",
        "heading": 14223.0,
        "mag_st": "N",
        "pitch": 169.0,
        "pitch_st": "N",
        "yaw": 1.5,
        "yaw_st": "N",
        "roll": -43.0,
        "roll_st": "N",
        "dip": 4564.0,
        "mag_len": 3.0,
        "mag_x": 0.4,
        "acc_x": 0.1,
        "temperature": 21.5,
    },
    "DEVICES": {
        "class": "DEVICES",
        "devices": [
            {
                "class": "DEVICE",
                "path": SAMPLE_DEVICE,
                "activated": "2024-01-15T10:29:00.000Z",
                "flags": 1,
                "driver": "u-blox",
                "bps": 9600,
                "parity": "N",
                "stopbits": 1,
                "native": 1,
                "cycle": 1.0,
            }
        ],
        "remote": "",
    },
    "DEVICE": {
        "class": "DEVICE",
        "path": SAMPLE_DEVICE,
        "activated": "2024-01-15T10:29:00.000Z",
        "flags": 1,
        "driver": "u-blox",
        "subtype": "SW ROM CORE 3.01",
        "bps": 9600,
        "parity": "N",
        "stopbits": 1,
        "native": 1,
        "cycle": 1.0,
        "mincycle": 0.25,
    },
    "PPS": {
        "class": "PPS",
        "device": "/dev/pps0",
        "real_sec": 1705314600,
        "real_nsec": 0,
        "clock_sec": 1705314600,
        "clock_nsec": 120,
        "precision": -20,
    },
    "ERROR": {
        "class": "ERROR",
        "message": "Unrecognized request 'FOO'",
    },
}


def _record_line(report_class: str, **overrides: Any) -> str:
    record = dict(SAMPLE_RECORDS[report_class])
    record.update(overrides)
    return json.dumps(record, separators=(",", ":")) + "\n"


def _wait_until(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.02) -> bool:
    """Poll predicate until it returns True or timeout expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class FakeGpsd:
    """A tiny gpsd stand-in listening on localhost.

    Each accepted connection gets the banner followed by the lines of
    one script. Scripts are used in order; the last one repeats. A
    script with ``hold_open`` keeps the connection open (recording the
    commands it receives) until ``stop()``; otherwise the server closes
    the connection right after sending the lines.
    """

    def __init__(self, scripts: Sequence[Dict[str, Any]], banner: Optional[str] = BANNER):
        self._scripts = list(scripts) or [{"lines": [], "hold_open": True}]
        self._banner = banner
        self._server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._server.bind(("127.0.0.1", 0))
        self._server.listen(8)
        self._server.settimeout(0.05)
        self.port = self._server.getsockname()[1]
        self.address = f"127.0.0.1:{self.port}"

        self.connections = 0
        self.received: List[str] = []
        self._lock = threading.Lock()
        self._active: List[socket.socket] = []
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._serve, daemon=True)
        self._thread.start()

    @property
    def commands(self) -> str:
        """Everything received from clients so far, concatenated."""
        with self._lock:
            return "".join(self.received)

    def stop(self) -> None:
        """Stop accepting and drop all open connections."""
        self._stop_event.set()
        self._thread.join(timeout=2.0)
        self._server.close()
        with self._lock:
            active = list(self._active)
        for conn in active:
            try:
                conn.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            conn.close()

    def _serve(self) -> None:
        while not self._stop_event.is_set():
            try:
                conn, _ = self._server.accept()
            except socket.timeout:
                continue
            except OSError:
                break
            with self._lock:
                script = self._scripts[min(self.connections, len(self._scripts) - 1)]
                self.connections += 1
                self._active.append(conn)
            threading.Thread(target=self._handle, args=(conn, script), daemon=True).start()

    def _handle(self, conn: socket.socket, script: Dict[str, Any]) -> None:
        try:
            if self._banner is not None:
                conn.sendall(self._banner.encode("utf-8"))
            for line in script.get("lines", []):
                conn.sendall(line.encode("utf-8"))
            if script.get("hold_open"):
                self._drain(conn, deadline=None)
            else:
                # Half-close so the client sees end of stream, then absorb
                # whatever it still sends so the final close is clean
                conn.shutdown(socket.SHUT_WR)
                self._drain(conn, deadline=time.monotonic() + 0.5)
        except OSError:
            pass
        finally:
            with self._lock:
                if conn in self._active:
                    self._active.remove(conn)
            try:
                conn.close()
            except OSError:
                pass

    def _drain(self, conn: socket.socket, deadline: Optional[float]) -> None:
        """Record incoming commands until EOF, stop() or the deadline."""
        conn.settimeout(0.05)
        while not self._stop_event.is_set():
            if deadline is not None and time.monotonic() >= deadline:
                break
            try:
                data = conn.recv(4096)
            except socket.timeout:
                continue
            if not data:
                break
            with self._lock:
                self.received.append(data.decode("utf-8"))


@pytest.fixture
def fake_gpsd():
    """Factory for FakeGpsd servers, all stopped at teardown."""
    servers: List[FakeGpsd] = []

    def factory(*scripts: Dict[str, Any], banner: Optional[str] = BANNER) -> FakeGpsd:
        server = FakeGpsd(scripts, banner=banner)
        servers.append(server)
        return server

    yield factory

    for server in servers:
        if not server._stop_event.is_set():
            server.stop()


@pytest.fixture
def unused_address() -> str:
    """An address on localhost where nothing is listening."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"127.0.0.1:{port}"


@pytest.fixture
def sample_datetime() -> datetime:
    """The timestamp used by the sample records."""
    return datetime(2024, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def sample_records() -> Dict[str, Dict[str, Any]]:
    """Copy of the sample wire records, keyed by class."""
    return json.loads(json.dumps(SAMPLE_RECORDS))


@pytest.fixture
def record_line() -> Callable[..., str]:
    """Factory fixture: sample record of a class as one JSON line.

    Keyword arguments override fields of the sample record.
    """
    return _record_line


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout expires."""
    return _wait_until


@pytest.fixture
def banner() -> str:
    """The banner line FakeGpsd sends on connect."""
    return BANNER
