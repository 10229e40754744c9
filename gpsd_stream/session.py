"""Streaming session with the gpsd daemon.

This module provides the GpsdSession class: it keeps one long-lived
connection to gpsd, enables watch mode, decodes the reports the caller
subscribed to and delivers them to callbacks on a background thread.
When the stream ends it waits, reconnects and carries on until closed.

Example usage:
    from gpsd_stream import GpsdSession

    session = GpsdSession.dial("localhost:2947")

    @session.on("TPV")
    def on_fix(report):
        print(f"{report.time} {report.lat:.6f} {report.lon:.6f}")

    @session.on("SKY")
    def on_sky(report):
        print(f"{len(report.satellites)} satellites")

    session.start()   # Returns immediately
    ...
    session.close()
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional

from .commands import (
    POLL_COMMAND,
    VERSION_COMMAND,
    WATCH_COMMAND,
    WATCH_DISABLE,
    WATCH_ENABLE,
    build_command,
)
from .connection import DEFAULT_ADDRESS, DIAL_TIMEOUT, Connection
from .emitter import ReportHandler, SubscriptionRegistry
from .errors import ConnectFailed, DecodeFailed, SessionStateError
from .metrics import SessionMetrics
from .parser import ReportDecoder

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle state of a GpsdSession."""
    CREATED = "created"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class SessionConfig:
    """Configuration for GpsdSession.

    Attributes:
        dial_timeout: Seconds allowed for the TCP handshake and banner
        reconnect_delay: Seconds to wait after the stream ends before
            reconnecting (also between failed reconnect attempts)
        join_timeout: Seconds close() waits for the read loop to exit
        watch_options: WATCH options sent whenever streaming (re)starts
        unwatch_options: WATCH options sent by close()
    """

    dial_timeout: float = DIAL_TIMEOUT
    reconnect_delay: float = 1.0
    join_timeout: float = 5.0
    watch_options: Dict[str, bool] = field(default_factory=lambda: dict(WATCH_ENABLE))
    unwatch_options: Dict[str, bool] = field(default_factory=lambda: dict(WATCH_DISABLE))


class GpsdSession:
    """A connection to gpsd that streams decoded reports to subscribers.

    Subscribe first, then call ``start()``. The read loop runs on its
    own daemon thread and invokes every callback there, in
    registration order, one report at a time. Callbacks must be quick;
    a callback that blocks stalls the stream.

    Stream errors never reach the caller. When gpsd closes the
    connection or a read fails, the loop waits ``reconnect_delay``
    seconds, reconnects and re-enables watch mode, forever, until
    ``close()`` is called. ``metrics`` counts what happened.

    Example (context manager):
        with GpsdSession.dial() as session:
            session.subscribe("TPV", print)
            session.start()
            session.wait(timeout=60)
    """

    def __init__(
        self,
        address: str = DEFAULT_ADDRESS,
        config: Optional[SessionConfig] = None,
        decoder: Optional[ReportDecoder] = None,
        metrics: Optional[SessionMetrics] = None,
    ):
        """Create an unconnected session.

        Args:
            address: ``host:port`` of the daemon
            config: Configuration options (uses defaults if None)
            decoder: Record decoder (a fresh ReportDecoder if None)
            metrics: Metrics sink (a fresh SessionMetrics if None)
        """
        self._address = address
        self._config = config or SessionConfig()
        self._registry = SubscriptionRegistry()
        self._decoder = decoder or ReportDecoder()
        self._metrics = metrics or SessionMetrics()

        self._connection: Optional[Connection] = None
        self._state = SessionState.CREATED

        # Guards connection replacement against close()
        self._lock = threading.Lock()
        # Single-use cancellation token, set once by close()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @classmethod
    def dial(
        cls,
        address: str = DEFAULT_ADDRESS,
        config: Optional[SessionConfig] = None,
        **kwargs: Any,
    ) -> "GpsdSession":
        """Create a session and connect it.

        Raises:
            ConnectFailed: If gpsd cannot be reached
        """
        session = cls(address, config, **kwargs)
        session.connect()
        return session

    def connect(self) -> None:
        """Open the connection and consume gpsd's banner line.

        Raises:
            ConnectFailed: If gpsd cannot be reached
            SessionStateError: If the session was already closed
        """
        if self._state is SessionState.STOPPED:
            raise SessionStateError("session is closed")

        connection = Connection.open(self._address, timeout=self._config.dial_timeout)
        with self._lock:
            old, self._connection = self._connection, connection
        if old is not None:
            old.close()
        self._metrics.connected.set(1)
        logger.info("Connected to gpsd at %s", self._address)

    # --- Subscriptions ---

    def subscribe(
        self, report_class: str, handler: Optional[ReportHandler] = None
    ) -> Callable:
        """Register a callback for one report class (decorator or direct call).

        Args:
            report_class: Class tag, e.g. "TPV" or "SKY"
            handler: Callback (optional for decorator use)

        Returns:
            Handler or decorator
        """
        return self._registry.subscribe(report_class, handler)

    on = subscribe

    def subscribe_all(self, handler: ReportHandler) -> ReportHandler:
        """Register a callback for every class subscribed to so far.

        Classes subscribed to after this call are not covered.
        """
        return self._registry.subscribe_all(handler)

    def unsubscribe(self, report_class: str, handler: ReportHandler) -> bool:
        """Unregister a callback. Returns True if it was registered."""
        return self._registry.unsubscribe(report_class, handler)

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the read loop in a background thread.

        Returns immediately. Use close() to terminate and wait() to
        block until the loop has exited.

        Raises:
            SessionStateError: If the session is not connected, is
                already running or was closed
        """
        if self._state is SessionState.RUNNING:
            raise SessionStateError("session is already running")
        if self._state is SessionState.STOPPED:
            raise SessionStateError("session is closed")
        if self._connection is None:
            raise SessionStateError("session is not connected; call connect() first")

        self._state = SessionState.RUNNING
        self._thread = threading.Thread(
            target=self._background_loop,
            name=f"gpsd-reader-{self._address}",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Started read loop for %s", self._address)

    def close(self) -> None:
        """Disable watch mode, stop the read loop and close the socket.

        The unwatch command is best-effort. Closing the socket wakes a
        read loop blocked on a read; a record already being read may
        still be delivered before the loop notices the cancellation.

        Raises:
            SessionStateError: If the session was already closed
        """
        with self._lock:
            if self._state is SessionState.STOPPED:
                raise SessionStateError("session is already closed")
            self._state = SessionState.STOPPED

            connection = self._connection
            if connection is not None:
                connection.send(build_command(WATCH_COMMAND, self._config.unwatch_options))
            self._stop_event.set()

        if connection is not None:
            connection.close()
        self._metrics.connected.set(0)

        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._config.join_timeout)
            if thread.is_alive():
                logger.warning("Read loop for %s did not terminate", self._address)

        logger.info("Closed gpsd session %s", self._address)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the read loop has exited.

        Args:
            timeout: Maximum seconds to wait, or None for no limit

        Returns:
            True if the loop is not running when this returns
        """
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout=timeout)
        return not thread.is_alive()

    # --- Commands ---

    def send_command(self, name: str, options: Optional[Mapping[str, bool]] = None) -> None:
        """Send ``?NAME;`` or ``?NAME={...};`` to gpsd (best-effort)."""
        connection = self._connection
        if connection is None:
            raise SessionStateError("session is not connected")
        connection.send(build_command(name, options))

    def watch(self, options: Optional[Mapping[str, bool]] = None) -> None:
        """Send a WATCH command with optional boolean options."""
        self.send_command(WATCH_COMMAND, options)

    def poll(self) -> None:
        """Send a POLL command."""
        self.send_command(POLL_COMMAND)

    def version(self) -> None:
        """Send a VERSION command."""
        self.send_command(VERSION_COMMAND)

    def watch_sync(self, options: Optional[Mapping[str, bool]] = None) -> str:
        """Send a WATCH command and return the next raw line."""
        self._check_sync_use("watch_sync")
        self.watch(options)
        return self._read_reply()

    def poll_sync(self) -> str:
        """Send a POLL command and return the next raw line."""
        self._check_sync_use("poll_sync")
        self.poll()
        return self._read_reply()

    def version_sync(self) -> str:
        """Send a VERSION command and return the next raw line."""
        self._check_sync_use("version_sync")
        self.version()
        return self._read_reply()

    # --- Properties ---

    @property
    def address(self) -> str:
        return self._address

    @property
    def config(self) -> SessionConfig:
        return self._config

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_running(self) -> bool:
        """Whether the read loop thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def metrics(self) -> SessionMetrics:
        return self._metrics

    @property
    def registry(self) -> SubscriptionRegistry:
        return self._registry

    @property
    def decoder(self) -> ReportDecoder:
        return self._decoder

    # --- Context Manager ---

    def __enter__(self) -> "GpsdSession":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        if self._state is not SessionState.STOPPED:
            self.close()
        return False

    def __repr__(self) -> str:
        return (
            f"GpsdSession({self._address!r}, {self._state.value}, "
            f"{self._registry.handler_count} handlers)"
        )

    # --- Internal Methods ---

    def _check_sync_use(self, name: str) -> None:
        if self._state is SessionState.RUNNING:
            # The reply may be consumed by the read loop instead
            logger.warning("%s() called while the read loop is running", name)

    def _read_reply(self) -> str:
        connection = self._connection
        if connection is None:
            raise SessionStateError("session is not connected")
        return connection.read_line() or ""

    def _background_loop(self) -> None:
        """Background thread main loop.

        An unexpected error ends the current connection only. It is
        logged and handled like a stream end, so the session reconnects.
        """
        while not self._stop_event.is_set():
            try:
                self.watch(self._config.watch_options)
                self._read_until_end()
            except Exception as e:
                logger.exception("Error in gpsd read loop for %s: %s", self._address, e)

            if self._stop_event.is_set():
                break

            self._metrics.stream_ends.inc()
            self._metrics.connected.set(0)
            logger.info(
                "gpsd stream from %s ended, reconnecting in %.1fs",
                self._address,
                self._config.reconnect_delay,
            )
            if not self._reconnect():
                break

        logger.debug("Read loop for %s exited", self._address)

    def _read_until_end(self) -> None:
        """Read and dispatch records until the stream ends or close() is called."""
        connection = self._connection
        if connection is None:
            return

        while not self._stop_event.is_set():
            line = connection.read_line()
            if line is None:
                return
            self._process_line(line)

    def _process_line(self, line: str) -> None:
        """Classify, decode and deliver a single record."""
        report_class = self._decoder.classify(line)

        # Nobody listens: skip without decoding
        if not self._registry.has_subscribers(report_class):
            self._metrics.records_skipped.inc()
            return

        try:
            report = self._decoder.decode(report_class, line)
        except DecodeFailed as e:
            self._metrics.decode_errors.inc(labels={"class": report_class})
            logger.warning("%s", e)
            return

        if report is None:
            return

        self._registry.deliver(report_class, report)
        self._metrics.reports_delivered.inc(labels={"class": report_class})

    def _reconnect(self) -> bool:
        """Wait, then reopen the connection, retrying until it works.

        Returns:
            True once reconnected, False if close() was called first
        """
        while not self._stop_event.wait(self._config.reconnect_delay):
            try:
                connection = Connection.open(self._address, timeout=self._config.dial_timeout)
            except ConnectFailed as e:
                self._metrics.reconnect_failures.inc()
                logger.warning("%s", e)
                continue

            with self._lock:
                if self._stop_event.is_set():
                    connection.close()
                    return False
                old, self._connection = self._connection, connection

            if old is not None:
                old.close()
            self._metrics.reconnects.inc()
            self._metrics.connected.set(1)
            logger.info("Reconnected to gpsd at %s", self._address)
            return True

        return False
