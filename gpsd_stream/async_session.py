"""Async interface to a gpsd streaming session.

This module provides AsyncGpsdSession, an asyncio-native wrapper around
GpsdSession. It supports both decorator-style handlers and async
iteration over reports.

Example usage (async iteration):
    async def main():
        async with AsyncGpsdSession(classes=("TPV", "SKY")) as gps:
            async for report in gps.reports():
                if report.report_class == "TPV":
                    print(report.lat, report.lon)
                elif report.report_class == "SKY":
                    print(len(report.satellites), "satellites")

    asyncio.run(main())

Example usage (decorator style):
    gps = AsyncGpsdSession()

    @gps.on("TPV")
    async def on_fix(report):
        await store(report)

    async def main():
        await gps.start()
        await asyncio.sleep(60)
        await gps.stop()
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import (
    Any,
    AsyncIterator,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Union,
)

from .connection import DEFAULT_ADDRESS
from .reports import Report
from .session import GpsdSession, SessionConfig

logger = logging.getLogger(__name__)


# Type for handlers that can be sync or async
AsyncReportHandler = Union[
    Callable[[Report], None],
    Callable[[Report], Awaitable[None]],
]


class AsyncGpsdSession:
    """Async-native gpsd session with report streaming.

    The blocking GpsdSession runs on its own thread as usual; a bridge
    callback moves each report onto an asyncio.Queue from which handlers
    are dispatched and ``reports()`` iterates. Reports are only streamed
    for the classes named at construction plus any class given to
    ``on()`` before ``start()``.

    Attributes:
        session: The underlying GpsdSession, once started.
    """

    def __init__(
        self,
        address: str = DEFAULT_ADDRESS,
        classes: Iterable[str] = ("TPV",),
        config: Optional[SessionConfig] = None,
        queue_size: int = 1000,
    ):
        """Initialize the async session.

        Args:
            address: ``host:port`` of the daemon
            classes: Report classes to stream
            config: Session configuration
            queue_size: Maximum size of the report queue
        """
        self._address = address
        self._classes: List[str] = list(classes)
        self._config = config
        self._queue_size = queue_size

        self.session: Optional[GpsdSession] = None

        self._queue: Optional[asyncio.Queue] = None
        self._handlers: Dict[str, List[AsyncReportHandler]] = defaultdict(list)

        self._running = False
        self._dispatch_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # --- Public API: Decorators ---

    def on(
        self,
        report_class: str,
        handler: Optional[AsyncReportHandler] = None,
    ) -> Callable:
        """Register a sync or async handler for one report class.

        Must be called before start(). Can be used as a decorator.
        """
        if report_class not in self._classes:
            self._classes.append(report_class)

        if handler is not None:
            self._handlers[report_class].append(handler)
            return handler

        def decorator(fn: AsyncReportHandler) -> AsyncReportHandler:
            self._handlers[report_class].append(fn)
            return fn

        return decorator

    # --- Public API: Async Iteration ---

    async def reports(self) -> AsyncIterator[Report]:
        """Async iterator over reports as they arrive.

        When handlers are registered they consume the queue instead;
        use one style or the other.
        """
        if not self._running or self._queue is None:
            raise RuntimeError("Session not started. Call start() first.")

        while self._running:
            try:
                report = await asyncio.wait_for(self._queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            if report is None:
                # Shutdown signal
                break
            yield report

    # --- Public API: Lifecycle ---

    async def start(self) -> None:
        """Connect and start streaming (non-blocking).

        Raises:
            ConnectFailed: If gpsd cannot be reached
        """
        if self._running:
            return

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self._queue_size)

        session = GpsdSession(self._address, self._config)
        for report_class in self._classes:
            session.subscribe(report_class, self._on_sync_report)

        await self._loop.run_in_executor(None, session.connect)
        session.start()
        self.session = session
        self._running = True

        if self._handlers:
            self._dispatch_task = asyncio.create_task(self._dispatch_loop())

        logger.debug("Started async gpsd session for %s", self._address)

    async def stop(self) -> None:
        """Close the session and stop dispatching."""
        if not self._running:
            return

        self._running = False

        if self._queue is not None:
            try:
                self._queue.put_nowait(None)
            except asyncio.QueueFull:
                pass

        if self.session is not None:
            await asyncio.get_running_loop().run_in_executor(None, self.session.close)

        if self._dispatch_task is not None:
            self._dispatch_task.cancel()
            try:
                await self._dispatch_task
            except asyncio.CancelledError:
                pass
            self._dispatch_task = None

        self._queue = None
        self._loop = None

        logger.debug("Stopped async gpsd session for %s", self._address)

    async def run_for(self, seconds: float) -> None:
        """Stream for a limited duration."""
        await self.start()
        try:
            await asyncio.sleep(seconds)
        finally:
            await self.stop()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def classes(self) -> List[str]:
        return list(self._classes)

    # --- Context Manager ---

    async def __aenter__(self) -> "AsyncGpsdSession":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> bool:
        await self.stop()
        return False

    # --- Internal Methods ---

    def _on_sync_report(self, report: Report) -> None:
        """Bridge from the read loop thread into the event loop."""
        if self._queue is None or self._loop is None:
            return

        try:
            self._loop.call_soon_threadsafe(self._enqueue, report)
        except RuntimeError:
            # Loop closed
            pass

    def _enqueue(self, report: Report) -> None:
        if self._queue is None:
            return
        try:
            self._queue.put_nowait(report)
        except asyncio.QueueFull:
            logger.warning("Report queue full, dropping %s report", report.report_class)

    async def _dispatch_loop(self) -> None:
        """Dispatch reports to registered handlers."""
        while self._running and self._queue is not None:
            try:
                report = await asyncio.wait_for(self._queue.get(), timeout=0.5)
            except asyncio.TimeoutError:
                continue
            if report is None:
                break
            await self._dispatch_report(report)

    async def _dispatch_report(self, report: Report) -> None:
        """Dispatch a single report to all handlers of its class."""
        for handler in list(self._handlers.get(report.report_class, [])):
            try:
                if inspect.iscoroutinefunction(handler):
                    await handler(report)
                else:
                    handler(report)
            except Exception as e:
                logger.exception(
                    "Error in handler %s for %s: %s",
                    getattr(handler, "__name__", repr(handler)),
                    report.report_class,
                    e,
                )

    def __repr__(self) -> str:
        status = "running" if self._running else "stopped"
        return f"AsyncGpsdSession({self._address!r}, {status})"
