"""Subscription registry for decoded gpsd reports.

This module provides the SubscriptionRegistry class that maps report
class tags to the callbacks interested in them.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from .reports import Report


logger = logging.getLogger(__name__)


# Handler function type
ReportHandler = Callable[[Report], Any]


class SubscriptionRegistry:
    """Dispatches decoded reports to the callbacks subscribed to their class.

    Callbacks run synchronously, in registration order, on the thread
    that calls ``deliver`` (the session read loop). They should return
    quickly and hand heavier work to their own thread or queue.
    Handler exceptions are caught and logged so one faulty handler does
    not stop the stream.

    The registry is not locked. Configure subscriptions first, then
    start the session.

    Example:
        >>> registry = SubscriptionRegistry()
        >>>
        >>> @registry.subscribe("TPV")
        ... def on_fix(report):
        ...     print(report.lat, report.lon)
        >>>
        >>> registry.deliver("TPV", tpv_report)
        1
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._handlers: Dict[str, List[ReportHandler]] = {}

    def subscribe(
        self,
        report_class: str,
        handler: Optional[ReportHandler] = None
    ) -> Union[ReportHandler, Callable[[ReportHandler], ReportHandler]]:
        """Register a handler for one report class.

        Can be used as a decorator:
            @registry.subscribe("SKY")
            def handle(report):
                ...

        Or called directly:
            registry.subscribe("SKY", my_handler)

        Args:
            report_class: Class tag to handle ("TPV", "SKY", ...)
            handler: Callback function (optional if used as decorator)

        Returns:
            The handler, or a decorator function
        """
        if handler is not None:
            self._handlers.setdefault(report_class, []).append(handler)
            return handler

        def decorator(fn: ReportHandler) -> ReportHandler:
            self._handlers.setdefault(report_class, []).append(fn)
            return fn

        return decorator

    def subscribe_all(self, handler: ReportHandler) -> ReportHandler:
        """Register a handler for every class subscribed so far.

        The handler is appended to each class that already has a
        subscription list at call time. Classes subscribed to later are
        not covered, so call this after the per-class subscriptions.

        Args:
            handler: Callback function

        Returns:
            The handler (for decorator use)
        """
        for handlers in self._handlers.values():
            handlers.append(handler)
        return handler

    def unsubscribe(self, report_class: str, handler: ReportHandler) -> bool:
        """Remove one registration of a handler.

        The class keeps its (possibly empty) entry, so a later
        ``subscribe_all`` still attaches to it.

        Args:
            report_class: Class tag the handler was registered for
            handler: Handler to remove

        Returns:
            True if handler was found and removed
        """
        handlers = self._handlers.get(report_class, [])
        try:
            handlers.remove(handler)
            return True
        except ValueError:
            return False

    def deliver(self, report_class: str, report: Report) -> int:
        """Dispatch a report to every handler of its class.

        Args:
            report_class: Class tag of the report
            report: The decoded report, shared by all handlers

        Returns:
            Number of handlers that completed without raising
        """
        handlers_called = 0

        for handler in list(self._handlers.get(report_class, [])):
            try:
                handler(report)
                handlers_called += 1
            except Exception:
                logger.exception(
                    "Error in report handler %s for %s",
                    getattr(handler, "__name__", repr(handler)),
                    report_class,
                )

        return handlers_called

    def has_subscribers(self, report_class: str) -> bool:
        """Check if any handlers are registered for a class.

        Args:
            report_class: Class tag to check

        Returns:
            True if at least one handler is registered
        """
        return bool(self._handlers.get(report_class))

    def clear(self, report_class: Optional[str] = None) -> None:
        """Remove all handlers for a class, or every handler.

        Args:
            report_class: Class to clear, or None to clear all handlers
        """
        if report_class is None:
            self._handlers.clear()
        else:
            self._handlers.pop(report_class, None)

    @property
    def classes(self) -> List[str]:
        """Class tags with a subscription list, in first-subscribed order."""
        return list(self._handlers)

    @property
    def handler_count(self) -> int:
        """Total number of registrations across all classes."""
        return sum(len(handlers) for handlers in self._handlers.values())

    def handlers_for(self, report_class: str) -> List[ReportHandler]:
        """Copy of the handlers registered for a class, in delivery order."""
        return list(self._handlers.get(report_class, []))
