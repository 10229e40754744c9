"""Forward decoded gpsd reports to HTTP endpoints.

Each configured endpoint gets a bounded queue and a worker thread that
groups reports into batches and POSTs them as JSON with ``requests``.
Subscribing ``WebhookDispatcher.handle_report`` to a session therefore
never blocks the read loop on the network.

Example usage:
    session = GpsdSession.dial()
    dispatcher = WebhookDispatcher()
    dispatcher.add_webhook(WebhookConfig(
        url="https://example.com/gps",
        headers={"Authorization": "Bearer token"},
        classes=("TPV",),
    ))
    session.subscribe("TPV", dispatcher.handle_report)

    with dispatcher:
        session.start()
        ...
        session.close()

Request body:
    {"reports": [{"class": "TPV", "mode": 3, ...}, ...],
     "timestamp": "2024-01-15T14:32:10.456789+00:00",
     "source": "gpsd-stream"}
"""

import json
import logging
import queue
import threading
import time
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import requests

from .parser import encode
from .reports import Report

logger = logging.getLogger(__name__)

# Reports held per endpoint before new ones are dropped
QUEUE_SIZE = 10000

# Longest a worker blocks on its queue before checking for stop()
POLL_INTERVAL = 0.5


@dataclass
class WebhookConfig:
    """One HTTP endpoint.

    Attributes:
        url: Where batches are POSTed
        headers: Extra request headers, e.g. an auth token
        classes: Report classes to forward; empty forwards everything
        batch_size: Send as soon as this many reports are waiting
        batch_timeout: Send a partial batch this many seconds after its
            first report arrived
        max_retries: Extra attempts after a failed request
        retry_backoff: First retry delay, doubled on each attempt
        timeout: Per-request timeout in seconds
    """

    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    classes: Tuple[str, ...] = ()
    batch_size: int = 10
    batch_timeout: float = 5.0
    max_retries: int = 3
    retry_backoff: float = 1.0
    timeout: float = 30.0

    def accepts(self, report: Report) -> bool:
        return not self.classes or report.report_class in self.classes


@dataclass
class WebhookPayload:
    """Body of one webhook request."""

    reports: List[Dict[str, Any]]
    timestamp: str
    source: str = "gpsd-stream"

    @classmethod
    def from_reports(cls, reports: List[Report]) -> "WebhookPayload":
        return cls(
            reports=[encode(r) for r in reports],
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass
class WebhookStats:
    """Per-endpoint counters. ``sent`` and ``failed`` count batches."""

    sent: int = 0
    failed: int = 0
    filtered: int = 0
    dropped: int = 0


class _Endpoint:
    """Queue, worker thread and counters for one WebhookConfig."""

    def __init__(self, config: WebhookConfig):
        self.config = config
        self.queue: "queue.Queue[Report]" = queue.Queue(maxsize=QUEUE_SIZE)
        self.stats = WebhookStats()
        self.thread: Optional[threading.Thread] = None

    def offer(self, report: Report) -> None:
        if not self.config.accepts(report):
            self.stats.filtered += 1
            return
        try:
            self.queue.put_nowait(report)
        except queue.Full:
            self.stats.dropped += 1
            logger.warning("Webhook queue full for %s, dropping %s report",
                           self.config.url, report.report_class)

    def run(self, stop_event: threading.Event) -> None:
        batch: List[Report] = []
        deadline = 0.0

        while not stop_event.is_set():
            wait = POLL_INTERVAL
            if batch:
                wait = max(0.0, min(wait, deadline - time.monotonic()))
            try:
                report = self.queue.get(timeout=wait)
            except queue.Empty:
                pass
            else:
                if not batch:
                    deadline = time.monotonic() + self.config.batch_timeout
                batch.append(report)

            if len(batch) >= self.config.batch_size or (
                batch and time.monotonic() >= deadline
            ):
                self.deliver(batch, stop_event)
                batch = []

        while True:
            try:
                batch.append(self.queue.get_nowait())
            except queue.Empty:
                break
        if batch:
            self.deliver(batch, stop_event)

    def deliver(self, batch: List[Report], stop_event: threading.Event) -> None:
        """POST one batch, retrying with exponential backoff.

        Once stop() has been called retries no longer wait, so shutdown
        is bounded by the request timeouts alone.
        """
        config = self.config
        body = WebhookPayload.from_reports(batch).to_json()
        headers = {"Content-Type": "application/json", **config.headers}
        attempts = config.max_retries + 1

        for attempt in range(attempts):
            try:
                response = requests.post(
                    config.url, data=body, headers=headers, timeout=config.timeout
                )
                response.raise_for_status()
            except requests.RequestException as e:
                logger.warning("Webhook %s failed (attempt %d/%d): %s",
                               config.url, attempt + 1, attempts, e)
                if attempt + 1 < attempts:
                    stop_event.wait(config.retry_backoff * 2**attempt)
                continue

            self.stats.sent += 1
            logger.debug("Sent %d reports to %s", len(batch), config.url)
            return

        self.stats.failed += 1
        logger.error("Giving up on %d reports for %s", len(batch), config.url)


class WebhookDispatcher:
    """Fan reports out to any number of webhook endpoints.

    Endpoints are added before start(). ``handle_report`` only filters
    and enqueues, so it is safe to subscribe directly to a session.
    stop() flushes whatever is still queued.
    """

    def __init__(self):
        self._endpoints: Dict[str, _Endpoint] = {}
        self._stop_event = threading.Event()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def add_webhook(self, config: WebhookConfig) -> None:
        if self._running:
            logger.warning("Cannot add webhook %s after dispatcher started", config.url)
            return
        self._endpoints[config.url] = _Endpoint(config)

    def handle_report(self, report: Report) -> None:
        """Queue a report for every endpoint that accepts its class."""
        if not self._running:
            return
        for endpoint in self._endpoints.values():
            endpoint.offer(report)

    def start(self) -> None:
        if self._running:
            logger.warning("Dispatcher already running")
            return
        if not self._endpoints:
            logger.warning("No webhooks configured")
            return

        self._stop_event.clear()
        self._running = True
        for url, endpoint in self._endpoints.items():
            endpoint.thread = threading.Thread(
                target=endpoint.run,
                args=(self._stop_event,),
                name=f"webhook-{url[:30]}",
                daemon=True,
            )
            endpoint.thread.start()

    def stop(self, timeout: float = 10.0) -> None:
        """Stop the workers after they flush their queues.

        Args:
            timeout: Seconds to wait for each worker thread
        """
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        for url, endpoint in self._endpoints.items():
            if endpoint.thread is None:
                continue
            endpoint.thread.join(timeout=timeout)
            if endpoint.thread.is_alive():
                logger.warning("Webhook thread for %s did not terminate", url)
            endpoint.thread = None
            logger.info("Webhook %s: %s", url, endpoint.stats)

    def get_stats(self) -> Dict[str, Dict[str, int]]:
        """Counters per endpoint URL, as plain dicts."""
        return {url: asdict(e.stats) for url, e in self._endpoints.items()}

    def __enter__(self) -> "WebhookDispatcher":
        self.start()
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()
