"""Prescription Audit Publisher.

Persists authorization audit events in the background with at-least-once
delivery. The authorization gate only hands events over; a slow or failing
audit store never blocks or reverses an authorization decision.

Usage:
    publisher = AuditPublisher(JsonlAuditSink("logs/prescription_audit.jsonl"))
    await publisher.start()
    gate = AuthorizationGate(audit_publisher=publisher)
    ...
    await publisher.stop()
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from contextlib import suppress
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Union

from domain.prescription_safety_models import AuditEvent, PrescriptionSafetyError

logger = logging.getLogger(__name__)


class AuditWriteFailure(PrescriptionSafetyError):
    """An audit sink could not persist an event."""


# ========================================
# Sinks
# ========================================

class AuditSink(ABC):
    """Destination for audit events."""

    @abstractmethod
    async def write(self, event: AuditEvent) -> None:
        """Persist one event; raise on failure so it is retried."""


class InMemoryAuditSink(AuditSink):
    """Keeps events in a list. Writes are idempotent per event id."""

    def __init__(self):
        self.events: List[AuditEvent] = []
        self._ids = set()

    async def write(self, event: AuditEvent) -> None:
        if event.event_id in self._ids:
            return
        self._ids.add(event.event_id)
        self.events.append(event)


class JsonlAuditSink(AuditSink):
    """Appends events as JSON lines to a file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _append(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")

    async def write(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), sort_keys=True)
        async with self._lock:
            try:
                await asyncio.to_thread(self._append, line)
            except OSError as e:
                raise AuditWriteFailure(f"Could not append to {self.path}: {e}") from e


# ========================================
# Publisher
# ========================================

class AuditPublisher:
    """Background, retrying delivery of audit events to a sink.

    Events published before start() are buffered and flushed when the
    worker starts. The delivery queue is unbounded so an accepted event is
    never dropped; once the backlog passes backlog_limit, publish() reports
    the delay as a warning. Delivery is retried with exponential backoff;
    events that exhaust their attempts are kept as dead letters for re-drive.
    """

    def __init__(
        self,
        sink: AuditSink,
        max_attempts: int = 5,
        retry_delay: float = 0.5,
        max_retry_delay: float = 30.0,
        backlog_limit: int = 1000,
    ):
        """
        Initialize the publisher.

        Args:
            sink: Where events are persisted
            max_attempts: Delivery attempts per event before dead-lettering
            retry_delay: Initial backoff in seconds
            max_retry_delay: Backoff ceiling in seconds
            backlog_limit: Queued events above which publish() warns
        """
        self.sink = sink
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self.backlog_limit = max(1, backlog_limit)

        self._queue: Optional[asyncio.Queue] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._worker: Optional[asyncio.Task] = None
        self._pending: Deque[AuditEvent] = deque()
        self._dead_letters: List[AuditEvent] = []

        self._stats = {
            "published": 0,
            "delivered": 0,
            "retries": 0,
            "dead_lettered": 0,
            "buffered": 0,
            "backlogged": 0,
        }

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def dead_letters(self) -> List[AuditEvent]:
        return list(self._dead_letters)

    @property
    def backlog(self) -> int:
        """Events accepted but not yet handed to the sink."""
        queued = self._queue.qsize() if self._queue is not None else 0
        return queued + len(self._pending)

    async def start(self) -> None:
        """Start the delivery worker on the running event loop."""
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        while self._pending:
            self._queue.put_nowait(self._pending.popleft())
        self._worker = asyncio.create_task(self._run(), name="prescription-audit-publisher")
        logger.info(f"AuditPublisher started with sink {type(self.sink).__name__}")

    async def stop(self, drain: bool = True, timeout: float = 10.0) -> None:
        """Stop the worker, optionally waiting for queued events first."""
        if not self.is_running:
            return
        if drain:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"AuditPublisher stopped with {self._queue.qsize()} events undelivered"
                )
        self._worker.cancel()
        with suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

        # Anything still queued goes back to the buffer for the next start().
        while self._queue is not None and not self._queue.empty():
            self._pending.append(self._queue.get_nowait())
            self._queue.task_done()
        logger.info("AuditPublisher stopped")

    def publish(self, event: AuditEvent) -> Optional[str]:
        """Hand an event over for delivery without blocking.

        Safe to call from the publisher's event loop or from another thread.

        Returns:
            A warning message when delivery is delayed (publisher not running
            or backlog above backlog_limit), otherwise None
        """
        self._stats["published"] += 1

        if not self.is_running:
            self._pending.append(event)
            self._stats["buffered"] += 1
            logger.warning(f"Audit publisher not running; buffered event {event.event_id}")
            return "audit publisher not running; event buffered for later delivery"

        backlog = self._queue.qsize() + 1

        try:
            current_loop = asyncio.get_running_loop()
        except RuntimeError:
            current_loop = None

        if current_loop is self._loop:
            self._queue.put_nowait(event)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

        if backlog > self.backlog_limit:
            self._stats["backlogged"] += 1
            logger.warning(
                f"Audit backlog at {backlog} events (limit {self.backlog_limit}); "
                f"event {event.event_id} queued"
            )
            return f"audit backlog above {self.backlog_limit} events; delivery delayed"
        return None

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._deliver(event)
            finally:
                self._queue.task_done()

    async def _deliver(self, event: AuditEvent) -> bool:
        delay = self.retry_delay
        for attempt in range(1, self.max_attempts + 1):
            try:
                await self.sink.write(event)
                self._stats["delivered"] += 1
                return True
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if attempt == self.max_attempts:
                    self._dead_letters.append(event)
                    self._stats["dead_lettered"] += 1
                    logger.error(
                        f"Audit event {event.event_id} dead-lettered after {attempt} attempts: {e}"
                    )
                    return False
                self._stats["retries"] += 1
                logger.warning(
                    f"Audit write failed for {event.event_id} (attempt {attempt}/{self.max_attempts}): "
                    f"{e}; retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.max_retry_delay)
        return False

    async def redrive_dead_letters(self) -> int:
        """Retry delivery of dead-lettered events. Returns how many succeeded."""
        events, self._dead_letters = self._dead_letters, []
        delivered = 0
        for event in events:
            if await self._deliver(event):
                delivered += 1
        logger.info(f"Re-drove {len(events)} dead-lettered audit events, {delivered} delivered")
        return delivered

    def get_statistics(self) -> Dict[str, Any]:
        """Get publisher statistics."""
        return {
            **self._stats,
            "pending": len(self._pending),
            "queued": self._queue.qsize() if self._queue is not None else 0,
            "backlog": self.backlog,
            "backlog_limit": self.backlog_limit,
            "dead_letters": len(self._dead_letters),
            "running": self.is_running,
        }
