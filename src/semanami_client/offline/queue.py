from __future__ import annotations

import asyncio
import time
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from semanami_client.utils.log import logger

Operation = Callable[[], Awaitable[Any]]
ConnectivityListener = Callable[[bool], None]


@dataclass(frozen=True, slots=True)
class QueuedResult:
    """Acknowledgement returned instead of a result while offline."""

    queued: bool = True


QUEUED = QueuedResult()


@dataclass(slots=True)
class QueuedOperation:
    op: Operation
    label: str = ""
    enqueued_at: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class DrainReport:
    attempted: int
    succeeded: int
    failed: int
    remaining: int


class OfflineQueue:
    """
    Deferred write queue.

    - online: queue_or_run() awaits the operation and returns its result
    - offline: the operation is appended (FIFO) and QUEUED is returned at once
    - on the offline -> online transition the queue drains in order, awaiting
      each operation before starting the next; failures are logged and dropped
      (at most one attempt per operation, never re-queued)
    - if connectivity drops mid-drain, the rest stays queued for the next
      online transition
    """

    def __init__(self, *, online: bool = True) -> None:
        self._online = bool(online)
        self._items: deque[QueuedOperation] = deque()
        self._drain_lock = asyncio.Lock()
        self._drain_task: asyncio.Task[DrainReport] | None = None
        self._listeners: list[ConnectivityListener] = []

    @property
    def online(self) -> bool:
        return self._online

    @property
    def pending(self) -> int:
        return len(self._items)

    def pending_labels(self) -> list[str]:
        return [item.label for item in self._items]

    def add_listener(self, cb: ConnectivityListener) -> None:
        self._listeners.append(cb)

    async def queue_or_run(self, op: Operation, *, label: str = "") -> Any:
        if self._online:
            return await op()
        self._items.append(QueuedOperation(op=op, label=str(label)))
        logger.info("offline_op_queued", label=str(label), pending=len(self._items))
        return QUEUED

    def set_online(self, online: bool) -> asyncio.Task[DrainReport] | None:
        """
        Feed a connectivity event.

        Returns the drain task started by an offline -> online transition
        (None when nothing was scheduled).
        """
        was_online = self._online
        self._online = bool(online)
        if was_online == self._online:
            return None
        logger.info("connectivity_changed", online=self._online, pending=len(self._items))
        for cb in list(self._listeners):
            try:
                cb(self._online)
            except Exception as ex:
                logger.warning("connectivity_listener_failed", error=str(ex))
        if not self._online or not self._items:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (synchronous caller); drain() must be awaited explicitly.
            return None
        self._drain_task = loop.create_task(self.drain(), name="offline.drain")
        return self._drain_task

    async def drain(self) -> DrainReport:
        attempted = succeeded = failed = 0
        async with self._drain_lock:
            logger.info("offline_drain_started", pending=len(self._items))
            while self._items and self._online:
                item = self._items.popleft()
                attempted += 1
                try:
                    await item.op()
                    succeeded += 1
                except Exception as ex:
                    failed += 1
                    logger.warning(
                        "offline_op_failed",
                        label=item.label,
                        error=str(ex),
                        error_type=type(ex).__name__,
                    )
            report = DrainReport(
                attempted=attempted,
                succeeded=succeeded,
                failed=failed,
                remaining=len(self._items),
            )
        logger.info(
            "offline_drain_finished",
            attempted=report.attempted,
            succeeded=report.succeeded,
            failed=report.failed,
            remaining=report.remaining,
        )
        return report

    async def wait_idle(self) -> None:
        task = self._drain_task
        if task is not None and not task.done():
            await task
