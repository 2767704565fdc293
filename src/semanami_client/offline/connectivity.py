from __future__ import annotations

import asyncio
import time
from contextlib import suppress
from dataclasses import dataclass
from enum import Enum

import httpx

from semanami_client.http import endpoints
from semanami_client.http.client import ApiClient
from semanami_client.offline.queue import DrainReport, OfflineQueue
from semanami_client.utils.log import logger


class ConnectionQuality(str, Enum):
    excellent = "excellent"
    good = "good"
    fair = "fair"
    poor = "poor"
    offline = "offline"


def quality_for_latency(latency_ms: float) -> ConnectionQuality:
    if latency_ms < 200:
        return ConnectionQuality.excellent
    if latency_ms < 500:
        return ConnectionQuality.good
    if latency_ms < 1000:
        return ConnectionQuality.fair
    return ConnectionQuality.poor


@dataclass(frozen=True, slots=True)
class ConnectionStatus:
    is_online: bool
    quality: ConnectionQuality
    queued_operations: int


class ConnectionMonitor:
    """
    Connectivity events + a latency probe against the API origin.

    `mark_online()` / `mark_offline()` are the entry points for whatever
    detects network changes in the embedding app. Coming back online also
    re-measures latency in the background when an event loop is running.
    """

    def __init__(self, *, client: ApiClient, queue: OfflineQueue, timeout_s: float = 5.0) -> None:
        self._client = client
        self._queue = queue
        self._timeout_s = float(timeout_s)
        self.quality = ConnectionQuality.good if queue.online else ConnectionQuality.offline
        self.last_latency_ms: float | None = None
        self._probe_task: asyncio.Task[ConnectionQuality] | None = None

    @property
    def probe_url(self) -> str:
        return endpoints.origin_of(self._client.base_url) + endpoints.HEALTH

    async def probe(self) -> ConnectionQuality:
        start = time.monotonic()
        try:
            await self._client.head(self.probe_url, timeout=self._timeout_s)
        except httpx.TransportError as ex:
            self.quality = ConnectionQuality.offline
            self.last_latency_ms = None
            logger.info("connection_probe_failed", error=type(ex).__name__)
            return self.quality
        latency_ms = (time.monotonic() - start) * 1000.0
        self.last_latency_ms = latency_ms
        self.quality = quality_for_latency(latency_ms)
        logger.info("connection_quality", quality=self.quality.value, latency_ms=round(latency_ms, 1))
        return self.quality

    def mark_online(self) -> asyncio.Task[DrainReport] | None:
        if self.quality is ConnectionQuality.offline:
            self.quality = ConnectionQuality.good
        self._schedule_probe()
        return self._queue.set_online(True)

    @property
    def probe_task(self) -> asyncio.Task[ConnectionQuality] | None:
        return self._probe_task

    def _schedule_probe(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        if self._probe_task is not None and not self._probe_task.done():
            return
        self._probe_task = loop.create_task(self.probe(), name="connection.probe")

    async def stop(self) -> None:
        task = self._probe_task
        self._probe_task = None
        if task is None or task.done():
            return
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task

    def mark_offline(self) -> None:
        self.quality = ConnectionQuality.offline
        self._queue.set_online(False)

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            is_online=self._queue.online,
            quality=self.quality,
            queued_operations=self._queue.pending,
        )
