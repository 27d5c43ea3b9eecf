from __future__ import annotations

import asyncio
import logging
import math
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timezone, tzinfo
from typing import Any

import httpx

from .formatting import render_payload
from .types import NotificationJob

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

LONG_THROTTLE_SECONDS = 60.0


@dataclass
class DispatchStats:
    sent: int = 0
    dropped: int = 0
    throttled: int = 0


class OutboundQueue:
    """FIFO of pending notification jobs.

    The drain loop peeks at the head and only removes it once the job has
    been delivered or dropped.
    """

    def __init__(self) -> None:
        self._jobs: deque[NotificationJob] = deque()

    def __len__(self) -> int:
        return len(self._jobs)

    def append(self, job: NotificationJob) -> None:
        self._jobs.append(job)

    def head(self) -> NotificationJob:
        return self._jobs[0]

    def pop_head(self) -> NotificationJob:
        return self._jobs.popleft()


class NotificationDispatcher:
    def __init__(
        self,
        inter_message_delay: float = 1.0,
        throttle_fallback: float = 5.0,
        tz: tzinfo = timezone.utc,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.inter_message_delay = inter_message_delay
        self.throttle_fallback = throttle_fallback
        self.tz = tz
        self.stats = DispatchStats()
        self.queue = OutboundQueue()
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep
        self._drain_task: asyncio.Task[None] | None = None

    @property
    def draining(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    async def close(self) -> None:
        if self._drain_task is not None:
            self._drain_task.cancel()
            await asyncio.gather(self._drain_task, return_exceptions=True)
        await self._client.aclose()

    async def join(self) -> None:
        if self._drain_task is not None:
            await self._drain_task

    def enqueue(self, job: NotificationJob) -> None:
        self.queue.append(job)
        # The running loop may be in its inter-message delay with an empty
        # queue; it re-checks the queue before exiting.
        if not self.draining:
            self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while len(self.queue):
            job = self.queue.head()
            try:
                await self._deliver(job)
            except Exception:
                self.stats.dropped += 1
                logger.exception(
                    "Dropping %s notification after delivery error", job.direction.value
                )
            self.queue.pop_head()
            await self._sleep(self.inter_message_delay)

    async def _deliver(self, job: NotificationJob) -> bool:
        payload = render_payload(job, self.tz)
        waited = 0.0

        while True:
            try:
                response = await self._client.post(job.destination, json=payload)
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                self.stats.dropped += 1
                logger.error("Failed to send %s notification: %s", job.direction.value, exc)
                return False

            if response.status_code == 429:
                self.stats.throttled += 1
                retry_after = self._retry_after(response)
                waited += retry_after
                if waited > LONG_THROTTLE_SECONDS:
                    logger.error(
                        "Webhook still rate limited after %.1fs for %s notification",
                        waited,
                        job.direction.value,
                    )
                else:
                    logger.warning("Webhook rate limited. Sleeping %.1fs", retry_after)
                await self._sleep(retry_after)
                continue

            if not response.is_success:
                self.stats.dropped += 1
                logger.error(
                    "Webhook rejected %s notification: %d %s",
                    job.direction.value,
                    response.status_code,
                    response.text[:200],
                )
                return False

            self.stats.sent += 1
            logger.info(
                "Notification sent direction=%s status=%s item=%s",
                job.direction.value,
                job.status,
                job.item.market_name,
            )
            return True

    def _retry_after(self, response: httpx.Response) -> float:
        delay = None
        try:
            payload = response.json()
            if isinstance(payload, dict):
                delay = _seconds_or_none(payload.get("retry_after"))
        except ValueError:
            pass

        if delay is None:
            delay = _seconds_or_none(response.headers.get("Retry-After"))
        if delay is None:
            return self.throttle_fallback
        return delay


def _seconds_or_none(raw: Any) -> float | None:
    if raw is None or isinstance(raw, bool):
        return None
    try:
        seconds = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds):
        return None
    return max(seconds, 0.0)
