"""Named in-process work queues with priority ordering and debounced drains."""

from __future__ import annotations

import asyncio
import bisect
import itertools
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from chat_notifier.config import Settings
from chat_notifier.domain.entities import QueueCategory, QueueJob
from chat_notifier.domain.ports import QueueBackend
from chat_notifier.utils import utc_now

logger = logging.getLogger(__name__)

JobHandler = Callable[[QueueJob], Awaitable[Any]]

# Upstream queues feed the ones after them, so they are closed first.
SHUTDOWN_ORDER = (
    QueueCategory.BATCHES,
    QueueCategory.DIGESTS,
    QueueCategory.NOTIFICATIONS,
    QueueCategory.SURFACE_REFRESH,
    QueueCategory.ANALYTICS,
)


class DedupePolicy(str, Enum):
    NONE = "none"
    SKIP_IF_PENDING = "skip_if_pending"
    REPLACE_PENDING = "replace_pending"


class InMemoryQueueBackend:
    """Job list kept sorted by ``QueueJob.sort_key``."""

    def __init__(self) -> None:
        self._jobs: list[QueueJob] = []

    def push(self, job: QueueJob) -> None:
        bisect.insort(self._jobs, job, key=lambda item: item.sort_key)

    def pop_batch(self, size: int) -> list[QueueJob]:
        batch = self._jobs[:size]
        del self._jobs[:size]
        return batch

    def remove_key(self, key: str) -> int:
        before = len(self._jobs)
        self._jobs = [job for job in self._jobs if job.key != key]
        return before - len(self._jobs)

    def contains_key(self, key: str) -> bool:
        return any(job.key == key for job in self._jobs)

    def __len__(self) -> int:
        return len(self._jobs)


@dataclass(frozen=True)
class QueueSettings:
    concurrency: int = 5
    delay_seconds: float = 0.0
    dedupe: DedupePolicy = DedupePolicy.NONE


def queue_settings_from(settings: Settings) -> dict[QueueCategory, QueueSettings]:
    """Build the per-queue configuration from application settings."""

    return {
        QueueCategory.NOTIFICATIONS: QueueSettings(
            concurrency=settings.notification_concurrency,
            delay_seconds=settings.notification_debounce_ms / 1000,
        ),
        QueueCategory.BATCHES: QueueSettings(
            concurrency=settings.batch_concurrency,
            delay_seconds=settings.batch_delay_ms / 1000,
            dedupe=DedupePolicy.SKIP_IF_PENDING,
        ),
        QueueCategory.DIGESTS: QueueSettings(concurrency=settings.digest_concurrency),
        QueueCategory.SURFACE_REFRESH: QueueSettings(
            concurrency=settings.surface_concurrency,
            delay_seconds=settings.surface_debounce_ms / 1000,
            dedupe=DedupePolicy.REPLACE_PENDING,
        ),
        QueueCategory.ANALYTICS: QueueSettings(concurrency=settings.analytics_concurrency),
    }


class WorkQueue:
    """One named queue with a single drain loop at a time.

    Jobs are drained ``concurrency`` at a time; every job of a batch settles
    before the next batch is pulled, and a failing job never aborts its
    siblings.
    """

    def __init__(
        self,
        category: QueueCategory,
        handler: JobHandler,
        *,
        config: QueueSettings | None = None,
        backend: QueueBackend | None = None,
        clock: Callable[[], Any] = utc_now,
    ) -> None:
        self.category = category
        self._handler = handler
        self.config = config or QueueSettings()
        self._backend: QueueBackend = backend if backend is not None else InMemoryQueueBackend()
        self._clock = clock
        self._sequence = itertools.count()
        self._in_flight: set[str] = set()
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None
        self.draining = False
        self.accepting = True
        self.completed = 0
        self.failed = 0

    @property
    def waiting(self) -> int:
        return len(self._backend)

    def stats(self) -> dict[str, int]:
        return {"waiting": self.waiting, "completed": self.completed, "failed": self.failed}

    def is_pending(self, key: str) -> bool:
        return key in self._in_flight or self._backend.contains_key(key)

    def enqueue(
        self,
        key: str,
        *,
        weight: int = 3,
        payload: dict[str, Any] | None = None,
        immediate: bool = False,
    ) -> bool:
        """Add a job for ``key``; returns ``False`` when it was not accepted."""

        if not self.accepting:
            logger.warning("Queue %s is shutting down; rejected job %s", self.category.value, key)
            return False

        dedupe = self.config.dedupe
        if dedupe is DedupePolicy.SKIP_IF_PENDING and self.is_pending(key):
            logger.debug("Job %s already pending in %s", key, self.category.value)
            return False
        if dedupe is DedupePolicy.REPLACE_PENDING:
            self._backend.remove_key(key)

        self._backend.push(
            QueueJob(
                category=self.category,
                key=key,
                enqueued_at=self._clock(),
                weight=weight,
                payload=dict(payload or {}),
                sequence=next(self._sequence),
            )
        )
        self._schedule(0.0 if immediate else self.config.delay_seconds)
        return True

    def _schedule(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        due = loop.time() + delay
        if self._timer is not None and not self._timer.cancelled():
            if self._timer.when() <= due:
                return
            self._timer.cancel()
        self._timer = loop.call_later(delay, self._start_drain)

    def _start_drain(self) -> None:
        self._timer = None
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.ensure_future(self.drain())

    async def drain(self) -> None:
        if self.draining:
            return
        self.draining = True
        try:
            while True:
                jobs = self._backend.pop_batch(self.config.concurrency)
                if not jobs:
                    break
                for job in jobs:
                    self._in_flight.add(job.key)
                await asyncio.gather(*(self._run(job) for job in jobs))
        finally:
            self.draining = False

    async def _run(self, job: QueueJob) -> None:
        try:
            await self._handler(job)
        except Exception:
            self.failed += 1
            logger.exception("Job %s failed in queue %s", job.key, self.category.value)
        else:
            self.completed += 1
        finally:
            self._in_flight.discard(job.key)

    async def flush(self) -> None:
        """Drain now, waiting for any drain already in progress."""

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            await self._task
        await self.drain()

    async def close(self) -> None:
        self.accepting = False
        await self.flush()


class WorkQueueScheduler:
    """Enum-keyed set of work queues sharing one lifecycle."""

    def __init__(
        self,
        configs: Mapping[QueueCategory, QueueSettings] | None = None,
        *,
        backend_factory: Callable[[QueueCategory], QueueBackend] | None = None,
        clock: Callable[[], Any] = utc_now,
    ) -> None:
        self._configs = dict(configs or {})
        self._backend_factory = backend_factory
        self._clock = clock
        self._queues: dict[QueueCategory, WorkQueue] = {}

    def register(self, category: QueueCategory, handler: JobHandler) -> WorkQueue:
        backend = self._backend_factory(category) if self._backend_factory else None
        queue = WorkQueue(
            category,
            handler,
            config=self._configs.get(category),
            backend=backend,
            clock=self._clock,
        )
        self._queues[category] = queue
        return queue

    def queue(self, category: QueueCategory) -> WorkQueue:
        try:
            return self._queues[category]
        except KeyError as exc:
            raise LookupError(f"No handler registered for queue '{category.value}'") from exc

    @property
    def accepting(self) -> bool:
        return all(queue.accepting for queue in self._queues.values())

    def enqueue(
        self,
        category: QueueCategory,
        key: str,
        *,
        weight: int = 3,
        payload: dict[str, Any] | None = None,
        immediate: bool = False,
    ) -> bool:
        return self.queue(category).enqueue(
            key, weight=weight, payload=payload, immediate=immediate
        )

    def stats(self) -> dict[str, dict[str, int]]:
        return {category.value: queue.stats() for category, queue in self._queues.items()}

    async def run_until_idle(self) -> None:
        """Drain every queue until none has waiting jobs."""

        while True:
            for category in SHUTDOWN_ORDER:
                queue = self._queues.get(category)
                if queue is not None:
                    await queue.flush()
            if not any(queue.waiting for queue in self._queues.values()):
                return

    async def shutdown(self) -> None:
        """Stop accepting jobs and drain every queue once, upstream first."""

        for category in SHUTDOWN_ORDER:
            queue = self._queues.get(category)
            if queue is None:
                continue
            await queue.close()
            logger.info("Queue %s drained: %s", category.value, queue.stats())


__all__ = [
    "DedupePolicy",
    "InMemoryQueueBackend",
    "JobHandler",
    "QueueSettings",
    "WorkQueue",
    "WorkQueueScheduler",
    "queue_settings_from",
]
