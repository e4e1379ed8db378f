"""Rate-limit tracking and retry policy around outbound channel calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TypeVar

from chat_notifier.domain.exceptions import (
    AuthenticationError,
    ChannelError,
    ChannelNotFoundError,
    RateLimitedError,
    RecipientNotFoundError,
    TransientChannelError,
)
from chat_notifier.domain.ports import Store
from chat_notifier.utils import utc_now

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], datetime]
Sleeper = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff applied to transient channel errors."""

    max_retries: int = 3
    initial_delay_ms: int = 1000
    backoff_multiplier: float = 2.0
    max_delay_ms: int = 30000
    default_retry_after_ms: int = 60000

    def delay_ms(self, attempt: int) -> int:
        """Return ``min(initial * multiplier**attempt, max)`` in milliseconds."""

        delay = self.initial_delay_ms * (self.backoff_multiplier**attempt)
        return int(min(delay, self.max_delay_ms))


class RateLimitTracker:
    """Retry-after deadlines keyed by workspace."""

    def __init__(self) -> None:
        self._retry_after: dict[str, datetime] = {}

    def remaining_ms(self, workspace_id: str, now: datetime) -> int:
        deadline = self._retry_after.get(workspace_id)
        if deadline is None:
            return 0
        if deadline <= now:
            self._retry_after.pop(workspace_id, None)
            return 0
        return int((deadline - now) / timedelta(milliseconds=1))

    def record(self, workspace_id: str, retry_after_ms: int, now: datetime) -> None:
        self._retry_after[workspace_id] = now + timedelta(milliseconds=retry_after_ms)


class ChannelGuard:
    """Execute channel operations with per-workspace rate limiting and retries.

    Every transport failure leaves this class as a classified
    :class:`ChannelError`; the raw transport exception is chained as the cause.
    """

    def __init__(
        self,
        store: Store,
        *,
        policy: RetryPolicy | None = None,
        tracker: RateLimitTracker | None = None,
        clock: Clock = utc_now,
        sleep: Sleeper = asyncio.sleep,
        degraded_threshold: int = 3,
        unhealthy_threshold: int = 10,
    ) -> None:
        self._store = store
        self.policy = policy or RetryPolicy()
        self.tracker = tracker or RateLimitTracker()
        self._clock = clock
        self._sleep = sleep
        self._degraded_threshold = degraded_threshold
        self._unhealthy_threshold = unhealthy_threshold

    def check_rate_limit(self, workspace_id: str) -> None:
        """Raise :class:`RateLimitedError` while ``workspace_id`` must back off."""

        remaining = self.tracker.remaining_ms(workspace_id, self._clock())
        if remaining > 0:
            raise RateLimitedError(
                f"Rate limited. Retry after {remaining}ms", retry_after_ms=remaining
            )

    async def execute(
        self, workspace_id: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        attempt = 0
        while True:
            self.check_rate_limit(workspace_id)
            try:
                result = await operation()
            except RateLimitedError as exc:
                retry_after_ms = exc.retry_after_ms or self.policy.default_retry_after_ms
                self.tracker.record(workspace_id, retry_after_ms, self._clock())
                await self._mark_rate_limited(workspace_id)
                if attempt < self.policy.max_retries:
                    attempt += 1
                    logger.warning(
                        "Workspace %s rate limited; retrying in %sms (attempt %s/%s)",
                        workspace_id,
                        retry_after_ms,
                        attempt,
                        self.policy.max_retries,
                    )
                    await self._sleep(retry_after_ms / 1000)
                    continue
                await self._mark_failure(workspace_id)
                raise RateLimitedError(
                    "Rate limit exceeded after retries", retry_after_ms=retry_after_ms
                ) from exc
            except AuthenticationError:
                await self._deactivate(workspace_id)
                raise
            except (ChannelNotFoundError, RecipientNotFoundError) as exc:
                logger.warning("Channel call for workspace %s rejected: %s", workspace_id, exc.code)
                await self._mark_failure(workspace_id)
                raise
            except TransientChannelError:
                if attempt < self.policy.max_retries:
                    delay_ms = self.policy.delay_ms(attempt)
                    attempt += 1
                    logger.info(
                        "Transient channel error for workspace %s; retrying in %sms",
                        workspace_id,
                        delay_ms,
                    )
                    await self._sleep(delay_ms / 1000)
                    continue
                await self._mark_failure(workspace_id)
                raise
            except ChannelError:
                await self._mark_failure(workspace_id)
                raise
            except (asyncio.TimeoutError, ConnectionError) as exc:
                if attempt < self.policy.max_retries:
                    delay_ms = self.policy.delay_ms(attempt)
                    attempt += 1
                    await self._sleep(delay_ms / 1000)
                    continue
                await self._mark_failure(workspace_id)
                raise TransientChannelError(str(exc) or type(exc).__name__) from exc
            except Exception as exc:
                logger.exception("Unclassified channel failure for workspace %s", workspace_id)
                await self._mark_failure(workspace_id)
                raise ChannelError(str(exc) or type(exc).__name__) from exc

            await self._mark_healthy(workspace_id)
            return result

    async def _mark_healthy(self, workspace_id: str) -> None:
        workspace = await self._store.load_workspace(workspace_id)
        if workspace is None:
            return
        if workspace.mark_healthy(self._clock()):
            await self._store.save_workspace(workspace)

    async def _mark_failure(self, workspace_id: str) -> None:
        workspace = await self._store.load_workspace(workspace_id)
        if workspace is None:
            return
        workspace.mark_failure(
            self._clock(),
            degraded_threshold=self._degraded_threshold,
            unhealthy_threshold=self._unhealthy_threshold,
        )
        await self._store.save_workspace(workspace)

    async def _mark_rate_limited(self, workspace_id: str) -> None:
        workspace = await self._store.load_workspace(workspace_id)
        if workspace is None:
            return
        workspace.mark_rate_limited(self._clock())
        await self._store.save_workspace(workspace)

    async def _deactivate(self, workspace_id: str) -> None:
        logger.error("Workspace %s credentials revoked; disabling delivery", workspace_id)
        workspace = await self._store.load_workspace(workspace_id)
        if workspace is None:
            return
        workspace.deactivate(self._clock(), "authentication_failed")
        workspace.mark_failure(
            self._clock(),
            degraded_threshold=self._degraded_threshold,
            unhealthy_threshold=self._unhealthy_threshold,
        )
        await self._store.save_workspace(workspace)


__all__ = ["ChannelGuard", "RateLimitTracker", "RetryPolicy"]
