import asyncio
import functools
import logging
import time
from typing import Callable, List, Optional, Sequence, Set

from .apns import DeliveryClient
from .credentials import CredentialManager
from .models import TimerInterval
from .registry import CancellationHandle, CancellationRegistry, PushTokenRegistry
from lapush.utils import short_token

logger = logging.getLogger(__name__)

# APNs may drop a push sent with zero delay, so due intervals still wait a bit
DEFAULT_DUE_FLOOR_SECONDS = 1.0
# the app often registers its push token just after sending the schedule
DEFAULT_TOKEN_GRACE_SECONDS = 4.0


class Scheduler:
    """
    Per-device live activity schedules.

    Each schedule walks its intervals in order: wait until the interval is
    due (or the device's handle is cancelled), then deliver. One schedule per
    device; registering a new one supersedes the old through the
    CancellationRegistry.
    """

    def __init__(
        self,
        credentials: CredentialManager,
        push_tokens: PushTokenRegistry,
        cancellations: CancellationRegistry,
        client: DeliveryClient,
        due_floor: float = DEFAULT_DUE_FLOOR_SECONDS,
        token_grace: float = DEFAULT_TOKEN_GRACE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._push_tokens = push_tokens
        self._cancellations = cancellations
        self._client = client
        self.due_floor = due_floor
        self.token_grace = token_grace
        self._clock = clock
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    def delay_until(self, starts_at: float) -> float:
        return max(starts_at - self._clock(), self.due_floor)

    def start(
        self,
        device_id: str,
        intervals: Sequence[TimerInterval],
        segment_count: int,
    ) -> asyncio.Task:
        """
        Registers right away and runs the schedule as a background task.
        Must be called from the event loop.
        """
        handle = self._cancellations.register(device_id)
        task = asyncio.create_task(
            self._walk(device_id, list(intervals), segment_count, handle),
            name=f"schedule-{short_token(device_id)}",
        )
        self._tasks.add(task)
        # a task cancelled before its first step never reaches _walk's finally
        task.add_done_callback(functools.partial(self._task_done, device_id, handle))
        return task

    async def run(
        self,
        device_id: str,
        intervals: Sequence[TimerInterval],
        segment_count: int,
    ) -> None:
        handle = self._cancellations.register(device_id)
        await self._walk(device_id, list(intervals), segment_count, handle)

    async def shutdown(self) -> None:
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Scheduler stopped (%d schedules cancelled)", len(tasks))

    def _task_done(self, device_id: str, handle: CancellationHandle, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._cancellations.remove_if_current(device_id, handle)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Schedule task %s crashed", task.get_name(), exc_info=exc)

    async def _walk(
        self,
        device_id: str,
        intervals: List[TimerInterval],
        segment_count: int,
        handle: CancellationHandle,
    ) -> None:
        short_id = short_token(device_id)
        logger.debug("schedule %s registered with %d intervals", short_id, len(intervals))
        try:
            for index, interval in enumerate(intervals):
                wait = self.delay_until(interval.starts_at)
                logger.debug("schedule %s interval %d waiting %.3fs", short_id, index, wait)

                if await self._wait_or_cancel(handle, wait):
                    logger.info("schedule %s cancelled before interval %d", short_id, index)
                    return

                push_token = await self._lookup_push_token(device_id, handle)
                if handle.cancelled:
                    logger.info("schedule %s cancelled before interval %d", short_id, index)
                    return
                if push_token is None:
                    logger.warning(
                        "schedule %s has no push token, dropping interval %d", short_id, index
                    )
                    continue

                await self._deliver(push_token, interval, segment_count)

            logger.info("schedule %s completed", short_id)
        finally:
            self._cancellations.remove_if_current(device_id, handle)

    async def _wait_or_cancel(self, handle: CancellationHandle, delay: float) -> bool:
        """True when the handle fired before `delay` elapsed."""
        if handle.cancelled:
            return True
        try:
            await asyncio.wait_for(handle.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True

    async def _lookup_push_token(
        self, device_id: str, handle: CancellationHandle
    ) -> Optional[str]:
        push_token = self._push_tokens.get(device_id)
        if push_token is not None:
            return push_token
        # one retry only; a token arriving after this is not used for this interval
        if await self._wait_or_cancel(handle, self.token_grace):
            return None
        return self._push_tokens.get(device_id)

    async def _deliver(self, push_token: str, interval: TimerInterval, segment_count: int) -> None:
        credential = self._credentials.current()
        try:
            outcome = await self._client.deliver(push_token, credential, interval, segment_count)
        except Exception:
            logger.exception("Delivery to %s failed", short_token(push_token))
            return
        if not outcome.ok:
            logger.warning(
                "Delivery to %s not accepted (status=%s, error=%s)",
                short_token(push_token),
                outcome.status_code,
                outcome.error,
            )
