"""Background poll scheduling: a re-armable one-shot timer chain."""

import asyncio
import logging
from typing import Optional

from .dispatcher import NotificationDispatcher, now_ms
from .models import SchedulerState

logger = logging.getLogger(__name__)

MIN_WAIT_SECONDS = 15


class PollScheduler:
    """
    Drives periodic polls with a single one-shot timer that re-arms itself
    as soon as it fires, so a stalled cycle never postpones the next one.

    Each arm reads the interval from the current policy, so an interval
    change takes effect from the next cycle. Overlapping cycles are
    coalesced by the dispatcher's in-flight guard.
    """

    def __init__(self, dispatcher: NotificationDispatcher, min_wait_seconds: float = MIN_WAIT_SECONDS):
        """
        Args:
            dispatcher: NotificationDispatcher that runs each cycle
            min_wait_seconds: Lower bound on the wait between cycles
        """
        self.dispatcher = dispatcher
        self.min_wait_seconds = min_wait_seconds
        self.last_cause: Optional[str] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._tasks: set[asyncio.Task] = set()
        self._firing = False
        self._running = False

    @property
    def state(self) -> SchedulerState:
        if self._firing or self.dispatcher.polling:
            return SchedulerState.RUNNING
        if self._timer is not None:
            return SchedulerState.SCHEDULED
        return SchedulerState.IDLE

    def wait_seconds(self) -> float:
        return self.dispatcher.interval_ms(self.min_wait_seconds) / 1000

    async def start(self):
        """Run the startup poll, then keep the timer chain going."""
        self._running = True
        self.request_poll("startup")
        logger.info(f"Poll scheduler started (every {self.wait_seconds():.0f}s)")

    async def stop(self):
        """Cancel the pending timer and any cycle in flight."""
        self._running = False
        self._cancel_timer()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        logger.info("Poll scheduler stopped")

    def schedule_next(self, cause: str = "interval") -> Optional[float]:
        """
        Cancel any pending timer and arm a new one.

        Safe to call repeatedly: at startup, after each poll, on interval
        changes and on manual polls.

        Returns:
            Seconds until the next poll, or None if the scheduler is stopped
        """
        self._cancel_timer()
        if not self._running:
            return None

        wait = self.wait_seconds()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(wait, self._fire)
        self.dispatcher.cache.next_check_ms = now_ms() + int(wait * 1000)
        self.last_cause = cause
        logger.debug(f"Next poll in {wait:.0f}s ({cause})")
        return wait

    def request_poll(self, reason: str = "manual", reschedule: bool = True) -> asyncio.Task:
        """
        Run a poll cycle off the timer.

        Args:
            reason: Trigger label recorded with the push
            reschedule: Restart the timer chain from now
        """
        if reschedule:
            self.schedule_next(reason)
        return self._spawn(self._run_cycle(reason))

    def _fire(self):
        self._timer = None
        self.schedule_next("interval")
        self._spawn(self._run_timer_cycle())

    async def _run_timer_cycle(self):
        self._firing = True
        try:
            await self.dispatcher.poll_and_maybe_notify("interval")
        finally:
            self._firing = False

    async def _run_cycle(self, reason: str):
        await self.dispatcher.poll_and_maybe_notify(reason)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
