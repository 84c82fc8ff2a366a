"""Poll the gateway, gate the result, and relay usage summaries."""

import logging
import time
from datetime import datetime
from typing import Callable, Optional

from .gate import decide
from .gateway_client import GatewayClient
from .models import PollCache, PushStatus
from .settings_store import SettingsStore
from .status_parser import extract_status_text, format_summary, parse_usage_line

logger = logging.getLogger(__name__)

POLL_IN_PROGRESS = "poll in progress, try again shortly"


def now_ms() -> int:
    return int(time.time() * 1000)


def _error_text(e: BaseException) -> str:
    return str(e) or e.__class__.__name__


class NotificationDispatcher:
    """
    Runs poll cycles: fetch -> parse -> gate -> send -> record.

    Owns the PollCache and the in-flight guard. At most one cycle runs at a
    time; a cycle requested while another is in flight is dropped.
    """

    def __init__(
        self,
        client: GatewayClient,
        settings: SettingsStore,
        cache: Optional[PollCache] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.client = client
        self.settings = settings
        self.cache = cache or PollCache()
        self.clock = clock
        self._polling = False

    @property
    def polling(self) -> bool:
        return self._polling

    def interval_ms(self, min_wait_seconds: float = 0) -> int:
        minutes = self.settings.policy.notification_interval_minutes
        return int(max(min_wait_seconds * 1000, minutes * 60_000))

    def is_stale(self, at_ms: Optional[int] = None, min_wait_seconds: float = 0) -> bool:
        """True when the last poll is older than twice the effective interval."""
        at_ms = now_ms() if at_ms is None else at_ms
        age = at_ms - (self.cache.last_checked_ms or 0)
        return age > self.interval_ms(min_wait_seconds) * 2

    async def poll_and_maybe_notify(self, reason: str = "interval") -> None:
        """
        Run one poll cycle. Never raises; failures are recorded in the cache
        and in last_push_status.

        Args:
            reason: Trigger label (interval, startup, manual, stale, ...)
        """
        if self._polling:
            logger.debug(f"Poll already in flight, dropping {reason} request")
            return
        self._polling = True

        try:
            try:
                status_json = await self.client.fetch_status()
            except Exception as e:
                error = _error_text(e)
                self._record_poll(ok=False, status_json=None, error=error)
                self.settings.save({"last_push_status": PushStatus.error(error)})
                logger.warning(f"Poll failed ({reason}): {error}")
                return

            self._record_poll(ok=True, status_json=status_json, error=None)

            parsed = parse_usage_line(extract_status_text(status_json))
            decision = decide(self.settings.policy, parsed, self.clock(), reason)

            if not decision.send:
                logger.info(f"Push not sent ({reason}): {decision.reason}")
                self.settings.save({"last_push_status": decision.reason})
                return

            await self._send(format_summary(status_json), decision.reason, reason)
        finally:
            self._polling = False

    async def send_test_notification(self) -> dict:
        """
        Send the summary regardless of the gate.

        Uses the cached status when there is one, otherwise fetches fresh.
        Holds the in-flight guard, so it is refused while a poll cycle runs
        and poll cycles requested meanwhile are dropped.

        Returns:
            {"ok": True, "message": summary} or {"ok": False, "error": text}
        """
        if self._polling:
            return {"ok": False, "error": POLL_IN_PROGRESS}
        self._polling = True

        try:
            status_json = self.cache.status_json if self.cache.ok else None
            try:
                if status_json is None:
                    status_json = await self.client.fetch_status()
                    self._record_poll(ok=True, status_json=status_json, error=None)
            except Exception as e:
                error = _error_text(e)
                self._record_poll(ok=False, status_json=None, error=error)
                self.settings.save({"last_push_status": PushStatus.error(error)})
                logger.warning(f"Test notification failed to fetch status: {error}")
                return {"ok": False, "error": error}

            summary = format_summary(status_json)
            error = await self._send(summary, PushStatus.sent("test"), "test")
            if error:
                return {"ok": False, "error": error}
            return {"ok": True, "message": summary}
        finally:
            self._polling = False

    async def _send(self, summary: str, sent_status: str, reason: str) -> Optional[str]:
        """
        Relay a summary and record the outcome after the attempt resolves.

        Returns:
            Error text if the relay failed, else None
        """
        try:
            await self.client.send_message(summary)
        except Exception as e:
            error = _error_text(e)
            self.settings.save({"last_push_status": PushStatus.error(error)})
            logger.warning(f"Push failed ({reason}): {error}")
            return error

        self.settings.save({"last_push_status": sent_status, "last_push_ms": now_ms()})
        logger.info(f"Pushed to {self.client.channel} ({reason})")
        return None

    def _record_poll(self, ok: bool, status_json: Optional[dict], error: Optional[str]) -> None:
        self.cache.ok = ok
        self.cache.last_checked_ms = now_ms()
        self.cache.status_json = status_json
        self.cache.error = error
