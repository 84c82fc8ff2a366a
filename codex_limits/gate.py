"""Decide whether a freshly fetched status should be pushed."""

from datetime import datetime
from typing import Optional

from .models import GateDecision, NotificationPolicy, PushStatus, UsageSnapshot


def is_quiet_hours(policy: NotificationPolicy, hour: int) -> bool:
    """
    Check whether a local hour-of-day falls inside the quiet hours window.

    start == end means the whole day is quiet. start > end wraps midnight.
    """
    if not policy.quiet_hours_enabled:
        return False

    start = policy.quiet_hours_start
    end = policy.quiet_hours_end
    if start == end:
        return True
    if start < end:
        return start <= hour < end
    return hour >= start or hour < end


def thresholds_met(policy: NotificationPolicy, parsed: Optional[UsageSnapshot]) -> bool:
    """Either threshold alone is enough. Without parsed data, always eligible."""
    if parsed is None:
        return True
    return parsed.pct_5h <= policy.threshold_5h_pct or parsed.pct_day <= policy.threshold_day_pct


def decide(
    policy: NotificationPolicy,
    parsed: Optional[UsageSnapshot],
    now: datetime,
    reason: str = "interval",
) -> GateDecision:
    """
    Gate a push notification.

    Args:
        policy: Current notification policy
        parsed: Usage parsed from the status text (None if it didn't match)
        now: Current local time
        reason: What triggered the poll, echoed into the "sent" reason

    Returns:
        GateDecision; reason is the value recorded as last_push_status
    """
    if not policy.push_enabled:
        return GateDecision(send=False, reason=PushStatus.DISABLED)

    if is_quiet_hours(policy, now.hour):
        return GateDecision(send=False, reason=PushStatus.QUIET_HOURS)

    if not thresholds_met(policy, parsed):
        return GateDecision(
            send=False,
            reason=PushStatus.skipped_thresholds(policy.threshold_5h_pct, policy.threshold_day_pct),
        )

    return GateDecision(send=True, reason=PushStatus.sent(reason))
