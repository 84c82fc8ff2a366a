"""Data models for the Codex limits notifier."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


# Ranges for the numeric policy fields (inclusive)
INTERVAL_MINUTES_RANGE = (1, 180)
HOUR_RANGE = (0, 23)
THRESHOLD_PCT_RANGE = (1, 100)


class PushStatus:
    """Fixed values of NotificationPolicy.last_push_status."""
    NEVER = "never"
    DISABLED = "disabled"
    ENABLED = "enabled"
    QUIET_HOURS = "skipped: quiet hours"

    @staticmethod
    def sent(reason: str) -> str:
        return f"sent ({reason})"

    @staticmethod
    def skipped_thresholds(threshold_5h_pct: int, threshold_day_pct: int) -> str:
        return f"skipped: thresholds (5h <= {threshold_5h_pct}%, day <= {threshold_day_pct}%)"

    @staticmethod
    def error(message: str) -> str:
        return f"error: {message}"


class FieldOutcome(Enum):
    """Result of validating a single policy field."""
    ACCEPTED = "accepted"  # Value used as given
    CLAMPED = "clamped"    # Replaced by a valid value (rounded or documented default)
    REJECTED = "rejected"  # Invalid, previous value kept


class SchedulerState(Enum):
    """Poll timer chain state."""
    IDLE = "idle"            # No timer armed
    SCHEDULED = "scheduled"  # One-shot timer armed
    RUNNING = "running"      # Timer fired, poll cycle in progress


@dataclass
class NotificationPolicy:
    """User-configurable notification policy plus last-push bookkeeping."""
    push_enabled: bool = False
    notification_interval_minutes: int = 1
    quiet_hours_enabled: bool = False
    quiet_hours_start: int = 23
    quiet_hours_end: int = 8
    threshold_5h_pct: int = 100
    threshold_day_pct: int = 100
    last_push_ms: int = 0
    last_push_status: str = PushStatus.NEVER

    def to_dict(self) -> dict:
        return {
            "push_enabled": self.push_enabled,
            "notification_interval_minutes": self.notification_interval_minutes,
            "quiet_hours_enabled": self.quiet_hours_enabled,
            "quiet_hours_start": self.quiet_hours_start,
            "quiet_hours_end": self.quiet_hours_end,
            "threshold_5h_pct": self.threshold_5h_pct,
            "threshold_day_pct": self.threshold_day_pct,
            "last_push_ms": self.last_push_ms,
            "last_push_status": self.last_push_status,
        }


@dataclass
class UsageSnapshot:
    """Usage figures parsed from the session status text."""
    pct_5h: int
    time_5h: str
    pct_day: int
    time_day: str

    def to_dict(self) -> dict:
        return {
            "pct_5h": self.pct_5h,
            "time_5h": self.time_5h,
            "pct_day": self.pct_day,
            "time_day": self.time_day,
        }


@dataclass
class PollCache:
    """Outcome of the most recent poll (in-memory only)."""
    ok: bool = False
    last_checked_ms: int = 0
    next_check_ms: int = 0
    status_json: Optional[dict] = None
    error: Optional[str] = None


@dataclass
class GateDecision:
    """Whether a fetched status should be pushed, and why."""
    send: bool
    reason: str


@dataclass
class ValidationResult:
    """Validated policy and the per-field outcome of the patch that produced it."""
    policy: NotificationPolicy
    outcomes: dict[str, FieldOutcome] = field(default_factory=dict)

    def outcome_values(self) -> dict[str, str]:
        return {name: outcome.value for name, outcome in self.outcomes.items()}


def policy_field_names() -> list[str]:
    return list(NotificationPolicy.__dataclass_fields__)


def camel_to_snake(name: Any) -> Any:
    """Convert a camelCase key (e.g. threshold5hPct) to the policy's snake_case name."""
    if not isinstance(name, str):
        return name
    out = []
    for i, ch in enumerate(name):
        if ch.isupper():
            out.append("_")
            out.append(ch.lower())
        elif ch.isdigit() and i > 0 and name[i - 1].isalpha():
            out.append("_")
            out.append(ch)
        else:
            out.append(ch)
    return "".join(out)
