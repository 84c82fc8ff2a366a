"""Notification policy persistence and validation."""

import json
import logging
import math
from pathlib import Path
from typing import Any, Mapping, Optional

from .models import (
    FieldOutcome,
    HOUR_RANGE,
    INTERVAL_MINUTES_RANGE,
    NotificationPolicy,
    THRESHOLD_PCT_RANGE,
    ValidationResult,
    camel_to_snake,
    policy_field_names,
)

logger = logging.getLogger(__name__)

_TRUTHY = {"true", "1", "yes", "on"}
_FALSY = {"false", "0", "no", "off"}

BOOL_FIELDS = ("push_enabled", "quiet_hours_enabled")

# field -> (min, max); max None means unbounded
INT_FIELDS: dict[str, tuple[int, Optional[int]]] = {
    "notification_interval_minutes": INTERVAL_MINUTES_RANGE,
    "quiet_hours_start": HOUR_RANGE,
    "quiet_hours_end": HOUR_RANGE,
    "threshold_5h_pct": THRESHOLD_PCT_RANGE,
    "threshold_day_pct": THRESHOLD_PCT_RANGE,
    "last_push_ms": (0, None),
}


def default_interval_minutes(check_every_ms: Any) -> int:
    """Derive the default notification interval from the static poll period."""
    try:
        minutes = round(float(check_every_ms) / 60000)
    except (TypeError, ValueError, OverflowError):
        minutes = 1
    lo, hi = INTERVAL_MINUTES_RANGE
    return min(hi, max(lo, minutes))


def _coerce_bool(value: Any) -> tuple[Optional[bool], FieldOutcome]:
    if isinstance(value, bool):
        return value, FieldOutcome.ACCEPTED
    if isinstance(value, (int, float)) and not (isinstance(value, float) and math.isnan(value)):
        return value != 0, FieldOutcome.CLAMPED
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in _TRUTHY:
            return True, FieldOutcome.CLAMPED
        if normalized in _FALSY:
            return False, FieldOutcome.CLAMPED
    return None, FieldOutcome.REJECTED


def _coerce_int(value: Any) -> tuple[Optional[int], bool]:
    """Return (integer, exact). Floats and numeric strings are rounded; strings are never exact."""
    if isinstance(value, bool):
        return None, False
    if isinstance(value, int):
        return value, True
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None, False
        if not math.isfinite(number):
            return None, False
        return int(round(number)), False
    if isinstance(value, float):
        if not math.isfinite(value):
            return None, False
        rounded = int(round(value))
        return rounded, rounded == value
    return None, False


def coerce_bool(value: Any, default: bool = False) -> bool:
    """Coerce a loosely typed flag (bool, number, "yes"/"off", ...) to bool."""
    coerced, _ = _coerce_bool(value)
    return default if coerced is None else coerced


class SettingsStore:
    """Owns the NotificationPolicy and its JSON document on disk."""

    def __init__(self, state_file: str = "state.local.json", default_interval: int = 1):
        """
        Args:
            state_file: Path of the JSON document holding the policy
            default_interval: Static default for notification_interval_minutes
        """
        self.state_file = Path(state_file).expanduser()
        lo, hi = INTERVAL_MINUTES_RANGE
        self.default_interval = min(hi, max(lo, int(default_interval)))
        self._policy = self.load()

    @property
    def policy(self) -> NotificationPolicy:
        return self._policy

    def defaults(self) -> NotificationPolicy:
        return NotificationPolicy(notification_interval_minutes=self.default_interval)

    def validate(self, patch: Mapping[str, Any], previous: NotificationPolicy) -> ValidationResult:
        """
        Validate a partial policy against the previous one.

        Invalid values never raise. Out-of-range or wrong-typed values keep
        the previous value, except notification_interval_minutes which falls
        back to the static default interval.

        Returns:
            ValidationResult with the merged policy and per-field outcomes
        """
        values = previous.to_dict()
        outcomes: dict[str, FieldOutcome] = {}
        known = set(policy_field_names())

        for raw_key, raw_value in patch.items():
            key = raw_key if raw_key in known else camel_to_snake(raw_key)
            if key not in known:
                continue

            if key in BOOL_FIELDS:
                value, outcome = _coerce_bool(raw_value)
                if value is not None:
                    values[key] = value
            elif key in INT_FIELDS:
                value, outcome = self._validate_int(key, raw_value)
                if value is not None:
                    values[key] = value
            elif isinstance(raw_value, str):
                values[key] = raw_value
                outcome = FieldOutcome.ACCEPTED
            else:
                outcome = FieldOutcome.REJECTED

            outcomes[key] = outcome

        return ValidationResult(policy=NotificationPolicy(**values), outcomes=outcomes)

    def _validate_int(self, key: str, raw_value: Any) -> tuple[Optional[int], FieldOutcome]:
        lo, hi = INT_FIELDS[key]
        number, exact = _coerce_int(raw_value)
        in_range = number is not None and number >= lo and (hi is None or number <= hi)

        if not in_range:
            if key == "notification_interval_minutes":
                return self.default_interval, FieldOutcome.CLAMPED
            return None, FieldOutcome.REJECTED

        return number, FieldOutcome.ACCEPTED if exact else FieldOutcome.CLAMPED

    def load(self) -> NotificationPolicy:
        """
        Load the policy from disk.

        A missing, unreadable or malformed document yields the defaults;
        individual bad fields fall back to their defaults. Never raises.
        """
        defaults = self.defaults()
        if not self.state_file.exists():
            return defaults

        try:
            with open(self.state_file) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read settings from {self.state_file}: {e}, using defaults")
            return defaults

        if not isinstance(data, dict):
            logger.warning(f"Settings file {self.state_file} is not a JSON object, using defaults")
            return defaults

        result = self.validate(data, defaults)
        rejected = [name for name, outcome in result.outcomes.items() if outcome != FieldOutcome.ACCEPTED]
        if rejected:
            logger.warning(f"Settings file had invalid values for {', '.join(rejected)}")
        return result.policy

    def apply(self, patch: Mapping[str, Any]) -> ValidationResult:
        """Merge a patch over the current policy, persist it, and report per-field outcomes."""
        result = self.validate(patch, self._policy)
        self._policy = result.policy
        self._write(result.policy)
        return result

    def save(self, patch: Mapping[str, Any]) -> NotificationPolicy:
        """Merge a patch over the current policy and persist the full document."""
        return self.apply(patch).policy

    def _write(self, policy: NotificationPolicy) -> bool:
        """
        Write the policy using temp file + rename.

        Returns:
            True if written, False if an error occurred (in-memory policy is kept).
        """
        temp_file = self.state_file.with_suffix('.tmp')
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w") as f:
                json.dump(policy.to_dict(), f, indent=2)
            temp_file.replace(self.state_file)
            return True
        except OSError as e:
            logger.error(f"Failed to save settings to {self.state_file}: {e}")
            try:
                if temp_file.exists():
                    temp_file.unlink()
            except OSError:
                pass
            return False
