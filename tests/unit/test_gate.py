"""Unit tests for the push gate."""

from datetime import datetime

import pytest

from codex_limits.gate import decide, is_quiet_hours
from codex_limits.models import NotificationPolicy, UsageSnapshot


def at_hour(hour: int) -> datetime:
    return datetime(2024, 1, 15, hour, 30, 0)


def usage(pct_5h: int, pct_day: int) -> UsageSnapshot:
    return UsageSnapshot(pct_5h=pct_5h, time_5h="1h 0m", pct_day=pct_day, time_day="5h 0m")


class TestDisabled:

    @pytest.mark.parametrize("hour", [0, 9, 23])
    @pytest.mark.parametrize("parsed", [None, usage(1, 1), usage(100, 100)])
    def test_disabled_never_sends(self, hour, parsed):
        policy = NotificationPolicy(
            push_enabled=False,
            quiet_hours_enabled=True,
            quiet_hours_start=9,
            quiet_hours_end=9,
        )
        decision = decide(policy, parsed, at_hour(hour))
        assert decision.send is False
        assert decision.reason == "disabled"


class TestQuietHours:

    def test_wrapping_window(self):
        policy = NotificationPolicy(quiet_hours_enabled=True, quiet_hours_start=23, quiet_hours_end=8)
        assert is_quiet_hours(policy, 0)
        assert is_quiet_hours(policy, 23)
        assert is_quiet_hours(policy, 7)
        assert not is_quiet_hours(policy, 8)
        assert not is_quiet_hours(policy, 12)
        assert not is_quiet_hours(policy, 22)

    def test_same_day_window(self):
        policy = NotificationPolicy(quiet_hours_enabled=True, quiet_hours_start=9, quiet_hours_end=17)
        assert is_quiet_hours(policy, 9)
        assert is_quiet_hours(policy, 16)
        assert not is_quiet_hours(policy, 17)
        assert not is_quiet_hours(policy, 8)

    def test_equal_start_and_end_is_quiet_all_day(self):
        policy = NotificationPolicy(quiet_hours_enabled=True, quiet_hours_start=9, quiet_hours_end=9)
        assert all(is_quiet_hours(policy, hour) for hour in range(24))

    def test_disabled_window_is_never_quiet(self):
        policy = NotificationPolicy(quiet_hours_enabled=False, quiet_hours_start=9, quiet_hours_end=9)
        assert not any(is_quiet_hours(policy, hour) for hour in range(24))

    def test_quiet_hours_skip_before_thresholds(self):
        policy = NotificationPolicy(
            push_enabled=True,
            quiet_hours_enabled=True,
            quiet_hours_start=23,
            quiet_hours_end=8,
            threshold_5h_pct=10,
            threshold_day_pct=10,
        )
        decision = decide(policy, usage(90, 90), at_hour(2))
        assert decision.send is False
        assert decision.reason == "skipped: quiet hours"


class TestThresholds:

    def test_either_threshold_is_enough(self):
        policy = NotificationPolicy(push_enabled=True, threshold_5h_pct=50, threshold_day_pct=50)
        assert decide(policy, usage(10, 90), at_hour(12)).send is True
        assert decide(policy, usage(90, 10), at_hour(12)).send is True

    def test_threshold_is_inclusive(self):
        policy = NotificationPolicy(push_enabled=True, threshold_5h_pct=50, threshold_day_pct=20)
        assert decide(policy, usage(50, 90), at_hour(12)).send is True

    def test_neither_threshold_skips_with_both_values(self):
        policy = NotificationPolicy(push_enabled=True, threshold_5h_pct=30, threshold_day_pct=20)
        decision = decide(policy, usage(31, 21), at_hour(12))
        assert decision.send is False
        assert decision.reason.startswith("skipped: thresholds (")
        assert "30%" in decision.reason
        assert "20%" in decision.reason

    def test_unparsed_status_fails_open(self):
        policy = NotificationPolicy(push_enabled=True, threshold_5h_pct=1, threshold_day_pct=1)
        decision = decide(policy, None, at_hour(12), reason="manual")
        assert decision.send is True
        assert decision.reason == "sent (manual)"

    def test_sent_reason_carries_trigger(self):
        policy = NotificationPolicy(push_enabled=True)
        assert decide(policy, usage(42, 15), at_hour(12), reason="interval").reason == "sent (interval)"
