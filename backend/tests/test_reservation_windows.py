"""
Tests for the pure time-window rules and display status projection.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from library_seats.services.reservation_windows import (
    DisplayStatus,
    available_actions,
    can_check_in,
    can_check_out,
    check_in_window_closed,
    derive_display_status,
    temp_release_expired,
    valid_temp_release_duration,
    within_check_in_window,
)

T = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def make_reservation(**overrides):
    fields = dict(
        status="pending",
        start_time=T,
        end_time=T + timedelta(hours=2),
        check_in_time=None,
        check_out_time=None,
        temp_release_expiry_time=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


def test_check_in_window_bounds_are_inclusive():
    """Both edges of the check-in window are inside it."""
    r = make_reservation()
    assert within_check_in_window(r, T - timedelta(minutes=15))
    assert within_check_in_window(r, r.end_time + timedelta(minutes=15))
    assert not within_check_in_window(r, T - timedelta(minutes=15, seconds=1))
    assert not within_check_in_window(r, r.end_time + timedelta(minutes=15, seconds=1))


def test_check_in_window_closed_only_after_grace():
    """The window closes strictly after end + 15 minutes."""
    r = make_reservation()
    assert not check_in_window_closed(r, r.end_time + timedelta(minutes=15))
    assert check_in_window_closed(r, r.end_time + timedelta(minutes=16))


def test_can_check_in_requires_pending_without_check_in():
    """Check-in needs a pending reservation inside the window."""
    assert can_check_in(make_reservation(), T)
    assert not can_check_in(make_reservation(check_in_time=T), T)
    assert not can_check_in(make_reservation(status="cancelled"), T)
    assert not can_check_in(make_reservation(), T - timedelta(minutes=20))


def test_can_check_out_requires_checked_in_confirmed():
    """Check-out needs a confirmed, checked-in, not checked-out reservation."""
    assert can_check_out(make_reservation(status="confirmed", check_in_time=T))
    assert not can_check_out(make_reservation(status="confirmed"))
    assert not can_check_out(make_reservation(status="confirmed", check_in_time=T, check_out_time=T))
    assert not can_check_out(make_reservation(status="temporarily_released", check_in_time=T))


def test_temp_release_duration_limits():
    """Temp-release duration bounds are 5 and 120 inclusive."""
    assert valid_temp_release_duration(5)
    assert valid_temp_release_duration(120)
    assert not valid_temp_release_duration(4)
    assert not valid_temp_release_duration(121)


def test_temp_release_expired_is_strict():
    """A temp-release expires only after its expiry instant."""
    expiry = T + timedelta(minutes=30)
    r = make_reservation(status="temporarily_released", check_in_time=T, temp_release_expiry_time=expiry)
    assert not temp_release_expired(r, expiry)
    assert temp_release_expired(r, expiry + timedelta(seconds=1))


def test_display_status_before_during_after_window():
    """Upcoming, active and no-show follow the check-in window."""
    r = make_reservation()
    assert derive_display_status(r, T - timedelta(minutes=30)) == DisplayStatus.UPCOMING
    assert derive_display_status(r, T - timedelta(minutes=10)) == DisplayStatus.ACTIVE
    assert derive_display_status(r, r.end_time + timedelta(minutes=20)) == DisplayStatus.NO_SHOW


def test_display_status_checked_in_and_overdue():
    """Checked-in turns overdue once the end time passes."""
    r = make_reservation(status="confirmed", check_in_time=T)
    assert derive_display_status(r, T + timedelta(hours=1)) == DisplayStatus.CHECKED_IN
    assert derive_display_status(r, r.end_time + timedelta(minutes=1)) == DisplayStatus.OVERDUE


def test_display_status_temp_release_wins_over_window():
    """Temp-release status is shown regardless of the window."""
    expiry = T + timedelta(minutes=30)
    r = make_reservation(status="temporarily_released", check_in_time=T, temp_release_expiry_time=expiry)
    assert derive_display_status(r, T + timedelta(minutes=10)) == DisplayStatus.TEMP_RELEASED
    assert derive_display_status(r, T + timedelta(minutes=31)) == DisplayStatus.TEMP_EXPIRED


def test_display_status_terminal_states():
    """Terminal statuses map straight to their display status."""
    assert derive_display_status(make_reservation(status="cancelled"), T) == DisplayStatus.CANCELLED
    assert derive_display_status(make_reservation(status="expired"), T) == DisplayStatus.EXPIRED
    done = make_reservation(status="completed", check_in_time=T, check_out_time=T + timedelta(hours=1))
    assert derive_display_status(done, T + timedelta(hours=5)) == DisplayStatus.COMPLETED


def test_available_actions_follow_state():
    """Offered actions match the reservation state and window."""
    assert available_actions(make_reservation(), T) == ["cancel", "check_in"]
    assert available_actions(make_reservation(), T - timedelta(hours=1)) == ["cancel"]
    checked_in = make_reservation(status="confirmed", check_in_time=T)
    assert available_actions(checked_in, T) == ["check_out", "temp_release"]
    released = make_reservation(
        status="temporarily_released", check_in_time=T, temp_release_expiry_time=T + timedelta(minutes=5)
    )
    assert available_actions(released, T) == ["resume"]
