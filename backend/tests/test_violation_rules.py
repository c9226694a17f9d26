"""
Tests for the rule table and pure violation detection.
"""

from datetime import datetime, timedelta, timezone

import pytest

from library_seats.models.violation import Severity, ViolationType
from library_seats.services import violation_rules
from library_seats.services.violation_rules import (
    DEFAULT_RULES,
    Penalty,
    ReservationSnapshot,
    RuleStore,
    SweepSnapshot,
    detect_violations,
    is_active,
    is_held_past_end,
)

T = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def snap(id=1, user_id=1, status="pending", start=T, hours=4, check_in=None, check_out=None, updated=T):
    return ReservationSnapshot(
        id=id,
        user_id=user_id,
        seat_id=id,
        status=status,
        start_time=start,
        end_time=start + timedelta(hours=hours),
        check_in_time=check_in,
        check_out_time=check_out,
        updated_at=updated,
    )


def types_of(candidates):
    return [c.type for c in candidates]


def test_default_rules_in_order():
    """Five default rules in their fixed order and defaults."""
    store = RuleStore()
    assert [r.id for r in store.list_rules()] == [
        "no_show_15min",
        "overstay_30min",
        "late_checkin_10min",
        "frequent_cancellation",
        "unauthorized_extension",
    ]
    by_id = {r.id: r for r in store.list_rules()}
    assert by_id["no_show_15min"].auto_resolve is False
    assert by_id["overstay_30min"].severity == Severity.HIGH
    assert by_id["overstay_30min"].auto_resolve is True
    assert by_id["unauthorized_extension"].auto_resolve is True


def test_rule_store_updates_are_per_instance():
    """Updating one store does not leak into others or the defaults."""
    first = RuleStore()
    second = RuleStore()

    updated = first.update_rule("late_checkin_10min", {"enabled": False, "severity": "high"})

    assert updated.enabled is False
    assert updated.severity == Severity.HIGH
    assert second.get_rule("late_checkin_10min").enabled is True
    assert DEFAULT_RULES[2].enabled is True


def test_rule_store_unknown_rule_returns_none():
    """Updating a missing rule returns None."""
    assert RuleStore().update_rule("missing", {"enabled": False}) is None


def test_rule_store_rejects_non_editable_fields():
    """Only whitelisted rule fields can change."""
    with pytest.raises(ValueError):
        RuleStore().update_rule("no_show_15min", {"type": "overstay"})


def test_no_show_after_fifteen_minutes():
    """No-show fires strictly after start + 15 minutes."""
    snapshot = SweepSnapshot(active=(snap(),))
    rules = RuleStore().list_rules()

    assert detect_violations(rules, snapshot, T + timedelta(minutes=15)) == []

    found = detect_violations(rules, snapshot, T + timedelta(minutes=20))
    assert types_of(found) == [ViolationType.NO_SHOW]
    assert found[0].penalty == Penalty.CANCEL_AND_RECORD
    assert found[0].reservation_id == 1
    assert found[0].severity == Severity.MEDIUM


def test_overstay_and_extension_both_fire_past_an_hour():
    """Overstay at +30 minutes, both at +60 minutes."""
    end = T + timedelta(hours=4)
    r = snap(status="confirmed", check_in=T)
    rules = RuleStore().list_rules()

    at_45 = detect_violations(rules, SweepSnapshot(active=(r,)), end + timedelta(minutes=45))
    assert types_of(at_45) == [ViolationType.OVERSTAY]

    at_70 = detect_violations(rules, SweepSnapshot(active=(r,)), end + timedelta(minutes=70))
    assert types_of(at_70) == [ViolationType.OVERSTAY, ViolationType.UNAUTHORIZED_EXTENSION]
    assert at_70[1].penalty == Penalty.FORCE_CHECKOUT_SEVERE


def test_checked_out_reservation_is_not_overstaying():
    """A checked-out reservation never overstays."""
    r = snap(status="confirmed", check_in=T, check_out=T + timedelta(hours=4))
    found = detect_violations(RuleStore().list_rules(), SweepSnapshot(active=(r,)), T + timedelta(hours=6))
    assert found == []


def test_late_check_in_is_informational():
    """Late check-in is recorded with the minutes late."""
    r = snap(status="confirmed", check_in=T + timedelta(minutes=12))
    found = detect_violations(RuleStore().list_rules(), SweepSnapshot(active=(r,)), T + timedelta(minutes=30))
    assert types_of(found) == [ViolationType.LATE_CHECKIN]
    assert found[0].penalty == Penalty.RECORD_LATE
    assert found[0].details["late_minutes"] == 12


def test_check_in_at_ten_minutes_is_not_late():
    """Exactly ten minutes late is not late."""
    r = snap(status="confirmed", check_in=T + timedelta(minutes=10))
    assert detect_violations(RuleStore().list_rules(), SweepSnapshot(active=(r,)), T + timedelta(minutes=30)) == []


def test_frequent_cancellation_threshold():
    """Three cancellations in 24 hours trigger; two do not."""
    now = T + timedelta(hours=1)
    cancels = tuple(
        snap(id=i, user_id=7, status="cancelled", updated=T - timedelta(hours=i)) for i in range(1, 4)
    )
    found = detect_violations(RuleStore().list_rules(), SweepSnapshot(recent_cancellations=cancels), now)

    assert types_of(found) == [ViolationType.FREQUENT_CANCELLATION]
    assert found[0].user_id == 7
    assert found[0].reservation_id is None
    assert found[0].penalty == Penalty.SUSPEND_BOOKING_24H
    assert found[0].details["count"] == 3

    two = SweepSnapshot(recent_cancellations=cancels[:2])
    assert detect_violations(RuleStore().list_rules(), two, now) == []


def test_disabled_rule_is_skipped():
    """Disabled rules produce no candidates."""
    store = RuleStore()
    store.update_rule("no_show_15min", {"enabled": False})
    found = detect_violations(store.list_rules(), SweepSnapshot(active=(snap(),)), T + timedelta(minutes=30))
    assert found == []


def test_failing_rule_does_not_stop_the_others(monkeypatch):
    """A raising rule is isolated from the rest."""
    def explode(rule, snapshot, now):
        raise RuntimeError("bad rule")

    monkeypatch.setitem(violation_rules.CHECKS, ViolationType.NO_SHOW, explode)
    r = snap(status="confirmed", check_in=T + timedelta(minutes=12))

    found = detect_violations(RuleStore().list_rules(), SweepSnapshot(active=(r,)), T + timedelta(minutes=30))

    assert types_of(found) == [ViolationType.LATE_CHECKIN]


def test_active_window_and_held_past_end():
    """Active band edges and checked-in reservations held past end."""
    pending = snap()
    assert is_active(pending, T - timedelta(minutes=30))
    assert not is_active(pending, T - timedelta(minutes=31))

    held = snap(status="confirmed", check_in=T)
    end = T + timedelta(hours=4)
    assert not is_active(held, end + timedelta(minutes=45))
    assert is_held_past_end(held, end + timedelta(minutes=45))
    assert not is_held_past_end(snap(status="confirmed"), end + timedelta(minutes=45))
