"""
Violation rules and pure detection.

Nothing in this module touches the database or the clock: the detector
hands in a snapshot and `now`, and gets candidates back. That keeps every
threshold testable with fixed instants.

DEFAULT RULES (evaluated in this order)
=======================================

  no_show_15min           pending, not checked in, now > start + 15min
  overstay_30min          checked in, not out,      now > end + 30min
  late_checkin_10min      check_in_time > start + 10min
  frequent_cancellation   >= 3 cancellations by one user in the trailing 24h
  unauthorized_extension  checked in, not out,      now > end + 60min

Overstay and unauthorized extension are nested thresholds, so past
end + 60min both fire for the same reservation. Both are kept.
"""

import copy
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Optional

from library_seats.models.reservation import ReservationStatus
from library_seats.models.violation import Severity, ViolationType
from library_seats.core.logging import get_logger
from library_seats.core.metrics import record_sweep_error

logger = get_logger(__name__)

ACTIVE_WINDOW_GRACE = timedelta(minutes=30)
NO_SHOW_AFTER = timedelta(minutes=15)
LATE_CHECKIN_AFTER = timedelta(minutes=10)
OVERSTAY_AFTER = timedelta(minutes=30)
EXTENSION_AFTER = timedelta(hours=1)
CANCELLATION_WINDOW = timedelta(hours=24)
CANCELLATION_LIMIT = 3


class Penalty(str, Enum):
    CANCEL_AND_RECORD = "cancel_and_record"
    FORCE_CHECKOUT = "force_checkout"
    RECORD_LATE = "record_late"
    SUSPEND_BOOKING_24H = "suspend_booking_24h"
    FORCE_CHECKOUT_SEVERE = "force_checkout_severe"


class Remediation(str, Enum):
    CANCEL_RESERVATION = "cancel_reservation"
    FORCE_CHECKOUT = "force_checkout"
    BAN_USER = "ban_user"


@dataclass
class ViolationRule:
    id: str
    name: str
    description: str
    type: ViolationType
    enabled: bool = True
    severity: Severity = Severity.MEDIUM
    auto_resolve: bool = False


EDITABLE_FIELDS = ("name", "description", "enabled", "severity", "auto_resolve")

DEFAULT_RULES = (
    ViolationRule(
        id="no_show_15min",
        name="No-show",
        description="Not checked in within 15 minutes of the reservation start",
        type=ViolationType.NO_SHOW,
        severity=Severity.MEDIUM,
        auto_resolve=False,
    ),
    ViolationRule(
        id="overstay_30min",
        name="Overstay",
        description="Not checked out 30 minutes after the reservation end",
        type=ViolationType.OVERSTAY,
        severity=Severity.HIGH,
        auto_resolve=True,
    ),
    ViolationRule(
        id="late_checkin_10min",
        name="Late check-in",
        description="Checked in more than 10 minutes after the reservation start",
        type=ViolationType.LATE_CHECKIN,
        severity=Severity.LOW,
        auto_resolve=False,
    ),
    ViolationRule(
        id="frequent_cancellation",
        name="Frequent cancellation",
        description="Three or more cancellations within 24 hours",
        type=ViolationType.FREQUENT_CANCELLATION,
        severity=Severity.MEDIUM,
        auto_resolve=False,
    ),
    ViolationRule(
        id="unauthorized_extension",
        name="Unauthorized extension",
        description="Seat still held more than 1 hour after the reservation end",
        type=ViolationType.UNAUTHORIZED_EXTENSION,
        severity=Severity.HIGH,
        auto_resolve=True,
    ),
)


class RuleStore:
    """
    Owned, injectable rule table. Each detector gets its own store, so
    tests and multiple app instances never share edits.
    """

    def __init__(self, rules: Optional[Iterable[ViolationRule]] = None):
        source = DEFAULT_RULES if rules is None else rules
        self._rules: dict[str, ViolationRule] = {r.id: copy.copy(r) for r in source}

    def list_rules(self) -> list[ViolationRule]:
        return list(self._rules.values())

    def enabled_rules(self) -> list[ViolationRule]:
        return [r for r in self._rules.values() if r.enabled]

    def get_rule(self, rule_id: str) -> Optional[ViolationRule]:
        return self._rules.get(rule_id)

    def update_rule(self, rule_id: str, changes: dict) -> Optional[ViolationRule]:
        """Apply a partial update. Unknown fields are rejected with ValueError."""
        rule = self._rules.get(rule_id)
        if rule is None:
            return None
        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Rule fields not editable: {', '.join(sorted(unknown))}")
        if "severity" in changes:
            changes = {**changes, "severity": Severity(changes["severity"])}
        updated = replace(rule, **changes)
        self._rules[rule_id] = updated
        logger.info("violation_rule_updated", rule_id=rule_id, changes=sorted(changes))
        return updated


@dataclass(frozen=True)
class ReservationSnapshot:
    """Immutable copy of the reservation fields the rules read."""

    id: int
    user_id: int
    seat_id: int
    status: str
    start_time: datetime
    end_time: datetime
    check_in_time: Optional[datetime]
    check_out_time: Optional[datetime]
    updated_at: datetime

    @classmethod
    def from_model(cls, reservation) -> "ReservationSnapshot":
        return cls(
            id=reservation.id,
            user_id=reservation.user_id,
            seat_id=reservation.seat_id,
            status=reservation.status,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            check_in_time=reservation.check_in_time,
            check_out_time=reservation.check_out_time,
            updated_at=reservation.updated_at,
        )


@dataclass(frozen=True)
class SweepSnapshot:
    active: tuple[ReservationSnapshot, ...] = ()
    recent_cancellations: tuple[ReservationSnapshot, ...] = ()


@dataclass(frozen=True)
class ViolationCandidate:
    rule_id: str
    user_id: int
    type: ViolationType
    severity: Severity
    penalty: Penalty
    detected_at: datetime
    reservation_id: Optional[int] = None
    details: dict = field(default_factory=dict, hash=False, compare=False)


REMEDIATION_FOR = {
    ViolationType.NO_SHOW: Remediation.CANCEL_RESERVATION,
    ViolationType.OVERSTAY: Remediation.FORCE_CHECKOUT,
    ViolationType.UNAUTHORIZED_EXTENSION: Remediation.FORCE_CHECKOUT,
    ViolationType.FREQUENT_CANCELLATION: Remediation.BAN_USER,
}


def is_active(reservation, now: datetime) -> bool:
    """
    Pending or confirmed, with `now` inside [start - 30min, end + 30min].
    Pending rows are kept so no-shows are visible before the expiry sweep.
    """
    return (
        reservation.status in (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)
        and reservation.start_time - ACTIVE_WINDOW_GRACE <= now <= reservation.end_time + ACTIVE_WINDOW_GRACE
    )


def is_held_past_end(reservation, now: datetime) -> bool:
    """Checked in, never checked out, and the active window already closed."""
    return (
        reservation.status == ReservationStatus.CONFIRMED
        and reservation.check_in_time is not None
        and reservation.check_out_time is None
        and now > reservation.end_time + ACTIVE_WINDOW_GRACE
    )


def select_snapshot_reservations(reservations: Iterable, now: datetime) -> list[ReservationSnapshot]:
    return [
        ReservationSnapshot.from_model(r)
        for r in reservations
        if is_active(r, now) or is_held_past_end(r, now)
    ]


def select_recent_cancellations(reservations: Iterable, now: datetime) -> list[ReservationSnapshot]:
    since = now - CANCELLATION_WINDOW
    return [
        ReservationSnapshot.from_model(r)
        for r in reservations
        if r.status == ReservationStatus.CANCELLED and r.updated_at > since
    ]


def _candidate(rule: ViolationRule, reservation: Optional[ReservationSnapshot], user_id: int,
               penalty: Penalty, now: datetime, **details) -> ViolationCandidate:
    return ViolationCandidate(
        rule_id=rule.id,
        user_id=user_id,
        reservation_id=reservation.id if reservation else None,
        type=rule.type,
        severity=rule.severity,
        penalty=penalty,
        detected_at=now,
        details=details,
    )


def check_no_show(rule, snapshot: SweepSnapshot, now: datetime) -> list[ViolationCandidate]:
    found = []
    for r in snapshot.active:
        if (
            r.status == ReservationStatus.PENDING
            and r.check_in_time is None
            and now > r.start_time + NO_SHOW_AFTER
        ):
            found.append(_candidate(
                rule, r, r.user_id, Penalty.CANCEL_AND_RECORD, now,
                start_time=r.start_time.isoformat(),
                grace_minutes=int(NO_SHOW_AFTER.total_seconds() // 60),
            ))
    return found


def _held_after(rule, snapshot: SweepSnapshot, now: datetime, threshold: timedelta,
                penalty: Penalty) -> list[ViolationCandidate]:
    found = []
    for r in snapshot.active:
        if (
            r.status == ReservationStatus.CONFIRMED
            and r.check_in_time is not None
            and r.check_out_time is None
            and now > r.end_time + threshold
        ):
            found.append(_candidate(
                rule, r, r.user_id, penalty, now,
                end_time=r.end_time.isoformat(),
                threshold_minutes=int(threshold.total_seconds() // 60),
            ))
    return found


def check_overstay(rule, snapshot: SweepSnapshot, now: datetime) -> list[ViolationCandidate]:
    return _held_after(rule, snapshot, now, OVERSTAY_AFTER, Penalty.FORCE_CHECKOUT)


def check_unauthorized_extension(rule, snapshot: SweepSnapshot, now: datetime) -> list[ViolationCandidate]:
    return _held_after(rule, snapshot, now, EXTENSION_AFTER, Penalty.FORCE_CHECKOUT_SEVERE)


def check_late_checkin(rule, snapshot: SweepSnapshot, now: datetime) -> list[ViolationCandidate]:
    found = []
    for r in snapshot.active:
        if r.check_in_time is not None and r.check_in_time > r.start_time + LATE_CHECKIN_AFTER:
            found.append(_candidate(
                rule, r, r.user_id, Penalty.RECORD_LATE, now,
                start_time=r.start_time.isoformat(),
                check_in_time=r.check_in_time.isoformat(),
                late_minutes=int((r.check_in_time - r.start_time).total_seconds() // 60),
            ))
    return found


def check_frequent_cancellation(rule, snapshot: SweepSnapshot, now: datetime) -> list[ViolationCandidate]:
    since = now - CANCELLATION_WINDOW
    counts: dict[int, int] = {}
    for r in snapshot.recent_cancellations:
        if r.status == ReservationStatus.CANCELLED and r.updated_at > since:
            counts[r.user_id] = counts.get(r.user_id, 0) + 1

    return [
        _candidate(
            rule, None, user_id, Penalty.SUSPEND_BOOKING_24H, now,
            count=count,
            limit=CANCELLATION_LIMIT,
            window_hours=int(CANCELLATION_WINDOW.total_seconds() // 3600),
        )
        for user_id, count in counts.items()
        if count >= CANCELLATION_LIMIT
    ]


RuleCheck = Callable[[ViolationRule, SweepSnapshot, datetime], list[ViolationCandidate]]

CHECKS: dict[ViolationType, RuleCheck] = {
    ViolationType.NO_SHOW: check_no_show,
    ViolationType.OVERSTAY: check_overstay,
    ViolationType.LATE_CHECKIN: check_late_checkin,
    ViolationType.FREQUENT_CANCELLATION: check_frequent_cancellation,
    ViolationType.UNAUTHORIZED_EXTENSION: check_unauthorized_extension,
}


def detect_violations(
    rules: Iterable[ViolationRule],
    snapshot: SweepSnapshot,
    now: datetime,
) -> list[ViolationCandidate]:
    """
    Evaluate every enabled rule in order. A rule that raises is logged and
    skipped; the remaining rules still run.
    """
    candidates: list[ViolationCandidate] = []
    for rule in rules:
        if not rule.enabled:
            continue
        check = CHECKS.get(ViolationType(rule.type))
        if check is None:
            logger.warning("violation_rule_unknown_type", rule_id=rule.id, type=str(rule.type))
            continue
        try:
            candidates.extend(check(rule, snapshot, now))
        except Exception:
            record_sweep_error("rule")
            logger.exception("rule_evaluation_failed", rule_id=rule.id)
    return candidates
