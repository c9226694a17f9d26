"""
Human-readable rendering of ledger entries.

Engine rows store a penalty code and structured details; manual rows store
free text. Both render to plain strings here, at the API boundary.
"""

from datetime import datetime

from library_seats.models.violation import Violation, ViolationType
from library_seats.services.violation_rules import Penalty

PENALTY_TEXT = {
    Penalty.CANCEL_AND_RECORD.value: "Cancel the current reservation and record one violation",
    Penalty.FORCE_CHECKOUT.value: "Force check-out and record one violation",
    Penalty.RECORD_LATE.value: "Record one late check-in violation",
    Penalty.SUSPEND_BOOKING_24H.value: "Suspend booking privileges for 24 hours",
    Penalty.FORCE_CHECKOUT_SEVERE.value: "Force check-out and record one severe violation",
}


def _fmt(value) -> str:
    if not value:
        return "unknown"
    return datetime.fromisoformat(value).strftime("%Y-%m-%d %H:%M")


def render_penalty(violation: Violation) -> str:
    return PENALTY_TEXT.get(violation.penalty, violation.penalty)


def render_description(violation: Violation) -> str:
    if violation.description:
        return violation.description

    details = violation.details or {}
    if violation.type == ViolationType.NO_SHOW:
        return (
            f"Not checked in {details.get('grace_minutes', 15)} minutes after the reservation start, "
            f"reserved for {_fmt(details.get('start_time'))}"
        )
    if violation.type == ViolationType.OVERSTAY:
        return (
            f"Not checked out {details.get('threshold_minutes', 30)} minutes after the reservation end, "
            f"reservation ended {_fmt(details.get('end_time'))}"
        )
    if violation.type == ViolationType.LATE_CHECKIN:
        return (
            f"Checked in {details.get('late_minutes', 10)} minutes after the reservation start, "
            f"reserved for {_fmt(details.get('start_time'))}, "
            f"checked in {_fmt(details.get('check_in_time'))}"
        )
    if violation.type == ViolationType.FREQUENT_CANCELLATION:
        return (
            f"Cancelled {details.get('count', 0)} reservations within "
            f"{details.get('window_hours', 24)} hours, over the limit"
        )
    if violation.type == ViolationType.UNAUTHORIZED_EXTENSION:
        return (
            f"Still not checked out {details.get('threshold_minutes', 60)} minutes after the reservation end, "
            f"reservation ended {_fmt(details.get('end_time'))}"
        )
    return violation.type.replace("_", " ").capitalize()
