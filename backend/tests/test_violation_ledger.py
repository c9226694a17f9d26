"""
Tests for the violation ledger and its text rendering.
"""

from datetime import timedelta

import pytest

from library_seats.models.violation import ViolationType
from library_seats.services import violation_ledger
from library_seats.services.violation_text import render_description, render_penalty

from conftest import T


@pytest.mark.asyncio
async def test_add_violation_increments_user_counter(db_session, test_user):
    """Appending a violation bumps the user's violation count."""
    violation = await violation_ledger.add_violation(
        db_session,
        user_id=test_user.id,
        type=ViolationType.NO_SHOW,
        penalty="cancel_and_record",
        reservation_id=None,
        rule_id="no_show_15min",
        details={"start_time": T.isoformat(), "grace_minutes": 15},
        now=T,
    )
    await db_session.commit()

    assert violation.id is not None
    assert violation.created_at == T
    assert violation.is_resolved is False
    await db_session.refresh(test_user)
    assert test_user.violation_count == 1


@pytest.mark.asyncio
async def test_resolve_twice_overwrites(db_session, test_user, admin_user):
    """Resolving again overwrites resolver and time."""
    violation = await violation_ledger.add_violation(
        db_session, user_id=test_user.id, type=ViolationType.OVERSTAY, penalty="force_checkout", now=T
    )

    await violation_ledger.resolve_violation(db_session, violation.id, resolved_by=test_user.id, now=T)
    again = await violation_ledger.resolve_violation(
        db_session, violation.id, resolved_by=admin_user.id, now=T + timedelta(hours=1)
    )

    assert again.is_resolved is True
    assert again.resolved_by == admin_user.id
    assert again.resolved_at == T + timedelta(hours=1)


@pytest.mark.asyncio
async def test_resolve_unknown_returns_none(db_session):
    """Resolving a missing violation returns None."""
    assert await violation_ledger.resolve_violation(db_session, 4242, now=T) is None


@pytest.mark.asyncio
async def test_listings(db_session, test_user, other_user):
    """All, per-user and unresolved listings."""
    first = await violation_ledger.add_violation(
        db_session, user_id=test_user.id, type=ViolationType.NO_SHOW, penalty="cancel_and_record", now=T
    )
    await violation_ledger.add_violation(
        db_session, user_id=other_user.id, type=ViolationType.LATE_CHECKIN, penalty="record_late", now=T
    )
    await violation_ledger.resolve_violation(db_session, first.id, now=T)

    assert len(await violation_ledger.list_violations(db_session)) == 2
    assert [v.user_id for v in await violation_ledger.list_violations_by_user(db_session, test_user.id)] == [
        test_user.id
    ]
    unresolved = await violation_ledger.list_unresolved_violations(db_session)
    assert [v.user_id for v in unresolved] == [other_user.id]


@pytest.mark.asyncio
async def test_find_duplicate_is_scoped_to_utc_day(db_session, test_user):
    """Duplicates match on user, type, reservation and UTC day."""
    late_evening = T.replace(hour=23, minute=50)
    await violation_ledger.add_violation(
        db_session, user_id=test_user.id, type=ViolationType.FREQUENT_CANCELLATION,
        penalty="suspend_booking_24h", now=late_evening,
    )

    same_day = await violation_ledger.find_duplicate(
        db_session, test_user.id, ViolationType.FREQUENT_CANCELLATION, None, T
    )
    next_day = await violation_ledger.find_duplicate(
        db_session, test_user.id, ViolationType.FREQUENT_CANCELLATION, None, late_evening + timedelta(minutes=20)
    )
    other_type = await violation_ledger.find_duplicate(db_session, test_user.id, ViolationType.NO_SHOW, None, T)

    assert same_day is not None
    assert next_day is None
    assert other_type is None


@pytest.mark.asyncio
async def test_engine_entries_render_from_details(db_session, test_user):
    """Engine entries render penalty and description from details."""
    violation = await violation_ledger.add_violation(
        db_session,
        user_id=test_user.id,
        type=ViolationType.NO_SHOW,
        penalty="cancel_and_record",
        rule_id="no_show_15min",
        details={"start_time": T.isoformat(), "grace_minutes": 15},
        now=T,
    )

    assert render_penalty(violation) == "Cancel the current reservation and record one violation"
    assert render_description(violation) == (
        "Not checked in 15 minutes after the reservation start, reserved for 2026-03-02 09:00"
    )


@pytest.mark.asyncio
async def test_manual_entries_render_verbatim(db_session, test_user):
    """Manual entries keep their free text."""
    violation = await violation_ledger.add_violation(
        db_session,
        user_id=test_user.id,
        type=ViolationType.UNAUTHORIZED_USE,
        penalty="Warning",
        description="Left belongings on an unreserved seat",
        now=T,
    )

    assert render_penalty(violation) == "Warning"
    assert render_description(violation) == "Left belongings on an unreserved seat"
