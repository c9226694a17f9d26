"""
Violation detector - the periodic sweep and its scheduler.

SWEEP
=====
  0. expire temp-releases and missed check-ins (lifecycle expiry sweep)
  1. snapshot reservations and the trailing-24h cancellations
  2. detect_violations() on the snapshot (pure)
  3. drop candidates already in the ledger for the same UTC day
  4. record the rest; for auto_resolve rules, remediate right away

Each stage and each candidate runs in its own session. A failure is logged,
counted in violation_sweep_errors_total and does not stop the sweep.

Only one sweep runs at a time. A tick that finds a sweep in flight is
skipped, and stop_auto_detection() waits for the in-flight sweep instead of
cancelling it.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from library_seats.db.session import AsyncSessionLocal
from library_seats.db.types import utcnow
from library_seats.models.reservation import Reservation, ReservationStatus
from library_seats.models.user import User
from library_seats.services import lifecycle_service, reservation_store, violation_ledger
from library_seats.services.lifecycle_service import ExpirySummary
from library_seats.services.violation_rules import (
    CANCELLATION_WINDOW,
    REMEDIATION_FOR,
    Remediation,
    RuleStore,
    SweepSnapshot,
    ViolationCandidate,
    ViolationRule,
    detect_violations,
    select_recent_cancellations,
    select_snapshot_reservations,
)
from library_seats.core.config import get_settings
from library_seats.core.metrics import (
    detector_running,
    record_sweep,
    record_sweep_error,
    violation_sweep_duration,
)
from library_seats.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SweepReport:
    sweep_id: str
    now: datetime
    expired: ExpirySummary = field(default_factory=ExpirySummary)
    candidates: int = 0
    recorded: list[int] = field(default_factory=list)
    duplicates: int = 0
    remediated: int = 0
    errors: int = 0


class ViolationDetector:
    """
    Owns the rule store, the sweep lock and the background task.

    Usage:
        detector = ViolationDetector()
        detector.start_auto_detection(60000)
        ...
        await detector.stop_auto_detection()
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        rule_store: Optional[RuleStore] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.rule_store = rule_store or RuleStore()
        self.clock = clock
        self._lock = asyncio.Lock()
        self._task: Optional[asyncio.Task] = None
        self._stop: Optional[asyncio.Event] = None
        self.interval_ms: Optional[int] = None
        self.last_sweep_at: Optional[datetime] = None
        self.last_sweep_violations = 0

    # ------------------------------------------------------------------ rules

    def list_rules(self) -> list[ViolationRule]:
        return self.rule_store.list_rules()

    def update_rule(self, rule_id: str, changes: dict) -> Optional[ViolationRule]:
        return self.rule_store.update_rule(rule_id, changes)

    # -------------------------------------------------------------- scheduler

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start_auto_detection(self, interval_ms: Optional[int] = None) -> bool:
        """Start the background loop. Returns False if it is already running."""
        if self.is_running:
            return False

        self.interval_ms = interval_ms or get_settings().DETECTION_INTERVAL_MS
        self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._loop(self.interval_ms / 1000, self._stop))
        detector_running.set(1)
        logger.info("detection_started", interval_ms=self.interval_ms)
        return True

    async def stop_auto_detection(self) -> bool:
        """Stop the loop, letting an in-flight sweep finish first."""
        if not self.is_running:
            return False

        self._stop.set()
        await self._task
        self._task = None
        detector_running.set(0)
        logger.info("detection_stopped")
        return True

    async def _loop(self, interval: float, stop: asyncio.Event) -> None:
        while not stop.is_set():
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
            if stop.is_set():
                break
            try:
                await self.run_sweep()
            except Exception:
                record_sweep("failed")
                logger.exception("sweep_failed")

    def get_detection_status(self) -> dict:
        rules = self.rule_store.list_rules()
        return {
            "is_running": self.is_running,
            "interval_ms": self.interval_ms,
            "rules_count": len(rules),
            "enabled_rules_count": sum(1 for r in rules if r.enabled),
            "last_sweep_at": self.last_sweep_at,
            "last_sweep_violations": self.last_sweep_violations,
        }

    # ------------------------------------------------------------------ sweep

    async def run_sweep(self, now: Optional[datetime] = None) -> Optional[SweepReport]:
        """Run one sweep. Returns None when another sweep is already running."""
        if self._lock.locked():
            record_sweep("skipped")
            logger.info("sweep_skipped", reason="in_flight")
            return None

        async with self._lock:
            now = now or self.clock()
            report = SweepReport(sweep_id=str(uuid.uuid4())[:8], now=now)
            started = time.perf_counter()

            with structlog.contextvars.bound_contextvars(sweep_id=report.sweep_id):
                logger.info("sweep_started", now=now.isoformat())

                await self._expire(report)
                snapshot = await self._snapshot(report)
                if snapshot is not None:
                    rules = self.rule_store.list_rules()
                    candidates = detect_violations(rules, snapshot, now)
                    report.candidates = len(candidates)
                    for candidate in candidates:
                        await self._handle(candidate, report)

                duration = time.perf_counter() - started
                violation_sweep_duration.observe(duration)
                record_sweep("completed" if snapshot is not None else "failed")

                self.last_sweep_at = now
                self.last_sweep_violations = len(report.recorded)

                logger.info(
                    "sweep_completed",
                    candidates=report.candidates,
                    recorded=len(report.recorded),
                    duplicates=report.duplicates,
                    remediated=report.remediated,
                    errors=report.errors,
                    duration_ms=round(duration * 1000, 2),
                )
            return report

    async def _expire(self, report: SweepReport) -> None:
        async with self.session_factory() as db:
            try:
                report.expired = await lifecycle_service.run_expiry_sweep(db, now=report.now)
                await db.commit()
            except Exception:
                await db.rollback()
                report.errors += 1
                record_sweep_error("expiry")
                logger.exception("expiry_sweep_failed")

    async def _snapshot(self, report: SweepReport) -> Optional[SweepSnapshot]:
        now = report.now
        async with self.session_factory() as db:
            try:
                live = await reservation_store.find_reservations(
                    db,
                    Reservation.status.in_((
                        ReservationStatus.PENDING.value,
                        ReservationStatus.CONFIRMED.value,
                    )),
                )
                cancelled = await reservation_store.find_reservations(
                    db,
                    Reservation.status == ReservationStatus.CANCELLED.value,
                    Reservation.updated_at > now - CANCELLATION_WINDOW,
                )
            except Exception:
                report.errors += 1
                record_sweep_error("snapshot")
                logger.exception("snapshot_failed")
                return None

        return SweepSnapshot(
            active=tuple(select_snapshot_reservations(live, now)),
            recent_cancellations=tuple(select_recent_cancellations(cancelled, now)),
        )

    async def _handle(self, candidate: ViolationCandidate, report: SweepReport) -> None:
        async with self.session_factory() as db:
            try:
                duplicate = await violation_ledger.find_duplicate(
                    db,
                    user_id=candidate.user_id,
                    type=candidate.type,
                    reservation_id=candidate.reservation_id,
                    day=candidate.detected_at,
                )
                if duplicate is not None:
                    report.duplicates += 1
                    return

                violation = await violation_ledger.add_violation(
                    db,
                    user_id=candidate.user_id,
                    type=candidate.type,
                    penalty=candidate.penalty.value,
                    reservation_id=candidate.reservation_id,
                    rule_id=candidate.rule_id,
                    severity=candidate.severity,
                    details=candidate.details,
                    now=candidate.detected_at,
                )

                rule = self.rule_store.get_rule(candidate.rule_id)
                remediated = False
                if rule is not None and rule.auto_resolve:
                    remediated = await self._remediate(db, candidate)

                await db.commit()
                report.recorded.append(violation.id)
                if remediated:
                    report.remediated += 1
            except Exception:
                await db.rollback()
                report.errors += 1
                record_sweep_error("handle")
                logger.exception(
                    "violation_handling_failed",
                    rule_id=candidate.rule_id,
                    user_id=candidate.user_id,
                    reservation_id=candidate.reservation_id,
                )

    async def _remediate(self, db: AsyncSession, candidate: ViolationCandidate) -> bool:
        """
        Apply the automatic remediation for a freshly recorded violation.
        Lifecycle commands re-fetch and re-check their guards, so a
        reservation the user already closed is left alone.
        """
        action = REMEDIATION_FOR.get(candidate.type)
        now = candidate.detected_at

        if action == Remediation.CANCEL_RESERVATION and candidate.reservation_id:
            result = await lifecycle_service.cancel_reservation(db, candidate.reservation_id, now=now)
        elif action == Remediation.FORCE_CHECKOUT and candidate.reservation_id:
            result = await lifecycle_service.check_out(db, candidate.reservation_id, now=now, forced=True)
        elif action == Remediation.BAN_USER:
            return await self._ban_user(db, candidate.user_id)
        else:
            return False

        if not result.ok:
            logger.info(
                "remediation_skipped",
                rule_id=candidate.rule_id,
                reservation_id=candidate.reservation_id,
                reason=result.reason.value,
            )
        return result.ok

    async def _ban_user(self, db: AsyncSession, user_id: int) -> bool:
        user = await db.get(User, user_id, with_for_update=True, populate_existing=True)
        if user is None or user.is_banned:
            return False
        user.is_banned = True
        await db.flush()
        logger.warning("user_banned", user_id=user_id)
        return True
