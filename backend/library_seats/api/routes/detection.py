"""
Violation detector control endpoints (admin only).
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status

from library_seats.schemas.detection import (
    DetectionStart,
    DetectionStatus,
    RuleResponse,
    RuleUpdate,
    SweepResponse,
)
from library_seats.services.violation_detector import ViolationDetector
from library_seats.core.security import require_admin

router = APIRouter(prefix="/detection", tags=["Detection"], dependencies=[Depends(require_admin)])


def get_detector(request: Request) -> ViolationDetector:
    """The application's detector, created in the lifespan hook."""
    return request.app.state.detector


@router.get("/status", response_model=DetectionStatus)
async def detection_status(detector: ViolationDetector = Depends(get_detector)):
    return detector.get_detection_status()


@router.post("/start", response_model=DetectionStatus)
async def start_detection(
    body: Optional[DetectionStart] = None,
    detector: ViolationDetector = Depends(get_detector),
):
    detector.start_auto_detection(body.interval_ms if body else None)
    return detector.get_detection_status()


@router.post("/stop", response_model=DetectionStatus)
async def stop_detection(detector: ViolationDetector = Depends(get_detector)):
    """Stops the loop. Waits for an in-flight sweep to finish."""
    await detector.stop_auto_detection()
    return detector.get_detection_status()


@router.post("/run", response_model=SweepResponse)
async def run_detection(detector: ViolationDetector = Depends(get_detector)):
    """Run one sweep now. Reports skipped if a sweep is already in flight."""
    report = await detector.run_sweep()
    if report is None:
        return SweepResponse(skipped=True)
    return SweepResponse(
        sweep_id=report.sweep_id,
        candidates=report.candidates,
        recorded=report.recorded,
        duplicates=report.duplicates,
        remediated=report.remediated,
        errors=report.errors,
        temp_released_cancelled=report.expired.temp_released_cancelled,
        pending_expired=report.expired.pending_expired,
    )


@router.get("/rules", response_model=list[RuleResponse])
async def list_rules(detector: ViolationDetector = Depends(get_detector)):
    return detector.list_rules()


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: str,
    body: RuleUpdate,
    detector: ViolationDetector = Depends(get_detector),
):
    rule = detector.update_rule(rule_id, body.model_dump(exclude_unset=True, exclude_none=True))
    if rule is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Rule not found")
    return rule
