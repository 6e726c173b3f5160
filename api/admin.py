"""
Admin API Router
Manual triggers for the reminder dispatcher and the missed-dose sweep
"""

from typing import List, Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_context, get_db, require_doctor
from api.schemas.adherence import (
    ReminderRunRequest,
    ReminderRunResponse,
    SweepResponse,
)
from exceptions import ValidationError
from services.context import TrackerContext
from services.patient_service import CurrentUser
from services.reminder_service import reminder_service
from services.sweeper_service import SweepResult, sweeper_service
from tools.periods import parse_period


router = APIRouter(prefix="/admin", tags=["admin"])


def _sweep_response(result: SweepResult) -> SweepResponse:
    return SweepResponse(
        date=result.on_date,
        periods=[p.value for p in result.periods],
        changed=result.changed,
        per_patient=result.per_patient,
        skipped=result.skipped
    )


@router.post("/reminders", response_model=ReminderRunResponse)
async def run_reminders(
    payload: ReminderRunRequest,
    user: CurrentUser = Depends(require_doctor),
    context: TrackerContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """
    Send reminders for a period now, bypassing the cooldown
    """
    result = await reminder_service.send_reminders(
        payload.period,
        on_date=payload.on_date,
        email=context.email,
        db=db
    )
    return result.to_dict()


@router.post("/sweep", response_model=SweepResponse)
async def run_sweep(
    periods: Optional[List[str]] = Query(None, description="Close these periods of today instead of the current ones"),
    user: CurrentUser = Depends(require_doctor),
    context: TrackerContext = Depends(get_context),
    db: Session = Depends(get_db)
):
    """
    Run the missed-dose sweep now
    """
    if periods:
        try:
            parsed = [parse_period(p) for p in periods]
        except ValueError:
            raise ValidationError(f"Invalid period in {periods}. Must be morning, afternoon or evening")
        result = await sweeper_service.sweep_periods(
            parsed, on_date=context.now().date(), bus=context.bus, db=db
        )
    else:
        result = await sweeper_service.sweep_scheduled(context.now(), force=True, bus=context.bus, db=db)

    return _sweep_response(result)
