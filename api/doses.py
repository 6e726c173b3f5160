"""
Doses API Router
Endpoints for today's doses, dose status updates, history and statistics
"""

from typing import List
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from api.deps import get_db, opportunistic_checks, require_doctor
from api.schemas.adherence import (
    DoseStatusUpdate,
    AdherenceRecordResponse,
    DoseResponse,
    AdherenceStats,
)
from exceptions import AuthorizationError
from services.adherence_service import adherence_service
from services.patient_service import CurrentUser


router = APIRouter(prefix="/doses", tags=["doses"])


@router.get("/today/{patient_id}", response_model=List[DoseResponse])
async def get_today_doses(
    patient_id: int,
    user: CurrentUser = Depends(opportunistic_checks),
    db: Session = Depends(get_db)
):
    """
    Get today's doses for the signed-in patient: ledger entries followed by
    doses not yet recorded, shown as pending
    """
    if not user.is_patient:
        raise AuthorizationError("Unauthorized: Only patients can view their own medications")
    return await adherence_service.get_today_doses(patient_id, actor=user, db=db)


@router.get("/doctor/today/{patient_id}", response_model=List[DoseResponse])
async def get_patient_today_doses(
    patient_id: int,
    user: CurrentUser = Depends(require_doctor),
    db: Session = Depends(get_db)
):
    """
    Get today's doses of an assigned patient
    """
    return await adherence_service.get_today_doses(patient_id, actor=user, db=db)


@router.post("/status", response_model=AdherenceRecordResponse)
async def update_dose_status(
    payload: DoseStatusUpdate,
    user: CurrentUser = Depends(opportunistic_checks),
    db: Session = Depends(get_db)
):
    """
    Mark a dose as taken, missed or pending

    Updates the existing ledger entry for the dose; a new entry is only
    created for doses flagged ``is_new_medication`` or without a medicine id.
    """
    return await adherence_service.set_status(
        actor=user,
        patient_id=payload.patient_id,
        status=payload.status,
        period=payload.scheduled_time,
        on_date=payload.scheduled_date,
        medicine_id=payload.medicine_id,
        prescription_id=payload.prescription_id,
        medication_label=payload.medication,
        is_new_medication=payload.is_new_medication,
        db=db
    )


@router.get("/history/{patient_id}", response_model=List[DoseResponse])
async def get_dose_history(
    patient_id: int,
    days: int = Query(7, ge=1, le=365, description="Number of days to look back"),
    user: CurrentUser = Depends(opportunistic_checks),
    db: Session = Depends(get_db)
):
    """
    Get ledger entries of the last N days, newest first
    """
    return await adherence_service.get_history(patient_id, days=days, actor=user, db=db)


@router.get("/stats/{patient_id}", response_model=AdherenceStats)
async def get_dose_stats(
    patient_id: int,
    days: int = Query(30, ge=1, le=365, description="Number of days to analyze"),
    user: CurrentUser = Depends(opportunistic_checks),
    db: Session = Depends(get_db)
):
    """
    Get adherence summary and per-day breakdown for the last N days
    """
    return await adherence_service.get_stats(patient_id, days=days, actor=user, db=db)
