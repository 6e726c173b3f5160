"""
Prescriptions API Router
Endpoints for creating, listing and deleting prescriptions
"""

from typing import List
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from api.deps import get_db, opportunistic_checks, require_doctor
from api.schemas.prescription import (
    PrescriptionCreate,
    PrescriptionResponse,
    PrescriptionDeleteResponse,
)
from services.patient_service import CurrentUser
from services.prescription_service import prescription_service


router = APIRouter(prefix="/prescriptions", tags=["prescriptions"])


@router.post("", response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
async def create_prescription(
    payload: PrescriptionCreate,
    user: CurrentUser = Depends(require_doctor),
    db: Session = Depends(get_db)
):
    """
    Create a prescription for an assigned patient
    """
    return await prescription_service.create_prescription(
        actor=user,
        patient_id=payload.patient_id,
        medicines=[medicine.model_dump() for medicine in payload.medicines],
        condition=payload.condition,
        db=db
    )


@router.get("/patient/{patient_id}", response_model=List[PrescriptionResponse])
async def get_patient_prescriptions(
    patient_id: int,
    user: CurrentUser = Depends(opportunistic_checks),
    db: Session = Depends(get_db)
):
    """
    Get a patient's prescriptions, newest first
    """
    return await prescription_service.get_patient_prescriptions(user, patient_id, db=db)


@router.delete("/{prescription_id}", response_model=PrescriptionDeleteResponse)
async def delete_prescription(
    prescription_id: int,
    user: CurrentUser = Depends(require_doctor),
    db: Session = Depends(get_db)
):
    """
    Delete a prescription, its medicines and their adherence records
    """
    result = await prescription_service.delete_prescription(user, prescription_id, db=db)
    return PrescriptionDeleteResponse(message="Prescription deleted successfully", **result)
