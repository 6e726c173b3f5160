"""
Patient Service
Patient and doctor lookups and the doctor/patient access rules
"""

import logging
from dataclasses import dataclass
from typing import List
from sqlalchemy.orm import Session

import models
from models import UserRole
from exceptions import AuthorizationError, NotFoundError, ValidationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    """Identity taken from a verified access token"""
    id: int
    role: UserRole

    @property
    def is_doctor(self) -> bool:
        return self.role == UserRole.DOCTOR

    @property
    def is_patient(self) -> bool:
        return self.role == UserRole.PATIENT


class PatientService:
    """
    Service for patient-related operations
    """

    # ---------- access rules (sync, used inside other services' sessions) ----------

    def get_patient_or_404(self, session: Session, patient_id: int) -> models.Patient:
        if patient_id is None or patient_id <= 0:
            raise ValidationError("Patient ID is required")
        patient = session.get(models.Patient, patient_id)
        if not patient:
            raise NotFoundError("Patient not found")
        return patient

    def is_assigned(self, session: Session, doctor_id: int, patient_id: int) -> bool:
        return session.query(models.doctor_patients).filter(
            models.doctor_patients.c.doctor_id == doctor_id,
            models.doctor_patients.c.patient_id == patient_id
        ).first() is not None

    def require_doctor(self, actor: CurrentUser) -> None:
        if not actor.is_doctor:
            raise AuthorizationError("Unauthorized: Only doctors can perform this action")

    def authorize_patient_access(
        self,
        session: Session,
        actor: CurrentUser,
        patient_id: int
    ) -> models.Patient:
        """
        A patient may act on their own records only; a doctor on the records
        of patients assigned to them.
        """
        patient = self.get_patient_or_404(session, patient_id)

        if actor.is_patient:
            if actor.id != patient_id:
                raise AuthorizationError("Unauthorized: Patients can only access their own medications")
        elif actor.is_doctor:
            if not self.is_assigned(session, actor.id, patient_id):
                raise AuthorizationError("Unauthorized: Doctor is not assigned to this patient")
        else:
            raise AuthorizationError("Unauthorized role")

        return patient

    def patients_with_prescriptions(self, session: Session) -> List[models.Patient]:
        return session.query(models.Patient).filter(
            models.Patient.prescriptions.any()
        ).order_by(models.Patient.id).all()


# Singleton instance
patient_service = PatientService()
