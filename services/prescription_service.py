"""
Prescription Service
Business logic for creating, listing and deleting prescriptions
"""

import logging
from typing import Any, Dict, List, Optional
from sqlalchemy.orm import Session, selectinload

from database import get_db_context
import models
from models import Period
from exceptions import AuthorizationError, NotFoundError, ValidationError
from services.patient_service import CurrentUser, patient_service


logger = logging.getLogger(__name__)


DEFAULT_CONDITION = "General"


def _timing_flag(timing: Dict[str, Any], period: Period) -> bool:
    return bool(timing.get(period.value, False))


class PrescriptionService:
    """
    Service for prescription management
    """

    async def create_prescription(
        self,
        actor: CurrentUser,
        patient_id: int,
        medicines: List[Dict[str, Any]],
        condition: Optional[str] = None,
        db: Optional[Session] = None
    ) -> models.Prescription:
        """
        Create a prescription with its medicines

        Args:
            actor: Prescribing doctor
            patient_id: Patient ID
            medicines: Medicine dicts with name, dosage, timing and optionally
                id (catalog reference), duration and instructions
            condition: Free-text condition label (default "General")
            db: Database session

        Returns:
            Created Prescription with medicines loaded
        """
        patient_service.require_doctor(actor)
        if not medicines:
            raise ValidationError("At least one medicine is required")
        for med in medicines:
            if not med.get("name") or not med.get("dosage") or med.get("timing") is None:
                raise ValidationError("All medicines must have name, dosage and timing")

        def _create(session: Session) -> models.Prescription:
            patient_service.get_patient_or_404(session, patient_id)
            if not patient_service.is_assigned(session, actor.id, patient_id):
                raise AuthorizationError("This patient is not assigned to you")

            prescription = models.Prescription(
                patient_id=patient_id,
                doctor_id=actor.id,
                condition=condition or DEFAULT_CONDITION
            )
            for med in medicines:
                timing = med["timing"]
                catalog_id = med.get("id")
                prescription.medicines.append(models.PrescribedMedicine(
                    catalog_id=str(catalog_id) if catalog_id is not None else None,
                    name=med["name"],
                    dosage=str(med["dosage"]),
                    duration=med.get("duration"),
                    instructions=med.get("instructions"),
                    timing_morning=_timing_flag(timing, Period.MORNING),
                    timing_afternoon=_timing_flag(timing, Period.AFTERNOON),
                    timing_evening=_timing_flag(timing, Period.EVENING)
                ))

            session.add(prescription)
            session.commit()
            session.refresh(prescription)

            logger.info(
                f"Doctor {actor.id} created prescription {prescription.id} for patient {patient_id} "
                f"with {len(prescription.medicines)} medicine(s)"
            )
            return prescription

        if db:
            return _create(db)

        with get_db_context() as session:
            return _create(session)

    async def get_patient_prescriptions(
        self,
        actor: CurrentUser,
        patient_id: int,
        db: Optional[Session] = None
    ) -> List[models.Prescription]:
        """Prescriptions of a patient, newest first"""
        def _get(session: Session) -> List[models.Prescription]:
            patient_service.authorize_patient_access(session, actor, patient_id)

            return session.query(models.Prescription).options(
                selectinload(models.Prescription.medicines),
                selectinload(models.Prescription.doctor)
            ).filter(
                models.Prescription.patient_id == patient_id
            ).order_by(
                models.Prescription.created_at.desc(),
                models.Prescription.id.desc()
            ).all()

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def delete_prescription(
        self,
        actor: CurrentUser,
        prescription_id: int,
        db: Optional[Session] = None
    ) -> Dict[str, int]:
        """
        Delete a prescription together with its medicines and every ledger
        entry that references either, in one transaction

        Returns:
            Counts of deleted medicines and adherence records
        """
        patient_service.require_doctor(actor)

        def _delete(session: Session) -> Dict[str, int]:
            prescription = session.get(models.Prescription, prescription_id)
            if not prescription:
                raise NotFoundError("Prescription not found")
            if not patient_service.is_assigned(session, actor.id, prescription.patient_id):
                raise AuthorizationError("This patient is not assigned to you")

            medicine_ids = [m.id for m in prescription.medicines]
            try:
                references = models.AdherenceRecord.prescription_id == prescription_id
                if medicine_ids:
                    references = references | models.AdherenceRecord.medicine_id.in_(medicine_ids)
                records_deleted = session.query(models.AdherenceRecord).filter(
                    references
                ).delete(synchronize_session=False)

                session.delete(prescription)
                session.commit()
            except Exception:
                session.rollback()
                raise

            logger.info(
                f"Deleted prescription {prescription_id}: {len(medicine_ids)} medicine(s), "
                f"{records_deleted} adherence record(s)"
            )
            return {
                "prescription_id": prescription_id,
                "medicines_deleted": len(medicine_ids),
                "records_deleted": records_deleted,
            }

        if db:
            return _delete(db)

        with get_db_context() as session:
            return _delete(session)


# Singleton instance
prescription_service = PrescriptionService()
