"""
Schedule Service
Expands prescriptions into the doses a patient owes on a given day
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Iterable, List, Optional
from datetime import date
from sqlalchemy.orm import Session, selectinload

from database import get_db_context
import models
from models import Period
from tools.duration import is_active
from tools.periods import PERIOD_ORDER


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExpectedDose:
    """One (medicine, period) obligation derived from a prescription"""
    medicine_id: int
    medicine_name: str
    dosage: str
    instructions: Optional[str]
    period: Period
    prescription_id: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["period"] = self.period.value
        return data


def expand_prescriptions(
    prescriptions: Iterable[models.Prescription],
    on_date: date
) -> List[ExpectedDose]:
    """
    Pure expansion of prescriptions for one day.

    Every active medicine yields one dose per period in its timing set.
    Output is ordered by period, then medicine id, and never holds the same
    (medicine, period) twice.
    """
    seen = set()
    doses: List[ExpectedDose] = []

    for prescription in prescriptions:
        for medicine in prescription.medicines:
            if not is_active(prescription.date, medicine.duration, on_date):
                continue

            for period in PERIOD_ORDER:
                if not medicine.is_due(period):
                    continue
                key = (medicine.id, period)
                if key in seen:
                    continue
                seen.add(key)
                doses.append(ExpectedDose(
                    medicine_id=medicine.id,
                    medicine_name=medicine.name,
                    dosage=medicine.dosage,
                    instructions=medicine.instructions,
                    period=period,
                    prescription_id=prescription.id
                ))

    doses.sort(key=lambda d: (PERIOD_ORDER.index(d.period), d.medicine_id))
    return doses


class ScheduleService:
    """
    Service for the derived daily schedule. Nothing here writes to the ledger.
    """

    def load_prescriptions(self, session: Session, patient_id: int) -> List[models.Prescription]:
        return session.query(models.Prescription).options(
            selectinload(models.Prescription.medicines)
        ).filter(
            models.Prescription.patient_id == patient_id
        ).order_by(models.Prescription.id).all()

    def expand_for_patient(
        self,
        session: Session,
        patient_id: int,
        on_date: date
    ) -> List[ExpectedDose]:
        return expand_prescriptions(self.load_prescriptions(session, patient_id), on_date)

    async def expand(
        self,
        patient_id: int,
        on_date: Optional[date] = None,
        db: Optional[Session] = None
    ) -> List[ExpectedDose]:
        """
        Get the doses a patient owes on a date

        Args:
            patient_id: Patient ID
            on_date: Day to expand (default: today)
            db: Database session

        Returns:
            Expected doses ordered by period then medicine
        """
        target = on_date or date.today()

        def _expand(session: Session) -> List[ExpectedDose]:
            return self.expand_for_patient(session, patient_id, target)

        if db:
            return _expand(db)

        with get_db_context() as session:
            return _expand(session)

    async def due_for_period(
        self,
        patient_id: int,
        period: Period,
        on_date: Optional[date] = None,
        db: Optional[Session] = None
    ) -> List[ExpectedDose]:
        """Expected doses of a single period"""
        doses = await self.expand(patient_id, on_date, db=db)
        return [d for d in doses if d.period == period]


# Singleton instance
schedule_service = ScheduleService()
