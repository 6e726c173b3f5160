"""
Reminder Service
Sends period reminders for untaken medicines and seeds the ledger
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from datetime import datetime, date, timedelta
from sqlalchemy.orm import Session

from config import settings
from database import get_db_context
import models
from models import AdherenceStatus, Period
from exceptions import CollaboratorFailure, ValidationError
from services.adherence_service import DoseKey, adherence_service
from services.patient_service import patient_service
from services.schedule_service import ExpectedDose, schedule_service
from tools.email_service import EmailService, ReminderMedicine, email_service
from tools.periods import parse_period


logger = logging.getLogger(__name__)


@dataclass
class ReminderRunResult:
    """Summary of one reminder run"""
    period: Period
    on_date: date
    emails_sent: int = 0
    records_created: int = 0
    records_updated: int = 0
    failed_patients: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period.value,
            "date": self.on_date.isoformat(),
            "emails_sent": self.emails_sent,
            "records_created": self.records_created,
            "records_updated": self.records_updated,
            "failed_patients": list(self.failed_patients),
        }


class ReminderGate:
    """
    Cooldown per period. ``try_acquire`` records the attempt before the
    caller dispatches, so overlapping triggers inside the window are refused.
    """

    def __init__(self, cooldown_seconds: Optional[int] = None):
        seconds = settings.REMINDER_COOLDOWN_SECONDS if cooldown_seconds is None else cooldown_seconds
        self.cooldown = timedelta(seconds=seconds)
        self._last_sent: Dict[Period, datetime] = {}

    def try_acquire(self, period: Period, now: datetime) -> bool:
        last = self._last_sent.get(period)
        if last is not None and now - last < self.cooldown:
            return False
        self._last_sent[period] = now
        return True

    def last_sent(self, period: Period) -> Optional[datetime]:
        return self._last_sent.get(period)

    def reset(self) -> None:
        self._last_sent.clear()


class ReminderService:
    """
    Service for reminder dispatch
    """

    def _taken_medicine_ids(
        self,
        session: Session,
        patient_id: int,
        on_date: date,
        period: Period
    ) -> set:
        rows = session.query(models.AdherenceRecord.medicine_id).filter(
            models.AdherenceRecord.patient_id == patient_id,
            models.AdherenceRecord.scheduled_date == on_date,
            models.AdherenceRecord.scheduled_time == period.value,
            models.AdherenceRecord.status == AdherenceStatus.TAKEN.value,
            models.AdherenceRecord.medicine_id.isnot(None)
        ).all()
        return {row[0] for row in rows}

    def _seed(
        self,
        session: Session,
        patient_id: int,
        dose: ExpectedDose,
        on_date: date,
        result: ReminderRunResult
    ) -> None:
        updated = []

        def _mark(record: models.AdherenceRecord) -> None:
            record.reminder_sent = True
            updated.append(record)

        def _build() -> models.AdherenceRecord:
            return models.AdherenceRecord(
                patient_id=patient_id,
                prescription_id=dose.prescription_id,
                medicine_id=dose.medicine_id,
                medication=dose.medicine_name,
                scheduled_date=on_date,
                scheduled_time=dose.period.value,
                status=AdherenceStatus.PENDING.value,
                missed_doses=0,
                reminder_sent=True
            )

        key = DoseKey(patient_id, dose.medicine_id, on_date, dose.period, dose.medicine_name)
        adherence_service.upsert(session, key, update=_mark, build=_build)

        if updated:
            result.records_updated += 1
        else:
            result.records_created += 1

    async def send_reminders(
        self,
        period: Any,
        on_date: Optional[date] = None,
        email: Optional[EmailService] = None,
        db: Optional[Session] = None
    ) -> ReminderRunResult:
        """
        Email every patient the medicines still due in ``period`` and seed
        the ledger with pending, reminded records

        Args:
            period: morning, afternoon or evening
            on_date: Day to remind for (default: today)
            email: Email collaborator (default: module email service)
            db: Database session

        Returns:
            ReminderRunResult. A patient whose email or seeding fails is
            listed in ``failed_patients`` and the run moves on.
        """
        try:
            reminder_period = parse_period(period)
        except ValueError:
            raise ValidationError(f"Invalid period: {period!r}. Must be one of: morning, afternoon, evening")

        target = on_date or date.today()
        sender = email or email_service
        result = ReminderRunResult(period=reminder_period, on_date=target)

        async def _send(session: Session) -> ReminderRunResult:
            patients = patient_service.patients_with_prescriptions(session)
            logger.info(f"Checking {reminder_period.value} reminders for {len(patients)} patient(s)")

            for patient in patients:
                try:
                    due = [
                        dose for dose in schedule_service.expand_for_patient(session, patient.id, target)
                        if dose.period == reminder_period
                    ]
                    taken = self._taken_medicine_ids(session, patient.id, target, reminder_period)
                    remaining = [dose for dose in due if dose.medicine_id not in taken]
                    if not remaining:
                        continue

                    medicines = [
                        ReminderMedicine(name=d.medicine_name, dosage=d.dosage, instructions=d.instructions)
                        for d in remaining
                    ]
                    sent = await sender.send_reminder_email(
                        patient.email, patient.name, medicines, reminder_period.value
                    )
                    if not sent:
                        raise CollaboratorFailure(f"Reminder email to patient {patient.id} failed")
                    result.emails_sent += 1

                    for dose in remaining:
                        self._seed(session, patient.id, dose, target, result)

                except CollaboratorFailure as e:
                    logger.warning(f"{e}; ledger not seeded")
                    result.failed_patients.append(patient.id)
                except Exception:
                    session.rollback()
                    logger.exception(f"Error sending {reminder_period.value} reminder to patient {patient.id}")
                    result.failed_patients.append(patient.id)

            logger.info(
                f"{reminder_period.value.capitalize()} reminders: {result.emails_sent} email(s), "
                f"{result.records_created} record(s) created, {result.records_updated} updated, "
                f"{len(result.failed_patients)} failed"
            )
            return result

        if db:
            return await _send(db)

        with get_db_context() as session:
            return await _send(session)


# Singleton instance
reminder_service = ReminderService()
