"""
Adherence Service
Business logic for the adherence ledger: status changes, today's doses,
history and statistics
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional
from datetime import datetime, date, timedelta
from collections import defaultdict
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError

from config import settings
from database import get_db_context
import models
from models import AdherenceStatus, Period
from exceptions import AdherenceError, AmbiguousUpsertError, NotFoundError, ValidationError
from services.patient_service import CurrentUser, patient_service
from services.schedule_service import schedule_service
from tools.periods import parse_period


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DoseKey:
    """The unique identity of a ledger entry"""
    patient_id: int
    medicine_id: Optional[int]
    scheduled_date: date
    period: Period
    medication: Optional[str] = None


def parse_status(value: Any) -> AdherenceStatus:
    """Parse a status name case-insensitively"""
    if isinstance(value, AdherenceStatus):
        return value
    try:
        return AdherenceStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Invalid status: {value!r}. Must be one of: taken, missed, pending")


def apply_status(record: models.AdherenceRecord, status: AdherenceStatus) -> None:
    """Move a record to ``status``; entering Missed counts one missed dose"""
    previous = record.status
    record.status = status.value
    if status == AdherenceStatus.MISSED and previous != AdherenceStatus.MISSED.value:
        record.missed_doses = (record.missed_doses or 0) + 1
    record.updated_at = datetime.utcnow()


def serialize_record(record: models.AdherenceRecord) -> Dict[str, Any]:
    medicine = record.medicine
    return {
        "id": record.id,
        "patient_id": record.patient_id,
        "prescription_id": record.prescription_id,
        "medicine_id": record.medicine_id,
        "medication": record.medication or (medicine.name if medicine else None),
        "dosage": medicine.dosage if medicine else None,
        "instructions": medicine.instructions if medicine else None,
        "scheduled_date": record.scheduled_date,
        "scheduled_time": record.scheduled_time,
        "status": record.status,
        "missed_doses": record.missed_doses,
        "reminder_sent": record.reminder_sent,
        "created_at": record.created_at,
        "updated_at": record.updated_at,
        "is_virtual": False,
    }


class AdherenceService:
    """
    Service for adherence tracking and analysis
    """

    # ---------- ledger primitives ----------

    def _find_record(self, session: Session, key: DoseKey) -> Optional[models.AdherenceRecord]:
        query = session.query(models.AdherenceRecord).filter(
            models.AdherenceRecord.patient_id == key.patient_id,
            models.AdherenceRecord.scheduled_date == key.scheduled_date,
            models.AdherenceRecord.scheduled_time == key.period.value
        )
        if key.medicine_id is not None:
            query = query.filter(models.AdherenceRecord.medicine_id == key.medicine_id)
        else:
            # Free-text medications have no medicine link; the label identifies them
            query = query.filter(
                models.AdherenceRecord.medicine_id.is_(None),
                models.AdherenceRecord.medication == key.medication
            )
        return query.first()

    def upsert(
        self,
        session: Session,
        key: DoseKey,
        update: Callable[[models.AdherenceRecord], None],
        build: Optional[Callable[[], models.AdherenceRecord]]
    ) -> models.AdherenceRecord:
        """
        Find-then-update-else-insert on the ledger's unique key.

        ``build`` of None means no record may be created. An insert that
        loses a race to a concurrent writer hits the unique constraint, is
        rolled back and retried as an update.
        """
        for attempt in range(1, settings.UPSERT_MAX_ATTEMPTS + 1):
            record = self._find_record(session, key)
            if record is not None:
                update(record)
                session.commit()
                session.refresh(record)
                return record

            if build is None:
                raise AmbiguousUpsertError()

            record = build()
            session.add(record)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                logger.warning(
                    f"Duplicate ledger insert for patient {key.patient_id}, medicine {key.medicine_id}, "
                    f"{key.scheduled_date} {key.period.value} (attempt {attempt}); retrying as update"
                )
                continue

            session.refresh(record)
            return record

        raise AdherenceError("Medication record is being updated concurrently, please retry")

    # ---------- status changes ----------

    async def set_status(
        self,
        actor: CurrentUser,
        patient_id: int,
        status: Any,
        period: Any,
        on_date: Optional[date] = None,
        medicine_id: Optional[int] = None,
        prescription_id: Optional[int] = None,
        medication_label: Optional[str] = None,
        is_new_medication: bool = False,
        db: Optional[Session] = None
    ) -> models.AdherenceRecord:
        """
        Mark one dose as taken, missed or pending

        Args:
            actor: Authenticated caller
            patient_id: Patient the dose belongs to
            status: taken, missed or pending (any case)
            period: morning, afternoon or evening (any case)
            on_date: Day of the dose (default: today)
            medicine_id: Prescribed medicine, if the dose comes from a prescription
            prescription_id: Prescription of the medicine
            medication_label: Display name; identifies doses without a medicine
            is_new_medication: Allow creating a record for an unseen medicine dose
            db: Database session

        Returns:
            The created or updated AdherenceRecord

        Raises:
            ValidationError, NotFoundError, AuthorizationError, AmbiguousUpsertError
        """
        new_status = parse_status(status)
        try:
            dose_period = parse_period(period)
        except ValueError:
            raise ValidationError(f"Invalid period: {period!r}. Must be one of: morning, afternoon, evening")
        if medicine_id is None and not medication_label:
            raise ValidationError("Either medicine_id or medication name is required")

        target = on_date or date.today()

        def _set(session: Session) -> models.AdherenceRecord:
            patient_service.authorize_patient_access(session, actor, patient_id)

            label = medication_label
            linked_prescription = prescription_id
            if medicine_id is not None:
                medicine = session.get(models.PrescribedMedicine, medicine_id)
                if not medicine or medicine.prescription.patient_id != patient_id:
                    raise NotFoundError("Medicine not found for this patient")
                label = label or medicine.name
                linked_prescription = linked_prescription or medicine.prescription_id

            key = DoseKey(patient_id, medicine_id, target, dose_period, label)

            def _build() -> models.AdherenceRecord:
                return models.AdherenceRecord(
                    patient_id=patient_id,
                    prescription_id=linked_prescription,
                    medicine_id=medicine_id,
                    medication=label,
                    scheduled_date=target,
                    scheduled_time=dose_period.value,
                    status=new_status.value,
                    missed_doses=1 if new_status == AdherenceStatus.MISSED else 0,
                    reminder_sent=False
                )

            may_create = is_new_medication or medicine_id is None
            record = self.upsert(
                session,
                key,
                update=lambda r: apply_status(r, new_status),
                build=_build if may_create else None
            )

            logger.info(
                f"Patient {patient_id} {label} ({dose_period.value}, {target}) "
                f"marked {new_status.value} by {actor.role.value} {actor.id}"
            )
            return record

        if db:
            return _set(db)

        with get_db_context() as session:
            return _set(session)

    # ---------- reads ----------

    def _check_read_access(
        self,
        session: Session,
        patient_id: int,
        actor: Optional[CurrentUser]
    ) -> None:
        if actor is None:
            patient_service.get_patient_or_404(session, patient_id)
        else:
            patient_service.authorize_patient_access(session, actor, patient_id)

    async def get_today_doses(
        self,
        patient_id: int,
        on_date: Optional[date] = None,
        actor: Optional[CurrentUser] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """
        Persisted records for the day followed by virtual pending doses for
        every expected (medicine, period) not yet in the ledger
        """
        target = on_date or date.today()

        def _get(session: Session) -> List[Dict[str, Any]]:
            self._check_read_access(session, patient_id, actor)

            records = session.query(models.AdherenceRecord).filter(
                models.AdherenceRecord.patient_id == patient_id,
                models.AdherenceRecord.scheduled_date == target
            ).order_by(models.AdherenceRecord.created_at, models.AdherenceRecord.id).all()

            doses = [serialize_record(r) for r in records]
            persisted = {
                (r.medicine_id, r.scheduled_time)
                for r in records if r.medicine_id is not None
            }

            for expected in schedule_service.expand_for_patient(session, patient_id, target):
                if (expected.medicine_id, expected.period.value) in persisted:
                    continue
                doses.append({
                    "id": None,
                    "patient_id": patient_id,
                    "prescription_id": expected.prescription_id,
                    "medicine_id": expected.medicine_id,
                    "medication": expected.medicine_name,
                    "dosage": expected.dosage,
                    "instructions": expected.instructions,
                    "scheduled_date": target,
                    "scheduled_time": expected.period.value,
                    "status": AdherenceStatus.PENDING.value,
                    "missed_doses": 0,
                    "reminder_sent": False,
                    "created_at": None,
                    "updated_at": None,
                    "is_virtual": True,
                })

            return doses

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_history(
        self,
        patient_id: int,
        days: int = 7,
        actor: Optional[CurrentUser] = None,
        today: Optional[date] = None,
        db: Optional[Session] = None
    ) -> List[Dict[str, Any]]:
        """Ledger entries of the last ``days`` days, newest first"""
        if days <= 0:
            raise ValidationError("days must be a positive number")
        start = (today or date.today()) - timedelta(days=days)

        def _get(session: Session) -> List[Dict[str, Any]]:
            self._check_read_access(session, patient_id, actor)

            records = session.query(models.AdherenceRecord).filter(
                models.AdherenceRecord.patient_id == patient_id,
                models.AdherenceRecord.scheduled_date >= start
            ).order_by(
                models.AdherenceRecord.scheduled_date.desc(),
                models.AdherenceRecord.created_at.desc(),
                models.AdherenceRecord.id.desc()
            ).all()

            return [serialize_record(r) for r in records]

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    async def get_stats(
        self,
        patient_id: int,
        days: int = 30,
        actor: Optional[CurrentUser] = None,
        today: Optional[date] = None,
        db: Optional[Session] = None
    ) -> Dict[str, Any]:
        """
        Adherence summary and per-day breakdown

        Returns:
            Dictionary with ``summary`` and ``daily_stats``. The adherence
            rate counts taken against taken plus missed; pending doses are
            left out.
        """
        if days <= 0:
            raise ValidationError("days must be a positive number")
        start = (today or date.today()) - timedelta(days=days)

        def _get(session: Session) -> Dict[str, Any]:
            self._check_read_access(session, patient_id, actor)

            total_medications = session.query(models.PrescribedMedicine.id).join(
                models.Prescription
            ).filter(
                models.Prescription.patient_id == patient_id
            ).distinct().count()

            records = session.query(models.AdherenceRecord).filter(
                models.AdherenceRecord.patient_id == patient_id,
                models.AdherenceRecord.scheduled_date >= start
            ).all()

            counts = defaultdict(int)
            daily: Dict[date, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
            total_missed_doses = 0

            for record in records:
                counts[record.status] += 1
                day = daily[record.scheduled_date]
                day["total"] += 1
                day[record.status] += 1
                total_missed_doses += record.missed_doses or 0

            taken = counts[AdherenceStatus.TAKEN.value]
            missed = counts[AdherenceStatus.MISSED.value]

            daily_stats = []
            for day_date in sorted(daily):
                day = daily[day_date]
                daily_stats.append({
                    "date": day_date,
                    "total": day["total"],
                    "taken": day[AdherenceStatus.TAKEN.value],
                    "missed": day[AdherenceStatus.MISSED.value],
                    "pending": day[AdherenceStatus.PENDING.value],
                    "adherence_rate": self.calculate_rate(
                        day[AdherenceStatus.TAKEN.value], day[AdherenceStatus.MISSED.value]
                    ),
                })

            return {
                "patient_id": patient_id,
                "days": days,
                "summary": {
                    "total_medications": total_medications,
                    "taken_count": taken,
                    "missed_count": missed,
                    "pending_count": counts[AdherenceStatus.PENDING.value],
                    "total_missed_doses": total_missed_doses,
                    "adherence_rate": self.calculate_rate(taken, missed),
                },
                "daily_stats": daily_stats,
            }

        if db:
            return _get(db)

        with get_db_context() as session:
            return _get(session)

    @staticmethod
    def calculate_rate(taken: int, missed: int) -> float:
        decided = taken + missed
        if decided == 0:
            return 0.0
        return round(taken / decided * 100, 2)


# Singleton instance
adherence_service = AdherenceService()
