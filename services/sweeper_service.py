"""
Sweeper Service
Marks pending doses whose period has passed as missed
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
from datetime import datetime, date
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from database import get_db_context
import models
from models import AdherenceStatus, Period
from tools.notification_bus import NotificationBus
from tools.periods import (
    dose_day,
    is_sweep_checkpoint,
    missable_periods,
    sweep_periods_for_hour,
)


logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """What a sweep changed. Counts come from the updates themselves."""
    on_date: date
    periods: List[Period]
    per_patient: Dict[int, int] = field(default_factory=dict)
    skipped: bool = False

    @property
    def changed(self) -> int:
        return sum(self.per_patient.values())


class SweeperService:
    """
    Service for missed-dose detection.

    Every mode funnels into one guarded UPDATE per patient
    (``status = pending AND period IN ...``), so a record already marked
    missed is never counted twice, whichever sweep reaches it first.
    """

    def _mark_missed(
        self,
        session: Session,
        patient_id: int,
        on_date: date,
        periods: Sequence[Period]
    ) -> int:
        if not periods:
            return 0

        changed = session.query(models.AdherenceRecord).filter(
            models.AdherenceRecord.patient_id == patient_id,
            models.AdherenceRecord.scheduled_date == on_date,
            models.AdherenceRecord.status == AdherenceStatus.PENDING.value,
            models.AdherenceRecord.scheduled_time.in_([p.value for p in periods])
        ).update({
            models.AdherenceRecord.status: AdherenceStatus.MISSED.value,
            models.AdherenceRecord.missed_doses: models.AdherenceRecord.missed_doses + 1,
            models.AdherenceRecord.updated_at: datetime.utcnow(),
        }, synchronize_session=False)
        session.commit()
        return changed

    def _patients_with_pending(
        self,
        session: Session,
        on_date: date,
        periods: Sequence[Period]
    ) -> List[int]:
        rows = session.query(models.AdherenceRecord.patient_id).filter(
            models.AdherenceRecord.scheduled_date == on_date,
            models.AdherenceRecord.status == AdherenceStatus.PENDING.value,
            models.AdherenceRecord.scheduled_time.in_([p.value for p in periods])
        ).distinct().order_by(models.AdherenceRecord.patient_id).all()
        return [row[0] for row in rows]

    async def _notify(self, bus: Optional[NotificationBus], result: SweepResult) -> None:
        if bus is None:
            return
        for patient_id, count in result.per_patient.items():
            try:
                await bus.notify_missed(patient_id, count)
            except Exception as e:
                logger.warning(f"Could not notify patient {patient_id} of missed doses: {e}")

    async def _sweep_all(
        self,
        on_date: date,
        periods: List[Period],
        bus: Optional[NotificationBus],
        db: Optional[Session]
    ) -> SweepResult:
        result = SweepResult(on_date=on_date, periods=periods)
        if not periods:
            result.skipped = True
            return result

        def _sweep(session: Session) -> None:
            for patient_id in self._patients_with_pending(session, on_date, periods):
                try:
                    changed = self._mark_missed(session, patient_id, on_date, periods)
                except SQLAlchemyError:
                    session.rollback()
                    logger.exception(f"Missed-dose sweep failed for patient {patient_id}")
                    continue
                if changed:
                    result.per_patient[patient_id] = changed

        if db:
            _sweep(db)
        else:
            with get_db_context() as session:
                _sweep(session)

        if result.changed:
            logger.info(
                f"Marked {result.changed} dose(s) missed for {len(result.per_patient)} patient(s) "
                f"({on_date}, {', '.join(p.value for p in periods)})"
            )
        await self._notify(bus, result)
        return result

    async def sweep_patient(
        self,
        patient_id: int,
        now: Optional[datetime] = None,
        bus: Optional[NotificationBus] = None,
        db: Optional[Session] = None
    ) -> SweepResult:
        """
        Opportunistic sweep for one patient, run on patient-facing requests

        Args:
            patient_id: Patient ID
            now: Current time (default: now)
            bus: Notification bus for the aggregated update event
            db: Database session

        Returns:
            SweepResult with at most one patient entry
        """
        now = now or datetime.now()
        on_date = dose_day(now)
        periods = missable_periods(now)
        result = SweepResult(on_date=on_date, periods=periods)

        def _sweep(session: Session) -> int:
            return self._mark_missed(session, patient_id, on_date, periods)

        if db:
            changed = _sweep(db)
        else:
            with get_db_context() as session:
                changed = _sweep(session)

        if changed:
            result.per_patient[patient_id] = changed
            logger.info(f"Auto-marked {changed} dose(s) missed for patient {patient_id}")
            await self._notify(bus, result)
        return result

    async def sweep_scheduled(
        self,
        now: Optional[datetime] = None,
        force: bool = False,
        bus: Optional[NotificationBus] = None,
        db: Optional[Session] = None
    ) -> SweepResult:
        """
        Per-minute sweep across all patients. The scan only runs at
        checkpoints (HH:05 after a boundary hour, or every quarter hour)
        unless forced.
        """
        now = now or datetime.now()
        periods = sweep_periods_for_hour(now.hour)

        if not force and not is_sweep_checkpoint(now):
            return SweepResult(on_date=dose_day(now), periods=periods, skipped=True)

        return await self._sweep_all(dose_day(now), periods, bus, db)

    async def sweep_periods(
        self,
        periods: Sequence[Period],
        on_date: Optional[date] = None,
        bus: Optional[NotificationBus] = None,
        db: Optional[Session] = None
    ) -> SweepResult:
        """End-of-period sweep for explicit periods of one day"""
        return await self._sweep_all(on_date or date.today(), list(periods), bus, db)


# Singleton instance
sweeper_service = SweeperService()
