"""
Tracker Context
Process-wide collaborators for the background jobs and request-time checks
"""

import logging
from typing import Callable, Optional
from datetime import datetime
from sqlalchemy.orm import Session

from config import scheduler_config, settings
from database import SessionLocal, get_db_context
from models import Period
from services.reminder_service import ReminderGate, ReminderRunResult, reminder_service
from services.sweeper_service import SweepResult, sweeper_service
from tools.email_service import EmailService, email_service
from tools.notification_bus import NotificationBus
from tools.periods import MORNING_START_HOUR, period_for
from tools.task_scheduler import TaskScheduler


logger = logging.getLogger(__name__)


class TrackerContext:
    """
    Built once at startup and handed to every job and request check.

    Holds the reminder cooldown gate, the notification bus, the email
    collaborator, the session factory for background work and the clock.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        bus: Optional[NotificationBus] = None,
        email: Optional[EmailService] = None,
        gate: Optional[ReminderGate] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.session_factory = session_factory
        self.bus = bus or NotificationBus()
        self.email = email or email_service
        self.gate = gate or ReminderGate()
        self.clock = clock

    def now(self) -> datetime:
        return self.clock()

    # ---------- jobs ----------

    async def run_scheduled_sweep(self, moment: Optional[datetime] = None, force: bool = False) -> SweepResult:
        with get_db_context(self.session_factory) as session:
            return await sweeper_service.sweep_scheduled(
                moment or self.now(), force=force, bus=self.bus, db=session
            )

    async def run_period_sweep(self, period: Period, moment: Optional[datetime] = None) -> SweepResult:
        on_date = (moment or self.now()).date()
        with get_db_context(self.session_factory) as session:
            return await sweeper_service.sweep_periods([period], on_date, bus=self.bus, db=session)

    async def run_reminders(self, period: Period, moment: Optional[datetime] = None) -> ReminderRunResult:
        on_date = (moment or self.now()).date()
        with get_db_context(self.session_factory) as session:
            return await reminder_service.send_reminders(period, on_date, email=self.email, db=session)

    # ---------- request-time checks ----------

    async def check_patient(
        self,
        patient_id: int,
        db: Optional[Session] = None,
        now: Optional[datetime] = None
    ) -> SweepResult:
        """Opportunistic sweep for the requesting patient"""
        moment = now or self.now()
        if db:
            return await sweeper_service.sweep_patient(patient_id, moment, bus=self.bus, db=db)
        with get_db_context(self.session_factory) as session:
            return await sweeper_service.sweep_patient(patient_id, moment, bus=self.bus, db=session)

    async def trigger_reminders(self, now: Optional[datetime] = None) -> bool:
        """
        Run reminders for the current period unless the period's cooldown
        is still running. Returns whether a run was started.

        Before the morning window opens the latest period belongs to the
        previous day and is being swept, so nothing is sent.
        """
        moment = now or self.now()
        if moment.hour < MORNING_START_HOUR:
            logger.debug(f"Skipping reminders at {moment:%H:%M}, before the morning window")
            return False

        period = period_for(moment.hour)
        if not self.gate.try_acquire(period, moment):
            logger.debug(f"Skipping {period.value} reminders, cooldown active")
            return False

        try:
            await self.run_reminders(period, moment)
        except Exception:
            logger.exception(f"Error sending {period.value} medication reminders")
        return True

    # ---------- scheduling ----------

    def build_scheduler(self) -> TaskScheduler:
        """Register every background job on a new scheduler"""
        scheduler = TaskScheduler(clock=self.clock)

        def reminders(period: Period):
            async def _task(moment: datetime) -> None:
                await self.run_reminders(period, moment)
            return _task

        def period_sweep(period: Period):
            async def _task(moment: datetime) -> None:
                await self.run_period_sweep(period, moment)
            return _task

        async def continuous_sweep(moment: datetime) -> None:
            await self.run_scheduled_sweep(moment)

        scheduler.add_job("morning-reminders", scheduler_config.MORNING_REMINDER_CRON, reminders(Period.MORNING))
        scheduler.add_job("afternoon-reminders", scheduler_config.AFTERNOON_REMINDER_CRON, reminders(Period.AFTERNOON))
        scheduler.add_job("evening-reminders", scheduler_config.EVENING_REMINDER_CRON, reminders(Period.EVENING))

        scheduler.add_job("missed-dose-sweep", scheduler_config.CONTINUOUS_SWEEP_CRON, continuous_sweep)
        scheduler.add_job("morning-sweep", scheduler_config.MORNING_SWEEP_CRON, period_sweep(Period.MORNING))
        scheduler.add_job("afternoon-sweep", scheduler_config.AFTERNOON_SWEEP_CRON, period_sweep(Period.AFTERNOON))
        scheduler.add_job("evening-sweep", scheduler_config.EVENING_SWEEP_CRON, period_sweep(Period.EVENING))

        return scheduler

    async def startup_sweep(self, moment: datetime) -> None:
        await self.run_scheduled_sweep(moment, force=True)

    def start(self, scheduler: TaskScheduler) -> None:
        scheduler.start()
        scheduler.run_once_after(settings.SWEEP_STARTUP_DELAY_SECONDS, "startup-sweep", self.startup_sweep)
