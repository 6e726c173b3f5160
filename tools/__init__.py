"""
Tools Package
Scheduling primitives and delivery collaborators for MedAdhere
"""

from .periods import (
    PERIOD_ORDER,
    period_for,
    previous_periods,
    missable_periods,
    sweep_periods_for_hour,
    is_sweep_checkpoint,
    dose_day,
    parse_period
)

from .duration import (
    Duration,
    DurationUnit,
    parse_duration,
    end_date,
    is_active
)

from .task_scheduler import (
    TaskScheduler,
    ScheduledJob,
    crontab_matches
)

from .notification_bus import (
    NotificationBus,
    NotificationEvent,
    NotificationResult
)

from .email_service import (
    EmailService,
    ReminderMedicine,
    email_service
)

__all__ = [
    # Periods
    "PERIOD_ORDER",
    "period_for",
    "previous_periods",
    "missable_periods",
    "sweep_periods_for_hour",
    "is_sweep_checkpoint",
    "dose_day",
    "parse_period",

    # Duration
    "Duration",
    "DurationUnit",
    "parse_duration",
    "end_date",
    "is_active",

    # Task Scheduler
    "TaskScheduler",
    "ScheduledJob",
    "crontab_matches",

    # Notification Bus
    "NotificationBus",
    "NotificationEvent",
    "NotificationResult",

    # Email
    "EmailService",
    "ReminderMedicine",
    "email_service"
]
