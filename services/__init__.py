"""
Services Module
Business logic layer for the MedAdhere application
"""

from services.patient_service import CurrentUser, PatientService, patient_service
from services.schedule_service import ExpectedDose, ScheduleService, schedule_service
from services.adherence_service import AdherenceService, adherence_service
from services.prescription_service import PrescriptionService, prescription_service
from services.sweeper_service import SweepResult, SweeperService, sweeper_service
from services.reminder_service import ReminderGate, ReminderRunResult, ReminderService, reminder_service
from services.context import TrackerContext


__all__ = [
    # Service classes
    "PatientService",
    "ScheduleService",
    "AdherenceService",
    "PrescriptionService",
    "SweeperService",
    "ReminderService",
    # Singleton instances
    "patient_service",
    "schedule_service",
    "adherence_service",
    "prescription_service",
    "sweeper_service",
    "reminder_service",
    # Supporting types
    "CurrentUser",
    "ExpectedDose",
    "SweepResult",
    "ReminderGate",
    "ReminderRunResult",
    "TrackerContext",
]
