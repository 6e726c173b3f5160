"""
Tests for Reminder Service
Tests reminder dispatch, ledger seeding and the per-period cooldown
"""

import pytest
from datetime import datetime, date, timedelta
from unittest.mock import AsyncMock

from models import AdherenceRecord, AdherenceStatus, Period, Prescription, PrescribedMedicine
from exceptions import ValidationError
from services.reminder_service import ReminderGate, ReminderService


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def reminder_service():
    """Create reminder service instance"""
    return ReminderService()


@pytest.fixture
def second_prescription(db_session, other_patient, test_doctor):
    """Morning vitamin for the unassigned patient"""
    prescription = Prescription(patient_id=other_patient.id, doctor_id=test_doctor.id, date=date.today())
    prescription.medicines.append(PrescribedMedicine(
        name="Vitamin D3", dosage="1000 IU", duration="3 months",
        timing_morning=True, timing_afternoon=False, timing_evening=False
    ))
    db_session.add(prescription)
    db_session.commit()
    return prescription


def ledger(db_session, patient_id):
    db_session.expire_all()
    return db_session.query(AdherenceRecord).filter(AdherenceRecord.patient_id == patient_id).all()


# =============================================================================
# Dispatch Tests
# =============================================================================

class TestSendReminders:

    @pytest.mark.asyncio
    async def test_due_medicine_emailed_and_seeded(
        self, reminder_service, db_session, test_patient, metformin, mock_email_service
    ):
        result = await reminder_service.send_reminders("morning", date.today(), email=mock_email_service, db=db_session)

        assert result.emails_sent == 1
        assert result.records_created == 1
        assert result.failed_patients == []

        to, name, medicines, period = mock_email_service.send_reminder_email.await_args.args
        assert to == "anita.rao@example.com"
        assert name == "Anita Rao"
        assert [m.name for m in medicines] == ["Metformin"]
        assert medicines[0].instructions == "Take with meals"
        assert period == "morning"

        records = ledger(db_session, test_patient.id)
        assert len(records) == 1
        assert records[0].medicine_id == metformin.id
        assert records[0].status == "pending"
        assert records[0].reminder_sent is True
        assert records[0].missed_doses == 0

    @pytest.mark.asyncio
    async def test_taken_medicine_not_reminded_again(
        self, reminder_service, db_session, test_patient, metformin, mock_email_service
    ):
        await reminder_service.send_reminders("morning", date.today(), email=mock_email_service, db=db_session)
        record = ledger(db_session, test_patient.id)[0]
        record.status = AdherenceStatus.TAKEN.value
        db_session.commit()
        mock_email_service.send_reminder_email.reset_mock()

        result = await reminder_service.send_reminders("morning", date.today(), email=mock_email_service, db=db_session)

        assert result.emails_sent == 0
        assert result.records_created == 0
        assert result.records_updated == 0
        mock_email_service.send_reminder_email.assert_not_awaited()
        assert len(ledger(db_session, test_patient.id)) == 1

    @pytest.mark.asyncio
    async def test_repeat_run_updates_existing_record(
        self, reminder_service, db_session, test_patient, metformin, mock_email_service
    ):
        await reminder_service.send_reminders("morning", date.today(), email=mock_email_service, db=db_session)
        result = await reminder_service.send_reminders("morning", date.today(), email=mock_email_service, db=db_session)

        assert result.emails_sent == 1
        assert result.records_created == 0
        assert result.records_updated == 1
        assert len(ledger(db_session, test_patient.id)) == 1

    @pytest.mark.asyncio
    async def test_period_selects_medicines(
        self, reminder_service, db_session, test_patient, amlodipine, mock_email_service
    ):
        result = await reminder_service.send_reminders("Afternoon", email=mock_email_service, db=db_session)

        medicines = mock_email_service.send_reminder_email.await_args.args[2]
        assert result.period == Period.AFTERNOON
        assert [m.name for m in medicines] == ["Amlodipine"]
        assert ledger(db_session, test_patient.id)[0].scheduled_time == "afternoon"

    @pytest.mark.asyncio
    async def test_failed_email_not_seeded(
        self, reminder_service, db_session, test_patient, test_prescription, mock_email_service
    ):
        mock_email_service.send_reminder_email = AsyncMock(return_value=False)

        result = await reminder_service.send_reminders("evening", email=mock_email_service, db=db_session)

        assert result.emails_sent == 0
        assert result.failed_patients == [test_patient.id]
        assert ledger(db_session, test_patient.id) == []

    @pytest.mark.asyncio
    async def test_one_patient_failure_isolated(
        self, reminder_service, db_session, test_patient, other_patient, test_prescription,
        second_prescription, mock_email_service
    ):
        async def send(to, name, medicines, period):
            if to == test_patient.email:
                raise RuntimeError("mailbox unavailable")
            return True

        mock_email_service.send_reminder_email = AsyncMock(side_effect=send)

        result = await reminder_service.send_reminders("morning", email=mock_email_service, db=db_session)

        assert result.failed_patients == [test_patient.id]
        assert result.emails_sent == 1
        assert [r.medication for r in ledger(db_session, other_patient.id)] == ["Vitamin D3"]

    @pytest.mark.asyncio
    async def test_expired_medicine_not_reminded(
        self, reminder_service, db_session, test_patient, test_prescription, mock_email_service
    ):
        # Amlodipine runs for two weeks from today
        later = date.today() + timedelta(days=15)

        result = await reminder_service.send_reminders("afternoon", later, email=mock_email_service, db=db_session)

        assert result.emails_sent == 0
        mock_email_service.send_reminder_email.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_prescriptions_no_emails(self, reminder_service, db_session, test_patient, mock_email_service):
        result = await reminder_service.send_reminders("morning", email=mock_email_service, db=db_session)
        assert result.to_dict()["emails_sent"] == 0

    @pytest.mark.asyncio
    async def test_invalid_period(self, reminder_service, db_session, mock_email_service):
        with pytest.raises(ValidationError):
            await reminder_service.send_reminders("night", email=mock_email_service, db=db_session)


# =============================================================================
# Cooldown Tests
# =============================================================================

class TestReminderGate:

    @pytest.mark.unit
    def test_cooldown_window(self):
        gate = ReminderGate(cooldown_seconds=240)
        start = datetime(2024, 6, 1, 8, 0)

        assert gate.try_acquire(Period.MORNING, start)
        assert not gate.try_acquire(Period.MORNING, start + timedelta(seconds=239))
        assert gate.try_acquire(Period.MORNING, start + timedelta(seconds=240))
        assert gate.last_sent(Period.MORNING) == start + timedelta(seconds=240)

    @pytest.mark.unit
    def test_periods_independent(self):
        gate = ReminderGate(cooldown_seconds=240)
        now = datetime(2024, 6, 1, 12, 0)

        assert gate.try_acquire(Period.MORNING, now)
        assert gate.try_acquire(Period.AFTERNOON, now)

    @pytest.mark.unit
    def test_reset(self):
        gate = ReminderGate(cooldown_seconds=240)
        now = datetime(2024, 6, 1, 12, 0)
        gate.try_acquire(Period.AFTERNOON, now)

        gate.reset()

        assert gate.last_sent(Period.AFTERNOON) is None
        assert gate.try_acquire(Period.AFTERNOON, now)
