"""
Tests for Prescription Service
Tests prescription creation rules, listing and cascading deletion
"""

import pytest
from datetime import date

from models import AdherenceRecord, AdherenceStatus, Period, PrescribedMedicine, Prescription, UserRole
from exceptions import AuthorizationError, NotFoundError, ValidationError
from services.patient_service import CurrentUser
from services.prescription_service import PrescriptionService


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def prescription_service():
    """Create prescription service instance"""
    return PrescriptionService()


@pytest.fixture
def medicines_payload():
    return [
        {
            "id": "MED001", "name": "Metformin", "dosage": "500mg", "duration": "1 month",
            "instructions": "Take with meals", "timing": {"morning": True, "afternoon": False, "evening": True},
        },
        {
            "id": 42, "name": "Atorvastatin", "dosage": "10mg",
            "timing": {"evening": True},
        },
    ]


# =============================================================================
# Create Tests
# =============================================================================

class TestCreatePrescription:

    @pytest.mark.asyncio
    async def test_create(self, prescription_service, db_session, doctor_user, test_patient, medicines_payload):
        prescription = await prescription_service.create_prescription(
            doctor_user, test_patient.id, medicines_payload, condition="Type 2 Diabetes", db=db_session
        )

        assert prescription.id is not None
        assert prescription.doctor_id == doctor_user.id
        assert prescription.date == date.today()
        assert prescription.condition == "Type 2 Diabetes"

        metformin, atorvastatin = prescription.medicines
        assert metformin.catalog_id == "MED001"
        assert metformin.timing == {"morning": True, "afternoon": False, "evening": True}
        assert atorvastatin.catalog_id == "42"
        assert atorvastatin.duration is None
        assert atorvastatin.timing == {"morning": False, "afternoon": False, "evening": True}

    @pytest.mark.asyncio
    async def test_condition_defaults_to_general(
        self, prescription_service, db_session, doctor_user, test_patient, medicines_payload
    ):
        prescription = await prescription_service.create_prescription(
            doctor_user, test_patient.id, medicines_payload, db=db_session
        )
        assert prescription.condition == "General"

    @pytest.mark.asyncio
    async def test_requires_medicines(self, prescription_service, db_session, doctor_user, test_patient):
        with pytest.raises(ValidationError) as exc:
            await prescription_service.create_prescription(doctor_user, test_patient.id, [], db=db_session)
        assert exc.value.message == "At least one medicine is required"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("missing", ["name", "dosage", "timing"])
    async def test_medicine_fields_required(
        self, prescription_service, db_session, doctor_user, test_patient, medicines_payload, missing
    ):
        del medicines_payload[0][missing]

        with pytest.raises(ValidationError):
            await prescription_service.create_prescription(
                doctor_user, test_patient.id, medicines_payload, db=db_session
            )
        assert db_session.query(Prescription).count() == 0

    @pytest.mark.asyncio
    async def test_patient_cannot_prescribe(self, prescription_service, db_session, patient_user, medicines_payload):
        with pytest.raises(AuthorizationError):
            await prescription_service.create_prescription(
                patient_user, patient_user.id, medicines_payload, db=db_session
            )

    @pytest.mark.asyncio
    async def test_unassigned_patient(
        self, prescription_service, db_session, doctor_user, other_patient, medicines_payload
    ):
        with pytest.raises(AuthorizationError) as exc:
            await prescription_service.create_prescription(
                doctor_user, other_patient.id, medicines_payload, db=db_session
            )
        assert exc.value.message == "This patient is not assigned to you"

    @pytest.mark.asyncio
    async def test_unknown_patient(self, prescription_service, db_session, doctor_user, medicines_payload):
        with pytest.raises(NotFoundError):
            await prescription_service.create_prescription(doctor_user, 9999, medicines_payload, db=db_session)


# =============================================================================
# List Tests
# =============================================================================

class TestGetPatientPrescriptions:

    @pytest.mark.asyncio
    async def test_newest_first(
        self, prescription_service, db_session, doctor_user, test_patient, test_prescription, medicines_payload
    ):
        newer = await prescription_service.create_prescription(
            doctor_user, test_patient.id, medicines_payload, db=db_session
        )

        prescriptions = await prescription_service.get_patient_prescriptions(
            doctor_user, test_patient.id, db=db_session
        )

        assert [p.id for p in prescriptions] == [newer.id, test_prescription.id]

    @pytest.mark.asyncio
    async def test_patient_sees_own(self, prescription_service, db_session, patient_user, test_prescription):
        prescriptions = await prescription_service.get_patient_prescriptions(
            patient_user, patient_user.id, db=db_session
        )
        assert len(prescriptions) == 1

    @pytest.mark.asyncio
    async def test_other_patient_forbidden(
        self, prescription_service, db_session, other_patient, test_patient, test_prescription
    ):
        actor = CurrentUser(id=other_patient.id, role=UserRole.PATIENT)
        with pytest.raises(AuthorizationError):
            await prescription_service.get_patient_prescriptions(actor, test_patient.id, db=db_session)


# =============================================================================
# Delete Tests
# =============================================================================

class TestDeletePrescription:

    @pytest.mark.asyncio
    async def test_cascades_to_medicines_and_records(
        self, prescription_service, db_session, doctor_user, test_patient, test_prescription,
        metformin, amlodipine, record_factory
    ):
        record_factory(test_patient, metformin, Period.MORNING, AdherenceStatus.TAKEN)
        record_factory(test_patient, amlodipine, Period.AFTERNOON)
        # Free-text entry unrelated to the prescription
        db_session.add(AdherenceRecord(
            patient_id=test_patient.id, medication="Vitamin D",
            scheduled_date=date.today(), scheduled_time="morning", status="taken"
        ))
        db_session.commit()
        prescription_id = test_prescription.id

        result = await prescription_service.delete_prescription(doctor_user, prescription_id, db=db_session)

        db_session.expire_all()
        assert result == {"prescription_id": prescription_id, "medicines_deleted": 2, "records_deleted": 2}
        assert db_session.get(Prescription, prescription_id) is None
        assert db_session.query(PrescribedMedicine).count() == 0
        assert [r.medication for r in db_session.query(AdherenceRecord).all()] == ["Vitamin D"]

    @pytest.mark.asyncio
    async def test_unknown_prescription(self, prescription_service, db_session, doctor_user):
        with pytest.raises(NotFoundError):
            await prescription_service.delete_prescription(doctor_user, 9999, db=db_session)

    @pytest.mark.asyncio
    async def test_unassigned_doctor(self, prescription_service, db_session, other_doctor, test_prescription):
        actor = CurrentUser(id=other_doctor.id, role=UserRole.DOCTOR)
        with pytest.raises(AuthorizationError):
            await prescription_service.delete_prescription(actor, test_prescription.id, db=db_session)
        assert db_session.get(Prescription, test_prescription.id) is not None

    @pytest.mark.asyncio
    async def test_patient_cannot_delete(self, prescription_service, db_session, patient_user, test_prescription):
        with pytest.raises(AuthorizationError):
            await prescription_service.delete_prescription(patient_user, test_prescription.id, db=db_session)
