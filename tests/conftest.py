"""
Pytest Configuration and Shared Fixtures
========================================

This module provides shared fixtures for all MedAdhere tests.
Fixtures include database sessions, test clients, sample data, and
collaborator fakes.
"""

import os
import sys
from datetime import datetime, date, timedelta
from typing import Generator, Dict, Any, List
from unittest.mock import AsyncMock

# The app under test uses an in-memory database and no background jobs
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("REMINDERS_ON_REQUEST", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import Base, create_db_engine, get_db
from models import (
    Patient, Doctor, Prescription, PrescribedMedicine, AdherenceRecord,
    AdherenceStatus, Period, UserRole
)
from api.deps import get_context
from api.security import create_access_token
from services.context import TrackerContext
from services.patient_service import CurrentUser
from services.reminder_service import ReminderGate
from tools.notification_bus import NotificationBus
from app import app


# ==================== DATABASE FIXTURES ====================

@pytest.fixture(scope="function")
def test_engine():
    """Create a test database engine with in-memory SQLite"""
    engine = create_db_engine("sqlite:///:memory:")

    # Create all tables
    Base.metadata.create_all(bind=engine)

    yield engine

    # Cleanup
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=test_engine
    )


@pytest.fixture(scope="function")
def db_session(session_factory) -> Generator[Session, None, None]:
    """Create a test database session"""
    session = session_factory()

    try:
        yield session
    finally:
        session.rollback()
        session.close()


# ==================== COLLABORATOR FIXTURES ====================

@pytest.fixture
def mock_email_service():
    """Email collaborator that always reports success"""
    email = AsyncMock()
    email.send_reminder_email = AsyncMock(return_value=True)
    return email


@pytest.fixture
def notification_bus() -> NotificationBus:
    return NotificationBus()


@pytest.fixture
def frozen_now() -> datetime:
    """A fixed afternoon moment used by the tracker context clock"""
    return datetime.combine(date.today(), datetime.min.time()).replace(hour=14, minute=10)


@pytest.fixture
def tracker_context(session_factory, notification_bus, mock_email_service, frozen_now) -> TrackerContext:
    """TrackerContext wired to the test database and fake collaborators"""
    return TrackerContext(
        session_factory=session_factory,
        bus=notification_bus,
        email=mock_email_service,
        gate=ReminderGate(cooldown_seconds=240),
        clock=lambda: frozen_now
    )


@pytest.fixture(scope="function")
def client(db_session: Session, tracker_context: TrackerContext) -> Generator[TestClient, None, None]:
    """Create a FastAPI test client with database and context overrides"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_context] = lambda: tracker_context
    app.state.context = tracker_context

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


# ==================== SAMPLE DATA FIXTURES ====================

@pytest.fixture
def test_doctor(db_session: Session) -> Doctor:
    """Create and return a test doctor"""
    doctor = Doctor(name="Dr. Meera Iyer", email="meera.iyer@example.com", specialization="Cardiology")
    db_session.add(doctor)
    db_session.commit()
    db_session.refresh(doctor)
    return doctor


@pytest.fixture
def other_doctor(db_session: Session) -> Doctor:
    """A doctor with no assigned patients"""
    doctor = Doctor(name="Dr. Karan Shah", email="karan.shah@example.com")
    db_session.add(doctor)
    db_session.commit()
    db_session.refresh(doctor)
    return doctor


@pytest.fixture
def test_patient(db_session: Session, test_doctor: Doctor) -> Patient:
    """Create a test patient assigned to the test doctor"""
    patient = Patient(name="Anita Rao", email="anita.rao@example.com")
    db_session.add(patient)
    test_doctor.patients.append(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def other_patient(db_session: Session) -> Patient:
    """A patient not assigned to any doctor"""
    patient = Patient(name="Vikram Das", email="vikram.das@example.com")
    db_session.add(patient)
    db_session.commit()
    db_session.refresh(patient)
    return patient


@pytest.fixture
def sample_medicines_data() -> List[Dict[str, Any]]:
    """Medicine lines for a prescription"""
    return [
        {
            "catalog_id": "MED001", "name": "Metformin", "dosage": "500mg",
            "duration": "1 month", "instructions": "Take with meals",
            "timing_morning": True, "timing_afternoon": False, "timing_evening": True,
        },
        {
            "catalog_id": "MED002", "name": "Amlodipine", "dosage": "5mg",
            "duration": "2 weeks", "instructions": None,
            "timing_morning": False, "timing_afternoon": True, "timing_evening": False,
        },
    ]


@pytest.fixture
def test_prescription(
    db_session: Session,
    test_patient: Patient,
    test_doctor: Doctor,
    sample_medicines_data: List[Dict[str, Any]]
) -> Prescription:
    """Create a prescription dated today with two medicines"""
    prescription = Prescription(
        patient_id=test_patient.id,
        doctor_id=test_doctor.id,
        date=date.today(),
        condition="Hypertension"
    )
    for data in sample_medicines_data:
        prescription.medicines.append(PrescribedMedicine(**data))
    db_session.add(prescription)
    db_session.commit()
    db_session.refresh(prescription)
    return prescription


@pytest.fixture
def metformin(test_prescription: Prescription) -> PrescribedMedicine:
    return test_prescription.medicines[0]


@pytest.fixture
def amlodipine(test_prescription: Prescription) -> PrescribedMedicine:
    return test_prescription.medicines[1]


def make_record(
    db_session: Session,
    patient: Patient,
    medicine: PrescribedMedicine,
    period: Period,
    status: AdherenceStatus = AdherenceStatus.PENDING,
    on_date: date = None,
    **kwargs
) -> AdherenceRecord:
    """Persist a ledger entry for a medicine dose"""
    record = AdherenceRecord(
        patient_id=patient.id,
        prescription_id=medicine.prescription_id,
        medicine_id=medicine.id,
        medication=medicine.name,
        scheduled_date=on_date or date.today(),
        scheduled_time=period.value,
        status=status.value,
        missed_doses=kwargs.pop("missed_doses", 1 if status == AdherenceStatus.MISSED else 0),
        **kwargs
    )
    db_session.add(record)
    db_session.commit()
    db_session.refresh(record)
    return record


@pytest.fixture
def record_factory(db_session: Session):
    """Factory for ledger entries"""
    def _make(patient, medicine, period, status=AdherenceStatus.PENDING, on_date=None, **kwargs):
        return make_record(db_session, patient, medicine, period, status, on_date, **kwargs)
    return _make


# ==================== AUTH FIXTURES ====================

@pytest.fixture
def patient_user(test_patient: Patient) -> CurrentUser:
    return CurrentUser(id=test_patient.id, role=UserRole.PATIENT)


@pytest.fixture
def doctor_user(test_doctor: Doctor) -> CurrentUser:
    return CurrentUser(id=test_doctor.id, role=UserRole.DOCTOR)


@pytest.fixture
def patient_headers(test_patient: Patient) -> Dict[str, str]:
    token = create_access_token(test_patient.id, UserRole.PATIENT)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def doctor_headers(test_doctor: Doctor) -> Dict[str, str]:
    token = create_access_token(test_doctor.id, UserRole.DOCTOR)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_doctor_headers(other_doctor: Doctor) -> Dict[str, str]:
    token = create_access_token(other_doctor.id, UserRole.DOCTOR)
    return {"Authorization": f"Bearer {token}"}


# ==================== UTILITY FIXTURES ====================

@pytest.fixture
def today() -> date:
    return date.today()


@pytest.fixture
def yesterday() -> date:
    return date.today() - timedelta(days=1)


# ==================== MARKERS ====================

def pytest_configure(config):
    """Register custom markers"""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "integration: mark test as an integration test")
    config.addinivalue_line("markers", "api: mark test as an API test")
