"""
Database Models
SQLAlchemy ORM models for MedAdhere
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, Date, Table, Index, UniqueConstraint, text
from sqlalchemy.orm import relationship
from datetime import datetime, date
from enum import Enum as PyEnum

from config import TableNames
from database import Base


# ==================== ENUMS ====================

class Period(str, PyEnum):
    """Fixed daily dose windows, in chronological order"""
    MORNING = "morning"
    AFTERNOON = "afternoon"
    EVENING = "evening"


class AdherenceStatus(str, PyEnum):
    """Status of a scheduled medication dose"""
    PENDING = "pending"
    TAKEN = "taken"
    MISSED = "missed"


class UserRole(str, PyEnum):
    """Roles carried in access tokens"""
    PATIENT = "patient"
    DOCTOR = "doctor"


# ==================== MODELS ====================

doctor_patients = Table(
    TableNames.DOCTOR_PATIENTS,
    Base.metadata,
    Column("doctor_id", Integer, ForeignKey("doctors.id", ondelete="CASCADE"), primary_key=True),
    Column("patient_id", Integer, ForeignKey("patients.id", ondelete="CASCADE"), primary_key=True),
)


class Patient(Base):
    """Patient who receives prescriptions"""
    __tablename__ = TableNames.PATIENTS

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    doctors = relationship("Doctor", secondary=doctor_patients, back_populates="patients")
    prescriptions = relationship("Prescription", back_populates="patient", cascade="all, delete-orphan")
    adherence_records = relationship("AdherenceRecord", back_populates="patient", cascade="all, delete-orphan")


class Doctor(Base):
    """Doctor who prescribes to assigned patients"""
    __tablename__ = TableNames.DOCTORS

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    specialization = Column(String(200))
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    patients = relationship("Patient", secondary=doctor_patients, back_populates="doctors")
    prescriptions = relationship("Prescription", back_populates="doctor")


class Prescription(Base):
    """A doctor's prescription for one patient"""
    __tablename__ = TableNames.PRESCRIPTIONS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)

    date = Column(Date, nullable=False, default=date.today)
    condition = Column(String(255), default="General")

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="prescriptions")
    doctor = relationship("Doctor", back_populates="prescriptions")
    medicines = relationship(
        "PrescribedMedicine",
        back_populates="prescription",
        cascade="all, delete-orphan",
        order_by="PrescribedMedicine.id"
    )

    __table_args__ = (
        Index("ix_prescriptions_patient", "patient_id"),
    )


class PrescribedMedicine(Base):
    """One medicine line of a prescription with its daily timing"""
    __tablename__ = TableNames.PRESCRIBED_MEDICINES

    id = Column(Integer, primary_key=True, index=True)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id", ondelete="CASCADE"), nullable=False)

    # Catalog reference chosen by the doctor, if any
    catalog_id = Column(String(50))

    name = Column(String(255), nullable=False)
    dosage = Column(String(100), nullable=False)
    duration = Column(String(50))  # "7 days", "2 weeks", "1 month"
    instructions = Column(Text)

    # Timing set
    timing_morning = Column(Boolean, nullable=False, default=False)
    timing_afternoon = Column(Boolean, nullable=False, default=False)
    timing_evening = Column(Boolean, nullable=False, default=False)

    # Relationships
    prescription = relationship("Prescription", back_populates="medicines")

    @property
    def timing(self) -> dict:
        return {
            Period.MORNING.value: bool(self.timing_morning),
            Period.AFTERNOON.value: bool(self.timing_afternoon),
            Period.EVENING.value: bool(self.timing_evening),
        }

    def is_due(self, period: Period) -> bool:
        return self.timing[Period(period).value]


class AdherenceRecord(Base):
    """Ledger entry: one dose of one medicine for one period of one day"""
    __tablename__ = TableNames.ADHERENCE_RECORDS

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    prescription_id = Column(Integer, ForeignKey("prescriptions.id", ondelete="CASCADE"))
    medicine_id = Column(Integer, ForeignKey("prescribed_medicines.id", ondelete="CASCADE"))

    medication = Column(String(255))  # label shown to the patient

    scheduled_date = Column(Date, nullable=False)
    scheduled_time = Column(String(20), nullable=False)  # Period value

    status = Column(String(20), nullable=False, default=AdherenceStatus.PENDING.value)
    missed_doses = Column(Integer, nullable=False, default=0)
    reminder_sent = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    patient = relationship("Patient", back_populates="adherence_records")
    prescription = relationship("Prescription")
    medicine = relationship("PrescribedMedicine")

    __table_args__ = (
        UniqueConstraint(
            "patient_id", "medicine_id", "scheduled_date", "scheduled_time",
            name="uq_adherence_dose"
        ),
        # Free-text doses have no medicine id, so NULLs would slip past the constraint above
        Index(
            "uq_adherence_label_dose",
            "patient_id", "medication", "scheduled_date", "scheduled_time",
            unique=True,
            sqlite_where=text("medicine_id IS NULL"),
            postgresql_where=text("medicine_id IS NULL")
        ),
        Index("ix_adherence_patient_date", "patient_id", "scheduled_date"),
        Index("ix_adherence_sweep", "scheduled_date", "status", "scheduled_time"),
    )
