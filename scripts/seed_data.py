#!/usr/bin/env python
"""
Seed Data
Script to seed the database with a doctor, patients and prescriptions for
development, and print access tokens to call the API with
"""

import sys
import os
import argparse
import logging
from datetime import date, timedelta
from typing import List

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database import SessionLocal, engine, Base, drop_db
from models import (
    Doctor, Patient, Prescription, PrescribedMedicine,
    AdherenceRecord, AdherenceStatus, Period, UserRole
)
from api.security import create_access_token


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


DEMO_DOCTOR_EMAIL = "dr.sharma@medadhere.local"

DEMO_PATIENTS = [
    {"name": "Asha Verma", "email": "asha@medadhere.local"},
    {"name": "Rohan Mehta", "email": "rohan@medadhere.local"},
]

DEMO_MEDICINES = [
    {
        "catalog_id": "MED001", "name": "Metformin", "dosage": "500mg",
        "duration": "1 month", "instructions": "Take with meals",
        "timing_morning": True, "timing_afternoon": False, "timing_evening": True,
    },
    {
        "catalog_id": "MED002", "name": "Amlodipine", "dosage": "5mg",
        "duration": "2 weeks", "instructions": "Take at the same time every day",
        "timing_morning": True, "timing_afternoon": False, "timing_evening": False,
    },
    {
        "catalog_id": "MED003", "name": "Amoxicillin", "dosage": "250mg",
        "duration": "7 days", "instructions": "Complete the full course",
        "timing_morning": True, "timing_afternoon": True, "timing_evening": True,
    },
]


def create_tables():
    """Create all database tables"""
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    logger.info("Tables created successfully")


def seed_doctor(db) -> Doctor:
    """Create the demo doctor"""
    existing = db.query(Doctor).filter(Doctor.email == DEMO_DOCTOR_EMAIL).first()
    if existing:
        logger.info("Demo doctor already exists")
        return existing

    doctor = Doctor(name="Dr. Priya Sharma", email=DEMO_DOCTOR_EMAIL, specialization="General Medicine")
    db.add(doctor)
    db.commit()
    db.refresh(doctor)
    logger.info(f"Created doctor: {doctor.name} (ID: {doctor.id})")
    return doctor


def seed_patients(db, doctor: Doctor) -> List[Patient]:
    """Create demo patients and assign them to the doctor"""
    patients = []
    for data in DEMO_PATIENTS:
        patient = db.query(Patient).filter(Patient.email == data["email"]).first()
        if not patient:
            patient = Patient(**data)
            db.add(patient)
            db.flush()
            logger.info(f"Created patient: {patient.name}")
        if patient not in doctor.patients:
            doctor.patients.append(patient)
        patients.append(patient)

    db.commit()
    return patients


def seed_prescription(db, doctor: Doctor, patient: Patient, started: date) -> Prescription:
    """Create a prescription with the demo medicines"""
    prescription = Prescription(
        patient_id=patient.id,
        doctor_id=doctor.id,
        date=started,
        condition="Hypertension and Type 2 Diabetes"
    )
    for med in DEMO_MEDICINES:
        prescription.medicines.append(PrescribedMedicine(**med))

    db.add(prescription)
    db.commit()
    db.refresh(prescription)
    logger.info(f"Created prescription {prescription.id} for {patient.name}")
    return prescription


def seed_history(db, patient: Patient, prescription: Prescription, days: int):
    """Record a few days of taken and missed doses"""
    today = date.today()
    count = 0
    for offset in range(days, 0, -1):
        day = today - timedelta(days=offset)
        for medicine in prescription.medicines:
            for period in (Period.MORNING, Period.AFTERNOON, Period.EVENING):
                if not medicine.is_due(period):
                    continue
                missed = (offset + medicine.id) % 4 == 0
                db.add(AdherenceRecord(
                    patient_id=patient.id,
                    prescription_id=prescription.id,
                    medicine_id=medicine.id,
                    medication=medicine.name,
                    scheduled_date=day,
                    scheduled_time=period.value,
                    status=(AdherenceStatus.MISSED if missed else AdherenceStatus.TAKEN).value,
                    missed_doses=1 if missed else 0,
                    reminder_sent=True
                ))
                count += 1
    db.commit()
    logger.info(f"Created {count} adherence records for {patient.name}")


def seed_all(clear_existing: bool = False, history_days: int = 5):
    """Seed all demo data"""
    if clear_existing:
        logger.warning("Clearing existing data...")
        drop_db()
    create_tables()

    db = SessionLocal()
    try:
        doctor = seed_doctor(db)
        patients = seed_patients(db, doctor)

        for patient in patients:
            if patient.prescriptions:
                logger.info(f"{patient.name} already has prescriptions")
                continue
            prescription = seed_prescription(db, doctor, patient, date.today() - timedelta(days=history_days))
            seed_history(db, patient, prescription, history_days)

        print("\n" + "=" * 50)
        print("SEED DATA SUMMARY")
        print("=" * 50)
        print(f"Doctor: {doctor.name} (ID: {doctor.id})")
        print(f"  token: {create_access_token(doctor.id, UserRole.DOCTOR)}")
        for patient in patients:
            print(f"Patient: {patient.name} (ID: {patient.id})")
            print(f"  token: {create_access_token(patient.id, UserRole.PATIENT)}")

    except Exception as e:
        db.rollback()
        logger.error(f"Error during seeding: {e}")
        raise
    finally:
        db.close()


def main():
    parser = argparse.ArgumentParser(
        description="Seed the database with demo doctors, patients and prescriptions"
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Clear existing data before seeding"
    )
    parser.add_argument(
        "--days",
        type=int,
        default=5,
        help="Days of adherence history to create"
    )

    args = parser.parse_args()

    seed_all(clear_existing=args.clear, history_days=args.days)


if __name__ == "__main__":
    main()
