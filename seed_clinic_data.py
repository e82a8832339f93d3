#!/usr/bin/env python3
"""
Script to seed doctors, services, a demo patient and a day of slots

Usage: python seed_clinic_data.py [YYYY-MM-DD]
"""

import sys
from datetime import timedelta

from app import models  # noqa: F401
from app.database import Base, SessionLocal, engine
from app.domain.scheduling.service import SchedulingService
from app.exceptions import ConflictError
from app.models import Doctor, Patient, Service
from app.shared.time_utils import utcnow
from app.shared.validators import validate_date, validate_email

DOCTORS = [
    ("Sarah", "Johnson", "sarah.johnson@clinic.local", "Family Medicine"),
    ("Michael", "Chen", "michael.chen@clinic.local", "Internal Medicine"),
    ("Emily", "Rodriguez", "emily.rodriguez@clinic.local", "Psychiatry"),
]

SERVICES = [
    ("Initial Consultation", 30, 120.0),
    ("Follow-up Visit", 15, 60.0),
    ("Extended Assessment", 60, 220.0),
]


def seed(day):
    Base.metadata.create_all(bind=engine, checkfirst=True)
    db = SessionLocal()

    try:
        print(f"🔍 Seeding clinic data for {day}...\n")

        doctors = []
        for first, last, email, specialization in DOCTORS:
            email = validate_email(email)
            doctor = db.query(Doctor).filter(Doctor.email == email).first()
            if not doctor:
                doctor = Doctor(first_name=first, last_name=last, email=email, specialization=specialization)
                db.add(doctor)
                print(f"➕ Doctor {doctor.display_name}")
            doctors.append(doctor)

        for name, duration, price in SERVICES:
            if not db.query(Service).filter(Service.name == name).first():
                db.add(Service(name=name, duration=duration, price=price))
                print(f"➕ Service {name} ({duration} min)")

        patient_email = validate_email("demo.patient@example.com")
        if not db.query(Patient).filter(Patient.email == patient_email).first():
            db.add(
                Patient(
                    first_name="Demo",
                    last_name="Patient",
                    email=patient_email,
                    has_completed_medical_form=True,
                )
            )
            print("➕ Demo patient")

        db.commit()

        scheduling = SchedulingService(db)
        for doctor in doctors:
            try:
                schedule = scheduling.create_schedule(doctor.id, day, "09:00", "17:00")
            except ConflictError:
                print(f"⏭️  {doctor.display_name} already has a schedule on {day}")
                continue
            slots = scheduling.generate_slots(schedule.id, slot_duration=30)
            print(f"📅 {doctor.display_name}: {len(slots)} slots")

        print("\n✅ Seeding complete")

    except Exception as e:
        db.rollback()
        print(f"❌ Seeding failed: {e}")
        raise
    finally:
        db.close()


if __name__ == "__main__":
    target = validate_date(sys.argv[1]) if len(sys.argv) > 1 else utcnow().date() + timedelta(days=1)
    seed(target)
