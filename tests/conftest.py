"""
Pytest configuration for the booking API tests
"""

import os
from datetime import datetime, timedelta

import pytest

# Point the app at an in-memory database and disable outbound integrations
# BEFORE importing any app modules
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
for var in ("RESEND_API_KEY", "GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET", "GOOGLE_REFRESH_TOKEN"):
    os.environ.pop(var, None)

from fastapi.testclient import TestClient  # noqa: E402

from app.database import Base, SessionLocal, engine, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models import (  # noqa: E402
    Appointment,
    AppointmentStatus,
    Doctor,
    Patient,
    Schedule,
    Service,
    Slot,
)
from app.shared.time_utils import add_minutes, utcnow  # noqa: E402


@pytest.fixture
def future_day():
    """A date far enough ahead that every slot on it is bookable"""
    return utcnow().date() + timedelta(days=7)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """Create test client with overridden database"""

    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def make_patient(db_session):
    counter = {"n": 0}

    def _make(is_active=True, has_completed_medical_form=True, email=None):
        counter["n"] += 1
        patient = Patient(
            first_name="Pat",
            last_name=f"Ient{counter['n']}",
            email=email or f"patient{counter['n']}@example.com",
            is_active=is_active,
            has_completed_medical_form=has_completed_medical_form,
        )
        db_session.add(patient)
        db_session.commit()
        db_session.refresh(patient)
        return patient

    return _make


@pytest.fixture
def make_doctor(db_session):
    counter = {"n": 0}

    def _make(is_active=True, is_available=True, first_name="Gregory"):
        counter["n"] += 1
        doctor = Doctor(
            first_name=first_name,
            last_name=f"House{counter['n']}",
            email=f"doctor{counter['n']}@clinic.local",
            specialization="Family Medicine",
            is_active=is_active,
            is_available=is_available,
        )
        db_session.add(doctor)
        db_session.commit()
        db_session.refresh(doctor)
        return doctor

    return _make


@pytest.fixture
def make_service(db_session):
    def _make(duration=30, is_active=True, name="Consultation", price=100.0):
        service = Service(name=name, duration=duration, price=price, is_active=is_active)
        db_session.add(service)
        db_session.commit()
        db_session.refresh(service)
        return service

    return _make


@pytest.fixture
def make_slot(db_session):
    """Create a slot (and its doctor/date schedule if missing)"""

    def _make(doctor, day, start="09:00", end=None, duration=30, is_available=True):
        end = end or add_minutes(start, duration)
        schedule = (
            db_session.query(Schedule)
            .filter(Schedule.doctor_id == doctor.id, Schedule.date == day)
            .first()
        )
        if not schedule:
            schedule = Schedule(doctor_id=doctor.id, date=day, start_time="00:00", end_time="23:59")
            db_session.add(schedule)
            db_session.flush()
        slot = Slot(schedule_id=schedule.id, start_time=start, end_time=end, is_available=is_available)
        db_session.add(slot)
        db_session.commit()
        db_session.refresh(slot)
        return slot

    return _make


@pytest.fixture
def make_appointment(db_session):
    """Insert an appointment row directly, holding its slot when it has one"""

    def _make(patient, service, doctor=None, slot=None, when=None, status=AppointmentStatus.CONFIRMED, **fields):
        if when is None:
            day = slot.schedule.date
            time = slot.start_time
        else:
            day = when.date()
            time = when.strftime("%H:%M")
        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=doctor.id if doctor else None,
            service_id=service.id,
            slot_id=slot.id if slot else None,
            appointment_date=day,
            appointment_time=time,
            duration=service.duration,
            status=status.value,
            amount=service.price,
            **fields,
        )
        db_session.add(appointment)
        if slot is not None:
            slot.is_available = False
        db_session.commit()
        db_session.refresh(appointment)
        return appointment

    return _make


@pytest.fixture
def at_offset():
    """Aware UTC datetime relative to now"""

    def _at(**delta) -> datetime:
        return utcnow() + timedelta(**delta)

    return _at
