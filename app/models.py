import enum
from dataclasses import dataclass
from typing import Optional, Union

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class AppointmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"
    RESCHEDULED = "RESCHEDULED"


# Statuses that hold a doctor's time and a slot
ACTIVE_STATUSES = (
    AppointmentStatus.PENDING.value,
    AppointmentStatus.CONFIRMED.value,
    AppointmentStatus.IN_PROGRESS.value,
)


@dataclass(frozen=True)
class Assigned:
    doctor_id: int
    slot_id: Optional[int]


@dataclass(frozen=True)
class Unassigned:
    selected_slot_time: Optional[str]


Assignment = Union[Assigned, Unassigned]


class Patient(Base):
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    # Medical intake must be completed before booking through the regular path
    has_completed_medical_form = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    appointments = relationship("Appointment", back_populates="patient")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Doctor(Base):
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    specialization = Column(String(255), nullable=True)
    license_number = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    is_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    schedules = relationship("Schedule", back_populates="doctor", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="doctor")

    @property
    def display_name(self) -> str:
        return f"Dr. {self.first_name} {self.last_name}"


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    duration = Column(Integer, nullable=False)  # minutes
    price = Column(Float, default=0, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class Schedule(Base):
    """A doctor's working window for a single date; parent of its slots"""

    __tablename__ = "schedules"

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)  # HH:MM UTC
    end_time = Column(String(5), nullable=False)  # HH:MM UTC
    max_appointments = Column(Integer, nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    doctor = relationship("Doctor", back_populates="schedules")
    slots = relationship(
        "Slot",
        back_populates="schedule",
        cascade="all, delete-orphan",
        order_by="Slot.start_time",
    )


class Slot(Base):
    __tablename__ = "slots"

    id = Column(Integer, primary_key=True, index=True)
    schedule_id = Column(Integer, ForeignKey("schedules.id"), nullable=False, index=True)
    start_time = Column(String(5), nullable=False)  # HH:MM UTC
    end_time = Column(String(5), nullable=False)  # HH:MM UTC
    # Single source of truth for bookability; only flipped inside booking transactions
    is_available = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    schedule = relationship("Schedule", back_populates="slots")
    appointments = relationship("Appointment", back_populates="slot")


class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=True, index=True)  # null = unassigned
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    primary_service_id = Column(Integer, nullable=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=True, index=True)

    # Scheduling
    appointment_date = Column(Date, nullable=False, index=True)
    appointment_time = Column(String(5), nullable=False)  # HH:MM UTC
    selected_slot_time = Column(String(5), nullable=True)  # desired time while unassigned
    duration = Column(Integer, nullable=False)  # minutes, primary + additional services
    additional_services = Column(JSON, nullable=True)  # [{id, name, duration}]

    # Status workflow: PENDING → CONFIRMED → IN_PROGRESS → COMPLETED
    # PENDING/CONFIRMED/IN_PROGRESS → CANCELLED, CONFIRMED → NO_SHOW
    status = Column(String(20), default=AppointmentStatus.PENDING.value, nullable=False, index=True)

    # Payment
    amount = Column(Float, default=0, nullable=False)
    is_paid = Column(Boolean, default=False, nullable=False)

    # Notes
    patient_notes = Column(Text, nullable=True)
    symptoms = Column(Text, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    reschedule_reason = Column(Text, nullable=True)

    # Meeting
    google_meet_link = Column(String(500), nullable=True)
    google_event_id = Column(String(255), nullable=True)

    # Timestamps
    scheduled_at = Column(DateTime, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    cancelled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")
    service = relationship("Service")
    slot = relationship("Slot", back_populates="appointments")

    __table_args__ = (
        # Double-booking backstop: one active appointment per doctor/date/time
        Index(
            "uq_appointments_doctor_datetime_active",
            "doctor_id",
            "appointment_date",
            "appointment_time",
            unique=True,
            postgresql_where=status.in_(ACTIVE_STATUSES),
            sqlite_where=status.in_(ACTIVE_STATUSES),
        ),
        # One active appointment per slot
        Index(
            "uq_appointments_slot_active",
            "slot_id",
            unique=True,
            postgresql_where=status.in_(ACTIVE_STATUSES),
            sqlite_where=status.in_(ACTIVE_STATUSES),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def assignment(self) -> Assignment:
        if self.doctor_id is None:
            return Unassigned(selected_slot_time=self.selected_slot_time)
        return Assigned(doctor_id=self.doctor_id, slot_id=self.slot_id)


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    CONVERTED_TO_APPOINTMENT = "CONVERTED_TO_APPOINTMENT"


class UrgencyLevel(str, enum.Enum):
    ROUTINE = "ROUTINE"
    URGENT = "URGENT"
    EMERGENCY = "EMERGENCY"


class Booking(Base):
    """
    A patient's request to see a doctor around a preferred time.

    The doctor answers with a suggested date/time (or rejects); an approved
    request is converted into a PENDING appointment on a concrete slot.
    """

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    appointment_id = Column(Integer, ForeignKey("appointments.id", ondelete="SET NULL"), nullable=True)

    # Patient's wishes
    preferred_date = Column(Date, nullable=False)
    preferred_time = Column(String(5), nullable=False)  # HH:MM UTC
    alternative_dates = Column(JSON, nullable=True)  # ["YYYY-MM-DD", ...]
    alternative_times = Column(JSON, nullable=True)  # ["HH:MM", ...]
    patient_notes = Column(Text, nullable=True)
    symptoms = Column(Text, nullable=True)
    urgency = Column(String(20), default=UrgencyLevel.ROUTINE.value, nullable=False)

    # Doctor's answer
    status = Column(String(30), default=BookingStatus.PENDING.value, nullable=False, index=True)
    doctor_notes = Column(Text, nullable=True)
    suggested_date = Column(Date, nullable=True)
    suggested_time = Column(String(5), nullable=True)

    requested_at = Column(DateTime, server_default=func.now())
    responded_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    patient = relationship("Patient")
    doctor = relationship("Doctor")
    service = relationship("Service")
    appointment = relationship("Appointment")
