"""Appointment domain schemas - Pydantic models for validation"""

import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_time


class AppointmentCreate(BaseModel):
    """Schema for booking an appointment (regular and temporary paths)"""

    patientId: int
    doctorId: Optional[int] = None
    serviceId: int
    slotId: Optional[int] = None
    primaryServiceId: Optional[int] = None
    appointmentDate: datetime.date
    appointmentTime: str
    selectedSlotTime: Optional[str] = None
    duration: Optional[int] = None
    additionalServiceIds: list[int] = []
    amount: float = 0
    patientNotes: Optional[str] = None
    symptoms: Optional[str] = None

    @field_validator("appointmentTime")
    @classmethod
    def validate_appointment_time(cls, v):
        return validate_time(v)

    @field_validator("selectedSlotTime")
    @classmethod
    def validate_selected_slot_time(cls, v):
        if v is None:
            return v
        return validate_time(v)


class AdminAppointmentCreate(BaseModel):
    """Schema for admin bookings, which are confirmed on creation"""

    patientId: int
    doctorId: int
    serviceId: int
    slotId: int
    appointmentDate: datetime.date
    appointmentTime: str
    additionalServiceIds: list[int] = []
    patientNotes: Optional[str] = None
    symptoms: Optional[str] = None

    @field_validator("appointmentTime")
    @classmethod
    def validate_appointment_time(cls, v):
        return validate_time(v)


class CancelAppointmentRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class RescheduleAppointmentRequest(BaseModel):
    newSlotId: int
    reason: Optional[str] = Field(None, max_length=1000)


class AssignDoctorRequest(BaseModel):
    doctorId: int
    slotId: int


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: Optional[int]
    service_id: int
    primary_service_id: Optional[int] = None
    slot_id: Optional[int]
    appointment_date: datetime.date
    appointment_time: str
    selected_slot_time: Optional[str] = None
    duration: int
    additional_services: Optional[list[dict]] = None
    status: str
    amount: float
    is_paid: bool
    patient_notes: Optional[str] = None
    symptoms: Optional[str] = None
    cancellation_reason: Optional[str] = None
    reschedule_reason: Optional[str] = None
    google_meet_link: Optional[str] = None
    scheduled_at: Optional[datetime.datetime] = None
    confirmed_at: Optional[datetime.datetime] = None
    completed_at: Optional[datetime.datetime] = None
    cancelled_at: Optional[datetime.datetime] = None
    created_at: Optional[datetime.datetime] = None

    class Config:
        from_attributes = True


class AppointmentListResponse(BaseModel):
    appointments: list[AppointmentResponse]
    total: int
    page: int
    limit: int


class AvailableDoctorResponse(BaseModel):
    """A doctor with an open slot at an unassigned appointment's selected time"""

    doctor_id: int
    doctor_name: str
    specialization: Optional[str] = None
    slot_id: int
    start_time: str
    end_time: str


class AppointmentStatsResponse(BaseModel):
    total_appointments: int
    pending_appointments: int
    confirmed_appointments: int
    completed_appointments: int
    cancelled_appointments: int
    today_appointments: int
