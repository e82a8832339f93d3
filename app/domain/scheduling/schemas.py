"""Scheduling domain schemas - Pydantic models for validation"""

import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_time


class ScheduleCreate(BaseModel):
    """Schema for creating a doctor's working window on one date"""

    doctorId: int
    date: datetime.date
    startTime: str
    endTime: str
    maxAppointments: Optional[int] = None

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v):
        return validate_time(v)


class SlotCreate(BaseModel):
    scheduleId: int
    startTime: str
    endTime: str

    @field_validator("startTime", "endTime")
    @classmethod
    def validate_times(cls, v):
        return validate_time(v)


class GenerateSlotsRequest(BaseModel):
    """Split a schedule window into back-to-back slots"""

    slotDuration: int = Field(..., description="Slot length in minutes (15-120)")
    breakTime: int = Field(0, description="Gap between slots in minutes (0-60)")


class SlotResponse(BaseModel):
    id: int
    schedule_id: int
    start_time: str
    end_time: str
    is_available: bool

    class Config:
        from_attributes = True


class ScheduleResponse(BaseModel):
    id: int
    doctor_id: int
    date: datetime.date
    start_time: str
    end_time: str
    max_appointments: Optional[int]
    is_available: bool
    slots: list[SlotResponse] = []

    class Config:
        from_attributes = True


class AvailableSlotsResponse(BaseModel):
    doctor_id: int
    date: datetime.date
    schedules: list[ScheduleResponse]
    available_slots: list[SlotResponse]


class SlotBookingSummary(BaseModel):
    id: int
    patient_name: str
    patient_email: Optional[str] = None
    service_name: Optional[str] = None
    notes: Optional[str] = None
    status: str
    google_meet_link: Optional[str] = None


class DoctorDaySlot(BaseModel):
    """Slot in a doctor's day view: booked, available or blocked"""

    id: int
    start_time: str
    end_time: str
    status: str
    appointment: Optional[SlotBookingSummary] = None


class GlobalSlotDoctor(BaseModel):
    id: int
    name: str
    specialization: Optional[str] = None


class GlobalSlot(BaseModel):
    id: int
    start_time: str
    end_time: str
    is_available: bool
    doctor: GlobalSlotDoctor
