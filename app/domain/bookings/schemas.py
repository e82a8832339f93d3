"""Booking request schemas - Pydantic models for validation"""

import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...models import UrgencyLevel
from ...shared.validators import validate_date, validate_time


def _iso_dates(values: Optional[list]) -> Optional[list[str]]:
    # Stored as JSON, so keep plain ISO strings
    if values is None:
        return values
    return [validate_date(v).isoformat() for v in values]


def _times(values: Optional[list]) -> Optional[list[str]]:
    if values is None:
        return values
    return [validate_time(v) for v in values]


class BookingCreate(BaseModel):
    """Schema for a patient's booking request"""

    patientId: int
    doctorId: int
    serviceId: int
    preferredDate: datetime.date
    preferredTime: str
    alternativeDates: list[str] = []
    alternativeTimes: list[str] = []
    patientNotes: Optional[str] = Field(None, max_length=2000)
    symptoms: Optional[str] = Field(None, max_length=2000)
    urgency: UrgencyLevel = UrgencyLevel.ROUTINE

    @field_validator("preferredTime")
    @classmethod
    def validate_preferred_time(cls, v):
        return validate_time(v)

    @field_validator("alternativeDates")
    @classmethod
    def validate_alternative_dates(cls, v):
        return _iso_dates(v)

    @field_validator("alternativeTimes")
    @classmethod
    def validate_alternative_times(cls, v):
        return _times(v)


class BookingUpdate(BaseModel):
    """Patient edits to a request that is still pending"""

    preferredDate: Optional[datetime.date] = None
    preferredTime: Optional[str] = None
    alternativeDates: Optional[list[str]] = None
    alternativeTimes: Optional[list[str]] = None
    patientNotes: Optional[str] = Field(None, max_length=2000)
    symptoms: Optional[str] = Field(None, max_length=2000)
    urgency: Optional[UrgencyLevel] = None

    @field_validator("preferredTime")
    @classmethod
    def validate_preferred_time(cls, v):
        return validate_time(v)

    @field_validator("alternativeDates")
    @classmethod
    def validate_alternative_dates(cls, v):
        return _iso_dates(v)

    @field_validator("alternativeTimes")
    @classmethod
    def validate_alternative_times(cls, v):
        return _times(v)


class RespondToBookingRequest(BaseModel):
    doctorId: int
    doctorNotes: Optional[str] = Field(None, max_length=2000)
    suggestedDate: Optional[datetime.date] = None
    suggestedTime: Optional[str] = None

    @field_validator("suggestedTime")
    @classmethod
    def validate_suggested_time(cls, v):
        return validate_time(v)


class DoctorBookingAction(BaseModel):
    """Approve or reject; only the requested doctor may act"""

    doctorId: int
    reason: Optional[str] = Field(None, max_length=1000)


class ConvertBookingRequest(BaseModel):
    slotId: int


class BookingResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    service_id: int
    appointment_id: Optional[int] = None
    preferred_date: datetime.date
    preferred_time: str
    alternative_dates: Optional[list[str]] = None
    alternative_times: Optional[list[str]] = None
    patient_notes: Optional[str] = None
    symptoms: Optional[str] = None
    urgency: str
    status: str
    doctor_notes: Optional[str] = None
    suggested_date: Optional[datetime.date] = None
    suggested_time: Optional[str] = None
    requested_at: Optional[datetime.datetime] = None
    responded_at: Optional[datetime.datetime] = None
    expires_at: Optional[datetime.datetime] = None

    class Config:
        from_attributes = True


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]
    total: int
    page: int
    limit: int


class BookingStatsResponse(BaseModel):
    total_bookings: int
    pending_bookings: int
    approved_bookings: int
    rejected_bookings: int
    converted_bookings: int
    approval_rate: float
    conversion_rate: float
