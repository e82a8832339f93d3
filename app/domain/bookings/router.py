"""Booking router - FastAPI endpoints for booking requests"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ..appointments.schemas import AppointmentResponse
from .schemas import (
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    BookingStatsResponse,
    BookingUpdate,
    ConvertBookingRequest,
    DoctorBookingAction,
    RespondToBookingRequest,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


@router.post("", response_model=BookingResponse, status_code=201)
async def create_booking(
    data: BookingCreate,
    service: BookingService = Depends(get_booking_service),
):
    return service.create_booking(data)


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    patient_id: Optional[int] = Query(None, alias="patientId"),
    doctor_id: Optional[int] = Query(None, alias="doctorId"),
    service_id: Optional[int] = Query(None, alias="serviceId"),
    status: Optional[str] = Query(None),
    urgency: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: BookingService = Depends(get_booking_service),
):
    items, total = service.find_all(
        patient_id=patient_id,
        doctor_id=doctor_id,
        service_id=service_id,
        status=status,
        urgency=urgency,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return {"bookings": items, "total": total, "page": page, "limit": limit}


@router.get("/stats", response_model=BookingStatsResponse)
async def get_booking_stats(
    doctor_id: Optional[int] = Query(None, alias="doctorId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking_stats(doctor_id, start_date, end_date)


@router.get("/pending/{doctor_id}", response_model=list[BookingResponse])
async def get_pending_bookings(
    doctor_id: int,
    service: BookingService = Depends(get_booking_service),
):
    """A doctor's inbox: most urgent first, then oldest first"""
    return service.get_pending_bookings(doctor_id)


@router.post("/cleanup-expired")
async def cleanup_expired_bookings(service: BookingService = Depends(get_booking_service)):
    return {"expired": service.cleanup_expired_bookings()}


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
):
    return service.find_by_id(booking_id)


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    data: BookingUpdate,
    service: BookingService = Depends(get_booking_service),
):
    return service.update_booking(booking_id, data)


@router.post("/{booking_id}/respond", response_model=BookingResponse)
async def respond_to_booking(
    booking_id: int,
    data: RespondToBookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    return service.respond_to_booking(booking_id, data)


@router.post("/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(
    booking_id: int,
    data: DoctorBookingAction,
    service: BookingService = Depends(get_booking_service),
):
    return service.approve_booking(booking_id, data.doctorId)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: int,
    data: DoctorBookingAction,
    service: BookingService = Depends(get_booking_service),
):
    return service.reject_booking(booking_id, data.doctorId, data.reason)


@router.post("/{booking_id}/convert", response_model=AppointmentResponse, status_code=201)
async def convert_booking(
    booking_id: int,
    data: ConvertBookingRequest,
    service: BookingService = Depends(get_booking_service),
):
    return service.convert_to_appointment(booking_id, data.slotId)


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
):
    service.delete_booking(booking_id)
    return {"message": "Booking deleted successfully"}
