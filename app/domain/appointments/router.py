"""Appointment router - FastAPI endpoints for the appointment lifecycle"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import (
    AdminAppointmentCreate,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatsResponse,
    AssignDoctorRequest,
    AvailableDoctorResponse,
    CancelAppointmentRequest,
    RescheduleAppointmentRequest,
)
from .service import AppointmentService
from .unassigned import UnassignedAppointmentResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointment_service(db: Session = Depends(get_db)) -> AppointmentService:
    """Dependency injection for AppointmentService"""
    return AppointmentService(db)


def get_unassigned_resolver(db: Session = Depends(get_db)) -> UnassignedAppointmentResolver:
    return UnassignedAppointmentResolver(db)


def _page(items, total: int, page: int, limit: int) -> dict:
    return {"appointments": items, "total": total, "page": page, "limit": limit}


# ============================================================================
# BOOKING
# ============================================================================


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
    data: AppointmentCreate,
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.create_appointment(data)


@router.post("/temporary", response_model=AppointmentResponse, status_code=201)
async def create_temporary_appointment(
    data: AppointmentCreate,
    service: AppointmentService = Depends(get_appointment_service),
):
    """Create a pending appointment before payment; doctor and slot are optional"""
    return service.create_temporary_appointment(data)


@router.post("/admin", response_model=AppointmentResponse, status_code=201)
async def create_confirmed_appointment(
    data: AdminAppointmentCreate,
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.create_confirmed_appointment(data)
    await service.run_side_effects()
    return service.find_by_id(appointment.id)


# ============================================================================
# LISTINGS
# ============================================================================


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    patient_id: Optional[int] = Query(None, alias="patientId"),
    doctor_id: Optional[int] = Query(None, alias="doctorId"),
    service_id: Optional[int] = Query(None, alias="serviceId"),
    status: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: AppointmentService = Depends(get_appointment_service),
):
    items, total = service.find_all(
        patient_id=patient_id,
        doctor_id=doctor_id,
        service_id=service_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
        search=search,
        page=page,
        limit=limit,
    )
    return _page(items, total, page, limit)


@router.get("/stats", response_model=AppointmentStatsResponse)
async def get_appointment_stats(
    doctor_id: Optional[int] = Query(None, alias="doctorId"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_appointment_stats(doctor_id, start_date, end_date)


@router.get("/upcoming", response_model=list[AppointmentResponse])
async def get_upcoming_appointments(
    user_id: int = Query(..., alias="userId"),
    user_type: str = Query(..., alias="userType"),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.get_upcoming_appointments(user_id, user_type)


@router.get("/unassigned", response_model=list[AppointmentResponse])
async def get_unassigned_appointments(
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    resolver: UnassignedAppointmentResolver = Depends(get_unassigned_resolver),
):
    return resolver.get_unassigned_appointments(status, page, limit)


@router.get("/patient/{patient_id}", response_model=AppointmentListResponse)
async def get_patient_appointments(
    patient_id: int,
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: AppointmentService = Depends(get_appointment_service),
):
    items, total = service.get_patient_appointments(patient_id, status, page, limit)
    return _page(items, total, page, limit)


@router.get("/doctor/{doctor_id}", response_model=AppointmentListResponse)
async def get_doctor_appointments(
    doctor_id: int,
    status: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: AppointmentService = Depends(get_appointment_service),
):
    items, total = service.get_doctor_appointments(doctor_id, status, page, limit)
    return _page(items, total, page, limit)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.find_by_id(appointment_id)


# ============================================================================
# LIFECYCLE
# ============================================================================


@router.post("/{appointment_id}/confirm-payment", response_model=AppointmentResponse)
async def confirm_payment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
):
    """Called by the payment flow once the charge has succeeded"""
    service.confirm_payment(appointment_id)
    await service.run_side_effects()
    return service.find_by_id(appointment_id)


@router.post("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    appointment = service.cancel_appointment(appointment_id, data.reason)
    await service.run_side_effects()
    return appointment


@router.post("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    service.reschedule_appointment(appointment_id, data.newSlotId, data.reason)
    await service.run_side_effects()
    return service.find_by_id(appointment_id)


@router.post("/{appointment_id}/start", response_model=AppointmentResponse)
async def start_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.start_appointment(appointment_id)


@router.post("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.complete_appointment(appointment_id)


@router.post("/{appointment_id}/no-show", response_model=AppointmentResponse)
async def mark_no_show(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.mark_no_show(appointment_id)


@router.delete("/{appointment_id}")
async def delete_appointment(
    appointment_id: int,
    service: AppointmentService = Depends(get_appointment_service),
):
    service.delete_appointment(appointment_id)
    return {"message": "Appointment deleted successfully"}


# ============================================================================
# DOCTOR ASSIGNMENT
# ============================================================================


@router.get("/{appointment_id}/available-doctors", response_model=list[AvailableDoctorResponse])
async def get_available_doctors(
    appointment_id: int,
    resolver: UnassignedAppointmentResolver = Depends(get_unassigned_resolver),
):
    return resolver.get_available_doctors_for_appointment(appointment_id)


@router.post("/{appointment_id}/assign-doctor", response_model=AppointmentResponse)
async def assign_doctor(
    appointment_id: int,
    data: AssignDoctorRequest,
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.assign_doctor_to_appointment(appointment_id, data.doctorId, data.slotId)
