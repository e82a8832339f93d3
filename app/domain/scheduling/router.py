"""Scheduling router - FastAPI endpoints for schedules and slots"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from .schemas import (
    AvailableSlotsResponse,
    DoctorDaySlot,
    GenerateSlotsRequest,
    GlobalSlot,
    ScheduleCreate,
    ScheduleResponse,
    SlotCreate,
    SlotResponse,
)
from .service import SchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/schedules", tags=["Schedules"])


def get_scheduling_service(db: Session = Depends(get_db)) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db)


@router.post("", response_model=ScheduleResponse, status_code=201)
async def create_schedule(
    data: ScheduleCreate,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.create_schedule(
        data.doctorId, data.date, data.startTime, data.endTime, data.maxAppointments
    )


@router.delete("/{schedule_id}")
async def delete_schedule(
    schedule_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    service.delete_schedule(schedule_id)
    return {"message": "Schedule deleted successfully"}


@router.post("/slots", response_model=SlotResponse, status_code=201)
async def create_slot(
    data: SlotCreate,
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.create_slot(data.scheduleId, data.startTime, data.endTime)


@router.post("/{schedule_id}/generate-slots", response_model=list[SlotResponse], status_code=201)
async def generate_slots(
    schedule_id: int,
    data: GenerateSlotsRequest,
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Split the schedule window into slots of the given length"""
    return service.generate_slots(schedule_id, data.slotDuration, data.breakTime)


@router.delete("/slots/{slot_id}")
async def delete_slot(
    slot_id: int,
    service: SchedulingService = Depends(get_scheduling_service),
):
    service.delete_slot(slot_id)
    return {"message": "Slot deleted successfully"}


@router.get("/available-slots", response_model=AvailableSlotsResponse)
async def get_available_slots(
    doctor_id: int = Query(..., alias="doctorId"),
    day: date = Query(..., alias="date"),
    service_id: Optional[int] = Query(None, alias="serviceId"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    schedules, slots = service.get_available_slots(doctor_id, day, service_id)
    return {
        "doctor_id": doctor_id,
        "date": day,
        "schedules": schedules,
        "available_slots": slots,
    }


@router.get("/doctor/{doctor_id}/day-slots", response_model=list[DoctorDaySlot])
async def get_doctor_day_slots(
    doctor_id: int,
    day: date = Query(..., alias="date"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Booked, open and blocked slots for a doctor's day"""
    return service.get_doctor_day_slots(doctor_id, day)


@router.get("/global-slots", response_model=list[GlobalSlot])
async def get_global_slots(
    day: date = Query(..., alias="date"),
    service: SchedulingService = Depends(get_scheduling_service),
):
    return service.get_global_slots(day)
