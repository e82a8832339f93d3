"""
Availability / conflict checks for bookings.

Every check here only reads. Slot flips happen in the lifecycle service's
transaction, which re-runs the double-booking check under a slot row lock.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...exceptions import BadRequestError, ConflictError, NotFoundError
from ...models import Doctor, Service, Slot
from ...shared.time_utils import is_datetime_in_past, minutes_between
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)

DOUBLE_BOOKING_MESSAGE = "Doctor already has an appointment at this time"


@dataclass
class BookingPlan:
    """Entities and duration resolved for a booking that passed every check"""

    service: Service
    duration: int
    doctor: Optional[Doctor] = None
    slot: Optional[Slot] = None
    additional_services: list[dict] = field(default_factory=list)


class AvailabilityChecker:
    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    def check_doctor(self, doctor_id: int) -> Doctor:
        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise NotFoundError("Doctor not found")
        if not doctor.is_active or not doctor.is_available:
            raise BadRequestError("Doctor is not available")
        return doctor

    def resolve_services(
        self,
        service_id: int,
        additional_service_ids: Optional[list[int]] = None,
        requested_duration: Optional[int] = None,
    ) -> tuple[Service, int, list[dict]]:
        """
        Look up the primary and additional services and work out the booking length.

        The duration is the sum of all service durations when additional services
        are present; otherwise the caller's duration wins, falling back to the
        primary service's.
        """
        service = self.repo.get_service(self.db, service_id)
        if not service:
            raise NotFoundError("Service not found")
        if not service.is_active:
            raise BadRequestError("Service is not active")

        extra_ids = []
        for extra_id in additional_service_ids or []:
            if extra_id and extra_id != service_id and extra_id not in extra_ids:
                extra_ids.append(extra_id)

        additional: list[dict] = []
        if extra_ids:
            extras = self.repo.get_services(self.db, extra_ids)
            if len(extras) != len(extra_ids):
                raise BadRequestError("One or more additional services are invalid")
            for extra in sorted(extras, key=lambda s: extra_ids.index(s.id)):
                if not extra.is_active:
                    raise BadRequestError(f'Service "{extra.name}" is not active')
                additional.append({"id": extra.id, "name": extra.name, "duration": extra.duration})

        if additional:
            duration = service.duration + sum(s["duration"] for s in additional)
        elif requested_duration is not None:
            duration = requested_duration
        else:
            duration = service.duration

        return service, duration, additional

    def check_slot(
        self,
        slot_id: int,
        duration: int,
        doctor_id: Optional[int] = None,
        insufficient_message: str = "Slot duration is insufficient for the selected services",
    ) -> Slot:
        slot = self.repo.get_slot(self.db, slot_id)
        if not slot:
            raise NotFoundError("Slot not found")
        if not slot.is_available:
            raise BadRequestError("Slot is not available")
        if doctor_id is not None and slot.schedule.doctor_id != doctor_id:
            raise BadRequestError("Slot does not belong to the specified doctor")
        if minutes_between(slot.start_time, slot.end_time) < duration:
            raise BadRequestError(insufficient_message)
        return slot

    def check_slot_matches(self, slot: Slot, appointment_date: date, appointment_time: str) -> None:
        """The booked date and time are the slot's own; a slot cannot be recorded at another time"""
        if slot.schedule.date != appointment_date or slot.start_time != appointment_time:
            raise BadRequestError("Appointment date and time must match the selected slot")

    def check_not_in_past(self, appointment_date: date, appointment_time: str) -> None:
        if is_datetime_in_past(appointment_date, appointment_time):
            raise BadRequestError("Appointment date and time cannot be in the past")

    def check_double_booking(
        self,
        doctor_id: int,
        appointment_date: date,
        appointment_time: str,
        exclude_appointment_id: Optional[int] = None,
    ) -> None:
        existing = self.repo.find_active_at(
            self.db, doctor_id, appointment_date, appointment_time, exclude_appointment_id
        )
        if existing:
            logger.warning(
                f"⚠️ Double booking blocked: doctor {doctor_id} already has appointment "
                f"{existing.id} at {appointment_date} {appointment_time}"
            )
            raise ConflictError(DOUBLE_BOOKING_MESSAGE)

    def can_book(
        self,
        doctor_id: Optional[int],
        appointment_date: date,
        appointment_time: str,
        duration_minutes: int,
        slot_id: Optional[int] = None,
    ) -> bool:
        """
        Whether a booking could be placed right now.

        Returns True, or raises NotFoundError / BadRequestError when a referenced
        entity is missing or unusable, and ConflictError on a double booking.
        Unassigned bookings (no doctor) skip the doctor checks.
        """
        if doctor_id is not None:
            self.check_doctor(doctor_id)
        if slot_id is not None:
            slot = self.check_slot(slot_id, duration_minutes, doctor_id)
            self.check_slot_matches(slot, appointment_date, appointment_time)
        self.check_not_in_past(appointment_date, appointment_time)
        if doctor_id is not None:
            self.check_double_booking(doctor_id, appointment_date, appointment_time)
        return True

    def plan_booking(
        self,
        service_id: int,
        appointment_date: date,
        appointment_time: str,
        doctor_id: Optional[int] = None,
        slot_id: Optional[int] = None,
        requested_duration: Optional[int] = None,
        additional_service_ids: Optional[list[int]] = None,
        insufficient_message: str = "Slot duration is insufficient for the selected services",
    ) -> BookingPlan:
        """Run every booking check in order and return what the booking resolved to"""
        doctor = self.check_doctor(doctor_id) if doctor_id is not None else None
        service, duration, additional = self.resolve_services(
            service_id, additional_service_ids, requested_duration
        )

        slot = None
        if slot_id is not None:
            slot = self.check_slot(slot_id, duration, doctor_id, insufficient_message)
            self.check_slot_matches(slot, appointment_date, appointment_time)

        self.check_not_in_past(appointment_date, appointment_time)

        if doctor_id is not None:
            self.check_double_booking(doctor_id, appointment_date, appointment_time)

        return BookingPlan(
            service=service,
            duration=duration,
            doctor=doctor,
            slot=slot,
            additional_services=additional,
        )
