"""Matching unassigned appointments to doctors with an open slot at the selected time"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...exceptions import BadRequestError, NotFoundError
from ...models import Appointment, Assigned, Unassigned
from .repository import AppointmentRepository
from .service import normalize_status

logger = logging.getLogger(__name__)


class UnassignedAppointmentResolver:
    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()

    def get_available_doctors_for_appointment(self, appointment_id: int) -> list[dict]:
        """
        Candidate (doctor, slot) pairs for an unassigned appointment.

        Read-only: two appointments may be offered the same slot, and whichever
        assignment commits first takes it.
        """
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")

        assignment = appointment.assignment
        if isinstance(assignment, Assigned):
            raise BadRequestError("Appointment already has a doctor assigned")
        if isinstance(assignment, Unassigned) and not assignment.selected_slot_time:
            raise BadRequestError("Appointment does not have a selected slot time")

        slots = self.repo.find_open_slots_at(
            self.db, appointment.appointment_date, assignment.selected_slot_time
        )
        logger.info(
            f"🔍 {len(slots)} candidate slots for appointment {appointment_id} "
            f"at {appointment.appointment_date} {assignment.selected_slot_time}"
        )

        return [
            {
                "doctor_id": slot.schedule.doctor.id,
                "doctor_name": slot.schedule.doctor.display_name,
                "specialization": slot.schedule.doctor.specialization,
                "slot_id": slot.id,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
            }
            for slot in slots
        ]

    def get_unassigned_appointments(
        self, status: Optional[str] = None, page: int = 1, limit: int = 50
    ) -> list[Appointment]:
        """Appointments with neither doctor nor slot, newest first"""
        return self.repo.find_unassigned(self.db, normalize_status(status), page, limit)
