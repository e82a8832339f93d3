"""Scheduling service - Business logic for doctor schedules and slots"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...database import transaction
from ...exceptions import BadRequestError, ConflictError, NotFoundError
from ...models import ACTIVE_STATUSES, Schedule, Service, Slot
from ...shared.time_utils import add_minutes, is_date_in_past, minutes_between, time_to_minutes
from ...shared.validators import validate_time
from .repository import SchedulingRepository

logger = logging.getLogger(__name__)

MIN_SLOT_DURATION = 15
MAX_SLOT_DURATION = 120
MAX_BREAK_TIME = 60

SLOT_BOOKED = "booked"
SLOT_AVAILABLE = "available"
SLOT_BLOCKED = "blocked"


def _normalize_window(start_time: str, end_time: str) -> tuple[str, str]:
    try:
        start = validate_time(start_time)
        end = validate_time(end_time)
    except ValueError as e:
        raise BadRequestError(str(e)) from e
    if minutes_between(start, end) <= 0:
        raise BadRequestError("Start time must be before end time")
    return start, end


def _order_across_midnight(slots: list[Slot]) -> list[Slot]:
    """
    Order slots by start time, starting after the longest idle stretch of the day.

    Shifts stored in UTC can wrap past midnight (16:00-01:00), in which case the
    00:xx slots belong after the evening ones rather than at the top of the list.
    """
    ordered = sorted(slots, key=lambda s: time_to_minutes(s.start_time))
    if len(ordered) < 2:
        return ordered

    minutes = [time_to_minutes(s.start_time) for s in ordered]
    gaps = [(minutes[i + 1] - minutes[i], i + 1) for i in range(len(minutes) - 1)]
    gaps.append((minutes[0] + 24 * 60 - minutes[-1], 0))
    _, start = max(gaps)
    return ordered[start:] + ordered[:start]


class SchedulingService:
    """Service layer for schedule and slot management"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    # ========================================================================
    # Schedules
    # ========================================================================

    def create_schedule(
        self,
        doctor_id: int,
        day: date,
        start_time: str,
        end_time: str,
        max_appointments: Optional[int] = None,
    ) -> Schedule:
        """Create a working window for a doctor on one date"""
        logger.info(f"📥 Creating schedule for doctor {doctor_id} on {day}")

        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise NotFoundError("Doctor not found")
        if not doctor.is_active or not doctor.is_available:
            raise BadRequestError("Doctor is not available")

        if is_date_in_past(day):
            raise BadRequestError("Schedule date cannot be in the past")

        start, end = _normalize_window(start_time, end_time)

        if self.repo.find_conflicting_schedule(self.db, doctor_id, day, start, end):
            raise ConflictError("Schedule conflicts with an existing schedule")

        with transaction(self.db):
            schedule = self.repo.add(
                self.db,
                Schedule(
                    doctor_id=doctor_id,
                    date=day,
                    start_time=start,
                    end_time=end,
                    max_appointments=max_appointments,
                    is_available=True,
                ),
            )

        self.db.refresh(schedule)
        logger.info(f"✅ Schedule {schedule.id} created for doctor {doctor_id} ({start}-{end})")
        return schedule

    def get_schedule(self, schedule_id: int) -> Schedule:
        schedule = self.repo.get_schedule(self.db, schedule_id)
        if not schedule:
            raise NotFoundError("Schedule not found")
        return schedule

    def delete_schedule(self, schedule_id: int) -> None:
        """Delete a schedule and its slots, unless any slot was ever booked"""
        schedule = self.get_schedule(schedule_id)

        if self.repo.schedule_has_appointments(self.db, schedule_id):
            raise BadRequestError("Cannot delete schedule with existing appointments")

        with transaction(self.db):
            # Slots go with the schedule through the delete-orphan cascade
            self.db.delete(schedule)

        logger.info(f"🗑️ Schedule {schedule_id} deleted")

    # ========================================================================
    # Slots
    # ========================================================================

    def create_slot(self, schedule_id: int, start_time: str, end_time: str) -> Slot:
        schedule = self.get_schedule(schedule_id)
        start, end = _normalize_window(start_time, end_time)

        if start < schedule.start_time or end > schedule.end_time:
            raise BadRequestError("Slot must be within the schedule time range")

        if self.repo.find_conflicting_slot(self.db, schedule_id, start, end):
            raise ConflictError("Slot conflicts with an existing slot")

        with transaction(self.db):
            slot = self.repo.add(
                self.db,
                Slot(schedule_id=schedule_id, start_time=start, end_time=end, is_available=True),
            )

        self.db.refresh(slot)
        logger.info(f"✅ Slot {slot.id} created on schedule {schedule_id} ({start}-{end})")
        return slot

    def generate_slots(self, schedule_id: int, slot_duration: int, break_time: int = 0) -> list[Slot]:
        """
        Split a schedule window into back-to-back slots.

        Args:
            schedule_id: Schedule to fill
            slot_duration: Length of each slot in minutes (15-120)
            break_time: Gap between consecutive slots in minutes (0-60)

        Returns:
            The slots that were created; candidates overlapping existing
            slots are skipped.
        """
        if slot_duration < MIN_SLOT_DURATION or slot_duration > MAX_SLOT_DURATION:
            raise BadRequestError(
                f"Slot duration must be between {MIN_SLOT_DURATION} and {MAX_SLOT_DURATION} minutes"
            )
        if break_time < 0 or break_time > MAX_BREAK_TIME:
            raise BadRequestError(f"Break time must be between 0 and {MAX_BREAK_TIME} minutes")

        schedule = self.get_schedule(schedule_id)
        window_end = time_to_minutes(schedule.end_time)
        cursor = schedule.start_time
        created: list[Slot] = []

        with transaction(self.db):
            while time_to_minutes(cursor) + slot_duration <= window_end:
                slot_end = add_minutes(cursor, slot_duration)

                if self.repo.find_conflicting_slot(self.db, schedule_id, cursor, slot_end):
                    logger.warning(f"⚠️ Skipping slot {cursor}-{slot_end} on schedule {schedule_id}: overlaps existing slot")
                else:
                    created.append(
                        self.repo.add(
                            self.db,
                            Slot(
                                schedule_id=schedule_id,
                                start_time=cursor,
                                end_time=slot_end,
                                is_available=True,
                            ),
                        )
                    )

                next_start = time_to_minutes(cursor) + slot_duration + break_time
                if next_start >= 24 * 60:
                    break
                cursor = add_minutes(cursor, slot_duration + break_time)

        logger.info(f"✅ Generated {len(created)} slots for schedule {schedule_id}")
        return created

    def delete_slot(self, slot_id: int) -> None:
        slot = self.repo.get_slot(self.db, slot_id)
        if not slot:
            raise NotFoundError("Slot not found")

        if self.repo.slot_has_active_appointment(self.db, slot_id):
            raise BadRequestError("Cannot delete slot with an active appointment")

        with transaction(self.db):
            self.db.delete(slot)

        logger.info(f"🗑️ Slot {slot_id} deleted")

    # ========================================================================
    # Availability views
    # ========================================================================

    def get_available_slots(
        self, doctor_id: int, day: date, service_id: Optional[int] = None
    ) -> tuple[list[Schedule], list[Slot]]:
        """Open slots for one doctor on a date, optionally long enough for a service"""
        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise NotFoundError("Doctor not found")
        if not doctor.is_active or not doctor.is_available:
            raise BadRequestError("Doctor is not available")

        schedules = self.repo.get_doctor_schedules_for_date(self.db, doctor_id, day, only_available=True)
        slots = self.repo.get_available_slots_for_doctor(self.db, doctor_id, day)

        if service_id is not None:
            service = self.db.query(Service).filter(Service.id == service_id).first()
            if not service:
                raise NotFoundError("Service not found")
            slots = [s for s in slots if minutes_between(s.start_time, s.end_time) >= service.duration]

        return schedules, slots

    def get_doctor_day_slots(self, doctor_id: int, day: date) -> list[dict]:
        """
        Day view of a doctor's slots.
        Each time range appears once; a booked entry wins over an open or blocked one.
        """
        doctor = self.repo.get_doctor(self.db, doctor_id)
        if not doctor:
            raise NotFoundError("Doctor not found")

        by_range: dict[tuple[str, str], dict] = {}
        for slot in self.repo.get_slots_for_doctor_day(self.db, doctor_id, day):
            booking = next((a for a in slot.appointments if a.status in ACTIVE_STATUSES), None)
            if booking:
                status = SLOT_BOOKED
            elif slot.is_available:
                status = SLOT_AVAILABLE
            else:
                status = SLOT_BLOCKED

            key = (slot.start_time, slot.end_time)
            existing = by_range.get(key)
            if existing and existing["status"] == SLOT_BOOKED:
                continue
            if existing and status != SLOT_BOOKED:
                continue

            entry = {
                "id": slot.id,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "status": status,
                "appointment": None,
            }
            if booking:
                entry["appointment"] = {
                    "id": booking.id,
                    "patient_name": booking.patient.full_name,
                    "patient_email": booking.patient.email,
                    "service_name": booking.service.name if booking.service else None,
                    "notes": booking.patient_notes,
                    "status": booking.status,
                    "google_meet_link": booking.google_meet_link,
                }
            by_range[key] = entry

        return sorted(by_range.values(), key=lambda e: e["start_time"])

    def get_global_slots(self, day: date) -> list[dict]:
        """Open slots across all doctors for a date, one per start time"""
        slots = [
            s
            for s in self.repo.get_available_slots_for_date(self.db, day)
            if s.schedule.doctor.is_active and s.schedule.doctor.is_available
        ]

        unique: dict[str, Slot] = {}
        for slot in slots:
            unique.setdefault(slot.start_time, slot)

        ordered = _order_across_midnight(list(unique.values()))
        return [
            {
                "id": slot.id,
                "start_time": slot.start_time,
                "end_time": slot.end_time,
                "is_available": slot.is_available,
                "doctor": {
                    "id": slot.schedule.doctor.id,
                    "name": slot.schedule.doctor.display_name,
                    "specialization": slot.schedule.doctor.specialization,
                },
            }
            for slot in ordered
        ]
