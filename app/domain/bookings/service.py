"""Booking service - Booking requests and their conversion into appointments"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from ...config import BOOKING_EXPIRY_DAYS
from ...database import transaction
from ...exceptions import BadRequestError, ConflictError, NotFoundError
from ...models import Appointment, AppointmentStatus, Booking, BookingStatus, UrgencyLevel
from ...shared.time_utils import is_date_in_past, is_datetime_in_past, minutes_between
from ..appointments.service import AppointmentService
from .repository import BookingRepository
from .schemas import BookingCreate, BookingUpdate, RespondToBookingRequest

logger = logging.getLogger(__name__)

# Camel-case request fields -> model columns
UPDATABLE_FIELDS = {
    "preferredDate": "preferred_date",
    "preferredTime": "preferred_time",
    "alternativeDates": "alternative_dates",
    "alternativeTimes": "alternative_times",
    "patientNotes": "patient_notes",
    "symptoms": "symptoms",
    "urgency": "urgency",
}


def normalize_booking_status(status: Optional[str]) -> Optional[str]:
    if not status:
        return None
    value = status.strip().upper()
    if value not in BookingStatus.__members__:
        raise BadRequestError(f"Invalid status: {status}")
    return value


def normalize_urgency(urgency: Optional[str]) -> Optional[str]:
    if not urgency:
        return None
    value = urgency.strip().upper()
    if value not in UrgencyLevel.__members__:
        raise BadRequestError(f"Invalid urgency: {urgency}")
    return value


def _rate(part: int, total: int) -> float:
    return round(part / total * 100, 2) if total else 0.0


class BookingService:
    """Service layer for booking requests"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = BookingRepository()
        self.appointments = AppointmentService(db)

    def _pending_for_doctor(self, booking_id: int, doctor_id: int, action: str) -> Booking:
        booking = self.find_by_id(booking_id)
        if booking.doctor_id != doctor_id:
            raise BadRequestError(f"Only the requested doctor can {action} this booking")
        if booking.status != BookingStatus.PENDING.value:
            raise BadRequestError(f"Can only {action} pending bookings")
        return booking

    # ========================================================================
    # Patient side
    # ========================================================================

    def create_booking(self, data: BookingCreate) -> Booking:
        logger.info(f"📥 Booking request from patient {data.patientId} for doctor {data.doctorId}")

        if is_datetime_in_past(data.preferredDate, data.preferredTime):
            raise BadRequestError("Preferred date and time cannot be in the past")

        lookups = self.appointments.repo
        patient = lookups.get_patient(self.db, data.patientId)
        if not patient:
            raise NotFoundError("Patient not found")
        if not patient.is_active:
            raise BadRequestError("Patient account is not active")

        doctor = lookups.get_doctor(self.db, data.doctorId)
        if not doctor:
            raise NotFoundError("Doctor not found")
        if not doctor.is_active or not doctor.is_available:
            raise BadRequestError("Doctor is not available for bookings")

        service = lookups.get_service(self.db, data.serviceId)
        if not service:
            raise NotFoundError("Service not found")
        if not service.is_active:
            raise BadRequestError("Service is not active")

        if self.repo.find_pending_between(self.db, data.patientId, data.doctorId):
            raise ConflictError("Patient already has a pending booking with this doctor")

        with transaction(self.db):
            booking = self.repo.add(
                self.db,
                Booking(
                    patient_id=data.patientId,
                    doctor_id=data.doctorId,
                    service_id=data.serviceId,
                    preferred_date=data.preferredDate,
                    preferred_time=data.preferredTime,
                    alternative_dates=data.alternativeDates or None,
                    alternative_times=data.alternativeTimes or None,
                    patient_notes=data.patientNotes,
                    symptoms=data.symptoms,
                    urgency=data.urgency.value,
                    status=BookingStatus.PENDING.value,
                    expires_at=datetime.utcnow() + timedelta(days=BOOKING_EXPIRY_DAYS),
                ),
            )

        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking.id} created ({booking.urgency}), expires {booking.expires_at:%Y-%m-%d}")
        return booking

    def update_booking(self, booking_id: int, data: BookingUpdate) -> Booking:
        booking = self.find_by_id(booking_id)
        if booking.status != BookingStatus.PENDING.value:
            raise BadRequestError("Cannot update non-pending bookings")

        required = ("preferredDate", "preferredTime", "urgency")
        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field not in required
        }
        preferred_date = changes.get("preferredDate") or booking.preferred_date
        preferred_time = changes.get("preferredTime") or booking.preferred_time
        if ("preferredDate" in changes or "preferredTime" in changes) and is_datetime_in_past(
            preferred_date, preferred_time
        ):
            raise BadRequestError("Preferred date and time cannot be in the past")

        with transaction(self.db):
            for field, value in changes.items():
                if field == "urgency":
                    value = UrgencyLevel(value).value
                setattr(booking, UPDATABLE_FIELDS[field], value)

        self.db.refresh(booking)
        logger.info(f"✏️ Booking {booking_id} updated: {', '.join(changes) or 'no changes'}")
        return booking

    def delete_booking(self, booking_id: int) -> None:
        booking = self.find_by_id(booking_id)
        if booking.status in (BookingStatus.PENDING.value, BookingStatus.APPROVED.value):
            raise BadRequestError("Only expired or rejected bookings can be deleted")

        with transaction(self.db):
            self.db.delete(booking)

        logger.info(f"🗑️ Booking {booking_id} deleted")

    # ========================================================================
    # Doctor side
    # ========================================================================

    def respond_to_booking(self, booking_id: int, data: RespondToBookingRequest) -> Booking:
        """
        Record the doctor's answer.

        A suggested date together with a suggested time approves the request;
        notes alone leave it pending.
        """
        booking = self._pending_for_doctor(booking_id, data.doctorId, "respond to")

        if data.suggestedDate and is_date_in_past(data.suggestedDate):
            raise BadRequestError("Suggested date cannot be in the past")

        approved = bool(data.suggestedDate and data.suggestedTime)
        with transaction(self.db):
            booking.doctor_notes = data.doctorNotes
            booking.suggested_date = data.suggestedDate
            booking.suggested_time = data.suggestedTime
            booking.responded_at = datetime.utcnow()
            booking.status = (BookingStatus.APPROVED if approved else BookingStatus.PENDING).value

        self.db.refresh(booking)
        logger.info(f"💬 Doctor {data.doctorId} responded to booking {booking_id} ({booking.status})")
        return booking

    def approve_booking(self, booking_id: int, doctor_id: int) -> Booking:
        booking = self._pending_for_doctor(booking_id, doctor_id, "approve")
        if not booking.suggested_date or not booking.suggested_time:
            raise BadRequestError("Must provide suggested date and time before approving")

        with transaction(self.db):
            booking.status = BookingStatus.APPROVED.value
            booking.responded_at = datetime.utcnow()

        self.db.refresh(booking)
        logger.info(f"✅ Booking {booking_id} approved by doctor {doctor_id}")
        return booking

    def reject_booking(self, booking_id: int, doctor_id: int, reason: Optional[str] = None) -> Booking:
        booking = self._pending_for_doctor(booking_id, doctor_id, "reject")

        with transaction(self.db):
            booking.status = BookingStatus.REJECTED.value
            booking.doctor_notes = reason or "Booking rejected by doctor"
            booking.responded_at = datetime.utcnow()

        self.db.refresh(booking)
        logger.info(f"🚫 Booking {booking_id} rejected by doctor {doctor_id}")
        return booking

    def convert_to_appointment(self, booking_id: int, slot_id: int) -> Appointment:
        """Book an approved request onto one of the doctor's open slots"""
        booking = self.find_by_id(booking_id)
        if booking.status != BookingStatus.APPROVED.value:
            raise BadRequestError("Can only convert approved bookings to appointments")

        slot = self.appointments.repo.get_slot(self.db, slot_id)
        if not slot:
            raise NotFoundError("Slot not found")
        if not slot.is_available:
            raise BadRequestError("Selected slot is not available")
        if slot.schedule.doctor_id != booking.doctor_id:
            raise BadRequestError("Selected slot does not belong to the requested doctor")
        if minutes_between(slot.start_time, slot.end_time) < booking.service.duration:
            raise BadRequestError("Slot duration is insufficient for this service")

        slot_date = slot.schedule.date
        slot_time = slot.start_time
        checker = self.appointments.checker
        checker.check_not_in_past(slot_date, slot_time)
        checker.check_double_booking(booking.doctor_id, slot_date, slot_time)

        with self.appointments.booking_transaction():
            self.appointments.claim_slot(slot_id)
            checker.check_double_booking(booking.doctor_id, slot_date, slot_time)

            now = datetime.utcnow()
            appointment = self.appointments.repo.add(
                self.db,
                Appointment(
                    patient_id=booking.patient_id,
                    doctor_id=booking.doctor_id,
                    service_id=booking.service_id,
                    primary_service_id=booking.service_id,
                    slot_id=slot_id,
                    appointment_date=slot_date,
                    appointment_time=slot_time,
                    duration=booking.service.duration,
                    status=AppointmentStatus.PENDING.value,
                    amount=booking.service.price,
                    is_paid=False,
                    patient_notes=booking.patient_notes,
                    symptoms=booking.symptoms,
                    scheduled_at=now,
                ),
            )
            booking.status = BookingStatus.CONVERTED_TO_APPOINTMENT.value
            booking.appointment_id = appointment.id
            booking.responded_at = now

        self.db.refresh(appointment)
        logger.info(f"✅ Booking {booking_id} converted to appointment {appointment.id} (slot {slot_id})")
        return appointment

    # ========================================================================
    # Read paths
    # ========================================================================

    def find_by_id(self, booking_id: int) -> Booking:
        booking = self.repo.get_booking(self.db, booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def find_all(
        self,
        patient_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        service_id: Optional[int] = None,
        status: Optional[str] = None,
        urgency: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Booking], int]:
        query = self.repo.apply_filters(
            self.repo.base_query(self.db),
            patient_id=patient_id,
            doctor_id=doctor_id,
            service_id=service_id,
            status=normalize_booking_status(status),
            urgency=normalize_urgency(urgency),
            start_date=start_date,
            end_date=end_date,
        )
        return self.repo.paginate(query, page, limit)

    def get_patient_bookings(self, patient_id: int, **filters) -> tuple[list[Booking], int]:
        return self.find_all(patient_id=patient_id, **filters)

    def get_doctor_bookings(self, doctor_id: int, **filters) -> tuple[list[Booking], int]:
        return self.find_all(doctor_id=doctor_id, **filters)

    def get_pending_bookings(self, doctor_id: int) -> list[Booking]:
        return self.repo.get_pending_for_doctor(self.db, doctor_id)

    def get_booking_stats(
        self,
        doctor_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        counts = self.repo.count_by_status(
            self.db,
            doctor_id,
            datetime.combine(start_date, time.min) if start_date else None,
            datetime.combine(end_date + timedelta(days=1), time.min) if end_date else None,
        )
        total = sum(counts.values())
        approved = counts.get(BookingStatus.APPROVED.value, 0)
        converted = counts.get(BookingStatus.CONVERTED_TO_APPOINTMENT.value, 0)
        return {
            "total_bookings": total,
            "pending_bookings": counts.get(BookingStatus.PENDING.value, 0),
            "approved_bookings": approved,
            "rejected_bookings": counts.get(BookingStatus.REJECTED.value, 0),
            "converted_bookings": converted,
            "approval_rate": _rate(approved, total),
            "conversion_rate": _rate(converted, total),
        }

    # ========================================================================
    # Housekeeping
    # ========================================================================

    def cleanup_expired_bookings(self) -> int:
        """Mark pending requests past their expiry as EXPIRED; returns how many"""
        with transaction(self.db):
            overdue = self.repo.get_overdue_pending(self.db, datetime.utcnow())
            for booking in overdue:
                booking.status = BookingStatus.EXPIRED.value

        if overdue:
            logger.info(f"⌛ Expired {len(overdue)} unanswered booking request(s)")
        return len(overdue)
