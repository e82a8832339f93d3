"""Appointment service - Booking lifecycle and slot bookkeeping"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import CANCELLATION_WINDOW_HOURS, SIDE_EFFECT_TIMEOUT_SECONDS
from ...database import transaction
from ...exceptions import BadRequestError, ConflictError, NotFoundError
from ...models import Appointment, AppointmentStatus, Patient, Slot
from ...services import google_calendar_service
from ...services.notification_service import (
    CANCELLED,
    CONFIRMED,
    RESCHEDULED,
    UNASSIGNED_DOCTOR_NAME,
    DispatchResult,
    build_event,
    dispatch_appointment_event,
    run_best_effort,
)
from ...shared.time_utils import hours_until, is_datetime_in_past, minutes_between, utcnow
from .availability import DOUBLE_BOOKING_MESSAGE, AvailabilityChecker
from .repository import AppointmentRepository
from .schemas import AdminAppointmentCreate, AppointmentCreate

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (
    AppointmentStatus.COMPLETED.value,
    AppointmentStatus.CANCELLED.value,
    AppointmentStatus.NO_SHOW.value,
)

MEDICAL_FORM_REQUIRED_MESSAGE = (
    "Patient must complete the medical consultation form before booking appointments. "
    "Please complete the form and try again."
)


@dataclass
class PendingEffect:
    """Side effect recorded inside a transaction, run once it has committed"""

    kind: str
    appointment_id: int
    previous_date: Optional[str] = None
    previous_time: Optional[str] = None
    reason: Optional[str] = None


def normalize_status(status: Optional[str]) -> Optional[str]:
    if not status:
        return None
    value = status.strip().upper()
    if value not in AppointmentStatus.__members__:
        raise BadRequestError(f"Invalid status: {status}")
    return value


def _hours_label(hours: float) -> str:
    return f"{hours:g} hour" if hours == 1 else f"{hours:g} hours"


class AppointmentService:
    """Service layer for the appointment lifecycle"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AppointmentRepository()
        self.checker = AvailabilityChecker(db)
        self.outbox: list[PendingEffect] = []

    # ========================================================================
    # Transaction helpers
    # ========================================================================

    @contextmanager
    def booking_transaction(self):
        """Commit a booking change; a unique-index violation means someone else won the race"""
        try:
            with transaction(self.db):
                yield
        except IntegrityError as e:
            logger.warning(f"⚠️ Booking rejected by uniqueness constraint: {e.orig}")
            raise ConflictError(DOUBLE_BOOKING_MESSAGE) from e

    def claim_slot(self, slot_id: int, appointment_id: Optional[int] = None) -> Slot:
        """Lock a slot and mark it taken; must run inside a booking transaction"""
        self.db.flush()
        slot = self.repo.lock_slot(self.db, slot_id)
        if not slot:
            raise NotFoundError("Slot not found")
        if not slot.is_available or self.repo.slot_held_by_other(self.db, slot_id, appointment_id):
            raise ConflictError("Slot is no longer available")
        slot.is_available = False
        logger.info(f"🔒 Slot {slot_id} claimed")
        return slot

    def _release_slot(self, slot_id: Optional[int], appointment_id: int) -> None:
        """Free a slot unless another active appointment still holds it"""
        if slot_id is None:
            return
        self.db.flush()
        if self.repo.slot_held_by_other(self.db, slot_id, appointment_id):
            logger.info(f"ℹ️ Slot {slot_id} still held by another appointment, leaving it booked")
            return
        slot = self.repo.lock_slot(self.db, slot_id)
        if slot:
            slot.is_available = True
            logger.info(f"🔓 Slot {slot_id} released by appointment {appointment_id}")

    def _check_patient(self, patient_id: int, require_medical_form: bool) -> Patient:
        patient = self.repo.get_patient(self.db, patient_id)
        if not patient:
            raise NotFoundError("Patient not found")
        if not patient.is_active:
            raise BadRequestError("Patient account is not active")
        if require_medical_form and not patient.has_completed_medical_form:
            raise BadRequestError(MEDICAL_FORM_REQUIRED_MESSAGE)
        return patient

    # ========================================================================
    # Creation
    # ========================================================================

    def create_temporary_appointment(self, data: AppointmentCreate) -> Appointment:
        """
        Create a PENDING appointment ahead of payment.

        Doctor and slot are optional here; without a doctor the appointment is
        unassigned and waits for a match at its selected slot time.
        """
        logger.info(f"📥 Creating temporary appointment for patient {data.patientId}")

        self._check_patient(data.patientId, require_medical_form=False)

        # A slot always belongs to a doctor, so booking one assigns that doctor
        doctor_id = data.doctorId
        if doctor_id is None and data.slotId is not None:
            slot = self.repo.get_slot(self.db, data.slotId)
            if not slot:
                raise NotFoundError("Slot not found")
            doctor_id = slot.schedule.doctor_id

        plan = self.checker.plan_booking(
            service_id=data.serviceId,
            appointment_date=data.appointmentDate,
            appointment_time=data.appointmentTime,
            doctor_id=doctor_id,
            slot_id=data.slotId,
            requested_duration=data.duration,
            additional_service_ids=data.additionalServiceIds,
        )

        with self.booking_transaction():
            if data.slotId is not None:
                self.claim_slot(data.slotId)
            if doctor_id is not None:
                self.checker.check_double_booking(doctor_id, data.appointmentDate, data.appointmentTime)

            appointment = self.repo.add(
                self.db,
                Appointment(
                    patient_id=data.patientId,
                    doctor_id=doctor_id,
                    service_id=data.serviceId,
                    primary_service_id=data.primaryServiceId or data.serviceId,
                    slot_id=data.slotId,
                    appointment_date=data.appointmentDate,
                    appointment_time=data.appointmentTime,
                    selected_slot_time=data.selectedSlotTime,
                    duration=plan.duration,
                    additional_services=plan.additional_services or None,
                    status=AppointmentStatus.PENDING.value,
                    amount=data.amount,
                    is_paid=False,
                    patient_notes=data.patientNotes,
                    symptoms=data.symptoms,
                ),
            )

        self.db.refresh(appointment)
        logger.info(f"✅ Temporary appointment {appointment.id} created (doctor={doctor_id}, slot={data.slotId})")
        return appointment

    def create_appointment(self, data: AppointmentCreate) -> Appointment:
        """Book a doctor's slot for a patient who completed the medical intake"""
        logger.info(f"📥 Creating appointment for patient {data.patientId} with doctor {data.doctorId}")

        if data.doctorId is None or data.slotId is None:
            raise BadRequestError("Doctor and slot are required")

        self._check_patient(data.patientId, require_medical_form=True)
        plan = self.checker.plan_booking(
            service_id=data.serviceId,
            appointment_date=data.appointmentDate,
            appointment_time=data.appointmentTime,
            doctor_id=data.doctorId,
            slot_id=data.slotId,
            additional_service_ids=data.additionalServiceIds,
            insufficient_message="Slot duration is insufficient for this service",
        )
        duration = plan.duration if plan.additional_services else (data.duration or plan.duration)

        with self.booking_transaction():
            self.claim_slot(data.slotId)
            self.checker.check_double_booking(data.doctorId, data.appointmentDate, data.appointmentTime)

            appointment = self.repo.add(
                self.db,
                Appointment(
                    patient_id=data.patientId,
                    doctor_id=data.doctorId,
                    service_id=data.serviceId,
                    primary_service_id=data.primaryServiceId or data.serviceId,
                    slot_id=data.slotId,
                    appointment_date=data.appointmentDate,
                    appointment_time=data.appointmentTime,
                    duration=duration,
                    additional_services=plan.additional_services or None,
                    status=AppointmentStatus.PENDING.value,
                    amount=data.amount,
                    is_paid=False,
                    patient_notes=data.patientNotes,
                    symptoms=data.symptoms,
                    scheduled_at=datetime.utcnow(),
                ),
            )

        self.db.refresh(appointment)
        logger.info(f"✅ Appointment {appointment.id} created, slot {data.slotId} booked")
        return appointment

    def create_confirmed_appointment(self, data: AdminAppointmentCreate) -> Appointment:
        """Admin booking: skips payment and intake checks and lands directly in CONFIRMED"""
        logger.info(f"📥 Admin booking for patient {data.patientId} with doctor {data.doctorId}")

        self._check_patient(data.patientId, require_medical_form=False)
        plan = self.checker.plan_booking(
            service_id=data.serviceId,
            appointment_date=data.appointmentDate,
            appointment_time=data.appointmentTime,
            doctor_id=data.doctorId,
            slot_id=data.slotId,
            additional_service_ids=data.additionalServiceIds,
        )

        with self.booking_transaction():
            self.claim_slot(data.slotId)
            self.checker.check_double_booking(data.doctorId, data.appointmentDate, data.appointmentTime)

            now = datetime.utcnow()
            appointment = self.repo.add(
                self.db,
                Appointment(
                    patient_id=data.patientId,
                    doctor_id=data.doctorId,
                    service_id=data.serviceId,
                    primary_service_id=data.serviceId,
                    slot_id=data.slotId,
                    appointment_date=data.appointmentDate,
                    appointment_time=data.appointmentTime,
                    duration=plan.duration,
                    additional_services=plan.additional_services or None,
                    status=AppointmentStatus.CONFIRMED.value,
                    amount=0,
                    is_paid=False,
                    patient_notes=data.patientNotes,
                    symptoms=data.symptoms,
                    scheduled_at=now,
                    confirmed_at=now,
                ),
            )

        self.outbox.append(PendingEffect(CONFIRMED, appointment.id))
        self.db.refresh(appointment)
        logger.info(f"✅ Admin appointment {appointment.id} created as CONFIRMED")
        return appointment

    # ========================================================================
    # Transitions
    # ========================================================================

    def confirm_payment(self, appointment_id: int) -> Appointment:
        """Payment succeeded upstream: PENDING -> CONFIRMED"""
        appointment = self.find_by_id(appointment_id)
        if appointment.status != AppointmentStatus.PENDING.value:
            raise BadRequestError(
                f"Only pending appointments can be confirmed (current status: {appointment.status})"
            )

        with self.booking_transaction():
            if appointment.slot_id is not None and appointment.slot.is_available:
                self.claim_slot(appointment.slot_id, appointment.id)
            appointment.status = AppointmentStatus.CONFIRMED.value
            appointment.is_paid = True
            appointment.confirmed_at = datetime.utcnow()

        self.outbox.append(PendingEffect(CONFIRMED, appointment.id))
        self.db.refresh(appointment)
        logger.info(f"✅ Appointment {appointment_id} paid and confirmed")
        return appointment

    def cancel_appointment(
        self,
        appointment_id: int,
        reason: Optional[str] = None,
        window_hours: float = CANCELLATION_WINDOW_HOURS,
    ) -> Appointment:
        appointment = self.find_by_id(appointment_id)

        if appointment.status == AppointmentStatus.COMPLETED.value:
            raise BadRequestError("Completed appointments cannot be cancelled")
        if appointment.status == AppointmentStatus.CANCELLED.value:
            raise BadRequestError("Appointment is already cancelled")
        if appointment.status == AppointmentStatus.NO_SHOW.value:
            raise BadRequestError("No-show appointments cannot be cancelled")

        if hours_until(appointment.appointment_date, appointment.appointment_time) < window_hours:
            raise BadRequestError(
                f"Appointments can only be cancelled at least {_hours_label(window_hours)} in advance"
            )

        with transaction(self.db):
            appointment.status = AppointmentStatus.CANCELLED.value
            appointment.cancelled_at = datetime.utcnow()
            appointment.cancellation_reason = reason
            self._release_slot(appointment.slot_id, appointment.id)

        self.outbox.append(PendingEffect(CANCELLED, appointment.id, reason=reason))
        self.db.refresh(appointment)
        logger.info(f"✅ Appointment {appointment_id} cancelled")
        return appointment

    def reschedule_appointment(
        self, appointment_id: int, new_slot_id: int, reason: Optional[str] = None
    ) -> Appointment:
        """Move an appointment to another slot, keeping the same row"""
        appointment = self.find_by_id(appointment_id)

        if appointment.status == AppointmentStatus.COMPLETED.value:
            raise BadRequestError("Completed appointments cannot be rescheduled")
        if appointment.status == AppointmentStatus.CANCELLED.value:
            raise BadRequestError("Cancelled appointments cannot be rescheduled")
        if appointment.status == AppointmentStatus.NO_SHOW.value:
            raise BadRequestError("No-show appointments cannot be rescheduled")

        new_slot = self.repo.get_slot(self.db, new_slot_id)
        if not new_slot:
            raise NotFoundError("New slot not found")
        if not new_slot.is_available:
            raise BadRequestError("New slot is not available")
        if minutes_between(new_slot.start_time, new_slot.end_time) < appointment.service.duration:
            raise BadRequestError("New slot duration is insufficient for this service")

        new_date = new_slot.schedule.date
        new_time = new_slot.start_time
        if is_datetime_in_past(new_date, new_time):
            raise BadRequestError("Appointment date and time cannot be in the past")

        doctor_id = appointment.doctor_id
        if doctor_id is None:
            doctor_id = self.checker.check_doctor(new_slot.schedule.doctor_id).id
        elif new_slot.schedule.doctor_id != doctor_id:
            raise BadRequestError("New slot must belong to the appointment's doctor")

        self.checker.check_double_booking(doctor_id, new_date, new_time, appointment.id)

        previous_date = appointment.appointment_date.isoformat()
        previous_time = appointment.appointment_time
        old_slot_id = appointment.slot_id

        with self.booking_transaction():
            self._release_slot(old_slot_id, appointment.id)
            self.claim_slot(new_slot_id, appointment.id)
            self.checker.check_double_booking(doctor_id, new_date, new_time, appointment.id)

            appointment.doctor_id = doctor_id
            appointment.slot_id = new_slot_id
            appointment.appointment_date = new_date
            appointment.appointment_time = new_time
            appointment.status = AppointmentStatus.CONFIRMED.value
            appointment.reschedule_reason = reason
            if not appointment.confirmed_at:
                appointment.confirmed_at = datetime.utcnow()

        self.outbox.append(
            PendingEffect(
                RESCHEDULED,
                appointment.id,
                previous_date=previous_date,
                previous_time=previous_time,
                reason=reason,
            )
        )
        self.db.refresh(appointment)
        logger.info(
            f"✅ Appointment {appointment_id} rescheduled from slot {old_slot_id} to slot {new_slot_id} "
            f"({previous_date} {previous_time} -> {new_date} {new_time})"
        )
        return appointment

    def delete_appointment(self, appointment_id: int) -> None:
        appointment = self.find_by_id(appointment_id)
        if appointment.status == AppointmentStatus.COMPLETED.value:
            raise BadRequestError("Completed appointments cannot be deleted")

        with transaction(self.db):
            # Cancelled or no-show rows no longer hold their slot
            if appointment.is_active:
                self._release_slot(appointment.slot_id, appointment.id)
            self.db.delete(appointment)

        logger.info(f"🗑️ Appointment {appointment_id} deleted")

    def assign_doctor_to_appointment(self, appointment_id: int, doctor_id: int, slot_id: int) -> Appointment:
        """Bind an unassigned appointment to a doctor's slot and confirm it"""
        appointment = self.find_by_id(appointment_id)

        if appointment.doctor_id is not None:
            raise BadRequestError("Appointment already has a doctor assigned")
        if appointment.status in TERMINAL_STATUSES:
            raise BadRequestError(f"Cannot assign a doctor to a {appointment.status.lower()} appointment")

        self.checker.check_doctor(doctor_id)

        slot = self.repo.get_slot(self.db, slot_id)
        if not slot:
            raise NotFoundError("Slot not found")
        if not slot.is_available:
            raise BadRequestError("Slot is not available")
        if slot.schedule.doctor_id != doctor_id:
            raise BadRequestError("Slot does not belong to the specified doctor")

        slot_date = slot.schedule.date
        self.checker.check_not_in_past(slot_date, slot.start_time)
        self.checker.check_double_booking(doctor_id, slot_date, slot.start_time, appointment.id)

        with self.booking_transaction():
            if appointment.slot_id is not None and appointment.slot_id != slot_id:
                self._release_slot(appointment.slot_id, appointment.id)
            self.claim_slot(slot_id, appointment.id)
            self.checker.check_double_booking(doctor_id, slot_date, slot.start_time, appointment.id)

            appointment.doctor_id = doctor_id
            appointment.slot_id = slot_id
            appointment.appointment_date = slot_date
            appointment.appointment_time = slot.start_time
            appointment.status = AppointmentStatus.CONFIRMED.value
            appointment.confirmed_at = datetime.utcnow()

        self.db.refresh(appointment)
        logger.info(f"✅ Doctor {doctor_id} assigned to appointment {appointment_id} (slot {slot_id})")
        return appointment

    def start_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.find_by_id(appointment_id)
        if appointment.status != AppointmentStatus.CONFIRMED.value:
            raise BadRequestError("Only confirmed appointments can be started")

        with transaction(self.db):
            appointment.status = AppointmentStatus.IN_PROGRESS.value

        logger.info(f"▶️ Appointment {appointment_id} in progress")
        return appointment

    def complete_appointment(self, appointment_id: int) -> Appointment:
        appointment = self.find_by_id(appointment_id)
        if appointment.status not in (AppointmentStatus.IN_PROGRESS.value, AppointmentStatus.CONFIRMED.value):
            raise BadRequestError("Only confirmed or in-progress appointments can be completed")

        with transaction(self.db):
            appointment.status = AppointmentStatus.COMPLETED.value
            appointment.completed_at = datetime.utcnow()

        logger.info(f"✅ Appointment {appointment_id} completed")
        return appointment

    def mark_no_show(self, appointment_id: int) -> Appointment:
        appointment = self.find_by_id(appointment_id)
        if appointment.status != AppointmentStatus.CONFIRMED.value:
            raise BadRequestError("Only confirmed appointments can be marked as no-show")

        with transaction(self.db):
            appointment.status = AppointmentStatus.NO_SHOW.value

        logger.info(f"🚫 Appointment {appointment_id} marked as no-show")
        return appointment

    # ========================================================================
    # Read paths
    # ========================================================================

    def find_by_id(self, appointment_id: int) -> Appointment:
        appointment = self.repo.get_appointment(self.db, appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    def find_all(
        self,
        patient_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        service_id: Optional[int] = None,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Appointment], int]:
        query = self.repo.apply_filters(
            self.repo.base_query(self.db),
            patient_id=patient_id,
            doctor_id=doctor_id,
            service_id=service_id,
            status=normalize_status(status),
            start_date=start_date,
            end_date=end_date,
            search=search,
        )
        return self.repo.paginate(query, page, limit)

    def get_patient_appointments(
        self, patient_id: int, status: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> tuple[list[Appointment], int]:
        if not self.repo.get_patient(self.db, patient_id):
            raise NotFoundError("Patient not found")
        return self.find_all(patient_id=patient_id, status=status, page=page, limit=limit)

    def get_doctor_appointments(
        self, doctor_id: int, status: Optional[str] = None, page: int = 1, limit: int = 10
    ) -> tuple[list[Appointment], int]:
        if not self.repo.get_doctor(self.db, doctor_id):
            raise NotFoundError("Doctor not found")
        return self.find_all(doctor_id=doctor_id, status=status, page=page, limit=limit)

    def get_upcoming_appointments(self, user_id: int, user_type: str) -> list[Appointment]:
        today = utcnow().date()
        if user_type == "patient":
            return self.repo.get_upcoming(self.db, today, patient_id=user_id)
        if user_type == "doctor":
            return self.repo.get_upcoming(self.db, today, doctor_id=user_id)
        raise BadRequestError("User type must be 'patient' or 'doctor'")

    def get_appointment_stats(
        self,
        doctor_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict:
        counts = self.repo.count_by_status(self.db, doctor_id, start_date, end_date)
        return {
            "total_appointments": sum(counts.values()),
            "pending_appointments": counts.get(AppointmentStatus.PENDING.value, 0),
            "confirmed_appointments": counts.get(AppointmentStatus.CONFIRMED.value, 0),
            "completed_appointments": counts.get(AppointmentStatus.COMPLETED.value, 0),
            "cancelled_appointments": counts.get(AppointmentStatus.CANCELLED.value, 0),
            "today_appointments": self.repo.count_on_date(self.db, utcnow().date(), doctor_id),
        }

    # ========================================================================
    # Post-commit side effects
    # ========================================================================

    def _meeting_request(self, appointment: Appointment) -> google_calendar_service.MeetingRequest:
        doctor = appointment.doctor
        host_name = doctor.display_name if doctor else UNASSIGNED_DOCTOR_NAME
        return google_calendar_service.MeetingRequest(
            appointment_date=appointment.appointment_date,
            appointment_time=appointment.appointment_time,
            duration_minutes=appointment.duration,
            host_name=host_name,
            attendee_name=appointment.patient.full_name,
            subject=f"{appointment.service.name} - {appointment.patient.full_name}",
            attendee_email=appointment.patient.email,
            host_email=doctor.email if doctor else None,
        )

    async def _attach_meeting(self, appointment: Appointment, kind: str, timeout: float) -> None:
        request = self._meeting_request(appointment)
        if kind == RESCHEDULED:
            call = lambda: google_calendar_service.sync_meeting_for_reschedule(  # noqa: E731
                appointment.google_event_id, request
            )
        else:
            call = lambda: google_calendar_service.generate_meeting_link(request)  # noqa: E731

        result, _ = await run_best_effort(f"meeting link for appointment {appointment.id}", call, timeout)
        if not result:
            logger.warning(f"⚠️ No new meeting link for appointment {appointment.id}, keeping the current one")
            return

        try:
            with transaction(self.db):
                appointment.google_meet_link = result.link
                if result.event_id:
                    appointment.google_event_id = result.event_id
            logger.info(f"📅 Meeting link saved for appointment {appointment.id}")
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to save meeting link for appointment {appointment.id}: {e}")

    async def run_side_effects(self, timeout: float = SIDE_EFFECT_TIMEOUT_SECONDS) -> list[DispatchResult]:
        """
        Run the calendar and email work recorded by committed transactions.

        Never raises for a failed side effect; each failure is logged and shows
        up in the matching DispatchResult.
        """
        effects, self.outbox = self.outbox, []
        results = []

        for effect in effects:
            appointment = self.repo.get_appointment(self.db, effect.appointment_id)
            if not appointment:
                logger.warning(f"⚠️ Appointment {effect.appointment_id} vanished before its {effect.kind} side effects ran")
                continue

            if effect.kind == RESCHEDULED or (effect.kind == CONFIRMED and not appointment.google_meet_link):
                await self._attach_meeting(appointment, effect.kind, timeout)

            event = build_event(
                effect.kind,
                appointment,
                previous_date=effect.previous_date,
                previous_time=effect.previous_time,
                reason=effect.reason,
            )
            results.append(await dispatch_appointment_event(event, timeout))

        return results
