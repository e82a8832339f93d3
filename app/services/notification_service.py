"""
Post-commit appointment notifications

Booking transactions record what happened as an AppointmentEvent; once the
transaction has committed the event is dispatched here. Every handler is
best-effort: it runs under a timeout, and failures are logged and reported in
the result dict but never raised back into the booking flow.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from .. import email_service
from ..config import SIDE_EFFECT_TIMEOUT_SECONDS
from ..models import Appointment

logger = logging.getLogger(__name__)

CONFIRMED = "confirmed"
CANCELLED = "cancelled"
RESCHEDULED = "rescheduled"

UNASSIGNED_DOCTOR_NAME = "To be assigned"


@dataclass
class AppointmentEvent:
    kind: str
    appointment_id: int
    patient_name: str
    patient_email: Optional[str]
    doctor_name: str
    doctor_email: Optional[str]
    service_name: str
    appointment_date: str
    appointment_time: str
    amount: str
    meet_link: Optional[str] = None
    previous_date: Optional[str] = None
    previous_time: Optional[str] = None
    additional_services: Optional[list] = None
    reason: Optional[str] = None


def build_event(kind: str, appointment: Appointment, **extra) -> AppointmentEvent:
    """Snapshot the fields notifications need while the appointment is still loaded"""
    doctor = appointment.doctor
    return AppointmentEvent(
        kind=kind,
        appointment_id=appointment.id,
        patient_name=appointment.patient.full_name,
        patient_email=appointment.patient.email,
        doctor_name=doctor.display_name if doctor else UNASSIGNED_DOCTOR_NAME,
        doctor_email=doctor.email if doctor else None,
        service_name=appointment.service.name,
        appointment_date=appointment.appointment_date.isoformat(),
        appointment_time=appointment.appointment_time,
        amount=f"{appointment.amount or 0:.2f}",
        meet_link=appointment.google_meet_link,
        additional_services=appointment.additional_services,
        **extra,
    )


async def run_best_effort(
    label: str,
    call: Callable[[], Awaitable],
    timeout: float = SIDE_EFFECT_TIMEOUT_SECONDS,
):
    """
    Await a side effect with a timeout.
    Returns (result, error) where error is None on success.
    """
    try:
        result = await asyncio.wait_for(call(), timeout=timeout)
        return result, None
    except asyncio.TimeoutError:
        logger.error(f"⏱️ {label} timed out after {timeout}s")
        return None, "timeout"
    except Exception as e:
        logger.error(f"❌ {label} failed: {e}")
        return None, str(e)


def _patient_handlers(event: AppointmentEvent) -> list[tuple[str, Callable[[], Awaitable]]]:
    if not event.patient_email:
        return []

    if event.kind == CONFIRMED:
        call = lambda: email_service.send_appointment_confirmation_email(  # noqa: E731
            to=event.patient_email,
            patient_name=event.patient_name,
            doctor_name=event.doctor_name,
            service_name=event.service_name,
            appointment_date=event.appointment_date,
            appointment_time=event.appointment_time,
            amount=event.amount,
            meet_link=event.meet_link,
            additional_services=event.additional_services,
        )
    elif event.kind == CANCELLED:
        call = lambda: email_service.send_cancellation_email(  # noqa: E731
            to=event.patient_email,
            patient_name=event.patient_name,
            doctor_name=event.doctor_name,
            appointment_date=event.appointment_date,
            appointment_time=event.appointment_time,
            amount=event.amount,
        )
    elif event.kind == RESCHEDULED:
        call = lambda: email_service.send_reschedule_email(  # noqa: E731
            to=event.patient_email,
            recipient_name=event.patient_name,
            counterpart_name=event.doctor_name,
            old_date=event.previous_date,
            old_time=event.previous_time,
            new_date=event.appointment_date,
            new_time=event.appointment_time,
            meet_link=event.meet_link,
        )
    else:
        return []

    return [("patient_email", call)]


def _doctor_handlers(event: AppointmentEvent) -> list[tuple[str, Callable[[], Awaitable]]]:
    # Unassigned appointments have nobody to notify on the doctor side
    if not event.doctor_email:
        return []

    if event.kind == CONFIRMED:
        call = lambda: email_service.send_doctor_appointment_notification(  # noqa: E731
            to=event.doctor_email,
            doctor_name=event.doctor_name,
            patient_name=event.patient_name,
            service_name=event.service_name,
            appointment_date=event.appointment_date,
            appointment_time=event.appointment_time,
            meet_link=event.meet_link,
        )
    elif event.kind == CANCELLED:
        call = lambda: email_service.send_doctor_cancellation_notification(  # noqa: E731
            to=event.doctor_email,
            doctor_name=event.doctor_name,
            patient_name=event.patient_name,
            patient_email=event.patient_email or "",
            appointment_date=event.appointment_date,
            appointment_time=event.appointment_time,
            amount=event.amount,
        )
    elif event.kind == RESCHEDULED:
        call = lambda: email_service.send_reschedule_email(  # noqa: E731
            to=event.doctor_email,
            recipient_name=event.doctor_name,
            counterpart_name=event.patient_name,
            old_date=event.previous_date,
            old_time=event.previous_time,
            new_date=event.appointment_date,
            new_time=event.appointment_time,
            meet_link=event.meet_link,
        )
    else:
        return []

    return [("doctor_email", call)]


@dataclass
class DispatchResult:
    sent: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


async def dispatch_appointment_event(
    event: AppointmentEvent, timeout: float = SIDE_EFFECT_TIMEOUT_SECONDS
) -> DispatchResult:
    """
    Send every notification an appointment event calls for.

    Args:
        event: Snapshot taken after the booking transaction committed
        timeout: Per-handler bound in seconds

    Returns:
        DispatchResult listing delivered channels and per-channel errors
    """
    result = DispatchResult()
    handlers = _patient_handlers(event) + _doctor_handlers(event)

    if not handlers:
        logger.debug(f"⚠️ No recipients for {event.kind} event of appointment {event.appointment_id}")
        return result

    for channel, call in handlers:
        logger.info(f"📧 Sending {event.kind} {channel} for appointment {event.appointment_id}")
        _, error = await run_best_effort(
            f"{event.kind} {channel} for appointment {event.appointment_id}", call, timeout
        )
        if error:
            result.errors[channel] = error
        else:
            result.sent.append(channel)

    return result
