"""
Appointment lifecycle tests: creation, payment, cancel, reschedule and delete
plus the slot bookkeeping each transition implies
"""

import pytest

from app.domain.appointments.schemas import AdminAppointmentCreate, AppointmentCreate
from app.domain.appointments.service import AppointmentService
from app.exceptions import BadRequestError, ConflictError, NotFoundError
from app.models import ACTIVE_STATUSES, Appointment, AppointmentStatus, Slot


@pytest.fixture
def service(db_session):
    return AppointmentService(db_session)


@pytest.fixture
def booking(make_patient, make_doctor, make_service, make_slot, future_day):
    """Patient, doctor, 30 minute service and a matching 09:00-09:30 slot"""
    patient = make_patient()
    doctor = make_doctor()
    consult = make_service(duration=30)
    slot = make_slot(doctor, future_day, "09:00", "09:30")
    return patient, doctor, consult, slot


def _request(patient, consult, day, time="09:00", doctor=None, slot=None, **extra):
    return AppointmentCreate(
        patientId=patient.id,
        doctorId=doctor.id if doctor else None,
        serviceId=consult.id,
        slotId=slot.id if slot else None,
        appointmentDate=day,
        appointmentTime=time,
        **extra,
    )


def _active_at(db_session, doctor_id, day, time):
    return (
        db_session.query(Appointment)
        .filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == day,
            Appointment.appointment_time == time,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        .count()
    )


def _assert_slot_flags_consistent(db_session):
    """Every open slot has no active holder; every active holder's slot is closed"""
    for slot in db_session.query(Slot).all():
        db_session.refresh(slot)
        holders = [a for a in slot.appointments if a.status in ACTIVE_STATUSES]
        assert len(holders) <= 1
        if holders:
            assert slot.is_available is False


# ============================================================================
# Creation
# ============================================================================


def test_book_slot_flips_it_and_starts_pending(service, db_session, booking, future_day):
    patient, doctor, consult, slot = booking

    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))
    db_session.refresh(slot)

    assert appointment.status == AppointmentStatus.PENDING.value
    assert appointment.slot_id == slot.id
    assert appointment.scheduled_at is not None
    assert slot.is_available is False


def test_second_booking_same_doctor_time_conflicts(
    service, db_session, booking, make_patient, make_slot, future_day
):
    patient, doctor, consult, slot = booking
    service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))
    # A second slot row at the same time, so the slot itself is not what stops it
    twin = make_slot(doctor, future_day, "09:00", "09:30")

    with pytest.raises(ConflictError) as exc:
        service.create_appointment(_request(make_patient(), consult, future_day, doctor=doctor, slot=twin))

    assert exc.value.detail == "Doctor already has an appointment at this time"
    db_session.refresh(twin)
    assert twin.is_available is True
    assert _active_at(db_session, doctor.id, future_day, "09:00") == 1


def test_create_requires_medical_form(service, booking, make_patient, future_day):
    _, doctor, consult, slot = booking
    patient = make_patient(has_completed_medical_form=False)

    with pytest.raises(BadRequestError) as exc:
        service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))
    assert "medical consultation form" in exc.value.detail


def test_temporary_booking_skips_medical_form(service, db_session, booking, make_patient, future_day):
    _, doctor, consult, slot = booking
    patient = make_patient(has_completed_medical_form=False)

    appointment = service.create_temporary_appointment(
        _request(patient, consult, future_day, doctor=doctor, slot=slot)
    )
    db_session.refresh(slot)

    assert appointment.status == AppointmentStatus.PENDING.value
    assert slot.is_available is False


def test_create_rejects_missing_or_inactive_patient(service, booking, make_patient, future_day):
    _, doctor, consult, slot = booking
    inactive = make_patient(is_active=False)

    with pytest.raises(NotFoundError):
        service.create_appointment(
            AppointmentCreate(
                patientId=999,
                doctorId=doctor.id,
                serviceId=consult.id,
                slotId=slot.id,
                appointmentDate=future_day,
                appointmentTime="09:00",
            )
        )
    with pytest.raises(BadRequestError) as exc:
        service.create_appointment(_request(inactive, consult, future_day, doctor=doctor, slot=slot))
    assert exc.value.detail == "Patient account is not active"


def test_create_rejects_short_slot(service, db_session, make_patient, make_doctor, make_service, make_slot, future_day):
    doctor = make_doctor()
    consult = make_service(duration=45)
    slot = make_slot(doctor, future_day, "09:00", "09:30")

    with pytest.raises(BadRequestError) as exc:
        service.create_appointment(_request(make_patient(), consult, future_day, doctor=doctor, slot=slot))

    assert exc.value.detail == "Slot duration is insufficient for this service"
    db_session.refresh(slot)
    assert slot.is_available is True
    assert db_session.query(Appointment).count() == 0


def test_temporary_booking_with_additional_services(
    service, make_patient, make_doctor, make_service, make_slot, future_day
):
    doctor = make_doctor()
    consult = make_service(duration=30)
    labs = make_service(duration=15, name="Labs")
    slot = make_slot(doctor, future_day, "09:00", "10:00")

    appointment = service.create_temporary_appointment(
        _request(make_patient(), consult, future_day, doctor=doctor, slot=slot, additionalServiceIds=[labs.id])
    )

    assert appointment.duration == 45
    assert appointment.additional_services == [{"id": labs.id, "name": "Labs", "duration": 15}]


def test_temporary_booking_rejects_slot_too_short_for_bundle(
    service, make_patient, make_doctor, make_service, make_slot, future_day
):
    doctor = make_doctor()
    consult = make_service(duration=30)
    labs = make_service(duration=15, name="Labs")
    slot = make_slot(doctor, future_day, "09:00", "09:30")

    with pytest.raises(BadRequestError) as exc:
        service.create_temporary_appointment(
            _request(make_patient(), consult, future_day, doctor=doctor, slot=slot, additionalServiceIds=[labs.id])
        )
    assert exc.value.detail == "Slot duration is insufficient for the selected services"


def test_create_in_past_is_rejected(service, booking, at_offset):
    patient, doctor, consult, _ = booking
    past = at_offset(hours=-3)

    with pytest.raises(BadRequestError) as exc:
        service.create_temporary_appointment(
            _request(patient, consult, past.date(), past.strftime("%H:%M"), doctor=doctor)
        )
    assert exc.value.detail == "Appointment date and time cannot be in the past"


def test_slot_taken_between_check_and_commit_is_a_conflict(service, db_session, booking, future_day, monkeypatch):
    patient, doctor, consult, slot = booking

    # Simulate a competing request that claimed the slot after our checks passed
    original = service.checker.check_double_booking

    def racing_check(*args, **kwargs):
        db_session.query(Slot).filter(Slot.id == slot.id).update({"is_available": False})
        return original(*args, **kwargs)

    monkeypatch.setattr(service.checker, "check_double_booking", racing_check)

    with pytest.raises(ConflictError) as exc:
        service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))

    assert exc.value.detail == "Slot is no longer available"
    assert db_session.query(Appointment).count() == 0


def test_unique_index_backstops_double_booking(db_session, booking, make_patient, future_day):
    from sqlalchemy.exc import IntegrityError

    patient, doctor, consult, slot = booking
    for p in (patient, make_patient()):
        db_session.add(
            Appointment(
                patient_id=p.id,
                doctor_id=doctor.id,
                service_id=consult.id,
                appointment_date=future_day,
                appointment_time="09:00",
                duration=30,
                status=AppointmentStatus.CONFIRMED.value,
            )
        )

    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_admin_booking_is_confirmed(service, db_session, booking, make_patient, future_day):
    _, doctor, consult, slot = booking
    patient = make_patient(has_completed_medical_form=False)

    appointment = service.create_confirmed_appointment(
        AdminAppointmentCreate(
            patientId=patient.id,
            doctorId=doctor.id,
            serviceId=consult.id,
            slotId=slot.id,
            appointmentDate=future_day,
            appointmentTime="09:00",
        )
    )
    db_session.refresh(slot)

    assert appointment.status == AppointmentStatus.CONFIRMED.value
    assert appointment.amount == 0
    assert appointment.confirmed_at is not None
    assert slot.is_available is False
    assert [e.kind for e in service.outbox] == ["confirmed"]


# ============================================================================
# Payment and visit transitions
# ============================================================================


def test_confirm_payment(service, booking, future_day):
    patient, doctor, consult, slot = booking
    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))

    confirmed = service.confirm_payment(appointment.id)

    assert confirmed.status == AppointmentStatus.CONFIRMED.value
    assert confirmed.is_paid is True
    assert confirmed.confirmed_at is not None

    with pytest.raises(BadRequestError):
        service.confirm_payment(appointment.id)


def test_visit_flow_keeps_slot_consumed(service, db_session, booking, future_day):
    patient, doctor, consult, slot = booking
    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))

    with pytest.raises(BadRequestError):
        service.start_appointment(appointment.id)

    service.confirm_payment(appointment.id)
    assert service.start_appointment(appointment.id).status == AppointmentStatus.IN_PROGRESS.value
    completed = service.complete_appointment(appointment.id)
    db_session.refresh(slot)

    assert completed.status == AppointmentStatus.COMPLETED.value
    assert completed.completed_at is not None
    assert slot.is_available is False


def test_no_show_only_from_confirmed(service, booking, future_day):
    patient, doctor, consult, slot = booking
    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))

    with pytest.raises(BadRequestError):
        service.mark_no_show(appointment.id)

    service.confirm_payment(appointment.id)
    assert service.mark_no_show(appointment.id).status == AppointmentStatus.NO_SHOW.value


# ============================================================================
# Cancel
# ============================================================================


def test_cancel_inside_window_is_rejected(
    service, db_session, make_patient, make_doctor, make_service, make_slot, make_appointment, at_offset
):
    doctor = make_doctor()
    consult = make_service()
    soon = at_offset(minutes=30)
    slot = make_slot(doctor, soon.date(), soon.strftime("%H:%M"))
    appointment = make_appointment(make_patient(), consult, doctor=doctor, slot=slot, when=soon)

    with pytest.raises(BadRequestError) as exc:
        service.cancel_appointment(appointment.id, "Running late")

    assert exc.value.detail == "Appointments can only be cancelled at least 1 hour in advance"
    db_session.refresh(slot)
    db_session.refresh(appointment)
    assert slot.is_available is False
    assert appointment.status == AppointmentStatus.CONFIRMED.value


def test_cancel_outside_window_releases_slot(
    service, db_session, make_patient, make_doctor, make_service, make_slot, make_appointment, at_offset
):
    doctor = make_doctor()
    consult = make_service()
    later = at_offset(hours=2)
    slot = make_slot(doctor, later.date(), later.strftime("%H:%M"))
    appointment = make_appointment(make_patient(), consult, doctor=doctor, slot=slot, when=later)

    cancelled = service.cancel_appointment(appointment.id, "Feeling better")
    db_session.refresh(slot)

    assert cancelled.status == AppointmentStatus.CANCELLED.value
    assert cancelled.cancellation_reason == "Feeling better"
    assert cancelled.cancelled_at is not None
    assert slot.is_available is True
    assert [e.kind for e in service.outbox] == ["cancelled"]


def test_cancel_window_is_parameterizable(
    service, make_patient, make_doctor, make_service, make_slot, make_appointment, at_offset
):
    doctor = make_doctor()
    later = at_offset(hours=2)
    slot = make_slot(doctor, later.date(), later.strftime("%H:%M"))
    appointment = make_appointment(make_patient(), make_service(), doctor=doctor, slot=slot, when=later)

    with pytest.raises(BadRequestError) as exc:
        service.cancel_appointment(appointment.id, window_hours=24)
    assert exc.value.detail == "Appointments can only be cancelled at least 24 hours in advance"


def test_cancel_twice_is_rejected_without_touching_slot(
    service, db_session, booking, make_patient, future_day
):
    patient, doctor, consult, slot = booking
    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))
    service.cancel_appointment(appointment.id)

    # Someone else books the freed slot
    rebooked = service.create_appointment(_request(make_patient(), consult, future_day, doctor=doctor, slot=slot))

    with pytest.raises(BadRequestError) as exc:
        service.cancel_appointment(appointment.id)

    assert exc.value.detail == "Appointment is already cancelled"
    db_session.refresh(slot)
    assert slot.is_available is False
    assert rebooked.slot_id == slot.id


def test_cancel_completed_is_rejected(service, booking, make_appointment):
    patient, doctor, consult, slot = booking
    appointment = make_appointment(patient, consult, doctor=doctor, slot=slot, status=AppointmentStatus.COMPLETED)

    with pytest.raises(BadRequestError) as exc:
        service.cancel_appointment(appointment.id)
    assert exc.value.detail == "Completed appointments cannot be cancelled"


def test_cancel_unknown_appointment(service):
    with pytest.raises(NotFoundError) as exc:
        service.cancel_appointment(424242)
    assert exc.value.detail == "Appointment not found"


# ============================================================================
# Reschedule
# ============================================================================


def test_reschedule_round_trip(service, db_session, booking, make_slot, future_day):
    patient, doctor, consult, old_slot = booking
    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=old_slot))
    service.confirm_payment(appointment.id)
    new_slot = make_slot(doctor, future_day, "11:00", "11:30")

    service.reschedule_appointment(appointment.id, new_slot.id, "Conflict at work")
    reread = service.find_by_id(appointment.id)
    db_session.refresh(old_slot)
    db_session.refresh(new_slot)

    assert reread.slot_id == new_slot.id
    assert reread.status == AppointmentStatus.CONFIRMED.value
    assert reread.appointment_time == "11:00"
    assert reread.appointment_date == future_day
    assert reread.reschedule_reason == "Conflict at work"
    assert old_slot.is_available is True
    assert new_slot.is_available is False

    effect = service.outbox[-1]
    assert effect.kind == "rescheduled"
    assert (effect.previous_date, effect.previous_time) == (future_day.isoformat(), "09:00")


def test_reschedule_to_short_slot_changes_nothing(service, db_session, booking, make_slot, future_day):
    patient, doctor, consult, old_slot = booking
    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=old_slot))
    service.confirm_payment(appointment.id)
    short_slot = make_slot(doctor, future_day, "12:00", "12:20")

    with pytest.raises(BadRequestError) as exc:
        service.reschedule_appointment(appointment.id, short_slot.id)

    assert exc.value.detail == "New slot duration is insufficient for this service"
    db_session.refresh(old_slot)
    db_session.refresh(short_slot)
    assert old_slot.is_available is False
    assert short_slot.is_available is True
    assert service.find_by_id(appointment.id).slot_id == old_slot.id


def test_reschedule_rejects_unavailable_and_missing_slots(service, booking, make_slot, future_day):
    patient, doctor, consult, slot = booking
    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))
    blocked = make_slot(doctor, future_day, "13:00", "13:30", is_available=False)

    with pytest.raises(NotFoundError):
        service.reschedule_appointment(appointment.id, 9999)
    with pytest.raises(BadRequestError) as exc:
        service.reschedule_appointment(appointment.id, blocked.id)
    assert exc.value.detail == "New slot is not available"
    with pytest.raises(BadRequestError):
        service.reschedule_appointment(appointment.id, slot.id)


def test_reschedule_to_other_doctor_is_rejected(service, booking, make_doctor, make_slot, future_day):
    patient, doctor, consult, slot = booking
    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))
    other_slot = make_slot(make_doctor(), future_day, "14:00", "14:30")

    with pytest.raises(BadRequestError):
        service.reschedule_appointment(appointment.id, other_slot.id)


def test_reschedule_completed_is_rejected(service, booking, make_slot, make_appointment, future_day):
    patient, doctor, consult, slot = booking
    appointment = make_appointment(patient, consult, doctor=doctor, slot=slot, status=AppointmentStatus.COMPLETED)
    new_slot = make_slot(doctor, future_day, "15:00", "15:30")

    with pytest.raises(BadRequestError) as exc:
        service.reschedule_appointment(appointment.id, new_slot.id)
    assert exc.value.detail == "Completed appointments cannot be rescheduled"


# ============================================================================
# Delete
# ============================================================================


def test_delete_pending_releases_slot(service, db_session, booking, future_day):
    patient, doctor, consult, slot = booking
    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))

    service.delete_appointment(appointment.id)
    db_session.refresh(slot)

    assert slot.is_available is True
    assert db_session.query(Appointment).filter(Appointment.id == appointment.id).first() is None


def test_delete_completed_is_rejected(service, db_session, booking, make_appointment):
    patient, doctor, consult, slot = booking
    appointment = make_appointment(patient, consult, doctor=doctor, slot=slot, status=AppointmentStatus.COMPLETED)

    with pytest.raises(BadRequestError) as exc:
        service.delete_appointment(appointment.id)

    assert exc.value.detail == "Completed appointments cannot be deleted"
    assert db_session.query(Appointment).count() == 1


def test_delete_cancelled_leaves_rebooked_slot_alone(service, db_session, booking, make_patient, future_day):
    patient, doctor, consult, slot = booking
    first = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))
    service.cancel_appointment(first.id)
    service.create_appointment(_request(make_patient(), consult, future_day, doctor=doctor, slot=slot))

    service.delete_appointment(first.id)
    db_session.refresh(slot)

    assert slot.is_available is False


# ============================================================================
# Invariants across a sequence of operations
# ============================================================================


def test_slot_flags_stay_consistent(service, db_session, make_patient, make_doctor, make_service, make_slot, future_day):
    doctor = make_doctor()
    consult = make_service(duration=30)
    slots = [make_slot(doctor, future_day, f"{h:02d}:00", f"{h:02d}:30") for h in (9, 10, 11, 12)]

    a = service.create_appointment(_request(make_patient(), consult, future_day, "09:00", doctor=doctor, slot=slots[0]))
    b = service.create_appointment(_request(make_patient(), consult, future_day, "10:00", doctor=doctor, slot=slots[1]))
    _assert_slot_flags_consistent(db_session)

    service.reschedule_appointment(a.id, slots[2].id)
    _assert_slot_flags_consistent(db_session)

    service.cancel_appointment(b.id)
    service.create_appointment(_request(make_patient(), consult, future_day, "10:00", doctor=doctor, slot=slots[1]))
    _assert_slot_flags_consistent(db_session)

    service.delete_appointment(a.id)
    _assert_slot_flags_consistent(db_session)

    db_session.expire_all()
    open_times = sorted(s.start_time for s in db_session.query(Slot).filter(Slot.is_available.is_(True)))
    assert open_times == ["09:00", "11:00", "12:00"]
    for time in ("09:00", "10:00", "11:00", "12:00"):
        assert _active_at(db_session, doctor.id, future_day, time) <= 1


# ============================================================================
# Failure handling
# ============================================================================


def test_booking_at_other_time_than_slot_is_rejected(service, db_session, booking, make_slot, future_day):
    patient, doctor, consult, slot = booking
    later = make_slot(doctor, future_day, "10:00", "10:30")

    with pytest.raises(BadRequestError) as exc:
        service.create_appointment(_request(patient, consult, future_day, "10:00", doctor=doctor, slot=slot))
    assert exc.value.detail == "Appointment date and time must match the selected slot"
    db_session.refresh(slot)
    assert slot.is_available is True

    appointment = service.create_appointment(_request(patient, consult, future_day, "10:00", doctor=doctor, slot=later))
    assert appointment.slot_id == later.id


def test_failed_insert_rolls_back_slot_claim(service, db_session, booking, future_day, monkeypatch):
    patient, doctor, consult, slot = booking

    def broken_add(db, appointment):
        db.flush()
        raise RuntimeError("insert failed")

    monkeypatch.setattr(service.repo, "add", broken_add)

    with pytest.raises(RuntimeError):
        service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=slot))

    db_session.refresh(slot)
    assert slot.is_available is True
    assert db_session.query(Appointment).count() == 0
    assert service.outbox == []


def test_reschedule_failing_after_release_keeps_old_slot(
    service, db_session, booking, make_slot, future_day, monkeypatch
):
    patient, doctor, consult, old_slot = booking
    appointment = service.create_appointment(_request(patient, consult, future_day, doctor=doctor, slot=old_slot))
    new_slot = make_slot(doctor, future_day, "11:00", "11:30")
    lock_slot = service.repo.lock_slot

    def lock_fails_for_new_slot(db, slot_id):
        if slot_id == new_slot.id:
            raise RuntimeError("lock timeout")
        return lock_slot(db, slot_id)

    monkeypatch.setattr(service.repo, "lock_slot", lock_fails_for_new_slot)

    with pytest.raises(RuntimeError):
        service.reschedule_appointment(appointment.id, new_slot.id)

    db_session.refresh(old_slot)
    db_session.refresh(new_slot)
    db_session.refresh(appointment)
    assert old_slot.is_available is False
    assert new_slot.is_available is True
    assert appointment.slot_id == old_slot.id
    assert appointment.appointment_time == "09:00"
    assert service.outbox == []
    _assert_slot_flags_consistent(db_session)


def test_failed_commit_queues_no_side_effects(service, db_session, booking, future_day, monkeypatch):
    patient, doctor, consult, slot = booking
    appointment = service.create_confirmed_appointment(
        AdminAppointmentCreate(
            patientId=patient.id,
            doctorId=doctor.id,
            serviceId=consult.id,
            slotId=slot.id,
            appointmentDate=future_day,
            appointmentTime="09:00",
        )
    )
    service.outbox.clear()

    def commit_fails():
        raise RuntimeError("connection lost")

    monkeypatch.setattr(db_session, "commit", commit_fails)
    with pytest.raises(RuntimeError):
        service.cancel_appointment(appointment.id, reason="Travelling")
    monkeypatch.undo()

    db_session.refresh(appointment)
    db_session.refresh(slot)
    assert service.outbox == []
    assert appointment.status == AppointmentStatus.CONFIRMED.value
    assert slot.is_available is False


def test_cancel_unassigned_appointment(
    service, db_session, make_patient, make_service, make_appointment, future_day, at_offset
):
    consult = make_service()
    appointment = service.create_temporary_appointment(
        _request(make_patient(), consult, future_day, "10:00", selectedSlotTime="10:00")
    )

    cancelled = service.cancel_appointment(appointment.id, reason="Changed plans")

    assert cancelled.status == AppointmentStatus.CANCELLED.value
    assert cancelled.slot_id is None
    assert [e.kind for e in service.outbox] == ["cancelled"]

    soon = at_offset(minutes=30)
    imminent = make_appointment(make_patient(), consult, when=soon, status=AppointmentStatus.PENDING)
    with pytest.raises(BadRequestError) as exc:
        service.cancel_appointment(imminent.id)
    assert exc.value.detail == "Appointments can only be cancelled at least 1 hour in advance"
    db_session.refresh(imminent)
    assert imminent.status == AppointmentStatus.PENDING.value
