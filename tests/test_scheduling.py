"""
Schedule and slot management tests
"""

from datetime import timedelta

import pytest

from app.domain.scheduling.service import SchedulingService
from app.exceptions import BadRequestError, ConflictError, NotFoundError
from app.models import AppointmentStatus, Schedule, Slot


@pytest.fixture
def scheduling(db_session):
    return SchedulingService(db_session)


def test_create_schedule(scheduling, make_doctor, future_day):
    doctor = make_doctor()

    schedule = scheduling.create_schedule(doctor.id, future_day, "9:00", "17:00", max_appointments=12)

    assert schedule.start_time == "09:00"
    assert schedule.end_time == "17:00"
    assert schedule.max_appointments == 12
    assert schedule.is_available is True


def test_create_schedule_validation(scheduling, make_doctor, future_day):
    doctor = make_doctor()
    inactive = make_doctor(is_active=False)

    with pytest.raises(NotFoundError):
        scheduling.create_schedule(999, future_day, "09:00", "17:00")
    with pytest.raises(BadRequestError):
        scheduling.create_schedule(inactive.id, future_day, "09:00", "17:00")
    with pytest.raises(BadRequestError):
        scheduling.create_schedule(doctor.id, future_day - timedelta(days=30), "09:00", "17:00")
    with pytest.raises(BadRequestError):
        scheduling.create_schedule(doctor.id, future_day, "17:00", "09:00")
    with pytest.raises(BadRequestError):
        scheduling.create_schedule(doctor.id, future_day, "25:00", "26:00")


def test_overlapping_schedule_conflicts(scheduling, make_doctor, future_day):
    doctor = make_doctor()
    scheduling.create_schedule(doctor.id, future_day, "09:00", "13:00")

    with pytest.raises(ConflictError):
        scheduling.create_schedule(doctor.id, future_day, "12:00", "15:00")

    afternoon = scheduling.create_schedule(doctor.id, future_day, "13:00", "17:00")
    assert afternoon.start_time == "13:00"


def test_create_slot_within_window(scheduling, make_doctor, future_day):
    schedule = scheduling.create_schedule(make_doctor().id, future_day, "09:00", "12:00")

    slot = scheduling.create_slot(schedule.id, "09:00", "09:30")
    assert slot.is_available is True

    with pytest.raises(BadRequestError):
        scheduling.create_slot(schedule.id, "08:30", "09:00")
    with pytest.raises(ConflictError):
        scheduling.create_slot(schedule.id, "09:15", "09:45")
    with pytest.raises(NotFoundError):
        scheduling.create_slot(9999, "09:00", "09:30")


def test_generate_slots(scheduling, make_doctor, future_day):
    schedule = scheduling.create_schedule(make_doctor().id, future_day, "09:00", "11:00")

    slots = scheduling.generate_slots(schedule.id, slot_duration=30, break_time=10)

    assert [(s.start_time, s.end_time) for s in slots] == [
        ("09:00", "09:30"),
        ("09:40", "10:10"),
        ("10:20", "10:50"),
    ]


def test_generate_slots_skips_existing(scheduling, db_session, make_doctor, future_day):
    schedule = scheduling.create_schedule(make_doctor().id, future_day, "09:00", "10:30")
    scheduling.create_slot(schedule.id, "09:30", "10:00")

    created = scheduling.generate_slots(schedule.id, slot_duration=30)

    assert [s.start_time for s in created] == ["09:00", "10:00"]
    assert db_session.query(Slot).filter(Slot.schedule_id == schedule.id).count() == 3


@pytest.mark.parametrize("duration,break_time", [(10, 0), (121, 0), (30, -1), (30, 61)])
def test_generate_slots_bounds(scheduling, make_doctor, future_day, duration, break_time):
    schedule = scheduling.create_schedule(make_doctor().id, future_day, "09:00", "11:00")

    with pytest.raises(BadRequestError):
        scheduling.generate_slots(schedule.id, slot_duration=duration, break_time=break_time)


def test_delete_slot_with_active_appointment(
    scheduling, db_session, make_doctor, make_patient, make_service, make_slot, make_appointment, future_day
):
    doctor = make_doctor()
    booked = make_slot(doctor, future_day, "09:00", "09:30")
    free = make_slot(doctor, future_day, "10:00", "10:30")
    make_appointment(make_patient(), make_service(), doctor=doctor, slot=booked)

    with pytest.raises(BadRequestError):
        scheduling.delete_slot(booked.id)

    scheduling.delete_slot(free.id)
    assert db_session.query(Slot).filter(Slot.id == free.id).first() is None


def test_delete_schedule(scheduling, db_session, make_doctor, make_patient, make_service, make_appointment, future_day):
    doctor = make_doctor()
    empty = scheduling.create_schedule(doctor.id, future_day, "09:00", "10:00")
    scheduling.generate_slots(empty.id, slot_duration=30)
    used = scheduling.create_schedule(doctor.id, future_day, "13:00", "14:00")
    used_slot = scheduling.create_slot(used.id, "13:00", "13:30")
    make_appointment(
        make_patient(), make_service(), doctor=doctor, slot=used_slot, status=AppointmentStatus.CANCELLED
    )

    scheduling.delete_schedule(empty.id)
    assert db_session.query(Schedule).filter(Schedule.id == empty.id).first() is None
    assert db_session.query(Slot).filter(Slot.schedule_id == empty.id).count() == 0

    with pytest.raises(BadRequestError):
        scheduling.delete_schedule(used.id)


def test_available_slots_filtered_by_service(scheduling, make_doctor, make_service, make_slot, future_day):
    doctor = make_doctor()
    make_slot(doctor, future_day, "09:00", "09:30")
    make_slot(doctor, future_day, "10:00", "11:00")
    make_slot(doctor, future_day, "12:00", "13:00", is_available=False)
    long_visit = make_service(duration=60)

    _, all_open = scheduling.get_available_slots(doctor.id, future_day)
    _, long_enough = scheduling.get_available_slots(doctor.id, future_day, long_visit.id)

    assert [s.start_time for s in all_open] == ["09:00", "10:00"]
    assert [s.start_time for s in long_enough] == ["10:00"]


def test_doctor_day_slots_labels(
    scheduling, make_doctor, make_patient, make_service, make_slot, make_appointment, future_day
):
    doctor = make_doctor()
    booked = make_slot(doctor, future_day, "09:00", "09:30")
    make_slot(doctor, future_day, "10:00", "10:30")
    make_slot(doctor, future_day, "11:00", "11:30", is_available=False)
    patient = make_patient()
    make_appointment(patient, make_service(name="Checkup"), doctor=doctor, slot=booked, patient_notes="Fasting")

    day = scheduling.get_doctor_day_slots(doctor.id, future_day)

    assert [(d["start_time"], d["status"]) for d in day] == [
        ("09:00", "booked"),
        ("10:00", "available"),
        ("11:00", "blocked"),
    ]
    assert day[0]["appointment"]["patient_name"] == patient.full_name
    assert day[0]["appointment"]["service_name"] == "Checkup"
    assert day[0]["appointment"]["notes"] == "Fasting"


def test_doctor_day_slots_prefers_booked_duplicate(
    scheduling, make_doctor, make_patient, make_service, make_slot, make_appointment, future_day
):
    doctor = make_doctor()
    make_slot(doctor, future_day, "09:00", "09:30")
    booked_twin = make_slot(doctor, future_day, "09:00", "09:30")
    make_appointment(make_patient(), make_service(), doctor=doctor, slot=booked_twin)

    day = scheduling.get_doctor_day_slots(doctor.id, future_day)

    assert len(day) == 1
    assert day[0]["id"] == booked_twin.id
    assert day[0]["status"] == "booked"


def test_global_slots_dedup_and_midnight_order(scheduling, make_doctor, make_slot, future_day):
    first = make_doctor()
    second = make_doctor()
    make_slot(first, future_day, "22:00", "22:30")
    make_slot(second, future_day, "22:00", "22:30")
    make_slot(first, future_day, "00:30", "01:00")
    make_slot(second, future_day, "15:00", "15:30")
    make_slot(make_doctor(is_available=False), future_day, "16:00", "16:30")

    slots = scheduling.get_global_slots(future_day)

    assert [s["start_time"] for s in slots] == ["15:00", "22:00", "00:30"]
    assert all("name" in s["doctor"] for s in slots)


def test_global_slots_without_crossover_sorted_plainly(scheduling, make_doctor, make_slot, future_day):
    doctor = make_doctor()
    make_slot(doctor, future_day, "13:00", "13:30")
    make_slot(doctor, future_day, "09:00", "09:30")
    make_slot(doctor, future_day, "11:00", "11:30")

    assert [s["start_time"] for s in scheduling.get_global_slots(future_day)] == ["09:00", "11:00", "13:00"]
