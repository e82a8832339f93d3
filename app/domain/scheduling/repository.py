"""Scheduling repository - Database operations for schedules and slots"""

from datetime import date
from typing import Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session, joinedload

from ...models import ACTIVE_STATUSES, Appointment, Doctor, Schedule, Slot


def _overlaps(start_col, end_col, start_time: str, end_time: str):
    """Interval overlap on HH:MM strings (zero-padded, so lexical order is time order)"""
    return or_(
        and_(start_col <= start_time, end_col > start_time),
        and_(start_col < end_time, end_col >= end_time),
        and_(start_col >= start_time, end_col <= end_time),
    )


class SchedulingRepository:
    """Repository for schedule and slot database operations"""

    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()

    @staticmethod
    def get_schedule(db: Session, schedule_id: int) -> Optional[Schedule]:
        return db.query(Schedule).filter(Schedule.id == schedule_id).first()

    @staticmethod
    def get_slot(db: Session, slot_id: int) -> Optional[Slot]:
        return db.query(Slot).filter(Slot.id == slot_id).first()

    @staticmethod
    def find_conflicting_schedule(
        db: Session, doctor_id: int, day: date, start_time: str, end_time: str
    ) -> Optional[Schedule]:
        return (
            db.query(Schedule)
            .filter(
                Schedule.doctor_id == doctor_id,
                Schedule.date == day,
                _overlaps(Schedule.start_time, Schedule.end_time, start_time, end_time),
            )
            .first()
        )

    @staticmethod
    def find_conflicting_slot(
        db: Session,
        schedule_id: int,
        start_time: str,
        end_time: str,
        exclude_slot_id: Optional[int] = None,
    ) -> Optional[Slot]:
        query = db.query(Slot).filter(
            Slot.schedule_id == schedule_id,
            _overlaps(Slot.start_time, Slot.end_time, start_time, end_time),
        )
        if exclude_slot_id is not None:
            query = query.filter(Slot.id != exclude_slot_id)
        return query.first()

    @staticmethod
    def slot_has_active_appointment(db: Session, slot_id: int) -> bool:
        return (
            db.query(Appointment.id)
            .filter(Appointment.slot_id == slot_id, Appointment.status.in_(ACTIVE_STATUSES))
            .first()
            is not None
        )

    @staticmethod
    def schedule_has_appointments(db: Session, schedule_id: int) -> bool:
        return (
            db.query(Appointment.id)
            .join(Slot, Appointment.slot_id == Slot.id)
            .filter(Slot.schedule_id == schedule_id)
            .first()
            is not None
        )

    @staticmethod
    def get_doctor_schedules_for_date(
        db: Session, doctor_id: int, day: date, only_available: bool = False
    ) -> list[Schedule]:
        query = db.query(Schedule).filter(Schedule.doctor_id == doctor_id, Schedule.date == day)
        if only_available:
            query = query.filter(Schedule.is_available.is_(True))
        return query.order_by(Schedule.start_time.asc()).all()

    @staticmethod
    def get_available_slots_for_doctor(db: Session, doctor_id: int, day: date) -> list[Slot]:
        return (
            db.query(Slot)
            .join(Schedule, Slot.schedule_id == Schedule.id)
            .filter(
                Schedule.doctor_id == doctor_id,
                Schedule.date == day,
                Schedule.is_available.is_(True),
                Slot.is_available.is_(True),
            )
            .order_by(Slot.start_time.asc())
            .all()
        )

    @staticmethod
    def get_slots_for_doctor_day(db: Session, doctor_id: int, day: date) -> list[Slot]:
        return (
            db.query(Slot)
            .join(Schedule, Slot.schedule_id == Schedule.id)
            .options(joinedload(Slot.appointments))
            .filter(Schedule.doctor_id == doctor_id, Schedule.date == day)
            .order_by(Slot.start_time.asc())
            .all()
        )

    @staticmethod
    def get_available_slots_for_date(db: Session, day: date) -> list[Slot]:
        return (
            db.query(Slot)
            .join(Schedule, Slot.schedule_id == Schedule.id)
            .options(joinedload(Slot.schedule).joinedload(Schedule.doctor))
            .filter(Schedule.date == day, Slot.is_available.is_(True))
            .order_by(Slot.start_time.asc())
            .all()
        )

    @staticmethod
    def add(db: Session, obj):
        db.add(obj)
        db.flush()
        return obj
