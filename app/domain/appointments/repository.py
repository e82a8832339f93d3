"""Appointment repository - Database operations for appointments"""

from datetime import date
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session, joinedload

from ...models import (
    ACTIVE_STATUSES,
    Appointment,
    Doctor,
    Patient,
    Schedule,
    Service,
    Slot,
)


class AppointmentRepository:
    """Repository for appointment database operations"""

    # ------------------------------------------------------------------
    # Referenced entities
    # ------------------------------------------------------------------

    @staticmethod
    def get_patient(db: Session, patient_id: int) -> Optional[Patient]:
        return db.query(Patient).filter(Patient.id == patient_id).first()

    @staticmethod
    def get_doctor(db: Session, doctor_id: int) -> Optional[Doctor]:
        return db.query(Doctor).filter(Doctor.id == doctor_id).first()

    @staticmethod
    def get_service(db: Session, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def get_services(db: Session, service_ids: list[int]) -> list[Service]:
        if not service_ids:
            return []
        return db.query(Service).filter(Service.id.in_(service_ids)).all()

    @staticmethod
    def get_slot(db: Session, slot_id: int) -> Optional[Slot]:
        return (
            db.query(Slot)
            .options(joinedload(Slot.schedule))
            .filter(Slot.id == slot_id)
            .first()
        )

    @staticmethod
    def lock_slot(db: Session, slot_id: int) -> Optional[Slot]:
        """Re-read a slot with a row lock for the rest of the transaction"""
        return (
            db.query(Slot)
            .filter(Slot.id == slot_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    # ------------------------------------------------------------------
    # Appointments
    # ------------------------------------------------------------------

    @staticmethod
    def get_appointment(db: Session, appointment_id: int) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .options(
                joinedload(Appointment.patient),
                joinedload(Appointment.doctor),
                joinedload(Appointment.service),
                joinedload(Appointment.slot),
            )
            .filter(Appointment.id == appointment_id)
            .first()
        )

    @staticmethod
    def find_active_at(
        db: Session,
        doctor_id: int,
        appointment_date: date,
        appointment_time: str,
        exclude_appointment_id: Optional[int] = None,
    ) -> Optional[Appointment]:
        """An appointment already holding this doctor/date/time, if any"""
        query = db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.appointment_date == appointment_date,
            Appointment.appointment_time == appointment_time,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.first()

    @staticmethod
    def slot_held_by_other(db: Session, slot_id: int, appointment_id: Optional[int]) -> bool:
        query = db.query(Appointment.id).filter(
            Appointment.slot_id == slot_id,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        if appointment_id is not None:
            query = query.filter(Appointment.id != appointment_id)
        return query.first() is not None

    @staticmethod
    def add(db: Session, appointment: Appointment) -> Appointment:
        db.add(appointment)
        db.flush()
        return appointment

    @staticmethod
    def base_query(db: Session) -> Query:
        return db.query(Appointment).options(
            joinedload(Appointment.patient),
            joinedload(Appointment.doctor),
            joinedload(Appointment.service),
        )

    @staticmethod
    def apply_filters(
        query: Query,
        patient_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        service_id: Optional[int] = None,
        status: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        search: Optional[str] = None,
    ) -> Query:
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if service_id is not None:
            query = query.filter(Appointment.service_id == service_id)
        if status:
            query = query.filter(Appointment.status == status)
        if start_date:
            query = query.filter(Appointment.appointment_date >= start_date)
        if end_date:
            query = query.filter(Appointment.appointment_date <= end_date)
        if search:
            pattern = f"%{search.strip()}%"
            query = (
                query.join(Patient, Appointment.patient_id == Patient.id)
                .outerjoin(Doctor, Appointment.doctor_id == Doctor.id)
                .join(Service, Appointment.service_id == Service.id)
                .filter(
                    or_(
                        Patient.first_name.ilike(pattern),
                        Patient.last_name.ilike(pattern),
                        Patient.email.ilike(pattern),
                        Doctor.first_name.ilike(pattern),
                        Doctor.last_name.ilike(pattern),
                        Service.name.ilike(pattern),
                    )
                )
            )
        return query

    @staticmethod
    def paginate(query: Query, page: int, limit: int) -> tuple[list[Appointment], int]:
        total = query.order_by(None).count()
        items = (
            query.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def get_upcoming(
        db: Session,
        from_date: date,
        patient_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
    ) -> list[Appointment]:
        query = AppointmentRepository.base_query(db).filter(
            Appointment.appointment_date >= from_date,
            Appointment.status.in_(ACTIVE_STATUSES),
        )
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        return query.order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc()).all()

    @staticmethod
    def count_by_status(
        db: Session,
        doctor_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> dict[str, int]:
        query = db.query(Appointment.status, func.count(Appointment.id))
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if start_date:
            query = query.filter(Appointment.appointment_date >= start_date)
        if end_date:
            query = query.filter(Appointment.appointment_date <= end_date)
        return {status: count for status, count in query.group_by(Appointment.status).all()}

    @staticmethod
    def count_on_date(db: Session, day: date, doctor_id: Optional[int] = None) -> int:
        query = db.query(func.count(Appointment.id)).filter(Appointment.appointment_date == day)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        return query.scalar() or 0

    # ------------------------------------------------------------------
    # Unassigned appointments
    # ------------------------------------------------------------------

    @staticmethod
    def find_unassigned(
        db: Session, status: Optional[str], page: int, limit: int
    ) -> list[Appointment]:
        query = AppointmentRepository.base_query(db).filter(
            Appointment.doctor_id.is_(None),
            Appointment.slot_id.is_(None),
        )
        if status:
            query = query.filter(Appointment.status == status)
        return (
            query.order_by(Appointment.created_at.desc(), Appointment.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )

    @staticmethod
    def find_open_slots_at(db: Session, day: date, start_time: str) -> list[Slot]:
        """Open slots starting at a time on a date, across active and available doctors"""
        return (
            db.query(Slot)
            .join(Schedule, Slot.schedule_id == Schedule.id)
            .join(Doctor, Schedule.doctor_id == Doctor.id)
            .options(joinedload(Slot.schedule).joinedload(Schedule.doctor))
            .filter(
                Schedule.date == day,
                Slot.start_time == start_time,
                Slot.is_available.is_(True),
                Doctor.is_active.is_(True),
                Doctor.is_available.is_(True),
            )
            .order_by(Doctor.last_name.asc(), Doctor.first_name.asc())
            .all()
        )
