"""Booking repository - Database operations for booking requests"""

from datetime import date, datetime
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Query, Session, joinedload

from ...models import Booking, BookingStatus, UrgencyLevel

URGENCY_RANK = case(
    (Booking.urgency == UrgencyLevel.EMERGENCY.value, 2),
    (Booking.urgency == UrgencyLevel.URGENT.value, 1),
    else_=0,
)


class BookingRepository:
    """Repository for booking request database operations"""

    @staticmethod
    def get_booking(db: Session, booking_id: int) -> Optional[Booking]:
        return db.query(Booking).filter(Booking.id == booking_id).first()

    @staticmethod
    def add(db: Session, booking: Booking) -> Booking:
        db.add(booking)
        db.flush()
        return booking

    @staticmethod
    def find_pending_between(db: Session, patient_id: int, doctor_id: int) -> Optional[Booking]:
        return (
            db.query(Booking)
            .filter(
                Booking.patient_id == patient_id,
                Booking.doctor_id == doctor_id,
                Booking.status == BookingStatus.PENDING.value,
            )
            .first()
        )

    @staticmethod
    def base_query(db: Session) -> Query:
        return db.query(Booking).options(
            joinedload(Booking.patient),
            joinedload(Booking.doctor),
            joinedload(Booking.service),
        )

    @staticmethod
    def apply_filters(
        query: Query,
        patient_id: Optional[int] = None,
        doctor_id: Optional[int] = None,
        service_id: Optional[int] = None,
        status: Optional[str] = None,
        urgency: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Query:
        if patient_id is not None:
            query = query.filter(Booking.patient_id == patient_id)
        if doctor_id is not None:
            query = query.filter(Booking.doctor_id == doctor_id)
        if service_id is not None:
            query = query.filter(Booking.service_id == service_id)
        if status:
            query = query.filter(Booking.status == status)
        if urgency:
            query = query.filter(Booking.urgency == urgency)
        if start_date:
            query = query.filter(Booking.preferred_date >= start_date)
        if end_date:
            query = query.filter(Booking.preferred_date <= end_date)
        return query

    @staticmethod
    def paginate(query: Query, page: int, limit: int) -> tuple[list[Booking], int]:
        total = query.order_by(None).count()
        items = (
            query.order_by(Booking.requested_at.desc(), Booking.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    @staticmethod
    def get_pending_for_doctor(db: Session, doctor_id: int) -> list[Booking]:
        """Most urgent first, then oldest request first"""
        return (
            BookingRepository.base_query(db)
            .filter(Booking.doctor_id == doctor_id, Booking.status == BookingStatus.PENDING.value)
            .order_by(URGENCY_RANK.desc(), Booking.requested_at.asc(), Booking.id.asc())
            .all()
        )

    @staticmethod
    def count_by_status(
        db: Session,
        doctor_id: Optional[int] = None,
        requested_from: Optional[datetime] = None,
        requested_before: Optional[datetime] = None,
    ) -> dict[str, int]:
        query = db.query(Booking.status, func.count(Booking.id))
        if doctor_id is not None:
            query = query.filter(Booking.doctor_id == doctor_id)
        if requested_from:
            query = query.filter(Booking.requested_at >= requested_from)
        if requested_before:
            query = query.filter(Booking.requested_at < requested_before)
        return dict(query.group_by(Booking.status).all())

    @staticmethod
    def get_overdue_pending(db: Session, now: datetime) -> list[Booking]:
        return (
            db.query(Booking)
            .filter(Booking.status == BookingStatus.PENDING.value, Booking.expires_at < now)
            .all()
        )
