"""
Appointments Repository Layer

Provides data access operations for appointments.
"""

from typing import Optional, List, Tuple
from datetime import date
import uuid

from sqlalchemy import and_

from app.domain.appointments.models import (
    Appointment, AppointmentStatus, BookingType, PaymentStatus, SLOT_HOLDING_STATUSES
)


class AppointmentRepository:
    """Repository for appointment data access operations"""

    def __init__(self, db):
        self.db = db

    def get_by_id(self, appointment_id: uuid.UUID) -> Optional[Appointment]:
        """Get appointment by ID"""
        return self.db.query(Appointment).filter(Appointment.id == appointment_id).first()

    def save(self, appointment: Appointment) -> Appointment:
        """Persist changes to an appointment"""
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def find_slot_holder(
        self,
        doctor_id: uuid.UUID,
        appointment_date: date,
        appointment_time: str
    ) -> Optional[Appointment]:
        """Appointment currently holding a doctor's slot, if any"""
        query = self.db.query(Appointment).filter(
            and_(
                Appointment.doctor_id == doctor_id,
                Appointment.appointment_date == appointment_date,
                Appointment.appointment_time == appointment_time,
                Appointment.status.in_(SLOT_HOLDING_STATUSES)
            )
        )
        return query.first()

    def list_appointments(
        self,
        doctor_id: Optional[uuid.UUID] = None,
        patient_id: Optional[uuid.UUID] = None,
        status: Optional[AppointmentStatus] = None,
        booking_type: Optional[BookingType] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        skip: int = 0,
        limit: int = 20
    ) -> Tuple[List[Appointment], int]:
        """List appointments with filters, newest slot first"""
        query = self.db.query(Appointment)

        if doctor_id:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if patient_id:
            query = query.filter(Appointment.patient_id == patient_id)
        if status:
            query = query.filter(Appointment.status == status)
        if booking_type:
            query = query.filter(Appointment.booking_type == booking_type)
        if date_from:
            query = query.filter(Appointment.appointment_date >= date_from)
        if date_to:
            query = query.filter(Appointment.appointment_date <= date_to)

        total = query.count()
        appointments = query.order_by(
            Appointment.appointment_date.desc(),
            Appointment.appointment_time.desc()
        ).offset(skip).limit(limit).all()

        return appointments, total

    def confirmed_online_between(self, date_from: date, date_to: date) -> List[Appointment]:
        """Confirmed online appointments on calendar dates in [date_from, date_to]"""
        return self.db.query(Appointment).filter(
            and_(
                Appointment.status == AppointmentStatus.CONFIRMED,
                Appointment.booking_type == BookingType.ONLINE,
                Appointment.appointment_date >= date_from,
                Appointment.appointment_date <= date_to
            )
        ).all()

    def paid_confirmed_online_for_patient(self, patient_id: uuid.UUID) -> List[Appointment]:
        """Reschedule candidates before the time and attendance checks"""
        return self.db.query(Appointment).filter(
            and_(
                Appointment.patient_id == patient_id,
                Appointment.status == AppointmentStatus.CONFIRMED,
                Appointment.payment_status == PaymentStatus.PAID,
                Appointment.booking_type == BookingType.ONLINE
            )
        ).order_by(Appointment.appointment_date.desc()).all()
