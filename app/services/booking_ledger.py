from sqlalchemy import func, case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from datetime import date, datetime, time, timedelta
from typing import List, Optional, Set
import logging

from ..core.clock import Clock
from ..core.exceptions import NotFoundError, SlotTakenError
from ..models import Appointment, AppointmentStatus, Doctor, ACTIVE_STATUSES, TERMINAL_STATUSES
from .weekly_template import DayNames, WeeklyTemplate

logger = logging.getLogger(__name__)


def day_bounds(day: date):
    """Half-open [00:00, next day 00:00) window of a date."""
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class BookingLedger:
    """Single writer of appointment rows.

    Every status change and every new booking goes through this class; the
    other services only read appointments through it.
    """

    def __init__(self, db: Session, clock: Clock, day_names: Optional[DayNames] = None):
        self.db = db
        self.clock = clock
        self.day_names = day_names or DayNames()

    def booked_times(self, doctor_id: int, day: date) -> Set[str]:
        """Time-of-day of every appointment still holding a slot on that date."""
        start, end = day_bounds(day)
        rows = self.db.query(Appointment.date_heure).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date_heure >= start,
            Appointment.date_heure < end,
            Appointment.status.notin_(TERMINAL_STATUSES)
        ).all()
        return {row.date_heure.strftime("%H:%M") for row in rows}

    def reserve(self, doctor_id: int, patient_id: int, instant: datetime) -> Appointment:
        """Atomically book ``instant`` for the doctor or raise SlotTakenError."""
        try:
            # Row lock on the doctor serialises concurrent bookings (no-op on SQLite)
            doctor = self.db.query(Doctor).filter(
                Doctor.id == doctor_id
            ).with_for_update().first()
            if not doctor:
                self.db.rollback()
                raise NotFoundError("Doctor not found")

            if self._active_at(doctor_id, instant) is not None:
                self.db.rollback()
                raise SlotTakenError()

            appointment = Appointment(
                doctor_id=doctor_id,
                patient_id=patient_id,
                date_heure=instant,
                status=AppointmentStatus.PENDING
            )
            self.db.add(appointment)
            self.db.commit()
        except IntegrityError:
            # The partial unique index caught a concurrent booking
            self.db.rollback()
            logger.warning(
                f"Concurrent booking rejected for doctor {doctor_id} at {instant.isoformat()}"
            )
            raise SlotTakenError()

        self.db.refresh(appointment)
        return appointment

    def has_active_appointment_in_range(self, doctor_id: int, start: datetime, end: datetime) -> bool:
        """True if a pending/confirmed appointment falls within [start, end]."""
        return self.db.query(
            self.db.query(Appointment).filter(
                Appointment.doctor_id == doctor_id,
                Appointment.status.in_(ACTIVE_STATUSES),
                Appointment.date_heure >= start,
                Appointment.date_heure <= end
            ).exists()
        ).scalar()

    def appointments_fit_schedule(self, doctor_id: int, template: WeeklyTemplate) -> List[Appointment]:
        """Upcoming active appointments that would fall outside ``template``.

        Every appointment from today on is re-checked against the ranges of
        its weekday. An empty result means the template can be applied.
        """
        start_of_today = datetime.combine(self.clock.today(), time.min)
        upcoming = self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.date_heure >= start_of_today
        ).order_by(Appointment.date_heure).all()

        conflicts = []
        for appointment in upcoming:
            day = self.day_names.key_for_date(appointment.date_heure.date())
            if not template.contains(day, appointment.date_heure.time()):
                conflicts.append(appointment)
        return conflicts

    def get(self, appointment_id: int) -> Optional[Appointment]:
        return self.db.query(Appointment).filter(Appointment.id == appointment_id).first()

    def save_status(
        self,
        appointment: Appointment,
        new_status: AppointmentStatus,
        reason: Optional[str] = None
    ) -> Appointment:
        appointment.status = new_status
        if reason is not None:
            appointment.no_show_reason = reason
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def stale_active(self, cutoff: datetime) -> List[Appointment]:
        """Active appointments whose start is before ``cutoff``."""
        return self.db.query(Appointment).filter(
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.date_heure < cutoff
        ).order_by(Appointment.date_heure).all()

    def due_reminders(self, start: datetime, end: datetime) -> List[Appointment]:
        """Active, not yet reminded appointments starting within [start, end]."""
        return self.db.query(Appointment).filter(
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.reminder_sent_at.is_(None),
            Appointment.date_heure >= start,
            Appointment.date_heure <= end
        ).order_by(Appointment.date_heure).all()

    def mark_reminded(self, appointment: Appointment, at: datetime) -> None:
        appointment.reminder_sent_at = at
        self.db.commit()

    def search(
        self,
        doctor_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        on_date: Optional[date] = None,
        status: Optional[AppointmentStatus] = None
    ) -> List[Appointment]:
        query = self.db.query(Appointment)
        if doctor_id is not None:
            query = query.filter(Appointment.doctor_id == doctor_id)
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if on_date is not None:
            start, end = day_bounds(on_date)
            query = query.filter(Appointment.date_heure >= start, Appointment.date_heure < end)
        if status is not None:
            query = query.filter(Appointment.status == status)
        return query.order_by(Appointment.date_heure.asc()).all()

    def no_show_stats(self, doctor_id: int, start: datetime, end: datetime) -> dict:
        window = (
            Appointment.doctor_id == doctor_id,
            Appointment.date_heure >= start,
            Appointment.date_heure <= end,
        )

        def count_of(status: AppointmentStatus):
            return func.coalesce(
                func.sum(case((Appointment.status == status, 1), else_=0)), 0
            )

        totals = self.db.query(
            func.count(Appointment.id),
            count_of(AppointmentStatus.NO_SHOW),
            count_of(AppointmentStatus.COMPLETED),
            count_of(AppointmentStatus.CANCELLED)
        ).filter(*window).one()
        # SUM comes back as NUMERIC on PostgreSQL
        total, no_shows, completed, cancelled = (int(value) for value in totals)

        repeat_rows = self.db.query(
            Appointment.patient_id,
            func.count(Appointment.id).label("no_show_count")
        ).filter(
            *window,
            Appointment.status == AppointmentStatus.NO_SHOW
        ).group_by(
            Appointment.patient_id
        ).having(
            func.count(Appointment.id) > 1
        ).order_by(Appointment.patient_id).all()

        return {
            "summary": {
                "total_appointments": total,
                "no_shows": no_shows,
                "completed": completed,
                "cancelled": cancelled,
                "no_show_rate": round(no_shows / total * 100, 2) if total else 0,
            },
            "repeat_no_shows": [
                {"patient_id": row.patient_id, "no_show_count": row.no_show_count}
                for row in repeat_rows
            ],
        }

    def _active_at(self, doctor_id: int, instant: datetime) -> Optional[Appointment]:
        return self.db.query(Appointment).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.date_heure == instant,
            Appointment.status.in_(ACTIVE_STATUSES)
        ).first()
