"""
Appointment state machine.

    pending   -> confirmed | cancelled | no_show
    confirmed -> cancelled | completed | no_show
    cancelled, completed, no_show are terminal

Doctors and admins may otherwise move an open appointment to any other
status; patients may only cancel their own appointments. ``no_show`` is
refused for appointments that have not started yet.
"""
from sqlalchemy.orm import Session
from datetime import date, datetime, timedelta
from typing import Dict, FrozenSet, List, Optional, Tuple
import logging

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import (
    AlreadyTerminalError, FutureAppointmentError, InvalidTransitionError,
    NotFoundError, PastTimeError, SlotTakenError, UnauthorizedError
)
from ..core.security import Principal, UserRole
from ..models import Appointment, AppointmentStatus, Doctor
from .availability_service import configured_day_names
from .booking_ledger import BookingLedger
from .leave_calendar import LeaveCalendar
from .notifications import (
    LoggingNotificationSender, LoggingRatingRecalculator,
    NotificationSender, RatingRecalculator
)
from .weekly_template import DayNames

logger = logging.getLogger(__name__)

PENDING = AppointmentStatus.PENDING
CONFIRMED = AppointmentStatus.CONFIRMED
CANCELLED = AppointmentStatus.CANCELLED
COMPLETED = AppointmentStatus.COMPLETED
NO_SHOW = AppointmentStatus.NO_SHOW

# (current status, acting as staff) -> reachable statuses
TRANSITIONS: Dict[Tuple[AppointmentStatus, bool], FrozenSet[AppointmentStatus]] = {
    (PENDING, False): frozenset({CANCELLED}),
    (CONFIRMED, False): frozenset({CANCELLED}),
    (PENDING, True): frozenset({CONFIRMED, CANCELLED, COMPLETED, NO_SHOW}),
    (CONFIRMED, True): frozenset({PENDING, CANCELLED, COMPLETED, NO_SHOW}),
}


def allowed_transitions(current: AppointmentStatus, as_staff: bool) -> FrozenSet[AppointmentStatus]:
    return TRANSITIONS.get((current, as_staff), frozenset())


class AppointmentLifecycle:
    def __init__(
        self,
        db: Session,
        clock: Clock,
        notifier: Optional[NotificationSender] = None,
        ratings: Optional[RatingRecalculator] = None,
        day_names: Optional[DayNames] = None
    ):
        self.db = db
        self.clock = clock
        self.notifier = notifier or LoggingNotificationSender()
        self.ratings = ratings or LoggingRatingRecalculator()
        self.ledger = BookingLedger(db, clock, day_names or configured_day_names())
        self.leaves = LeaveCalendar(db, self.ledger)

    def book(self, doctor_id: int, patient_id: int, instant: datetime) -> Appointment:
        """Create a pending appointment for ``instant``."""
        if instant < self.clock.now():
            raise PastTimeError()
        if self.leaves.is_on_leave(doctor_id, instant.date()):
            raise SlotTakenError("The doctor is on leave on this date")

        appointment = self.ledger.reserve(doctor_id, patient_id, instant)
        logger.info(
            f"Appointment {appointment.id} booked: doctor {doctor_id}, "
            f"patient {patient_id}, at {instant.isoformat()}"
        )
        self._notify("appointment_booked", appointment)
        return appointment

    def transition(
        self,
        appointment_id: int,
        new_status: AppointmentStatus,
        principal: Principal,
        reason: Optional[str] = None
    ) -> Appointment:
        appointment = self.ledger.get(appointment_id)
        if not appointment:
            raise NotFoundError("Appointment not found")

        self._check_ownership(appointment, principal)

        if not principal.is_staff:
            if new_status == NO_SHOW:
                raise UnauthorizedError("Patients cannot mark appointments as no-show")
            if new_status != CANCELLED:
                raise UnauthorizedError("Patients can only cancel their appointments")

        if appointment.status.is_terminal:
            raise AlreadyTerminalError(
                f"Appointment is already {appointment.status.value}"
            )
        if new_status == NO_SHOW and appointment.date_heure > self.clock.now():
            raise FutureAppointmentError()
        if new_status not in allowed_transitions(appointment.status, principal.is_staff):
            raise InvalidTransitionError(
                f"Cannot move appointment from {appointment.status.value} to {new_status.value}"
            )

        previous = appointment.status
        # Only a no-show carries a reason
        appointment = self.ledger.save_status(
            appointment, new_status, reason if new_status == NO_SHOW else None
        )
        logger.info(
            f"Appointment {appointment.id}: {previous.value} -> {new_status.value} "
            f"by {principal.role.value} {principal.user_id}"
        )

        if new_status == NO_SHOW:
            self._after_no_show(appointment)
        return appointment

    def mark_no_show(
        self,
        appointment_id: int,
        principal: Principal,
        reason: Optional[str] = None
    ) -> Appointment:
        if not principal.is_staff:
            raise UnauthorizedError("Only doctors and admins can mark appointments as no-show")

        appointment = self.transition(appointment_id, NO_SHOW, principal, reason)
        if reason:
            logger.info(
                f"Appointment {appointment.id} marked as no-show by {principal.user_id}: {reason}"
            )
        return appointment

    def sweep_no_shows(self, threshold_minutes: Optional[int] = None) -> int:
        """Mark open appointments more than ``threshold_minutes`` past as no-show.

        Each appointment is committed on its own; a failed status change is
        logged and the remaining batch is still processed. Notification and
        rating failures never undo a committed mark. Returns the number marked.
        """
        if threshold_minutes is None:
            threshold_minutes = settings.NO_SHOW_THRESHOLD_MINUTES
        cutoff = self.clock.now() - timedelta(minutes=threshold_minutes)

        logger.info("Starting no-show appointments check")
        marked = 0
        for appointment in self.ledger.stale_active(cutoff):
            appointment_id = appointment.id
            try:
                self.ledger.save_status(appointment, NO_SHOW)
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to mark appointment {appointment_id} as no-show: {str(e)}")
                continue

            marked += 1
            logger.info(
                f"Appointment {appointment_id} marked as no-show "
                f"(doctor {appointment.doctor_id}, patient {appointment.patient_id})"
            )
            self._after_no_show(appointment)

        logger.info(f"No-show appointments check completed, marked {marked}")
        return marked

    def send_reminders(self, lead_hours: Optional[int] = None) -> int:
        """Remind patients of open appointments starting within ``lead_hours``.

        An appointment is reminded once; if the sender raises, it is left for
        the next run. Returns the number of reminders sent.
        """
        if lead_hours is None:
            lead_hours = settings.REMINDER_LEAD_HOURS
        now = self.clock.now()

        sent = 0
        for appointment in self.ledger.due_reminders(now, now + timedelta(hours=lead_hours)):
            appointment_id = appointment.id
            try:
                self.notifier.appointment_reminder(appointment)
                self.ledger.mark_reminded(appointment, now)
                sent += 1
            except Exception as e:
                self.db.rollback()
                logger.error(f"Failed to send reminder for appointment {appointment_id}: {str(e)}")

        logger.info(f"Appointment reminders sent: {sent}")
        return sent

    def list_for(
        self,
        principal: Principal,
        doctor_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        on_date: Optional[date] = None,
        status: Optional[AppointmentStatus] = None
    ) -> List[Appointment]:
        """Appointments visible to the principal, with admin-only id filters."""
        if principal.role == UserRole.PATIENT:
            doctor_id, patient_id = None, principal.user_id
        elif principal.role == UserRole.DOCTOR:
            doctor = self._doctor_for_user(principal.user_id)
            if not doctor:
                raise NotFoundError("Doctor profile not found")
            doctor_id, patient_id = doctor.id, None

        return self.ledger.search(
            doctor_id=doctor_id,
            patient_id=patient_id,
            on_date=on_date,
            status=status
        )

    def no_show_stats(self, doctor_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None) -> dict:
        end = end or self.clock.now()
        start = start or end - timedelta(days=30)
        stats = self.ledger.no_show_stats(doctor_id, start, end)
        stats["period"] = {"start_date": start.isoformat(), "end_date": end.isoformat()}
        return stats

    def _check_ownership(self, appointment: Appointment, principal: Principal) -> None:
        if principal.role == UserRole.PATIENT and appointment.patient_id != principal.user_id:
            raise UnauthorizedError()
        if principal.role == UserRole.DOCTOR:
            doctor = self._doctor_for_user(principal.user_id)
            if not doctor or appointment.doctor_id != doctor.id:
                raise UnauthorizedError()

    def _doctor_for_user(self, user_id: int) -> Optional[Doctor]:
        return self.db.query(Doctor).filter(Doctor.user_id == user_id).first()

    def _after_no_show(self, appointment: Appointment) -> None:
        self._notify("appointment_no_show", appointment)
        try:
            self.ratings.recalculate(appointment.doctor_id)
        except Exception as e:
            logger.error(f"Rating recalculation failed for doctor {appointment.doctor_id}: {str(e)}")

    def _notify(self, event: str, appointment: Appointment) -> None:
        try:
            getattr(self.notifier, event)(appointment)
        except Exception as e:
            logger.error(f"Notification {event} failed for appointment {appointment.id}: {str(e)}")
