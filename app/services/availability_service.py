from sqlalchemy.orm import Session
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional
import logging

from ..core.clock import Clock
from ..core.config import settings
from ..core.exceptions import ConflictError, NotFoundError, ValidationFailed
from ..models import Doctor, Leave
from . import slot_generator
from .booking_ledger import BookingLedger
from .leave_calendar import LeaveCalendar
from .weekly_template import DayNames, WeeklyTemplate

logger = logging.getLogger(__name__)


def configured_day_names() -> DayNames:
    return DayNames(settings.SCHEDULE_DAY_LOCALE, strict=settings.STRICT_DAY_NAMES)


@dataclass
class SlotsResult:
    slots: List[str]
    meta: Dict = field(default_factory=dict)


class AvailabilityService:
    def __init__(self, db: Session, clock: Clock, day_names: Optional[DayNames] = None):
        self.db = db
        self.clock = clock
        self.day_names = day_names or configured_day_names()
        self.ledger = BookingLedger(db, clock, self.day_names)
        self.leaves = LeaveCalendar(db, self.ledger)

    def get_doctor(self, doctor_id: int) -> Doctor:
        doctor = self.db.query(Doctor).filter(Doctor.id == doctor_id).first()
        if not doctor:
            raise NotFoundError("Doctor not found")
        return doctor

    def get_available_slots(self, doctor_id: int, day: date) -> SlotsResult:
        """Free slots of a doctor on a date: template slots minus booked ones."""
        doctor = self.get_doctor(doctor_id)
        day_key = self.day_names.key_for_date(day)
        meta = {
            "doctor_id": doctor.id,
            "date": day.isoformat(),
            "day_of_week": day_key,
        }

        if self.leaves.is_on_leave(doctor.id, day):
            logger.info(f"No slots available due to leave: doctor {doctor.id} on {day}")
            meta.update(total_slots=0, booked_slots=0, available_slots=0, is_on_leave=True)
            return SlotsResult(slots=[], meta=meta)

        template = WeeklyTemplate.from_stored(doctor.schedule)
        candidates = slot_generator.generate(
            template, day_key, day, doctor.slot_duration or settings.SLOT_DURATION_MINUTES
        )
        booked = self.ledger.booked_times(doctor.id, day)
        available = [slot for slot in candidates if slot not in booked]

        meta.update(
            total_slots=len(candidates),
            booked_slots=len(booked),
            available_slots=len(available),
            is_on_leave=False,
        )
        return SlotsResult(slots=available, meta=meta)

    def update_schedule(self, doctor_id: int, raw_schedule) -> Dict[str, List[str]]:
        """Replace a doctor's weekly template if no upcoming booking falls outside it."""
        doctor = self.get_doctor(doctor_id)
        template = WeeklyTemplate.validate(raw_schedule, self.day_names)

        conflicts = self.ledger.appointments_fit_schedule(doctor.id, template)
        if conflicts:
            logger.warning(
                f"Schedule update for doctor {doctor.id} rejected: "
                f"{len(conflicts)} appointment(s) outside the new schedule"
            )
            raise ConflictError(
                f"The new schedule conflicts with {len(conflicts)} existing appointment(s)"
            )

        doctor.schedule = template.to_dict()
        self.db.commit()
        self.db.refresh(doctor)

        logger.info(f"Schedule updated for doctor {doctor.id}")
        return doctor.schedule

    def create_leave(
        self,
        doctor_id: int,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None
    ) -> Leave:
        doctor = self.get_doctor(doctor_id)
        if end_date < start_date:
            raise ValidationFailed("The end date must be on or after the start date")
        if start_date < self.clock.today():
            raise ValidationFailed("The start date must be today or a future date")

        return self.leaves.add(doctor.id, start_date, end_date, reason)

    def delete_leave(self, leave_id: int, doctor_id: int) -> None:
        self.leaves.remove(leave_id, doctor_id)

    def get_availability(self, doctor_id: int) -> Dict:
        """Stored schedule plus leaves that have not ended yet."""
        doctor = self.get_doctor(doctor_id)
        return {
            "schedule": doctor.schedule or {},
            "leaves": self.leaves.upcoming(doctor.id, self.clock.today()),
        }
