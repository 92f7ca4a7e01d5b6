from sqlalchemy.orm import Session
from datetime import date, datetime, time
from typing import List, Optional
import logging

from ..core.exceptions import ConflictError, NotFoundError, NotOwnerError
from ..models import Leave
from .booking_ledger import BookingLedger

logger = logging.getLogger(__name__)


class LeaveCalendar:
    """Leave periods of doctors. Only stores intervals; bookings live in the ledger."""

    def __init__(self, db: Session, ledger: BookingLedger):
        self.db = db
        self.ledger = ledger

    def is_on_leave(self, doctor_id: int, day: date) -> bool:
        return self.db.query(
            self.db.query(Leave).filter(
                Leave.doctor_id == doctor_id,
                Leave.start_date <= day,
                Leave.end_date >= day
            ).exists()
        ).scalar()

    def overlaps_range(self, doctor_id: int, start: datetime, end: datetime) -> bool:
        return self.ledger.has_active_appointment_in_range(doctor_id, start, end)

    def add(
        self,
        doctor_id: int,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None
    ) -> Leave:
        """Persist a leave unless an active appointment falls on one of its days."""
        check_from = datetime.combine(start_date, time.min)
        check_until = datetime.combine(end_date, time.max)

        if self.overlaps_range(doctor_id, check_from, check_until):
            logger.warning(
                f"Leave creation conflicts for doctor {doctor_id}: {start_date} - {end_date}"
            )
            raise ConflictError("The leave period conflicts with existing appointments")

        leave = Leave(
            doctor_id=doctor_id,
            start_date=start_date,
            end_date=end_date,
            reason=reason
        )
        self.db.add(leave)
        self.db.commit()
        self.db.refresh(leave)

        logger.info(f"Leave {leave.id} created for doctor {doctor_id}")
        return leave

    def remove(self, leave_id: int, requesting_doctor_id: int) -> None:
        leave = self.db.query(Leave).filter(Leave.id == leave_id).first()
        if not leave:
            raise NotFoundError("Leave not found")
        if leave.doctor_id != requesting_doctor_id:
            raise NotOwnerError()

        self.db.delete(leave)
        self.db.commit()

        logger.info(f"Leave {leave_id} deleted for doctor {requesting_doctor_id}")

    def upcoming(self, doctor_id: int, today: date) -> List[Leave]:
        return self.db.query(Leave).filter(
            Leave.doctor_id == doctor_id,
            Leave.end_date >= today
        ).order_by(Leave.start_date).all()
