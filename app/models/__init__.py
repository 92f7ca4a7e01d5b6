# Models package (re-export for stable imports)
from .doctor import Doctor
from .leave import Leave
from .appointment import Appointment, AppointmentStatus, ACTIVE_STATUSES, TERMINAL_STATUSES

__all__ = [
    "Doctor",
    "Leave",
    "Appointment",
    "AppointmentStatus",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
]
