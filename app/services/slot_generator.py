from datetime import date, datetime, timedelta
from typing import List

from .weekly_template import WeeklyTemplate


def generate(template: WeeklyTemplate, day: str, on_date: date, slot_duration_minutes: int) -> List[str]:
    """Candidate slot start times (HH:MM) for one date.

    Each range is walked from its start in ``slot_duration_minutes`` steps
    while the cursor is strictly before the range end. Only the slot start
    has to fall inside the range, so a final slot may run past closing time.
    """
    if slot_duration_minutes <= 0:
        raise ValueError("slot duration must be positive")

    step = timedelta(minutes=slot_duration_minutes)
    slots: List[str] = []
    for time_range in template.ranges_for(day):
        cursor = datetime.combine(on_date, time_range.start)
        end = datetime.combine(on_date, time_range.end)
        while cursor < end:
            slots.append(cursor.strftime("%H:%M"))
            cursor += step
    return slots
