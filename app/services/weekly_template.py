"""
Weekly working-hours template of a doctor.

A template maps a canonical day key to an ordered list of ``"HH:MM-HH:MM"``
ranges, e.g. ``{"monday": ["09:00-12:00", "14:00-17:00"]}``. Day keys are
localised: the active locale decides whether Monday is stored as
``"monday"`` or ``"lundi"``.
"""
import logging
import re
from dataclasses import dataclass
from datetime import date, time
from typing import Dict, Iterable, List, Mapping, Optional

from ..core.exceptions import ValidationFailed

logger = logging.getLogger(__name__)

TIME_RANGE_PATTERN = re.compile(
    r"^([01]?[0-9]|2[0-3]):([0-5][0-9])-([01]?[0-9]|2[0-3]):([0-5][0-9])$"
)

ENGLISH_DAYS = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)

DAY_NAMES: Dict[str, Dict[str, str]] = {
    "en": {day: day for day in ENGLISH_DAYS},
    "fr": {
        "monday": "lundi",
        "tuesday": "mardi",
        "wednesday": "mercredi",
        "thursday": "jeudi",
        "friday": "vendredi",
        "saturday": "samedi",
        "sunday": "dimanche",
    },
}


class DayNames:
    """English weekday name -> stored day key for one locale."""

    def __init__(self, locale: str = "en", strict: bool = False):
        if locale not in DAY_NAMES:
            raise ValueError(f"Unsupported schedule day locale: {locale}")
        self.locale = locale
        self.strict = strict
        self._mapping = DAY_NAMES[locale]

    @property
    def keys(self) -> List[str]:
        return [self._mapping[day] for day in ENGLISH_DAYS]

    def key_for(self, day_name: str) -> str:
        normalized = day_name.strip().lower()
        if normalized in self._mapping:
            return self._mapping[normalized]
        if self.strict:
            raise ValidationFailed(f"Unknown day name: {day_name}")
        # Unmapped names are kept as-is, lowercased
        logger.warning(f"Unmapped day name '{day_name}', falling back to lowercase")
        return normalized

    def key_for_date(self, day: date) -> str:
        return self.key_for(ENGLISH_DAYS[day.weekday()])


@dataclass(frozen=True)
class TimeRange:
    start: time
    end: time

    @classmethod
    def parse(cls, raw: str) -> "TimeRange":
        match = TIME_RANGE_PATTERN.match(raw.strip()) if isinstance(raw, str) else None
        if not match:
            raise ValidationFailed(
                f"Invalid time range '{raw}': expected HH:MM-HH:MM (e.g. 09:00-17:00)"
            )
        start_h, start_m, end_h, end_m = (int(group) for group in match.groups())
        time_range = cls(time(start_h, start_m), time(end_h, end_m))
        if time_range.start >= time_range.end:
            raise ValidationFailed(f"Invalid time range '{raw}': start must be before end")
        return time_range

    def contains(self, moment: time) -> bool:
        return self.start <= moment < self.end

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and other.start < self.end

    def __str__(self) -> str:
        return f"{self.start:%H:%M}-{self.end:%H:%M}"


class WeeklyTemplate:
    def __init__(self, ranges: Mapping[str, Iterable[TimeRange]]):
        self._ranges: Dict[str, List[TimeRange]] = {
            day: list(day_ranges) for day, day_ranges in ranges.items()
        }

    @classmethod
    def validate(cls, raw, day_names: Optional[DayNames] = None) -> "WeeklyTemplate":
        """Parse and validate a raw template, raising ValidationFailed on the first problem."""
        day_names = day_names or DayNames()
        if not isinstance(raw, Mapping):
            raise ValidationFailed("Schedule must be an object of day -> time ranges")

        allowed = set(day_names.keys)
        parsed: Dict[str, List[TimeRange]] = {}
        for day, entries in raw.items():
            if day not in allowed:
                raise ValidationFailed(
                    f"Unknown day '{day}'. Expected one of: {', '.join(day_names.keys)}"
                )
            if not isinstance(entries, list):
                raise ValidationFailed(f"Schedule for '{day}' must be a list of time ranges")

            day_ranges = [TimeRange.parse(entry) for entry in entries]
            ordered = sorted(day_ranges, key=lambda r: r.start)
            for previous, current in zip(ordered, ordered[1:]):
                if previous.overlaps(current):
                    raise ValidationFailed(
                        f"Overlapping time ranges on '{day}': {previous} and {current}"
                    )
            parsed[day] = day_ranges

        return cls(parsed)

    @classmethod
    def from_stored(cls, stored) -> "WeeklyTemplate":
        """Load a template persisted on a doctor, skipping malformed entries."""
        parsed: Dict[str, List[TimeRange]] = {}
        for day, entries in (stored or {}).items():
            day_ranges = []
            for entry in entries or []:
                try:
                    day_ranges.append(TimeRange.parse(entry))
                except ValidationFailed:
                    logger.warning("Invalid time range format in stored schedule: %r", entry)
            parsed[day] = day_ranges
        return cls(parsed)

    def ranges_for(self, day: str) -> List[TimeRange]:
        return list(self._ranges.get(day, []))

    def contains(self, day: str, moment: time) -> bool:
        return any(r.contains(moment) for r in self._ranges.get(day, []))

    def to_dict(self) -> Dict[str, List[str]]:
        return {day: [str(r) for r in day_ranges] for day, day_ranges in self._ranges.items()}

    def __repr__(self) -> str:
        return f"<WeeklyTemplate({self.to_dict()})>"
