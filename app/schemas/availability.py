from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Dict, List, Optional


class ScheduleUpdate(BaseModel):
    schedule: Dict[str, List[str]] = Field(
        ...,
        description="Day key -> list of HH:MM-HH:MM ranges",
        examples=[{"monday": ["09:00-12:00", "14:00-17:00"]}],
    )


class LeaveCreate(BaseModel):
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=255)


class LeaveResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    doctor_id: int
    start_date: date
    end_date: date
    reason: Optional[str] = None
    created_at: Optional[datetime] = None


class SlotsMeta(BaseModel):
    doctor_id: int
    date: date
    day_of_week: str
    total_slots: int
    booked_slots: int
    available_slots: int
    is_on_leave: bool


class SlotsResponse(BaseModel):
    status: str = "success"
    data: List[str]
    meta: SlotsMeta


class AvailabilityData(BaseModel):
    schedule: Dict[str, List[str]]
    leaves: List[LeaveResponse]


class AvailabilityResponse(BaseModel):
    status: str = "success"
    data: AvailabilityData


class ScheduleResponse(BaseModel):
    status: str = "success"
    data: Dict[str, List[str]]


class LeaveEnvelope(BaseModel):
    status: str = "success"
    data: LeaveResponse


class MessageResponse(BaseModel):
    status: str = "success"
    message: str
