from pydantic import BaseModel, ConfigDict, Field
from datetime import date, datetime
from typing import Dict, List, Optional

from ..models.appointment import AppointmentStatus


class AppointmentBook(BaseModel):
    date_heure: datetime = Field(..., description="Slot start, clinic wall-clock time")


class AppointmentStatusUpdate(BaseModel):
    # Unknown status strings are rejected here with a 422
    statut: AppointmentStatus
    reason: Optional[str] = Field(None, max_length=500)


class NoShowRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    doctor_id: int
    patient_id: int
    date_heure: datetime
    statut: AppointmentStatus = Field(validation_alias="status")
    no_show_reason: Optional[str] = None
    created_at: Optional[datetime] = None


class AppointmentListItem(AppointmentResponse):
    can_be_cancelled: bool
    is_past: bool


class AppointmentEnvelope(BaseModel):
    status: str = "success"
    message: Optional[str] = None
    data: AppointmentResponse


class AppointmentListMeta(BaseModel):
    total: int
    filters: Dict[str, str]


class AppointmentListResponse(BaseModel):
    status: str = "success"
    data: List[AppointmentListItem]
    meta: AppointmentListMeta


class NoShowSummary(BaseModel):
    total_appointments: int
    no_shows: int
    completed: int
    cancelled: int
    no_show_rate: float


class RepeatNoShow(BaseModel):
    patient_id: int
    no_show_count: int


class NoShowPeriod(BaseModel):
    start_date: datetime
    end_date: datetime


class NoShowStats(BaseModel):
    summary: NoShowSummary
    repeat_no_shows: List[RepeatNoShow]
    period: NoShowPeriod


class NoShowStatsResponse(BaseModel):
    status: str = "success"
    data: NoShowStats
