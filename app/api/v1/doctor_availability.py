from fastapi import APIRouter, Depends, status
from datetime import date, datetime, time
from typing import Optional

from ...api.deps import (
    get_current_doctor, get_availability_service, get_appointment_lifecycle
)
from ...models import Doctor
from ...services.availability_service import AvailabilityService
from ...services.appointment_lifecycle import AppointmentLifecycle
from ...schemas.availability import (
    ScheduleUpdate, ScheduleResponse, LeaveCreate, LeaveEnvelope, LeaveResponse,
    AvailabilityResponse, AvailabilityData, MessageResponse
)
from ...schemas.appointment import NoShowStatsResponse, NoShowStats

router = APIRouter(prefix="/doctor", tags=["Doctor availability"])


@router.get("/availability", response_model=AvailabilityResponse)
def get_own_availability(
    doctor: Doctor = Depends(get_current_doctor),
    availability: AvailabilityService = Depends(get_availability_service)
):
    dump = availability.get_availability(doctor.id)
    return AvailabilityResponse(
        data=AvailabilityData(
            schedule=dump["schedule"],
            leaves=[LeaveResponse.model_validate(leave) for leave in dump["leaves"]]
        )
    )


@router.put("/schedule", response_model=ScheduleResponse)
def update_schedule(
    update: ScheduleUpdate,
    doctor: Doctor = Depends(get_current_doctor),
    availability: AvailabilityService = Depends(get_availability_service)
):
    """Replace the weekly working hours, refused if it strands a booking."""
    schedule = availability.update_schedule(doctor.id, update.schedule)
    return ScheduleResponse(data=schedule)


@router.post("/leaves", response_model=LeaveEnvelope, status_code=status.HTTP_201_CREATED)
def create_leave(
    leave_data: LeaveCreate,
    doctor: Doctor = Depends(get_current_doctor),
    availability: AvailabilityService = Depends(get_availability_service)
):
    leave = availability.create_leave(
        doctor.id, leave_data.start_date, leave_data.end_date, leave_data.reason
    )
    return LeaveEnvelope(data=LeaveResponse.model_validate(leave))


@router.delete("/leaves/{leave_id}", response_model=MessageResponse)
def delete_leave(
    leave_id: int,
    doctor: Doctor = Depends(get_current_doctor),
    availability: AvailabilityService = Depends(get_availability_service)
):
    availability.delete_leave(leave_id, doctor.id)
    return MessageResponse(message="Leave deleted")


@router.get("/appointments/no-show-stats", response_model=NoShowStatsResponse)
def get_no_show_stats(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    doctor: Doctor = Depends(get_current_doctor),
    lifecycle: AppointmentLifecycle = Depends(get_appointment_lifecycle)
):
    """No-show rate and repeat no-show patients over a window (default: last 30 days)."""
    start = datetime.combine(start_date, time.min) if start_date else None
    end = datetime.combine(end_date, time.max) if end_date else None
    stats = lifecycle.no_show_stats(doctor.id, start, end)
    return NoShowStatsResponse(data=NoShowStats(**stats))
