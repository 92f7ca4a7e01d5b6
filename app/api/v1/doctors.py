from fastapi import APIRouter, Depends, Query, status
from datetime import date
from typing import Optional

from ...core.clock import Clock, to_wall_time
from ...core.config import settings
from ...core.security import Principal
from ...api.deps import (
    get_clock, get_patient, get_availability_service, get_appointment_lifecycle
)
from ...services.availability_service import AvailabilityService
from ...services.appointment_lifecycle import AppointmentLifecycle
from ...schemas.availability import (
    SlotsResponse, AvailabilityResponse, AvailabilityData, LeaveResponse
)
from ...schemas.appointment import AppointmentBook, AppointmentEnvelope, AppointmentResponse

router = APIRouter(prefix="/doctors", tags=["Doctors"])


@router.get("/{doctor_id}/slots", response_model=SlotsResponse)
def get_available_slots(
    doctor_id: int,
    day: Optional[date] = Query(None, alias="date", description="YYYY-MM-DD, defaults to today"),
    clock: Clock = Depends(get_clock),
    availability: AvailabilityService = Depends(get_availability_service)
):
    """Free appointment slots of a doctor for one date."""
    result = availability.get_available_slots(doctor_id, day or clock.today())
    return SlotsResponse(data=result.slots, meta=result.meta)


@router.get("/{doctor_id}/availability", response_model=AvailabilityResponse)
def get_availability(
    doctor_id: int,
    availability: AvailabilityService = Depends(get_availability_service)
):
    """Weekly schedule and upcoming leaves of a doctor."""
    dump = availability.get_availability(doctor_id)
    return AvailabilityResponse(
        data=AvailabilityData(
            schedule=dump["schedule"],
            leaves=[LeaveResponse.model_validate(leave) for leave in dump["leaves"]]
        )
    )


@router.post(
    "/{doctor_id}/appointments",
    response_model=AppointmentEnvelope,
    status_code=status.HTTP_201_CREATED
)
def book_appointment(
    doctor_id: int,
    booking: AppointmentBook,
    patient: Principal = Depends(get_patient),
    lifecycle: AppointmentLifecycle = Depends(get_appointment_lifecycle)
):
    """Book a slot for the authenticated patient."""
    # Slots are clinic wall-clock times
    instant = to_wall_time(booking.date_heure, settings.TIMEZONE)
    appointment = lifecycle.book(doctor_id, patient.user_id, instant)
    return AppointmentEnvelope(data=AppointmentResponse.model_validate(appointment))
