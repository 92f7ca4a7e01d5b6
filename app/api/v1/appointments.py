from fastapi import APIRouter, Depends, Query
from datetime import date
from typing import Optional

from ...core.clock import Clock
from ...core.security import Principal, UserRole
from ...api.deps import (
    get_clock, get_current_principal, get_staff, get_appointment_lifecycle
)
from ...models.appointment import AppointmentStatus
from ...services.appointment_lifecycle import AppointmentLifecycle
from ...schemas.appointment import (
    AppointmentEnvelope, AppointmentResponse, AppointmentStatusUpdate,
    AppointmentListItem, AppointmentListMeta, AppointmentListResponse, NoShowRequest
)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


@router.get("", response_model=AppointmentListResponse)
def list_appointments(
    doctor_id: Optional[int] = None,
    patient_id: Optional[int] = None,
    day: Optional[date] = Query(None, alias="date"),
    status: Optional[AppointmentStatus] = None,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    lifecycle: AppointmentLifecycle = Depends(get_appointment_lifecycle)
):
    """Appointments of the caller; admins may filter by doctor and patient."""
    appointments = lifecycle.list_for(
        principal,
        doctor_id=doctor_id,
        patient_id=patient_id,
        on_date=day,
        status=status
    )

    now = clock.now()
    items = [
        AppointmentListItem(
            **AppointmentResponse.model_validate(a).model_dump(),
            can_be_cancelled=a.can_be_cancelled(now),
            is_past=a.date_heure < now
        )
        for a in appointments
    ]

    filters = {
        "doctor_id": doctor_id if principal.role == UserRole.ADMIN else None,
        "patient_id": patient_id if principal.role == UserRole.ADMIN else None,
        "date": day.isoformat() if day else None,
        "status": status.value if status else None,
    }
    return AppointmentListResponse(
        data=items,
        meta=AppointmentListMeta(
            total=len(items),
            filters={key: str(value) for key, value in filters.items() if value is not None}
        )
    )


@router.patch("/{appointment_id}/status", response_model=AppointmentEnvelope)
def update_appointment_status(
    appointment_id: int,
    update: AppointmentStatusUpdate,
    principal: Principal = Depends(get_current_principal),
    lifecycle: AppointmentLifecycle = Depends(get_appointment_lifecycle)
):
    """Move an appointment to another status."""
    appointment = lifecycle.transition(
        appointment_id, update.statut, principal, reason=update.reason
    )
    return AppointmentEnvelope(data=AppointmentResponse.model_validate(appointment))


@router.post("/{appointment_id}/no-show", response_model=AppointmentEnvelope)
def mark_as_no_show(
    appointment_id: int,
    body: Optional[NoShowRequest] = None,
    staff: Principal = Depends(get_staff),
    lifecycle: AppointmentLifecycle = Depends(get_appointment_lifecycle)
):
    """Mark a past appointment as no-show (doctors and admins)."""
    reason = body.reason if body else None
    appointment = lifecycle.mark_no_show(appointment_id, staff, reason)
    return AppointmentEnvelope(
        message="Appointment marked as no-show",
        data=AppointmentResponse.model_validate(appointment)
    )
