from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import List

from ..core.clock import Clock, SystemClock
from ..core.config import settings
from ..core.database import get_db
from ..core.security import (
    security, verify_token, principal_from_payload, AuthenticationError,
    AuthorizationError, UserRole, Principal
)
from ..core.exceptions import NotFoundError
from ..models import Doctor
from ..services.appointment_lifecycle import AppointmentLifecycle
from ..services.availability_service import AvailabilityService
from ..services.notifications import (
    NotificationSender, RatingRecalculator, LoggingRatingRecalculator,
    build_notification_sender
)

_system_clock = SystemClock(settings.TIMEZONE)


def get_clock() -> Clock:
    """Injectable time source; tests override it with a frozen clock."""
    return _system_clock


def get_notifier() -> NotificationSender:
    return build_notification_sender()


def get_rating_recalculator() -> RatingRecalculator:
    return LoggingRatingRecalculator()


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Principal:
    """Extract and verify JWT token from Authorization header."""
    token_payload = verify_token(credentials.credentials)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    # Check if token is access token
    if token_payload.token_type != "access":
        raise AuthenticationError("Invalid token type")

    principal = principal_from_payload(token_payload)
    if not principal:
        raise AuthenticationError("Invalid token payload")

    return principal


# Role-based access control dependencies
def require_role(allowed_roles: List[UserRole]):
    """Create a dependency that requires specific user roles."""
    async def role_checker(
        principal: Principal = Depends(get_current_principal)
    ) -> Principal:
        if principal.role not in allowed_roles:
            raise AuthorizationError(
                f"Access denied. Required roles: {[role.value for role in allowed_roles]}"
            )
        return principal

    return role_checker


async def get_patient(
    principal: Principal = Depends(require_role([UserRole.PATIENT]))
) -> Principal:
    """Require patient role."""
    return principal


async def get_staff(
    principal: Principal = Depends(require_role([UserRole.DOCTOR, UserRole.ADMIN]))
) -> Principal:
    """Require doctor or admin role."""
    return principal


async def get_current_doctor(
    principal: Principal = Depends(require_role([UserRole.DOCTOR])),
    db: Session = Depends(get_db)
) -> Doctor:
    """Doctor profile owned by the authenticated doctor."""
    doctor = db.query(Doctor).filter(Doctor.user_id == principal.user_id).first()
    if not doctor:
        raise NotFoundError("Doctor profile not found")
    return doctor


def get_availability_service(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock)
) -> AvailabilityService:
    return AvailabilityService(db, clock)


def get_appointment_lifecycle(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: NotificationSender = Depends(get_notifier),
    ratings: RatingRecalculator = Depends(get_rating_recalculator)
) -> AppointmentLifecycle:
    return AppointmentLifecycle(db, clock, notifier=notifier, ratings=ratings)
