from typing import Optional, Protocol
import logging

import httpx

from ..core.config import settings
from ..models import Appointment

logger = logging.getLogger(__name__)


class NotificationSender(Protocol):
    def appointment_booked(self, appointment: Appointment) -> None:
        ...

    def appointment_no_show(self, appointment: Appointment) -> None:
        ...

    def appointment_reminder(self, appointment: Appointment) -> None:
        ...


class RatingRecalculator(Protocol):
    def recalculate(self, doctor_id: int) -> None:
        ...


def appointment_event(event: str, appointment: Appointment) -> dict:
    return {
        "event": event,
        "appointment_id": appointment.id,
        "doctor_id": appointment.doctor_id,
        "patient_id": appointment.patient_id,
        "date_heure": appointment.date_heure.isoformat(),
        "status": appointment.status.value,
    }


class LoggingNotificationSender:
    """Default sender when no webhook is configured."""

    def appointment_booked(self, appointment: Appointment) -> None:
        logger.info(f"Notification: appointment {appointment.id} booked")

    def appointment_no_show(self, appointment: Appointment) -> None:
        logger.info(f"Notification: appointment {appointment.id} marked as no-show")

    def appointment_reminder(self, appointment: Appointment) -> None:
        logger.info(f"Notification: reminder for appointment {appointment.id} at {appointment.date_heure}")


class WebhookNotificationSender:
    """Posts appointment events to the notification service.

    Delivery is fire-and-forget: failures are logged and never reach the
    caller's transaction.
    """

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.url = url
        self.client = client or httpx.Client(timeout=timeout)

    def appointment_booked(self, appointment: Appointment) -> None:
        self._post(appointment_event("appointment.booked", appointment))

    def appointment_no_show(self, appointment: Appointment) -> None:
        self._post(appointment_event("appointment.no_show", appointment))

    def appointment_reminder(self, appointment: Appointment) -> None:
        self._post(appointment_event("appointment.reminder", appointment))

    def _post(self, payload: dict) -> None:
        try:
            response = self.client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to deliver {payload['event']} notification: {str(e)}")


class LoggingRatingRecalculator:
    """Stands in for the review service, which owns doctor ratings."""

    def recalculate(self, doctor_id: int) -> None:
        logger.info(f"Rating recalculation requested for doctor {doctor_id}")


def build_notification_sender() -> NotificationSender:
    if settings.NOTIFICATION_WEBHOOK_URL:
        return WebhookNotificationSender(
            settings.NOTIFICATION_WEBHOOK_URL,
            timeout=settings.NOTIFICATION_TIMEOUT_SECONDS
        )
    return LoggingNotificationSender()
