"""
ARQ background worker.

Runs the hourly no-show sweep and the five-minute appointment reminders.
Start with ``arq app.worker.WorkerSettings``.
"""
import logging
from typing import Optional

from arq.connections import RedisSettings
from arq.cron import cron

from .core.clock import SystemClock
from .core.config import settings
from .core.database import SessionLocal
from . import models  # noqa: F401
from .services.appointment_lifecycle import AppointmentLifecycle
from .services.notifications import build_notification_sender

logger = logging.getLogger(__name__)


def _lifecycle(db) -> AppointmentLifecycle:
    return AppointmentLifecycle(
        db,
        SystemClock(settings.TIMEZONE),
        notifier=build_notification_sender()
    )


async def no_show_sweep_task(ctx, threshold_minutes: Optional[int] = None):
    """Mark appointments left open past the no-show threshold."""
    logger.info(f"Starting no-show sweep (job {ctx.get('job_id', 'cron')})")

    db = SessionLocal()
    try:
        marked = _lifecycle(db).sweep_no_shows(threshold_minutes)
        return {"marked": marked}
    except Exception as e:
        logger.error(f"No-show sweep failed: {str(e)}")
        raise
    finally:
        db.close()


async def appointment_reminder_task(ctx, lead_hours: Optional[int] = None):
    """Remind patients of appointments starting within the reminder lead time."""
    db = SessionLocal()
    try:
        sent = _lifecycle(db).send_reminders(lead_hours)
        return {"sent": sent}
    except Exception as e:
        logger.error(f"Appointment reminders failed: {str(e)}")
        raise
    finally:
        db.close()


class WorkerSettings:
    functions = [no_show_sweep_task, appointment_reminder_task]
    redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)

    job_timeout = 600
    keep_result = 3600

    # Never two runs of the same job at once
    cron_jobs = [
        cron(no_show_sweep_task, minute=0, unique=True),
        cron(appointment_reminder_task, minute=set(range(0, 60, 5)), unique=True),
    ]
