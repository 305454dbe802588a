"""APScheduler wiring for the recurring charge job."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.core.config import settings
from src.jobs.charge_due import run_recurring_charges
from src.services.nicepay import NicePayClient


logger = logging.getLogger(__name__)


def create_scheduler(gateway: NicePayClient) -> AsyncIOScheduler:
    """Build a scheduler with the daily charge job registered (not started)."""

    scheduler = AsyncIOScheduler(timezone=settings.scheduler.timezone)
    scheduler.add_job(
        run_recurring_charges,
        CronTrigger(
            hour=settings.scheduler.charge_hour,
            minute=settings.scheduler.charge_minute,
            timezone=settings.scheduler.timezone,
        ),
        args=[gateway],
        id="recurring-charges",
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info(
        f"Recurring charges scheduled daily at "
        f"{settings.scheduler.charge_hour:02d}:{settings.scheduler.charge_minute:02d} "
        f"{settings.scheduler.timezone}"
    )
    return scheduler
