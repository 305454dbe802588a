"""
Recurring charge job.

Used by the in-process scheduler and runnable on its own from an external
cron: ``python -m src.jobs.charge_due``.
"""
import asyncio
import logging
from typing import Optional

import httpx

from src.core.config import settings
from src.core.logging import setup_logging
from src.db.session import dispose_engine, get_session_factory
from src.services import limits
from src.services.nicepay import NicePayClient
from src.services.recurring import ChargeRunSummary, RecurringChargeService


logger = logging.getLogger(__name__)

LOCK_NAME = "recurring-charges"


async def run_recurring_charges(gateway: NicePayClient) -> Optional[ChargeRunSummary]:
    """Run one charge pass unless another run holds the lock."""

    if not await limits.acquire_job_lock(LOCK_NAME, settings.scheduler.lock_ttl_seconds):
        logger.warning("Recurring charge run already in progress; skipping")
        return None
    try:
        async with get_session_factory()() as session:
            service = RecurringChargeService(session, gateway)
            return await service.run_due_charges()
    finally:
        await limits.release_job_lock(LOCK_NAME)


async def main() -> None:
    setup_logging()
    async with httpx.AsyncClient(timeout=settings.nicepay.timeout_seconds) as http_client:
        gateway = NicePayClient.from_settings(settings.nicepay, http_client)
        try:
            summary = await run_recurring_charges(gateway)
            if summary is not None:
                logger.info(f"Charge summary: {summary.as_dict()}")
        finally:
            await limits.close_client()
            await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
