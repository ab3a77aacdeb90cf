"""
Celery tasks running the reconciliation pass.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from celery.signals import worker_ready

from .celery_app import celery_app
from ..config import get_settings
from ..database import DatabaseManager
from ..services.reconciliation_service import ReconciliationService

logger = logging.getLogger(__name__)


async def run_maintenance_once(database_url: Optional[str] = None) -> Dict[str, Any]:
    """Run one reconciliation pass on a database manager owned by this call."""
    manager = DatabaseManager(database_url)
    await manager.initialize()
    try:
        async with manager.get_session() as session:
            return await ReconciliationService(session).run_maintenance()
    finally:
        await manager.close()


@celery_app.task(bind=True, name="run_booking_maintenance_task")
def run_booking_maintenance_task(self, trigger: str = "interval"):
    """
    Expire lapsed holds, cancel bookings behind failed payments, fail
    overdue payments and restore any seats a previous release missed.

    Errors are logged and not retried here; the next scheduled run picks up
    whatever this one left.
    """
    logger.info(f"Starting booking maintenance ({trigger})")

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        results = loop.run_until_complete(run_maintenance_once())
    except Exception as e:
        logger.error(f"Booking maintenance ({trigger}) failed: {e}")
        return {"trigger": trigger, "status": "failed", "error": str(e)}
    finally:
        loop.close()

    results["trigger"] = trigger
    results["status"] = "completed"
    return results


@worker_ready.connect
def schedule_startup_maintenance(sender=None, **kwargs):
    """Run one pass shortly after a worker comes up."""
    delay = get_settings().maintenance_startup_delay_seconds
    logger.info(f"Scheduling startup booking maintenance in {delay}s")
    run_booking_maintenance_task.apply_async(kwargs={"trigger": "startup"}, countdown=delay)
