"""
Celery tasks for HOS recomputation.
"""
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

from common.exceptions import StoreError
from duty_timeline.services.timeline_store import TimelineStore
from .services.recompute_coordinator import recompute_coordinator
import logging

logger = logging.getLogger(__name__)

SWEEP_LOOKBACK = timedelta(hours=24)


@shared_task(bind=True, max_retries=3)
def recompute_driver_hos(self, driver_id, generation):
    """
    Run a queued recomputation for one driver.

    Transient store failures are retried with exponential backoff.
    """
    try:
        result = recompute_coordinator.run(driver_id, generation)
        return result.as_dict()

    except StoreError as e:
        logger.error(f"Recompute for driver {driver_id} failed: {str(e)}")

        # Retry with exponential backoff
        countdown = 2 ** self.request.retries
        raise self.retry(countdown=countdown, exc=e)


@shared_task
def sweep_cycle_rollover():
    """
    Periodic task refreshing every driver's availability.

    Days leave the cycle at home-terminal midnight without any new event
    arriving, and ongoing driving can cross a limit between events.
    """
    now = timezone.now()
    driver_ids = TimelineStore().driver_ids()

    refreshed = 0
    for driver_id in driver_ids:
        try:
            recompute_coordinator.enqueue(driver_id, since=now - SWEEP_LOOKBACK)
            refreshed += 1
        except StoreError as e:
            logger.error(f"Cycle rollover sweep skipped driver {driver_id}: {str(e)}")

    logger.info(f"Cycle rollover sweep requested recompute for {refreshed}/{len(driver_ids)} drivers")
    return f"Swept {refreshed} drivers at {now}"
