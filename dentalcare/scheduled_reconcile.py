"""
Scheduled Notification Reconciliation
Periodically refetches notifications so optimistic read flags converge
with the backend, using the schedule library
"""

import logging
import threading

import schedule

from .config import Config
from .notifications import prune_centers

logger = logging.getLogger(__name__)


def reconcile_all(centers):
    """
    Reconcile every NotificationCenter in ``centers`` (a dict)

    Idle centers are dropped first; a center whose credential the backend
    now refuses (401/403) is dropped after its reconcile.
    """
    prune_centers(centers)
    logger.info(f"Starting notification reconciliation for {len(centers)} session(s)...")
    reconciled = 0
    for key, center in list(centers.items()):
        try:
            center.reconcile()
            if center.error is None:
                reconciled += 1
            elif center.signed_out:
                centers.pop(key, None)
                logger.info(f"🗑️ Dropped signed-out notification center {key[:8]}")
            else:
                logger.warning(f"⚠️ Reconcile for {key[:8]} left an error: {center.error}")
        except Exception as e:
            logger.error(f"Error reconciling notifications for {key[:8]}: {e}", exc_info=True)
    logger.info(f"Reconciliation complete: {reconciled}/{len(centers)}")
    return reconciled


def schedule_reconcile(centers, minutes=None, scheduler=None):
    """Register the reconcile job and return it"""
    scheduler = scheduler or schedule.default_scheduler
    minutes = minutes or Config.NOTIFICATION_RECONCILE_MINUTES
    return scheduler.every(minutes).minutes.do(reconcile_all, centers)


def run_scheduler(centers, minutes=None, stop_event=None, poll_seconds=30):
    """Run the reconcile scheduler until ``stop_event`` is set"""
    scheduler = schedule.Scheduler()
    schedule_reconcile(centers, minutes, scheduler)
    logger.info(f"Notification reconcile scheduler started. Checking every {minutes or Config.NOTIFICATION_RECONCILE_MINUTES} minutes...")

    stop_event = stop_event or threading.Event()
    while not stop_event.is_set():
        scheduler.run_pending()
        stop_event.wait(poll_seconds)
    scheduler.clear()


def start_background_scheduler(centers, minutes=None):
    """Start ``run_scheduler`` on a daemon thread; returns (thread, stop_event)"""
    stop_event = threading.Event()
    thread = threading.Thread(
        target=run_scheduler,
        args=(centers, minutes, stop_event),
        name='notification-reconcile',
        daemon=True,
    )
    thread.start()
    return thread, stop_event

