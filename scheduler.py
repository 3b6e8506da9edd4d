#!/usr/bin/env python3
"""
Reconcile Scheduler - order import and two-way status sync for every active marketplace connection
Usage: python scheduler.py          (run forever)
       python scheduler.py --once   (import and reconcile every connection once and exit)

Features:
- Log rotation (keep 7 files, max 50MB per file)
- Orders placed since the previous run are imported before each reconciliation
- Connection list reloaded every hour
- Summary logging only
"""
import asyncio
import sys
from datetime import datetime
import logging

from apscheduler.triggers.interval import IntervalTrigger

from orderbridge.core import Base, engine, settings
from orderbridge.core.logging import configure_logging
from orderbridge.jobs import ReconcileScheduler

logger = logging.getLogger(__name__)


async def run_once(scheduler: ReconcileScheduler):
    """Reconcile every active connection one time"""
    start_time = datetime.now()
    count = scheduler.load_from_connections()
    logger.info(f"Reconciling {count} connections")

    for task in scheduler.get_tasks():
        result = await scheduler.run_task_now(task.id)
        if result is None:
            logger.error(f"  x {task.id}: {task.last_status or 'skipped'}")
        else:
            logger.info(
                f"  + {task.id}: from_remote={result.from_remote_count}, "
                f"to_remote={result.to_remote_count}, conflicts={len(result.conflicts)}, "
                f"errors={len(result.errors)}"
                + (f", imported={task.last_stats['import']}" if "import" in task.last_stats else "")
            )

    duration = (datetime.now() - start_time).total_seconds()
    logger.info(f"Reconciliation completed in {duration:.1f}s")


async def run_forever(scheduler: ReconcileScheduler):
    scheduler.start()
    scheduler.load_from_connections()

    # Pick up new / disabled connections
    scheduler.scheduler.add_job(
        func=scheduler.load_from_connections,
        trigger=IntervalTrigger(hours=1),
        id="reload_connections",
        name="Reload connections",
        replace_existing=True,
    )

    try:
        await asyncio.Event().wait()
    finally:
        scheduler.stop()


def main():
    configure_logging("scheduler")
    logger.info("OrderBridge Reconcile Scheduler Started")
    logger.info(f"   Log dir: {settings.LOGS_PATH}")
    logger.info(f"   Default policy: {settings.DEFAULT_CONFLICT_POLICY}")

    Base.metadata.create_all(bind=engine)
    scheduler = ReconcileScheduler()

    if "--once" in sys.argv[1:]:
        asyncio.run(run_once(scheduler))
        return

    try:
        asyncio.run(run_forever(scheduler))
    except KeyboardInterrupt:
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    main()
