"""
APScheduler Configuration

Background job scheduler for read-only assembly monitoring.
"""

import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.executors.asyncio import AsyncIOExecutor

from buildline.config import settings

logger = logging.getLogger(__name__)

# Job stores
jobstores = {
    'default': MemoryJobStore()
}

# Executors
executors = {
    'default': AsyncIOExecutor(),
}

# Job defaults
job_defaults = {
    'coalesce': True,  # Combine multiple pending executions into one
    'max_instances': 1,  # Only one instance of each job at a time
    'misfire_grace_time': 60,  # Allow 60 seconds grace time for misfires
}

# Create scheduler
scheduler = AsyncIOScheduler(
    jobstores=jobstores,
    executors=executors,
    job_defaults=job_defaults,
    timezone=settings.SCHEDULER_TIMEZONE
)


async def run_stuck_asset_scan():
    """Scheduler entry point for the stuck bike scan."""
    from buildline.jobs.assembly_jobs import scan_stuck_assets

    try:
        await scan_stuck_assets()
    except Exception as e:
        logger.error(f"Job 'scan_stuck_assets' failed: {e}")


def start_scheduler():
    """Start the background job scheduler."""
    if scheduler.running:
        return

    scheduler.add_job(
        run_stuck_asset_scan,
        'interval',
        minutes=settings.BUILDLINE_STUCK_SCAN_INTERVAL_MINUTES,
        id='scan_stuck_assets',
        name='Scan Stuck Assembly Bikes',
        replace_existing=True,
    )

    scheduler.start()
    logger.info("Background job scheduler started")

    # Log all scheduled jobs
    for job in scheduler.get_jobs():
        logger.info(f"Scheduled job: {job.name} - Next run: {job.next_run_time}")


def shutdown_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Background job scheduler stopped")


def get_job_status():
    """Get status of all scheduled jobs."""
    jobs = scheduler.get_jobs()
    return [
        {
            'id': job.id,
            'name': job.name,
            'next_run_time': str(job.next_run_time) if job.next_run_time else None,
            'trigger': str(job.trigger),
        }
        for job in jobs
    ]
