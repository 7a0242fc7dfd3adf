"""
Assembly Monitoring Jobs

Read-only background checks over assembly journeys:
- Stuck bike detection (time in stage over the configured threshold)
- Bottleneck summary per stage

Nothing here changes a journey. Stuck bikes are reported, never escalated.
"""

import logging
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from buildline.config import settings
from buildline.services.assembly_report_service import AssemblyReportService
from buildline.services.assembly_state_machine import dwell_hours

logger = logging.getLogger(__name__)


async def _scan(db: AsyncSession, now: datetime) -> Dict[str, Any]:
    service = AssemblyReportService(db)
    threshold = settings.BUILDLINE_STUCK_THRESHOLD_HOURS

    for row in await service.get_bottleneck_report(now=now):
        logger.info(
            "Stage %s: %d bikes, avg %.1fh, max %.1fh in stage",
            row.current_status, row.bikes_in_stage, row.avg_hours_in_stage, row.max_hours_in_stage,
        )

    stuck = await service.get_stuck_journeys(threshold_hours=threshold, now=now)
    for journey in stuck:
        logger.warning(
            "Bike %s stuck in %s for %.1fh",
            journey.barcode, journey.current_status, dwell_hours(journey, now),
        )

    return {
        "threshold_hours": threshold,
        "stuck_count": len(stuck),
        "stuck_barcodes": [journey.barcode for journey in stuck],
    }


async def scan_stuck_assets(db: Optional[AsyncSession] = None) -> Dict[str, Any]:
    """
    Log bikes whose time in the current stage exceeds
    BUILDLINE_STUCK_THRESHOLD_HOURS, with a per-stage summary.

    Runs every BUILDLINE_STUCK_SCAN_INTERVAL_MINUTES.
    """
    logger.info("Starting stuck assembly scan...")
    now = datetime.now(timezone.utc)

    if db is not None:
        result = await _scan(db, now)
    else:
        from buildline.database import get_db_session

        async with get_db_session() as session:
            result = await _scan(session, now)

    logger.info(
        "Stuck assembly scan completed: %d bikes over %.1fh",
        result["stuck_count"], result["threshold_hours"],
    )
    return result
