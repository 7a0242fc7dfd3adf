"""
Background Jobs Module

Handles scheduled tasks for:
- Stuck assembly detection
"""

from buildline.jobs.scheduler import scheduler, start_scheduler, shutdown_scheduler
from buildline.jobs.assembly_jobs import scan_stuck_assets

__all__ = [
    "scheduler",
    "start_scheduler",
    "shutdown_scheduler",
    "scan_stuck_assets",
]
