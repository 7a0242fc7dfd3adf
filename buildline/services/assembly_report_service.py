"""
Read models over assembly journeys: technician queue, kanban board,
daily dashboard, bottleneck, technician workload and QC failure analysis.

Nothing in this module writes to the database.
"""
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional, List
from zoneinfo import ZoneInfo
import uuid

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from buildline.config import Settings, settings as default_settings
from buildline.models.assembly import (
    AssemblyBin,
    AssemblyJourney,
    AssemblyStatus,
    QCChecklist,
    QCResult,
)
from buildline.models.directory import BuildlineRole, LocationType
from buildline.schemas.assembly import (
    BinBrief,
    BottleneckRow,
    DailyDashboard,
    KanbanCard,
    QCFailureRow,
    TechnicianQueueItem,
    TechnicianWorkloadRow,
)
from buildline.services.assembly_state_machine import (
    QC_STATUSES,
    QUEUE_STATUSES,
    STAGE_ORDER,
    as_utc,
    dwell_hours,
    is_terminal,
)
from buildline.services.directory_service import DirectoryService


logger = logging.getLogger(__name__)

S = AssemblyStatus


def _start_of_day(now: datetime, tz_name: str) -> datetime:
    """Local midnight for the reporting timezone, as an aware local datetime."""
    local = as_utc(now).astimezone(ZoneInfo(tz_name))
    return local.replace(hour=0, minute=0, second=0, microsecond=0)


class AssemblyReportService:
    """Dashboard queries for supervisors, technicians and QC."""

    def __init__(self, db: AsyncSession, app_settings: Optional[Settings] = None):
        self.db = db
        self.settings = app_settings or default_settings
        self.directory = DirectoryService(db)

    async def get_technician_queue(self, technician_id: uuid.UUID) -> List[TechnicianQueueItem]:
        """
        Bikes a technician has to work on.

        Priority bikes come first, then first assigned first served.
        """
        stmt = (
            select(AssemblyJourney)
            .options(selectinload(AssemblyJourney.bin_location))
            .where(
                AssemblyJourney.technician_id == technician_id,
                AssemblyJourney.current_status.in_(QUEUE_STATUSES),
            )
            .order_by(AssemblyJourney.priority.desc(), AssemblyJourney.assigned_at.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)

        queue = []
        for journey in result.scalars().all():
            queue.append(TechnicianQueueItem(
                barcode=journey.barcode,
                model_sku=journey.model_sku,
                current_status=journey.current_status,
                priority=journey.priority,
                checklist=journey.checklist,
                assigned_at=journey.assigned_at,
                started_at=journey.started_at,
                qc_status=journey.qc_status,
                qc_failure_reason=journey.qc_failure_reason,
                rework_count=journey.rework_count,
                bin_location=(
                    BinBrief.model_validate(journey.bin_location) if journey.bin_location else None
                ),
                item_name=journey.item_name,
                item_color=journey.item_color,
                item_size=journey.item_size,
            ))
        return queue

    async def get_kanban_board(
        self,
        status: Optional[str] = None,
        location_id: Optional[uuid.UUID] = None,
        technician_id: Optional[uuid.UUID] = None,
        priority_only: bool = False,
        now: Optional[datetime] = None,
    ) -> List[KanbanCard]:
        """Every journey as a card with display names and time in stage."""
        now = now or datetime.now(timezone.utc)
        stmt = (
            select(AssemblyJourney, AssemblyBin)
            .outerjoin(AssemblyBin, AssemblyBin.id == AssemblyJourney.bin_location_id)
            .order_by(AssemblyJourney.priority.desc(), AssemblyJourney.inwarded_at.asc())
            .execution_options(populate_existing=True)
        )
        if status:
            stmt = stmt.where(AssemblyJourney.current_status == status)
        if location_id:
            stmt = stmt.where(AssemblyJourney.current_location_id == location_id)
        if technician_id:
            stmt = stmt.where(AssemblyJourney.technician_id == technician_id)
        if priority_only:
            stmt = stmt.where(AssemblyJourney.priority == True)

        rows = (await self.db.execute(stmt)).all()
        journeys = [journey for journey, _ in rows]

        names = await self.directory.resolve_actor_names(
            actor_id
            for journey in journeys
            for actor_id in (journey.technician_id, journey.supervisor_id, journey.qc_person_id)
        )
        locations = await self.directory.resolve_locations(j.current_location_id for j in journeys)

        cards = []
        for journey, assembly_bin in rows:
            location = locations.get(journey.current_location_id)
            cards.append(KanbanCard(
                id=journey.id,
                barcode=journey.barcode,
                model_sku=journey.model_sku,
                frame_number=journey.frame_number,
                current_status=journey.current_status,
                priority=journey.priority,
                parts_missing=journey.parts_missing,
                damage_reported=journey.damage_reported,
                assembly_paused=journey.assembly_paused,
                checklist=journey.checklist,
                inwarded_at=journey.inwarded_at,
                assigned_at=journey.assigned_at,
                started_at=journey.started_at,
                completed_at=journey.completed_at,
                qc_started_at=journey.qc_started_at,
                qc_completed_at=journey.qc_completed_at,
                current_location_id=journey.current_location_id,
                location_name=location.name if location else None,
                location_code=location.code if location else None,
                bin_location_id=journey.bin_location_id,
                bin_code=assembly_bin.bin_code if assembly_bin else None,
                bin_name=assembly_bin.bin_name if assembly_bin else None,
                bin_zone=assembly_bin.status_zone if assembly_bin else None,
                bin_area=assembly_bin.zone if assembly_bin else None,
                technician_id=journey.technician_id,
                technician_name=names.get(journey.technician_id),
                supervisor_id=journey.supervisor_id,
                supervisor_name=names.get(journey.supervisor_id),
                qc_person_id=journey.qc_person_id,
                qc_person_name=names.get(journey.qc_person_id),
                hours_in_current_status=round(dwell_hours(journey, now), 2),
                qc_status=journey.qc_status,
                rework_count=journey.rework_count,
            ))
        return cards

    async def _count(self, *conditions) -> int:
        result = await self.db.execute(
            select(func.count(AssemblyJourney.id)).where(*conditions)
        )
        return result.scalar() or 0

    async def _open_journeys(self) -> List[AssemblyJourney]:
        stmt = (
            select(AssemblyJourney)
            .where(AssemblyJourney.current_status != S.READY_FOR_SALE.value)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_stuck_journeys(
        self,
        threshold_hours: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> List[AssemblyJourney]:
        """Open journeys whose time in the current stage exceeds the threshold."""
        threshold = threshold_hours if threshold_hours is not None else self.settings.BUILDLINE_STUCK_THRESHOLD_HOURS
        now = now or datetime.now(timezone.utc)
        stuck = [j for j in await self._open_journeys() if dwell_hours(j, now) > threshold]
        stuck.sort(key=lambda j: dwell_hours(j, now), reverse=True)
        return stuck

    async def get_daily_dashboard(self, now: Optional[datetime] = None) -> DailyDashboard:
        """Today's throughput and the current backlog per stage."""
        now = now or datetime.now(timezone.utc)
        today = _start_of_day(now, self.settings.BUILDLINE_REPORT_TIMEZONE)
        # Stored timestamps are UTC
        since = today.astimezone(timezone.utc)

        return DailyDashboard(
            report_date=today,
            inwarded_today=await self._count(AssemblyJourney.inwarded_at >= since),
            assembled_today=await self._count(AssemblyJourney.completed_at >= since),
            qc_passed_today=await self._count(
                AssemblyJourney.qc_completed_at >= since,
                AssemblyJourney.qc_status == QCResult.PASS.value,
            ),
            pending_assignment=await self._count(AssemblyJourney.current_status == S.INWARDED.value),
            pending_start=await self._count(AssemblyJourney.current_status == S.ASSIGNED.value),
            currently_assembling=await self._count(AssemblyJourney.current_status == S.IN_PROGRESS.value),
            awaiting_qc=await self._count(AssemblyJourney.current_status.in_(QC_STATUSES)),
            ready_for_sale=await self._count(AssemblyJourney.current_status == S.READY_FOR_SALE.value),
            stuck_over_threshold=len(await self.get_stuck_journeys(now=now)),
            priority_pending=await self._count(
                AssemblyJourney.priority == True,
                AssemblyJourney.current_status != S.READY_FOR_SALE.value,
            ),
        )

    async def get_bottleneck_report(self, now: Optional[datetime] = None) -> List[BottleneckRow]:
        """Count and dwell time per open stage, split by warehouse and store."""
        now = now or datetime.now(timezone.utc)
        journeys = await self._open_journeys()
        locations = await self.directory.resolve_locations(j.current_location_id for j in journeys)

        by_stage = defaultdict(list)
        for journey in journeys:
            by_stage[journey.current_status].append(journey)

        rows = []
        for status in STAGE_ORDER:
            stage_journeys = by_stage.get(status)
            if is_terminal(status) or not stage_journeys:
                continue

            hours = [dwell_hours(j, now) for j in stage_journeys]
            location_types = [
                locations[j.current_location_id].type if j.current_location_id in locations else None
                for j in stage_journeys
            ]
            rows.append(BottleneckRow(
                current_status=status,
                bikes_in_stage=len(stage_journeys),
                avg_hours_in_stage=round(sum(hours) / len(hours), 1),
                max_hours_in_stage=round(max(hours), 1),
                in_warehouse=location_types.count(LocationType.WAREHOUSE.value),
                in_store=location_types.count(LocationType.STORE.value),
                priority_items=sum(1 for j in stage_journeys if j.priority),
            ))
        return rows

    async def get_technician_workload(self, now: Optional[datetime] = None) -> List[TechnicianWorkloadRow]:
        """Per-technician workload and quality figures."""
        now = now or datetime.now(timezone.utc)
        today = _start_of_day(now, self.settings.BUILDLINE_REPORT_TIMEZONE)
        technicians = await self.directory.list_actors(BuildlineRole.TECHNICIAN.value)
        if not technicians:
            return []

        result = await self.db.execute(
            select(AssemblyJourney).where(
                AssemblyJourney.technician_id.in_([t.id for t in technicians])
            )
        )
        by_technician = defaultdict(list)
        for journey in result.scalars().all():
            by_technician[journey.technician_id].append(journey)

        rows = []
        for technician in technicians:
            journeys = by_technician.get(technician.id, [])
            completed = [j for j in journeys if j.completed_at is not None]
            durations = [
                (as_utc(j.completed_at) - as_utc(j.started_at)).total_seconds() / 3600
                for j in completed
                if j.started_at is not None
            ]
            judged = [j for j in journeys if j.qc_status in (QCResult.PASS.value, QCResult.FAIL.value)]
            passed = sum(1 for j in judged if j.qc_status == QCResult.PASS.value)

            rows.append(TechnicianWorkloadRow(
                technician_id=technician.id,
                technician_name=technician.name,
                email=technician.email,
                assigned_count=sum(1 for j in journeys if j.current_status == S.ASSIGNED.value),
                in_progress_count=sum(1 for j in journeys if j.current_status == S.IN_PROGRESS.value),
                completed_today=sum(1 for j in completed if as_utc(j.completed_at) >= today),
                total_completed=sum(1 for j in journeys if j.current_status == S.READY_FOR_SALE.value),
                rework_items=sum(1 for j in journeys if j.rework_count > 0),
                avg_assembly_hours=round(sum(durations) / len(durations), 1) if durations else None,
                qc_pass_rate_percent=round(passed * 100.0 / len(judged), 1) if judged else None,
            ))

        # Busiest technicians first
        rows.sort(key=lambda row: (-row.in_progress_count, -row.assigned_count, row.technician_name))
        return rows

    async def get_qc_failure_analysis(self) -> List[QCFailureRow]:
        """QC failures grouped by model and reason, most frequent first."""
        stmt = (
            select(QCChecklist, AssemblyJourney.model_sku, AssemblyJourney.technician_id)
            .join(AssemblyJourney, AssemblyJourney.id == QCChecklist.journey_id)
            .where(QCChecklist.result == QCResult.FAIL.value)
        )
        rows = (await self.db.execute(stmt)).all()
        names = await self.directory.resolve_actor_names(tech_id for _, _, tech_id in rows)

        groups = {}
        for qc_checklist, model_sku, technician_id in rows:
            reason = qc_checklist.failure_reason or "Unspecified"
            group = groups.setdefault((model_sku, reason), {
                "count": 0,
                "technicians": [],
                "last": None,
            })
            group["count"] += 1
            name = names.get(technician_id)
            if name and name not in group["technicians"]:
                group["technicians"].append(name)
            failed_at = as_utc(qc_checklist.completed_at)
            if failed_at and (group["last"] is None or failed_at > group["last"]):
                group["last"] = failed_at

        analysis = [
            QCFailureRow(
                model_sku=model_sku,
                qc_failure_reason=reason,
                failure_count=group["count"],
                technicians=group["technicians"],
                last_failure_date=group["last"],
            )
            for (model_sku, reason), group in groups.items()
        ]
        analysis.sort(key=lambda row: (-row.failure_count, row.model_sku, row.qc_failure_reason))
        return analysis
