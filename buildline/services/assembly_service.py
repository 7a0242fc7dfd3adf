"""
Assembly workflow service.

Every public mutating operation runs as one atomic unit inside a SAVEPOINT:
the journey row is locked, the stage change is applied as a compare-and-swap
UPDATE, and the audit rows, bin allocation and occupancy changes it causes are
written before the unit commits. Domain errors roll the unit back and come
back to the caller as a failed AssemblyActionResult.
"""
import logging
from typing import Optional, List, Dict, Any, Awaitable, Callable, Union
import uuid

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from buildline.config import Settings, settings as default_settings
from buildline.core.exceptions import (
    AssemblyError,
    ActorNotFoundError,
    ChecklistIncompleteError,
    ChecklistStructureError,
    ConcurrentModificationError,
    DuplicateBarcodeError,
    InvalidQCResultError,
    InvalidTransitionError,
    JourneyNotFoundError,
    LocationNotFoundError,
    NotAssignedError,
)
from buildline.models.assembly import (
    AssemblyJourney,
    AssemblyStatus,
    PauseReason,
    QCChecklist,
    QCResult,
    default_checklist,
    utc_now,
)
from buildline.models.directory import BuildlineRole
from buildline.schemas.assembly import (
    AssemblyActionResult,
    AssemblyChecklist,
    BikeDetailsResponse,
    BillInwardResult,
    BinBrief,
    BulkInwardFailure,
    BulkInwardResponse,
    CanInvoiceResponse,
    InwardBikeRequest,
    JourneyResponse,
    Ownership,
    QCInspectionChecks,
    ScanResponse,
    TimelineEntry,
)
from buildline.services.assembly_audit_service import AssemblyAuditService
from buildline.services.assembly_bin_allocator import BinAllocator
from buildline.services.assembly_bin_service import AssemblyBinService
from buildline.services.assembly_state_machine import QC_STATUSES, validate_transition
from buildline.services.directory_service import DirectoryService


logger = logging.getLogger(__name__)

S = AssemblyStatus


class AssemblyService:
    """Workflow engine for bike assembly journeys."""

    def __init__(self, db: AsyncSession, app_settings: Optional[Settings] = None):
        self.db = db
        self.settings = app_settings or default_settings
        self.audit = AssemblyAuditService(db)
        self.bins = AssemblyBinService(db)
        self.allocator = BinAllocator(db, self.bins, self.audit)
        self.directory = DirectoryService(db)

    # ==================== LOOKUPS ====================

    async def get_journey_by_barcode(
        self,
        barcode: str,
        for_update: bool = False,
    ) -> Optional[AssemblyJourney]:
        """Get a journey by barcode, always re-read from the database."""
        stmt = (
            select(AssemblyJourney)
            .where(AssemblyJourney.barcode == barcode)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _lock_journey(self, barcode: str) -> AssemblyJourney:
        journey = await self.get_journey_by_barcode(barcode, for_update=True)
        if journey is None:
            raise JourneyNotFoundError(barcode)
        return journey

    # ==================== OPERATION PLUMBING ====================

    async def _run(
        self,
        action: str,
        barcode: Optional[str],
        operation: Callable[[], Awaitable[AssemblyActionResult]],
    ) -> AssemblyActionResult:
        """Run one operation atomically and turn domain errors into results."""
        try:
            async with self.db.begin_nested():
                result = await operation()
        except AssemblyError as e:
            logger.info("%s rejected for %s: %s", action, barcode, e)
            return AssemblyActionResult(success=False, message=str(e), barcode=barcode)

        await self.db.commit()
        return result

    @staticmethod
    def _expect_status(journey: AssemblyJourney, status: str, label: Optional[str] = None) -> None:
        if journey.current_status != status:
            raise InvalidTransitionError(
                f"Bike is not in {label or status} status (current: {journey.current_status})"
            )

    @staticmethod
    def _expect_technician(journey: AssemblyJourney, technician_id: uuid.UUID) -> None:
        if journey.technician_id != technician_id:
            raise NotAssignedError()

    @staticmethod
    def _parse_checklist(checklist: Union[AssemblyChecklist, Dict[str, Any]]) -> AssemblyChecklist:
        if isinstance(checklist, AssemblyChecklist):
            return checklist
        try:
            return AssemblyChecklist.model_validate(checklist)
        except ValidationError:
            raise ChecklistStructureError(
                "Checklist must contain exactly the boolean items tyres, brakes and gears"
            )

    async def _transition(
        self,
        journey: AssemblyJourney,
        to_status: str,
        actor_id: Optional[uuid.UUID],
        *,
        values: Optional[Dict[str, Any]] = None,
        expected: Optional[List[str]] = None,
        technician_id: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> Optional[uuid.UUID]:
        """
        Move a locked journey to a new stage.

        Applies the change as a conditional UPDATE on the expected current
        status (and assigned technician, when given), then writes the status
        history row and lets the allocator re-bin the journey.

        Returns:
            The bin id the allocator moved the journey into, if any.
        """
        from_status = journey.current_status
        validate_transition(from_status, to_status)

        conditions = [
            AssemblyJourney.id == journey.id,
            AssemblyJourney.current_status.in_(expected or [from_status]),
        ]
        if technician_id is not None:
            conditions.append(AssemblyJourney.technician_id == technician_id)

        stmt = (
            update(AssemblyJourney)
            .where(*conditions)
            .values(current_status=to_status, **(values or {}))
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrentModificationError()
        await self.db.refresh(journey)

        await self.audit.record_status_change(
            journey_id=journey.id,
            from_status=from_status,
            to_status=to_status,
            changed_by=actor_id,
            reason=reason,
        )
        new_bin_id = await self.allocator.auto_assign_bin(journey, from_status, to_status, actor_id)
        await self.db.flush()

        logger.info(
            "Journey %s moved %s -> %s by %s",
            journey.barcode, from_status, to_status, actor_id,
        )
        return new_bin_id

    # ==================== INTAKE ====================

    async def _inward(self, data: InwardBikeRequest, actor_id: Optional[uuid.UUID]) -> AssemblyActionResult:
        existing = await self.db.execute(
            select(AssemblyJourney.id).where(AssemblyJourney.barcode == data.barcode)
        )
        if existing.scalar_one_or_none() is not None:
            raise DuplicateBarcodeError(data.barcode)

        if data.location_id is not None and await self.directory.get_location(data.location_id) is None:
            raise LocationNotFoundError()

        if data.bin_location_id is not None:
            await self.bins.reserve_slot(data.bin_location_id)

        journey = AssemblyJourney(
            barcode=data.barcode,
            model_sku=data.model_sku,
            frame_number=data.frame_number,
            item_name=data.item_name,
            item_color=data.item_color,
            item_size=data.item_size,
            current_status=S.INWARDED.value,
            current_location_id=data.location_id,
            bin_location_id=data.bin_location_id,
            priority=data.priority,
            checklist=default_checklist(),
            qc_status=QCResult.PENDING.value,
            grn_reference=data.grn_reference,
            notes=data.notes,
            inwarded_at=utc_now(),
        )
        self.db.add(journey)
        try:
            await self.db.flush()
        except IntegrityError:
            # Lost a race with another intake of the same barcode
            raise DuplicateBarcodeError(data.barcode)

        if data.bin_location_id is not None:
            await self.audit.record_bin_movement(
                journey_id=journey.id,
                from_bin_id=None,
                to_bin_id=data.bin_location_id,
                from_status=None,
                to_status=S.INWARDED.value,
                moved_by=actor_id,
                reason="Placed at intake",
                auto_assigned=False,
            )

        logger.info("Inwarded bike %s (%s)", journey.barcode, journey.model_sku)
        return AssemblyActionResult(
            success=True,
            message="Bike inwarded successfully",
            barcode=journey.barcode,
            journey_id=journey.id,
            new_status=journey.current_status,
            new_bin_id=journey.bin_location_id,
        )

    async def inward_bike(
        self,
        data: InwardBikeRequest,
        actor_id: Optional[uuid.UUID] = None,
    ) -> AssemblyActionResult:
        """Create a journey in inwarded status for a newly received bike."""
        return await self._run("inward", data.barcode, lambda: self._inward(data, actor_id))

    async def bulk_inward(
        self,
        bikes: List[InwardBikeRequest],
        actor_id: Optional[uuid.UUID] = None,
    ) -> BulkInwardResponse:
        """Inward several bikes. Each bike succeeds or fails on its own."""
        successful = []
        failed = []
        for bike in bikes:
            result = await self.inward_bike(bike, actor_id)
            if result.success:
                successful.append(result)
            else:
                failed.append(BulkInwardFailure(barcode=bike.barcode, error=result.message))
        return BulkInwardResponse(successful=successful, failed=failed, total=len(bikes))

    async def bulk_create_from_bill(
        self,
        serials: List[str],
        model_sku: str,
        grn_reference: str,
        location_id: Optional[uuid.UUID] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> BillInwardResult:
        """
        Create journeys for the serials received on a purchase bill.

        Serials that already have a journey are skipped, not failed.
        """
        created = 0
        skipped = 0
        errors = []
        for serial in serials:
            data = InwardBikeRequest(
                barcode=serial,
                model_sku=model_sku,
                grn_reference=grn_reference,
                location_id=location_id,
            )
            try:
                async with self.db.begin_nested():
                    await self._inward(data, actor_id)
            except DuplicateBarcodeError:
                skipped += 1
                continue
            except AssemblyError as e:
                errors.append(f"Serial {serial}: {e}")
                continue
            await self.db.commit()
            created += 1

        logger.info(
            "Bill %s inward: %d created, %d skipped, %d errors",
            grn_reference, created, skipped, len(errors),
        )
        return BillInwardResult(created=created, skipped=skipped, errors=errors)

    # ==================== ASSIGNMENT ====================

    async def assign_to_technician(
        self,
        barcode: str,
        technician_id: uuid.UUID,
        supervisor_id: Optional[uuid.UUID] = None,
    ) -> AssemblyActionResult:
        """Assign an inwarded bike to a technician."""

        async def operation():
            journey = await self._lock_journey(barcode)
            self._expect_status(journey, S.INWARDED.value)
            technician = await self.directory.get_active_actor(
                technician_id, BuildlineRole.TECHNICIAN.value
            )
            if technician is None:
                raise ActorNotFoundError(BuildlineRole.TECHNICIAN.value)

            old_bin_id = journey.bin_location_id
            new_bin_id = await self._transition(
                journey,
                S.ASSIGNED.value,
                supervisor_id,
                values={
                    "technician_id": technician_id,
                    "supervisor_id": supervisor_id,
                    "assigned_at": utc_now(),
                },
                reason=f"Assigned to {technician.name}",
            )
            return AssemblyActionResult(
                success=True,
                message="Bike assigned to technician",
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
                old_bin_id=old_bin_id if new_bin_id else None,
                new_bin_id=new_bin_id,
            )

        return await self._run("assign", barcode, operation)

    async def bulk_assign(
        self,
        barcodes: List[str],
        technician_id: uuid.UUID,
        supervisor_id: Optional[uuid.UUID] = None,
    ) -> List[AssemblyActionResult]:
        results = []
        for barcode in barcodes:
            results.append(await self.assign_to_technician(barcode, technician_id, supervisor_id))
        return results

    async def set_priority(self, barcode: str, priority: bool) -> AssemblyActionResult:
        """Flag or unflag a bike as priority. Affects queue order only."""

        async def operation():
            journey = await self._lock_journey(barcode)
            journey.priority = priority
            await self.db.flush()
            return AssemblyActionResult(
                success=True,
                message="Priority updated",
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
            )

        return await self._run("set_priority", barcode, operation)

    # ==================== ASSEMBLY ====================

    async def start_assembly(self, barcode: str, technician_id: uuid.UUID) -> AssemblyActionResult:
        """Technician starts assembling a bike assigned to them."""

        async def operation():
            journey = await self._lock_journey(barcode)
            self._expect_status(journey, S.ASSIGNED.value)
            self._expect_technician(journey, technician_id)

            old_bin_id = journey.bin_location_id
            new_bin_id = await self._transition(
                journey,
                S.IN_PROGRESS.value,
                technician_id,
                values={"started_at": utc_now()},
                technician_id=technician_id,
            )
            return AssemblyActionResult(
                success=True,
                message="Assembly started",
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
                old_bin_id=old_bin_id if new_bin_id else None,
                new_bin_id=new_bin_id,
            )

        return await self._run("start_assembly", barcode, operation)

    async def update_checklist(
        self,
        barcode: str,
        technician_id: uuid.UUID,
        checklist: Union[AssemblyChecklist, Dict[str, Any]],
    ) -> AssemblyActionResult:
        """Save checklist progress without completing the assembly."""

        async def operation():
            parsed = self._parse_checklist(checklist)
            journey = await self._lock_journey(barcode)
            self._expect_status(journey, S.IN_PROGRESS.value, "in progress")
            self._expect_technician(journey, technician_id)

            journey.checklist = parsed.model_dump()
            await self.db.flush()
            return AssemblyActionResult(
                success=True,
                message="Checklist saved",
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
            )

        return await self._run("update_checklist", barcode, operation)

    async def complete_assembly(
        self,
        barcode: str,
        technician_id: uuid.UUID,
        checklist: Union[AssemblyChecklist, Dict[str, Any]],
    ) -> AssemblyActionResult:
        """
        Complete assembly with a fully checked checklist.

        Models that need QC review go to completed and wait for a QC person.
        Everything else is self-certified straight to ready_for_sale.
        """

        async def operation():
            parsed = self._parse_checklist(checklist)
            if not parsed.all_checked:
                raise ChecklistIncompleteError()

            journey = await self._lock_journey(barcode)
            self._expect_status(journey, S.IN_PROGRESS.value, "in progress")
            self._expect_technician(journey, technician_id)

            now = utc_now()
            values = {"checklist": parsed.model_dump(), "completed_at": now}
            if self.settings.qc_required_for(journey.model_sku):
                to_status = S.COMPLETED.value
                values["qc_status"] = QCResult.PENDING.value
                message = "Assembly completed - Bike sent for QC"
            else:
                to_status = S.READY_FOR_SALE.value
                values["qc_status"] = QCResult.PASS.value
                values["qc_completed_at"] = now
                message = "Assembly completed - Bike ready for sale"

            old_bin_id = journey.bin_location_id
            new_bin_id = await self._transition(
                journey,
                to_status,
                technician_id,
                values=values,
                technician_id=technician_id,
            )
            return AssemblyActionResult(
                success=True,
                message=message,
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
                old_bin_id=old_bin_id if new_bin_id else None,
                new_bin_id=new_bin_id,
            )

        return await self._run("complete_assembly", barcode, operation)

    # ==================== EXCEPTIONS ====================

    async def flag_parts_missing(
        self,
        barcode: str,
        parts: List[str],
        notes: Optional[str] = None,
    ) -> AssemblyActionResult:
        """Record missing parts and pause assembly. Stage is unchanged."""

        async def operation():
            journey = await self._lock_journey(barcode)
            journey.parts_missing = True
            journey.parts_missing_list = list(parts)
            if notes:
                journey.notes = notes
            journey.assembly_paused = True
            journey.pause_reason = PauseReason.PARTS_MISSING.value
            await self.db.flush()
            logger.info("Parts missing on %s: %s", barcode, ", ".join(parts))
            return AssemblyActionResult(
                success=True,
                message="Parts missing reported",
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
            )

        return await self._run("flag_parts_missing", barcode, operation)

    async def report_damage(
        self,
        barcode: str,
        damage_notes: str,
        photos: Optional[List[str]] = None,
    ) -> AssemblyActionResult:
        """Record damage and pause assembly. Stage is unchanged."""

        async def operation():
            journey = await self._lock_journey(barcode)
            journey.damage_reported = True
            journey.damage_notes = damage_notes
            journey.damage_photos = list(photos) if photos else None
            journey.assembly_paused = True
            journey.pause_reason = PauseReason.DAMAGE_REPORTED.value
            await self.db.flush()
            logger.warning("Damage reported on %s", barcode)
            return AssemblyActionResult(
                success=True,
                message="Damage reported",
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
            )

        return await self._run("report_damage", barcode, operation)

    # ==================== QC ====================

    async def _pending_qc_checklist(self, journey_id: uuid.UUID) -> Optional[QCChecklist]:
        stmt = (
            select(QCChecklist)
            .where(
                QCChecklist.journey_id == journey_id,
                QCChecklist.result == QCResult.PENDING.value,
            )
            .order_by(QCChecklist.started_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def start_qc_review(self, barcode: str, qc_person_id: uuid.UUID) -> AssemblyActionResult:
        """QC person picks up a completed bike for inspection."""

        async def operation():
            journey = await self._lock_journey(barcode)
            self._expect_status(journey, S.COMPLETED.value)

            now = utc_now()
            old_bin_id = journey.bin_location_id
            new_bin_id = await self._transition(
                journey,
                S.QC_REVIEW.value,
                qc_person_id,
                values={"qc_started_at": now, "qc_person_id": qc_person_id},
            )
            self.db.add(QCChecklist(
                journey_id=journey.id,
                qc_person_id=qc_person_id,
                result=QCResult.PENDING.value,
                started_at=now,
            ))
            await self.db.flush()
            return AssemblyActionResult(
                success=True,
                message="QC review started",
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
                old_bin_id=old_bin_id if new_bin_id else None,
                new_bin_id=new_bin_id,
            )

        return await self._run("start_qc_review", barcode, operation)

    async def submit_qc_result(
        self,
        barcode: str,
        qc_person_id: uuid.UUID,
        result: str,
        failure_reason: Optional[str] = None,
        photos: Optional[List[str]] = None,
        checks: Optional[QCInspectionChecks] = None,
    ) -> AssemblyActionResult:
        """
        Record a QC verdict.

        pass sends the bike to ready_for_sale. fail sends it back to
        in_progress for rework and bumps the rework count.
        """

        async def operation():
            if result not in (QCResult.PASS.value, QCResult.FAIL.value):
                raise InvalidQCResultError()

            journey = await self._lock_journey(barcode)
            if journey.current_status not in QC_STATUSES:
                raise InvalidTransitionError(
                    f"Bike not ready for QC (current: {journey.current_status})"
                )

            now = utc_now()
            values = {
                "qc_status": result,
                "qc_person_id": qc_person_id,
                "qc_completed_at": now,
                "qc_failure_reason": failure_reason,
                "qc_photos": list(photos) if photos else None,
            }
            if result == QCResult.PASS.value:
                to_status = S.READY_FOR_SALE.value
            else:
                to_status = S.IN_PROGRESS.value
                values["rework_count"] = AssemblyJourney.rework_count + 1

            old_bin_id = journey.bin_location_id
            new_bin_id = await self._transition(
                journey,
                to_status,
                qc_person_id,
                values=values,
                expected=QC_STATUSES,
                reason=failure_reason if result == QCResult.FAIL.value else None,
            )

            qc_checklist = await self._pending_qc_checklist(journey.id)
            if qc_checklist is None:
                qc_checklist = QCChecklist(journey_id=journey.id, started_at=now)
                self.db.add(qc_checklist)
            if checks is not None:
                for field, value in checks.model_dump().items():
                    setattr(qc_checklist, field, value)
            qc_checklist.qc_person_id = qc_person_id
            qc_checklist.result = result
            qc_checklist.failure_reason = failure_reason
            qc_checklist.photos = list(photos) if photos else None
            qc_checklist.completed_at = now
            await self.db.flush()

            return AssemblyActionResult(
                success=True,
                message=f"QC result submitted: {result}",
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
                old_bin_id=old_bin_id if new_bin_id else None,
                new_bin_id=new_bin_id,
            )

        return await self._run("submit_qc_result", barcode, operation)

    # ==================== PLACEMENT ====================

    async def move_bike_to_bin(
        self,
        barcode: str,
        new_bin_id: uuid.UUID,
        moved_by: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> AssemblyActionResult:
        """Manually move a bike into a bin, whatever its stage."""

        async def operation():
            journey = await self._lock_journey(barcode)
            old_bin_id = journey.bin_location_id
            if old_bin_id == new_bin_id:
                return AssemblyActionResult(
                    success=True,
                    message="Bike is already in this bin",
                    barcode=barcode,
                    journey_id=journey.id,
                    new_status=journey.current_status,
                    old_bin_id=old_bin_id,
                    new_bin_id=new_bin_id,
                )

            # Target first so a full or unknown bin leaves everything untouched
            await self.bins.reserve_slot(new_bin_id)
            await self.bins.release_slot(old_bin_id)
            journey.bin_location_id = new_bin_id

            await self.audit.record_bin_movement(
                journey_id=journey.id,
                from_bin_id=old_bin_id,
                to_bin_id=new_bin_id,
                from_status=journey.current_status,
                to_status=journey.current_status,
                moved_by=moved_by,
                reason=reason or "Manual bin assignment",
                auto_assigned=False,
            )
            logger.info("Moved %s from bin %s to %s", barcode, old_bin_id, new_bin_id)
            return AssemblyActionResult(
                success=True,
                message="Bike moved to bin successfully",
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
                old_bin_id=old_bin_id,
                new_bin_id=new_bin_id,
            )

        return await self._run("move_bike_to_bin", barcode, operation)

    async def transfer_location(
        self,
        barcode: str,
        location_id: uuid.UUID,
        moved_by: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> AssemblyActionResult:
        """Move a bike to another location and re-bin it there."""

        async def operation():
            journey = await self._lock_journey(barcode)
            if journey.current_location_id == location_id:
                return AssemblyActionResult(
                    success=True,
                    message="Bike is already at this location",
                    barcode=barcode,
                    journey_id=journey.id,
                    new_status=journey.current_status,
                )
            if await self.directory.get_location(location_id) is None:
                raise LocationNotFoundError()

            from_location_id = journey.current_location_id
            old_bin_id = journey.bin_location_id
            journey.current_location_id = location_id
            await self.audit.record_location_change(
                journey_id=journey.id,
                from_location_id=from_location_id,
                to_location_id=location_id,
                moved_by=moved_by,
                reason=reason,
            )
            new_bin_id = await self.allocator.reassign_for_location(journey, moved_by)
            await self.db.flush()

            logger.info("Transferred %s from location %s to %s", barcode, from_location_id, location_id)
            return AssemblyActionResult(
                success=True,
                message="Bike transferred to new location",
                barcode=barcode,
                journey_id=journey.id,
                new_status=journey.current_status,
                old_bin_id=old_bin_id,
                new_bin_id=new_bin_id,
            )

        return await self._run("transfer_location", barcode, operation)

    # ==================== SALE GATE ====================

    async def can_invoice_item(self, barcode: str) -> CanInvoiceResponse:
        """Whether invoicing may go ahead for a physical bike."""
        journey = await self.get_journey_by_barcode(barcode)
        if journey is None:
            return CanInvoiceResponse(
                can_invoice=False,
                message="Bike not found in assembly tracking",
                barcode=barcode,
            )
        if journey.current_status == S.READY_FOR_SALE.value:
            return CanInvoiceResponse(
                can_invoice=True,
                message="Bike is ready for sale",
                barcode=barcode,
                status=journey.current_status,
                sku=journey.model_sku,
            )
        return CanInvoiceResponse(
            can_invoice=False,
            message=f"Bike is not ready for sale. Current status: {journey.current_status}",
            barcode=barcode,
            status=journey.current_status,
            sku=journey.model_sku,
        )

    # ==================== READ VIEWS ====================

    async def _bin_brief(self, bin_id: Optional[uuid.UUID]) -> Optional[BinBrief]:
        if bin_id is None:
            return None
        assembly_bin = await self.bins.get_bin(bin_id)
        return BinBrief.model_validate(assembly_bin) if assembly_bin else None

    async def _location_name(self, location_id: Optional[uuid.UUID]) -> Optional[str]:
        if location_id is None:
            return None
        location = await self.directory.get_location(location_id)
        return location.name if location else None

    async def scan(self, barcode: str, actor_id: uuid.UUID) -> Optional[ScanResponse]:
        """Journey as seen by whoever scanned the bike."""
        journey = await self.get_journey_by_barcode(barcode)
        if journey is None:
            return None

        names = await self.directory.resolve_actor_names([journey.technician_id])
        return ScanResponse(
            journey=JourneyResponse.model_validate(journey),
            bin_location=await self._bin_brief(journey.bin_location_id),
            location_name=await self._location_name(journey.current_location_id),
            ownership=Ownership(
                is_assigned_to_me=journey.technician_id == actor_id,
                assigned_technician_name=names.get(journey.technician_id),
            ),
        )

    async def get_bike_details(self, barcode: str) -> Optional[BikeDetailsResponse]:
        """Full journey view with the status timeline."""
        journey = await self.get_journey_by_barcode(barcode)
        if journey is None:
            return None

        names = await self.directory.resolve_actor_names([journey.technician_id, journey.qc_person_id])
        history = await self.audit.get_status_history(journey.id)
        return BikeDetailsResponse(
            journey=JourneyResponse.model_validate(journey),
            bin_location=await self._bin_brief(journey.bin_location_id),
            location_name=await self._location_name(journey.current_location_id),
            technician_name=names.get(journey.technician_id),
            qc_person_name=names.get(journey.qc_person_id),
            timeline=[
                TimelineEntry(status=row["to_status"], timestamp=row["created_at"])
                for row in history
            ],
        )

    async def get_status_history(self, barcode: str) -> Optional[List[dict]]:
        journey = await self.get_journey_by_barcode(barcode)
        if journey is None:
            return None
        return await self.audit.get_status_history(journey.id)

    async def get_location_history(self, barcode: str) -> Optional[list]:
        journey = await self.get_journey_by_barcode(barcode)
        if journey is None:
            return None
        return await self.audit.get_location_history(journey.id)

    async def get_bin_movement_history(self, barcode: str) -> Optional[List[dict]]:
        journey = await self.get_journey_by_barcode(barcode)
        if journey is None:
            return None
        return await self.audit.get_bin_movement_history(journey.id)
