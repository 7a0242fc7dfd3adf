import logging
from typing import Optional
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from buildline.core.exceptions import CapacityExceededError, BinNotFoundError
from buildline.models.assembly import AssemblyJourney
from buildline.services.assembly_audit_service import AssemblyAuditService
from buildline.services.assembly_bin_service import AssemblyBinService
from buildline.services.assembly_state_machine import target_zone


logger = logging.getLogger(__name__)


class BinAllocator:
    """
    Moves a journey into a bin of the zone matching its new stage.

    Finding no bin is not an error: the journey keeps its current bin and the
    transition that triggered the allocation still goes through.
    """

    def __init__(
        self,
        db: AsyncSession,
        bins: Optional[AssemblyBinService] = None,
        audit: Optional[AssemblyAuditService] = None,
    ):
        self.db = db
        self.bins = bins or AssemblyBinService(db)
        self.audit = audit or AssemblyAuditService(db)

    async def auto_assign_bin(
        self,
        journey: AssemblyJourney,
        old_status: Optional[str],
        new_status: str,
        moved_by: Optional[uuid.UUID] = None,
    ) -> Optional[uuid.UUID]:
        """
        Pick the least occupied active bin of the target zone at the journey's
        location and move the journey into it.

        Returns:
            The new bin id, or None when the journey stayed where it was.
        """
        zone = target_zone(new_status)
        if zone is None or journey.current_location_id is None:
            return None

        candidates = await self.bins.list_active_bins_in_zone(
            journey.current_location_id, zone, only_available=True
        )
        if not candidates:
            logger.info(
                "No free %s bin at location %s for %s, keeping current bin",
                zone, journey.current_location_id, journey.barcode,
            )
            return None

        best = candidates[0]
        if best.id == journey.bin_location_id:
            return None

        try:
            await self.bins.reserve_slot(best.id)
        except (CapacityExceededError, BinNotFoundError):
            # Lost the last slot to a concurrent reservation
            logger.info("Bin %s filled before %s could be placed in it", best.bin_code, journey.barcode)
            return None

        old_bin_id = journey.bin_location_id
        await self.bins.release_slot(old_bin_id)
        journey.bin_location_id = best.id

        await self.audit.record_bin_movement(
            journey_id=journey.id,
            from_bin_id=old_bin_id,
            to_bin_id=best.id,
            from_status=old_status,
            to_status=new_status,
            moved_by=moved_by,
            reason=f"Auto-assigned on status change to {new_status}",
            auto_assigned=True,
        )
        logger.info("Auto-assigned %s to bin %s (%s)", journey.barcode, best.bin_code, zone)
        return best.id

    async def reassign_for_location(
        self,
        journey: AssemblyJourney,
        moved_by: Optional[uuid.UUID] = None,
    ) -> Optional[uuid.UUID]:
        """
        Re-place a journey after it changed location.

        The bin at the old location is always given up. A bin for the current
        stage is taken at the new location when one is free.
        """
        old_bin_id = journey.bin_location_id
        new_bin_id = None
        zone = target_zone(journey.current_status)
        if zone is not None and journey.current_location_id is not None:
            for candidate in await self.bins.list_active_bins_in_zone(
                journey.current_location_id, zone, only_available=True
            ):
                try:
                    await self.bins.reserve_slot(candidate.id)
                except CapacityExceededError:
                    continue
                new_bin_id = candidate.id
                break

        if old_bin_id is None and new_bin_id is None:
            return None

        await self.bins.release_slot(old_bin_id)
        journey.bin_location_id = new_bin_id
        await self.audit.record_bin_movement(
            journey_id=journey.id,
            from_bin_id=old_bin_id,
            to_bin_id=new_bin_id,
            from_status=journey.current_status,
            to_status=journey.current_status,
            moved_by=moved_by,
            reason="Location transfer",
            auto_assigned=True,
        )
        return new_bin_id
