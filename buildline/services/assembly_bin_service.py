"""
Assembly bin registry.

Occupancy is only ever changed through reserve_slot/release_slot, each a single
conditional UPDATE so concurrent reservations can never push a bin past its
capacity or below zero.
"""
import logging
from typing import Optional, List
import uuid

from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from buildline.core.exceptions import BinNotFoundError, CapacityExceededError, AssemblyError
from buildline.models.assembly import AssemblyBin, AssemblyJourney, BinStatus
from buildline.models.directory import Location
from buildline.schemas.assembly import BinCreate


logger = logging.getLogger(__name__)


class AssemblyBinService:
    """Zoned bin registry with atomic slot accounting."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_bin(self, bin_id: uuid.UUID) -> Optional[AssemblyBin]:
        """Get a bin with its current occupancy read from the database."""
        stmt = (
            select(AssemblyBin)
            .where(AssemblyBin.id == bin_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_bin(self, data: BinCreate) -> AssemblyBin:
        """Provision a bin. Bin codes are unique per location."""
        existing = await self.db.execute(
            select(AssemblyBin.id).where(
                AssemblyBin.location_id == data.location_id,
                AssemblyBin.bin_code == data.bin_code,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise AssemblyError(f"Bin code {data.bin_code} already exists at this location")

        assembly_bin = AssemblyBin(
            location_id=data.location_id,
            bin_code=data.bin_code,
            bin_name=data.bin_name,
            zone=data.zone,
            status_zone=data.status_zone.value,
            bin_status=data.bin_status.value,
            capacity=data.capacity,
            current_occupancy=0,
            notes=data.notes,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(assembly_bin)
                await self.db.flush()
        except IntegrityError:
            raise AssemblyError(f"Bin code {data.bin_code} already exists at this location")
        await self.db.commit()

        logger.info(
            "Created assembly bin %s (%s, capacity %d)",
            assembly_bin.bin_code, assembly_bin.status_zone, assembly_bin.capacity,
        )
        return assembly_bin

    # ==================== SLOT ACCOUNTING ====================

    async def reserve_slot(self, bin_id: uuid.UUID) -> None:
        """
        Take one slot in a bin.

        Raises:
            BinNotFoundError: unknown bin
            CapacityExceededError: bin has no free slot
        """
        stmt = (
            update(AssemblyBin)
            .where(
                AssemblyBin.id == bin_id,
                AssemblyBin.current_occupancy < AssemblyBin.capacity,
            )
            .values(current_occupancy=AssemblyBin.current_occupancy + 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 1:
            return

        assembly_bin = await self.get_bin(bin_id)
        if assembly_bin is None:
            raise BinNotFoundError()
        raise CapacityExceededError(assembly_bin.bin_code)

    async def release_slot(self, bin_id: Optional[uuid.UUID]) -> None:
        """Give back one slot. Never drops occupancy below zero."""
        if bin_id is None:
            return
        stmt = (
            update(AssemblyBin)
            .where(
                AssemblyBin.id == bin_id,
                AssemblyBin.current_occupancy > 0,
            )
            .values(current_occupancy=AssemblyBin.current_occupancy - 1)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            logger.warning("Release on empty or unknown assembly bin %s ignored", bin_id)

    # ==================== LISTINGS ====================

    async def list_active_bins_in_zone(
        self,
        location_id: uuid.UUID,
        status_zone: str,
        only_available: bool = False,
    ) -> List[AssemblyBin]:
        """
        Active bins of one zone at a location, least occupied first.
        Ties are broken by bin code.
        """
        conditions = [
            AssemblyBin.location_id == location_id,
            AssemblyBin.status_zone == status_zone,
            AssemblyBin.is_active == True,
            AssemblyBin.bin_status == BinStatus.ACTIVE.value,
        ]
        if only_available:
            conditions.append(AssemblyBin.current_occupancy < AssemblyBin.capacity)

        stmt = (
            select(AssemblyBin)
            .where(and_(*conditions))
            .order_by(AssemblyBin.current_occupancy.asc(), AssemblyBin.bin_code.asc())
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_bins(
        self,
        location_id: Optional[uuid.UUID] = None,
        status_zone: Optional[str] = None,
        include_inactive: bool = False,
    ) -> List[AssemblyBin]:
        """Bins ordered by location, zone and code."""
        stmt = select(AssemblyBin).execution_options(populate_existing=True)
        if location_id:
            stmt = stmt.where(AssemblyBin.location_id == location_id)
        if status_zone:
            stmt = stmt.where(AssemblyBin.status_zone == status_zone)
        if not include_inactive:
            stmt = stmt.where(AssemblyBin.is_active == True)
        stmt = stmt.order_by(AssemblyBin.location_id, AssemblyBin.status_zone, AssemblyBin.bin_code)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_available_bins(
        self,
        location_id: Optional[uuid.UUID] = None,
        status_zone: Optional[str] = None,
    ) -> List[AssemblyBin]:
        """Active bins with at least one free slot."""
        stmt = (
            select(AssemblyBin)
            .where(
                AssemblyBin.is_active == True,
                AssemblyBin.bin_status == BinStatus.ACTIVE.value,
                AssemblyBin.current_occupancy < AssemblyBin.capacity,
            )
            .order_by(AssemblyBin.status_zone, AssemblyBin.current_occupancy, AssemblyBin.bin_code)
            .execution_options(populate_existing=True)
        )
        if location_id:
            stmt = stmt.where(AssemblyBin.location_id == location_id)
        if status_zone:
            stmt = stmt.where(AssemblyBin.status_zone == status_zone)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_zone_statistics(self, location_id: Optional[uuid.UUID] = None) -> List[dict]:
        """Capacity and occupancy totals per location and zone."""
        stmt = (
            select(
                AssemblyBin.location_id,
                Location.name,
                Location.code,
                AssemblyBin.status_zone,
                func.count(AssemblyBin.id).label("total_bins"),
                func.coalesce(func.sum(AssemblyBin.capacity), 0).label("total_capacity"),
                func.coalesce(func.sum(AssemblyBin.current_occupancy), 0).label("total_occupancy"),
            )
            .outerjoin(Location, Location.id == AssemblyBin.location_id)
            .where(AssemblyBin.is_active == True)
            .group_by(AssemblyBin.location_id, Location.name, Location.code, AssemblyBin.status_zone)
            .order_by(Location.name, AssemblyBin.status_zone)
        )
        if location_id:
            stmt = stmt.where(AssemblyBin.location_id == location_id)

        result = await self.db.execute(stmt)
        stats = []
        for row in result.all():
            total_capacity = int(row.total_capacity)
            total_occupancy = int(row.total_occupancy)
            stats.append({
                "location_id": row.location_id,
                "location_name": row.name,
                "location_code": row.code,
                "status_zone": row.status_zone,
                "total_bins": row.total_bins,
                "total_capacity": total_capacity,
                "total_occupancy": total_occupancy,
                "available_slots": total_capacity - total_occupancy,
                "occupancy_percentage": (
                    round(total_occupancy * 100.0 / total_capacity, 2) if total_capacity else None
                ),
            })
        return stats

    async def get_bin_contents(self, bin_id: uuid.UUID) -> List[AssemblyJourney]:
        """Journeys currently held in a bin."""
        stmt = (
            select(AssemblyJourney)
            .where(AssemblyJourney.bin_location_id == bin_id)
            .order_by(AssemblyJourney.barcode)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_zones(self, location_id: Optional[uuid.UUID] = None) -> List[str]:
        """Distinct status zones that have at least one active bin."""
        stmt = (
            select(AssemblyBin.status_zone)
            .where(AssemblyBin.is_active == True)
            .distinct()
            .order_by(AssemblyBin.status_zone)
        )
        if location_id:
            stmt = stmt.where(AssemblyBin.location_id == location_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
