from typing import Optional, List
import uuid

from sqlalchemy import select
from sqlalchemy.orm import aliased
from sqlalchemy.ext.asyncio import AsyncSession

from buildline.models.assembly import (
    AssemblyBin,
    AssemblyStatusHistory,
    AssemblyLocationHistory,
    AssemblyBinMovementHistory,
)
from buildline.models.directory import User


class AssemblyAuditService:
    """
    Append-only audit trail for assembly journeys.

    Recorders do no validation. They are called by the workflow service inside
    the same transaction as the change they describe.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record_status_change(
        self,
        journey_id: uuid.UUID,
        from_status: Optional[str],
        to_status: str,
        changed_by: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> AssemblyStatusHistory:
        """Append a status history row."""
        entry = AssemblyStatusHistory(
            journey_id=journey_id,
            from_status=from_status,
            to_status=to_status,
            changed_by=changed_by,
            reason=reason,
            notes=notes,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def record_location_change(
        self,
        journey_id: uuid.UUID,
        from_location_id: Optional[uuid.UUID],
        to_location_id: uuid.UUID,
        moved_by: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
    ) -> AssemblyLocationHistory:
        """Append a location history row."""
        entry = AssemblyLocationHistory(
            journey_id=journey_id,
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            moved_by=moved_by,
            reason=reason,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def record_bin_movement(
        self,
        journey_id: uuid.UUID,
        from_bin_id: Optional[uuid.UUID],
        to_bin_id: Optional[uuid.UUID],
        from_status: Optional[str],
        to_status: str,
        moved_by: Optional[uuid.UUID] = None,
        reason: Optional[str] = None,
        auto_assigned: bool = False,
    ) -> AssemblyBinMovementHistory:
        """Append a bin movement row."""
        entry = AssemblyBinMovementHistory(
            journey_id=journey_id,
            from_bin_id=from_bin_id,
            to_bin_id=to_bin_id,
            from_status=from_status,
            to_status=to_status,
            moved_by=moved_by,
            reason=reason,
            auto_assigned=auto_assigned,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    # ==================== READ ====================

    async def get_status_history(self, journey_id: uuid.UUID) -> List[dict]:
        """Status history rows, newest first, with the name of whoever made each change."""
        stmt = (
            select(AssemblyStatusHistory, User.name)
            .outerjoin(User, User.id == AssemblyStatusHistory.changed_by)
            .where(AssemblyStatusHistory.journey_id == journey_id)
            .order_by(AssemblyStatusHistory.created_at.desc())
        )
        result = await self.db.execute(stmt)
        rows = []
        for entry, changed_by_name in result.all():
            rows.append({
                "id": entry.id,
                "journey_id": entry.journey_id,
                "from_status": entry.from_status,
                "to_status": entry.to_status,
                "changed_by": entry.changed_by,
                "changed_by_name": changed_by_name,
                "reason": entry.reason,
                "notes": entry.notes,
                "created_at": entry.created_at,
            })
        return rows

    async def get_location_history(self, journey_id: uuid.UUID) -> List[AssemblyLocationHistory]:
        stmt = (
            select(AssemblyLocationHistory)
            .where(AssemblyLocationHistory.journey_id == journey_id)
            .order_by(AssemblyLocationHistory.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_bin_movement_history(self, journey_id: uuid.UUID) -> List[dict]:
        """Bin moves, newest first, with bin codes and mover name."""
        from_bin = aliased(AssemblyBin)
        to_bin = aliased(AssemblyBin)
        stmt = (
            select(
                AssemblyBinMovementHistory,
                from_bin.bin_code,
                to_bin.bin_code,
                User.name,
            )
            .outerjoin(from_bin, from_bin.id == AssemblyBinMovementHistory.from_bin_id)
            .outerjoin(to_bin, to_bin.id == AssemblyBinMovementHistory.to_bin_id)
            .outerjoin(User, User.id == AssemblyBinMovementHistory.moved_by)
            .where(AssemblyBinMovementHistory.journey_id == journey_id)
            .order_by(AssemblyBinMovementHistory.created_at.desc())
        )
        result = await self.db.execute(stmt)
        rows = []
        for entry, from_code, to_code, moved_by_name in result.all():
            rows.append({
                "id": entry.id,
                "journey_id": entry.journey_id,
                "from_bin_id": entry.from_bin_id,
                "from_bin_code": from_code,
                "to_bin_id": entry.to_bin_id,
                "to_bin_code": to_code,
                "from_status": entry.from_status,
                "to_status": entry.to_status,
                "moved_by": entry.moved_by,
                "moved_by_name": moved_by_name,
                "reason": entry.reason,
                "auto_assigned": entry.auto_assigned,
                "created_at": entry.created_at,
            })
        return rows
