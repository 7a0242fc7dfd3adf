"""Read-only lookups into the ERP user and location directories."""
from typing import Dict, Iterable, List, Optional
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from buildline.models.directory import User, Location


class DirectoryService:
    """Resolves actor and location identifiers held on journeys."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_actor(self, actor_id: uuid.UUID) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == actor_id))
        return result.scalar_one_or_none()

    async def get_active_actor(self, actor_id: uuid.UUID, role: Optional[str] = None) -> Optional[User]:
        """Get an active actor, optionally requiring a buildline role."""
        actor = await self.get_actor(actor_id)
        if actor is None or not actor.is_active:
            return None
        if role is not None and actor.buildline_role != role:
            return None
        return actor

    async def list_actors(self, role: str) -> List[User]:
        stmt = (
            select(User)
            .where(User.buildline_role == role, User.is_active == True)
            .order_by(User.name)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def resolve_actor_names(self, actor_ids: Iterable[Optional[uuid.UUID]]) -> Dict[uuid.UUID, str]:
        """Map actor ids to display names. Unknown ids are left out."""
        ids = {actor_id for actor_id in actor_ids if actor_id is not None}
        if not ids:
            return {}
        result = await self.db.execute(select(User.id, User.name).where(User.id.in_(ids)))
        return {row.id: row.name for row in result.all()}

    async def get_location(self, location_id: uuid.UUID) -> Optional[Location]:
        result = await self.db.execute(select(Location).where(Location.id == location_id))
        return result.scalar_one_or_none()

    async def resolve_locations(self, location_ids: Iterable[Optional[uuid.UUID]]) -> Dict[uuid.UUID, Location]:
        ids = {location_id for location_id in location_ids if location_id is not None}
        if not ids:
            return {}
        result = await self.db.execute(select(Location).where(Location.id.in_(ids)))
        return {location.id: location for location in result.scalars().all()}

    async def list_locations(self, include_inactive: bool = False) -> List[Location]:
        stmt = select(Location).order_by(Location.name)
        if not include_inactive:
            stmt = stmt.where(Location.is_active == True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
