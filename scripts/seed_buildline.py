"""
Seed a local Buildline database.
Creates one warehouse, one actor per buildline role and a standard bin layout.
Safe to run twice: existing rows are left alone.
"""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from buildline.database import async_session_factory, init_db
from buildline.models.assembly import StatusZone
from buildline.models.directory import Location, LocationType, User, BuildlineRole
from buildline.core.exceptions import AssemblyError
from buildline.schemas.assembly import BinCreate
from buildline.services.assembly_bin_service import AssemblyBinService


LOCATION = {"name": "Main Warehouse", "code": "WH-MAIN", "type": LocationType.WAREHOUSE.value}

ACTORS = [
    ("Asha Admin", "admin@buildline.local", BuildlineRole.ADMIN),
    ("Sam Supervisor", "supervisor@buildline.local", BuildlineRole.SUPERVISOR),
    ("Tara Technician", "tech1@buildline.local", BuildlineRole.TECHNICIAN),
    ("Ravi Technician", "tech2@buildline.local", BuildlineRole.TECHNICIAN),
    ("Quinn QC", "qc@buildline.local", BuildlineRole.QC_PERSON),
    ("Wes Warehouse", "warehouse@buildline.local", BuildlineRole.WAREHOUSE_STAFF),
]

# zone -> (code prefix, bin count, capacity per bin)
BIN_LAYOUT = {
    StatusZone.INWARD_ZONE: ("IN", 3, 10),
    StatusZone.ASSEMBLY_ZONE: ("AS", 6, 1),
    StatusZone.COMPLETION_ZONE: ("CP", 2, 5),
    StatusZone.QC_ZONE: ("QC", 2, 2),
    StatusZone.READY_ZONE: ("RD", 4, 10),
}


async def seed():
    await init_db()

    async with async_session_factory() as session:
        result = await session.execute(select(Location).where(Location.code == LOCATION["code"]))
        location = result.scalar_one_or_none()
        if location is None:
            location = Location(**LOCATION)
            session.add(location)
            await session.commit()
            print(f"Created location {location.code}")

        for name, email, role in ACTORS:
            result = await session.execute(select(User).where(User.email == email))
            if result.scalar_one_or_none() is None:
                session.add(User(name=name, email=email, buildline_role=role.value))
                print(f"Created {role.value}: {name}")
        await session.commit()

        service = AssemblyBinService(session)
        for zone, (prefix, count, capacity) in BIN_LAYOUT.items():
            for number in range(1, count + 1):
                code = f"{prefix}-{number:02d}"
                try:
                    await service.create_bin(BinCreate(
                        location_id=location.id,
                        bin_code=code,
                        bin_name=f"{zone.value.replace('_', ' ').title()} {number}",
                        status_zone=zone,
                        capacity=capacity,
                    ))
                    print(f"Created bin {code}")
                except AssemblyError:
                    print(f"Bin {code} already exists")

    print("Buildline seed complete!")


if __name__ == "__main__":
    asyncio.run(seed())
