"""Shared fixtures: in-memory SQLite engine, directory rows, bins and service helpers."""

import os

# Settings are read at import time, so the environment must be in place first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "buildline-test-secret"
os.environ["SCHEDULER_ENABLED"] = "false"

from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from buildline.config import Settings
from buildline.database import Base, build_engine
from buildline.models import assembly, directory  # noqa: F401
from buildline.models.assembly import StatusZone
from buildline.models.directory import BuildlineRole, Location, LocationType, User
from buildline.schemas.assembly import BinCreate, InwardBikeRequest
from buildline.services.assembly_bin_service import AssemblyBinService
from buildline.services.assembly_service import AssemblyService


@pytest.fixture
async def engine() -> AsyncEngine:
    """Fresh in-memory database per test."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine):
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def location(session: AsyncSession) -> Location:
    location = Location(name="Main Warehouse", code="WH-MAIN", type=LocationType.WAREHOUSE.value)
    session.add(location)
    await session.commit()
    return location


@pytest.fixture
async def store(session: AsyncSession) -> Location:
    store = Location(name="City Store", code="ST-CITY", type=LocationType.STORE.value)
    session.add(store)
    await session.commit()
    return store


@pytest.fixture
async def actors(session: AsyncSession) -> SimpleNamespace:
    """One actor per role, two technicians."""
    people = SimpleNamespace(
        admin=User(name="Asha Admin", email="admin@test.local", buildline_role=BuildlineRole.ADMIN.value),
        supervisor=User(name="Sam Supervisor", email="sup@test.local", buildline_role=BuildlineRole.SUPERVISOR.value),
        tech1=User(name="Tara Technician", email="tara@test.local", buildline_role=BuildlineRole.TECHNICIAN.value),
        tech2=User(name="Ravi Technician", email="ravi@test.local", buildline_role=BuildlineRole.TECHNICIAN.value),
        qc=User(name="Quinn QC", email="qc@test.local", buildline_role=BuildlineRole.QC_PERSON.value),
        warehouse=User(
            name="Wes Warehouse", email="wes@test.local", buildline_role=BuildlineRole.WAREHOUSE_STAFF.value
        ),
    )
    session.add_all(vars(people).values())
    await session.commit()
    return people


@pytest.fixture
def bin_service(session: AsyncSession) -> AssemblyBinService:
    return AssemblyBinService(session)


@pytest.fixture
def make_bin(bin_service: AssemblyBinService):
    """Create a bin; location defaults are supplied by the caller."""

    async def _make(location, code, zone=StatusZone.INWARD_ZONE, capacity=1, **kwargs):
        return await bin_service.create_bin(BinCreate(
            location_id=location.id,
            bin_code=code,
            status_zone=zone,
            capacity=capacity,
            **kwargs,
        ))

    return _make


@pytest.fixture
async def zoned_bins(location, make_bin) -> SimpleNamespace:
    """One bin per zone at the main warehouse, roomy enough for a few bikes."""
    return SimpleNamespace(
        inward=await make_bin(location, "IN-01", StatusZone.INWARD_ZONE, capacity=10),
        assembly=await make_bin(location, "AS-01", StatusZone.ASSEMBLY_ZONE, capacity=5),
        completion=await make_bin(location, "CP-01", StatusZone.COMPLETION_ZONE, capacity=5),
        qc=await make_bin(location, "QC-01", StatusZone.QC_ZONE, capacity=5),
        ready=await make_bin(location, "RD-01", StatusZone.READY_ZONE, capacity=10),
    )


@pytest.fixture
def qc_settings() -> Settings:
    return Settings(BUILDLINE_QC_REQUIRED=True)


@pytest.fixture
def service(session: AsyncSession) -> AssemblyService:
    """Self-certified completion path."""
    return AssemblyService(session, Settings(BUILDLINE_QC_REQUIRED=False))


@pytest.fixture
def qc_service(session: AsyncSession, qc_settings: Settings) -> AssemblyService:
    """Every completed bike goes through QC review."""
    return AssemblyService(session, qc_settings)


@pytest.fixture
def inward(service: AssemblyService, actors):
    """Inward a bike and assert it was accepted."""

    async def _inward(barcode, location=None, **kwargs):
        kwargs.setdefault("model_sku", "MTB-29")
        result = await service.inward_bike(
            InwardBikeRequest(
                barcode=barcode,
                location_id=location.id if location is not None else None,
                **kwargs,
            ),
            actors.warehouse.id,
        )
        assert result.success, result.message
        return result

    return _inward


@pytest.fixture
def to_in_progress(service: AssemblyService, actors, inward):
    """Inward, assign and start a bike for the given technician."""

    async def _advance(barcode, location=None, technician=None, **kwargs):
        technician = technician or actors.tech1
        await inward(barcode, location, **kwargs)
        assigned = await service.assign_to_technician(barcode, technician.id, actors.supervisor.id)
        assert assigned.success, assigned.message
        started = await service.start_assembly(barcode, technician.id)
        assert started.success, started.message
        return started

    return _advance
