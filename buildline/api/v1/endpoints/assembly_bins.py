"""
Assembly Bin API Endpoints.

Zoned bins that hold bikes at each assembly stage, and manual moves between them.
"""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from buildline.database import get_db
from buildline.api.deps import require_buildline_role
from buildline.core.exceptions import AssemblyError
from buildline.models.assembly import StatusZone
from buildline.models.directory import User, BuildlineRole
from buildline.schemas.assembly import (
    AssemblyActionResult,
    BinCreate,
    BinMovementResponse,
    BinResponse,
    BinZoneStatistics,
    JourneyResponse,
    MoveToBinRequest,
)
from buildline.services.assembly_bin_service import AssemblyBinService
from buildline.services.assembly_service import AssemblyService

router = APIRouter()

R = BuildlineRole


@router.get(
    "",
    response_model=List[BinResponse],
    summary="List Assembly Bins"
)
async def list_bins(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    return await AssemblyBinService(db).list_bins()


@router.post(
    "",
    response_model=BinResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Assembly Bin"
)
async def create_bin(
    data: BinCreate,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    try:
        return await AssemblyBinService(db).create_bin(data)
    except AssemblyError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )


@router.get(
    "/available",
    response_model=List[BinResponse],
    summary="List Bins With Free Slots"
)
async def list_available_bins(
    location_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    return await AssemblyBinService(db).list_available_bins(location_id)


@router.get(
    "/location/{location_id}",
    response_model=List[BinResponse],
    summary="List Bins at Location"
)
async def list_bins_by_location(
    location_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    return await AssemblyBinService(db).list_bins(location_id=location_id)


@router.get(
    "/zone/{location_id}/{zone}",
    response_model=List[BinResponse],
    summary="List Bins in Zone"
)
async def list_bins_by_zone(
    location_id: UUID,
    zone: StatusZone,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    """Active bins of a zone, least occupied first."""
    return await AssemblyBinService(db).list_active_bins_in_zone(location_id, zone.value)


@router.get(
    "/zones",
    response_model=List[str],
    summary="List Bin Zones"
)
async def list_zones(
    location_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    return await AssemblyBinService(db).list_zones(location_id)


@router.get(
    "/zone-statistics",
    response_model=List[BinZoneStatistics],
    summary="Bin Zone Statistics"
)
async def get_zone_statistics(
    location_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    return await AssemblyBinService(db).get_zone_statistics(location_id)


@router.post(
    "/move",
    response_model=AssemblyActionResult,
    summary="Move Bike to Bin"
)
async def move_bike_to_bin(
    data: MoveToBinRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    service = AssemblyService(db)
    return await service.move_bike_to_bin(data.barcode, data.bin_id, current_user.id, data.reason)


@router.get(
    "/movement-history/{barcode}",
    response_model=List[BinMovementResponse],
    summary="Bin Movement History"
)
async def get_bin_movement_history(
    barcode: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    service = AssemblyService(db)
    history = await service.get_bin_movement_history(barcode)
    if history is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Bike not found"
        )
    return history


@router.get(
    "/{bin_id}/contents",
    response_model=List[JourneyResponse],
    summary="Bikes Held In A Bin"
)
async def get_bin_contents(
    bin_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    service = AssemblyBinService(db)
    if await service.get_bin(bin_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Bin not found"
        )
    return await service.get_bin_contents(bin_id)
