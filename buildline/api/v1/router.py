from fastapi import APIRouter

from buildline.api.v1.endpoints import (
    assembly,
    assembly_bins,
)


api_router = APIRouter()

# Assembly bins are registered first so /assembly/bins/* is never shadowed
api_router.include_router(
    assembly_bins.router,
    prefix="/assembly/bins",
    tags=["Assembly Bins"]
)

api_router.include_router(
    assembly.router,
    prefix="/assembly",
    tags=["Assembly Tracking"]
)
