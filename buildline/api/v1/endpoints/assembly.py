"""
Assembly Tracking API Endpoints.

Bike journeys from inward to sale-ready:
- Inward (single, bulk, from purchase bill)
- Assignment and priority
- Technician assembly flow
- QC review
- Dashboards and reports
- Sale gate for invoicing

Workflow operations answer 200 with a result whose `success` flag tells
whether the action was applied.
"""
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from buildline.database import get_db
from buildline.api.deps import get_current_actor, require_buildline_role
from buildline.models.assembly import AssemblyStatus
from buildline.models.directory import User, BuildlineRole
from buildline.schemas.assembly import (
    ActorBrief,
    AssemblyActionResult,
    AssignRequest,
    BarcodeRequest,
    BikeDetailsResponse,
    BillInwardRequest,
    BillInwardResult,
    BottleneckRow,
    BulkAssignRequest,
    BulkInwardRequest,
    BulkInwardResponse,
    CanInvoiceResponse,
    ChecklistRequest,
    DailyDashboard,
    DamageReportRequest,
    InwardBikeRequest,
    KanbanCard,
    LocationHistoryResponse,
    LocationResponse,
    LocationTransferRequest,
    PartsMissingRequest,
    QCFailureRow,
    QCSubmitRequest,
    ScanResponse,
    SetPriorityRequest,
    StatusHistoryResponse,
    TechnicianQueueItem,
    TechnicianWorkloadRow,
)
from buildline.services.assembly_service import AssemblyService
from buildline.services.assembly_report_service import AssemblyReportService
from buildline.services.directory_service import DirectoryService

router = APIRouter()

R = BuildlineRole


def _bike_not_found() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Bike not found"
    )


# ============================================================================
# INWARD
# ============================================================================

@router.post(
    "/inward",
    response_model=AssemblyActionResult,
    summary="Inward Bike"
)
async def inward_bike(
    data: InwardBikeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    """Create an assembly journey for a newly received bike."""
    service = AssemblyService(db)
    return await service.inward_bike(data, current_user.id)


@router.post(
    "/inward/bulk",
    response_model=BulkInwardResponse,
    summary="Bulk Inward Bikes"
)
async def bulk_inward(
    data: BulkInwardRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    service = AssemblyService(db)
    return await service.bulk_inward(data.bikes, current_user.id)


@router.post(
    "/inward/bill",
    response_model=BillInwardResult,
    summary="Inward Bikes From Purchase Bill"
)
async def inward_from_bill(
    data: BillInwardRequest,
    location_id: Optional[UUID] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    """Create journeys for bill serials. Serials already tracked are skipped."""
    service = AssemblyService(db)
    return await service.bulk_create_from_bill(
        data.serials,
        data.model_sku,
        data.grn_reference,
        location_id=location_id,
        actor_id=current_user.id,
    )


# ============================================================================
# ASSIGNMENT
# ============================================================================

@router.post(
    "/assign",
    response_model=AssemblyActionResult,
    summary="Assign Bike to Technician"
)
async def assign_bike(
    data: AssignRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    service = AssemblyService(db)
    return await service.assign_to_technician(data.barcode, data.technician_id, current_user.id)


@router.post(
    "/assign-bulk",
    response_model=List[AssemblyActionResult],
    summary="Bulk Assign Bikes"
)
async def bulk_assign(
    data: BulkAssignRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    service = AssemblyService(db)
    return await service.bulk_assign(data.barcodes, data.technician_id, current_user.id)


@router.post(
    "/set-priority",
    response_model=AssemblyActionResult,
    summary="Set Bike Priority"
)
async def set_priority(
    data: SetPriorityRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    service = AssemblyService(db)
    return await service.set_priority(data.barcode, data.priority)


@router.post(
    "/transfer",
    response_model=AssemblyActionResult,
    summary="Transfer Bike to Location"
)
async def transfer_location(
    data: LocationTransferRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    service = AssemblyService(db)
    return await service.transfer_location(data.barcode, data.location_id, current_user.id, data.reason)


# ============================================================================
# TECHNICIAN FLOW
# ============================================================================

@router.get(
    "/technician/queue",
    response_model=List[TechnicianQueueItem],
    summary="My Assembly Queue"
)
async def get_technician_queue(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.TECHNICIAN))
):
    """Bikes assigned to the calling technician, priority first."""
    service = AssemblyReportService(db)
    return await service.get_technician_queue(current_user.id)


@router.post(
    "/start",
    response_model=AssemblyActionResult,
    summary="Start Assembly"
)
async def start_assembly(
    data: BarcodeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.TECHNICIAN))
):
    service = AssemblyService(db)
    return await service.start_assembly(data.barcode, current_user.id)


@router.put(
    "/checklist",
    response_model=AssemblyActionResult,
    summary="Save Checklist Progress"
)
async def update_checklist(
    data: ChecklistRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.TECHNICIAN))
):
    service = AssemblyService(db)
    return await service.update_checklist(data.barcode, current_user.id, data.checklist)


@router.post(
    "/complete",
    response_model=AssemblyActionResult,
    summary="Complete Assembly"
)
async def complete_assembly(
    data: ChecklistRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.TECHNICIAN))
):
    """Complete assembly. Every checklist item must be checked."""
    service = AssemblyService(db)
    return await service.complete_assembly(data.barcode, current_user.id, data.checklist)


@router.post(
    "/flag-parts-missing",
    response_model=AssemblyActionResult,
    summary="Flag Missing Parts"
)
async def flag_parts_missing(
    data: PartsMissingRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.TECHNICIAN, R.SUPERVISOR))
):
    service = AssemblyService(db)
    return await service.flag_parts_missing(data.barcode, data.parts, data.notes)


@router.post(
    "/report-damage",
    response_model=AssemblyActionResult,
    summary="Report Damage"
)
async def report_damage(
    data: DamageReportRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.TECHNICIAN, R.SUPERVISOR))
):
    service = AssemblyService(db)
    return await service.report_damage(data.barcode, data.damage_notes, data.photos)


# ============================================================================
# QC
# ============================================================================

@router.post(
    "/qc/start",
    response_model=AssemblyActionResult,
    summary="Start QC Review"
)
async def start_qc_review(
    data: BarcodeRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.QC_PERSON))
):
    service = AssemblyService(db)
    return await service.start_qc_review(data.barcode, current_user.id)


@router.post(
    "/qc/submit",
    response_model=AssemblyActionResult,
    summary="Submit QC Result"
)
async def submit_qc_result(
    data: QCSubmitRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.QC_PERSON))
):
    """Record a pass or fail verdict. A fail sends the bike back for rework."""
    service = AssemblyService(db)
    return await service.submit_qc_result(
        data.barcode,
        current_user.id,
        data.result,
        failure_reason=data.failure_reason,
        photos=data.photos,
        checks=data.checks,
    )


# ============================================================================
# LOOKUPS
# ============================================================================

@router.get(
    "/scan/{barcode}",
    response_model=ScanResponse,
    summary="Scan Bike"
)
async def scan_bike(
    barcode: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_actor)
):
    """Look a bike up by barcode, with whether it is assigned to the caller."""
    service = AssemblyService(db)
    result = await service.scan(barcode, current_user.id)
    if result is None:
        raise _bike_not_found()
    return result


@router.get(
    "/bike/{barcode}",
    response_model=BikeDetailsResponse,
    summary="Get Bike Details"
)
async def get_bike_details(
    barcode: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    service = AssemblyService(db)
    result = await service.get_bike_details(barcode)
    if result is None:
        raise _bike_not_found()
    return result


@router.get(
    "/history/{barcode}",
    response_model=List[StatusHistoryResponse],
    summary="Get Status History"
)
async def get_status_history(
    barcode: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    service = AssemblyService(db)
    history = await service.get_status_history(barcode)
    if history is None:
        raise _bike_not_found()
    return history


@router.get(
    "/history/{barcode}/locations",
    response_model=List[LocationHistoryResponse],
    summary="Get Location History"
)
async def get_location_history(
    barcode: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    service = AssemblyService(db)
    history = await service.get_location_history(barcode)
    if history is None:
        raise _bike_not_found()
    return history


@router.get(
    "/can-invoice/{barcode}",
    response_model=CanInvoiceResponse,
    summary="Check If Bike Can Be Invoiced"
)
async def can_invoice(
    barcode: str,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_actor)
):
    """Sale gate consulted by invoicing before a bike is sold."""
    service = AssemblyService(db)
    return await service.can_invoice_item(barcode)


@router.get(
    "/technicians",
    response_model=List[ActorBrief],
    summary="List Technicians"
)
async def list_technicians(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    return await DirectoryService(db).list_actors(R.TECHNICIAN.value)


@router.get(
    "/locations",
    response_model=List[LocationResponse],
    summary="List Locations"
)
async def list_locations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.WAREHOUSE_STAFF, R.SUPERVISOR))
):
    return await DirectoryService(db).list_locations()


# ============================================================================
# DASHBOARDS & REPORTS
# ============================================================================

@router.get(
    "/kanban",
    response_model=List[KanbanCard],
    summary="Kanban Board"
)
async def get_kanban(
    status_filter: Optional[AssemblyStatus] = Query(None, alias="status"),
    location_id: Optional[UUID] = None,
    technician_id: Optional[UUID] = None,
    priority_only: bool = False,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    service = AssemblyReportService(db)
    return await service.get_kanban_board(
        status=status_filter.value if status_filter else None,
        location_id=location_id,
        technician_id=technician_id,
        priority_only=priority_only,
    )


@router.get(
    "/dashboard",
    response_model=DailyDashboard,
    summary="Daily Dashboard"
)
async def get_dashboard(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    service = AssemblyReportService(db)
    return await service.get_daily_dashboard()


@router.get(
    "/reports/bottleneck",
    response_model=List[BottleneckRow],
    summary="Bottleneck Report"
)
async def get_bottleneck_report(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    service = AssemblyReportService(db)
    return await service.get_bottleneck_report()


@router.get(
    "/reports/technician-workload",
    response_model=List[TechnicianWorkloadRow],
    summary="Technician Workload"
)
async def get_technician_workload(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR))
):
    service = AssemblyReportService(db)
    return await service.get_technician_workload()


@router.get(
    "/reports/qc-failures",
    response_model=List[QCFailureRow],
    summary="QC Failure Analysis"
)
async def get_qc_failure_analysis(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_buildline_role(R.SUPERVISOR, R.QC_PERSON))
):
    service = AssemblyReportService(db)
    return await service.get_qc_failure_analysis()
