"""Pydantic schemas for Buildline assembly tracking."""
from pydantic import BaseModel, ConfigDict, Field, StrictBool

from buildline.schemas.base import BaseResponseSchema, BaseCreateSchema
from typing import Optional, List
from datetime import datetime
import uuid

from buildline.models.assembly import StatusZone, BinStatus


# ==================== CHECKLIST ====================

class AssemblyChecklist(BaseModel):
    """Technician checklist. Exactly these three flags, nothing else."""
    model_config = ConfigDict(extra='forbid')

    tyres: StrictBool
    brakes: StrictBool
    gears: StrictBool

    @property
    def all_checked(self) -> bool:
        return self.tyres and self.brakes and self.gears


# ==================== INWARD SCHEMAS ====================

class InwardBikeRequest(BaseCreateSchema):
    """Inward a single bike into the assembly line."""
    barcode: str = Field(..., min_length=1, max_length=100)
    model_sku: str = Field(..., min_length=1, max_length=100)
    frame_number: Optional[str] = None
    location_id: Optional[uuid.UUID] = None
    bin_location_id: Optional[uuid.UUID] = None
    grn_reference: Optional[str] = None
    item_name: Optional[str] = None
    item_color: Optional[str] = None
    item_size: Optional[str] = None
    priority: bool = False
    notes: Optional[str] = None


class BulkInwardRequest(BaseModel):
    bikes: List[InwardBikeRequest] = Field(..., min_length=1)


class BillInwardRequest(BaseModel):
    """Create journeys for serials received on a purchase bill."""
    serials: List[str] = Field(..., min_length=1)
    model_sku: str = Field(..., min_length=1)
    grn_reference: str


class BillInwardResult(BaseModel):
    created: int
    skipped: int
    errors: List[str] = []


# ==================== WORKFLOW REQUESTS ====================

class AssignRequest(BaseModel):
    barcode: str
    technician_id: uuid.UUID


class BulkAssignRequest(BaseModel):
    barcodes: List[str] = Field(..., min_length=1)
    technician_id: uuid.UUID


class SetPriorityRequest(BaseModel):
    barcode: str
    priority: bool


class BarcodeRequest(BaseModel):
    barcode: str


class ChecklistRequest(BaseModel):
    """Checklist save or assembly completion."""
    barcode: str
    checklist: AssemblyChecklist


class PartsMissingRequest(BaseModel):
    barcode: str
    parts: List[str] = Field(..., min_length=1)
    notes: Optional[str] = None


class DamageReportRequest(BaseModel):
    barcode: str
    damage_notes: str = Field(..., min_length=1)
    photos: Optional[List[str]] = None


class QCInspectionChecks(BaseModel):
    """Per-subsystem findings recorded on the QC checklist."""
    brake_check: bool = False
    brake_notes: Optional[str] = None
    drivetrain_check: bool = False
    drivetrain_notes: Optional[str] = None
    alignment_check: bool = False
    alignment_notes: Optional[str] = None
    torque_check: bool = False
    torque_notes: Optional[str] = None
    accessories_check: bool = False
    accessories_notes: Optional[str] = None


class QCSubmitRequest(BaseModel):
    barcode: str
    # Validated by the workflow so an unknown value comes back as a structured failure
    result: str
    failure_reason: Optional[str] = None
    photos: Optional[List[str]] = None
    checks: Optional[QCInspectionChecks] = None


class MoveToBinRequest(BaseModel):
    barcode: str
    bin_id: uuid.UUID
    reason: Optional[str] = None


class LocationTransferRequest(BaseModel):
    barcode: str
    location_id: uuid.UUID
    reason: Optional[str] = None


# ==================== RESULTS ====================

class AssemblyActionResult(BaseModel):
    """Outcome of a workflow operation. Failures are results, not errors."""
    success: bool
    message: str
    barcode: Optional[str] = None
    journey_id: Optional[uuid.UUID] = None
    new_status: Optional[str] = None
    old_bin_id: Optional[uuid.UUID] = None
    new_bin_id: Optional[uuid.UUID] = None


class BulkInwardFailure(BaseModel):
    barcode: str
    error: str


class BulkInwardResponse(BaseModel):
    successful: List[AssemblyActionResult]
    failed: List[BulkInwardFailure]
    total: int


class CanInvoiceResponse(BaseModel):
    """Sale gate answer consumed by invoicing."""
    can_invoice: bool
    message: str
    barcode: str
    status: Optional[str] = None
    sku: Optional[str] = None


# ==================== BIN SCHEMAS ====================

class BinCreate(BaseCreateSchema):
    """Assembly bin provisioning schema."""
    location_id: uuid.UUID
    bin_code: str = Field(..., min_length=1, max_length=50)
    bin_name: Optional[str] = None
    zone: Optional[str] = None
    status_zone: StatusZone = StatusZone.INWARD_ZONE
    bin_status: BinStatus = BinStatus.ACTIVE
    capacity: int = Field(1, ge=1)
    notes: Optional[str] = None


class BinBrief(BaseResponseSchema):
    """Bin summary embedded in journey views."""
    id: uuid.UUID
    bin_code: str
    bin_name: Optional[str] = None
    zone: Optional[str] = None


class BinResponse(BaseResponseSchema):
    id: uuid.UUID
    location_id: uuid.UUID
    bin_code: str
    bin_name: Optional[str] = None
    zone: Optional[str] = None
    status_zone: str
    bin_status: str
    is_active: bool
    capacity: int
    current_occupancy: int
    available_slots: int
    notes: Optional[str] = None


class BinZoneStatistics(BaseModel):
    location_id: uuid.UUID
    location_name: Optional[str] = None
    location_code: Optional[str] = None
    status_zone: str
    total_bins: int
    total_capacity: int
    total_occupancy: int
    available_slots: int
    occupancy_percentage: Optional[float] = None


class BinMovementResponse(BaseResponseSchema):
    id: uuid.UUID
    journey_id: uuid.UUID
    from_bin_id: Optional[uuid.UUID] = None
    from_bin_code: Optional[str] = None
    to_bin_id: Optional[uuid.UUID] = None
    to_bin_code: Optional[str] = None
    from_status: Optional[str] = None
    to_status: str
    moved_by: Optional[uuid.UUID] = None
    moved_by_name: Optional[str] = None
    reason: Optional[str] = None
    auto_assigned: bool
    created_at: datetime


# ==================== JOURNEY SCHEMAS ====================

class JourneyResponse(BaseResponseSchema):
    id: uuid.UUID
    barcode: str
    model_sku: str
    frame_number: Optional[str] = None
    item_name: Optional[str] = None
    item_color: Optional[str] = None
    item_size: Optional[str] = None
    current_status: str
    current_location_id: Optional[uuid.UUID] = None
    bin_location_id: Optional[uuid.UUID] = None
    priority: bool
    checklist: dict
    technician_id: Optional[uuid.UUID] = None
    supervisor_id: Optional[uuid.UUID] = None
    qc_person_id: Optional[uuid.UUID] = None
    inwarded_at: datetime
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    qc_started_at: Optional[datetime] = None
    qc_completed_at: Optional[datetime] = None
    parts_missing: bool
    parts_missing_list: Optional[List[str]] = None
    damage_reported: bool
    damage_notes: Optional[str] = None
    damage_photos: Optional[List[str]] = None
    assembly_paused: bool
    pause_reason: Optional[str] = None
    qc_status: str
    qc_failure_reason: Optional[str] = None
    qc_photos: Optional[List[str]] = None
    rework_count: int
    grn_reference: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Ownership(BaseModel):
    is_assigned_to_me: bool
    assigned_technician_name: Optional[str] = None


class ScanResponse(BaseModel):
    journey: JourneyResponse
    bin_location: Optional[BinBrief] = None
    location_name: Optional[str] = None
    ownership: Ownership


class TimelineEntry(BaseModel):
    status: str
    timestamp: datetime


class BikeDetailsResponse(BaseModel):
    journey: JourneyResponse
    bin_location: Optional[BinBrief] = None
    location_name: Optional[str] = None
    technician_name: Optional[str] = None
    qc_person_name: Optional[str] = None
    timeline: List[TimelineEntry] = []


class StatusHistoryResponse(BaseResponseSchema):
    id: uuid.UUID
    journey_id: uuid.UUID
    from_status: Optional[str] = None
    to_status: str
    changed_by: Optional[uuid.UUID] = None
    changed_by_name: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime


class LocationHistoryResponse(BaseResponseSchema):
    id: uuid.UUID
    journey_id: uuid.UUID
    from_location_id: Optional[uuid.UUID] = None
    to_location_id: uuid.UUID
    moved_by: Optional[uuid.UUID] = None
    reason: Optional[str] = None
    created_at: datetime


# ==================== REPORT SCHEMAS ====================

class TechnicianQueueItem(BaseModel):
    barcode: str
    model_sku: str
    current_status: str
    priority: bool
    checklist: dict
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    qc_status: str
    qc_failure_reason: Optional[str] = None
    rework_count: int
    bin_location: Optional[BinBrief] = None
    item_name: Optional[str] = None
    item_color: Optional[str] = None
    item_size: Optional[str] = None


class KanbanCard(BaseModel):
    id: uuid.UUID
    barcode: str
    model_sku: str
    frame_number: Optional[str] = None
    current_status: str
    priority: bool
    parts_missing: bool
    damage_reported: bool
    assembly_paused: bool
    checklist: dict
    inwarded_at: datetime
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    qc_started_at: Optional[datetime] = None
    qc_completed_at: Optional[datetime] = None
    current_location_id: Optional[uuid.UUID] = None
    location_name: Optional[str] = None
    location_code: Optional[str] = None
    bin_location_id: Optional[uuid.UUID] = None
    bin_code: Optional[str] = None
    bin_name: Optional[str] = None
    bin_zone: Optional[str] = None
    bin_area: Optional[str] = None
    technician_id: Optional[uuid.UUID] = None
    technician_name: Optional[str] = None
    supervisor_id: Optional[uuid.UUID] = None
    supervisor_name: Optional[str] = None
    qc_person_id: Optional[uuid.UUID] = None
    qc_person_name: Optional[str] = None
    hours_in_current_status: float
    qc_status: str
    rework_count: int


class DailyDashboard(BaseModel):
    report_date: datetime
    inwarded_today: int
    assembled_today: int
    qc_passed_today: int
    pending_assignment: int
    pending_start: int
    currently_assembling: int
    awaiting_qc: int
    ready_for_sale: int
    stuck_over_threshold: int
    priority_pending: int


class BottleneckRow(BaseModel):
    current_status: str
    bikes_in_stage: int
    avg_hours_in_stage: float
    max_hours_in_stage: float
    in_warehouse: int
    in_store: int
    priority_items: int


class TechnicianWorkloadRow(BaseModel):
    technician_id: uuid.UUID
    technician_name: str
    email: Optional[str] = None
    assigned_count: int
    in_progress_count: int
    completed_today: int
    total_completed: int
    rework_items: int
    avg_assembly_hours: Optional[float] = None
    qc_pass_rate_percent: Optional[float] = None


class QCFailureRow(BaseModel):
    model_sku: str
    qc_failure_reason: str
    failure_count: int
    technicians: List[str]
    last_failure_date: Optional[datetime] = None


class ActorBrief(BaseResponseSchema):
    id: uuid.UUID
    name: str
    email: Optional[str] = None


class LocationResponse(BaseResponseSchema):
    id: uuid.UUID
    name: str
    code: Optional[str] = None
    type: Optional[str] = None
    address: Optional[str] = None
    is_active: bool
