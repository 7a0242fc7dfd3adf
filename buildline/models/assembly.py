"""Buildline assembly models: journeys, zoned bins, audit trails and QC records."""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text
from sqlalchemy import UniqueConstraint, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates

from buildline.database import Base
from buildline.db_types import JSONType, UUIDType


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AssemblyStatus(str, Enum):
    """Stage of a bike in the assembly journey."""
    INWARDED = "inwarded"              # Received, waiting for assignment
    ASSIGNED = "assigned"              # Assigned to a technician
    IN_PROGRESS = "in_progress"        # Being assembled
    COMPLETED = "completed"            # Assembled, waiting for QC
    QC_REVIEW = "qc_review"            # Under QC inspection
    READY_FOR_SALE = "ready_for_sale"  # Terminal - can be invoiced


class StatusZone(str, Enum):
    """Storage purpose of an assembly bin."""
    INWARD_ZONE = "inward_zone"
    ASSEMBLY_ZONE = "assembly_zone"
    COMPLETION_ZONE = "completion_zone"
    QC_ZONE = "qc_zone"
    READY_ZONE = "ready_zone"


class BinStatus(str, Enum):
    """Operational status of an assembly bin."""
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    FULL = "full"
    INACTIVE = "inactive"


class QCResult(str, Enum):
    """QC outcome."""
    PENDING = "pending"
    PASS = "pass"
    FAIL = "fail"


class PauseReason(str, Enum):
    PARTS_MISSING = "parts_missing"
    DAMAGE_REPORTED = "damage_reported"


CHECKLIST_KEYS = ("tyres", "brakes", "gears")


def default_checklist() -> dict:
    return {key: False for key in CHECKLIST_KEYS}


class AssemblyBin(Base):
    """
    Assembly Bin model.
    A physical slot at a location that holds bikes for one stage of the journey.
    Separate from the ERP putaway bins.
    """
    __tablename__ = "assembly_bins"
    __table_args__ = (
        UniqueConstraint("location_id", "bin_code", name="unique_assembly_bin_per_location"),
        CheckConstraint(
            "current_occupancy >= 0 AND current_occupancy <= capacity",
            name="valid_assembly_bin_occupancy"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Weak reference into the location directory
    location_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)

    bin_code: Mapped[str] = mapped_column(String(50), nullable=False)
    bin_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    zone: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Free-text physical area e.g. 'Rack A'"
    )
    status_zone: Mapped[str] = mapped_column(
        String(30),
        default=StatusZone.INWARD_ZONE.value,
        nullable=False,
        comment="inward_zone, assembly_zone, completion_zone, qc_zone, ready_zone"
    )
    bin_status: Mapped[str] = mapped_column(
        String(20),
        default=BinStatus.ACTIVE.value,
        nullable=False,
        comment="active, maintenance, full, inactive"
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    # Capacity
    capacity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    current_occupancy: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    @property
    def available_slots(self) -> int:
        return max(self.capacity - self.current_occupancy, 0)

    @property
    def is_full(self) -> bool:
        return self.current_occupancy >= self.capacity

    def __repr__(self) -> str:
        return f"<AssemblyBin(code='{self.bin_code}', zone='{self.status_zone}', {self.current_occupancy}/{self.capacity})>"


class AssemblyJourney(Base):
    """
    Assembly Journey model.
    Single source of truth for one physical bike from inward to sale-ready.
    """
    __tablename__ = "assembly_journeys"
    __table_args__ = (
        Index("idx_assembly_journeys_technician_status", "technician_id", "current_status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identification
    barcode: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    model_sku: Mapped[str] = mapped_column(String(100), nullable=False)
    frame_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    item_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    item_color: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    item_size: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    current_status: Mapped[str] = mapped_column(
        String(30),
        default=AssemblyStatus.INWARDED.value,
        nullable=False,
        index=True,
        comment="inwarded, assigned, in_progress, completed, qc_review, ready_for_sale"
    )

    # Placement
    current_location_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True, index=True)
    bin_location_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("assembly_bins.id"),
        nullable=True,
        index=True
    )

    priority: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    checklist: Mapped[dict] = mapped_column(JSONType, default=default_checklist, nullable=False)

    # Actors (weak references into the user directory)
    technician_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    supervisor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    qc_person_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # Stage timestamps
    inwarded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    qc_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    qc_completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Exception flags
    parts_missing: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    parts_missing_list: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    damage_reported: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    damage_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    damage_photos: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    assembly_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pause_reason: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # QC
    qc_status: Mapped[str] = mapped_column(
        String(20),
        default=QCResult.PENDING.value,
        nullable=False,
        comment="pending, pass, fail"
    )
    qc_failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    qc_photos: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)
    rework_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    grn_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    # Relationships
    bin_location: Mapped[Optional["AssemblyBin"]] = relationship(
        "AssemblyBin",
        foreign_keys=[bin_location_id]
    )
    status_history: Mapped[List["AssemblyStatusHistory"]] = relationship(
        "AssemblyStatusHistory",
        back_populates="journey",
        order_by="AssemblyStatusHistory.created_at"
    )

    @validates("checklist")
    def validate_checklist(self, key, value):
        if not isinstance(value, dict) or any(k not in value for k in CHECKLIST_KEYS):
            raise ValueError(f"Checklist must contain the keys: {', '.join(CHECKLIST_KEYS)}")
        return value

    def __repr__(self) -> str:
        return f"<AssemblyJourney(barcode='{self.barcode}', status='{self.current_status}')>"


class AssemblyStatusHistory(Base):
    """Append-only log of journey stage changes."""
    __tablename__ = "assembly_status_history"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    journey_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("assembly_journeys.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    journey: Mapped["AssemblyJourney"] = relationship("AssemblyJourney", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<AssemblyStatusHistory({self.from_status} -> {self.to_status})>"


class AssemblyLocationHistory(Base):
    """Append-only log of journey location changes."""
    __tablename__ = "assembly_location_history"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    journey_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("assembly_journeys.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    from_location_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    to_location_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    moved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class AssemblyBinMovementHistory(Base):
    """Append-only log of bin moves, automatic or manual."""
    __tablename__ = "assembly_bin_movement_history"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    journey_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("assembly_journeys.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    from_bin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("assembly_bins.id"), nullable=True, index=True
    )
    to_bin_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType, ForeignKey("assembly_bins.id"), nullable=True, index=True
    )
    from_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    to_status: Mapped[str] = mapped_column(String(30), nullable=False)
    moved_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    auto_assigned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)


class QCChecklist(Base):
    """
    QC Checklist model.
    Detailed inspection record, one per QC attempt on a journey.
    """
    __tablename__ = "qc_checklists"

    id: Mapped[uuid.UUID] = mapped_column(UUIDType, primary_key=True, default=uuid.uuid4)
    journey_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("assembly_journeys.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    qc_person_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)

    brake_check: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    brake_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    drivetrain_check: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    drivetrain_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    alignment_check: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    alignment_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    torque_check: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    torque_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    accessories_check: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    accessories_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    result: Mapped[str] = mapped_column(
        String(20),
        default=QCResult.PENDING.value,
        nullable=False,
        comment="pending, pass, fail"
    )
    failure_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    photos: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    def __repr__(self) -> str:
        return f"<QCChecklist(journey_id='{self.journey_id}', result='{self.result}')>"
