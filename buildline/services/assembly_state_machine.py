"""
Assembly Journey State Machine

This module is the SINGLE SOURCE OF TRUTH for bike stage transitions,
the bin zone each stage is stored in, and the timestamp that marks entry
into each stage. The workflow service consults it before every update.

Two completion paths exist:
- Self-certified: in_progress -> ready_for_sale (technician checklist only)
- QC review:      in_progress -> completed -> qc_review -> ready_for_sale
Which one a bike takes is decided by Settings.qc_required_for(model_sku).
"""

from typing import Optional, List, Dict
from datetime import datetime, timezone

from buildline.core.exceptions import InvalidTransitionError
from buildline.models.assembly import AssemblyStatus, StatusZone


S = AssemblyStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

# Format: current_status -> [list of allowed next statuses]
ASSEMBLY_TRANSITIONS: Dict[str, List[str]] = {
    S.INWARDED.value: [
        S.ASSIGNED.value,           # Supervisor assigns a technician
    ],
    S.ASSIGNED.value: [
        S.IN_PROGRESS.value,        # Technician starts assembly
    ],
    S.IN_PROGRESS.value: [
        S.READY_FOR_SALE.value,     # Self-certified completion
        S.COMPLETED.value,          # Completion when QC is required
    ],
    S.COMPLETED.value: [
        S.QC_REVIEW.value,          # QC inspection starts
        S.READY_FOR_SALE.value,     # QC pass
        S.IN_PROGRESS.value,        # QC fail - rework
    ],
    S.QC_REVIEW.value: [
        S.READY_FOR_SALE.value,     # QC pass
        S.IN_PROGRESS.value,        # QC fail - rework
    ],
    S.READY_FOR_SALE.value: [],     # Terminal state
}

TRANSITION_ACTIONS: Dict[tuple, str] = {
    (S.INWARDED.value, S.ASSIGNED.value): "Assign to Technician",
    (S.ASSIGNED.value, S.IN_PROGRESS.value): "Start Assembly",
    (S.IN_PROGRESS.value, S.READY_FOR_SALE.value): "Complete Assembly",
    (S.IN_PROGRESS.value, S.COMPLETED.value): "Complete Assembly",
    (S.COMPLETED.value, S.QC_REVIEW.value): "Start QC Review",
    (S.COMPLETED.value, S.READY_FOR_SALE.value): "QC Pass",
    (S.COMPLETED.value, S.IN_PROGRESS.value): "QC Fail",
    (S.QC_REVIEW.value, S.READY_FOR_SALE.value): "QC Pass",
    (S.QC_REVIEW.value, S.IN_PROGRESS.value): "QC Fail",
}

# Zone a bike should sit in while in each stage
STATUS_ZONES: Dict[str, str] = {
    S.INWARDED.value: StatusZone.INWARD_ZONE.value,
    S.ASSIGNED.value: StatusZone.ASSEMBLY_ZONE.value,
    S.IN_PROGRESS.value: StatusZone.ASSEMBLY_ZONE.value,
    S.COMPLETED.value: StatusZone.COMPLETION_ZONE.value,
    S.QC_REVIEW.value: StatusZone.QC_ZONE.value,
    S.READY_FOR_SALE.value: StatusZone.READY_ZONE.value,
}

# Journey column stamped when a bike enters each stage
STAGE_TIMESTAMPS: Dict[str, str] = {
    S.INWARDED.value: "inwarded_at",
    S.ASSIGNED.value: "assigned_at",
    S.IN_PROGRESS.value: "started_at",
    S.COMPLETED.value: "completed_at",
    S.QC_REVIEW.value: "qc_started_at",
}

# Stages where a technician is actively working on the bike
QUEUE_STATUSES = [S.ASSIGNED.value, S.IN_PROGRESS.value]
QC_STATUSES = [S.COMPLETED.value, S.QC_REVIEW.value]

# Display order for stage-grouped reports
STAGE_ORDER = [status.value for status in AssemblyStatus]


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def can_transition(current_status: str, new_status: str) -> bool:
    """Check if a transition is allowed."""
    return new_status in ASSEMBLY_TRANSITIONS.get(current_status, [])


def get_allowed_transitions(current_status: str) -> List[str]:
    """Get list of statuses that can be transitioned to from current status."""
    return ASSEMBLY_TRANSITIONS.get(current_status, [])


def get_transition_action(current_status: str, new_status: str) -> str:
    """Get human-readable action name for a transition."""
    return TRANSITION_ACTIONS.get((current_status, new_status), f"{current_status} -> {new_status}")


def validate_transition(current_status: str, new_status: str) -> None:
    """
    Validate a stage transition. Raises InvalidTransitionError if invalid.
    """
    if can_transition(current_status, new_status):
        return

    allowed = get_allowed_transitions(current_status)
    if not allowed:
        raise InvalidTransitionError(
            f"Bike in '{current_status}' status cannot be modified. This is a terminal state."
        )
    raise InvalidTransitionError(
        f"Cannot move bike from '{current_status}' to '{new_status}'. "
        f"Allowed transitions: {', '.join(allowed)}"
    )


def target_zone(status: str) -> Optional[str]:
    """Bin zone for a stage."""
    return STATUS_ZONES.get(status)


def is_terminal(status: str) -> bool:
    return status == S.READY_FOR_SALE.value


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite drops the offset)."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def stage_entered_at(journey) -> Optional[datetime]:
    """
    When the journey entered its current stage.

    A bike sent back by QC re-enters in_progress at qc_completed_at, not at
    its original started_at.
    """
    status = journey.current_status
    if (
        status == S.IN_PROGRESS.value
        and journey.qc_status == "fail"
        and journey.qc_completed_at is not None
    ):
        return as_utc(journey.qc_completed_at)

    column = STAGE_TIMESTAMPS.get(status)
    if column is None:
        return None
    return as_utc(getattr(journey, column))


def dwell_hours(journey, now: Optional[datetime] = None) -> float:
    """Hours spent in the current stage; zero for sale-ready bikes."""
    if is_terminal(journey.current_status):
        return 0.0
    entered = stage_entered_at(journey)
    if entered is None:
        return 0.0
    now = now or datetime.now(timezone.utc)
    return max((now - entered).total_seconds() / 3600, 0.0)
