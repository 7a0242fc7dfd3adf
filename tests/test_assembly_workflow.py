"""Workflow engine tests: intake, assignment, assembly, placement and the sale gate."""

import uuid

import pytest
from sqlalchemy import func, select

from buildline.core.exceptions import ConcurrentModificationError
from buildline.models.assembly import (
    AssemblyBinMovementHistory,
    AssemblyJourney,
    AssemblyStatus,
    AssemblyStatusHistory,
    CHECKLIST_KEYS,
    StatusZone,
)
from buildline.schemas.assembly import InwardBikeRequest

FULL_CHECKLIST = {"tyres": True, "brakes": True, "gears": True}

S = AssemblyStatus


async def _count(session, model, journey_id):
    result = await session.execute(
        select(func.count(model.id)).where(model.journey_id == journey_id)
    )
    return result.scalar()


# ==================== INTAKE ====================

async def test_inward_creates_journey_in_inwarded(service, location, inward):
    result = await inward("BK001", location, frame_number="FR-1", grn_reference="GRN-7")

    assert result.new_status == S.INWARDED.value
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.INWARDED.value
    assert journey.inwarded_at is not None
    assert journey.checklist == {"tyres": False, "brakes": False, "gears": False}
    assert journey.grn_reference == "GRN-7"
    assert journey.bin_location_id is None


async def test_inward_rejects_duplicate_barcode(service, location, inward, actors):
    await inward("BK001", location)

    result = await service.inward_bike(InwardBikeRequest(barcode="BK001", model_sku="MTB-29"), actors.warehouse.id)

    assert not result.success
    assert "already exists" in result.message


async def test_inward_rejects_unknown_location(service, actors):
    result = await service.inward_bike(
        InwardBikeRequest(barcode="BK001", model_sku="MTB-29", location_id=uuid.uuid4()),
        actors.warehouse.id,
    )

    assert not result.success
    assert result.message == "Location not found"
    assert await service.get_journey_by_barcode("BK001") is None


async def test_inward_into_explicit_bin_reserves_a_slot(service, location, make_bin, bin_service, inward):
    inward_bin = await make_bin(location, "IN-01", StatusZone.INWARD_ZONE, capacity=1)

    result = await inward("BK001", location, bin_location_id=inward_bin.id)
    assert result.new_bin_id == inward_bin.id
    assert (await bin_service.get_bin(inward_bin.id)).current_occupancy == 1

    movements = await service.get_bin_movement_history("BK001")
    assert len(movements) == 1
    assert movements[0]["to_bin_code"] == "IN-01"
    assert movements[0]["auto_assigned"] is False

    # Bin is now full, so the next intake into it is refused outright
    rejected = await service.inward_bike(
        InwardBikeRequest(barcode="BK002", model_sku="MTB-29", location_id=location.id, bin_location_id=inward_bin.id)
    )
    assert not rejected.success
    assert "full capacity" in rejected.message
    assert await service.get_journey_by_barcode("BK002") is None
    assert (await bin_service.get_bin(inward_bin.id)).current_occupancy == 1


async def test_bulk_inward_reports_each_bike(service, location, inward, actors):
    await inward("BK001", location)

    response = await service.bulk_inward(
        [
            InwardBikeRequest(barcode="BK001", model_sku="MTB-29"),
            InwardBikeRequest(barcode="BK002", model_sku="MTB-29"),
        ],
        actors.warehouse.id,
    )

    assert response.total == 2
    assert [r.barcode for r in response.successful] == ["BK002"]
    assert response.failed[0].barcode == "BK001"


async def test_bill_inward_skips_serials_already_tracked(service, location, inward, actors):
    await inward("SN-1", location)

    result = await service.bulk_create_from_bill(
        ["SN-1", "SN-2", "SN-3", "SN-2"],
        model_sku="ROAD-54",
        grn_reference="BILL-42",
        location_id=location.id,
        actor_id=actors.warehouse.id,
    )

    assert result.created == 2
    assert result.skipped == 2
    assert result.errors == []
    journey = await service.get_journey_by_barcode("SN-3")
    assert journey.model_sku == "ROAD-54"
    assert journey.grn_reference == "BILL-42"


# ==================== ASSIGNMENT ====================

async def test_scenario_assign_inwarded_bike(service, location, inward, actors):
    await inward("BK001", location)

    result = await service.assign_to_technician("BK001", actors.tech1.id, actors.supervisor.id)

    assert result.success
    assert result.new_status == S.ASSIGNED.value
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.ASSIGNED.value
    assert journey.assigned_at is not None
    assert journey.technician_id == actors.tech1.id
    assert journey.supervisor_id == actors.supervisor.id

    history = await service.get_status_history("BK001")
    assert len(history) == 1
    assert history[0]["from_status"] == S.INWARDED.value
    assert history[0]["to_status"] == S.ASSIGNED.value
    assert history[0]["changed_by_name"] == "Sam Supervisor"


async def test_assign_requires_inwarded_status(service, location, inward, actors):
    await inward("BK001", location)
    await service.assign_to_technician("BK001", actors.tech1.id, actors.supervisor.id)

    result = await service.assign_to_technician("BK001", actors.tech2.id, actors.supervisor.id)

    assert not result.success
    assert result.message == "Bike is not in inwarded status (current: assigned)"
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.technician_id == actors.tech1.id


async def test_assign_requires_an_active_technician(service, session, location, inward, actors):
    await inward("BK001", location)

    result = await service.assign_to_technician("BK001", actors.qc.id, actors.supervisor.id)
    assert not result.success
    assert result.message == "Technician not found"

    actors.tech2.is_active = False
    await session.commit()
    result = await service.assign_to_technician("BK001", actors.tech2.id, actors.supervisor.id)
    assert not result.success

    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.INWARDED.value
    assert await _count(session, AssemblyStatusHistory, journey.id) == 0


async def test_unknown_barcode_is_a_structured_failure(service, actors):
    result = await service.assign_to_technician("NOPE", actors.tech1.id, actors.supervisor.id)

    assert not result.success
    assert result.message == "Bike not found"
    assert result.barcode == "NOPE"


async def test_bulk_assign_returns_result_per_barcode(service, location, inward, actors):
    await inward("BK001", location)
    await inward("BK002", location)

    results = await service.bulk_assign(["BK001", "BK002", "MISSING"], actors.tech1.id, actors.supervisor.id)

    assert [r.success for r in results] == [True, True, False]


async def test_set_priority_writes_no_status_history(service, session, location, inward):
    await inward("BK001", location)

    result = await service.set_priority("BK001", True)

    assert result.success
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.priority is True
    assert await _count(session, AssemblyStatusHistory, journey.id) == 0


# ==================== ASSEMBLY ====================

async def test_scenario_start_before_assignment_fails(service, location, inward, actors):
    await inward("BK001", location)

    result = await service.start_assembly("BK001", actors.tech1.id)

    assert not result.success
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.INWARDED.value
    assert journey.started_at is None


async def test_only_the_assigned_technician_can_start(service, location, inward, actors):
    await inward("BK001", location)
    await service.assign_to_technician("BK001", actors.tech1.id, actors.supervisor.id)

    result = await service.start_assembly("BK001", actors.tech2.id)

    assert not result.success
    assert result.message == "Bike is not assigned to you"
    assert (await service.get_journey_by_barcode("BK001")).current_status == S.ASSIGNED.value


async def test_scenario_incomplete_checklist_blocks_completion(service, location, to_in_progress, actors):
    await to_in_progress("BK001", location)

    result = await service.complete_assembly(
        "BK001", actors.tech1.id, {"tyres": True, "brakes": True, "gears": False}
    )

    assert not result.success
    assert result.message == "All checklist items must be completed"
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.IN_PROGRESS.value
    assert journey.completed_at is None


async def test_self_certified_completion_reaches_ready_for_sale(service, location, to_in_progress, actors):
    await to_in_progress("BK001", location)

    result = await service.complete_assembly("BK001", actors.tech1.id, FULL_CHECKLIST)

    assert result.success
    assert result.message == "Assembly completed - Bike ready for sale"
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.READY_FOR_SALE.value
    assert journey.qc_status == "pass"
    assert journey.completed_at is not None
    assert journey.qc_completed_at is not None
    assert journey.checklist == FULL_CHECKLIST

    history = await service.get_status_history("BK001")
    assert [(h["from_status"], h["to_status"]) for h in reversed(history)] == [
        (S.INWARDED.value, S.ASSIGNED.value),
        (S.ASSIGNED.value, S.IN_PROGRESS.value),
        (S.IN_PROGRESS.value, S.READY_FOR_SALE.value),
    ]


async def test_sale_ready_bike_is_terminal(service, location, to_in_progress, actors):
    await to_in_progress("BK001", location)
    await service.complete_assembly("BK001", actors.tech1.id, FULL_CHECKLIST)

    result = await service.submit_qc_result("BK001", actors.qc.id, "fail", "late fail")

    assert not result.success
    assert (await service.get_journey_by_barcode("BK001")).current_status == S.READY_FOR_SALE.value


@pytest.mark.parametrize(
    "checklist",
    [
        {"tyres": True, "brakes": True},
        {"tyres": True, "brakes": True, "gears": True, "saddle": True},
        {"tyres": "yes", "brakes": True, "gears": True},
    ],
)
async def test_malformed_checklist_is_rejected(service, location, to_in_progress, actors, checklist):
    await to_in_progress("BK001", location)

    saved = await service.update_checklist("BK001", actors.tech1.id, checklist)
    completed = await service.complete_assembly("BK001", actors.tech1.id, checklist)

    assert not saved.success
    assert not completed.success
    assert "tyres, brakes and gears" in saved.message
    journey = await service.get_journey_by_barcode("BK001")
    assert set(journey.checklist) == set(CHECKLIST_KEYS)
    assert journey.current_status == S.IN_PROGRESS.value


async def test_checklist_progress_is_saved_without_history(service, session, location, to_in_progress, actors):
    await to_in_progress("BK001", location)
    partial = {"tyres": True, "brakes": False, "gears": False}

    result = await service.update_checklist("BK001", actors.tech1.id, partial)

    assert result.success
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.checklist == partial
    assert journey.current_status == S.IN_PROGRESS.value
    assert await _count(session, AssemblyStatusHistory, journey.id) == 2


async def test_checklist_requires_in_progress(service, location, inward, actors):
    await inward("BK001", location)
    await service.assign_to_technician("BK001", actors.tech1.id, actors.supervisor.id)

    result = await service.update_checklist("BK001", actors.tech1.id, FULL_CHECKLIST)

    assert not result.success
    assert result.message == "Bike is not in in progress status (current: assigned)"


def _snapshot(journey):
    """Detached copy of a journey as a second writer read it."""
    return AssemblyJourney(
        id=journey.id,
        barcode=journey.barcode,
        current_status=journey.current_status,
        technician_id=journey.technician_id,
        bin_location_id=journey.bin_location_id,
    )


async def test_racing_assignments_only_one_wins(
    service, session, location, zoned_bins, bin_service, inward, actors, monkeypatch
):
    await inward("BK001", location, bin_location_id=zoned_bins.inward.id)
    seen_by_loser = _snapshot(await service.get_journey_by_barcode("BK001"))

    won = await service.assign_to_technician("BK001", actors.tech1.id, actors.supervisor.id)
    assert won.success

    # The second supervisor read the bike before the first assignment landed
    async def stale_lock(barcode):
        return seen_by_loser

    monkeypatch.setattr(service, "_lock_journey", stale_lock)
    lost = await service.assign_to_technician("BK001", actors.tech2.id, actors.admin.id)

    assert lost.success is False
    assert lost.message == str(ConcurrentModificationError())
    monkeypatch.undo()

    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.ASSIGNED.value
    assert journey.technician_id == actors.tech1.id
    assert journey.bin_location_id == zoned_bins.assembly.id
    assert await _count(session, AssemblyStatusHistory, journey.id) == 1
    assert await _count(session, AssemblyBinMovementHistory, journey.id) == 2
    assert (await bin_service.get_bin(zoned_bins.inward.id)).current_occupancy == 0
    assert (await bin_service.get_bin(zoned_bins.assembly.id)).current_occupancy == 1


async def test_double_start_only_moves_the_bike_once(
    service, session, location, zoned_bins, bin_service, inward, actors, monkeypatch
):
    await inward("BK001", location)
    await service.assign_to_technician("BK001", actors.tech1.id, actors.supervisor.id)
    seen_by_second_device = _snapshot(await service.get_journey_by_barcode("BK001"))

    first = await service.start_assembly("BK001", actors.tech1.id)
    assert first.success

    async def stale_lock(barcode):
        return seen_by_second_device

    monkeypatch.setattr(service, "_lock_journey", stale_lock)
    second = await service.start_assembly("BK001", actors.tech1.id)

    assert second.success is False
    assert second.message == str(ConcurrentModificationError())
    monkeypatch.undo()

    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.IN_PROGRESS.value
    assert await _count(session, AssemblyStatusHistory, journey.id) == 2
    assert (await bin_service.get_bin(zoned_bins.assembly.id)).current_occupancy == 1


# ==================== EXCEPTION FLAGS ====================

async def test_flag_parts_missing_pauses_without_stage_change(service, session, location, to_in_progress):
    await to_in_progress("BK001", location)

    result = await service.flag_parts_missing("BK001", ["rear derailleur", "pedals"], notes="Box 3 short")

    assert result.success
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.IN_PROGRESS.value
    assert journey.parts_missing is True
    assert journey.parts_missing_list == ["rear derailleur", "pedals"]
    assert journey.assembly_paused is True
    assert journey.pause_reason == "parts_missing"
    assert journey.notes == "Box 3 short"
    assert await _count(session, AssemblyStatusHistory, journey.id) == 2


async def test_report_damage_pauses_assembly(service, location, inward):
    await inward("BK001", location)

    result = await service.report_damage("BK001", "Scratched top tube", photos=["p1.jpg"])

    assert result.success
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.INWARDED.value
    assert journey.damage_reported is True
    assert journey.damage_notes == "Scratched top tube"
    assert journey.damage_photos == ["p1.jpg"]
    assert journey.pause_reason == "damage_reported"


# ==================== BIN PLACEMENT ====================

async def test_bike_follows_its_stage_through_the_zones(
    service, location, zoned_bins, bin_service, inward, actors
):
    await inward("BK001", location, bin_location_id=zoned_bins.inward.id)

    assigned = await service.assign_to_technician("BK001", actors.tech1.id, actors.supervisor.id)
    assert assigned.new_bin_id == zoned_bins.assembly.id
    assert assigned.old_bin_id == zoned_bins.inward.id

    # Already in the least occupied assembly bin
    started = await service.start_assembly("BK001", actors.tech1.id)
    assert started.new_bin_id is None

    completed = await service.complete_assembly("BK001", actors.tech1.id, FULL_CHECKLIST)
    assert completed.new_bin_id == zoned_bins.ready.id

    occupancy = {
        name: (await bin_service.get_bin(b.id)).current_occupancy
        for name, b in vars(zoned_bins).items()
    }
    assert occupancy == {"inward": 0, "assembly": 0, "completion": 0, "qc": 0, "ready": 1}

    movements = await service.get_bin_movement_history("BK001")
    assert [(m["from_bin_code"], m["to_bin_code"], m["auto_assigned"]) for m in reversed(movements)] == [
        (None, "IN-01", False),
        ("IN-01", "AS-01", True),
        ("AS-01", "RD-01", True),
    ]


async def test_scenario_full_zone_keeps_current_bin(
    service, location, make_bin, bin_service, inward, actors
):
    inward_bin = await make_bin(location, "IN-01", StatusZone.INWARD_ZONE, capacity=10)
    assembly_bin = await make_bin(location, "AS-01", StatusZone.ASSEMBLY_ZONE, capacity=1)

    await inward("BK001", location)
    first = await service.assign_to_technician("BK001", actors.tech1.id, actors.supervisor.id)
    assert first.new_bin_id == assembly_bin.id

    await inward("BK002", location, bin_location_id=inward_bin.id)
    second = await service.assign_to_technician("BK002", actors.tech2.id, actors.supervisor.id)
    started = await service.start_assembly("BK002", actors.tech2.id)

    assert second.success and started.success
    assert second.new_bin_id is None
    assert started.new_bin_id is None
    journey = await service.get_journey_by_barcode("BK002")
    assert journey.current_status == S.IN_PROGRESS.value
    assert journey.bin_location_id == inward_bin.id
    assert (await bin_service.get_bin(assembly_bin.id)).current_occupancy == 1
    assert (await bin_service.get_bin(inward_bin.id)).current_occupancy == 1


async def test_lost_reservation_race_still_transitions(
    service, location, make_bin, bin_service, inward, actors, monkeypatch
):
    assembly_bin = await make_bin(location, "AS-01", StatusZone.ASSEMBLY_ZONE, capacity=1)
    await bin_service.reserve_slot(assembly_bin.id)
    stale = await bin_service.get_bin(assembly_bin.id)
    await inward("BK001", location)

    # The candidate list was read before another bike took the last slot
    async def stale_candidates(*args, **kwargs):
        return [stale]

    monkeypatch.setattr(service.bins, "list_active_bins_in_zone", stale_candidates)

    result = await service.assign_to_technician("BK001", actors.tech1.id, actors.supervisor.id)

    assert result.success
    assert result.new_bin_id is None
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_status == S.ASSIGNED.value
    assert journey.bin_location_id is None
    assert (await bin_service.get_bin(assembly_bin.id)).current_occupancy == 1


async def test_move_bike_to_bin(service, session, location, make_bin, bin_service, inward, actors):
    source = await make_bin(location, "IN-01", StatusZone.INWARD_ZONE, capacity=5)
    target = await make_bin(location, "IN-02", StatusZone.INWARD_ZONE, capacity=5)
    await inward("BK001", location, bin_location_id=source.id)

    result = await service.move_bike_to_bin("BK001", target.id, actors.warehouse.id, "Rack reshuffle")

    assert result.success
    assert result.old_bin_id == source.id
    assert result.new_bin_id == target.id
    assert (await bin_service.get_bin(source.id)).current_occupancy == 0
    assert (await bin_service.get_bin(target.id)).current_occupancy == 1
    latest = (await service.get_bin_movement_history("BK001"))[0]
    assert latest["reason"] == "Rack reshuffle"
    assert latest["auto_assigned"] is False
    assert latest["moved_by_name"] == "Wes Warehouse"


async def test_move_to_current_bin_is_a_no_op(service, session, location, make_bin, bin_service, inward):
    source = await make_bin(location, "IN-01", StatusZone.INWARD_ZONE, capacity=5)
    await inward("BK001", location, bin_location_id=source.id)
    journey = await service.get_journey_by_barcode("BK001")

    result = await service.move_bike_to_bin("BK001", source.id)

    assert result.success
    assert result.message == "Bike is already in this bin"
    assert (await bin_service.get_bin(source.id)).current_occupancy == 1
    assert await _count(session, AssemblyBinMovementHistory, journey.id) == 1


async def test_move_to_full_or_unknown_bin_changes_nothing(service, location, make_bin, bin_service, inward):
    source = await make_bin(location, "IN-01", StatusZone.INWARD_ZONE, capacity=5)
    full = await make_bin(location, "IN-02", StatusZone.INWARD_ZONE, capacity=1)
    await bin_service.reserve_slot(full.id)
    await inward("BK001", location, bin_location_id=source.id)

    to_full = await service.move_bike_to_bin("BK001", full.id)
    to_unknown = await service.move_bike_to_bin("BK001", uuid.uuid4())

    assert not to_full.success
    assert "full capacity" in to_full.message
    assert not to_unknown.success
    assert to_unknown.message == "Bin not found"
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.bin_location_id == source.id
    assert (await bin_service.get_bin(source.id)).current_occupancy == 1
    assert (await bin_service.get_bin(full.id)).current_occupancy == 1


async def test_transfer_location_rebins_at_destination(
    service, location, store, make_bin, bin_service, to_in_progress, actors
):
    warehouse_bin = await make_bin(location, "AS-01", StatusZone.ASSEMBLY_ZONE, capacity=2)
    store_bin = await make_bin(store, "AS-S1", StatusZone.ASSEMBLY_ZONE, capacity=2)
    await to_in_progress("BK001", location)

    result = await service.transfer_location("BK001", store.id, actors.supervisor.id, "Store build")

    assert result.success
    assert result.old_bin_id == warehouse_bin.id
    assert result.new_bin_id == store_bin.id
    journey = await service.get_journey_by_barcode("BK001")
    assert journey.current_location_id == store.id
    assert journey.current_status == S.IN_PROGRESS.value
    assert (await bin_service.get_bin(warehouse_bin.id)).current_occupancy == 0
    assert (await bin_service.get_bin(store_bin.id)).current_occupancy == 1

    locations = await service.get_location_history("BK001")
    assert len(locations) == 1
    assert locations[0].from_location_id == location.id
    assert locations[0].to_location_id == store.id
    assert locations[0].reason == "Store build"


async def test_transfer_to_unknown_location_fails(service, location, inward):
    await inward("BK001", location)

    result = await service.transfer_location("BK001", uuid.uuid4())

    assert not result.success
    assert result.message == "Location not found"
    assert (await service.get_journey_by_barcode("BK001")).current_location_id == location.id
    assert await service.get_location_history("BK001") == []


# ==================== SALE GATE & VIEWS ====================

async def test_can_invoice_only_when_ready_for_sale(service, location, to_in_progress, actors):
    missing = await service.can_invoice_item("NOPE")
    assert not missing.can_invoice
    assert missing.message == "Bike not found in assembly tracking"

    await to_in_progress("BK001", location)
    blocked = await service.can_invoice_item("BK001")
    assert not blocked.can_invoice
    assert blocked.message == "Bike is not ready for sale. Current status: in_progress"

    await service.complete_assembly("BK001", actors.tech1.id, FULL_CHECKLIST)
    allowed = await service.can_invoice_item("BK001")
    assert allowed.can_invoice
    assert allowed.status == S.READY_FOR_SALE.value
    assert allowed.sku == "MTB-29"


async def test_scan_reports_ownership(service, location, to_in_progress, actors):
    await to_in_progress("BK001", location)

    mine = await service.scan("BK001", actors.tech1.id)
    theirs = await service.scan("BK001", actors.tech2.id)

    assert mine.ownership.is_assigned_to_me is True
    assert theirs.ownership.is_assigned_to_me is False
    assert theirs.ownership.assigned_technician_name == "Tara Technician"
    assert mine.location_name == "Main Warehouse"
    assert await service.scan("NOPE", actors.tech1.id) is None


async def test_bike_details_timeline_is_newest_first(service, location, to_in_progress, actors):
    await to_in_progress("BK001", location)

    details = await service.get_bike_details("BK001")

    assert details.technician_name == "Tara Technician"
    assert [entry.status for entry in details.timeline] == [S.IN_PROGRESS.value, S.ASSIGNED.value]
    assert await service.get_bike_details("NOPE") is None
