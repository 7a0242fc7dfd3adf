"""Read models over journeys, plus the stuck bike scan and its scheduler wiring."""

import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import update

from buildline.config import Settings
from buildline.jobs.assembly_jobs import scan_stuck_assets
from buildline.jobs.scheduler import get_job_status, shutdown_scheduler, start_scheduler
from buildline.models.assembly import AssemblyJourney, AssemblyStatus
from buildline.services.assembly_report_service import AssemblyReportService

FULL_CHECKLIST = {"tyres": True, "brakes": True, "gears": True}

S = AssemblyStatus


@pytest.fixture
def reports(session):
    return AssemblyReportService(session)


@pytest.fixture
async def floor(service, location, inward, to_in_progress, actors):
    """
    BK1 inwarded (priority), BK2 assigned, BK3 in progress, BK4 sale-ready.
    Everything belongs to tech1.
    """
    await inward("BK1", location, priority=True)

    await inward("BK2", location)
    await service.assign_to_technician("BK2", actors.tech1.id, actors.supervisor.id)

    await to_in_progress("BK3", location)

    await to_in_progress("BK4", location)
    done = await service.complete_assembly("BK4", actors.tech1.id, FULL_CHECKLIST)
    assert done.success


async def test_technician_queue_puts_priority_first_then_oldest(service, reports, location, inward, actors):
    for barcode in ("BK1", "BK2", "BK3"):
        await inward(barcode, location)
        await service.assign_to_technician(barcode, actors.tech1.id, actors.supervisor.id)
    await inward("OTHER", location)
    await service.assign_to_technician("OTHER", actors.tech2.id, actors.supervisor.id)
    await service.set_priority("BK3", True)

    queue = await reports.get_technician_queue(actors.tech1.id)

    assert [item.barcode for item in queue] == ["BK3", "BK1", "BK2"]
    assert queue[0].priority is True


async def test_technician_queue_skips_finished_bikes(service, reports, floor, actors):
    queue = await reports.get_technician_queue(actors.tech1.id)

    assert sorted(item.barcode for item in queue) == ["BK2", "BK3"]


async def test_kanban_board_filters_and_names(reports, floor, actors):
    cards = await reports.get_kanban_board()
    assert len(cards) == 4
    assert cards[0].barcode == "BK1"

    assembling = await reports.get_kanban_board(status=S.IN_PROGRESS.value)
    assert [card.barcode for card in assembling] == ["BK3"]
    card = assembling[0]
    assert card.technician_name == "Tara Technician"
    assert card.supervisor_name == "Sam Supervisor"
    assert card.location_name == "Main Warehouse"
    assert card.location_code == "WH-MAIN"

    assert [c.barcode for c in await reports.get_kanban_board(priority_only=True)] == ["BK1"]
    assert await reports.get_kanban_board(technician_id=actors.tech2.id) == []


async def test_kanban_hours_in_current_status(reports, floor):
    later = datetime.now(timezone.utc) + timedelta(hours=3)

    cards = {card.barcode: card for card in await reports.get_kanban_board(now=later)}

    assert cards["BK1"].hours_in_current_status == pytest.approx(3.0, abs=0.05)
    assert cards["BK4"].hours_in_current_status == 0.0


async def test_daily_dashboard(reports, floor):
    dashboard = await reports.get_daily_dashboard()

    assert dashboard.inwarded_today == 4
    assert dashboard.assembled_today == 1
    assert dashboard.qc_passed_today == 1
    assert dashboard.pending_assignment == 1
    assert dashboard.pending_start == 1
    assert dashboard.currently_assembling == 1
    assert dashboard.awaiting_qc == 0
    assert dashboard.ready_for_sale == 1
    assert dashboard.stuck_over_threshold == 0
    assert dashboard.priority_pending == 1


async def test_stuck_journeys_exceed_threshold(reports, floor):
    later = datetime.now(timezone.utc) + timedelta(hours=30)

    stuck = await reports.get_stuck_journeys(threshold_hours=24, now=later)

    assert sorted(j.barcode for j in stuck) == ["BK1", "BK2", "BK3"]
    assert await reports.get_stuck_journeys(threshold_hours=48, now=later) == []


async def test_bottleneck_report_splits_warehouse_and_store(reports, floor, inward, store):
    await inward("BK5", store)

    rows = {row.current_status: row for row in await reports.get_bottleneck_report()}

    assert list(rows) == [S.INWARDED.value, S.ASSIGNED.value, S.IN_PROGRESS.value]
    inwarded = rows[S.INWARDED.value]
    assert inwarded.bikes_in_stage == 2
    assert inwarded.in_warehouse == 1
    assert inwarded.in_store == 1
    assert inwarded.priority_items == 1
    assert inwarded.max_hours_in_stage >= inwarded.avg_hours_in_stage


async def test_technician_workload(reports, floor, actors):
    rows = {row.technician_name: row for row in await reports.get_technician_workload()}

    assert list(rows) == ["Tara Technician", "Ravi Technician"]
    tara = rows["Tara Technician"]
    assert tara.assigned_count == 1
    assert tara.in_progress_count == 1
    assert tara.completed_today == 1
    assert tara.total_completed == 1
    assert tara.rework_items == 0
    assert tara.avg_assembly_hours is not None
    assert tara.qc_pass_rate_percent == 100.0

    ravi = rows["Ravi Technician"]
    assert ravi.total_completed == 0
    assert ravi.avg_assembly_hours is None
    assert ravi.qc_pass_rate_percent is None


async def test_workload_counts_only_sale_ready_bikes_as_completed(
    qc_service, reports, location, to_in_progress, actors
):
    await to_in_progress("Q1", location)
    await qc_service.complete_assembly("Q1", actors.tech1.id, FULL_CHECKLIST)
    await to_in_progress("Q2", location)
    await qc_service.complete_assembly("Q2", actors.tech1.id, FULL_CHECKLIST)
    await qc_service.submit_qc_result("Q2", actors.qc.id, "fail", "loose crank")

    tara = next(row for row in await reports.get_technician_workload() if row.technician_id == actors.tech1.id)

    assert tara.in_progress_count == 1
    assert tara.total_completed == 0
    assert tara.rework_items == 1

    await qc_service.submit_qc_result("Q1", actors.qc.id, "pass")

    tara = next(row for row in await reports.get_technician_workload() if row.technician_id == actors.tech1.id)
    assert tara.total_completed == 1
    assert tara.qc_pass_rate_percent == 50.0


async def test_workload_lists_busiest_technician_first(
    service, reports, location, inward, to_in_progress, actors
):
    await inward("R1", location)
    await service.assign_to_technician("R1", actors.tech2.id, actors.supervisor.id)
    await to_in_progress("T1", location)
    await to_in_progress("T2", location)

    rows = await reports.get_technician_workload()

    assert [(row.technician_name, row.in_progress_count) for row in rows] == [
        ("Tara Technician", 2),
        ("Ravi Technician", 0),
    ]


async def test_today_starts_at_local_midnight(session, service, location, inward):
    reports = AssemblyReportService(session, Settings(BUILDLINE_REPORT_TIMEZONE="Asia/Kolkata"))
    await inward("BK1", location)
    journey = await service.get_journey_by_barcode("BK1")
    # 22:30 in Kolkata on the 18th
    await session.execute(
        update(AssemblyJourney)
        .where(AssemblyJourney.id == journey.id)
        .values(inwarded_at=datetime(2026, 10, 18, 17, 0, tzinfo=timezone.utc))
        .execution_options(synchronize_session=False)
    )

    same_evening = await reports.get_daily_dashboard(now=datetime(2026, 10, 18, 18, 0, tzinfo=timezone.utc))
    after_midnight = await reports.get_daily_dashboard(now=datetime(2026, 10, 18, 20, 0, tzinfo=timezone.utc))

    assert same_evening.inwarded_today == 1
    assert after_midnight.inwarded_today == 0
    assert after_midnight.report_date == datetime(2026, 10, 19, tzinfo=ZoneInfo("Asia/Kolkata"))


async def test_qc_failure_analysis_groups_by_model_and_reason(
    qc_service, reports, location, to_in_progress, actors
):
    for barcode, technician in (("Q1", actors.tech1), ("Q2", actors.tech2), ("Q3", actors.tech1)):
        await to_in_progress(barcode, location, technician=technician, model_sku="ROAD-54")
        await qc_service.complete_assembly(barcode, technician.id, FULL_CHECKLIST)

    await qc_service.submit_qc_result("Q1", actors.qc.id, "fail", "brake noise")
    await qc_service.submit_qc_result("Q2", actors.qc.id, "fail", "brake noise")
    await qc_service.submit_qc_result("Q3", actors.qc.id, "fail")

    analysis = await reports.get_qc_failure_analysis()

    assert [(row.qc_failure_reason, row.failure_count) for row in analysis] == [
        ("brake noise", 2),
        ("Unspecified", 1),
    ]
    assert sorted(analysis[0].technicians) == ["Ravi Technician", "Tara Technician"]
    assert analysis[0].model_sku == "ROAD-54"
    assert analysis[0].last_failure_date is not None


async def test_stuck_asset_scan_only_reports(session, floor, service, caplog):
    journey = await service.get_journey_by_barcode("BK1")
    await session.execute(
        update(AssemblyJourney)
        .where(AssemblyJourney.id == journey.id)
        .values(inwarded_at=datetime.now(timezone.utc) - timedelta(hours=30))
        .execution_options(synchronize_session=False)
    )

    with caplog.at_level(logging.INFO, logger="buildline.jobs.assembly_jobs"):
        result = await scan_stuck_assets(session)

    assert result["stuck_count"] == 1
    assert result["stuck_barcodes"] == ["BK1"]
    assert "Bike BK1 stuck in inwarded" in caplog.text
    assert (await service.get_journey_by_barcode("BK1")).current_status == S.INWARDED.value


async def test_scheduler_registers_stuck_scan():
    start_scheduler()
    try:
        jobs = get_job_status()
        assert [job["id"] for job in jobs] == ["scan_stuck_assets"]
    finally:
        shutdown_scheduler()
