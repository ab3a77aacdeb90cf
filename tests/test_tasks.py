"""Celery wiring for the maintenance pass."""

from procession_booking.tasks import maintenance_tasks
from procession_booking.tasks.celery_app import celery_app


def test_beat_runs_pass_on_interval_and_hourly():
    schedule = celery_app.conf.beat_schedule

    assert schedule["booking-maintenance"]["task"] == "run_booking_maintenance_task"
    assert schedule["booking-maintenance"]["schedule"] == 120.0
    assert schedule["booking-maintenance-hourly"]["task"] == "run_booking_maintenance_task"


def test_task_reports_results(monkeypatch):
    async def fake_pass(database_url=None):
        return {"holds_expired": 2, "errors": []}

    monkeypatch.setattr(maintenance_tasks, "run_maintenance_once", fake_pass)

    result = maintenance_tasks.run_booking_maintenance_task.run(trigger="manual")

    assert result["status"] == "completed"
    assert result["trigger"] == "manual"
    assert result["holds_expired"] == 2


def test_task_swallows_failures_for_the_next_run(monkeypatch):
    async def broken_pass(database_url=None):
        raise ConnectionError("database unavailable")

    monkeypatch.setattr(maintenance_tasks, "run_maintenance_once", broken_pass)

    result = maintenance_tasks.run_booking_maintenance_task.run(trigger="interval")

    assert result["status"] == "failed"
    assert "database unavailable" in result["error"]
