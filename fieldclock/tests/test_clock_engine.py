import math
from dataclasses import replace
from datetime import date, datetime, timedelta

import pytest

from fieldclock.core.errors import (
    AlreadyClockedIn,
    EntryNotFound,
    InvalidInput,
    JobNotFound,
    NoAssignment,
    NotClockedIn,
    NotEntryOwner,
    OutsideGeofence,
    PoorGpsAccuracy,
)
from fieldclock.database import SessionLocal
from fieldclock.models.idempotency_record import IdempotencyRecord
from fieldclock.models.time_entry import TimeEntry
from fieldclock.services import time_engine

NOW = datetime(2026, 3, 2, 9, 0, 0)
METERS_PER_DEGREE = 6371000.0 * math.pi / 180.0


def _lat_for(meters: float) -> float:
    return meters / METERS_PER_DEGREE


def _clock_in(employee, job, settings, *, event="evt-in-1", lat=0.0, lng=0.0, accuracy=10.0, now=NOW):
    return time_engine.clock_in(
        company_id=employee.company_id,
        employee_id=employee.id,
        job_id=job.id,
        lat=lat,
        lng=lng,
        accuracy_m=accuracy,
        client_event_id=event,
        device_id="device-a",
        settings=settings,
        now=now,
    )


def _clock_out(employee, entry_id, settings, *, event="evt-out-1", lat=0.0, lng=0.0, accuracy=10.0, now=None):
    return time_engine.clock_out(
        company_id=employee.company_id,
        employee_id=employee.id,
        time_entry_id=entry_id,
        lat=lat,
        lng=lng,
        accuracy_m=accuracy,
        client_event_id=event,
        device_id="device-a",
        settings=settings,
        now=now or NOW + timedelta(hours=2),
    )


def _entry(entry_id: str) -> TimeEntry:
    db = SessionLocal()
    try:
        return db.get(TimeEntry, entry_id)
    finally:
        db.close()


def test_clock_in_inside_fence_creates_open_entry(worker, settings):
    employee, job = worker

    result = _clock_in(employee, job, settings)

    assert result.replayed is False
    entry = _entry(result.time_entry_id)
    assert entry.is_open
    assert entry.clock_in_at == NOW
    assert entry.geo_ok_in is True
    assert entry.radius_used_m == 100.0
    assert entry.clock_in_event_id == "evt-in-1"
    assert entry.device_id == "device-a"
    assert entry.exception_tags == []


def test_clock_in_replay_returns_same_entry(worker, settings):
    employee, job = worker

    first = _clock_in(employee, job, settings)
    second = _clock_in(employee, job, settings, now=NOW + timedelta(seconds=30))

    assert second.time_entry_id == first.time_entry_id
    assert second.replayed is True

    db = SessionLocal()
    try:
        assert db.query(TimeEntry).count() == 1
        assert db.query(IdempotencyRecord).count() == 1
    finally:
        db.close()


def test_clock_in_outside_fence_is_rejected_with_distance(worker, settings):
    employee, job = worker

    with pytest.raises(OutsideGeofence) as excinfo:
        _clock_in(employee, job, settings, lat=_lat_for(500.0))

    assert excinfo.value.distance_m == pytest.approx(500.0, abs=0.1)
    assert excinfo.value.effective_radius_m == 110.0
    assert "500.0m from job site (max 110.0m)" in str(excinfo.value)

    db = SessionLocal()
    try:
        assert db.query(TimeEntry).count() == 0
        assert db.query(IdempotencyRecord).count() == 0
    finally:
        db.close()


def test_kill_switch_accepts_outside_fence_and_tags(worker, settings):
    employee, job = worker
    relaxed = replace(settings, geofence_enforced=False)

    result = _clock_in(employee, job, relaxed, lat=_lat_for(500.0))

    entry = _entry(result.time_entry_id)
    assert entry.geo_ok_in is False
    assert entry.exception_tags == ["outside-geofence"]
    assert entry.geofence_violation_distance_m == pytest.approx(500.0, abs=0.1)


def test_clock_in_requires_assignment(employee_factory, job_factory, settings):
    employee = employee_factory(company_id=1)
    job = job_factory(company_id=1)

    with pytest.raises(NoAssignment):
        _clock_in(employee, job, settings)


def test_clock_in_respects_assignment_window(employee_factory, job_factory, assignment_factory, settings):
    employee = employee_factory(company_id=1)
    job = job_factory(company_id=1)
    assignment_factory(
        company_id=1,
        employee_id=employee.id,
        job_id=job.id,
        start_date=date(2026, 1, 1),
        end_date=date(2026, 3, 1),
    )

    with pytest.raises(NoAssignment):
        _clock_in(employee, job, settings)

    assert _clock_in(employee, job, settings, now=datetime(2026, 3, 1, 17, 0)).replayed is False


def test_clock_in_unknown_or_foreign_job(worker, job_factory, settings):
    employee, _ = worker
    foreign_job = job_factory(company_id=2)

    with pytest.raises(JobNotFound):
        _clock_in(employee, foreign_job, settings)


def test_clock_in_rejects_poor_accuracy(worker, settings):
    employee, job = worker

    with pytest.raises(PoorGpsAccuracy):
        _clock_in(employee, job, settings, accuracy=350.0)


def test_clock_in_rejects_invalid_coordinates(worker, settings):
    employee, job = worker

    with pytest.raises(InvalidInput):
        _clock_in(employee, job, settings, lat=123.0)


def test_second_clock_in_with_new_event_is_already_clocked_in(worker, job_factory, assignment_factory, settings):
    employee, job = worker
    other_job = job_factory(company_id=1, name="Other")
    assignment_factory(company_id=1, employee_id=employee.id, job_id=other_job.id)

    _clock_in(employee, job, settings)

    with pytest.raises(AlreadyClockedIn):
        _clock_in(employee, other_job, settings, event="evt-in-2")


def test_clock_out_inside_fence(worker, settings):
    employee, job = worker
    entry_id = _clock_in(employee, job, settings).time_entry_id

    result = _clock_out(employee, entry_id, settings)

    assert result.ok is True
    assert result.warning is None
    entry = _entry(entry_id)
    assert entry.clock_out_at == NOW + timedelta(hours=2)
    assert entry.geo_ok_out is True
    assert entry.clock_out_event_id == "evt-out-1"
    assert entry.exception_tags == []


def test_clock_out_outside_fence_warns_and_tags(worker, settings):
    employee, job = worker
    entry_id = _clock_in(employee, job, settings).time_entry_id

    result = _clock_out(employee, entry_id, settings, lat=_lat_for(500.0))

    assert result.ok is True
    assert result.warning is not None
    assert "500.0m from job site" in result.warning
    entry = _entry(entry_id)
    assert entry.geo_ok_out is False
    assert "outside-geofence" in entry.exception_tags
    assert entry.geofence_violation_distance_m == pytest.approx(500.0, abs=0.1)


def test_clock_out_replay_returns_prior_result(worker, settings):
    employee, job = worker
    entry_id = _clock_in(employee, job, settings).time_entry_id

    first = _clock_out(employee, entry_id, settings, lat=_lat_for(500.0))
    second = _clock_out(employee, entry_id, settings, lat=_lat_for(500.0))

    assert second.replayed is True
    assert second.warning == first.warning
    assert second.time_entry_id == entry_id


def test_clock_out_twice_with_new_event_is_not_clocked_in(worker, settings):
    employee, job = worker
    entry_id = _clock_in(employee, job, settings).time_entry_id
    _clock_out(employee, entry_id, settings)

    with pytest.raises(NotClockedIn):
        _clock_out(employee, entry_id, settings, event="evt-out-2")


def test_clock_out_of_someone_elses_entry(worker, employee_factory, settings):
    employee, job = worker
    entry_id = _clock_in(employee, job, settings).time_entry_id
    other = employee_factory(company_id=1, name="Other")

    with pytest.raises(NotEntryOwner):
        _clock_out(other, entry_id, settings)


def test_clock_out_unknown_entry(worker, settings):
    employee, _ = worker

    with pytest.raises(EntryNotFound):
        _clock_out(employee, "no-such-entry", settings)


def test_overlong_shift_tagged_on_clock_out(worker, settings):
    employee, job = worker
    entry_id = _clock_in(employee, job, settings).time_entry_id

    _clock_out(employee, entry_id, settings, now=NOW + timedelta(hours=13))

    assert _entry(entry_id).exception_tags == ["overlong-shift"]


def test_get_active_entry(worker, settings):
    employee, job = worker
    entry_id = _clock_in(employee, job, settings).time_entry_id

    db = SessionLocal()
    try:
        active = time_engine.get_active_entry(employee.company_id, employee.id, db=db)
        assert active.time_entry_id == entry_id
    finally:
        db.close()

    _clock_out(employee, entry_id, settings)

    db = SessionLocal()
    try:
        assert time_engine.get_active_entry(employee.company_id, employee.id, db=db) is None
    finally:
        db.close()
