from datetime import datetime, timedelta

from fieldclock.database import SessionLocal
from fieldclock.models.time_entry import TimeEntry
from fieldclock.services import exception_tagger
from fieldclock.services.exception_tagger import ExceptionTag

T0 = datetime(2026, 3, 2, 8, 0, 0)


def _load(db, entry_id):
    return db.get(TimeEntry, entry_id)


def test_add_tags_is_ordered_and_duplicate_free():
    entry = TimeEntry(exception_tags=["outside-geofence"])

    added = exception_tagger.add_tags(
        entry,
        [ExceptionTag.OVERLONG_SHIFT, ExceptionTag.OUTSIDE_GEOFENCE, ExceptionTag.OVERLONG_SHIFT],
    )

    assert added == ["overlong-shift"]
    assert entry.exception_tags == ["outside-geofence", "overlong-shift"]


def test_geofence_tag_records_worst_distance():
    entry = TimeEntry(
        exception_tags=[],
        geo_ok_in=False,
        clock_in_distance_m=140.0,
        geo_ok_out=False,
        clock_out_distance_m=320.5,
    )

    assert exception_tagger.tag_geofence(entry) == ["outside-geofence"]
    assert entry.geofence_violation_distance_m == 320.5


def test_geofence_tag_skipped_when_inside():
    entry = TimeEntry(exception_tags=[], geo_ok_in=True, geo_ok_out=None)

    assert exception_tagger.tag_geofence(entry) == []
    assert entry.exception_tags == []
    assert entry.geofence_violation_distance_m is None


def test_exactly_at_ceiling_is_not_overlong(worker, time_entry_factory, settings):
    employee, job = worker
    row = time_entry_factory(1, employee.id, job.id, T0, T0 + timedelta(hours=12))

    db = SessionLocal()
    try:
        entry = _load(db, row.time_entry_id)
        assert exception_tagger.tag_on_clock_out(db, entry, settings) == []
    finally:
        db.rollback()
        db.close()


def test_overlapping_entries_are_tagged(worker, time_entry_factory, settings):
    employee, job = worker
    time_entry_factory(1, employee.id, job.id, T0, T0 + timedelta(hours=4))
    row = time_entry_factory(1, employee.id, job.id, T0 + timedelta(hours=3), T0 + timedelta(hours=6))

    db = SessionLocal()
    try:
        entry = _load(db, row.time_entry_id)
        assert exception_tagger.has_overlap(db, entry) is True
        assert exception_tagger.tag_on_clock_out(db, entry, settings) == ["overlapping"]
    finally:
        db.rollback()
        db.close()


def test_touching_entries_do_not_overlap(worker, time_entry_factory):
    employee, job = worker
    time_entry_factory(1, employee.id, job.id, T0, T0 + timedelta(hours=4))
    row = time_entry_factory(1, employee.id, job.id, T0 + timedelta(hours=4), T0 + timedelta(hours=8))

    db = SessionLocal()
    try:
        assert exception_tagger.has_overlap(db, _load(db, row.time_entry_id)) is False
    finally:
        db.close()


def test_other_workers_do_not_overlap(worker, employee_factory, time_entry_factory):
    employee, job = worker
    other = employee_factory(company_id=1, name="Other")
    time_entry_factory(1, other.id, job.id, T0, T0 + timedelta(hours=8))
    row = time_entry_factory(1, employee.id, job.id, T0, T0 + timedelta(hours=8))

    db = SessionLocal()
    try:
        assert exception_tagger.has_overlap(db, _load(db, row.time_entry_id)) is False
    finally:
        db.close()


def test_auto_closed_tags(worker, time_entry_factory, settings):
    employee, job = worker
    row = time_entry_factory(1, employee.id, job.id, T0)

    db = SessionLocal()
    try:
        entry = _load(db, row.time_entry_id)
        entry.clock_out_at = T0 + timedelta(hours=12)
        tags = exception_tagger.tag_auto_closed(db, entry, timedelta(hours=15), settings)
        assert tags == ["auto-closed", "overlong-shift"]
    finally:
        db.rollback()
        db.close()


def test_mark_disputed_only_once():
    entry = TimeEntry(exception_tags=["overlapping"], updated_at=T0)
    later = T0 + timedelta(hours=1)

    assert exception_tagger.mark_disputed(entry, now=later) == ["disputed"]
    assert entry.updated_at == later
    assert exception_tagger.mark_disputed(entry, now=later + timedelta(hours=1)) == []
    assert entry.updated_at == later
    assert entry.exception_tags == ["overlapping", "disputed"]
