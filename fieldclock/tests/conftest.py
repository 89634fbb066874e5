import os
_default_test_secret = "test-jwt-secret-for-pytest-only-0000000000000000"
if len(os.environ.get("JWT_SECRET", "")) < 32:
    os.environ["JWT_SECRET"] = _default_test_secret
os.environ.setdefault("ENV", "test")

import subprocess
import sys
from datetime import date, datetime
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.engine import make_url

PROJECT_ROOT = Path(__file__).resolve().parents[2]
_default_test_db = f"sqlite:///{PROJECT_ROOT / 'fieldclock_test.db'}"

TEST_DATABASE_URL = os.getenv("DATABASE_URL", _default_test_db)
os.environ["DATABASE_URL"] = TEST_DATABASE_URL

from fieldclock import database
from fieldclock.core.settings import ClockSettings
from fieldclock.database import Base, SessionLocal
from fieldclock.models import Assignment, Employee, Job, TimeEntry


def _ensure_database_exists(database_url: str) -> None:
    url = make_url(database_url)

    if url.drivername.startswith("sqlite"):
        # Fresh file per session so migrations always run from base.
        if url.database and url.database != ":memory:":
            Path(url.database).unlink(missing_ok=True)
        return

    if not url.drivername.startswith("postgresql"):
        return

    db_name = url.database
    admin_url = url.set(database="postgres")
    admin_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")

    try:
        with admin_engine.connect() as conn:
            exists = conn.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": db_name},
            ).scalar()
            if not exists:
                safe_db_name = db_name.replace('"', '""')
                conn.execute(text(f'CREATE DATABASE "{safe_db_name}"'))
    finally:
        admin_engine.dispose()


def _clear_tables() -> None:
    with database.engine.begin() as conn:
        if conn.dialect.name == "postgresql":
            names = ", ".join(f'"{t.name}"' for t in Base.metadata.sorted_tables)
            conn.execute(text(f"TRUNCATE TABLE {names} RESTART IDENTITY CASCADE"))
            return

        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


@pytest.fixture(scope="session", autouse=True)
def _prepare_test_database() -> None:
    _ensure_database_exists(TEST_DATABASE_URL)

    env = os.environ.copy()
    env["DATABASE_URL"] = TEST_DATABASE_URL

    subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        check=True,
        cwd=PROJECT_ROOT,
        env=env,
    )

    database.configure_database()


@pytest.fixture(scope="function", autouse=True)
def _clear_tables_between_tests():
    _clear_tables()
    yield
    _clear_tables()


@pytest.fixture
def settings() -> ClockSettings:
    return ClockSettings()


def _persist(row):
    db = SessionLocal()
    try:
        db.add(row)
        db.commit()
        db.refresh(row)
        return row
    finally:
        db.close()


@pytest.fixture
def employee_factory():
    def make(company_id: int = 1, name: str = "Worker", is_active: bool = True) -> Employee:
        return _persist(Employee(company_id=company_id, name=name, is_active=is_active))

    return make


@pytest.fixture
def job_factory():
    def make(
        company_id: int = 1,
        name: str = "Job Site",
        latitude: float = 0.0,
        longitude: float = 0.0,
        radius_m: float = 100.0,
        is_active: bool = True,
    ) -> Job:
        return _persist(
            Job(
                company_id=company_id,
                name=name,
                latitude=latitude,
                longitude=longitude,
                radius_m=radius_m,
                is_active=is_active,
            )
        )

    return make


@pytest.fixture
def assignment_factory():
    def make(
        company_id: int,
        employee_id: int,
        job_id: int,
        start_date: date = None,
        end_date: date = None,
        is_active: bool = True,
    ) -> Assignment:
        return _persist(
            Assignment(
                company_id=company_id,
                employee_id=employee_id,
                job_id=job_id,
                start_date=start_date,
                end_date=end_date,
                is_active=is_active,
            )
        )

    return make


@pytest.fixture
def time_entry_factory():
    """Insert an entry directly, bypassing the clock engine."""

    def make(
        company_id: int,
        employee_id: int,
        job_id: int,
        clock_in_at: datetime,
        clock_out_at: datetime = None,
        approved: bool = False,
        exception_tags=None,
    ) -> TimeEntry:
        entry_id = str(uuid4())
        return _persist(
            TimeEntry(
                time_entry_id=entry_id,
                company_id=company_id,
                employee_id=employee_id,
                job_id=job_id,
                clock_in_at=clock_in_at,
                clock_out_at=clock_out_at,
                clock_in_lat=0.0,
                clock_in_lng=0.0,
                clock_in_accuracy_m=10.0,
                clock_in_distance_m=0.0,
                geo_ok_in=True,
                geo_ok_out=True if clock_out_at is not None else None,
                radius_used_m=100.0,
                approved=approved,
                approved_by="manager-1" if approved else None,
                approved_at=clock_out_at if approved else None,
                requires_reapproval=False,
                exception_tags=list(exception_tags or []),
                clock_in_event_id=f"seed-{entry_id}",
                created_at=clock_in_at,
                updated_at=clock_in_at,
            )
        )

    return make


@pytest.fixture
def worker(employee_factory, job_factory, assignment_factory):
    """An employee assigned to a 100m job at (0, 0) in company 1."""
    employee = employee_factory(company_id=1)
    job = job_factory(company_id=1)
    assignment_factory(company_id=1, employee_id=employee.id, job_id=job.id)
    return employee, job
