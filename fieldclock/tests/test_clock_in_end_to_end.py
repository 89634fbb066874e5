import math
from datetime import timedelta

from fastapi.testclient import TestClient

from fieldclock.database import SessionLocal
from fieldclock.main import app
from fieldclock.models.time_entry import TimeEntry

client = TestClient(app)

METERS_PER_DEGREE = 6371000.0 * math.pi / 180.0


def _auth_headers(company_id: int, role: str = "EMPLOYEE", employee_id=None, user_id: str = "test") -> dict:
    resp = client.post(
        "/auth/token",
        json={"user_id": user_id, "company_id": company_id, "role": role, "employee_id": employee_id},
    )
    assert resp.status_code == 200, f"token request failed: {resp.status_code} {resp.text}"
    data = resp.json()
    assert "access_token" in data, f"token response missing access_token: {data}"
    return {"X-Company-Id": str(company_id), "Authorization": f"Bearer {data['access_token']}"}


def _clock_in_payload(job_id: int, event: str, lat: float = 0.0) -> dict:
    return {
        "job_id": job_id,
        "lat": lat,
        "lng": 0.0,
        "accuracy_m": 10.0,
        "client_event_id": event,
        "device_id": "phone-1",
    }


def test_clock_cycle_approval_and_invoice_lock(worker):
    employee, job = worker
    worker_headers = _auth_headers(1, employee_id=employee.id, user_id="worker-1")
    manager_headers = _auth_headers(1, role="MANAGER", user_id="manager-1")

    clock_in = client.post("/time_entries/clock_in", json=_clock_in_payload(job.id, "evt-in"), headers=worker_headers)
    assert clock_in.status_code == 200, clock_in.text
    entry_id = clock_in.json()["time_entry_id"]
    assert clock_in.json()["replayed"] is False

    replay = client.post("/time_entries/clock_in", json=_clock_in_payload(job.id, "evt-in"), headers=worker_headers)
    assert replay.status_code == 200
    assert replay.json() == {"time_entry_id": entry_id, "replayed": True}

    clock_out = client.post(
        "/time_entries/clock_out",
        json={
            "time_entry_id": entry_id,
            "lat": 500.0 / METERS_PER_DEGREE,
            "lng": 0.0,
            "accuracy_m": 10.0,
            "client_event_id": "evt-out",
        },
        headers=worker_headers,
    )
    assert clock_out.status_code == 200, clock_out.text
    assert clock_out.json()["ok"] is True
    assert "outside geofence" in clock_out.json()["warning"]

    db = SessionLocal()
    try:
        entry = db.get(TimeEntry, entry_id)
        clocked_out = entry.clock_out_at.replace(microsecond=0)
        new_in = (clocked_out - timedelta(hours=2)).isoformat()
        new_out = clocked_out.isoformat()
    finally:
        db.close()

    edit = client.patch(
        f"/time_entries/{entry_id}",
        json={"clock_in_at": new_in, "clock_out_at": new_out},
        headers=manager_headers,
    )
    assert edit.status_code == 200, edit.text
    assert edit.json()["requires_reapproval"] is False

    approve = client.post("/approvals/bulk", json={"time_entry_ids": [entry_id]}, headers=manager_headers)
    assert approve.status_code == 200, approve.text
    assert approve.json() == {"approved_count": 1, "failed_count": 0, "errors": []}

    invoice = client.post(
        "/invoices/from_entries",
        json={
            "job_id": job.id,
            "customer_id": "cust-1",
            "time_entry_ids": [entry_id],
            "hourly_rate": "50.00",
            "due_date": "2026-12-31",
        },
        headers=manager_headers,
    )
    assert invoice.status_code == 200, invoice.text
    body = invoice.json()
    assert body["total_hours"] == 2.0
    assert body["total_amount"] == 100.0
    assert body["entries_locked"] == 1

    fetched = client.get(f"/invoices/{body['invoice_id']}", headers=manager_headers)
    assert fetched.status_code == 200
    assert fetched.json()["time_entry_ids"] == [entry_id]

    locked = client.patch(f"/time_entries/{entry_id}", json={"notes": "late"}, headers=manager_headers)
    assert locked.status_code == 409
    assert locked.json()["detail"]["code"] == "locked_entry"

    again = client.post(
        "/invoices/from_entries",
        json={
            "job_id": job.id,
            "customer_id": "cust-1",
            "time_entry_ids": [entry_id],
            "hourly_rate": "50.00",
            "due_date": "2026-12-31",
        },
        headers=manager_headers,
    )
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "already_invoiced"

    audit = client.get("/audit", params={"target_id": entry_id}, headers=manager_headers)
    assert audit.status_code == 200
    assert [row["action"] for row in audit.json()] == ["time_entry.edit", "time_entry.approve"]

    listing = client.get("/time_entries", params={"exception_tag": "outside-geofence"}, headers=manager_headers)
    assert [row["time_entry_id"] for row in listing.json()] == [entry_id]


def test_clock_in_outside_fence_is_422_with_distance(worker):
    employee, job = worker
    headers = _auth_headers(1, employee_id=employee.id)

    resp = client.post(
        "/time_entries/clock_in",
        json=_clock_in_payload(job.id, "evt-far", lat=500.0 / METERS_PER_DEGREE),
        headers=headers,
    )
    assert resp.status_code == 422
    detail = resp.json()["detail"]
    assert detail["code"] == "outside_geofence"
    assert round(detail["distance_m"]) == 500
    assert detail["effective_radius_m"] == 110.0


def test_kill_switch_via_environment(worker, monkeypatch):
    employee, job = worker
    monkeypatch.setenv("GEOFENCE_ENFORCED", "false")
    headers = _auth_headers(1, employee_id=employee.id)

    resp = client.post(
        "/time_entries/clock_in",
        json=_clock_in_payload(job.id, "evt-far", lat=500.0 / METERS_PER_DEGREE),
        headers=headers,
    )
    assert resp.status_code == 200, resp.text

    entry = client.get(f"/time_entries/{resp.json()['time_entry_id']}", headers=headers)
    assert entry.json()["exception_tags"] == ["outside-geofence"]


def test_second_clock_in_is_409(worker):
    employee, job = worker
    headers = _auth_headers(1, employee_id=employee.id)

    first = client.post("/time_entries/clock_in", json=_clock_in_payload(job.id, "evt-1"), headers=headers)
    assert first.status_code == 200

    second = client.post("/time_entries/clock_in", json=_clock_in_payload(job.id, "evt-2"), headers=headers)
    assert second.status_code == 409
    assert second.json()["detail"]["code"] == "already_clocked_in"


def test_worker_disputes_own_entry(worker):
    employee, job = worker
    headers = _auth_headers(1, employee_id=employee.id)
    entry_id = client.post(
        "/time_entries/clock_in", json=_clock_in_payload(job.id, "evt-1"), headers=headers
    ).json()["time_entry_id"]

    resp = client.post(f"/time_entries/{entry_id}/dispute", json={"reason": "Wrong job"}, headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["exception_tags"] == ["disputed"]


def test_admin_sweep_dry_run(worker):
    headers = _auth_headers(1, role="ADMIN")

    resp = client.post("/sweeps/auto_clockout", json={"dry_run": True}, headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"processed_count": 0, "entries": [], "dry_run": True}
