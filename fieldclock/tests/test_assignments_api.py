from fastapi.testclient import TestClient

from fieldclock.main import app

client = TestClient(app)


def _auth_headers(company_id: int, role: str = "MANAGER") -> dict:
    resp = client.post("/auth/token", json={"user_id": "test", "company_id": company_id, "role": role})
    assert resp.status_code == 200, resp.text
    return {"X-Company-Id": str(company_id), "Authorization": f"Bearer {resp.json()['access_token']}"}


def test_assign_list_and_deactivate(employee_factory, job_factory):
    company_id = 13001
    employee = employee_factory(company_id=company_id)
    job = job_factory(company_id=company_id)
    headers = _auth_headers(company_id)

    create = client.post(
        "/assignments",
        headers=headers,
        json={"employee_id": employee.id, "job_id": job.id, "start_date": "2026-03-01", "end_date": "2026-03-31"},
    )
    assert create.status_code == 200, create.text
    assignment = create.json()
    assert assignment["is_active"] is True
    assert assignment["start_date"] == "2026-03-01"

    by_job = client.get("/assignments", params={"job_id": job.id}, headers=headers)
    assert by_job.status_code == 200
    assert [row["id"] for row in by_job.json()] == [assignment["id"]]

    removed = client.delete(f"/assignments/{assignment['id']}", headers=headers)
    assert removed.status_code == 200
    assert removed.json()["is_active"] is False


def test_cannot_assign_across_companies(employee_factory, job_factory):
    ours = employee_factory(company_id=13001)
    their_job = job_factory(company_id=13002)

    resp = client.post(
        "/assignments",
        headers=_auth_headers(13001),
        json={"employee_id": ours.id, "job_id": their_job.id},
    )
    assert resp.status_code == 404
    assert "Job not found" in resp.text


def test_window_must_be_ordered(employee_factory, job_factory):
    employee = employee_factory(company_id=13001)
    job = job_factory(company_id=13001)

    resp = client.post(
        "/assignments",
        headers=_auth_headers(13001),
        json={"employee_id": employee.id, "job_id": job.id, "start_date": "2026-03-10", "end_date": "2026-03-01"},
    )
    assert resp.status_code == 422
