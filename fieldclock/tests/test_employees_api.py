from fastapi.testclient import TestClient

from fieldclock.main import app

client = TestClient(app)


def _auth_headers(company_id: int, role: str = "MANAGER") -> dict:
    resp = client.post("/auth/token", json={"user_id": "test", "company_id": company_id, "role": role})
    assert resp.status_code == 200, f"token request failed: {resp.status_code} {resp.text}"
    data = resp.json()
    assert isinstance(data, dict), f"token response not a JSON object: {data}"
    assert "access_token" in data, f"token response missing access_token: {data}"
    return {"X-Company-Id": str(company_id), "Authorization": f"Bearer {data['access_token']}"}


def test_employees_create_list_get_and_cross_company_isolation():
    company_1 = 11001
    company_2 = 11002

    create = client.post(
        "/employees",
        headers=_auth_headers(company_1),
        json={"name": "Alice"},
    )
    assert create.status_code == 200
    created = create.json()
    employee_id = created["id"]
    assert created["company_id"] == company_1
    assert created["name"] == "Alice"
    assert created["is_active"] is True

    listing = client.get("/employees", headers=_auth_headers(company_1))
    assert listing.status_code == 200
    rows = listing.json()
    assert any(row["id"] == employee_id for row in rows)

    get_own = client.get(f"/employees/{employee_id}", headers=_auth_headers(company_1))
    assert get_own.status_code == 200
    assert get_own.json()["id"] == employee_id

    get_other = client.get(f"/employees/{employee_id}", headers=_auth_headers(company_2))
    assert get_other.status_code == 404


def test_deactivate_employee_revokes_assignments(employee_factory, job_factory, assignment_factory):
    company_id = 11001
    employee = employee_factory(company_id=company_id)
    job = job_factory(company_id=company_id)
    assignment_factory(company_id=company_id, employee_id=employee.id, job_id=job.id)
    headers = _auth_headers(company_id)

    resp = client.post(f"/employees/{employee.id}/deactivate", headers=headers)
    assert resp.status_code == 200, resp.text
    assert resp.json()["is_active"] is False

    active = client.get("/employees", params={"is_active": True}, headers=headers)
    assert active.status_code == 200
    assert all(row["id"] != employee.id for row in active.json())

    assignments = client.get("/assignments", params={"employee_id": employee.id}, headers=headers)
    assert assignments.status_code == 200
    assert [row["is_active"] for row in assignments.json()] == [False]


def test_employee_role_cannot_create_employees():
    resp = client.post("/employees", headers=_auth_headers(11001, role="EMPLOYEE"), json={"name": "Bob"})
    assert resp.status_code == 403
