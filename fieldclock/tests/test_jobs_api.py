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


def test_jobs_create_list_get_and_cross_company_isolation():
    company_1 = 12001
    company_2 = 12002

    create = client.post(
        "/jobs",
        headers=_auth_headers(company_1),
        json={"name": "Job A", "latitude": 40.7128, "longitude": -74.006, "radius_m": 150},
    )
    assert create.status_code == 200
    created = create.json()
    job_id = created["id"]
    assert created["company_id"] == company_1
    assert created["name"] == "Job A"
    assert created["radius_m"] == 150
    assert created["is_active"] is True

    listing = client.get("/jobs", headers=_auth_headers(company_1, role="EMPLOYEE"))
    assert listing.status_code == 200
    rows = listing.json()
    assert any(row["id"] == job_id for row in rows)

    get_own = client.get(f"/jobs/{job_id}", headers=_auth_headers(company_1))
    assert get_own.status_code == 200
    assert get_own.json()["id"] == job_id

    get_other = client.get(f"/jobs/{job_id}", headers=_auth_headers(company_2))
    assert get_other.status_code == 404


def test_job_radius_defaults_from_settings(monkeypatch):
    monkeypatch.setenv("GEOFENCE_DEFAULT_RADIUS_M", "250")

    create = client.post(
        "/jobs",
        headers=_auth_headers(12001),
        json={"name": "Job B", "latitude": 0, "longitude": 0},
    )
    assert create.status_code == 200, create.text
    assert create.json()["radius_m"] == 250


def test_job_rejects_bad_coordinates_and_radius():
    headers = _auth_headers(12001)

    bad_lat = client.post("/jobs", headers=headers, json={"name": "X", "latitude": 91, "longitude": 0})
    assert bad_lat.status_code == 422

    bad_radius = client.post("/jobs", headers=headers, json={"name": "X", "latitude": 0, "longitude": 0, "radius_m": 0})
    assert bad_radius.status_code == 422


def test_employee_cannot_create_job():
    create = client.post(
        "/jobs",
        headers=_auth_headers(12001, role="EMPLOYEE"),
        json={"name": "Job C", "latitude": 0, "longitude": 0},
    )
    assert create.status_code == 403
