from timetable_engine.core.config import get_settings

FAST_SETTINGS = {
    "max_generations": 20,
    "population_size": 10,
    "convergence_threshold": 900,
    "max_runtime": 5,
    "random_seed": 3,
}


def entry_payload(entry_id, *, teacher_id="T1", class_id="C1", room_id="R1", day=0, start="08:00", end="09:00"):
    return {
        "id": entry_id,
        "teacher_id": teacher_id,
        "class_id": class_id,
        "subject_id": "S1",
        "room_id": room_id,
        "time_slot": {"day": day, "start_time": start, "end_time": end},
    }


def test_default_constraints_endpoint(client):
    response = client.get("/api/constraints/defaults")
    assert response.status_code == 200
    payload = response.json()
    assert len(payload) == 15
    assert {item["kind"] for item in payload} == {"hard", "soft"}


def test_optimize_endpoint(client, catalog_payload):
    response = client.post("/api/schedules/optimize", json={"catalog": catalog_payload, "settings": FAST_SETTINGS})
    assert response.status_code == 200
    payload = response.json()

    assert len(payload["schedule"]["entries"]) == 2
    assert payload["schedule"]["conflicts"] == []
    assert payload["metrics"]["total_conflicts"] == 0
    assert payload["metrics"]["overall_score"] >= 900
    assert payload["termination_reason"] == "converged"
    assert payload["generations"] >= 1
    assert payload["settings_used"]["population_size"] == 10


def test_optimize_rejects_malformed_catalog(client, catalog_payload):
    catalog_payload["teachers"][0]["availability"] = [{"day": 0, "start_time": "10:00", "end_time": "09:00"}]
    response = client.post("/api/schedules/optimize", json={"catalog": catalog_payload})
    assert response.status_code == 422


def test_optimize_rejects_oversized_catalog(client, catalog_payload, monkeypatch):
    monkeypatch.setattr(get_settings(), "max_catalog_entities", 2)
    response = client.post("/api/schedules/optimize", json={"catalog": catalog_payload})
    assert response.status_code == 422
    assert response.json() == {"message": "Catalog is too large", "details": {"entities": 4, "limit": 2}}


def test_background_job_lifecycle(client, catalog_payload):
    submitted = client.post("/api/schedules/jobs", json={"catalog": catalog_payload, "settings": FAST_SETTINGS})
    assert submitted.status_code == 202
    job_id = submitted.json()["job_id"]

    # The test client runs background tasks before returning the response.
    status = client.get(f"/api/schedules/jobs/{job_id}")
    assert status.status_code == 200
    payload = status.json()
    assert payload["status"] == "completed"
    assert payload["progress"] == 100.0
    assert len(payload["result"]["schedule"]["entries"]) == 2
    assert payload["error"] is None


def test_unknown_job_returns_404(client):
    response = client.get("/api/schedules/jobs/does-not-exist")
    assert response.status_code == 404
    assert response.json()["message"] == "Optimization job with id does-not-exist not found"


def test_conflicts_endpoint(client, catalog_payload):
    catalog_payload["classes"].append({"id": "C2", "name": "Grade 2"})
    schedule = {"entries": [entry_payload("a"), entry_payload("b", class_id="C2")]}
    response = client.post("/api/schedules/conflicts", json={"catalog": catalog_payload, "schedule": schedule})
    assert response.status_code == 200
    types = sorted(conflict["type"] for conflict in response.json()["conflicts"])
    assert types == ["room_overlap", "teacher_overlap"]


def test_validate_endpoint(client, catalog_payload):
    schedule = {"entries": [entry_payload("a"), entry_payload("b", day=5)]}
    response = client.post("/api/schedules/validate", json={"catalog": catalog_payload, "schedule": schedule})
    assert response.status_code == 200
    payload = response.json()
    assert payload["is_valid"] is False
    assert [violation["constraint_id"] for violation in payload["violations"]] == ["teacher_availability"]
    assert payload["penalty"] == 100


def test_validate_rejects_unknown_references(client, catalog_payload):
    schedule = {"entries": [entry_payload("a", teacher_id="T9")]}
    response = client.post("/api/schedules/validate", json={"catalog": catalog_payload, "schedule": schedule})
    assert response.status_code == 422
    assert response.json()["details"] == {"teacher": ["T9"]}


def test_metrics_endpoint(client, catalog_payload):
    schedule = {"entries": [entry_payload("a"), entry_payload("b", day=1)]}
    response = client.post(
        "/api/schedules/metrics",
        json={"catalog": catalog_payload, "schedule": schedule, "weights": {"unmet_hours": 0}},
    )
    assert response.status_code == 200
    payload = response.json()
    assert payload["total_conflicts"] == 0
    assert payload["hard_constraint_violations"] == 0
    assert payload["overall_score"] == 1075.0
