# backend/tests/test_lighting_audit_api.py
import os
import json

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import close_all_sessions, sessionmaker

from retrofit.main import app
from retrofit.api import audit_runtime
from retrofit.api import deps as app_deps
from retrofit.engine import AuditRecalculator, EngineConfig
from retrofit.models import Base

# -----------------------------
# Test DB: separate SQLite file
# -----------------------------
TEST_DB_PATH = os.path.abspath(os.path.join(os.path.dirname(__file__), "test_lighting_api.db"))
TEST_DB_URL = f"sqlite:///{TEST_DB_PATH}"

engine = create_engine(TEST_DB_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[app_deps.get_db] = override_get_db


# -----------------------------
# Fixtures
# -----------------------------
@pytest.fixture(scope="session", autouse=True)
def _setup_test_db():
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)
    Base.metadata.create_all(bind=engine)
    yield
    close_all_sessions()
    engine.dispose()
    if os.path.exists(TEST_DB_PATH):
        os.remove(TEST_DB_PATH)


@pytest.fixture
def client():
    return TestClient(app)


def headers():
    return {"Content-Type": "application/json"}


def _area(name, category, count=10, existing=400, led=150, **extra):
    data = {
        "area_name": name,
        "fixture_category": category,
        "fixture_count": count,
        "existing_wattage": existing,
        "led_wattage": led,
    }
    data.update(extra)
    return data


def _create_audit(client, areas=(), **fields):
    payload = {"address": "1 Test Way", "areas": list(areas)}
    payload.update(fields)
    r = client.post("/api/lighting-audits", headers=headers(), content=json.dumps(payload))
    assert r.status_code == 201, r.text
    return r.json()


# -----------------------------
# PREVIEW
# -----------------------------
def test_preview_basic_audit_without_rules(client):
    payload = {
        "electric_rate": 0.12,
        "operating_hours": 10,
        "operating_days": 260,
        "areas": [_area("Warehouse", "Linear")],
    }
    r = client.post("/api/lighting-audits/preview", headers=headers(), content=json.dumps(payload))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["total_fixtures"] == 10
    assert body["watts_reduced"] == 2500
    assert body["annual_savings_kwh"] == pytest.approx(6500)
    assert body["annual_savings_dollars"] == pytest.approx(780.0)
    assert body["est_project_cost"] == 12500
    assert body["estimated_rebate"] == 0
    assert body["areas"][0]["incentive"]["tier"] is None
    assert body["low_confidence"] is False


def test_preview_with_blank_settings_uses_defaults(client):
    payload = {"areas": [_area("Warehouse", "Linear")]}
    r = client.post("/api/lighting-audits/preview", headers=headers(), content=json.dumps(payload))
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["annual_savings_dollars"] == pytest.approx(780.0)
    assert set(body["defaulted_settings"]) == {"electric_rate", "operating_hours", "operating_days"}
    assert body["low_confidence"] is True


# -----------------------------
# PRESCRIPTIVE MEASURE + AREA MUTATIONS
# -----------------------------
def test_area_mutations_keep_aggregate_current(client):
    r = client.post(
        "/api/utility-providers",
        headers=headers(),
        content=json.dumps({"provider_name": "Test Power", "state": "TX"}),
    )
    assert r.status_code == 201, r.text
    provider_id = r.json()["id"]

    r = client.post(
        "/api/incentives/measures",
        headers=headers(),
        content=json.dumps(
            {
                "provider_id": provider_id,
                "measure_name": "HB retrofit",
                "measure_subcategory": "High Bay",
                "baseline_wattage": 400,
                "incentive_amount": 50,
                "incentive_unit": "per_fixture",
                "max_incentive": 300,
            }
        ),
    )
    assert r.status_code == 201, r.text

    audit = _create_audit(client, [_area("Dock", "High Bay")], utility_provider_id=provider_id)
    assert audit["audit_code"].startswith("AUD-")
    assert audit["status"] == "Draft"
    assert audit["watts_reduced"] == 2500
    # 10 fixtures * 50 capped at 300
    assert audit["estimated_rebate"] == 300
    assert audit["net_cost"] == 12500 - 300
    audit_id = audit["id"]

    r = client.get(f"/api/lighting-audits/{audit_id}/areas")
    assert r.status_code == 200
    area = r.json()[0]
    assert area["total_existing_watts"] == 4000
    assert area["area_watts_reduced"] == 2500

    r = client.patch(
        f"/api/lighting-audits/{audit_id}/areas/{area['id']}",
        headers=headers(),
        content=json.dumps({"fixture_count": 4}),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["area"]["total_existing_watts"] == 1600
    assert body["aggregate"]["estimated_rebate"] == 200
    assert body["aggregate"]["areas"][0]["incentive"]["capped"] is False

    # stored record matches what the mutation returned
    stored = client.get(f"/api/lighting-audits/{audit_id}").json()
    assert stored["total_fixtures"] == 4
    assert stored["estimated_rebate"] == 200

    r = client.delete(f"/api/lighting-audits/{audit_id}/areas/{area['id']}")
    assert r.status_code == 200, r.text
    assert r.json()["aggregate"]["estimated_rebate"] == 0

    stored = client.get(f"/api/lighting-audits/{audit_id}").json()
    assert stored["total_fixtures"] == 0
    assert stored["watts_reduced"] == 0
    assert stored["payback_months"] == 0


# -----------------------------
# REBATE RATE FALLBACK
# -----------------------------
def test_rebate_rate_fallback_and_repeatable_recalculation(client):
    r = client.post(
        "/api/incentives/rebate-rates",
        headers=headers(),
        content=json.dumps({"fixture_category": "Wall Pack", "calc_method": "per_watt", "rate": 0.10}),
    )
    assert r.status_code == 201, r.text

    audit = _create_audit(client, [_area("Exterior", "Wall Pack")])
    assert audit["estimated_rebate"] == pytest.approx(250.0)

    r1 = client.post(f"/api/lighting-audits/{audit['id']}/recalculate")
    r2 = client.post(f"/api/lighting-audits/{audit['id']}/recalculate")
    assert r1.status_code == 200, r1.text
    assert r1.json() == r2.json()
    assert r1.json()["areas"][0]["incentive"]["tier"] == "rebate_rate"


def test_settings_patch_recalculates(client):
    audit = _create_audit(client, [_area("Office", "Recessed", count=20, existing=100, led=40)])
    # 1200 W * 2600 h = 3120 kWh
    assert audit["annual_savings_kwh"] == pytest.approx(3120)

    r = client.patch(
        f"/api/lighting-audits/{audit['id']}",
        headers=headers(),
        content=json.dumps({"operating_hours": 24, "operating_days": 365, "electric_rate": 0.2}),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["annual_savings_kwh"] == pytest.approx(1200 * 24 * 365 / 1000)
    assert body["annual_savings_dollars"] == pytest.approx(1200 * 24 * 365 / 1000 * 0.2)


# -----------------------------
# STATUS WORKFLOW
# -----------------------------
def test_status_workflow_and_locking(client):
    audit = _create_audit(client, [_area("Hall", "Track", count=5, existing=50, led=10)])
    audit_id = audit["id"]

    def move(to):
        return client.post(
            f"/api/lighting-audits/{audit_id}/status", headers=headers(), content=json.dumps({"status": to})
        )

    assert move("Done").status_code == 400
    assert move("Completed").status_code == 400  # cannot skip In Progress

    for step in ("In Progress", "Completed", "Submitted"):
        r = move(step)
        assert r.status_code == 200, r.text
        assert r.json()["status"] == step

    # submitted audits are locked for edits
    r = client.patch(f"/api/lighting-audits/{audit_id}", headers=headers(), content=json.dumps({"operating_hours": 12}))
    assert r.status_code == 409
    r = client.post(
        f"/api/lighting-audits/{audit_id}/areas", headers=headers(), content=json.dumps(_area("Late", "Track"))
    )
    assert r.status_code == 409

    assert move("Approved").status_code == 200
    assert move("Draft").status_code == 400

    r = client.get("/api/lighting-audits", params={"status": "Approved"})
    assert r.status_code == 200
    assert audit_id in [a["id"] for a in r.json()]


# -----------------------------
# DETECTED AREAS
# -----------------------------
def test_detected_area_is_normalised(client):
    audit = _create_audit(client)
    r = client.post(
        f"/api/lighting-audits/{audit['id']}/areas/detected",
        headers=headers(),
        content=json.dumps(
            {
                "fixture_type": "Metal halide high bay",
                "fixture_category": "Indoor High Bay",
                "lighting_type": "Metal Halide",
                "fixture_count": 6,
                "existing_wattage": 400,
                "notes": "mounted at 25ft",
            }
        ),
    )
    assert r.status_code == 201, r.text
    area = r.json()["area"]
    assert area["fixture_category"] == "High Bay"
    assert area["led_wattage"] == 200
    assert area["confirmed"] is True
    assert area["override_notes"].startswith("AI Detected")
    assert r.json()["aggregate"]["watts_reduced"] == 6 * 200


# -----------------------------
# VALIDATION / NOT FOUND
# -----------------------------
def test_invalid_category_is_rejected(client):
    audit = _create_audit(client)
    r = client.post(
        f"/api/lighting-audits/{audit['id']}/areas",
        headers=headers(),
        content=json.dumps(_area("Bad", "Chandelier")),
    )
    assert r.status_code == 422


def test_delete_audit_removes_areas(client):
    audit = _create_audit(client, [_area("Gone", "Flood", count=2, existing=250, led=100)])
    audit_id = audit["id"]

    r = client.delete(f"/api/lighting-audits/{audit_id}")
    assert r.status_code == 204

    assert client.get(f"/api/lighting-audits/{audit_id}").status_code == 404
    assert client.get(f"/api/lighting-audits/{audit_id}/areas").status_code == 404
    assert client.post(f"/api/lighting-audits/{audit_id}/recalculate").status_code == 404


def test_unknown_provider_is_404(client):
    r = client.post(
        "/api/lighting-audits",
        headers=headers(),
        content=json.dumps({"utility_provider_id": 99999, "areas": []}),
    )
    assert r.status_code == 404


def test_area_patch_rejects_unknown_lamp_type(client):
    audit = _create_audit(client, [_area("Shop", "Low Bay", lighting_type="T8")])
    area_id = client.get(f"/api/lighting-audits/{audit['id']}/areas").json()[0]["id"]

    r = client.patch(
        f"/api/lighting-audits/{audit['id']}/areas/{area_id}",
        headers=headers(),
        content=json.dumps({"lighting_type": "Banana"}),
    )
    assert r.status_code == 422

    r = client.patch(
        f"/api/lighting-audits/{audit['id']}/areas/{area_id}",
        headers=headers(),
        content=json.dumps({"lighting_type": "T5"}),
    )
    assert r.status_code == 200, r.text
    assert r.json()["area"]["lighting_type"] == "T5"


# -----------------------------
# CONFIGURED DEFAULTS
# -----------------------------
def test_wizard_audit_without_settings_uses_configured_defaults(client, monkeypatch):
    monkeypatch.setattr(audit_runtime, "recalculator", AuditRecalculator(EngineConfig(default_electric_rate=0.2)))

    audit = _create_audit(client, [_area("Canopy", "Canopy")])
    # nothing entered, nothing stored
    assert audit["electric_rate"] is None
    assert audit["operating_hours"] is None
    assert audit["operating_days"] is None
    # 2500 W * 2600 h = 6500 kWh at the configured $0.20
    assert audit["annual_savings_dollars"] == pytest.approx(1300.0)

    r = client.post(f"/api/lighting-audits/{audit['id']}/recalculate")
    assert r.status_code == 200, r.text
    body = r.json()
    assert set(body["defaulted_settings"]) == {"electric_rate", "operating_hours", "operating_days"}
    assert body["low_confidence"] is True
    assert body["annual_savings_dollars"] == pytest.approx(1300.0)


# -----------------------------
# COORDINATION BOOKKEEPING
# -----------------------------
def test_unknown_audit_ids_do_not_accumulate_state(client):
    before = audit_runtime.coordinator.tracked()
    for audit_id in range(900000, 900050):
        r = client.patch(
            f"/api/lighting-audits/{audit_id}", headers=headers(), content=json.dumps({"operating_hours": 8})
        )
        assert r.status_code == 404
        r = client.delete(f"/api/lighting-audits/{audit_id}/areas/1")
        assert r.status_code == 404
    assert audit_runtime.coordinator.tracked() == before == 0
