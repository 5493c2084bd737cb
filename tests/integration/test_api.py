"""
End-to-end tests for the HTTP API.

Runs the real application with FastAPI's TestClient. Settings and the
Snowflake connection are swapped through dependency_overrides, so every
test starts from an empty in-memory database.
"""

from contextlib import nullcontext

import pytest
from fastapi.testclient import TestClient

from swimschool.api.dependencies import get_connection_factory, get_snowflake_connection
from swimschool.config.settings import Settings, get_settings
from swimschool.infrastructure.snowflake.client import (
    MockSnowflakeConnection,
    SnowflakeConnectionError,
)
from swimschool.main import app

API_KEY = "test-key"
HEADERS = {"X-API-Key": API_KEY, "X-Tenant-ID": "school-a"}


class BrokenConnection:
    """Connection whose every query fails."""

    def cursor(self):
        raise RuntimeError("warehouse suspended")

    def commit(self):
        pass


class UnreachableWarehouse:
    """Connection context that fails before yielding, like a bad login."""

    def __enter__(self):
        raise SnowflakeConnectionError("Failed to connect to Snowflake: account locked")

    def __exit__(self, *exc_info):
        return False


def connect_with(factory):
    """Override for get_connection_factory."""
    return lambda: factory


@pytest.fixture
def settings():
    return Settings(api_keys=API_KEY, snowflake_mock_mode=True, _env_file=None)


@pytest.fixture
def connection():
    return MockSnowflakeConnection()


@pytest.fixture
def client(settings, connection):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_connection_factory] = connect_with(lambda: nullcontext(connection))
    yield TestClient(app)
    app.dependency_overrides.clear()


def student_url(path: str, student_id: str = "s1") -> str:
    return f"/api/v1/students/{student_id}{path}"


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

class TestAuthentication:

    def test_missing_key_is_forbidden(self, client):
        response = client.get("/api/v1/catalog/skills")
        assert response.status_code == 403

    def test_wrong_key_is_forbidden(self, client):
        response = client.get("/api/v1/catalog/skills", headers={"X-API-Key": "nope"})
        assert response.status_code == 403
        assert response.json()["detail"] == "Invalid API key"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------

class TestCatalogEndpoints:

    def test_list_skills(self, client):
        response = client.get("/api/v1/catalog/skills", headers=HEADERS)

        assert response.status_code == 200
        body = response.json()
        assert body["version"] == "2024.1"
        assert len(body["skills"]) == 26
        assert body["skills"][0]["id"] == "ws-01"

    def test_filter_by_category(self, client):
        response = client.get(
            "/api/v1/catalog/skills", params={"category": "diving"}, headers=HEADERS
        )

        assert [skill["id"] for skill in response.json()["skills"]] == [
            "dv-01", "dv-02", "dv-03", "dv-04",
        ]

    def test_unknown_category_rejected(self, client):
        response = client.get(
            "/api/v1/catalog/skills", params={"category": "synchro"}, headers=HEADERS
        )
        assert response.status_code == 422

    def test_list_badges(self, client):
        response = client.get("/api/v1/catalog/badges", headers=HEADERS)

        badges = response.json()["badges"]
        assert len(badges) == 16
        assert badges[-1]["id"] == "legend"


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

class TestProgressEndpoints:

    def test_record_and_reassess(self, client):
        first = client.put(
            student_url("/skills/ws-01"), json={"level": 2, "notes": "Nice"}, headers=HEADERS
        )
        second = client.put(student_url("/skills/ws-01"), json={"level": 4}, headers=HEADERS)

        assert first.status_code == 200
        assert first.json()["attempts"] == 1
        assert second.json()["attempts"] == 2
        assert second.json()["coach_notes"] is None
        assert second.json()["is_mastered"] is True

    def test_unknown_skill_is_404(self, client):
        response = client.put(student_url("/skills/zz-99"), json={"level": 2}, headers=HEADERS)
        assert response.status_code == 404

    @pytest.mark.parametrize("level", [0, 6])
    def test_invalid_level_is_422(self, client, level):
        response = client.put(student_url("/skills/ws-01"), json={"level": level}, headers=HEADERS)
        assert response.status_code == 422

    def test_unassessed_skill_is_404(self, client):
        response = client.get(student_url("/skills/ws-01"), headers=HEADERS)
        assert response.status_code == 404

    def test_matrix(self, client):
        client.put(student_url("/skills/ws-02"), json={"level": 3}, headers=HEADERS)

        response = client.get(student_url("/skills"), headers=HEADERS)

        skills = response.json()["skills"]
        assert len(skills) == 26
        assert skills[0]["status"] == "NOT_STARTED"
        assert skills[1]["status"] == "IN_PROGRESS"
        assert skills[1]["progress"]["current_level"] == 3

    def test_overall_level_for_new_student(self, client):
        response = client.get(student_url("/level"), headers=HEADERS)

        assert response.json() == {
            "student_id": "s1",
            "total_levels": 78,
            "earned_levels": 0,
            "overall_percentage": 0,
            "suggested_level": 1,
        }

    def test_recommendations_for_new_student(self, client):
        response = client.get(student_url("/recommendations"), headers=HEADERS)

        assert [skill["id"] for skill in response.json()["skills"]] == ["ws-01", "ws-02"]

    def test_reset(self, client):
        client.put(student_url("/skills/ws-01"), json={"level": 2}, headers=HEADERS)

        response = client.delete(student_url("/skills"), headers=HEADERS)

        assert response.json()["deleted"] == 1
        assert client.get(student_url("/skills/ws-01"), headers=HEADERS).status_code == 404

    def test_tenants_are_isolated(self, client):
        client.put(student_url("/skills/ws-01"), json={"level": 2}, headers=HEADERS)

        other = {"X-API-Key": API_KEY, "X-Tenant-ID": "school-b"}

        assert client.get(student_url("/skills/ws-01"), headers=other).status_code == 404

    def test_missing_tenant_uses_default(self, client):
        no_tenant = {"X-API-Key": API_KEY}
        client.put(student_url("/skills/ws-01"), json={"level": 2}, headers=no_tenant)

        explicit = {"X-API-Key": API_KEY, "X-Tenant-ID": "default"}

        assert client.get(student_url("/skills/ws-01"), headers=explicit).status_code == 200


# ---------------------------------------------------------------------------
# Counters and badges
# ---------------------------------------------------------------------------

class TestBadgeEndpoints:

    def test_new_student_counters(self, client):
        response = client.get(student_url("/counters"), headers=HEADERS)

        body = response.json()
        assert body["lessons_attended_count"] == 0
        assert body["badges_earned"] == []

    def test_patch_counters(self, client):
        response = client.patch(
            student_url("/counters"),
            json={"lessons_attended_count": 4, "stroke_levels": {"Freestyle": 2}},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["lessons_attended_count"] == 4
        assert response.json()["stroke_levels"] == {"freestyle": 2}

    @pytest.mark.parametrize("payload", [
        {"shoe_size": 3},
        {"badges_earned": ["legend"]},
        {"referral_count": -1},
        {"stroke_levels": {"freestyle": -2}},
    ])
    def test_bad_counter_updates_are_422(self, client, payload):
        response = client.patch(student_url("/counters"), json=payload, headers=HEADERS)
        assert response.status_code == 422

    def test_evaluate_awards_first_splash(self, client):
        client.patch(student_url("/counters"), json={"lessons_attended_count": 1}, headers=HEADERS)

        response = client.post(student_url("/badges/evaluate"), headers=HEADERS)

        assert response.status_code == 200
        assert [badge["id"] for badge in response.json()["badges"]] == ["first_splash"]

        earned = client.get(student_url("/badges"), headers=HEADERS).json()["badges"]
        assert [badge["id"] for badge in earned] == ["first_splash"]

    def test_eligibility(self, client):
        url = student_url("/badges/first_splash/eligibility")

        assert client.get(url, headers=HEADERS).json()["eligible"] is False

        client.patch(student_url("/counters"), json={"lessons_attended_count": 1}, headers=HEADERS)

        assert client.get(url, headers=HEADERS).json()["eligible"] is True

    def test_coach_award_is_idempotent(self, client):
        first = client.post(student_url("/badges/diving_diamond"), headers=HEADERS)
        second = client.post(student_url("/badges/diving_diamond"), headers=HEADERS)

        assert first.json()["awarded"] is True
        assert first.json()["badge"]["name"] == "Diving Diamond"
        assert second.json()["awarded"] is False

    def test_award_unknown_badge_is_404(self, client):
        response = client.post(student_url("/badges/moon_landing"), headers=HEADERS)
        assert response.status_code == 404

    def test_available_badges_shrink_after_award(self, client):
        client.post(student_url("/badges/gear_head"), headers=HEADERS)

        response = client.get(student_url("/badges/available"), headers=HEADERS)

        ids = [badge["id"] for badge in response.json()["badges"]]
        assert len(ids) == 15
        assert "gear_head" not in ids

    def test_reset_counters(self, client):
        client.patch(student_url("/counters"), json={"referral_count": 2}, headers=HEADERS)
        client.post(student_url("/badges/super_sponsor"), headers=HEADERS)

        response = client.delete(student_url("/counters"), headers=HEADERS)

        assert response.status_code == 204
        body = client.get(student_url("/counters"), headers=HEADERS).json()
        assert body["referral_count"] == 0
        assert body["badges_earned"] == []


# ---------------------------------------------------------------------------
# Health and errors
# ---------------------------------------------------------------------------

class TestHealth:

    def test_liveness(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["details"]["mock_mode"]["snowflake"] is True

    def test_readiness(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

        database = {check["name"]: check for check in response.json()["checks"]}["database"]
        assert database["error"] is None
        assert database["detail"] == "mock mode"

    def test_readiness_reports_query_failure(self, client):
        app.dependency_overrides[get_connection_factory] = connect_with(
            lambda: nullcontext(BrokenConnection())
        )

        response = client.get("/health/ready")

        assert response.status_code == 503
        checks = {check["name"]: check for check in response.json()["checks"]}
        assert checks["database"]["status"] == "error"
        assert checks["database"]["error"] == "warehouse suspended"

    def test_readiness_reports_connect_failure(self, client):
        app.dependency_overrides[get_connection_factory] = connect_with(UnreachableWarehouse)

        response = client.get("/health/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "not_ready"
        checks = {check["name"]: check for check in body["checks"]}
        assert checks["database"]["status"] == "error"
        assert "account locked" in checks["database"]["error"]
        assert checks["catalogs"]["status"] == "ok"

    def test_readiness_reports_catalog_failure(self, client, tmp_path):
        app.dependency_overrides[get_settings] = lambda: Settings(
            api_keys=API_KEY,
            snowflake_mock_mode=True,
            skill_catalog_path=str(tmp_path / "missing.json"),
            _env_file=None,
        )

        response = client.get("/health/ready")

        assert response.status_code == 503
        checks = {check["name"]: check for check in response.json()["checks"]}
        assert checks["catalogs"]["status"] == "error"
        assert checks["database"]["status"] == "ok"


class TestUnhandledErrors:

    def test_database_failure_is_generic_500(self, settings):
        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_snowflake_connection] = lambda: BrokenConnection()
        try:
            client = TestClient(app, raise_server_exceptions=False)
            response = client.get(student_url("/skills"), headers=HEADERS)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert "warehouse suspended" not in response.text

    def test_connect_failure_on_api_route_is_generic_500(self, settings):
        app.dependency_overrides[get_settings] = lambda: settings
        app.dependency_overrides[get_connection_factory] = connect_with(UnreachableWarehouse)
        try:
            client = TestClient(app, raise_server_exceptions=False)
            response = client.get(student_url("/counters"), headers=HEADERS)
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert "account locked" not in response.text
