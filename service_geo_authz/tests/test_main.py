"""
Unit tests for the Geographic Authorization service HTTP surface.
"""

import uuid
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from service_geo_authz.app.authorization.models import RuleType
from service_geo_authz.app.main import GeoAuthorizationService
from service_geo_authz.app.persistence.memory import InMemoryAreaRepository, InMemoryRuleRepository
from service_geo_authz.tests.factories import TestDataFactory, admin_headers, user_headers

USER = "user-1"


class TestGeoAuthorizationService:
    """Test cases for GeoAuthorizationService."""

    @pytest.fixture
    def branches(self):
        """Create the two-branch hierarchy."""
        return TestDataFactory.create_two_branches()

    @pytest.fixture
    def service(self, branches):
        """Create service with USER allowed on province1 and denied on city1."""
        rules = [
            TestDataFactory.create_rule(USER, branches["province1"], RuleType.ALLOW),
            TestDataFactory.create_rule(USER, branches["city1"], RuleType.DENY),
        ]
        return GeoAuthorizationService(
            InMemoryAreaRepository(branches.areas),
            InMemoryRuleRepository(rules),
        )

    @pytest.fixture
    def client(self, service):
        """Create test client."""
        return TestClient(service.app)

    def rule_ids(self, client):
        """Map rule type to rule ID for USER."""
        rules = client.get(f"/users/{USER}/geographic-authorizations", headers=admin_headers()).json()["rules"]
        return {r["rule_type"]: r["rule_id"] for r in rules}

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "geo_authz"
        assert "access_evaluation" in data["capabilities"]

    def test_health_endpoint(self, client):
        """Test health check endpoint."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"memory": "ok"}

    def test_health_degraded_when_repository_fails(self, service, client):
        """Test health check with a failing repository."""
        service.rule_repository.health_check = AsyncMock(side_effect=OSError("connection refused"))

        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["dependencies"] == {"memory": "error"}

    def test_request_id_is_echoed(self, client):
        """Test request ID propagation."""
        response = client.get("/", headers={"X-Request-Id": "req-123"})
        assert response.headers["X-Request-Id"] == "req-123"

    def test_metrics_endpoint(self, client):
        """Test metrics endpoint exports the service series."""
        client.get("/")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
        assert "access_evaluations_total" in response.text

    def test_evaluate_access(self, client, branches):
        """Test access levels over the HTTP surface."""
        expected = {
            "country": "READ_ONLY",
            "province1": "FULL",
            "city1": "NONE",
            "block1": "NONE",
            "province2": "NONE",
        }
        for name, level in expected.items():
            response = client.get(f"/users/{USER}/access/{branches[name]}")
            assert response.status_code == 200
            assert response.json()["access_level"] == level

    def test_evaluate_access_unknown_area(self, client):
        """Test evaluating a non-existent area."""
        response = client.get(f"/users/{USER}/access/{uuid.uuid4()}")

        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "NOT_FOUND"
        assert "message" in data
        assert "details" in data

    def test_authorization_info(self, client, branches):
        """Test authorization info for a restricted user."""
        response = client.get(f"/users/{USER}/authorization-info")

        assert response.status_code == 200
        data = response.json()
        assert data["has_restrictions"] is True
        assert data["authorized_area_ids"] == [branches["province1"]]
        assert data["read_only_area_ids"] == [branches["country"]]

    def test_authorization_info_unrestricted(self, client):
        """Test authorization info for a user without rules."""
        response = client.get("/users/nobody/authorization-info")

        assert response.json() == {
            "has_restrictions": False,
            "authorized_area_ids": [],
            "read_only_area_ids": [],
        }

    def test_authorized_areas(self, client, branches):
        """Test listing explicitly ruled areas."""
        response = client.get(f"/users/{USER}/authorized-areas", headers=admin_headers())

        assert response.status_code == 200
        by_id = {a["area_id"]: a for a in response.json()}
        assert by_id[branches["province1"]]["access_level"] == "FULL"
        assert by_id[branches["city1"]]["rule_type"] == "DENY"
        assert by_id[branches["city1"]]["access_level"] == "NONE"

    def test_list_rules(self, client):
        """Test listing a user's rules."""
        response = client.get(f"/users/{USER}/geographic-authorizations", headers=admin_headers())

        assert response.status_code == 200
        assert response.json()["total"] == 2

    @pytest.mark.parametrize("path", ["geographic-authorizations", "authorized-areas"])
    def test_rule_reads_require_admin(self, client, path):
        """Test that rule listings are reserved for administrators."""
        response = client.get(f"/users/{USER}/{path}", headers=user_headers(USER, "EDITOR"))

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_create_rule_and_duplicate(self, client, branches):
        """Test rule creation and duplicate rejection."""
        body = {"geographic_area_id": branches["block2"], "rule_type": "ALLOW"}

        response = client.post(f"/users/{USER}/geographic-authorizations", json=body, headers=admin_headers())
        assert response.status_code == 201
        data = response.json()
        assert data["created_by"] == "admin-1"
        assert data["rule_type"] == "ALLOW"

        response = client.post(f"/users/{USER}/geographic-authorizations", json=body, headers=admin_headers())
        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"

    def test_create_rule_changes_evaluation(self, client, branches):
        """Test that a new rule is visible to the next evaluation."""
        body = {"geographic_area_id": branches["province2"], "rule_type": "ALLOW"}
        client.post(f"/users/{USER}/geographic-authorizations", json=body, headers=admin_headers())

        response = client.get(f"/users/{USER}/access/{branches['block2']}")
        assert response.json()["access_level"] == "FULL"

    @pytest.mark.parametrize("role", ["READ_ONLY", "EDITOR"])
    def test_restricted_user_cannot_grant_self(self, client, branches, role):
        """Test that non-administrators cannot create rules."""
        body = {"geographic_area_id": branches["city2"], "rule_type": "ALLOW"}

        response = client.post(
            f"/users/{USER}/geographic-authorizations", json=body, headers=user_headers(USER, role)
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"
        access = client.get(f"/users/{USER}/access/{branches['city2']}")
        assert access.json()["access_level"] == "NONE"

    def test_anonymous_caller_cannot_create_rule(self, client, branches):
        """Test rule creation without caller headers."""
        body = {"geographic_area_id": branches["city2"], "rule_type": "ALLOW"}

        response = client.post(f"/users/{USER}/geographic-authorizations", json=body)

        assert response.status_code == 403

    def test_create_rule_invalid_area_id(self, client):
        """Test rule creation with a malformed area ID."""
        body = {"geographic_area_id": "not-a-uuid", "rule_type": "DENY"}

        response = client.post(f"/users/{USER}/geographic-authorizations", json=body, headers=admin_headers())

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_create_rule_missing_area(self, client):
        """Test rule creation for a non-existent area."""
        body = {"geographic_area_id": str(uuid.uuid4()), "rule_type": "DENY"}

        response = client.post(f"/users/{USER}/geographic-authorizations", json=body, headers=admin_headers())

        assert response.status_code == 404

    def test_delete_rule(self, client):
        """Test rule deletion."""
        rule_id = self.rule_ids(client)["ALLOW"]

        response = client.delete(f"/users/{USER}/geographic-authorizations/{rule_id}", headers=admin_headers())
        assert response.status_code == 204

        response = client.delete(f"/users/{USER}/geographic-authorizations/{rule_id}", headers=admin_headers())
        assert response.status_code == 404

    def test_restricted_user_cannot_remove_own_deny(self, client, branches):
        """Test that non-administrators cannot delete rules."""
        deny_id = self.rule_ids(client)["DENY"]

        response = client.delete(
            f"/users/{USER}/geographic-authorizations/{deny_id}", headers=user_headers(USER, "READ_ONLY")
        )

        assert response.status_code == 403
        access = client.get(f"/users/{USER}/access/{branches['city1']}")
        assert access.json()["access_level"] == "NONE"

    def test_delete_rule_through_other_user(self, client):
        """Test deleting a rule through another user's path."""
        rule_id = self.rule_ids(client)["ALLOW"]

        response = client.delete(
            f"/users/someone-else/geographic-authorizations/{rule_id}", headers=admin_headers()
        )

        assert response.status_code == 404

    def test_batch_descendants(self, client, branches):
        """Test batch descendants."""
        response = client.post(
            "/geographic-areas/batch-descendants",
            json={"area_ids": [branches["city2"]]}
        )

        assert response.status_code == 200
        assert set(response.json()["descendant_ids"]) == {branches["neighbourhood2"], branches["block2"]}

    def test_batch_ancestors_filtered(self, client, branches):
        """Test batch ancestors hides NONE areas from restricted callers."""
        ids = [branches["province1"], branches["city1"], branches["country"]]

        response = client.post(
            "/geographic-areas/batch-ancestors",
            json={"area_ids": ids},
            headers=user_headers(USER)
        )

        assert response.status_code == 200
        assert response.json()["parents"] == {
            branches["province1"]: branches["country"],
            branches["country"]: None,
        }

    def test_batch_ancestors_admin(self, client, branches):
        """Test batch ancestors for an administrator."""
        ids = [branches["city1"], branches["block2"]]

        response = client.post(
            "/geographic-areas/batch-ancestors",
            json={"area_ids": ids},
            headers=admin_headers(USER)
        )

        assert set(response.json()["parents"]) == set(ids)

    def test_batch_details(self, client, branches):
        """Test batch details for a restricted caller."""
        response = client.post(
            "/geographic-areas/batch-details",
            json={"area_ids": [branches["country"], branches["province2"]]},
            headers=user_headers(USER)
        )

        assert response.status_code == 200
        areas = response.json()["areas"]
        assert list(areas) == [branches["country"]]
        assert areas[branches["country"]]["child_count"] == 2

    def test_batch_empty_list_rejected(self, client):
        """Test batch request with no IDs."""
        response = client.post("/geographic-areas/batch-details", json={"area_ids": []})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_batch_too_many_ids_rejected(self, client):
        """Test batch request above the size limit."""
        ids = [str(uuid.uuid4()) for _ in range(101)]

        response = client.post("/geographic-areas/batch-ancestors", json={"area_ids": ids})

        assert response.status_code == 400

    def test_batch_invalid_id_rejected(self, client):
        """Test batch request with a malformed ID."""
        response = client.post("/geographic-areas/batch-ancestors", json={"area_ids": ["abc"]})

        assert response.status_code == 400
        assert response.json()["message"] == "Invalid id format"

    def test_create_area_as_admin(self, client, branches):
        """Test area creation by an administrator."""
        body = {"name": "Harbour", "area_type": "NEIGHBOURHOOD", "parent_area_id": branches["city2"]}

        response = client.post("/geographic-areas", json=body, headers=admin_headers())

        assert response.status_code == 201
        data = response.json()
        assert data["parent_area_id"] == branches["city2"]
        assert data["child_count"] == 0

    def test_create_area_under_full_parent(self, client, branches):
        """Test area creation by an editor under a FULL-access parent."""
        body = {"name": "Outskirts", "area_type": "CITY", "parent_area_id": branches["province1"]}

        response = client.post("/geographic-areas", json=body, headers=user_headers(USER))

        assert response.status_code == 201

    def test_create_area_under_denied_parent(self, client, branches):
        """Test area creation under a denied parent."""
        body = {"name": "Harbour", "area_type": "NEIGHBOURHOOD", "parent_area_id": branches["city1"]}

        response = client.post("/geographic-areas", json=body, headers=user_headers(USER))

        assert response.status_code == 403
        assert response.json()["code"] == "GEOGRAPHIC_AUTHORIZATION_DENIED"

    def test_restricted_user_cannot_create_root(self, client):
        """Test top-level area creation by a restricted editor."""
        body = {"name": "Atlantis", "area_type": "COUNTRY"}

        response = client.post("/geographic-areas", json=body, headers=user_headers(USER))

        assert response.status_code == 403
        assert response.json()["code"] == "CANNOT_CREATE_TOP_LEVEL_AREA"

    def test_read_only_role_cannot_create_area(self, client, branches):
        """Test area creation by a READ_ONLY-role caller."""
        body = {"name": "Outskirts", "area_type": "CITY", "parent_area_id": branches["province1"]}

        response = client.post("/geographic-areas", json=body, headers=user_headers(USER, "READ_ONLY"))

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_read_only_role_cannot_update_area(self, client, branches):
        """Test area update by a READ_ONLY-role caller."""
        response = client.put(
            f"/geographic-areas/{branches['province1']}",
            json={"name": "Renamed"},
            headers=user_headers(USER, "READ_ONLY")
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_read_only_role_cannot_delete_area(self, client, branches):
        """Test area deletion by a READ_ONLY-role caller."""
        response = client.delete(
            f"/geographic-areas/{branches['block2']}", headers=user_headers("nobody", "READ_ONLY")
        )

        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"
        assert client.get(f"/geographic-areas/{branches['block2']}", headers=admin_headers()).status_code == 200

    def test_get_area(self, client, branches):
        """Test reading a READ_ONLY area."""
        response = client.get(f"/geographic-areas/{branches['country']}", headers=user_headers(USER))

        assert response.status_code == 200
        assert response.json()["name"] == "country"

    def test_get_area_without_access(self, client, branches):
        """Test reading an area outside the caller's grants."""
        response = client.get(f"/geographic-areas/{branches['province2']}", headers=user_headers(USER))

        assert response.status_code == 403

    def test_update_area_requires_full(self, client, branches):
        """Test updating an area with only READ_ONLY access."""
        response = client.put(
            f"/geographic-areas/{branches['country']}",
            json={"name": "Renamed"},
            headers=user_headers(USER)
        )

        assert response.status_code == 403

    def test_update_area_reparent_cycle(self, client, branches):
        """Test reparenting an area under its own descendant."""
        response = client.put(
            f"/geographic-areas/{branches['province1']}",
            json={"parent_area_id": branches["block1"]},
            headers=admin_headers()
        )

        assert response.status_code == 400

    def test_update_area_to_top_level(self, client, branches):
        """Test moving an area to the top level."""
        response = client.put(
            f"/geographic-areas/{branches['province2']}",
            json={"parent_area_id": None},
            headers=admin_headers()
        )

        assert response.status_code == 200
        assert response.json()["parent_area_id"] is None

    def test_delete_area_with_children(self, client, branches):
        """Test deleting an area that still has children."""
        response = client.delete(f"/geographic-areas/{branches['city2']}", headers=admin_headers())

        assert response.status_code == 409

    def test_delete_leaf_area(self, client, branches):
        """Test deleting a leaf area."""
        response = client.delete(f"/geographic-areas/{branches['block2']}", headers=admin_headers())
        assert response.status_code == 204

        response = client.get(f"/geographic-areas/{branches['block2']}", headers=admin_headers())
        assert response.status_code == 404

    def test_children_filtered_for_restricted_user(self, client, branches):
        """Test children listing hides NONE areas."""
        response = client.get(f"/geographic-areas/{branches['country']}/children", headers=user_headers(USER))

        assert response.status_code == 200
        assert [a["id"] for a in response.json()] == [branches["province1"]]

    def test_ancestors_full_chain(self, client, branches):
        """Test ancestor chain lookup."""
        response = client.get(f"/geographic-areas/{branches['block2']}/ancestors", headers=admin_headers())

        assert response.status_code == 200
        assert [a["id"] for a in response.json()] == [
            branches["neighbourhood2"], branches["city2"], branches["province2"], branches["country"]
        ]
