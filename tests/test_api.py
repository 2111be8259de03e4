"""Tests for API endpoints."""

import asyncio
from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from coverage_limits.core.exceptions import AccessDeniedError
from coverage_limits.dependencies import get_limit_option_service
from coverage_limits.main import app
from coverage_limits.repositories.document_store import join_path
from coverage_limits.repositories.limit_option_repository import legacy_limits_path

BASE = "/api/v1/products/prod-1/coverages/cov-1"
SETS = f"{BASE}/limit-option-sets"


def _create_set(client: TestClient, structure: str = "occAgg") -> str:
    response = client.post(SETS, json={"structure": structure, "name": "GL Limits"})
    assert response.status_code == 201
    return response.json()["id"]


def _add_occ_agg(client: TestClient, set_id: str, per_occurrence: int, aggregate: int, **fields):
    return client.post(
        f"{SETS}/{set_id}/options",
        json={
            "value": {"structure": "occAgg", "perOccurrence": per_occurrence, "aggregate": aggregate},
            **fields,
        },
    )


class TestServiceEndpoints:
    """Test suite for health and root endpoints."""

    def test_health(self, test_client: TestClient) -> None:
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["health"] == "/health"


class TestOptionSetEndpoints:
    """Test suite for option set and option endpoints.

    Runs against the in-memory store, so responses reflect the full
    service behaviour including validation and batching.
    """

    def test_create_and_list_sets(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)

        response = test_client.get(SETS)

        assert response.status_code == 200
        [option_set] = response.json()
        assert option_set["id"] == set_id
        assert option_set["structure"] == "occAgg"
        assert option_set["basisConfig"]["primaryBasis"] == "perOccurrence"

    def test_create_without_structure(self, test_client: TestClient) -> None:
        response = test_client.post(SETS, json={"name": "Missing structure"})

        assert response.status_code == 422
        assert response.json()["detail"]["errors"] == ["Structure is required"]

    def test_add_and_get_options(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)

        response = _add_occ_agg(test_client, set_id, 1_000_000, 2_000_000)
        assert response.status_code == 201

        response = test_client.get(f"{SETS}/{set_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["optionSet"]["id"] == set_id
        [option] = data["options"]
        assert option["displayValue"] == "$1,000,000 / $2,000,000"
        assert option["value"] == {"structure": "occAgg", "perOccurrence": 1_000_000, "aggregate": 2_000_000}

    def test_invalid_option_is_rejected(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)

        response = _add_occ_agg(test_client, set_id, 2_000_000, 1_000_000)

        assert response.status_code == 422
        assert "Aggregate must be >= Per Occurrence" in response.json()["detail"]["errors"]

    def test_duplicate_option_is_rejected(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)
        _add_occ_agg(test_client, set_id, 1_000_000, 2_000_000, label="$1M / $2M")

        response = _add_occ_agg(test_client, set_id, 1_000_000, 2_000_000, label="Another")

        assert response.status_code == 422
        assert response.json()["detail"]["errors"] == ["This limit option already exists"]

    def test_update_and_delete_option(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)
        option_id = _add_occ_agg(test_client, set_id, 1_000_000, 2_000_000).json()["id"]

        response = test_client.patch(f"{SETS}/{set_id}/options/{option_id}", json={"label": "Standard"})
        assert response.status_code == 200
        [option] = test_client.get(f"{SETS}/{set_id}/options").json()
        assert option["label"] == "Standard"

        response = test_client.delete(f"{SETS}/{set_id}/options/{option_id}")
        assert response.status_code == 204
        assert test_client.get(f"{SETS}/{set_id}/options").json() == []

    def test_update_unknown_option(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)

        response = test_client.patch(f"{SETS}/{set_id}/options/missing", json={"label": "x"})

        assert response.status_code == 404

    def test_default_and_reorder(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)
        a = _add_occ_agg(test_client, set_id, 500_000, 1_000_000).json()["id"]
        b = _add_occ_agg(test_client, set_id, 1_000_000, 2_000_000).json()["id"]

        response = test_client.post(f"{SETS}/{set_id}/default", json={"optionId": b})
        assert response.json() == {"count": 1}
        response = test_client.post(f"{SETS}/{set_id}/default", json={"optionId": b})
        assert response.json() == {"count": 0}

        response = test_client.post(f"{SETS}/{set_id}/reorder", json={"optionIds": [b, a]})
        assert response.status_code == 200
        options = test_client.get(f"{SETS}/{set_id}/options").json()
        assert [(o["id"], o["displayOrder"], o["isDefault"]) for o in options] == [(b, 0, True), (a, 1, False)]

    def test_invalid_reorder(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)
        a = _add_occ_agg(test_client, set_id, 500_000, 1_000_000).json()["id"]
        _add_occ_agg(test_client, set_id, 1_000_000, 2_000_000)

        response = test_client.post(f"{SETS}/{set_id}/reorder", json={"optionIds": [a]})

        assert response.status_code == 400
        assert len(response.json()["detail"]["missing"]) == 1

    def test_structure_change_needs_confirmation(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)
        _add_occ_agg(test_client, set_id, 1_000_000, 2_000_000)

        response = test_client.patch(f"{SETS}/{set_id}", json={"structure": "csl"})
        assert response.status_code == 409
        assert response.json()["detail"]["affected"] == 1

        response = test_client.patch(
            f"{SETS}/{set_id}", params={"confirmStructureChange": "true"}, json={"structure": "csl"}
        )
        assert response.status_code == 200

    def test_validation_endpoint(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)

        response = test_client.get(f"{SETS}/{set_id}/validation", params={"mode": "draft"})

        assert response.status_code == 200
        assert "isValid" in response.json()

    def test_apply_template_and_delete_set(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client)

        response = test_client.post(f"{SETS}/{set_id}/templates/gl-occ-agg")
        assert response.status_code == 201
        assert len(response.json()["ids"]) == 5

        response = test_client.delete(f"{SETS}/{set_id}")
        assert response.json() == {"count": 5}
        assert test_client.get(f"{SETS}/{set_id}").status_code == 404

    def test_template_structure_mismatch(self, test_client: TestClient) -> None:
        set_id = _create_set(test_client, structure="single")

        response = test_client.post(f"{SETS}/{set_id}/templates/auto-split")

        assert response.status_code == 422

    def test_access_denied_maps_to_403(self, test_client: TestClient) -> None:
        mock_service = AsyncMock()
        mock_service.get_limit_option_sets.side_effect = AccessDeniedError("products/prod-1")
        app.dependency_overrides[get_limit_option_service] = lambda: mock_service

        response = test_client.get(SETS)

        assert response.status_code == 403


class TestLegacyEndpoints:
    """Test suite for legacy limit status, migration and sync."""

    def test_migrate_save_and_sync(self, test_client: TestClient, store) -> None:
        legacy = legacy_limits_path("prod-1", "cov-1")
        asyncio.run(store.upsert(join_path(legacy, "l1"), {"limitType": "perOccurrence", "amount": 1_000_000}))
        asyncio.run(store.upsert(join_path(legacy, "l2"), {"limitType": "aggregate", "amount": 2_000_000}))

        assert test_client.get(f"{BASE}/legacy-limits").json() == {"hasLegacyLimits": True}

        proposal = test_client.get(f"{BASE}/legacy-limits/migration").json()
        assert proposal["optionSet"]["structure"] == "occAgg"
        assert proposal["structureInferred"] is True

        response = test_client.post(f"{BASE}/legacy-limits/migration", json=proposal)
        assert response.status_code == 201
        set_id = response.json()["id"]

        response = test_client.post(f"{SETS}/{set_id}/legacy-sync")
        assert response.json() == {"count": 1}

    def test_empty_legacy_migration(self, test_client: TestClient) -> None:
        proposal = test_client.get(f"{BASE}/legacy-limits/migration").json()

        assert proposal["options"] == []
        assert proposal["structureInferred"] is False


class TestTemplateEndpoints:
    """Test suite for the template catalogue."""

    def test_list_filtered(self, test_client: TestClient) -> None:
        response = test_client.get("/api/v1/limit-templates", params={"category": "Auto"})

        assert response.status_code == 200
        assert {t["id"] for t in response.json()} == {"auto-split", "auto-csl"}

    def test_get_unknown_template(self, test_client: TestClient) -> None:
        assert test_client.get("/api/v1/limit-templates/missing").status_code == 404
