"""
HTTP surface tests

The service dependency is overridden with one bound to the per-test store.
"""
import pytest
from fastapi.testclient import TestClient

from api.routes import app, get_bom_service, get_catalog_sync
from models.bom_models import SyncResult


class FakeSync:
    def __init__(self):
        self.calls = 0

    def run_sync(self):
        self.calls += 1
        return SyncResult(source="supabase", total_rows=2, materials=1, products=1, status="completed")


@pytest.fixture
def fake_sync():
    return FakeSync()


@pytest.fixture
def client(service, fake_sync):
    app.dependency_overrides[get_bom_service] = lambda: service
    app.dependency_overrides[get_catalog_sync] = lambda: fake_sync
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "running"


class TestBomEndpoints:

    def test_create_and_fetch_with_cost(self, client):
        cartridge = client.post("/api/boms", json={
            "name": "Filter Cartridge", "level": 2, "material_id": "mat-filter",
        }).json()
        response = client.post("/api/boms", json={
            "name": "Pump Group",
            "level": 1,
            "inclusions": [{"included_bom_id": cartridge["id"], "quantity": 3}],
            "product_ids": ["prod-pump"],
        })

        assert response.status_code == 200
        group = response.json()
        assert group["version"] == "v1"
        assert group["total_cost"] == "26.25"
        assert group["component_count"] == 1
        assert group["product_ids"] == ["prod-pump"]

        fetched = client.get(f"/api/boms/{group['id']}").json()
        assert fetched["inclusions"][0]["included_bom"]["material"]["cost"] == "8.75"

    def test_list_by_level(self, client, pump_structure):
        response = client.get("/api/boms", params={"level": 1})
        body = response.json()
        assert body["count"] == 1
        assert body["boms"][0]["total_cost"] == "26.25"

    def test_list_rejects_unknown_level(self, client):
        response = client.get("/api/boms", params={"level": 9})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "ValidationError"

    def test_level_mismatch_is_400(self, client, pump_structure):
        response = client.post("/api/boms", json={
            "name": "Model Z",
            "level": 0,
            "inclusions": [{"included_bom_id": pump_structure["cartridge"].id}],
        })
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "LevelMismatch"
        assert detail["details"]["expected_level"] == 1

    def test_invalid_quantity_is_400(self, client, pump_structure):
        response = client.post("/api/boms", json={
            "name": "Valve Group",
            "level": 1,
            "inclusions": [{"included_bom_id": pump_structure["cartridge"].id, "quantity": 0}],
        })
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "InvalidQuantity"

    def test_unknown_bom_is_404(self, client):
        response = client.get("/api/boms/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["details"] == {"entity": "BOM", "id": "missing"}

    def test_composition(self, client, pump_structure):
        body = client.get(f"/api/boms/{pump_structure['model_x'].id}/composition").json()
        assert body["total_cost"] == "26.25"
        assert [(l["name"], l["quantity"]) for l in body["lines"]] == [
            ("Pump Group", "1"), ("Filter Cartridge", "3"),
        ]

    def test_duplicate(self, client, pump_structure):
        response = client.post(f"/api/boms/{pump_structure['pump_group'].id}/duplicate")
        body = response.json()
        assert body["version"] == "v2"
        assert body["product_ids"] == []
        assert body["total_cost"] == "26.25"

    def test_versions(self, client, pump_structure):
        client.post(f"/api/boms/{pump_structure['cartridge'].id}/duplicate")
        body = client.get("/api/boms/versions", params={"name": "Filter Cartridge", "level": 2}).json()
        assert [v["version"] for v in body["versions"]] == ["v1", "v2"]


class TestDeleteEndpoint:

    def test_referenced_by_other_bom_is_409(self, client, pump_structure):
        response = client.delete(f"/api/boms/{pump_structure['pump_group'].id}")
        assert response.status_code == 409
        assert response.json()["detail"]["error"] == "ReferencedByOtherBOM"

    def test_work_order_confirmation_flow(self, client, store, pump_structure):
        model_x = pump_structure["model_x"]
        store.work_order("wo-1", "WO-1", model_x.id)

        blocked = client.delete(f"/api/boms/{model_x.id}")
        assert blocked.status_code == 409
        assert blocked.json()["detail"]["details"]["work_order_numbers"] == ["WO-1"]

        confirmed = client.delete(f"/api/boms/{model_x.id}", params={"confirm_cascade": "true"})
        assert confirmed.status_code == 200
        assert confirmed.json()["deleted_work_orders"] == ["wo-1"]

    def test_accessory_line_is_removed_alone(self, client, store, make_bom, pump_structure):
        handle = make_bom("Handle", 3)
        store.work_order("wo-1", "WO-1", pump_structure["model_x"].id)
        store.accessory("acc-1", "wo-1", handle.id)

        blocked = client.delete(f"/api/boms/{handle.id}")
        assert blocked.status_code == 409
        assert blocked.json()["detail"]["details"]["accessory_line_ids"] == ["acc-1"]

        confirmed = client.delete(f"/api/boms/{handle.id}", params={"confirm_cascade": "true"})
        assert confirmed.status_code == 200
        assert confirmed.json()["deleted_work_orders"] == []
        assert confirmed.json()["removed_accessory_lines"] == ["acc-1"]
        assert store.count("work_orders") == 1

    def test_detach_parents(self, client, pump_structure):
        response = client.delete(
            f"/api/boms/{pump_structure['pump_group'].id}", params={"detach_parents": "true"}
        )
        assert response.status_code == 200
        assert response.json()["detached_parent_ids"] == [pump_structure["model_x"].id]


class TestLinksAndCatalog:

    def test_put_product_links(self, client, pump_structure):
        group_id = pump_structure["pump_group"].id
        response = client.put(f"/api/boms/{group_id}/products", json={"product_ids": ["prod-oven"]})
        assert response.json() == {"bom_id": group_id, "product_ids": ["prod-oven"]}

        boms = client.get("/api/products/prod-oven/boms").json()
        assert [b["id"] for b in boms["boms"]] == [group_id]

    def test_product_links_on_element_is_400(self, client, pump_structure):
        response = client.put(
            f"/api/boms/{pump_structure['cartridge'].id}/products", json={"product_ids": ["prod-oven"]}
        )
        assert response.status_code == 400

    def test_unknown_product_is_404(self, client):
        assert client.get("/api/products/prod-none/boms").status_code == 404

    def test_materials_and_products(self, client):
        materials = client.get("/api/materials").json()
        assert materials["count"] == 3
        assert materials["materials"][0]["cost"] == "8.75"
        assert client.get("/api/products").json()["count"] == 3

    def test_catalog_sync(self, client, fake_sync):
        response = client.post("/api/catalog/sync")
        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert fake_sync.calls == 1
