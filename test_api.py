"""
API Test

Exercises the FastAPI app with TestClient against a throwaway store and a
canned extraction oracle (both injected through dependency_overrides):
1. Health probes
2. Extraction and shipment import over HTTP
3. Error-to-status mapping (400/401/404/409)
4. Aquarium, farm settings and reception plan routes
"""

import pytest
from fastapi.testclient import TestClient

from api.deps import get_oracle, get_store
from api.errors import status_for
from api.server import create_app
from core.errors import (
    EmptyImport,
    InvalidTransition,
    MissingFarm,
    OracleTimeout,
    PlanNotFound,
    TransactionWriteFailure,
    Unauthenticated,
)
from extraction.oracle import ExtractionOracle, OracleRequest
from storage.documents import SQLiteDocumentStore


FARM = "farm-1"
HEADERS = {"X-User-Id": "user-1"}

ANSWER = """```json
{"supplier": "Aqua Exports", "dateReceived": "2024-03-01", "items": [
  {"scientificName": "", "size": "M", "boxNumber": 1},
  {"scientificName": "Betta splendens", "size": "5cm", "boxNumber": 2, "quantity": 8}
]}
```"""

PLAN = {
    "expectedDate": "2024-03-01",
    "source": "manual",
    "countryOfOrigin": "Singapore",
    "supplierName": "Aqua Exports",
    "targetRoom": "reception",
}


class CannedOracle(ExtractionOracle):

    async def complete(self, request: OracleRequest) -> str:
        return ANSWER


@pytest.fixture
def store(tmp_path):
    return SQLiteDocumentStore(tmp_path / "api.db")


@pytest.fixture
def client(store):
    app = create_app()
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_oracle] = lambda: CannedOracle()
    return TestClient(app)


def _aquarium(client, number="12"):
    response = client.post(f"/farms/{FARM}/aquariums", json={"aquariumNumber": number, "volume": 80, "room": "main"})
    assert response.status_code == 201
    return response.json()


class TestErrorMapping:

    @pytest.mark.parametrize("error,status", [
        (Unauthenticated(), 401),
        (MissingFarm(), 400),
        (EmptyImport(), 400),
        (OracleTimeout(45), 400),
        (PlanNotFound("p"), 404),
        (InvalidTransition("plan", "completed", "planning"), 409),
        (TransactionWriteFailure("import shipment", RuntimeError("boom")), 500),
    ])
    def test_status_for(self, error, status):
        assert status_for(error) == status


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["services"]["storage"] == "up"

    def test_live(self, client):
        assert client.get("/live").json() == {"status": "alive"}


class TestShipmentRoutes:

    def test_extract_pasted_text(self, client):
        response = client.post(f"/farms/{FARM}/shipments/extract", data={"text": "Betta splendens 5cm"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["summary"]["totalRows"] == 2
        assert body["summary"]["validRows"] == 1
        assert body["summary"]["errorRows"] == 1
        assert body["data"][0]["verdict"]["errors"][0]["field"] == "scientificName"

    def test_extract_uploaded_csv(self, client):
        content = b"Scientific Name,Size,Box\nBetta splendens,M,3\n"
        response = client.post(
            f"/farms/{FARM}/shipments/extract",
            files={"file": ("list.csv", content, "text/csv")},
        )
        body = response.json()
        assert body["success"] is True
        assert body["sourceKind"] == "grid"

    def test_extract_unknown_strategy(self, client):
        response = client.post(f"/farms/{FARM}/shipments/extract", data={"text": "Betta", "strategy": "ocr"})
        assert response.status_code == 200
        body = response.json()
        assert body["success"] is False
        assert body["errorCode"] == "UNSUPPORTED_DOCUMENT"

    def test_extract_without_input(self, client):
        response = client.post(f"/farms/{FARM}/shipments/extract")
        assert response.status_code == 400
        assert response.json()["code"] == "UNSUPPORTED_DOCUMENT"

    def test_import_and_read_back(self, client):
        response = client.post(f"/farms/{FARM}/shipments", headers=HEADERS, json={
            "supplier": "Aqua Exports",
            "dateReceived": "2024-03-01",
            "items": [
                {"scientificName": "Betta splendens", "size": "M", "boxNumber": 2, "quantity": 8, "code": "B-1"},
                {"scientificName": "Poecilia reticulata", "size": "S", "boxNumber": 3},
            ],
        })
        assert response.status_code == 201
        outcome = response.json()
        assert outcome["fishCount"] == 2
        assert outcome["totalFish"] == 9

        shipment_id = outcome["shipmentId"]
        shipment = client.get(f"/farms/{FARM}/shipments/{shipment_id}").json()
        assert shipment["totalFishCount"] == 9
        assert shipment["createdBy"] == "user-1"

        fish = client.get(f"/farms/{FARM}/shipments/{shipment_id}/fish").json()
        assert sorted(f["codeStatus"] for f in fish) == ["missing", "valid"]

        assert len(client.get(f"/farms/{FARM}/shipments").json()) == 1

    def test_import_requires_user(self, client):
        response = client.post(f"/farms/{FARM}/shipments", json={"items": [{"scientificName": "x", "size": "M"}]})
        assert response.status_code == 401
        assert response.json()["code"] == "UNAUTHENTICATED"

    def test_import_empty(self, client):
        response = client.post(f"/farms/{FARM}/shipments", headers=HEADERS, json={"items": []})
        assert response.status_code == 400
        assert response.json()["code"] == "EMPTY_IMPORT"

    def test_unknown_shipment(self, client):
        assert client.get(f"/farms/{FARM}/shipments/nope").status_code == 404


class TestAquariumRoutes:

    def test_crud(self, client):
        created = _aquarium(client)
        aquarium_id = created["aquariumId"]
        assert created["status"] == "empty"

        patched = client.patch(f"/farms/{FARM}/aquariums/{aquarium_id}", json={"room": "quarantine"})
        assert patched.json()["room"] == "quarantine"

        rooms = client.get(f"/farms/{FARM}/aquariums", params={"room": "quarantine"}).json()
        assert [a["aquariumId"] for a in rooms] == [aquarium_id]

        assert client.get(f"/farms/{FARM}/aquariums/{aquarium_id}/fish").json() == []
        assert client.delete(f"/farms/{FARM}/aquariums/{aquarium_id}").status_code == 204
        assert client.get(f"/farms/{FARM}/aquariums/{aquarium_id}").status_code == 404

    def test_invalid_aquarium(self, client):
        response = client.post(f"/farms/{FARM}/aquariums", json={"volume": 0})
        assert response.status_code == 400
        assert len(response.json()["errors"]) == 3

    def test_empty_filter(self, client):
        _aquarium(client, "1")
        busy = _aquarium(client, "2")
        client.patch(f"/farms/{FARM}/aquariums/{busy['aquariumId']}", json={"status": "occupied"})
        empty = client.get(f"/farms/{FARM}/aquariums", params={"empty": "true"}).json()
        assert [a["aquariumNumber"] for a in empty] == ["1"]


class TestFarmSettingsRoutes:

    def test_defaults_then_update(self, client):
        assert client.get(f"/farms/{FARM}/settings").json()["currency"] == "ILS"

        response = client.put(f"/farms/{FARM}/settings", json={
            "currency": "USD",
            "aquariumRooms": [{"id": "north", "label": "צפון"}],
            "aquariumStatuses": [{"id": "empty", "label": "ריק", "color": "#ffffff"}],
        })
        assert response.status_code == 200
        assert client.get(f"/farms/{FARM}/settings").json()["aquariumRooms"] == [{"id": "north", "label": "צפון"}]

    def test_invalid_settings(self, client):
        response = client.put(f"/farms/{FARM}/settings", json={"aquariumRooms": []})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_FARM_SETTINGS"


class TestReceptionRoutes:

    def test_full_flow(self, client):
        aquarium = _aquarium(client)
        plan = client.post(f"/farms/{FARM}/reception-plans", headers=HEADERS, json=PLAN).json()
        plan_id = plan["planId"]
        base = f"/farms/{FARM}/reception-plans/{plan_id}"
        assert plan["status"] == "planning"
        assert plan["createdBy"] == "user-1"

        item = client.post(f"{base}/items", json={"hebrewName": "גופי", "size": "M", "quantity": 20})
        assert item.status_code == 201
        item_id = item.json()["itemId"]

        validation = client.get(f"{base}/validation").json()
        assert validation["valid"] is False

        assert client.post(f"{base}/finalize").status_code == 409

        client.patch(f"{base}/items/{item_id}", json={"targetAquariumId": aquarium["aquariumId"]})
        assert client.get(f"{base}/validation").json() == {"valid": True, "errors": []}

        requirements = client.get(f"{base}/work-requirements").json()
        assert requirements["totalItems"] == 1
        assert requirements["byRoom"]["main"]["count"] == 1

        assert client.post(f"{base}/finalize").json()["status"] == "finalized"
        assert client.post(f"{base}/lock").json()["status"] == "locked"

        locked_add = client.post(f"{base}/items", json={"hebrewName": "בטה", "size": "S"})
        assert locked_add.status_code == 409
        assert locked_add.json()["code"] == "PLAN_LOCKED"

        received = client.post(f"{base}/items/{item_id}/receive")
        assert received.json()["status"] == "received"
        assert client.post(f"{base}/items/{item_id}/receive").status_code == 409

        assert client.get(base).json()["status"] == "completed"
        tank = client.get(f"/farms/{FARM}/aquariums/{aquarium['aquariumId']}").json()
        assert tank["totalFish"] == 20

    def test_status_endpoint(self, client):
        plan_id = client.post(f"/farms/{FARM}/reception-plans", json=PLAN).json()["planId"]
        base = f"/farms/{FARM}/reception-plans/{plan_id}"

        assert client.post(f"{base}/status", json={"status": "proforma_received"}).json()["status"] == "proforma_received"
        assert client.post(f"{base}/status", json={"status": "locked"}).status_code == 409
        assert client.post(f"{base}/status", json={"status": "bogus"}).status_code == 422

    def test_list_and_suggestions(self, client):
        client.post(f"/farms/{FARM}/reception-plans", json=PLAN)
        client.post(f"/farms/{FARM}/reception-plans", json={**PLAN, "countryOfOrigin": "Thailand"})

        assert len(client.get(f"/farms/{FARM}/reception-plans").json()) == 2
        assert client.get(f"/farms/{FARM}/reception-plans", params={"status": "locked"}).json() == []
        suggestions = client.get(f"/farms/{FARM}/reception-plans/suggestions").json()
        assert suggestions == {"countries": ["Singapore", "Thailand"], "suppliers": ["Aqua Exports"]}

    def test_extracted_items(self, client):
        plan_id = client.post(f"/farms/{FARM}/reception-plans", json=PLAN).json()["planId"]
        response = client.post(f"/farms/{FARM}/reception-plans/{plan_id}/items/extracted", json={"items": [
            {"scientificName": "Betta splendens", "size": "M", "boxNumber": 1},
            {"scientificName": "", "size": "M", "boxNumber": 2},
        ]})
        assert response.status_code == 201
        assert [i["hebrewName"] for i in response.json()] == ["Betta splendens"]

    def test_item_of_other_plan(self, client):
        first = client.post(f"/farms/{FARM}/reception-plans", json=PLAN).json()["planId"]
        second = client.post(f"/farms/{FARM}/reception-plans", json=PLAN).json()["planId"]
        item_id = client.post(
            f"/farms/{FARM}/reception-plans/{first}/items", json={"hebrewName": "גופי", "size": "M"},
        ).json()["itemId"]

        response = client.delete(f"/farms/{FARM}/reception-plans/{second}/items/{item_id}")
        assert response.status_code == 404

    def test_delete_plan(self, client):
        plan_id = client.post(f"/farms/{FARM}/reception-plans", json=PLAN).json()["planId"]
        assert client.delete(f"/farms/{FARM}/reception-plans/{plan_id}").status_code == 204
        assert client.get(f"/farms/{FARM}/reception-plans/{plan_id}").status_code == 404

    def test_invalid_plan(self, client):
        response = client.post(f"/farms/{FARM}/reception-plans", json={"source": "manual"})
        assert response.status_code == 400
        assert "Target room is required" in response.json()["errors"]
