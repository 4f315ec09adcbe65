import json

import pytest
from httpx import ASGITransport, AsyncClient

from crud.contract import EntityHandler, Operation
from crud.dispatch import EntityRegistry
from crud.router import get_bus
from main import app


class PlainExpenseRepository(EntityHandler):
    """Amount-only expense table, as in the HTTP walkthrough."""

    def initialize(self):
        self.entity_name = "expense"
        self.get_all_query = "SELECT amount, recid FROM expense ORDER BY recid"
        self.add_query = "INSERT INTO expense (amount) VALUES ($1) RETURNING recid"
        self.update_query = "UPDATE expense SET amount = $1 WHERE recid = $2"
        self.delete_query = "DELETE FROM expense WHERE recid = $1"

    def build_mutation_params(self, record, operation):
        if operation is Operation.DELETE:
            return [record["recid"]]
        if operation is Operation.UPDATE:
            return [record["amount"], record["recid"]]
        return [record["amount"]]


@pytest.fixture
def plain_bus(bus, provider):
    EntityRegistry(bus).deploy(PlainExpenseRepository(provider))
    return bus


@pytest.fixture
async def plain_client(plain_bus):
    app.dependency_overrides[get_bus] = lambda: plain_bus
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def test_add_then_get_all_walkthrough(plain_client):
    created = await plain_client.post("/api/", json={"type": "expense", "amount": 50})

    assert created.status_code == 200
    assert created.json() == {"type": "expense", "amount": 50, "recid": 1, "added": True}

    listed = await plain_client.get("/api/expense")

    assert listed.status_code == 200
    assert listed.json() == [{"amount": 50, "recid": 1}]


async def test_delete_without_recid_is_a_500_with_error_text(plain_client):
    response = await plain_client.request("DELETE", "/api/", json={"type": "expense"})

    assert response.status_code == 500
    assert response.json() == {"error": 'Error deleting {"type":"expense"}. Reason: Missing id'}


async def test_record_keys_keep_client_order(plain_client):
    missing = await plain_client.request("DELETE", "/api/", json={"recid": None, "type": "expense"})

    assert missing.status_code == 500
    assert missing.json() == {"error": 'Error deleting {"recid":null,"type":"expense"}. Reason: Missing id'}

    created = await plain_client.post("/api/", json={"amount": 7, "type": "expense"})

    assert list(created.json()) == ["amount", "type", "recid", "added"]


async def test_responses_are_pretty_utf8_json(client):
    response = await client.post("/api/", json={"type": "category", "name": "café"})

    assert response.headers["content-type"] == "application/json; charset=utf-8"
    assert response.text == json.dumps(response.json(), ensure_ascii=False, indent=2)
    assert "café" in response.text


async def test_crud_cycle_through_http(client, database):
    created = (await client.post("/api/", json={"type": "expense", "amount": 12.5, "description": "taxi"})).json()
    assert created["added"] is True
    recid = created["recid"]

    updated = await client.put("/api/", json={"type": "expense", "recid": recid, "amount": 20, "description": "taxi"})
    assert updated.status_code == 200
    assert updated.json()["updated"] is True

    rows = (await client.get("/api/expense")).json()
    assert rows == [{"recid": recid, "amount": 20, "description": "taxi", "category_id": None}]

    deleted = await client.request("DELETE", "/api/", json={"type": "expense", "recid": recid})
    assert deleted.json() == {"type": "expense", "recid": recid, "deleted": True}
    assert (await client.get("/api/expense")).json() == []


async def test_update_of_missing_row_still_succeeds(client):
    response = await client.put("/api/", json={"type": "expense", "recid": 999999, "amount": 1})

    assert response.status_code == 200
    assert response.json()["updated"] is True


async def test_search_forwards_criteria(client, database):
    await client.post("/api/", json={"type": "expense", "amount": 5, "description": "coffee"})

    response = await client.post("/api/search", json={"type": "expense", "description": "cof"})

    assert response.status_code == 200
    assert response.json()[0]["description"] == "coffee"
    sql, params = database.statements[-1]
    assert "description ILIKE $1" in sql
    assert params == ["%cof%"]


async def test_gated_operation_surfaces_as_500(client, provider):
    response = await client.request("DELETE", "/api/", json={"type": "category", "recid": 1})

    assert response.status_code == 500
    assert response.json() == {"error": "Delete not implemented for category"}
    assert provider.acquisitions == 0


async def test_unknown_entity_is_a_500(client):
    response = await client.get("/api/unicorn")

    assert response.status_code == 500
    assert response.json() == {"error": "No handlers for address get_unicorn"}


async def test_body_without_type_is_a_500(client, provider):
    response = await client.post("/api/", json={"amount": 1})

    assert response.status_code == 500
    assert response.json()["error"].startswith("Malformed request: type")
    assert provider.acquisitions == 0


async def test_unparseable_body_is_a_500(client):
    response = await client.post(
        "/api/",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )

    assert response.status_code == 500
    assert response.json()["error"].startswith("Malformed request")


async def test_acquisition_failure_surfaces_provider_text(client, provider):
    provider.fail_acquire = OSError("could not connect to server")

    response = await client.get("/api/expense")

    assert response.status_code == 500
    assert response.json() == {"error": "could not connect to server"}


async def test_health_lists_deployed_entities(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "entities": ["category", "expense"]}
