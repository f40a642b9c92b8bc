import pytest
from fastapi.testclient import TestClient

from order_entry.main import LAST_SEEN, SESSIONS, app, settings
from order_entry.schemas import TableCreate, TableStatus
from order_entry.services.store import get_order_store
from order_entry.services.store.mock import MockOrderStore

LATTE = 9


@pytest.fixture
def api_store():
    return MockOrderStore()


@pytest.fixture
def client(api_store):
    """TestClient bound to a fresh in-memory store."""
    app.dependency_overrides[get_order_store] = lambda: api_store
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
    SESSIONS.clear()
    LAST_SEEN.clear()


def open_session(client, **body):
    response = client.post("/api/sessions", json=body)
    assert response.status_code == 200
    return response.json()["session"]["session_id"]


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "operational"
    assert data["store"] == "mock: healthy"


def test_menu_uses_wire_names(client):
    response = client.get("/api/menu")

    assert response.status_code == 200
    latte = next(item for item in response.json() if item["name"] == "Latte")
    assert latte == {"menuItemId": LATTE, "name": "Latte", "price": 4.5, "category": "Coffee"}


def test_quick_order_send_flow(client, api_store):
    session_id = open_session(client)

    added = client.post(f"/api/sessions/{session_id}/items", json={"menu_item_id": LATTE})
    assert added.status_code == 200
    assert added.json()["session"]["notification"] == "Ready to send or save as draft"

    sent = client.post(f"/api/sessions/{session_id}/send")

    assert sent.status_code == 200
    view = sent.json()["session"]
    assert view["table_name"] == "Quick Order QO1"
    assert view["items"][0]["status"] == "limbo"
    assert view["seconds_left"] == 15
    assert view["notification"] == "15 seconds to edit"
    assert api_store.tables[0].ephemeral

    now = client.post(f"/api/sessions/{session_id}/send-now")

    assert now.status_code == 200
    assert now.json()["session"]["items"][0]["status"] == "pending"
    assert now.json()["session"]["notification"] == "Items locked and sent to prep station"


def test_failed_action_is_conflict(client):
    session_id = open_session(client)

    response = client.post(f"/api/sessions/{session_id}/send")

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "nothing_to_send"
    assert body["session"]["notification"] == "Add items to order"


def test_save_draft_and_remove(client, api_store):
    session_id = open_session(client)
    client.post(f"/api/sessions/{session_id}/items", json={"menu_item_id": LATTE})

    saved = client.post(f"/api/sessions/{session_id}/save")
    assert saved.status_code == 200
    assert saved.json()["session"]["items"][0]["saved_draft"] is True

    removed = client.delete(f"/api/sessions/{session_id}/items/0")
    assert removed.status_code == 200
    assert removed.json()["session"]["items"] == []
    assert api_store.call_count("delete_order_item") == 1


def test_open_occupied_table(client, api_store):
    table = api_store.add_table(TableCreate(number="W3", status=TableStatus.OCCUPIED))

    response = client.post("/api/sessions", json={"table_id": table.id})

    assert response.status_code == 200
    assert response.json()["session"]["table_name"] == "Table W3"


def test_unknown_resources(client):
    assert client.post("/api/sessions", json={"table_id": 42}).status_code == 404
    assert client.get("/api/sessions/missing").status_code == 404

    session_id = open_session(client)
    response = client.post(f"/api/sessions/{session_id}/items", json={"menu_item_id": 999})
    assert response.status_code == 404


def test_close_session(client):
    session_id = open_session(client)

    closed = client.delete(f"/api/sessions/{session_id}")

    assert closed.status_code == 200
    assert client.get(f"/api/sessions/{session_id}").status_code == 404
    assert client.delete(f"/api/sessions/{session_id}").status_code == 404


def test_store_failure_on_lookup_is_bad_gateway(client, api_store):
    session_id = open_session(client)
    api_store.failing_operations.update({"get_tables", "list_menu_items"})

    opened = client.post("/api/sessions", json={"table_id": 1})
    assert opened.status_code == 502
    assert opened.json()["error"] == "Order store unavailable"

    added = client.post(f"/api/sessions/{session_id}/items", json={"menu_item_id": LATTE})
    assert added.status_code == 502
    assert client.get("/api/menu").status_code == 502
    assert client.get(f"/api/sessions/{session_id}").json()["items"] == []


def test_idle_sessions_are_evicted(client):
    idle = open_session(client)
    active = open_session(client)
    LAST_SEEN[idle] -= settings.session_idle_seconds + 1

    open_session(client)

    assert client.get(f"/api/sessions/{idle}").status_code == 404
    assert client.get(f"/api/sessions/{active}").status_code == 200
    assert idle not in LAST_SEEN
