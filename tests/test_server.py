"""Tests for the HTTP and WebSocket API."""

import pytest
from fastapi.testclient import TestClient

from outlineflow.server.app import app


@pytest.fixture
def client():
    with TestClient(app) as c:
        c.post("/api/flowchart/new")
        yield c


def create(client, **fields):
    response = client.post("/api/shapes", json=fields)
    assert response.status_code == 200
    return response.json()["shape"]


class TestShapes:
    """Test shape CRUD endpoints."""

    def test_health(self, client):
        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_create_defaults(self, client):
        shape = create(client, text="Start")

        assert shape["text"] == "Start"
        assert (shape["width"], shape["height"]) == (120, 60)
        assert shape["backgroundColor"] == "#ffffff"

    def test_create_duplicate_heading(self, client):
        create(client, headingId="h1")

        response = client.post("/api/shapes", json={"headingId": "h1"})

        assert response.status_code == 409

    def test_get_and_patch(self, client):
        shape = create(client, x=10, y=10)

        response = client.patch(f"/api/shapes/{shape['id']}", json={"text": "Renamed", "width": 10})
        assert response.status_code == 200
        assert response.json()["shape"]["text"] == "Renamed"
        assert response.json()["shape"]["width"] == 50

        fetched = client.get(f"/api/shapes/{shape['id']}").json()
        assert fetched["shape"]["text"] == "Renamed"
        assert fetched["visible"] is True

    def test_missing_shape(self, client):
        assert client.get("/api/shapes/nope").status_code == 404
        assert client.patch("/api/shapes/nope", json={"text": "x"}).status_code == 404
        assert client.delete("/api/shapes/nope").status_code == 404

    def test_delete_cascades_connections(self, client):
        a = create(client)
        b = create(client, x=300)
        client.post("/api/connections", json={"from": a["id"], "to": b["id"]})

        assert client.delete(f"/api/shapes/{a['id']}").status_code == 200

        state = client.get("/api/flowchart").json()
        assert [s["id"] for s in state["shapes"]] == [b["id"]]
        assert state["connections"] == []


class TestGrouping:
    """Test group, ungroup and collapse endpoints."""

    def test_group_and_cycle(self, client):
        parent = create(client, x=0, y=0, width=400, height=300)
        child = create(client, x=100, y=100, width=100, height=40)

        response = client.post(f"/api/shapes/{child['id']}/group", json={"parentId": parent["id"]})
        assert response.status_code == 200
        assert response.json()["parent"]["children"] == [child["id"]]

        response = client.post(f"/api/shapes/{parent['id']}/group", json={"parentId": child["id"]})
        assert response.status_code == 409

    def test_group_unknown_parent(self, client):
        child = create(client)

        response = client.post(f"/api/shapes/{child['id']}/group", json={"parentId": "nope"})

        assert response.status_code == 404

    def test_ungroup_root(self, client):
        shape = create(client)

        assert client.post(f"/api/shapes/{shape['id']}/ungroup").status_code == 409

    def test_toggle_collapse(self, client):
        parent = create(client, x=0, y=0, width=400, height=300)
        child = create(client, x=100, y=100, width=100, height=40)
        client.post(f"/api/shapes/{child['id']}/group", json={"parentId": parent["id"]})

        response = client.post(f"/api/shapes/{parent['id']}/toggle-collapse")

        assert response.status_code == 200
        assert response.json()["collapsed"] is True
        assert client.get(f"/api/shapes/{child['id']}").json()["visible"] is False

    def test_toggle_without_children(self, client):
        shape = create(client)

        assert client.post(f"/api/shapes/{shape['id']}/toggle-collapse").status_code == 409

    def test_drop(self, client):
        parent = create(client, x=0, y=0, width=400, height=300)
        child = create(client, x=100, y=100, width=100, height=40)

        response = client.post(f"/api/shapes/{child['id']}/drop")

        assert response.json()["outcome"] == "grouped"
        assert response.json()["parent"] == parent["id"]


class TestConnections:
    """Test connection endpoints."""

    def test_create_update_delete(self, client):
        a = create(client)
        b = create(client, x=300)

        response = client.post("/api/connections", json={"from": a["id"], "to": b["id"], "style": {"label": "yes"}})
        assert response.status_code == 200
        connection = response.json()["connection"]
        assert connection["style"]["label"] == "yes"

        response = client.patch(f"/api/connections/{connection['id']}", json={"style": {"type": "dashed"}})
        style = response.json()["connection"]["style"]
        assert style["label"] == "yes"
        assert style["type"] == "dashed"

        assert client.delete(f"/api/connections/{connection['id']}").status_code == 200
        assert client.delete(f"/api/connections/{connection['id']}").status_code == 404

    def test_missing_endpoint(self, client):
        a = create(client)

        response = client.post("/api/connections", json={"from": a["id"], "to": "nope"})

        assert response.status_code == 404

    def test_unknown_style_rejected(self, client):
        a = create(client)
        b = create(client, x=300)

        response = client.post("/api/connections", json={"from": a["id"], "to": b["id"], "style": {"arrow": "sideways"}})
        assert response.status_code == 422

        connection = client.post("/api/connections", json={"from": a["id"], "to": b["id"]}).json()["connection"]
        response = client.patch(f"/api/connections/{connection['id']}", json={"style": {"type": "zigzag"}})
        assert response.status_code == 422

        flowchart = client.get("/api/flowchart").json()
        assert [c["style"]["type"] for c in flowchart["connections"]] == ["solid"]


class TestHeadings:
    """Test outline reconciliation endpoints."""

    def test_sync(self, client):
        response = client.put("/api/headings", json={"headings": [
            {"id": "h1", "text": "Intro"},
            {"id": "h2", "text": "Body"},
        ]})

        assert response.status_code == 200
        assert len(response.json()["created"]) == 2

        shape = client.get("/api/headings/h2/shape").json()["shape"]
        assert shape["text"] == "Body"
        assert (shape["x"], shape["y"]) == (200, 50)

        response = client.put("/api/headings", json={"headings": [{"id": "h2", "text": "Body"}]})
        assert len(response.json()["removed"]) == 1
        assert client.get("/api/headings/h1/shape").status_code == 404


class TestInteraction:
    """Test pointer gesture endpoints."""

    def test_drag(self, client):
        shape = create(client, x=100, y=100, width=120, height=60)

        response = client.post("/api/pointer/down", json={"x": 150, "y": 120})
        assert response.json()["state"] == "dragging"

        client.post("/api/pointer/move", json={"x": 250, "y": 220})
        response = client.post("/api/pointer/up", json={"x": 250, "y": 220})

        assert response.json()["moved"] is True
        assert response.json()["drop"] == "unchanged"
        moved = client.get(f"/api/shapes/{shape['id']}").json()["shape"]
        assert (moved["x"], moved["y"]) == (200, 200)

    def test_explicit_resize_target(self, client):
        shape = create(client, x=100, y=100, width=120, height=60)
        target = {"kind": "resize_handle", "shapeId": shape["id"], "handle": "se"}

        client.post("/api/pointer/down", json={"x": 220, "y": 160, "target": target})
        client.post("/api/pointer/move", json={"x": 260, "y": 200})
        response = client.post("/api/pointer/up", json={"x": 260, "y": 200})

        assert response.json()["gesture"] == "resizing"
        resized = client.get(f"/api/shapes/{shape['id']}").json()["shape"]
        assert (resized["width"], resized["height"]) == (160, 100)

    def test_cancel_restores(self, client):
        shape = create(client, x=100, y=100, width=120, height=60)

        client.post("/api/pointer/down", json={"x": 150, "y": 120})
        client.post("/api/pointer/move", json={"x": 250, "y": 220})
        client.post("/api/pointer/cancel")

        restored = client.get(f"/api/shapes/{shape['id']}").json()["shape"]
        assert (restored["x"], restored["y"]) == (100, 100)

    def test_mode(self, client):
        assert client.put("/api/mode", json={"mode": "connect"}).json()["mode"] == "connect"
        assert client.put("/api/mode", json={"mode": "lasso"}).status_code == 400
        client.put("/api/mode", json={"mode": "select"})

    def test_viewport(self, client):
        assert client.post("/api/viewport/zoom-in").json()["zoom"] == 1.1
        response = client.post("/api/viewport/fit", json={"width": 800, "height": 600})
        assert response.json()["zoom"] == 1.0


class TestFiles:
    """Test file endpoints."""

    def test_save_and_open(self, client, tmp_path):
        create(client, text="Persisted")
        path = tmp_path / "chart.json"

        response = client.post("/api/flowchart/save", json={"file_path": str(path)})
        assert response.status_code == 200
        assert path.exists()

        client.post("/api/flowchart/new")
        response = client.post("/api/flowchart/open", json={"file_path": str(path)})

        assert response.status_code == 200
        assert response.json()["repairs"] == 0
        shapes = client.get("/api/flowchart").json()["shapes"]
        assert [s["text"] for s in shapes] == ["Persisted"]

    def test_save_without_path(self, client):
        assert client.post("/api/flowchart/save", json={}).status_code == 400

    def test_open_missing(self, client, tmp_path):
        response = client.post("/api/flowchart/open", json={"file_path": str(tmp_path / "none.json")})
        assert response.status_code == 404

    def test_validate(self, client):
        create(client)

        response = client.get("/api/flowchart/validate")

        assert response.json()["summary"]["valid"] is True


class TestWebSocket:
    """Test the real-time channel."""

    def test_ping(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_text("ping")
            message = websocket.receive_json()
            while message["type"] != "pong":
                message = websocket.receive_json()

            assert message == {"type": "pong"}
