"""
Remote Editor Tests

HTTP endpoints queue work; the host thread applies it between ticks.
"""

import pytest
from fastapi.testclient import TestClient

from livebridge.ui import EditorWidget, dump_states, initial_state
from livebridge.web_controller import RemoteController


@pytest.fixture
def instance(make_instance):
    return make_instance("function update() state.x = (state.x or 0) + 1 end")


@pytest.fixture
def controller(instance):
    return RemoteController(EditorWidget(instance))


@pytest.fixture
def client(controller):
    return TestClient(controller.app)


class TestReadEndpoints:
    """GET endpoints serve the last published snapshot."""

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "tick": 0, "pending": 0}

    def test_widget(self, client):
        body = client.get("/api/widget").json()
        assert len(body["schema"]) == 6
        assert body["schema"][3] == {"kind": "button", "label": "Run"}
        assert body["states"][0]["text"].startswith("function update()")

    def test_response(self, client):
        body = client.get("/api/response").json()
        assert body["text"] == "Compiled successfully"
        assert body["tick"] == 0


class TestWriteEndpoints:
    """POST endpoints queue actions until apply_pending()."""

    def test_script_queued_then_applied(self, client, controller, instance):
        response = client.post("/api/script", json={"source": "function update() end"})
        assert response.status_code == 202
        assert controller.pending == 1
        assert instance.committed_source.startswith("function update() state.x")

        assert controller.apply_pending() == 1
        assert instance.committed_source == "function update() end"
        assert client.get("/api/response").json()["text"] == "Compiled successfully"

    def test_bad_script_reported(self, client, controller):
        client.post("/api/script", json={"source": "function update("})
        controller.apply_pending()
        assert client.get("/api/response").json()["text"].startswith("Compile error")

    def test_command_round_trip(self, client, controller, instance, world):
        client.post("/api/command", json={"command": "state.x"})
        controller.apply_pending()
        instance.tick(world)
        controller.publish()

        body = client.get("/api/response").json()
        assert body["text"] == "Returned: 1"
        assert body["tick"] == 1

    def test_widget_update(self, client, controller, instance):
        states = dump_states(initial_state("y = 1"))
        states[1]["clicked"] = True
        states[4]["checked"] = True

        assert client.post("/api/widget", json={"states": states}).status_code == 202
        controller.apply_pending()

        assert instance.committed_source == "y = 1"
        assert instance.paused
        published = client.get("/api/widget").json()["states"]
        assert published[1]["clicked"] is False
        assert published[5]["text"] == "Compiled successfully"

    def test_widget_wrong_arity(self, client, controller):
        states = dump_states(initial_state())[:3]
        response = client.post("/api/widget", json={"states": states})
        assert response.status_code == 422
        assert controller.pending == 0

    def test_widget_wrong_kind(self, client, controller):
        states = dump_states(initial_state())
        states[0], states[5] = states[5], states[0]
        response = client.post("/api/widget", json={"states": states})
        assert response.status_code == 422

    def test_missing_body_field(self, client):
        assert client.post("/api/command", json={}).status_code == 422

    def test_nothing_pending(self, controller):
        assert controller.apply_pending() == 0
