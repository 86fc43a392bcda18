import pytest
from fastapi.testclient import TestClient

from api import app, get_manager
from chat import ChatCompanion
from engine import SessionManager
from fakes import DummyClient, FakeProvider, content

BASE = "/v1/pictionary/sessions"


@pytest.fixture
def client():
    provider = FakeProvider(content("Die Hard", "My idea was a tank top."), content("Alien"), content("Jaws"))
    manager = SessionManager(provider, lambda: ChatCompanion(DummyClient()))
    app.dependency_overrides[get_manager] = lambda: manager
    with TestClient(app) as c:
        yield c
        c.portal.call(manager.close_all)
    app.dependency_overrides.clear()


def test_start_session(client):
    resp = client.post(BASE, json={"style": "claymation"})
    assert resp.status_code == 200
    data = resp.json()
    assert "session_id" in data
    assert data["status"] == "idle"
    assert data["style"] == "claymation"
    assert (data["score"], data["level"]) == (0, 1)


def test_round_flow(client):
    sid = client.post(BASE, json={}).json()["session_id"]

    data = client.post(f"{BASE}/{sid}/rounds").json()
    assert data["status"] == "playing"
    assert data["time_left"] == 30
    assert data["answer"] is None and data["explanation"] is None
    assert data["answer_length"] == 7
    assert data["word_lengths"] == [3, 4]
    assert data["image_url"].startswith("data:")

    out = client.post(f"{BASE}/{sid}/guess", json={"value": "die"}).json()
    assert out["accepted"] and out["state"]["guess"] == "die"

    out = client.post(f"{BASE}/{sid}/guess", json={"value": "DieHard"}).json()
    state = out["state"]
    assert state["status"] == "won"
    assert state["answer"] == "Die Hard"
    assert state["explanation"] == "My idea was a tank top."
    assert state["score"] == 1

    out = client.post(f"{BASE}/{sid}/guess", json={"value": "x"}).json()
    assert not out["accepted"]

    data = client.post(f"{BASE}/{sid}/rounds").json()
    assert data["status"] == "playing"
    assert data["answer_length"] == 5
    assert data["rounds_played"] == 2


def test_style_is_locked_while_playing(client):
    sid = client.post(BASE, json={}).json()["session_id"]
    assert client.put(f"{BASE}/{sid}/style", json={"style": "wood carving"}).json()["style"] == "wood carving"
    assert client.put(f"{BASE}/{sid}/style", json={"style": " "}).status_code == 400
    client.post(f"{BASE}/{sid}/rounds")
    assert client.put(f"{BASE}/{sid}/style", json={"style": "pixel art"}).status_code == 409


def test_reset(client):
    sid = client.post(BASE, json={}).json()["session_id"]
    client.post(f"{BASE}/{sid}/rounds")
    client.post(f"{BASE}/{sid}/guess", json={"value": "diehard"})
    for _ in range(2):
        data = client.post(f"{BASE}/{sid}/reset").json()
        assert data["status"] == "idle"
        assert (data["score"], data["level"], data["rounds_played"]) == (0, 1, 0)
        assert data["image_url"] is None


def test_chat_and_clue(client):
    sid = client.post(BASE, json={}).json()["session_id"]
    chat = client.get(f"{BASE}/{sid}/chat").json()
    assert chat["messages"][0]["role"] == "model"

    assert client.post(f"{BASE}/{sid}/clue").status_code == 409

    chat = client.post(f"{BASE}/{sid}/chat", json={"message": "hello"}).json()
    assert {"role": "user", "content": "hello"} in chat["messages"]
    assert chat["messages"][-1] == {"role": "model", "content": "Okay!"}


def test_unknown_session(client):
    assert client.get(f"{BASE}/nope").status_code == 404
    assert client.post(f"{BASE}/nope/rounds").status_code == 404
    assert client.delete(f"{BASE}/nope").status_code == 404


def test_close_session(client):
    sid = client.post(BASE, json={}).json()["session_id"]
    assert client.delete(f"{BASE}/{sid}").status_code == 204
    assert client.get(f"{BASE}/{sid}").status_code == 404


def test_styles(client):
    assert "pixel art" in client.get("/v1/pictionary/styles").json()["presets"]


def test_missing_api_key_is_bad_gateway(monkeypatch):
    import api

    monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
    monkeypatch.setattr(api, "_manager", None)
    with TestClient(app) as c:
        resp = c.post(BASE, json={})
    assert resp.status_code == 502
    assert "OPENROUTER_API_KEY" in resp.json()["detail"]
    assert api._manager is None
