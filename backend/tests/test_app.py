import pytest
from fastapi.testclient import TestClient

from app import app
from concierge.feedback import FeedbackStore
from conftest import reply

ADMIN = {"x-admin-password": "secret"}


@pytest.fixture
def client(make_service, settings):
    # No startup event without the context manager; state is wired by hand
    service, _ = make_service(reply("Try this one", [{"name": "Blue", "brand": "My Father"}], confidence=90))
    app.state.service = service
    app.state.settings = settings
    app.state.feedback = FeedbackStore(settings.feedback_path)
    app.state.evaluations = None
    yield TestClient(app)
    app.state.service = None
    app.state.settings = None
    app.state.feedback = None
    app.state.evaluations = None


def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["catalog_size"] == 14
    assert body["groq"] == "missing"

# Chat answers are camelCase on the wire
def test_chat(client):
    res = client.post("/chat", json={"messages": [{"role": "user", "content": "something mellow"}], "shownCigars": []})
    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Try this one"
    assert body["cigars"][0]["id"] == "6"
    assert body["cigars"][0]["inStock"] is True
    assert "imageUrl" in body["cigars"][0]

# Found barcodes return the card without error fields
def test_scan(client):
    body = client.post("/scan", json={"barcode": "6912010006"}).json()
    assert body["cigar"]["name"] == "Blue"
    assert "error" not in body

    assert "error" in client.post("/scan", json={"barcode": "zzz-unknown"}).json()

def test_meta(client):
    body = client.get("/meta").json()
    assert body["total"] == 14
    assert "Padron" in body["brands"]

# Admin routes need the password header
def test_inventory_requires_admin(client):
    assert client.get("/inventory").status_code == 401
    assert client.get("/inventory", headers={"x-admin-password": "wrong"}).status_code == 401
    res = client.get("/inventory", headers=ADMIN)
    assert res.status_code == 200
    assert len(res.json()["cigars"]) == 14

def test_inventory_crud(client):
    new = {"name": "Anejo 50", "brand": "Arturo Fuente", "body": "Full", "strength": "Full",
           "description": "Aged in cognac barrels.", "inventory": 4}
    res = client.post("/inventory", json=new, headers=ADMIN)
    assert res.status_code == 200
    cigar_id = res.json()["cigar"]["id"]
    assert cigar_id == "15"

    assert client.post("/inventory", json={"name": "X"}, headers=ADMIN).status_code == 400
    assert client.post("/inventory", json={**new, "inventory": "lots"}, headers=ADMIN).status_code == 400

    res = client.put("/inventory", json={"id": cigar_id, "inventoryCount": 9}, headers=ADMIN)
    assert res.json()["cigar"]["inventoryCount"] == 9
    assert client.put("/inventory", json={"inventoryCount": 9}, headers=ADMIN).status_code == 400
    assert client.put("/inventory", json={"id": "999", "name": "Nope"}, headers=ADMIN).status_code == 404

    assert client.delete(f"/inventory?id={cigar_id}", headers=ADMIN).json()["success"]
    assert client.delete(f"/inventory?id={cigar_id}", headers=ADMIN).status_code == 404
    assert client.delete("/inventory", headers=ADMIN).status_code == 400

# Feedback is open to post, admin-only to read
def test_feedback(client):
    payload = {"sessionId": "abc", "rating": "up", "assistantMessage": "Try the Blue.", "cigarsShown": ["My Father Blue"]}
    res = client.post("/feedback", json=payload)
    assert res.status_code == 200
    assert res.json()["id"].startswith("fb_")

    assert client.post("/feedback", json={**payload, "rating": "meh"}).status_code == 422
    assert client.get("/feedback").status_code == 401

    body = client.get("/feedback", headers=ADMIN).json()
    assert body["total"] == 1
    assert body["feedback"][0]["sessionId"] == "abc"

# Single-photo evaluations are stored and can be listed and cleared
def test_evaluate_image_history(client, photo):
    info = client.get("/api/evaluate").json()
    assert info["guardrail_threshold"] == 75
    assert len(info["test_cases"]) == 11

    res = client.post("/api/evaluate", json={"image": photo, "notes": "shop counter"})
    assert res.status_code == 200
    record = res.json()["evaluation"]
    assert record["identified_cigar"] == "Blue"
    assert record["guardrail_passed"]

    history = client.get("/api/evaluate?action=history").json()
    assert history["stats"]["total_tests"] == 1
    assert history["evaluations"][0]["id"] == record["id"]

    client.delete(f"/api/evaluate?id={record['id']}")
    assert client.get("/api/evaluate?action=history").json()["evaluations"] == []

# run_tests scores the matcher against the golden phrasings
def test_evaluate_run_tests(client):
    body = client.post("/api/evaluate", json={"run_tests": True}).json()
    assert body["matcher"]["accuracy"] == 1.0
    assert client.post("/api/evaluate", json={}).status_code == 400
