# pytest services/complaints/tests/test_complaints_api.py -v

import uuid

import pytest
from fastapi.testclient import TestClient

from libs.auth.jwt_verify import get_current_actor
from libs.blob_store import get_blob_store
from libs.priority_classifier import KeywordPriorityClassifier, get_priority_classifier
from services.complaints.main import app, get_complaint_store

JPEG = ("pothole.jpg", b"\xff\xd8jpeg-bytes", "image/jpeg")
PNG = ("proof.png", b"\x89PNG-bytes", "image/png")

FORM = {
    "title": "Pothole",
    "description": "Deep pothole in the left lane",
    "category": "Roads & Potholes",
    "latitude": "18.52",
    "longitude": "73.86",
    "locationName": "FC Road",
}


@pytest.fixture()
def api(store, blobs):
    """Returns a function that switches the calling actor and yields the client."""
    app.dependency_overrides[get_complaint_store] = lambda: store
    app.dependency_overrides[get_blob_store] = lambda: blobs
    app.dependency_overrides[get_priority_classifier] = lambda: KeywordPriorityClassifier()
    client = TestClient(app)

    def _as(actor) -> TestClient:
        app.dependency_overrides[get_current_actor] = lambda: actor
        return client

    yield _as
    app.dependency_overrides.clear()


def _create(client, **form_overrides):
    return client.post("/complaints", data={**FORM, **form_overrides}, files={"image": JPEG})


# ----------------------------
# Service endpoints
# ----------------------------
def test_root(api, citizen):
    res = api(citizen).get("/")
    assert res.status_code == 200
    assert res.json() == {"service": "complaints", "status": "running"}


def test_health(api, citizen):
    res = api(citizen).get("/health")
    assert res.status_code == 200
    assert res.json()["service"] == "complaints"


def test_metrics_include_business_counters(api, citizen):
    client = api(citizen)
    _create(client)

    res = client.get("/metrics")

    assert res.status_code == 200
    assert "text/plain" in res.headers["content-type"]
    assert "complaints_created_total" in res.text
    assert 'complaint_transitions_total{operation="create"}' in res.text


def test_missing_token_returns_401():
    app.dependency_overrides.clear()
    client = TestClient(app)

    res = client.get("/complaints/mycomplaints")

    assert res.status_code == 401
    assert res.json() == {"message": "Not authorized, no token"}


# ----------------------------
# POST /complaints
# ----------------------------
def test_create_complaint(api, citizen, store):
    res = _create(api(citizen))

    assert res.status_code == 201
    body = res.json()
    assert body["title"] == "Pothole"
    assert body["category"] == "Roads & Potholes"
    assert body["status"] == "pending"
    assert body["is_final"] is False
    assert body["priority"] == "Medium"
    assert body["feedback_history"] == []
    assert body["location"] == {"lat": 18.52, "lon": 73.86}
    assert body["location_name"] == "FC Road"
    assert body["reporter_id"] == "citizen-1"
    assert body["image_url"].startswith("/uploads/civic_issues/")
    assert uuid.UUID(body["id"]) in store.complaints


def test_create_with_voice_note(api, citizen):
    res = api(citizen).post(
        "/complaints",
        data=FORM,
        files={"image": JPEG, "voiceNote": ("note.webm", b"webm", "audio/webm")},
    )

    assert res.status_code == 201
    assert res.json()["voice_note_url"]


def test_create_without_image(api, citizen, store):
    res = api(citizen).post("/complaints", data=FORM)

    assert res.status_code == 400
    assert res.json()["message"] == "Missing required fields or image."
    assert store.complaints == {}


def test_create_with_unknown_category(api, citizen):
    res = _create(api(citizen), category="Parks")

    assert res.status_code == 400
    assert res.json()["message"] == "Missing or invalid fields."


def test_create_as_admin_forbidden(api, roads_admin):
    res = _create(api(roads_admin))

    assert res.status_code == 403
    assert "requires role" in res.json()["message"]


def test_create_when_upload_fails(api, citizen, blobs, store):
    blobs.fail_uploads = True

    res = _create(api(citizen))

    assert res.status_code == 500
    assert res.json()["message"] == "Failed to upload image."
    assert store.complaints == {}


# ----------------------------
# Reads
# ----------------------------
def test_get_complaint_round_trip(api, citizen):
    client = api(citizen)
    created = _create(client).json()

    res = client.get(f"/complaints/{created['id']}")

    assert res.status_code == 200
    assert res.json() == created


def test_get_unknown_complaint(api, citizen):
    res = api(citizen).get(f"/complaints/{uuid.uuid4()}")

    assert res.status_code == 404
    assert res.json() == {"message": "Complaint not found"}


def test_get_with_malformed_id(api, citizen):
    res = api(citizen).get("/complaints/not-a-uuid")

    assert res.status_code == 400


def test_my_complaints(api, citizen, other_citizen):
    _create(api(citizen))
    _create(api(other_citizen), title="Broken light", category="Streetlights & Electricity")

    res = api(citizen).get("/complaints/mycomplaints")

    assert res.status_code == 200
    assert [c["title"] for c in res.json()] == ["Pothole"]


def test_list_complaints_scoped_by_department(api, citizen, roads_admin, water_admin, superadmin):
    _create(api(citizen))
    _create(api(citizen), title="Burst main", category="Water Supply & Sewage")

    assert [c["title"] for c in api(roads_admin).get("/complaints").json()] == ["Pothole"]
    assert [c["title"] for c in api(water_admin).get("/complaints").json()] == ["Burst main"]
    assert len(api(superadmin).get("/complaints").json()) == 2
    assert api(citizen).get("/complaints").status_code == 403


def test_stats(api, citizen, superadmin, roads_admin):
    _create(api(citizen))

    res = api(superadmin).get("/complaints/stats")

    assert res.status_code == 200
    assert res.json()["total"] == 1
    assert res.json()["by_status"] == {"pending": 1}
    assert api(roads_admin).get("/complaints/stats").status_code == 403


# ----------------------------
# Transitions
# ----------------------------
def test_update_status(api, citizen, roads_admin):
    cid = _create(api(citizen)).json()["id"]

    res = api(roads_admin).put(f"/complaints/{cid}/status", json={"status": "under_consideration"})

    assert res.status_code == 200
    assert res.json()["status"] == "under_consideration"


def test_update_status_to_resolved_needs_proof(api, citizen, roads_admin):
    cid = _create(api(citizen)).json()["id"]

    res = api(roads_admin).put(f"/complaints/{cid}/status", json={"status": "resolved"})

    assert res.status_code == 400
    assert "sendProof" in res.json()["message"]


def test_update_status_with_unknown_value(api, citizen, roads_admin):
    cid = _create(api(citizen)).json()["id"]

    res = api(roads_admin).put(f"/complaints/{cid}/status", json={"status": "done"})

    assert res.status_code == 400


def test_update_priority(api, citizen, superadmin):
    cid = _create(api(citizen)).json()["id"]

    res = api(superadmin).put(f"/complaints/{cid}/priority", json={"priority": "High"})

    assert res.status_code == 200
    assert res.json()["priority"] == "High"


def test_send_proof(api, citizen, roads_admin):
    cid = _create(api(citizen)).json()["id"]

    res = api(roads_admin).post("/complaints/sendProof", data={"complaintId": cid}, files={"proof": PNG})

    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Proof sent successfully"
    assert body["complaint"]["status"] == "resolved"
    assert body["complaint"]["is_final"] is False
    assert len(body["complaint"]["feedback_history"]) == 1
    assert body["complaint"]["feedback_history"][0]["proof_url"]


def test_send_proof_without_file(api, citizen, roads_admin):
    cid = _create(api(citizen)).json()["id"]

    res = api(roads_admin).post("/complaints/sendProof", data={"complaintId": cid})

    assert res.status_code == 400


def test_send_proof_unknown_complaint(api, roads_admin):
    res = api(roads_admin).post(
        "/complaints/sendProof", data={"complaintId": str(uuid.uuid4())}, files={"proof": PNG}
    )

    assert res.status_code == 404


def test_feedback_reopen_then_forward(api, citizen, roads_admin, superadmin):
    cid = _create(api(citizen)).json()["id"]
    api(roads_admin).post("/complaints/sendProof", data={"complaintId": cid}, files={"proof": PNG})

    res = api(citizen).post(
        f"/complaints/{cid}/feedback",
        json={"rating": 2, "comment": "Still broken", "wantsToReopen": True},
    )
    assert res.status_code == 200
    assert res.json()["status"] == "reopened"
    assert res.json()["feedback_history"][0]["rating"] == 2

    res = api(superadmin).put(f"/complaints/{cid}/forward", json={"department": "Roads & Potholes"})
    assert res.status_code == 200
    assert res.json()["status"] == "under_consideration"
    assert res.json()["department"] == "Roads & Potholes"


def test_feedback_accept_closes(api, citizen, roads_admin):
    cid = _create(api(citizen)).json()["id"]
    api(roads_admin).post("/complaints/sendProof", data={"complaintId": cid}, files={"proof": PNG})

    res = api(citizen).post(f"/complaints/{cid}/feedback", json={"rating": 5})

    assert res.status_code == 200
    assert res.json()["status"] == "closed"
    assert res.json()["is_final"] is True

    again = api(roads_admin).put(f"/complaints/{cid}/status", json={"status": "pending"})
    assert again.status_code == 400


@pytest.mark.parametrize("rating", [0, 6])
def test_feedback_rating_out_of_range(api, citizen, rating):
    cid = _create(api(citizen)).json()["id"]

    res = api(citizen).post(f"/complaints/{cid}/feedback", json={"rating": rating})

    assert res.status_code == 400


def test_feedback_on_pending_complaint(api, citizen):
    cid = _create(api(citizen)).json()["id"]

    res = api(citizen).post(f"/complaints/{cid}/feedback", json={"rating": 3})

    assert res.status_code == 400
    assert "expected: resolved" in res.json()["message"]


def test_close_and_reject(api, citizen, roads_admin, superadmin):
    first = _create(api(citizen)).json()["id"]
    second = _create(api(citizen)).json()["id"]
    for cid in (first, second):
        api(roads_admin).post("/complaints/sendProof", data={"complaintId": cid}, files={"proof": PNG})

    closed = api(citizen).put(f"/complaints/{first}/close")
    assert closed.status_code == 200
    assert closed.json()["status"] == "closed"

    api(citizen).post(f"/complaints/{second}/feedback", json={"rating": 1, "wantsToReopen": True})
    assert api(roads_admin).put(f"/complaints/{second}/reject").status_code == 403
    rejected = api(superadmin).put(f"/complaints/{second}/reject")
    assert rejected.status_code == 200
    assert rejected.json()["is_final"] is True


def test_history(api, citizen, roads_admin):
    cid = _create(api(citizen)).json()["id"]
    api(roads_admin).put(f"/complaints/{cid}/status", json={"status": "under_consideration"})

    res = api(roads_admin).get(f"/complaints/{cid}/history")

    assert res.status_code == 200
    assert [e["message"] for e in res.json()] == [
        "complaint created (status pending)",
        "status pending -> under_consideration",
    ]
    assert api(citizen).get(f"/complaints/{cid}/history").status_code == 403
