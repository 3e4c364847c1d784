"""
In-memory collaborators for complaint lifecycle tests.

The manager only needs the record store, blob store and classifier
interfaces, so these fakes stand in for PostgreSQL and the file system.
"""

import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from common.complaint_types import Category, Role
from common.constants import AUDIT_EVENT_COMPLAINT
from libs.auth.jwt_verify import Actor
from libs.blob_store import BaseBlobStore, BlobStoreError, UploadedFile
from libs.priority_classifier import (
    BasePriorityClassifier,
    KeywordPriorityClassifier,
    PriorityClassificationError,
)
from services.complaints.manager import ComplaintLifecycleManager


class InMemoryComplaintStore:
    """Dict-backed stand-in for ComplaintStore that records audit events."""

    def __init__(self):
        self.complaints = {}
        self.events = []
        self.pending = []
        self.commit_raises = None

    def add(self, complaint):
        self.pending.append(complaint)

    async def get(self, complaint_id):
        return self.complaints.get(complaint_id)

    async def find(self, *, department=None, reporter_id=None):
        rows = list(self.complaints.values())
        if department is not None:
            rows = [c for c in rows if c.routing_department == department]
        if reporter_id is not None:
            rows = [c for c in rows if c.reporter_id == reporter_id]
        return sorted(rows, key=lambda c: c.created_at, reverse=True)

    async def count_by(self, field):
        return dict(Counter(getattr(c, field) for c in self.complaints.values()))

    async def history(self, complaint_id):
        return [e for e in self.events if e.event_id == complaint_id]

    async def commit(self, complaint, *, user_id, message):
        if self.commit_raises:
            self.pending.clear()
            raise self.commit_raises
        for obj in self.pending:
            self.complaints[obj.id] = obj
        self.pending.clear()
        self.events.append(
            SimpleNamespace(
                log_id=uuid.uuid4(),
                user_id=user_id,
                event_type=AUDIT_EVENT_COMPLAINT,
                event_id=complaint.id,
                message=message,
                created_at=datetime.now(timezone.utc),
            )
        )


class FakeBlobStore(BaseBlobStore):
    def __init__(self):
        self.blobs = {}
        self.deleted = []
        self.fail_uploads = False
        self._n = 0

    async def upload(self, data, folder, *, filename=None, content_type=None):
        if self.fail_uploads:
            raise BlobStoreError("storage unavailable")
        self._n += 1
        url = f"/uploads/{folder}/{self._n}-{filename}"
        self.blobs[url] = data
        return url

    async def delete(self, url):
        self.deleted.append(url)
        self.blobs.pop(url, None)


class FailingClassifier(BasePriorityClassifier):
    async def classify(self, description):
        raise PriorityClassificationError("classifier down")


class TickingClock:
    """Returns a strictly increasing time on every call."""

    def __init__(self):
        self.now = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def store():
    return InMemoryComplaintStore()


@pytest.fixture
def blobs():
    return FakeBlobStore()


@pytest.fixture
def transitions():
    return []


@pytest.fixture
def manager(store, blobs, transitions):
    return ComplaintLifecycleManager(
        store,
        blobs,
        KeywordPriorityClassifier(),
        clock=TickingClock(),
        on_transition=transitions.append,
    )


@pytest.fixture
def citizen():
    return Actor(user_id="citizen-1", role=Role.CITIZEN)


@pytest.fixture
def other_citizen():
    return Actor(user_id="citizen-2", role=Role.CITIZEN)


@pytest.fixture
def roads_admin():
    return Actor(user_id="admin-roads", role=Role.ADMIN, department=Category.ROADS)


@pytest.fixture
def water_admin():
    return Actor(user_id="admin-water", role=Role.ADMIN, department=Category.WATER_SUPPLY)


@pytest.fixture
def superadmin():
    return Actor(user_id="super-1", role=Role.SUPERADMIN)


@pytest.fixture
def image():
    return UploadedFile(filename="pothole.jpg", content_type="image/jpeg", data=b"\xff\xd8jpeg-bytes")


@pytest.fixture
def proof():
    return UploadedFile(filename="fixed.png", content_type="image/png", data=b"\x89PNG-bytes")


@pytest.fixture
def complaint_fields(image):
    return {
        "title": "Pothole",
        "description": "Deep pothole in the left lane near the bus stop",
        "category": Category.ROADS,
        "latitude": 18.52,
        "longitude": 73.86,
        "image": image,
    }


@pytest.fixture
def failing_classifier():
    return FailingClassifier()
