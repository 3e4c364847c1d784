import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from common.complaint_types import Category, ComplaintStatus, Priority, Role
from common.constants import (
    ALLOWED_AUDIO_TYPES,
    ALLOWED_IMAGE_TYPES,
    COMPLAINT_IMAGE_FOLDER,
    PROOF_FOLDER,
    VOICE_NOTE_FOLDER,
)
from common.errors import DependencyError, NotFoundError, ValidationError
from libs.auth.jwt_verify import Actor
from libs.blob_store import BaseBlobStore, BlobStoreError, UploadedFile
from libs.config import config
from libs.priority_classifier import BasePriorityClassifier, PriorityClassificationError
from models.complaint import Complaint, FeedbackEntry
from services.complaints.lifecycle import (
    FORWARD_TARGET,
    Operation,
    authorize,
    ensure_can_access,
    ensure_transition_allowed,
    validate_target_status,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ComplaintLifecycleManager:
    """
    Runs complaint operations for one request.

    Collaborators are injected: ``store`` (record store bound to the request's
    session), ``blob_store`` and ``classifier``. Blob uploads always complete
    before any record is touched; if the commit then fails the uploaded blobs
    are removed again.
    """

    def __init__(
        self,
        store,
        blob_store: BaseBlobStore,
        classifier: BasePriorityClassifier,
        *,
        clock: Callable[[], datetime] = _utcnow,
        on_transition: Optional[Callable[[Operation], None]] = None,
    ) -> None:
        self._store = store
        self._blobs = blob_store
        self._classifier = classifier
        self._clock = clock
        self._on_transition = on_transition

    # ---------- helpers ----------

    async def _load(self, operation: Operation, actor: Actor, complaint_id: uuid.UUID) -> Complaint:
        authorize(operation, actor)
        complaint = await self._store.get(complaint_id)
        if complaint is None:
            raise NotFoundError("Complaint not found")
        ensure_can_access(operation, actor, complaint)
        return complaint

    async def _upload(self, file: UploadedFile, folder: str, allowed_types: set, label: str) -> str:
        if file is None or not file.data:
            raise ValidationError(f"{label} file is required.")
        if file.content_type not in allowed_types:
            raise ValidationError(f"Invalid file type for {label.lower()}: {file.content_type}")
        if file.size > config.MAX_UPLOAD_BYTES:
            raise ValidationError(f"{label} file is too large.")
        try:
            return await self._blobs.upload(
                file.data, folder, filename=file.filename, content_type=file.content_type
            )
        except BlobStoreError as e:
            logger.error("Upload of %s failed: %s", label.lower(), e)
            raise DependencyError(f"Failed to upload {label.lower()}.") from e

    async def _discard_blobs(self, urls: List[str]) -> None:
        for url in urls:
            try:
                await self._blobs.delete(url)
            except BlobStoreError:
                logger.exception("Could not remove orphaned blob %s", url)

    async def _commit(
        self,
        operation: Operation,
        actor: Actor,
        complaint: Complaint,
        message: str,
        uploaded: Optional[List[str]] = None,
    ) -> Complaint:
        try:
            await self._store.commit(complaint, user_id=actor.user_id, message=message)
        except Exception:
            if uploaded:
                await self._discard_blobs(uploaded)
            raise
        logger.info(
            "complaint=%s op=%s actor=%s status=%s final=%s",
            complaint.id,
            operation.value,
            actor.user_id,
            complaint.status,
            complaint.is_final,
        )
        if self._on_transition is not None:
            self._on_transition(operation)
        return complaint

    def _transition(self, complaint: Complaint, status: ComplaintStatus, *, is_final: Optional[bool] = None) -> str:
        previous = complaint.status
        complaint.status = status.value
        if is_final is not None:
            complaint.is_final = is_final
        complaint.updated_at = self._clock()
        return f"status {previous} -> {status.value}"

    async def _classify(self, description: str) -> Priority:
        try:
            return await self._classifier.classify(description)
        except PriorityClassificationError as e:
            logger.warning("Priority classification failed, defaulting to Medium: %s", e)
            return Priority.MEDIUM

    # ---------- operations ----------

    async def create(
        self,
        actor: Actor,
        *,
        title: str,
        description: str,
        category: Category,
        latitude: float,
        longitude: float,
        image: Optional[UploadedFile],
        location_name: Optional[str] = None,
        voice_note: Optional[UploadedFile] = None,
    ) -> Complaint:
        authorize(Operation.CREATE, actor)

        title = (title or "").strip()
        description = (description or "").strip()
        if not title or not description or category is None or image is None or not image.data:
            raise ValidationError("Missing required fields or image.")
        if latitude is None or longitude is None:
            raise ValidationError("Missing required fields or image.")
        if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
            raise ValidationError("Latitude/longitude out of range.")

        priority = await self._classify(description)

        uploaded: List[str] = []
        try:
            image_url = await self._upload(image, COMPLAINT_IMAGE_FOLDER, ALLOWED_IMAGE_TYPES, "Image")
            uploaded.append(image_url)
            voice_note_url = None
            if voice_note is not None and voice_note.data:
                voice_note_url = await self._upload(
                    voice_note, VOICE_NOTE_FOLDER, ALLOWED_AUDIO_TYPES, "Voice note"
                )
                uploaded.append(voice_note_url)

            now = self._clock()
            complaint = Complaint(
                id=uuid.uuid4(),
                reporter_id=actor.user_id,
                title=title,
                description=description,
                category=Category(category).value,
                image_url=image_url,
                voice_note_url=voice_note_url,
                location_name=(location_name or "").strip() or None,
                latitude=latitude,
                longitude=longitude,
                priority=priority.value,
                department=None,
                status=ComplaintStatus.PENDING.value,
                is_final=False,
                feedback_history=[],
                created_at=now,
                updated_at=now,
            )
            self._store.add(complaint)
        except Exception:
            # Nothing references these blobs yet
            await self._discard_blobs(uploaded)
            raise

        return await self._commit(
            Operation.CREATE, actor, complaint, "complaint created (status pending)", uploaded
        )

    async def get(self, actor: Actor, complaint_id: uuid.UUID) -> Complaint:
        return await self._load(Operation.VIEW, actor, complaint_id)

    async def list_all(self, actor: Actor) -> List[Complaint]:
        """All complaints for superadmins; admins see their department only."""
        authorize(Operation.LIST_ALL, actor)
        if actor.role == Role.ADMIN:
            if actor.department is None:
                return []
            return await self._store.find(department=actor.department.value)
        return await self._store.find()

    async def list_mine(self, actor: Actor) -> List[Complaint]:
        authorize(Operation.LIST_MINE, actor)
        return await self._store.find(reporter_id=actor.user_id)

    async def history(self, actor: Actor, complaint_id: uuid.UUID):
        complaint = await self._load(Operation.HISTORY, actor, complaint_id)
        return await self._store.history(complaint.id)

    async def stats(self, actor: Actor) -> dict:
        authorize(Operation.STATS, actor)
        by_status = await self._store.count_by("status")
        return {
            "total": sum(by_status.values()),
            "by_status": by_status,
            "by_category": await self._store.count_by("category"),
            "by_priority": await self._store.count_by("priority"),
        }

    async def set_status(self, actor: Actor, complaint_id: uuid.UUID, status: ComplaintStatus) -> Complaint:
        complaint = await self._load(Operation.SET_STATUS, actor, complaint_id)
        ensure_transition_allowed(Operation.SET_STATUS, complaint)
        validate_target_status(status)
        message = self._transition(complaint, status)
        return await self._commit(Operation.SET_STATUS, actor, complaint, message)

    async def set_priority(self, actor: Actor, complaint_id: uuid.UUID, priority: Priority) -> Complaint:
        complaint = await self._load(Operation.SET_PRIORITY, actor, complaint_id)
        ensure_transition_allowed(Operation.SET_PRIORITY, complaint)
        previous = complaint.priority
        complaint.priority = Priority(priority).value
        complaint.updated_at = self._clock()
        return await self._commit(
            Operation.SET_PRIORITY,
            actor,
            complaint,
            f"priority {previous} -> {complaint.priority}",
        )

    async def send_proof(self, actor: Actor, complaint_id: uuid.UUID, proof: Optional[UploadedFile]) -> Complaint:
        """Append a proof-carrying feedback entry and mark the complaint resolved."""
        complaint = await self._load(Operation.SEND_PROOF, actor, complaint_id)
        ensure_transition_allowed(Operation.SEND_PROOF, complaint)

        proof_url = await self._upload(proof, PROOF_FOLDER, ALLOWED_IMAGE_TYPES, "Proof")
        now = self._clock()
        complaint.feedback_history.append(
            FeedbackEntry(id=uuid.uuid4(), complaint_id=complaint.id, proof_url=proof_url, created_at=now)
        )
        message = self._transition(complaint, ComplaintStatus.RESOLVED, is_final=False)
        return await self._commit(
            Operation.SEND_PROOF, actor, complaint, f"{message} with proof", [proof_url]
        )

    async def submit_feedback(
        self,
        actor: Actor,
        complaint_id: uuid.UUID,
        *,
        rating: int,
        comment: Optional[str] = None,
        wants_to_reopen: bool = False,
    ) -> Complaint:
        complaint = await self._load(Operation.SUBMIT_FEEDBACK, actor, complaint_id)
        ensure_transition_allowed(Operation.SUBMIT_FEEDBACK, complaint)

        now = self._clock()
        entry = complaint.feedback_history[-1] if complaint.feedback_history else None
        if entry is None or entry.rating is not None:
            entry = FeedbackEntry(id=uuid.uuid4(), complaint_id=complaint.id, created_at=now)
            complaint.feedback_history.append(entry)
        entry.rating = rating
        entry.comment = (comment or "").strip() or None
        entry.reviewed_at = now

        if wants_to_reopen:
            message = self._transition(complaint, ComplaintStatus.REOPENED)
        else:
            message = self._transition(complaint, ComplaintStatus.CLOSED, is_final=True)
        return await self._commit(
            Operation.SUBMIT_FEEDBACK, actor, complaint, f"{message} after feedback (rating {rating})"
        )

    async def forward(self, actor: Actor, complaint_id: uuid.UUID, department: Category) -> Complaint:
        complaint = await self._load(Operation.FORWARD, actor, complaint_id)
        ensure_transition_allowed(Operation.FORWARD, complaint)
        complaint.department = Category(department).value
        message = self._transition(complaint, FORWARD_TARGET)
        return await self._commit(
            Operation.FORWARD, actor, complaint, f"{message}, forwarded to {complaint.department}"
        )

    async def reject(self, actor: Actor, complaint_id: uuid.UUID) -> Complaint:
        complaint = await self._load(Operation.REJECT, actor, complaint_id)
        ensure_transition_allowed(Operation.REJECT, complaint)
        message = self._transition(complaint, ComplaintStatus.CLOSED, is_final=True)
        return await self._commit(Operation.REJECT, actor, complaint, f"{message}, reopen rejected")

    async def close(self, actor: Actor, complaint_id: uuid.UUID) -> Complaint:
        complaint = await self._load(Operation.CLOSE, actor, complaint_id)
        ensure_transition_allowed(Operation.CLOSE, complaint)
        message = self._transition(complaint, ComplaintStatus.CLOSED, is_final=True)
        return await self._commit(Operation.CLOSE, actor, complaint, f"{message}, closed by reporter")
