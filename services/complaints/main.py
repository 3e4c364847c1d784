# Run:
# uvicorn services.complaints.main:app --host 0.0.0.0 --port 20010 --reload
# Docs: http://127.0.0.1:20010/docs

import logging
import uuid
from contextlib import asynccontextmanager
from typing import List, Optional

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, File, Form, UploadFile, status
from fastapi.staticfiles import StaticFiles
from sqlalchemy.ext.asyncio import AsyncSession

load_dotenv()

from common.complaint_types import Category
from libs.auth.jwt_verify import Actor, get_current_actor
from libs.blob_store import BaseBlobStore, UploadedFile, get_blob_store
from libs.config import config
from libs.db import get_database_factory, get_db
from libs.fastapi_service import CORSMiddlewareConfig, FastAPIServiceFactory, ServiceAppConfig
from libs.priority_classifier import BasePriorityClassifier, get_priority_classifier
from models.audit import Base as AuditBase
from models.complaint import Base as ComplaintBase
from services.complaints.complaint_store import ComplaintStore
from services.complaints.lifecycle import Operation
from services.complaints.manager import ComplaintLifecycleManager
from services.complaints.schemas import (
    AuditEventRead,
    ComplaintRead,
    ComplaintStats,
    FeedbackRequest,
    ForwardRequest,
    PriorityUpdateRequest,
    ProofResponse,
    StatusUpdateRequest,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

SERVICE_NAME = "complaints"


@asynccontextmanager
async def lifespan(app: FastAPI):
    factory = get_database_factory()
    factory.initialize()
    if config.DB_CREATE_TABLES:
        await factory.create_tables([ComplaintBase, AuditBase])
    if not config.validate_auth_config():
        logger.warning("No JWT_SECRET or AUTH_JWKS_URL configured; all requests will fail auth")
    yield
    await get_priority_classifier().close()
    await factory.dispose()


service_config = ServiceAppConfig(
    title="Complaints Service",
    description="Citizen complaint submission, triage, resolution and reconsideration.",
    service_name=SERVICE_NAME,
    cors_config=CORSMiddlewareConfig(allow_origins=config.cors_origins()),
    lifespan=lifespan,
)
service_factory = FastAPIServiceFactory(service_config)
app = service_factory.create_app()

# ========= Metrics =========
COMPLAINTS_CREATED_TOTAL = service_factory.add_business_metric(
    "complaints_created_total",
    "Total complaints submitted by citizens",
)
COMPLAINT_TRANSITIONS_TOTAL = service_factory.add_business_metric(
    "complaint_transitions_total",
    "Total successful complaint lifecycle operations",
    ["operation"],
)


def _record_transition(operation: Operation) -> None:
    if operation == Operation.CREATE:
        COMPLAINTS_CREATED_TOTAL.inc()
    COMPLAINT_TRANSITIONS_TOTAL.labels(operation=operation.value).inc()


# Uploaded blobs are served by this service when the local backend is used
if config.BLOB_PUBLIC_BASE_URL.startswith("/"):
    app.mount(
        config.BLOB_PUBLIC_BASE_URL,
        StaticFiles(directory=config.BLOB_STORAGE_DIR, check_dir=False),
        name="uploads",
    )


# ========= Dependencies =========


def get_complaint_store(db: AsyncSession = Depends(get_db)) -> ComplaintStore:
    return ComplaintStore(db)


def get_manager(
    store: ComplaintStore = Depends(get_complaint_store),
    blob_store: BaseBlobStore = Depends(get_blob_store),
    classifier: BasePriorityClassifier = Depends(get_priority_classifier),
) -> ComplaintLifecycleManager:
    return ComplaintLifecycleManager(
        store, blob_store, classifier, on_transition=_record_transition
    )


async def _read_upload(file: Optional[UploadFile]) -> Optional[UploadedFile]:
    if file is None:
        return None
    data = await file.read()
    return UploadedFile(filename=file.filename, content_type=file.content_type, data=data)


# ========= Routes =========

router = APIRouter(prefix="/complaints", tags=["Complaints"])


@app.get("/")
async def root():
    return {"service": SERVICE_NAME, "status": "running"}


@router.post("", response_model=ComplaintRead, status_code=status.HTTP_201_CREATED)
async def create_complaint(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    category: Optional[Category] = Form(None),
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    location_name: Optional[str] = Form(None, alias="locationName"),
    image: Optional[UploadFile] = File(None),
    voice_note: Optional[UploadFile] = File(None, alias="voiceNote"),
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.create(
        actor,
        title=title,
        description=description,
        category=category,
        latitude=latitude,
        longitude=longitude,
        location_name=location_name,
        image=await _read_upload(image),
        voice_note=await _read_upload(voice_note),
    )


@router.get("", response_model=List[ComplaintRead])
async def list_complaints(
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.list_all(actor)


@router.get("/mycomplaints", response_model=List[ComplaintRead])
async def my_complaints(
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.list_mine(actor)


@router.get("/stats", response_model=ComplaintStats)
async def complaint_stats(
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.stats(actor)


@router.post("/sendProof", response_model=ProofResponse)
async def send_proof(
    complaint_id: uuid.UUID = Form(..., alias="complaintId"),
    proof: Optional[UploadFile] = File(None),
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    complaint = await manager.send_proof(actor, complaint_id, await _read_upload(proof))
    return ProofResponse(
        message="Proof sent successfully",
        complaint=ComplaintRead.model_validate(complaint),
    )


@router.get("/{complaint_id}", response_model=ComplaintRead)
async def get_complaint(
    complaint_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.get(actor, complaint_id)


@router.get("/{complaint_id}/history", response_model=List[AuditEventRead])
async def complaint_history(
    complaint_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.history(actor, complaint_id)


@router.put("/{complaint_id}/status", response_model=ComplaintRead)
async def update_status(
    complaint_id: uuid.UUID,
    body: StatusUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.set_status(actor, complaint_id, body.status)


@router.put("/{complaint_id}/priority", response_model=ComplaintRead)
async def update_priority(
    complaint_id: uuid.UUID,
    body: PriorityUpdateRequest,
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.set_priority(actor, complaint_id, body.priority)


@router.post("/{complaint_id}/feedback", response_model=ComplaintRead)
async def submit_feedback(
    complaint_id: uuid.UUID,
    body: FeedbackRequest,
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.submit_feedback(
        actor,
        complaint_id,
        rating=body.rating,
        comment=body.comment,
        wants_to_reopen=body.wants_to_reopen,
    )


@router.put("/{complaint_id}/close", response_model=ComplaintRead)
async def close_complaint(
    complaint_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.close(actor, complaint_id)


@router.put("/{complaint_id}/forward", response_model=ComplaintRead)
async def forward_complaint(
    complaint_id: uuid.UUID,
    body: ForwardRequest,
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.forward(actor, complaint_id, body.department)


@router.put("/{complaint_id}/reject", response_model=ComplaintRead)
async def reject_complaint(
    complaint_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    manager: ComplaintLifecycleManager = Depends(get_manager),
):
    return await manager.reject(actor, complaint_id)


app.include_router(router)
