from fastapi import APIRouter, Depends, File, Form, UploadFile

from registrar.config import settings
from registrar.dependencies import current_actor, get_payment_service, get_request_service, require_officer
from registrar.errors import ProofTooLarge
from registrar.schemas.history import HistoryRecord
from registrar.schemas.payment import PaymentRecord
from registrar.schemas.request import QueueStats, RequestCreate, RequestRecord, StatusUpdate, WorkflowResult
from registrar.services.payment_service import PaymentService
from registrar.services.proof_service import check_proof_file, staged_payment_proof
from registrar.services.request_service import RequestService
from registrar.workflow import Actor

router = APIRouter(prefix="/requests", tags=["requests"])


@router.post("", response_model=RequestRecord, status_code=201)
async def submit_request(
    body: RequestCreate,
    actor: Actor = Depends(current_actor),
    service: RequestService = Depends(get_request_service),
):
    return service.submit_request(actor.user_id, body.document_type_id, body.quantity, body.purpose)


@router.get("", response_model=list[RequestRecord])
async def list_my_requests(
    actor: Actor = Depends(current_actor),
    service: RequestService = Depends(get_request_service),
):
    return service.get_requests_for_user(actor.user_id)


@router.get("/stats", response_model=QueueStats)
async def my_queue_stats(
    actor: Actor = Depends(current_actor),
    service: RequestService = Depends(get_request_service),
):
    return service.get_queue_stats(actor.user_id)


@router.get("/history", response_model=list[RequestRecord])
async def my_request_history(
    actor: Actor = Depends(current_actor),
    service: RequestService = Depends(get_request_service),
):
    """Completed and cancelled requests, most recently closed first."""
    return service.get_history_for_user(actor.user_id)


@router.get("/{request_id}", response_model=RequestRecord)
async def get_request(
    request_id: int,
    actor: Actor = Depends(current_actor),
    service: RequestService = Depends(get_request_service),
):
    return service.get_request(request_id, actor)


@router.get("/{request_id}/timeline", response_model=list[HistoryRecord])
async def get_request_timeline(
    request_id: int,
    actor: Actor = Depends(current_actor),
    service: RequestService = Depends(get_request_service),
):
    return service.get_request_history(request_id, actor)


@router.put("/{request_id}/status", response_model=WorkflowResult)
async def update_status(
    request_id: int,
    body: StatusUpdate,
    officer: Actor = Depends(require_officer),
    service: RequestService = Depends(get_request_service),
):
    return service.advance_status(request_id, body.status, officer.user_id)


@router.post("/{request_id}/payment", response_model=WorkflowResult, status_code=201)
async def upload_payment_proof(
    request_id: int,
    file: UploadFile = File(...),
    payment_method: str = Form(...),
    reference_number: str | None = Form(None),
    actor: Actor = Depends(current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    check_proof_file(file.filename, 1)

    max_bytes = settings.max_upload_bytes
    size = 0
    chunks: list[bytes] = []
    while True:
        chunk = await file.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > max_bytes:
            raise ProofTooLarge(f"File too large (max {max_bytes} bytes)")
        chunks.append(chunk)

    # Ownership and state are checked before anything touches the disk
    service.check_upload_allowed(request_id, actor.user_id)
    with staged_payment_proof(request_id, file.filename, b"".join(chunks)) as proof_ref:
        return service.upload_proof(request_id, actor.user_id, payment_method, reference_number, proof_ref)


@router.get("/{request_id}/payment", response_model=PaymentRecord | None)
async def get_payment(
    request_id: int,
    actor: Actor = Depends(current_actor),
    service: PaymentService = Depends(get_payment_service),
):
    return service.get_payment_for_request(request_id, actor)
