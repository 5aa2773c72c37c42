from fastapi import APIRouter, Depends

from registrar.dependencies import get_payment_service, require_officer
from registrar.schemas.payment import PaymentRecord, PaymentReject
from registrar.schemas.request import WorkflowResult
from registrar.services.payment_service import PaymentService
from registrar.workflow import Actor

router = APIRouter(
    prefix="/payments",
    tags=["payments"],
    dependencies=[Depends(require_officer)],
)


@router.get("/pending", response_model=list[PaymentRecord])
async def list_pending_payments(service: PaymentService = Depends(get_payment_service)):
    """Verification queue for the accounting office, newest first."""
    return service.list_pending_payments()


@router.post("/{payment_id}/verify", response_model=WorkflowResult)
async def verify_payment(
    payment_id: int,
    officer: Actor = Depends(require_officer),
    service: PaymentService = Depends(get_payment_service),
):
    return service.verify(payment_id, officer.user_id)


@router.post("/{payment_id}/reject", response_model=WorkflowResult)
async def reject_payment(
    payment_id: int,
    body: PaymentReject,
    officer: Actor = Depends(require_officer),
    service: PaymentService = Depends(get_payment_service),
):
    return service.reject(payment_id, officer.user_id, body.reason)
