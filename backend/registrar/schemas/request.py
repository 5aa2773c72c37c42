from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from registrar.schemas.common import UtcDatetime
from registrar.schemas.payment import PaymentRecord
from registrar.workflow import PaymentStatus, RequestStage, RequestStatus


class RequestCreate(BaseModel):
    document_type_id: int
    quantity: int = 1
    purpose: str = ""


class StatusUpdate(BaseModel):
    status: str


class RequestRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: int
    queue_number: str
    user_id: int
    document_type_id: int
    document_type: str
    purpose: str
    quantity: int
    total_amount: Decimal
    status: RequestStatus
    current_stage: RequestStage
    payment_status: PaymentStatus
    request_date: UtcDatetime
    target_release_date: UtcDatetime | None = None
    completed_date: UtcDatetime | None = None
    processed_by: int | None = None
    processed_date: UtcDatetime | None = None


class QueueStats(BaseModel):
    by_status: dict[str, int]
    total: int


class GlobalStats(BaseModel):
    by_status: dict[str, int]
    total: int
    open_by_document_type: dict[str, int]


class WorkflowResult(BaseModel):
    """Outcome of a transition. ``warnings`` lists post-commit side effects that failed."""
    request: RequestRecord
    payment: PaymentRecord | None = None
    changed: bool = True
    notified: bool | None = None
    warnings: list[str] = []

    @property
    def partial(self) -> bool:
        return bool(self.warnings)
