from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from registrar.schemas.common import UtcDatetime
from registrar.workflow import PaymentRecordStatus


class PaymentReject(BaseModel):
    reason: str = ""


class PaymentRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payment_id: int
    request_id: int
    amount: Decimal
    payment_method: str
    reference_number: str | None = None
    payment_proof_url: str | None = None
    status: PaymentRecordStatus
    verified_by: int | None = None
    verified_date: UtcDatetime | None = None
    rejection_reason: str | None = None
    payment_date: UtcDatetime
    updated_date: UtcDatetime | None = None
