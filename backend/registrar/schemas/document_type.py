from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from registrar.schemas.common import UtcDatetime


class DocumentTypeCreate(BaseModel):
    name: str
    description: str | None = None
    requires_payment: bool = False
    amount: Decimal = Field(Decimal("0.00"), ge=0)
    processing_days: int = Field(0, ge=0)
    requires_clearance: bool = False
    category: str = ""
    is_active: bool = True


class DocumentTypeRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    document_type_id: int
    name: str
    description: str | None
    requires_payment: bool
    amount: Decimal
    processing_days: int
    requires_clearance: bool
    category: str
    is_active: bool
    created_date: UtcDatetime
