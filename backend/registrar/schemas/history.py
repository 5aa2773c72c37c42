from pydantic import BaseModel, ConfigDict

from registrar.schemas.common import UtcDatetime


class HistoryRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    history_id: int
    request_id: int
    stage: str
    action: str | None = None
    comments: str | None = None
    processed_by: int | None = None
    processed_at: UtcDatetime
