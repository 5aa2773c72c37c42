import logging

from registrar.schemas.history import HistoryRecord
from registrar.stores.base import WorkflowStore
from registrar.utils.timestamps import utcnow
from registrar.workflow import RequestStage

logger = logging.getLogger(__name__)


class HistoryLog:
    """Append-only audit trail of workflow transitions.

    Entries are written after the transition they describe has committed.
    A failed write is logged and dropped: losing an audit row is preferable
    to failing a transition that already happened.
    """

    def __init__(self, store: WorkflowStore):
        self._store = store

    def record(
        self,
        request_id: int,
        stage: RequestStage | str,
        action: str,
        comments: str | None = None,
        actor_id: int | None = None,
    ) -> HistoryRecord | None:
        if request_id is None:
            raise ValueError("request_id is required for a workflow history entry")
        try:
            return self._store.append_history({
                "request_id": request_id,
                "stage": stage,
                "action": action,
                "comments": comments,
                "processed_by": actor_id,
                "processed_at": utcnow(),
            })
        except Exception:
            logger.exception("Could not record history %r for request %s", action, request_id)
            return None

    def for_request(self, request_id: int) -> list[HistoryRecord]:
        return self._store.list_history(request_id)
