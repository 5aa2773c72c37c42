"""
Request lifecycle: submission, staff-driven status changes and the read
models behind the student and officer dashboards.

Status changes are compare-and-set writes. When another writer gets there
first the request is re-read and the transition is checked again, so a
losing writer either applies a still-legal transition on top of the
winner's state or fails with InvalidTransition.
"""

import logging
import random
from collections import Counter
from datetime import timedelta
from decimal import Decimal

from registrar.config import settings
from registrar.errors import (
    Forbidden,
    InvalidQuantity,
    InvalidTransition,
    QueueNumberTaken,
    RequestNotFound,
    StorageFailure,
)
from registrar.schemas.history import HistoryRecord
from registrar.schemas.request import GlobalStats, QueueStats, RequestRecord, WorkflowResult
from registrar.services.catalog_service import DocumentTypeRegistry
from registrar.services.history_service import HistoryLog
from registrar.services.notification_service import Notifier, send_document_ready
from registrar.stores.base import WorkflowStore
from registrar.utils.timestamps import utcnow
from registrar.workflow import (
    HISTORY_ACTION_FOR_STATUS,
    OPEN_STATUSES,
    QUEUE_ORDER,
    STAGE_FOR_STATUS,
    TERMINAL_STATUSES,
    Actor,
    RequestStatus,
    check_transition,
    initial_workflow,
    is_terminal,
    parse_status,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Entering these statuses tells the student the document can be picked up
_NOTIFY_READY = (RequestStatus.READY, RequestStatus.COMPLETED)


def authorize_view(request: RequestRecord, actor: Actor):
    if request.user_id != actor.user_id and not actor.is_officer:
        raise Forbidden(f"Request {request.request_id} belongs to another user")


class RequestService:
    def __init__(
        self,
        store: WorkflowStore,
        history: HistoryLog,
        notifier: Notifier,
        rng: random.Random | None = None,
    ):
        self._store = store
        self._history = history
        self._notifier = notifier
        self._catalog = DocumentTypeRegistry(store)
        self._rng = rng or random.Random()

    # --- submission ---

    def new_queue_number(self, when=None) -> str:
        when = when or utcnow()
        return f"{settings.queue_number_prefix}-{when:%Y%m%d}-{self._rng.randrange(1000, 9999)}"

    def submit_request(
        self,
        user_id: int,
        document_type_id: int,
        quantity: int = 1,
        purpose: str = "",
    ) -> RequestRecord:
        doc_type = self._catalog.get_active(document_type_id)
        if quantity is None or quantity < 1:
            raise InvalidQuantity(f"Quantity must be at least 1 (got {quantity})")

        now = utcnow()
        status, stage, payment_status = initial_workflow(doc_type.requires_payment)
        values = {
            "user_id": user_id,
            "document_type_id": doc_type.document_type_id,
            "document_type": doc_type.name,
            "purpose": purpose or "",
            "quantity": quantity,
            "total_amount": (doc_type.amount * quantity).quantize(CENT),
            "status": status,
            "current_stage": stage,
            "payment_status": payment_status,
            "request_date": now,
            "target_release_date": now + timedelta(days=doc_type.processing_days),
        }

        request = None
        for attempt in range(1, settings.queue_number_max_attempts + 1):
            values["queue_number"] = self.new_queue_number(now)
            try:
                request = self._store.insert_request(values)
                break
            except QueueNumberTaken:
                logger.warning(
                    "Queue number %s already taken (attempt %d of %d)",
                    values["queue_number"], attempt, settings.queue_number_max_attempts,
                )
        if request is None:
            raise StorageFailure("Could not allocate a unique queue number")

        logger.info("Request %s (%s) submitted by user %s", request.request_id, request.queue_number, user_id)
        self._history.record(
            request.request_id,
            request.current_stage,
            "Request Submitted",
            comments=f"Document requested: {doc_type.name}, Quantity: {quantity}",
            actor_id=user_id,
        )
        return request

    # --- staff transitions ---

    def advance_status(self, request_id: int, new_status: str | RequestStatus, actor_id: int) -> WorkflowResult:
        target = parse_status(new_status)
        if target is None:
            raise InvalidTransition(f"Unknown status: {new_status!r}")

        for attempt in range(1, settings.transition_max_attempts + 1):
            request = self._store.get_request(request_id)
            if request is None:
                raise RequestNotFound(f"Request {request_id} not found")

            current = request.status
            if current == target and is_terminal(target):
                return WorkflowResult(request=request, changed=False)

            reason = check_transition(current, target, request.payment_status)
            if reason:
                raise InvalidTransition(reason)

            now = utcnow()
            changes = {"status": target, "processed_by": actor_id, "processed_date": now}
            stage = STAGE_FOR_STATUS[target]
            if stage is not None:
                changes["current_stage"] = stage
            if is_terminal(target):
                changes["completed_date"] = now

            expected = {"status": current, "payment_status": request.payment_status}
            updated = self._store.update_request(request_id, changes, expected)
            if updated is not None:
                break
            logger.info(
                "Request %s changed while moving to %s (attempt %d); re-reading",
                request_id, target.value, attempt,
            )
        else:
            raise InvalidTransition(f"Request {request_id} kept changing; try again")

        logger.info("Request %s: %s -> %s by %s", request_id, current.value, target.value, actor_id)
        result = WorkflowResult(request=updated)
        entry = self._history.record(
            request_id,
            updated.current_stage,
            HISTORY_ACTION_FOR_STATUS[target],
            comments=f"Status changed from {current.value} to {target.value}",
            actor_id=actor_id,
        )
        if entry is None:
            result.warnings.append("Workflow history entry could not be recorded")

        if target in _NOTIFY_READY:
            failure = send_document_ready(self._notifier, self._store, updated)
            result.notified = failure is None
            if failure is not None:
                result.warnings.append(failure.message)
        return result

    # --- student reads ---

    def get_request(self, request_id: int, actor: Actor) -> RequestRecord:
        request = self._store.get_request(request_id)
        if request is None:
            raise RequestNotFound(f"Request {request_id} not found")
        authorize_view(request, actor)
        return request

    def get_requests_for_user(self, user_id: int) -> list[RequestRecord]:
        return self._store.list_requests(user_id=user_id)

    def get_queue_stats(self, user_id: int) -> QueueStats:
        counts = self._store.count_requests_by_status(user_id=user_id)
        return QueueStats(by_status=counts, total=sum(counts.values()))

    def get_history_for_user(self, user_id: int) -> list[RequestRecord]:
        closed = self._store.list_requests(user_id=user_id, statuses=TERMINAL_STATUSES)
        return _newest_closed_first(closed)

    def get_request_history(self, request_id: int, actor: Actor) -> list[HistoryRecord]:
        self.get_request(request_id, actor)
        return self._history.for_request(request_id)

    # --- officer reads ---

    def list_open_requests(self) -> list[RequestRecord]:
        requests = self._store.list_requests(statuses=OPEN_STATUSES)
        return sorted(requests, key=lambda r: (QUEUE_ORDER[r.status], r.request_date, r.request_id))

    def list_closed_requests(self) -> list[RequestRecord]:
        return _newest_closed_first(self._store.list_requests(statuses=TERMINAL_STATUSES))

    def get_global_stats(self) -> GlobalStats:
        counts = self._store.count_requests_by_status()
        open_by_type = Counter(r.document_type for r in self._store.list_requests(statuses=OPEN_STATUSES))
        return GlobalStats(
            by_status=counts,
            total=sum(counts.values()),
            open_by_document_type=dict(open_by_type),
        )


def _newest_closed_first(requests: list[RequestRecord]) -> list[RequestRecord]:
    return sorted(
        requests,
        key=lambda r: (r.completed_date or r.request_date, r.request_id),
        reverse=True,
    )
