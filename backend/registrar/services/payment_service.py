"""
Payment verification: students upload proof, officers verify or reject it.

Every change writes the payment and its request together through
``WorkflowStore.apply_payment_change``. If either side moved since it was
read, nothing is written and the operation is re-evaluated from a fresh read.
Verification never advances the request status; staff still move the request
to Processing themselves.
"""

import logging

from registrar.config import settings
from registrar.errors import (
    Forbidden,
    InvalidTransition,
    MissingRejectionReason,
    PaymentAlreadyVerified,
    PaymentNotFound,
    RequestNotFound,
)
from registrar.schemas.payment import PaymentRecord
from registrar.schemas.request import RequestRecord, WorkflowResult
from registrar.services.history_service import HistoryLog
from registrar.services.notification_service import Notifier, send_payment_outcome
from registrar.services.request_service import authorize_view
from registrar.stores.base import WorkflowStore
from registrar.utils.timestamps import utcnow
from registrar.workflow import (
    OPEN_PAYMENT_STATUSES,
    OPEN_STATUSES,
    Actor,
    PaymentRecordStatus,
    PaymentStatus,
    RequestStage,
    is_terminal,
    request_payment_status,
)

logger = logging.getLogger(__name__)


class PaymentService:
    def __init__(self, store: WorkflowStore, history: HistoryLog, notifier: Notifier):
        self._store = store
        self._history = history
        self._notifier = notifier

    def _get_request(self, request_id: int) -> RequestRecord:
        request = self._store.get_request(request_id)
        if request is None:
            raise RequestNotFound(f"Request {request_id} not found")
        return request

    def _get_payment(self, payment_id: int) -> PaymentRecord:
        payment = self._store.get_payment(payment_id)
        if payment is None:
            raise PaymentNotFound(f"Payment {payment_id} not found")
        return payment

    def _finish(self, result: WorkflowResult, stage, action, comments, actor_id) -> WorkflowResult:
        entry = self._history.record(
            result.request.request_id, stage, action, comments=comments, actor_id=actor_id
        )
        if entry is None:
            result.warnings.append("Workflow history entry could not be recorded")
        return result

    # --- student side ---

    def _check_upload(self, request: RequestRecord, user_id: int) -> PaymentRecord | None:
        """Return the payment an upload would replace, or raise if uploading is not allowed."""
        if request.user_id != user_id:
            raise Forbidden(f"Request {request.request_id} belongs to another user")
        if is_terminal(request.status):
            raise InvalidTransition(f"Request is {request.status.value}; payment can no longer be uploaded")
        if request.payment_status == PaymentStatus.NOT_REQUIRED:
            raise InvalidTransition("This document type does not require payment")

        current = self._store.get_current_payment(request.request_id)
        if current is not None and current.status == PaymentRecordStatus.VERIFIED:
            raise PaymentAlreadyVerified()
        return current

    def check_upload_allowed(self, request_id: int, user_id: int):
        self._check_upload(self._get_request(request_id), user_id)

    def upload_proof(
        self,
        request_id: int,
        user_id: int,
        payment_method: str,
        reference_number: str | None,
        proof_ref: str | None,
    ) -> WorkflowResult:
        for attempt in range(1, settings.transition_max_attempts + 1):
            request = self._get_request(request_id)
            current = self._check_upload(request, user_id)

            now = utcnow()
            payment_values = {
                "payment_method": payment_method,
                "reference_number": reference_number,
                "payment_proof_url": proof_ref,
                "status": PaymentRecordStatus.PENDING,
                "verified_by": None,
                "verified_date": None,
                "rejection_reason": None,
                "updated_date": now,
            }
            if current is None:
                payment_values.update(amount=request.total_amount, payment_date=now)
                payment_id, expected_payment = None, None
            else:
                payment_id, expected_payment = current.payment_id, {"status": current.status}

            outcome = self._store.apply_payment_change(
                request_id,
                payment_values,
                {
                    "current_stage": RequestStage.PAYMENT_VERIFICATION,
                    "payment_status": request_payment_status(PaymentRecordStatus.PENDING),
                },
                expected_request={"status": request.status, "payment_status": request.payment_status},
                payment_id=payment_id,
                expected_payment=expected_payment,
            )
            if outcome is not None:
                break
            logger.info("Request %s changed during proof upload (attempt %d); re-reading", request_id, attempt)
        else:
            raise InvalidTransition(f"Request {request_id} kept changing; try again")

        payment, request = outcome
        logger.info("Payment %s proof uploaded for request %s", payment.payment_id, request_id)
        comments = f"Payment method: {payment_method}"
        if reference_number:
            comments += f", Reference: {reference_number}"
        return self._finish(
            WorkflowResult(request=request, payment=payment),
            request.current_stage, "Payment Proof Uploaded", comments, user_id,
        )

    def get_payment_for_request(self, request_id: int, actor: Actor) -> PaymentRecord | None:
        authorize_view(self._get_request(request_id), actor)
        return self._store.get_current_payment(request_id)

    # --- officer side ---

    def list_pending_payments(self) -> list[PaymentRecord]:
        """Payments awaiting a decision on requests that are still open."""
        return self._store.list_payments(statuses=OPEN_PAYMENT_STATUSES, request_statuses=OPEN_STATUSES)

    def verify(self, payment_id: int, officer_id: int) -> WorkflowResult:
        for attempt in range(1, settings.transition_max_attempts + 1):
            payment = self._get_payment(payment_id)
            if payment.status == PaymentRecordStatus.VERIFIED:
                return WorkflowResult(
                    request=self._get_request(payment.request_id), payment=payment, changed=False
                )
            if payment.status == PaymentRecordStatus.REJECTED:
                raise InvalidTransition("A rejected payment cannot be verified; the student must re-upload")
            request = self._get_request(payment.request_id)
            if is_terminal(request.status):
                raise InvalidTransition(f"Request is {request.status.value}")

            now = utcnow()
            outcome = self._store.apply_payment_change(
                payment.request_id,
                {
                    "status": PaymentRecordStatus.VERIFIED,
                    "verified_by": officer_id,
                    "verified_date": now,
                    "rejection_reason": None,
                    "updated_date": now,
                },
                {
                    "payment_status": PaymentStatus.VERIFIED,
                    "current_stage": RequestStage.PENDING_REVIEW,
                },
                expected_request={"status": OPEN_STATUSES},
                payment_id=payment_id,
                expected_payment={"status": OPEN_PAYMENT_STATUSES},
            )
            if outcome is not None:
                break
            logger.info("Payment %s changed during verification (attempt %d); re-reading", payment_id, attempt)
        else:
            raise InvalidTransition(f"Payment {payment_id} kept changing; try again")

        payment, request = outcome
        logger.info("Payment %s verified by %s", payment_id, officer_id)
        result = self._finish(
            WorkflowResult(request=request, payment=payment),
            request.current_stage, "Payment Verified", None, officer_id,
        )
        failure = send_payment_outcome(self._notifier, self._store, request, approved=True)
        result.notified = failure is None
        if failure is not None:
            result.warnings.append(failure.message)
        return result

    def reject(self, payment_id: int, officer_id: int, reason: str | None) -> WorkflowResult:
        if not reason or not reason.strip():
            raise MissingRejectionReason()
        reason = reason.strip()

        for attempt in range(1, settings.transition_max_attempts + 1):
            payment = self._get_payment(payment_id)
            if payment.status == PaymentRecordStatus.VERIFIED:
                raise PaymentAlreadyVerified()
            if payment.status == PaymentRecordStatus.REJECTED:
                raise InvalidTransition("Payment is already rejected")
            request = self._get_request(payment.request_id)
            if is_terminal(request.status):
                raise InvalidTransition(f"Request is {request.status.value}")

            now = utcnow()
            outcome = self._store.apply_payment_change(
                payment.request_id,
                {
                    "status": PaymentRecordStatus.REJECTED,
                    "verified_by": officer_id,
                    "verified_date": now,
                    "rejection_reason": reason,
                    "updated_date": now,
                },
                {
                    "payment_status": PaymentStatus.REJECTED,
                    "current_stage": RequestStage.PENDING_PAYMENT,
                },
                expected_request={"status": OPEN_STATUSES},
                payment_id=payment_id,
                expected_payment={"status": OPEN_PAYMENT_STATUSES},
            )
            if outcome is not None:
                break
            logger.info("Payment %s changed during rejection (attempt %d); re-reading", payment_id, attempt)
        else:
            raise InvalidTransition(f"Payment {payment_id} kept changing; try again")

        payment, request = outcome
        logger.info("Payment %s rejected by %s: %s", payment_id, officer_id, reason)
        result = self._finish(
            WorkflowResult(request=request, payment=payment),
            request.current_stage, "Payment Rejected", reason, officer_id,
        )
        failure = send_payment_outcome(self._notifier, self._store, request, approved=False, reason=reason)
        result.notified = failure is None
        if failure is not None:
            result.warnings.append(failure.message)
        return result
