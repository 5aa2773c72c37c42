from decimal import Decimal

import pytest

from registrar.errors import (
    Forbidden,
    InvalidTransition,
    MissingRejectionReason,
    PaymentAlreadyVerified,
    PaymentNotFound,
)
from registrar.workflow import (
    Actor,
    PaymentRecordStatus,
    PaymentStatus,
    RequestStage,
    RequestStatus,
    Role,
)


def _open_payments(store, request_id):
    return [
        p for p in store.list_payments()
        if p.request_id == request_id and p.status in (
            PaymentRecordStatus.PENDING, PaymentRecordStatus.PENDING_VERIFICATION,
        )
    ]


class TestUploadProof:
    def test_first_upload(self, request_service, payment_service, history, student, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id, 2)
        result = payment_service.upload_proof(
            req.request_id, student.user_id, "GCash", "REF-1001", "/uploads/payments/payment_1.png"
        )

        assert result.payment.status == PaymentRecordStatus.PENDING
        assert result.payment.amount == Decimal("300.00")
        assert result.payment.payment_proof_url == "/uploads/payments/payment_1.png"
        assert result.request.current_stage == RequestStage.PAYMENT_VERIFICATION
        assert result.request.payment_status == PaymentStatus.PENDING_VERIFICATION
        assert result.request.status == RequestStatus.ACTIVE
        assert history.for_request(req.request_id)[-1].action == "Payment Proof Uploaded"

    def test_reupload_while_pending_replaces(self, request_service, payment_service, store, student, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        first = payment_service.upload_proof(req.request_id, student.user_id, "GCash", "A", "/uploads/a.png")
        second = payment_service.upload_proof(req.request_id, student.user_id, "Bank", "B", "/uploads/b.png")

        assert second.payment.payment_id == first.payment.payment_id
        assert second.payment.payment_method == "Bank"
        assert len(store.list_payments()) == 1

    def test_not_owner(self, request_service, payment_service, student, other_student, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        with pytest.raises(Forbidden):
            payment_service.upload_proof(req.request_id, other_student.user_id, "GCash", None, "/x.png")

    def test_free_document_takes_no_payment(self, request_service, payment_service, student, free_type):
        req = request_service.submit_request(student.user_id, free_type.document_type_id)
        with pytest.raises(InvalidTransition):
            payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")

    def test_cancelled_request(self, request_service, payment_service, student, officer, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        request_service.advance_status(req.request_id, "Cancelled", officer.user_id)
        with pytest.raises(InvalidTransition):
            payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")

    def test_after_verification(self, request_service, payment_service, student, officer, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")
        payment_service.verify(up.payment.payment_id, officer.user_id)
        with pytest.raises(PaymentAlreadyVerified):
            payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/y.png")


class TestVerify:
    def test_verify(self, request_service, payment_service, notifier, student, officer, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", "R1", "/x.png")

        result = payment_service.verify(up.payment.payment_id, officer.user_id)
        assert result.payment.status == PaymentRecordStatus.VERIFIED
        assert result.payment.verified_by == officer.user_id
        assert result.payment.verified_date is not None
        assert result.request.payment_status == PaymentStatus.VERIFIED
        assert result.request.current_stage == RequestStage.PENDING_REVIEW
        # Verification does not move the request on by itself
        assert result.request.status == RequestStatus.ACTIVE
        assert result.notified is True
        assert notifier.sent == [("payment", student.email, "Maria Santos", req.queue_number, True, None)]

    def test_verify_twice_is_noop(self, request_service, payment_service, history, student, officer, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")
        payment_service.verify(up.payment.payment_id, officer.user_id)

        again = payment_service.verify(up.payment.payment_id, officer.user_id)
        assert not again.changed
        assert again.payment.status == PaymentRecordStatus.VERIFIED
        actions = [e.action for e in history.for_request(req.request_id)]
        assert actions.count("Payment Verified") == 1

    def test_verify_rejected(self, request_service, payment_service, student, officer, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")
        payment_service.reject(up.payment.payment_id, officer.user_id, "wrong amount")
        with pytest.raises(InvalidTransition):
            payment_service.verify(up.payment.payment_id, officer.user_id)

    def test_verify_on_cancelled_request(self, request_service, payment_service, store, student, officer, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")
        request_service.advance_status(req.request_id, "Cancelled", officer.user_id)

        with pytest.raises(InvalidTransition):
            payment_service.verify(up.payment.payment_id, officer.user_id)
        assert store.get_payment(up.payment.payment_id).status == PaymentRecordStatus.PENDING

    def test_unknown_payment(self, payment_service, officer):
        with pytest.raises(PaymentNotFound):
            payment_service.verify(404, officer.user_id)


class TestReject:
    @pytest.mark.parametrize("reason", ["", "   ", None])
    def test_reason_required(self, request_service, payment_service, store, student, officer, paid_type, reason):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")
        before_request = store.get_request(req.request_id)

        with pytest.raises(MissingRejectionReason):
            payment_service.reject(up.payment.payment_id, officer.user_id, reason)

        assert store.get_payment(up.payment.payment_id) == up.payment
        assert store.get_request(req.request_id) == before_request

    def test_reject(self, request_service, payment_service, history, notifier, student, officer, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")

        result = payment_service.reject(up.payment.payment_id, officer.user_id, "  blurry receipt ")
        assert result.payment.status == PaymentRecordStatus.REJECTED
        assert result.payment.rejection_reason == "blurry receipt"
        assert result.request.payment_status == PaymentStatus.REJECTED
        assert result.request.current_stage == RequestStage.PENDING_PAYMENT

        entry = history.for_request(req.request_id)[-1]
        assert entry.action == "Payment Rejected"
        assert entry.comments == "blurry receipt"
        assert notifier.sent[-1] == (
            "payment", student.email, "Maria Santos", req.queue_number, False, "blurry receipt",
        )

    def test_reject_verified(self, request_service, payment_service, student, officer, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")
        payment_service.verify(up.payment.payment_id, officer.user_id)
        with pytest.raises(PaymentAlreadyVerified):
            payment_service.reject(up.payment.payment_id, officer.user_id, "too late")


class TestPaymentReads:
    def test_pending_queue(self, request_service, payment_service, student, officer, paid_type):
        a = request_service.submit_request(student.user_id, paid_type.document_type_id)
        b = request_service.submit_request(student.user_id, paid_type.document_type_id)
        pa = payment_service.upload_proof(a.request_id, student.user_id, "GCash", None, "/a.png")
        pb = payment_service.upload_proof(b.request_id, student.user_id, "GCash", None, "/b.png")
        payment_service.verify(pa.payment.payment_id, officer.user_id)

        pending = payment_service.list_pending_payments()
        assert [p.payment_id for p in pending] == [pb.payment.payment_id]

    def test_cancelled_request_leaves_pending_queue(self, request_service, payment_service, student, officer,
                                                    paid_type):
        kept = request_service.submit_request(student.user_id, paid_type.document_type_id)
        dropped = request_service.submit_request(student.user_id, paid_type.document_type_id)
        pk = payment_service.upload_proof(kept.request_id, student.user_id, "GCash", None, "/k.png")
        payment_service.upload_proof(dropped.request_id, student.user_id, "GCash", None, "/d.png")

        request_service.advance_status(dropped.request_id, "Cancelled", officer.user_id)

        pending = payment_service.list_pending_payments()
        assert [p.payment_id for p in pending] == [pk.payment.payment_id]

    def test_payment_for_request(self, request_service, payment_service, student, other_student, officer, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        assert payment_service.get_payment_for_request(req.request_id, Actor(student.user_id, Role.STUDENT)) is None

        up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")
        seen = payment_service.get_payment_for_request(req.request_id, Actor(officer.user_id, Role.ACCOUNTING))
        assert seen.payment_id == up.payment.payment_id
        with pytest.raises(Forbidden):
            payment_service.get_payment_for_request(req.request_id, Actor(other_student.user_id, Role.STUDENT))


class TestRejectAndResubmitScenario:
    def test_reject_then_reupload_then_verify(self, request_service, payment_service, store, history,
                                              student, officer, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id, 2)
        assert req.total_amount == Decimal("300.00")
        open_counts = []

        first = payment_service.upload_proof(req.request_id, student.user_id, "GCash", "R1", "/r1.png")
        open_counts.append(len(_open_payments(store, req.request_id)))
        payment_service.reject(first.payment.payment_id, officer.user_id, "blurry receipt")
        open_counts.append(len(_open_payments(store, req.request_id)))

        second = payment_service.upload_proof(req.request_id, student.user_id, "GCash", "R2", "/r2.png")
        open_counts.append(len(_open_payments(store, req.request_id)))
        assert second.payment.payment_id == first.payment.payment_id
        assert second.payment.rejection_reason is None
        assert second.payment.verified_by is None

        payment_service.verify(second.payment.payment_id, officer.user_id)
        open_counts.append(len(_open_payments(store, req.request_id)))
        result = request_service.advance_status(req.request_id, "Processing", officer.user_id)

        assert store.get_current_payment(req.request_id).status == PaymentRecordStatus.VERIFIED
        assert result.request.status == RequestStatus.PROCESSING
        assert max(open_counts) <= 1
        assert len(store.list_payments()) == 1

        entries = history.for_request(req.request_id)
        assert [e.action for e in entries] == [
            "Request Submitted",
            "Payment Proof Uploaded",
            "Payment Rejected",
            "Payment Proof Uploaded",
            "Payment Verified",
            "Processing Started",
        ]
        assert [(e.processed_at, e.history_id) for e in entries] == sorted(
            (e.processed_at, e.history_id) for e in entries
        )


class TestPaymentChangeIsAtomic:
    def test_request_mismatch_leaves_payment_untouched(self, request_service, payment_service, store,
                                                      student, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")

        outcome = store.apply_payment_change(
            req.request_id,
            {"status": PaymentRecordStatus.VERIFIED, "verified_by": 99},
            {"payment_status": PaymentStatus.VERIFIED},
            expected_request={"status": RequestStatus.PROCESSING},
            payment_id=up.payment.payment_id,
            expected_payment={"status": PaymentRecordStatus.PENDING},
        )
        assert outcome is None
        assert store.get_payment(up.payment.payment_id) == up.payment
        assert store.get_request(req.request_id).payment_status == PaymentStatus.PENDING_VERIFICATION

    def test_request_mismatch_discards_new_payment(self, request_service, store, student, paid_type):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        outcome = store.apply_payment_change(
            req.request_id,
            {"amount": Decimal("150.00"), "payment_method": "GCash", "status": PaymentRecordStatus.PENDING,
             "payment_date": req.request_date},
            {"payment_status": PaymentStatus.PENDING_VERIFICATION},
            expected_request={"status": RequestStatus.CANCELLED},
        )
        assert outcome is None
        assert store.list_payments() == []

    def test_first_upload_inserts_one_payment(self, request_service, payment_service, store, student,
                                              paid_type, caplog):
        req = request_service.submit_request(student.user_id, paid_type.document_type_id)
        with caplog.at_level("WARNING"):
            up = payment_service.upload_proof(req.request_id, student.user_id, "GCash", None, "/x.png")

        assert store.list_payments() == [up.payment]
        assert store.get_current_payment(req.request_id) == up.payment
        assert "Rolled back" not in caplog.text

    def test_conditional_update_returns_new_state(self, request_service, store, student, free_type):
        req = request_service.submit_request(student.user_id, free_type.document_type_id)

        updated = store.update_request(
            req.request_id, {"status": RequestStatus.PROCESSING}, {"status": RequestStatus.ACTIVE}
        )
        assert updated is not None
        assert updated.status == RequestStatus.PROCESSING
        assert updated.request_id == req.request_id

        stale = store.update_request(
            req.request_id, {"status": RequestStatus.CANCELLED}, {"status": RequestStatus.ACTIVE}
        )
        assert stale is None
        assert store.get_request(req.request_id).status == RequestStatus.PROCESSING
