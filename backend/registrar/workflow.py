"""
Document request workflow vocabulary and transition rules.

A request carries three workflow fields:

- ``status``: the coarse position (Active -> Processing -> Ready -> Completed,
  or Cancelled from any non-terminal status).
- ``current_stage``: the fine-grained position shown to students and staff.
- ``payment_status``: a mirror of the current payment record, or
  ``Not Required`` for free document types.

This module holds no storage or HTTP code. The services ask it which
transition is legal and which fields it writes, so the rules stay the same
for every storage backend.
"""

from dataclasses import dataclass
from enum import Enum


class RequestStatus(str, Enum):
    ACTIVE = "Active"
    PENDING = "Pending"  # relational-era alias of ACTIVE
    PROCESSING = "Processing"
    READY = "Ready"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class RequestStage(str, Enum):
    PENDING_PAYMENT = "Pending Payment"
    AWAITING_PAYMENT = "Awaiting Payment"  # alias of PENDING_PAYMENT
    PAYMENT_VERIFICATION = "Payment Verification"
    PENDING_REVIEW = "Pending Review"
    DOCUMENT_PROCESSING = "Document Processing"
    READY_FOR_PICKUP = "Ready for Pickup"
    COMPLETED = "Completed"


class PaymentStatus(str, Enum):
    """Payment status as mirrored on the request."""
    NOT_REQUIRED = "Not Required"
    PENDING = "Pending"
    PENDING_VERIFICATION = "Pending Verification"
    VERIFIED = "Verified"
    REJECTED = "Rejected"


class PaymentRecordStatus(str, Enum):
    """Status of an individual payment record."""
    PENDING = "Pending"
    PENDING_VERIFICATION = "Pending Verification"  # document-store alias of PENDING
    VERIFIED = "Verified"
    REJECTED = "Rejected"


class Role(str, Enum):
    STUDENT = "Student"
    ADMIN = "Admin"
    STAFF = "Staff"
    ACCOUNTING = "Accounting"


OFFICER_ROLES = frozenset({Role.ADMIN, Role.STAFF, Role.ACCOUNTING})

OPEN_STATUSES = (
    RequestStatus.ACTIVE,
    RequestStatus.PENDING,
    RequestStatus.PROCESSING,
    RequestStatus.READY,
)
TERMINAL_STATUSES = (RequestStatus.COMPLETED, RequestStatus.CANCELLED)

OPEN_PAYMENT_STATUSES = (
    PaymentRecordStatus.PENDING,
    PaymentRecordStatus.PENDING_VERIFICATION,
)

# target status -> statuses it may be entered from
TRANSITIONS: dict[RequestStatus, tuple[RequestStatus, ...]] = {
    RequestStatus.PROCESSING: (RequestStatus.ACTIVE, RequestStatus.PENDING),
    RequestStatus.READY: (RequestStatus.PROCESSING,),
    RequestStatus.COMPLETED: (RequestStatus.READY,),
    RequestStatus.CANCELLED: OPEN_STATUSES,
}

# stage written when a status is entered; None keeps the current stage
STAGE_FOR_STATUS: dict[RequestStatus, RequestStage | None] = {
    RequestStatus.PROCESSING: RequestStage.DOCUMENT_PROCESSING,
    RequestStatus.READY: RequestStage.READY_FOR_PICKUP,
    RequestStatus.COMPLETED: RequestStage.COMPLETED,
    RequestStatus.CANCELLED: None,
}

HISTORY_ACTION_FOR_STATUS: dict[RequestStatus, str] = {
    RequestStatus.PROCESSING: "Processing Started",
    RequestStatus.READY: "Marked Ready",
    RequestStatus.COMPLETED: "Request Completed",
    RequestStatus.CANCELLED: "Request Cancelled",
}

# Ordering of the officer queue: new requests first, then in-progress, then ready
QUEUE_ORDER = {
    RequestStatus.ACTIVE: 1,
    RequestStatus.PENDING: 1,
    RequestStatus.PROCESSING: 2,
    RequestStatus.READY: 3,
}


def parse_status(value: str | RequestStatus) -> RequestStatus | None:
    try:
        return RequestStatus(value)
    except ValueError:
        return None


def is_terminal(status: RequestStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_officer(role: Role | str | None) -> bool:
    try:
        return Role(role) in OFFICER_ROLES
    except ValueError:
        return False


def initial_workflow(requires_payment: bool) -> tuple[RequestStatus, RequestStage, PaymentStatus]:
    if requires_payment:
        return RequestStatus.ACTIVE, RequestStage.PENDING_PAYMENT, PaymentStatus.PENDING
    return RequestStatus.ACTIVE, RequestStage.PENDING_REVIEW, PaymentStatus.NOT_REQUIRED


def request_payment_status(payment_status: PaymentRecordStatus) -> PaymentStatus:
    """Map a payment record's status to the request's mirrored payment status."""
    if payment_status in OPEN_PAYMENT_STATUSES:
        return PaymentStatus.PENDING_VERIFICATION
    if payment_status == PaymentRecordStatus.VERIFIED:
        return PaymentStatus.VERIFIED
    return PaymentStatus.REJECTED


def check_transition(
    current: RequestStatus,
    target: RequestStatus,
    payment_status: PaymentStatus,
) -> str | None:
    """
    Return the reason a transition is illegal, or None when it is allowed.

    Re-entering the same terminal status is not checked here; callers treat it
    as a no-op before asking.
    """
    allowed_from = TRANSITIONS.get(target)
    if allowed_from is None:
        return f"Cannot move a request to {target.value}"
    if current not in allowed_from:
        return f"Cannot move a request from {current.value} to {target.value}"
    if target == RequestStatus.PROCESSING and payment_status not in (
        PaymentStatus.NOT_REQUIRED,
        PaymentStatus.VERIFIED,
    ):
        return f"Payment must be verified before processing (payment is {payment_status.value})"
    return None


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation, as passed in by the identity layer."""
    user_id: int
    role: Role = Role.STUDENT

    @property
    def is_officer(self) -> bool:
        return self.role in OFFICER_ROLES
