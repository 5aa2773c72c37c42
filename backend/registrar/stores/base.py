"""
Persistence contract for the document request workflow.

A store must support insert with a generated id, conditional update by
primary key, and ordered queries. Both adapters (``sql`` and ``mongo``) take
and return the same record types, so the services never see a row or a
document.

``expected`` arguments map a field name to either a single value or a
collection of allowed values. A conditional update only writes when every
expectation still holds; otherwise it returns None and writes nothing.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

from registrar.schemas.document_type import DocumentTypeRecord
from registrar.schemas.history import HistoryRecord
from registrar.schemas.payment import PaymentRecord
from registrar.schemas.request import RequestRecord
from registrar.schemas.user import UserRecord

Expected = Mapping[str, Any]


def plain_value(value: Any) -> Any:
    """Strip enums and decimals down to what both backends store."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    return value


def expected_values(value: Any) -> list[Any] | None:
    """Return the allowed values for a multi-valued expectation, else None."""
    if isinstance(value, (str, bytes, Enum)) or not isinstance(value, Iterable):
        return None
    return [plain_value(v) for v in value]


class WorkflowStore(ABC):
    # --- document type catalog ---

    @abstractmethod
    def add_document_type(self, values: Mapping[str, Any]) -> DocumentTypeRecord: ...

    @abstractmethod
    def get_document_type(self, document_type_id: int) -> DocumentTypeRecord | None: ...

    @abstractmethod
    def list_document_types(self, active_only: bool = True) -> list[DocumentTypeRecord]: ...

    @abstractmethod
    def update_document_type(
        self, document_type_id: int, changes: Mapping[str, Any]
    ) -> DocumentTypeRecord | None: ...

    # --- users ---

    @abstractmethod
    def add_user(self, values: Mapping[str, Any]) -> UserRecord: ...

    @abstractmethod
    def get_user(self, user_id: int) -> UserRecord | None: ...

    # --- requests ---

    @abstractmethod
    def insert_request(self, values: Mapping[str, Any]) -> RequestRecord:
        """Insert a request; raises QueueNumberTaken if the queue number is in use."""

    @abstractmethod
    def get_request(self, request_id: int) -> RequestRecord | None: ...

    @abstractmethod
    def list_requests(
        self,
        user_id: int | None = None,
        statuses: Iterable[Any] | None = None,
    ) -> list[RequestRecord]:
        """Newest first (request_date, then request_id, descending)."""

    @abstractmethod
    def count_requests_by_status(self, user_id: int | None = None) -> dict[str, int]: ...

    @abstractmethod
    def update_request(
        self, request_id: int, changes: Mapping[str, Any], expected: Expected
    ) -> RequestRecord | None: ...

    # --- payments ---

    @abstractmethod
    def get_payment(self, payment_id: int) -> PaymentRecord | None: ...

    @abstractmethod
    def get_current_payment(self, request_id: int) -> PaymentRecord | None:
        """The most recent payment recorded for a request."""

    @abstractmethod
    def list_payments(
        self,
        statuses: Iterable[Any] | None = None,
        request_statuses: Iterable[Any] | None = None,
    ) -> list[PaymentRecord]:
        """
        Newest first (payment_date, then payment_id, descending).

        ``request_statuses`` keeps only payments whose parent request is in
        one of those statuses.
        """

    @abstractmethod
    def apply_payment_change(
        self,
        request_id: int,
        payment_values: Mapping[str, Any],
        request_changes: Mapping[str, Any],
        expected_request: Expected,
        payment_id: int | None = None,
        expected_payment: Expected | None = None,
    ) -> tuple[PaymentRecord, RequestRecord] | None:
        """
        Insert (payment_id is None) or conditionally update a payment together
        with its parent request, as one unit.

        Returns None without leaving any change behind when either
        expectation fails.
        """

    # --- workflow history ---

    @abstractmethod
    def append_history(self, values: Mapping[str, Any]) -> HistoryRecord: ...

    @abstractmethod
    def list_history(self, request_id: int) -> list[HistoryRecord]:
        """Oldest first (processed_at, then history_id)."""
