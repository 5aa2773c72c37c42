import logging
from decimal import Decimal

from registrar.errors import InvalidDocumentType
from registrar.schemas.document_type import DocumentTypeCreate, DocumentTypeRecord
from registrar.stores.base import WorkflowStore
from registrar.utils.timestamps import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DOCUMENT_TYPES = [
    DocumentTypeCreate(
        name="Transcript of Records",
        description="Official transcript of all completed coursework",
        requires_payment=True,
        amount=Decimal("150.00"),
        processing_days=7,
        requires_clearance=True,
        category="Academic Records",
    ),
    DocumentTypeCreate(
        name="Certificate of Enrollment",
        description="Proof of current enrollment",
        processing_days=2,
        category="Certificates",
    ),
    DocumentTypeCreate(
        name="Certificate of Grades",
        description="Grades for a single term",
        requires_payment=True,
        amount=Decimal("50.00"),
        processing_days=3,
        category="Certificates",
    ),
    DocumentTypeCreate(
        name="Good Moral Certificate",
        requires_payment=True,
        amount=Decimal("75.00"),
        processing_days=3,
        category="Certificates",
    ),
    DocumentTypeCreate(
        name="Honorable Dismissal",
        description="Transfer credential for students moving to another school",
        requires_payment=True,
        amount=Decimal("200.00"),
        processing_days=10,
        requires_clearance=True,
        category="Academic Records",
    ),
]


class DocumentTypeRegistry:
    """Read access to the document type catalog."""

    def __init__(self, store: WorkflowStore):
        self._store = store

    def get_active(self, document_type_id: int) -> DocumentTypeRecord:
        doc_type = self._store.get_document_type(document_type_id)
        if doc_type is None or not doc_type.is_active:
            raise InvalidDocumentType(f"Document type {document_type_id} is unknown or inactive")
        return doc_type

    def list_active(self) -> list[DocumentTypeRecord]:
        return self._store.list_document_types(active_only=True)


def add_document_type(store: WorkflowStore, data: DocumentTypeCreate) -> DocumentTypeRecord:
    values = data.model_dump()
    values["amount"] = data.amount.quantize(Decimal("0.01"))
    values["created_date"] = utcnow()
    return store.add_document_type(values)


def seed_document_types(store: WorkflowStore) -> int:
    """Populate an empty catalog with the default document types."""
    if store.list_document_types(active_only=False):
        return 0
    for data in DEFAULT_DOCUMENT_TYPES:
        add_document_type(store, data)
    logger.info("Seeded %d default document types", len(DEFAULT_DOCUMENT_TYPES))
    return len(DEFAULT_DOCUMENT_TYPES)
