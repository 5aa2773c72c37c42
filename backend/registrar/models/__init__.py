from registrar.models.user import User
from registrar.models.document_type import DocumentType
from registrar.models.document_request import DocumentRequest
from registrar.models.payment import Payment
from registrar.models.workflow_history import WorkflowHistory

__all__ = ["User", "DocumentType", "DocumentRequest", "Payment", "WorkflowHistory"]
