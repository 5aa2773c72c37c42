import logging
from collections.abc import Iterable, Mapping
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from registrar.errors import QueueNumberTaken, StorageFailure
from registrar.models.document_request import DocumentRequest
from registrar.models.document_type import DocumentType
from registrar.models.payment import Payment
from registrar.models.user import User
from registrar.models.workflow_history import WorkflowHistory
from registrar.schemas.document_type import DocumentTypeRecord
from registrar.schemas.history import HistoryRecord
from registrar.schemas.payment import PaymentRecord
from registrar.schemas.request import RequestRecord
from registrar.schemas.user import UserRecord
from registrar.stores.base import Expected, WorkflowStore, expected_values, plain_value
from registrar.utils.timestamps import to_iso

logger = logging.getLogger(__name__)


def _columns(values: Mapping[str, Any]) -> dict[str, Any]:
    out = {}
    for key, value in values.items():
        value = plain_value(value)
        if isinstance(value, datetime):
            value = to_iso(value)
        out[key] = value
    return out


def _conditions(model, expected: Expected | None) -> list:
    conditions = []
    for field, value in (expected or {}).items():
        column = getattr(model, field)
        allowed = expected_values(value)
        if allowed is None:
            conditions.append(column == plain_value(value))
        else:
            conditions.append(column.in_(allowed))
    return conditions


class SqlWorkflowStore(WorkflowStore):
    """Relational adapter: one short-lived session per operation."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @contextmanager
    def _session(self):
        db: Session = self._session_factory()
        try:
            yield db
        except StorageFailure:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Database error: %s", exc)
            raise StorageFailure(f"Database error: {exc}") from exc
        finally:
            db.close()

    # --- document type catalog ---

    def add_document_type(self, values):
        with self._session() as db:
            row = DocumentType(**_columns(values))
            db.add(row)
            db.commit()
            db.refresh(row)
            return DocumentTypeRecord.model_validate(row)

    def get_document_type(self, document_type_id):
        with self._session() as db:
            row = db.get(DocumentType, document_type_id)
            return DocumentTypeRecord.model_validate(row) if row else None

    def list_document_types(self, active_only=True):
        with self._session() as db:
            query = db.query(DocumentType)
            if active_only:
                query = query.filter(DocumentType.is_active.is_(True))
            rows = query.order_by(DocumentType.category, DocumentType.name).all()
            return [DocumentTypeRecord.model_validate(r) for r in rows]

    def update_document_type(self, document_type_id, changes):
        with self._session() as db:
            row = db.get(DocumentType, document_type_id)
            if not row:
                return None
            for key, value in _columns(changes).items():
                setattr(row, key, value)
            db.commit()
            db.refresh(row)
            return DocumentTypeRecord.model_validate(row)

    # --- users ---

    def add_user(self, values):
        with self._session() as db:
            row = User(**_columns(values))
            db.add(row)
            db.commit()
            db.refresh(row)
            return UserRecord.model_validate(row)

    def get_user(self, user_id):
        with self._session() as db:
            row = db.get(User, user_id)
            return UserRecord.model_validate(row) if row else None

    # --- requests ---

    def insert_request(self, values):
        with self._session() as db:
            row = DocumentRequest(**_columns(values))
            db.add(row)
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                if "queue_number" in str(exc.orig):
                    raise QueueNumberTaken(f"Queue number {values.get('queue_number')} is already taken") from exc
                raise StorageFailure(f"Could not insert request: {exc.orig}") from exc
            db.refresh(row)
            return RequestRecord.model_validate(row)

    def get_request(self, request_id):
        with self._session() as db:
            row = db.get(DocumentRequest, request_id)
            return RequestRecord.model_validate(row) if row else None

    def list_requests(self, user_id=None, statuses: Iterable[Any] | None = None):
        with self._session() as db:
            query = db.query(DocumentRequest)
            if user_id is not None:
                query = query.filter(DocumentRequest.user_id == user_id)
            if statuses is not None:
                query = query.filter(DocumentRequest.status.in_([plain_value(s) for s in statuses]))
            rows = query.order_by(
                DocumentRequest.request_date.desc(),
                DocumentRequest.request_id.desc(),
            ).all()
            return [RequestRecord.model_validate(r) for r in rows]

    def count_requests_by_status(self, user_id=None):
        with self._session() as db:
            query = db.query(DocumentRequest.status, func.count(DocumentRequest.request_id).label("n"))
            if user_id is not None:
                query = query.filter(DocumentRequest.user_id == user_id)
            rows = query.group_by(DocumentRequest.status).all()
            return {row.status: row.n for row in rows}

    def update_request(self, request_id, changes, expected):
        stmt = (
            update(DocumentRequest)
            .where(DocumentRequest.request_id == request_id, *_conditions(DocumentRequest, expected))
            .values(**_columns(changes))
            .execution_options(synchronize_session=False)
        )
        with self._session() as db:
            result = db.execute(stmt)
            if result.rowcount != 1:
                db.rollback()
                return None
            db.commit()
            return RequestRecord.model_validate(db.get(DocumentRequest, request_id))

    # --- payments ---

    def get_payment(self, payment_id):
        with self._session() as db:
            row = db.get(Payment, payment_id)
            return PaymentRecord.model_validate(row) if row else None

    def get_current_payment(self, request_id):
        with self._session() as db:
            row = (
                db.query(Payment)
                .filter(Payment.request_id == request_id)
                .order_by(Payment.payment_id.desc())
                .first()
            )
            return PaymentRecord.model_validate(row) if row else None

    def list_payments(self, statuses=None, request_statuses=None):
        with self._session() as db:
            query = db.query(Payment)
            if statuses is not None:
                query = query.filter(Payment.status.in_([plain_value(s) for s in statuses]))
            if request_statuses is not None:
                query = query.join(DocumentRequest, DocumentRequest.request_id == Payment.request_id).filter(
                    DocumentRequest.status.in_([plain_value(s) for s in request_statuses])
                )
            rows = query.order_by(Payment.payment_date.desc(), Payment.payment_id.desc()).all()
            return [PaymentRecord.model_validate(r) for r in rows]

    def apply_payment_change(
        self,
        request_id,
        payment_values,
        request_changes,
        expected_request,
        payment_id=None,
        expected_payment=None,
    ):
        with self._session() as db:
            if payment_id is None:
                row = Payment(request_id=request_id, **_columns(payment_values))
                db.add(row)
                db.flush()
                payment_id = row.payment_id
            else:
                result = db.execute(
                    update(Payment)
                    .where(Payment.payment_id == payment_id, *_conditions(Payment, expected_payment))
                    .values(**_columns(payment_values))
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    db.rollback()
                    return None

            result = db.execute(
                update(DocumentRequest)
                .where(DocumentRequest.request_id == request_id, *_conditions(DocumentRequest, expected_request))
                .values(**_columns(request_changes))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                db.rollback()
                return None

            db.commit()
            payment = PaymentRecord.model_validate(db.get(Payment, payment_id))
            request = RequestRecord.model_validate(db.get(DocumentRequest, request_id))
            return payment, request

    # --- workflow history ---

    def append_history(self, values):
        with self._session() as db:
            row = WorkflowHistory(**_columns(values))
            db.add(row)
            db.commit()
            db.refresh(row)
            return HistoryRecord.model_validate(row)

    def list_history(self, request_id):
        with self._session() as db:
            rows = (
                db.query(WorkflowHistory)
                .filter(WorkflowHistory.request_id == request_id)
                .order_by(WorkflowHistory.processed_at.asc(), WorkflowHistory.history_id.asc())
                .all()
            )
            return [HistoryRecord.model_validate(r) for r in rows]
