import logging
from collections.abc import Mapping
from contextlib import contextmanager
from typing import Any

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from registrar.errors import QueueNumberTaken, StorageFailure
from registrar.schemas.document_type import DocumentTypeRecord
from registrar.schemas.history import HistoryRecord
from registrar.schemas.payment import PaymentRecord
from registrar.schemas.request import RequestRecord
from registrar.schemas.user import UserRecord
from registrar.stores.base import Expected, WorkflowStore, expected_values, plain_value

logger = logging.getLogger(__name__)

NO_ID = {"_id": 0}


def _without_id(doc: dict | None) -> dict | None:
    if doc is not None:
        doc.pop("_id", None)
    return doc


def _fields(values: Mapping[str, Any]) -> dict[str, Any]:
    return {key: plain_value(value) for key, value in values.items()}


def _filter(expected: Expected | None) -> dict[str, Any]:
    query = {}
    for field, value in (expected or {}).items():
        allowed = expected_values(value)
        query[field] = plain_value(value) if allowed is None else {"$in": allowed}
    return query


class MongoWorkflowStore(WorkflowStore):
    """
    Document-store adapter.

    Integer ids come from a ``counters`` collection so request and payment ids
    stay monotonic like their relational counterparts. Single-document updates
    use ``find_one_and_update`` with the expectation folded into the filter.
    MongoDB only offers multi-document transactions on replica sets, so the
    payment + request unit is made compensable instead: when the request no
    longer matches, the payment document is put back the way it was.
    """

    def __init__(self, db: Database):
        self._db = db
        self._counters = db["counters"]
        self._users = db["users"]
        self._document_types = db["document_types"]
        self._requests = db["document_requests"]
        self._payments = db["payments"]
        self._history = db["workflow_history"]
        self.ensure_indexes()

    @contextmanager
    def _guard(self):
        try:
            yield
        except PyMongoError as exc:
            logger.error("MongoDB error: %s", exc)
            raise StorageFailure(f"Database error: {exc}") from exc

    def ensure_indexes(self):
        with self._guard():
            self._users.create_index("user_id", unique=True)
            self._document_types.create_index("document_type_id", unique=True)
            self._requests.create_index("request_id", unique=True)
            self._requests.create_index("queue_number", unique=True)
            self._requests.create_index([("user_id", ASCENDING), ("request_date", DESCENDING)])
            self._payments.create_index("payment_id", unique=True)
            self._payments.create_index("request_id")
            self._history.create_index([("request_id", ASCENDING), ("history_id", ASCENDING)])

    def _next_id(self, name: str) -> int:
        doc = self._counters.find_one_and_update(
            {"_id": name},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return doc["seq"]

    # --- document type catalog ---

    def add_document_type(self, values):
        with self._guard():
            doc = {"document_type_id": self._next_id("document_types"), **_fields(values)}
            self._document_types.insert_one(doc)
            return DocumentTypeRecord.model_validate(doc)

    def get_document_type(self, document_type_id):
        with self._guard():
            doc = self._document_types.find_one({"document_type_id": document_type_id}, NO_ID)
            return DocumentTypeRecord.model_validate(doc) if doc else None

    def list_document_types(self, active_only=True):
        query = {"is_active": True} if active_only else {}
        with self._guard():
            docs = self._document_types.find(query, NO_ID).sort([("category", ASCENDING), ("name", ASCENDING)])
            return [DocumentTypeRecord.model_validate(d) for d in docs]

    def update_document_type(self, document_type_id, changes):
        with self._guard():
            doc = _without_id(self._document_types.find_one_and_update(
                {"document_type_id": document_type_id},
                {"$set": _fields(changes)},
                return_document=ReturnDocument.AFTER,
            ))
            return DocumentTypeRecord.model_validate(doc) if doc else None

    # --- users ---

    def add_user(self, values):
        with self._guard():
            doc = {"user_id": self._next_id("users"), **_fields(values)}
            self._users.insert_one(doc)
            return UserRecord.model_validate(doc)

    def get_user(self, user_id):
        with self._guard():
            doc = self._users.find_one({"user_id": user_id}, NO_ID)
            return UserRecord.model_validate(doc) if doc else None

    # --- requests ---

    def insert_request(self, values):
        with self._guard():
            doc = {"request_id": self._next_id("document_requests"), **_fields(values)}
            try:
                self._requests.insert_one(doc)
            except DuplicateKeyError as exc:
                raise QueueNumberTaken(f"Queue number {values.get('queue_number')} is already taken") from exc
            return RequestRecord.model_validate(doc)

    def get_request(self, request_id):
        with self._guard():
            doc = self._requests.find_one({"request_id": request_id}, NO_ID)
            return RequestRecord.model_validate(doc) if doc else None

    def list_requests(self, user_id=None, statuses=None):
        query: dict[str, Any] = {}
        if user_id is not None:
            query["user_id"] = user_id
        if statuses is not None:
            query["status"] = {"$in": [plain_value(s) for s in statuses]}
        with self._guard():
            docs = self._requests.find(query, NO_ID).sort(
                [("request_date", DESCENDING), ("request_id", DESCENDING)]
            )
            return [RequestRecord.model_validate(d) for d in docs]

    def count_requests_by_status(self, user_id=None):
        pipeline = []
        if user_id is not None:
            pipeline.append({"$match": {"user_id": user_id}})
        pipeline.append({"$group": {"_id": "$status", "n": {"$sum": 1}}})
        with self._guard():
            return {row["_id"]: row["n"] for row in self._requests.aggregate(pipeline)}

    def update_request(self, request_id, changes, expected):
        with self._guard():
            doc = _without_id(self._requests.find_one_and_update(
                {"request_id": request_id, **_filter(expected)},
                {"$set": _fields(changes)},
                return_document=ReturnDocument.AFTER,
            ))
            return RequestRecord.model_validate(doc) if doc else None

    # --- payments ---

    def get_payment(self, payment_id):
        with self._guard():
            doc = self._payments.find_one({"payment_id": payment_id}, NO_ID)
            return PaymentRecord.model_validate(doc) if doc else None

    def get_current_payment(self, request_id):
        with self._guard():
            docs = list(
                self._payments.find({"request_id": request_id}, NO_ID)
                .sort("payment_id", DESCENDING)
                .limit(1)
            )
            return PaymentRecord.model_validate(docs[0]) if docs else None

    def list_payments(self, statuses=None, request_statuses=None):
        query: dict[str, Any] = {}
        if statuses is not None:
            query["status"] = {"$in": [plain_value(s) for s in statuses]}
        with self._guard():
            if request_statuses is not None:
                request_ids = self._requests.distinct(
                    "request_id", {"status": {"$in": [plain_value(s) for s in request_statuses]}}
                )
                query["request_id"] = {"$in": request_ids}
            docs = self._payments.find(query, NO_ID).sort(
                [("payment_date", DESCENDING), ("payment_id", DESCENDING)]
            )
            return [PaymentRecord.model_validate(d) for d in docs]

    def _restore_payment(self, payment_id: int, previous: dict | None):
        if previous is None:
            self._payments.delete_one({"payment_id": payment_id})
        else:
            self._payments.replace_one({"payment_id": payment_id}, previous)
        logger.warning("Rolled back payment %s after its request changed underneath it", payment_id)

    def apply_payment_change(
        self,
        request_id,
        payment_values,
        request_changes,
        expected_request,
        payment_id=None,
        expected_payment=None,
    ):
        with self._guard():
            if payment_id is None:
                payment_id = self._next_id("payments")
                self._payments.insert_one(
                    {"payment_id": payment_id, "request_id": request_id, **_fields(payment_values)}
                )
                previous = None
            else:
                previous = self._payments.find_one_and_update(
                    {"payment_id": payment_id, **_filter(expected_payment)},
                    {"$set": _fields(payment_values)},
                    return_document=ReturnDocument.BEFORE,
                )
                if previous is None:
                    return None

            try:
                request_doc = _without_id(self._requests.find_one_and_update(
                    {"request_id": request_id, **_filter(expected_request)},
                    {"$set": _fields(request_changes)},
                    return_document=ReturnDocument.AFTER,
                ))
            except PyMongoError:
                self._restore_payment(payment_id, previous)
                raise
            if request_doc is None:
                self._restore_payment(payment_id, previous)
                return None

            payment_doc = self._payments.find_one({"payment_id": payment_id}, NO_ID)
            return PaymentRecord.model_validate(payment_doc), RequestRecord.model_validate(request_doc)

    # --- workflow history ---

    def append_history(self, values):
        with self._guard():
            doc = {"history_id": self._next_id("workflow_history"), **_fields(values)}
            self._history.insert_one(doc)
            return HistoryRecord.model_validate(doc)

    def list_history(self, request_id):
        with self._guard():
            docs = self._history.find({"request_id": request_id}, NO_ID).sort(
                [("processed_at", ASCENDING), ("history_id", ASCENDING)]
            )
            return [HistoryRecord.model_validate(d) for d in docs]
