from decimal import Decimal

import mongomock
import pytest
from fastapi.testclient import TestClient

from registrar.config import settings
from registrar.database import get_session_factory, init_db
from registrar.dependencies import get_notifier, get_store
from registrar.main import app
from registrar.schemas.document_type import DocumentTypeCreate
from registrar.services.catalog_service import add_document_type
from registrar.services.history_service import HistoryLog
from registrar.services.payment_service import PaymentService
from registrar.services.request_service import RequestService
from registrar.stores.mongo import MongoWorkflowStore
from registrar.stores.sql import SqlWorkflowStore
from registrar.workflow import Role


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify_document_ready(self, email, name, document_type, queue_number):
        self.sent.append(("ready", email, name, document_type, queue_number))

    def notify_payment_outcome(self, email, name, queue_number, approved, reason=None):
        self.sent.append(("payment", email, name, queue_number, approved, reason))


class FailingNotifier:
    def notify_document_ready(self, email, name, document_type, queue_number):
        raise ConnectionRefusedError("SMTP server unreachable")

    def notify_payment_outcome(self, email, name, queue_number, approved, reason=None):
        raise ConnectionRefusedError("SMTP server unreachable")


@pytest.fixture
def tmp_data(tmp_path):
    data_path = tmp_path / "RegistrarPortal"
    data_path.mkdir()
    original = settings.data_path
    settings.data_path = data_path
    yield data_path
    settings.data_path = original


@pytest.fixture
def sql_store(tmp_path):
    db_path = tmp_path / "registrar.sqlite"
    init_db(db_path)
    return SqlWorkflowStore(get_session_factory(db_path))


@pytest.fixture
def mongo_store():
    client = mongomock.MongoClient()
    return MongoWorkflowStore(client["registrar_test"])


@pytest.fixture(params=["sql", "mongo"])
def store(request):
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def history(store):
    return HistoryLog(store)


@pytest.fixture
def request_service(store, history, notifier):
    return RequestService(store, history, notifier)


@pytest.fixture
def payment_service(store, history, notifier):
    return PaymentService(store, history, notifier)


@pytest.fixture
def student(store):
    return store.add_user({
        "student_number": "2021-00123",
        "first_name": "Maria",
        "last_name": "Santos",
        "email": "maria.santos@students.example.edu",
        "role": Role.STUDENT,
    })


@pytest.fixture
def other_student(store):
    return store.add_user({
        "student_number": "2021-00456",
        "first_name": "Jose",
        "last_name": "Reyes",
        "email": "jose.reyes@students.example.edu",
        "role": Role.STUDENT,
    })


@pytest.fixture
def officer(store):
    return store.add_user({
        "first_name": "Ana",
        "last_name": "Cruz",
        "email": "registrar@example.edu",
        "role": Role.STAFF,
    })


@pytest.fixture
def free_type(store):
    return add_document_type(store, DocumentTypeCreate(
        name="Certificate of Enrollment",
        requires_payment=False,
        amount=Decimal("0"),
        processing_days=2,
        category="Certificates",
    ))


@pytest.fixture
def paid_type(store):
    return add_document_type(store, DocumentTypeCreate(
        name="Transcript of Records",
        requires_payment=True,
        amount=Decimal("150"),
        processing_days=7,
        requires_clearance=True,
        category="Academic Records",
    ))


@pytest.fixture
def client(tmp_data, store, notifier):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()
