from functools import lru_cache

from fastapi import Depends, Header, HTTPException
from pymongo import MongoClient

from registrar.config import settings
from registrar.database import get_session_factory, init_db
from registrar.services.catalog_service import DocumentTypeRegistry
from registrar.services.history_service import HistoryLog
from registrar.services.notification_service import Notifier, build_notifier
from registrar.services.payment_service import PaymentService
from registrar.services.request_service import RequestService
from registrar.stores.base import WorkflowStore
from registrar.stores.mongo import MongoWorkflowStore
from registrar.stores.sql import SqlWorkflowStore
from registrar.workflow import Actor, Role


@lru_cache
def get_store() -> WorkflowStore:
    if settings.storage_backend == "mongo":
        client = MongoClient(settings.mongo_url, tz_aware=True)
        return MongoWorkflowStore(client[settings.mongo_db])
    if settings.storage_backend != "sql":
        raise RuntimeError(f"Unknown storage backend: {settings.storage_backend!r}")
    init_db(settings.db_path)
    return SqlWorkflowStore(get_session_factory(settings.db_path))


@lru_cache
def get_notifier() -> Notifier:
    return build_notifier()


def get_catalog(store: WorkflowStore = Depends(get_store)) -> DocumentTypeRegistry:
    return DocumentTypeRegistry(store)


def get_request_service(
    store: WorkflowStore = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
) -> RequestService:
    return RequestService(store, HistoryLog(store), notifier)


def get_payment_service(
    store: WorkflowStore = Depends(get_store),
    notifier: Notifier = Depends(get_notifier),
) -> PaymentService:
    return PaymentService(store, HistoryLog(store), notifier)


async def current_actor(
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
) -> Actor:
    # Identity is asserted by the gateway in front of this API
    if not x_user_id or not x_user_id.isdigit():
        raise HTTPException(status_code=401, detail="Missing or invalid X-User-Id header")
    try:
        role = Role(x_user_role)
    except ValueError:
        raise HTTPException(status_code=401, detail=f"Missing or unknown X-User-Role: {x_user_role}")
    return Actor(user_id=int(x_user_id), role=role)


async def require_officer(actor: Actor = Depends(current_actor)) -> Actor:
    if not actor.is_officer:
        raise HTTPException(status_code=403, detail="Officer role required")
    return actor
