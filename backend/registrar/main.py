import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from registrar.config import settings
from registrar.dependencies import get_store
from registrar.errors import RegistrarError
from registrar.routers import admin, document_types, payments, requests
from registrar.services.catalog_service import seed_document_types
from registrar.utils.filesystem import ensure_data_dirs

logger = logging.getLogger("registrar")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    ensure_data_dirs()
    store = get_store()
    if settings.seed_document_types:
        seed_document_types(store)
    logger.info("Registrar portal started (%s storage).", settings.storage_backend)
    yield


app = FastAPI(
    title="Registrar Document Requests",
    description="Document request queue, payment verification and pickup workflow",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RegistrarError)
async def registrar_error_handler(request: Request, exc: RegistrarError):
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


app.include_router(document_types.router, prefix=settings.api_prefix)
app.include_router(requests.router, prefix=settings.api_prefix)
app.include_router(payments.router, prefix=settings.api_prefix)
app.include_router(admin.router, prefix=settings.api_prefix)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}
