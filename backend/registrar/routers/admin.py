from fastapi import APIRouter, Depends

from registrar.dependencies import get_request_service, require_officer
from registrar.schemas.request import GlobalStats, RequestRecord
from registrar.services.request_service import RequestService

router = APIRouter(
    prefix="/admin",
    tags=["admin"],
    dependencies=[Depends(require_officer)],
)


@router.get("/requests", response_model=list[RequestRecord])
async def list_open_requests(service: RequestService = Depends(get_request_service)):
    """Open requests: new first, then in processing, then ready for pickup."""
    return service.list_open_requests()


@router.get("/requests/history", response_model=list[RequestRecord])
async def list_closed_requests(service: RequestService = Depends(get_request_service)):
    return service.list_closed_requests()


@router.get("/stats", response_model=GlobalStats)
async def get_stats(service: RequestService = Depends(get_request_service)):
    return service.get_global_stats()
