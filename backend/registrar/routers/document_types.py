from fastapi import APIRouter, Depends

from registrar.dependencies import current_actor, get_catalog
from registrar.schemas.document_type import DocumentTypeRecord
from registrar.services.catalog_service import DocumentTypeRegistry

router = APIRouter(
    prefix="/document-types",
    tags=["document-types"],
    dependencies=[Depends(current_actor)],
)


@router.get("", response_model=list[DocumentTypeRecord])
async def list_document_types(catalog: DocumentTypeRegistry = Depends(get_catalog)):
    return catalog.list_active()


@router.get("/{document_type_id}", response_model=DocumentTypeRecord)
async def get_document_type(document_type_id: int, catalog: DocumentTypeRegistry = Depends(get_catalog)):
    return catalog.get_active(document_type_id)
