from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from stocksync.core.exceptions import (
    BaseServiceError,
    ProductAlreadyMappedError,
    ResolutionError,
    ValidationError,
)
from stocksync.dependencies import get_mapping_service, get_matching_service
from stocksync.schemas.product_mapping import (
    AutoMatchRequest,
    AutoMatchResult,
    ConsolidatedInventoryItem,
    DismissSuggestionRequest,
    MappingCreate,
    MappingProductsChange,
    MappingRead,
    MappingSuggestion,
    MappingUpdate,
    ProductSearchResult,
)
from stocksync.services.mapping_service import MappingService
from stocksync.services.matching_service import MatchingService

router = APIRouter(prefix="/companies/{company_id}/products/mappings", tags=["mappings"])


def _http_error(e: BaseServiceError) -> HTTPException:
    if isinstance(e, ResolutionError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ProductAlreadyMappedError):
        return HTTPException(status_code=409, detail={"message": str(e), "master_skus": e.master_skus})
    return HTTPException(status_code=400, detail=str(e))


@router.get("", response_model=List[MappingRead])
async def list_mappings(company_id: int, service: MappingService = Depends(get_mapping_service)):
    return await service.get_mappings(company_id)


@router.post("", response_model=MappingRead, status_code=201)
async def create_mapping(
    company_id: int,
    body: MappingCreate,
    service: MappingService = Depends(get_mapping_service),
):
    try:
        return await service.create_mapping(company_id, body.master_sku, body.product_ids, name=body.name)
    except (ResolutionError, ValidationError) as e:
        raise _http_error(e)


# Static paths are declared before /{mapping_id}

@router.get("/suggestions", response_model=List[MappingSuggestion])
async def get_suggestions(
    company_id: int,
    store_ids: Optional[List[int]] = Query(None),
    service: MatchingService = Depends(get_matching_service),
):
    return await service.get_suggestions(company_id, store_ids)


@router.get("/suggestions/dismissed", response_model=List[str])
async def get_dismissed_suggestions(company_id: int, service: MatchingService = Depends(get_matching_service)):
    return await service.get_dismissed_suggestions(company_id)


@router.post("/suggestions/dismiss", status_code=204)
async def dismiss_suggestion(
    company_id: int,
    body: DismissSuggestionRequest,
    service: MatchingService = Depends(get_matching_service),
):
    await service.dismiss_suggestion(company_id, body.suggestion_key)
    return Response(status_code=204)


@router.delete("/suggestions/dismiss", status_code=204)
async def restore_suggestion(
    company_id: int,
    body: DismissSuggestionRequest,
    service: MatchingService = Depends(get_matching_service),
):
    await service.restore_suggestion(company_id, body.suggestion_key)
    return Response(status_code=204)


@router.post("/auto", response_model=AutoMatchResult)
async def auto_match(
    company_id: int,
    body: Optional[AutoMatchRequest] = None,
    service: MatchingService = Depends(get_matching_service),
):
    return await service.auto_match(company_id, body.store_ids if body else None)


@router.get("/search", response_model=List[ProductSearchResult])
async def search_products(
    company_id: int,
    q: str = Query(""),
    store_id: Optional[int] = None,
    service: MatchingService = Depends(get_matching_service),
):
    return await service.search_products_for_mapping(company_id, q, store_id)


@router.get("/inventory", response_model=List[ConsolidatedInventoryItem])
async def consolidated_inventory(company_id: int, service: MappingService = Depends(get_mapping_service)):
    return await service.get_consolidated_inventory(company_id)


@router.get("/{mapping_id}", response_model=MappingRead)
async def get_mapping(company_id: int, mapping_id: int, service: MappingService = Depends(get_mapping_service)):
    try:
        return await service.get_mapping(company_id, mapping_id)
    except ResolutionError as e:
        raise _http_error(e)


@router.put("/{mapping_id}", response_model=MappingRead)
async def update_mapping(
    company_id: int,
    mapping_id: int,
    body: MappingUpdate,
    service: MappingService = Depends(get_mapping_service),
):
    try:
        return await service.update_mapping(company_id, mapping_id, body)
    except (ResolutionError, ValidationError) as e:
        raise _http_error(e)


@router.delete("/{mapping_id}", status_code=204)
async def delete_mapping(company_id: int, mapping_id: int, service: MappingService = Depends(get_mapping_service)):
    try:
        await service.delete_mapping(company_id, mapping_id)
    except ResolutionError as e:
        raise _http_error(e)
    return Response(status_code=204)


@router.post("/{mapping_id}/products", response_model=MappingRead)
async def add_products(
    company_id: int,
    mapping_id: int,
    body: MappingProductsChange,
    service: MappingService = Depends(get_mapping_service),
):
    try:
        return await service.add_products(company_id, mapping_id, body.product_ids)
    except (ResolutionError, ValidationError) as e:
        raise _http_error(e)


@router.delete("/{mapping_id}/products", response_model=MappingRead)
async def remove_products(
    company_id: int,
    mapping_id: int,
    body: MappingProductsChange,
    service: MappingService = Depends(get_mapping_service),
):
    try:
        return await service.remove_products(company_id, mapping_id, body.product_ids)
    except (ResolutionError, ValidationError) as e:
        raise _http_error(e)
