from dataclasses import asdict
from pydantic.alias_generators import to_camel
from typing import List

from fastapi import APIRouter, HTTPException, Query, Body

from ..config import settings
from ..schemas.entity import EntityDefinition
from ..schemas.filter import (
    FilterConfig,
    FilterDefinition,
    MergeRequest,
    NormalizeRequest,
    ServerTableFilter,
    ViewFilterSet,
)
from ..schemas.view import (
    FieldResponse,
    PathResponse,
    QueryRequest,
    RowsRequest,
    RowsResponse,
    ServerDataTableQuery,
)
from ..services.entity_registry import load_entity_registry
from ..services.filter_service import FilterService, merge_view_and_quick_filters
from ..services.lookup_service import FilterLookupService
from ..services.table_view_state import TableViewState
from ..utils.logger import setup_logger

logger = setup_logger("tableview.api", settings.logging.API_LOG_FILE)

router = APIRouter()
filter_service = FilterService()
entity_registry = load_entity_registry(settings.lookup.ENTITY_REGISTRY_PATH)
lookup_service = FilterLookupService(filter_service.registry)


def _page_size(requested):
    if requested is None:
        return None
    return min(requested, settings.table.MAX_PAGE_SIZE)


@router.get("/tables/{table_id}/filters", response_model=List[FilterDefinition])
async def get_table_filters(table_id: str) -> List[FilterDefinition]:
    """Filter definitions registered for a table (empty for unknown tables)"""
    return list(filter_service.registry.get_filters(table_id))


@router.get("/tables/{table_id}/filter-configs", response_model=List[FilterConfig])
async def get_filter_configs(table_id: str) -> List[FilterConfig]:
    return await lookup_service.build_filter_configs(table_id)


@router.post("/tables/{table_id}/filters/normalize", response_model=List[ServerTableFilter])
async def normalize_filters(
    table_id: str,
    request: NormalizeRequest = Body(...)
) -> List[ServerTableFilter]:
    return filter_service.normalize(table_id, request.values)


@router.post("/filters/merge", response_model=ViewFilterSet)
async def merge_filters(request: MergeRequest = Body(...)) -> ViewFilterSet:
    return merge_view_and_quick_filters(request.view_filters, request.view_filter_mode, request.quick_filters)


@router.post("/tables/{table_id}/query", response_model=ServerDataTableQuery)
async def build_query(
    table_id: str,
    request: QueryRequest = Body(...)
) -> ServerDataTableQuery:
    try:
        state = TableViewState(
            table_id,
            filter_service,
            page_size=_page_size(request.page_size),
            manual_pagination=True,
        )
        if request.view is not None:
            state.select_view(request.view)
        if request.sorting is not None:
            state.set_sorting(request.sorting)
        state.set_quick_filters(request.values)
        state.set_search(request.search)
        state.set_page(request.page)
        return state.query
    except ValueError as e:
        logger.warning(f"Invalid query request for {table_id}: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))


def _item_dict(item) -> dict:
    return {to_camel(key): value for key, value in asdict(item).items()}


@router.post("/tables/{table_id}/rows", response_model=RowsResponse)
async def arrange_rows(
    table_id: str,
    request: RowsRequest = Body(...)
) -> RowsResponse:
    """Sort, page and group posted rows the way a client-side table shows them"""
    try:
        state = TableViewState(
            table_id,
            filter_service,
            page_size=_page_size(request.page_size),
            initial_sorting=request.sorting,
            group_by=request.group_by,
        )
        if request.collapsed_groups:
            state.collapse_groups(request.collapsed_groups)
        state.set_group_pages(request.group_pages)
        state.set_page(request.page)
        view = state.row_view(request.rows)
    except ValueError as e:
        logger.warning(f"Invalid rows request for {table_id}: {str(e)}")
        raise HTTPException(status_code=400, detail=str(e))

    return RowsResponse(
        total_rows=view.page.total_rows,
        total_pages=view.page.total_pages,
        current_page=view.page.current_page,
        page_size=view.page.page_size,
        rows=view.page.rows,
        items=[_item_dict(item) for item in view.items] if view.items is not None else None,
    )


def _entity_or_404(entity_type: str) -> EntityDefinition:
    definition = entity_registry.get_definition(entity_type)
    if definition is None:
        raise HTTPException(status_code=404, detail=f"Unknown entity type: {entity_type}")
    return definition


@router.get("/entities/{entity_type}", response_model=EntityDefinition)
async def get_entity(entity_type: str) -> EntityDefinition:
    return _entity_or_404(entity_type)


@router.get("/entities/{entity_type}/detail-path", response_model=PathResponse)
async def get_detail_path(
    entity_type: str,
    id: str = Query(..., description="Id of the referenced record")
) -> PathResponse:
    _entity_or_404(entity_type)
    return PathResponse(path=entity_registry.get_detail_path(entity_type, id))


@router.get("/entities/{entity_type}/label-field", response_model=FieldResponse)
async def get_label_field(
    entity_type: str,
    column_key: str = Query(..., alias="columnKey")
) -> FieldResponse:
    _entity_or_404(entity_type)
    return FieldResponse(field=entity_registry.get_label_from_row_field(entity_type, column_key))
