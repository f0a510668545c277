from pydantic import BaseModel, Field, model_validator
from pydantic.json_schema import SkipJsonSchema
from typing import Callable, List, Dict, Any, Optional, Union
from enum import Enum

from .filter import CamelModel, FilterMode, GlobalFilterValues, ServerTableFilter


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class SortSpec(CamelModel):
    field: str
    direction: SortDirection = SortDirection.ASC

    @model_validator(mode="before")
    @classmethod
    def _accept_column_sort(cls, data: Any) -> Any:
        # Persisted views store sorting as {"id": ..., "desc": bool}
        if isinstance(data, dict) and "field" not in data and "id" in data:
            return {
                "field": str(data.get("id") or ""),
                "direction": SortDirection.DESC if data.get("desc") else SortDirection.ASC,
            }
        if isinstance(data, dict) and isinstance(data.get("direction"), str):
            return {**data, "direction": data["direction"].lower()}
        return data

    @property
    def descending(self) -> bool:
        return self.direction == SortDirection.DESC


# Ranks a group from (group value, rows in group); lower ranks come first
GroupRanking = Callable[[Any, List[Dict[str, Any]]], float]


class GroupBy(CamelModel):
    field: str
    sort_order: Union[List[str], SkipJsonSchema[GroupRanking], None] = None
    default_collapsed: bool = False


class TableView(CamelModel):
    """A persisted, named view of a table as stored by the views backend"""
    id: str
    name: str
    table_id: str = ""
    description: Optional[str] = None
    is_default: bool = False
    is_system: bool = False
    is_shared: bool = False
    column_visibility: Optional[Dict[str, bool]] = None
    sorting: Optional[List[SortSpec]] = None
    group_by: Optional[GroupBy] = None
    filters: List[ServerTableFilter] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None

    @property
    def filter_mode(self) -> FilterMode:
        mode = (self.metadata or {}).get("filterMode")
        return FilterMode.ANY if mode == FilterMode.ANY.value else FilterMode.ALL


class ServerDataTableQuery(CamelModel):
    page: int
    page_size: int
    search: str = ""
    filters: List[ServerTableFilter] = Field(default_factory=list)
    filter_mode: FilterMode = FilterMode.ALL
    sorting: List[SortSpec] = Field(default_factory=list)
    sort_by: Optional[str] = None
    sort_order: Optional[SortDirection] = None


class QueryRequest(CamelModel):
    values: GlobalFilterValues = Field(default_factory=dict)
    view: Optional[TableView] = None
    page: int = Field(default=1, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1)
    search: str = ""
    sorting: Optional[List[SortSpec]] = None


class RowsRequest(CamelModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    sorting: List[SortSpec] = Field(default_factory=list)
    group_by: Optional[GroupBy] = None
    page: int = Field(default=1, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1)
    collapsed_groups: List[str] = Field(default_factory=list)
    group_pages: Dict[str, int] = Field(default_factory=dict)


class PageResponse(CamelModel):
    total_rows: int
    total_pages: int
    current_page: int
    page_size: int
    rows: List[Dict[str, Any]]


class RowsResponse(PageResponse):
    # Flattened group headers, rows and "show more" markers when grouped
    items: Optional[List[Dict[str, Any]]] = None


class PathResponse(BaseModel):
    path: Optional[str] = None


class FieldResponse(BaseModel):
    field: Optional[str] = None
