from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import List, Dict, Any, Optional, Union
from enum import Enum


class FilterType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    DATERANGE = "daterange"
    SELECT = "select"
    MULTISELECT = "multiselect"
    AUTOCOMPLETE = "autocomplete"


class FilterOperator(str, Enum):
    CONTAINS = "contains"
    EQUALS = "equals"
    IN = "in"
    DATE_EQUALS = "dateEquals"
    DATE_AFTER = "dateAfter"
    DATE_BEFORE = "dateBefore"
    IS_TRUE = "isTrue"
    IS_FALSE = "isFalse"


class FilterMode(str, Enum):
    ALL = "all"
    ANY = "any"


class CamelModel(BaseModel):
    """Accepts snake_case or camelCase input, emits camelCase by alias"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FilterOption(CamelModel):
    value: str
    label: str


class FilterDefinition(CamelModel):
    """One filterable column of a table"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    column_key: str
    label: str = ""
    filter_type: FilterType
    options_endpoint: Optional[str] = None
    static_options: Optional[List[FilterOption]] = None
    search_endpoint: Optional[str] = None
    resolve_endpoint: Optional[str] = None
    value_field: str = "id"
    label_field: str = "name"
    items_path: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _default_label(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("label"):
            key = data.get("column_key") or data.get("columnKey")
            if key:
                data = {**data, "label": key}
        return data


class ServerTableFilter(BaseModel):
    """The canonical predicate handed to query execution"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    field: str
    operator: str
    value: Any = None


class ViewFilterSet(CamelModel):
    filters: List[ServerTableFilter] = Field(default_factory=list)
    filter_mode: FilterMode = FilterMode.ALL


class FilterConfig(CamelModel):
    """A filter definition as presented to the UI, with options resolved"""
    column_key: str
    label: str
    filter_type: FilterType
    filter_options: Optional[List[FilterOption]] = None
    searchable: bool = False
    resolvable: bool = False


# Raw UI representation: column key -> single string or list of strings
GlobalFilterValues = Dict[str, Union[str, List[str], None]]


class NormalizeRequest(CamelModel):
    values: GlobalFilterValues = Field(default_factory=dict)


class MergeRequest(CamelModel):
    view_filters: List[ServerTableFilter] = Field(default_factory=list)
    view_filter_mode: FilterMode = FilterMode.ALL
    quick_filters: List[ServerTableFilter] = Field(default_factory=list)
