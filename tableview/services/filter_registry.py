import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import ValidationError

from ..schemas.errors import RegistryConfigurationError
from ..schemas.filter import FilterDefinition, FilterType


class FilterRegistry:
    """Immutable mapping of table id -> ordered filter definitions.

    Column keys must be unique within a table; violations are configuration
    errors and are raised when the registry is built. Unknown table ids are
    not errors: they simply have no filters.
    """

    def __init__(self, tables: Mapping[str, Sequence[Union[FilterDefinition, Dict[str, Any]]]]):
        built = {}
        for table_id, definitions in tables.items():
            parsed = tuple(self._parse(table_id, d) for d in definitions)
            seen = set()
            for definition in parsed:
                if definition.column_key in seen:
                    raise RegistryConfigurationError(
                        f"Duplicate column key '{definition.column_key}' in table '{table_id}'"
                    )
                seen.add(definition.column_key)
            built[table_id] = parsed
        self._tables = MappingProxyType(built)
        self._by_key = MappingProxyType({
            table_id: MappingProxyType({d.column_key: d for d in defs})
            for table_id, defs in built.items()
        })

    @staticmethod
    def _parse(table_id: str, definition: Union[FilterDefinition, Dict[str, Any]]) -> FilterDefinition:
        if isinstance(definition, FilterDefinition):
            return definition
        try:
            return FilterDefinition.model_validate(definition)
        except ValidationError as e:
            raise RegistryConfigurationError(f"Invalid filter definition in table '{table_id}': {e}") from e

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "FilterRegistry":
        """Load a registry from a JSON object of table id -> definition list"""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RegistryConfigurationError(f"Cannot read filter registry {path}: {e}") from e
        if not isinstance(data, dict):
            raise RegistryConfigurationError(f"Filter registry {path} must be a JSON object")
        return cls(data)

    @property
    def table_ids(self) -> List[str]:
        return list(self._tables)

    def get_filters(self, table_id: Optional[str]) -> Tuple[FilterDefinition, ...]:
        if not table_id:
            return ()
        return self._tables.get(table_id, ())

    def has_filters(self, table_id: str) -> bool:
        return len(self.get_filters(table_id)) > 0

    def get_definition(self, table_id: Optional[str], column_key: str) -> Optional[FilterDefinition]:
        if not table_id:
            return None
        return self._by_key.get(table_id, {}).get(column_key)

    def filter_types(self, table_id: Optional[str]) -> Dict[str, FilterType]:
        return {d.column_key: d.filter_type for d in self.get_filters(table_id)}


_USER_DIRECTORY = "/api/proxy/auth/directory/users"


def _owner_filter() -> Dict[str, Any]:
    # Directory endpoint answers with a plain list, so there is no items path
    return {
        "columnKey": "ownerUserId",
        "label": "Owner",
        "filterType": "autocomplete",
        "searchEndpoint": _USER_DIRECTORY,
        "resolveEndpoint": _USER_DIRECTORY,
        "valueField": "email",
        "labelField": "email",
    }


def _lookup(column_key: str, label: str, filter_type: str, endpoint: str,
            value_field: str = "id", label_field: str = "name") -> Dict[str, Any]:
    definition = {
        "columnKey": column_key,
        "label": label,
        "filterType": filter_type,
        "itemsPath": "items",
        "valueField": value_field,
        "labelField": label_field,
    }
    if filter_type == "autocomplete":
        definition["searchEndpoint"] = endpoint
        definition["resolveEndpoint"] = endpoint
    else:
        definition["optionsEndpoint"] = endpoint
    return definition


def _text(column_key: str, label: str) -> Dict[str, Any]:
    return {"columnKey": column_key, "label": label, "filterType": "string"}


DEFAULT_TABLE_FILTERS: Dict[str, List[Dict[str, Any]]] = {
    "crm.activities": [
        _lookup("activityType", "Type", "select", "/api/crm/activity-types",
                value_field="name"),
        _text("taskDescription", "Description"),
        _lookup("relatedContactId", "Contact", "autocomplete", "/api/crm/contacts"),
        _lookup("relatedOpportunityId", "Opportunity", "autocomplete", "/api/crm/opportunities"),
        _lookup("likelihoodTypeName", "Likelihood", "select", "/api/crm/opportunity-likelihood-types",
                value_field="name"),
        {**_owner_filter(), "columnKey": "userId", "label": "Assignee"},
        {"columnKey": "activityDate", "label": "Activity Date", "filterType": "daterange"},
    ],
    "crm.prospects": [
        _text("name", "Name"),
        _text("website", "Website"),
        _text("companyEmail", "Email"),
        _text("companyPhone", "Phone"),
        _owner_filter(),
    ],
    "crm.contacts": [
        _text("name", "Name"),
        _text("email", "Email"),
        _text("phone", "Phone"),
        _text("title", "Title"),
        _lookup("companyId", "Company", "autocomplete", "/api/crm/prospects"),
        _owner_filter(),
    ],
    "crm.opportunities": [
        _text("name", "Name"),
        _lookup("pipelineStage", "Stage", "select", "/api/crm/pipeline-stages"),
        _lookup("likelihoodTypeId", "Likelihood", "select", "/api/crm/opportunity-likelihood-types"),
        _lookup("primaryContactId", "Contact", "autocomplete", "/api/crm/contacts"),
        _lookup("companyId", "Company", "autocomplete", "/api/crm/prospects"),
        _owner_filter(),
    ],
    "projects": [
        _text("name", "Name"),
        _lookup("statusId", "Status", "select", "/api/projects/statuses"),
    ],
}


def load_filter_registry(path: Optional[str] = None) -> FilterRegistry:
    if path:
        return FilterRegistry.from_file(path)
    return FilterRegistry(DEFAULT_TABLE_FILTERS)
