import json
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import quote

from pydantic import ValidationError

from ..schemas.entity import EntityDefinition
from ..schemas.errors import RegistryConfigurationError

ID_PLACEHOLDER = ":id"


class EntityRegistry:
    """Immutable entity type -> reference resolution metadata"""

    def __init__(self, entities: Mapping[str, Union[EntityDefinition, Dict[str, Any]]]):
        built = {}
        for entity_type, definition in entities.items():
            if isinstance(definition, EntityDefinition):
                built[entity_type] = definition
                continue
            try:
                built[entity_type] = EntityDefinition.model_validate(definition)
            except ValidationError as e:
                raise RegistryConfigurationError(
                    f"Invalid entity definition '{entity_type}': {e}"
                ) from e
        self._entities = MappingProxyType(built)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "EntityRegistry":
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise RegistryConfigurationError(f"Cannot read entity registry {path}: {e}") from e
        if not isinstance(data, dict):
            raise RegistryConfigurationError(f"Entity registry {path} must be a JSON object")
        return cls(data)

    @property
    def entity_types(self) -> List[str]:
        return list(self._entities)

    def get_definition(self, entity_type: str) -> Optional[EntityDefinition]:
        return self._entities.get(entity_type)

    def has_definition(self, entity_type: str) -> bool:
        return entity_type in self._entities

    def get_label_from_row_field(self, entity_type: str, column_key: str) -> Optional[str]:
        """Row field that already carries the joined label for this column, if any"""
        definition = self._entities.get(entity_type)
        if definition is None:
            return None
        return definition.label_from_row_map.get(column_key) or None

    def get_detail_path(self, entity_type: str, entity_id: str) -> Optional[str]:
        definition = self._entities.get(entity_type)
        if definition is None or not definition.detail_path:
            return None
        # Same escaping as encodeURIComponent
        escaped = quote(str(entity_id), safe="!*'()")
        return definition.detail_path.replace(ID_PLACEHOLDER, escaped, 1)


DEFAULT_ENTITIES: Dict[str, Dict[str, Any]] = {
    "crm.contact": {
        "resolveEndpoint": "/api/crm/contacts",
        "searchEndpoint": "/api/crm/contacts",
        "detailPath": "/crm/contacts/:id",
        "labelFromRowMap": {
            "relatedContactId": "contactName",
            "primaryContactId": "contactName",
            "contactId": "contactName",
        },
    },
    "crm.opportunity": {
        "resolveEndpoint": "/api/crm/opportunities",
        "searchEndpoint": "/api/crm/opportunities",
        "detailPath": "/crm/opportunities/:id",
        "labelFromRowMap": {
            "relatedOpportunityId": "opportunityName",
            "opportunityId": "opportunityName",
        },
    },
    "crm.prospect": {
        "resolveEndpoint": "/api/crm/prospects",
        "searchEndpoint": "/api/crm/prospects",
        "detailPath": "/crm/prospects/:id",
        "labelFromRowMap": {
            "companyId": "companyName",
            "prospectId": "prospectName",
        },
    },
    # No detail page for users
    "auth.user": {
        "resolveEndpoint": "/api/crm/users",
        "searchEndpoint": "/api/crm/users",
        "valueField": "email",
        "labelFromRowMap": {
            "userId": "userName",
            "ownerUserId": "ownerName",
            "assigneeUserId": "assigneeName",
            "createdByUserId": "createdByName",
        },
    },
    "project": {
        "resolveEndpoint": "/api/projects",
        "searchEndpoint": "/api/projects",
        "detailPath": "/projects/:id",
        "labelFromRowMap": {
            "projectId": "projectName",
        },
    },
}


def load_entity_registry(path: Optional[str] = None) -> EntityRegistry:
    if path:
        return EntityRegistry.from_file(path)
    return EntityRegistry(DEFAULT_ENTITIES)
