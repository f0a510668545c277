from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Dict, List, Optional

from .filter import CamelModel


class EntityDefinition(CamelModel):
    """How to resolve, search and link one kind of referenced record"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    resolve_endpoint: str
    search_endpoint: str
    label_field: str = "name"
    value_field: str = "id"
    items_path: str = "items"
    # URL template with an :id placeholder
    detail_path: Optional[str] = None
    # column key -> row field already carrying the joined label
    label_from_row_map: Dict[str, str] = Field(default_factory=dict)


class ResolveRequest(CamelModel):
    entity_type: str
    ids: List[str]
