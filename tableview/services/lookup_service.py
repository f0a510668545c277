import asyncio
import math
from typing import Any, Awaitable, Callable, List, Optional, Tuple, Union
from urllib.parse import quote

from ..config import settings
from ..schemas.filter import FilterConfig, FilterDefinition, FilterOption, FilterType
from ..utils.http_client import fetch_json as default_fetch_json, with_query
from ..utils.logger import setup_logger
from .filter_registry import FilterRegistry, load_filter_registry

logger = setup_logger("tableview.lookup", settings.logging.LOOKUP_LOG_FILE)

FetchJson = Callable[[str], Awaitable[Any]]


def extract_items(payload: Any, items_path: Optional[str]) -> List[Any]:
    """Walk a dot path into a response; anything but a list yields []"""
    items = payload
    if items_path:
        for part in items_path.split("."):
            items = items.get(part) if isinstance(items, dict) else None
    return items if isinstance(items, list) else []


def _profile_display_name(item: dict) -> str:
    profile = item.get("profile_fields")
    if not isinstance(profile, dict):
        return ""
    parts = [profile.get("first_name"), profile.get("last_name")]
    return " ".join(str(p) for p in parts if p).strip()


def item_to_option(item: Any, value_field: str = "id", label_field: str = "name") -> FilterOption:
    if not isinstance(item, dict):
        return FilterOption(value=str(item), label=str(item))
    value = str(item.get(value_field) or item.get("id") or "")
    label = str(item.get(label_field) or item.get("name") or item.get(value_field) or "")
    return FilterOption(value=value, label=_profile_display_name(item) or label)


def reported_total(payload: Any, items: List[Any]) -> Union[int, float]:
    """Total row count the endpoint reports.

    A bare list carries no pagination, so its size cannot be trusted to be
    the full set; it counts as unbounded.
    """
    if isinstance(payload, list):
        return math.inf
    pagination = payload.get("pagination") if isinstance(payload, dict) else None
    for source in (pagination, payload):
        if isinstance(source, dict) and source.get("total") is not None:
            try:
                return float(source["total"])
            except (TypeError, ValueError):
                return math.inf
    return len(items)


class FilterLookupService:
    """Options, search and resolve for select and autocomplete filters.

    Every lookup failure is reported as "no results" ([] or None).
    """

    def __init__(
        self,
        registry: Optional[FilterRegistry] = None,
        fetch_json: Optional[FetchJson] = None,
        dropdown_threshold: Optional[int] = None,
    ):
        self.registry = registry if registry is not None else load_filter_registry(
            settings.lookup.FILTER_REGISTRY_PATH
        )
        self.fetch_json = fetch_json or default_fetch_json
        self.dropdown_threshold = (
            settings.lookup.DROPDOWN_THRESHOLD if dropdown_threshold is None else dropdown_threshold
        )

    async def _fetch(self, url: str) -> Optional[Any]:
        try:
            return await self.fetch_json(url)
        except Exception as e:
            logger.debug(f"Lookup {url} failed: {e}")
            return None

    async def fetch_options(self, definition: FilterDefinition) -> List[FilterOption]:
        if definition.static_options:
            return list(definition.static_options)
        if not definition.options_endpoint:
            return []
        payload = await self._fetch(definition.options_endpoint)
        items = extract_items(payload, definition.items_path)
        return [item_to_option(i, definition.value_field, definition.label_field) for i in items]

    async def probe_autocomplete(self, definition: FilterDefinition) -> Tuple[List[FilterOption], Union[int, float]]:
        """Fetch just past the dropdown threshold to learn how many options exist"""
        url = with_query(definition.search_endpoint, {"pageSize": self.dropdown_threshold + 1})
        payload = await self._fetch(url)
        if payload is None:
            # Unknown size: stay an autocomplete
            return [], math.inf
        items = extract_items(payload, definition.items_path)
        options = [item_to_option(i, definition.value_field, definition.label_field) for i in items]
        return options, reported_total(payload, items)

    async def build_filter_configs(self, table_id: str) -> List[FilterConfig]:
        definitions = self.registry.get_filters(table_id)

        async def configure(definition: FilterDefinition) -> FilterConfig:
            filter_type = definition.filter_type
            options = None

            if filter_type in (FilterType.SELECT, FilterType.MULTISELECT):
                options = await self.fetch_options(definition)
            elif filter_type == FilterType.AUTOCOMPLETE and definition.search_endpoint:
                probed, total = await self.probe_autocomplete(definition)
                # Small option sets render as a plain dropdown
                if total <= self.dropdown_threshold:
                    filter_type = FilterType.SELECT
                    options = probed

            searchable = filter_type == FilterType.AUTOCOMPLETE and bool(definition.search_endpoint)
            return FilterConfig(
                column_key=definition.column_key,
                label=definition.label,
                filter_type=filter_type,
                filter_options=options,
                searchable=searchable,
                resolvable=searchable and bool(definition.resolve_endpoint),
            )

        return list(await asyncio.gather(*(configure(d) for d in definitions)))

    async def search(self, definition: FilterDefinition, query: str, limit: int = 20) -> List[FilterOption]:
        if not definition.search_endpoint:
            return []
        url = with_query(definition.search_endpoint, {"search": query, "pageSize": limit, "limit": limit})
        payload = await self._fetch(url)
        items = extract_items(payload, definition.items_path)
        return [item_to_option(i, definition.value_field, definition.label_field) for i in items]

    async def resolve(self, definition: FilterDefinition, value: str) -> Optional[FilterOption]:
        """Look up the display label of a stored filter value"""
        if not value or not definition.resolve_endpoint:
            return None
        if "@" in value or "/" in value:
            # Email-like ids go in the query string
            url = with_query(definition.resolve_endpoint, {"id": value})
        else:
            url = f"{definition.resolve_endpoint.rstrip('/')}/{quote(value, safe='')}"

        payload = await self._fetch(url)
        if isinstance(payload, list):
            matches = [i for i in payload if isinstance(i, dict) and i.get(definition.value_field) == value]
            item = matches[0] if matches else (payload[0] if payload else None)
        elif isinstance(payload, dict):
            items = payload.get("items")
            item = items[0] if isinstance(items, list) and items else payload
        else:
            item = None
        if not isinstance(item, dict):
            return None

        resolved_value = str(item.get(definition.value_field) or value)
        label = str(item.get(definition.label_field) or item.get(definition.value_field) or value)
        return FilterOption(value=resolved_value, label=_profile_display_name(item) or label)
