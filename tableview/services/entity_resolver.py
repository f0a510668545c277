import asyncio
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from urllib.parse import quote

from ..config import settings
from ..schemas.entity import EntityDefinition, ResolveRequest
from ..utils.http_client import fetch_json as default_fetch_json, with_query
from ..utils.logger import setup_logger
from .entity_registry import EntityRegistry, load_entity_registry
from .lookup_service import FetchJson

logger = setup_logger("tableview.lookup", settings.logging.LOOKUP_LOG_FILE)


class EntityLabelResolver:
    """Batch id -> label resolution for reference columns, with a label cache.

    Identical requests already in flight are awaited instead of re-sent.
    Failed lookups leave ids unresolved.
    """

    def __init__(
        self,
        registry: Optional[EntityRegistry] = None,
        fetch_json: Optional[FetchJson] = None,
        batch_threshold: Optional[int] = None,
    ):
        self.registry = registry if registry is not None else load_entity_registry(
            settings.lookup.ENTITY_REGISTRY_PATH
        )
        self.fetch_json = fetch_json or default_fetch_json
        self.batch_threshold = (
            settings.lookup.BATCH_RESOLVE_THRESHOLD if batch_threshold is None else batch_threshold
        )
        self._cache: Dict[str, Dict[str, str]] = {}
        self._in_flight: Dict[str, "asyncio.Future[None]"] = {}

    def get_label(self, entity_type: str, entity_id: str) -> Optional[str]:
        if not entity_id:
            return None
        return self._cache.get(entity_type, {}).get(str(entity_id))

    def is_cached(self, entity_type: str, entity_id: str) -> bool:
        if not entity_id:
            return True
        return str(entity_id) in self._cache.get(entity_type, {})

    async def resolve_entities(self, requests: Sequence[ResolveRequest]) -> None:
        pending = []
        for request in requests:
            definition = self.registry.get_definition(request.entity_type)
            if definition is None:
                continue
            ids = sorted({str(i) for i in request.ids if i and not self.is_cached(request.entity_type, i)})
            if ids:
                pending.append(self._resolve_once(request.entity_type, definition, ids))
        if pending:
            await asyncio.gather(*pending)

    async def _resolve_once(self, entity_type: str, definition: EntityDefinition, ids: List[str]) -> None:
        key = f"{entity_type}:{','.join(ids)}"
        if key in self._in_flight:
            await self._in_flight[key]
            return

        task = asyncio.ensure_future(self._fetch_labels(entity_type, definition, ids))
        self._in_flight[key] = task
        try:
            await task
        finally:
            self._in_flight.pop(key, None)

    async def _fetch_labels(self, entity_type: str, definition: EntityDefinition, ids: List[str]) -> None:
        if len(ids) <= self.batch_threshold:
            labels = await asyncio.gather(*(self._fetch_one(definition, i) for i in ids))
            results = {i: label for i, label in zip(ids, labels) if label}
        else:
            results = await self._fetch_batch(definition, ids)
        self._cache.setdefault(entity_type, {}).update(results)

    async def _fetch_one(self, definition: EntityDefinition, entity_id: str) -> Optional[str]:
        url = f"{definition.resolve_endpoint.rstrip('/')}/{quote(entity_id, safe='')}"
        try:
            data = await self.fetch_json(url)
        except Exception as e:
            logger.debug(f"Resolve {url} failed: {e}")
            return None
        if not isinstance(data, dict):
            return None
        nested = data.get("data") if isinstance(data.get("data"), dict) else {}
        label = data.get(definition.label_field) or nested.get(definition.label_field)
        return str(label) if label else None

    async def _fetch_batch(self, definition: EntityDefinition, ids: List[str]) -> Dict[str, str]:
        url = with_query(definition.search_endpoint, {"ids": ",".join(ids), "pageSize": len(ids)})
        try:
            data = await self.fetch_json(url)
        except Exception as e:
            logger.debug(f"Batch resolve {url} failed: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        nested = data.get("data") if isinstance(data.get("data"), dict) else {}
        items = data.get(definition.items_path) or nested.get(definition.items_path) or []

        results = {}
        for item in items if isinstance(items, list) else []:
            if not isinstance(item, dict):
                continue
            entity_id = item.get(definition.value_field)
            label = item.get(definition.label_field)
            if entity_id and label:
                results[str(entity_id)] = str(label)
        return results

    def populate_from_rows(
        self,
        entity_type: str,
        id_field: str,
        label_field: str,
        rows: Iterable[Mapping[str, Any]],
    ) -> None:
        """Seed the cache from rows whose backend already joined the labels"""
        cache = self._cache.setdefault(entity_type, {})
        for row in rows:
            entity_id = row.get(id_field)
            label = row.get(label_field)
            if entity_id and label:
                cache[str(entity_id)] = str(label)

    def clear_cache(self, entity_type: Optional[str] = None) -> None:
        if entity_type is None:
            self._cache.clear()
        else:
            self._cache.pop(entity_type, None)
