from typing import Any, Dict, Optional
from urllib.parse import urlencode

import aiohttp

from ..config import settings
from ..schemas.errors import LookupFetchError


def with_query(endpoint: str, params: Dict[str, Any]) -> str:
    """Append query parameters, respecting any already on the endpoint"""
    if not params:
        return endpoint
    separator = "&" if "?" in endpoint else "?"
    return f"{endpoint}{separator}{urlencode(params)}"


async def fetch_json(url: str, timeout: Optional[float] = None) -> Any:
    """GET a lookup endpoint and decode its JSON body.

    Raises LookupFetchError for non-2xx answers and undecodable bodies;
    transport errors propagate as aiohttp.ClientError.
    """
    full_url = settings.resolve_lookup_url(url)
    client_timeout = aiohttp.ClientTimeout(total=timeout or settings.lookup.TIMEOUT_SECONDS)

    async with aiohttp.ClientSession(headers={"Accept": "application/json"}) as session:
        async with session.get(full_url, timeout=client_timeout) as response:
            if response.status >= 400:
                raise LookupFetchError(f"GET {full_url} returned {response.status}", status=response.status)
            try:
                return await response.json(content_type=None)
            except ValueError as e:
                raise LookupFetchError(f"GET {full_url} returned invalid JSON: {e}", status=response.status) from e
