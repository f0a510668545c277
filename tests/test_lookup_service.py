import asyncio
import math

from tableview.schemas.errors import LookupFetchError
from tableview.schemas.filter import FilterDefinition, FilterType
from tableview.services.filter_registry import FilterRegistry
from tableview.services.lookup_service import (
    FilterLookupService,
    extract_items,
    item_to_option,
    reported_total,
)


class FakeFetch:
    """Answers lookups from a url -> payload table and records each call"""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def __call__(self, url):
        self.calls.append(url)
        response = self.responses.get(url)
        if isinstance(response, Exception):
            raise response
        if response is None:
            raise LookupFetchError(f"GET {url} returned 404", status=404)
        return response


def owners(count):
    return [{"id": f"u{i}", "name": f"User {i}"} for i in range(count)]


def make_registry():
    return FilterRegistry({
        "deals": [
            {"columnKey": "stage", "filterType": "select", "optionsEndpoint": "/api/stages", "itemsPath": "items"},
            {"columnKey": "ownerId", "filterType": "autocomplete", "searchEndpoint": "/api/owners",
             "resolveEndpoint": "/api/owners", "itemsPath": "items"},
            {"columnKey": "companyId", "filterType": "autocomplete", "searchEndpoint": "/api/companies",
             "resolveEndpoint": "/api/companies", "itemsPath": "items"},
            {"columnKey": "kind", "filterType": "multiselect",
             "staticOptions": [{"value": "new", "label": "New"}]},
            {"columnKey": "name", "filterType": "string"},
        ]
    })


def test_extract_items():
    assert extract_items({"data": {"items": [1, 2]}}, "data.items") == [1, 2]
    assert extract_items([1], None) == [1]
    assert extract_items({"items": "nope"}, "items") == []
    assert extract_items(None, "items") == []


def test_item_to_option_fallbacks():
    assert item_to_option({"id": 1, "name": "One"}).model_dump() == {"value": "1", "label": "One"}
    assert item_to_option({"email": "a@x.io"}, value_field="email", label_field="email").label == "a@x.io"
    profile = {"email": "a@x.io", "profile_fields": {"first_name": "Ada", "last_name": "Lovelace"}}
    assert item_to_option(profile, value_field="email").label == "Ada Lovelace"


def test_reported_total():
    assert reported_total([1, 2], [1, 2]) == math.inf
    assert reported_total({"pagination": {"total": 7}}, []) == 7
    assert reported_total({"total": "12"}, []) == 12
    assert reported_total({"total": "lots"}, []) == math.inf
    assert reported_total({"items": [1, 2, 3]}, [1, 2, 3]) == 3


def test_build_filter_configs():
    fetch = FakeFetch({
        "/api/stages": {"items": [{"id": "s1", "name": "Lead"}]},
        "/api/owners?pageSize=21": {"items": owners(3), "pagination": {"total": 3}},
        "/api/companies?pageSize=21": {"items": owners(21), "pagination": {"total": 250}},
    })
    service = FilterLookupService(make_registry(), fetch_json=fetch, dropdown_threshold=20)

    configs = {c.column_key: c for c in asyncio.run(service.build_filter_configs("deals"))}

    assert configs["stage"].filter_type == FilterType.SELECT
    assert [o.label for o in configs["stage"].filter_options] == ["Lead"]

    # Few owners: rendered as a dropdown with the probed options
    assert configs["ownerId"].filter_type == FilterType.SELECT
    assert len(configs["ownerId"].filter_options) == 3
    assert not configs["ownerId"].searchable

    assert configs["companyId"].filter_type == FilterType.AUTOCOMPLETE
    assert configs["companyId"].filter_options is None
    assert configs["companyId"].searchable
    assert configs["companyId"].resolvable

    assert [o.value for o in configs["kind"].filter_options] == ["new"]
    assert configs["name"].filter_options is None


def test_build_filter_configs_keeps_autocomplete_when_probe_fails():
    fetch = FakeFetch({"/api/stages": {"items": []}})
    service = FilterLookupService(make_registry(), fetch_json=fetch)
    configs = {c.column_key: c for c in asyncio.run(service.build_filter_configs("deals"))}
    assert configs["ownerId"].filter_type == FilterType.AUTOCOMPLETE
    assert configs["stage"].filter_options == []


def test_build_filter_configs_unknown_table():
    service = FilterLookupService(make_registry(), fetch_json=FakeFetch({}))
    assert asyncio.run(service.build_filter_configs("nope")) == []


def test_search_sends_query_and_limit():
    fetch = FakeFetch({"/api/owners?search=ada&pageSize=5&limit=5": {"items": owners(2)}})
    service = FilterLookupService(make_registry(), fetch_json=fetch)
    definition = service.registry.get_definition("deals", "ownerId")
    options = asyncio.run(service.search(definition, "ada", limit=5))
    assert [o.value for o in options] == ["u0", "u1"]


def test_search_failure_is_empty():
    service = FilterLookupService(make_registry(), fetch_json=FakeFetch({}))
    definition = service.registry.get_definition("deals", "ownerId")
    assert asyncio.run(service.search(definition, "ada")) == []


def test_resolve_by_path_segment():
    fetch = FakeFetch({"/api/owners/u7": {"id": "u7", "name": "User 7"}})
    service = FilterLookupService(make_registry(), fetch_json=fetch)
    definition = service.registry.get_definition("deals", "ownerId")
    option = asyncio.run(service.resolve(definition, "u7"))
    assert option.label == "User 7"
    assert option.value == "u7"


def test_resolve_email_uses_query_string_and_exact_match():
    definition = FilterDefinition(
        column_key="ownerUserId",
        filter_type="autocomplete",
        search_endpoint="/api/users",
        resolve_endpoint="/api/users",
        value_field="email",
        label_field="email",
    )
    fetch = FakeFetch({
        "/api/users?id=b%40x.io": [
            {"email": "a@x.io"},
            {"email": "b@x.io", "profile_fields": {"first_name": "Bea"}},
        ],
    })
    service = FilterLookupService(make_registry(), fetch_json=fetch)
    option = asyncio.run(service.resolve(definition, "b@x.io"))
    assert option.value == "b@x.io"
    assert option.label == "Bea"


def test_resolve_failure_is_none():
    service = FilterLookupService(make_registry(), fetch_json=FakeFetch({}))
    definition = service.registry.get_definition("deals", "ownerId")
    assert asyncio.run(service.resolve(definition, "u1")) is None
    assert asyncio.run(service.resolve(definition, "")) is None
