import json

import pytest

from tableview.schemas.errors import RegistryConfigurationError
from tableview.schemas.filter import FilterDefinition, FilterType
from tableview.services.entity_registry import EntityRegistry, load_entity_registry
from tableview.services.filter_registry import FilterRegistry, load_filter_registry


def test_unknown_table_has_no_filters(filter_registry):
    assert filter_registry.get_filters("does.not.exist") == ()
    assert filter_registry.get_filters(None) == ()
    assert filter_registry.get_filters("") == ()
    assert not filter_registry.has_filters("does.not.exist")


def test_filters_keep_registration_order(filter_registry):
    keys = [d.column_key for d in filter_registry.get_filters("crm.contacts")]
    assert keys == ["name", "email", "phone", "title", "companyId", "ownerUserId"]


def test_contacts_company_is_autocomplete(filter_registry):
    definition = filter_registry.get_definition("crm.contacts", "companyId")
    assert definition.filter_type == FilterType.AUTOCOMPLETE
    assert definition.search_endpoint == "/api/crm/prospects"
    assert definition.items_path == "items"


def test_owner_filter_reads_plain_list(filter_registry):
    definition = filter_registry.get_definition("crm.prospects", "ownerUserId")
    assert definition.items_path is None
    assert definition.value_field == "email"


def test_duplicate_column_key_is_a_configuration_error():
    with pytest.raises(RegistryConfigurationError) as exc_info:
        FilterRegistry({
            "orders": [
                {"columnKey": "status", "filterType": "select"},
                {"columnKey": "status", "filterType": "string"},
            ]
        })
    assert "status" in str(exc_info.value)
    assert exc_info.value.error_code == "registry_configuration"


def test_same_column_key_in_different_tables_is_fine():
    registry = FilterRegistry({
        "a": [{"columnKey": "name", "filterType": "string"}],
        "b": [{"columnKey": "name", "filterType": "string"}],
    })
    assert registry.table_ids == ["a", "b"]


def test_invalid_definition_is_a_configuration_error():
    with pytest.raises(RegistryConfigurationError):
        FilterRegistry({"orders": [{"columnKey": "x", "filterType": "not-a-type"}]})


def test_label_defaults_to_column_key():
    definition = FilterDefinition.model_validate({"columnKey": "dueDate", "filterType": "date"})
    assert definition.label == "dueDate"


def test_registry_is_immutable(filter_registry):
    with pytest.raises(TypeError):
        filter_registry._tables["new"] = ()


def test_filter_registry_from_file(tmp_path):
    path = tmp_path / "filters.json"
    path.write_text(json.dumps({
        "tickets": [{"columnKey": "priority", "filterType": "select", "optionsEndpoint": "/api/priorities"}]
    }))
    registry = load_filter_registry(str(path))
    assert registry.filter_types("tickets") == {"priority": FilterType.SELECT}


def test_filter_registry_from_unreadable_file(tmp_path):
    path = tmp_path / "broken.json"
    path.write_text("{not json")
    with pytest.raises(RegistryConfigurationError):
        FilterRegistry.from_file(path)
    with pytest.raises(RegistryConfigurationError):
        FilterRegistry.from_file(tmp_path / "missing.json")


def test_entity_definition_lookup(entity_registry):
    contact = entity_registry.get_definition("crm.contact")
    assert contact.resolve_endpoint == "/api/crm/contacts"
    assert contact.label_field == "name"
    assert entity_registry.get_definition("nope") is None
    assert entity_registry.has_definition("auth.user")
    assert not entity_registry.has_definition("nope")


def test_detail_path_substitutes_escaped_id(entity_registry):
    assert entity_registry.get_detail_path("crm.contact", "42") == "/crm/contacts/42"
    assert entity_registry.get_detail_path("crm.contact", "a b/c") == "/crm/contacts/a%20b%2Fc"
    assert entity_registry.get_detail_path("crm.contact", "x&y") == "/crm/contacts/x%26y"


def test_detail_path_missing(entity_registry):
    assert entity_registry.get_detail_path("auth.user", "someone@example.com") is None
    assert entity_registry.get_detail_path("unknown", "1") is None


def test_detail_path_replaces_first_placeholder_only():
    registry = EntityRegistry({
        "thing": {"resolveEndpoint": "/r", "searchEndpoint": "/s", "detailPath": "/things/:id/copy/:id"}
    })
    assert registry.get_detail_path("thing", "7") == "/things/7/copy/:id"


def test_label_from_row_field(entity_registry):
    assert entity_registry.get_label_from_row_field("crm.contact", "relatedContactId") == "contactName"
    assert entity_registry.get_label_from_row_field("crm.contact", "unmapped") is None
    assert entity_registry.get_label_from_row_field("unknown", "relatedContactId") is None


def test_entity_registry_rejects_invalid_definition():
    with pytest.raises(RegistryConfigurationError):
        EntityRegistry({"thing": {"searchEndpoint": "/s"}})


def test_entity_registry_from_file(tmp_path):
    path = tmp_path / "entities.json"
    path.write_text(json.dumps({"ticket": {"resolveEndpoint": "/api/tickets", "searchEndpoint": "/api/tickets"}}))
    registry = load_entity_registry(str(path))
    assert registry.entity_types == ["ticket"]
    assert registry.get_definition("ticket").items_path == "items"
