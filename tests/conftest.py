import pytest
from fastapi.testclient import TestClient
from tableview.main import app
from tableview.services.entity_registry import EntityRegistry, DEFAULT_ENTITIES
from tableview.services.filter_registry import FilterRegistry, DEFAULT_TABLE_FILTERS
from tableview.services.filter_service import FilterService
import logging


@pytest.fixture(autouse=True)
def setup_logging():
    # Configure logging for tests
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def filter_registry():
    return FilterRegistry(DEFAULT_TABLE_FILTERS)


@pytest.fixture
def typed_registry():
    # One column of every filter type
    return FilterRegistry({
        "orders": [
            {"columnKey": "customer", "filterType": "string"},
            {"columnKey": "total", "filterType": "number"},
            {"columnKey": "paid", "filterType": "boolean"},
            {"columnKey": "placedOn", "filterType": "date"},
            {"columnKey": "period", "filterType": "daterange"},
            {"columnKey": "status", "filterType": "select",
             "staticOptions": [{"value": "open", "label": "Open"}, {"value": "closed", "label": "Closed"}]},
            {"columnKey": "tags", "filterType": "multiselect"},
            {"columnKey": "ownerId", "filterType": "autocomplete",
             "searchEndpoint": "/api/users", "resolveEndpoint": "/api/users", "itemsPath": "items"},
        ]
    })


@pytest.fixture
def filter_service(typed_registry):
    return FilterService(typed_registry)


@pytest.fixture
def entity_registry():
    return EntityRegistry(DEFAULT_ENTITIES)
