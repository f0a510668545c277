def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "active"


def test_get_table_filters(client):
    response = client.get("/api/v1/tables/crm.contacts/filters")
    assert response.status_code == 200
    data = response.json()
    assert [f["columnKey"] for f in data][:2] == ["name", "email"]
    company = next(f for f in data if f["columnKey"] == "companyId")
    assert company["filterType"] == "autocomplete"


def test_get_filters_for_unknown_table(client):
    response = client.get("/api/v1/tables/nothing.here/filters")
    assert response.status_code == 200
    assert response.json() == []


def test_normalize_filters(client):
    response = client.post(
        "/api/v1/tables/crm.contacts/filters/normalize",
        json={"values": {"name": "Jane", "companyId": ["c1"], "email": ""}}
    )
    assert response.status_code == 200
    assert response.json() == [
        {"field": "name", "operator": "contains", "value": "Jane"},
        {"field": "companyId", "operator": "equals", "value": "c1"},
    ]


def test_normalize_daterange(client):
    response = client.post(
        "/api/v1/tables/crm.activities/filters/normalize",
        json={"values": {"activityDate": "2024-01-01|2024-01-31"}}
    )
    assert response.status_code == 200
    assert [f["operator"] for f in response.json()] == ["dateAfter", "dateBefore"]


def test_merge_filters(client):
    response = client.post(
        "/api/v1/filters/merge",
        json={
            "viewFilters": [
                {"field": "status", "operator": "equals", "value": "open"},
                {"field": "name", "operator": "contains", "value": "x"},
            ],
            "viewFilterMode": "any",
            "quickFilters": [{"field": "status", "operator": "equals", "value": "closed"}],
        }
    )
    assert response.status_code == 200
    data = response.json()
    assert data["filterMode"] == "all"
    assert [f["value"] for f in data["filters"]] == ["x", "closed"]


def test_merge_without_quick_filters_keeps_mode(client):
    response = client.post(
        "/api/v1/filters/merge",
        json={"viewFilters": [], "viewFilterMode": "any", "quickFilters": []}
    )
    assert response.json() == {"filters": [], "filterMode": "any"}


def test_build_query(client):
    response = client.post(
        "/api/v1/tables/crm.contacts/query",
        json={
            "values": {"name": "Jane"},
            "view": {
                "id": "v1",
                "name": "Mine",
                "filters": [{"field": "ownerUserId", "operator": "equals", "value": "me@x.io"}],
                "metadata": {"filterMode": "any"},
            },
            "page": 3,
            "pageSize": 50,
            "search": "acme",
        }
    )
    assert response.status_code == 200
    data = response.json()
    assert data["page"] == 3
    assert data["pageSize"] == 50
    assert data["search"] == "acme"
    assert data["filterMode"] == "all"
    assert [f["field"] for f in data["filters"]] == ["ownerUserId", "name"]
    assert data["sortBy"] == "createdOnTimestamp"
    assert data["sortOrder"] == "desc"


def test_build_query_with_sorting(client):
    response = client.post(
        "/api/v1/tables/crm.contacts/query",
        json={"sorting": [{"id": "name", "desc": False}]}
    )
    assert response.status_code == 200
    data = response.json()
    assert data["sorting"] == [{"field": "name", "direction": "asc"}]
    assert data["page"] == 1
    assert data["pageSize"] == 25


def test_build_query_rejects_bad_page(client):
    response = client.post("/api/v1/tables/crm.contacts/query", json={"page": 0})
    assert response.status_code == 422


def test_arrange_rows_grouped(client):
    rows = [
        {"id": 1, "stage": "won"},
        {"id": 2, "stage": "lost"},
        {"id": 3, "stage": "won"},
    ]
    response = client.post(
        "/api/v1/tables/crm.opportunities/rows",
        json={
            "rows": rows,
            "sorting": [{"field": "id", "direction": "desc"}],
            "groupBy": {"field": "stage", "sortOrder": ["won", "lost"]},
            "collapsedGroups": ["lost"],
        }
    )
    assert response.status_code == 200
    data = response.json()
    assert data["totalRows"] == 3
    assert [r["id"] for r in data["rows"]] == [3, 2, 1]
    assert [i["type"] for i in data["items"]] == ["group", "row", "row", "group"]
    assert data["items"][0]["groupKey"] == "won"
    assert data["items"][3]["collapsed"] is True


def test_arrange_rows_paged(client):
    response = client.post(
        "/api/v1/tables/crm.contacts/rows",
        json={"rows": [{"n": i} for i in range(7)], "page": 2, "pageSize": 5}
    )
    data = response.json()
    assert [r["n"] for r in data["rows"]] == [5, 6]
    assert data["totalPages"] == 2
    assert data["items"] is None


def test_get_entity(client):
    response = client.get("/api/v1/entities/crm.contact")
    assert response.status_code == 200
    assert response.json()["resolveEndpoint"] == "/api/crm/contacts"


def test_get_unknown_entity(client):
    response = client.get("/api/v1/entities/unknown")
    assert response.status_code == 404


def test_detail_path(client):
    response = client.get("/api/v1/entities/crm.contact/detail-path", params={"id": "a b"})
    assert response.json() == {"path": "/crm/contacts/a%20b"}

    response = client.get("/api/v1/entities/auth.user/detail-path", params={"id": "a@x.io"})
    assert response.json() == {"path": None}


def test_label_field(client):
    response = client.get("/api/v1/entities/crm.contact/label-field", params={"columnKey": "relatedContactId"})
    assert response.json() == {"field": "contactName"}
