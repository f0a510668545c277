from tableview.schemas.view import TableView
from tableview.services.view_selection import ALL_ITEMS_SENTINEL, ViewSelectionStore, system_default_view


def make_views():
    return [
        TableView(id="mine", name="Mine"),
        TableView(id="sys-other", name="Other", is_system=True),
        TableView(id="sys-default", name="Default", is_system=True, is_default=True),
    ]


def test_first_visit_restores_system_default():
    store = ViewSelectionStore()
    assert store.is_first_visit("crm.contacts")
    assert store.restore("crm.contacts", make_views()).id == "sys-default"


def test_system_default_falls_back_to_any_system_view():
    views = [TableView(id="mine", name="Mine"), TableView(id="sys", name="Sys", is_system=True)]
    assert system_default_view(views).id == "sys"
    assert system_default_view([TableView(id="mine", name="Mine")]) is None


def test_remembered_view_is_restored():
    store = ViewSelectionStore()
    views = make_views()
    store.remember("crm.contacts", views[0])
    assert not store.is_first_visit("crm.contacts")
    assert store.restore("crm.contacts", views).id == "mine"


def test_all_items_is_remembered():
    store = ViewSelectionStore()
    store.remember("crm.contacts", None)
    assert store.get_cached_view_id("crm.contacts") == ALL_ITEMS_SENTINEL
    assert store.restore("crm.contacts", make_views()) is None


def test_stale_selection_is_forgotten():
    store = ViewSelectionStore()
    store.remember("crm.contacts", TableView(id="deleted", name="Gone"))
    assert store.restore("crm.contacts", make_views()) is None
    assert store.get_cached_view_id("crm.contacts") is None


def test_selection_is_per_table():
    store = ViewSelectionStore()
    store.remember("crm.contacts", TableView(id="mine", name="Mine"))
    assert store.get_cached_view_id("crm.prospects") is None
