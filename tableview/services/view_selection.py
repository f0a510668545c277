from typing import Dict, Optional, Sequence

from ..schemas.view import TableView

# Remembered when the user explicitly picks "all items" (no saved view)
ALL_ITEMS_SENTINEL = "__all_items__"


class ViewSelectionStore:
    """Per-table memory of the last selected view id.

    Only the selection is kept, never the view definitions themselves.
    """

    def __init__(self):
        self._selection: Dict[str, str] = {}

    def get_cached_view_id(self, table_id: str) -> Optional[str]:
        return self._selection.get(table_id)

    def remember(self, table_id: str, view: Optional[TableView]) -> None:
        self._selection[table_id] = view.id if view is not None else ALL_ITEMS_SENTINEL

    def forget(self, table_id: str) -> None:
        self._selection.pop(table_id, None)

    def is_first_visit(self, table_id: str) -> bool:
        return table_id not in self._selection

    def restore(self, table_id: str, views: Sequence[TableView]) -> Optional[TableView]:
        """Pick the view to show when a table's views are (re)loaded"""
        cached = self._selection.get(table_id)
        if cached is None:
            return system_default_view(views)
        if cached == ALL_ITEMS_SENTINEL:
            return None
        for view in views:
            if view.id == cached:
                return view
        # The remembered view is gone; fall back to all items
        self.forget(table_id)
        return None


def system_default_view(views: Sequence[TableView]) -> Optional[TableView]:
    for view in views:
        if view.is_system and view.is_default:
            return view
    for view in views:
        if view.is_system:
            return view
    return None
