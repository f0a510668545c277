import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Union

from ..config import settings
from ..schemas.filter import FilterMode, GlobalFilterValues, ServerTableFilter, ViewFilterSet
from ..schemas.view import GroupBy, ServerDataTableQuery, SortSpec, TableView
from ..utils.logger import setup_logger
from .filter_service import FilterService
from .row_model import GroupedItem, Page, Rows, as_records, collect_groups, group_rows, paginate, sort_rows
from .view_selection import ViewSelectionStore

logger = setup_logger("tableview.state", settings.logging.STATE_LOG_FILE)


class StateEvent(str, Enum):
    VIEW = "view"
    FILTERS = "filters"
    SORTING = "sorting"
    GROUP_BY = "groupBy"
    PAGE = "page"


Listener = Callable[[Any], None]


@dataclass
class RowView:
    """What a client-side table shows for the current state"""
    page: Page
    items: Optional[List[GroupedItem]] = None


def _coerce_sorting(sorting: Sequence[Union[SortSpec, Mapping[str, Any]]]) -> List[SortSpec]:
    specs = []
    for s in sorting or []:
        spec = s if isinstance(s, SortSpec) else SortSpec.model_validate(s)
        if spec.field:
            specs.append(spec)
    return specs


class TableViewState:
    """Sorting, grouping, filters, view selection and paging of one table.

    Listeners are called synchronously, immediately after the state they
    watch changes, with the new value only:

    - ``VIEW``: the selected ``TableView`` or ``None``
    - ``FILTERS``: the effective ``ViewFilterSet`` (view filters merged with quick filters)
    - ``SORTING``: list of ``SortSpec``
    - ``GROUP_BY``: ``GroupBy`` or ``None``
    - ``PAGE``: ``(page, page_size)``

    Derived values (quick filter predicates, effective filters, the server
    query) are recomputed on every read.
    """

    def __init__(
        self,
        table_id: str,
        filter_service: Optional[FilterService] = None,
        *,
        page_size: Optional[int] = None,
        initial_page: int = 1,
        initial_search: str = "",
        initial_sorting: Optional[Sequence[Union[SortSpec, Mapping[str, Any]]]] = None,
        sort_whitelist: Optional[Sequence[str]] = None,
        group_by: Optional[GroupBy] = None,
        manual_pagination: bool = False,
        on_page_change: Optional[Callable[[int], None]] = None,
        on_page_size_change: Optional[Callable[[int], None]] = None,
        selection_store: Optional[ViewSelectionStore] = None,
        group_page_size: Optional[int] = None,
    ):
        if not isinstance(table_id, str) or not table_id:
            raise ValueError("table_id is required")
        page_size = settings.table.DEFAULT_PAGE_SIZE if page_size is None else page_size
        if page_size < 1:
            raise ValueError(f"page_size must be positive, got {page_size}")
        if initial_page < 1:
            raise ValueError(f"initial_page must be positive, got {initial_page}")
        for name, callback in (("on_page_change", on_page_change), ("on_page_size_change", on_page_size_change)):
            if callback is not None and not callable(callback):
                raise TypeError(f"{name} must be callable")

        self.table_id = table_id
        self.filter_service = filter_service or FilterService()
        self.manual_pagination = manual_pagination
        self.sort_whitelist = set(sort_whitelist) if sort_whitelist else None
        self.selection_store = selection_store
        self.group_page_size = group_page_size or settings.table.GROUP_PAGE_SIZE
        self._on_page_change = on_page_change
        self._on_page_size_change = on_page_size_change

        if initial_sorting is not None:
            self._default_sorting = _coerce_sorting(initial_sorting)
        elif manual_pagination:
            self._default_sorting = [SortSpec(
                field=settings.table.DEFAULT_SORT_FIELD,
                direction=settings.table.DEFAULT_SORT_DIRECTION,
            )]
        else:
            self._default_sorting = []

        self._sorting: List[SortSpec] = list(self._default_sorting)
        self._base_group_by = group_by
        self._group_by = group_by
        self._quick_values: Dict[str, Any] = {}
        self._view: Optional[TableView] = None
        self._view_filters: List[ServerTableFilter] = []
        self._view_filter_mode = FilterMode.ALL
        self._page = initial_page
        self._page_size = page_size
        self._search = initial_search
        # None until the first grouped render decides the initial collapse
        self._collapsed: Optional[Set[str]] = None
        self._group_pages: Dict[str, int] = {}
        self._listeners: Dict[StateEvent, List[Listener]] = {event: [] for event in StateEvent}

    # Listeners

    def add_listener(self, event: StateEvent, callback: Listener) -> Listener:
        self._listeners[StateEvent(event)].append(callback)
        return callback

    def remove_listener(self, event: StateEvent, callback: Listener) -> None:
        listeners = self._listeners[StateEvent(event)]
        if callback in listeners:
            listeners.remove(callback)

    def _emit(self, event: StateEvent, value: Any) -> None:
        for callback in list(self._listeners[event]):
            callback(value)

    # Read side

    @property
    def sorting(self) -> List[SortSpec]:
        return list(self._sorting)

    @property
    def group_by(self) -> Optional[GroupBy]:
        return self._group_by

    @property
    def current_view(self) -> Optional[TableView]:
        return self._view

    @property
    def quick_filter_values(self) -> Dict[str, Any]:
        return dict(self._quick_values)

    @property
    def view_filters(self) -> List[ServerTableFilter]:
        return list(self._view_filters)

    @property
    def view_filter_mode(self) -> FilterMode:
        return self._view_filter_mode

    @property
    def page(self) -> int:
        return self._page

    @property
    def page_size(self) -> int:
        return self._page_size

    @property
    def search(self) -> str:
        return self._search

    @property
    def quick_filters(self) -> List[ServerTableFilter]:
        return self.filter_service.normalize(self.table_id, self._quick_values)

    @property
    def effective_filters(self) -> ViewFilterSet:
        return self.filter_service.merge(self._view_filters, self._view_filter_mode, self.quick_filters)

    @property
    def query(self) -> ServerDataTableQuery:
        merged = self.effective_filters
        primary = self._sorting[0] if self._sorting else None
        return ServerDataTableQuery(
            page=self._page,
            page_size=self._page_size,
            search=self._search,
            filters=merged.filters,
            filter_mode=merged.filter_mode,
            sorting=self.sorting,
            sort_by=primary.field if primary else None,
            sort_order=primary.direction if primary else None,
        )

    # Views

    def select_view(self, view: Optional[TableView]) -> None:
        """Replace filters, sorting and grouping with the view's definition.

        ``None`` selects "all items": no view filters, the default sort and
        the table's own grouping. Quick filter values are kept.
        """
        self._view = view
        self._view_filters = list(view.filters) if view is not None else []
        self._view_filter_mode = view.filter_mode if view is not None else FilterMode.ALL
        if view is not None and view.sorting:
            self._sorting = _coerce_sorting(view.sorting)
        else:
            self._sorting = list(self._default_sorting)
        self._group_by = self._view_group_by(view)
        self._reset_grouping()

        if self.selection_store is not None:
            self.selection_store.remember(self.table_id, view)
        logger.info(f"Table {self.table_id}: selected view {view.id if view else 'all items'}")

        self._emit(StateEvent.VIEW, view)
        self._emit(StateEvent.FILTERS, self.effective_filters)
        self._emit(StateEvent.SORTING, self.sorting)
        self._emit(StateEvent.GROUP_BY, self._group_by)
        self._reset_page()

    def _view_group_by(self, view: Optional[TableView]) -> Optional[GroupBy]:
        if view is None or view.group_by is None:
            return self._base_group_by
        base_collapsed = self._base_group_by.default_collapsed if self._base_group_by else False
        return GroupBy(
            field=view.group_by.field,
            sort_order=view.group_by.sort_order,
            default_collapsed=view.group_by.default_collapsed or base_collapsed,
        )

    def load_views(self, views: Sequence[TableView]) -> Optional[TableView]:
        """Apply the remembered (or system default) view from a fresh view list"""
        store = self.selection_store or ViewSelectionStore()
        restored = store.restore(self.table_id, views)
        self.select_view(restored)
        return restored

    # Filters

    def _update_filters(self, change: Callable[[], None]) -> None:
        before = self.effective_filters
        change()
        after = self.effective_filters
        if after != before:
            self._emit(StateEvent.FILTERS, after)
        self._reset_page()

    def set_quick_filters(self, values: Optional[GlobalFilterValues]) -> None:
        """Replace all quick filter values"""
        new_values = dict(values or {})

        def change():
            self._quick_values = new_values

        self._update_filters(change)

    def set_quick_filter(self, column_key: str, value: Any) -> None:
        new_values = dict(self._quick_values)
        if value is None or value == "" or (isinstance(value, (list, tuple)) and not value):
            new_values.pop(column_key, None)
        else:
            new_values[column_key] = value
        self.set_quick_filters(new_values)

    def clear_quick_filters(self) -> None:
        self.set_quick_filters({})

    def set_view_filters(self, filters: Sequence[Union[ServerTableFilter, Mapping[str, Any]]]) -> None:
        parsed = [f if isinstance(f, ServerTableFilter) else ServerTableFilter.model_validate(f)
                  for f in filters or []]

        def change():
            self._view_filters = parsed

        self._update_filters(change)

    def set_view_filter_mode(self, mode: Union[FilterMode, str]) -> None:
        try:
            new_mode = FilterMode(mode)
        except ValueError:
            logger.debug(f"Table {self.table_id}: ignored filter mode {mode!r}")
            return

        def change():
            self._view_filter_mode = new_mode

        self._update_filters(change)

    # Sorting and grouping

    def set_sorting(self, sorting: Sequence[Union[SortSpec, Mapping[str, Any]]]) -> None:
        """Replace the sort keys; keys outside the whitelist are dropped.

        An explicitly empty list clears sorting. A non-empty list whose keys
        are all rejected leaves sorting unchanged.
        """
        specs = _coerce_sorting(sorting)
        if self.sort_whitelist is not None:
            specs = [s for s in specs if s.field in self.sort_whitelist]
        if sorting and not specs:
            logger.debug(f"Table {self.table_id}: ignored sorting {sorting!r}")
            return
        self._sorting = specs
        self._emit(StateEvent.SORTING, self.sorting)
        self._reset_page()

    def set_group_by(self, group_by: Optional[GroupBy]) -> None:
        self._group_by = group_by
        self._reset_grouping()
        self._emit(StateEvent.GROUP_BY, group_by)

    def _reset_grouping(self) -> None:
        self._collapsed = None
        self._group_pages = {}

    def toggle_group(self, group_key: str) -> bool:
        """Collapse or expand one group; returns True when now collapsed"""
        collapsed = self._collapsed if self._collapsed is not None else set()
        if group_key in collapsed:
            collapsed.discard(group_key)
        else:
            collapsed.add(group_key)
        self._collapsed = collapsed
        return group_key in collapsed

    def collapse_groups(self, group_keys: Sequence[str]) -> None:
        self._collapsed = set(group_keys)

    def expand_all_groups(self) -> None:
        self._collapsed = set()

    def show_more(self, group_key: str) -> None:
        self._group_pages[group_key] = self._group_pages.get(group_key, 0) + 1

    def set_group_pages(self, group_pages: Mapping[str, int]) -> None:
        self._group_pages = {key: page for key, page in (group_pages or {}).items() if page > 0}

    @property
    def collapsed_groups(self) -> Set[str]:
        return set(self._collapsed or ())

    # Search and paging

    def set_search(self, search: str) -> None:
        self._search = search or ""
        self._reset_page()

    def set_page(self, page: int) -> None:
        if page < 1:
            logger.debug(f"Table {self.table_id}: ignored page {page}")
            return
        if page == self._page:
            return
        self._page = page
        if self._on_page_change is not None:
            self._on_page_change(page)
        self._emit(StateEvent.PAGE, (self._page, self._page_size))

    def _reset_page(self) -> None:
        if self._page != 1:
            self.set_page(1)

    def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            logger.debug(f"Table {self.table_id}: ignored page size {page_size}")
            return
        page_size = min(page_size, settings.table.MAX_PAGE_SIZE)
        if page_size == self._page_size:
            return
        self._page_size = page_size
        if self._on_page_size_change is not None:
            self._on_page_size_change(page_size)
        if self._page != 1:
            self._page = 1
            if self._on_page_change is not None:
                self._on_page_change(1)
        self._emit(StateEvent.PAGE, (self._page, self._page_size))

    # Client-side rows

    def row_view(self, rows: Rows, total: Optional[int] = None) -> RowView:
        """Sort, slice and group rows for display.

        With manual (server-side) pagination ``rows`` already are the
        current page; they are neither re-sorted nor sliced and ``total``
        gives the server's row count.
        """
        records = as_records(rows)
        if self.manual_pagination:
            total_rows = len(records) if total is None else total
            page = Page(
                rows=records,
                total_rows=total_rows,
                total_pages=math.ceil(total_rows / self._page_size),
                current_page=self._page,
                page_size=self._page_size,
            )
        else:
            page = paginate(sort_rows(records, self._sorting), self._page, self._page_size)

        if self._group_by is None:
            return RowView(page=page)

        # The initial collapse is decided once, on the first render with data
        if self._collapsed is None and records:
            if self._group_by.default_collapsed:
                self._collapsed = {g.key for g in collect_groups(records, self._group_by.field)}
            else:
                self._collapsed = set()

        items = group_rows(
            page.rows,
            self._group_by,
            collapsed=self._collapsed or set(),
            group_pages=self._group_pages,
            group_page_size=self.group_page_size,
        )
        return RowView(page=page, items=items)
