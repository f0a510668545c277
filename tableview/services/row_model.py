"""Client-side row model: multi-key sorting, grouping and page slicing.

Rows are plain records (dicts). Functions here never copy or rebuild the
records they are given; ordering is computed with pandas and applied to the
original objects so callers can keep identity-based selection state.
"""
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

import pandas as pd

from ..schemas.view import GroupBy, SortSpec

Row = Dict[str, Any]
Rows = Union[Sequence[Row], pd.DataFrame]

NULL_GROUP_KEY = "__null__"


def as_records(rows: Rows) -> List[Row]:
    if isinstance(rows, pd.DataFrame):
        return rows.to_dict("records")
    return list(rows)


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        # list-like cell values
        return False


def sort_rows(rows: Rows, sorting: Sequence[SortSpec]) -> List[Row]:
    """Stable multi-key sort; missing values always sort last"""
    records = as_records(rows)
    keys = [s for s in sorting if s.field]
    if not keys or len(records) < 2:
        return records

    frame = pd.DataFrame({
        f"k{i}": pd.Series([r.get(s.field) for r in records], dtype="object")
        for i, s in enumerate(keys)
    })
    by = list(frame.columns)
    for column in by:
        # Numeric columns compare numerically, everything else as text
        numeric = pd.to_numeric(frame[column], errors="coerce")
        present = frame[column].map(lambda v: not _is_missing(v))
        if numeric[present].notna().all():
            frame[column] = numeric
        else:
            frame[column] = frame[column].map(lambda v: None if _is_missing(v) else str(v))

    ordered = frame.sort_values(
        by=by,
        ascending=[not s.descending for s in keys],
        kind="stable",
        na_position="last",
    )
    return [records[i] for i in ordered.index]


def group_key(value: Any) -> str:
    return NULL_GROUP_KEY if _is_missing(value) else str(value)


@dataclass
class RowGroup:
    key: str
    value: Any
    rows: List[Row] = field(default_factory=list)


@dataclass(frozen=True)
class GroupHeaderItem:
    group_key: str
    group_value: Any
    count: int
    collapsed: bool
    type: str = "group"


@dataclass(frozen=True)
class RowItem:
    row: Row
    index: int
    type: str = "row"


@dataclass(frozen=True)
class ShowMoreItem:
    group_key: str
    remaining: int
    type: str = "showMore"


GroupedItem = Union[GroupHeaderItem, RowItem, ShowMoreItem]


def collect_groups(rows: Rows, field_name: str) -> List[RowGroup]:
    """Groups in first-seen order"""
    groups: Dict[str, RowGroup] = {}
    for row in as_records(rows):
        value = row.get(field_name)
        key = group_key(value)
        if key not in groups:
            groups[key] = RowGroup(key=key, value=None if _is_missing(value) else value)
        groups[key].rows.append(row)
    return list(groups.values())


def _sort_order_fields(field_name: str) -> Tuple[str, ...]:
    base = field_name[:-2] if field_name.endswith("Id") else field_name
    return tuple(dict.fromkeys([f"{field_name}SortOrder", f"{base}SortOrder"]))


def _group_sort_value(group: RowGroup, candidates: Iterable[str]) -> Optional[float]:
    for sort_field in candidates:
        numbers = pd.to_numeric(
            pd.Series([r.get(sort_field) for r in group.rows], dtype="object"),
            errors="coerce",
        ).dropna()
        numbers = numbers[numbers.map(lambda v: math.isfinite(float(v)))]
        if not numbers.empty:
            return float(numbers.min())
    return None


def order_groups(groups: List[RowGroup], group_by: GroupBy) -> List[RowGroup]:
    sort_order = group_by.sort_order

    if callable(sort_order):
        # sorted() is stable: equal ranks keep first-seen order
        return sorted(groups, key=lambda g: sort_order(g.value, g.rows))

    if sort_order:
        positions = {str(v): i for i, v in enumerate(sort_order)}

        def listed_key(g: RowGroup):
            if g.key in positions:
                return (0, positions[g.key], "")
            return (1, 0, str(g.value if g.value is not None else ""))

        return sorted(groups, key=listed_key)

    candidates = _sort_order_fields(group_by.field)
    sort_values = {g.key: _group_sort_value(g, candidates) for g in groups}
    any_sort_value = any(v is not None for v in sort_values.values())

    def default_key(g: RowGroup):
        rank = sort_values[g.key]
        rank = math.inf if (rank is None or not any_sort_value) else rank
        return (rank, g.value is None, "" if g.value is None else str(g.value))

    return sorted(groups, key=default_key)


def group_rows(
    rows: Rows,
    group_by: GroupBy,
    collapsed: Optional[Set[str]] = None,
    group_pages: Optional[Mapping[str, int]] = None,
    group_page_size: int = 5,
) -> List[GroupedItem]:
    """Flatten grouped rows into headers, visible rows and "show more" markers.

    Each expanded group shows ``(page + 1) * group_page_size`` rows, where
    ``page`` comes from ``group_pages`` (default 0).
    """
    records = as_records(rows)
    positions = {id(r): i for i, r in enumerate(records)}
    collapsed = collapsed or set()
    group_pages = group_pages or {}

    items: List[GroupedItem] = []
    for group in order_groups(collect_groups(records, group_by.field), group_by):
        is_collapsed = group.key in collapsed
        items.append(GroupHeaderItem(group.key, group.value, len(group.rows), is_collapsed))
        if is_collapsed:
            continue
        visible = (group_pages.get(group.key, 0) + 1) * group_page_size
        for row in group.rows[:visible]:
            items.append(RowItem(row, positions[id(row)]))
        remaining = len(group.rows) - visible
        if remaining > 0:
            items.append(ShowMoreItem(group.key, remaining))
    return items


@dataclass
class Page:
    rows: List[Row]
    total_rows: int
    total_pages: int
    current_page: int
    page_size: int


def paginate(rows: Rows, page: int, page_size: int) -> Page:
    """Slice one 1-based page; pages past the end are empty, not errors"""
    records = as_records(rows)
    page_size = max(1, page_size)
    page = max(1, page)
    total_rows = len(records)
    total_pages = math.ceil(total_rows / page_size)
    start_idx = (page - 1) * page_size
    end_idx = min(start_idx + page_size, total_rows)
    return Page(
        rows=records[start_idx:end_idx],
        total_rows=total_rows,
        total_pages=total_pages,
        current_page=page,
        page_size=page_size,
    )
