import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from ..schemas.filter import (
    FilterMode,
    FilterOperator,
    FilterType,
    GlobalFilterValues,
    ServerTableFilter,
    ViewFilterSet,
)
from ..utils.logger import setup_logger
from ..config import settings
from .filter_registry import FilterRegistry, load_filter_registry

logger = setup_logger("tableview.filters", settings.logging.FILTER_LOG_FILE)

DATERANGE_SEPARATOR = "|"


# Typed filter values. Raw UI input is resolved into one of these against the
# registry, then turned into predicates.

@dataclass(frozen=True)
class TextFilterValue:
    text: str


@dataclass(frozen=True)
class ListFilterValue:
    items: Tuple[str, ...]


@dataclass(frozen=True)
class ChoiceFilterValue:
    choice: str


@dataclass(frozen=True)
class DateFilterValue:
    day: str


@dataclass(frozen=True)
class DateRangeFilterValue:
    start: str
    end: str


@dataclass(frozen=True)
class BooleanFilterValue:
    flag: bool


@dataclass(frozen=True)
class NumberFilterValue:
    raw: str
    number: Optional[Union[int, float]]


FilterValue = Union[
    TextFilterValue,
    ListFilterValue,
    ChoiceFilterValue,
    DateFilterValue,
    DateRangeFilterValue,
    BooleanFilterValue,
    NumberFilterValue,
]

RawFilterValue = Union[str, Sequence[Any], None]


def _is_empty(raw: RawFilterValue) -> bool:
    if raw is None:
        return True
    if isinstance(raw, str):
        return raw == ""
    return isinstance(raw, (list, tuple)) and len(raw) == 0


def _first_string(raw: RawFilterValue) -> str:
    if isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else None
    return "" if raw is None else str(raw).strip()


def _string_list(raw: RawFilterValue) -> Tuple[str, ...]:
    items = raw if isinstance(raw, (list, tuple)) else [raw]
    stripped = (str(x).strip() for x in items if x is not None)
    return tuple(s for s in stripped if s)


def parse_number(text: str) -> Optional[Union[int, float]]:
    """Parse a finite number, or None when the text is not one"""
    if "_" in text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


class FilterService:
    """Turns raw quick-filter values into typed server predicates"""

    def __init__(self, registry: Optional[FilterRegistry] = None):
        self.registry = registry if registry is not None else load_filter_registry(
            settings.lookup.FILTER_REGISTRY_PATH
        )
        self.type_handlers: Dict[Optional[FilterType], Callable[[RawFilterValue], Optional[FilterValue]]] = {
            FilterType.DATERANGE: self._handle_daterange,
            FilterType.BOOLEAN: self._handle_boolean,
            FilterType.MULTISELECT: self._handle_multiselect,
            FilterType.SELECT: self._handle_choice,
            FilterType.AUTOCOMPLETE: self._handle_choice,
            FilterType.DATE: self._handle_date,
            FilterType.NUMBER: self._handle_number,
            FilterType.STRING: self._handle_default,
        }
        self.predicate_builders: Dict[type, Callable[[str, Any], List[ServerTableFilter]]] = {
            TextFilterValue: self._text_predicates,
            ListFilterValue: self._list_predicates,
            ChoiceFilterValue: self._choice_predicates,
            DateFilterValue: self._date_predicates,
            DateRangeFilterValue: self._daterange_predicates,
            BooleanFilterValue: self._boolean_predicates,
            NumberFilterValue: self._number_predicates,
        }

    # Raw value -> typed value

    def _handle_default(self, raw: RawFilterValue) -> Optional[FilterValue]:
        """String columns and columns the registry does not know"""
        if isinstance(raw, (list, tuple)):
            items = _string_list(raw)
            return ListFilterValue(items) if items else None
        text = _first_string(raw)
        return TextFilterValue(text) if text else None

    def _handle_daterange(self, raw: RawFilterValue) -> Optional[FilterValue]:
        if not isinstance(raw, str) or not raw.strip():
            return self._handle_default(raw)
        parts = raw.split(DATERANGE_SEPARATOR)
        start = parts[0].strip()
        end = parts[1].strip() if len(parts) > 1 else ""
        if not start and not end:
            return None
        return DateRangeFilterValue(start, end)

    def _handle_boolean(self, raw: RawFilterValue) -> Optional[FilterValue]:
        text = _first_string(raw)
        if text == "true":
            return BooleanFilterValue(True)
        if text == "false":
            return BooleanFilterValue(False)
        return None

    def _handle_multiselect(self, raw: RawFilterValue) -> Optional[FilterValue]:
        items = _string_list(raw)
        return ListFilterValue(items) if items else None

    def _handle_choice(self, raw: RawFilterValue) -> Optional[FilterValue]:
        text = _first_string(raw)
        return ChoiceFilterValue(text) if text else None

    def _handle_date(self, raw: RawFilterValue) -> Optional[FilterValue]:
        text = _first_string(raw)
        return DateFilterValue(text) if text else None

    def _handle_number(self, raw: RawFilterValue) -> Optional[FilterValue]:
        text = _first_string(raw)
        if not text:
            return None
        return NumberFilterValue(text, parse_number(text))

    def coerce(self, filter_type: Optional[FilterType], raw: RawFilterValue) -> Optional[FilterValue]:
        """Resolve a raw UI value against its column's filter type"""
        if _is_empty(raw):
            return None
        handler = self.type_handlers.get(filter_type, self._handle_default)
        return handler(raw)

    # Typed value -> predicates

    def _text_predicates(self, field: str, value: TextFilterValue) -> List[ServerTableFilter]:
        return [ServerTableFilter(field=field, operator=FilterOperator.CONTAINS.value, value=value.text)]

    def _list_predicates(self, field: str, value: ListFilterValue) -> List[ServerTableFilter]:
        return [ServerTableFilter(field=field, operator=FilterOperator.IN.value, value=list(value.items))]

    def _choice_predicates(self, field: str, value: ChoiceFilterValue) -> List[ServerTableFilter]:
        return [ServerTableFilter(field=field, operator=FilterOperator.EQUALS.value, value=value.choice)]

    def _date_predicates(self, field: str, value: DateFilterValue) -> List[ServerTableFilter]:
        return [ServerTableFilter(field=field, operator=FilterOperator.DATE_EQUALS.value, value=value.day)]

    def _daterange_predicates(self, field: str, value: DateRangeFilterValue) -> List[ServerTableFilter]:
        out = []
        if value.start:
            out.append(ServerTableFilter(field=field, operator=FilterOperator.DATE_AFTER.value, value=value.start))
        if value.end:
            out.append(ServerTableFilter(field=field, operator=FilterOperator.DATE_BEFORE.value, value=value.end))
        return out

    def _boolean_predicates(self, field: str, value: BooleanFilterValue) -> List[ServerTableFilter]:
        operator = FilterOperator.IS_TRUE if value.flag else FilterOperator.IS_FALSE
        return [ServerTableFilter(field=field, operator=operator.value, value="")]

    def _number_predicates(self, field: str, value: NumberFilterValue) -> List[ServerTableFilter]:
        number = value.number if value.number is not None else value.raw
        return [ServerTableFilter(field=field, operator=FilterOperator.EQUALS.value, value=number)]

    def to_predicates(self, field: str, value: FilterValue) -> List[ServerTableFilter]:
        return self.predicate_builders[type(value)](field, value)

    def normalize(self, table_id: Optional[str], values: Optional[GlobalFilterValues]) -> List[ServerTableFilter]:
        """Convert quick-filter values into server predicates.

        Output follows the iteration order of ``values``. Empty and malformed
        values produce no predicate; nothing here raises on bad input.
        """
        filter_types = self.registry.filter_types(table_id)
        out: List[ServerTableFilter] = []

        for column_key, raw in (values or {}).items():
            value = self.coerce(filter_types.get(column_key), raw)
            if value is None:
                if not _is_empty(raw):
                    logger.debug(f"Dropped quick filter {column_key}={raw!r} for table {table_id}")
                continue
            out.extend(self.to_predicates(column_key, value))

        return out

    def merge(
        self,
        view_filters: Sequence[ServerTableFilter],
        view_filter_mode: Union[FilterMode, str],
        quick_filters: Sequence[ServerTableFilter],
    ) -> ViewFilterSet:
        return merge_view_and_quick_filters(view_filters, view_filter_mode, quick_filters)

    def effective_filters(
        self,
        table_id: Optional[str],
        values: Optional[GlobalFilterValues],
        view_filters: Sequence[ServerTableFilter] = (),
        view_filter_mode: Union[FilterMode, str] = FilterMode.ALL,
    ) -> ViewFilterSet:
        return self.merge(view_filters, view_filter_mode, self.normalize(table_id, values))


def merge_view_and_quick_filters(
    view_filters: Sequence[ServerTableFilter],
    view_filter_mode: Union[FilterMode, str],
    quick_filters: Sequence[ServerTableFilter],
) -> ViewFilterSet:
    """Combine a view's predicates with quick-filter predicates.

    Without quick filters the view passes through untouched. Otherwise quick
    filters replace view filters on the same field, are appended after the
    remaining view filters, and the mode is forced to ``all``.
    """
    view_filters = list(view_filters or [])
    if not quick_filters:
        return ViewFilterSet(filters=view_filters, filter_mode=FilterMode(view_filter_mode))

    quick_fields = {f.field for f in quick_filters}
    base = [f for f in view_filters if f.field not in quick_fields]
    return ViewFilterSet(filters=base + list(quick_filters), filter_mode=FilterMode.ALL)


def normalize_quick_filters(
    table_id: Optional[str],
    values: Optional[GlobalFilterValues],
    registry: Optional[FilterRegistry] = None,
) -> List[ServerTableFilter]:
    return FilterService(registry).normalize(table_id, values)
