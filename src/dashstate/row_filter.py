"""
Row filtering for data-bound views.

Filters are evaluated as an ordered list with AND semantics and fail closed:
a missing column, a value that does not parse as a number, or any other
ambiguity excludes the row instead of raising.
"""
from dataclasses import dataclass
from enum import Enum
import logging
import math
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

# Plain decimal literal; rejects Python-only spellings such as '1_000' or 'inf'
_NUMBER_RE = re.compile(r'[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?', re.ASCII)


class FilterOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"


@dataclass(frozen=True)
class Filter:
    """One predicate over a record column."""
    column: str
    operator: FilterOperator
    value: Any = None

    def __post_init__(self):
        # Accept the plain string spelling ("greaterThan") as well as the enum
        object.__setattr__(self, 'operator', FilterOperator(self.operator))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'Filter':
        """Build from the stored property form {'column', 'type', 'value'}.

        Raises:
            ValueError: If column is missing or type is not a known operator.
        """
        column = data.get('column')
        if not isinstance(column, str) or not column:
            raise ValueError(f"Filter requires a 'column', got {data!r}")
        return cls(column=column, operator=FilterOperator(data.get('type')), value=data.get('value'))

    def to_dict(self) -> Dict[str, Any]:
        return {'column': self.column, 'type': self.operator.value, 'value': self.value}


def _string_form(value: Any) -> str:
    # JSON spelling for booleans so "true" matches a decoded true
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    text = _string_form(value).strip()
    if not _NUMBER_RE.fullmatch(text):
        return None
    number = float(text)
    return None if math.isnan(number) else number


def matches(record: Mapping[str, Any], row_filter: Filter) -> bool:
    """Evaluate one filter against one record (False on any failure)."""
    value = record.get(row_filter.column)
    if value is None:
        return False

    operator = row_filter.operator
    if row_filter.value is None and operator in (FilterOperator.EQUALS, FilterOperator.CONTAINS):
        return False
    if operator is FilterOperator.EQUALS:
        return _string_form(value) == _string_form(row_filter.value)
    if operator is FilterOperator.CONTAINS:
        return _string_form(row_filter.value) in _string_form(value)

    left = _as_number(value)
    right = _as_number(row_filter.value)
    if left is None or right is None:
        return False
    if operator is FilterOperator.GREATER_THAN:
        return left > right
    if operator is FilterOperator.LESS_THAN:
        return left < right
    return False


def apply_filters(records: Sequence[Record], filters: Iterable[Filter]) -> List[Record]:
    """Rows matching every filter, in input order.

    With no filters the records are returned as a list unchanged.
    """
    filters = list(filters)
    if not filters:
        return list(records)
    return [record for record in records if all(matches(record, f) for f in filters)]


def filters_from_properties(properties: Mapping[str, Any]) -> List[Filter]:
    """Parse the 'filters' property of a view node.

    Malformed entries are skipped with a warning so one bad filter does not
    blank the whole view.
    """
    raw = properties.get('filters') or []
    if not isinstance(raw, list):
        logger.warning(f"Ignoring 'filters' property of type {type(raw).__name__}")
        return []
    filters = []
    for entry in raw:
        if not isinstance(entry, Mapping):
            logger.warning(f"Skipping malformed filter {entry!r}")
            continue
        try:
            filters.append(Filter.from_dict(entry))
        except ValueError as e:
            logger.warning(f"Skipping malformed filter {entry!r}: {e}")
    return filters
