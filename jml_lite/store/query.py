"""
Typed list queries.

Queries are built from small value objects instead of filter strings so the
same query can be evaluated in memory or compiled to an OData ``$filter``
for SharePoint. Operands are never interpolated into text by callers; the
compiler quotes and escapes them.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import cmp_to_key
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ..models import as_utc


class Op(str, Enum):
    """Comparison operators supported by list stores."""
    EQ = "eq"
    NE = "ne"
    LT = "lt"
    LE = "le"
    GT = "gt"
    GE = "ge"
    CONTAINS = "contains"


@dataclass(frozen=True)
class Clause:
    """A single ``field op value`` comparison."""
    field: str
    op: Op
    value: Any

    def matches(self, row: Dict[str, Any]) -> bool:
        left = _normalise(row.get(self.field))
        right = _normalise(self.value)

        if isinstance(right, datetime) and isinstance(left, str):
            left = _parse_datetime(left)

        if self.op == Op.EQ:
            return left == right
        if self.op == Op.NE:
            return left != right

        # Ordering and substring tests never match a missing value
        if left is None or right is None:
            return False
        if self.op == Op.CONTAINS:
            return str(right).lower() in str(left).lower()
        try:
            if self.op == Op.LT:
                return left < right
            if self.op == Op.LE:
                return left <= right
            if self.op == Op.GT:
                return left > right
            if self.op == Op.GE:
                return left >= right
        except TypeError:
            return False
        raise ValueError(f"Unsupported operator: {self.op}")


@dataclass(frozen=True)
class AllOf:
    """Conjunction of filters."""
    filters: Tuple["Filter", ...]

    def matches(self, row: Dict[str, Any]) -> bool:
        return all(f.matches(row) for f in self.filters)


@dataclass(frozen=True)
class AnyOf:
    """Disjunction of filters."""
    filters: Tuple["Filter", ...]

    def matches(self, row: Dict[str, Any]) -> bool:
        return any(f.matches(row) for f in self.filters)


Filter = Union[Clause, AllOf, AnyOf]


@dataclass(frozen=True)
class OrderBy:
    field: str
    ascending: bool = True


@dataclass(frozen=True)
class Query:
    """Filter, projection, ordering and row limit for ListStore.get_items."""
    filter: Optional[Filter] = None
    select: Tuple[str, ...] = ()
    order_by: Tuple[OrderBy, ...] = ()
    top: Optional[int] = None


# Builders

def eq(name: str, value: Any) -> Clause:
    return Clause(name, Op.EQ, value)


def ne(name: str, value: Any) -> Clause:
    return Clause(name, Op.NE, value)


def lt(name: str, value: Any) -> Clause:
    return Clause(name, Op.LT, value)


def le(name: str, value: Any) -> Clause:
    return Clause(name, Op.LE, value)


def gt(name: str, value: Any) -> Clause:
    return Clause(name, Op.GT, value)


def ge(name: str, value: Any) -> Clause:
    return Clause(name, Op.GE, value)


def contains(name: str, value: str) -> Clause:
    return Clause(name, Op.CONTAINS, value)


def all_of(*filters: Optional[Filter]) -> Optional[Filter]:
    """AND the given filters together, ignoring None. Returns None when nothing is left."""
    kept = tuple(f for f in filters if f is not None)
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return AllOf(kept)


def any_of(*filters: Optional[Filter]) -> Optional[Filter]:
    """OR the given filters together, ignoring None. Returns None when nothing is left."""
    kept = tuple(f for f in filters if f is not None)
    if not kept:
        return None
    if len(kept) == 1:
        return kept[0]
    return AnyOf(kept)


def one_of(name: str, values: Iterable[Any]) -> Optional[Filter]:
    """Match rows whose field equals any of the values."""
    return any_of(*(eq(name, value) for value in values))


# In-memory evaluation

def _normalise(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return as_utc(value)
    return value


def _parse_datetime(value: str) -> Any:
    try:
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return value


def _sort_key_compare(a: Any, b: Any) -> int:
    if a == b:
        return 0
    try:
        return -1 if a < b else 1
    except TypeError:
        return -1 if str(a) < str(b) else 1


def apply_query(rows: Iterable[Dict[str, Any]], query: Optional[Query] = None) -> List[Dict[str, Any]]:
    """
    Evaluate a query against rows held in memory.

    Args:
        rows: Candidate rows
        query: Query to apply; None returns copies of every row

    Returns:
        Matching rows (copied), ordered, limited and projected
    """
    query = query or Query()
    result = [dict(row) for row in rows if query.filter is None or query.filter.matches(row)]

    # Stable sorts applied last key first; missing values always sort last
    for order in reversed(query.order_by):
        present = [row for row in result if row.get(order.field) is not None]
        missing = [row for row in result if row.get(order.field) is None]
        present.sort(
            key=cmp_to_key(lambda a, b: _sort_key_compare(_normalise(a[order.field]), _normalise(b[order.field]))),
            reverse=not order.ascending,
        )
        result = present + missing

    if query.top is not None:
        result = result[: query.top]

    if query.select:
        result = [{key: row.get(key) for key in query.select} for row in result]

    return result


# OData compilation

def odata_literal(value: Any) -> str:
    """Render a Python value as an OData literal."""
    value = _normalise(value)
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, datetime):
        stamp = value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return f"datetime'{stamp}'"
    text = str(value).replace("'", "''")
    return f"'{text}'"


def to_odata_filter(expr: Filter, nested: bool = False) -> str:
    """Compile a filter expression to an OData ``$filter`` string."""
    if isinstance(expr, Clause):
        if expr.op == Op.CONTAINS:
            return f"substringof({odata_literal(expr.value)}, {expr.field})"
        return f"{expr.field} {Op(expr.op).value} {odata_literal(expr.value)}"

    joiner = " and " if isinstance(expr, AllOf) else " or "
    text = joiner.join(to_odata_filter(child, nested=True) for child in expr.filters)
    return f"({text})" if nested else text


def to_odata_params(query: Optional[Query]) -> Dict[str, str]:
    """Compile a query to SharePoint REST query-string parameters."""
    params: Dict[str, str] = {}
    if query is None:
        return params
    if query.filter is not None:
        params["$filter"] = to_odata_filter(query.filter)
    if query.select:
        params["$select"] = ",".join(query.select)
    if query.order_by:
        params["$orderby"] = ",".join(
            f"{order.field} {'asc' if order.ascending else 'desc'}" for order in query.order_by
        )
    if query.top is not None:
        params["$top"] = str(query.top)
    return params

