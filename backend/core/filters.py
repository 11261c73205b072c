"""Typed filter expressions for list queries.

Each expression targets one model column and knows how to turn itself
into a SQLAlchemy clause:

    Equals("in_stock", True)
    Range("price", gte=Decimal("10"), lt=Decimal("100"))
    In("merchant_id", [1, 2, 3])
    Like("name", "phone")          # case-insensitive substring

``parse_query_filters`` builds them from flat query parameters such as
``price[gte]=10``, ``merchant_id[in]=1,2`` or ``name[like]=phone``.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence, Union

from sqlalchemy import Select

from core.exceptions import ValidationError


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any

    def clause(self, column):
        if self.value is None:
            return column.is_(None)
        return column == self.value


@dataclass(frozen=True)
class Range:
    field: str
    gte: Any = None
    gt: Any = None
    lte: Any = None
    lt: Any = None

    def clause(self, column):
        parts = []
        if self.gte is not None:
            parts.append(column >= self.gte)
        if self.gt is not None:
            parts.append(column > self.gt)
        if self.lte is not None:
            parts.append(column <= self.lte)
        if self.lt is not None:
            parts.append(column < self.lt)
        if not parts:
            raise ValidationError(f"Range filter on '{self.field}' has no bounds")
        clause = parts[0]
        for part in parts[1:]:
            clause = clause & part
        return clause


@dataclass(frozen=True)
class In:
    field: str
    values: Sequence[Any] = field(default_factory=tuple)

    def clause(self, column):
        return column.in_(list(self.values))


@dataclass(frozen=True)
class Like:
    field: str
    pattern: str

    def clause(self, column):
        escaped = (
            self.pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        )
        return column.ilike(f"%{escaped}%", escape="\\")


FilterExpr = Union[Equals, Range, In, Like]

_RANGE_OPS = ("gte", "gt", "lte", "lt")
_PARAM_RE = re.compile(r"^(?P<field>[A-Za-z_][A-Za-z0-9_]*)(?:\[(?P<op>[a-z]+)\])?$")


def apply_filters(query: Select, model, filters: Iterable[FilterExpr]) -> Select:
    """Add a WHERE clause to ``query`` for every expression."""
    for expr in filters:
        column = getattr(model, expr.field, None)
        if column is None:
            raise ValidationError(f"Unknown filter field: {expr.field}")
        query = query.where(expr.clause(column))
    return query


def parse_query_filters(
    params: Mapping[str, str],
    allowed: Mapping[str, Callable[[str], Any]],
    ignore: Iterable[str] = ("page", "per_page", "sort"),
) -> list[FilterExpr]:
    """Build filter expressions from raw query parameters.

    Args:
        params: Raw query parameters (``request.query_params``)
        allowed: Field name -> converter applied to each raw value
        ignore: Parameter names that are not filters

    Returns:
        List of filter expressions, one Range per field at most

    Raises:
        ValidationError: Unknown field, unknown operator or bad value
    """
    skip = set(ignore)
    ranges: dict[str, dict[str, Any]] = {}
    result: list[FilterExpr] = []

    for key, raw in params.items():
        if key in skip:
            continue
        match = _PARAM_RE.match(key)
        if not match:
            raise ValidationError(f"Malformed filter parameter: {key}")
        name, op = match.group("field"), match.group("op")
        if name not in allowed:
            raise ValidationError(f"Filtering on '{name}' is not supported")
        convert = allowed[name]

        try:
            if op is None or op == "eq":
                result.append(Equals(name, convert(raw)))
            elif op in _RANGE_OPS:
                ranges.setdefault(name, {})[op] = convert(raw)
            elif op == "in":
                values = [convert(v.strip()) for v in raw.split(",") if v.strip()]
                result.append(In(name, tuple(values)))
            elif op == "like":
                result.append(Like(name, raw))
            else:
                raise ValidationError(f"Unsupported filter operator: {op}")
        except (ValueError, ArithmeticError) as e:
            raise ValidationError(f"Invalid value for '{key}': {raw}") from e

    for name, bounds in ranges.items():
        result.append(Range(name, **bounds))
    return result


def parse_bool(value: str) -> bool:
    """Converter for boolean query parameters."""
    lowered = value.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValueError(value)
