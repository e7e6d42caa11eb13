"""Translate PostgREST-style query parameters into SQLAlchemy predicates.

Grammar: ``column=operator.value`` with operators ``eq neq gt gte lt lte like
ilike is in cs`` and ``not.eq`` / ``not.is.null``; reserved keys ``order``,
``limit``, ``offset`` and ``select``. Column names are resolved against the
relation's table, so only real, visible columns ever reach the SQL, and every
value is a bound parameter.

Invalid input (unknown column, unknown operator, malformed ``in.`` list,
non-integer paging) is rejected with ``ValidationFailed`` rather than
silently dropped.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import BigInteger, Boolean, Column, DateTime, Float, Integer, JSON, literal
from sqlalchemy.sql.elements import ColumnElement

from app.core.config import settings
from app.core.errors import ValidationFailed
from app.rest.relations import Relation

PASSTHROUGH_KEYS = {"on_conflict", "columns", "apikey"}

COMPARISONS = {
    "eq": lambda col, v: col == v,
    "neq": lambda col, v: col != v,
    "gt": lambda col, v: col > v,
    "gte": lambda col, v: col >= v,
    "lt": lambda col, v: col < v,
    "lte": lambda col, v: col <= v,
}


@dataclass
class TranslatedQuery:
    tenant_predicate: ColumnElement
    filters: list[ColumnElement] = field(default_factory=list)
    order_by: list[ColumnElement] = field(default_factory=list)
    limit: int = 1000
    offset: int = 0
    columns: list[Column] = field(default_factory=list)

    @property
    def predicates(self) -> list[ColumnElement]:
        # tenant scoping always comes first
        return [self.tenant_predicate, *self.filters]

    @property
    def has_filters(self) -> bool:
        return bool(self.filters)


def coerce_value(col: Column, raw: Any) -> Any:
    """Convert a raw (usually string) value to the column's Python type."""
    if raw is None or not isinstance(raw, str):
        return raw
    col_type = col.type
    try:
        if isinstance(col_type, Boolean):
            lowered = raw.lower()
            if lowered not in ("true", "false"):
                raise ValueError(raw)
            return lowered == "true"
        if isinstance(col_type, (Integer, BigInteger)):
            return int(raw)
        if isinstance(col_type, Float):
            return float(raw)
        if isinstance(col_type, DateTime):
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            # stored timestamps are naive UTC
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
            return parsed
    except ValueError:
        raise ValidationFailed(f'invalid value for column "{col.name}": {raw!r}')
    return raw


def _is_json(col: Column) -> bool:
    return isinstance(col.type, JSON) or isinstance(getattr(col.type, "impl", None), JSON)


def _resolve(relation: Relation, name: str) -> Column:
    col = relation.column(name)
    if col is None:
        raise ValidationFailed(f'column "{name}" does not exist on "{relation.name}"')
    return col


def _parse_in_list(col: Column, raw: str) -> list:
    if not (raw.startswith("(") and raw.endswith(")")):
        raise ValidationFailed(f'malformed in. list for "{col.name}": {raw!r}')
    items = [item.strip().strip('"') for item in raw[1:-1].split(",")]
    if not items or any(item == "" for item in items):
        raise ValidationFailed(f'malformed in. list for "{col.name}": {raw!r}')
    return [coerce_value(col, item) for item in items]


def _parse_contains(col: Column, raw: str) -> Any:
    if raw.startswith("{") and raw.endswith("}") and not raw.startswith('{"'):
        # array literal {a,b}
        inner = raw[1:-1]
        return [item.strip().strip('"') for item in inner.split(",") if item.strip()]
    if _is_json(col):
        try:
            return json.loads(raw)
        except ValueError:
            raise ValidationFailed(f'invalid JSON for cs. filter on "{col.name}"')
    return raw


def build_filter(col: Column, expression: str) -> ColumnElement:
    op, sep, raw = expression.partition(".")
    if not sep:
        raise ValidationFailed(f'missing operator for "{col.name}"')

    if op in COMPARISONS:
        return COMPARISONS[op](col, coerce_value(col, raw))
    if op in ("like", "ilike"):
        pattern = raw.replace("*", "%")
        return col.like(pattern) if op == "like" else col.ilike(pattern)
    if op == "is":
        if raw == "null":
            return col.is_(None)
        if raw == "true":
            return col.is_(True)
        if raw == "false":
            return col.is_(False)
        raise ValidationFailed(f'is. accepts null, true or false, got "{raw}"')
    if op == "in":
        return col.in_(_parse_in_list(col, raw))
    if op == "cs":
        return col.op("@>")(literal(_parse_contains(col, raw), type_=col.type))
    if op == "not":
        if raw.startswith("eq."):
            return col != coerce_value(col, raw[3:])
        if raw == "is.null":
            return col.is_not(None)
        raise ValidationFailed(f'unsupported negation "not.{raw}"')
    raise ValidationFailed(f'unknown operator "{op}" for "{col.name}"')


def parse_order(relation: Relation, raw: str) -> list[ColumnElement]:
    clauses = []
    for part in [p for p in raw.split(",") if p.strip()]:
        tokens = part.strip().split(".")
        col = _resolve(relation, tokens[0])
        modifiers = tokens[1:]
        clause = col.asc() if "asc" in modifiers else col.desc()
        if "nullsfirst" in modifiers:
            clause = clause.nulls_first()
        elif "nullslast" in modifiers:
            clause = clause.nulls_last()
        clauses.append(clause)
    if not clauses:
        raise ValidationFailed("empty order")
    return clauses


def parse_select(relation: Relation, raw: str) -> list[Column]:
    names = [n.strip() for n in raw.split(",") if n.strip()]
    if not names or "*" in names:
        return relation.visible_columns
    return [_resolve(relation, n) for n in names]


def _parse_int(key: str, raw: str) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{key} must be an integer")
    if value < 0:
        raise ValidationFailed(f"{key} must be >= 0")
    return value


def translate(relation: Relation, params: Iterable[tuple[str, str]], tenant_id: str) -> TranslatedQuery:
    query = TranslatedQuery(
        tenant_predicate=relation.tenant_predicate(tenant_id),
        order_by=relation.default_order(),
        limit=settings.REST_DEFAULT_LIMIT,
        columns=relation.visible_columns,
    )

    for key, value in params:
        if key == "order":
            query.order_by = parse_order(relation, value)
        elif key == "limit":
            query.limit = min(_parse_int(key, value), settings.REST_MAX_LIMIT)
        elif key == "offset":
            query.offset = _parse_int(key, value)
        elif key == "select":
            query.columns = parse_select(relation, value)
        elif key in PASSTHROUGH_KEYS:
            continue
        else:
            query.filters.append(build_filter(_resolve(relation, key), value))

    return query
