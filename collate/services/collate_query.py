from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Sequence

from sqlalchemy import Boolean, Text, cast, func, literal_column, or_
from sqlalchemy.orm import Query, Session

from collate.models.common import ZERO_TIME
from collate.schemas.collate import (
    BoolFilter,
    DateRangeFilter,
    FieldSpec,
    ListingResult,
    NotZeroDateFilter,
    QueryState,
    SelectFilter,
    ZeroDateFilter,
)
from collate.services.search_normalize import ensure_normalize_registered, normalize_for_search

logger = logging.getLogger(__name__)

ORDER_DIRECTIONS = ("asc", "desc")
SAFE_BOOL_CONDITIONS = ("= 1", "= 0", "IS NULL", "IS NOT NULL")
LIKE_ESCAPE = "\\"


class FieldRegistry:
    """Allow-list of the field names a listing may reference in SQL."""

    def __init__(
        self,
        search: Sequence[FieldSpec] = (),
        sort: Sequence[FieldSpec] = (),
        filters: Sequence[FieldSpec] = (),
    ):
        self.search_fields = tuple(search)
        self.sort_fields = tuple(sort)
        self.filter_fields = tuple(filters)

    def _all(self) -> Iterable[FieldSpec]:
        yield from self.search_fields
        yield from self.filter_fields
        yield from self.sort_fields

    def validate(self, name: str) -> bool:
        return self.resolve(name) is not None

    def resolve(self, name: str) -> FieldSpec | None:
        for spec in self._all():
            if spec.matches(name):
                return spec
        return None


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=0)


def safe_bool_condition(condition: str) -> str | None:
    text = " ".join(str(condition or "").split()).upper()
    if text in SAFE_BOOL_CONDITIONS:
        return text
    return None


def parse_order(order: str) -> list[tuple[str, str]]:
    clauses = []
    for raw in str(order or "").split(","):
        parts = raw.split()
        if not parts:
            continue
        if len(parts) > 2:
            logger.warning("Rejecting invalid order clause: %r", raw.strip())
            continue
        direction = parts[1].lower() if len(parts) == 2 else "asc"
        clauses.append((parts[0], direction))
    return clauses


def format_order(clauses: Iterable[tuple[str, str]]) -> str:
    return ", ".join(f"{name} {direction}" for name, direction in clauses)


def _column(model, spec: FieldSpec):
    # Only the configured column name reaches SQL, never the submitted reference.
    column = model.__table__.c.get(spec.column)
    if column is None:
        column = literal_column(spec.column)
    return column


def _equals_flag(column, flag: int):
    if isinstance(getattr(column, "type", None), Boolean):
        return column == bool(flag)
    return column == flag


def _bool_predicate(column, flt: BoolFilter, configured: str = ""):
    if not flt.checked:
        return None
    raw_condition = flt.condition or configured
    if raw_condition:
        condition = safe_bool_condition(raw_condition)
        if condition is None:
            logger.warning("Rejecting unsafe condition: %r", raw_condition)
            return None
        if condition == "= 1":
            return _equals_flag(column, 1)
        if condition == "= 0":
            return _equals_flag(column, 0)
        if condition == "IS NULL":
            return column.is_(None)
        return column.is_not(None)
    return _equals_flag(column, 1)


def _filter_predicate(column, flt, spec: FieldSpec):
    if isinstance(flt, BoolFilter):
        return _bool_predicate(column, flt, spec.condition)
    if isinstance(flt, ZeroDateFilter):
        if not flt.checked:
            return None
        return or_(column.is_(None), column <= ZERO_TIME)
    if isinstance(flt, NotZeroDateFilter):
        if not flt.checked:
            return None
        return column > ZERO_TIME
    if isinstance(flt, DateRangeFilter):
        bounds = []
        if flt.date_from is not None:
            bounds.append(column >= start_of_day(flt.date_from))
        if flt.date_to is not None:
            bounds.append(column <= end_of_day(flt.date_to))
        if not bounds:
            return None
        return bounds[0] if len(bounds) == 1 else bounds[0] & bounds[1]
    if isinstance(flt, SelectFilter):
        if not flt.value:
            return None
        return column == flt.value
    return None


def _filter_spec(registry: FieldRegistry, flt) -> FieldSpec | None:
    # Prefer the filter declaration of the same kind, it carries the configured condition.
    for spec in registry.filter_fields:
        if spec.matches(flt.field) and spec.kind.value == flt.kind:
            return spec
    return registry.resolve(flt.field)


def apply_collate_filters(q: Query, model, registry: FieldRegistry, filters) -> Query:
    for flt in filters:
        spec = _filter_spec(registry, flt)
        if spec is None:
            logger.warning("Rejecting invalid field name: %r", flt.field)
            continue
        predicate = _filter_predicate(_column(model, spec), flt, spec)
        if predicate is not None:
            q = q.filter(predicate)
    return q


def _escape_like(term: str) -> str:
    return term.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", LIKE_ESCAPE + "%").replace("_", LIKE_ESCAPE + "_")


def apply_collate_search(q: Query, model, registry: FieldRegistry, search: str, normalize_available: bool) -> Query:
    if not search:
        return q
    normalized_term = f"%{_escape_like(normalize_for_search(search))}%"
    lowered_term = f"%{_escape_like(search.lower())}%"
    conditions = []
    for spec in registry.search_fields:
        if not registry.validate(spec.column):
            logger.warning("Rejecting invalid search field: %r", spec.column)
            continue
        as_text = cast(_column(model, spec), Text)
        if normalize_available:
            conditions.append(func.normalize(as_text).like(normalized_term, escape=LIKE_ESCAPE))
        conditions.append(func.lower(as_text).like(lowered_term, escape=LIKE_ESCAPE))
    if conditions:
        q = q.filter(or_(*conditions))
    return q


def apply_collate_order(q: Query, model, registry: FieldRegistry, order: str) -> Query:
    for name, direction in parse_order(order):
        spec = registry.resolve(name)
        if spec is None or direction not in ORDER_DIRECTIONS:
            logger.warning("Rejecting invalid order clause: %r %r", name, direction)
            continue
        column = _column(model, spec)
        q = q.order_by(column.asc() if direction == "asc" else column.desc())
    return q


def load_listing(db: Session, model, registry: FieldRegistry, query: QueryState) -> ListingResult:
    """Run one listing query: total count, filtered count and the current page."""
    total = db.query(model).count()

    q = db.query(model)
    q = apply_collate_filters(q, model, registry, query.filters)
    if query.search:
        q = apply_collate_search(q, model, registry, query.search, ensure_normalize_registered(db))
    filtered = q.count()

    q = apply_collate_order(q, model, registry, query.order)
    rows = q.offset(max(query.offset, 0)).limit(max(query.limit, 0)).all()
    return ListingResult(total=total, filtered=filtered, data=rows, query=query)
