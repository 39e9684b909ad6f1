from __future__ import annotations

import logging
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar

from sqlalchemy.orm import Session

from collate.core.config import settings
from collate.schemas.collate import (
    BodyItem,
    ExportFile,
    FieldSpec,
    ListingResult,
    ListingView,
    QueryState,
    SortControl,
)
from collate.services.body_binding import BindError, bind, dump_body_items
from collate.services.collate_export import ExportError, build_workbook_bytes, export_filename
from collate.services.collate_query import FieldRegistry, format_order, load_listing, parse_order

logger = logging.getLogger(__name__)

T = TypeVar("T")

RowCallback = Callable[[T, int], Any]
ExcelCallback = Callable[[list], "tuple[str, bytes]"]


def make_query(init: QueryState) -> QueryState:
    """Fresh per-request state from the listing's base query; ``init`` is never touched."""
    query = init.model_copy(deep=True)
    if query.offset < 0:
        query.offset = 0
    if query.limit <= 0:
        query.limit = settings.COLLATE_DEFAULT_LIMIT
    if not query.pending_order:
        query.pending_order = query.order
    return query


def order_direction(order: str, field: str) -> str:
    for name, direction in parse_order(order):
        if name.lower() == field.lower():
            return direction
    return ""


def cycle_order(order: str, field: str) -> str:
    """Advance one field through unset -> asc -> desc -> unset.

    Clauses for other fields keep their position and direction.
    """
    clauses = parse_order(order)
    for index, (name, direction) in enumerate(clauses):
        if name.lower() != field.lower():
            continue
        if direction == "asc":
            clauses[index] = (name, "desc")
        else:
            del clauses[index]
        return format_order(clauses)
    clauses.append((field, "asc"))
    return format_order(clauses)


def _bind_logged(items: Iterable[BodyItem | dict], target: QueryState, action: str) -> None:
    try:
        bind(items, target)
    except BindError as exc:
        logger.warning("collate %s: body binding failed, continuing with partial state: %s", action, exc)


class Collate(Generic[T]):
    """One configured listing over a mapped model.

    Holds static configuration only; every action derives its own
    :class:`QueryState` and is safe to run concurrently.
    """

    def __init__(
        self,
        model: type[T],
        init: QueryState,
        *,
        search: Sequence[FieldSpec] = (),
        sort: Sequence[FieldSpec] = (),
        filters: Sequence[FieldSpec] = (),
        excel: Sequence[FieldSpec] = (),
        on_row: RowCallback | None = None,
        on_excel: ExcelCallback | None = None,
    ):
        self.model = model
        self.init = init.model_copy(deep=True)
        self.registry = FieldRegistry(search=search, sort=sort, filters=filters)
        self.excel_fields = tuple(excel)
        self.on_row = on_row
        self.on_excel = on_excel

    @property
    def search_fields(self) -> tuple[FieldSpec, ...]:
        return self.registry.search_fields

    @property
    def sort_fields(self) -> tuple[FieldSpec, ...]:
        return self.registry.sort_fields

    @property
    def filter_fields(self) -> tuple[FieldSpec, ...]:
        return self.registry.filter_fields

    @property
    def base_limit(self) -> int:
        return make_query(self.init).limit

    def validate_field_name(self, name: str) -> bool:
        return self.registry.validate(name)

    def resolve_field(self, name: str) -> FieldSpec | None:
        return self.registry.resolve(name)

    def load(self, db: Session, query: QueryState) -> ListingResult[T]:
        return load_listing(db, self.model, self.registry, query)

    def rows(self, result: ListingResult[T]) -> list:
        if self.on_row is None:
            return list(result.data)
        return [self.on_row(row, index) for index, row in enumerate(result.data)]

    def sort_controls(self, query: QueryState) -> list[SortControl]:
        current = query.pending_order or query.order
        return [
            SortControl(
                field=spec.column,
                label=spec.label,
                direction=order_direction(current, spec.column),
                next_order=cycle_order(current, spec.column),
            )
            for spec in self.sort_fields
        ]

    def view(self, db: Session, query: QueryState) -> ListingView[T]:
        result = self.load(db, query)
        return ListingView(
            result=result,
            sort_controls=self.sort_controls(query),
            state=dump_body_items(query),
            can_reset=result.shown > self.base_limit,
        )

    def render(self, db: Session) -> ListingView[T]:
        return self.view(db, make_query(self.init))

    def on_search(self, db: Session, items: Iterable[BodyItem | dict]) -> ListingView[T]:
        query = make_query(self.init)
        _bind_logged(items, query, "search")
        # Applying the filter form is what commits a staged sort.
        if query.pending_order:
            query.order = query.pending_order
        return self.view(db, query)

    def on_sort(self, db: Session, items: Iterable[BodyItem | dict]) -> ListingView[T]:
        query = make_query(self.init)
        body = QueryState()
        _bind_logged(items, body, "sort")
        query.limit = body.limit
        query.offset = body.offset
        query.order = body.order
        query.pending_order = body.pending_order
        query.filters = body.filters
        query.search = body.search
        if query.limit <= 0:
            query.limit = self.base_limit
        return self.view(db, query)

    def on_resize(self, db: Session, items: Iterable[BodyItem | dict]) -> ListingView[T]:
        query = make_query(self.init)
        body = QueryState()
        _bind_logged(items, body, "resize")
        query.offset = body.offset
        query.order = body.order
        query.pending_order = body.pending_order
        query.filters = body.filters
        query.search = body.search
        # "Load more" re-fetches a larger first page instead of the next offset window.
        if body.limit > 0:
            query.limit = body.limit * 2
        else:
            query.limit = self.base_limit * 2
        return self.view(db, query)

    def on_reset(self, db: Session, items: Iterable[BodyItem | dict] = ()) -> ListingView[T]:
        return self.view(db, make_query(self.init))

    def export_query(self, items: Iterable[BodyItem | dict]) -> QueryState:
        query = make_query(self.init)
        _bind_logged(items, query, "export")
        query.limit = settings.COLLATE_EXPORT_LIMIT
        return query

    def on_export(self, db: Session, items: Iterable[BodyItem | dict]) -> ExportFile:
        result = self.load(db, self.export_query(items))
        if self.on_excel is not None:
            try:
                filename, content = self.on_excel(result.data)
            except Exception as exc:
                logger.error("collate export callback failed: %s", exc, exc_info=True)
                raise ExportError("Error generating Excel file") from exc
            return ExportFile(filename=filename, content=content)
        content = build_workbook_bytes(result.data, self.excel_fields)
        return ExportFile(filename=export_filename(), content=content)
