import logging
from dataclasses import dataclass, field as dc_field
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Generic, List, Literal, TypeVar, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FieldKind(str, Enum):
    BOOL = "bool"
    ZERO_DATE = "zero_date"
    NOT_ZERO_DATE = "not_zero_date"
    DATES = "dates"
    SELECT = "select"


class FieldOption(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    value: str


def make_options(values: List[str]) -> List[FieldOption]:
    return [FieldOption(id=v, value=v) for v in values]


class FieldSpec(BaseModel):
    """Static declaration of a listing column.

    ``db`` names the database column and is the only part ever used to
    address SQL; it must come from code, never from a request.
    """

    model_config = ConfigDict(frozen=True)

    field: str
    db: str = ""
    text: str = ""
    kind: FieldKind = FieldKind.BOOL
    condition: str = ""
    options: List[FieldOption] = []

    @property
    def column(self) -> str:
        return self.db or self.field

    @property
    def label(self) -> str:
        return self.text or self.field

    def matches(self, name: str) -> bool:
        return bool(name) and name in (self.column, self.field)


class BoolFilter(BaseModel):
    kind: Literal["bool"] = "bool"
    field: str = ""
    checked: bool = False
    condition: str = ""


class ZeroDateFilter(BaseModel):
    kind: Literal["zero_date"] = "zero_date"
    field: str = ""
    checked: bool = False


class NotZeroDateFilter(BaseModel):
    kind: Literal["not_zero_date"] = "not_zero_date"
    field: str = ""
    checked: bool = False


class DateRangeFilter(BaseModel):
    kind: Literal["dates"] = "dates"
    field: str = ""
    date_from: datetime | None = None
    date_to: datetime | None = None


class SelectFilter(BaseModel):
    kind: Literal["select"] = "select"
    field: str = ""
    value: str = ""


FilterValue = Annotated[
    Union[BoolFilter, ZeroDateFilter, NotZeroDateFilter, DateRangeFilter, SelectFilter],
    Field(discriminator="kind"),
]

_FILTER_ADAPTER = TypeAdapter(FilterValue)


class QueryState(BaseModel):
    limit: int = 0
    offset: int = 0
    order: str = ""
    pending_order: str = ""
    search: str = ""
    filters: List[FilterValue] = []

    @field_validator("filters", mode="before")
    @classmethod
    def _drop_malformed_filters(cls, value: Any):
        if not isinstance(value, list):
            return value
        kept = []
        for index, item in enumerate(value):
            try:
                kept.append(_FILTER_ADAPTER.validate_python(item))
            except ValidationError as exc:
                logger.warning("Dropping malformed filter at index %s: %s", index, exc.errors()[0].get("msg"))
        return kept


@dataclass
class ListingResult(Generic[T]):
    total: int
    filtered: int
    data: List[T]
    query: QueryState

    @property
    def shown(self) -> int:
        return len(self.data)

    @property
    def has_more(self) -> bool:
        return self.shown < self.filtered


@dataclass
class SortControl:
    field: str
    label: str
    direction: str
    next_order: str


@dataclass
class ListingView(Generic[T]):
    """Listing result plus the state a renderer needs for the next round trip."""

    result: ListingResult[T]
    sort_controls: List[SortControl] = dc_field(default_factory=list)
    state: List[dict] = dc_field(default_factory=list)
    can_reset: bool = False

    @property
    def empty_title(self) -> str:
        if self.result.filtered:
            return ""
        if self.result.total == 0:
            return "No records found"
        return "No records found for the selected filter"

    @property
    def summary(self) -> str:
        if self.result.filtered == self.result.total:
            return f"Showing {self.result.shown} / {self.result.total}"
        return f"Showing {self.result.shown} / {self.result.filtered} of {self.result.total} in total"


class BodyItem(BaseModel):
    name: str
    type: str = ""
    value: str = ""


@dataclass
class ExportFile:
    filename: str
    content: bytes
    media_type: str = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
