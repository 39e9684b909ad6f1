from __future__ import annotations

import logging
import re
import types
from datetime import date, datetime, time
from enum import Enum
from typing import Annotated, Any, Iterable, Literal, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError

from collate.schemas.collate import BodyItem

logger = logging.getLogger(__name__)

MAX_FIELD_COUNT = 1000
MAX_FIELD_NAME_LEN = 256
MAX_FIELD_VALUE_LEN = 1024 * 1024
MAX_FIELD_TYPE_LEN = 64
MAX_LIST_INDEX = 1000

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UINT64_MAX = 2**64 - 1

_SAFE_NAME_RE = re.compile(r"^[A-Za-z0-9_.\[\]]+$")
_PATH_PART_RE = re.compile(r"^([A-Za-z_][A-Za-z0-9_]*)(?:\[(\d{1,6})\])?$")
_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?((\d+\.?\d*|\.\d+)([eE][+-]?\d+)?|inf|infinity|nan)$", re.IGNORECASE)
# "2006-01-02 15:04:05 -0700 MST" as printed by Go's time.Time.String()
_ZONED_STAMP_RE = re.compile(
    r"^(?P<stamp>\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2}(?:\.\d{1,6})?) (?P<offset>[+-]\d{4})(?: [A-Za-z]{1,5})?$"
)
_NAIVE_FORMATS = ("%Y-%m-%d", "%Y-%m-%dT%H:%M", "%Y-%m-%dT%H:%M:%S")


class BindError(ValueError):
    pass


class _PathError(Exception):
    pass


def validate_input_safety(items: list[BodyItem]) -> None:
    if len(items) > MAX_FIELD_COUNT:
        raise BindError(f"too many fields: {len(items)} exceeds maximum of {MAX_FIELD_COUNT}")
    for index, item in enumerate(items):
        if not item.name:
            raise BindError(f"empty field name at index {index}")
        name_len = len(item.name.encode("utf-8"))
        if name_len > MAX_FIELD_NAME_LEN:
            raise BindError(
                f"field name too long at index {index}: {name_len} exceeds maximum of {MAX_FIELD_NAME_LEN}"
            )
        if not _SAFE_NAME_RE.fullmatch(item.name):
            raise BindError(f"unsafe character in field name at index {index}")
        value_len = len(item.value.encode("utf-8"))
        if value_len > MAX_FIELD_VALUE_LEN:
            raise BindError(
                f"field value too long at index {index}: {value_len} exceeds maximum of {MAX_FIELD_VALUE_LEN}"
            )
        if len(item.type) > MAX_FIELD_TYPE_LEN:
            raise BindError(f"field type too long at index {index}")


def parse_time_value(value: str) -> datetime:
    text = str(value or "").strip()
    for fmt in _NAIVE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            pass
    try:
        return datetime.combine(date.min, datetime.strptime(text, "%H:%M").time())
    except ValueError:
        pass
    match = _ZONED_STAMP_RE.fullmatch(text)
    if match:
        stamp_fmt = "%Y-%m-%d %H:%M:%S.%f %z" if "." in match["stamp"] else "%Y-%m-%d %H:%M:%S %z"
        try:
            return datetime.strptime(f"{match['stamp']} {match['offset']}", stamp_fmt)
        except ValueError:
            pass
    if "T" in text:
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None and parsed.tzinfo is not None:
            return parsed
    raise BindError(f"cannot parse time: {value}")


def _parse_int(raw: str, unsigned: bool, path: str) -> int:
    cleaned = raw.replace("_", "")
    if len(cleaned) > 20:
        raise BindError(f"integer value too long for {path}: {len(cleaned)} characters")
    if not _INT_RE.fullmatch(cleaned):
        raise BindError(f"invalid integer value for {path}: {raw!r}")
    number = int(cleaned)
    if unsigned:
        if number < 0:
            raise BindError(f"negative value {number} for unsigned field {path}")
        if number > _UINT64_MAX:
            raise BindError(f"value {number} out of range for {path}")
    elif number < _INT64_MIN or number > _INT64_MAX:
        raise BindError(f"value {number} out of range for {path}")
    return number


def _parse_float(raw: str, path: str) -> float:
    cleaned = raw.replace("_", "")
    if len(cleaned) > 50:
        raise BindError(f"float value too long for {path}: {len(cleaned)} characters")
    if not _FLOAT_RE.fullmatch(cleaned):
        raise BindError(f"invalid float value for {path}: {raw!r}")
    return float(cleaned)


def _unwrap(annotation) -> tuple[Any, list, bool]:
    """Strip ``Annotated`` and ``Optional`` wrappers: (inner type, metadata, optional)."""
    metadata: list = []
    optional = False
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            args = get_args(annotation)
            annotation, metadata = args[0], metadata + list(args[1:])
            continue
        if origin in (Union, types.UnionType):
            args = [arg for arg in get_args(annotation) if arg is not type(None)]
            if len(args) != len(get_args(annotation)):
                optional = True
            if len(args) == 1:
                annotation = args[0]
                continue
        return annotation, metadata, optional


def _is_unsigned(metadata: Iterable) -> bool:
    for item in metadata:
        ge = getattr(item, "ge", None)
        if ge is not None and ge >= 0:
            return True
        gt = getattr(item, "gt", None)
        if gt is not None and gt >= -1:
            return True
    return False


def _model_types(annotation) -> list[type[BaseModel]]:
    inner, _, _ = _unwrap(annotation)
    if isinstance(inner, type) and issubclass(inner, BaseModel):
        return [inner]
    if get_origin(inner) in (Union, types.UnionType):
        return [arg for arg in get_args(inner) if isinstance(arg, type) and issubclass(arg, BaseModel)]
    return []


def _list_item_annotation(annotation):
    inner, _, _ = _unwrap(annotation)
    if get_origin(inner) in (list, tuple) and get_args(inner):
        return get_args(inner)[0]
    return None


def _zero_value(annotation):
    inner, _, optional = _unwrap(annotation)
    if optional:
        return None
    return {str: "", int: 0, float: 0.0, bool: False}.get(inner)


def _ordered_candidates(classes: list[type[BaseModel]], container: dict) -> list[type[BaseModel]]:
    """Put the union member selected by an already bound tag field first."""
    for cls in classes:
        for name, info in cls.model_fields.items():
            if get_origin(info.annotation) is Literal and container.get(name) in get_args(info.annotation):
                return [cls] + [other for other in classes if other is not cls]
    return classes


def coerce_value(annotation, raw: str, *, path: str = "", unsigned: bool = False):
    inner, metadata, optional = _unwrap(annotation)
    unsigned = unsigned or _is_unsigned(metadata)
    if optional and raw == "" and inner is not str:
        return None
    if inner is str or inner is Any:
        return raw
    if inner is bool:
        if raw not in ("true", "false"):
            raise BindError(f"invalid boolean value for {path}: {raw!r} (must be 'true' or 'false')")
        return raw == "true"
    if inner is int:
        return _parse_int(raw, unsigned, path)
    if inner is float:
        return _parse_float(raw, path)
    if inner is datetime:
        if raw == "":
            return datetime.min
        return parse_time_value(raw)
    if inner is date:
        return parse_time_value(raw).date()
    if inner is time:
        return parse_time_value(raw).time()
    if isinstance(inner, type) and issubclass(inner, Enum):
        try:
            return inner(raw)
        except ValueError:
            raise BindError(f"invalid value for {path}: {raw!r}")
    if get_origin(inner) is Literal:
        if raw not in get_args(inner):
            raise BindError(f"invalid value for {path}: {raw!r}")
        return raw
    raise BindError(f"unsupported field type for {path}")


def _split_path(name: str) -> list[tuple[str, int | None]]:
    parts = []
    for segment in name.split("."):
        match = _PATH_PART_RE.fullmatch(segment)
        if not match:
            raise _PathError(f"invalid path segment {segment!r}")
        index = int(match.group(2)) if match.group(2) is not None else None
        if index is not None and index > MAX_LIST_INDEX:
            raise _PathError(f"list index out of bounds: {index}")
        parts.append((match.group(1), index))
    return parts


def _assign(model_cls: type[BaseModel], data: dict, path: str, raw: str) -> None:
    classes = [model_cls]
    container = data
    parts = _split_path(path)
    for position, (name, index) in enumerate(parts):
        last = position == len(parts) - 1
        infos = [
            candidate.model_fields[name]
            for candidate in _ordered_candidates(classes, container)
            if name in candidate.model_fields
        ]
        if not infos:
            raise _PathError(f"field '{name}' not found")
        info = infos[0]

        if index is None:
            if last:
                # A union tag may switch the item to another member.
                error: BindError | None = None
                for candidate_info in infos:
                    try:
                        container[name] = coerce_value(
                            candidate_info.annotation,
                            raw,
                            path=path,
                            unsigned=_is_unsigned(candidate_info.metadata),
                        )
                        return
                    except BindError as exc:
                        error = error or exc
                raise error

            classes = _model_types(info.annotation)
            if not classes:
                raise _PathError(f"field '{name}' is not a nested structure")
            nested = container.get(name)
            if not isinstance(nested, dict):
                nested = {}
                container[name] = nested
            container = nested
            continue

        item_annotation = _list_item_annotation(info.annotation)
        if item_annotation is None:
            raise _PathError(f"field '{name}' is not a list")
        items = container.get(name)
        if not isinstance(items, list):
            items = []
            container[name] = items
        item_classes = _model_types(item_annotation)
        while len(items) <= index:
            items.append({} if item_classes else _zero_value(item_annotation))
        if last:
            items[index] = coerce_value(item_annotation, raw, path=path)
            return
        if not item_classes:
            raise _PathError(f"items of '{name}' are not nested structures")
        if not isinstance(items[index], dict):
            items[index] = {}
        classes = item_classes
        container = items[index]


def bind(items: Iterable[BodyItem | dict], target: BaseModel) -> None:
    """Bind named, typed values onto ``target`` in place.

    Unknown paths are skipped with a warning. Coercion failures are skipped
    too, but the first one is raised once every other value has been bound,
    so callers may keep the partially bound state.
    """
    try:
        parsed = [item if isinstance(item, BodyItem) else BodyItem.model_validate(item) for item in items]
    except ValidationError as exc:
        raise BindError(f"malformed body item: {exc.errors()[0].get('msg')}") from exc
    validate_input_safety(parsed)

    model_cls = type(target)
    data = target.model_dump()
    first_error: BindError | None = None
    for index, item in enumerate(parsed):
        try:
            _assign(model_cls, data, item.name, item.value)
        except _PathError as exc:
            logger.warning("Cannot bind field %s at index %s: %s", item.name, index, exc)
        except BindError as exc:
            logger.warning("Error setting field %s at index %s: %s", item.name, index, exc)
            if first_error is None:
                first_error = exc

    try:
        bound = model_cls.model_validate(data)
    except ValidationError as exc:
        raise BindError(f"invalid body: {exc.errors()[0].get('msg')}") from exc
    for name in model_cls.model_fields:
        setattr(target, name, getattr(bound, name))

    if first_error is not None:
        raise first_error


def _format_value(value) -> tuple[str, str]:
    if isinstance(value, bool):
        return "bool", "true" if value else "false"
    if isinstance(value, Enum):
        return "string", str(value.value)
    if isinstance(value, int):
        return "int", str(value)
    if isinstance(value, float):
        return "float", repr(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return "time", value.isoformat()
        if value.time() == time.min:
            return "time", value.strftime("%Y-%m-%d")
        return "time", value.strftime("%Y-%m-%dT%H:%M:%S")
    if isinstance(value, date):
        return "time", value.isoformat()
    return "string", str(value)


def _dump_into(items: list[dict], path: str, value) -> None:
    if value is None:
        return
    if isinstance(value, BaseModel):
        for name in type(value).model_fields:
            _dump_into(items, f"{path}.{name}" if path else name, getattr(value, name))
        return
    if isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            _dump_into(items, f"{path}[{index}]", item)
        return
    kind, text = _format_value(value)
    items.append({"name": path, "type": kind, "value": text})


def dump_body_items(model: BaseModel) -> list[dict]:
    """Flatten ``model`` into body items that :func:`bind` accepts back."""
    items: list[dict] = []
    _dump_into(items, "", model)
    return items
