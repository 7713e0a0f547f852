"""
Deterministic query-string serialization of records and key/value containers.

Records are dataclass instances or pydantic models. Each field may carry a
directive in struct-tag form, ``"name,option,..."``:

    @dataclass
    class Search:
        term: str = field(metadata={"query": "q"})
        page: int = field(default=0, metadata={"query": ",omitempty"})
        secret: str = field(default="", metadata={"query": "-"})
        paging: Paging = field(default_factory=Paging, metadata={"query": ",squash"})

Pydantic models put the directive in ``Field(json_schema_extra={"query": ...})``.

Keys default to the lower-cased field name, "-" drops the field, "omitempty"
drops zero values and "squash" expands an embedded record in place. Output
follows declaration order after flattening; it is never sorted.
"""

from __future__ import annotations

import dataclasses
import functools
import logging
import typing
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union
from urllib.parse import urlencode

from pydantic import BaseModel

from ..errors import UnsupportedTypeError

logger = logging.getLogger(__name__)

DIRECTIVE_KEY = "query"
EXCLUDE = "-"
OMIT_EMPTY = "omitempty"
SQUASH = "squash"

Pairs = list[tuple[str, str]]


@dataclass(frozen=True)
class FieldDescriptor:
    """
    One entry of a record schema.

    Attributes:
        attr: Attribute name on the record
        key: Emitted query key
        omit_empty: Drop the field when it holds its zero value
        squash: Expand the embedded record in place
        declared_type: Resolved annotation (Optional stripped)
        empty: Factory for the field's empty value, used when the
            enclosing embedded record is None
    """

    attr: str
    key: str
    omit_empty: bool
    squash: bool
    declared_type: Any
    empty: Callable[[], Any]


def _parse_directive(directive: Optional[str], attr: str) -> Optional[tuple[str, bool, bool]]:
    """Return (key, omit_empty, squash), or None if the field is excluded."""
    if directive is None:
        return attr.lower(), False, False
    if directive.strip() == EXCLUDE:
        return None

    name, *options = [part.strip() for part in directive.split(",")]
    return name or attr.lower(), OMIT_EMPTY in options, SQUASH in options


def _strip_optional(annotation: Any) -> Any:
    if typing.get_origin(annotation) is Union:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        if len(args) == 1:
            return args[0]
    return annotation


def _is_record_type(tp: Any) -> bool:
    if not isinstance(tp, type):
        return False
    return dataclasses.is_dataclass(tp) or issubclass(tp, BaseModel)


def _is_record(value: Any) -> bool:
    return _is_record_type(type(value))


def _dataclass_empty(f: dataclasses.Field) -> Callable[[], Any]:
    if f.default is not dataclasses.MISSING:
        default = f.default
        return lambda: default
    if f.default_factory is not dataclasses.MISSING:
        return f.default_factory
    return lambda: None


def _dataclass_schema(record_type: type) -> list[FieldDescriptor]:
    try:
        hints = typing.get_type_hints(record_type)
    except (NameError, TypeError):
        hints = {}

    descriptors = []
    for f in dataclasses.fields(record_type):
        if f.name.startswith("_"):
            continue
        parsed = _parse_directive(f.metadata.get(DIRECTIVE_KEY), f.name)
        if parsed is None:
            continue
        key, omit_empty, squash = parsed
        descriptors.append(
            FieldDescriptor(
                attr=f.name,
                key=key,
                omit_empty=omit_empty,
                squash=squash,
                declared_type=_strip_optional(hints.get(f.name, f.type)),
                empty=_dataclass_empty(f),
            )
        )
    return descriptors


def _model_schema(record_type: type[BaseModel]) -> list[FieldDescriptor]:
    descriptors = []
    for name, info in record_type.model_fields.items():
        if name.startswith("_"):
            continue
        extra = info.json_schema_extra if isinstance(info.json_schema_extra, dict) else {}
        directive = extra.get(DIRECTIVE_KEY)
        parsed = _parse_directive(directive if isinstance(directive, str) else None, name)
        if parsed is None:
            continue
        key, omit_empty, squash = parsed
        if info.is_required():
            empty: Callable[[], Any] = lambda: None  # noqa: E731
        else:
            empty = functools.partial(info.get_default, call_default_factory=True)
        descriptors.append(
            FieldDescriptor(
                attr=name,
                key=key,
                omit_empty=omit_empty,
                squash=squash,
                declared_type=_strip_optional(info.annotation),
                empty=empty,
            )
        )
    return descriptors


@functools.lru_cache(maxsize=None)
def record_schema(record_type: type) -> tuple[FieldDescriptor, ...]:
    """
    Build (once per type) the ordered field descriptors of a record type.

    Raises:
        UnsupportedTypeError: If ``record_type`` is not a dataclass or pydantic model
    """
    if dataclasses.is_dataclass(record_type):
        return tuple(_dataclass_schema(record_type))
    if isinstance(record_type, type) and issubclass(record_type, BaseModel):
        return tuple(_model_schema(record_type))
    raise UnsupportedTypeError(f"Not a record type: {record_type!r}")


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (str, bytes, list, tuple, set, frozenset, dict)):
        return len(value) == 0
    if isinstance(value, (int, float, complex)):
        return value == 0
    return False


def _format_scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _format_values(value: Any) -> list[str]:
    if isinstance(value, (list, tuple)):
        return [_format_scalar(v) for v in value]
    if isinstance(value, (set, frozenset)):
        # Sets are unordered; sort so repeated calls stay byte-identical
        return sorted(_format_scalar(v) for v in value)
    return [_format_scalar(value)]


def _record_pairs(record: Any, record_type: type) -> Pairs:
    pairs: Pairs = []
    for descriptor in record_schema(record_type):
        value = descriptor.empty() if record is None else getattr(record, descriptor.attr)

        if descriptor.squash:
            embedded_type = type(value) if value is not None else descriptor.declared_type
            if not _is_record_type(embedded_type):
                raise UnsupportedTypeError(
                    f"Field {record_type.__name__}.{descriptor.attr} is marked squash "
                    f"but is not a record: {embedded_type!r}"
                )
            pairs.extend(_record_pairs(value, embedded_type))
            continue

        if descriptor.omit_empty and _is_empty(value):
            continue

        pairs.extend((descriptor.key, v) for v in _format_values(value))
    return pairs


def _container_pairs(container: Any) -> Pairs:
    if isinstance(container, Mapping):
        items = container.items()
    else:
        items = container

    pairs: Pairs = []
    for item in items:
        try:
            key, value = item
        except (TypeError, ValueError) as err:
            raise UnsupportedTypeError(f"Query container item is not a key/value pair: {item!r}") from err
        pairs.extend((str(key), v) for v in _format_values(value))
    return pairs


def query_pairs(source: Any) -> Pairs:
    """
    Flatten a record or container into ordered (key, value) pairs.

    Raises:
        UnsupportedTypeError: For anything that is neither a record nor a container
    """
    if source is None:
        return []
    if _is_record(source):
        return _record_pairs(source, type(source))
    if isinstance(source, Mapping) or (
        isinstance(source, (list, tuple)) and all(isinstance(item, (list, tuple)) for item in source)
    ):
        return _container_pairs(source)
    raise UnsupportedTypeError(f"Unsupported query source type: {type(source).__name__}")


def serialize_query(source: Any) -> str:
    """
    Serialize ``source`` into ``key=value&key=value`` form.

    Example:
        >>> serialize_query(Form(a="1", b="2"))
        'a=1&b=2'
        >>> serialize_query({"friend": ["jonas", "peter"], "name": "marcos"})
        'friend=jonas&friend=peter&name=marcos'
    """
    return urlencode(query_pairs(source))
