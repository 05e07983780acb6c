"""
Field definitions of a mapped model, and their history counterparts.

``reflect_fields`` turns a SQLAlchemy mapper into plain ``FieldDefinition``
values; ``history_fields`` maps them to the fields of the history table.
Neither touches the database.
"""

from __future__ import annotations

import enum
from typing import Any, Dict, Iterable, List

from pydantic import BaseModel, Field
from sqlalchemy import Column, Integer, String, inspect
from sqlalchemy.types import SchemaType

from ..errors import ConfigurationError

# length of the string column a discriminator becomes
TYPE_TAG_LENGTH = 50

# column options carried over to history columns
COPIED_OPTIONS = ("nullable", "default", "doc", "comment", "info")


class FieldKind(str, enum.Enum):
    ORDINARY = "ordinary"
    DISCRIMINATOR = "discriminator"  # single-table inheritance type tag
    SERIAL = "serial"  # auto-incrementing surrogate key


class FieldDefinition(BaseModel):
    """One mapped column: attribute name, SQL type, kind and options."""

    name: str
    column_name: str
    type_: Any
    kind: FieldKind = FieldKind.ORDINARY
    options: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def is_key(self) -> bool:
        return bool(self.options.get("key"))

    def to_column(self) -> Column:
        opts = {k: v for k, v in self.options.items() if k in COPIED_OPTIONS}
        if self.is_key:
            opts["nullable"] = False
        type_ = self.type_
        if isinstance(type_, SchemaType):
            type_ = type_.copy()  # bound to one table at a time
        return Column(
            self.column_name,
            type_,
            primary_key=self.is_key,
            autoincrement=False,
            **opts,
        )


def _column_options(column: Column, serial: bool) -> Dict[str, Any]:
    options: Dict[str, Any] = {"key": column.primary_key, "nullable": column.nullable}
    default = column.default
    if default is not None and not default.is_sequence:
        options["default"] = default.arg  # type: ignore[attr-defined]
    if column.doc:
        options["doc"] = column.doc
    if column.comment:
        options["comment"] = column.comment
    if column.info:
        options["info"] = dict(column.info)
    if column.unique:
        options["unique"] = True
    if column.index:
        options["index"] = True
    if serial:
        options["serial"] = True
    return options


def reflect_fields(model: type) -> List[FieldDefinition]:
    """
    Field definitions of ``model`` in declared order.

    Reads ``mapper.columns`` only, so relationships to classes that are not
    declared yet stay unresolved.
    """
    mapper = inspect(model)
    table = mapper.local_table
    discriminator = mapper.polymorphic_on
    serial_column = getattr(table, "autoincrement_column", None)

    fields: List[FieldDefinition] = []
    for name, column in mapper.columns.items():
        if not isinstance(column, Column):
            continue  # SQL expression, not stored

        if discriminator is not None and column is discriminator:
            kind = FieldKind.DISCRIMINATOR
        elif serial_column is not None and column is serial_column:
            kind = FieldKind.SERIAL
        else:
            kind = FieldKind.ORDINARY

        fields.append(
            FieldDefinition(
                name=name,
                column_name=column.name,
                type_=column.type,
                kind=kind,
                options=_column_options(column, kind is FieldKind.SERIAL),
            )
        )
    return fields


def _history_type(field: FieldDefinition) -> Any:
    if field.kind is FieldKind.DISCRIMINATOR:
        length = getattr(field.type_, "length", None) or TYPE_TAG_LENGTH
        return String(length)
    if field.kind is FieldKind.SERIAL:
        return Integer()
    return field.type_


def validate_watched(fields: Iterable[FieldDefinition], watched: Iterable[str]) -> tuple[str, ...]:
    names = [field.name for field in fields]
    watched = tuple(watched)
    if not watched:
        raise ConfigurationError("at least one watched field is required")
    unknown = [name for name in watched if name not in names]
    if unknown:
        raise ConfigurationError(f"unknown watched field(s): {', '.join(unknown)}")
    if len(set(watched)) != len(watched):
        raise ConfigurationError(f"duplicate watched field in {watched!r}")
    return watched


def history_fields(
    fields: Iterable[FieldDefinition], watched: Iterable[str]
) -> List[FieldDefinition]:
    """
    Fields of the history table for a model with ``fields``.

    One field per source field, same names and order. The key is exactly
    the watched fields; the source key becomes an ordinary column.
    Discriminators turn into plain string columns, serial columns into plain
    integers that never auto-increment.
    """
    fields = list(fields)
    watched = validate_watched(fields, watched)

    result: List[FieldDefinition] = []
    for field in fields:
        options = {
            k: v for k, v in field.options.items() if k not in ("unique", "index")
        }
        options["key"] = field.name in watched
        # TODO: confirm whether a serial field outside the watched set should
        # also stay a key; today only watched fields are keys.
        if options.pop("serial", False) and field.name in watched:
            options["key"] = True
        result.append(
            FieldDefinition(
                name=field.name,
                column_name=field.column_name,
                type_=_history_type(field),
                kind=FieldKind.ORDINARY,
                options=options,
            )
        )
    return result
