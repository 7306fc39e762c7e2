"""Row projection — map one record onto the column slots of a header schema."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from report_writer.models import FlatHeader, HeaderSchema, Record


def _by_name(fields: Mapping[Any, Any]) -> dict[str, Any]:
    # header names are stringified keys, so lookups must be too
    return {str(key): value for key, value in fields.items()}


def _scalar(value: Any) -> Any:
    # a nested mapping where a single cell is expected renders empty
    return None if isinstance(value, Mapping) else value


def project(record: Record, schema: HeaderSchema) -> list[Any]:
    """Return the cell values of *record* laid out in *schema* order.

    A flat header takes one slot and a group header takes one slot per child.
    Absent fields, absent children, and values of the wrong shape all become
    ``None``; projection never fails, and the row length is always
    ``schema.width``.
    """
    fields = _by_name(record)
    row: list[Any] = []
    for entry in schema:
        if isinstance(entry, FlatHeader):
            row.append(_scalar(fields.get(entry.name)))
            continue
        group = fields.get(entry.name)
        if not isinstance(group, Mapping):
            row.extend([None] * len(entry.children))
            continue
        children = _by_name(group)
        row.extend(_scalar(children.get(child)) for child in entry.children)
    return row
