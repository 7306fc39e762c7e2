"""Header resolution — accrete an ordered header schema from records.

A field whose value is a mapping becomes a group header whose children are
the mapping's keys; any other value becomes a flat header. Accretion is a
fold over the record stream: feeding records batch by batch into the same
schema gives the same result as feeding them all at once.

A name used flat in one record and as a group in another ends up as two
separate entries. Flat lookups only consider flat entries and group lookups
only consider group entries, so neither shape absorbs the other.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from report_writer.models import FlatHeader, GroupHeader, HeaderSchema, Record


def resolve_record(record: Record, schema: HeaderSchema) -> HeaderSchema:
    """Merge the fields of one *record* into *schema* in the record's key order."""
    for name, value in record.items():
        name = str(name)
        if isinstance(value, Mapping):
            children = [str(child) for child in value.keys()]
            group = schema.find_group(name)
            if group is not None:
                group.merge(children)
            else:
                schema.append(GroupHeader(name, children))
        elif schema.find_flat(name) is None:
            schema.append(FlatHeader(name))
    return schema


def resolve(records: Iterable[Record], existing: HeaderSchema | None = None) -> HeaderSchema:
    """Return *existing* (or a new schema) extended with every field in *records*.

    *existing* is mutated in place so callers can thread one schema through
    successive batches.
    """
    schema = existing if existing is not None else HeaderSchema()
    for record in records:
        resolve_record(record, schema)
    return schema
