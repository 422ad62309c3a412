"""
CrudKit — Document Transformer
================================

What:  Converts a stored record into the wire-safe response dict.
How:   1. Take a plain-field view of the record (loaded column attributes,
          plus relationships that were populated for this query)
       2. Pull out the primary key → `id` (always a string)
       3. Drop the revision marker (`version_id_col`, or `__v` for mappings)
       4. Stringify UUID values (foreign keys); transform populated records

Only attributes already loaded are read. Touching an unloaded attribute
would trigger lazy IO, which is not allowed on an AsyncSession.
"""

import uuid
from typing import Any, Dict, Mapping, Optional, Tuple

from sqlalchemy import inspect as sa_inspect

# Internal keys recognized on plain mappings (document-store style records)
MAPPING_ID_KEYS = ("_id", "id")
MAPPING_REVISION_KEYS = ("__v",)


def _plain_view(record: Any) -> Tuple[Dict[str, Any], str, Optional[str]]:
    """Return (fields in declaration order, id key, revision key)."""
    if isinstance(record, Mapping):
        plain = dict(record)
        id_key = next((k for k in MAPPING_ID_KEYS if k in plain), "_id")
        # The first id key found wins; other aliases never reach the output
        for alias in MAPPING_ID_KEYS:
            if alias != id_key:
                plain.pop(alias, None)
        revision_key = next((k for k in MAPPING_REVISION_KEYS if k in plain), None)
        return plain, id_key, revision_key

    state = sa_inspect(record)
    mapper = state.mapper
    unloaded = state.unloaded

    plain: Dict[str, Any] = {}
    for prop in mapper.column_attrs:
        if prop.key not in unloaded:
            plain[prop.key] = getattr(record, prop.key)
    for rel in mapper.relationships:
        if rel.key not in unloaded:
            plain[rel.key] = getattr(record, rel.key)

    id_key = mapper.get_property_by_column(mapper.primary_key[0]).key
    revision_key = None
    if mapper.version_id_col is not None:
        revision_key = mapper.get_property_by_column(mapper.version_id_col).key
    return plain, id_key, revision_key


def _is_record(value: Any) -> bool:
    state = sa_inspect(value, raiseerr=False)
    return state is not None and hasattr(state, "unloaded")


def _wire_value(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (list, tuple, set)) and value and all(_is_record(v) for v in value):
        return [transform_document(v) for v in value]
    if _is_record(value):
        return transform_document(value)
    return value


def transform_document(record: Any) -> Optional[Dict[str, Any]]:
    """
    Transform a record (ORM instance or mapping) for an API response.

    Returns:
        `{"id": "<pk>", **fields}` or None when `record` is None.

    >>> transform_document({"_id": 7, "__v": 0, "name": "Ada"})
    {'id': '7', 'name': 'Ada'}
    """
    if record is None:
        return None

    plain, id_key, revision_key = _plain_view(record)
    identifier = plain.pop(id_key, None)
    if revision_key is not None:
        plain.pop(revision_key, None)

    document: Dict[str, Any] = {"id": None if identifier is None else str(identifier)}
    for key, value in plain.items():
        document[key] = _wire_value(value)
    return document
