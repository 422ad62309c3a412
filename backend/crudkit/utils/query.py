"""
CrudKit — Query Builder
=========================

What:  Composes the SELECT behind list endpoints from a filter map and
       a `QueryOptions` bag, plus the matching COUNT query.
How:   Fixed order:
         1. WHERE field = value for every filter (values already cast)
         2. OR of case-insensitive substring matches across search fields
         3. selectinload() for every populated relationship
         4. ORDER BY sort, OFFSET (page-1)*limit, LIMIT limit
       Returns an unexecuted `Select`; the route registrar executes it
       together with `build_count_query()`.

Query-string helpers (`parse_int`, `parse_sort`, `split_list_param`,
`parse_list_params`) turn raw request parameters into these inputs.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import Select, func, or_, select
from sqlalchemy.orm import selectinload

from crudkit.resources import ResourceDefinition, resolve_resource

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10

# Query-string keys that are never treated as filters
RESERVED_PARAMS = ("page", "limit", "sort", "search", "populate")

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_DESCENDING = {"-1", "desc", "descending"}

Populate = Union[None, str, Sequence[str]]


@dataclass
class QueryOptions:
    """
    Options for `build_query()`.

    Attributes:
        page:           1-based page number
        limit:          Page size
        sort:           {field: direction}; None → primary key descending
        search:         Free-text term
        search_fields:  Fields the term is matched against
        populate:       Relationship / reference field name(s) to load
    """

    page: int = DEFAULT_PAGE
    limit: int = DEFAULT_LIMIT
    sort: Optional[Mapping[str, Any]] = None
    search: Optional[str] = None
    search_fields: Sequence[str] = ()
    populate: Populate = None

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


# ══════════════════════════════════════════════════════════════════════════
# Query construction
# ══════════════════════════════════════════════════════════════════════════

def normalize_populate(populate: Populate) -> List[str]:
    """A single name becomes a one-element list; None becomes []."""
    if not populate:
        return []
    if isinstance(populate, str):
        return [populate]
    return list(populate)


def populate_options(resource: ResourceDefinition, populate: Populate) -> list:
    """Loader options expanding each requested reference into its full record."""
    loaders = []
    for name in normalize_populate(populate):
        relationship = resource.relationship_for(name)
        if relationship is None:
            logger.debug("Ignoring populate of unknown field %s.%s", resource.name, name)
            continue
        loaders.append(selectinload(getattr(resource.model, relationship)))
    return loaders


def sort_clauses(resource: ResourceDefinition, sort: Optional[Mapping[str, Any]]) -> list:
    """ORDER BY clauses for a sort spec; falls back to primary key descending."""
    clauses = []
    for name, direction in (sort or {}).items():
        column = resource.column(name)
        if column is None:
            logger.debug("Ignoring sort on unknown field %s.%s", resource.name, name)
            continue
        if str(direction).strip().lower() in _DESCENDING:
            clauses.append(column.desc())
        else:
            clauses.append(column.asc())
    return clauses or [resource.id_column.desc()]


def _filter_criteria(resource: ResourceDefinition, filters: Mapping[str, Any]) -> list:
    return [getattr(resource.model, key) == value for key, value in filters.items()]


def build_query(
    store: Any,
    filters: Optional[Mapping[str, Any]] = None,
    options: Optional[QueryOptions] = None,
) -> Select:
    """
    Build the filtered, searched, populated, sorted and paginated SELECT.

    Args:
        store:    ResourceDefinition or mapped model class
        filters:  Equality matches, keyed by attribute name
        options:  QueryOptions (defaults: page 1, limit 10, id descending)
    """
    resource = resolve_resource(store)
    filters = filters or {}
    options = options or QueryOptions()

    query = select(resource.model).where(*_filter_criteria(resource, filters))

    if options.search and options.search_fields:
        conditions = [
            getattr(resource.model, name).icontains(options.search, autoescape=True)
            for name in options.search_fields
        ]
        query = query.where(or_(*conditions))

    loaders = populate_options(resource, options.populate)
    if loaders:
        query = query.options(*loaders)

    return (
        query.order_by(*sort_clauses(resource, options.sort))
        .offset(options.skip)
        .limit(options.limit)
    )


def build_count_query(store: Any, filters: Optional[Mapping[str, Any]] = None) -> Select:
    """COUNT(*) over the same filters; search and pagination are not applied."""
    resource = resolve_resource(store)
    return (
        select(func.count())
        .select_from(resource.model)
        .where(*_filter_criteria(resource, filters or {}))
    )


# ══════════════════════════════════════════════════════════════════════════
# Query-string parsing
# ══════════════════════════════════════════════════════════════════════════

def parse_int(value: Any, default: int) -> int:
    """
    Leading-integer parse: "3" → 3, "3abc" → 3, "abc" → default, None → default.
    """
    if value is None:
        return default
    if isinstance(value, int):
        return value
    match = _LEADING_INT.match(str(value))
    return int(match.group(1)) if match else default


def parse_sort(raw: Optional[str]) -> Optional[Dict[str, Any]]:
    """Parse a JSON sort object; anything else yields None (default order)."""
    if not raw:
        return None
    try:
        parsed = json.loads(raw)
    except ValueError:
        logger.debug("Ignoring malformed sort parameter: %r", raw)
        return None
    if not isinstance(parsed, dict):
        logger.debug("Ignoring non-object sort parameter: %r", raw)
        return None
    return parsed


def split_list_param(values: Sequence[str]) -> List[str]:
    """["a,b", "c"] → ["a", "b", "c"]"""
    names: List[str] = []
    for value in values:
        names.extend(part.strip() for part in value.split(",") if part.strip())
    return names


def parse_list_params(
    params: Any,
    resource: ResourceDefinition,
    *,
    default_limit: int = DEFAULT_LIMIT,
    max_limit: Optional[int] = None,
    exclude: Sequence[str] = (),
) -> Tuple[Dict[str, Any], QueryOptions]:
    """
    Split list-endpoint query parameters into (filters, options).

    Args:
        params:         Starlette QueryParams (or any mapping; `getlist` used when present)
        resource:       Resource being listed
        default_limit:  Page size when `limit` is missing or not a positive integer
        max_limit:      Upper bound for `limit`
        exclude:        Filter keys dropped without being cast

    Filters:
        Keys naming a declared field (or `id`) are cast to the field's type;
        a failed cast raises CastError. Other keys are ignored.
    """
    page = parse_int(params.get("page"), DEFAULT_PAGE)
    if page < 1:
        page = DEFAULT_PAGE
    limit = parse_int(params.get("limit"), default_limit)
    if limit < 1:
        limit = default_limit
    if max_limit is not None:
        limit = min(limit, max_limit)

    if hasattr(params, "getlist"):
        populate = split_list_param(params.getlist("populate"))
    else:
        raw = params.get("populate")
        populate = split_list_param([raw] if isinstance(raw, str) else list(raw or []))

    filters: Dict[str, Any] = {}
    for key in params.keys():
        if key in RESERVED_PARAMS or key in exclude:
            continue
        value = params.get(key)
        descriptor = resource.get_field(key)
        if descriptor is not None:
            filters[descriptor.name] = descriptor.cast(value)
        elif resource.column(key) is not None:
            filters[resource.id_field] = resource.id_cast(value)
        else:
            logger.debug("Ignoring filter on unknown field %s.%s", resource.name, key)

    options = QueryOptions(
        page=page,
        limit=limit,
        sort=parse_sort(params.get("sort")),
        search=params.get("search") or None,
        search_fields=resource.searchable_fields,
        populate=populate or None,
    )
    return filters, options
