"""
CrudKit — Resource Definitions
================================

What:  Immutable description of one exposed resource: its model, its route
       name, its identifier and revision-marker attributes, and a
       capability-tagged descriptor for every user field.
How:   `ResourceDefinition.from_model()` inspects the SQLAlchemy mapper ONCE at
       startup and resolves:
         - text-kind fields   → searchable by the list endpoint
         - reference fields   → columns with a ForeignKey; each records the
                                referenced model name, the relationship that
                                loads it, and a cast for incoming id strings
         - revision marker    → the mapper's `version_id_col` (never serialized)
       Definitions can also be built by hand for full control.
When:  Constructed at registration time; read-only for the process lifetime.

Example:
    class Post(Base):
        __tablename__ = "posts"
        id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
        title: Mapped[str] = mapped_column(String(200))
        author_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"))
        author: Mapped["User"] = relationship()

    ResourceDefinition.from_model(Post)
        name="Post", collection="posts", id_field="id"
        fields: title (TEXT), author_id (REFERENCE → "User", relationship "author")
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type, Union

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import MANYTOONE, InstrumentedAttribute
from sqlalchemy.sql.schema import Column

from crudkit.exceptions import CastError, ConfigurationError

logger = logging.getLogger(__name__)

# Identifier aliases accepted in sort specs and filters
ID_ALIASES = ("id", "_id")

Caster = Callable[[Any], Any]


class FieldKind(str, Enum):
    """Primitive kind of a field, as far as route generation cares."""

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    REFERENCE = "reference"
    OTHER = "other"


_TRUE_VALUES = {"true", "1", "yes", "on"}
_FALSE_VALUES = {"false", "0", "no", "off"}


def make_caster(field_name: str, python_type: Optional[type]) -> Caster:
    """
    Build a function converting an external (string) value into `python_type`.

    Failures raise CastError, which the error translator answers with 400 InvalidId.
    """
    if python_type is None:
        return lambda value: value

    target = python_type.__name__

    def cast(value: Any) -> Any:
        if isinstance(value, python_type):
            return value
        try:
            if python_type is uuid.UUID:
                return uuid.UUID(str(value))
            if python_type is bool:
                lowered = str(value).strip().lower()
                if lowered in _TRUE_VALUES:
                    return True
                if lowered in _FALSE_VALUES:
                    return False
                raise ValueError(value)
            if python_type is int:
                return int(str(value).strip())
            if python_type in (datetime, date, time):
                return python_type.fromisoformat(str(value))
            return python_type(value)
        except (ValueError, TypeError, ArithmeticError) as exc:
            raise CastError(field=field_name, value=value, target=target) from exc

    return cast


def _python_type(column: Column) -> Optional[type]:
    try:
        return column.type.python_type
    except NotImplementedError:
        return None


def _kind_for(python_type: Optional[type]) -> FieldKind:
    if python_type is None:
        return FieldKind.OTHER
    if python_type is bool:
        return FieldKind.BOOLEAN
    if issubclass(python_type, str) and not issubclass(python_type, Enum):
        return FieldKind.TEXT
    if python_type in (int, float, Decimal):
        return FieldKind.NUMBER
    if python_type in (datetime, date, time):
        return FieldKind.DATETIME
    return FieldKind.OTHER


@dataclass(frozen=True)
class FieldDescriptor:
    """
    One user field of a resource.

    Attributes:
        name:          Mapped attribute name (also the wire/query-string key)
        kind:          FieldKind tag
        cast:          Converts query-string values to the stored type
        python_type:   Stored Python type (None when the column type has none)
        required:      Must be present on create (non-nullable, no default)
        nullable:      Accepts null
        max_length:    Length limit for text columns, if declared
        ref:           Referenced resource name (reference fields only)
        relationship:  Relationship attribute that loads the referenced record
    """

    name: str
    kind: FieldKind
    cast: Caster
    python_type: Optional[type] = None
    required: bool = False
    nullable: bool = True
    max_length: Optional[int] = None
    ref: Optional[str] = None
    relationship: Optional[str] = None

    @property
    def is_reference(self) -> bool:
        return self.ref is not None


@dataclass(frozen=True)
class ResourceDefinition:
    """
    Everything the route registrars need to expose one model.

    Attributes:
        model:           Mapped model class
        name:            Resource name (model class name, e.g. "User")
        collection:      Route segment and allow-list key (table name, e.g. "users")
        id_field:        Primary-key attribute name
        id_cast:         Converts path ids into the primary-key type
        fields:          User fields in declaration order (id and revision excluded)
        revision_field:  Optimistic-lock counter attribute, dropped from responses
        relationships:   All relationship attribute names, populatable by name
    """

    model: Type[Any]
    name: str
    collection: str
    id_field: str
    id_cast: Caster
    fields: Tuple[FieldDescriptor, ...]
    revision_field: Optional[str] = None
    relationships: Tuple[str, ...] = ()
    _by_name: Dict[str, FieldDescriptor] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        self._by_name.update({f.name: f for f in self.fields})

    # ── Field lookups ─────────────────────────────────────────────────────
    @property
    def searchable_fields(self) -> List[str]:
        """Names of text-kind fields, searched by `?search=`."""
        return [f.name for f in self.fields if f.kind is FieldKind.TEXT]

    @property
    def reference_fields(self) -> List[FieldDescriptor]:
        """Fields pointing at another resource, in declaration order."""
        return [f for f in self.fields if f.is_reference]

    def get_field(self, name: str) -> Optional[FieldDescriptor]:
        return self._by_name.get(name)

    def column(self, name: str) -> Optional[InstrumentedAttribute]:
        """Mapped attribute for a field name; `id`/`_id` resolve to the primary key."""
        if name in ID_ALIASES or name == self.id_field:
            return getattr(self.model, self.id_field)
        if name in self._by_name:
            return getattr(self.model, name)
        return None

    @property
    def id_column(self) -> InstrumentedAttribute:
        return getattr(self.model, self.id_field)

    def relationship_for(self, name: str) -> Optional[str]:
        """
        Resolve a populate directive entry to a relationship attribute name.

        Accepts either the relationship itself ("author") or the reference
        column it is loaded through ("author_id").
        """
        if name in self.relationships:
            return name
        descriptor = self._by_name.get(name)
        if descriptor is not None and descriptor.relationship:
            return descriptor.relationship
        return None

    # ── Construction ──────────────────────────────────────────────────────
    @classmethod
    def from_model(
        cls,
        model: Type[Any],
        *,
        name: Optional[str] = None,
        collection: Optional[str] = None,
    ) -> "ResourceDefinition":
        """
        Resolve a definition from a mapped model's mapper.

        Raises:
            ConfigurationError: model is not mapped, or has a composite primary key
        """
        mapper = sa_inspect(model, raiseerr=False)
        if mapper is None or not hasattr(mapper, "column_attrs"):
            raise ConfigurationError(f"{model!r} is not a mapped SQLAlchemy model")
        if len(mapper.primary_key) != 1:
            raise ConfigurationError(
                f"{model.__name__} has a composite primary key; only single-column keys are supported",
                context={"model": model.__name__},
            )

        pk_column = mapper.primary_key[0]
        id_field = mapper.get_property_by_column(pk_column).key

        revision_field = None
        if mapper.version_id_col is not None:
            revision_field = mapper.get_property_by_column(mapper.version_id_col).key

        # FK column → many-to-one relationship loading through it
        relationship_by_column: Dict[Column, str] = {}
        for rel in mapper.relationships:
            if rel.direction is MANYTOONE:
                for local in rel.local_columns:
                    relationship_by_column.setdefault(local, rel.key)

        fields: List[FieldDescriptor] = []
        for prop in mapper.column_attrs:
            if prop.key in (id_field, revision_field) or len(prop.columns) != 1:
                continue
            column = prop.columns[0]
            if not isinstance(column, Column):
                continue  # column_property() expressions are read-only
            fields.append(_describe_column(mapper, prop.key, column, relationship_by_column))

        definition = cls(
            model=model,
            name=name or model.__name__,
            collection=collection or mapper.local_table.name,
            id_field=id_field,
            id_cast=make_caster(id_field, _python_type(pk_column)),
            fields=tuple(fields),
            revision_field=revision_field,
            relationships=tuple(rel.key for rel in mapper.relationships),
        )
        logger.debug(
            "Resolved resource %s (%s): %d fields, references=%s",
            definition.name,
            definition.collection,
            len(fields),
            [f.name for f in definition.reference_fields],
        )
        return definition


def _describe_column(mapper, key: str, column: Column, relationship_by_column) -> FieldDescriptor:
    python_type = _python_type(column)
    has_default = (
        column.default is not None
        or column.server_default is not None
        or (column.primary_key and column.autoincrement is True)
    )
    max_length = getattr(column.type, "length", None)

    ref = None
    relationship = None
    kind = _kind_for(python_type)
    cast = make_caster(key, python_type)

    if column.foreign_keys:
        target = next(iter(column.foreign_keys)).column
        ref = _model_name_for_table(mapper, target.table)
        relationship = relationship_by_column.get(column)
        kind = FieldKind.REFERENCE
        # Values are cast into the referenced key's type
        cast = make_caster(key, _python_type(target) or python_type)

    return FieldDescriptor(
        name=key,
        kind=kind,
        cast=cast,
        python_type=python_type,
        required=not column.nullable and not has_default,
        nullable=bool(column.nullable),
        max_length=max_length if kind is FieldKind.TEXT else None,
        ref=ref,
        relationship=relationship,
    )


def _model_name_for_table(mapper, table) -> str:
    """Class name of the mapped model owning `table`; falls back to the table name."""
    for candidate in mapper.registry.mappers:
        if candidate.local_table is table:
            return candidate.class_.__name__
    return table.name


def resolve_resource(
    model_or_definition: Union[Type[Any], ResourceDefinition]
) -> ResourceDefinition:
    """Accept either a ready definition or a mapped model class."""
    if isinstance(model_or_definition, ResourceDefinition):
        return model_or_definition
    return ResourceDefinition.from_model(model_or_definition)


def resolve_resources(models: Iterable[Union[Type[Any], ResourceDefinition]]) -> List[ResourceDefinition]:
    return [resolve_resource(m) for m in models]
