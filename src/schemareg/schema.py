"""Object schema documents stored in the registry.

An `ObjectSchema` groups named type definitions under a namespace and a
semantic version. The registry never looks inside the type definitions; it
only stores them and hands them back.

Example:
    >>> schema = ObjectSchema(
    ...     namespace="ns://acme.io/billing",
    ...     version="1.0.0",
    ...     description="Billing domain objects",
    ... )
    >>> schema.add_type("Invoice", {"properties": {"amount": {"type": "number"}}})
    >>> schema.id
    'ns://acme.io/billing::1.0.0'
    >>> schema.get_type("Invoice")["properties"]["amount"]
    {'type': 'number'}
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping

from .exceptions import InvalidArgumentError, SchemaValidationError

ID_SEPARATOR = "::"

# MAJOR.MINOR.PATCH with optional pre-release and build metadata
SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)

TypeDefinition = dict[str, Any]


def require_key(name: str, value: Any) -> str:
    """Return `value` if it is a non-blank string.

    Raises:
        InvalidArgumentError: If `value` is missing, not a string, or blank.
    """
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"{name} is required and must be a non-blank string")
    return value


def schema_id(namespace: str, version: str) -> str:
    """Derive the storage id of a schema from its namespace and version.

    The id is a pure function of its inputs, so the same pair always maps to
    the same document without a lookup.

    Raises:
        InvalidArgumentError: If namespace or version is missing or blank.
    """
    require_key("namespace", namespace)
    require_key("version", version)
    return f"{namespace}{ID_SEPARATOR}{version}"


def _parse_timestamp(value: Any, field_name: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError as e:
            raise SchemaValidationError(
                f"'{field_name}' is not an ISO-8601 timestamp: {value!r}"
            ) from e
    raise SchemaValidationError(
        f"'{field_name}' must be a timestamp, got {type(value).__name__}"
    )


@dataclass
class ObjectSchema:
    """A versioned set of type definitions under a namespace.

    Args:
        namespace: Hierarchical identifier of the schema family
            (e.g. "ns://acme.io/billing").
        version: Semantic version string, e.g. "1.2.0".
        description: Optional human-readable description.
        types: Mapping of type name to type definition. Definitions are
            opaque to the registry.
        created_on: Set by the registry when the schema is first written.
        updated_on: Set by the registry on every write.
        updated_by: Optional identity recorded by the last update.

    Raises:
        SchemaValidationError: If the namespace is blank, the version is not
            a semantic version, or a type definition is not a mapping.
    """

    namespace: str
    version: str
    description: str | None = None
    types: dict[str, TypeDefinition] = field(default_factory=dict)
    created_on: datetime | None = None
    updated_on: datetime | None = None
    updated_by: str | None = None

    def __post_init__(self):
        self._validate_key_fields()
        self._validate_types()

    def _validate_key_fields(self):
        if not isinstance(self.namespace, str) or not self.namespace.strip():
            raise SchemaValidationError("Schema namespace cannot be empty")
        if not isinstance(self.version, str) or not SEMVER_PATTERN.match(self.version):
            raise SchemaValidationError(
                f"Schema version {self.version!r} is not a semantic version",
                suggestions=["Use MAJOR.MINOR.PATCH, e.g. '1.0.0'"],
            )

    def _validate_types(self):
        for name, definition in self.types.items():
            if not isinstance(definition, Mapping):
                raise SchemaValidationError(
                    f"Type '{name}' in schema '{self.id}' must be a mapping, "
                    f"got {type(definition).__name__}"
                )

    @property
    def id(self) -> str:
        """Storage id derived from namespace and version."""
        return schema_id(self.namespace, self.version)

    @property
    def type_names(self) -> set[str]:
        return set(self.types)

    def get_type(self, name: str) -> TypeDefinition | None:
        """Return the definition registered under `name`, or None."""
        return self.types.get(name)

    def add_type(self, name: str, definition: Mapping[str, Any]) -> None:
        """Add or replace the definition for type `name`."""
        require_key("type name", name)
        if not isinstance(definition, Mapping):
            raise SchemaValidationError(
                f"Type '{name}' must be a mapping, got {type(definition).__name__}"
            )
        self.types[name] = dict(definition)

    def to_dict(self) -> dict[str, Any]:
        """Plain field mapping as persisted in the backing store."""
        return {
            "namespace": self.namespace,
            "version": self.version,
            "description": self.description,
            "types": {name: dict(d) for name, d in self.types.items()},
            "created_on": self.created_on.isoformat() if self.created_on else None,
            "updated_on": self.updated_on.isoformat() if self.updated_on else None,
            "updated_by": self.updated_by,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ObjectSchema:
        """Build a schema from a plain field mapping.

        Unknown keys are ignored so documents written by newer versions of
        the registry can still be read.
        """
        if not isinstance(data, Mapping):
            raise SchemaValidationError(
                f"Schema document must be a mapping, got {type(data).__name__}"
            )
        types = data.get("types") or {}
        if not isinstance(types, Mapping):
            raise SchemaValidationError("'types' must be a mapping of type name to definition")
        return cls(
            namespace=data.get("namespace"),  # type: ignore[arg-type]
            version=data.get("version"),  # type: ignore[arg-type]
            description=data.get("description"),
            types={name: dict(d) if isinstance(d, Mapping) else d for name, d in types.items()},
            created_on=_parse_timestamp(data.get("created_on"), "created_on"),
            updated_on=_parse_timestamp(data.get("updated_on"), "updated_on"),
            updated_by=data.get("updated_by"),
        )


@dataclass(frozen=True)
class StoredSchema:
    """A schema as read back from the store, with its revision token."""

    schema: ObjectSchema
    revision: int

    @property
    def id(self) -> str:
        return self.schema.id


@dataclass(frozen=True)
class WriteResult:
    """Metadata returned by a successful write."""

    id: str
    revision: int
    created: bool


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a bulk delete."""

    deleted: frozenset[str] = frozenset()
    missing: frozenset[str] = frozenset()
