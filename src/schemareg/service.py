"""Lookups of individual type definitions in registered schemas."""

from __future__ import annotations

import logging

from .exceptions import TypeNotDefinedError
from .registry import SchemaRegistry
from .schema import TypeDefinition, require_key


class SchemaRegistryService:
    """Resolves named types inside registered schemas.

    Args:
        registry: Registry to read schemas from.
        logger: Optional logger. If None, creates a default logger at
            "schemareg.service".
    """

    def __init__(self, registry: SchemaRegistry, logger: logging.Logger | None = None):
        self.registry = registry
        self.logger = logger or logging.getLogger("schemareg.service")

    def get_schema_type(self, namespace: str, version: str, type_name: str) -> TypeDefinition:
        """Return the definition of `type_name` in a registered schema.

        Raises:
            InvalidArgumentError: If any argument is missing or blank.
            SchemaNotFoundError: If the schema is not registered.
            TypeNotDefinedError: If the schema does not define `type_name`.
        """
        require_key("type name", type_name)
        stored = self.registry.find_by_namespace_version(namespace, version)
        definition = stored.schema.get_type(type_name)
        if definition is None:
            raise TypeNotDefinedError(
                f"Type '{type_name}' is not defined in schema '{stored.id}'",
                suggestions=[
                    "Defined types: " + (", ".join(sorted(stored.schema.type_names)) or "none")
                ],
            )
        self.logger.debug(f"Resolved type '{type_name}' in '{stored.id}'")
        return definition
