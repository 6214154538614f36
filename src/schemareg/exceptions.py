"""Custom schemareg exceptions."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .schema import ObjectSchema


class RegistryError(Exception):
    """Root of every error raised by the registry and its document stores.

    Callers that only need to tell registry failures from their own bugs can
    catch this one type. Subclasses separate bad input, missing schemas,
    revision conflicts, duplicate creates and an unreachable backend.

    Attributes:
        suggestions: Remediation hints, appended to the message after " | ".

    Example:
        >>> str(RegistryError(
        ...     "Schema 'ns://acme/orders::1.0.0' could not be written",
        ...     suggestions=["Check that the registry path is writable"],
        ... ))
        "Schema 'ns://acme/orders::1.0.0' could not be written | Check that the registry path is writable"
    """

    def __init__(
        self,
        message: str,
        suggestions: list[str] | None = None,
    ):
        """Initialize a RegistryError.

        Args:
            message: The error message.
            suggestions: Optional list of suggestions to fix the error.
        """
        super().__init__(message)
        self.suggestions = suggestions or []

    def __str__(self) -> str:
        result = super().__str__()

        if self.suggestions:
            suggestions_text = "; ".join(self.suggestions)
            result += f" | {suggestions_text}"

        return result


class InvalidArgumentError(RegistryError, ValueError):
    """Missing or malformed argument.

    Raised before any store call is made, e.g. when a namespace or version
    used as a lookup key is missing or blank.
    """


class SchemaValidationError(RegistryError):
    """Schema document structure errors.

    Raised when a schema document cannot be built from its field mapping,
    such as an invalid semantic version or a non-mapping type definition.
    """


class RegistryConfigError(RegistryError):
    """Invalid registry configuration."""


# Lookup Exceptions
class NotFoundError(RegistryError):
    """Requested document does not exist in the backing store."""


class SchemaNotFoundError(NotFoundError):
    """No schema is stored under the requested id."""


class TypeNotDefinedError(NotFoundError):
    """The schema exists but does not define the requested type."""


# Write Exceptions
class ConcurrencyConflictError(RegistryError):
    """Optimistic concurrency check failed.

    Raised when a write supplies an expected revision that no longer matches
    the stored revision. Callers should re-read the document and retry.
    """


class DocumentExistsError(ConcurrencyConflictError):
    """A create-only write targeted an id that is already taken."""


class DuplicateSchemaError(RegistryError):
    """A schema with the same namespace and version is already registered.

    Attributes:
        existing: The conflicting stored schema, when it could be read back.
    """

    def __init__(
        self,
        message: str,
        existing: ObjectSchema | None = None,
        suggestions: list[str] | None = None,
    ):
        super().__init__(message, suggestions=suggestions)
        self.existing = existing


# Store Exceptions
class StoreUnavailableError(RegistryError):
    """The backing store could not be reached or failed to answer.

    Never retried by schemareg; the original error is chained as
    ``__cause__``.
    """
