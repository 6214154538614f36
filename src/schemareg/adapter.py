"""Translation of registry operations into document store calls.

`RegistryStore` owns the document store used by the registry and converts
between `ObjectSchema` instances and stored documents. It holds no business
rules: every method is a single store call plus conversion, and store errors
pass through unchanged apart from naming missing schemas.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from .exceptions import NotFoundError, SchemaNotFoundError
from .schema import DeleteResult, ObjectSchema, StoredSchema, WriteResult
from .stores.base import DocumentStore, SearchPage, StoredDocument
from .stores.filesystem_store import FileSystemDocumentStore

if TYPE_CHECKING:
    from .config import RegistryConfig


# Field types declared once per collection
SCHEMA_MAPPING: dict[str, str] = {
    "namespace": "keyword",
    "version": "keyword",
    "description": "text",
    "types": "object",
    "created_on": "date",
    "updated_on": "date",
    "updated_by": "keyword",
}


class RegistryStore:
    """Schema-level access to a backing document store.

    Args:
        config: Shared registry configuration.
        document_store: Store to use. If None, a `FileSystemDocumentStore`
            is created from `config`.
        logger: Optional logger. If None, creates a default logger at
            "schemareg.adapter".
    """

    def __init__(
        self,
        config: RegistryConfig,
        document_store: DocumentStore | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = config
        self.logger = logger or logging.getLogger("schemareg.adapter")
        self.documents = document_store or FileSystemDocumentStore(config)

    def declare_mapping(self) -> None:
        """Declare the schema document field types on the collection.

        Issued once while setting up an environment, not per request.
        """
        self.documents.put_mapping(SCHEMA_MAPPING)
        self.logger.info(f"Declared schema mapping on collection '{self.config.collection}'")

    def get(self, schema_id: str) -> StoredSchema:
        """Fetch a schema by id.

        Raises:
            SchemaNotFoundError: If no schema is stored under `schema_id`.
        """
        try:
            document = self.documents.get(schema_id)
        except NotFoundError as e:
            raise SchemaNotFoundError(f"Schema '{schema_id}' not found") from e
        return self._to_stored_schema(document)

    def get_many(self, schema_ids: Iterable[str]) -> dict[str, StoredSchema]:
        """Fetch schemas by id. Ids that are not stored are left out."""
        documents = self.documents.get_many(schema_ids)
        return {
            doc_id: self._to_stored_schema(document)
            for doc_id, document in documents.items()
        }

    def put(
        self,
        schema: ObjectSchema,
        expected_revision: int | None = None,
        *,
        create_only: bool = False,
        preserve_fields: Iterable[str] = (),
    ) -> WriteResult:
        """Write a schema under its derived id.

        Raises:
            ConcurrencyConflictError: If `expected_revision` is stale.
            DocumentExistsError: If `create_only` is set and the id is taken.
        """
        result = self.documents.put(
            schema.id,
            schema.to_dict(),
            expected_revision=expected_revision,
            create_only=create_only,
            preserve_fields=preserve_fields,
        )
        return WriteResult(id=result.id, revision=result.revision, created=result.created)

    def delete(self, schema_id: str) -> None:
        """Delete a schema by id.

        Raises:
            SchemaNotFoundError: If no schema is stored under `schema_id`.
        """
        try:
            self.documents.delete(schema_id)
        except NotFoundError as e:
            raise SchemaNotFoundError(f"Schema '{schema_id}' not found") from e

    def delete_many(self, schema_ids: Iterable[str]) -> DeleteResult:
        result = self.documents.delete_many(schema_ids)
        return DeleteResult(deleted=result.deleted, missing=result.missing)

    def search_by_fields(
        self,
        filters: Mapping[str, Any],
        offset: int = 0,
        size: int | None = None,
        return_fields: Iterable[str] | None = None,
    ) -> SearchPage:
        """Equality-AND search over schema documents."""
        return self.documents.search(
            filters, offset=offset, size=size, return_fields=return_fields
        )

    def search_by_field(
        self,
        field_name: str,
        value: Any,
        offset: int = 0,
        size: int | None = None,
        return_fields: Iterable[str] | None = None,
    ) -> SearchPage:
        """Equality search on a single field."""
        return self.search_by_fields(
            {field_name: value}, offset=offset, size=size, return_fields=return_fields
        )

    def search_aggregate_by_field(
        self, field_name: str, size: int | None = None
    ) -> dict[Any, int]:
        """Count schemas per distinct value of `field_name`.

        Returns an empty mapping when no schema has the field.
        """
        buckets = self.documents.aggregate_terms(field_name, size=size)
        return {bucket.key: bucket.count for bucket in buckets}

    @staticmethod
    def _to_stored_schema(document: StoredDocument) -> StoredSchema:
        return StoredSchema(
            schema=ObjectSchema.from_dict(document.source),
            revision=document.revision,
        )
