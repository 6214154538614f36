"""Schema registry enforcing invariants the backing store does not provide.

The registry sits on top of `RegistryStore` and adds:

- uniqueness of (namespace, version) on create,
- registry-owned timestamps and optimistic concurrency on update,
- complete listing of the versions of a namespace across search pages,
- per-namespace version counts.

Store errors are never retried here. Conflicts are reported to the caller,
who decides whether to re-read and try again.

Example:
    >>> from schemareg import ObjectSchema, RegistryConfig, SchemaRegistry
    >>> registry = SchemaRegistry(RegistryConfig(url="memory://registry"))
    >>> registry.create_schema(ObjectSchema(namespace="ns://acme.io/billing", version="1.0.0"))
    WriteResult(id='ns://acme.io/billing::1.0.0', revision=1, created=True)
    >>> registry.get_versions_for_namespace("ns://acme.io/billing")
    ['1.0.0']
    >>> registry.get_namespace_summary()
    {'ns://acme.io/billing': 1}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Iterable

from .adapter import RegistryStore
from .exceptions import DocumentExistsError, DuplicateSchemaError, SchemaNotFoundError
from .schema import (
    DeleteResult,
    ObjectSchema,
    StoredSchema,
    WriteResult,
    require_key,
    schema_id,
)

if TYPE_CHECKING:
    from .config import RegistryConfig
    from .stores.base import SearchHit, SearchPage


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SchemaPage:
    """A page of stored schemas and the total number of matches."""

    total: int
    schemas: list[StoredSchema] = field(default_factory=list)


class SchemaRegistry:
    """Registry of versioned object schemas.

    Args:
        config: Shared registry configuration. Its `default_page_size` sizes
            the first page of version listings.
        store: Store adapter to use. If None, a `RegistryStore` is created
            from `config`.
        logger: Optional logger. If None, creates a default logger at
            "schemareg.registry".
        clock: Callable returning the current time, used for `created_on`
            and `updated_on`. Defaults to UTC now.
    """

    def __init__(
        self,
        config: RegistryConfig,
        store: RegistryStore | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config
        self.store = store or RegistryStore(config)
        self.logger = logger or logging.getLogger("schemareg.registry")
        self._clock = clock or _utcnow

    def create_schema(self, schema: ObjectSchema) -> WriteResult:
        """Register a new schema.

        The existence check and the write are two separate store calls, so
        two clients creating the same namespace and version at once may both
        pass the check. The second write then hits the create-only guard on
        the derived id, which is reported as `DuplicateSchemaError` too. On a
        store without native conditional writes the race remains open.

        Args:
            schema: The schema to register. Its timestamps are replaced.

        Returns:
            Metadata of the written document.

        Raises:
            DuplicateSchemaError: If the namespace and version are taken.
                `existing` holds the stored schema when it could be read.
        """
        page = self.store.search_by_fields(
            {"namespace": schema.namespace, "version": schema.version}, size=1
        )
        if page.total > 0:
            existing = self._hit_to_schema(page.hits[0]).schema if page.hits else None
            raise self._duplicate_error(schema, existing)

        now = self._clock()
        new_schema = replace(schema, created_on=now, updated_on=now)
        try:
            result = self.store.put(new_schema, create_only=True)
        except DocumentExistsError as e:
            self.logger.warning(f"Lost create race for '{schema.id}'")
            raise self._duplicate_error(schema, self._read_existing(schema.id)) from e

        self.logger.info(f"Created schema '{result.id}' at revision {result.revision}")
        return result

    def get_schema(self, schema_id: str) -> StoredSchema:
        """Fetch a schema by id.

        Raises:
            InvalidArgumentError: If `schema_id` is missing or blank.
            SchemaNotFoundError: If no schema is stored under `schema_id`.
        """
        require_key("schema id", schema_id)
        return self.store.get(schema_id)

    def find_by_namespace_version(self, namespace: str, version: str) -> StoredSchema:
        """Fetch a schema by its natural key.

        Raises:
            InvalidArgumentError: If namespace or version is missing or blank.
                Raised before the store is contacted.
            SchemaNotFoundError: If the schema is not registered.
        """
        return self.store.get(schema_id(namespace, version))

    def set_schema(
        self,
        schema: ObjectSchema,
        expected_revision: int | None = None,
        updated_by: str | None = None,
    ) -> WriteResult:
        """Write a schema, creating it if it does not exist yet.

        `updated_on` is always set to the current time and `created_on` is
        kept from the stored schema, or set to the current time on first
        write; the caller's values for both are discarded. No duplicate check
        is made, so this is also the path for writing a schema without the
        create protocol.

        Args:
            schema: The schema to write.
            expected_revision: Revision the caller read. When given, the
                write fails if the stored revision has moved on.
            updated_by: Identity recorded on the schema.

        Raises:
            ConcurrencyConflictError: If `expected_revision` is stale. The
                registry does not retry; re-read and try again.
        """
        now = self._clock()
        updated = replace(
            schema,
            created_on=now,
            updated_on=now,
            updated_by=updated_by,
        )
        result = self.store.put(
            updated, expected_revision, preserve_fields=("created_on",)
        )
        action = "Created" if result.created else "Updated"
        self.logger.info(f"{action} schema '{result.id}' at revision {result.revision}")
        return result

    def get_schemas(self, schema_ids: Iterable[str]) -> dict[str, StoredSchema]:
        """Fetch several schemas by id. Unknown ids are left out."""
        ids = {require_key("schema id", sid) for sid in schema_ids}
        if not ids:
            return {}
        return self.store.get_many(ids)

    def delete_schema(self, schema_id: str, *, missing_ok: bool = True) -> bool:
        """Delete a schema by id.

        Args:
            schema_id: Id of the schema to delete.
            missing_ok: When True (default), deleting an unknown id is a
                no-op. When False, it raises.

        Returns:
            True if a schema was deleted, False if none was stored.

        Raises:
            SchemaNotFoundError: If the id is unknown and `missing_ok` is False.
        """
        require_key("schema id", schema_id)
        try:
            self.store.delete(schema_id)
        except SchemaNotFoundError:
            if not missing_ok:
                raise
            self.logger.debug(f"Schema '{schema_id}' already absent")
            return False
        self.logger.info(f"Deleted schema '{schema_id}'")
        return True

    def delete_schemas(self, schema_ids: Iterable[str]) -> DeleteResult:
        """Delete several schemas, reporting which ids were not stored."""
        ids = {require_key("schema id", sid) for sid in schema_ids}
        if not ids:
            return DeleteResult()
        result = self.store.delete_many(ids)
        self.logger.info(
            f"Deleted {len(result.deleted)} schemas, {len(result.missing)} already absent"
        )
        return result

    def get_versions_for_namespace(self, namespace: str) -> list[str]:
        """List every registered version of a namespace.

        The first page uses the configured default page size. When it does
        not cover all matches, follow-up pages start after the hits already
        fetched and ask for the whole remainder, so a store that honours the
        requested size needs exactly one more request. Stores that cap page
        sizes get as many requests as their cap requires.

        The total is taken from the first response. Schemas written or
        deleted between requests may make the result shorter or stale; no
        lock is held across requests. Order is not guaranteed.

        Raises:
            InvalidArgumentError: If `namespace` is missing or blank.
        """
        require_key("namespace", namespace)
        filters = {"namespace": namespace}

        page = self.store.search_by_fields(
            filters, size=self.config.default_page_size, return_fields=["version"]
        )
        total = page.total
        fetched = len(page.hits)
        versions = self._collect_versions(page)

        while fetched < total:
            remaining = total - fetched
            self.logger.debug(
                f"Fetching {remaining} more versions of '{namespace}' from offset {fetched}"
            )
            page = self.store.search_by_fields(
                filters, offset=fetched, size=remaining, return_fields=["version"]
            )
            if not page.hits:
                self.logger.warning(
                    f"Namespace '{namespace}' shrank while listing: "
                    f"expected {total} versions, got {fetched}"
                )
                break
            fetched += len(page.hits)
            versions.extend(self._collect_versions(page))

        return versions

    def get_namespace_summary(self) -> dict[str, int]:
        """Count registered versions per namespace.

        Counts are taken as reported by the store's aggregation; every
        namespace gets an entry.
        """
        counts = self.store.search_aggregate_by_field("namespace")
        if not counts:
            return {}
        return {str(namespace): count for namespace, count in counts.items()}

    def find_schemas_by_field(
        self,
        field_name: str,
        value: Any,
        offset: int = 0,
        size: int | None = None,
    ) -> SchemaPage:
        """Return one page of schemas whose `field_name` equals `value`."""
        require_key("field name", field_name)
        page = self.store.search_by_field(field_name, value, offset=offset, size=size)
        return SchemaPage(
            total=page.total, schemas=[self._hit_to_schema(hit) for hit in page.hits]
        )

    # Private helper methods

    @staticmethod
    def _collect_versions(page: SearchPage) -> list[str]:
        return [hit.fields["version"] for hit in page.hits if "version" in hit.fields]

    @staticmethod
    def _hit_to_schema(hit: SearchHit) -> StoredSchema:
        return StoredSchema(schema=ObjectSchema.from_dict(hit.source or {}), revision=hit.revision)

    def _read_existing(self, existing_id: str) -> ObjectSchema | None:
        try:
            return self.store.get(existing_id).schema
        except SchemaNotFoundError:
            return None

    @staticmethod
    def _duplicate_error(
        schema: ObjectSchema, existing: ObjectSchema | None
    ) -> DuplicateSchemaError:
        return DuplicateSchemaError(
            f"Schema '{schema.namespace}' version '{schema.version}' is already registered",
            existing=existing,
            suggestions=["Use set_schema to update it, or register a new version"],
        )
