"""Abstract document store interface.

This module defines the primitives schemareg needs from a backing document
store: single-document CRUD keyed by id with optimistic concurrency, field
equality search with pagination, and term aggregation. Nothing here knows
about schemas; documents are plain mappings.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


# Field types accepted by `DocumentStore.put_mapping`
FIELD_TYPES = frozenset({"keyword", "text", "date", "object", "long", "boolean"})


@dataclass(frozen=True)
class StoredDocument:
    """A document and the revision token it was read or written at."""

    id: str
    revision: int
    source: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PutResult:
    id: str
    revision: int
    created: bool


@dataclass(frozen=True)
class SearchHit:
    """One search result.

    `source` holds the full document unless the search asked for specific
    fields, in which case `source` is None and `fields` holds the projection.
    """

    id: str
    revision: int
    source: dict[str, Any] | None = None
    fields: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SearchPage:
    """A page of hits plus the total number of matching documents."""

    total: int
    hits: list[SearchHit] = field(default_factory=list)


@dataclass(frozen=True)
class TermBucket:
    key: Any
    count: int


@dataclass(frozen=True)
class BulkDeleteResult:
    deleted: frozenset[str] = frozenset()
    missing: frozenset[str] = frozenset()


class DocumentStore(ABC):
    """Abstract base class for backing document stores.

    Implementations are responsible for:
    - Assigning and checking revision tokens on every write
    - Returning search pages whose `total` counts every match, even when the
      page itself is shorter
    - Surfacing transport failures as `StoreUnavailableError`

    Implementations are not required to be atomic across processes.
    """

    @abstractmethod
    def get(self, doc_id: str) -> StoredDocument:
        """Fetch one document.

        Raises:
            NotFoundError: If no document is stored under `doc_id`.
        """
        raise NotImplementedError

    @abstractmethod
    def get_many(self, doc_ids: Iterable[str]) -> dict[str, StoredDocument]:
        """Fetch several documents. Missing ids are absent from the result."""
        raise NotImplementedError

    @abstractmethod
    def put(
        self,
        doc_id: str,
        source: Mapping[str, Any],
        *,
        expected_revision: int | None = None,
        create_only: bool = False,
        preserve_fields: Iterable[str] = (),
    ) -> PutResult:
        """Write a document, creating or replacing it.

        Args:
            doc_id: Document identifier.
            source: The document body.
            expected_revision: When given, the write only succeeds if the
                stored revision equals it.
            create_only: When True, the write only succeeds if no document
                is stored under `doc_id`.
            preserve_fields: Fields whose stored values win over `source`
                when the document already exists (e.g. a creation time).

        Raises:
            ConcurrencyConflictError: If `expected_revision` does not match.
            DocumentExistsError: If `create_only` is set and the id is taken.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, doc_id: str) -> None:
        """Delete one document.

        Raises:
            NotFoundError: If no document is stored under `doc_id`.
        """
        raise NotImplementedError

    @abstractmethod
    def delete_many(self, doc_ids: Iterable[str]) -> BulkDeleteResult:
        """Delete several documents, reporting which ids were missing."""
        raise NotImplementedError

    @abstractmethod
    def search(
        self,
        filters: Mapping[str, Any],
        *,
        offset: int = 0,
        size: int | None = None,
        return_fields: Iterable[str] | None = None,
    ) -> SearchPage:
        """Find documents whose fields equal every value in `filters`.

        Args:
            filters: Field name to exact value. All must match.
            offset: Number of matches to skip.
            size: Requested page size. Implementations may return fewer hits
                than requested; `SearchPage.total` is always the full count.
                Pass 0 to only count matches.
            return_fields: Optional projection of fields to return.
        """
        raise NotImplementedError

    @abstractmethod
    def aggregate_terms(
        self,
        field_name: str,
        *,
        filters: Mapping[str, Any] | None = None,
        size: int | None = None,
    ) -> list[TermBucket]:
        """Count matching documents per distinct value of `field_name`.

        Args:
            field_name: Field to group by.
            filters: Optional equality filters applied before grouping.
            size: Maximum number of buckets, or None for every bucket.

        Returns:
            Buckets ordered by descending count, an empty list when nothing
            matches.
        """
        raise NotImplementedError

    @abstractmethod
    def put_mapping(self, mapping: Mapping[str, str]) -> None:
        """Declare field types for the collection. Called once during setup."""
        raise NotImplementedError

    @abstractmethod
    def get_mapping(self) -> dict[str, str]:
        """Return the declared field types, or an empty mapping."""
        raise NotImplementedError
