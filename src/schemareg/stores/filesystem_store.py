"""FileSystem-based document store using fsspec.

This module provides a document store for schemareg that works across local
filesystems, in-memory filesystems, S3, GCS, and Azure Blob Storage.

Example:
    >>> from schemareg.config import RegistryConfig
    >>> from schemareg.stores import FileSystemDocumentStore
    >>>
    >>> # Local filesystem
    >>> store = FileSystemDocumentStore(RegistryConfig(url="/path/to/registry"))
    >>>
    >>> # S3 (requires s3fs)
    >>> store = FileSystemDocumentStore(
    ...     RegistryConfig(url="s3://bucket/registry/", storage_options={"profile": "prod"})
    ... )
    >>>
    >>> result = store.put("doc-1", {"namespace": "ns://acme.io/billing"})
    >>> store.get("doc-1").revision
    1
"""

from __future__ import annotations

# pyright: reportUnknownArgumentType=none, reportUnknownMemberType=none
# pyright: reportUnknownVariableType=none

import logging
import urllib.parse
from collections import Counter
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Generator, Iterable, Mapping

import fsspec  # type: ignore[import]
import yaml

from ..exceptions import (
    ConcurrencyConflictError,
    DocumentExistsError,
    InvalidArgumentError,
    NotFoundError,
    RegistryError,
    StoreUnavailableError,
)
from .base import (
    FIELD_TYPES,
    BulkDeleteResult,
    DocumentStore,
    PutResult,
    SearchHit,
    SearchPage,
    StoredDocument,
    TermBucket,
)

if TYPE_CHECKING:
    from ..config import RegistryConfig


class FileSystemDocumentStore(DocumentStore):
    """Filesystem-based document store using fsspec for multi-cloud support.

    Stores documents in a simple directory structure:

        {url}/
        └── {collection}/
            ├── _mapping.yaml
            └── documents/
                ├── {url_encoded_id}.yaml
                └── ...

    Each document file holds the id, the revision counter, and the document
    source. Revisions start at 1 and grow by one on every write.

    Search results are ordered by document id. Requests without a size get
    `config.default_page_size` hits, and `config.max_page_size` caps every
    page, so callers must paginate using `SearchPage.total`.

    Thread Safety:
        This implementation is not atomic. Revision checks and create-only
        writes read the current file before writing the new one, so two
        processes writing the same id at the same moment may both succeed.
        Use a store with native conditional writes when that matters.

    Cost:
        Search and aggregation read and parse every document file in the
        collection on each call, since ids do not encode field values. A
        listing that needs two pages scans the collection twice. This store
        suits registries of modest size; larger ones want an indexed store.

    Args:
        config: Registry configuration naming the store root, collection,
            page sizes and fsspec options.
        logger: Optional logger for store operations. If None, creates
            a default logger at "schemareg.stores.filesystem".

    Raises:
        StoreUnavailableError: If the store root is invalid or inaccessible.
    """

    DOCUMENTS_DIR = "documents"
    MAPPING_FILE = "_mapping.yaml"
    DOCUMENT_SUFFIX = ".yaml"

    def __init__(self, config: RegistryConfig, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("schemareg.stores.filesystem")
        self.config = config

        try:
            fs_obj, resolved_base_path = fsspec.core.url_to_fs(
                config.url, **config.storage_options
            )
            # Validate base path is reachable by attempting to access it
            fs_obj.exists(resolved_base_path)
        except Exception as e:
            raise StoreUnavailableError(
                f"Failed to connect to store at '{config.url}': {e}"
            ) from e

        self.fs = fs_obj
        self.base_path = f"{resolved_base_path.rstrip('/')}/{config.collection}"
        self.documents_path = f"{self.base_path}/{self.DOCUMENTS_DIR}"
        self.logger.info(f"Initialized FileSystemDocumentStore at: {self.base_path}")

    def get(self, doc_id: str) -> StoredDocument:
        with self._translate_errors(f"read document '{doc_id}'"):
            try:
                document = self._read_document(doc_id)
            except FileNotFoundError:
                raise NotFoundError(f"Document '{doc_id}' not found") from None
        self.logger.debug(f"Read '{doc_id}' at revision {document.revision}")
        return document

    def get_many(self, doc_ids: Iterable[str]) -> dict[str, StoredDocument]:
        found: dict[str, StoredDocument] = {}
        with self._translate_errors("read documents"):
            for doc_id in set(doc_ids):
                try:
                    found[doc_id] = self._read_document(doc_id)
                except FileNotFoundError:
                    continue
        self.logger.debug(f"Read {len(found)} documents")
        return found

    def put(
        self,
        doc_id: str,
        source: Mapping[str, Any],
        *,
        expected_revision: int | None = None,
        create_only: bool = False,
        preserve_fields: Iterable[str] = (),
    ) -> PutResult:
        with self._translate_errors(f"write document '{doc_id}'"):
            try:
                current: StoredDocument | None = self._read_document(doc_id)
            except FileNotFoundError:
                current = None

            if create_only and current is not None:
                raise DocumentExistsError(
                    f"Document '{doc_id}' already exists at revision {current.revision}"
                )
            if expected_revision is not None:
                if current is None:
                    raise ConcurrencyConflictError(
                        f"Document '{doc_id}' expected at revision {expected_revision} "
                        "but it does not exist"
                    )
                if current.revision != expected_revision:
                    raise ConcurrencyConflictError(
                        f"Document '{doc_id}' is at revision {current.revision}, "
                        f"expected {expected_revision}",
                        suggestions=["Re-read the document and retry the update"],
                    )

            revision = 1 if current is None else current.revision + 1
            if current is not None:
                source = self._carry_forward(source, current, preserve_fields)
            self._write_document(doc_id, revision, source)

        self.logger.info(f"Wrote '{doc_id}' at revision {revision}")
        return PutResult(id=doc_id, revision=revision, created=current is None)

    def delete(self, doc_id: str) -> None:
        with self._translate_errors(f"delete document '{doc_id}'"):
            path = self._document_path(doc_id)
            if not self.fs.exists(path):
                raise NotFoundError(f"Document '{doc_id}' not found")
            try:
                self.fs.rm(path)
            except FileNotFoundError:
                # Removed by another client after the existence check
                raise NotFoundError(f"Document '{doc_id}' not found") from None
        self.logger.info(f"Deleted '{doc_id}'")

    def delete_many(self, doc_ids: Iterable[str]) -> BulkDeleteResult:
        deleted: set[str] = set()
        missing: set[str] = set()
        for doc_id in set(doc_ids):
            try:
                self.delete(doc_id)
            except NotFoundError:
                missing.add(doc_id)
            else:
                deleted.add(doc_id)
        return BulkDeleteResult(deleted=frozenset(deleted), missing=frozenset(missing))

    def search(
        self,
        filters: Mapping[str, Any],
        *,
        offset: int = 0,
        size: int | None = None,
        return_fields: Iterable[str] | None = None,
    ) -> SearchPage:
        if offset < 0:
            raise InvalidArgumentError(f"offset must be >= 0, got {offset}")
        if size is not None and size < 0:
            raise InvalidArgumentError(f"size must be >= 0, got {size}")

        page_size = self.config.default_page_size if size is None else size
        if self.config.max_page_size is not None:
            page_size = min(page_size, self.config.max_page_size)
        projection = list(return_fields) if return_fields is not None else None

        with self._translate_errors("search documents"):
            matches = [
                document
                for document in self._iter_documents()
                if self._matches(document.source, filters)
            ]

        hits = [
            self._to_hit(document, projection)
            for document in matches[offset : offset + page_size]
        ]
        self.logger.debug(
            f"Search {dict(filters)} from {offset} size {page_size}: "
            f"{len(hits)} of {len(matches)} hits"
        )
        return SearchPage(total=len(matches), hits=hits)

    def aggregate_terms(
        self,
        field_name: str,
        *,
        filters: Mapping[str, Any] | None = None,
        size: int | None = None,
    ) -> list[TermBucket]:
        if size is not None and size < 0:
            raise InvalidArgumentError(f"size must be >= 0, got {size}")

        counts: Counter[Any] = Counter()
        with self._translate_errors(f"aggregate on '{field_name}'"):
            for document in self._iter_documents():
                if filters and not self._matches(document.source, filters):
                    continue
                value = document.source.get(field_name)
                # Only scalar values form buckets
                if isinstance(value, (str, int, float, bool)):
                    counts[value] += 1

        buckets = [
            TermBucket(key=key, count=count)
            for key, count in sorted(counts.items(), key=lambda kv: (-kv[1], str(kv[0])))
        ]
        if size is not None:
            buckets = buckets[:size]
        self.logger.debug(f"Aggregated '{field_name}' into {len(buckets)} buckets")
        return buckets

    def put_mapping(self, mapping: Mapping[str, str]) -> None:
        unknown = {name: kind for name, kind in mapping.items() if kind not in FIELD_TYPES}
        if unknown:
            raise InvalidArgumentError(
                f"Unsupported field types in mapping: {unknown}",
                suggestions=["Valid types are: " + ", ".join(sorted(FIELD_TYPES))],
            )

        existing = self.get_mapping()
        changed = {
            name: (existing[name], kind)
            for name, kind in mapping.items()
            if name in existing and existing[name] != kind
        }
        if changed:
            raise InvalidArgumentError(
                f"Cannot change the type of mapped fields: {changed}"
            )

        merged = {**existing, **mapping}
        with self._translate_errors("write mapping"):
            self.fs.makedirs(self.base_path, exist_ok=True)
            with self.fs.open(f"{self.base_path}/{self.MAPPING_FILE}", "w") as f:
                f.write(yaml.safe_dump(merged, default_flow_style=False, sort_keys=True))
        self.logger.info(f"Declared mapping for {len(mapping)} fields on '{self.base_path}'")

    def get_mapping(self) -> dict[str, str]:
        with self._translate_errors("read mapping"):
            try:
                with self.fs.open(f"{self.base_path}/{self.MAPPING_FILE}", "r") as f:
                    return yaml.safe_load(f.read()) or {}
            except FileNotFoundError:
                return {}

    # Private helper methods

    @contextmanager
    def _translate_errors(self, action: str) -> Generator[None, None, None]:
        """Wrap unexpected filesystem failures into `StoreUnavailableError`."""
        try:
            yield
        except RegistryError:
            raise
        except Exception as e:
            raise StoreUnavailableError(f"Failed to {action} at '{self.base_path}': {e}") from e

    @staticmethod
    def _carry_forward(
        source: Mapping[str, Any], current: StoredDocument, preserve_fields: Iterable[str]
    ) -> dict[str, Any]:
        merged = dict(source)
        for name in preserve_fields:
            if current.source.get(name) is not None:
                merged[name] = current.source[name]
        return merged

    def _document_path(self, doc_id: str) -> str:
        encoded_id = urllib.parse.quote(doc_id, safe="")
        return f"{self.documents_path}/{encoded_id}{self.DOCUMENT_SUFFIX}"

    def _read_document(self, doc_id: str) -> StoredDocument:
        """Read a document file.

        Raises:
            FileNotFoundError: If no document is stored under `doc_id`.
        """
        with self.fs.open(self._document_path(doc_id), "r") as f:
            return self._load_document(f.read())

    def _read_document_file(self, file_path: str) -> StoredDocument:
        with self.fs.open(file_path, "r") as f:
            return self._load_document(f.read())

    def _load_document(self, content: str) -> StoredDocument:
        data = yaml.safe_load(content)
        return StoredDocument(
            id=data["id"],
            revision=int(data["revision"]),
            source=data.get("source") or {},
        )

    def _write_document(
        self, doc_id: str, revision: int, source: Mapping[str, Any]
    ) -> None:
        envelope = {"id": doc_id, "revision": revision, "source": dict(source)}
        try:
            yaml_content = yaml.safe_dump(envelope, default_flow_style=False, sort_keys=False)
        except yaml.YAMLError as e:
            raise InvalidArgumentError(
                f"Document '{doc_id}' cannot be serialized: {e}"
            ) from e

        # Ensure directory exists
        self.fs.makedirs(self.documents_path, exist_ok=True)

        with self.fs.open(self._document_path(doc_id), "w") as f:
            f.write(yaml_content)

    def _iter_documents(self) -> Generator[StoredDocument, None, None]:
        """Yield every stored document ordered by id."""
        if not self.fs.exists(self.documents_path):
            return

        documents: list[StoredDocument] = []
        for file_path in self.fs.ls(self.documents_path, detail=False):
            if not file_path.endswith(self.DOCUMENT_SUFFIX):
                self.logger.warning(f"Skipping non-document file: {file_path}")
                continue
            try:
                documents.append(self._read_document_file(file_path))
            except FileNotFoundError:
                # Deleted between listing and reading
                self.logger.debug(f"Document file vanished: {file_path}")

        documents.sort(key=lambda d: d.id)
        yield from documents

    @staticmethod
    def _matches(source: Mapping[str, Any], filters: Mapping[str, Any]) -> bool:
        return all(
            name in source and source[name] == value for name, value in filters.items()
        )

    @staticmethod
    def _to_hit(document: StoredDocument, projection: list[str] | None) -> SearchHit:
        if projection is None:
            return SearchHit(id=document.id, revision=document.revision, source=document.source)
        return SearchHit(
            id=document.id,
            revision=document.revision,
            fields={name: document.source[name] for name in projection if name in document.source},
        )
