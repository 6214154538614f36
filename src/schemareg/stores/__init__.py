"""Backing document stores for the schema registry."""

from .base import (
    BulkDeleteResult,
    DocumentStore,
    PutResult,
    SearchHit,
    SearchPage,
    StoredDocument,
    TermBucket,
)
from .filesystem_store import FileSystemDocumentStore

__all__ = [
    "BulkDeleteResult",
    "DocumentStore",
    "FileSystemDocumentStore",
    "PutResult",
    "SearchHit",
    "SearchPage",
    "StoredDocument",
    "TermBucket",
]
