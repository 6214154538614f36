"""Registry configuration.

A `RegistryConfig` is built once at process start and handed to every
component that talks to the backing store, so the store location and the
collection identity are never read from process-wide state.

Example:
    >>> config = RegistryConfig(url="s3://bucket/registry", storage_options={"profile": "prod"})
    >>> config.collection
    'objectschema'
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Mapping

import fsspec  # type: ignore[import]
import yaml

from .exceptions import RegistryConfigError

DEFAULT_COLLECTION = "objectschema"
DEFAULT_PAGE_SIZE = 10


@dataclass(frozen=True)
class RegistryConfig:
    """Connection and query settings shared by the store adapter and registry.

    Args:
        url: fsspec URL or local path of the store root, e.g.
            "/var/lib/registry", "memory://registry" or "s3://bucket/registry".
        collection: Name of the collection (index) holding schema documents.
            Defaults to "objectschema".
        default_page_size: Page size used when a search does not ask for
            one. Defaults to 10.
        max_page_size: Optional hard cap on the number of hits the store
            returns per page. Larger requests are truncated, so callers
            must paginate. Defaults to None (no cap).
        storage_options: Extra keyword arguments passed to fsspec for
            authentication and configuration.
    """

    url: str
    collection: str = DEFAULT_COLLECTION
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int | None = None
    storage_options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url.strip():
            raise RegistryConfigError("url must be a non-empty string.")
        if not isinstance(self.collection, str) or not self.collection.strip():
            raise RegistryConfigError("collection must be a non-empty string.")
        if "/" in self.collection or "\\" in self.collection:
            raise RegistryConfigError(
                f"collection '{self.collection}' must not contain path separators."
            )
        if self.default_page_size < 1:
            raise RegistryConfigError("default_page_size must be at least 1.")
        if self.max_page_size is not None and self.max_page_size < 1:
            raise RegistryConfigError("max_page_size must be at least 1 when set.")


def config_from_dict(data: Mapping[str, Any]) -> RegistryConfig:
    """Build a `RegistryConfig` from a mapping, rejecting unknown keys."""
    if not isinstance(data, Mapping):
        raise RegistryConfigError(
            f"Registry configuration must be a mapping, got {type(data).__name__}"
        )
    known = {f.name for f in fields(RegistryConfig)}
    unknown = set(data) - known
    if unknown:
        raise RegistryConfigError(
            "Unknown registry configuration keys: " + ", ".join(sorted(unknown)),
            suggestions=["Valid keys are: " + ", ".join(sorted(known))],
        )
    try:
        return RegistryConfig(**data)
    except TypeError as e:
        raise RegistryConfigError(f"Invalid registry configuration: {e}") from e


def load_config(source: str, **storage_options: Any) -> RegistryConfig:
    """Load a `RegistryConfig` from a YAML file.

    Args:
        source: Local path or fsspec URL of the YAML file.
        **storage_options: fsspec options used to open `source`.

    Raises:
        RegistryConfigError: If the file cannot be read or is not a valid
            configuration mapping.
    """
    try:
        with fsspec.open(source, "r", **storage_options) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise RegistryConfigError(f"Registry configuration '{source}' not found") from e
    except yaml.YAMLError as e:
        raise RegistryConfigError(
            f"Registry configuration '{source}' is not valid YAML: {e}"
        ) from e
    return config_from_dict(data or {})
