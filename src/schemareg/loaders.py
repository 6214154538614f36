"""Entry points for loading `ObjectSchema` from various sources.

- `from_dict`: Load from a plain field mapping.
- `from_yaml_string`: Load from YAML content provided as a string.
- `from_yaml`: Load from a local path or fsspec URL of a YAML file.

All functions return a validated `ObjectSchema` without registry timestamps;
the registry sets those when the schema is written.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import fsspec  # type: ignore[import]
import yaml

from .exceptions import SchemaValidationError
from .schema import ObjectSchema

__all__ = ["from_dict", "from_yaml_string", "from_yaml"]


def from_dict(data: Mapping[str, Any]) -> ObjectSchema:
    """Load an `ObjectSchema` from a dictionary.

    Registry-owned fields (`created_on`, `updated_on`, `updated_by`) are
    dropped.

    Example:
        >>> schema = from_dict({
        ...     "namespace": "ns://acme.io/billing",
        ...     "version": "1.0.0",
        ...     "types": {"Invoice": {"properties": {"amount": {"type": "number"}}}},
        ... })
        >>> sorted(schema.type_names)
        ['Invoice']
    """
    if not isinstance(data, Mapping):
        raise SchemaValidationError(
            f"Schema document must be a mapping, got {type(data).__name__}"
        )
    payload = {
        key: value
        for key, value in data.items()
        if key not in {"created_on", "updated_on", "updated_by"}
    }
    return ObjectSchema.from_dict(payload)


def from_yaml_string(content: str) -> ObjectSchema:
    """Load an `ObjectSchema` from YAML content."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise SchemaValidationError(f"Schema document is not valid YAML: {e}") from e
    if data is None:
        raise SchemaValidationError("Schema document is empty")
    return from_dict(data)


def from_yaml(source: str | Path, **storage_options: Any) -> ObjectSchema:
    """Load an `ObjectSchema` from a YAML file.

    Args:
        source: Local path or fsspec URL (e.g. "s3://bucket/schemas/billing.yaml").
        **storage_options: fsspec options used to open `source`.
    """
    with fsspec.open(str(source), "r", **storage_options) as f:
        content = f.read()
    return from_yaml_string(content)
