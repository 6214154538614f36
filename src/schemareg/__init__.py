from .schema import ObjectSchema, StoredSchema, WriteResult, DeleteResult, schema_id
from .config import RegistryConfig, load_config
from .adapter import RegistryStore
from .registry import SchemaRegistry, SchemaPage
from .service import SchemaRegistryService
from .loaders import from_dict, from_yaml, from_yaml_string

__all__ = [
    "ObjectSchema",
    "StoredSchema",
    "WriteResult",
    "DeleteResult",
    "schema_id",
    "RegistryConfig",
    "load_config",
    "RegistryStore",
    "SchemaRegistry",
    "SchemaPage",
    "SchemaRegistryService",
    "from_dict",
    "from_yaml",
    "from_yaml_string",
]
