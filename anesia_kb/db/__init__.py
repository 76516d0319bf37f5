"""Database modules for the AnesIA knowledge base."""

from .database import (
    init_database,
    get_connection,
    execute_query,
    execute_many,
    SCHEMA_PATH,
)

from .remote import (
    RemoteStore,
    SqliteRemoteStore,
)

from .bundle import (
    BUNDLE_FILES,
    BundleSource,
    BundleDirectory,
    load_bundle_records,
)

from .repositories import (
    load_procedures,
    load_procedure_index,
    load_drugs,
    load_guidelines,
    load_protocols,
    load_regional_blocks,
    load_specialties,
    load_knowledge_base,
)

__all__ = [
    "init_database",
    "get_connection",
    "execute_query",
    "execute_many",
    "SCHEMA_PATH",
    "RemoteStore",
    "SqliteRemoteStore",
    "BUNDLE_FILES",
    "BundleSource",
    "BundleDirectory",
    "load_bundle_records",
    "load_procedures",
    "load_procedure_index",
    "load_drugs",
    "load_guidelines",
    "load_protocols",
    "load_regional_blocks",
    "load_specialties",
    "load_knowledge_base",
]
