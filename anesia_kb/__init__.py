"""AnesIA knowledge base: content synchronization and merge engine."""

from .localization import (
    SUPPORTED_LANGUAGES,
    PRIMARY_LANGUAGE,
    resolve_localized,
    merge_missing,
)

from .merge import merge_fallback

from .enrichment import enrich_medication_plan

from .snapshots import (
    SnapshotCache,
    MemorySnapshotStore,
    SqliteSnapshotStore,
)

from .orchestrator import (
    DataState,
    LoadPhase,
    LoadOrchestrator,
)

__all__ = [
    "SUPPORTED_LANGUAGES",
    "PRIMARY_LANGUAGE",
    "resolve_localized",
    "merge_missing",
    "merge_fallback",
    "enrich_medication_plan",
    "SnapshotCache",
    "MemorySnapshotStore",
    "SqliteSnapshotStore",
    "DataState",
    "LoadPhase",
    "LoadOrchestrator",
]
