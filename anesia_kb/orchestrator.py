"""
Load orchestrator for one client session.

    Cold → IndexLoading → IndexReady → FullLoading → FullReady
                 (any state) → Degraded | Failed

On construction the state is seeded synchronously from the snapshot cache.
start() then launches two independent branches on the running event loop:

- Index branch: fresh listing + specialty metadata, started immediately
- Full branch:  fetch → merge → enrich → cache, started when the host is idle

Both branches post immutable messages; reduce() is the only place state changes.
A Full result always supersedes an Index result, whatever order they arrive in.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, Tuple, Union

from .config import Settings, get_settings
from .db.bundle import BundleSource
from .db.remote import RemoteStore
from .db.repositories import load_procedure_index, load_specialties
from .errors import SourceUnavailable
from .graph import run_full_refresh
from .scheduling import CancelHandle, IdleHook, schedule_idle
from .snapshots import SnapshotCache, derive_index_from_full
from .state import FullSnapshot, IndexSnapshot

logger = logging.getLogger(__name__)


class LoadPhase(str, Enum):
    COLD = "cold"
    INDEX_LOADING = "index_loading"
    INDEX_READY = "index_ready"
    FULL_LOADING = "full_loading"
    FULL_READY = "full_ready"
    DEGRADED = "degraded"  # Full refresh failed, cached data kept
    FAILED = "failed"  # Full refresh failed with nothing to serve


@dataclass(frozen=True)
class DataState:
    """Read-only view handed to consumers. Collections are tuples and must not be mutated."""

    procedure_index: Tuple[Dict[str, Any], ...] = ()
    procedures: Tuple[Dict[str, Any], ...] = ()
    drugs: Tuple[Dict[str, Any], ...] = ()
    guidelines: Tuple[Dict[str, Any], ...] = ()
    protocols: Tuple[Dict[str, Any], ...] = ()
    regional_blocks: Tuple[Dict[str, Any], ...] = ()
    specialties_data: Tuple[Dict[str, Any], ...] = ()
    index_loading: bool = True
    loading: bool = True
    error: Optional[str] = None
    phase: LoadPhase = LoadPhase.COLD
    seeded_from_cache: bool = False

    ENTITY_FIELDS: ClassVar[Dict[str, str]] = {
        "procedures": "procedures",
        "drugs": "drugs",
        "guidelines": "guidelines",
        "protocols": "protocols",
        "regional_blocks": "regional_blocks",
        "specialties": "specialties_data",
    }

    def get_by_id(self, entity_type: str, entity_id: str) -> Optional[Dict[str, Any]]:
        field_name = self.ENTITY_FIELDS.get(entity_type)
        if field_name is None:
            raise ValueError(f"Unknown entity type: {entity_type!r}")
        return next((entity for entity in getattr(self, field_name) if entity.get("id") == entity_id), None)

    def get_drug(self, drug_id: str) -> Optional[Dict[str, Any]]:
        return self.get_by_id("drugs", drug_id)

    def get_procedure(self, procedure_id: str) -> Optional[Dict[str, Any]]:
        return self.get_by_id("procedures", procedure_id)

    @property
    def specialties(self) -> List[str]:
        """Distinct specialty tags of the listing (or of the full procedures), sorted."""
        source = self.procedure_index or self.procedures
        return sorted({procedure.get("specialty") for procedure in source if procedure.get("specialty")})


# --- Messages ---

@dataclass(frozen=True)
class IndexStarted:
    pass


@dataclass(frozen=True)
class IndexLoaded:
    snapshot: IndexSnapshot


@dataclass(frozen=True)
class IndexFailed:
    reason: str


@dataclass(frozen=True)
class FullStarted:
    pass


@dataclass(frozen=True)
class FullLoaded:
    snapshot: FullSnapshot


@dataclass(frozen=True)
class FullFailed:
    reason: str
    code: str = SourceUnavailable.code


Message = Union[IndexStarted, IndexLoaded, IndexFailed, FullStarted, FullLoaded, FullFailed]

_SETTLED_PHASES = (LoadPhase.FULL_READY, LoadPhase.DEGRADED, LoadPhase.FAILED)


def reduce(state: DataState, message: Message) -> DataState:
    """Apply one branch message to the session state."""
    if isinstance(message, IndexStarted):
        if state.phase == LoadPhase.COLD:
            return replace(state, phase=LoadPhase.INDEX_LOADING)
        return state

    if isinstance(message, IndexLoaded):
        if state.phase == LoadPhase.FULL_READY:
            return replace(state, index_loading=False)
        specialties = tuple(message.snapshot.get("specialties") or ()) or state.specialties_data
        phase = LoadPhase.INDEX_READY if state.phase in (LoadPhase.COLD, LoadPhase.INDEX_LOADING) else state.phase
        return replace(
            state,
            procedure_index=tuple(message.snapshot.get("procedures") or ()),
            specialties_data=specialties,
            index_loading=False,
            phase=phase,
        )

    if isinstance(message, IndexFailed):
        return replace(state, index_loading=False)

    if isinstance(message, FullStarted):
        if state.phase in _SETTLED_PHASES:
            return state
        return replace(state, phase=LoadPhase.FULL_LOADING)

    if isinstance(message, FullLoaded):
        snapshot = message.snapshot
        return replace(
            state,
            procedure_index=tuple(derive_index_from_full(snapshot)["procedures"]),
            procedures=tuple(snapshot["procedures"]),
            drugs=tuple(snapshot["drugs"]),
            guidelines=tuple(snapshot["guidelines"]),
            protocols=tuple(snapshot["protocols"]),
            regional_blocks=tuple(snapshot["regional_blocks"]),
            specialties_data=tuple(snapshot["specialties"]),
            index_loading=False,
            loading=False,
            error=None,
            phase=LoadPhase.FULL_READY,
        )

    if isinstance(message, FullFailed):
        error = None if state.seeded_from_cache else message.code
        return replace(
            state,
            index_loading=False,
            loading=False,
            error=error,
            phase=LoadPhase.FAILED if error else LoadPhase.DEGRADED,
        )

    raise TypeError(f"Unknown message: {message!r}")


def seed_state(cache: SnapshotCache) -> DataState:
    """Initial state from whatever cache tier is still valid."""
    cached_full = cache.read_full()
    cached_index = cache.read_index()

    if cached_full is None and cached_index is None:
        return DataState()

    if cached_full is None:
        return DataState(
            procedure_index=tuple(cached_index["procedures"]),
            specialties_data=tuple(cached_index["specialties"]),
            index_loading=False,
            loading=True,
            seeded_from_cache=True,
        )

    index = cached_index or derive_index_from_full(cached_full)
    return DataState(
        procedure_index=tuple(index["procedures"]),
        procedures=tuple(cached_full["procedures"]),
        drugs=tuple(cached_full["drugs"]),
        guidelines=tuple(cached_full["guidelines"]),
        protocols=tuple(cached_full["protocols"]),
        regional_blocks=tuple(cached_full["regional_blocks"]),
        specialties_data=tuple(index["specialties"] or cached_full["specialties"]),
        index_loading=False,
        loading=False,
        seeded_from_cache=True,
    )


async def load_index_snapshot(remote: RemoteStore, cache: SnapshotCache) -> IndexSnapshot:
    """Fresh listing plus specialty metadata; cached on success."""
    procedures, specialties = await asyncio.gather(
        load_procedure_index(remote),
        load_specialties(remote),
    )
    if not procedures:
        raise SourceUnavailable(message="No procedures available in the remote store")

    snapshot: IndexSnapshot = {"procedures": procedures, "specialties": specialties}
    cache.write_index(snapshot)
    return snapshot


Listener = Callable[[DataState], None]


@dataclass
class _Branches:
    index_task: Optional["asyncio.Task[None]"] = None
    full_task: Optional["asyncio.Task[None]"] = None
    cancel_idle: Optional[CancelHandle] = None
    full_settled: Optional[asyncio.Event] = None
    listeners: List[Listener] = field(default_factory=list)


class LoadOrchestrator:
    """
    Serves cached data immediately, refreshes the Index eagerly and the Full snapshot when idle.

    Usage:
        async with LoadOrchestrator(remote, bundle, cache) as orchestrator:
            await orchestrator.wait()
            orchestrator.state.get_procedure("pth")
    """

    def __init__(
        self,
        remote: RemoteStore,
        bundle: BundleSource,
        cache: SnapshotCache,
        idle_hook: Optional[IdleHook] = None,
        settings: Optional[Settings] = None,
    ):
        self.remote = remote
        self.bundle = bundle
        self.cache = cache
        self.idle_hook = idle_hook
        self.settings = settings or get_settings()

        self._state = seed_state(cache)
        self._branches = _Branches()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._closed = False

        logger.info(
            f"Session seeded (index={len(self._state.procedure_index)}, "
            f"full={len(self._state.procedures)}, from_cache={self._state.seeded_from_cache})"
        )

    @property
    def state(self) -> DataState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener with every new state; returns an unsubscribe callable."""
        self._branches.listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._branches.listeners:
                self._branches.listeners.remove(listener)

        return unsubscribe

    def dispatch(self, message: Message) -> None:
        if self._closed:
            return
        next_state = reduce(self._state, message)
        if next_state == self._state:
            return
        self._state = next_state
        for listener in list(self._branches.listeners):
            try:
                listener(next_state)
            except Exception as e:
                logger.error(f"State listener failed: {e}", exc_info=True)

    # --- Lifecycle ---

    def start(self) -> None:
        """Launch both branches. Must be called from a running event loop."""
        if self._loop is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._branches.full_settled = asyncio.Event()

        self.dispatch(IndexStarted())
        self._branches.index_task = self._loop.create_task(self._run_index_branch())
        self._branches.cancel_idle = schedule_idle(
            self._launch_full_branch,
            timeout_hint=self.settings.idle_timeout_seconds,
            hook=self.idle_hook,
            fallback_delay=self.settings.idle_fallback_delay_seconds,
        )

    def close(self) -> None:
        """Suppress further state updates and cancel the pending idle task."""
        self._closed = True
        if self._branches.cancel_idle is not None:
            self._branches.cancel_idle()
            self._branches.cancel_idle = None
        if self._branches.full_task is None and self._branches.full_settled is not None:
            self._branches.full_settled.set()

    async def wait(self) -> DataState:
        """Wait until both branches have settled (or been cancelled) and return the state."""
        if self._branches.index_task is not None:
            await self._branches.index_task
        if self._branches.full_settled is not None:
            await self._branches.full_settled.wait()
        if self._branches.full_task is not None:
            await self._branches.full_task
        return self._state

    async def __aenter__(self) -> "LoadOrchestrator":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- Branches ---

    def _launch_full_branch(self) -> None:
        self._branches.cancel_idle = None
        if self._closed:
            self._branches.full_settled.set()
            return
        self._branches.full_task = self._loop.create_task(self._run_full_branch())

    async def _run_index_branch(self) -> None:
        try:
            snapshot = await load_index_snapshot(self.remote, self.cache)
        except Exception as e:
            logger.error(f"Failed to load procedure index: {e}")
            self.dispatch(IndexFailed(reason=str(e)))
            return
        self.dispatch(IndexLoaded(snapshot=snapshot))

    async def _run_full_branch(self) -> None:
        self.dispatch(FullStarted())
        try:
            snapshot = await run_full_refresh(self.remote, self.bundle, self.cache)
        except Exception as e:
            logger.error(f"Failed to load full data: {e}")
            self.dispatch(FullFailed(reason=str(e)))
        else:
            self.dispatch(FullLoaded(snapshot=snapshot))
        finally:
            self._branches.full_settled.set()
