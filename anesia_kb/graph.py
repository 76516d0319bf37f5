"""
LangGraph pipeline for the Full refresh.

    fetch_remote → merge_fallback → enrich → write_snapshot

fetch_remote ends the run early when the remote store is unavailable; the
caller turns that into SourceUnavailable.
"""

import asyncio
import logging
from typing import Literal

from langgraph.graph import END, StateGraph

from .db.bundle import BundleSource
from .db.remote import RemoteStore
from .db.repositories import load_knowledge_base, load_specialties
from .enrichment import enrich_medication_plan
from .errors import SourceUnavailable
from .merge import merge_with_bundle
from .normalize import ENTITY_TYPES
from .snapshots import SnapshotCache
from .state import FullSnapshot, RefreshState

logger = logging.getLogger(__name__)


def route_after_fetch(state: RefreshState) -> Literal["merge_fallback", "end"]:
    """Stop when the remote fetch recorded an error; otherwise merge."""
    if state.get("errors"):
        logger.info("Graph: remote source unavailable, ending refresh")
        return "end"
    return "merge_fallback"


def build_refresh_graph(remote: RemoteStore, bundle: BundleSource, cache: SnapshotCache) -> StateGraph:
    """Build the refresh graph bound to the given collaborators."""

    async def fetch_remote(state: RefreshState) -> dict:
        logger.info("Fetching remote knowledge base...")
        try:
            knowledge_base, specialties = await asyncio.gather(
                load_knowledge_base(remote),
                load_specialties(remote),
            )
        except SourceUnavailable as e:
            logger.error(f"Remote fetch failed: {e.message}")
            return {"errors": [*state.get("errors", []), e.message]}
        return {**knowledge_base, "specialties": specialties}

    async def merge_fallback(state: RefreshState) -> dict:
        merged = {}
        for entity_type in ENTITY_TYPES:
            merged[entity_type] = await merge_with_bundle(entity_type, state.get(entity_type) or [], bundle)
        return merged

    async def enrich(state: RefreshState) -> dict:
        return enrich_medication_plan(state.get("procedures") or [], state.get("drugs") or [])

    async def write_snapshot(state: RefreshState) -> dict:
        snapshot: FullSnapshot = {
            "procedures": state.get("procedures") or [],
            "drugs": state.get("drugs") or [],
            "guidelines": state.get("guidelines") or [],
            "protocols": state.get("protocols") or [],
            "regional_blocks": state.get("regional_blocks") or [],
            "specialties": state.get("specialties") or [],
        }
        if not cache.write_full(snapshot):
            logger.warning("Full snapshot not cached; serving it from memory only")
        return {"snapshot": snapshot}

    graph = StateGraph(RefreshState)

    graph.add_node("fetch_remote", fetch_remote)
    graph.add_node("merge_fallback", merge_fallback)
    graph.add_node("enrich", enrich)
    graph.add_node("write_snapshot", write_snapshot)

    graph.set_entry_point("fetch_remote")

    graph.add_conditional_edges(
        "fetch_remote",
        route_after_fetch,
        {"merge_fallback": "merge_fallback", "end": END},
    )
    graph.add_edge("merge_fallback", "enrich")
    graph.add_edge("enrich", "write_snapshot")
    graph.add_edge("write_snapshot", END)

    return graph


async def run_full_refresh(remote: RemoteStore, bundle: BundleSource, cache: SnapshotCache) -> FullSnapshot:
    """
    Fetch, merge, enrich and cache the Full snapshot.

    Raises SourceUnavailable when the remote store is empty or unreachable.
    """
    compiled = build_refresh_graph(remote, bundle, cache).compile()
    final_state = await compiled.ainvoke({"errors": []})

    snapshot = final_state.get("snapshot")
    if snapshot is None:
        errors = final_state.get("errors") or ["Full refresh produced no snapshot"]
        raise SourceUnavailable(message="; ".join(errors))

    logger.info(f"Full refresh complete: {len(snapshot['procedures'])} procedures")
    return snapshot
