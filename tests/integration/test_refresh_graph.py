"""
Full refresh pipeline: fetch → merge fallback → enrich → write snapshot.
"""

import asyncio

import pytest

from anesia_kb.errors import CacheWriteFailure, SourceUnavailable
from anesia_kb.graph import build_refresh_graph, route_after_fetch, run_full_refresh
from anesia_kb.normalize import normalize_drug
from anesia_kb.snapshots import FULL_CACHE_KEY, INDEX_CACHE_KEY, SnapshotCache
from conftest import FakeBundleSource, FakeRemoteStore


class TestRouting:
    def test_errors_end_the_run(self):
        assert route_after_fetch({"errors": ["remote down"]}) == "end"

    def test_clean_fetch_continues(self):
        assert route_after_fetch({"errors": []}) == "merge_fallback"
        assert route_after_fetch({}) == "merge_fallback"

    def test_graph_nodes(self, remote, bundle, cache):
        graph = build_refresh_graph(remote, bundle, cache)
        assert {"fetch_remote", "merge_fallback", "enrich", "write_snapshot"} <= set(graph.nodes)


class TestRunFullRefresh:
    def test_snapshot_is_merged_enriched_and_cached(self, remote, bundle, cache):
        snapshot = asyncio.run(run_full_refresh(remote, bundle, cache))

        assert [p["id"] for p in snapshot["procedures"]] == ["pth", "turp"]
        pth = snapshot["procedures"][0]
        # remote title kept, deep content completed from the bundle
        assert pth["titles"]["fr"] == "Prothèse totale de hanche"
        assert pth["deep"]["fr"]["pitfalls"] == ["Hypotension lors du cimentage", "Sous-estimation des pertes sanguines"]
        assert ("rocuronium", "intubation") in [
            (ref["drug_id"], ref["indication_tag"]) for ref in pth["quick"]["fr"]["drugs"]
        ]

        assert cache.read_full() == snapshot
        assert cache.read_index()["procedures"][0]["id"] == "pth"

    def test_specialties_come_from_the_remote_store(self, remote, bundle, cache):
        snapshot = asyncio.run(run_full_refresh(remote, bundle, cache))
        assert [s["id"] for s in snapshot["specialties"]] == ["orthopedie", "urologie"]

    def test_drugs_are_completed_and_supplemented(self, remote, bundle, cache):
        snapshot = asyncio.run(run_full_refresh(remote, bundle, cache))
        propofol = next(d for d in snapshot["drugs"] if d["id"] == "propofol")
        tags = [rule["indication_tag"] for rule in propofol["dose_rules"]]
        assert tags == ["induction", "sédation", "TIVA"]
        assert propofol["concentrations"]

    def test_bundle_failure_degrades_only_its_entity_type(self, remote, bundle_documents, cache):
        bundle = FakeBundleSource(bundle_documents, failing={"drugs"})
        snapshot = asyncio.run(run_full_refresh(remote, bundle, cache))

        propofol = next(d for d in snapshot["drugs"] if d["id"] == "propofol")
        assert propofol["concentrations"] == []
        assert snapshot["procedures"][0]["deep"]["fr"]["pitfalls"]

    def test_secondary_entities_are_never_added_from_the_bundle(self, remote, bundle, cache):
        snapshot = asyncio.run(run_full_refresh(remote, bundle, cache))
        assert snapshot["guidelines"] == []
        assert snapshot["regional_blocks"] == []

    def test_unavailable_remote_raises_and_leaves_cache_untouched(self, bundle, cache, memory_store):
        with pytest.raises(SourceUnavailable):
            asyncio.run(run_full_refresh(FakeRemoteStore(fail=True), bundle, cache))
        assert memory_store.get(FULL_CACHE_KEY) is None
        assert memory_store.get(INDEX_CACHE_KEY) is None
        assert bundle.calls == []

    def test_empty_remote_raises(self, bundle, cache):
        with pytest.raises(SourceUnavailable):
            asyncio.run(run_full_refresh(FakeRemoteStore({"procedures": []}), bundle, cache))

    def test_cache_write_failure_still_returns_snapshot(self, remote, bundle, clock):
        class ReadOnlyStore:
            def get(self, key):
                return None

            def set(self, key, value):
                raise CacheWriteFailure(message="quota")

        snapshot = asyncio.run(run_full_refresh(remote, bundle, SnapshotCache(ReadOnlyStore(), clock=clock)))
        assert len(snapshot["procedures"]) == 2


def test_normalized_remote_drug_is_the_merge_base(remote, bundle, cache):
    snapshot = asyncio.run(run_full_refresh(remote, bundle, cache))
    sevoflurane = next(d for d in snapshot["drugs"] if d["id"] == "sevoflurane")
    assert sevoflurane["name"] == normalize_drug({"name": {"fr": "Sévoflurane"}})["name"]
