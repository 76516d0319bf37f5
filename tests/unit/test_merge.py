"""
Fallback merge of remote entities with the bundled documents.
"""

import asyncio
import copy

from anesia_kb.merge import merge_fallback, merge_with_bundle
from anesia_kb.normalize import normalize_drug, normalize_procedure
from conftest import FakeBundleSource


REMOTE_P1 = {
    "id": "p1",
    "specialty": "orthopedie",
    "titles": {"fr": "Titre distant", "en": "Remote title"},
    "quick": {"fr": {"preop": ["bilan"], "drugs": []}},
    "deep": {"fr": {"clinical": ["distant"], "pitfalls": []}},
    "tags": ["ortho"],
}

BUNDLE_P1 = {
    "id": "p1",
    "specialty": "orthopedie",
    "titles": {"fr": "Titre embarqué", "en": "Bundled title", "pt": "Título"},
    "quick": {"fr": {"preop": ["autre"], "drugs": [{"drug_id": "propofol", "indication_tag": "induction"}]}},
    "deep": {"fr": {"clinical": ["embarqué"], "pitfalls": ["hypotension au cimentage"]}},
    "tags": ["bundle"],
}


# ── merge_fallback ────────────────────────────────────────────────────────

class TestMergeFallback:
    def test_missing_nested_list_is_completed(self):
        merged, = merge_fallback([REMOTE_P1], [BUNDLE_P1])
        assert merged["deep"]["fr"]["pitfalls"] == ["hypotension au cimentage"]

    def test_present_fields_are_untouched(self):
        merged, = merge_fallback([REMOTE_P1], [BUNDLE_P1])
        assert merged["titles"]["fr"] == "Titre distant"
        assert merged["titles"]["en"] == "Remote title"
        assert merged["deep"]["fr"]["clinical"] == ["distant"]
        assert merged["quick"]["fr"]["preop"] == ["bilan"]
        assert merged["tags"] == ["ortho"]

    def test_empty_drug_list_adopts_bundled_refs(self):
        merged, = merge_fallback([REMOTE_P1], [BUNDLE_P1])
        assert merged["quick"]["fr"]["drugs"] == [{"drug_id": "propofol", "indication_tag": "induction"}]

    def test_non_destructive_for_every_present_field(self):
        remote = normalize_procedure(REMOTE_P1)
        merged, = merge_fallback([REMOTE_P1], [BUNDLE_P1])
        for key in ("id", "specialty", "specialties", "titles", "synonyms", "tags", "is_pro"):
            if remote[key] not in (None, "", []):
                assert merged[key] == remote[key]

    def test_ids_and_order_follow_remote(self):
        remote = [{"id": "b"}, {"id": "a"}, {"id": "c"}]
        bundle = [{"id": "a", "titles": "A"}, {"id": "z", "titles": "Z"}]
        merged = merge_fallback(remote, bundle)
        assert [entity["id"] for entity in merged] == ["b", "a", "c"]
        assert merged[1]["titles"]["fr"] == "A"

    def test_unmatched_entities_are_normalized(self):
        merged, = merge_fallback([{"id": "solo"}], [])
        assert merged == normalize_procedure({"id": "solo"})

    def test_first_bundled_duplicate_wins(self):
        bundle = [{"id": "p1", "titles": "premier"}, {"id": "p1", "titles": "second"}]
        merged, = merge_fallback([{"id": "p1"}], bundle)
        assert merged["titles"]["fr"] == "premier"

    def test_inputs_are_not_mutated(self):
        remote = copy.deepcopy(REMOTE_P1)
        bundle = copy.deepcopy(BUNDLE_P1)
        merge_fallback([remote], [bundle])
        assert remote == REMOTE_P1
        assert bundle == BUNDLE_P1

    def test_other_entity_normalizer(self):
        remote = [{"id": "propofol", "name": {"fr": "Propofol"}, "dose_rules": []}]
        bundle = [{"id": "propofol", "name": {"fr": "Diprivan"}, "dose_rules": [
            {"indication_tag": "induction", "route": "IV", "mg_per_kg": 2, "max_mg": 200},
        ]}]
        merged, = merge_fallback(remote, bundle, normalize_drug)
        assert merged["name"]["fr"] == "Propofol"
        assert merged["dose_rules"][0]["indication_tag"] == "induction"


# ── merge_with_bundle ─────────────────────────────────────────────────────

class TestMergeWithBundle:
    def test_bundle_failure_returns_normalized_remote(self):
        source = FakeBundleSource(failing={"procedures"})
        merged = asyncio.run(merge_with_bundle("procedures", [REMOTE_P1], source))
        assert merged == [normalize_procedure(REMOTE_P1)]

    def test_unexpected_bundle_error_degrades_too(self):
        class BrokenSource:
            async def load(self, entity_type):
                raise RuntimeError("disk on fire")

        merged = asyncio.run(merge_with_bundle("procedures", [REMOTE_P1], BrokenSource()))
        assert merged == [normalize_procedure(REMOTE_P1)]

    def test_invalid_bundled_records_are_skipped(self):
        source = FakeBundleSource({"procedures": [
            {"id": "p1", "titles": {"en": "no french"}, "quick": {"fr": {}}, "specialty": "orl"},
            "not a record",
        ]})
        merged = asyncio.run(merge_with_bundle("procedures", [{"id": "p1"}], source))
        assert merged == [normalize_procedure({"id": "p1"})]

    def test_bundle_never_adds_entities(self, bundle):
        merged = asyncio.run(merge_with_bundle("procedures", [{"id": "pth"}], bundle))
        assert [entity["id"] for entity in merged] == ["pth"]
        assert merged[0]["titles"]["fr"] == "Prothèse totale de hanche"
