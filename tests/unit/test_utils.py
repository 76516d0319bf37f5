"""Text folding, value guards and specialty lookups."""

import math

from anesia_kb.utils import (
    dedupe,
    find_specialty_record,
    fold_text,
    safe_float,
    specialty_display_name,
    strip_diacritics,
)

SPECIALTIES = [
    {"id": "orthopedie", "name": {"fr": "Orthopédie", "en": "Orthopedics", "pt": "Ortopedia"}, "sort_base": 10},
    {"id": "orl", "name": {"fr": "ORL", "en": "", "pt": ""}, "sort_base": 50},
]


class TestText:
    def test_strip_diacritics(self):
        assert strip_diacritics("Césarienne intubação Kétamine") == "Cesarienne intubacao Ketamine"

    def test_fold_text(self):
        assert fold_text("  Anesthésie GÉNÉRALE ") == "anesthesie generale"
        assert fold_text(None) == ""


class TestValues:
    def test_safe_float(self):
        assert safe_float("2.5") == 2.5
        assert safe_float(3) == 3.0
        assert safe_float(None) is None
        assert safe_float(True) is None
        assert safe_float("abc") is None
        assert safe_float(math.nan) is None
        assert safe_float(math.inf) is None

    def test_dedupe_keeps_first_occurrence(self):
        assert dedupe(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

    def test_dedupe_with_key(self):
        items = [{"k": 1, "v": "x"}, {"k": 1, "v": "y"}, {"k": 2, "v": "z"}]
        assert dedupe(items, key=lambda item: item["k"]) == [items[0], items[2]]


class TestSpecialties:
    def test_match_by_id(self):
        assert find_specialty_record("orl", SPECIALTIES)["sort_base"] == 50

    def test_match_by_localized_name_ignoring_accents_and_case(self):
        assert find_specialty_record("ORTHOPEDIE", SPECIALTIES)["id"] == "orthopedie"
        assert find_specialty_record("ortopedia", SPECIALTIES)["id"] == "orthopedie"

    def test_no_match(self):
        assert find_specialty_record("cardiologie", SPECIALTIES) is None
        assert find_specialty_record("", SPECIALTIES) is None

    def test_display_name_in_requested_language(self):
        assert specialty_display_name("orthopedie", SPECIALTIES, "en") == "Orthopedics"

    def test_display_name_falls_back_to_primary_language(self):
        assert specialty_display_name("orl", SPECIALTIES, "pt") == "ORL"

    def test_display_name_falls_back_to_tag(self):
        assert specialty_display_name("cardiologie", SPECIALTIES, "fr") == "cardiologie"
        assert specialty_display_name(None, SPECIALTIES, "fr") == ""
