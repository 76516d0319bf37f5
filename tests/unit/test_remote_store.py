"""
sqlite remote store and entity repositories, seeded from the shipped bundle.
"""

import asyncio
import json
import threading
import time

import pytest

from anesia_kb.db import remote as remote_module
from anesia_kb.db.database import execute_many
from anesia_kb.db.import_data import import_all_data
from anesia_kb.db.remote import SqliteRemoteStore
from anesia_kb.db.repositories import (
    load_drugs,
    load_knowledge_base,
    load_procedure_index,
    load_specialties,
)
from anesia_kb.errors import SourceUnavailable
from anesia_kb.normalize import PROCEDURE_INDEX_FIELDS
from conftest import BUNDLE_DIR, FakeRemoteStore, drug_row, procedure_row


@pytest.fixture
def seeded_db(tmp_path):
    db_path = tmp_path / "remote.db"
    import_all_data(db_path=db_path, bundle_dir=BUNDLE_DIR)
    return db_path


@pytest.fixture
def store(seeded_db):
    return SqliteRemoteStore(seeded_db)


class TestSqliteRemoteStore:
    def test_json_columns_are_decoded(self, store):
        rows = asyncio.run(store.fetch_rows("procedures", ("id", "titles", "content", "is_pro")))
        pth = next(row for row in rows if row["id"] == "pth")
        assert pth["titles"]["fr"] == "Prothèse totale de hanche"
        assert pth["content"]["quick"]["fr"]["drugs"][0]["drug_id"] == "propofol"
        assert pth["is_pro"] is False

    def test_order_by(self, store):
        rows = asyncio.run(store.fetch_rows("procedures", ("id", "specialty"), order_by=("specialty", "id")))
        keys = [(row["specialty"], row["id"]) for row in rows]
        assert keys == sorted(keys)

    def test_unknown_table_or_column(self, store):
        with pytest.raises(ValueError):
            asyncio.run(store.fetch_rows("patients"))
        with pytest.raises(ValueError):
            asyncio.run(store.fetch_rows("procedures", ("id", "password")))

    def test_missing_database_is_source_unavailable(self, tmp_path):
        with pytest.raises(SourceUnavailable) as exc_info:
            asyncio.run(SqliteRemoteStore(tmp_path / "absent.db").fetch_rows("procedures"))
        assert exc_info.value.code == "data_load_error"

    def test_queries_run_concurrently_off_the_event_loop(self, store, monkeypatch):
        threads = []
        real_execute_query = remote_module.execute_query

        def slow_execute_query(query, params=(), db_path=None):
            threads.append(threading.get_ident())
            time.sleep(0.05)
            return real_execute_query(query, params, db_path=db_path)

        monkeypatch.setattr(remote_module, "execute_query", slow_execute_query)
        finished = []

        async def fetch(table):
            await store.fetch_rows(table, ("id",))
            finished.append(table)

        async def heartbeat():
            for _ in range(3):
                await asyncio.sleep(0.001)
            finished.append("heartbeat")

        async def main():
            loop_thread = threading.get_ident()
            await asyncio.gather(fetch("procedures"), fetch("drugs"), heartbeat())
            return loop_thread

        loop_thread = asyncio.run(main())
        assert len(threads) == 2
        assert loop_thread not in threads
        assert finished[0] == "heartbeat"

    def test_malformed_json_row_is_skipped(self, store, seeded_db):
        execute_many(
            "INSERT INTO procedures (id, specialty, titles, content) VALUES (?, ?, ?, ?)",
            [("broken", "orl", "{not json", json.dumps({"quick": {}}))],
            db_path=seeded_db,
        )
        rows = asyncio.run(store.fetch_rows("procedures", ("id", "titles")))
        assert "broken" not in [row["id"] for row in rows]
        assert "pth" in [row["id"] for row in rows]


class TestRepositories:
    def test_knowledge_base(self, store):
        knowledge_base = asyncio.run(load_knowledge_base(store))
        assert len(knowledge_base["procedures"]) == 7
        assert {"bloc_axillaire", "bloc_femoral"} == {b["id"] for b in knowledge_base["regional_blocks"]}
        guideline = next(g for g in knowledge_base["guidelines"] if g["id"] == "jeune_preoperatoire")
        assert guideline["organization"] == "ESAIC"
        assert guideline["references"][0]["year"] == 2022

    def test_procedure_index_is_a_projection(self, store):
        index = asyncio.run(load_procedure_index(store))
        assert all(tuple(entry) == PROCEDURE_INDEX_FIELDS for entry in index)
        assert [entry["specialty"] for entry in index] == sorted(entry["specialty"] for entry in index)

    def test_drugs_are_joined_with_presentations_and_dilutions(self, store):
        drugs = {drug["id"]: drug for drug in asyncio.run(load_drugs(store))}

        presentation, = drugs["propofol"]["presentations"]
        assert presentation["total_mg"] == 200
        assert presentation["is_reference"] is True

        dilution, = drugs["remifentanil"]["standard_dilutions"]
        assert dilution["final_volume_ml"] == 40
        assert dilution["target_concentration"] == "50 ug/mL"
        assert dilution["notes"] == ["2 mg dans 40 mL"]

    def test_drug_columns_map_to_canonical_fields(self, store):
        drugs = {drug["id"]: drug for drug in asyncio.run(load_drugs(store))}
        assert drugs["propofol"]["drug_class"] == "Hypnotique"
        assert drugs["rocuronium"]["renal_hepatic_notes"]
        assert drugs["propofol"]["dose_rules"][0]["dose_scalar"] == "LBW"

    def test_specialties_ordered_by_sort_weight(self, store):
        specialties = asyncio.run(load_specialties(store))
        assert [s["id"] for s in specialties][:2] == ["orthopedie", "urologie"]
        assert specialties[0]["name"]["en"] == "Orthopedics"

    def test_specialty_failure_yields_empty_list(self):
        assert asyncio.run(load_specialties(FakeRemoteStore(fail=True))) == []

    def test_empty_store_is_source_unavailable(self):
        with pytest.raises(SourceUnavailable):
            asyncio.run(load_knowledge_base(FakeRemoteStore({"procedures": []})))

    def test_store_failure_is_source_unavailable(self):
        with pytest.raises(SourceUnavailable):
            asyncio.run(load_knowledge_base(FakeRemoteStore(fail=True)))

    def test_rows_without_id_are_dropped(self, remote_tables, caplog):
        headless = procedure_row("ghost")
        headless["id"] = None
        remote_tables["procedures"].append(headless)
        blank = drug_row("blank")
        blank["id"] = "  "
        remote_tables["drugs"].append(blank)
        store = FakeRemoteStore(remote_tables)

        knowledge_base = asyncio.run(load_knowledge_base(store))
        index = asyncio.run(load_procedure_index(store))

        assert [p["id"] for p in knowledge_base["procedures"]] == ["pth", "turp"]
        assert "" not in [d["id"] for d in knowledge_base["drugs"]]
        assert [entry["id"] for entry in index] == ["pth", "turp"]
        assert "has no id" in caplog.text

    def test_seeding_without_deep_content(self, tmp_path):
        db_path = tmp_path / "lean.db"
        import_all_data(db_path=db_path, bundle_dir=BUNDLE_DIR, include_deep=False)
        knowledge_base = asyncio.run(load_knowledge_base(SqliteRemoteStore(db_path)))
        pth = next(p for p in knowledge_base["procedures"] if p["id"] == "pth")
        assert pth["deep"]["fr"]["clinical"] == []
        assert pth["quick"]["fr"]["preop"]
