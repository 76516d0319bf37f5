"""
Shared fixtures for all tests.

Fakes for the three collaborators of the load pipeline live here so both
unit/ and integration/ can use them: remote store, bundle source and a
controllable clock for the snapshot cache.
"""
import copy
import json
from pathlib import Path

import pytest

import anesia_kb
from anesia_kb.config import Settings
from anesia_kb.db.bundle import BUNDLE_FILES
from anesia_kb.errors import FallbackUnavailable, SourceUnavailable
from anesia_kb.snapshots import MemorySnapshotStore, SnapshotCache

BUNDLE_DIR = Path(anesia_kb.__file__).parent / "data"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeRemoteStore:
    """In-memory RemoteStore over already-decoded rows, keyed by table name."""

    def __init__(self, tables=None, fail=False):
        self.tables = tables or {}
        self.fail = fail
        self.calls = []

    async def fetch_rows(self, table, columns=None, order_by=(), active_only=False):
        self.calls.append(table)
        if self.fail:
            raise SourceUnavailable(message=f"remote down ({table})")

        rows = [copy.deepcopy(row) for row in self.tables.get(table, [])]
        if active_only:
            rows = [row for row in rows if row.get("is_active", True)]
        for column in reversed(tuple(order_by)):
            rows.sort(key=lambda row: (row.get(column) is None, row.get(column)))
        if columns:
            rows = [{column: row.get(column) for column in columns} for row in rows]
        return rows


class FakeBundleSource:
    """BundleSource serving in-memory documents; listed entity types fail to load."""

    def __init__(self, documents=None, failing=()):
        self.documents = documents or {}
        self.failing = set(failing)
        self.calls = []

    async def load(self, entity_type):
        self.calls.append(entity_type)
        if entity_type in self.failing:
            raise FallbackUnavailable(message=f"{entity_type} bundle unreachable")
        return copy.deepcopy(self.documents.get(entity_type, []))


class FakeIdleHook:
    """Records idle requests; the test decides when the host becomes idle."""

    def __init__(self):
        self.requests = []
        self.cancelled = []

    def request_idle_callback(self, callback, timeout):
        handle = len(self.requests)
        self.requests.append((callback, timeout))
        return handle

    def cancel_idle_callback(self, handle):
        self.cancelled.append(handle)

    def fire(self):
        callback, _ = self.requests[-1]
        callback()


# ---------------------------------------------------------------------------
# Row builders
# ---------------------------------------------------------------------------

def procedure_row(procedure_id, specialty="orthopedie", title=None, quick=None, deep=None, tags=None):
    """Remote procedures row, as SqliteRemoteStore returns it after JSON decoding."""
    content = {"quick": quick if quick is not None else {"fr": {"intraop": [], "drugs": []}}}
    if deep is not None:
        content["deep"] = deep
    return {
        "id": procedure_id,
        "specialty": specialty,
        "specialties": [specialty],
        "titles": {"fr": title or procedure_id.replace("_", " ").capitalize()},
        "synonyms": {"fr": []},
        "content": content,
        "tags": tags or [],
        "is_pro": False,
    }


def drug_row(drug_id, fr_name=None, dose_rules=None):
    return {
        "id": drug_id,
        "names": {"fr": fr_name or drug_id.capitalize()},
        "class": None,
        "dosing": {"dose_rules": dose_rules or [], "concentrations": []},
        "notes": {"renal_hepatic_notes": []},
        "contraindications": [],
        "tags": [],
        "presentations": [],
        "standard_dilutions": [],
        "compatibility_notes": None,
    }


def specialty_row(specialty_id, fr_name, sort_base):
    return {"id": specialty_id, "name": {"fr": fr_name}, "sort_base": sort_base, "is_active": True}


def load_bundle_document(entity_type):
    with open(BUNDLE_DIR / BUNDLE_FILES[entity_type], "r", encoding="utf-8") as f:
        return json.load(f)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemorySnapshotStore()


@pytest.fixture
def cache(memory_store, clock):
    return SnapshotCache(memory_store, index_ttl=900, full_ttl=1800, clock=clock)


@pytest.fixture
def settings():
    return Settings(environment="test", idle_timeout_seconds=0.5, idle_fallback_delay_seconds=0)


@pytest.fixture
def remote_tables():
    return {
        "procedures": [
            procedure_row(
                "pth",
                title="Prothèse totale de hanche",
                quick={"fr": {"intraop": ["AG avec IOT"], "drugs": [
                    {"drug_id": "propofol", "indication_tag": "induction"},
                ]}},
            ),
            procedure_row("turp", specialty="urologie", title="Résection transurétrale de prostate"),
        ],
        "drugs": [drug_row("propofol"), drug_row("sevoflurane", "Sévoflurane")],
        "drug_presentations": [],
        "standard_dilutions": [],
        "guidelines": [],
        "protocols": [],
        "regional_blocks": [],
        "specialties": [
            specialty_row("urologie", "Urologie", 20),
            specialty_row("orthopedie", "Orthopédie", 10),
        ],
    }


@pytest.fixture
def remote(remote_tables):
    return FakeRemoteStore(remote_tables)


@pytest.fixture
def bundle_documents():
    return {entity_type: load_bundle_document(entity_type) for entity_type in BUNDLE_FILES}


@pytest.fixture
def bundle(bundle_documents):
    return FakeBundleSource(bundle_documents)
