"""Seed the sqlite remote store from the bundled JSON documents."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config import get_settings
from ..utils import safe_float, safe_str
from .bundle import BUNDLE_FILES
from .database import execute_many, get_connection, init_database

SEEDED_TABLES = (
    "procedures", "drugs", "drug_presentations", "standard_dilutions",
    "guidelines", "protocols", "regional_blocks", "specialties",
)

DEFAULT_SPECIALTIES = [
    ("orthopedie", {"fr": "Orthopédie", "en": "Orthopedics", "pt": "Ortopedia"}, 10),
    ("urologie", {"fr": "Urologie", "en": "Urology", "pt": "Urologia"}, 20),
    ("obstetrique", {"fr": "Obstétrique", "en": "Obstetrics", "pt": "Obstetrícia"}, 30),
    ("digestif", {"fr": "Chirurgie digestive", "en": "General surgery", "pt": "Cirurgia geral"}, 40),
    ("orl", {"fr": "ORL", "en": "ENT", "pt": "Otorrinolaringologia"}, 50),
    ("neurochirurgie", {"fr": "Neurochirurgie", "en": "Neurosurgery", "pt": "Neurocirurgia"}, 60),
    ("gynecologie", {"fr": "Gynécologie", "en": "Gynecology", "pt": "Ginecologia"}, 70),
]


def _json(value: Any) -> Optional[str]:
    """Serialize a JSON column; None stays NULL."""
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _read_bundle(bundle_dir: Path, entity_type: str) -> List[Dict[str, Any]]:
    path = bundle_dir / BUNDLE_FILES[entity_type]
    if not path.exists():
        print(f"  Warning: {path} not found, skipping...")
        return []
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, list):
        print(f"  Warning: {path.name} is not a JSON array, skipping...")
        return []
    return [record for record in data if isinstance(record, dict) and record.get("id")]


def import_procedures(bundle_dir: Path, db_path: Path, include_deep: bool = True) -> int:
    """
    Import procedures into the remote store.

    With include_deep=False the deep content is left out, leaving the fallback
    merge to complete it from the bundle at load time.
    """
    print("Importing procedures...")
    updated_at = datetime.now(timezone.utc).isoformat()

    records = []
    for procedure in _read_bundle(bundle_dir, "procedures"):
        content = {"quick": procedure.get("quick") or {}}
        if include_deep:
            content["deep"] = procedure.get("deep") or {}
        records.append((
            procedure["id"],
            safe_str(procedure.get("specialty")),
            _json(procedure.get("specialties") or []),
            _json(procedure.get("titles") or {}),
            _json(procedure.get("synonyms") or {}),
            _json(content),
            _json(procedure.get("tags") or []),
            1 if procedure.get("is_pro") else 0,
            updated_at,
        ))

    if records:
        execute_many(
            """INSERT INTO procedures
               (id, specialty, specialties, titles, synonyms, content, tags, is_pro, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            records,
            db_path=db_path,
        )
    print(f"  Imported {len(records)} procedure records")
    return len(records)


def import_drugs(bundle_dir: Path, db_path: Path) -> int:
    """Import drugs plus their presentation and standard dilution rows."""
    print("Importing drugs...")
    updated_at = datetime.now(timezone.utc).isoformat()

    drug_records = []
    presentation_records = []
    dilution_records = []
    for drug in _read_bundle(bundle_dir, "drugs"):
        drug_records.append((
            drug["id"],
            _json(drug.get("name") or {}),
            drug.get("drug_class"),
            _json({
                "dose_rules": drug.get("dose_rules") or [],
                "concentrations": drug.get("concentrations") or [],
            }),
            _json({"renal_hepatic_notes": drug.get("renal_hepatic_notes") or []}),
            _json(drug.get("contraindications_notes") or []),
            _json(drug.get("tags") or []),
            updated_at,
        ))

        for i, presentation in enumerate(drug.get("presentations") or []):
            presentation_records.append((
                presentation.get("id") or f"{drug['id']}-p{i}",
                drug["id"],
                safe_str(presentation.get("label")),
                safe_float(presentation.get("total_mg")),
                safe_float(presentation.get("total_ml")),
                safe_float(presentation.get("mg_per_ml")),
                presentation.get("solvent"),
                presentation.get("form"),
                1 if presentation.get("is_reference") else 0,
            ))

        for i, dilution in enumerate(drug.get("standard_dilutions") or []):
            notes = dilution.get("notes") or []
            dilution_records.append((
                dilution.get("id") or f"{drug['id']}-d{i}",
                drug["id"],
                dilution.get("presentation_id"),
                safe_str(dilution.get("label")),
                safe_float(dilution.get("final_volume_ml")),
                None,
                dilution.get("target_concentration"),
                safe_float(dilution.get("target_concentration_mg_per_ml")),
                dilution.get("diluent"),
                safe_float(dilution.get("drug_volume_ml")),
                safe_float(dilution.get("diluent_volume_ml")),
                " ".join(notes) if isinstance(notes, list) else safe_str(notes),
            ))

    if drug_records:
        execute_many(
            """INSERT INTO drugs
               (id, names, class, dosing, notes, contraindications, tags, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            drug_records,
            db_path=db_path,
        )
    if presentation_records:
        execute_many(
            """INSERT INTO drug_presentations
               (id, drug_id, label, total_mg, total_ml, mg_per_ml, solvent, form, is_reference)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            presentation_records,
            db_path=db_path,
        )
    if dilution_records:
        execute_many(
            """INSERT INTO standard_dilutions
               (id, drug_id, presentation_id, label, syringe_ml, bag_ml,
                target_concentration_label, target_concentration_mg_per_ml,
                diluent, drug_volume_ml, diluent_volume_ml, notes)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            dilution_records,
            db_path=db_path,
        )

    print(
        f"  Imported {len(drug_records)} drugs, {len(presentation_records)} presentations, "
        f"{len(dilution_records)} dilutions"
    )
    return len(drug_records)


def import_guidelines(bundle_dir: Path, db_path: Path) -> int:
    print("Importing guidelines...")
    records = [
        (
            guideline["id"],
            safe_str(guideline.get("category")),
            _json(guideline.get("titles") or {}),
            _json(guideline.get("items") or {}),
            _json(guideline.get("references") or []),
            _json(guideline.get("tags") or []),
            _json(guideline.get("specialties") or []),
            guideline.get("organization"),
            guideline.get("recommendation_strength"),
            guideline.get("version"),
            guideline.get("source"),
            guideline.get("published_at"),
            guideline.get("review_at"),
            guideline.get("evidence_grade"),
        )
        for guideline in _read_bundle(bundle_dir, "guidelines")
    ]
    if records:
        execute_many(
            """INSERT INTO guidelines
               (id, category, titles, items, refs, tags, specialties, organization,
                recommendation_strength, version, source, published_at, review_at, evidence_grade)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            records,
            db_path=db_path,
        )
    print(f"  Imported {len(records)} guideline records")
    return len(records)


def import_protocols(bundle_dir: Path, db_path: Path) -> int:
    print("Importing protocols...")
    records = [
        (
            protocol["id"],
            safe_str(protocol.get("category")),
            _json(protocol.get("titles") or {}),
            _json(protocol.get("steps") or {}),
            _json(protocol.get("references") or []),
            _json(protocol.get("tags") or []),
            protocol.get("version"),
            protocol.get("source"),
            protocol.get("published_at"),
            protocol.get("review_at"),
            protocol.get("evidence_grade"),
        )
        for protocol in _read_bundle(bundle_dir, "protocols")
    ]
    if records:
        execute_many(
            """INSERT INTO protocols
               (id, category, titles, steps, refs, tags, version, source,
                published_at, review_at, evidence_grade)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            records,
            db_path=db_path,
        )
    print(f"  Imported {len(records)} protocol records")
    return len(records)


def import_regional_blocks(bundle_dir: Path, db_path: Path) -> int:
    print("Importing regional blocks...")
    records = [
        (
            block["id"],
            safe_str(block.get("region")),
            _json(block.get("titles") or {}),
            _json(block.get("indications") or {}),
            _json(block.get("contraindications") or {}),
            _json(block.get("technique") or {}),
            _json(block.get("drugs") or {}),
            _json(block.get("tags") or []),
        )
        for block in _read_bundle(bundle_dir, "regional_blocks")
    ]
    if records:
        execute_many(
            """INSERT INTO regional_blocks
               (id, region, titles, indications, contraindications, technique, drugs, tags)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            records,
            db_path=db_path,
        )
    print(f"  Imported {len(records)} regional block records")
    return len(records)


def import_specialties(db_path: Path) -> int:
    print("Importing specialties...")
    records = [
        (specialty_id, _json(names), sort_base, _json([]), 1)
        for specialty_id, names, sort_base in DEFAULT_SPECIALTIES
    ]
    execute_many(
        "INSERT INTO specialties (id, name, sort_base, synonyms, is_active) VALUES (?, ?, ?, ?, ?)",
        records,
        db_path=db_path,
    )
    print(f"  Imported {len(records)} specialty records")
    return len(records)


def import_all_data(
    db_path: Optional[Path] = None,
    bundle_dir: Optional[Path] = None,
    include_deep: bool = True,
) -> dict:
    """Initialize the remote store and (re)import every bundled document."""
    settings = get_settings()
    bundle_dir = Path(bundle_dir or settings.bundle_dir)

    print(f"\n{'='*50}")
    print("AnesIA Remote Store Import")
    print(f"{'='*50}\n")

    db_path = init_database(db_path)

    with get_connection(db_path) as conn:
        for table in SEEDED_TABLES:
            conn.execute(f"DELETE FROM {table}")
        conn.commit()
    print("Cleared existing data\n")

    results = {
        "procedures": import_procedures(bundle_dir, db_path, include_deep=include_deep),
        "drugs": import_drugs(bundle_dir, db_path),
        "guidelines": import_guidelines(bundle_dir, db_path),
        "protocols": import_protocols(bundle_dir, db_path),
        "regional_blocks": import_regional_blocks(bundle_dir, db_path),
        "specialties": import_specialties(db_path),
    }

    print(f"\n{'='*50}")
    print("Import Summary:")
    for table, count in results.items():
        print(f"  {table}: {count} records")
    print(f"{'='*50}\n")

    return results


if __name__ == "__main__":
    import_all_data()
