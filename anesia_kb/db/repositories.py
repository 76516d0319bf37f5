"""
Entity loaders over the remote store.

Each loader converts raw rows into normalized entities. load_knowledge_base is
the single entry point used by the Full refresh; it fails with
SourceUnavailable when the store is unreachable or holds no procedures.
"""

import asyncio
import logging
from typing import Any, Dict, List

from ..errors import SourceUnavailable
from ..normalize import (
    PROCEDURE_INDEX_FIELDS,
    ROW_CONVERTERS,
    normalize_drug,
    normalize_guideline,
    normalize_procedure,
    normalize_protocol,
    normalize_regional_block,
    normalize_specialty,
    project_procedure_index,
)
from .remote import RemoteStore

logger = logging.getLogger(__name__)

PROCEDURE_COLUMNS = ("id", "specialty", "specialties", "titles", "synonyms", "content", "tags", "is_pro")
DRUG_COLUMNS = (
    "id", "names", "class", "dosing", "notes", "contraindications", "tags",
    "presentations", "standard_dilutions", "compatibility_notes",
)
GUIDELINE_COLUMNS = (
    "id", "category", "titles", "items", "refs", "tags", "specialties", "organization",
    "recommendation_strength", "version", "source", "published_at", "review_at", "evidence_grade",
)
PROTOCOL_COLUMNS = (
    "id", "category", "titles", "steps", "refs", "tags", "version", "source",
    "published_at", "review_at", "evidence_grade",
)
REGIONAL_BLOCK_COLUMNS = ("id", "region", "titles", "indications", "contraindications", "technique", "drugs", "tags")


def _screen_rows(table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Drop rows without a usable id; siblings are unaffected."""
    valid = []
    for i, row in enumerate(rows):
        row_id = row.get("id")
        if row_id is None or not str(row_id).strip():
            logger.warning(f"{table}[{i}] has no id, skipping")
            continue
        valid.append(row)
    return valid


async def load_procedures(store: RemoteStore) -> List[Dict[str, Any]]:
    rows = _screen_rows("procedures", await store.fetch_rows("procedures", PROCEDURE_COLUMNS))
    return [normalize_procedure(ROW_CONVERTERS["procedures"](row)) for row in rows]


async def load_procedure_index(store: RemoteStore) -> List[Dict[str, Any]]:
    """Listing columns only, ordered by specialty then id."""
    rows = await store.fetch_rows("procedures", PROCEDURE_INDEX_FIELDS, order_by=("specialty", "id"))
    rows = _screen_rows("procedures", rows)
    return [project_procedure_index(row) for row in rows]


def _presentation_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row.get("id"),
        "label": row.get("label"),
        "total_mg": row.get("total_mg"),
        "total_ml": row.get("total_ml"),
        "mg_per_ml": row.get("mg_per_ml"),
        "solvent": row.get("solvent"),
        "form": row.get("form"),
        "is_reference": row.get("is_reference"),
    }


def _dilution_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    final_volume = row.get("syringe_ml")
    if final_volume is None:
        final_volume = row.get("bag_ml")
    return {
        "id": row.get("id"),
        "label": row.get("label"),
        "target_concentration": row.get("target_concentration_label"),
        "target_concentration_mg_per_ml": row.get("target_concentration_mg_per_ml"),
        "diluent": row.get("diluent"),
        "final_volume_ml": final_volume,
        "drug_volume_ml": row.get("drug_volume_ml"),
        "diluent_volume_ml": row.get("diluent_volume_ml"),
        "notes": [row["notes"]] if row.get("notes") else [],
    }


def _group_by_drug(rows: List[Dict[str, Any]], convert) -> Dict[str, List[Dict[str, Any]]]:
    grouped: Dict[str, List[Dict[str, Any]]] = {}
    for row in rows:
        grouped.setdefault(row.get("drug_id"), []).append(convert(row))
    return grouped


async def load_drugs(store: RemoteStore) -> List[Dict[str, Any]]:
    """Drug rows joined with their presentation and standard dilution rows."""
    drug_rows, presentation_rows, dilution_rows = await asyncio.gather(
        store.fetch_rows("drugs", DRUG_COLUMNS),
        store.fetch_rows("drug_presentations"),
        store.fetch_rows("standard_dilutions"),
    )

    presentations = _group_by_drug(presentation_rows, _presentation_from_row)
    dilutions = _group_by_drug(dilution_rows, _dilution_from_row)

    drugs = []
    for row in _screen_rows("drugs", drug_rows):
        joined = {
            **row,
            "presentations": presentations.get(row.get("id")) or row.get("presentations") or [],
            "standard_dilutions": dilutions.get(row.get("id")) or row.get("standard_dilutions") or [],
        }
        drugs.append(normalize_drug(ROW_CONVERTERS["drugs"](joined)))
    return drugs


async def load_guidelines(store: RemoteStore) -> List[Dict[str, Any]]:
    rows = _screen_rows("guidelines", await store.fetch_rows("guidelines", GUIDELINE_COLUMNS))
    return [normalize_guideline(ROW_CONVERTERS["guidelines"](row)) for row in rows]


async def load_protocols(store: RemoteStore) -> List[Dict[str, Any]]:
    rows = _screen_rows("protocols", await store.fetch_rows("protocols", PROTOCOL_COLUMNS))
    return [normalize_protocol(ROW_CONVERTERS["protocols"](row)) for row in rows]


async def load_regional_blocks(store: RemoteStore) -> List[Dict[str, Any]]:
    rows = _screen_rows("regional_blocks", await store.fetch_rows("regional_blocks", REGIONAL_BLOCK_COLUMNS))
    return [normalize_regional_block(ROW_CONVERTERS["regional_blocks"](row)) for row in rows]


async def load_specialties(store: RemoteStore) -> List[Dict[str, Any]]:
    """Active specialties ordered by sort weight; any failure yields an empty list."""
    try:
        rows = await store.fetch_rows("specialties", order_by=("sort_base",), active_only=True)
    except Exception as e:
        logger.warning(f"Specialty metadata unavailable: {e}")
        return []
    return [normalize_specialty(row) for row in _screen_rows("specialties", rows)]


async def load_knowledge_base(store: RemoteStore) -> Dict[str, List[Dict[str, Any]]]:
    """
    Every entity table from the remote store, normalized.

    Raises SourceUnavailable when the store cannot be read or has no procedures.
    """
    try:
        procedures, drugs, guidelines, protocols, regional_blocks = await asyncio.gather(
            load_procedures(store),
            load_drugs(store),
            load_guidelines(store),
            load_protocols(store),
            load_regional_blocks(store),
        )
    except SourceUnavailable:
        raise
    except Exception as e:
        raise SourceUnavailable(message=f"Remote knowledge base load failed: {e}") from e

    if not procedures:
        raise SourceUnavailable(message="Remote knowledge base is empty or unavailable")

    logger.info(
        f"Remote knowledge base: {len(procedures)} procedures, {len(drugs)} drugs, "
        f"{len(guidelines)} guidelines, {len(protocols)} protocols, {len(regional_blocks)} blocks"
    )
    return {
        "procedures": procedures,
        "drugs": drugs,
        "guidelines": guidelines,
        "protocols": protocols,
        "regional_blocks": regional_blocks,
    }
