"""Remote store query surface and its sqlite implementation."""

import asyncio
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ..config import get_settings
from ..errors import SourceUnavailable
from .database import execute_query

logger = logging.getLogger(__name__)

TABLE_COLUMNS: Dict[str, tuple] = {
    "procedures": (
        "id", "specialty", "specialties", "titles", "synonyms", "content", "tags", "is_pro", "updated_at",
    ),
    "drugs": (
        "id", "names", "class", "dosing", "notes", "contraindications", "tags",
        "presentations", "standard_dilutions", "compatibility_notes", "updated_at",
    ),
    "drug_presentations": (
        "id", "drug_id", "label", "total_mg", "total_ml", "mg_per_ml", "solvent", "form", "is_reference",
    ),
    "standard_dilutions": (
        "id", "drug_id", "presentation_id", "label", "syringe_ml", "bag_ml",
        "target_concentration_label", "target_concentration_mg_per_ml", "diluent",
        "drug_volume_ml", "diluent_volume_ml", "notes",
    ),
    "guidelines": (
        "id", "category", "titles", "items", "refs", "tags", "specialties", "organization",
        "recommendation_strength", "version", "source", "published_at", "review_at",
        "evidence_grade", "updated_at",
    ),
    "protocols": (
        "id", "category", "titles", "steps", "refs", "tags", "version", "source",
        "published_at", "review_at", "evidence_grade", "updated_at",
    ),
    "regional_blocks": (
        "id", "region", "titles", "indications", "contraindications", "technique", "drugs", "tags", "updated_at",
    ),
    "specialties": ("id", "name", "sort_base", "synonyms", "is_active", "updated_at"),
}

JSON_COLUMNS = {
    "specialties", "titles", "synonyms", "content", "tags", "names", "dosing", "notes",
    "contraindications", "presentations", "standard_dilutions", "items", "refs", "steps",
    "indications", "technique", "drugs", "name",
}

BOOLEAN_COLUMNS = {"is_pro", "is_reference", "is_active"}

# Plain-text columns that share a name with JSON columns in other tables
TEXT_COLUMNS = {("standard_dilutions", "notes")}


class RemoteStore(Protocol):
    """Bulk read surface of the authoritative store."""

    async def fetch_rows(
        self,
        table: str,
        columns: Optional[Sequence[str]] = None,
        order_by: Sequence[str] = (),
        active_only: bool = False,
    ) -> List[Dict[str, Any]]:
        ...


def _decode_row(table: str, row: Dict[str, Any]) -> Dict[str, Any]:
    decoded = {}
    for column, value in row.items():
        if column in BOOLEAN_COLUMNS:
            decoded[column] = bool(value)
        elif column in JSON_COLUMNS and (table, column) not in TEXT_COLUMNS and isinstance(value, str):
            decoded[column] = json.loads(value)
        else:
            decoded[column] = value
    return decoded


class SqliteRemoteStore:
    """
    sqlite stand-in for the remote knowledge base.

    Queries run in a worker thread so concurrent fetches do not block the event loop.
    A missing database file or any sqlite error is reported as SourceUnavailable.
    Rows whose JSON columns cannot be decoded are dropped individually.
    """

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = Path(db_path or get_settings().remote_db_path)

    def _build_query(
        self,
        table: str,
        columns: Optional[Sequence[str]],
        order_by: Sequence[str],
        active_only: bool,
    ) -> str:
        known = TABLE_COLUMNS.get(table)
        if known is None:
            raise ValueError(f"Unknown table: {table!r}")

        selected = tuple(columns) if columns else known
        unknown = [c for c in (*selected, *order_by) if c not in known]
        if unknown:
            raise ValueError(f"Unknown columns for {table}: {unknown}")

        query = f"SELECT {', '.join(selected)} FROM {table}"
        if active_only and "is_active" in known:
            query += " WHERE is_active = 1"
        if order_by:
            query += f" ORDER BY {', '.join(order_by)}"
        return query

    async def fetch_rows(
        self,
        table: str,
        columns: Optional[Sequence[str]] = None,
        order_by: Sequence[str] = (),
        active_only: bool = False,
    ) -> List[Dict[str, Any]]:
        query = self._build_query(table, columns, order_by, active_only)

        if not self.db_path.exists():
            raise SourceUnavailable(
                message=f"Remote store not found at {self.db_path}",
                detail={"table": table},
            )

        try:
            rows = await asyncio.to_thread(execute_query, query, db_path=self.db_path)
        except sqlite3.Error as e:
            raise SourceUnavailable(message=f"Remote query on {table} failed: {e}", detail={"table": table}) from e

        decoded = []
        for row in rows:
            try:
                decoded.append(_decode_row(table, row))
            except json.JSONDecodeError as e:
                logger.warning(f"{table} row {row.get('id')!r} has malformed JSON, skipping: {e}")
        return decoded
