"""Bundled fallback documents shipped alongside the client."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

from ..config import get_settings
from ..errors import FallbackUnavailable
from ..schemas import ENTITY_SCHEMAS, validate_array

logger = logging.getLogger(__name__)

BUNDLE_FILES: Dict[str, str] = {
    "procedures": "procedures.v3.json",
    "drugs": "drugs.v1.json",
    "guidelines": "guidelines.v1.json",
    "protocols": "protocoles.v1.json",
    "regional_blocks": "alr.v1.json",
}


class BundleSource(Protocol):
    """One static document per entity type."""

    async def load(self, entity_type: str) -> Any:
        ...


class BundleDirectory:
    """Reads the bundled JSON documents from a directory."""

    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or get_settings().bundle_dir)

    def path_for(self, entity_type: str) -> Path:
        filename = BUNDLE_FILES.get(entity_type)
        if filename is None:
            raise FallbackUnavailable(message=f"No bundled document for {entity_type!r}")
        return self.root / filename

    def read(self, path: Path) -> Any:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    async def load(self, entity_type: str) -> Any:
        path = self.path_for(entity_type)
        try:
            return await asyncio.to_thread(self.read, path)
        except (OSError, json.JSONDecodeError) as e:
            raise FallbackUnavailable(
                message=f"{path.name}: {e}",
                detail={"entity_type": entity_type, "path": str(path)},
            ) from e


async def load_bundle_records(source: BundleSource, entity_type: str) -> List[Dict[str, Any]]:
    """
    Fetch and validate one bundled document.

    Raises FallbackUnavailable if the document cannot be read; invalid elements
    are dropped individually.
    """
    raw = await source.load(entity_type)
    return validate_array(raw, ENTITY_SCHEMAS[entity_type], f"{entity_type}-fallback")
