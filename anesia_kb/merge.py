"""
Fallback merge: complete remote entities with detail from the bundled documents.

The remote store is authoritative. A bundled record can only fill fields the
remote record leaves empty; it never adds or removes whole entities.
"""

import logging
from typing import Any, Callable, Dict, List

from .db.bundle import BundleSource, load_bundle_records
from .errors import FallbackUnavailable
from .localization import merge_missing
from .normalize import NORMALIZERS, normalize_procedure

logger = logging.getLogger(__name__)

Normalizer = Callable[[Any], Dict[str, Any]]


def merge_fallback(
    remote_entities: List[Dict[str, Any]],
    bundle_entities: List[Dict[str, Any]],
    normalize: Normalizer = normalize_procedure,
) -> List[Dict[str, Any]]:
    """
    Fill the missing fields of each remote entity from the bundled entity sharing its id.

    Output ids and order always match remote_entities.
    """
    bundle_by_id: Dict[str, Dict[str, Any]] = {}
    for record in bundle_entities:
        fallback = normalize(record)
        bundle_by_id.setdefault(fallback["id"], fallback)

    merged = []
    for entity in remote_entities:
        remote = normalize(entity)
        fallback = bundle_by_id.get(remote["id"])
        if fallback is None:
            merged.append(remote)
            continue
        merged.append(normalize(merge_missing(remote, fallback)))
    return merged


async def merge_with_bundle(
    entity_type: str,
    remote_entities: List[Dict[str, Any]],
    source: BundleSource,
) -> List[Dict[str, Any]]:
    """
    Load the bundled document for entity_type and merge it under the remote entities.

    Bundle failures are logged and the normalized remote entities are returned unchanged.
    """
    normalize = NORMALIZERS[entity_type]
    try:
        bundle_entities = await load_bundle_records(source, entity_type)
    except FallbackUnavailable as e:
        logger.warning(f"Fallback for {entity_type} unavailable, keeping remote data only: {e}")
        return [normalize(entity) for entity in remote_entities]
    except Exception as e:
        logger.error(f"Fallback for {entity_type} failed unexpectedly, keeping remote data only: {e}")
        return [normalize(entity) for entity in remote_entities]

    merged = merge_fallback(remote_entities, bundle_entities, normalize)
    logger.info(f"Merged {entity_type}: {len(merged)} remote records, {len(bundle_entities)} bundled")
    return merged
