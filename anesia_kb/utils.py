"""
Small helpers shared by the normalizers, the rule engine and the specialty lookups.

- Text folding (diacritics, case) for heuristic matching
- Type guards for loosely-shaped JSON rows
- Order-preserving de-duplication
- Specialty record lookup and display names
"""

import math
import unicodedata
from typing import Any, Dict, Hashable, Iterable, List, Optional, TypeVar

T = TypeVar("T")


# --- Text folding ---

def strip_diacritics(value: str) -> str:
    """Decompose accented characters and drop the combining marks."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def fold_text(value: str) -> str:
    """Lowercase, diacritic-free, trimmed form used for fuzzy comparisons."""
    return strip_diacritics(value or "").lower().strip()


# --- Type guards ---

def is_plain_mapping(value: Any) -> bool:
    """True for dict-like JSON objects (lists and strings excluded)."""
    return isinstance(value, dict)


def safe_float(value: Any) -> Optional[float]:
    """Convert value to float; return None if the value is missing, NaN or non-numeric."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (ValueError, TypeError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def safe_str(value: Any) -> str:
    """Convert value to string; return empty string for None."""
    if value is None:
        return ''
    return str(value)


# --- Collections ---

def dedupe(items: Iterable[T], key=None) -> List[T]:
    """Drop repeated items, first occurrence wins, insertion order kept."""
    seen: set[Hashable] = set()
    out: List[T] = []
    for item in items:
        marker = key(item) if key else item
        if marker in seen:
            continue
        seen.add(marker)
        out.append(item)
    return out


# --- Specialty lookups ---

def find_specialty_record(
    specialty: Optional[str],
    specialties: List[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    """Match a specialty tag against record ids and every localized name."""
    if not specialty:
        return None

    target = fold_text(specialty)
    for record in specialties:
        names = record.get("name") or {}
        candidates = [record.get("id"), *names.values()]
        if any(candidate and fold_text(candidate) == target for candidate in candidates):
            return record
    return None


def specialty_display_name(
    specialty: Optional[str],
    specialties: List[Dict[str, Any]],
    lang: str,
) -> str:
    """Localized display name for a specialty tag; falls back to the primary language, then the tag."""
    from .localization import PRIMARY_LANGUAGE, SUPPORTED_LANGUAGES

    if not specialty:
        return ''

    record = find_specialty_record(specialty, specialties)
    names = (record or {}).get("name") or {}
    if not names:
        return specialty

    for candidate in (lang, PRIMARY_LANGUAGE, *SUPPORTED_LANGUAGES):
        if names.get(candidate):
            return names[candidate]
    return specialty
