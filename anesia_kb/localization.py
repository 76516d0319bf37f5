"""
Per-language resolution and non-destructive merging of entity content.

Every localized field resolves to a complete {lang: value} record in which the
primary language is always present and every other language defaults to the
primary language's value.
"""

from typing import Any, Callable, Dict, Tuple, TypeVar

from .utils import is_plain_mapping

T = TypeVar("T")

SUPPORTED_LANGUAGES: Tuple[str, ...] = ("fr", "en", "pt")
PRIMARY_LANGUAGE = SUPPORTED_LANGUAGES[0]


def is_localized_record(value: Any, languages: Tuple[str, ...] = SUPPORTED_LANGUAGES) -> bool:
    """A mapping carrying at least one supported language key."""
    return is_plain_mapping(value) and any(lang in value for lang in languages)


def resolve_localized(
    raw: Any,
    fallback_factory: Callable[[], T],
    languages: Tuple[str, ...] = SUPPORTED_LANGUAGES,
) -> Dict[str, T]:
    """
    Fill a value that may vary per language into a complete per-language record.

    A mapping with at least one language key is read as the localization source;
    anything else is a bare value for the primary language. Never raises.
    """
    source = raw if is_localized_record(raw, languages) else {languages[0]: raw}

    primary = source.get(languages[0])
    if primary is None:
        primary = fallback_factory()

    resolved: Dict[str, T] = {languages[0]: primary}
    for lang in languages[1:]:
        value = source.get(lang)
        resolved[lang] = primary if value is None else value
    return resolved


def is_missing(value: Any) -> bool:
    """None and the empty string are missing; False and 0 are real values."""
    return value is None or value == ''


def merge_missing(target: Any, fallback: Any) -> Any:
    """
    Fill only the missing parts of target from fallback.

    - missing scalar in target: adopt fallback
    - list: an empty target list adopts the fallback list, a non-empty one is kept as is
    - mapping: recurse key-wise
    Present, non-empty target values are never touched. Inputs are not mutated.
    """
    if is_missing(target):
        return fallback
    if isinstance(target, list):
        return target if target else fallback
    if not is_plain_mapping(target) or not is_plain_mapping(fallback):
        return target

    merged = dict(target)
    for key, fallback_value in fallback.items():
        target_value = merged.get(key)

        if is_missing(target_value):
            if not is_missing(fallback_value):
                merged[key] = fallback_value
            continue

        if isinstance(target_value, list) and isinstance(fallback_value, list):
            if not target_value and fallback_value:
                merged[key] = fallback_value
            continue

        if is_plain_mapping(target_value) and is_plain_mapping(fallback_value):
            merged[key] = merge_missing(target_value, fallback_value)

    return merged
