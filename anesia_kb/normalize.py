"""
Entity normalizers: map remote rows and bundled records into one canonical shape.

Every field gets an explicit default (empty string, empty list, empty content
block, None or False) and every localized field goes through resolve_localized,
so normalize(normalize(x)) == normalize(x). Unknown top-level keys are carried
through untouched.
"""

from typing import Any, Callable, Dict, List, Optional

from .localization import resolve_localized
from .utils import dedupe, is_plain_mapping, safe_float

DOSE_SCALARS = {"TBW", "IBW", "LBW", "AdjBW", "TITRATE"}

PROCEDURE_INDEX_FIELDS = ("id", "specialty", "specialties", "titles", "synonyms", "tags", "is_pro")

ENTITY_TYPES = ("procedures", "drugs", "guidelines", "protocols", "regional_blocks")


# --- Field coercion ---

def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        return ''
    return value if isinstance(value, str) else str(value)


def _optional_text(value: Any) -> Optional[str]:
    text = _text(value)
    return text or None


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _mapping_list(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [dict(item) for item in value if is_plain_mapping(item)]


def _as_mapping(value: Any) -> Dict[str, Any]:
    return dict(value) if is_plain_mapping(value) else {}


def _localized_text(raw: Any) -> Dict[str, str]:
    return {lang: _text(value) for lang, value in resolve_localized(raw, str).items()}


def _localized_list(raw: Any) -> Dict[str, List[str]]:
    return {lang: _string_list(value) for lang, value in resolve_localized(raw, list).items()}


def _localized_block(raw: Any, normalize_block: Callable[[Any], Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    return {lang: normalize_block(value) for lang, value in resolve_localized(raw, dict).items()}


# --- Nested records ---

def normalize_drug_ref(raw: Any) -> Optional[Dict[str, str]]:
    """DrugRef from a mapping or a bare drug id; None when there is no drug id."""
    if isinstance(raw, str):
        return {"drug_id": raw, "indication_tag": ''} if raw else None
    if not is_plain_mapping(raw):
        return None
    drug_id = _text(raw.get("drug_id"))
    if not drug_id:
        return None
    return {"drug_id": drug_id, "indication_tag": _text(raw.get("indication_tag"))}


def normalize_reference(raw: Any) -> Optional[Dict[str, Any]]:
    if isinstance(raw, str):
        return {"source": raw} if raw else None
    if not is_plain_mapping(raw):
        return None

    reference: Dict[str, Any] = {"source": _text(raw.get("source"))}
    year = safe_float(raw.get("year"))
    if year is not None:
        reference["year"] = int(year)
    note = _text(raw.get("note"))
    if note:
        reference["note"] = note
    return reference


def _references(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [ref for ref in (normalize_reference(item) for item in value) if ref is not None]


def normalize_quick(raw: Any) -> Dict[str, Any]:
    """Quick content for one language; all lists default to empty."""
    quick = _as_mapping(raw)
    drugs = quick.get("drugs")
    refs = [normalize_drug_ref(item) for item in drugs] if isinstance(drugs, list) else []
    return {
        **quick,
        "preop": _string_list(quick.get("preop")),
        "intraop": _string_list(quick.get("intraop")),
        "postop": _string_list(quick.get("postop")),
        "red_flags": _string_list(quick.get("red_flags")),
        "drugs": [ref for ref in refs if ref is not None],
    }


def normalize_deep(raw: Any) -> Dict[str, Any]:
    deep = _as_mapping(raw)
    return {
        **deep,
        "clinical": _string_list(deep.get("clinical")),
        "pitfalls": _string_list(deep.get("pitfalls")),
        "references": _references(deep.get("references")),
    }


def normalize_dose_rule(raw: Any) -> Dict[str, Any]:
    rule = _as_mapping(raw)
    normalized = {key: value for key, value in rule.items() if key not in ("unit_override", "dose_scalar")}
    normalized.update(
        indication_tag=_text(rule.get("indication_tag")),
        route=_text(rule.get("route")),
        mg_per_kg=safe_float(rule.get("mg_per_kg")),
        max_mg=safe_float(rule.get("max_mg")),
        notes=_string_list(rule.get("notes")),
    )
    unit_override = _text(rule.get("unit_override"))
    if unit_override:
        normalized["unit_override"] = unit_override
    if rule.get("dose_scalar") in DOSE_SCALARS:
        normalized["dose_scalar"] = rule["dose_scalar"]
    return normalized


def normalize_concentration(raw: Any) -> Dict[str, Any]:
    concentration = _as_mapping(raw)
    return {
        **concentration,
        "label": _text(concentration.get("label")),
        "mg_per_ml": safe_float(concentration.get("mg_per_ml")),
    }


# --- Entities ---

def normalize_procedure(raw: Any) -> Dict[str, Any]:
    procedure = _as_mapping(raw)

    specialty = _text(procedure.get("specialty"))
    specialties = dedupe(([specialty] if specialty else []) + _string_list(procedure.get("specialties")))
    if not specialty and specialties:
        specialty = specialties[0]

    return {
        **procedure,
        "id": _text(procedure.get("id")),
        "specialty": specialty,
        "specialties": specialties,
        "titles": _localized_text(procedure.get("titles")),
        "synonyms": _localized_list(procedure.get("synonyms")),
        "quick": _localized_block(procedure.get("quick"), normalize_quick),
        "deep": _localized_block(procedure.get("deep"), normalize_deep),
        "tags": dedupe(_string_list(procedure.get("tags"))),
        "is_pro": bool(procedure.get("is_pro")),
    }


def project_procedure_index(procedure: Any) -> Dict[str, Any]:
    """Listing-relevant fields of a procedure; quick and deep bodies are left out."""
    normalized = normalize_procedure({key: _as_mapping(procedure).get(key) for key in PROCEDURE_INDEX_FIELDS})
    return {key: normalized[key] for key in PROCEDURE_INDEX_FIELDS}


def normalize_drug(raw: Any) -> Dict[str, Any]:
    drug = _as_mapping(raw)
    dose_rules = drug.get("dose_rules")
    concentrations = drug.get("concentrations")
    return {
        **drug,
        "id": _text(drug.get("id")),
        "name": _localized_text(drug.get("name")),
        "dose_rules": [normalize_dose_rule(rule) for rule in _mapping_list(dose_rules)],
        "concentrations": [normalize_concentration(item) for item in _mapping_list(concentrations)],
        "presentations": _mapping_list(drug.get("presentations")),
        "standard_dilutions": _mapping_list(drug.get("standard_dilutions")),
        "contraindications_notes": _string_list(drug.get("contraindications_notes")),
        "renal_hepatic_notes": _string_list(drug.get("renal_hepatic_notes")),
        "tags": dedupe(_string_list(drug.get("tags"))),
    }


def _provenance(record: Dict[str, Any], fields) -> Dict[str, Optional[str]]:
    return {field: _optional_text(record.get(field)) for field in fields}


def normalize_guideline(raw: Any) -> Dict[str, Any]:
    guideline = _as_mapping(raw)
    return {
        **guideline,
        "id": _text(guideline.get("id")),
        "category": _text(guideline.get("category")),
        "titles": _localized_text(guideline.get("titles")),
        "items": _localized_list(guideline.get("items")),
        "references": _references(guideline.get("references")),
        "tags": dedupe(_string_list(guideline.get("tags"))),
        "specialties": dedupe(_string_list(guideline.get("specialties"))),
        **_provenance(guideline, (
            "organization", "recommendation_strength", "version", "source",
            "evidence_grade", "published_at", "review_at",
        )),
    }


def normalize_protocol(raw: Any) -> Dict[str, Any]:
    protocol = _as_mapping(raw)
    return {
        **protocol,
        "id": _text(protocol.get("id")),
        "category": _text(protocol.get("category")),
        "titles": _localized_text(protocol.get("titles")),
        "steps": _localized_list(protocol.get("steps")),
        "references": _references(protocol.get("references")),
        "tags": dedupe(_string_list(protocol.get("tags"))),
        **_provenance(protocol, ("version", "source", "evidence_grade", "published_at", "review_at")),
    }


def normalize_regional_block(raw: Any) -> Dict[str, Any]:
    block = _as_mapping(raw)
    return {
        **block,
        "id": _text(block.get("id")),
        "region": _text(block.get("region")),
        "titles": _localized_text(block.get("titles")),
        "indications": _localized_list(block.get("indications")),
        "contraindications": _localized_list(block.get("contraindications")),
        "technique": _localized_list(block.get("technique")),
        "drugs": _localized_list(block.get("drugs")),
        "tags": dedupe(_string_list(block.get("tags"))),
    }


def normalize_specialty(raw: Any) -> Dict[str, Any]:
    specialty = _as_mapping(raw)
    sort_base = safe_float(specialty.get("sort_base"))
    return {
        "id": _text(specialty.get("id")),
        "name": _localized_text(specialty.get("name")),
        "sort_base": int(sort_base) if sort_base is not None else 0,
    }


# --- Remote row converters ---
# Bundled records are already close to canonical and go straight to normalize_*.

def procedure_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    content = _as_mapping(row.get("content"))
    return {
        "id": row.get("id"),
        "specialty": row.get("specialty"),
        "specialties": row.get("specialties"),
        "titles": row.get("titles"),
        "synonyms": row.get("synonyms"),
        "quick": content.get("quick"),
        "deep": content.get("deep"),
        "tags": row.get("tags"),
        "is_pro": row.get("is_pro"),
    }


def drug_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    dosing = _as_mapping(row.get("dosing"))
    notes = _as_mapping(row.get("notes"))
    return {
        "id": row.get("id"),
        "name": row.get("names") if row.get("names") is not None else row.get("name"),
        "drug_class": row.get("class"),
        "dose_rules": dosing.get("dose_rules"),
        "concentrations": dosing.get("concentrations"),
        "presentations": row.get("presentations"),
        "standard_dilutions": row.get("standard_dilutions"),
        "contraindications_notes": row.get("contraindications"),
        "renal_hepatic_notes": notes.get("renal_hepatic_notes"),
        "tags": row.get("tags"),
    }


def guideline_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row.get("id"),
        "category": row.get("category"),
        "titles": row.get("titles"),
        "items": row.get("items"),
        "references": row.get("refs"),
        "tags": row.get("tags"),
        "specialties": row.get("specialties"),
        "organization": row.get("organization"),
        "recommendation_strength": row.get("recommendation_strength"),
        "version": row.get("version"),
        "source": row.get("source"),
        "evidence_grade": row.get("evidence_grade"),
        "published_at": row.get("published_at"),
        "review_at": row.get("review_at"),
    }


def protocol_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row.get("id"),
        "category": row.get("category"),
        "titles": row.get("titles"),
        "steps": row.get("steps"),
        "references": row.get("refs"),
        "tags": row.get("tags"),
        "version": row.get("version"),
        "source": row.get("source"),
        "evidence_grade": row.get("evidence_grade"),
        "published_at": row.get("published_at"),
        "review_at": row.get("review_at"),
    }


def regional_block_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": row.get("id"),
        "region": row.get("region"),
        "titles": row.get("titles"),
        "indications": row.get("indications"),
        "contraindications": row.get("contraindications"),
        "technique": row.get("technique"),
        "drugs": row.get("drugs"),
        "tags": row.get("tags"),
    }


NORMALIZERS: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    "procedures": normalize_procedure,
    "drugs": normalize_drug,
    "guidelines": normalize_guideline,
    "protocols": normalize_protocol,
    "regional_blocks": normalize_regional_block,
    "specialties": normalize_specialty,
}

ROW_CONVERTERS: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    "procedures": procedure_from_row,
    "drugs": drug_from_row,
    "guidelines": guideline_from_row,
    "protocols": protocol_from_row,
    "regional_blocks": regional_block_from_row,
}
