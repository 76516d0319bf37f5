from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, TypedDict

# Localized values are keyed by language code ("fr", "en", "pt").
# Normalized records always carry every supported language.


class DrugRef(TypedDict):
    """Pointer from a procedure to a drug for a given indication."""

    drug_id: str
    indication_tag: str  # e.g. induction, entretien, TIVA


class Reference(TypedDict, total=False):
    source: str
    year: int
    note: str


class ProcedureQuick(TypedDict, total=False):
    """Bedside checklist content for one language."""

    preop: List[str]
    intraop: List[str]
    postop: List[str]
    red_flags: List[str]
    drugs: List[DrugRef]


class ProcedureDeep(TypedDict, total=False):
    """Reference content for one language."""

    clinical: List[str]
    pitfalls: List[str]
    references: List[Reference]


class Procedure(TypedDict, total=False):
    id: str
    specialty: str
    specialties: List[str]  # superset of specialty, kept for older rows
    titles: Dict[str, str]
    synonyms: Dict[str, List[str]]
    quick: Dict[str, ProcedureQuick]
    deep: Dict[str, ProcedureDeep]
    tags: List[str]
    is_pro: bool


class DoseRule(TypedDict, total=False):
    indication_tag: str
    route: str
    mg_per_kg: Optional[float]
    max_mg: Optional[float]
    notes: List[str]
    unit_override: str
    dose_scalar: Literal["TBW", "IBW", "LBW", "AdjBW", "TITRATE"]


class Concentration(TypedDict):
    label: str
    mg_per_ml: Optional[float]


class Drug(TypedDict, total=False):
    id: str
    name: Dict[str, str]
    dose_rules: List[DoseRule]
    concentrations: List[Concentration]
    presentations: List[Dict[str, Any]]
    standard_dilutions: List[Dict[str, Any]]
    contraindications_notes: List[str]
    renal_hepatic_notes: List[str]
    tags: List[str]


class Guideline(TypedDict, total=False):
    id: str
    category: str
    titles: Dict[str, str]
    items: Dict[str, List[str]]
    references: List[Reference]
    tags: List[str]
    specialties: List[str]

    # Provenance
    organization: Optional[str]
    recommendation_strength: Optional[str]
    version: Optional[str]
    source: Optional[str]
    evidence_grade: Optional[str]
    published_at: Optional[str]
    review_at: Optional[str]


class Protocol(TypedDict, total=False):
    id: str
    category: str
    titles: Dict[str, str]
    steps: Dict[str, List[str]]
    references: List[Reference]
    tags: List[str]

    version: Optional[str]
    source: Optional[str]
    evidence_grade: Optional[str]
    published_at: Optional[str]
    review_at: Optional[str]


class RegionalBlock(TypedDict, total=False):
    id: str
    region: str
    titles: Dict[str, str]
    indications: Dict[str, List[str]]
    contraindications: Dict[str, List[str]]
    technique: Dict[str, List[str]]
    drugs: Dict[str, List[str]]
    tags: List[str]


class SpecialtyRecord(TypedDict):
    id: str
    name: Dict[str, str]
    sort_base: int


class IndexSnapshot(TypedDict):
    """Listing-only projection: no quick/deep bodies."""

    procedures: List[Procedure]
    specialties: List[SpecialtyRecord]


class FullSnapshot(TypedDict):
    """Every entity type after fallback-merge and enrichment."""

    procedures: List[Procedure]
    drugs: List[Drug]
    guidelines: List[Guideline]
    protocols: List[Protocol]
    regional_blocks: List[RegionalBlock]
    specialties: List[SpecialtyRecord]


class RefreshState(TypedDict, total=False):
    """
    State flowing through the Full refresh graph.

    Each node replaces the entity lists it touches with fresh lists.
    """

    procedures: List[Procedure]
    drugs: List[Drug]
    guidelines: List[Guideline]
    protocols: List[Protocol]
    regional_blocks: List[RegionalBlock]
    specialties: List[SpecialtyRecord]

    snapshot: Optional[FullSnapshot]
    errors: List[str]


__all__ = [
    "DrugRef",
    "Reference",
    "ProcedureQuick",
    "ProcedureDeep",
    "Procedure",
    "DoseRule",
    "Concentration",
    "Drug",
    "Guideline",
    "Protocol",
    "RegionalBlock",
    "SpecialtyRecord",
    "IndexSnapshot",
    "FullSnapshot",
    "RefreshState",
]
