"""
Rule-based enrichment of procedures and drugs.

Procedures (evaluated per language variant of the quick content):
1. General anesthesia inference: GA-indicative drug ids or intraop text markers
   imply a maintenance agent, and a TIVA marker implies a propofol TIVA reference.
   GA-indicative drug ids are looked up among the existing references and the
   curated plan for the procedure, so a second pass sees what the first one added.
2. Curated drug plan: a static table of references appended per procedure id.

Drugs: curated supplemental dose rules, appended only for indication tags the
drug does not already carry.

Output is a pure function of the input; running it on its own output changes nothing.
"""

import logging
import re
from typing import Any, Dict, List, Tuple

from .normalize import normalize_dose_rule
from .utils import dedupe, fold_text

logger = logging.getLogger(__name__)

EXTRA_DOSE_RULES: Dict[str, List[Dict[str, Any]]] = {
    "propofol": [
        {
            "indication_tag": "sédation",
            "route": "IVD",
            "mg_per_kg": None,
            "max_mg": None,
            "notes": [
                "Sédation IVD : bolus 0.5-1 mg/kg, titrer selon effet",
                "Entretien possible en AIVOC 1.5-3 ug/mL",
            ],
            "unit_override": "IVD / AIVOC",
        },
        {
            "indication_tag": "TIVA",
            "route": "AIVOC / IVSE",
            "mg_per_kg": None,
            "max_mg": None,
            "notes": ["AIVOC : cible 2-4 ug/mL", "IVSE : 4-8 mg/kg/h selon profondeur anesthésique"],
            "unit_override": "ug/mL ou mg/kg/h",
        },
    ],
    "dexamethasone": [
        {
            "indication_tag": "anti-oedème",
            "route": "IV",
            "mg_per_kg": None,
            "max_mg": None,
            "notes": ["Dose usuelle adulte : 4-10 mg IV selon indication"],
            "unit_override": "mg",
        },
        {
            "indication_tag": "anti-oedème_laryngé",
            "route": "IV",
            "mg_per_kg": None,
            "max_mg": None,
            "notes": ["Dose usuelle : 8-10 mg IV", "Peut etre repetee selon evolution clinique"],
            "unit_override": "mg",
        },
    ],
    "bupivacaine": [
        {
            "indication_tag": "bloc_axillaire",
            "route": "Peri-nerveux",
            "mg_per_kg": 2,
            "max_mg": 150,
            "notes": ["Volume usuel : 20-30 mL", "Ajuster selon echoguidage et territoire cible"],
        },
        {
            "indication_tag": "bloc_PECS",
            "route": "Peri-nerveux",
            "mg_per_kg": 2,
            "max_mg": 150,
            "notes": ["Volume usuel : 20-30 mL (PECS I + II)", "Ajuster dose totale en bilateral"],
        },
    ],
    "lidocaine": [
        {
            "indication_tag": "adjuvant_bloc",
            "route": "Peri-nerveux",
            "mg_per_kg": None,
            "max_mg": None,
            "notes": ["Adjuvant bloc : 20-40 mg selon technique", "Respecter dose cumulée maximale"],
            "unit_override": "mg",
        },
    ],
    "morphine": [
        {
            "indication_tag": "analgésie_IT",
            "route": "IT",
            "mg_per_kg": None,
            "max_mg": None,
            "notes": ["Dose usuelle : 80-120 ug IT", "Surveillance respiratoire prolongee"],
            "unit_override": "ug",
        },
    ],
    "rocuronium": [
        {
            "indication_tag": "curarisation_profonde",
            "route": "IVSE",
            "mg_per_kg": None,
            "max_mg": None,
            "notes": [
                "Bolus initial 0.6-1 mg/kg puis entretien 0.3-0.6 mg/kg/h",
                "Monitorage TOF/PTC recommande",
            ],
            "unit_override": "mg/kg/h",
        },
    ],
}

GA_DRUG_IDS = frozenset({
    "propofol",
    "rocuronium",
    "sufentanil",
    "fentanyl",
    "remifentanil",
    "sevoflurane",
})

MAINTENANCE_TAGS = frozenset({"entretien", "maintenance"})
MAINTENANCE_REF = {"drug_id": "sevoflurane", "indication_tag": "entretien"}
TIVA_REF = {"drug_id": "propofol", "indication_tag": "TIVA"}


def _plan(*pairs: Tuple[str, str]) -> List[Dict[str, str]]:
    return [{"drug_id": drug_id, "indication_tag": tag} for drug_id, tag in pairs]


_MAINTENANCE = ("sevoflurane", "entretien")
_PEROP_ANALGESIA = ("sufentanil", "analgésie_perop")
_INDUCTION = ("propofol", "induction")
_INTUBATION = ("rocuronium", "intubation")

PROCEDURE_DRUG_PLAN: Dict[str, List[Dict[str, str]]] = {
    "pth": _plan(_INDUCTION, _INTUBATION, _MAINTENANCE),
    "turp": _plan(_INDUCTION, _MAINTENANCE),
    "ureteroscopie_dj": _plan(_INTUBATION, _MAINTENANCE, _PEROP_ANALGESIA),
    "cesarienne_urgente": _plan(("phenylephrine", "hypotension"), _MAINTENANCE),
    "cholecystectomie_lap": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "appendicectomie_urgente": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "hernie_discale_lombaire": _plan(_INDUCTION, _INTUBATION, _MAINTENANCE, _PEROP_ANALGESIA),
    "arthroscopie_epaule": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "hysteroscopie_ambulatoire": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "amygdalectomie_enfant": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "arthroscopie_genou": _plan(_INDUCTION, _MAINTENANCE, _INTUBATION),
    "ptg": _plan(_INDUCTION, _MAINTENANCE),
    "fracture_radius": _plan(("propofol", "sédation")),
    "osteosynthese_cheville": _plan(_INDUCTION, _MAINTENANCE),
    "laminectomie_lombaire": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "arthrodese_cervicale": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "rtu_bexiga": _plan(_INDUCTION, _MAINTENANCE, _INTUBATION),
    "nephrostomie_dj": _plan(("propofol", "sédation"), _MAINTENANCE),
    "cesarienne_elective": _plan(("phenylephrine", "hypotension"), _INDUCTION, ("rocuronium", "ISR"), _MAINTENANCE),
    "conisation_leep": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "hernie_inguinale": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "thyroidectomie": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "mastectomie": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "septoplastie": _plan(_MAINTENANCE, _PEROP_ANALGESIA),
    "microlaryngoscopie": _plan(("propofol", "TIVA"), ("remifentanil", "TIVA")),
}

# Matched against diacritic-free lowercase text (fr, en, pt phrasing)
_GENERAL_ANESTHESIA_RE = re.compile(
    r"\b(?:"
    r"anesthesie generale|general an(?:a)?esthesia|anestesia geral|ag"
    r"|iot|iotr|intubation|intubacao|intubated|intubate"
    r"|masque larynge|laryngeal mask|mascara laringea"
    r"|isr|rsi|rapid[- ]sequence(?: induction)?|sequence rapide|sequencia rapida"
    r"|tiva|aivoc|total intravenous an(?:a)?esthesia"
    r"|anesthesie intraveineuse totale|anestesia venosa total"
    r")\b"
)

_TIVA_RE = re.compile(
    r"\b(?:tiva|aivoc|total intravenous an(?:a)?esthesia"
    r"|anesthesie intraveineuse totale|anestesia venosa total)\b"
)


# --- Predicates ---

def has_general_anesthesia_marker(text: str) -> bool:
    """Free text mentions general anesthesia, airway instrumentation or TIVA."""
    return bool(_GENERAL_ANESTHESIA_RE.search(fold_text(text)))


def has_tiva_marker(text: str) -> bool:
    return bool(_TIVA_RE.search(fold_text(text)))


def ref_key(ref: Dict[str, str]) -> Tuple[str, str]:
    return ref["drug_id"], ref["indication_tag"]


def dedupe_refs(refs: List[Dict[str, str]]) -> List[Dict[str, str]]:
    """Drop repeated (drug_id, indication_tag) pairs, first occurrence wins."""
    return dedupe(refs, key=ref_key)


# --- Procedure rules ---

def _inferred_refs(
    quick: Dict[str, Any],
    planned: List[Dict[str, str]],
    procedure_tags: List[str],
) -> List[Dict[str, str]]:
    existing = quick.get("drugs") or []
    candidates = [*existing, *planned]
    intraop_text = " ".join(quick.get("intraop") or [])

    general = (
        any(ref["drug_id"] in GA_DRUG_IDS for ref in candidates)
        or has_general_anesthesia_marker(intraop_text)
    )
    if not general:
        return []

    inferred = []
    if not any(fold_text(ref["indication_tag"]) in MAINTENANCE_TAGS for ref in existing):
        inferred.append(dict(MAINTENANCE_REF))

    tiva = (
        has_tiva_marker(intraop_text)
        or any(fold_text(ref["indication_tag"]) == "tiva" for ref in candidates)
        or any(fold_text(tag) == "tiva" for tag in procedure_tags)
    )
    if tiva and not any(ref_key(ref) == ref_key(TIVA_REF) for ref in existing):
        inferred.append(dict(TIVA_REF))

    return inferred


def enrich_procedure(procedure: Dict[str, Any]) -> Dict[str, Any]:
    """Apply both procedure rules to every language variant of the quick content."""
    planned = PROCEDURE_DRUG_PLAN.get(procedure.get("id"), [])
    tags = procedure.get("tags") or []

    quick_by_lang = {}
    for lang, quick in (procedure.get("quick") or {}).items():
        existing = [dict(ref) for ref in quick.get("drugs") or []]
        inferred = _inferred_refs(quick, planned, tags)
        refs = dedupe_refs([*existing, *inferred, *(dict(ref) for ref in planned)])
        quick_by_lang[lang] = {**quick, "drugs": refs}

    return {**procedure, "quick": quick_by_lang}


# --- Drug rule ---

def enrich_drug(drug: Dict[str, Any]) -> Dict[str, Any]:
    """Append curated dose rules for indication tags the drug does not already cover."""
    extras = EXTRA_DOSE_RULES.get(drug.get("id"), [])
    if not extras:
        return drug

    rules = drug.get("dose_rules") or []
    authored_tags = {rule.get("indication_tag") for rule in rules}
    additions = [normalize_dose_rule(rule) for rule in extras if rule["indication_tag"] not in authored_tags]
    return {**drug, "dose_rules": [*rules, *additions]}


def enrich_medication_plan(
    procedures: List[Dict[str, Any]],
    drugs: List[Dict[str, Any]],
) -> Dict[str, List[Dict[str, Any]]]:
    """Run the procedure and drug rules over normalized, merged entities."""
    enriched_drugs = [enrich_drug(drug) for drug in drugs]
    enriched_procedures = [enrich_procedure(procedure) for procedure in procedures]
    logger.info(f"Enriched {len(enriched_procedures)} procedures and {len(enriched_drugs)} drugs")
    return {"procedures": enriched_procedures, "drugs": enriched_drugs}
