"""Pre-normalization record schemas used to screen bundled and remote records."""

import logging
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationFailure

logger = logging.getLogger(__name__)


class _Record(BaseModel):
    model_config = ConfigDict(extra="allow")


# --- Sub-schemas ---

class DrugRefSchema(_Record):
    drug_id: str
    indication_tag: str


class ProcedureQuickSchema(_Record):
    preop: List[str] = Field(default_factory=list)
    intraop: List[str] = Field(default_factory=list)
    postop: List[str] = Field(default_factory=list)
    red_flags: List[str] = Field(default_factory=list)
    drugs: List[DrugRefSchema] = Field(default_factory=list)


class DoseRuleSchema(_Record):
    indication_tag: str
    route: str
    mg_per_kg: Optional[float]
    max_mg: Optional[float]
    notes: List[str] = Field(default_factory=list)
    unit_override: Optional[str] = None
    dose_scalar: Optional[Literal["TBW", "IBW", "LBW", "AdjBW", "TITRATE"]] = None


class ConcentrationSchema(_Record):
    label: str
    mg_per_ml: Optional[float]


class LocalizedTextSchema(_Record):
    fr: str


class LocalizedListSchema(_Record):
    fr: List[str]


class LocalizedQuickSchema(_Record):
    fr: ProcedureQuickSchema


# --- Top-level entity schemas ---

class ProcedureSchema(_Record):
    id: str
    specialty: str
    titles: LocalizedTextSchema
    quick: LocalizedQuickSchema


class DrugSchema(_Record):
    id: str
    name: LocalizedTextSchema
    dose_rules: List[DoseRuleSchema] = Field(default_factory=list)
    concentrations: List[ConcentrationSchema] = Field(default_factory=list)


class GuidelineSchema(_Record):
    id: str
    category: str
    titles: LocalizedTextSchema
    items: LocalizedListSchema
    tags: List[str] = Field(default_factory=list)
    specialties: List[str] = Field(default_factory=list)


class ProtocolSchema(_Record):
    id: str
    category: str
    titles: LocalizedTextSchema
    steps: LocalizedListSchema
    tags: List[str] = Field(default_factory=list)


class RegionalBlockSchema(_Record):
    id: str
    region: str
    titles: LocalizedTextSchema
    tags: List[str] = Field(default_factory=list)


ENTITY_SCHEMAS: Dict[str, Type[BaseModel]] = {
    "procedures": ProcedureSchema,
    "drugs": DrugSchema,
    "guidelines": GuidelineSchema,
    "protocols": ProtocolSchema,
    "regional_blocks": RegionalBlockSchema,
}


# --- Validation helpers ---

def validate_record(item: Any, schema: Type[BaseModel], label: str) -> Any:
    """Return item unchanged if it satisfies schema, else raise ValidationFailure."""
    try:
        schema.model_validate(item)
    except PydanticValidationError as e:
        raise ValidationFailure(
            message=f"{label} record failed validation.",
            detail={"errors": e.errors(include_url=False)},
        ) from e
    return item


def validate_array(data: Any, schema: Type[BaseModel], label: str) -> List[Any]:
    """
    Keep the elements of data that satisfy schema.

    A non-array document yields an empty list. Invalid elements are dropped one
    by one with a warning; siblings are unaffected.
    """
    if not isinstance(data, list):
        logger.warning(f"{label}: expected array, got {type(data).__name__}")
        return []

    valid = []
    for i, item in enumerate(data):
        try:
            valid.append(validate_record(item, schema, label))
        except ValidationFailure as e:
            logger.warning(f"{label}[{i}] invalid, skipping: {e.detail}")
    return valid
