from enum import Enum
from pydantic import BaseModel
from typing import List, Literal, Optional


class CanonicalDegree(BaseModel):
    key: str
    canonical: str
    level: Optional[str] = None          # es. "bachelor", "master"
    field_group: Optional[str] = None    # es. "computing"
    aliases: List[str] = []


class CanonicalEligibility(BaseModel):
    key: str
    canonical: str
    category: Optional[str] = None       # es. "civil_service", "professional_license"
    aliases: List[str] = []


class NormalizationResult(BaseModel):
    """Esito di una singola normalizzazione (mai persistito dal core)."""
    canonical_key: Optional[str] = None
    method: Literal["dictionary", "ai-classifier", "fallback"]
    confidence: float = 0.0              # 0-1
    raw: str = ""


class ListMode(str, Enum):
    SINGLE = "single"
    AND = "and"    # tutti richiesti
    OR = "or"      # ne basta uno


class ListExpression(BaseModel):
    """Riga composita già tokenizzata, con la semantica booleana esplicita."""
    mode: ListMode
    tokens: List[str] = []

    @property
    def is_composite(self) -> bool:
        return self.mode != ListMode.SINGLE

    @property
    def joiner(self) -> str:
        return " and " if self.mode == ListMode.AND else " or "
