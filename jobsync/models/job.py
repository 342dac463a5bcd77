from pydantic import BaseModel, Field
from typing import List, Optional


class JobRequirements(BaseModel):
    """Requisiti di una posizione (input immutabile per lo scoring)."""
    title: Optional[str] = None                # Titolo (usato per la rilevanza dell'esperienza)
    description: Optional[str] = None          # Descrizione (contesto per tie-break e insight)
    degree_requirement: str = ""               # Testo libero, può contenere "and" / "or" / virgole
    eligibilities: List[str] = []              # Righe di requisito (eligibility / licenze)
    skills: List[str] = []
    years_of_experience: float = Field(ge=0)
    # Metadati derivati dalla normalizzazione (voce canonica primaria)
    degree_level: Optional[str] = None
    degree_field_group: Optional[str] = None


class JobPosting(JobRequirements):
    """Posizione con identità, usata dalla pipeline di ranking."""
    id: str
