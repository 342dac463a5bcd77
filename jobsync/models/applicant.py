from pydantic import BaseModel, Field
from typing import List, Optional


class ApplicantEligibility(BaseModel):
    """Eligibility / licenza dichiarata dal candidato."""
    eligibility_title: str = ""


class ApplicantData(BaseModel):
    highest_educational_attainment: str = ""
    eligibilities: List[ApplicantEligibility] = []
    skills: List[str] = []
    total_years_experience: float = Field(ge=0)
    work_experience_titles: Optional[List[str]] = None  # Titoli delle esperienze lavorative
    # Metadati derivati dalla normalizzazione (voce canonica primaria)
    degree_level: Optional[str] = None
    degree_field_group: Optional[str] = None


class ApplicantRecord(ApplicantData):
    """Candidato con identità (input della pipeline di ranking)."""
    applicant_id: str
    applicant_name: str = ""
    applicant_profile_id: Optional[str] = None
