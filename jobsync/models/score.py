from pydantic import BaseModel, ConfigDict


class ScoreBreakdown(BaseModel):
    """Risultato di un algoritmo di scoring per una coppia (job, candidato)."""
    model_config = ConfigDict(frozen=True)

    education_score: float       # 0-100
    experience_score: float      # 0-100
    skills_score: float          # 0-100
    eligibility_score: float     # 0-100
    total_score: float
    algorithm_used: str
    reasoning: str
    matched_skills_count: int = 0            # skill del job soddisfatte
    matched_eligibilities_count: int = 0     # eligibility uniche del candidato che hanno matchato
