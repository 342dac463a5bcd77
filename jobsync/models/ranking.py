from dataclasses import dataclass
from pydantic import BaseModel
from typing import Literal, Optional

from jobsync.models.applicant import ApplicantRecord
from jobsync.models.score import ScoreBreakdown


class AlgorithmDetails(BaseModel):
    """Provenienza dello score finale (quali algoritmi e con che pesi)."""
    algorithm1_score: float
    algorithm2_score: float
    algorithm3_score: Optional[float] = None
    ensemble_method: Literal["weighted_average", "tie_breaker"]
    algorithm1_weight: Optional[float] = None
    algorithm2_weight: Optional[float] = None
    is_tie_breaker: bool
    score_difference: float


class TieBreakResult(BaseModel):
    applicant_id: str
    micro_adjustment: float
    reasoning: str = ""


class RankedApplicant(BaseModel):
    applicant_id: str
    applicant_name: str = ""
    rank: int                     # 1-based, denso
    match_score: float
    education_score: float
    experience_score: float
    skills_score: float
    eligibility_score: float
    algorithm_used: str
    ranking_reasoning: str
    ai_insights: Optional[str] = None
    algorithm_details: Optional[AlgorithmDetails] = None
    matched_skills_count: int = 0
    matched_eligibilities_count: int = 0


class ApplicantComparison(BaseModel):
    winner: Literal["applicant1", "applicant2", "tie"]
    applicant1_score: ScoreBreakdown
    applicant2_score: ScoreBreakdown
    analysis: str


@dataclass
class ScoredApplicant:
    """Record di lavoro della pipeline di ranking (total_score e reasoning cambiano solo col tie-break)."""
    record: ApplicantRecord
    score: ScoreBreakdown
    details: AlgorithmDetails
    position: int          # ordine di candidatura originale
    total_score: float
    reasoning: str

    @property
    def applicant_id(self) -> str:
        return self.record.applicant_id
