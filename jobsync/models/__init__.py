# models package
"""Data models for the applicant ranking system."""

from jobsync.models.applicant import ApplicantData, ApplicantEligibility, ApplicantRecord
from jobsync.models.canonical import (
    CanonicalDegree,
    CanonicalEligibility,
    ListExpression,
    ListMode,
    NormalizationResult,
)
from jobsync.models.job import JobPosting, JobRequirements
from jobsync.models.ranking import (
    AlgorithmDetails,
    ApplicantComparison,
    RankedApplicant,
    ScoredApplicant,
    TieBreakResult,
)
from jobsync.models.score import ScoreBreakdown

__all__ = [
    "ApplicantData",
    "ApplicantEligibility",
    "ApplicantRecord",
    "CanonicalDegree",
    "CanonicalEligibility",
    "ListExpression",
    "ListMode",
    "NormalizationResult",
    "JobPosting",
    "JobRequirements",
    "AlgorithmDetails",
    "ApplicantComparison",
    "RankedApplicant",
    "ScoredApplicant",
    "TieBreakResult",
    "ScoreBreakdown",
]
