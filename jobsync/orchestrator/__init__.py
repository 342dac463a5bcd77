# orchestrator package
"""Orchestrator for coordinating agents in the applicant ranking system."""

from jobsync.orchestrator.ranking_orchestrator import (
    RankingOrchestrator,
    compare_applicants,
    rank_applicants_for_job,
)

__all__ = [
    "RankingOrchestrator",
    "compare_applicants",
    "rank_applicants_for_job",
]
