# agents package
"""Agents for the applicant ranking system."""

from jobsync.agents.insight_agent import InsightAgent
from jobsync.agents.normalization_agent import NormalizationAgent
from jobsync.agents.scoring_agent import ScoringAgent
from jobsync.agents.tie_break_agent import TieBreakAgent

__all__ = [
    "InsightAgent",
    "NormalizationAgent",
    "ScoringAgent",
    "TieBreakAgent",
]
