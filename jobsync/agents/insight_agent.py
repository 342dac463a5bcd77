"""
Insight Agent
Commento testuale best-effort sui primi candidati della classifica.
Un errore non tocca score e rank: l'insight viene semplicemente omesso.
"""

import asyncio
import re
import sys
from typing import List, Optional

from jobsync.config import LLM_CONFIG, RANKING
from jobsync.models.job import JobRequirements
from jobsync.models.ranking import RankedApplicant
from jobsync.services.errors import InsightError, LLMNotAvailableError
from jobsync.services.llm_service import LLMService, TextGenerator
from jobsync.services.logging_utils import format_context, print_with_prefix
from jobsync.services.prompts import build_insight_prompt

_CANDIDATE_MARKER = re.compile(r"Candidate \d+:")


def split_insights(text: str) -> List[str]:
    """Divide la risposta sui marker "Candidate N:" (il testo prima del primo marker viene scartato)."""
    return [part.strip() for part in _CANDIDATE_MARKER.split(text or "")[1:]]


class InsightAgent:
    def __init__(
        self,
        llm_service: Optional[TextGenerator] = None,
        top_k: Optional[int] = None,
        verbose: bool = False,
    ):
        self.top_k = RANKING["insight_top_k"] if top_k is None else top_k
        self.verbose = verbose
        self._llm_service = llm_service

    @property
    def llm_service(self) -> TextGenerator:
        if self._llm_service is None:
            self._llm_service = LLMService(verbose=self.verbose)
        return self._llm_service

    async def add_insights(
        self,
        job: JobRequirements,
        ranked: List[RankedApplicant],
        timeout: Optional[float] = None,
    ) -> List[RankedApplicant]:
        """Ritorna una nuova lista con ai_insights sui primi top_k (invariata in caso di errore)."""
        top = ranked[:self.top_k]
        if not top:
            return list(ranked)

        try:
            insights = await asyncio.wait_for(self._generate(job, top), timeout=timeout)
        except asyncio.TimeoutError:
            self._warn(f"Insight in timeout, omessi ({format_context(stage='insights', job=job.title, timeout=timeout)})")
            return list(ranked)
        except (InsightError, LLMNotAvailableError) as e:
            self._warn(f"Insight non generati ({format_context(stage='insights', job=job.title)}): {e}")
            return list(ranked)

        enriched = []
        for index, applicant in enumerate(ranked):
            if index < len(top) and index < len(insights) and insights[index]:
                applicant = applicant.model_copy(update={"ai_insights": insights[index]})
            enriched.append(applicant)
        self._log(f"Insight assegnati a {min(len(top), len(insights))} candidati")
        return enriched

    async def _generate(self, job: JobRequirements, top: List[RankedApplicant]) -> List[str]:
        prompt = build_insight_prompt(
            job.model_dump(),
            [applicant.model_dump() for applicant in top],
        )
        try:
            text = await self.llm_service.generate(prompt, temperature=LLM_CONFIG["insight_temperature"])
        except LLMNotAvailableError:
            raise
        except Exception as e:
            raise InsightError(f"Errore del servizio di generazione: {e}") from e
        return split_insights(text)

    def _log(self, message: str) -> None:
        print_with_prefix("[InsightAgent]", message, enabled=self.verbose)

    def _warn(self, message: str) -> None:
        print_with_prefix("[InsightAgent]", message, stream=sys.stderr)
