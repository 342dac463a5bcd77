"""
Tie-Break Agent
Differenzia candidati con score praticamente identici usando il servizio di generazione testo.

Per ogni gruppo di pari merito il modello restituisce una micro-correzione firmata
(max +/-0.5) per candidato e una breve motivazione. Un errore su un gruppo non
blocca il ranking: quel gruppo resta nell'ordine deterministico.
"""

import asyncio
import sys
from typing import Any, Dict, List, Optional, Sequence

from jobsync.config import RANKING
from jobsync.models.job import JobRequirements
from jobsync.models.ranking import ScoredApplicant, TieBreakResult
from jobsync.services.errors import LLMNotAvailableError, TieBreakError
from jobsync.services.llm_service import LLMService, TextGenerator
from jobsync.services.logging_utils import format_context, print_with_prefix
from jobsync.services.prompts import TIE_BREAK_SYSTEM_PROMPT, build_tie_break_prompt


def find_tie_groups(
    ranked: Sequence[ScoredApplicant],
    epsilon: Optional[float] = None,
) -> List[List[ScoredApplicant]]:
    """
    Gruppi (>= 2) di candidati consecutivi con total_score entro epsilon dal primo del gruppo.

    La lista deve essere già ordinata per score decrescente: così ogni membro
    è entro epsilon da tutti gli altri.
    """
    epsilon = RANKING["tie_epsilon"] if epsilon is None else epsilon
    groups: List[List[ScoredApplicant]] = []
    current: List[ScoredApplicant] = []

    for item in ranked:
        if current and abs(current[0].total_score - item.total_score) <= epsilon + 1e-9:
            current.append(item)
            continue
        if len(current) >= 2:
            groups.append(current)
        current = [item]

    if len(current) >= 2:
        groups.append(current)
    return groups


class TieBreakAgent:
    """Agente che chiede al modello micro-correzioni per i gruppi di pari merito."""

    def __init__(
        self,
        llm_service: Optional[TextGenerator] = None,
        max_adjustment: Optional[float] = None,
        verbose: bool = False,
    ):
        self.max_adjustment = RANKING["max_micro_adjustment"] if max_adjustment is None else max_adjustment
        self.verbose = verbose
        self._llm_service = llm_service

    @property
    def llm_service(self) -> TextGenerator:
        if self._llm_service is None:
            self._llm_service = LLMService(verbose=self.verbose)
        return self._llm_service

    def find_tie_groups(self, ranked: Sequence[ScoredApplicant]) -> List[List[ScoredApplicant]]:
        return find_tie_groups(ranked)

    async def break_ties(
        self,
        groups: Sequence[Sequence[ScoredApplicant]],
        job: JobRequirements,
        timeout: Optional[float] = None,
    ) -> List[TieBreakResult]:
        """
        Una chiamata per gruppo (in parallelo). I gruppi falliti non producono correzioni.

        Args:
            groups: Gruppi di pari merito (da find_tie_groups)
            job: Requisiti del job (titolo e descrizione usati come contesto)
            timeout: Timeout in secondi per ogni gruppo (None = nessun limite)
        """
        outcomes = await asyncio.gather(
            *(self._safe_break_group(group, job, timeout) for group in groups)
        )
        return [result for results in outcomes for result in results]

    async def _safe_break_group(
        self,
        group: Sequence[ScoredApplicant],
        job: JobRequirements,
        timeout: Optional[float],
    ) -> List[TieBreakResult]:
        ids = [item.applicant_id for item in group]
        try:
            return await asyncio.wait_for(self._break_group(group, job), timeout=timeout)
        except asyncio.TimeoutError:
            self._warn(
                f"Tie-break in timeout, ordine deterministico mantenuto "
                f"({format_context(stage='tie_break', job=job.title, applicants=ids, timeout=timeout)})"
            )
        except (TieBreakError, LLMNotAvailableError) as e:
            self._warn(
                f"Tie-break fallito, ordine deterministico mantenuto "
                f"({format_context(stage='tie_break', job=job.title, applicants=ids)}): {e}"
            )
        return []

    async def _break_group(self, group: Sequence[ScoredApplicant], job: JobRequirements) -> List[TieBreakResult]:
        """
        Raises:
            TieBreakError: risposta assente o non interpretabile
            LLMNotAvailableError: servizio non disponibile
        """
        prompt = build_tie_break_prompt(
            job.title or "",
            job.description or "",
            [self._profile(item) for item in group],
            self.max_adjustment,
        )
        self._log(f"Tie group a {group[0].total_score:.2f}: {len(group)} candidati")

        try:
            response = await self.llm_service.classify(prompt, system_prompt=TIE_BREAK_SYSTEM_PROMPT)
        except LLMNotAvailableError:
            raise
        except Exception as e:
            raise TieBreakError(f"Errore del servizio di generazione: {e}") from e

        if not isinstance(response, dict) or not isinstance(response.get("adjustments"), list):
            raise TieBreakError("Risposta senza lista 'adjustments'")

        group_ids = {item.applicant_id for item in group}
        results: List[TieBreakResult] = []
        seen = set()
        for entry in response["adjustments"]:
            if not isinstance(entry, dict):
                continue
            applicant_id = str(entry.get("applicant_id", ""))
            if applicant_id not in group_ids or applicant_id in seen:
                self._log(f"   Correzione ignorata per id sconosciuto/duplicato: {applicant_id!r}")
                continue
            try:
                adjustment = float(entry.get("micro_adjustment", 0))
            except (TypeError, ValueError):
                continue
            adjustment = max(-self.max_adjustment, min(self.max_adjustment, adjustment))
            seen.add(applicant_id)
            results.append(TieBreakResult(
                applicant_id=applicant_id,
                micro_adjustment=adjustment,
                reasoning=str(entry.get("reasoning") or "").strip(),
            ))

        if not results:
            raise TieBreakError("Nessuna correzione valida nella risposta")
        return results

    @staticmethod
    def _profile(item: ScoredApplicant) -> Dict[str, Any]:
        record = item.record
        return {
            "applicant_id": record.applicant_id,
            "applicant_name": record.applicant_name,
            "match_score": item.total_score,
            "education_score": item.score.education_score,
            "experience_score": item.score.experience_score,
            "skills_score": item.score.skills_score,
            "eligibility_score": item.score.eligibility_score,
            "highest_educational_attainment": record.highest_educational_attainment,
            "total_years_experience": record.total_years_experience,
            "skills": record.skills,
            "eligibilities": [e.eligibility_title for e in record.eligibilities],
            "work_experience_titles": record.work_experience_titles or [],
        }

    def _log(self, message: str) -> None:
        print_with_prefix("[TieBreakAgent]", message, enabled=self.verbose)

    def _warn(self, message: str) -> None:
        print_with_prefix("[TieBreakAgent]", message, stream=sys.stderr)
