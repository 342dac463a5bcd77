"""
Ranking Orchestrator
Coordina gli agenti per classificare tutti i candidati di un job.

Responsabilità:
- Normalizza job e candidati (NormalizationAgent)
- Calcola ensemble + provenienza per ogni candidato (ScoringAgent)
- Ordina con cascata di chiavi e risolve i pari merito (TieBreakAgent)
- Assegna rank densi e aggiunge insight sui primi (InsightAgent)
"""

import asyncio
from functools import cmp_to_key
from typing import Any, List, Optional, Sequence

from jobsync.agents.insight_agent import InsightAgent
from jobsync.agents.normalization_agent import NormalizationAgent
from jobsync.agents.scoring_agent import ScoringAgent, round_score
from jobsync.agents.tie_break_agent import TieBreakAgent
from jobsync.config import RANKING
from jobsync.models.applicant import ApplicantRecord
from jobsync.models.coercion import coerce_record
from jobsync.models.job import JobRequirements
from jobsync.models.ranking import ApplicantComparison, RankedApplicant, ScoredApplicant
from jobsync.services.dictionary_loader import DictionaryLoader
from jobsync.services.llm_service import LLMService, TextGenerator
from jobsync.services.logging_utils import log_section, print_with_prefix


def _compare_desc(a: float, b: float, epsilon: float) -> int:
    if abs(b - a) >= epsilon:
        return -1 if a > b else 1
    return 0


def compare_scored(a: ScoredApplicant, b: ScoredApplicant) -> int:
    """
    Cascata (decrescente): total -> eligibility -> education -> experience -> skills
    (con epsilon 0.01) -> anni effettivi -> numero di skill -> ordine di candidatura.
    """
    eps = RANKING["sort_epsilon"]
    for left, right in (
        (a.total_score, b.total_score),
        (a.score.eligibility_score, b.score.eligibility_score),
        (a.score.education_score, b.score.education_score),
        (a.score.experience_score, b.score.experience_score),
        (a.score.skills_score, b.score.skills_score),
    ):
        result = _compare_desc(left, right, eps)
        if result:
            return result

    years_a = a.record.total_years_experience or 0
    years_b = b.record.total_years_experience or 0
    if years_a != years_b:
        return -1 if years_a > years_b else 1

    skills_a = len(a.record.skills or [])
    skills_b = len(b.record.skills or [])
    if skills_a != skills_b:
        return -1 if skills_a > skills_b else 1
    if a.position != b.position:
        return -1 if a.position < b.position else 1
    return 0


class RankingOrchestrator:
    """
    Orchestratore della pipeline di ranking.

    FLUSSO:
    1. Validazione record (InvalidRecordError prima di qualsiasi chiamata esterna)
    2. Normalizzazione (job una volta, candidati in parallelo)
    3. Scoring: Algorithm 1, Algorithm 2, ensemble + provenienza
    4. Ordinamento deterministico a cascata
    5. Tie-break AI sui gruppi di pari merito + riordino
    6. Rank densi 1..N
    7. Insight sui primi K (best-effort)
    """

    def __init__(
        self,
        llm_service: Optional[TextGenerator] = None,
        dictionary_loader: Optional[DictionaryLoader] = None,
        scoring_agent: Optional[ScoringAgent] = None,
        verbose: bool = False,
    ):
        self.verbose = verbose

        # Servizi condivisi
        self._llm_service = llm_service
        self._dictionary_loader = dictionary_loader

        # Agenti (lazy init)
        self._scoring_agent = scoring_agent
        self._normalization_agent = None
        self._tie_break_agent = None
        self._insight_agent = None

    @property
    def llm_service(self) -> TextGenerator:
        if self._llm_service is None:
            self._llm_service = LLMService(verbose=self.verbose)
        return self._llm_service

    @property
    def dictionary_loader(self) -> DictionaryLoader:
        if self._dictionary_loader is None:
            self._dictionary_loader = DictionaryLoader(verbose=self.verbose)
        return self._dictionary_loader

    @property
    def normalization_agent(self) -> NormalizationAgent:
        if self._normalization_agent is None:
            self._normalization_agent = NormalizationAgent(
                llm_service=self.llm_service,
                dictionary_loader=self.dictionary_loader,
                verbose=self.verbose,
            )
        return self._normalization_agent

    @property
    def scoring_agent(self) -> ScoringAgent:
        if self._scoring_agent is None:
            self._scoring_agent = ScoringAgent(verbose=self.verbose)
        return self._scoring_agent

    @property
    def tie_break_agent(self) -> TieBreakAgent:
        if self._tie_break_agent is None:
            self._tie_break_agent = TieBreakAgent(llm_service=self.llm_service, verbose=self.verbose)
        return self._tie_break_agent

    @property
    def insight_agent(self) -> InsightAgent:
        if self._insight_agent is None:
            self._insight_agent = InsightAgent(llm_service=self.llm_service, verbose=self.verbose)
        return self._insight_agent

    async def rank_applicants_for_job(
        self,
        job: Any,
        applicants: Sequence[Any],
        timeout: Optional[float] = None,
        normalize: bool = True,
        include_insights: bool = True,
    ) -> List[RankedApplicant]:
        """
        Classifica tutti i candidati di un job.

        Args:
            job: JobRequirements/JobPosting o dict equivalente
            applicants: ApplicantRecord o dict equivalenti
            timeout: Timeout (secondi) per ogni chiamata di tie-break e per gli insight
            normalize: Se True, canonicalizza degree ed eligibility prima dello scoring
            include_insights: Se True, aggiunge gli insight AI sui primi candidati

        Returns:
            Nuova lista di RankedApplicant con rank densi 1..N

        Raises:
            InvalidRecordError: job o candidato strutturalmente invalido
        """
        job = coerce_record(JobRequirements, job, "job")
        records = [
            coerce_record(ApplicantRecord, applicant, f"applicant[{index}]")
            for index, applicant in enumerate(applicants)
        ]

        log_section(self._log, f"RANKING: {job.title or 'Job'} ({len(records)} applicants)", width=70, char="=")
        if not records:
            return []

        # ═══════════════════════════════════════════════════════════════
        # PHASE 1: Normalization
        # ═══════════════════════════════════════════════════════════════
        if normalize:
            log_section(self._log, "PHASE 1: Normalization", width=70, char="-")
            job, records = await self._normalize(job, records)

        # ═══════════════════════════════════════════════════════════════
        # PHASE 2: Scoring + deterministic sort
        # ═══════════════════════════════════════════════════════════════
        log_section(self._log, "PHASE 2: Scoring", width=70, char="-")
        scored = [self._score(job, record, position) for position, record in enumerate(records)]
        scored = sorted(scored, key=cmp_to_key(compare_scored))

        # ═══════════════════════════════════════════════════════════════
        # PHASE 3: AI tie-breaking
        # ═══════════════════════════════════════════════════════════════
        log_section(self._log, "PHASE 3: Tie-breaking", width=70, char="-")
        scored = await self._break_ties(job, scored, timeout)

        ranked = [self._to_ranked(item, rank) for rank, item in enumerate(scored, start=1)]

        # ═══════════════════════════════════════════════════════════════
        # PHASE 4: Insights (best-effort)
        # ═══════════════════════════════════════════════════════════════
        if include_insights:
            log_section(self._log, "PHASE 4: Insights", width=70, char="-")
            ranked = await self.insight_agent.add_insights(job, ranked, timeout=timeout)

        for applicant in ranked:
            self._log(f"   #{applicant.rank} {applicant.applicant_name or applicant.applicant_id}: {applicant.match_score:.2f}")
        return ranked

    async def re_rank_job_applicants(
        self,
        job: Any,
        applicants: Sequence[Any],
        timeout: Optional[float] = None,
        normalize: bool = True,
        include_insights: bool = True,
    ) -> List[RankedApplicant]:
        """Ricalcola da zero la classifica (es. dopo una modifica dei requisiti del job)."""
        return await self.rank_applicants_for_job(
            job,
            applicants,
            timeout=timeout,
            normalize=normalize,
            include_insights=include_insights,
        )

    def compare_applicants(self, job: Any, applicant1: Any, applicant2: Any) -> ApplicantComparison:
        """Confronto diretto di due candidati con l'ensemble (differenza < 1 punto = pari)."""
        score1 = self.scoring_agent.ensemble_score(job, applicant1)
        score2 = self.scoring_agent.ensemble_score(job, applicant2)
        diff = score1.total_score - score2.total_score

        if abs(diff) < RANKING["compare_tie_margin"]:
            winner = "tie"
        elif diff > 0:
            winner = "applicant1"
        else:
            winner = "applicant2"

        return ApplicantComparison(
            winner=winner,
            applicant1_score=score1,
            applicant2_score=score2,
            analysis=(
                f"Applicant 1: {score1.total_score:.2f} vs Applicant 2: {score2.total_score:.2f}. "
                f"Difference: {abs(diff):.2f} points."
            ),
        )

    async def _normalize(self, job: JobRequirements, records: List[ApplicantRecord]):
        agent = self.normalization_agent
        normalized_job = await agent.normalize_job(job)
        normalized_records = await asyncio.gather(*(agent.normalize_applicant(record) for record in records))
        self._log(f"   -> Degree requirement: {normalized_job.degree_requirement or '-'}")
        return normalized_job, list(normalized_records)

    def _score(self, job: JobRequirements, record: ApplicantRecord, position: int) -> ScoredApplicant:
        score, details = self.scoring_agent.score_with_details(job, record)
        return ScoredApplicant(
            record=record,
            score=score,
            details=details,
            position=position,
            total_score=score.total_score,
            reasoning=score.reasoning,
        )

    async def _break_ties(
        self,
        job: JobRequirements,
        scored: List[ScoredApplicant],
        timeout: Optional[float],
    ) -> List[ScoredApplicant]:
        groups = self.tie_break_agent.find_tie_groups(scored)
        if not groups:
            self._log("No tied candidates found")
            return scored

        self._log(f"Found {len(groups)} tie groups with {sum(len(g) for g in groups)} tied candidates")
        results = await self.tie_break_agent.break_ties(groups, job, timeout=timeout)
        if not results:
            return scored

        by_id = {item.applicant_id: item for group in groups for item in group}
        for result in results:
            item = by_id.get(result.applicant_id)
            if item is None:
                continue
            item.total_score = round_score(item.total_score + result.micro_adjustment)
            item.reasoning += f" [AI Tie-break: {result.reasoning}]"

        self._log("Ties broken, candidates re-sorted")
        return sorted(scored, key=lambda item: item.total_score, reverse=True)

    @staticmethod
    def _to_ranked(item: ScoredApplicant, rank: int) -> RankedApplicant:
        score = item.score
        return RankedApplicant(
            applicant_id=item.record.applicant_id,
            applicant_name=item.record.applicant_name,
            rank=rank,
            match_score=item.total_score,
            education_score=score.education_score,
            experience_score=score.experience_score,
            skills_score=score.skills_score,
            eligibility_score=score.eligibility_score,
            algorithm_used=score.algorithm_used,
            ranking_reasoning=item.reasoning,
            algorithm_details=item.details,
            matched_skills_count=score.matched_skills_count,
            matched_eligibilities_count=score.matched_eligibilities_count,
        )

    def _log(self, message: str) -> None:
        print_with_prefix("[Orchestrator]", message, enabled=self.verbose)


# ═══════════════════════════════════════════════════════════════════════════
# SIMPLE API
# ═══════════════════════════════════════════════════════════════════════════

async def rank_applicants_for_job(
    job: Any,
    applicants: Sequence[Any],
    llm_service: Optional[TextGenerator] = None,
    dictionary_loader: Optional[DictionaryLoader] = None,
    timeout: Optional[float] = None,
    normalize: bool = True,
    include_insights: bool = True,
    verbose: bool = False,
) -> List[RankedApplicant]:
    """
    Funzione semplice per classificare i candidati di un job.

    Example:
        ranked = asyncio.run(rank_applicants_for_job(job_dict, applicant_dicts))
        for applicant in ranked:
            print(applicant.rank, applicant.applicant_name, applicant.match_score)
    """
    orchestrator = RankingOrchestrator(
        llm_service=llm_service,
        dictionary_loader=dictionary_loader,
        verbose=verbose,
    )
    return await orchestrator.rank_applicants_for_job(
        job,
        applicants,
        timeout=timeout,
        normalize=normalize,
        include_insights=include_insights,
    )


def compare_applicants(job: Any, applicant1: Any, applicant2: Any) -> ApplicantComparison:
    """Funzione semplice per confrontare due candidati sullo stesso job."""
    return RankingOrchestrator().compare_applicants(job, applicant1, applicant2)
