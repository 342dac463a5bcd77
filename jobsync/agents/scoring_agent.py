"""
Scoring Agent
Calcola lo score di un candidato rispetto ai requisiti di un job.

Tre algoritmi indipendenti + ensemble:
- Algorithm 1: Weighted Sum Model (somma pesata lineare)
- Algorithm 2: Skill-Experience Composite (skill pesate esponenzialmente con gli anni)
- Algorithm 3: Eligibility-Education Tie-breaker (punteggio a priorità)
- Ensemble: se 1 e 2 distano <= 5 punti usa il 3, altrimenti media 60/40

Tutti gli algoritmi usano gli stessi helper (education, experience, skill, eligibility).
Lo scoring è puro e sincrono: nessuna chiamata esterna.
"""

import math
import re
from typing import Any, List, Optional, Sequence, Tuple

from jobsync.config import (
    COMPOSITE,
    DEGREE_LEVELS,
    DEGREE_MATCH,
    EDUCATION,
    ELIGIBILITY_MATCH,
    ENSEMBLE,
    ENSEMBLE_REASONING,
    EXPERIENCE,
    RELATED_FIELDS,
    SKILL_MATCH,
    TIEBREAKER_POINTS,
    WEIGHTED_SUM_WEIGHTS,
)
from jobsync.models.applicant import ApplicantData
from jobsync.models.coercion import coerce_record
from jobsync.models.job import JobRequirements
from jobsync.models.ranking import AlgorithmDetails
from jobsync.models.score import ScoreBreakdown
from jobsync.services.logging_utils import print_with_prefix
from jobsync.services.string_similarity import shared_token_ratio, similarity

WEIGHTED_SUM_LABEL = "Weighted Sum Model"
COMPOSITE_LABEL = "Skill-Experience Composite"
TIEBREAKER_LABEL = "Eligibility-Education Tie-breaker"
ENSEMBLE_TIEBREAKER_LABEL = "Ensemble (Tie-breaker)"
ENSEMBLE_BLEND_LABEL = "Multi-Factor Assessment"

_CONTAMINATION = re.compile(r"\s+(?:Eligibilities|Skills|Experience):", re.IGNORECASE)
_OR_SPLIT = re.compile(r" or ", re.IGNORECASE)


def round_score(value: float) -> float:
    """Arrotonda a 2 decimali (half-up)."""
    return math.floor(value * 100 + 0.5) / 100


# ═══════════════════════════════════════════════════════════════════════════
# DEGREE
# ═══════════════════════════════════════════════════════════════════════════

def clean_degree_requirement(degree_requirement: str) -> str:
    """
    Rimuove testo estraneo accodato al requisito di titolo di studio.

    Example:
        clean_degree_requirement("BS in IT or CS Eligibilities: A+, Network+")  # "BS in IT or CS"
    """
    return _CONTAMINATION.split(degree_requirement or "", maxsplit=1)[0].strip()


def extract_degree_field(degree: str) -> str:
    """
    Estrae il "core field" del titolo (dopo l'ultimo " in ", altrimenti dopo l'ultimo " of ").

    Example:
        extract_degree_field("Bachelor of Science in Information Technology")  # "Information Technology"
        extract_degree_field("Master of Arts")  # "Arts"
    """
    text = (degree or "").strip()
    lowered = text.lower()
    for marker in (" in ", " of "):
        idx = lowered.rfind(marker)
        if idx != -1:
            return text[idx + len(marker):].strip()
    return text


def match_degree_requirement(job_degree: str, applicant_degree: str) -> float:
    """
    Similarità 0-100 tra requisito e titolo del candidato.

    Con alternative " or " confronta solo i core field: un'alternativa >= 85 vale 100,
    altrimenti vince la migliore. Senza " or " confronta le stringhe intere.
    """
    cleaned = clean_degree_requirement(job_degree)
    options = _OR_SPLIT.split(cleaned)

    if len(options) > 1:
        applicant_field = extract_degree_field(applicant_degree)
        best = 0.0
        for option in options:
            score = similarity(extract_degree_field(option.strip()), applicant_field)
            if score >= DEGREE_MATCH["or_alternative_perfect"]:
                return 100.0
            best = max(best, score)
        return best

    return similarity(cleaned, applicant_degree)


def _detect_level(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    lowered = text.lower()
    return next((level for level in DEGREE_LEVELS if level in lowered), None)


def _degree_levels(
    job: JobRequirements,
    applicant: ApplicantData,
    job_degree: str,
    applicant_degree: str,
) -> Tuple[Optional[str], Optional[str]]:
    # Metadati della normalizzazione se presenti su entrambi i lati
    if job.degree_level and applicant.degree_level:
        job_level = _detect_level(job.degree_level)
        applicant_level = _detect_level(applicant.degree_level)
        if job_level and applicant_level:
            return job_level, applicant_level
    return _detect_level(job_degree), _detect_level(applicant_degree)


def calculate_education_score(job: JobRequirements, applicant: ApplicantData) -> float:
    """Score education 0-100: similarità titolo + aggiustamenti per livello e campi affini."""
    job_degree = (job.degree_requirement or "").lower().strip()
    applicant_degree = (applicant.highest_educational_attainment or "").lower().strip()

    score = match_degree_requirement(job_degree, applicant_degree)

    job_level, applicant_level = _degree_levels(job, applicant, job_degree, applicant_degree)
    if job_level and applicant_level:
        if job_level == applicant_level:
            if score >= EDUCATION["same_level_similar_threshold"]:
                score = max(score, EDUCATION["same_level_similar_floor"])
            else:
                score = max(score, EDUCATION["same_level_floor"])

        job_index = DEGREE_LEVELS.index(job_level)
        applicant_index = DEGREE_LEVELS.index(applicant_level)
        if applicant_index > job_index:
            score = min(score + EDUCATION["higher_level_bonus"], 100)
        elif applicant_index < job_index:
            score = max(score - EDUCATION["lower_level_penalty"], EDUCATION["lower_level_floor"])

    for field, related in RELATED_FIELDS.items():
        if field in job_degree and any(term in applicant_degree for term in related):
            score = max(score, EDUCATION["related_field_floor"])
            break

    job_group = (job.degree_field_group or "").strip().lower()
    applicant_group = (applicant.degree_field_group or "").strip().lower()
    if job_group and job_group == applicant_group:
        score = max(score, EDUCATION["related_field_floor"])

    return max(score, EDUCATION["minimum"])


# ═══════════════════════════════════════════════════════════════════════════
# EXPERIENCE
# ═══════════════════════════════════════════════════════════════════════════

def _required_years(job: JobRequirements) -> float:
    # anche requisiti frazionari valgono almeno un anno
    return max(job.years_of_experience or 0, EXPERIENCE["min_required_years"])


def _years_score(required_years: float, applicant_years: float) -> float:
    if applicant_years >= required_years:
        return EXPERIENCE["meets_requirement"]
    if applicant_years > 0:
        return EXPERIENCE["below_requirement"]
    return EXPERIENCE["no_experience"]


def title_relevance(job_title: Optional[str], work_titles: Optional[Sequence[str]]) -> float:
    """Rilevanza 0-100 del miglior titolo di esperienza rispetto al titolo del job (50 se non valutabile)."""
    if not job_title or not work_titles:
        return EXPERIENCE["neutral_relevance"]

    job_title = job_title.lower().strip()
    best = 0.0
    for title in work_titles:
        best = max(best, similarity(job_title, title or ""))
        ratio = shared_token_ratio(job_title, title or "")
        if ratio > 0:
            best = max(best, ratio * EXPERIENCE["title_token_weight"])
    return best


def calculate_experience_score(job: JobRequirements, applicant: ApplicantData) -> float:
    """70% fascia anni (100 / 66.7 / 33.3) + 30% rilevanza dei titoli."""
    years_score = _years_score(_required_years(job), applicant.total_years_experience or 0)
    relevance = title_relevance(job.title, applicant.work_experience_titles)
    return years_score * EXPERIENCE["years_weight"] + relevance * EXPERIENCE["relevance_weight"]


# ═══════════════════════════════════════════════════════════════════════════
# SKILLS / ELIGIBILITY
# ═══════════════════════════════════════════════════════════════════════════

def calculate_skill_match(job_skills: Sequence[str], applicant_skills: Sequence[str]) -> Tuple[float, int]:
    """
    Score skill 0-100 e numero di skill del job soddisfatte.

    Per ogni skill richiesta: esatta 100, >= 80% -> 80, >= 50% -> 50,
    altrimenti overlap di token x 30. Matchata se il migliore >= 30.
    """
    job_skills = list(job_skills or [])
    applicant_skills = list(applicant_skills or [])
    if not job_skills:
        return float(SKILL_MATCH["neutral"]), 0
    if not applicant_skills:
        return 0.0, 0

    total = 0.0
    matched = 0
    for job_skill in job_skills:
        best = 0.0
        for applicant_skill in applicant_skills:
            score = similarity(job_skill, applicant_skill)
            if score == 100:
                best = SKILL_MATCH["exact"]
                break
            if score >= SKILL_MATCH["high_threshold"]:
                best = max(best, SKILL_MATCH["high_score"])
            elif score >= SKILL_MATCH["medium_threshold"]:
                best = max(best, SKILL_MATCH["medium_score"])
            else:
                ratio = shared_token_ratio(job_skill, applicant_skill)
                if ratio > 0:
                    best = max(best, ratio * SKILL_MATCH["token_weight"])

        if best >= SKILL_MATCH["matched_min"]:
            matched += 1
        total += best

    score = total / (len(job_skills) * 100) * 100
    surplus = max(0, len(applicant_skills) - len(job_skills))
    bonus = min(surplus * SKILL_MATCH["surplus_per_skill"], SKILL_MATCH["surplus_cap"])
    return min(score + bonus, 100.0), matched


def eligibility_required(job_eligibilities: Sequence[str]) -> bool:
    """False se il job non chiede eligibility (lista vuota o righe "none" / "not required")."""
    lines = [line.lower().strip() for line in job_eligibilities or []]
    if not lines:
        return False
    markers = ELIGIBILITY_MATCH["not_required_markers"]
    return not any(marker in line for line in lines for marker in markers)


def calculate_eligibility_match(
    job_eligibilities: Sequence[str],
    applicant_eligibilities: Sequence[str],
) -> Tuple[float, int]:
    """
    Score eligibility 0-100 e numero di eligibility UNICHE del candidato che hanno
    vinto almeno un best-match.

    Per ogni riga richiesta: similarità >= 70 com'è, [40, 70) x 0.7,
    altrimenti overlap di token x 40.
    """
    if not eligibility_required(job_eligibilities):
        return float(ELIGIBILITY_MATCH["neutral"]), 0

    required = [line.lower().strip() for line in job_eligibilities]
    owned = [title.lower().strip() for title in applicant_eligibilities or [] if title and title.strip()]

    total = 0.0
    matched_items = set()
    for requirement in required:
        best = 0.0
        best_item = None
        for item in owned:
            score = similarity(requirement, item)
            if score >= ELIGIBILITY_MATCH["strong_threshold"]:
                candidate = score
            elif score >= ELIGIBILITY_MATCH["moderate_threshold"]:
                candidate = score * ELIGIBILITY_MATCH["moderate_factor"]
            else:
                candidate = shared_token_ratio(requirement, item) * ELIGIBILITY_MATCH["token_weight"]
            if candidate > best:
                best = candidate
                best_item = item

        if best_item is not None:
            matched_items.add(best_item)
        total += best

    matched = len(matched_items)
    match_ratio = matched / len(required)
    avg_similarity = total / len(required)
    score = match_ratio * ELIGIBILITY_MATCH["ratio_weight"] + avg_similarity * ELIGIBILITY_MATCH["similarity_weight"]

    surplus = max(0, len(owned) - len(required))
    bonus = min(surplus * ELIGIBILITY_MATCH["surplus_per_item"], ELIGIBILITY_MATCH["surplus_cap"])
    score = min(score + bonus, 100.0)

    if matched > 0:
        score = max(score, ELIGIBILITY_MATCH["matched_floor"])
    else:
        score = min(score, ELIGIBILITY_MATCH["unmatched_cap"])
    return score, matched


def _applicant_eligibility_titles(applicant: ApplicantData) -> List[str]:
    return [e.eligibility_title for e in applicant.eligibilities if e and e.eligibility_title]


# ═══════════════════════════════════════════════════════════════════════════
# AGENT
# ═══════════════════════════════════════════════════════════════════════════

class ScoringAgent:
    """
    Agente che valuta un candidato con i tre algoritmi e li combina.

    Accetta modelli pydantic o dict semplici; un record invalido
    solleva InvalidRecordError (nessuno score silenzioso a zero).
    """

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    @staticmethod
    def _coerce(job: Any, applicant: Any) -> Tuple[JobRequirements, ApplicantData]:
        return (
            coerce_record(JobRequirements, job, "job"),
            coerce_record(ApplicantData, applicant, "applicant"),
        )

    def weighted_sum(self, job: Any, applicant: Any) -> ScoreBreakdown:
        """Algorithm 1: 0.30 education + 0.20 experience + 0.20 skills + 0.30 eligibility."""
        job, applicant = self._coerce(job, applicant)
        w = WEIGHTED_SUM_WEIGHTS

        education = calculate_education_score(job, applicant)
        experience = calculate_experience_score(job, applicant)
        skills, matched_skills = calculate_skill_match(job.skills, applicant.skills)
        eligibility, matched_eligibilities = calculate_eligibility_match(
            job.eligibilities, _applicant_eligibility_titles(applicant)
        )

        total = (
            w["education"] * education
            + w["experience"] * experience
            + w["skills"] * skills
            + w["eligibility"] * eligibility
        )
        return ScoreBreakdown(
            education_score=education,
            experience_score=experience,
            skills_score=skills,
            eligibility_score=eligibility,
            total_score=round_score(total),
            algorithm_used=WEIGHTED_SUM_LABEL,
            reasoning=(
                f"Education (30%): {education:.1f}, Experience (20%): {experience:.1f}, "
                f"Skills (20%): {skills:.1f}, Eligibility (30%): {eligibility:.1f}"
            ),
            matched_skills_count=matched_skills,
            matched_eligibilities_count=matched_eligibilities,
        )

    def skill_experience_composite(self, job: Any, applicant: Any) -> ScoreBreakdown:
        """
        Algorithm 2: skill pesate esponenzialmente con il rapporto anni/richiesti.

        composite = skills * exp(beta * min(ratio, 2)) / exp(beta * 2)
        total = 0.30 composite + 0.35 education + 0.35 eligibility
        L'experience score viene riportato ma entra nel totale solo tramite il ratio.
        """
        job, applicant = self._coerce(job, applicant)
        beta = COMPOSITE["beta"]
        cap = COMPOSITE["ratio_cap"]
        w = COMPOSITE["weights"]

        skills, matched_skills = calculate_skill_match(job.skills, applicant.skills)
        experience = calculate_experience_score(job, applicant)
        ratio = (applicant.total_years_experience or 0) / _required_years(job)
        composite = skills * math.exp(beta * min(ratio, cap)) / math.exp(beta * cap)

        education = calculate_education_score(job, applicant)
        eligibility, matched_eligibilities = calculate_eligibility_match(
            job.eligibilities, _applicant_eligibility_titles(applicant)
        )

        total = w["composite"] * composite + w["education"] * education + w["eligibility"] * eligibility
        return ScoreBreakdown(
            education_score=education,
            experience_score=experience,
            skills_score=skills,
            eligibility_score=eligibility,
            total_score=round_score(total),
            algorithm_used=COMPOSITE_LABEL,
            reasoning=(
                f"Skill-Experience Composite (30%): {composite:.1f}, "
                f"Education (35%): {education:.1f}, Eligibility (35%): {eligibility:.1f}"
            ),
            matched_skills_count=matched_skills,
            matched_eligibilities_count=matched_eligibilities,
        )

    def eligibility_education_tiebreaker(self, job: Any, applicant: Any) -> ScoreBreakdown:
        """
        Algorithm 3: punti per priorità.

        Eligibility fino a 40 (20 fissi se non richiesta), education fino a 30,
        experience fino a 20, skill min(matched x 10, 20) x 0.10.
        """
        job, applicant = self._coerce(job, applicant)
        points = TIEBREAKER_POINTS
        reasoning = []
        total = 0.0

        eligibility, matched_eligibilities = calculate_eligibility_match(
            job.eligibilities, _applicant_eligibility_titles(applicant)
        )
        if eligibility_required(job.eligibilities):
            contribution = eligibility / 100 * points["eligibility"]
            reasoning.append(f"Professional license match: {eligibility:.1f}% (+{contribution:.1f})")
        else:
            contribution = points["no_eligibility_credit"]
            reasoning.append(f"No license required (+{contribution})")
        total += contribution

        education = calculate_education_score(job, applicant)
        contribution = education / 100 * points["education"]
        total += contribution
        reasoning.append(f"Degree match: {education:.1f}% (+{contribution:.1f})")

        experience = calculate_experience_score(job, applicant)
        excess_years = max(0.0, (applicant.total_years_experience or 0) - _required_years(job))
        contribution = min(experience / 100 * points["experience"], points["experience"])
        total += contribution
        reasoning.append(f"Experience: {experience:.1f}%, {excess_years:.1f} years over (+{contribution:.1f})")

        skills, matched_skills = calculate_skill_match(job.skills, applicant.skills)
        contribution = min(matched_skills * points["skill_per_match"], points["skill_cap"]) * points["skill_weight"]
        total += contribution
        reasoning.append(f"{matched_skills} matched skills (+{contribution:.1f})")

        return ScoreBreakdown(
            education_score=education,
            experience_score=experience,
            skills_score=skills,
            eligibility_score=eligibility,
            total_score=round_score(total),
            algorithm_used=TIEBREAKER_LABEL,
            reasoning="; ".join(reasoning),
            matched_skills_count=matched_skills,
            matched_eligibilities_count=matched_eligibilities,
        )

    def score_with_details(self, job: Any, applicant: Any) -> Tuple[ScoreBreakdown, AlgorithmDetails]:
        """Ensemble + provenienza (score dei singoli algoritmi e metodo scelto)."""
        job, applicant = self._coerce(job, applicant)
        score1 = self.weighted_sum(job, applicant)
        score2 = self.skill_experience_composite(job, applicant)
        difference = abs(score1.total_score - score2.total_score)

        if difference <= ENSEMBLE["tie_threshold"]:
            score3 = self.eligibility_education_tiebreaker(job, applicant)
            self._log(
                f"Algorithms 1 & 2 within {ENSEMBLE['tie_threshold']:g} "
                f"({score1.total_score:.2f} vs {score2.total_score:.2f}) -> tie-breaker {score3.total_score:.2f}"
            )
            result = score3.model_copy(update={
                "algorithm_used": ENSEMBLE_TIEBREAKER_LABEL,
                "reasoning": (
                    f"Algorithms 1 & 2 within 5% ({score1.total_score:.1f} vs {score2.total_score:.1f}). "
                    f"Tie-breaker: {score3.reasoning}"
                ),
            })
            details = AlgorithmDetails(
                algorithm1_score=score1.total_score,
                algorithm2_score=score2.total_score,
                algorithm3_score=score3.total_score,
                ensemble_method="tie_breaker",
                is_tie_breaker=True,
                score_difference=round_score(difference),
            )
            return result, details

        result = self._blend(score1, score2)
        self._log(
            f"Weighted ensemble ({score1.total_score:.2f} / {score2.total_score:.2f}) -> {result.total_score:.2f}"
        )
        w = ENSEMBLE["weights"]
        details = AlgorithmDetails(
            algorithm1_score=score1.total_score,
            algorithm2_score=score2.total_score,
            ensemble_method="weighted_average",
            algorithm1_weight=w["algorithm1"],
            algorithm2_weight=w["algorithm2"],
            is_tie_breaker=False,
            score_difference=round_score(difference),
        )
        return result, details

    def ensemble_score(self, job: Any, applicant: Any) -> ScoreBreakdown:
        """Score finale: Algorithm 3 se 1 e 2 sono vicini, altrimenti media 60/40."""
        result, _ = self.score_with_details(job, applicant)
        return result

    def _blend(self, score1: ScoreBreakdown, score2: ScoreBreakdown) -> ScoreBreakdown:
        w1 = ENSEMBLE["weights"]["algorithm1"]
        w2 = ENSEMBLE["weights"]["algorithm2"]

        education = score1.education_score * w1 + score2.education_score * w2
        experience = score1.experience_score * w1 + score2.experience_score * w2
        skills = score1.skills_score * w1 + score2.skills_score * w2
        eligibility = score1.eligibility_score * w1 + score2.eligibility_score * w2
        total = score1.total_score * w1 + score2.total_score * w2

        return ScoreBreakdown(
            education_score=round_score(education),
            experience_score=round_score(experience),
            skills_score=round_score(skills),
            eligibility_score=round_score(eligibility),
            total_score=round_score(total),
            algorithm_used=ENSEMBLE_BLEND_LABEL,
            reasoning=ensemble_reasoning(education, experience, skills, eligibility),
            # conteggi dell'Algorithm 1 (peso maggiore)
            matched_skills_count=score1.matched_skills_count,
            matched_eligibilities_count=score1.matched_eligibilities_count,
        )

    def _log(self, message: str) -> None:
        print_with_prefix("[ScoringAgent]", message, enabled=self.verbose)


def ensemble_reasoning(education: float, experience: float, skills: float, eligibility: float) -> str:
    """Spiegazione in linguaggio naturale dei punti di forza e delle lacune."""
    t = ENSEMBLE_REASONING
    strengths = []
    gaps = []

    if education >= t["education_strong"]:
        strengths.append("strong educational background")
    elif education < t["education_gap"]:
        gaps.append("education level")

    if experience >= t["experience_strong"]:
        strengths.append("excellent relevant experience" if experience == 100 else "solid work experience")
    elif experience < t["experience_gap"]:
        gaps.append("years of experience")

    if skills >= t["skills_strong"]:
        strengths.append("good technical skills")
    elif skills < t["skills_gap"]:
        gaps.append("required skills")

    if eligibility >= t["eligibility_strong"]:
        strengths.append("appropriate certifications")
    elif eligibility < t["eligibility_gap"]:
        gaps.append("certifications")

    reasoning = ""
    if strengths:
        reasoning = f"Candidate demonstrates {', '.join(strengths)}."
    if gaps:
        lead = "Areas for development include" if strengths else "Needs improvement in"
        reasoning += f" {lead} {', '.join(gaps)}."
    return reasoning.strip() or "Candidate evaluated across multiple qualification criteria."


# ═══════════════════════════════════════════════════════════════════════════
# SIMPLE API
# ═══════════════════════════════════════════════════════════════════════════

_default_agent = ScoringAgent()


def algorithm1_weighted_sum(job: Any, applicant: Any) -> ScoreBreakdown:
    return _default_agent.weighted_sum(job, applicant)


def algorithm2_skill_experience_composite(job: Any, applicant: Any) -> ScoreBreakdown:
    return _default_agent.skill_experience_composite(job, applicant)


def algorithm3_eligibility_education_tiebreaker(job: Any, applicant: Any) -> ScoreBreakdown:
    return _default_agent.eligibility_education_tiebreaker(job, applicant)


def ensemble_score(job: Any, applicant: Any) -> ScoreBreakdown:
    return _default_agent.ensemble_score(job, applicant)
