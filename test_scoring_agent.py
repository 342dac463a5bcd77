"""
Test Scoring Agent
"""

import math

import pytest

from jobsync.agents.scoring_agent import (
    ScoringAgent,
    algorithm1_weighted_sum,
    algorithm2_skill_experience_composite,
    algorithm3_eligibility_education_tiebreaker,
    calculate_education_score,
    calculate_eligibility_match,
    calculate_experience_score,
    calculate_skill_match,
    clean_degree_requirement,
    ensemble_reasoning,
    ensemble_score,
    extract_degree_field,
    match_degree_requirement,
    round_score,
    title_relevance,
)
from jobsync.config import COMPOSITE, ENSEMBLE, WEIGHTED_SUM_WEIGHTS
from jobsync.models.applicant import ApplicantData
from jobsync.models.job import JobRequirements
from jobsync.models.score import ScoreBreakdown
from jobsync.services.errors import InvalidRecordError

# ═══════════════════════════════════════════════════════════════════════════
# TEST DATA
# ═══════════════════════════════════════════════════════════════════════════

IT_JOB = {
    "title": "Information Technology Officer I",
    "degree_requirement": "Bachelor of Science in Information Technology or Computer Science",
    "eligibilities": ["Career Service Professional"],
    "skills": ["JavaScript", "Data Analysis"],
    "years_of_experience": 2,
}

STRONG_APPLICANT = {
    "highest_educational_attainment": "Bachelor's Degree in Information Technology",
    "eligibilities": [{"eligibility_title": "Career Service Professional"}],
    "skills": ["JavaScript", "Data Analysis", "SQL"],
    "total_years_experience": 4,
    "work_experience_titles": ["Information Technology Assistant"],
}

WEAK_APPLICANT = {
    "highest_educational_attainment": "High School Diploma",
    "eligibilities": [],
    "skills": ["Welding"],
    "total_years_experience": 0,
}


def _job(**fields) -> JobRequirements:
    data = {"years_of_experience": 0}
    data.update(fields)
    return JobRequirements(**data)


def _applicant(**fields) -> ApplicantData:
    data = {"total_years_experience": 0}
    data.update(fields)
    return ApplicantData(**data)


def _breakdown(total: float, label: str = "stub") -> ScoreBreakdown:
    return ScoreBreakdown(
        education_score=80,
        experience_score=70,
        skills_score=60,
        eligibility_score=90,
        total_score=total,
        algorithm_used=label,
        reasoning=f"{label} reasoning",
        matched_skills_count=2,
        matched_eligibilities_count=1,
    )


# ═══════════════════════════════════════════════════════════════════════════
# DEGREE / EDUCATION
# ═══════════════════════════════════════════════════════════════════════════

def test_round_score_half_up():
    assert round_score(62.662) == pytest.approx(62.66)
    assert round_score(0.125) == pytest.approx(0.13)
    assert round_score(78.0) == pytest.approx(78.0)


@pytest.mark.parametrize("degree,expected", [
    ("Bachelor of Science in Information Technology", "Information Technology"),
    ("Master of Arts", "Arts"),
    ("Bachelor of Science IN Nursing", "Nursing"),
    ("Nursing", "Nursing"),
])
def test_extract_degree_field(degree, expected):
    assert extract_degree_field(degree) == expected


def test_clean_degree_requirement_strips_contamination():
    assert clean_degree_requirement("BS in IT or CS Eligibilities: A+, Network+") == "BS in IT or CS"
    assert clean_degree_requirement("BS in IT  skills: Python") == "BS in IT"


def test_degree_or_alternative_matches_core_field():
    score = match_degree_requirement(
        "Bachelor of Science in Information Technology or Computer Science",
        "Bachelor's Degree in Information Technology",
    )
    assert score == 100


def test_education_related_field_floor():
    job = _job(degree_requirement="Bachelor of Science in Information Technology")
    applicant = _applicant(highest_educational_attainment="Bachelor of Science in Computer Science")
    assert calculate_education_score(job, applicant) >= 85


def test_education_same_field_group_floor():
    job = _job(degree_requirement="Some Program", degree_field_group="computing")
    applicant = _applicant(highest_educational_attainment="Other Program", degree_field_group="Computing")
    assert calculate_education_score(job, applicant) == pytest.approx(85)


def test_education_uses_level_metadata_when_both_sides_have_it():
    job = _job(degree_requirement="Information Technology", degree_level="master")
    applicant = _applicant(highest_educational_attainment="Information Technology", degree_level="bachelor")
    assert calculate_education_score(job, applicant) == pytest.approx(80)

    without_metadata = _applicant(highest_educational_attainment="Information Technology")
    assert calculate_education_score(job, without_metadata) == pytest.approx(100)


def test_education_lower_level_never_below_floor():
    job = _job(degree_requirement="Master in Public Administration")
    applicant = _applicant(highest_educational_attainment="Bachelor of Science in Nursing")
    score = calculate_education_score(job, applicant)
    assert 30 <= score <= 50


# ═══════════════════════════════════════════════════════════════════════════
# EXPERIENCE
# ═══════════════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("years,expected", [
    (5, 100 * 0.7 + 50 * 0.3),
    (1, 66.7 * 0.7 + 50 * 0.3),
    (0, 33.3 * 0.7 + 50 * 0.3),
])
def test_experience_year_bands(years, expected):
    job = _job(years_of_experience=3)
    applicant = _applicant(total_years_experience=years)
    assert calculate_experience_score(job, applicant) == pytest.approx(expected)


def test_experience_zero_requirement_counts_as_one_year():
    job = _job(years_of_experience=0)
    assert calculate_experience_score(job, _applicant(total_years_experience=1)) == pytest.approx(85)
    assert calculate_experience_score(job, _applicant(total_years_experience=0)) == pytest.approx(38.31)


def test_experience_fractional_requirement_floored_at_one_year():
    job = _job(years_of_experience=0.5, skills=["Python"])
    applicant = _applicant(total_years_experience=0.5, skills=["Python"])

    # 0.5 anni non soddisfano il minimo di un anno
    assert calculate_experience_score(job, applicant) == pytest.approx(66.7 * 0.7 + 50 * 0.3)

    result = algorithm2_skill_experience_composite(job, applicant)
    composite = 100 * math.exp(0.5 * 0.5) / math.exp(0.5 * 2)
    assert f"Skill-Experience Composite (30%): {composite:.1f}" in result.reasoning
    assert "47.2" in result.reasoning


def test_title_relevance():
    assert title_relevance(None, ["Clerk"]) == 50
    assert title_relevance("Clerk", []) == 50
    assert title_relevance("Data Entry Clerk", ["Senior Data Clerk"]) >= 2 / 3 * 80 - 1e-9
    assert title_relevance("Data Entry Clerk", ["data entry clerk"]) == 100


# ═══════════════════════════════════════════════════════════════════════════
# SKILLS / ELIGIBILITY
# ═══════════════════════════════════════════════════════════════════════════

def test_skill_scoring_exact_plus_token_overlap():
    score, matched = calculate_skill_match(
        ["JavaScript", "Data Analysis"],
        ["JavaScript", "Data Encoding and Archiving"],
    )
    # 100 (esatta) + 0.5 x 30 (token "data") su 2 skill
    assert score == pytest.approx(57.5)
    assert matched == 1


def test_skill_scoring_surplus_bonus():
    score, matched = calculate_skill_match(
        ["JavaScript", "Data Analysis"],
        ["JavaScript", "Data Encoding and Archiving", "Welding"],
    )
    assert score == pytest.approx(59.5)
    assert matched == 1


def test_skill_scoring_edge_cases():
    assert calculate_skill_match([], ["Python"]) == (50.0, 0)
    assert calculate_skill_match(["Python"], []) == (0.0, 0)
    score, matched = calculate_skill_match(["Python"], ["python", "Excel", "Word"])
    assert score == 100
    assert matched == 1


def test_eligibility_not_required_is_neutral():
    assert calculate_eligibility_match([], ["CPA"]) == (50.0, 0)
    assert calculate_eligibility_match(["None required"], []) == (50.0, 0)
    assert calculate_eligibility_match(["Not Required"], ["CPA"]) == (50.0, 0)


def test_eligibility_exact_match():
    score, matched = calculate_eligibility_match(
        ["Career Service Professional"],
        ["Career Service Professional"],
    )
    assert score == pytest.approx(100)
    assert matched == 1


def test_eligibility_required_but_missing():
    assert calculate_eligibility_match(["Career Service Professional"], []) == (0.0, 0)


def test_eligibility_counts_unique_applicant_items():
    score, matched = calculate_eligibility_match(
        ["Career Service Professional", "Career Service Professional Eligibility"],
        ["Career Service Professional"],
    )
    assert matched == 1
    assert 40 <= score <= 100


# ═══════════════════════════════════════════════════════════════════════════
# ALGORITHMS
# ═══════════════════════════════════════════════════════════════════════════

def test_weights_sum_to_one():
    assert sum(WEIGHTED_SUM_WEIGHTS.values()) == pytest.approx(1.0)
    assert sum(COMPOSITE["weights"].values()) == pytest.approx(1.0)
    assert sum(ENSEMBLE["weights"].values()) == pytest.approx(1.0)


def test_minimal_pair_end_to_end():
    job = {"degree_requirement": "Information Technology", "years_of_experience": 0}
    applicant = {"highest_educational_attainment": "Information Technology", "total_years_experience": 0}

    score1 = algorithm1_weighted_sum(job, applicant)
    score2 = algorithm2_skill_experience_composite(job, applicant)
    score3 = algorithm3_eligibility_education_tiebreaker(job, applicant)
    final = ensemble_score(job, applicant)

    assert score1.total_score == pytest.approx(62.66)
    assert score2.total_score == pytest.approx(58.02)
    assert score3.total_score == pytest.approx(57.66)
    # 62.66 vs 58.02 -> entro 5 punti -> Algorithm 3
    assert final.total_score == pytest.approx(57.66)
    assert final.algorithm_used == "Ensemble (Tie-breaker)"
    assert final.reasoning.startswith("Algorithms 1 & 2 within 5%")


@pytest.mark.parametrize("job,applicant", [
    (IT_JOB, STRONG_APPLICANT),
    (IT_JOB, WEAK_APPLICANT),
    ({**IT_JOB, "eligibilities": [], "skills": []}, WEAK_APPLICANT),
    ({**IT_JOB, "years_of_experience": 0}, STRONG_APPLICANT),
])
def test_component_scores_bounded(job, applicant):
    agent = ScoringAgent()
    for result in (
        agent.weighted_sum(job, applicant),
        agent.skill_experience_composite(job, applicant),
        agent.eligibility_education_tiebreaker(job, applicant),
        agent.ensemble_score(job, applicant),
    ):
        for value in (result.education_score, result.experience_score, result.skills_score, result.eligibility_score):
            assert 0 <= value <= 100
        assert result.matched_skills_count <= len(job["skills"])
        assert result.matched_eligibilities_count <= len(job["eligibilities"])

    total = agent.weighted_sum(job, applicant).total_score
    assert 0 <= total <= 100


def test_strong_applicant_beats_weak_applicant():
    strong = ensemble_score(IT_JOB, STRONG_APPLICANT)
    weak = ensemble_score(IT_JOB, WEAK_APPLICANT)
    assert strong.total_score > weak.total_score


def test_algorithm2_experience_only_through_ratio():
    agent = ScoringAgent()
    job = {**IT_JOB, "title": None}
    few_years = agent.skill_experience_composite(job, {**STRONG_APPLICANT, "total_years_experience": 1})
    many_years = agent.skill_experience_composite(job, {**STRONG_APPLICANT, "total_years_experience": 4})
    assert many_years.total_score > few_years.total_score
    assert many_years.experience_score > few_years.experience_score


# ═══════════════════════════════════════════════════════════════════════════
# ENSEMBLE
# ═══════════════════════════════════════════════════════════════════════════

def test_ensemble_uses_tiebreaker_when_close(monkeypatch):
    agent = ScoringAgent()
    monkeypatch.setattr(agent, "weighted_sum", lambda job, applicant: _breakdown(70))
    monkeypatch.setattr(agent, "skill_experience_composite", lambda job, applicant: _breakdown(74))
    monkeypatch.setattr(
        agent,
        "eligibility_education_tiebreaker",
        lambda job, applicant: _breakdown(65.5, "Eligibility-Education Tie-breaker"),
    )

    result, details = agent.score_with_details(IT_JOB, STRONG_APPLICANT)

    assert result.total_score == 65.5
    assert result.algorithm_used == "Ensemble (Tie-breaker)"
    assert "Tie-breaker: Eligibility-Education Tie-breaker reasoning" in result.reasoning
    assert details.ensemble_method == "tie_breaker"
    assert details.is_tie_breaker is True
    assert details.algorithm3_score == 65.5
    assert details.score_difference == pytest.approx(4.0)


def test_ensemble_weighted_average_when_far(monkeypatch):
    agent = ScoringAgent()
    monkeypatch.setattr(agent, "weighted_sum", lambda job, applicant: _breakdown(70))
    monkeypatch.setattr(agent, "skill_experience_composite", lambda job, applicant: _breakdown(90))

    def _unexpected(job, applicant):
        raise AssertionError("Algorithm 3 non deve essere calcolato")

    monkeypatch.setattr(agent, "eligibility_education_tiebreaker", _unexpected)

    result, details = agent.score_with_details(IT_JOB, STRONG_APPLICANT)

    assert result.total_score == pytest.approx(0.6 * 70 + 0.4 * 90)
    assert result.algorithm_used == "Multi-Factor Assessment"
    assert result.matched_skills_count == 2
    assert details.ensemble_method == "weighted_average"
    assert details.algorithm1_weight == 0.6
    assert details.algorithm2_weight == 0.4
    assert details.algorithm3_score is None
    assert details.is_tie_breaker is False


def test_ensemble_reasoning_strengths_and_gaps():
    assert ensemble_reasoning(90, 100, 70, 85) == (
        "Candidate demonstrates strong educational background, excellent relevant experience, "
        "good technical skills, appropriate certifications."
    )
    assert ensemble_reasoning(10, 10, 10, 10) == (
        "Needs improvement in education level, years of experience, required skills, certifications."
    )
    assert ensemble_reasoning(70, 70, 50, 70) == "Candidate evaluated across multiple qualification criteria."


# ═══════════════════════════════════════════════════════════════════════════
# INVALID RECORDS
# ═══════════════════════════════════════════════════════════════════════════

def test_missing_required_numeric_field_fails_fast():
    with pytest.raises(InvalidRecordError):
        algorithm1_weighted_sum({"skills": ["Python"]}, STRONG_APPLICANT)

    with pytest.raises(InvalidRecordError):
        ensemble_score(IT_JOB, {"skills": ["Python"]})


def test_negative_years_rejected():
    with pytest.raises(InvalidRecordError):
        ensemble_score(IT_JOB, {**STRONG_APPLICANT, "total_years_experience": -1})


def test_non_mapping_record_rejected():
    with pytest.raises(InvalidRecordError):
        ensemble_score(IT_JOB, "not a record")
