"""
Prompt per il servizio di generazione testo.
(classificazione dizionario, tie-break, insight)
"""

import json
from typing import Any, Dict, List, Sequence

CLASSIFIER_SYSTEM_PROMPT = """You are a normalization assistant inside an HR system for Philippine government jobs.
You map free-text values onto a closed list of canonical options.
Be conservative: when no option clearly fits, answer "UNKNOWN".
ALWAYS respond with valid JSON only and follow the requested schema exactly."""

TIE_BREAK_SYSTEM_PROMPT = """You are an impartial HR evaluator.
You receive candidates whose computed scores are practically identical and you must
differentiate them using ONLY the profile data provided. Do not invent facts.
ALWAYS respond with valid JSON only and follow the requested schema exactly."""


def build_classification_prompt(
    domain: str,
    raw_value: str,
    options: List[Dict[str, Any]],
    unknown_token: str = "UNKNOWN",
) -> str:
    """
    Prompt di classificazione verso un dizionario canonico.

    Args:
        domain: "degree" oppure "eligibility"
        raw_value: Stringa libera da normalizzare
        options: Candidati {key, canonical, ...metadati}
    """
    if domain == "degree":
        task = "NORMALIZE an applicant's degree name to one of the canonical degrees provided."
        label = "degree"
    else:
        task = "NORMALIZE an applicant's eligibility or license name to one of the canonical eligibilities provided."
        label = "eligibility"

    return f"""TASK:
{task}

CANONICAL {label.upper()} OPTIONS (JSON):
{json.dumps(options, ensure_ascii=False, indent=2)}

RAW {label.upper()} STRING:
"{raw_value}"

Choose the SINGLE best canonical {label} key from the list above.
If you are not reasonably sure, choose "{unknown_token}".

Respond ONLY in this exact JSON format:
{{
  "canonical_key": "<one of the keys from the list OR '{unknown_token}'>",
  "confidence": <number between 0 and 1>,
  "reasoning": "<short explanation in 1-2 sentences>"
}}

JSON:"""


def build_tie_break_prompt(
    job_title: str,
    job_description: str,
    candidates: Sequence[Dict[str, Any]],
    max_adjustment: float,
) -> str:
    """Prompt per differenziare un gruppo di candidati a pari merito."""
    profiles = json.dumps(list(candidates), ensure_ascii=False, indent=2)
    return f"""TASK:
The following candidates applied for the same position and received practically identical scores.
Differentiate them by assigning each one a small signed micro-adjustment.

JOB TITLE: {job_title or "-"}
JOB DESCRIPTION:
{job_description or "-"}

TIED CANDIDATES (JSON):
{profiles}

RULES:
- Every micro_adjustment must be between -{max_adjustment} and +{max_adjustment}
- The better fit for THIS job gets the higher adjustment
- Base your judgement only on education, experience, job titles, skills and eligibilities shown
- Give a one-sentence justification per candidate

OUTPUT FORMAT (JSON ONLY):
{{
  "adjustments": [
    {{"applicant_id": "<id>", "micro_adjustment": <number>, "reasoning": "<one sentence>"}}
  ]
}}

JSON:"""


def build_insight_prompt(job: Dict[str, Any], candidates: Sequence[Dict[str, Any]]) -> str:
    """Prompt per gli insight testuali sui candidati in testa alla classifica."""
    lines = []
    for i, c in enumerate(candidates, start=1):
        lines.append(
            f"{i}. {c['applicant_name'] or c['applicant_id']}\n"
            f"   - Match Score: {c['match_score']:.1f}%\n"
            f"   - Algorithm: {c['algorithm_used']}\n"
            f"   - Scoring: Education {c['education_score']:.1f}%, Experience {c['experience_score']:.1f}%, "
            f"Skills {c['skills_score']:.1f}%, Eligibility {c['eligibility_score']:.1f}%"
        )
    candidates_block = "\n".join(lines)

    return f"""You are an HR expert analyzing job applicants.

Job Position: {job.get("title") or "-"}
Job Description: {job.get("description") or "-"}
Requirements:
- Education: {job.get("degree_requirement") or "-"}
- Experience: {job.get("years_of_experience", 0)} years
- Skills: {", ".join(job.get("skills") or []) or "-"}
- Eligibilities: {", ".join(job.get("eligibilities") or []) or "-"}

Top {len(candidates)} Candidates (already scored):
{candidates_block}

For each candidate, provide a brief (2-3 sentences) professional insight about their fit for this role. Focus on:
1. Key strengths that make them suitable
2. Any potential concerns or gaps
3. Recommendation (Highly Recommended / Recommended / Conditional)

Format your response as:
Candidate 1: [Your insight]
Candidate 2: [Your insight]
...

Keep it concise and professional."""
