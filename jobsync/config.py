"""
Configurazione della policy di scoring e ranking.
Tutte le soglie e i pesi usati dagli algoritmi stanno qui, raggruppati per algoritmo.
"""

# ═══════════════════════════════════════════════════════════════════════════
# STRING SIMILARITY
# ═══════════════════════════════════════════════════════════════════════════

TOKEN_STOPWORDS = frozenset({"the", "and", "for", "with"})
TOKEN_MIN_LENGTH = 3  # token di lunghezza <= 2 scartati

# ═══════════════════════════════════════════════════════════════════════════
# DEGREE / SKILL / ELIGIBILITY MATCHING
# ═══════════════════════════════════════════════════════════════════════════

DEGREE_MATCH = {
    "or_alternative_perfect": 85,  # alternativa OR con core field >= 85 -> 100
}

SKILL_MATCH = {
    "exact": 100,
    "high_threshold": 80,
    "high_score": 80,
    "medium_threshold": 50,
    "medium_score": 50,
    "token_weight": 30,
    "matched_min": 30,        # best >= 30 -> skill "matchata"
    "surplus_per_skill": 2,
    "surplus_cap": 10,
    "neutral": 50,            # nessuna skill richiesta
}

ELIGIBILITY_MATCH = {
    "strong_threshold": 70,
    "moderate_threshold": 40,
    "moderate_factor": 0.7,
    "token_weight": 40,
    "ratio_weight": 60,
    "similarity_weight": 0.4,
    "surplus_per_item": 5,
    "surplus_cap": 15,
    "matched_floor": 40,
    "unmatched_cap": 25,
    "neutral": 50,
    "not_required_markers": ("none", "not required"),
}

# ═══════════════════════════════════════════════════════════════════════════
# EDUCATION
# ═══════════════════════════════════════════════════════════════════════════

# Scala ordinata (indice piu alto = titolo superiore)
DEGREE_LEVELS = [
    "elementary",
    "secondary",
    "vocational",
    "bachelor",
    "master",
    "doctoral",
    "graduate studies",
]

EDUCATION = {
    "same_level_similar_threshold": 40,
    "same_level_similar_floor": 60,
    "same_level_floor": 40,
    "higher_level_bonus": 15,
    "lower_level_penalty": 20,
    "lower_level_floor": 30,
    "related_field_floor": 85,
    "minimum": 30,
}

# Nota: Accounting e Office/Public Administration sono specializzazioni diverse
RELATED_FIELDS = {
    "information technology": ["computer science", "software engineering", "information systems"],
    "computer science": ["information technology", "software engineering", "computer engineering"],
    "civil engineering": ["architecture", "structural engineering", "construction management"],
    "nursing": ["midwifery", "health sciences", "medical technology"],
    "accounting": ["finance", "business administration"],
    "office administration": ["public administration", "business administration", "secretarial"],
    "public administration": ["office administration", "business administration", "political science"],
    "business administration": ["management", "organizational development"],
}

# ═══════════════════════════════════════════════════════════════════════════
# EXPERIENCE
# ═══════════════════════════════════════════════════════════════════════════

EXPERIENCE = {
    "meets_requirement": 100,
    "below_requirement": 66.7,
    "no_experience": 33.3,
    "years_weight": 0.7,
    "relevance_weight": 0.3,
    "neutral_relevance": 50,
    "title_token_weight": 80,
    "min_required_years": 1,  # evita divisioni per zero
}

# ═══════════════════════════════════════════════════════════════════════════
# ALGORITHMS
# ═══════════════════════════════════════════════════════════════════════════

# Algorithm 1 (must sum to 1.0)
WEIGHTED_SUM_WEIGHTS = {
    "education": 0.30,
    "experience": 0.20,
    "skills": 0.20,
    "eligibility": 0.30,
}

# Algorithm 2
COMPOSITE = {
    "beta": 0.5,
    "ratio_cap": 2.0,
    "weights": {  # must sum to 1.0
        "composite": 0.30,
        "education": 0.35,
        "eligibility": 0.35,
    },
}

# Algorithm 3 (punti massimi per criterio)
TIEBREAKER_POINTS = {
    "eligibility": 40,
    "no_eligibility_credit": 20,
    "education": 30,
    "experience": 20,
    "skill_per_match": 10,
    "skill_cap": 20,
    "skill_weight": 0.10,
}

ENSEMBLE = {
    "tie_threshold": 5.0,
    "weights": {  # must sum to 1.0
        "algorithm1": 0.6,
        "algorithm2": 0.4,
    },
}

ENSEMBLE_REASONING = {
    "education_strong": 80,
    "education_gap": 60,
    "experience_strong": 80,
    "experience_gap": 60,
    "skills_strong": 60,
    "skills_gap": 40,
    "eligibility_strong": 80,
    "eligibility_gap": 60,
}

# ═══════════════════════════════════════════════════════════════════════════
# RANKING / NORMALIZATION / LLM
# ═══════════════════════════════════════════════════════════════════════════

RANKING = {
    "sort_epsilon": 0.01,
    "tie_epsilon": 0.1,
    "max_micro_adjustment": 0.5,
    "insight_top_k": 5,
    "compare_tie_margin": 1.0,
}

NORMALIZATION = {
    "candidate_limit": 20,
    "matched_confidence": 0.8,
    "unknown_confidence": 0.3,
    "invalid_key_confidence": 0.2,
    "unknown_token": "UNKNOWN",
}

LLM_CONFIG = {
    "classification_temperature": 0.1,
    "insight_temperature": 0.3,
}
