"""
String Similarity
Similarità fuzzy tra stringhe libere (titoli di studio, skill, eligibility).

- similarity(): Levenshtein normalizzato, 0-100 (usato nello scoring)
- token_similarity(): Jaccard sui token, 0-1 (solo pre-filtro dizionario)
"""

import re
from typing import List

from rapidfuzz.distance import Levenshtein

from jobsync.config import TOKEN_MIN_LENGTH, TOKEN_STOPWORDS

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


def normalize_key(raw: str) -> str:
    """Chiave di lookup nel dizionario: lowercase, niente punteggiatura, spazi collassati."""
    text = (raw or "").lower().strip()
    text = _NON_WORD.sub(" ", text)
    return _WHITESPACE.sub(" ", text).strip()


def normalize_tokens(text: str) -> List[str]:
    """
    Tokenizza una stringa per il confronto per parole chiave.

    Rimuove punteggiatura, divide sugli spazi, scarta token corti (<= 2) e stopword.
    L'ordine e i duplicati vengono mantenuti.
    """
    cleaned = _NON_WORD.sub(" ", (text or "").lower())
    return [
        token for token in cleaned.split()
        if len(token) >= TOKEN_MIN_LENGTH and token not in TOKEN_STOPWORDS
    ]


def similarity(a: str, b: str) -> float:
    """Similarità 0-100 basata sulla distanza di Levenshtein (case-insensitive, trimmed)."""
    s1 = (a or "").lower().strip()
    s2 = (b or "").lower().strip()

    if s1 == s2:
        return 100.0
    if not s1 or not s2:
        return 0.0

    max_len = max(len(s1), len(s2))
    distance = Levenshtein.distance(s1, s2)
    score = (max_len - distance) / max_len * 100
    return max(0.0, min(100.0, score))


def token_similarity(a: str, b: str) -> float:
    """Jaccard sui set di token (0-1). Non usato per lo score finale."""
    a_tokens = set(normalize_key(a).split())
    b_tokens = set(normalize_key(b).split())

    if not a_tokens or not b_tokens:
        return 0.0

    intersection = len(a_tokens & b_tokens)
    union = len(a_tokens | b_tokens)
    return intersection / union if union else 0.0


def shared_token_ratio(reference: str, other: str) -> float:
    """Quota dei token di `reference` presenti anche in `other` (0-1)."""
    ref_tokens = normalize_tokens(reference)
    if not ref_tokens:
        return 0.0
    other_tokens = set(normalize_tokens(other))
    common = [token for token in ref_tokens if token in other_tokens]
    return len(common) / len(ref_tokens)
