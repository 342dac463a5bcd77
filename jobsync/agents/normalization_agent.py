"""
Normalization Agent
Canonicalizza titoli di studio ed eligibility prima dello scoring.

Strategia (per ogni valore):
1. Lookup esatto nell'indice degli alias (dizionario YAML/CSV)
2. Se non trova, pre-filtra fino a 20 voci per overlap di token
   e chiede al classificatore AI la chiave migliore (o "UNKNOWN")
3. Qualsiasi errore del servizio -> fallback sul testo grezzo (mai eccezioni al chiamante)

Le righe composite ("X and Y", "X or Y", "X, Y") vengono scomposte,
normalizzate token per token e ricostruite mantenendo la semantica AND/OR.
"""

import asyncio
import sys
from typing import Any, Dict, List, Optional, Tuple

from jobsync.config import NORMALIZATION
from jobsync.models.applicant import ApplicantData
from jobsync.models.canonical import (
    CanonicalDegree,
    ListExpression,
    ListMode,
    NormalizationResult,
)
from jobsync.models.coercion import coerce_record
from jobsync.models.job import JobRequirements
from jobsync.services.dictionary_loader import CanonicalEntry, DictionaryLoader
from jobsync.services.errors import ClassificationError, LLMNotAvailableError
from jobsync.services.llm_service import LLMService, TextGenerator
from jobsync.services.logging_utils import format_context, print_with_prefix
from jobsync.services.prompts import CLASSIFIER_SYSTEM_PROMPT, build_classification_prompt
from jobsync.services.string_similarity import normalize_key

LIST_CONNECTORS = {"and": ListMode.AND, "or": ListMode.OR}


def _word_spans(segment: str) -> List[Tuple[int, int]]:
    """Posizioni (inizio, fine) delle parole separate da spazi."""
    spans: List[Tuple[int, int]] = []
    start: Optional[int] = None
    for i, char in enumerate(segment):
        if char.isspace():
            if start is not None:
                spans.append((start, i))
                start = None
        elif start is None:
            start = i
    if start is not None:
        spans.append((start, len(segment)))
    return spans


def parse_list_expression(text: str) -> ListExpression:
    """
    Scompone una riga in token con la sua semantica booleana.

    Connettori: parole intere "and" / "or" (case-insensitive) e virgole.
    Qualsiasi "and" rende la riga AND; altrimenti "or" o sole virgole -> OR.
    I token sono porzioni del testo originale (spaziatura interna invariata).
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return ListExpression(mode=ListMode.SINGLE, tokens=[])

    has_and = has_or = False
    tokens: List[str] = []
    for segment in trimmed.split(","):
        token_start: Optional[int] = None
        token_end = 0
        for start, end in _word_spans(segment):
            connector = LIST_CONNECTORS.get(segment[start:end].lower())
            if connector is None:
                if token_start is None:
                    token_start = start
                token_end = end
                continue
            has_and = has_and or connector == ListMode.AND
            has_or = has_or or connector == ListMode.OR
            if token_start is not None:
                tokens.append(segment[token_start:token_end])
            token_start = None
        if token_start is not None:
            tokens.append(segment[token_start:token_end])

    if has_and:
        mode = ListMode.AND
    elif has_or or "," in trimmed:
        mode = ListMode.OR
    else:
        # nessun connettore: valore singolo, testo originale intatto
        return ListExpression(mode=ListMode.SINGLE, tokens=[trimmed])
    return ListExpression(mode=mode, tokens=tokens)


def _coerce_confidence(value: Any, default: float) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return default
    return max(0.0, min(1.0, confidence))


class NormalizationAgent:
    """
    Agente che porta degree ed eligibility nella forma canonica del dizionario.

    Il servizio di generazione testo è iniettato (interfaccia TextGenerator):
    nei test si usa un fake deterministico.
    """

    def __init__(
        self,
        llm_service: Optional[TextGenerator] = None,
        dictionary_loader: Optional[DictionaryLoader] = None,
        verbose: bool = False,
    ):
        self.verbose = verbose
        self._llm_service = llm_service
        self._dictionary_loader = dictionary_loader
        # (dominio, chiave normalizzata) -> esito della classificazione AI
        self._classification_cache: Dict[Tuple[str, str], NormalizationResult] = {}

    @property
    def llm_service(self) -> TextGenerator:
        if self._llm_service is None:
            self._log("Initializing LLMService...")
            self._llm_service = LLMService(verbose=self.verbose)
        return self._llm_service

    @property
    def dictionary_loader(self) -> DictionaryLoader:
        if self._dictionary_loader is None:
            self._log("Initializing DictionaryLoader...")
            self._dictionary_loader = DictionaryLoader(verbose=self.verbose)
        return self._dictionary_loader

    # ═══════════════════════════════════════════════════════════════════════
    # SINGLE VALUE
    # ═══════════════════════════════════════════════════════════════════════

    async def normalize_degree_value(self, raw: str) -> NormalizationResult:
        return await self._normalize_value("degree", raw)

    async def normalize_eligibility_value(self, raw: str) -> NormalizationResult:
        return await self._normalize_value("eligibility", raw)

    async def _normalize_value(self, domain: str, raw: str) -> NormalizationResult:
        await self.dictionary_loader.ensure_loaded()
        raw = raw or ""
        if not raw.strip():
            return NormalizationResult(method="fallback", confidence=0.0, raw=raw)

        dictionary = self.dictionary_loader.dictionary_for(domain)
        hit = dictionary.lookup(raw)
        if hit is not None:
            return NormalizationResult(canonical_key=hit.key, method="dictionary", confidence=1.0, raw=raw)

        cache_key = (domain, normalize_key(raw))
        cached = self._classification_cache.get(cache_key)
        if cached is not None:
            return cached.model_copy(update={"raw": raw})

        candidates = dictionary.top_candidates(raw, NORMALIZATION["candidate_limit"])
        if not candidates:
            self._log(f"Nessun candidato per '{raw}' ({domain}), testo grezzo mantenuto")
            return NormalizationResult(method="fallback", confidence=0.0, raw=raw)

        try:
            result = await self._classify(domain, raw, candidates)
        except (LLMNotAvailableError, ClassificationError) as e:
            self._warn(
                f"Classificazione fallita, uso testo grezzo "
                f"({format_context(stage='classification', domain=domain, raw=raw)}): {e}"
            )
            return NormalizationResult(method="fallback", confidence=0.0, raw=raw)

        self._classification_cache[cache_key] = result
        return result

    async def _classify(
        self,
        domain: str,
        raw: str,
        candidates: List[CanonicalEntry],
    ) -> NormalizationResult:
        """
        Chiede al classificatore la chiave canonica migliore tra i candidati.

        Raises:
            LLMNotAvailableError: servizio non disponibile o in errore
            ClassificationError: risposta non interpretabile come JSON
        """
        unknown_token = NORMALIZATION["unknown_token"]
        options = [self._candidate_option(entry) for entry in candidates]
        prompt = build_classification_prompt(domain, raw, options, unknown_token)

        try:
            response = await self.llm_service.classify(prompt, system_prompt=CLASSIFIER_SYSTEM_PROMPT)
        except LLMNotAvailableError:
            raise
        except Exception as e:
            raise LLMNotAvailableError(f"Errore del servizio di classificazione: {e}") from e

        if not isinstance(response, dict):
            raise ClassificationError(f"Risposta non JSON dal classificatore per '{raw}'")

        key = response.get("canonical_key")
        key = str(key).strip() if key is not None else ""
        dictionary = self.dictionary_loader.dictionary_for(domain)

        if not key or key.upper() == unknown_token:
            confidence = _coerce_confidence(response.get("confidence"), NORMALIZATION["unknown_confidence"])
            self._log(f"'{raw}' -> UNKNOWN ({domain})")
            return NormalizationResult(method="ai-classifier", confidence=confidence, raw=raw)

        if dictionary.get(key) is None:
            confidence = _coerce_confidence(response.get("confidence"), NORMALIZATION["invalid_key_confidence"])
            self._warn(
                f"Chiave inesistente restituita dal classificatore, ignorata "
                f"({format_context(stage='classification', domain=domain, raw=raw, key=key)})"
            )
            return NormalizationResult(method="ai-classifier", confidence=confidence, raw=raw)

        confidence = _coerce_confidence(response.get("confidence"), NORMALIZATION["matched_confidence"])
        self._log(f"'{raw}' -> {key} ({domain}, confidence {confidence:.2f})")
        return NormalizationResult(canonical_key=key, method="ai-classifier", confidence=confidence, raw=raw)

    @staticmethod
    def _candidate_option(entry: CanonicalEntry) -> Dict[str, Any]:
        if isinstance(entry, CanonicalDegree):
            return {
                "key": entry.key,
                "canonical": entry.canonical,
                "level": entry.level,
                "field_group": entry.field_group,
            }
        return {
            "key": entry.key,
            "canonical": entry.canonical,
            "category": entry.category,
        }

    async def _resolve_entry(self, domain: str, raw: str) -> Optional[CanonicalEntry]:
        result = await self._normalize_value(domain, raw)
        if not result.canonical_key:
            return None
        return self.dictionary_loader.dictionary_for(domain).get(result.canonical_key)

    # ═══════════════════════════════════════════════════════════════════════
    # COMPOSITE LINES
    # ═══════════════════════════════════════════════════════════════════════

    async def normalize_composite_degree_string(self, raw: str) -> Tuple[str, Optional[CanonicalDegree]]:
        """
        Normalizza una stringa di titoli di studio, anche composita.

        Returns:
            (testo canonico ricostruito, prima voce canonica risolta per i metadati level/field_group)
        """
        original = raw or ""
        expression = parse_list_expression(original)
        if not expression.tokens:
            return original, None

        entries = await asyncio.gather(
            *(self._resolve_entry("degree", token) for token in expression.tokens)
        )
        texts = [
            entry.canonical if entry is not None else token
            for token, entry in zip(expression.tokens, entries)
        ]
        primary = next((entry for entry in entries if entry is not None), None)

        if not expression.is_composite:
            return texts[0], primary
        return expression.joiner.join(texts), primary

    async def normalize_composite_eligibility_line(self, raw: str) -> str:
        """Normalizza una riga di eligibility del job preservando la semantica AND/OR."""
        original = raw or ""
        expression = parse_list_expression(original)
        if not expression.tokens:
            return original

        entries = await asyncio.gather(
            *(self._resolve_entry("eligibility", token) for token in expression.tokens)
        )
        texts = [
            entry.canonical if entry is not None else token
            for token, entry in zip(expression.tokens, entries)
        ]
        if not expression.is_composite:
            return texts[0]
        return expression.joiner.join(texts)

    # ═══════════════════════════════════════════════════════════════════════
    # RECORDS
    # ═══════════════════════════════════════════════════════════════════════

    async def normalize_job(self, job: Any) -> JobRequirements:
        """Copia del job con degree ed eligibility canonici + metadati del degree primario."""
        job = coerce_record(JobRequirements, job, "job")
        await self.dictionary_loader.ensure_loaded()

        (degree_text, degree_entry), eligibilities = await asyncio.gather(
            self.normalize_composite_degree_string(job.degree_requirement),
            asyncio.gather(*(self.normalize_composite_eligibility_line(line) for line in job.eligibilities)),
        )
        return job.model_copy(
            deep=True,
            update={
                "degree_requirement": degree_text,
                "eligibilities": list(eligibilities),
                **_degree_metadata(degree_entry),
            },
        )

    async def normalize_applicant(self, applicant: Any) -> ApplicantData:
        """Copia del candidato con titolo di studio ed eligibility canonici."""
        applicant = coerce_record(ApplicantData, applicant, "applicant")
        await self.dictionary_loader.ensure_loaded()

        (degree_text, degree_entry), titles = await asyncio.gather(
            self.normalize_composite_degree_string(applicant.highest_educational_attainment),
            asyncio.gather(*(self._canonical_eligibility_title(e.eligibility_title) for e in applicant.eligibilities)),
        )
        eligibilities = [
            eligibility.model_copy(update={"eligibility_title": title})
            for eligibility, title in zip(applicant.eligibilities, titles)
        ]
        return applicant.model_copy(
            deep=True,
            update={
                "highest_educational_attainment": degree_text,
                "eligibilities": eligibilities,
                **_degree_metadata(degree_entry),
            },
        )

    async def _canonical_eligibility_title(self, title: str) -> str:
        entry = await self._resolve_entry("eligibility", title)
        return entry.canonical if entry is not None else title

    async def normalize_job_and_applicant(self, job: Any, applicant: Any) -> Tuple[JobRequirements, ApplicantData]:
        """Copie normalizzate di job e candidato (i record di input non vengono modificati)."""
        await self.dictionary_loader.ensure_loaded()
        normalized_job, normalized_applicant = await asyncio.gather(
            self.normalize_job(job),
            self.normalize_applicant(applicant),
        )
        return normalized_job, normalized_applicant

    def _log(self, message: str) -> None:
        print_with_prefix("[NormalizationAgent]", message, enabled=self.verbose)

    def _warn(self, message: str) -> None:
        print_with_prefix("[NormalizationAgent]", message, stream=sys.stderr)


def _degree_metadata(entry: Optional[CanonicalDegree]) -> Dict[str, Optional[str]]:
    if entry is None:
        return {"degree_level": None, "degree_field_group": None}
    level = entry.level.lower().strip() if entry.level else None
    return {"degree_level": level or None, "degree_field_group": entry.field_group}


# ═══════════════════════════════════════════════════════════════════════════
# SIMPLE API
# ═══════════════════════════════════════════════════════════════════════════

async def normalize_job_and_applicant(
    job: Any,
    applicant: Any,
    llm_service: Optional[TextGenerator] = None,
    dictionary_loader: Optional[DictionaryLoader] = None,
    verbose: bool = False,
) -> Tuple[JobRequirements, ApplicantData]:
    """
    Funzione semplice per normalizzare una coppia job/candidato.

    Example:
        job, applicant = await normalize_job_and_applicant(job_dict, applicant_dict)
    """
    agent = NormalizationAgent(
        llm_service=llm_service,
        dictionary_loader=dictionary_loader,
        verbose=verbose,
    )
    return await agent.normalize_job_and_applicant(job, applicant)
