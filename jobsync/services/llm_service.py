"""
LLM Service
Wrapper asincrono per LLM locali (LM Studio o Ollama) - gestisce le chiamate al modello.

Il core dipende solo dall'interfaccia TextGenerator (classify / generate):
nei test viene sostituito da un fake deterministico.
"""

import asyncio
import json
import os
import re
import sys
from typing import Any, Dict, Optional, Protocol

import ollama
from dotenv import load_dotenv

from jobsync.config import LLM_CONFIG
from jobsync.services.errors import LLMNotAvailableError
from jobsync.services.logging_utils import print_with_prefix

load_dotenv()

SUPPORTED_PROVIDERS = ("ollama", "lmstudio")


class TextGenerator(Protocol):
    """Capability minima richiesta al servizio di generazione testo."""

    async def classify(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        ...

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> str:
        ...


class LLMService:
    """
    Servizio per interagire con LLM locali (LM Studio o Ollama).
    """

    def __init__(
        self,
        model: Optional[str] = None,
        temperature: float = 0.3,
        timeout: float = 60,
        num_gpu: int = -1,  # -1 = auto (usa tutte le GPU disponibili)
        provider: Optional[str] = None,  # "ollama" o "lmstudio"
        lmstudio_base_url: Optional[str] = None,
        lmstudio_api_key: Optional[str] = None,
        lmstudio_model: Optional[str] = None,
        verbose: bool = True,
    ):
        """
        Inizializza il servizio LLM.

        Args:
            model: Nome del modello Ollama (default: env OLLAMA_MODEL o "llama3.2")
            temperature: Temperatura per la generazione (0-1, più basso = più deterministico)
            timeout: Timeout in secondi per ogni chiamata
            num_gpu: Numero di layer GPU (-1 = auto, 0 = solo CPU)
            provider: "ollama" o "lmstudio" (default: env JOBSYNC_LLM_PROVIDER o "lmstudio";
                un valore env non valido rende il servizio indisponibile)
            lmstudio_base_url: Base URL per LM Studio (default: env LMSTUDIO_BASE_URL o http://localhost:1234/v1)
            lmstudio_api_key: API key per LM Studio (default: env LMSTUDIO_API_KEY o "lmstudio")
            lmstudio_model: Nome modello LM Studio (default: env LMSTUDIO_MODEL)
            verbose: Se False, silenzia i log informativi
        """
        if provider and provider.lower() not in SUPPORTED_PROVIDERS:
            raise ValueError("provider deve essere 'ollama' o 'lmstudio'")
        self.provider = (provider or os.getenv("JOBSYNC_LLM_PROVIDER", "lmstudio")).lower()
        # None = non ancora verificato (la verifica avviene alla prima chiamata)
        self.is_available: Optional[bool] = None
        if self.provider not in SUPPORTED_PROVIDERS:
            # configurazione da env non valida: servizio indisponibile, il core usa i fallback
            self._warn(f"JOBSYNC_LLM_PROVIDER={self.provider!r} non supportato, LLM disabilitato")
            self.is_available = False

        if self.provider == "lmstudio":
            self.model = lmstudio_model or os.getenv("LMSTUDIO_MODEL") or model or "meta-llama-3.1-8b-instruct"
        else:
            self.model = model or os.getenv("OLLAMA_MODEL", "llama3.2")
        self.temperature = temperature
        self.timeout = timeout
        self.num_gpu = num_gpu
        self.verbose = verbose
        self._lmstudio_client = None
        self._ollama_client = None
        self.lmstudio_base_url = lmstudio_base_url or os.getenv("LMSTUDIO_BASE_URL", "http://localhost:1234/v1")
        self.lmstudio_api_key = lmstudio_api_key or os.getenv("LMSTUDIO_API_KEY", "lmstudio")

    def _get_ollama_client(self) -> ollama.AsyncClient:
        if self._ollama_client is None:
            self._ollama_client = ollama.AsyncClient(timeout=self.timeout)
        return self._ollama_client

    def _get_lmstudio_client(self):
        """Crea (lazy) client OpenAI compatibile con LM Studio."""
        if self._lmstudio_client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise LLMNotAvailableError(
                    "Package 'openai' mancante. Installa con: pip install openai"
                ) from e

            self._lmstudio_client = AsyncOpenAI(
                base_url=self.lmstudio_base_url,
                api_key=self.lmstudio_api_key,
                timeout=self.timeout,
            )
        return self._lmstudio_client

    async def check_availability(self) -> bool:
        """Verifica che il provider sia raggiungibile e il modello disponibile."""
        try:
            if self.provider == "ollama":
                models = await self._get_ollama_client().list()
                model_names = [m.model for m in models.models] if models.models else []
            else:
                models = await self._get_lmstudio_client().models.list()
                model_names = [m.id for m in models.data] if getattr(models, "data", None) else []
        except Exception as e:
            self.is_available = False
            self._log(f"{self.provider} non raggiungibile: {e}")
            return False

        # Cerca il modello (con o senza tag :latest)
        model_found = any(
            self.model in name or name.startswith(self.model)
            for name in model_names
        )
        if not model_found:
            self._log(f"Modello '{self.model}' non trovato su {self.provider}. Modelli disponibili: {model_names}")
            self.is_available = False
        else:
            self.is_available = True
            self._log(f"LLM Service pronto (provider: {self.provider}, modello: {self.model})")
        return self.is_available

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        model: Optional[str] = None,
    ) -> str:
        """
        Genera testo dal prompt.

        Args:
            prompt: Il prompt da inviare al modello
            system_prompt: Prompt di sistema opzionale
            temperature: Override della temperatura
            model: Override del modello per questa chiamata

        Returns:
            Testo generato dal modello

        Raises:
            LLMNotAvailableError: provider non disponibile, errore o timeout
        """
        if self.is_available is None:
            await self.check_availability()
        if not self.is_available:
            raise LLMNotAvailableError(
                f"{self.provider} non disponibile. Verifica che l'endpoint sia raggiungibile "
                f"(base_url={self.lmstudio_base_url}) e che il modello '{self.model}' sia caricato"
            )

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        temperature = self.temperature if temperature is None else temperature
        try:
            return await asyncio.wait_for(
                self._chat(messages, temperature, model or self.model),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise LLMNotAvailableError(f"Timeout chiamata {self.provider} ({self.timeout}s)") from e
        except LLMNotAvailableError:
            raise
        except Exception as e:
            raise LLMNotAvailableError(f"Errore chiamata {self.provider}: {e}") from e

    async def _chat(self, messages: list, temperature: float, model: str) -> str:
        if self.provider == "ollama":
            response = await self._get_ollama_client().chat(
                model=model,
                messages=messages,
                options={
                    "temperature": temperature,
                    "num_gpu": self.num_gpu,
                },
            )
            return response.message.content or ""

        response = await self._get_lmstudio_client().chat.completions.create(
            model=model,
            messages=messages,
            temperature=temperature,
        )
        return response.choices[0].message.content or ""

    async def generate_json(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Genera e parsa JSON dal prompt.

        Returns:
            Dizionario parsato o None se parsing fallisce
        """
        if "json" not in prompt.lower():
            prompt += "\n\nRespond ONLY with valid JSON, no other text."

        response_text = await self.generate(prompt, system_prompt, temperature)
        return extract_json(response_text)

    async def classify(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """Chiamata strutturata (JSON) a bassa temperatura."""
        return await self.generate_json(prompt, system_prompt, temperature=LLM_CONFIG["classification_temperature"])

    def _log(self, message: str) -> None:
        print_with_prefix("[LLMService]", message, enabled=self.verbose)

    def _warn(self, message: str) -> None:
        print_with_prefix("[LLMService]", message, stream=sys.stderr)


def extract_json(text: str) -> Optional[Dict[str, Any]]:
    """Estrae il primo oggetto JSON da testo che potrebbe contenere altro."""
    if not text:
        return None

    # Prima prova parsing diretto
    try:
        parsed = json.loads(text.strip())
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    # Fallback: blocchi di codice markdown
    for pattern in (r"```json\s*([\s\S]*?)\s*```", r"```\s*([\s\S]*?)\s*```"):
        match = re.search(pattern, text)
        if match:
            try:
                parsed = json.loads(match.group(1))
                if isinstance(parsed, dict):
                    return parsed
            except json.JSONDecodeError:
                continue

    # Cerca il primo oggetto {...} bilanciato
    start_idx = text.find("{")
    if start_idx == -1:
        return None

    depth = 0
    for i, char in enumerate(text[start_idx:], start_idx):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                try:
                    parsed = json.loads(text[start_idx:i + 1])
                    return parsed if isinstance(parsed, dict) else None
                except json.JSONDecodeError:
                    return None
    return None
