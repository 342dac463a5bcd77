"""
Dictionary Loader
Carica i dizionari canonici di titoli di studio (degree) ed eligibility.

Formati supportati per ogni sorgente:
- YAML lista:   [{key, canonical, aliases: [...], level|category, field_group}, ...]
- YAML mappa:   {<key>: {canonical, aliases, ...}, ...}
- CSV:          colonne key, canonical, aliases (separati da virgola), level|category, field_group
Le due forme YAML possono essere racchiuse sotto `degrees:` / `eligibilities:`.

Ogni sorgente viene caricata in modo indipendente: se una fallisce, quel dominio
resta con un indice vuoto (solo classificazione AI) e l'altro continua a funzionare.
"""

import asyncio
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd
import yaml
from pydantic import ValidationError

from jobsync.config import NORMALIZATION
from jobsync.models.canonical import CanonicalDegree, CanonicalEligibility
from jobsync.services.errors import DictionaryLoadError
from jobsync.services.logging_utils import format_context, print_with_prefix
from jobsync.services.string_similarity import normalize_key, token_similarity

CanonicalEntry = Union[CanonicalDegree, CanonicalEligibility]

PROJECT_ROOT = Path(__file__).parent.parent.parent
DEFAULT_DEGREES_PATH = "data/dictionaries/degrees.yaml"
DEFAULT_ELIGIBILITIES_PATH = "data/dictionaries/eligibilities.yaml"

# dominio -> chiave wrapper opzionale nel documento YAML
WRAPPER_KEYS = {
    "degree": "degrees",
    "eligibility": "eligibilities",
}


class CanonicalDictionary:
    """
    Indice in memoria per un dominio (degree o eligibility).

    - items_by_key: key -> voce canonica
    - alias_index: alias normalizzato -> voce canonica (vince il primo, mai sovrascritto)
    """

    def __init__(self, domain: str, entries: Optional[List[CanonicalEntry]] = None):
        self.domain = domain
        self.items_by_key: Dict[str, CanonicalEntry] = {}
        self.alias_index: Dict[str, CanonicalEntry] = {}
        for entry in entries or []:
            self.add(entry)

    def add(self, entry: CanonicalEntry) -> None:
        if entry.key in self.items_by_key:
            return
        self.items_by_key[entry.key] = entry

        # Il canonical è sempre alias di se stesso (normalizzazione idempotente)
        for alias in [entry.canonical, *entry.aliases]:
            alias_key = normalize_key(alias)
            if alias_key and alias_key not in self.alias_index:
                self.alias_index[alias_key] = entry

    def lookup(self, raw: str) -> Optional[CanonicalEntry]:
        return self.alias_index.get(normalize_key(raw))

    def get(self, key: str) -> Optional[CanonicalEntry]:
        return self.items_by_key.get(key)

    def top_candidates(self, raw: str, limit: Optional[int] = None) -> List[CanonicalEntry]:
        """Voci con overlap di token > 0 rispetto al canonical, ordinate per similarità decrescente."""
        limit = limit or NORMALIZATION["candidate_limit"]
        scored = []
        for entry in self.items_by_key.values():
            score = token_similarity(raw, entry.canonical)
            if score > 0:
                scored.append((score, entry))
        scored.sort(key=lambda pair: pair[0], reverse=True)
        return [entry for _, entry in scored[:limit]]

    def __len__(self) -> int:
        return len(self.items_by_key)


def _as_aliases(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [alias.strip() for alias in value.split(",") if alias.strip()]
    if isinstance(value, (list, tuple)):
        return [str(alias).strip() for alias in value if alias is not None and str(alias).strip()]
    return []


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def coerce_entry(raw: Any, domain: str, default_key: Optional[str] = None) -> Optional[CanonicalEntry]:
    """Converte un record grezzo nella voce canonica del dominio (None se incompleto)."""
    if isinstance(raw, str):
        # forma compatta in mappa: {key: "Canonical"}
        raw = {"canonical": raw}
    if not isinstance(raw, dict):
        return None

    key = _optional_str(raw.get("key") or raw.get("id") or default_key)
    canonical = _optional_str(raw.get("canonical"))
    if not key or not canonical:
        return None

    try:
        if domain == "degree":
            return CanonicalDegree(
                key=key,
                canonical=canonical,
                level=_optional_str(raw.get("level")),
                field_group=_optional_str(raw.get("field_group") or raw.get("fieldGroup")),
                aliases=_as_aliases(raw.get("aliases")),
            )
        return CanonicalEligibility(
            key=key,
            canonical=canonical,
            category=_optional_str(raw.get("category")),
            aliases=_as_aliases(raw.get("aliases")),
        )
    except ValidationError:
        return None


def parse_dictionary_document(data: Any, domain: str) -> List[CanonicalEntry]:
    """
    Risolve la forma del documento (lista o mappa, con o senza wrapper)
    in una lista di voci canoniche. Le voci senza key o canonical vengono scartate.

    Raises:
        DictionaryLoadError: documento vuoto o di forma non riconosciuta
    """
    wrapper = WRAPPER_KEYS.get(domain)
    if isinstance(data, dict) and wrapper in data:
        data = data[wrapper]

    if isinstance(data, list):
        entries = [coerce_entry(item, domain) for item in data]
    elif isinstance(data, dict):
        entries = [coerce_entry(value, domain, default_key=str(key)) for key, value in data.items()]
    else:
        raise DictionaryLoadError(
            f"Formato dizionario non valido per '{domain}': atteso lista o mappa, trovato {type(data).__name__}"
        )
    return [entry for entry in entries if entry is not None]


def _read_csv_records(path: Path) -> List[Dict[str, Any]]:
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False)
    except (OSError, ValueError, pd.errors.ParserError) as e:
        raise DictionaryLoadError(f"CSV non leggibile: {path} ({e})") from e
    if "key" not in df.columns and "id" not in df.columns:
        raise DictionaryLoadError(f"CSV senza colonna 'key': {path}")
    return df.to_dict("records")


def read_dictionary_source(path: Optional[Union[str, Path]], domain: str) -> List[CanonicalEntry]:
    """
    Legge e parsa una sorgente (bloccante: va eseguita in un worker thread).

    Raises:
        DictionaryLoadError: percorso mancante, file illeggibile o malformato
    """
    if not path:
        raise DictionaryLoadError(f"Nessuna sorgente configurata per '{domain}'")
    path = Path(path)
    if not path.exists():
        raise DictionaryLoadError(f"Sorgente non trovata: {path}")

    if path.suffix.lower() == ".csv":
        return parse_dictionary_document(_read_csv_records(path), domain)

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise DictionaryLoadError(f"YAML non leggibile: {path} ({e})") from e
    return parse_dictionary_document(data, domain)


def resolve_source_path(path: Optional[Union[str, Path]], env_var: str, default: str) -> Optional[Path]:
    """Percorso esplicito > variabile d'ambiente > default nel progetto."""
    value = path or os.getenv(env_var) or default
    if not value:
        return None
    value = Path(value)
    if value.is_absolute() or value.exists():
        return value
    return PROJECT_ROOT / value


class DictionaryLoader:
    """
    Possiede i due dizionari canonici.

    ensure_loaded() è idempotente e single-flight: il primo chiamante avvia il
    caricamento, i chiamanti concorrenti attendono lo stesso task (schermato:
    la cancellazione di un chiamante non interrompe il caricamento). Un task
    fallito o cancellato viene scartato e il chiamante successivo riprova.
    """

    def __init__(
        self,
        degrees_path: Optional[Union[str, Path]] = None,
        eligibilities_path: Optional[Union[str, Path]] = None,
        verbose: bool = False,
    ):
        self.degrees_path = resolve_source_path(degrees_path, "JOBSYNC_DEGREES_PATH", DEFAULT_DEGREES_PATH)
        self.eligibilities_path = resolve_source_path(
            eligibilities_path, "JOBSYNC_ELIGIBILITIES_PATH", DEFAULT_ELIGIBILITIES_PATH
        )
        self.verbose = verbose

        self.degrees = CanonicalDictionary("degree")
        self.eligibilities = CanonicalDictionary("eligibility")
        self.load_count = 0
        self._loaded = False
        self._load_task: Optional[asyncio.Task] = None

    @property
    def is_loaded(self) -> bool:
        return self._loaded

    def dictionary_for(self, domain: str) -> CanonicalDictionary:
        return self.degrees if domain == "degree" else self.eligibilities

    async def ensure_loaded(self) -> None:
        if self._loaded:
            return
        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())
            self._load_task.add_done_callback(self._on_load_done)
        await asyncio.shield(self._load_task)

    def _on_load_done(self, task: asyncio.Task) -> None:
        if task.cancelled() or task.exception() is not None:
            self._load_task = None

    async def _load(self) -> None:
        self.load_count += 1
        degrees, eligibilities = await asyncio.gather(
            self._load_source("degree", self.degrees_path),
            self._load_source("eligibility", self.eligibilities_path),
        )
        # Swap unico: gli indici vengono sostituiti solo a parsing completato
        self.degrees, self.eligibilities = degrees, eligibilities
        self._loaded = True
        self._log(f"Dizionari pronti: {len(degrees)} degree, {len(eligibilities)} eligibility")

    async def _load_source(self, domain: str, path: Optional[Path]) -> CanonicalDictionary:
        try:
            entries = await asyncio.to_thread(read_dictionary_source, path, domain)
        except DictionaryLoadError as e:
            self._warn(
                f"Caricamento dizionario fallito, solo classificazione AI "
                f"({format_context(stage='dictionary_load', domain=domain, path=str(path) if path else None)}): {e}"
            )
            return CanonicalDictionary(domain)
        dictionary = CanonicalDictionary(domain, entries)
        self._log(f"   -> {domain}: {len(dictionary)} voci, {len(dictionary.alias_index)} alias da {path}")
        return dictionary

    def _log(self, message: str) -> None:
        print_with_prefix("[DictionaryLoader]", message, enabled=self.verbose)

    def _warn(self, message: str) -> None:
        print_with_prefix("[DictionaryLoader]", message, stream=sys.stderr)
