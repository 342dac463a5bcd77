"""
Errori del core di ranking.

Solo InvalidRecordError arriva al chiamante: tutti gli altri vengono
intercettati dal componente che li solleva e mappati sul relativo fallback.
"""


class JobSyncError(Exception):
    """Base per tutti gli errori del core."""
    pass


class DictionaryLoadError(JobSyncError):
    """Sorgente dizionario mancante o malformata (indice vuoto per quel dominio)."""
    pass


class LLMNotAvailableError(JobSyncError):
    """Servizio di generazione testo non raggiungibile, in errore o in timeout."""
    pass


class ClassificationError(JobSyncError):
    """Risposta del classificatore non interpretabile."""
    pass


class TieBreakError(JobSyncError):
    """Tie-break AI fallito: si mantiene l'ordine deterministico."""
    pass


class InsightError(JobSyncError):
    """Generazione insight fallita: l'insight viene omesso."""
    pass


class InvalidRecordError(JobSyncError, ValueError):
    """Record job/candidato strutturalmente invalido (violazione del contratto a monte)."""
    pass
