# services package
"""Services for the applicant ranking system (tools used by agents)."""

from jobsync.services.dictionary_loader import CanonicalDictionary, DictionaryLoader
from jobsync.services.errors import (
    ClassificationError,
    DictionaryLoadError,
    InsightError,
    InvalidRecordError,
    JobSyncError,
    LLMNotAvailableError,
    TieBreakError,
)
from jobsync.services.llm_service import LLMService, TextGenerator

__all__ = [
    "CanonicalDictionary",
    "DictionaryLoader",
    "ClassificationError",
    "DictionaryLoadError",
    "InsightError",
    "InvalidRecordError",
    "JobSyncError",
    "LLMNotAvailableError",
    "TieBreakError",
    "LLMService",
    "TextGenerator",
]
