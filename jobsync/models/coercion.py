from typing import Any, Mapping, Type, TypeVar

from pydantic import BaseModel, ValidationError

from jobsync.services.errors import InvalidRecordError

ModelT = TypeVar("ModelT", bound=BaseModel)


def _describe_errors(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(loc) for loc in item.get("loc", ())) or "<root>"
        parts.append(f"{location}: {item.get('msg')}")
    return "; ".join(parts)


def coerce_record(model_cls: Type[ModelT], record: Any, label: str) -> ModelT:
    """
    Converte un record (modello pydantic o dict) nel modello richiesto.

    Raises:
        InvalidRecordError: record strutturalmente invalido (campi mancanti, tipi errati, anni negativi)
    """
    if isinstance(record, model_cls):
        return record
    if isinstance(record, BaseModel):
        record = record.model_dump()
    if not isinstance(record, Mapping):
        raise InvalidRecordError(
            f"{label}: atteso dict o {model_cls.__name__}, trovato {type(record).__name__}"
        )
    try:
        return model_cls.model_validate(dict(record))
    except ValidationError as e:
        raise InvalidRecordError(f"{label} non valido ({_describe_errors(e)})") from e
