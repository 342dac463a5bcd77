import sys
from typing import Any, Callable, Optional, TextIO


def print_with_prefix(
    prefix: str,
    message: Optional[str],
    enabled: bool = True,
    stream: Optional[TextIO] = None,
) -> None:
    if not enabled:
        return
    out = stream or sys.stdout
    text = "" if message is None else str(message)
    lines = text.splitlines() or [""]
    for line in lines:
        if line:
            print(f"{prefix} {line}", file=out)
        else:
            print(prefix, file=out)


def log_section(
    log_fn: Callable[[str], None],
    title: str,
    width: int = 70,
    char: str = "=",
) -> None:
    line = char * width
    log_fn(line)
    log_fn(title)
    log_fn(line)


def format_context(**fields: Any) -> str:
    """Rende `stage=... raw='...'` per i log di recovery (audit della normalizzazione)."""
    parts = []
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, str):
            parts.append(f"{key}={value!r}")
        else:
            parts.append(f"{key}={value}")
    return " ".join(parts)
