"""Output comparison policies for judging program output against expectations."""

import re
from enum import Enum

_WS_RE = re.compile(r"\s+")
_EOL_RE = re.compile(r"\r\n?")


class CompareMode(str, Enum):
    RELAXED = "relaxed"
    STRICT = "strict"


def normalize_strict(text: str | None) -> str:
    """Unify line endings and trim the ends; everything else is significant."""
    return _EOL_RE.sub("\n", text or "").strip()


def normalize_relaxed(text: str | None) -> str:
    """Collapse whitespace runs, trim each line, drop blank lines, case-fold."""
    lines = _EOL_RE.sub("\n", text or "").split("\n")
    kept = [_WS_RE.sub(" ", line).strip() for line in lines]
    return "\n".join(line for line in kept if line).casefold()


def normalize(text: str | None, mode: CompareMode = CompareMode.RELAXED) -> str:
    if mode is CompareMode.STRICT:
        return normalize_strict(text)
    return normalize_relaxed(text)


def outputs_match(actual: str | None, expected: str | None, mode: CompareMode = CompareMode.RELAXED) -> bool:
    return normalize(actual, mode) == normalize(expected, mode)


def parse_compare_mode(value: str | CompareMode | None) -> CompareMode:
    """Anything other than ``strict`` falls back to relaxed comparison."""
    if isinstance(value, CompareMode):
        return value
    if str(value or "").strip().lower() == CompareMode.STRICT.value:
        return CompareMode.STRICT
    return CompareMode.RELAXED
