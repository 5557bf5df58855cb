"""Coerce backend-specific result shapes into ``ExecutionResult``.

Backends disagree on field names (``output`` vs ``stdout``) and units
(``"123ms"``, ``"1.5s"``, ``"16.4MB"``, bare numbers); everything is folded
into milliseconds and kilobytes here.
"""

import math
import re
from collections.abc import Mapping
from typing import Any

from judge.models.execution import ExecutionResult

_MS_RE = re.compile(r"^([0-9]+(?:\.[0-9]+)?)\s*ms$", re.IGNORECASE)
_SEC_RE = re.compile(r"^([0-9]+(?:\.[0-9]+)?)\s*s(?:ec(?:onds?)?)?$", re.IGNORECASE)
_NUM_RE = re.compile(r"^[0-9]+(?:\.[0-9]+)?$")
_MEM_RE = re.compile(r"^([0-9]+(?:\.[0-9]+)?)\s*(b|kb|k|mb|m|gb|g)?$", re.IGNORECASE)

_MEM_FACTORS = {
    "b": 1 / 1024,
    "k": 1,
    "kb": 1,
    "m": 1024,
    "mb": 1024,
    "g": 1024 * 1024,
    "gb": 1024 * 1024,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def parse_runtime_ms(value: Any) -> int | None:
    """``123`` / ``"123ms"`` / ``"0.2"`` are milliseconds, ``"1.5s"`` is seconds."""
    if _is_number(value):
        return round(value)
    text = str(value if value is not None else "").strip()
    if not text:
        return None
    m = _MS_RE.match(text)
    if m:
        return round(float(m.group(1)))
    m = _SEC_RE.match(text)
    if m:
        return round(float(m.group(1)) * 1000)
    if _NUM_RE.match(text):
        return round(float(text))
    return None


def parse_memory_kb(value: Any) -> int | None:
    """Bare numbers are kilobytes; ``B``/``KB``/``MB``/``GB`` suffixes are honoured."""
    if _is_number(value):
        return round(value)
    text = str(value if value is not None else "").strip()
    m = _MEM_RE.match(text)
    if not m:
        return None
    unit = (m.group(2) or "kb").lower()
    return round(float(m.group(1)) * _MEM_FACTORS[unit])


def _first(data: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def normalize_result(data: Mapping[str, Any], backend: str | None = None) -> ExecutionResult:
    """Build a canonical result from canonical or legacy field names.

    Raises ``ValueError`` when the mapping carries neither an output nor an
    error field, which the executor chain treats as a failed backend.
    """
    if not isinstance(data, Mapping):
        raise ValueError(f"result is not a mapping: {type(data).__name__}")
    stdout = _first(data, "stdout", "output")
    stderr = _first(data, "stderr", "error")
    if stdout is None and stderr is None:
        raise ValueError("result has neither output nor error")
    stdout = str(stdout or "")
    stderr = str(stderr or "")

    exit_code = _first(data, "exitCode", "exit_code", "code")
    if exit_code is None:
        exit_code = 1 if stderr.strip() else 0

    runtime = parse_runtime_ms(_first(data, "runtimeMs", "runtime_ms", "runtime"))
    memory = parse_memory_kb(_first(data, "memoryKb", "peak_memory_kb", "memory"))
    return ExecutionResult(
        stdout=stdout,
        stderr=stderr,
        exit_code=int(exit_code),
        runtime_ms=runtime or 0,
        peak_memory_kb=memory,
        compile_failed=bool(_first(data, "compileFailed", "compile_failed")),
        backend=backend,
    )
