"""Closed registry of supported language profiles.

Each profile knows its container image, the canonical source filename, how to
compile (optionally) and how to run a program, plus per-stage timeouts.
Unknown language ids are rejected here, before any workspace is allocated.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from judge.config import Settings, get_settings
from judge.errors import UnsupportedLanguageError

COMPILE_SENTINEL = "__COMPILED__"

_JAVA_EGD = "-Djava.security.egd=file:/dev/./urandom"
_JAVA_CLASS_RE = re.compile(r"public\s+class\s+(\w+)")

_ALIASES = {
    "python": "python",
    "python3": "python",
    "py": "python",
    "cpp": "cpp",
    "c++": "cpp",
    "java": "java",
}


@dataclass(frozen=True)
class LanguageProfile:
    id: str
    image: str
    source_filename: str
    run_command: Callable[[str], list[str]]
    compile_command: Callable[[str], list[str]] | None = None
    warmup_command: list[str] | None = None
    compile_timeout_ms: int = 15000
    run_timeout_ms: int = 8000
    aliases: tuple[str, ...] = field(default_factory=tuple)

    @property
    def compiled(self) -> bool:
        return self.compile_command is not None

    def stage_budget_ms(self, run_timeout_ms: int | None = None) -> int:
        """Sum of the per-stage timeouts one job may consume."""
        budget = run_timeout_ms or self.run_timeout_ms
        if self.compiled:
            budget += self.compile_timeout_ms
        return budget

    def describe(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "aliases": list(self.aliases),
            "image": self.image,
            "compiled": self.compiled,
            "compileTimeoutMs": self.compile_timeout_ms if self.compiled else None,
            "runTimeoutMs": self.run_timeout_ms,
        }


def _python_run(filename: str) -> list[str]:
    return ["python", filename]


def _cpp_compile(filename: str) -> list[str]:
    return ["bash", "-c", f"g++ -O2 -std=c++17 {filename} -o main && echo {COMPILE_SENTINEL}"]


def _cpp_run(_target: str) -> list[str]:
    return ["./main"]


def _java_compile(filename: str) -> list[str]:
    return ["bash", "-c", f"javac -J{_JAVA_EGD} -d . {filename} && echo {COMPILE_SENTINEL}"]


def _java_run(class_name: str) -> list[str]:
    return ["java", _JAVA_EGD, "-Xms16m", "-Xmx256m", "-XX:+UseSerialGC", "-cp", ".", class_name]


_JAVA_WARMUP = [
    "bash",
    "-c",
    "echo 'class _W{public static void main(String[]a){}}' > _W.java"
    f" && javac -J{_JAVA_EGD} -d . _W.java && java {_JAVA_EGD} -cp . _W",
]


def build_registry(settings: Settings | None = None) -> dict[str, LanguageProfile]:
    settings = settings or get_settings()
    images = settings.images
    timeouts = settings.timeouts
    return {
        "python": LanguageProfile(
            id="python",
            image=images.python,
            source_filename="main.py",
            run_command=_python_run,
            run_timeout_ms=timeouts.run_timeout_ms,
            aliases=("py", "python3"),
        ),
        "cpp": LanguageProfile(
            id="cpp",
            image=images.cpp,
            source_filename="main.cpp",
            compile_command=_cpp_compile,
            run_command=_cpp_run,
            compile_timeout_ms=timeouts.compile_timeout_ms,
            run_timeout_ms=timeouts.run_timeout_ms,
            aliases=("c++",),
        ),
        "java": LanguageProfile(
            id="java",
            image=images.java,
            source_filename="Main.java",
            compile_command=_java_compile,
            run_command=_java_run,
            warmup_command=_JAVA_WARMUP,
            compile_timeout_ms=timeouts.compile_timeout_ms,
            run_timeout_ms=timeouts.java_run_timeout_ms,
        ),
    }


def normalize_language(language: Any) -> str | None:
    """Map an alias (``py``, ``c++``, ...) to its canonical id, or None."""
    return _ALIASES.get(str(language or "").strip().lower())


def get_profile(language: Any, registry: dict[str, LanguageProfile] | None = None) -> LanguageProfile:
    canonical = normalize_language(language)
    registry = registry if registry is not None else build_registry()
    if canonical is None or canonical not in registry:
        raise UnsupportedLanguageError(language)
    return registry[canonical]


def resolve_entry_point(profile: LanguageProfile, source: str) -> tuple[str, str]:
    """Return ``(filename, run_target)`` for the given source.

    Java requires the file name to match the public class, so the declared
    class is used for both; other languages use the profile's fixed filename.
    """
    if profile.id == "java":
        m = _JAVA_CLASS_RE.search(source)
        class_name = m.group(1) if m else "Main"
        return f"{class_name}.java", class_name
    return profile.source_filename, profile.source_filename


def list_languages(registry: dict[str, LanguageProfile] | None = None) -> list[dict[str, Any]]:
    registry = registry if registry is not None else build_registry()
    return [profile.describe() for profile in registry.values()]
