from judge.executors.base import Executor
from judge.executors.chain import BestEffortExecutor, build_executor, execute_within
from judge.executors.jdoodle import JDoodleExecutor
from judge.executors.local import LocalSandboxExecutor
from judge.executors.normalize import normalize_result, parse_memory_kb, parse_runtime_ms
from judge.executors.piston import PistonExecutor

__all__ = [
    "BestEffortExecutor",
    "Executor",
    "JDoodleExecutor",
    "LocalSandboxExecutor",
    "PistonExecutor",
    "build_executor",
    "execute_within",
    "normalize_result",
    "parse_memory_kb",
    "parse_runtime_ms",
]
