"""JDoodle (RapidAPI) execution backend.

Only enabled when an API key is configured. Transient network failures are
retried up to ``MAX_ATTEMPTS`` times with a linear back-off.
"""

import asyncio
import logging
from typing import Any
from urllib.parse import urlparse

import requests

from judge.config import Settings, get_settings
from judge.errors import BackendUnavailableError, UnsupportedLanguageError
from judge.executors.base import Executor
from judge.executors.normalize import parse_memory_kb
from judge.languages import normalize_language
from judge.models.execution import ExecutionRequest, ExecutionResult, strip_trailing_newlines
from judge.sandbox.pipeline import unescape_source

_logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BACKOFF_SEC = 0.5

JDOODLE_LANGUAGES = {
    "cpp": ("cpp17", "5"),
    "java": ("java", "4"),
    "python": ("python3", "3"),
}


def _post_sync(url: str, headers: dict[str, str], body: dict[str, Any], timeout: float) -> dict[str, Any]:
    resp = requests.post(url, json=body, headers=headers, timeout=timeout)
    if not resp.ok:
        try:
            message = resp.json().get("message", "")
        except ValueError:
            message = resp.reason
        raise BackendUnavailableError("jdoodle", f"HTTP {resp.status_code}: {message or 'JDoodle API error'}")
    return resp.json()


class JDoodleExecutor(Executor):
    name = "jdoodle"

    def __init__(self, settings: Settings | None = None, sleep=asyncio.sleep):
        self._settings = settings or get_settings()
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return bool(self._settings.executor.jdoodle_api_key)

    def _headers(self) -> dict[str, str]:
        cfg = self._settings.executor
        return {
            "content-type": "application/json",
            "X-RapidAPI-Key": cfg.jdoodle_api_key,
            "X-RapidAPI-Host": urlparse(cfg.jdoodle_url).netloc,
        }

    async def execute(self, request: ExecutionRequest) -> ExecutionResult:
        if not self.enabled:
            raise BackendUnavailableError(self.name, "API key not configured")
        canonical = normalize_language(request.language)
        if canonical not in JDOODLE_LANGUAGES:
            raise UnsupportedLanguageError(request.language)
        language, version_index = JDOODLE_LANGUAGES[canonical]
        body = {
            "script": unescape_source(request.code),
            "language": language,
            "versionIndex": version_index,
            "stdin": request.stdin or "",
        }
        cfg = self._settings.executor
        url = f"{cfg.jdoodle_url.rstrip('/')}/v1/execute"

        last_error: Exception | None = None
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                data = await asyncio.to_thread(_post_sync, url, self._headers(), body, cfg.request_timeout_sec)
                return self.parse_response(data)
            except (requests.ConnectionError, requests.Timeout) as e:
                last_error = e
                if attempt == MAX_ATTEMPTS:
                    break
                _logger.info("jdoodle transient failure (attempt %d/%d): %s", attempt, MAX_ATTEMPTS, e)
                await self._sleep(BACKOFF_SEC * attempt)
            except requests.RequestException as e:
                raise BackendUnavailableError(self.name, f"request failed: {e}") from e
        raise BackendUnavailableError(self.name, f"unreachable after {MAX_ATTEMPTS} attempts: {last_error}")

    def parse_response(self, data: Any) -> ExecutionResult:
        if not isinstance(data, dict):
            raise BackendUnavailableError(self.name, "malformed response")
        try:
            status_code = int(data.get("statusCode"))
        except (TypeError, ValueError):
            status_code = 0
        runtime_ms = 0
        if data.get("cpuTime"):
            try:
                runtime_ms = round(float(data["cpuTime"]) * 1000)
            except (TypeError, ValueError):
                runtime_ms = 0
        return ExecutionResult(
            stdout=strip_trailing_newlines(str(data.get("output") or "")),
            stderr=str(data.get("error") or ""),
            exit_code=0 if status_code == 200 else 1,
            runtime_ms=runtime_ms,
            peak_memory_kb=parse_memory_kb(data.get("memory")),
            backend=self.name,
        )
