from typing import Literal, Optional, TypedDict


class ProgressPayload(TypedDict):
    current: int
    total: int


class SessionUpdateEvent(TypedDict, total=False):
    sessionId: str
    status: Literal["queued", "running", "completed", "error"]
    language: Optional[str]
    stage: str
    progress: ProgressPayload
    verdict: str
    output: str
    error: str
    runtime: str
    memory: Optional[str]
    testsPassed: int
    totalTests: int


class SubmissionUpdateEvent(TypedDict):
    event: str
    submissionId: str
    status: str
