"""Session record tracked from job acceptance to terminal outcome."""

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class SessionStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.ERROR)


@dataclass(frozen=True)
class Progress:
    current: int
    total: int

    def to_dict(self) -> dict[str, int]:
        return {"current": self.current, "total": self.total}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Progress":
        return cls(current=int(data.get("current", 0)), total=int(data.get("total", 0)))


def utcnow_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class Session:
    session_id: str
    status: SessionStatus
    language: str | None = None
    submission_id: str | None = None
    progress: Progress | None = None
    result: dict[str, Any] | None = None
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "sessionId": self.session_id,
            "submissionId": self.submission_id,
            "status": self.status.value,
            "language": self.language,
            "progress": self.progress.to_dict() if self.progress else None,
            "result": self.result,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        return data

    def to_mapping(self) -> dict[str, str]:
        """Flatten to a Redis hash: one JSON-encoded value per present field."""
        return encode_fields(self.to_dict())

    @classmethod
    def from_mapping(cls, mapping: dict[str, str]) -> "Session":
        data = decode_fields(mapping)
        progress = data.get("progress")
        return cls(
            session_id=data["sessionId"],
            status=SessionStatus(data.get("status") or SessionStatus.QUEUED.value),
            language=data.get("language"),
            submission_id=data.get("submissionId"),
            progress=Progress.from_dict(progress) if progress else None,
            result=data.get("result"),
            created_at=data.get("createdAt") or utcnow_iso(),
            updated_at=data.get("updatedAt") or utcnow_iso(),
        )


def encode_fields(fields: dict[str, Any]) -> dict[str, str]:
    out: dict[str, str] = {}
    for key, value in fields.items():
        if value is None:
            continue
        if isinstance(value, Enum):
            value = value.value
        elif isinstance(value, Progress):
            value = value.to_dict()
        out[key] = json.dumps(value)
    return out


def decode_fields(mapping: dict[str, str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, raw in mapping.items():
        if isinstance(key, bytes):
            key = key.decode()
        if isinstance(raw, bytes):
            raw = raw.decode()
        try:
            out[key] = json.loads(raw)
        except (TypeError, ValueError):
            out[key] = raw
    return out
