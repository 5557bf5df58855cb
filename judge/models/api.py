from typing import Any, Literal

from pydantic import BaseModel, Field


class RunRequest(BaseModel):
    language: str = Field(min_length=1)
    code: str = Field(min_length=1)
    input: str = ""


class SubmitRequest(BaseModel):
    problemId: str = Field(min_length=1)
    code: str = Field(min_length=1)
    language: str = Field(min_length=1)
    contestId: str | None = None
    input: str = ""


class BatchSubmitRequest(BaseModel):
    problemId: str = Field(min_length=1)
    code: str = Field(min_length=1)
    language: str = Field(min_length=1)
    contestId: str | None = None
    compareMode: Literal["relaxed", "strict"] = "relaxed"


class AcceptedResponse(BaseModel):
    success: bool = True
    data: dict[str, str]


class SessionResultResponse(BaseModel):
    success: bool = True
    data: dict[str, Any]


class CancelResponse(BaseModel):
    success: bool = True
    data: dict[str, bool]
