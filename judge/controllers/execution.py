from fastapi import APIRouter, Depends

from judge.dependencies import Jobs, UserId
from judge.models.api import (
    AcceptedResponse,
    BatchSubmitRequest,
    CancelResponse,
    RunRequest,
    SessionResultResponse,
    SubmitRequest,
)
from judge.ratelimit import rate_limit

router = APIRouter()


@router.post("/run", status_code=202, dependencies=[Depends(rate_limit("run"))])
async def run_code(body: RunRequest, jobs: Jobs) -> AcceptedResponse:
    data = await jobs.start_run(body.code, body.language, body.input)
    return AcceptedResponse(data=data)


@router.post("/submit", status_code=202, dependencies=[Depends(rate_limit("submit"))])
async def submit_code(body: SubmitRequest, jobs: Jobs, user_id: UserId) -> AcceptedResponse:
    data = await jobs.submit(
        user_id,
        body.problemId,
        body.code,
        body.language,
        contest_id=body.contestId,
        stdin=body.input,
    )
    return AcceptedResponse(data=data)


@router.post("/submit/batch", status_code=202, dependencies=[Depends(rate_limit("submit"))])
async def submit_batch(body: BatchSubmitRequest, jobs: Jobs, user_id: UserId) -> AcceptedResponse:
    data = await jobs.submit_batch(
        user_id,
        body.problemId,
        body.code,
        body.language,
        contest_id=body.contestId,
        compare_mode=body.compareMode,
    )
    return AcceptedResponse(data=data)


@router.get("/result/{session_id}", dependencies=[Depends(rate_limit("result"))])
async def get_result(session_id: str, jobs: Jobs) -> SessionResultResponse:
    return SessionResultResponse(data=await jobs.get_result(session_id))


@router.post("/result/{session_id}/cancel", dependencies=[Depends(rate_limit("result"))])
async def cancel_job(session_id: str, jobs: Jobs) -> CancelResponse:
    return CancelResponse(data={"cancelled": jobs.cancel(session_id)})
