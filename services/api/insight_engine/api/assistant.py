from __future__ import annotations

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ..errors import LocalEngineError, ResolutionSuperseded
from ..services import assistant_service as svc


router = APIRouter(tags=["assistant"])


class AskRequest(BaseModel):
    user_id: str
    question: str = Field(..., min_length=1)


class RetryRequest(BaseModel):
    user_id: str


def _unavailable(e: LocalEngineError) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={
            "detail": "local_engine_failed",
            "retry_count": e.retry_count,
            "retry_after": e.retry_after,
        },
        headers={"Retry-After": str(int(round(e.retry_after)))},
    )


@router.post("/assistant/ask")
async def ask(body: AskRequest):
    try:
        return await svc.ask(body.user_id, body.question)
    except LocalEngineError as e:
        return _unavailable(e)
    except ResolutionSuperseded:
        raise HTTPException(status_code=409, detail="superseded")


@router.post("/assistant/retry")
async def retry(body: RetryRequest):
    try:
        return await svc.retry(body.user_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="no_previous_question")
    except LocalEngineError as e:
        return _unavailable(e)
    except ResolutionSuperseded:
        raise HTTPException(status_code=409, detail="superseded")
