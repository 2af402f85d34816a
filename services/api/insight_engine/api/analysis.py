from __future__ import annotations

from fastapi import APIRouter

from .. import db as db_mod
from ..services import insights_service as svc


router = APIRouter(tags=["analysis"])


@router.get("/users/{user_id}/analysis")
def get_analysis(user_id: str):
    with db_mod.get_connection() as conn:
        snapshot = svc.analyze(conn, user_id)
    return {"user_id": user_id, "analysis": snapshot.to_dict()}
