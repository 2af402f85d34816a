from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from .. import db as db_mod
from ..services import insights_service as svc


router = APIRouter(tags=["insights"])


@router.get("/users/{user_id}/insights")
def list_insights(
    user_id: str,
    priority: Optional[str] = Query(None, pattern="^(all|critical|high|medium|low)$"),
    category: Optional[str] = None,
    q: Optional[str] = None,
    bookmarked: bool = False,
    mode: str = Query("full", pattern="^(preview|full)$"),
    limit: int = Query(50, ge=1, le=200),
    refresh: bool = False,
):
    with db_mod.get_connection() as conn:
        return svc.list_insights(conn, user_id, priority, category, q, bookmarked, mode, limit, refresh)


@router.post("/users/{user_id}/insights/dismissed/reset")
def reset_dismissed(user_id: str):
    with db_mod.get_connection() as conn:
        svc.insight_store(conn, user_id).reset_dismissed()
    return {"user_id": user_id, "dismissed": []}


@router.post("/users/{user_id}/insights/{insight_id}/dismiss")
def dismiss(user_id: str, insight_id: str):
    with db_mod.get_connection() as conn:
        store = svc.insight_store(conn, user_id)
        store.dismiss(insight_id)
    return {"insight_id": insight_id, "dismissed": True}


@router.delete("/users/{user_id}/insights/{insight_id}/dismiss")
def undismiss(user_id: str, insight_id: str):
    with db_mod.get_connection() as conn:
        store = svc.insight_store(conn, user_id)
        store.undismiss(insight_id)
    return {"insight_id": insight_id, "dismissed": False}


@router.post("/users/{user_id}/insights/{insight_id}/bookmark")
def toggle_bookmark(user_id: str, insight_id: str):
    with db_mod.get_connection() as conn:
        bookmarked = svc.insight_store(conn, user_id).toggle_bookmark(insight_id)
    return {"insight_id": insight_id, "bookmarked": bookmarked}


class InsightActionRequest(BaseModel):
    action: str


@router.post("/users/{user_id}/insights/{insight_id}/action")
def take_action(user_id: str, insight_id: str, body: InsightActionRequest):
    try:
        with db_mod.get_connection() as conn:
            return svc.record_action(conn, user_id, insight_id, body.action)
    except KeyError:
        raise HTTPException(status_code=400, detail="unknown_action")
