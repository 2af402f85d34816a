from __future__ import annotations

from typing import Dict, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from .. import db as db_mod
from ..models import Profile
from ..repositories.finance_repo import FinanceRepository
from ..services import insights_service as svc
from ..services.profile_update_service import diff_profiles, profile_snapshot


router = APIRouter(tags=["profile"])


class ProfileRequest(BaseModel):
    monthly_income: float = Field(0, ge=0)
    savings: float = Field(0, ge=0)
    debt: float = Field(0, ge=0)
    expenses: Dict[str, float] = Field(default_factory=dict)
    first_name: Optional[str] = None
    last_name: Optional[str] = None


@router.put("/users/{user_id}/profile")
def update_profile(user_id: str, body: ProfileRequest):
    profile = Profile.from_dict(body.model_dump())
    with db_mod.get_connection() as conn:
        repo = FinanceRepository(conn, user_id)
        changes = diff_profiles(repo.profile(), profile)
        repo.upsert_profile(profile)
        updates = svc.profile_updates(conn, user_id)
        if changes:
            updates.record_profile_update("profile_updated", changes, profile_snapshot(profile))
        context = updates.get_context()
    if changes:
        svc.invalidate(user_id)
    return {
        "user_id": user_id,
        "changes": changes,
        "insights": updates.get_profile_insights(context),
        "suggested_actions": updates.get_suggested_actions(context),
    }


@router.get("/users/{user_id}/profile/context")
def profile_context(user_id: str):
    with db_mod.get_connection() as conn:
        updates = svc.profile_updates(conn, user_id)
        context = updates.get_context()
        last = updates.last_update
    return {
        "user_id": user_id,
        "context": context,
        "last_update": last.isoformat() if last else None,
        "insights": updates.get_profile_insights(context),
        "suggested_actions": updates.get_suggested_actions(context),
    }
