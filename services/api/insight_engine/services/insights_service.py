from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
import sqlite3
import threading

from ..advisor import LocalAdvisor
from ..analysis import compute_analysis
from ..insights import ACTIONS
from ..models import Budget, FinancialAnalysis, Goal, Insight, Profile, RecurringExpense, Transaction
from ..repositories.finance_repo import FinanceRepository
from ..store import InsightStore, SQLiteKeyValueStore
from .profile_update_service import ProfileUpdateService, profile_snapshot


MAX_CACHED_USERS = 256

# Last generated list per user; filter and search requests read it instead of regenerating
_GENERATED: "OrderedDict[str, List[Insight]]" = OrderedDict()
_GENERATED_LOCK = threading.Lock()


@dataclass
class UserData:
    transactions: List[Transaction]
    budgets: List[Budget]
    goals: List[Goal]
    recurring_expenses: List[RecurringExpense]
    profile: Profile


def load_user_data(conn: sqlite3.Connection, user_id: str) -> UserData:
    repo = FinanceRepository(conn, user_id)
    return UserData(
        transactions=repo.transactions(),
        budgets=repo.budgets(),
        goals=repo.goals(),
        recurring_expenses=repo.recurring_expenses(),
        profile=repo.profile() or Profile(),
    )


def analyze(conn: sqlite3.Connection, user_id: str, now: Optional[datetime] = None) -> FinancialAnalysis:
    data = load_user_data(conn, user_id)
    return compute_analysis(
        data.transactions, data.budgets, data.goals, data.recurring_expenses, data.profile, now=now,
    )


def insight_store(conn: sqlite3.Connection, user_id: str) -> InsightStore:
    return InsightStore(SQLiteKeyValueStore(conn, user_id))


def profile_updates(conn: sqlite3.Connection, user_id: str) -> ProfileUpdateService:
    return ProfileUpdateService(SQLiteKeyValueStore(conn, user_id))


def refreshed_store(conn: sqlite3.Connection, user_id: str, now: Optional[datetime] = None) -> InsightStore:
    """Insight store for the user with a freshly generated list."""
    data = load_user_data(conn, user_id)
    snapshot = compute_analysis(
        data.transactions, data.budgets, data.goals, data.recurring_expenses, data.profile, now=now,
    )
    store = insight_store(conn, user_id)
    store.regenerate(snapshot, data.profile, data.budgets, data.goals, data.recurring_expenses, now=now)
    return store


def invalidate(user_id: str) -> None:
    """Drop the cached list so the next read regenerates from the user's records."""
    with _GENERATED_LOCK:
        _GENERATED.pop(user_id, None)


def reset() -> None:
    with _GENERATED_LOCK:
        _GENERATED.clear()


def current_store(
    conn: sqlite3.Connection, user_id: str, refresh: bool = False, now: Optional[datetime] = None,
) -> InsightStore:
    """Insight store holding the user's last generated list, generating it only when missing or asked to."""
    with _GENERATED_LOCK:
        cached = None if refresh else _GENERATED.get(user_id)
        if cached is not None:
            _GENERATED.move_to_end(user_id)
    if cached is not None:
        store = insight_store(conn, user_id)
        store.restore(cached)
        return store

    store = refreshed_store(conn, user_id, now=now)
    with _GENERATED_LOCK:
        _GENERATED[user_id] = store.generated
        _GENERATED.move_to_end(user_id)
        while len(_GENERATED) > MAX_CACHED_USERS:
            _GENERATED.popitem(last=False)
    return store


def list_insights(
    conn: sqlite3.Connection,
    user_id: str,
    priority: Optional[str] = None,
    category: Optional[str] = None,
    search_text: Optional[str] = None,
    bookmarked_only: bool = False,
    mode: str = "full",
    limit: int = 50,
    refresh: bool = False,
) -> Dict:
    store = current_store(conn, user_id, refresh=refresh)
    if mode == "preview":
        items = store.preview(min(limit, 3))
    else:
        items = store.filter(priority, category, search_text, bookmarked_only)[:limit]
    return {
        "user_id": user_id,
        "items": [
            dict(i.to_dict(), bookmarked=store.is_bookmarked(i.id)) for i in items
        ],
        "stats": store.stats(),
        "last_update": store.last_update.isoformat() if store.last_update else None,
    }


def record_action(conn: sqlite3.Connection, user_id: str, insight_id: str, action: str) -> Dict:
    """Record that the user followed an insight's action; the caller decides what the action does."""
    if action not in ACTIONS:
        raise KeyError(action)
    repo = FinanceRepository(conn, user_id)
    profile = repo.profile() or Profile()
    updates = profile_updates(conn, user_id)
    updates.record_profile_update(
        action,
        [{"field": "insight", "old_value": None, "new_value": insight_id}],
        profile_snapshot(profile),
    )
    return {"insight_id": insight_id, "action": action, "label": ACTIONS[action]}


def advisor_for(conn: sqlite3.Connection, user_id: str, now: Optional[datetime] = None) -> LocalAdvisor:
    data = load_user_data(conn, user_id)
    return LocalAdvisor(
        data.transactions, data.budgets, data.goals, data.recurring_expenses, data.profile, now=now,
    )
