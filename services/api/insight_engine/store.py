from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence

from .insights import generate_insights, insight_stats, sort_by_priority
from .models import Budget, FinancialAnalysis, Goal, Insight, Profile, RecurringExpense

logger = logging.getLogger(__name__)


DISMISSED_KEY = "dismissedInsights"
BOOKMARKED_KEY = "bookmarkedInsights"
LAST_INSIGHT_UPDATE_KEY = "lastInsightUpdate"


class KeyValueStore:
    """Minimal string key-value interface for client-local state."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class SQLiteKeyValueStore(KeyValueStore):
    """Key-value rows in the kv_store table, one namespace per user."""

    def __init__(self, conn: sqlite3.Connection, namespace: str):
        self.conn = conn
        self.namespace = namespace

    def get(self, key: str) -> Optional[str]:
        row = self.conn.execute(
            "SELECT value FROM kv_store WHERE namespace = ? AND key = ?",
            (self.namespace, key),
        ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        self.conn.execute(
            """
            INSERT OR REPLACE INTO kv_store (namespace, key, value, updated_at)
            VALUES (?, ?, ?, CURRENT_TIMESTAMP)
            """,
            (self.namespace, key, value),
        )

    def delete(self, key: str) -> None:
        self.conn.execute(
            "DELETE FROM kv_store WHERE namespace = ? AND key = ?",
            (self.namespace, key),
        )


def load_json(kv: KeyValueStore, key: str, default: Any) -> Any:
    raw = kv.get(key)
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning("Ignoring corrupt value for %s: %s", key, e)
        return default


def save_json(kv: KeyValueStore, key: str, value: Any) -> None:
    kv.set(key, json.dumps(value))
    logger.debug("Saved %s", key)


class InsightStore:
    """Holds the last generated insights plus the dismissed and bookmarked id sets."""

    def __init__(self, kv: KeyValueStore, clock: Callable[[], datetime] = datetime.now):
        self.kv = kv
        self.clock = clock
        self._insights: List[Insight] = []
        self._dismissed: FrozenSet[str] = frozenset(load_json(kv, DISMISSED_KEY, []))
        self._bookmarked: FrozenSet[str] = frozenset(load_json(kv, BOOKMARKED_KEY, []))

    # --- id sets ---

    @property
    def dismissed(self) -> FrozenSet[str]:
        return self._dismissed

    @property
    def bookmarked(self) -> FrozenSet[str]:
        return self._bookmarked

    def _replace_dismissed(self, ids: FrozenSet[str]) -> None:
        save_json(self.kv, DISMISSED_KEY, sorted(ids))
        self._dismissed = ids

    def _replace_bookmarked(self, ids: FrozenSet[str]) -> None:
        save_json(self.kv, BOOKMARKED_KEY, sorted(ids))
        self._bookmarked = ids

    def dismiss(self, insight_id: str) -> None:
        self._replace_dismissed(self._dismissed | {insight_id})

    def undismiss(self, insight_id: str) -> None:
        self._replace_dismissed(self._dismissed - {insight_id})

    def reset_dismissed(self) -> None:
        self._replace_dismissed(frozenset())

    def toggle_bookmark(self, insight_id: str) -> bool:
        """Flip the bookmark and return the new state."""
        if insight_id in self._bookmarked:
            self._replace_bookmarked(self._bookmarked - {insight_id})
            return False
        self._replace_bookmarked(self._bookmarked | {insight_id})
        return True

    def is_bookmarked(self, insight_id: str) -> bool:
        return insight_id in self._bookmarked

    # --- generation ---

    def regenerate(
        self,
        analysis: FinancialAnalysis,
        profile: Optional[Profile] = None,
        budgets: Optional[Sequence[Budget]] = None,
        goals: Optional[Sequence[Goal]] = None,
        recurring_expenses: Optional[Sequence[RecurringExpense]] = None,
        now: Optional[datetime] = None,
    ) -> List[Insight]:
        # dismissed ids are hidden by visible(), so un-dismissing needs no rerun
        self._insights = generate_insights(
            analysis, profile, budgets, goals, recurring_expenses, now=now,
        )
        self.kv.set(LAST_INSIGHT_UPDATE_KEY, (now or self.clock()).isoformat())
        return self.visible()

    @property
    def generated(self) -> List[Insight]:
        return list(self._insights)

    def restore(self, insights: Sequence[Insight]) -> List[Insight]:
        """Adopt a previously generated list without rerunning the rules."""
        self._insights = list(insights)
        return self.visible()

    @property
    def last_update(self) -> Optional[datetime]:
        raw = self.kv.get(LAST_INSIGHT_UPDATE_KEY)
        return datetime.fromisoformat(raw) if raw else None

    # --- views ---

    def visible(self) -> List[Insight]:
        return [i for i in self._insights if i.id not in self._dismissed]

    def filter(
        self,
        priority: Optional[str] = None,
        category: Optional[str] = None,
        search_text: Optional[str] = None,
        bookmarked_only: bool = False,
    ) -> List[Insight]:
        items = self.visible()
        if priority and priority != "all":
            items = [i for i in items if i.priority == priority]
        if category and category != "all":
            items = [i for i in items if i.category == category]
        query = (search_text or "").strip().lower()
        if query:
            items = [
                i for i in items
                if query in i.title.lower()
                or query in i.message.lower()
                or any(query in t.lower() for t in i.tags)
            ]
        if bookmarked_only:
            items = [i for i in items if i.id in self._bookmarked]
        return items

    def preview(self, n: int = 3) -> List[Insight]:
        return sort_by_priority(self.visible())[:n]

    def stats(self) -> Dict[str, int]:
        return insight_stats(self.visible())
