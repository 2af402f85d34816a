from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from ..models import Profile
from ..store import KeyValueStore, load_json, save_json

logger = logging.getLogger(__name__)


PROFILE_CONTEXT_KEY = "aiProfileContext"
LAST_PROFILE_UPDATE_KEY = "lastProfileUpdate"
MAX_RECENT_UPDATES = 10

Listener = Callable[[Dict[str, Any]], None]


def profile_snapshot(profile: Profile) -> Dict[str, Any]:
    return {
        "income": profile.monthly_income,
        "savings": profile.savings,
        "debt": profile.debt,
        "expenses": dict(profile.expenses),
    }


def diff_profiles(old: Optional[Profile], new: Profile) -> List[Dict[str, Any]]:
    """Field-level changes between two profiles; expenses are reported per key."""
    old = old or Profile()
    changes = []
    for name in ("monthly_income", "savings", "debt"):
        before, after = getattr(old, name), getattr(new, name)
        if before != after:
            changes.append({"field": name, "old_value": before, "new_value": after})
    for key in sorted(set(old.expenses) | set(new.expenses)):
        before, after = old.expenses.get(key, 0.0), new.expenses.get(key, 0.0)
        if before != after:
            changes.append({"field": f"expenses.{key}", "old_value": before, "new_value": after})
    return changes


def _empty_context(now: datetime) -> Dict[str, Any]:
    return {
        "last_action": "",
        "action_taken": False,
        "timestamp": now.isoformat(),
        "profile_snapshot": {},
        "recent_updates": [],
    }


def _change(changes: List[Dict[str, Any]], field_name: str) -> Optional[Dict[str, Any]]:
    return next((c for c in changes if c["field"] == field_name), None)


def _went_up(change: Dict[str, Any]) -> bool:
    return (change.get("new_value") or 0) > (change.get("old_value") or 0)


def _went_down(change: Dict[str, Any]) -> bool:
    return (change.get("new_value") or 0) < (change.get("old_value") or 0)


class ProfileUpdateService:
    """Keeps the recent profile changes and tells listeners about them."""

    def __init__(self, kv: KeyValueStore, clock: Callable[[], datetime] = datetime.now):
        self.kv = kv
        self.clock = clock
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, context: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(context)
            except Exception as e:
                logger.error("Profile update listener failed: %s", e)

    def get_context(self) -> Optional[Dict[str, Any]]:
        return load_json(self.kv, PROFILE_CONTEXT_KEY, None)

    @property
    def last_update(self) -> Optional[datetime]:
        raw = self.kv.get(LAST_PROFILE_UPDATE_KEY)
        return datetime.fromisoformat(raw) if raw else None

    def record_profile_update(
        self,
        action: str,
        changes: List[Dict[str, Any]],
        snapshot: Dict[str, Any],
    ) -> Dict[str, Any]:
        now = self.clock().isoformat()
        update = {
            "action": action,
            "timestamp": now,
            "profile_snapshot": snapshot,
            "changes": changes,
        }
        previous = (self.get_context() or {}).get("recent_updates", [])
        context = {
            "last_action": action,
            "action_taken": True,
            "timestamp": now,
            "profile_snapshot": snapshot,
            "recent_updates": [update] + previous[: MAX_RECENT_UPDATES - 1],
        }
        save_json(self.kv, PROFILE_CONTEXT_KEY, context)
        self.kv.set(LAST_PROFILE_UPDATE_KEY, now)
        self._notify(context)
        logger.debug("Profile update recorded: %s (%d changes)", action, len(changes))
        return context

    def clear_context(self) -> None:
        self.kv.delete(PROFILE_CONTEXT_KEY)
        self.kv.delete(LAST_PROFILE_UPDATE_KEY)
        self._notify(_empty_context(self.clock()))

    def get_profile_insights(self, context: Optional[Dict[str, Any]] = None) -> List[str]:
        context = context if context is not None else self.get_context()
        if not context or not context.get("recent_updates"):
            return []
        changes = context["recent_updates"][0].get("changes", [])
        messages = []

        income = _change(changes, "monthly_income")
        if income:
            if _went_up(income):
                messages.append(
                    "Your income has increased! This is a great opportunity to boost your savings or pay down debt faster."
                )
            else:
                messages.append(
                    "Your income has decreased. Let's review your budget to ensure you can maintain your financial goals."
                )

        savings = _change(changes, "savings")
        if savings:
            if _went_up(savings):
                messages.append(
                    "Great job increasing your savings! Consider setting a new savings goal or exploring investment options."
                )
            else:
                messages.append(
                    "Your savings have decreased. This might be due to an emergency or planned expense. Let's review your budget."
                )

        debt = _change(changes, "debt")
        if debt:
            if _went_down(debt):
                messages.append(
                    "Excellent! You've reduced your debt. Keep up the momentum with a structured debt payoff plan."
                )
            else:
                messages.append(
                    "Your debt has increased. Let's create a plan to manage this effectively and avoid high-interest charges."
                )

        expense_changes = [c for c in changes if c["field"].startswith("expenses.")]
        if expense_changes:
            before = sum(c.get("old_value") or 0 for c in expense_changes)
            after = sum(c.get("new_value") or 0 for c in expense_changes)
            if after < before:
                messages.append(
                    "You've reduced your expenses! This will help you save more and reach your financial goals faster."
                )
            elif after > before:
                messages.append(
                    "Your expenses have increased. Let's review your budget to ensure this aligns with your financial goals."
                )
        return messages

    def get_suggested_actions(self, context: Optional[Dict[str, Any]] = None) -> List[Dict[str, str]]:
        context = context if context is not None else self.get_context()
        if not context or not context.get("recent_updates"):
            return []
        changes = context["recent_updates"][0].get("changes", [])
        actions = []

        income = _change(changes, "monthly_income")
        if income and _went_up(income):
            actions.append({"action": "review_budgets", "label": "Review Budget Allocation", "priority": "medium"})
            actions.append({"action": "increase_savings", "label": "Increase Savings Goals", "priority": "high"})

        savings = _change(changes, "savings")
        if savings and _went_up(savings):
            actions.append({"action": "create_goal", "label": "Set New Financial Goal", "priority": "medium"})

        debt = _change(changes, "debt")
        if debt and _went_down(debt):
            actions.append({"action": "accelerate_debt_payoff", "label": "Accelerate Debt Payoff", "priority": "high"})
        return actions
