from datetime import datetime

from insight_engine.models import Profile
from insight_engine.services.profile_update_service import (
    LAST_PROFILE_UPDATE_KEY,
    PROFILE_CONTEXT_KEY,
    ProfileUpdateService,
    diff_profiles,
    profile_snapshot,
)
from insight_engine.store import MemoryKeyValueStore


NOW = datetime(2025, 6, 30, 12, 0)


def _service(kv=None):
    return ProfileUpdateService(kv or MemoryKeyValueStore(), clock=lambda: NOW)


def test_diff_reports_scalar_and_expense_changes():
    old = Profile(monthly_income=3000, savings=1000, expenses={"food": 400, "housing": 1200})
    new = Profile(monthly_income=3500, savings=1000, expenses={"food": 300, "utilities": 100, "housing": 1200})

    changes = diff_profiles(old, new)

    assert changes == [
        {"field": "monthly_income", "old_value": 3000, "new_value": 3500},
        {"field": "expenses.food", "old_value": 400, "new_value": 300},
        {"field": "expenses.utilities", "old_value": 0.0, "new_value": 100},
    ]
    assert diff_profiles(None, Profile()) == []


def test_record_keeps_ten_most_recent_updates():
    kv = MemoryKeyValueStore()
    service = _service(kv)
    for n in range(12):
        service.record_profile_update(f"edit_{n}", [], {"income": n})

    context = service.get_context()
    assert len(context["recent_updates"]) == 10
    assert context["recent_updates"][0]["action"] == "edit_11"
    assert context["last_action"] == "edit_11"
    assert context["action_taken"] is True
    assert kv.get(LAST_PROFILE_UPDATE_KEY) == NOW.isoformat()
    assert service.last_update == NOW


def test_subscribers_are_notified_until_unsubscribed():
    service = _service()
    seen = []
    unsubscribe = service.subscribe(seen.append)

    service.record_profile_update("first", [], {})
    unsubscribe()
    service.record_profile_update("second", [], {})

    assert [c["last_action"] for c in seen] == ["first"]


def test_failing_listener_does_not_block_others():
    service = _service()
    seen = []

    def broken(_context):
        raise ValueError("boom")

    service.subscribe(broken)
    service.subscribe(seen.append)
    service.record_profile_update("edit", [], {})

    assert len(seen) == 1


def test_clear_context_notifies_with_empty_context():
    kv = MemoryKeyValueStore()
    service = _service(kv)
    service.record_profile_update("edit", [], {})
    seen = []
    service.subscribe(seen.append)

    service.clear_context()

    assert kv.get(PROFILE_CONTEXT_KEY) is None
    assert service.last_update is None
    assert seen[0]["recent_updates"] == []
    assert seen[0]["action_taken"] is False


def test_profile_insights_and_actions_for_improvements():
    service = _service()
    old = Profile(monthly_income=3000, savings=1000, debt=5000, expenses={"food": 500})
    new = Profile(monthly_income=3500, savings=1500, debt=4000, expenses={"food": 400})
    service.record_profile_update("profile_updated", diff_profiles(old, new), profile_snapshot(new))

    messages = service.get_profile_insights()
    actions = [a["action"] for a in service.get_suggested_actions()]

    assert len(messages) == 4
    assert messages[0].startswith("Your income has increased!")
    assert "reduced your debt" in messages[2]
    assert "reduced your expenses" in messages[3]
    assert actions == ["review_budgets", "increase_savings", "create_goal", "accelerate_debt_payoff"]


def test_profile_insights_for_setbacks():
    service = _service()
    old = Profile(monthly_income=3000, savings=1000, debt=100)
    new = Profile(monthly_income=2500, savings=800, debt=300, expenses={"other": 50})
    service.record_profile_update("profile_updated", diff_profiles(old, new), profile_snapshot(new))

    messages = service.get_profile_insights()

    assert messages[0].startswith("Your income has decreased.")
    assert messages[1].startswith("Your savings have decreased.")
    assert messages[2].startswith("Your debt has increased.")
    assert messages[3].startswith("Your expenses have increased.")
    assert service.get_suggested_actions() == []


def test_no_context_means_no_insights():
    service = _service()
    assert service.get_context() is None
    assert service.get_profile_insights() == []
    assert service.get_suggested_actions() == []
