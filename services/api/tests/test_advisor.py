from datetime import date, datetime

import pytest

from insight_engine.advisor import AdvisorAnswer, LocalAdvisor, detect_topic
from insight_engine.models import Budget, Goal, Profile, RecurringExpense, Transaction


NOW = datetime(2025, 6, 30, 12, 0)


def _advisor(**kwargs):
    kwargs.setdefault("now", NOW)
    return LocalAdvisor(**kwargs)


@pytest.mark.parametrize("question,topic", [
    ("Is my emergency fund big enough?", "emergency"),
    ("How fast can I pay off my credit card debt?", "debt"),
    ("Which subscriptions do I have?", "subscriptions"),
    ("Am I over budget?", "budget"),
    ("How is my savings rate?", "savings"),
    ("When will I reach my goal?", "goals"),
    ("Where does my grocery money go?", "spending"),
    ("How am I doing overall?", "general"),
    ("Tell me a joke", "default"),
])
def test_topic_routing(question, topic):
    assert detect_topic(question) == topic


def test_default_answer_has_low_confidence():
    reply = _advisor().answer("Tell me a joke")
    assert reply.confidence == "low"
    assert reply.actionable is False
    assert reply.topic == "default"


def test_general_answer_uses_top_insights():
    reply = _advisor().answer("How am I doing overall?")
    assert reply.confidence == "medium"
    assert len(reply.recommendations) == 3
    assert reply.recommendations[0].startswith("Emergency Fund Critical")


def test_budget_answer_names_overspent_budgets():
    budgets = [
        Budget(id="food", name="Food", amount=300, spent=360),
        Budget(id="fun", name="Fun", amount=200, spent=50),
    ]
    reply = _advisor(budgets=budgets).answer("Am I over budget?")

    assert reply.confidence == "high"
    assert "over budget in Food" in reply.answer
    assert any("$60.00" in r for r in reply.recommendations)


def test_budget_answer_without_budgets():
    reply = _advisor().answer("Help me with my budget")
    assert reply.answer == "You haven't set up any budgets yet."


def test_goal_answer_estimates_months():
    txs = [
        Transaction(id="in", amount=3000, date=date(2025, 6, 10), type="income"),
        Transaction(id="out", amount=2500, date=date(2025, 6, 12), type="expense"),
    ]
    goals = [
        Goal(id="car", name="Car", target=5000, current=3500),
        Goal(id="done", name="Laptop", target=1000, current=1000),
    ]
    reply = _advisor(transactions=txs, goals=goals).answer("When will I reach my goal?")

    assert "Car: about 3 months at your current pace" in reply.recommendations
    assert "Laptop is fully funded" in reply.recommendations


def test_savings_answer_reflects_rate():
    txs = [
        Transaction(id="in", amount=1000, date=date(2025, 6, 10), type="income"),
        Transaction(id="out", amount=950, date=date(2025, 6, 12), type="expense"),
    ]
    reply = _advisor(transactions=txs).answer("How is my savings rate?")
    assert "below the recommended 20%" in reply.answer


def test_emergency_and_debt_answers():
    profile = Profile(monthly_income=4000, savings=1000, debt=2000)
    txs = [Transaction(id="out", amount=1000, date=date(2025, 6, 12), type="expense")]
    advisor = _advisor(transactions=txs, profile=profile)

    emergency = advisor.answer("Is my emergency fund big enough?")
    assert "covers 1.0 months" in emergency.answer
    assert "A 6-month fund for you is $6000.00" in emergency.recommendations

    debt = advisor.answer("What about my debt?")
    assert "50.0% of your monthly income (high debt)" in debt.answer


def test_subscription_answer_lists_detected_categories():
    txs = [
        Transaction(id="a", amount=12, date=date(2025, 5, 3), type="expense", category="Spotify"),
        Transaction(id="b", amount=12, date=date(2025, 6, 3), type="expense", category="Spotify"),
    ]
    recurring = [RecurringExpense(amount=12, frequency="monthly", next_expected_date=date(2025, 7, 3))]
    reply = _advisor(transactions=txs, recurring_expenses=recurring).answer("Which subscriptions do I have?")

    assert "1 likely subscription (Spotify)" in reply.answer
    assert "$144 a year" in reply.answer


def test_context_is_compact_and_serializable():
    ctx = _advisor(profile=Profile(monthly_income=2000)).context()
    assert ctx["debt_status"] == "no_debt"
    assert ctx["health_score"] == 0
    assert set(ctx) >= {"income_30d", "spending_30d", "savings_rate", "top_categories"}


def test_format_without_recommendations():
    assert AdvisorAnswer(answer="Hi", analysis="There").format() == "Hi\n\nThere"
