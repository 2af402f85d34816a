from datetime import date, datetime

import pytest

from insight_engine.advisor import LocalAdvisor
from insight_engine.analysis import compute_analysis
from insight_engine.insights import ACTIONS, RULES, generate_insights, insight_stats, sort_by_priority
from insight_engine.models import Budget, Goal, Insight, Profile, RecurringExpense, Transaction
from insight_engine.store import InsightStore, MemoryKeyValueStore


NOW = datetime(2025, 6, 30, 12, 0)


def _income_and_spend(income, spend):
    return [
        Transaction(id="in", amount=income, date=date(2025, 6, 15), type="income"),
        Transaction(id="out", amount=spend, date=date(2025, 6, 16), type="expense", category="Food"),
    ]


def _run(transactions=None, budgets=None, goals=None, recurring=None, profile=None, dismissed=()):
    profile = profile or Profile()
    analysis = compute_analysis(transactions, budgets, goals, recurring, profile, now=NOW)
    return generate_insights(analysis, profile, budgets, goals, recurring, dismissed_ids=dismissed, now=NOW)


def _ids(insights):
    return [i.id for i in insights]


def test_empty_profile_scenario():
    insights = _run()
    ids = _ids(insights)

    for expected in ("income_missing", "no_budgets", "no_goals", "emergency_fund_critical"):
        assert expected in ids
    assert insights[0].priority == "critical"
    assert insights[0].id == "emergency_fund_critical"
    assert "no_recent_activity" in ids
    assert "no_recurring_expenses" in ids


def test_savings_rate_boundary_at_twenty_percent():
    at = _ids(_run(_income_and_spend(100, 80)))
    below = _ids(_run(_income_and_spend(100, 80.01)))

    assert "savings_excellent" in at
    assert "savings_good" not in at
    assert "savings_good" in below
    assert "savings_excellent" not in below


def test_negative_savings_is_critical():
    insights = _run(_income_and_spend(100, 150))
    by_id = {i.id: i for i in insights}

    assert by_id["savings_negative"].priority == "critical"
    assert by_id["negative_cash_flow"].value == 50


def test_budget_utilization_boundary_at_one_hundred_percent():
    at = _ids(_run(budgets=[Budget(id="b1", name="Food", amount=100, spent=100)]))
    over = _run(budgets=[Budget(id="b1", name="Food", amount=100, spent=100.01)])
    over_ids = _ids(over)

    assert "budget_over" not in at
    assert "budget_warning" in at
    assert "budget_warning_b1" in at
    assert "budget_over" in over_ids
    assert "budget_over_b1" in over_ids
    per_budget = next(i for i in over if i.id == "budget_over_b1")
    assert "$0.01" in per_budget.message
    assert per_budget.metadata["budget_name"] == "Food"


def test_per_budget_rule_fires_independently_of_aggregate():
    budgets = [
        Budget(id="small", name="Coffee", amount=50, spent=80),
        Budget(id="big", name="Rent", amount=2000, spent=500),
    ]
    ids = _ids(_run(budgets=budgets))

    assert "budget_over_small" in ids
    assert "budget_over" not in ids
    assert "budget_under" in ids


def test_duplicate_ids_are_dropped():
    budgets = [
        Budget(id="dup", name="A", amount=10, spent=20),
        Budget(id="dup", name="B", amount=10, spent=30),
    ]
    insights = _run(budgets=budgets)
    ids = _ids(insights)

    assert ids.count("budget_over_dup") == 1
    assert len(ids) == len(set(ids))
    assert next(i for i in insights if i.id == "budget_over_dup").metadata["budget_name"] == "A"


def test_generation_is_idempotent():
    txs = _income_and_spend(3000, 1000)
    budgets = [Budget(id="b1", name="Food", amount=500, spent=480)]
    goals = [Goal(id="g1", name="Trip", target=1000, current=900)]
    recurring = [RecurringExpense(amount=50, frequency="monthly", next_expected_date=date(2025, 7, 5))]
    profile = Profile(monthly_income=3000, savings=5000, debt=100)

    first = [i.to_dict() for i in _run(txs, budgets, goals, recurring, profile)]
    second = [i.to_dict() for i in _run(txs, budgets, goals, recurring, profile)]

    assert first == second


def test_dismissed_ids_are_filtered():
    ids = _ids(_run(dismissed={"no_budgets", "no_goals"}))
    assert "no_budgets" not in ids
    assert "no_goals" not in ids
    assert "income_missing" in ids


def test_result_is_sorted_by_priority():
    ranks = [i.rank for i in _run(_income_and_spend(100, 150))]
    assert ranks == sorted(ranks, reverse=True)


def test_sort_is_stable_within_priority():
    a = Insight(id="a", type="info", title="A", message="", priority="low")
    b = Insight(id="b", type="info", title="B", message="", priority="high")
    c = Insight(id="c", type="info", title="C", message="", priority="low")
    assert _ids(sort_by_priority([a, b, c])) == ["b", "a", "c"]


def test_recurring_expense_rules():
    recurring = [
        RecurringExpense(id="rent", name="Rent", amount=600, frequency="monthly", next_expected_date=date(2025, 6, 1)),
        RecurringExpense(id="gym", name="Gym", amount=100, frequency="yearly", next_expected_date=date(2025, 9, 1)),
    ]
    insights = _run(recurring=recurring, profile=Profile(monthly_income=1000))
    by_id = {i.id: i for i in insights}

    assert by_id["recurring_overdue"].metadata["count"] == 1
    assert "1 overdue recurring expense totaling $600.00" in by_id["recurring_overdue"].message
    assert by_id["recurring_high_commitment"].value == pytest.approx(60)
    assert by_id["recurring_annual_projection"].value == 600 * 12 + 100
    assert "no_recurring_expenses" not in by_id


def test_emergency_fund_and_debt_families():
    profile = Profile(monthly_income=1000, savings=500, debt=500)
    ids = _ids(_run(_income_and_spend(1000, 250), profile=profile))

    assert "emergency_fund_low" in ids
    assert "high_debt_ratio" in ids
    assert "no_debt" not in ids


def test_detected_patterns_produce_spending_insights():
    txs = [
        Transaction(id="n1", amount=15, date=date(2025, 5, 2), type="expense", category="Netflix", description="Netflix"),
        Transaction(id="n2", amount=15, date=date(2025, 6, 2), type="expense", category="Netflix", description="Netflix"),
        Transaction(id="g1", amount=40, date=date(2025, 6, 20), type="expense", category="Groceries", description="Market"),
    ]
    insights = _run(txs)
    by_id = {i.id: i for i in insights}

    assert by_id["subscriptions_detected"].metadata["categories"] == ["Netflix"]
    assert by_id["recurring_bills_detected"].value == 1
    # Friday: 2025-05-02 and 2025-06-20
    assert "Friday" in by_id["spending_pattern_day"].message
    assert by_id["top_merchant_high"].metadata["merchant"] == "Market"


def test_every_action_has_a_label():
    insights = _run(_income_and_spend(100, 150), budgets=[Budget(id="b", name="X", amount=10, spent=20)])
    for insight in insights:
        if insight.action:
            assert insight.action in ACTIONS
            assert insight.action_label == ACTIONS[insight.action]


def test_created_at_uses_threaded_now():
    txs = _income_and_spend(10000, 100)
    goals = [Goal(id="g", name="G", target=100, current=100)]
    budgets = [Budget(id="b", name="B", amount=100, spent=100)]
    health = next(i for i in _run(txs, budgets, goals) if i.id == "health_excellent")
    assert health.created_at == NOW


def test_insight_stats_counts_per_priority():
    stats = insight_stats(_run())
    assert stats["total"] == sum(stats[p] for p in ("critical", "high", "medium", "low"))
    assert stats["critical"] >= 1


def test_rule_names_are_unique():
    names = [r.__name__ for r in RULES]
    assert len(names) == len(set(names))
    assert "per_budget_rule" in names


def test_dict_records_flow_through_rules_store_and_advisor():
    transactions = [
        {"id": "in", "amount": 2000, "date": "2025-06-15", "type": "income"},
        {"id": "out", "amount": -300, "date": "2025-06-16", "type": "expense", "category": "Food"},
    ]
    budgets = [{"id": "b1", "name": "Food", "amount": 100, "spent": 150}]
    goals = [{"id": "g1", "name": "Car", "target": 1000, "current": 100}]
    recurring = [{"amount": 50, "frequency": "monthly", "nextExpectedDate": "2025-07-10"}]
    profile = {"monthlyIncome": 2000, "savings": 500}

    analysis = compute_analysis(transactions, budgets, goals, recurring, profile, now=NOW)
    ids = _ids(generate_insights(analysis, profile, budgets, goals, recurring, now=NOW))
    assert "budget_over_b1" in ids
    assert "budget_over" in ids
    assert "income_missing" not in ids

    store = InsightStore(MemoryKeyValueStore(), clock=lambda: NOW)
    visible = store.regenerate(analysis, profile, budgets, goals, recurring, now=NOW)
    assert "budget_over_b1" in _ids(visible)

    advisor = LocalAdvisor(transactions, budgets, goals, recurring, profile, now=NOW)
    assert "over budget in Food" in advisor.answer("Am I over budget?").answer
