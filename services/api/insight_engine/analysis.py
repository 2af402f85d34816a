from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from . import config
from .forecast import project_cash_flow
from .models import (
    Budget,
    CategorySpend,
    DebtAnalysis,
    FinancialAnalysis,
    Goal,
    MerchantSpend,
    Profile,
    RecurringExpense,
    SpendingPatterns,
    SpendingPeak,
    Transaction,
    coerce_profile,
    coerce_records,
)
from .subscriptions import detect_recurring_bills, detect_subscriptions, recurring_load


def _now() -> datetime:
    return datetime.now()


def _pct(part: float, whole: float) -> float:
    return (part / whole) * 100 if whole > 0 else 0.0


def _window_start(now: datetime, days: int) -> date:
    return (now - timedelta(days=days)).date()


def recent_transactions(transactions: Sequence[Transaction], now: datetime, days: int = 30) -> List[Transaction]:
    start = _window_start(now, days)
    return [t for t in transactions if t.date >= start]


def savings_rate(income: float, spending: float) -> float:
    return _pct(income - spending, income)


def budget_utilization(budgets: Sequence[Budget]) -> float:
    allocated = sum(b.amount for b in budgets)
    spent = sum(b.spent for b in budgets)
    return _pct(spent, allocated)


def goal_progress(goals: Sequence[Goal]) -> float:
    target = sum(g.target for g in goals)
    current = sum(g.current for g in goals)
    return _pct(current, target)


def health_score(rate: float, utilization: float, progress: float) -> float:
    # Utilization is rewarded for sitting near 100%: idle allocation and overspend both cost points
    raw = rate * 0.4 + max(0.0, 100 - abs(utilization - 100)) * 0.3 + progress * 0.3
    return min(100.0, max(0.0, raw))


def top_spending_categories(recent: Sequence[Transaction], top_k: int = 3) -> List[CategorySpend]:
    by_cat: Dict[str, float] = {}
    for t in recent:
        if t.type != "expense":
            continue
        cat = t.category or "Other"
        by_cat[cat] = by_cat.get(cat, 0.0) + abs(t.amount)
    ranked = sorted(by_cat.items(), key=lambda kv: kv[1], reverse=True)
    return [CategorySpend(category=c, amount=a) for c, a in ranked[:top_k]]


def emergency_fund(savings: float, monthly_expenses: float, target_months: int = 6) -> Tuple[float, str]:
    """Return (coverage_months, status).

    With no recorded spending any positive savings count as full coverage;
    coverage is then reported as the target so it stays finite.
    """
    if monthly_expenses > 0:
        coverage = savings / monthly_expenses
    elif savings > 0:
        coverage = float(target_months)
    else:
        coverage = 0.0

    if coverage >= 6:
        status = "excellent"
    elif coverage >= 3:
        status = "good"
    elif coverage >= 1:
        status = "needs_improvement"
    else:
        status = "critical"
    return coverage, status


def _peak(totals: Dict[int, float]) -> Optional[SpendingPeak]:
    if not totals:
        return None
    day, amount = min(totals.items(), key=lambda kv: (-kv[1], kv[0]))
    return SpendingPeak(day=day, amount=amount)


def spending_patterns(transactions: Sequence[Transaction]) -> SpendingPatterns:
    by_weekday: Dict[int, float] = {}
    by_month_day: Dict[int, float] = {}
    for t in transactions:
        if t.type != "expense":
            continue
        amt = abs(t.amount)
        by_weekday[t.date.weekday()] = by_weekday.get(t.date.weekday(), 0.0) + amt
        by_month_day[t.date.day] = by_month_day.get(t.date.day, 0.0) + amt
    return SpendingPatterns(
        highest_spending_day=_peak(by_weekday),
        highest_spending_day_of_month=_peak(by_month_day),
    )


def top_merchants(transactions: Sequence[Transaction], top_k: int = 5) -> List[MerchantSpend]:
    groups: Dict[str, Dict] = {}
    for t in transactions:
        if t.type != "expense":
            continue
        merchant = (t.description or "").strip() or t.category or "Unknown"
        g = groups.setdefault(merchant, {"count": 0, "total": 0.0, "last": t.date})
        g["count"] += 1
        g["total"] += abs(t.amount)
        if t.date > g["last"]:
            g["last"] = t.date
    ranked = sorted(groups.items(), key=lambda kv: kv[1]["total"], reverse=True)
    return [
        MerchantSpend(
            merchant=m,
            transactions=g["count"],
            total_spent=g["total"],
            average_transaction=g["total"] / g["count"],
            last_transaction=g["last"],
        )
        for m, g in ranked[:top_k]
    ]


def debt_analysis(profile: Profile) -> DebtAnalysis:
    ratio = _pct(profile.debt, profile.monthly_income) if profile.debt > 0 else 0.0
    if ratio == 0:
        status = "no_debt"
    elif ratio < 20:
        status = "low_debt"
    elif ratio < 40:
        status = "moderate_debt"
    else:
        status = "high_debt"
    return DebtAnalysis(ratio=ratio, status=status, amount=profile.debt)


def compute_analysis(
    transactions: Optional[Iterable[Union[Transaction, Dict]]],
    budgets: Optional[Iterable[Union[Budget, Dict]]],
    goals: Optional[Iterable[Union[Goal, Dict]]],
    recurring_expenses: Optional[Iterable[Union[RecurringExpense, Dict]]],
    profile: Optional[Union[Profile, Dict]],
    now: Optional[datetime] = None,
) -> FinancialAnalysis:
    """Reduce raw records into a FinancialAnalysis snapshot.

    `now` is the single clock reading for the whole pass; every window boundary
    is derived from it so two calls with the same inputs agree exactly.
    """
    now = now or _now()
    txs = coerce_records(transactions, Transaction)
    buds = coerce_records(budgets, Budget)
    gls = coerce_records(goals, Goal)
    recurring = coerce_records(recurring_expenses, RecurringExpense)
    prof = coerce_profile(profile)

    recent = recent_transactions(txs, now, config.get_recent_window_days())
    income = sum(t.amount for t in recent if t.type == "income")
    spending = sum(abs(t.amount) for t in recent if t.type == "expense")

    rate = savings_rate(income, spending)
    utilization = budget_utilization(buds)
    progress = goal_progress(gls)

    target_months = config.get_emergency_fund_target_months()
    coverage, ef_status = emergency_fund(prof.savings, spending, target_months)

    return FinancialAnalysis(
        total_income=income,
        total_spending=spending,
        net_savings=income - spending,
        savings_rate=rate,
        budget_utilization=utilization,
        goal_progress=progress,
        health_score=health_score(rate, utilization, progress),
        top_spending_categories=top_spending_categories(recent),
        recent_transactions=len(recent),
        potential_recurring_bills=detect_recurring_bills(txs),
        detected_subscriptions=detect_subscriptions(txs, config.get_subscription_keywords()),
        emergency_fund_status=ef_status,
        emergency_fund_coverage=coverage,
        emergency_fund_target=spending * target_months,
        current_emergency_fund=prof.savings,
        spending_patterns=spending_patterns(txs),
        top_merchants=top_merchants(txs),
        cash_flow_projection=project_cash_flow(income, spending),
        debt_analysis=debt_analysis(prof),
        recurring_load=recurring_load(recurring, now.date()),
        computed_at=now,
    )
