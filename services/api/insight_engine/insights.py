from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from .models import (
    PRIORITY_ORDER,
    Budget,
    FinancialAnalysis,
    Goal,
    Insight,
    Profile,
    RecurringExpense,
    coerce_profile,
    coerce_records,
)
from .subscriptions import overdue_expenses

logger = logging.getLogger(__name__)


# Action identifiers an insight may carry; the caller decides what each one does.
ACTIONS = {
    "view_detailed_report": "View Report",
    "improve_health": "Get Tips",
    "financial_planning": "Get Help",
    "increase_savings": "Learn How",
    "emergency_budget": "Create Budget",
    "create_budget": "Create Budget",
    "review_budgets": "Review Budgets",
    "adjust_spending": "Adjust Spending",
    "reallocate_funds": "Reallocate",
    "adjust_budget": "Adjust Budget",
    "monitor_budget": "Monitor",
    "create_goal": "Create Goal",
    "boost_savings": "Boost Savings",
    "review_spending": "Review Spending",
    "add_transaction": "Add Transaction",
    "set_income": "Set Income",
    "build_emergency_fund": "Build Fund",
    "increase_emergency_fund": "Increase Fund",
    "pay_recurring": "Pay Now",
    "review_recurring": "Review Expenses",
    "view_recurring": "View Details",
    "view_annual_projection": "View Projection",
    "add_recurring_expense": "Add Recurring",
    "review_recurring_bills": "Review Bills",
    "review_subscriptions": "Review Subscriptions",
    "analyze_spending_patterns": "Analyze Patterns",
    "review_merchant_spending": "Review Spending",
    "view_cash_flow": "View Projection",
    "fix_cash_flow": "Fix Cash Flow",
    "debt_reduction_plan": "Get Plan",
    "create_debt_plan": "Create Plan",
    "accelerate_debt_payoff": "Accelerate Payoff",
    "investment_advice": "Get Advice",
}

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


@dataclass(frozen=True)
class RuleContext:
    analysis: FinancialAnalysis
    profile: Profile
    budgets: Sequence[Budget]
    goals: Sequence[Goal]
    recurring_expenses: Sequence[RecurringExpense]
    now: datetime


Rule = Callable[[RuleContext], List[Insight]]


def _insight(id: str, type: str, title: str, message: str, priority: str,
             action: Optional[str] = None, **kwargs) -> Insight:
    return Insight(
        id=id,
        type=type,
        title=title,
        message=message,
        priority=priority,
        action=action,
        action_label=ACTIONS.get(action) if action else None,
        **kwargs,
    )


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'' if n == 1 else 's'}"


# --- Rules ---

def health_rule(ctx: RuleContext) -> List[Insight]:
    score = ctx.analysis.health_score
    if score >= 80:
        return [_insight(
            "health_excellent", "success", "Excellent Financial Health!",
            f"Your financial health score is {score:.0f}/100. Keep up the great work!",
            "low", "view_detailed_report", value=score, category="savings",
            tags=["health-score", "overview"], created_at=ctx.now,
        )]
    if score >= 60:
        return [_insight(
            "health_good", "info", "Good Financial Health",
            f"Your financial health score is {score:.0f}/100. There's room for improvement.",
            "medium", "improve_health", value=score, category="savings",
            tags=["health-score", "overview"],
        )]
    return [_insight(
        "health_needs_attention", "warning", "Financial Health Needs Attention",
        f"Your financial health score is {score:.0f}/100. Let's work on improving it.",
        "high", "financial_planning", value=score, category="savings",
        tags=["health-score", "overview"],
    )]


def savings_rule(ctx: RuleContext) -> List[Insight]:
    rate = ctx.analysis.savings_rate
    if rate >= 20:
        return [_insight(
            "savings_excellent", "success", "Excellent Savings Rate!",
            f"You're saving {rate:.1f}% of your income. This is fantastic!",
            "low", value=rate, trend="up", category="savings", tags=["savings-rate"],
        )]
    if rate >= 10:
        return [_insight(
            "savings_good", "info", "Good Savings Rate",
            f"You're saving {rate:.1f}% of your income. Consider increasing to 20% for better financial security.",
            "medium", "increase_savings", value=rate, category="savings", tags=["savings-rate"],
        )]
    if rate < 0:
        return [_insight(
            "savings_negative", "critical", "Spending More Than Earning",
            f"You're spending {abs(rate):.1f}% more than you earn. This needs immediate attention.",
            "critical", "emergency_budget", value=rate, trend="down", category="savings",
            tags=["savings-rate", "cash-flow"],
        )]
    return [_insight(
        "savings_low", "warning", "Low Savings Rate",
        f"You're only saving {rate:.1f}% of your income. Aim for at least 10-20%.",
        "high", "increase_savings", value=rate, category="savings", tags=["savings-rate"],
    )]


def budget_rule(ctx: RuleContext) -> List[Insight]:
    utilization = ctx.analysis.budget_utilization
    if not ctx.budgets:
        return [_insight(
            "no_budgets", "info", "Create Your First Budget",
            "Budgets help you track spending and achieve financial goals. Start with your biggest expense categories.",
            "medium", "create_budget", category="budget", tags=["budget", "getting-started"],
        )]
    if utilization > 100:
        return [_insight(
            "budget_over", "critical", "Over Budget",
            f"You've exceeded your total budget by {utilization - 100:.1f}%. Review your spending immediately.",
            "critical", "review_budgets", value=utilization, trend="up", category="budget",
            tags=["budget"],
        )]
    if utilization > 80:
        return [_insight(
            "budget_warning", "warning", "Approaching Budget Limit",
            f"You've used {utilization:.1f}% of your budget. Consider reducing spending in some categories.",
            "high", "adjust_spending", value=utilization, category="budget", tags=["budget"],
        )]
    if utilization < 50:
        return [_insight(
            "budget_under", "info", "Under Budget",
            f"You've only used {utilization:.1f}% of your budget. Consider reallocating funds to savings or goals.",
            "low", "reallocate_funds", value=utilization, category="budget", tags=["budget"],
        )]
    return []


def per_budget_rule(ctx: RuleContext) -> List[Insight]:
    out: List[Insight] = []
    for budget in ctx.budgets:
        utilization = budget.utilization
        meta = {"budget_id": budget.id, "budget_name": budget.name}
        if utilization > 100:
            out.append(_insight(
                f"budget_over_{budget.id}", "critical", f"{budget.name} Over Budget",
                f"You've exceeded your {budget.name} budget by ${budget.spent - budget.amount:.2f}.",
                "critical", "adjust_budget", value=utilization, category="budget",
                tags=["budget", budget.name.lower()], metadata=meta,
            ))
        elif utilization > 90:
            out.append(_insight(
                f"budget_warning_{budget.id}", "warning", f"{budget.name} Near Limit",
                f"You've used {utilization:.1f}% of your {budget.name} budget.",
                "high", "monitor_budget", value=utilization, category="budget",
                tags=["budget", budget.name.lower()], metadata=meta,
            ))
    return out


def goal_rule(ctx: RuleContext) -> List[Insight]:
    progress = ctx.analysis.goal_progress
    if not ctx.goals:
        return [_insight(
            "no_goals", "info", "Set Financial Goals",
            "Financial goals give you direction and motivation. Start with a simple savings goal.",
            "medium", "create_goal", category="goals", tags=["goals", "getting-started"],
        )]
    if progress >= 80:
        return [_insight(
            "goals_excellent", "success", "Great Goal Progress!",
            f"You've achieved {progress:.1f}% of your financial goals. Keep it up!",
            "low", value=progress, trend="up", category="goals", tags=["goals"],
        )]
    if progress < 20:
        return [_insight(
            "goals_slow", "warning", "Slow Goal Progress",
            f"You've only achieved {progress:.1f}% of your goals. Consider increasing your savings rate.",
            "high", "boost_savings", value=progress, category="goals", tags=["goals"],
        )]
    return []


def concentration_rule(ctx: RuleContext) -> List[Insight]:
    a = ctx.analysis
    if not a.top_spending_categories or a.total_spending <= 0:
        return []
    top = a.top_spending_categories[0]
    share = top.amount / a.total_spending * 100
    if share <= 40:
        return []
    return [_insight(
        "spending_concentration", "info", "High Spending Concentration",
        f"{top.category} accounts for {share:.1f}% of your spending. Consider if this aligns with your priorities.",
        "medium", "review_spending", value=share, category="spending",
        tags=["spending", top.category.lower()], metadata={"category": top.category},
    )]


def activity_rule(ctx: RuleContext) -> List[Insight]:
    if ctx.analysis.recent_transactions:
        return []
    return [_insight(
        "no_recent_activity", "info", "No Recent Transactions",
        "No transactions recorded in the last 30 days. Make sure to track your spending for better insights.",
        "medium", "add_transaction", category="spending", tags=["tracking"],
    )]


def income_rule(ctx: RuleContext) -> List[Insight]:
    if ctx.analysis.total_income > 0 or ctx.profile.monthly_income > 0:
        return []
    return [_insight(
        "income_missing", "warning", "Income Not Set",
        "Setting your monthly income helps create accurate budgets and financial plans.",
        "high", "set_income", category="income", tags=["income", "getting-started"],
    )]


def emergency_fund_rule(ctx: RuleContext) -> List[Insight]:
    status = ctx.analysis.emergency_fund_status
    months = ctx.analysis.emergency_fund_coverage
    if status == "critical":
        return [_insight(
            "emergency_fund_critical", "critical", "Emergency Fund Critical",
            f"Your emergency fund covers only {months:.1f} months of expenses. Aim for 3-6 months for financial security.",
            "critical", "build_emergency_fund", value=months, trend="down", category="emergency",
            tags=["emergency-fund", "critical", "savings"],
        )]
    if status == "needs_improvement":
        return [_insight(
            "emergency_fund_low", "warning", "Emergency Fund Needs Improvement",
            f"Your emergency fund covers {months:.1f} months of expenses. Consider building it to 6 months.",
            "high", "increase_emergency_fund", value=months, category="emergency",
            tags=["emergency-fund", "savings"],
        )]
    if status == "excellent":
        return [_insight(
            "emergency_fund_excellent", "success", "Excellent Emergency Fund!",
            f"Your emergency fund covers {months:.1f} months of expenses. You're well prepared for emergencies.",
            "low", value=months, trend="up", category="emergency", tags=["emergency-fund"],
        )]
    return []


def _monthly_income(ctx: RuleContext) -> float:
    return ctx.profile.monthly_income or ctx.analysis.total_income or 0.0


def recurring_rule(ctx: RuleContext) -> List[Insight]:
    expenses = ctx.recurring_expenses
    if not expenses:
        return [_insight(
            "no_recurring_expenses", "info", "Track Recurring Expenses",
            "Add your recurring expenses (subscriptions, bills, rent) to better manage your monthly commitments and cash flow.",
            "medium", "add_recurring_expense", category="budget", tags=["recurring"],
        )]

    out: List[Insight] = []
    overdue = overdue_expenses(expenses, ctx.now.date())
    if overdue:
        total = sum(e.amount for e in overdue)
        out.append(_insight(
            "recurring_overdue", "critical", "Overdue Recurring Expenses",
            f"You have {_plural(len(overdue), 'overdue recurring expense')} totaling ${total:.2f}. Pay them soon to avoid late fees.",
            "critical", "pay_recurring", value=total, trend="down", category="budget",
            tags=["recurring", "overdue"], metadata={"count": len(overdue)},
        ))

    load = ctx.analysis.recurring_load
    income = _monthly_income(ctx)
    if load.monthly_total > 0 and income > 0:
        share = load.monthly_total / income * 100
        if share > 50:
            out.append(_insight(
                "recurring_high_commitment", "warning", "High Recurring Commitment",
                f"Your monthly recurring expenses (${load.monthly_total:.2f}) are {share:.1f}% of your income. "
                "Consider reducing subscriptions or recurring costs.",
                "high", "review_recurring", value=share, category="budget", tags=["recurring"],
            ))
        elif share > 30:
            out.append(_insight(
                "recurring_moderate_commitment", "info", "Moderate Recurring Expenses",
                f"Your monthly recurring expenses (${load.monthly_total:.2f}) are {share:.1f}% of your income. "
                "This is manageable but keep an eye on it.",
                "medium", "view_recurring", value=share, category="budget", tags=["recurring"],
            ))

    if load.annual_total > 0:
        out.append(_insight(
            "recurring_annual_projection", "info", "Annual Recurring Expense Projection",
            f"Your recurring expenses will cost approximately ${load.annual_total:.0f} this year. "
            "Factor this into your financial planning.",
            "low", "view_annual_projection", value=load.annual_total, category="budget",
            tags=["recurring", "projection"],
        ))
    return out


def recurring_bills_rule(ctx: RuleContext) -> List[Insight]:
    bills = ctx.analysis.potential_recurring_bills
    if not bills:
        return []
    return [_insight(
        "recurring_bills_detected", "info", "Recurring Bills Detected",
        f"We found {_plural(len(bills), 'potential recurring bill')}. "
        f"Your top recurring expense is ${bills[0].amount:.2f}.",
        "medium", "review_recurring_bills", value=len(bills), category="spending",
        tags=["recurring", "bills"],
    )]


def subscriptions_rule(ctx: RuleContext) -> List[Insight]:
    subs = ctx.analysis.detected_subscriptions
    if not subs:
        return []
    total = sum(s.total_spent for s in subs)
    return [_insight(
        "subscriptions_detected", "info", "Subscriptions Detected",
        f"We found {_plural(len(subs), 'subscription')} costing ${total:.2f} total. "
        "Review them to optimize your spending.",
        "medium", "review_subscriptions", value=total, category="spending",
        tags=["subscriptions"], metadata={"categories": [s.category for s in subs]},
    )]


def spending_pattern_rule(ctx: RuleContext) -> List[Insight]:
    peak = ctx.analysis.spending_patterns.highest_spending_day
    if peak is None:
        return []
    return [_insight(
        "spending_pattern_day", "info", "Spending Pattern Detected",
        f"You spend most on {DAY_NAMES[peak.day]}, averaging ${peak.amount / 4:.2f} per week. "
        "Consider if this aligns with your budget.",
        "low", "analyze_spending_patterns", value=peak.amount, category="spending",
        tags=["patterns", DAY_NAMES[peak.day].lower()],
    )]


def merchant_rule(ctx: RuleContext) -> List[Insight]:
    a = ctx.analysis
    if not a.top_merchants or a.total_spending <= 0:
        return []
    top = a.top_merchants[0]
    if top.total_spent <= a.total_spending * 0.2:
        return []
    share = top.total_spent / a.total_spending * 100
    return [_insight(
        "top_merchant_high", "info", "High Spending at One Merchant",
        f"You've spent ${top.total_spent:.2f} at {top.merchant} ({share:.1f}% of total spending).",
        "medium", "review_merchant_spending", value=share, category="spending",
        tags=["merchants"], metadata={"merchant": top.merchant},
    )]


def cash_flow_rule(ctx: RuleContext) -> List[Insight]:
    projection = ctx.analysis.cash_flow_projection
    if projection.monthly_savings > 0:
        return [_insight(
            "cash_flow_projection", "success", "Positive Cash Flow Projection",
            f"At current rates, you could save ${projection.yearly_savings:.2f} this year. "
            "Great job maintaining positive cash flow!",
            "low", "view_cash_flow", value=projection.yearly_savings, trend="up",
            category="savings", tags=["cash-flow", "projection"],
        )]
    if projection.monthly_savings < 0:
        deficit = abs(projection.monthly_savings)
        return [_insight(
            "negative_cash_flow", "critical", "Negative Cash Flow Detected",
            f"You're spending ${deficit:.2f} more than you earn monthly. This needs immediate attention.",
            "critical", "fix_cash_flow", value=deficit, trend="down", category="spending",
            tags=["cash-flow"],
        )]
    return []


def debt_rule(ctx: RuleContext) -> List[Insight]:
    debt = ctx.analysis.debt_analysis
    if debt.status == "high_debt":
        return [_insight(
            "high_debt_ratio", "critical", "High Debt-to-Income Ratio",
            f"Your debt is {debt.ratio:.1f}% of your income. Focus on debt reduction strategies immediately.",
            "critical", "debt_reduction_plan", value=debt.ratio, trend="down", category="debt",
            tags=["debt"],
        )]
    if debt.status == "moderate_debt":
        return [_insight(
            "moderate_debt_ratio", "warning", "Moderate Debt Level",
            f"Your debt is {debt.ratio:.1f}% of your income. Consider creating a debt payoff plan.",
            "high", "create_debt_plan", value=debt.ratio, category="debt", tags=["debt"],
        )]
    if debt.status == "no_debt":
        return [_insight(
            "no_debt", "success", "Debt-Free!",
            "Congratulations! You have no debt. Consider investing your extra money for long-term growth.",
            "low", "investment_advice", trend="up", category="investment", tags=["debt", "investing"],
        )]
    return []


RULES: List[Rule] = [
    health_rule,
    savings_rule,
    budget_rule,
    per_budget_rule,
    goal_rule,
    concentration_rule,
    activity_rule,
    income_rule,
    emergency_fund_rule,
    recurring_rule,
    recurring_bills_rule,
    subscriptions_rule,
    spending_pattern_rule,
    merchant_rule,
    cash_flow_rule,
    debt_rule,
]


def sort_by_priority(insights: Iterable[Insight]) -> List[Insight]:
    return sorted(insights, key=lambda i: i.rank, reverse=True)


def generate_insights(
    analysis: FinancialAnalysis,
    profile: Optional[Union[Profile, Dict]] = None,
    budgets: Optional[Iterable[Union[Budget, Dict]]] = None,
    goals: Optional[Iterable[Union[Goal, Dict]]] = None,
    recurring_expenses: Optional[Iterable[Union[RecurringExpense, Dict]]] = None,
    dismissed_ids: Iterable[str] = (),
    now: Optional[datetime] = None,
    rules: Sequence[Rule] = RULES,
) -> List[Insight]:
    """Run every rule against the snapshot, drop dismissed ids, order by priority."""
    ctx = RuleContext(
        analysis=analysis,
        profile=coerce_profile(profile),
        budgets=coerce_records(budgets, Budget),
        goals=coerce_records(goals, Goal),
        recurring_expenses=coerce_records(recurring_expenses, RecurringExpense),
        now=now or analysis.computed_at,
    )
    items: List[Insight] = []
    seen = set()
    for rule in rules:
        for insight in rule(ctx):
            if insight.id in seen:
                # first claim wins; a repeated id (e.g. two budgets sharing an id) is dropped
                logger.warning("Duplicate insight id %s from %s", insight.id, rule.__name__)
                continue
            seen.add(insight.id)
            items.append(insight)

    dismissed = set(dismissed_ids)
    visible = [i for i in items if i.id not in dismissed]
    logger.info("Generated %d insights (%d dismissed)", len(items), len(items) - len(visible))
    return sort_by_priority(visible)


def insight_stats(insights: Iterable[Insight]) -> Dict[str, int]:
    stats = {p: 0 for p in PRIORITY_ORDER}
    total = 0
    for i in insights:
        stats[i.priority] = stats.get(i.priority, 0) + 1
        total += 1
    stats["total"] = total
    return stats
