"""Deterministic answers to free-text questions, built from the local analysis.

The advisor never touches the network. It routes a question to a topic by
keyword, reads the FinancialAnalysis snapshot and the generated insights, and
returns an answer with its own confidence: high when the data speaks directly
to the topic, medium for the overall-health summary, low when the question
could not be matched.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .analysis import compute_analysis
from .forecast import months_to_target
from .insights import generate_insights
from .models import (
    Budget,
    FinancialAnalysis,
    Goal,
    Insight,
    Profile,
    RecurringExpense,
    Transaction,
    coerce_profile,
    coerce_records,
)


@dataclass
class AdvisorAnswer:
    answer: str
    analysis: str = ""
    recommendations: List[str] = field(default_factory=list)
    actionable: bool = True
    confidence: str = "high"  # high|medium|low
    topic: str = "default"

    def format(self) -> str:
        text = self.answer
        if self.analysis:
            text += f"\n\n{self.analysis}"
        if self.recommendations:
            text += "\n\n**Recommendations:**\n"
            text += "".join(f"{i}. {rec}\n" for i, rec in enumerate(self.recommendations, 1))
        return text


# Checked in order; the first topic with a matching keyword wins.
TOPIC_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("emergency", ("emergency", "rainy day", "safety net")),
    ("debt", ("debt", "loan", "owe", "credit card")),
    ("subscriptions", ("subscription", "recurring", "bill", "netflix", "spotify")),
    ("budget", ("budget", "budgeting", "overspend")),
    ("savings", ("savings", "saving rate", "savings rate", "save more", "rate")),
    ("goals", ("goal", "target", "dream", "purchase", "plan to", "buy a house")),
    ("spending", ("spending", "spend", "expense", "merchant", "grocery", "food")),
    ("general", ("how", "what", "financial", "health", "overall", "doing")),
]


def detect_topic(question: str) -> str:
    q = (question or "").lower()
    for topic, words in TOPIC_KEYWORDS:
        if any(w in q for w in words):
            return topic
    return "default"


def _savings_status(rate: float) -> str:
    if rate >= 20:
        return "excellent"
    if rate >= 10:
        return "good"
    if rate > 0:
        return "needs_improvement"
    return "critical"


class LocalAdvisor:
    def __init__(
        self,
        transactions: Optional[Sequence[Transaction]] = None,
        budgets: Optional[Sequence[Budget]] = None,
        goals: Optional[Sequence[Goal]] = None,
        recurring_expenses: Optional[Sequence[RecurringExpense]] = None,
        profile: Optional[Profile] = None,
        now: Optional[datetime] = None,
    ):
        self.now = now or datetime.now()
        self.profile = coerce_profile(profile)
        self.budgets = coerce_records(budgets, Budget)
        self.goals = coerce_records(goals, Goal)
        self.recurring_expenses = coerce_records(recurring_expenses, RecurringExpense)
        self.snapshot: FinancialAnalysis = compute_analysis(
            transactions, self.budgets, self.goals, self.recurring_expenses, self.profile, now=self.now,
        )
        self.insights: List[Insight] = generate_insights(
            self.snapshot, self.profile, self.budgets, self.goals, self.recurring_expenses, now=self.now,
        )

    def context(self) -> Dict:
        """Compact figures handed to the remote model alongside the question."""
        a = self.snapshot
        return {
            "income_30d": round(a.total_income, 2),
            "spending_30d": round(a.total_spending, 2),
            "savings_rate": round(a.savings_rate, 1),
            "budget_utilization": round(a.budget_utilization, 1),
            "goal_progress": round(a.goal_progress, 1),
            "health_score": round(a.health_score),
            "emergency_fund_months": round(a.emergency_fund_coverage, 1),
            "debt_status": a.debt_analysis.status,
            "top_categories": [c.category for c in a.top_spending_categories],
        }

    def answer(self, question: str) -> AdvisorAnswer:
        topic = detect_topic(question)
        handler: Callable[[], AdvisorAnswer] = getattr(self, f"_{topic}")
        result = handler()
        result.topic = topic
        return result

    def _urgent(self, category: str) -> List[str]:
        return [
            i.message for i in self.insights
            if i.category == category and i.priority in ("critical", "high")
        ]

    # --- topics ---

    def _budget(self) -> AdvisorAnswer:
        a = self.snapshot
        if not self.budgets:
            return AdvisorAnswer(
                answer="You haven't set up any budgets yet.",
                analysis="Without budgets there is nothing to measure your spending against.",
                recommendations=[
                    "Start with your two or three biggest expense categories",
                    "Use last month's spending as the first budget amount",
                    "Review the budgets weekly for the first month",
                ],
            )
        over = [b for b in self.budgets if b.utilization > 100]
        answer = f"You've used {a.budget_utilization:.1f}% of your total budget across {len(self.budgets)} budgets."
        if over:
            names = ", ".join(b.name for b in over)
            answer += f" You're over budget in {names}."
            analysis = "Overspending in one budget usually has to be paid for out of savings or another budget."
        elif a.budget_utilization < 50:
            analysis = "You have plenty of room left; unused budget could go to savings or goals."
        else:
            analysis = "Your budgets are on track."
        recs = self._urgent("budget") or ["Keep reviewing your budgets each week"]
        return AdvisorAnswer(answer=answer, analysis=analysis, recommendations=recs)

    def _goals(self) -> AdvisorAnswer:
        a = self.snapshot
        if not self.goals:
            return AdvisorAnswer(
                answer="You don't have any financial goals yet.",
                analysis="A concrete target makes it easier to decide what to cut.",
                recommendations=[
                    "Start with an emergency fund goal of 3 months of expenses",
                    "Give each goal a target amount and a date",
                ],
            )
        monthly = a.cash_flow_projection.monthly_savings
        recs = []
        for g in self.goals:
            months = months_to_target(g.target, g.current, monthly)
            if months == 0:
                recs.append(f"{g.name} is fully funded")
            elif months < 0:
                recs.append(f"{g.name} needs a positive monthly surplus to make progress")
            else:
                recs.append(f"{g.name}: about {months} months at your current pace")
        return AdvisorAnswer(
            answer=f"You've reached {a.goal_progress:.1f}% of your combined goal targets.",
            analysis=f"At current rates you're setting aside ${monthly:.2f} a month.",
            recommendations=recs,
        )

    def _savings(self) -> AdvisorAnswer:
        rate = self.snapshot.savings_rate
        status = _savings_status(rate)
        if status == "excellent":
            answer = f"Excellent work! Your savings rate is {rate:.1f}%, above the recommended 20%."
            recs = ["Consider investing excess savings for higher returns", "Set more ambitious financial goals"]
        elif status == "good":
            answer = f"Good job! Your savings rate is {rate:.1f}%, close to the recommended 20%."
            recs = ["Aim to increase savings to 20% of income", "Automate your savings to make it easier"]
        elif status == "needs_improvement":
            answer = f"Your savings rate is {rate:.1f}%, below the recommended 20%."
            recs = [
                "Use the 50/30/20 rule: 50% needs, 30% wants, 20% savings",
                "Set up automatic transfers to savings accounts",
            ]
        else:
            answer = f"Your current savings rate of {rate:.1f}% needs immediate attention."
            recs = [
                "Create a strict budget to identify spending areas",
                "Start with saving 5% and increase monthly",
                "Build an emergency fund first (3-6 months of expenses)",
            ]
        yearly = self.snapshot.cash_flow_projection.yearly_savings
        return AdvisorAnswer(
            answer=answer,
            analysis=f"At this pace you would save ${yearly:.2f} over the next 12 months.",
            recommendations=recs,
        )

    def _spending(self) -> AdvisorAnswer:
        a = self.snapshot
        answer = f"You've spent ${a.total_spending:.2f} in the last 30 days."
        recs: List[str] = []
        if a.top_spending_categories and a.total_spending > 0:
            top = a.top_spending_categories[0]
            share = top.amount / a.total_spending * 100
            answer += f" Your highest spending category is {top.category} at {share:.1f}% of total spending."
            if share > 40:
                recs.append(f"Review if {top.category} spending aligns with your priorities")
                recs.append(f"Consider setting a specific budget for {top.category}")
        if a.top_merchants:
            m = a.top_merchants[0]
            recs.append(f"Your biggest merchant overall is {m.merchant} (${m.total_spent:.2f})")
        recs = recs or ["Keep tracking every expense for a clearer picture"]
        return AdvisorAnswer(
            answer=answer,
            analysis=f"Projected over a year that is ${a.total_spending * 12:.2f}.",
            recommendations=recs,
        )

    def _emergency(self) -> AdvisorAnswer:
        a = self.snapshot
        answer = (
            f"Your emergency fund of ${a.current_emergency_fund:.2f} covers "
            f"{a.emergency_fund_coverage:.1f} months of expenses ({a.emergency_fund_status.replace('_', ' ')})."
        )
        recs = self._urgent("emergency")
        if a.emergency_fund_target > a.current_emergency_fund:
            recs.append(f"A 6-month fund for you is ${a.emergency_fund_target:.2f}")
        return AdvisorAnswer(
            answer=answer,
            analysis="Three to six months of expenses is the usual target.",
            recommendations=recs or ["Keep the fund in an easy-access savings account"],
        )

    def _debt(self) -> AdvisorAnswer:
        d = self.snapshot.debt_analysis
        if d.status == "no_debt":
            return AdvisorAnswer(
                answer="You have no debt on record.",
                analysis="Being debt-free frees your surplus for savings and investing.",
                recommendations=["Consider investing your extra money for long-term growth"],
            )
        return AdvisorAnswer(
            answer=f"Your debt of ${d.amount:.2f} is {d.ratio:.1f}% of your monthly income ({d.status.replace('_', ' ')}).",
            analysis="Under 20% is comfortable; above 40% makes it hard to save.",
            recommendations=self._urgent("debt") or ["Pay more than the minimum on the highest-interest balance"],
        )

    def _subscriptions(self) -> AdvisorAnswer:
        a = self.snapshot
        subs = a.detected_subscriptions
        load = a.recurring_load
        if subs:
            names = ", ".join(s.category for s in subs)
            noun = "subscription" if len(subs) == 1 else "subscriptions"
            answer = f"You have {len(subs)} likely {noun} ({names})."
        else:
            answer = "I didn't find any regular subscriptions in your transactions."
        if load.count:
            answer += f" Your recurring expenses add up to ${load.annual_total:.0f} a year."
        recs = self._urgent("budget") if load.overdue_count else []
        recs.append("Cancel anything you haven't used in the last month")
        return AdvisorAnswer(
            answer=answer,
            analysis=f"{len(a.potential_recurring_bills)} repeating charges were found in your history.",
            recommendations=recs,
        )

    def _general(self) -> AdvisorAnswer:
        a = self.snapshot
        top = self.insights[:3]
        return AdvisorAnswer(
            answer=f"Your financial health score is {a.health_score:.0f}/100.",
            analysis=(
                f"Savings rate {a.savings_rate:.1f}%, budget utilization {a.budget_utilization:.1f}%, "
                f"goal progress {a.goal_progress:.1f}%."
            ),
            recommendations=[f"{i.title}: {i.message}" for i in top],
            confidence="medium",
        )

    def _default(self) -> AdvisorAnswer:
        return AdvisorAnswer(
            answer=(
                "I can help you with specific questions about your budgets, goals, spending, "
                "and savings. What would you like to know more about?"
            ),
            analysis="General question detected. Need more specific information to provide targeted advice.",
            recommendations=[
                "Check your goals: 'How are my financial goals progressing?'",
                "Review spending: 'How is my spending trending?'",
                "Assess savings: 'How is my savings rate?'",
            ],
            actionable=False,
            confidence="low",
        )
