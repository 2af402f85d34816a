from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Union


PRIORITY_ORDER = {"critical": 4, "high": 3, "medium": 2, "low": 1}

INSIGHT_TYPES = ("warning", "info", "suggestion", "success", "critical")
INSIGHT_CATEGORIES = (
    "savings", "debt", "budget", "goals", "spending", "income", "emergency", "investment"
)


def _parse_date(d: Any) -> date:
    if isinstance(d, datetime):
        return d.date()
    if isinstance(d, date):
        return d
    s = str(d or "").strip()
    try:
        return date.fromisoformat(s[:10])
    except ValueError:
        for fmt in ("%m/%d/%Y", "%d/%m/%Y", "%Y/%m/%d"):
            try:
                return datetime.strptime(s, fmt).date()
            except ValueError:
                continue
    raise ValueError(f"Invalid date format: {d}")


def _num(v: Any) -> float:
    try:
        return float(v or 0.0)
    except (TypeError, ValueError):
        return 0.0


@dataclass(frozen=True)
class Transaction:
    id: str
    amount: float
    date: date
    type: str  # income|expense
    description: str = ""
    category: Optional[str] = None
    target: Optional[str] = None
    target_model: Optional[str] = None  # Budget|Goal

    @classmethod
    def from_dict(cls, d: Dict) -> "Transaction":
        kind = str(d.get("type") or "expense").lower()
        return cls(
            id=str(d.get("id") or ""),
            amount=abs(_num(d.get("amount"))),
            date=_parse_date(d.get("date")),
            type=kind if kind in ("income", "expense") else "expense",
            description=d.get("description") or "",
            category=d.get("category") or None,
            target=d.get("target"),
            target_model=d.get("target_model") or d.get("targetModel"),
        )


@dataclass(frozen=True)
class Budget:
    id: str
    name: str
    amount: float
    spent: float = 0.0
    period: str = "monthly"  # weekly|monthly

    @classmethod
    def from_dict(cls, d: Dict) -> "Budget":
        return cls(
            id=str(d.get("id") or ""),
            name=d.get("name") or "",
            amount=_num(d.get("amount")),
            spent=_num(d.get("spent")),
            period=d.get("period") or "monthly",
        )

    @property
    def utilization(self) -> float:
        return (self.spent / self.amount) * 100 if self.amount > 0 else 0.0


@dataclass(frozen=True)
class Goal:
    id: str
    name: str
    target: float
    current: float = 0.0

    @classmethod
    def from_dict(cls, d: Dict) -> "Goal":
        return cls(
            id=str(d.get("id") or ""),
            name=d.get("name") or "",
            target=_num(d.get("target")),
            current=_num(d.get("current")),
        )


FREQUENCY_PER_YEAR = {"weekly": 52, "monthly": 12, "quarterly": 4, "yearly": 1}


@dataclass(frozen=True)
class RecurringExpense:
    amount: float
    frequency: str  # weekly|monthly|quarterly|yearly
    next_expected_date: date
    id: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Dict) -> "RecurringExpense":
        return cls(
            id=d.get("id"),
            name=d.get("name"),
            amount=_num(d.get("amount")),
            frequency=str(d.get("frequency") or "monthly").lower(),
            next_expected_date=_parse_date(
                d.get("next_expected_date") or d.get("nextExpectedDate")),
        )

    @property
    def annual_amount(self) -> float:
        return self.amount * FREQUENCY_PER_YEAR.get(self.frequency, 0)


@dataclass(frozen=True)
class Profile:
    monthly_income: float = 0.0
    savings: float = 0.0
    debt: float = 0.0
    expenses: Dict[str, float] = field(default_factory=dict)
    first_name: Optional[str] = None
    last_name: Optional[str] = None

    @classmethod
    def from_dict(cls, d: Optional[Dict]) -> "Profile":
        d = d or {}
        return cls(
            monthly_income=_num(d.get("monthly_income", d.get("monthlyIncome"))),
            savings=_num(d.get("savings")),
            debt=_num(d.get("debt")),
            expenses={k: _num(v) for k, v in (d.get("expenses") or {}).items()},
            first_name=d.get("first_name") or d.get("firstName"),
            last_name=d.get("last_name") or d.get("lastName"),
        )


def coerce_records(items: Optional[Iterable], cls) -> List:
    """Accept dataclasses or raw dicts; None is an empty collection."""
    out = []
    for item in items or []:
        out.append(item if isinstance(item, cls) else cls.from_dict(item))
    return out


def coerce_profile(profile: Union[Profile, Dict, None]) -> Profile:
    return profile if isinstance(profile, Profile) else Profile.from_dict(profile)


@dataclass
class Insight:
    id: str
    type: str
    title: str
    message: str
    priority: str
    action: Optional[str] = None
    action_label: Optional[str] = None
    value: Optional[float] = None
    trend: Optional[str] = None  # up|down|stable
    category: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def rank(self) -> int:
        return PRIORITY_ORDER.get(self.priority, 0)

    def to_dict(self) -> Dict:
        out = asdict(self)
        if self.created_at is not None:
            out["created_at"] = self.created_at.isoformat()
        return out


# --- FinancialAnalysis snapshot ---

@dataclass(frozen=True)
class CategorySpend:
    category: str
    amount: float


@dataclass(frozen=True)
class RecurringBill:
    identifier: str
    category: str
    frequency: int
    amount: float
    last_date: date


@dataclass(frozen=True)
class SubscriptionCandidate:
    category: str
    frequency: int
    average_amount: float
    total_spent: float
    amount_variance: float


@dataclass(frozen=True)
class SpendingPeak:
    day: int
    amount: float


@dataclass(frozen=True)
class SpendingPatterns:
    highest_spending_day: Optional[SpendingPeak] = None  # weekday, 0 = Monday
    highest_spending_day_of_month: Optional[SpendingPeak] = None


@dataclass(frozen=True)
class MerchantSpend:
    merchant: str
    transactions: int
    total_spent: float
    average_transaction: float
    last_transaction: date


@dataclass(frozen=True)
class CashFlowProjection:
    monthly_income: float
    monthly_expenses: float
    monthly_savings: float
    yearly_savings: float


@dataclass(frozen=True)
class DebtAnalysis:
    ratio: float
    status: str  # no_debt|low_debt|moderate_debt|high_debt
    amount: float


@dataclass(frozen=True)
class RecurringLoad:
    monthly_total: float
    annual_total: float
    overdue_count: int
    overdue_total: float
    count: int


@dataclass(frozen=True)
class FinancialAnalysis:
    total_income: float
    total_spending: float
    net_savings: float
    savings_rate: float
    budget_utilization: float
    goal_progress: float
    health_score: float
    top_spending_categories: List[CategorySpend]
    recent_transactions: int
    potential_recurring_bills: List[RecurringBill]
    detected_subscriptions: List[SubscriptionCandidate]
    emergency_fund_status: str  # excellent|good|needs_improvement|critical
    emergency_fund_coverage: float
    emergency_fund_target: float
    current_emergency_fund: float
    spending_patterns: SpendingPatterns
    top_merchants: List[MerchantSpend]
    cash_flow_projection: CashFlowProjection
    debt_analysis: DebtAnalysis
    recurring_load: RecurringLoad
    computed_at: datetime

    def to_dict(self) -> Dict:
        out = asdict(self)
        out["computed_at"] = self.computed_at.isoformat()
        return out
