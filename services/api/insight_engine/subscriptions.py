from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .models import (
    FREQUENCY_PER_YEAR,
    RecurringBill,
    RecurringExpense,
    RecurringLoad,
    SubscriptionCandidate,
    Transaction,
)


# Fractional spread allowed between the cheapest and priciest charge of a subscription
MAX_AMOUNT_SPREAD = 0.2


def _expenses(transactions: Iterable[Transaction]) -> List[Transaction]:
    return [t for t in transactions if t.type == "expense"]


def _bill_key(tx: Transaction) -> Tuple[str, float]:
    return (tx.category or "Other", round(abs(tx.amount), 2))


def detect_recurring_bills(transactions: Sequence[Transaction], top_k: int = 5) -> List[RecurringBill]:
    """Group the full expense history by (category, amount) and keep repeats.

    The whole history is used, not the recent window: a monthly bill only shows
    up twice once two months of data are available.
    """
    groups: Dict[Tuple[str, float], Dict] = {}
    for tx in _expenses(transactions):
        key = _bill_key(tx)
        g = groups.get(key)
        if g is None:
            groups[key] = {"count": 1, "total": abs(tx.amount), "last": tx.date}
        else:
            g["count"] += 1
            g["total"] += abs(tx.amount)
            if tx.date > g["last"]:
                g["last"] = tx.date

    bills = [
        RecurringBill(
            identifier=f"{cat}_{amt:g}",
            category=cat,
            frequency=g["count"],
            amount=g["total"] / g["count"],
            last_date=g["last"],
        )
        for (cat, amt), g in groups.items()
        if g["count"] >= 2
    ]
    # sorted() is stable, so equal frequencies keep first-seen order
    bills = sorted(bills, key=lambda b: b.frequency, reverse=True)
    return bills[:top_k]


def _matches_keyword(category: Optional[str], keywords: Sequence[str]) -> bool:
    cat = (category or "").lower()
    return any(k in cat for k in keywords)


def detect_subscriptions(transactions: Sequence[Transaction], keywords: Sequence[str]) -> List[SubscriptionCandidate]:
    """Keyword-matched categories charged at least twice with a stable amount."""
    groups: Dict[str, List[float]] = {}
    for tx in _expenses(transactions):
        if not _matches_keyword(tx.category, keywords):
            continue
        groups.setdefault(tx.category or "Unknown", []).append(abs(tx.amount))

    candidates: List[SubscriptionCandidate] = []
    for category, amounts in groups.items():
        if len(amounts) < 2:
            continue
        total = sum(amounts)
        avg = total / len(amounts)
        spread = max(amounts) - min(amounts)
        # Frequent but irregular spend at the same merchant type is not a subscription
        if spread >= avg * MAX_AMOUNT_SPREAD:
            continue
        candidates.append(
            SubscriptionCandidate(
                category=category,
                frequency=len(amounts),
                average_amount=avg,
                total_spent=total,
                amount_variance=spread,
            )
        )
    return sorted(candidates, key=lambda s: s.total_spent, reverse=True)


def overdue_expenses(expenses: Sequence[RecurringExpense], today: date) -> List[RecurringExpense]:
    return [e for e in expenses if e.next_expected_date < today]


def recurring_load(expenses: Sequence[RecurringExpense], today: date) -> RecurringLoad:
    monthly = sum(e.amount for e in expenses if e.frequency == "monthly")
    annual = sum(e.amount * FREQUENCY_PER_YEAR.get(e.frequency, 0) for e in expenses)
    overdue = overdue_expenses(expenses, today)
    return RecurringLoad(
        monthly_total=monthly,
        annual_total=annual,
        overdue_count=len(overdue),
        overdue_total=sum(e.amount for e in overdue),
        count=len(expenses),
    )
