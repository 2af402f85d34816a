from __future__ import annotations

from .models import CashFlowProjection


def project_cash_flow(monthly_income: float, monthly_expenses: float) -> CashFlowProjection:
    """Linear extrapolation of the trailing window; no seasonality."""
    monthly_savings = monthly_income - monthly_expenses
    return CashFlowProjection(
        monthly_income=monthly_income,
        monthly_expenses=monthly_expenses,
        monthly_savings=monthly_savings,
        yearly_savings=monthly_savings * 12,
    )


def months_to_target(target: float, current: float, monthly_savings: float) -> int:
    """Whole months needed to close the gap at the projected savings pace.

    Returns 0 when the target is already met and -1 when the pace never gets there.
    """
    gap = max(target - current, 0.0)
    if gap == 0:
        return 0
    if monthly_savings <= 0:
        return -1
    months = int(gap // monthly_savings)
    return months + (1 if gap - months * monthly_savings > 1e-9 else 0)
