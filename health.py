from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Sequence

STRONG_RUNWAY_MONTHS = 6
SAFE_RUNWAY_MONTHS = 3
FORECAST_PERIODS = 3


class SavingsTier(str, Enum):
    strong = "strong"
    keep = "keep"
    increase = "increase"


class RatioGrade(str, Enum):
    excellent = "excellent"
    good = "good"
    passing = "pass"
    poor = "poor"


class DebtLevel(str, Enum):
    safe = "safe"
    warn = "warn"
    danger = "danger"


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


@dataclass(frozen=True)
class SavingsHealth:
    months: float
    tier: SavingsTier
    progress_fraction: float


def score_savings_runway(
    liquid_savings: float, monthly_expense_avg: float
) -> SavingsHealth:
    """How many months of average spending the liquid savings cover.

    Inputs are expected to be non-negative; a zero expense average yields a
    zero-month runway rather than a division error.
    """
    months = liquid_savings / monthly_expense_avg if monthly_expense_avg > 0 else 0.0
    if months >= STRONG_RUNWAY_MONTHS:
        tier = SavingsTier.strong
    elif months >= SAFE_RUNWAY_MONTHS:
        tier = SavingsTier.keep
    else:
        tier = SavingsTier.increase
    # the bar switches to the 6-month goal once it is reached
    target = STRONG_RUNWAY_MONTHS if months >= STRONG_RUNWAY_MONTHS else SAFE_RUNWAY_MONTHS
    return SavingsHealth(
        months=months, tier=tier, progress_fraction=_clamp(months / target)
    )


@dataclass(frozen=True)
class IncomeExpenseRatio:
    income: float
    expense: float
    ratio: float
    grade: RatioGrade


def grade_income_expense_ratio(income: float, expense: float) -> IncomeExpenseRatio:
    income = max(0.0, income or 0.0)
    expense = max(0.0, expense or 0.0)
    if expense > 0:
        ratio = income / expense
    else:
        ratio = 3.0 if income > 0 else 0.0
    if ratio >= 2:
        grade = RatioGrade.excellent
    elif ratio >= 1.5:
        grade = RatioGrade.good
    elif ratio >= 1:
        grade = RatioGrade.passing
    else:
        grade = RatioGrade.poor
    return IncomeExpenseRatio(income=income, expense=expense, ratio=ratio, grade=grade)


@dataclass(frozen=True)
class DebtRisk:
    monthly_income: float
    total_debt: float
    ratio: float
    level: DebtLevel
    has_data: bool


def assess_debt_risk(monthly_income: float, debts: Iterable[float]) -> DebtRisk:
    total_debt = sum(max(0.0, d or 0.0) for d in debts)
    has_data = monthly_income > 0 or total_debt > 0
    if not has_data:
        ratio = 0.0
    elif monthly_income > 0:
        ratio = total_debt / monthly_income
    else:
        ratio = 1.0
    if ratio <= 0.3:
        level = DebtLevel.safe
    elif ratio <= 0.6:
        level = DebtLevel.warn
    else:
        level = DebtLevel.danger
    return DebtRisk(
        monthly_income=monthly_income,
        total_debt=total_debt,
        ratio=ratio,
        level=level,
        has_data=has_data,
    )


@dataclass(frozen=True)
class ForecastPoint:
    value: float
    low: float
    high: float


@dataclass(frozen=True)
class CashflowForecast:
    avg: float
    sigma: float
    points: tuple[ForecastPoint, ...]
    has_data: bool

    @property
    def at_risk(self) -> bool:
        return any(p.value < 0 for p in self.points)


def forecast_cashflow(
    history: Sequence[float], periods: int = FORECAST_PERIODS
) -> CashflowForecast:
    """Flat moving-average forecast of monthly net cashflow with a 1-sigma band."""
    values = list(history)
    has_data = any(abs(v) > 0 for v in values)
    avg = sum(values) / len(values) if values else 0.0
    sigma = (
        math.sqrt(sum((v - avg) ** 2 for v in values) / len(values)) if values else 0.0
    )
    points = tuple(
        ForecastPoint(value=avg, low=avg - sigma, high=avg + sigma)
        for _ in range(periods)
    )
    return CashflowForecast(avg=avg, sigma=sigma, points=points, has_data=has_data)
