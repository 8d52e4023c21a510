import pytest

from health import (
    DebtLevel,
    RatioGrade,
    SavingsTier,
    assess_debt_risk,
    forecast_cashflow,
    grade_income_expense_ratio,
    score_savings_runway,
)


def test_savings_runway_six_months_is_strong() -> None:
    result = score_savings_runway(12000, 2000)

    assert result.months == 6.0
    assert result.tier == SavingsTier.strong
    assert result.progress_fraction == 1.0


def test_savings_runway_zero_expense_means_zero_months() -> None:
    result = score_savings_runway(5000, 0)

    assert result.months == 0
    assert result.tier == SavingsTier.increase
    assert result.progress_fraction == 0.0


@pytest.mark.parametrize(
    "savings, tier, progress",
    [
        (3000, SavingsTier.keep, 1.0),
        (5990, SavingsTier.keep, 1.0),
        (1500, SavingsTier.increase, 0.5),
        (18000, SavingsTier.strong, 1.0),
    ],
)
def test_savings_runway_tiers(savings, tier, progress) -> None:
    result = score_savings_runway(savings, 1000)

    assert result.tier == tier
    assert result.progress_fraction == pytest.approx(progress)


def test_ratio_grades() -> None:
    assert grade_income_expense_ratio(3000, 1000).grade == RatioGrade.excellent
    assert grade_income_expense_ratio(1500, 1000).grade == RatioGrade.good
    assert grade_income_expense_ratio(1000, 1000).grade == RatioGrade.passing
    assert grade_income_expense_ratio(500, 1000).grade == RatioGrade.poor


def test_ratio_without_expense() -> None:
    with_income = grade_income_expense_ratio(100, 0)
    assert with_income.ratio == 3.0
    assert with_income.grade == RatioGrade.excellent

    nothing = grade_income_expense_ratio(0, 0)
    assert nothing.ratio == 0.0
    assert nothing.grade == RatioGrade.poor

    clamped = grade_income_expense_ratio(-50, -10)
    assert (clamped.income, clamped.expense) == (0.0, 0.0)


def test_debt_risk_levels() -> None:
    assert assess_debt_risk(10000, [2000, 1000]).level == DebtLevel.safe
    assert assess_debt_risk(10000, [5000]).level == DebtLevel.warn
    assert assess_debt_risk(10000, [6500]).level == DebtLevel.danger


def test_debt_risk_edge_cases() -> None:
    no_income = assess_debt_risk(0, [500])
    assert no_income.ratio == 1.0
    assert no_income.level == DebtLevel.danger

    empty = assess_debt_risk(0, [])
    assert empty.has_data is False
    assert empty.level == DebtLevel.safe

    assert assess_debt_risk(1000, [-300, 100]).total_debt == 100


def test_cashflow_forecast_band() -> None:
    result = forecast_cashflow([100, -100, 100, -100])

    assert result.avg == 0
    assert result.sigma == pytest.approx(100)
    assert len(result.points) == 3
    assert result.points[0].low == pytest.approx(-100)
    assert result.points[0].high == pytest.approx(100)
    assert result.has_data
    assert result.at_risk is False


def test_cashflow_forecast_negative_average_is_at_risk() -> None:
    assert forecast_cashflow([-50, -50]).at_risk

    empty = forecast_cashflow([])
    assert empty.has_data is False
    assert empty.avg == 0.0
