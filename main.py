import logging
from dataclasses import asdict
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from sqlalchemy.orm import Session

from config import get_settings
from currency import format_currency
from database import get_db
from insights import DAYS_PER_WEEK, HOURS_PER_DAY
from models import DistributionMetric, TransactionType
from periods import Period, resolve_period
from schemas import AccountIn, CategoryIn, EmotionTagIn, TransactionIn
from services import (
    AccountService,
    CategoryService,
    EmotionTagService,
    HealthService,
    InsightsService,
    TransactionFilters,
    TransactionService,
    cents_to_amount,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Mood Ledger")


def _error_to_http(exc: ValueError) -> HTTPException:
    message = str(exc)
    status = 404 if "not found" in message.lower() else 400
    return HTTPException(status_code=status, detail=message)


def period_from_request(request: Request, default: str = "this_month") -> Period:
    period_slug = request.query_params.get("period") or default
    start = request.query_params.get("start")
    end = request.query_params.get("end")
    try:
        return resolve_period(period_slug, start, end)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def money_from_request(request: Request):
    currency = request.query_params.get("currency") or settings.currency
    locale = request.query_params.get("locale") or settings.locale

    def money(amount: float) -> str:
        return format_currency(amount, currency, locale=locale)

    return money


def period_payload(period: Period) -> dict[str, str]:
    return {
        "slug": period.slug,
        "start": period.start.isoformat(),
        "end": period.end.isoformat(),
    }


def transaction_payload(txn) -> dict[str, object]:
    return {
        "id": txn.id,
        "date": txn.date.isoformat(),
        "occurred_at": txn.occurred_at.isoformat(),
        "type": txn.type.value,
        "amount_cents": txn.amount_cents,
        "category": txn.category.name if txn.category else None,
        "emotion": (
            {"name": txn.emotion_tag.name, "emoji": txn.emotion_tag.emoji}
            if txn.emotion_tag
            else None
        ),
        "source": txn.source,
        "note": txn.note,
    }


@app.get("/api/insights/emotion-distribution")
def api_emotion_distribution(
    request: Request,
    rank_type: TransactionType = TransactionType.expense,
    metric: DistributionMetric = DistributionMetric.count,
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    result = InsightsService(db).emotion_distribution(period, rank_type)
    return {
        "period": period_payload(period),
        "metric": metric.value,
        "total": result.total(metric),
        "insufficient_data": result.insufficient(metric),
        "slices": [
            {
                "emotion": entry.emotion,
                "count": entry.count,
                "value": result.value(entry, metric),
                "share": result.share(entry, metric),
            }
            for entry in result.top(metric)
        ],
    }


@app.get("/api/insights/amount-compare")
def api_amount_compare(
    request: Request,
    rank_type: TransactionType = TransactionType.expense,
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    money = money_from_request(request)
    result = InsightsService(db).amount_compare(period, rank_type)
    return {
        "period": period_payload(period),
        "max_avg": result.max_avg,
        "insufficient_data": result.insufficient_data,
        "entries": [
            {
                **asdict(entry),
                "avg_display": money(entry.avg),
                "bar_fraction": result.bar_fraction(entry),
            }
            for entry in result.entries
        ],
    }


@app.get("/api/insights/category-affinity")
def api_category_affinity(
    request: Request,
    rank_type: TransactionType = TransactionType.expense,
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    result = InsightsService(db).category_affinity(period, rank_type)
    return {
        "period": period_payload(period),
        "insufficient_data": result.insufficient_data,
        "pairs": [asdict(pair) for pair in result.pairs],
    }


@app.get("/api/insights/income-reaction")
def api_income_reaction(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    result = InsightsService(db).income_reaction(period)
    return {
        "period": period_payload(period),
        "insufficient_data": result.insufficient_data,
        "pairs": [asdict(pair) for pair in result.pairs],
    }


@app.get("/api/insights/heatmap")
def api_heatmap(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request, default="last_7_days")
    result = InsightsService(db).heatmap(period)
    return {
        "period": period_payload(period),
        "total": result.total,
        "insufficient_data": result.insufficient_data,
        "grid": [list(row) for row in result.grid],
        "intensity": [
            [result.intensity(day, hour) for hour in range(HOURS_PER_DAY)]
            for day in range(DAYS_PER_WEEK)
        ],
    }


@app.get("/api/insights/top-drivers")
def api_top_drivers(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request, default="last_7_days")
    money = money_from_request(request)
    result = InsightsService(db).top_drivers(period)
    return {
        "period": period_payload(period),
        "confidence": result.confidence,
        "insufficient_data": result.insufficient_data,
        "drivers": [
            {**asdict(d), "avg_display": money(d.avg)} for d in result.drivers
        ],
    }


@app.get("/api/insights/budget-impact")
def api_budget_impact(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request, default="last_7_days")
    money = money_from_request(request)
    result = InsightsService(db).budget_impact(period)
    return {
        "period": period_payload(period),
        "risk": result.risk,
        "insufficient_data": result.insufficient_data,
        "shares": [
            {**asdict(s), "sum_display": money(s.sum)} for s in result.shares
        ],
    }


@app.get("/api/health/savings")
def api_savings_health(request: Request, db: Session = Depends(get_db)):
    money = money_from_request(request)
    data = HealthService(db).savings(date.today())
    health = data["health"]
    return {
        "liquid_savings": data["liquid_savings"],
        "liquid_savings_display": money(data["liquid_savings"]),
        "monthly_expense_avg": data["monthly_expense_avg"],
        "months": health.months,
        "tier": health.tier.value,
        "progress_fraction": health.progress_fraction,
    }


@app.get("/api/health/ratio")
def api_income_expense_ratio(request: Request, db: Session = Depends(get_db)):
    period = period_from_request(request)
    money = money_from_request(request)
    result = HealthService(db).income_expense_ratio(period)
    return {
        "period": period_payload(period),
        **asdict(result),
        "income_display": money(result.income),
        "expense_display": money(result.expense),
    }


@app.get("/api/health/debt")
def api_debt_risk(request: Request, db: Session = Depends(get_db)):
    money = money_from_request(request)
    result = HealthService(db).debt_risk(date.today())
    return {
        **asdict(result),
        "monthly_income_display": money(result.monthly_income) if result.has_data else None,
        "total_debt_display": money(result.total_debt) if result.has_data else None,
    }


@app.get("/api/health/cashflow")
def api_cashflow_forecast(db: Session = Depends(get_db)):
    data = HealthService(db).cashflow_forecast(date.today())
    forecast = data["forecast"]
    return {
        "history": data["history"],
        **asdict(forecast),
        "at_risk": forecast.at_risk,
    }


@app.get("/api/format-currency")
def api_format_currency(
    amount: float,
    currency: Optional[str] = None,
    locale: Optional[str] = None,
    min_fraction_digits: int = Query(2, ge=0, le=20),
    max_fraction_digits: int = Query(2, ge=0, le=20),
):
    return {
        "display": format_currency(
            amount,
            currency or settings.currency,
            locale=locale or settings.locale,
            min_fraction_digits=min_fraction_digits,
            max_fraction_digits=max_fraction_digits,
        )
    }


@app.get("/api/transactions")
def api_transactions(
    request: Request,
    type: Optional[TransactionType] = None,
    category_id: Optional[int] = None,
    emotion_tag_id: Optional[int] = None,
    db: Session = Depends(get_db),
):
    period = period_from_request(request)
    page = max(int(request.query_params.get("page", "1")), 1)
    limit = int(request.query_params.get("limit", "50"))
    limit = min(max(limit, 1), 100)
    offset = (page - 1) * limit
    filters = TransactionFilters(
        type=type, category_id=category_id, emotion_tag_id=emotion_tag_id
    )
    items = TransactionService(db).all_for_period(
        period, filters, limit=limit + 1, offset=offset
    )
    has_more = len(items) > limit
    return {
        "items": [transaction_payload(txn) for txn in items[:limit]],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.post("/api/transactions", status_code=201)
def api_create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).create(data)
    except ValueError as exc:
        raise _error_to_http(exc) from exc
    return transaction_payload(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def api_delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).soft_delete(transaction_id)
    except ValueError as exc:
        raise _error_to_http(exc) from exc


@app.post("/api/transactions/{transaction_id}/restore")
def api_restore_transaction(transaction_id: int, db: Session = Depends(get_db)):
    service = TransactionService(db)
    try:
        service.restore(transaction_id)
        txn = service.get(transaction_id)
    except ValueError as exc:
        raise _error_to_http(exc) from exc
    return transaction_payload(txn)


@app.get("/api/categories")
def api_categories(
    type: Optional[TransactionType] = None,
    include_archived: bool = False,
    db: Session = Depends(get_db),
):
    return [
        {
            "id": c.id,
            "name": c.name,
            "type": c.type.value,
            "order": c.order,
            "archived": c.archived_at is not None,
        }
        for c in CategoryService(db).list_all(type, include_archived)
    ]


@app.post("/api/categories", status_code=201)
def api_create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(data)
    except ValueError as exc:
        raise _error_to_http(exc) from exc
    return {"id": category.id, "name": category.name, "type": category.type.value}


@app.post("/api/categories/{category_id}/archive", status_code=204)
def api_archive_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).archive(category_id)
    except ValueError as exc:
        raise _error_to_http(exc) from exc


def emotion_tag_payload(tag) -> dict[str, object]:
    return {
        "id": tag.id,
        "name": tag.name,
        "emoji": tag.emoji,
        "sort_order": tag.sort_order,
    }


@app.get("/api/emotion-tags")
def api_emotion_tags(db: Session = Depends(get_db)):
    return [emotion_tag_payload(t) for t in EmotionTagService(db).list_active()]


@app.post("/api/emotion-tags", status_code=201)
def api_create_emotion_tag(data: EmotionTagIn, db: Session = Depends(get_db)):
    try:
        tag = EmotionTagService(db).create(data)
    except ValueError as exc:
        raise _error_to_http(exc) from exc
    return emotion_tag_payload(tag)


@app.delete("/api/emotion-tags/{tag_id}", status_code=204)
def api_deactivate_emotion_tag(tag_id: int, db: Session = Depends(get_db)):
    try:
        EmotionTagService(db).deactivate(tag_id)
    except ValueError as exc:
        raise _error_to_http(exc) from exc


@app.post("/api/emotion-tags/restore-defaults")
def api_restore_emotion_tags(db: Session = Depends(get_db)):
    return [emotion_tag_payload(t) for t in EmotionTagService(db).restore_defaults()]


@app.get("/api/accounts")
def api_accounts(request: Request, db: Session = Depends(get_db)):
    locale = request.query_params.get("locale") or settings.locale
    return [
        {
            "id": a.id,
            "name": a.name,
            "type": a.type.value,
            "balance_cents": a.balance_cents,
            "currency_code": a.currency_code,
            "balance_display": format_currency(
                cents_to_amount(a.balance_cents), a.currency_code, locale=locale
            ),
        }
        for a in AccountService(db).list_all()
    ]


@app.post("/api/accounts", status_code=201)
def api_create_account(data: AccountIn, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).create(data)
    except ValueError as exc:
        raise _error_to_http(exc) from exc
    return {"id": account.id, "name": account.name, "type": account.type.value}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
