from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from health import SavingsTier
from insights import EmotionLabel
from models import AccountType, TransactionType
from periods import Period
from schemas import AccountIn, CategoryIn, EmotionTagIn, TransactionIn
from services import (
    DEFAULT_EMOTION_TAGS,
    AccountService,
    CategoryService,
    EmotionTagService,
    HealthService,
    InsightsService,
    TransactionService,
)

JANUARY = Period("custom", date(2025, 1, 1), date(2025, 1, 31))


def _engine():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return engine


def _add(
    session: Session,
    category_id: int,
    amount_cents: int,
    *,
    when: datetime = datetime(2025, 1, 6, 10, 0),
    type: TransactionType = TransactionType.expense,
    emotion_tag_id=None,
    source=None,
):
    return TransactionService(session).create(
        TransactionIn(
            date=when.date(),
            occurred_at=when,
            type=type,
            amount_cents=amount_cents,
            category_id=category_id,
            emotion_tag_id=emotion_tag_id,
            source=source,
        )
    )


def test_restore_defaults_is_idempotent() -> None:
    with Session(_engine()) as session:
        service = EmotionTagService(session)
        first = service.restore_defaults()
        service.deactivate(first[0].id)
        second = service.restore_defaults()

        assert [t.name for t in second] == [name for name, _ in DEFAULT_EMOTION_TAGS]


def test_emotion_tag_names_are_unique_case_insensitive() -> None:
    with Session(_engine()) as session:
        service = EmotionTagService(session)
        service.create(EmotionTagIn(name="Nostalgic", emoji="🥲"))

        with pytest.raises(ValueError):
            service.create(EmotionTagIn(name=" nostalgic "))


def test_transaction_rejects_inactive_emotion_and_wrong_category() -> None:
    with Session(_engine()) as session:
        food = CategoryService(session).create(
            CategoryIn(name="Food", type=TransactionType.expense)
        )
        tags = EmotionTagService(session)
        tag = tags.create(EmotionTagIn(name="Happy"))
        tags.deactivate(tag.id)

        with pytest.raises(ValueError, match="not active"):
            _add(session, food.id, 100, emotion_tag_id=tag.id)
        with pytest.raises(ValueError, match="mismatch"):
            _add(session, food.id, 100, type=TransactionType.income)
        with pytest.raises(ValueError, match="not found"):
            _add(session, 999, 100)


def test_snapshot_carries_emotion_and_skips_deleted() -> None:
    with Session(_engine()) as session:
        food = CategoryService(session).create(
            CategoryIn(name="Food", type=TransactionType.expense)
        )
        happy = EmotionTagService(session).create(
            EmotionTagIn(name="Happy", emoji="😊")
        )
        kept = _add(session, food.id, 1250, emotion_tag_id=happy.id)
        dropped = _add(session, food.id, 999)
        TransactionService(session).soft_delete(dropped.id)

        records = TransactionService(session).snapshot(JANUARY)

        assert len(records) == 1
        assert records[0].amount == 12.5
        assert records[0].emotion == EmotionLabel(name="Happy", emoji="😊")
        assert records[0].category == "Food"
        assert records[0].date == kept.occurred_at


def test_insights_service_ranks_from_database() -> None:
    with Session(_engine()) as session:
        food = CategoryService(session).create(
            CategoryIn(name="Food", type=TransactionType.expense)
        )
        salary = CategoryService(session).create(
            CategoryIn(name="Salary", type=TransactionType.income)
        )
        tags = EmotionTagService(session)
        happy = tags.create(EmotionTagIn(name="Happy"))
        sad = tags.create(EmotionTagIn(name="Sad"))
        _add(session, food.id, 5000, emotion_tag_id=happy.id)
        _add(session, food.id, 3000, emotion_tag_id=happy.id)
        _add(
            session,
            food.id,
            2000,
            emotion_tag_id=sad.id,
            when=datetime(2025, 1, 7, 10, 0),
        )
        _add(
            session,
            salary.id,
            900000,
            type=TransactionType.income,
            emotion_tag_id=happy.id,
            source="Employer",
        )

        insights = InsightsService(session)
        ranking = insights.amount_compare(JANUARY, TransactionType.expense)
        affinity = insights.category_affinity(JANUARY, TransactionType.expense)
        reaction = insights.income_reaction(JANUARY)
        heatmap = insights.heatmap(JANUARY)

        assert [(e.emotion, e.avg) for e in ranking.entries] == [
            ("Happy", 40.0),
            ("Sad", 20.0),
        ]
        assert [(p.emotion, p.category, p.count) for p in affinity.pairs] == [
            ("Happy", "Food", 2),
            ("Sad", "Food", 1),
        ]
        assert [(p.source, p.emotion) for p in reaction.pairs] == [
            ("Employer", "Happy")
        ]
        assert heatmap.count(0, 10) == 3
        assert heatmap.count(1, 10) == 1
        assert heatmap.total == 4


def test_savings_health_from_accounts_and_trailing_expenses() -> None:
    with Session(_engine()) as session:
        rent = CategoryService(session).create(
            CategoryIn(name="Rent", type=TransactionType.expense)
        )
        for month in (1, 2, 3):
            _add(session, rent.id, 200000, when=datetime(2025, month, 10, 9, 0))
        # outside the three complete months before April
        _add(session, rent.id, 999999, when=datetime(2025, 4, 2, 9, 0))

        accounts = AccountService(session)
        accounts.create(
            AccountIn(
                name="Wallet",
                type=AccountType.cash,
                balance_cents=500000,
                currency_code="cny",
            )
        )
        accounts.create(
            AccountIn(
                name="Debit",
                type=AccountType.debit_card,
                balance_cents=700000,
                currency_code="CNY",
            )
        )
        accounts.create(
            AccountIn(
                name="Visa",
                type=AccountType.credit_card,
                balance_cents=300000,
                currency_code="CNY",
            )
        )

        data = HealthService(session).savings(date(2025, 4, 15))

        assert data["liquid_savings"] == 12000.0
        assert data["monthly_expense_avg"] == 2000.0
        assert data["health"].months == 6.0
        assert data["health"].tier == SavingsTier.strong
        assert accounts.debts_cents() == [300000]


def test_cashflow_history_uses_complete_months() -> None:
    with Session(_engine()) as session:
        food = CategoryService(session).create(
            CategoryIn(name="Food", type=TransactionType.expense)
        )
        _add(session, food.id, 10000, when=datetime(2025, 3, 5, 12, 0))

        data = HealthService(session).cashflow_forecast(date(2025, 4, 1))

        assert len(data["history"]) == 6
        assert data["history"][-1] == {"label": "2025-03", "net": -100.0}
        assert data["forecast"].at_risk
