from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session, joinedload

from config import get_settings
from health import (
    CashflowForecast,
    DebtRisk,
    IncomeExpenseRatio,
    SavingsHealth,
    assess_debt_risk,
    forecast_cashflow,
    grade_income_expense_ratio,
    score_savings_runway,
)
from insights import (
    CategoryAffinityRanking,
    EmotionAmountRanking,
    EmotionBudgetImpact,
    EmotionDistribution,
    EmotionDrivers,
    EmotionHeatmap,
    EmotionLabel,
    IncomeReactionRanking,
    TransactionRecord,
    build_emotion_heatmap,
    emotion_budget_impact,
    emotion_distribution,
    emotion_top_drivers,
    map_income_reactions,
    rank_category_affinity,
    rank_emotion_amounts,
)
from models import (
    LIQUID_ACCOUNT_TYPES,
    Account,
    AccountType,
    Category,
    EmotionTag,
    Transaction,
    TransactionType,
)
from periods import Period, trailing_months
from schemas import AccountIn, CategoryIn, EmotionTagIn, TransactionIn

logger = logging.getLogger(__name__)

DEFAULT_EMOTION_TAGS: list[tuple[str, str]] = [
    ("Happy", "😊"),
    ("Calm", "😌"),
    ("Sad", "😢"),
    ("Anxious", "😰"),
    ("Angry", "😠"),
    ("Excited", "🤩"),
    ("Bored", "😐"),
    ("Stressed", "😫"),
]

RUNWAY_LOOKBACK_MONTHS = 3
CASHFLOW_LOOKBACK_MONTHS = 6


def get_current_user_id() -> int:
    return 1


def cents_to_amount(cents: int) -> float:
    return cents / 100


def to_local_naive(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment
    tz = ZoneInfo(get_settings().timezone)
    return moment.astimezone(tz).replace(tzinfo=None)


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    emotion_tag_id: Optional[int] = None


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(
        self,
        type: Optional[TransactionType] = None,
        include_archived: bool = False,
    ) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.order, Category.name)
        )
        if type:
            stmt = stmt.where(Category.type == type)
        if not include_archived:
            stmt = stmt.where(Category.archived_at.is_(None))
        return self.session.scalars(stmt).all()

    def create(self, data: CategoryIn) -> Category:
        clean_name = data.name.strip()
        if not clean_name:
            raise ValueError("Category name cannot be empty")
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == data.type,
                func.lower(Category.name) == clean_name.lower(),
            )
        )
        if existing:
            raise ValueError("Category with this name already exists")
        category = Category(
            user_id=self.user_id,
            name=clean_name,
            type=data.type,
            order=data.order,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        logger.info(f"category_created: id={category.id} type={category.type.value}")
        return category

    def archive(self, category_id: int) -> None:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        category.archived_at = datetime.utcnow()
        self.session.commit()
        logger.info(f"category_archived: id={category.id}")


class EmotionTagService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _by_name(self, name: str) -> Optional[EmotionTag]:
        stmt = select(EmotionTag).where(
            EmotionTag.user_id == self.user_id,
            func.lower(EmotionTag.name) == name.lower(),
        )
        return self.session.scalar(stmt)

    def list_active(self) -> list[EmotionTag]:
        stmt = (
            select(EmotionTag)
            .where(EmotionTag.user_id == self.user_id, EmotionTag.is_active.is_(True))
            .order_by(EmotionTag.sort_order, EmotionTag.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, tag_id: int) -> EmotionTag:
        tag = self.session.get(EmotionTag, tag_id)
        if not tag or tag.user_id != self.user_id:
            raise ValueError("Emotion tag not found")
        return tag

    def create(self, data: EmotionTagIn) -> EmotionTag:
        clean_name = data.name.strip()
        if not clean_name:
            raise ValueError("Emotion name cannot be empty")
        existing = self._by_name(clean_name)
        if existing and existing.is_active:
            raise ValueError("Emotion tag already exists")
        if existing:
            existing.is_active = True
            existing.emoji = data.emoji or existing.emoji
            tag = existing
        else:
            next_order = self.session.scalar(
                select(func.coalesce(func.max(EmotionTag.sort_order), -1)).where(
                    EmotionTag.user_id == self.user_id
                )
            )
            tag = EmotionTag(
                user_id=self.user_id,
                name=clean_name,
                emoji=data.emoji,
                sort_order=int(next_order) + 1,
            )
            self.session.add(tag)
        self.session.commit()
        self.session.refresh(tag)
        return tag

    def deactivate(self, tag_id: int) -> None:
        # tagged transactions keep their emotion; the tag just stops being offered
        tag = self.get(tag_id)
        tag.is_active = False
        self.session.commit()

    def restore_defaults(self) -> list[EmotionTag]:
        for order, (name, emoji) in enumerate(DEFAULT_EMOTION_TAGS):
            tag = self._by_name(name)
            if tag is None:
                self.session.add(
                    EmotionTag(
                        user_id=self.user_id, name=name, emoji=emoji, sort_order=order
                    )
                )
            else:
                tag.is_active = True
                tag.sort_order = order
        self.session.commit()
        logger.info(f"emotion_tags_restored: user_id={self.user_id}")
        return self.list_active()


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.type, Account.name)
        )
        return self.session.scalars(stmt).all()

    def create(self, data: AccountIn) -> Account:
        if data.type != AccountType.credit_card and data.balance_cents < 0:
            raise ValueError("Initial balance cannot be negative")
        existing = self.session.scalar(
            select(Account).where(
                Account.user_id == self.user_id,
                func.lower(Account.name) == data.name.strip().lower(),
            )
        )
        if existing:
            raise ValueError("Account with this name already exists")
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            balance_cents=data.balance_cents,
            currency_code=data.currency_code,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def liquid_savings_cents(self) -> int:
        return sum(
            max(0, a.balance_cents)
            for a in self.list_all()
            if a.type in LIQUID_ACCOUNT_TYPES
        )

    def debts_cents(self) -> list[int]:
        return [
            a.balance_cents for a in self.list_all() if a.type == AccountType.credit_card
        ]


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def create(self, data: TransactionIn) -> Transaction:
        category = self.session.get(Category, data.category_id)
        if not category or category.user_id != self.user_id:
            raise ValueError("Category not found")
        if category.type != data.type:
            raise ValueError("Category type mismatch")
        if data.emotion_tag_id is not None:
            tag = EmotionTagService(self.session, self.user_id).get(
                data.emotion_tag_id
            )
            if not tag.is_active:
                raise ValueError("Emotion tag is not active")
        source = (data.source or "").strip() or None
        txn = Transaction(
            user_id=self.user_id,
            date=data.date,
            occurred_at=to_local_naive(data.occurred_at),
            type=data.type,
            amount_cents=data.amount_cents,
            category_id=data.category_id,
            emotion_tag_id=data.emotion_tag_id,
            source=source if data.type == TransactionType.income else None,
            note=data.note,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: id={txn.id} type={txn.type.value} "
            f"emotion_tag_id={txn.emotion_tag_id}"
        )
        return txn

    def get(self, transaction_id: int, *, include_deleted: bool = False) -> Transaction:
        stmt = (
            select(Transaction)
            .options(
                joinedload(Transaction.category), joinedload(Transaction.emotion_tag)
            )
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not include_deleted:
            stmt = stmt.where(Transaction.deleted_at.is_(None))
        txn = self.session.scalar(stmt)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def all_for_period(
        self,
        period: Period,
        filters: Optional[TransactionFilters] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(
                joinedload(Transaction.category), joinedload(Transaction.emotion_tag)
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.deleted_at.is_(None),
                Transaction.date.between(period.start, period.end),
            )
            .order_by(Transaction.occurred_at.asc(), Transaction.id.asc())
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.emotion_tag_id:
            stmt = stmt.where(Transaction.emotion_tag_id == filters.emotion_tag_id)
        return self.session.scalars(stmt).all()

    def soft_delete(self, transaction_id: int) -> None:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise ValueError("Transaction not found")
        if txn.deleted_at is not None:
            return
        txn.deleted_at = datetime.utcnow()
        self.session.commit()
        logger.info(f"transaction_deleted: id={txn.id}")

    def restore(self, transaction_id: int) -> None:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise ValueError("Transaction not found")
        if txn.deleted_at is None:
            return
        txn.deleted_at = None
        self.session.commit()
        logger.info(f"transaction_restored: id={txn.id}")

    @staticmethod
    def to_record(txn: Transaction) -> TransactionRecord:
        emotion = None
        if txn.emotion_tag is not None:
            emotion = EmotionLabel(name=txn.emotion_tag.name, emoji=txn.emotion_tag.emoji)
        return TransactionRecord(
            type=txn.type,
            amount=cents_to_amount(txn.amount_cents),
            date=txn.occurred_at,
            category=txn.category.name if txn.category else None,
            emotion=emotion,
            source=txn.source,
        )

    def snapshot(self, period: Period) -> list[TransactionRecord]:
        return [self.to_record(txn) for txn in self.all_for_period(period)]

    def totals(self, period: Period) -> tuple[int, int]:
        """Income and expense cents for live transactions in the period."""

        def total_for(txn_type: TransactionType):
            return func.coalesce(
                func.sum(
                    case(
                        (Transaction.type == txn_type, Transaction.amount_cents),
                        else_=0,
                    )
                ),
                0,
            )

        stmt = select(
            total_for(TransactionType.income), total_for(TransactionType.expense)
        ).where(
            Transaction.user_id == self.user_id,
            Transaction.deleted_at.is_(None),
            Transaction.date.between(period.start, period.end),
        )
        income, expense = self.session.execute(stmt).one()
        return int(income or 0), int(expense or 0)


class InsightsService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.transactions = TransactionService(session, self.user_id)

    def emotion_distribution(
        self, period: Period, rank_type: Optional[TransactionType]
    ) -> EmotionDistribution:
        return emotion_distribution(self.transactions.snapshot(period), rank_type)

    def amount_compare(
        self, period: Period, rank_type: TransactionType
    ) -> EmotionAmountRanking:
        return rank_emotion_amounts(self.transactions.snapshot(period), rank_type)

    def category_affinity(
        self, period: Period, rank_type: TransactionType
    ) -> CategoryAffinityRanking:
        return rank_category_affinity(self.transactions.snapshot(period), rank_type)

    def income_reaction(self, period: Period) -> IncomeReactionRanking:
        return map_income_reactions(self.transactions.snapshot(period))

    def heatmap(self, period: Period) -> EmotionHeatmap:
        # occurred_at is stored as local wall time already
        return build_emotion_heatmap(self.transactions.snapshot(period))

    def top_drivers(self, period: Period) -> EmotionDrivers:
        return emotion_top_drivers(self.transactions.snapshot(period))

    def budget_impact(self, period: Period) -> EmotionBudgetImpact:
        return emotion_budget_impact(self.transactions.snapshot(period))


class HealthService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.transactions = TransactionService(session, self.user_id)
        self.accounts = AccountService(session, self.user_id)

    def _monthly_totals(self, today: date, months: int) -> list[tuple[int, int]]:
        return [self.transactions.totals(p) for p in trailing_months(today, months)]

    def monthly_expense_avg_cents(self, today: date) -> float:
        totals = self._monthly_totals(today, RUNWAY_LOOKBACK_MONTHS)
        return sum(expense for _, expense in totals) / RUNWAY_LOOKBACK_MONTHS

    def monthly_income_avg_cents(self, today: date) -> float:
        totals = self._monthly_totals(today, RUNWAY_LOOKBACK_MONTHS)
        return sum(income for income, _ in totals) / RUNWAY_LOOKBACK_MONTHS

    def savings(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or date.today()
        liquid = cents_to_amount(self.accounts.liquid_savings_cents())
        expense_avg = cents_to_amount(self.monthly_expense_avg_cents(today))
        health: SavingsHealth = score_savings_runway(liquid, expense_avg)
        return {
            "liquid_savings": liquid,
            "monthly_expense_avg": expense_avg,
            "health": health,
        }

    def income_expense_ratio(self, period: Period) -> IncomeExpenseRatio:
        income, expense = self.transactions.totals(period)
        return grade_income_expense_ratio(
            cents_to_amount(income), cents_to_amount(expense)
        )

    def debt_risk(self, today: Optional[date] = None) -> DebtRisk:
        today = today or date.today()
        monthly_income = cents_to_amount(self.monthly_income_avg_cents(today))
        debts = [cents_to_amount(c) for c in self.accounts.debts_cents()]
        return assess_debt_risk(monthly_income, debts)

    def cashflow_forecast(self, today: Optional[date] = None) -> dict[str, object]:
        today = today or date.today()
        months = trailing_months(today, CASHFLOW_LOOKBACK_MONTHS)
        history = []
        for period in months:
            income, expense = self.transactions.totals(period)
            history.append(
                {"label": period.slug, "net": cents_to_amount(income - expense)}
            )
        forecast: CashflowForecast = forecast_cashflow([h["net"] for h in history])
        return {"history": history, "forecast": forecast}
