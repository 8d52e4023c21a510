from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import AccountType, TransactionType


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    order: int = 0


class EmotionTagIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    emoji: Optional[str] = Field(default=None, max_length=16)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        clean = value.strip()
        if not clean:
            raise ValueError("Emotion name must not be blank")
        return clean


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    balance_cents: int = 0
    currency_code: str = Field(..., min_length=3, max_length=3)

    @field_validator("currency_code")
    @classmethod
    def _upper_code(cls, value: str) -> str:
        return value.strip().upper()


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    date: date
    occurred_at: datetime
    type: TransactionType
    amount_cents: int = Field(..., ge=0)
    category_id: int
    emotion_tag_id: Optional[int] = None
    source: Optional[str] = Field(default=None, max_length=100)
    note: Optional[str] = Field(default=None, max_length=200)

