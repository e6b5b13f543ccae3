import datetime as dt
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from app.models.pending import NoPendingAction, PendingAction


class OnboardingStep(str, Enum):
    AWAITING_NAME = "awaiting_name"
    AWAITING_NAME_RESPONSE = "awaiting_name_response"
    AWAITING_INCOME = "awaiting_income"
    AWAITING_SAVINGS_GOAL = "awaiting_savings_goal"
    COMPLETE = "complete"


class User(BaseModel):
    id: int | None = None
    phone: str
    name: str | None = None
    onboarding_step: OnboardingStep = OnboardingStep.AWAITING_NAME
    monthly_income: Decimal | None = None
    savings_goal: Decimal | None = None
    plan: Literal["free", "premium"] = "free"
    last_income_update_prompt_at: datetime | None = None
    income_update_declined: bool = False
    income_update_answered_at: datetime | None = None
    pending_action: PendingAction = Field(default_factory=NoPendingAction)
    # None until a numbered transaction listing has been shown
    last_shown_transaction_ids: list[int] | None = None
    last_shown_at: datetime | None = None
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def onboarding_complete(self) -> bool:
        return self.onboarding_step == OnboardingStep.COMPLETE


class Category(BaseModel):
    id: int | None = None
    name: str
    direction: Literal["expense", "income"]
    emoji: str = "📦"
    is_active: bool = True

    @property
    def label(self) -> str:
        return self.name[:1].upper() + self.name[1:]


class Transaction(BaseModel):
    id: int | None = None
    user_id: int
    amount: Decimal
    category_id: int
    description: str = ""
    date: dt.date
    is_income: bool = False
    expense_type: Literal["fixed", "variable"] = "variable"
    fixed_expense_id: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class FixedExpense(BaseModel):
    id: int | None = None
    user_id: int
    description: str
    typical_amount: Decimal
    category_id: int | None = None
    reminder_day: int | None = Field(default=None, ge=1, le=31)
    is_active: bool = True
    # Inactive row kept only so the same description is never suggested again
    is_rejected_suggestion: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    @property
    def state(self) -> Literal["active", "paused", "rejected"]:
        if self.is_active:
            return "active"
        if self.is_rejected_suggestion:
            return "rejected"
        return "paused"


class Budget(BaseModel):
    id: int | None = None
    user_id: int
    category_id: int
    monthly_limit: Decimal


class FinancialAlert(BaseModel):
    id: int | None = None
    user_id: int
    alert_type: str
    alert_date: date


class OutboundMessage(BaseModel):
    to: str
    body: str
    delay_seconds: float = 0
