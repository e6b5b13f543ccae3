from decimal import Decimal
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class IntentType(str, Enum):
    TRANSACTION = "TRANSACTION"
    MULTIPLE_TRANSACTIONS = "MULTIPLE_TRANSACTIONS"
    QUERY = "QUERY"
    BUDGET = "BUDGET"
    BUDGET_STATUS = "BUDGET_STATUS"
    FINANCIAL_ADVICE = "FINANCIAL_ADVICE"
    EDIT_LAST_TRANSACTION = "EDIT_LAST_TRANSACTION"
    DELETE_LAST_TRANSACTION = "DELETE_LAST_TRANSACTION"
    EDIT_TRANSACTION_BY_INDEX = "EDIT_TRANSACTION_BY_INDEX"
    DELETE_TRANSACTION_BY_INDEX = "DELETE_TRANSACTION_BY_INDEX"
    RECLASSIFY_TRANSACTION = "RECLASSIFY_TRANSACTION"
    MARK_AS_FIXED = "MARK_AS_FIXED"
    ADD_FIXED_EXPENSE = "ADD_FIXED_EXPENSE"
    LIST_FIXED_EXPENSES = "LIST_FIXED_EXPENSES"
    EDIT_FIXED_EXPENSE = "EDIT_FIXED_EXPENSE"
    PAUSE_FIXED_EXPENSE = "PAUSE_FIXED_EXPENSE"
    ACTIVATE_FIXED_EXPENSE = "ACTIVATE_FIXED_EXPENSE"
    DELETE_FIXED_EXPENSE = "DELETE_FIXED_EXPENSE"
    INCOME_UPDATE_RESPONSE = "INCOME_UPDATE_RESPONSE"
    DELETE_ACCOUNT = "DELETE_ACCOUNT"
    HELP = "HELP"
    OTHER = "OTHER"


class Intent(BaseModel):
    type: IntentType = IntentType.OTHER
    data: dict[str, Any] = {}

    @classmethod
    def fallback(cls) -> "Intent":
        return cls(type=IntentType.OTHER, data={})


# Payload shapes, validated lazily by the handler that consumes them


class TransactionData(BaseModel):
    amount: Decimal | None = None
    category: str | None = None
    description: str | None = None
    is_income: bool = False


class BatchTransactionData(BaseModel):
    transactions: list[dict[str, Any]] = []


class QueryData(BaseModel):
    period: Literal[
        "today", "yesterday", "week", "month", "year", "last_week", "last_month"
    ] = "month"
    category: str | None = None
    detail: bool = False


class BudgetData(BaseModel):
    category: str | None = None
    amount: Decimal | None = None


class AdviceData(BaseModel):
    question: str | None = None


class EditTransactionData(BaseModel):
    index: int | None = None
    amount: Decimal | None = None
    description: str | None = None


class ReclassifyData(BaseModel):
    category: str | None = None


class FixedExpenseData(BaseModel):
    index: int | None = None
    description: str | None = None
    amount: Decimal | None = None
    category: str | None = None
    reminder_day: int | None = Field(default=None, ge=1, le=31)
    remove_reminder: bool = False


class IncomeUpdateData(BaseModel):
    accepted: bool | None = None


class ClassificationRequest(BaseModel):
    message: str
    expense_categories: list[str]
    income_categories: list[str]
    monthly_income: Decimal | None = None
    savings_goal: Decimal | None = None
