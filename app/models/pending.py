"""Conversational context a user is "inside", consumed by their next message.

Persisted on the user document as a dict whose ``kind`` field is the single
discriminant. Exactly one is active per user; setting a new one replaces it.
"""

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class NoPendingAction(BaseModel):
    kind: Literal["none"] = "none"


class AwaitingReminderDay(BaseModel):
    kind: Literal["awaiting_reminder_day"] = "awaiting_reminder_day"
    fixed_expense_id: int


class AwaitingFixedExpenseEdit(BaseModel):
    kind: Literal["awaiting_fixed_expense_edit"] = "awaiting_fixed_expense_edit"
    fixed_expense_id: int


class AwaitingBulkReminderResponse(BaseModel):
    kind: Literal["awaiting_bulk_reminder_response"] = "awaiting_bulk_reminder_response"
    # Fixed expenses announced in the reminder this response answers
    fixed_expense_ids: list[int] = []


class AwaitingAccountDeletionConfirm(BaseModel):
    kind: Literal["awaiting_account_deletion_confirm"] = "awaiting_account_deletion_confirm"


class AwaitingTransactionEdit(BaseModel):
    kind: Literal["awaiting_transaction_edit"] = "awaiting_transaction_edit"
    transaction_id: int


class AwaitingMarkAsFixedConfirm(BaseModel):
    kind: Literal["awaiting_mark_as_fixed_confirm"] = "awaiting_mark_as_fixed_confirm"
    transaction_id: int


PendingAction = Annotated[
    Union[
        NoPendingAction,
        AwaitingReminderDay,
        AwaitingFixedExpenseEdit,
        AwaitingBulkReminderResponse,
        AwaitingAccountDeletionConfirm,
        AwaitingTransactionEdit,
        AwaitingMarkAsFixedConfirm,
    ],
    Field(discriminator="kind"),
]
