from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Callable

from loguru import logger

from app.bot.parsing import normalize
from app.db.repository import Repositories
from app.models.schemas import Category, FixedExpense, Transaction, User
from app.services.ledger import TransactionLedger
from app.services.periods import month_bounds

RECURRING_KEYWORDS = {
    "arriendo", "dividendo", "hipoteca", "gastos comunes", "luz", "agua", "gas",
    "internet", "wifi", "celular", "telefono", "plan", "tv cable", "netflix",
    "spotify", "disney", "hbo", "max", "prime", "youtube premium", "icloud",
    "chatgpt", "suscripcion", "gimnasio", "gym", "seguro", "isapre", "colegio",
    "jardin", "universidad", "mensualidad", "cuota", "credito",
}


def looks_recurring(description: str) -> bool:
    """Keyword heuristic: does the description name a typical monthly payment?"""
    text = f" {normalize(description)} "
    return any(f" {keyword} " in text for keyword in RECURRING_KEYWORDS)


@dataclass
class RegisterResult:
    created: list[Transaction] = field(default_factory=list)
    skipped: list[FixedExpense] = field(default_factory=list)


class FixedExpenseManager:
    def __init__(
        self,
        repos: Repositories,
        ledger: TransactionLedger,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.repos = repos
        self.ledger = ledger
        self.now = now

    # ── Listing ──────────────────────────────────────────────────────

    def listing(self, user: User) -> list[FixedExpense]:
        return self.repos.fixed_expenses.for_user(user.id)

    def by_index(self, user: User, index: int | None) -> FixedExpense | None:
        items = self.listing(user)
        if index is None or index < 1 or index > len(items):
            return None
        return items[index - 1]

    def get_owned(self, user: User, fixed_expense_id: int) -> FixedExpense | None:
        fixed = self.repos.fixed_expenses.get(fixed_expense_id)
        if fixed is None or fixed.user_id != user.id:
            return None
        return fixed

    def _update(self, fixed_id: int, **fields) -> FixedExpense:
        return self.repos.fixed_expenses.update(fixed_id, updated_at=self.now(), **fields)

    # ── Create / promote ─────────────────────────────────────────────

    def create(
        self,
        user: User,
        description: str,
        amount: Decimal,
        category: Category | None,
        reminder_day: int | None = None,
    ) -> tuple[FixedExpense, str]:
        """Create or reactivate; returns (row, created | reactivated | already_active)."""
        existing = self.repos.fixed_expenses.find_by_description(user.id, description)
        if existing is not None:
            if existing.is_active:
                return existing, "already_active"
            updates = {
                "is_active": True,
                "is_rejected_suggestion": False,
                "typical_amount": amount,
            }
            if category is not None:
                updates["category_id"] = category.id
            if reminder_day is not None:
                updates["reminder_day"] = reminder_day
            fixed = self._update(existing.id, **updates)
            logger.info("Reactivated fixed expense #{} '{}'", fixed.id, fixed.description)
            return fixed, "reactivated"

        now = self.now()
        fixed = self.repos.fixed_expenses.add(
            FixedExpense(
                user_id=user.id,
                description=description.strip(),
                typical_amount=amount,
                category_id=category.id if category else None,
                reminder_day=reminder_day,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("Created fixed expense #{} '{}' for user #{}", fixed.id, fixed.description, user.id)
        return fixed, "created"

    def mark_transaction_as_fixed(self, user: User, tx: Transaction) -> tuple[FixedExpense, str]:
        category = self.repos.categories.get(tx.category_id)
        fixed, status = self.create(user, tx.description, tx.amount, category)
        self.repos.transactions.update(tx.id, expense_type="fixed", fixed_expense_id=fixed.id)
        return fixed, status

    # ── Suggestion flow ──────────────────────────────────────────────

    def should_suggest(self, user: User, tx: Transaction) -> bool:
        if tx.is_income or tx.expense_type != "variable" or not tx.description:
            return False
        if not looks_recurring(tx.description):
            return False
        return self.repos.fixed_expenses.find_by_description(user.id, tx.description) is None

    def reject_suggestion(self, user: User, tx: Transaction) -> FixedExpense | None:
        """Leave an inactive placeholder so this description is never suggested again."""
        if not tx.description:
            return None
        existing = self.repos.fixed_expenses.find_by_description(user.id, tx.description)
        if existing is not None:
            return existing
        now = self.now()
        placeholder = self.repos.fixed_expenses.add(
            FixedExpense(
                user_id=user.id,
                description=tx.description,
                typical_amount=tx.amount,
                category_id=tx.category_id,
                is_active=False,
                is_rejected_suggestion=True,
                created_at=now,
                updated_at=now,
            )
        )
        logger.info("User #{} declined fixed-expense suggestion '{}'", user.id, tx.description)
        return placeholder

    # ── Lifecycle ────────────────────────────────────────────────────

    def pause(self, user: User, index: int | None) -> tuple[FixedExpense | None, str]:
        fixed = self.by_index(user, index)
        if fixed is None:
            return None, "not_found"
        if not fixed.is_active:
            return fixed, "already_paused"
        return self._update(fixed.id, is_active=False), "paused"

    def activate(self, user: User, index: int | None) -> tuple[FixedExpense | None, str]:
        fixed = self.by_index(user, index)
        if fixed is None:
            return None, "not_found"
        if fixed.is_active:
            return fixed, "already_active"
        return self._update(fixed.id, is_active=True), "activated"

    def delete(self, user: User, index: int | None) -> FixedExpense | None:
        fixed = self.by_index(user, index)
        if fixed is None:
            return None
        self.repos.fixed_expenses.delete(fixed.id)
        logger.info("Deleted fixed expense #{} '{}'", fixed.id, fixed.description)
        return fixed

    def update(
        self,
        fixed: FixedExpense,
        amount: Decimal | None = None,
        reminder_day: int | None = None,
        remove_reminder: bool = False,
    ) -> FixedExpense:
        updates = {}
        if amount is not None:
            updates["typical_amount"] = amount
        if remove_reminder:
            updates["reminder_day"] = None
        elif reminder_day is not None:
            updates["reminder_day"] = reminder_day
        if not updates:
            return fixed
        logger.info("Updated fixed expense #{}: {}", fixed.id, updates)
        return self._update(fixed.id, **updates)

    # ── Monthly reminders ────────────────────────────────────────────

    def due(self, days: set[int]) -> dict[int, list[FixedExpense]]:
        """Active fixed expenses with one of ``days`` as reminder day, by user id."""
        grouped: dict[int, list[FixedExpense]] = {}
        for fixed in self.repos.fixed_expenses.active_due(days):
            grouped.setdefault(fixed.user_id, []).append(fixed)
        return grouped

    def register_all(self, user: User, fixed_expense_ids: list[int]) -> RegisterResult:
        """Book each announced fixed expense once per calendar month."""
        result = RegisterResult()
        start, end = month_bounds(self.now().date())
        for fixed_id in fixed_expense_ids:
            fixed = self.get_owned(user, fixed_id)
            if fixed is None or not fixed.is_active:
                continue
            if self.repos.transactions.linked_to_fixed_expense(user.id, fixed.id, start, end):
                logger.info("Fixed expense #{} already booked this month, skipping", fixed.id)
                result.skipped.append(fixed)
                continue
            category = self.repos.categories.get(fixed.category_id) if fixed.category_id else None
            if category is None or not category.is_active:
                category = self.ledger.resolve_category(None, is_income=False)
            result.created.append(
                self.ledger.record(
                    user,
                    fixed.typical_amount,
                    category,
                    fixed.description,
                    expense_type="fixed",
                    fixed_expense_id=fixed.id,
                )
            )
        return result
