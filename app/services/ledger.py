from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable

from loguru import logger
from pydantic import ValidationError

from app.db.repository import Repositories
from app.errors import CategoryIntegrityError
from app.models.intents import TransactionData
from app.models.schemas import Category, Transaction, User
from app.services.periods import month_bounds

RECENT_WINDOW = timedelta(minutes=5)


@dataclass
class BatchResult:
    created: list[Transaction] = field(default_factory=list)
    skipped: int = 0


@dataclass
class ReclassifyResult:
    status: str  # not_found | income | unknown_category | unchanged | updated
    transaction: Transaction | None = None
    category: Category | None = None


class TransactionLedger:
    def __init__(
        self,
        repos: Repositories,
        default_expense_category: str = "otros",
        default_income_category: str = "otros ingresos",
        now: Callable[[], datetime] = datetime.now,
    ):
        self.repos = repos
        self.defaults = {
            "expense": default_expense_category,
            "income": default_income_category,
        }
        self.now = now

    def today(self) -> date:
        return self.now().date()

    # ── Categories ───────────────────────────────────────────────────

    def resolve_category(self, name: str | None, is_income: bool) -> Category:
        """Case-insensitive lookup within the direction, else the direction's default."""
        direction = "income" if is_income else "expense"
        if name:
            category = self.repos.categories.find(name, direction)
            if category is not None:
                return category
            logger.warning("Unknown {} category '{}', using default", direction, name)

        default_name = self.defaults[direction]
        category = self.repos.categories.find(default_name, direction)
        if category is None:
            raise CategoryIntegrityError(direction, default_name)
        return category

    # ── Create ───────────────────────────────────────────────────────

    def record(
        self,
        user: User,
        amount: Decimal,
        category: Category,
        description: str | None = None,
        is_income: bool = False,
        expense_type: str = "variable",
        fixed_expense_id: int | None = None,
    ) -> Transaction:
        if amount is None or amount <= 0:
            raise ValueError(f"Transaction amount must be positive, got {amount}")
        now = self.now()
        tx = Transaction(
            user_id=user.id,
            amount=amount,
            category_id=category.id,
            description=(description or "").strip(),
            date=now.date(),
            is_income=is_income,
            expense_type=expense_type,
            fixed_expense_id=fixed_expense_id,
            created_at=now,
        )
        self.repos.transactions.add(tx)
        logger.info(
            "User #{} recorded {} {} in '{}'",
            user.id, "income" if is_income else "expense", amount, category.name,
        )
        return tx

    def record_batch(self, user: User, entries: list[dict[str, Any]]) -> BatchResult:
        """Record every well-formed entry.

        Entries that do not validate as a transaction, or lack a positive
        amount, are skipped without affecting the rest of the batch.
        """
        result = BatchResult()
        for entry in entries:
            try:
                payload = TransactionData.model_validate(entry)
            except ValidationError as e:
                logger.warning(
                    "Skipping invalid batch entry for user #{}: {} ({} errors)",
                    user.id, entry, e.error_count(),
                )
                result.skipped += 1
                continue
            amount = payload.amount
            if amount is None or not amount.is_finite() or amount <= 0:
                logger.warning("Skipping batch entry without amount for user #{}: {}", user.id, entry)
                result.skipped += 1
                continue
            category = self.resolve_category(payload.category, payload.is_income)
            result.created.append(
                self.record(user, amount, category, payload.description, payload.is_income)
            )
        return result

    # ── Recency ──────────────────────────────────────────────────────

    def recent(self, user: User) -> Transaction | None:
        """The user's latest transaction if it was created within the last five minutes."""
        tx = self.repos.transactions.most_recent(user.id)
        if tx is None or self.now() - tx.created_at > RECENT_WINDOW:
            return None
        return tx

    def delete_recent(self, user: User) -> Transaction | None:
        tx = self.recent(user)
        if tx is None:
            return None
        self.delete(tx)
        return tx

    # ── Positional references ────────────────────────────────────────

    def display_order(
        self, user: User, start: date, end: date, category_id: int | None = None
    ) -> list[Transaction]:
        """Transactions as a detail listing numbers them: by category, newest first."""
        transactions = self.repos.transactions.for_user(
            user.id, start=start, end=end, category_id=category_id
        )
        names = {c.id: c.name for c in self.repos.categories.active()}
        by_recency = sorted(transactions, key=lambda tx: (tx.date, tx.id), reverse=True)
        return sorted(by_recency, key=lambda tx: names.get(tx.category_id, ""))

    def remember_shown(self, user: User, transactions: list[Transaction]) -> None:
        user.last_shown_transaction_ids = [tx.id for tx in transactions]
        user.last_shown_at = self.now()
        self.repos.users.save(user)

    def resolve_position(self, user: User, index: int | None) -> Transaction | None:
        """Transaction number ``index`` (1-based) of the list the user is looking at.

        The recorded listing is authoritative. Only when no listing was ever
        recorded is this month's detail order recomputed. A stored id whose
        row was created after the listing was shown belongs to a different
        transaction (TinyDB reuses freed ids after a restart) and resolves
        to nothing.
        """
        if index is None or index < 1:
            return None

        shown = user.last_shown_transaction_ids
        if shown is not None:
            if index > len(shown):
                return None
            tx = self.repos.transactions.get(shown[index - 1])
            if tx is not None and user.last_shown_at is not None and tx.created_at > user.last_shown_at:
                logger.warning(
                    "Listed id #{} now points to a newer transaction for user #{}", tx.id, user.id
                )
                return None
        else:
            listing = self.display_order(user, *month_bounds(self.today()))
            if index > len(listing):
                return None
            tx = listing[index - 1]

        if tx is None or tx.user_id != user.id:
            return None
        return tx

    # ── Mutations ────────────────────────────────────────────────────

    def edit(
        self, tx: Transaction, amount: Decimal | None = None, description: str | None = None
    ) -> Transaction:
        updates: dict[str, Any] = {}
        if amount is not None:
            if amount <= 0:
                raise ValueError(f"Transaction amount must be positive, got {amount}")
            updates["amount"] = amount
        if description:
            updates["description"] = description.strip()
        if not updates:
            return tx
        updated = self.repos.transactions.update(tx.id, **updates)
        logger.info("Edited transaction #{}: {}", tx.id, updates)
        return updated

    def delete(self, tx: Transaction) -> None:
        self.repos.transactions.delete(tx.id)
        logger.info("Deleted transaction #{}", tx.id)

    def reclassify_recent(self, user: User, category_name: str | None) -> ReclassifyResult:
        tx = self.recent(user)
        if tx is None:
            return ReclassifyResult("not_found")
        if tx.is_income:
            return ReclassifyResult("income", transaction=tx)

        category = self.repos.categories.find(category_name or "", "expense")
        if category is None:
            return ReclassifyResult("unknown_category", transaction=tx)
        if category.id == tx.category_id:
            return ReclassifyResult("unchanged", transaction=tx, category=category)

        updated = self.repos.transactions.update(tx.id, category_id=category.id)
        logger.info("Reclassified transaction #{} to '{}'", tx.id, category.name)
        return ReclassifyResult("updated", transaction=updated, category=category)
