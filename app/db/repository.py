from datetime import date
from decimal import Decimal
from typing import Generic, Iterable, TypeVar

from pydantic import BaseModel
from tinydb import Query, TinyDB
from tinydb.storages import MemoryStorage

from app.errors import DuplicateFixedExpenseError
from app.models.pending import NoPendingAction, PendingAction
from app.models.schemas import (
    Budget,
    Category,
    FinancialAlert,
    FixedExpense,
    Transaction,
    User,
)

M = TypeVar("M", bound=BaseModel)


def connect(db_path: str) -> TinyDB:
    """Open the ledger database; ``:memory:`` keeps everything in process."""
    if db_path == ":memory:":
        return TinyDB(storage=MemoryStorage)
    return TinyDB(db_path)


class _Repository(Generic[M]):
    table_name: str
    model: type[M]

    def __init__(self, db: TinyDB):
        self.db = db
        self.table = db.table(self.table_name)

    def _load(self, doc) -> M:
        return self.model(id=doc.doc_id, **doc)

    def _dump(self, obj: M) -> dict:
        data = obj.model_dump(mode="json")
        data.pop("id", None)
        return data

    def _insert(self, obj: M) -> M:
        obj.id = self.table.insert(self._dump(obj))
        return obj

    def _save(self, obj: M) -> M:
        self.table.update(self._dump(obj), doc_ids=[obj.id])
        return obj

    def get(self, id: int) -> M | None:
        doc = self.table.get(doc_id=id)
        if doc is None:
            return None
        return self._load(doc)

    def delete(self, id: int) -> bool:
        if self.table.get(doc_id=id) is None:
            return False
        self.table.remove(doc_ids=[id])
        return True

    def update(self, id: int, **fields) -> M | None:
        existing = self.get(id)
        if existing is None:
            return None
        return self._save(existing.model_copy(update=fields))

    def count(self) -> int:
        return len(self.table)

    def delete_for_user(self, user_id: int) -> int:
        Row = Query()
        return len(self.table.remove(Row.user_id == user_id))

    def _for_user(self, user_id: int) -> list[M]:
        Row = Query()
        docs = self.table.search(Row.user_id == user_id)
        return [self._load(doc) for doc in docs]


class UserRepository(_Repository[User]):
    table_name = "users"
    model = User

    def get_by_phone(self, phone: str) -> User | None:
        U = Query()
        doc = self.table.get(U.phone == phone)
        if doc is None:
            return None
        return self._load(doc)

    def get_or_create(self, phone: str) -> tuple[User, bool]:
        existing = self.get_by_phone(phone)
        if existing is not None:
            return existing, False
        return self._insert(User(phone=phone)), True

    def save(self, user: User) -> User:
        return self._save(user)

    def set_pending(self, user: User, action: PendingAction) -> User:
        user.pending_action = action
        return self._save(user)

    def clear_pending(self, user: User) -> User:
        return self.set_pending(user, NoPendingAction())

    def all(self) -> list[User]:
        return [self._load(doc) for doc in self.table.all()]


class CategoryRepository(_Repository[Category]):
    table_name = "categories"
    model = Category

    def seed(self, categories: Iterable[Category]) -> int:
        """Insert the default categories when the table is empty."""
        if len(self.table) > 0:
            return 0
        created = 0
        for category in categories:
            self._insert(category.model_copy())
            created += 1
        return created

    def active(self, direction: str | None = None) -> list[Category]:
        C = Query()
        cond = C.is_active == True  # noqa: E712
        if direction:
            cond = cond & (C.direction == direction)
        return [self._load(doc) for doc in self.table.search(cond)]

    def names(self, direction: str) -> list[str]:
        return [c.name for c in self.active(direction)]

    def find(self, name: str, direction: str) -> Category | None:
        wanted = name.strip().lower()
        for category in self.active(direction):
            if category.name.lower() == wanted:
                return category
        return None


class TransactionRepository(_Repository[Transaction]):
    table_name = "transactions"
    model = Transaction

    def add(self, transaction: Transaction) -> Transaction:
        return self._insert(transaction)

    def for_user(
        self,
        user_id: int,
        start: date | None = None,
        end: date | None = None,
        is_income: bool | None = None,
        category_id: int | None = None,
    ) -> list[Transaction]:
        """Transactions of a user with ``start <= date < end``."""
        result = []
        for tx in self._for_user(user_id):
            if start is not None and tx.date < start:
                continue
            if end is not None and tx.date >= end:
                continue
            if is_income is not None and tx.is_income != is_income:
                continue
            if category_id is not None and tx.category_id != category_id:
                continue
            result.append(tx)
        return result

    def most_recent(self, user_id: int) -> Transaction | None:
        transactions = self._for_user(user_id)
        if not transactions:
            return None
        return max(transactions, key=lambda tx: (tx.created_at, tx.id))

    def linked_to_fixed_expense(
        self, user_id: int, fixed_expense_id: int, start: date, end: date
    ) -> list[Transaction]:
        return [
            tx
            for tx in self.for_user(user_id, start=start, end=end)
            if tx.fixed_expense_id == fixed_expense_id
        ]

    def total(self, transactions: Iterable[Transaction]) -> Decimal:
        return sum((tx.amount for tx in transactions), Decimal(0))


class FixedExpenseRepository(_Repository[FixedExpense]):
    table_name = "fixed_expenses"
    model = FixedExpense

    def find_by_description(self, user_id: int, description: str) -> FixedExpense | None:
        wanted = description.strip().lower()
        for fixed in self._for_user(user_id):
            if fixed.description.strip().lower() == wanted:
                return fixed
        return None

    def add(self, fixed: FixedExpense) -> FixedExpense:
        if self.find_by_description(fixed.user_id, fixed.description) is not None:
            raise DuplicateFixedExpenseError(fixed.description)
        return self._insert(fixed)

    def for_user(self, user_id: int, include_rejected: bool = False) -> list[FixedExpense]:
        """Listing order is creation order, so numbering survives pause/activate."""
        items = [
            fixed
            for fixed in self._for_user(user_id)
            if include_rejected or not fixed.is_rejected_suggestion
        ]
        return sorted(items, key=lambda f: (f.created_at, f.id))

    def active_due(self, days: set[int]) -> list[FixedExpense]:
        F = Query()
        docs = self.table.search(
            (F.is_active == True)  # noqa: E712
            & F.reminder_day.test(lambda day: day is not None and day in days)
        )
        return sorted((self._load(doc) for doc in docs), key=lambda f: (f.user_id, f.id))


class BudgetRepository(_Repository[Budget]):
    table_name = "budgets"
    model = Budget

    def get_for(self, user_id: int, category_id: int) -> Budget | None:
        B = Query()
        doc = self.table.get((B.user_id == user_id) & (B.category_id == category_id))
        if doc is None:
            return None
        return self._load(doc)

    def upsert(self, user_id: int, category_id: int, monthly_limit: Decimal) -> Budget:
        existing = self.get_for(user_id, category_id)
        if existing is not None:
            existing.monthly_limit = monthly_limit
            return self._save(existing)
        return self._insert(
            Budget(user_id=user_id, category_id=category_id, monthly_limit=monthly_limit)
        )

    def for_user(self, user_id: int) -> list[Budget]:
        return self._for_user(user_id)


class AlertRepository(_Repository[FinancialAlert]):
    table_name = "financial_alerts"
    model = FinancialAlert

    def exists(self, user_id: int, alert_type: str, day: date) -> bool:
        A = Query()
        return self.table.contains(
            (A.user_id == user_id)
            & (A.alert_type == alert_type)
            & (A.alert_date == day.isoformat())
        )

    def record(self, user_id: int, alert_type: str, day: date) -> bool:
        """Insert the dedup row; False when one already exists for that day."""
        if self.exists(user_id, alert_type, day):
            return False
        self._insert(FinancialAlert(user_id=user_id, alert_type=alert_type, alert_date=day))
        return True

    def for_user(self, user_id: int) -> list[FinancialAlert]:
        return self._for_user(user_id)


class Repositories:
    """All tables of one ledger database."""

    def __init__(self, db: TinyDB):
        self.db = db
        self.users = UserRepository(db)
        self.categories = CategoryRepository(db)
        self.transactions = TransactionRepository(db)
        self.fixed_expenses = FixedExpenseRepository(db)
        self.budgets = BudgetRepository(db)
        self.alerts = AlertRepository(db)

    def delete_user(self, user: User) -> None:
        """Remove the user and every row it owns."""
        self.transactions.delete_for_user(user.id)
        self.fixed_expenses.delete_for_user(user.id)
        self.budgets.delete_for_user(user.id)
        self.alerts.delete_for_user(user.id)
        self.users.delete(user.id)

    def close(self) -> None:
        self.db.close()
