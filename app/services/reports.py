from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Callable

from app.bot import messages
from app.bot.messages import SEPARATOR, format_clp, format_percentage
from app.db.repository import Repositories
from app.models.intents import QueryData
from app.models.schemas import Category, FixedExpense, User
from app.services.alerts import percentage
from app.services.ledger import TransactionLedger
from app.services.periods import month_bounds, period_bounds


class Reports:
    """Read-only views of the ledger, rendered as chat messages."""

    def __init__(
        self,
        repos: Repositories,
        ledger: TransactionLedger,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.repos = repos
        self.ledger = ledger
        self.now = now

    def _find_category(self, name: str | None) -> Category | None:
        if not name:
            return None
        return self.repos.categories.find(name, "expense") or self.repos.categories.find(
            name, "income"
        )

    def spending(self, user: User, query: QueryData) -> str:
        category = self._find_category(query.category)
        if query.category and category is None:
            return f"🤔 No conozco la categoría '{query.category}'."

        start, end = period_bounds(query.period, self.now().date())
        period_text = messages.PERIOD_LABELS[query.period]
        category_text = f" - {category.label}" if category else ""

        if query.detail:
            transactions = self.ledger.display_order(
                user, start, end, category.id if category else None
            )
            # The numbering below is what positional edits resolve against
            self.ledger.remember_shown(user, transactions)
        else:
            transactions = self.repos.transactions.for_user(
                user.id, start=start, end=end, category_id=category.id if category else None
            )

        if not transactions:
            where = f" en {category.label}" if category else ""
            return f"No tienes movimientos registrados{where} {period_text} 📊"

        categories = {c.id: c for c in self.repos.categories.active()}
        total_expenses = sum((t.amount for t in transactions if not t.is_income), Decimal(0))
        total_income = sum((t.amount for t in transactions if t.is_income), Decimal(0))

        if query.detail:
            lines = [f"📊 Detalle {period_text}{category_text}:\n"]
            current = None
            for index, tx in enumerate(transactions, 1):
                if tx.category_id != current:
                    if current is not None:
                        lines.append("")
                    current = tx.category_id
                    lines.append(f"{messages.category_label(categories.get(current))}:")
                lines.append(messages.transaction_line(index, tx))
            lines.append("")
        else:
            by_category: dict[int, Decimal] = defaultdict(Decimal)
            for tx in transactions:
                if not tx.is_income:
                    by_category[tx.category_id] += tx.amount
            lines = [f"📊 Resumen {period_text}{category_text}:\n"]
            for category_id, amount in sorted(
                by_category.items(), key=lambda item: item[1], reverse=True
            ):
                lines.append(
                    f"{messages.category_label(categories.get(category_id))}: {format_clp(amount)}"
                )
            lines.append("")

        lines.append(SEPARATOR)
        lines.append(f"Total gastado: {format_clp(total_expenses)}")
        if total_income > 0:
            lines.append(f"Total ingresos: {format_clp(total_income)}")
            lines.append(f"Balance: {format_clp(total_income - total_expenses)}")
        if query.detail:
            lines.append('\nPuedes decir "cambia el 2 a 5000" o "borra el 3".')
        return "\n".join(lines)

    def budget_rows(self, user: User) -> list[tuple[Category, Decimal, Decimal]]:
        """(category, spent this month, monthly limit) for every budget of the user."""
        start, end = month_bounds(self.now().date())
        rows = []
        for budget in self.repos.budgets.for_user(user.id):
            category = self.repos.categories.get(budget.category_id)
            if category is None:
                continue
            spent = self.repos.transactions.total(
                self.repos.transactions.for_user(
                    user.id, start=start, end=end, is_income=False, category_id=category.id
                )
            )
            rows.append((category, spent, budget.monthly_limit))
        return sorted(rows, key=lambda row: row[0].name)

    def budget_status(self, user: User) -> str:
        rows = self.budget_rows(user)
        if not rows:
            return (
                "📊 No tienes presupuestos configurados todavía.\n\n"
                'Puedes crear uno diciendo:\n"Quiero gastar máximo 100 lucas en comida"'
            )

        month = messages.MONTHS[self.now().month - 1]
        lines = [f"💰 Estado de tus presupuestos ({month}):\n"]
        total_limit = Decimal(0)
        total_spent = Decimal(0)
        for category, spent, limit in rows:
            total_limit += limit
            total_spent += spent
            used = percentage(spent, limit)
            if used >= 100:
                marker = "🚨"
            elif used >= 80:
                marker = "⚠️"
            elif used >= 50:
                marker = "🟡"
            else:
                marker = "✅"
            lines.append(f"{messages.category_label(category)}:")
            lines.append(f"  Presupuesto: {format_clp(limit)}")
            lines.append(f"  Gastado: {format_clp(spent)} ({format_percentage(used)}) {marker}")
            lines.append(f"  Disponible: {format_clp(limit - spent)}\n")

        lines.append(SEPARATOR)
        lines.append(f"Total presupuestado: {format_clp(total_limit)}")
        lines.append(
            f"Total gastado: {format_clp(total_spent)} "
            f"({format_percentage(percentage(total_spent, total_limit))})"
        )
        return "\n".join(lines)

    def fixed_expenses(self, items: list[FixedExpense]) -> str:
        if not items:
            return (
                "📌 No tienes gastos fijos registrados.\n\n"
                'Puedes agregar uno diciendo "Arriendo 450 lucas todos los 5".'
            )
        categories = {c.id: c for c in self.repos.categories.active()}
        lines = ["📌 Tus gastos fijos:\n"]
        total = Decimal(0)
        for index, fixed in enumerate(items, 1):
            lines.append(messages.fixed_expense_line(index, fixed, categories.get(fixed.category_id)))
            if fixed.is_active:
                total += fixed.typical_amount
        lines.append(f"\nTotal mensual activo: {format_clp(total)}")
        lines.append('\nPuedes decir "pausa el 2", "activa el 2", "edita el 1" o "borra el 3".')
        return "\n".join(lines)
