from decimal import Decimal
from typing import Awaitable, Callable, Protocol

from loguru import logger
from pydantic import ValidationError

from app.bot import messages
from app.bot.messages import format_clp
from app.bot.turn import Turn
from app.db.repository import Repositories
from app.models.intents import (
    AdviceData,
    BatchTransactionData,
    BudgetData,
    EditTransactionData,
    FixedExpenseData,
    IncomeUpdateData,
    Intent,
    IntentType,
    QueryData,
    ReclassifyData,
    TransactionData,
)
from app.models.pending import (
    AwaitingAccountDeletionConfirm,
    AwaitingFixedExpenseEdit,
    AwaitingMarkAsFixedConfirm,
    AwaitingReminderDay,
    AwaitingTransactionEdit,
)
from app.models.schemas import FixedExpense, Transaction
from app.services.alerts import AlertEngine, HealthSnapshot
from app.services.fixed_expenses import FixedExpenseManager
from app.services.income import IncomeEstimator
from app.services.ledger import TransactionLedger
from app.services.reports import Reports

FIXED_LIST_HINT = 'Escribe "mis gastos fijos" para ver la lista numerada.'
DETAIL_HINT = 'Pide "detalle de este mes" para ver la lista numerada.'


class AdviceGenerator(Protocol):
    async def answer(
        self, question: str, snapshot: HealthSnapshot, budgets: list[tuple[str, Decimal, Decimal]]
    ) -> str | None: ...


def _positive(amount: Decimal | None) -> bool:
    return amount is not None and amount > 0


class IntentHandlers:
    """One handler per classified intent; each produces the turn's primary reply."""

    def __init__(
        self,
        repos: Repositories,
        ledger: TransactionLedger,
        fixed_expenses: FixedExpenseManager,
        alerts: AlertEngine,
        income: IncomeEstimator,
        reports: Reports,
        advisor: AdviceGenerator,
        suggestion_delay_seconds: float = 3.0,
        upsell_delay_seconds: float = 2.0,
    ):
        self.repos = repos
        self.ledger = ledger
        self.fixed_expenses = fixed_expenses
        self.alerts = alerts
        self.income = income
        self.reports = reports
        self.advisor = advisor
        self.suggestion_delay_seconds = suggestion_delay_seconds
        self.upsell_delay_seconds = upsell_delay_seconds

        self._handlers: dict[IntentType, Callable[[Turn, dict], Awaitable[None]]] = {
            IntentType.TRANSACTION: self.transaction,
            IntentType.MULTIPLE_TRANSACTIONS: self.multiple_transactions,
            IntentType.QUERY: self.query,
            IntentType.BUDGET: self.budget,
            IntentType.BUDGET_STATUS: self.budget_status,
            IntentType.FINANCIAL_ADVICE: self.financial_advice,
            IntentType.EDIT_LAST_TRANSACTION: self.edit_last_transaction,
            IntentType.DELETE_LAST_TRANSACTION: self.delete_last_transaction,
            IntentType.EDIT_TRANSACTION_BY_INDEX: self.edit_transaction_by_index,
            IntentType.DELETE_TRANSACTION_BY_INDEX: self.delete_transaction_by_index,
            IntentType.RECLASSIFY_TRANSACTION: self.reclassify_transaction,
            IntentType.MARK_AS_FIXED: self.mark_as_fixed,
            IntentType.ADD_FIXED_EXPENSE: self.add_fixed_expense,
            IntentType.LIST_FIXED_EXPENSES: self.list_fixed_expenses,
            IntentType.EDIT_FIXED_EXPENSE: self.edit_fixed_expense,
            IntentType.PAUSE_FIXED_EXPENSE: self.pause_fixed_expense,
            IntentType.ACTIVATE_FIXED_EXPENSE: self.activate_fixed_expense,
            IntentType.DELETE_FIXED_EXPENSE: self.delete_fixed_expense,
            IntentType.INCOME_UPDATE_RESPONSE: self.income_update_response,
            IntentType.DELETE_ACCOUNT: self.delete_account,
            IntentType.HELP: self.help,
            IntentType.OTHER: self.other,
        }

    async def dispatch(self, turn: Turn, intent: Intent) -> None:
        handler = self._handlers.get(intent.type, self.other)
        try:
            await handler(turn, intent.data)
        except ValidationError as e:
            logger.warning("Invalid {} payload {}: {}", intent.type.value, intent.data, e)
            if not turn.replied:
                turn.reply(
                    "🤔 No pude entender bien los datos de tu mensaje. "
                    "¿Puedes decirlo de otra forma?\n\n" + messages.HELP_TEXT
                )

    # ── Follow-ups after a ledger write ──────────────────────────────

    async def run_alerts(self, turn: Turn, transactions: list[Transaction]) -> None:
        """Budget, financial-health and income prompts for freshly written rows.

        The write is already committed; a failure here only loses the alert.
        """
        user = turn.user
        expenses = [tx for tx in transactions if not tx.is_income]
        try:
            for category_id in dict.fromkeys(tx.category_id for tx in expenses):
                category = self.repos.categories.get(category_id)
                if category is None:
                    continue
                budget_alert = self.alerts.check_budget(user, category)
                if budget_alert is not None:
                    turn.notify(budget_alert.text())

            if expenses:
                health_alert = await self.alerts.check_financial_health(user)
                if health_alert is not None:
                    turn.notify(health_alert.text)

            if len(expenses) < len(transactions):
                suggestion = self.income.suggestion(user)
                if suggestion is not None:
                    self.income.mark_prompted(user)
                    turn.notify(
                        messages.income_update_prompt(
                            suggestion.declared, suggestion.average, suggestion.months
                        )
                    )
        except Exception:
            logger.exception("Alert evaluation failed for user #{}", user.id)

    def confirm_fixed(self, turn: Turn, fixed: FixedExpense, status: str) -> None:
        """Reply to a created/reactivated fixed expense; ask for a day when it has none."""
        user = turn.user
        if status == "already_active":
            self.repos.users.clear_pending(user)
            turn.reply(f"📌 *{fixed.description}* ya está registrado como gasto fijo activo.")
            return

        verb = "Reactivé" if status == "reactivated" else "Guardé"
        text = (
            f"📌 {verb} *{fixed.description}* como gasto fijo: "
            f"{format_clp(fixed.typical_amount)} al mes."
        )
        if fixed.reminder_day is None:
            self.repos.users.set_pending(user, AwaitingReminderDay(fixed_expense_id=fixed.id))
            turn.reply(text + "\n\n" + messages.reminder_day_prompt(fixed))
        else:
            self.repos.users.clear_pending(user)
            turn.reply(text + f"\n📅 Te recordaré pagarlo el día {fixed.reminder_day} de cada mes.")

    def resolve_income_update(self, turn: Turn, accepted: bool) -> None:
        user = turn.user
        new_income = self.income.resolve(user, accepted)
        if new_income is not None:
            budget = new_income - (user.savings_goal or Decimal(0))
            turn.reply(
                f"✅ Listo, actualicé tu ingreso mensual a {format_clp(new_income)}.\n"
                f"💸 Tu presupuesto para gastos ahora es {format_clp(budget)}."
            )
        elif accepted:
            turn.reply("🤔 No tengo suficientes ingresos registrados para actualizarlo todavía.")
        else:
            turn.reply(
                f"👍 Ok, mantengo tu ingreso en {format_clp(user.monthly_income or 0)}. "
                "Te volveré a preguntar más adelante."
            )

    # ── Transactions ─────────────────────────────────────────────────

    async def transaction(self, turn: Turn, data: dict) -> None:
        payload = TransactionData.model_validate(data)
        user = turn.user
        if not _positive(payload.amount):
            turn.reply('🤔 No detecté el monto. Por ejemplo: "Gasté 5000 en almuerzo".')
            return

        category = self.ledger.resolve_category(payload.category, payload.is_income)
        tx = self.ledger.record(
            user, payload.amount, category, payload.description, payload.is_income
        )
        turn.reply(messages.transaction_recorded(tx, category, seed=tx.id))
        await self.run_alerts(turn, [tx])

        if self.fixed_expenses.should_suggest(user, tx):
            self.repos.users.set_pending(user, AwaitingMarkAsFixedConfirm(transaction_id=tx.id))
            turn.defer(messages.mark_as_fixed_prompt(tx), self.suggestion_delay_seconds)

    async def multiple_transactions(self, turn: Turn, data: dict) -> None:
        payload = BatchTransactionData.model_validate(data)
        result = self.ledger.record_batch(turn.user, payload.transactions)
        if not result.created:
            turn.reply("🤔 No pude registrar ninguno de los movimientos. Revisa los montos.")
            return

        categories = {c.id: c for c in self.repos.categories.active()}
        lines = [f"✅ Registré {len(result.created)} movimientos:\n"]
        for tx in result.created:
            line = f"• {messages.category_label(categories.get(tx.category_id))}: {format_clp(tx.amount)}"
            if tx.description:
                line += f" ({tx.description})"
            lines.append(line)
        if result.skipped:
            lines.append(f"\n⚠️ {result.skipped} no se registraron por tener un monto inválido.")
        turn.reply("\n".join(lines))
        await self.run_alerts(turn, result.created)

    async def edit_last_transaction(self, turn: Turn, data: dict) -> None:
        payload = EditTransactionData.model_validate(data)
        tx = self.ledger.recent(turn.user)
        if tx is None:
            turn.reply(
                "🤔 No encontré un movimiento de los últimos 5 minutos para editar.\n" + DETAIL_HINT
            )
            return
        await self._edit(turn, tx, payload)

    async def delete_last_transaction(self, turn: Turn, data: dict) -> None:
        tx = self.ledger.delete_recent(turn.user)
        if tx is None:
            turn.reply(
                "🤔 No encontré un movimiento de los últimos 5 minutos para borrar.\n" + DETAIL_HINT
            )
            return
        turn.reply(self._deleted_text(tx))

    async def edit_transaction_by_index(self, turn: Turn, data: dict) -> None:
        payload = EditTransactionData.model_validate(data)
        tx = self.ledger.resolve_position(turn.user, payload.index)
        if tx is None:
            turn.reply(self._position_not_found(payload.index))
            return
        await self._edit(turn, tx, payload)

    async def delete_transaction_by_index(self, turn: Turn, data: dict) -> None:
        payload = EditTransactionData.model_validate(data)
        tx = self.ledger.resolve_position(turn.user, payload.index)
        if tx is None:
            turn.reply(self._position_not_found(payload.index))
            return
        self.ledger.delete(tx)
        turn.reply(self._deleted_text(tx))

    async def reclassify_transaction(self, turn: Turn, data: dict) -> None:
        payload = ReclassifyData.model_validate(data)
        result = self.ledger.reclassify_recent(turn.user, payload.category)
        if result.status == "not_found":
            turn.reply("🤔 No encontré un gasto de los últimos 5 minutos para cambiar de categoría.")
        elif result.status == "income":
            turn.reply("🤔 Solo puedo cambiar la categoría de gastos, no de ingresos.")
        elif result.status == "unknown_category":
            names = ", ".join(self.repos.categories.names("expense"))
            turn.reply(f"🤔 No conozco esa categoría. Las disponibles son: {names}.")
        elif result.status == "unchanged":
            turn.reply(f"👍 Ese gasto ya estaba en {result.category.label}.")
        else:
            turn.reply(f"✅ Listo, lo moví a {messages.category_label(result.category)}.")
            await self.run_alerts(turn, [result.transaction])

    async def _edit(self, turn: Turn, tx: Transaction, payload: EditTransactionData) -> None:
        if payload.amount is None and not payload.description:
            self.repos.users.set_pending(turn.user, AwaitingTransactionEdit(transaction_id=tx.id))
            turn.reply(messages.transaction_edit_prompt(tx))
            return
        if payload.amount is not None and payload.amount <= 0:
            turn.reply("🤔 El monto debe ser mayor que cero.")
            return

        updated = self.ledger.edit(tx, amount=payload.amount, description=payload.description)
        turn.reply(
            f"✏️ Actualizado: {updated.description or 'Sin descripción'} "
            f"{format_clp(updated.amount)}"
        )
        if payload.amount is not None:
            await self.run_alerts(turn, [updated])

    @staticmethod
    def _deleted_text(tx: Transaction) -> str:
        return f"🗑️ Eliminé {tx.description or 'el movimiento'} ({format_clp(tx.amount)})."

    @staticmethod
    def _position_not_found(index: int | None) -> str:
        if index is None:
            return "🤔 ¿Qué número de la lista quieres cambiar?\n" + DETAIL_HINT
        return f"🤔 No encontré el movimiento número {index}.\n" + DETAIL_HINT

    # ── Reports & budgets ────────────────────────────────────────────

    async def query(self, turn: Turn, data: dict) -> None:
        payload = QueryData.model_validate(data)
        turn.reply(self.reports.spending(turn.user, payload))
        if turn.user.plan == "free":
            turn.defer(messages.PREMIUM_UPSELL, self.upsell_delay_seconds)

    async def budget(self, turn: Turn, data: dict) -> None:
        payload = BudgetData.model_validate(data)
        category = (
            self.repos.categories.find(payload.category, "expense") if payload.category else None
        )
        if category is None:
            names = ", ".join(self.repos.categories.names("expense"))
            turn.reply(f"🤔 ¿Para qué categoría es el presupuesto? Opciones: {names}.")
            return
        if not _positive(payload.amount):
            turn.reply(
                f"🤔 ¿Cuánto quieres gastar como máximo al mes en {category.label}? "
                'Ej: "máximo 100 lucas"'
            )
            return

        self.repos.budgets.upsert(turn.user.id, category.id, payload.amount)
        logger.info("User #{} budget for '{}' set to {}", turn.user.id, category.name, payload.amount)
        turn.reply(
            f"✅ Presupuesto configurado\n\n{messages.category_label(category)}: "
            f"{format_clp(payload.amount)} al mes\n\nTe avisaré cuando llegues al 80% y al 100%."
        )

    async def budget_status(self, turn: Turn, data: dict) -> None:
        turn.reply(self.reports.budget_status(turn.user))

    async def financial_advice(self, turn: Turn, data: dict) -> None:
        payload = AdviceData.model_validate(data)
        user = turn.user
        snapshot = self.alerts.snapshot(user)
        budgets = [
            (category.label, spent, limit) for category, spent, limit in self.reports.budget_rows(user)
        ]
        answer = await self.advisor.answer(payload.question or turn.message, snapshot, budgets)
        if not answer:
            turn.reply("🙏 Lo siento, no pude generar un consejo en este momento. Intenta más tarde.")
            return
        turn.reply(f"💡 {answer}")

    # ── Fixed expenses ───────────────────────────────────────────────

    async def mark_as_fixed(self, turn: Turn, data: dict) -> None:
        payload = EditTransactionData.model_validate(data)
        user = turn.user
        if payload.index is not None:
            tx = self.ledger.resolve_position(user, payload.index)
        else:
            tx = self.ledger.recent(user)
        if tx is None or tx.is_income or not tx.description:
            turn.reply("🤔 No encontré el gasto que quieres marcar como fijo.\n" + DETAIL_HINT)
            return
        fixed, status = self.fixed_expenses.mark_transaction_as_fixed(user, tx)
        self.confirm_fixed(turn, fixed, status)

    async def add_fixed_expense(self, turn: Turn, data: dict) -> None:
        payload = FixedExpenseData.model_validate(data)
        if not payload.description:
            turn.reply('🤔 ¿Cómo se llama el gasto fijo? Ej: "Arriendo 450 lucas todos los 5".')
            return
        if not _positive(payload.amount):
            turn.reply(f"🤔 ¿Cuánto pagas al mes por {payload.description}?")
            return

        category = self.ledger.resolve_category(payload.category, is_income=False)
        fixed, status = self.fixed_expenses.create(
            turn.user, payload.description, payload.amount, category, payload.reminder_day
        )
        self.confirm_fixed(turn, fixed, status)

    async def list_fixed_expenses(self, turn: Turn, data: dict) -> None:
        turn.reply(self.reports.fixed_expenses(self.fixed_expenses.listing(turn.user)))

    async def edit_fixed_expense(self, turn: Turn, data: dict) -> None:
        payload = FixedExpenseData.model_validate(data)
        fixed = self.fixed_expenses.by_index(turn.user, payload.index)
        if fixed is None:
            turn.reply("🤔 No encontré ese gasto fijo.\n" + FIXED_LIST_HINT)
            return
        if payload.amount is None and payload.reminder_day is None and not payload.remove_reminder:
            self.repos.users.set_pending(
                turn.user, AwaitingFixedExpenseEdit(fixed_expense_id=fixed.id)
            )
            turn.reply(messages.fixed_expense_edit_prompt(fixed))
            return
        if payload.amount is not None and payload.amount <= 0:
            turn.reply("🤔 El monto debe ser mayor que cero.")
            return

        updated = self.fixed_expenses.update(
            fixed,
            amount=payload.amount,
            reminder_day=payload.reminder_day,
            remove_reminder=payload.remove_reminder,
        )
        turn.reply(fixed_expense_updated(updated))

    async def pause_fixed_expense(self, turn: Turn, data: dict) -> None:
        payload = FixedExpenseData.model_validate(data)
        fixed, status = self.fixed_expenses.pause(turn.user, payload.index)
        if status == "not_found":
            turn.reply("🤔 No encontré ese gasto fijo.\n" + FIXED_LIST_HINT)
        elif status == "already_paused":
            turn.reply(f"⏸️ {fixed.description} ya estaba pausado.")
        else:
            turn.reply(f"⏸️ Pausé {fixed.description}. No te lo recordaré hasta que lo actives.")

    async def activate_fixed_expense(self, turn: Turn, data: dict) -> None:
        payload = FixedExpenseData.model_validate(data)
        fixed, status = self.fixed_expenses.activate(turn.user, payload.index)
        if status == "not_found":
            turn.reply("🤔 No encontré ese gasto fijo.\n" + FIXED_LIST_HINT)
        elif status == "already_active":
            turn.reply(f"▶️ {fixed.description} ya estaba activo.")
        else:
            turn.reply(f"▶️ Activé {fixed.description} nuevamente.")

    async def delete_fixed_expense(self, turn: Turn, data: dict) -> None:
        payload = FixedExpenseData.model_validate(data)
        fixed = self.fixed_expenses.delete(turn.user, payload.index)
        if fixed is None:
            turn.reply("🤔 No encontré ese gasto fijo.\n" + FIXED_LIST_HINT)
            return
        turn.reply(f"🗑️ Eliminé el gasto fijo {fixed.description}.")

    # ── Account & misc ───────────────────────────────────────────────

    async def income_update_response(self, turn: Turn, data: dict) -> None:
        payload = IncomeUpdateData.model_validate(data)
        if payload.accepted is None or not self.income.awaiting_response(turn.user):
            turn.reply(messages.NOT_UNDERSTOOD)
            return
        self.resolve_income_update(turn, payload.accepted)

    async def delete_account(self, turn: Turn, data: dict) -> None:
        self.repos.users.set_pending(turn.user, AwaitingAccountDeletionConfirm())
        turn.reply(messages.account_deletion_prompt())

    async def help(self, turn: Turn, data: dict) -> None:
        greeting = f"👋 ¡Hola, {turn.user.name}!" if turn.user.name else "👋 ¡Hola!"
        turn.reply(f"{greeting}\n\n{messages.HELP_TEXT}")

    async def other(self, turn: Turn, data: dict) -> None:
        turn.reply(messages.NOT_UNDERSTOOD)


def fixed_expense_updated(fixed: FixedExpense) -> str:
    lines = [f"✅ Actualicé *{fixed.description}*: {format_clp(fixed.typical_amount)} al mes"]
    if fixed.reminder_day:
        lines.append(f"📅 Recordatorio: día {fixed.reminder_day}")
    else:
        lines.append("🔕 Sin recordatorio")
    return "\n".join(lines)
