from typing import Protocol

from loguru import logger

from app.bot import messages, parsing
from app.bot.admin import AdminCommands, is_command as is_admin_command
from app.bot.handlers import IntentHandlers, fixed_expense_updated
from app.bot.messages import format_clp
from app.bot.onboarding import Onboarding
from app.bot.turn import Turn
from app.db.repository import Repositories
from app.errors import CategoryIntegrityError
from app.models.intents import ClassificationRequest, Intent
from app.models.pending import (
    AwaitingAccountDeletionConfirm,
    AwaitingBulkReminderResponse,
    AwaitingFixedExpenseEdit,
    AwaitingMarkAsFixedConfirm,
    AwaitingReminderDay,
    AwaitingTransactionEdit,
)
from app.models.schemas import OutboundMessage
from app.services.fixed_expenses import FixedExpenseManager
from app.services.income import IncomeEstimator
from app.services.ledger import TransactionLedger
from app.services.locks import UserLocks


class Classifier(Protocol):
    async def classify(self, request: ClassificationRequest) -> Intent: ...


class ConversationRouter:
    """Entry point for every inbound message.

    Decides which context consumes the message, first match wins:
    admin command, onboarding, income update yes/no, then the user's pending
    action, and only then the classifier.
    """

    def __init__(
        self,
        repos: Repositories,
        classifier: Classifier,
        handlers: IntentHandlers,
        onboarding: Onboarding,
        admin: AdminCommands,
        ledger: TransactionLedger,
        fixed_expenses: FixedExpenseManager,
        income: IncomeEstimator,
        locks: UserLocks,
    ):
        self.repos = repos
        self.classifier = classifier
        self.handlers = handlers
        self.onboarding = onboarding
        self.admin = admin
        self.ledger = ledger
        self.fixed_expenses = fixed_expenses
        self.income = income
        self.locks = locks

    async def handle(self, sender_id: str, body: str) -> list[OutboundMessage]:
        if self.admin.is_admin(sender_id) and is_admin_command(body):
            # /reminders takes other users' locks, possibly the operator's own
            return await self._process(sender_id, body)
        async with self.locks.for_user(sender_id):
            return await self._process(sender_id, body)

    async def _process(self, sender_id: str, body: str) -> list[OutboundMessage]:
        user, created = self.repos.users.get_or_create(sender_id)
        if created:
            logger.info("New user #{} ({})", user.id, sender_id)

        turn = Turn(user, body)
        try:
            await self._route(turn)
        except CategoryIntegrityError as e:
            logger.error("Category integrity failure for user #{}: {}", user.id, e)
            turn.discard()
            turn.reply(messages.CONTACT_SUPPORT)
        except Exception:
            logger.exception("Failed to handle message from {}", sender_id)
            turn.discard()
            turn.reply(messages.TRY_AGAIN)

        if not turn.replied:
            turn.reply(messages.NOT_UNDERSTOOD)
        return turn.outbox()

    async def _route(self, turn: Turn) -> None:
        user = turn.user

        if self.admin.is_admin(user.phone) and await self.admin.handle(turn):
            return

        if not user.onboarding_complete:
            self.onboarding.handle(turn)
            return

        if self.income.awaiting_response(user) and parsing.is_yes_no(turn.message):
            self.handlers.resolve_income_update(turn, parsing.is_affirmative(turn.message))
            return

        pending = user.pending_action
        if isinstance(pending, AwaitingBulkReminderResponse):
            await self._bulk_reminder(turn, pending)
            return
        if isinstance(pending, AwaitingAccountDeletionConfirm):
            self._account_deletion(turn)
            return
        if isinstance(pending, AwaitingTransactionEdit):
            await self._transaction_edit(turn, pending)
            return
        if isinstance(pending, (AwaitingReminderDay, AwaitingFixedExpenseEdit)):
            self._fixed_expense_input(turn, pending)
            return
        if isinstance(pending, AwaitingMarkAsFixedConfirm):
            if self._mark_as_fixed(turn, pending):
                return

        await self._classify(turn)

    async def _classify(self, turn: Turn) -> None:
        user = turn.user
        request = ClassificationRequest(
            message=turn.message,
            expense_categories=self.repos.categories.names("expense"),
            income_categories=self.repos.categories.names("income"),
            monthly_income=user.monthly_income,
            savings_goal=user.savings_goal,
        )
        intent = await self.classifier.classify(request)
        logger.info("User #{} → {}", user.id, intent.type.value)
        await self.handlers.dispatch(turn, intent)

    # ── Pending actions ──────────────────────────────────────────────

    async def _bulk_reminder(self, turn: Turn, pending: AwaitingBulkReminderResponse) -> None:
        user = turn.user
        choice = parsing.bulk_reminder_choice(turn.message)
        if choice is None:
            turn.reply(
                "🤔 Responde con una opción:\n\n"
                "1️⃣ Registrar todos\n2️⃣ Ajustar montos\n3️⃣ Omitir este mes"
            )
            return

        self.repos.users.clear_pending(user)
        if choice == "register_all":
            result = self.fixed_expenses.register_all(user, pending.fixed_expense_ids)
            lines = []
            if result.created:
                total = self.repos.transactions.total(result.created)
                lines.append(
                    f"✅ Registré {len(result.created)} gastos fijos por {format_clp(total)}."
                )
            if result.skipped:
                names = ", ".join(fixed.description for fixed in result.skipped)
                lines.append(f"👍 Ya estaban registrados este mes: {names}.")
            turn.reply("\n".join(lines) or "🤔 No había gastos fijos activos para registrar.")
            await self.handlers.run_alerts(turn, result.created)
        elif choice == "adjust":
            turn.reply(
                "✏️ Ok, envíame cada gasto con su monto real.\n"
                'Por ejemplo: "Pagué arriendo 460 lucas".'
            )
        else:
            turn.reply("👍 Ok, no registro tus gastos fijos este mes.")

    def _account_deletion(self, turn: Turn) -> None:
        user = turn.user
        if parsing.is_account_deletion_confirmation(turn.message):
            self.repos.delete_user(user)
            logger.info("User #{} ({}) deleted their account", user.id, user.phone)
            turn.reply(
                "🗑️ Tu cuenta y todos tus registros fueron eliminados.\n"
                "Si vuelves a escribirme, empezaremos de cero. ¡Hasta pronto! 👋"
            )
        elif parsing.is_cancel(turn.message) or parsing.is_negative(turn.message):
            self.repos.users.clear_pending(user)
            turn.reply("👍 Cancelado, tu cuenta sigue activa.")
        else:
            turn.reply(messages.account_deletion_prompt())

    async def _transaction_edit(self, turn: Turn, pending: AwaitingTransactionEdit) -> None:
        user = turn.user
        tx = self.repos.transactions.get(pending.transaction_id)
        if tx is None or tx.user_id != user.id:
            self.repos.users.clear_pending(user)
            turn.reply("🤔 Ya no encuentro ese movimiento.")
            return

        text = turn.message
        if parsing.is_cancel(text):
            self.repos.users.clear_pending(user)
            turn.reply("👍 Edición cancelada.")
            return
        if parsing.is_delete(text):
            self.ledger.delete(tx)
            self.repos.users.clear_pending(user)
            turn.reply(f"🗑️ Eliminé {tx.description or 'el movimiento'} ({format_clp(tx.amount)}).")
            return

        description = parsing.extract_description(text)
        if description:
            updated = self.ledger.edit(tx, description=description)
            self.repos.users.clear_pending(user)
            turn.reply(f"✏️ Descripción actualizada: {updated.description}")
            return

        amount = parsing.extract_amount(text)
        if amount is not None and amount > 0:
            updated = self.ledger.edit(tx, amount=amount)
            self.repos.users.clear_pending(user)
            turn.reply(
                f"✏️ Actualizado: {updated.description or 'Sin descripción'} "
                f"{format_clp(updated.amount)}"
            )
            await self.handlers.run_alerts(turn, [updated])
            return

        turn.reply(messages.transaction_edit_prompt(tx))

    def _fixed_expense_input(
        self, turn: Turn, pending: AwaitingReminderDay | AwaitingFixedExpenseEdit
    ) -> None:
        user = turn.user
        fixed = self.fixed_expenses.get_owned(user, pending.fixed_expense_id)
        if fixed is None:
            self.repos.users.clear_pending(user)
            turn.reply("🤔 Ya no encuentro ese gasto fijo.")
            return

        editing = isinstance(pending, AwaitingFixedExpenseEdit)
        text = turn.message
        if parsing.is_cancel(text):
            self.repos.users.clear_pending(user)
            if editing:
                turn.reply("👍 Edición cancelada.")
            else:
                turn.reply(f"👍 Ok, {fixed.description} queda sin recordatorio.")
            return
        if parsing.is_remove_reminder(text):
            updated = self.fixed_expenses.update(fixed, remove_reminder=True)
            self.repos.users.clear_pending(user)
            turn.reply(f"🔕 {updated.description} quedó sin recordatorio.")
            return

        amount, day = parsing.split_amount_and_day(text)
        if day is None:
            day = parsing.extract_day(text)
        if day is not None:
            if amount is not None and amount <= 0:
                amount = None
            updated = self.fixed_expenses.update(fixed, amount=amount, reminder_day=day)
            self.repos.users.clear_pending(user)
            if editing:
                turn.reply(fixed_expense_updated(updated))
            else:
                turn.reply(
                    f"📅 Listo, te recordaré pagar {updated.description} el día {day} de cada mes."
                )
            return

        if parsing.has_day_reference(text):
            turn.reply("🤔 El día debe estar entre 1 y 31.\n\n" + self._fixed_prompt(fixed, editing))
            return

        if editing:
            amount = parsing.extract_amount(text)
            if amount is not None and amount > 0:
                updated = self.fixed_expenses.update(fixed, amount=amount)
                self.repos.users.clear_pending(user)
                turn.reply(fixed_expense_updated(updated))
                return

        turn.reply(self._fixed_prompt(fixed, editing))

    @staticmethod
    def _fixed_prompt(fixed, editing: bool) -> str:
        if editing:
            return messages.fixed_expense_edit_prompt(fixed)
        return messages.reminder_day_prompt(fixed)

    def _mark_as_fixed(self, turn: Turn, pending: AwaitingMarkAsFixedConfirm) -> bool:
        """True when the reply confirmed the suggestion.

        Any other reply, a plain "no" included, declines it and is then
        classified like a fresh message. An explicit "no" also gets an
        acknowledgment after the classified reply.
        """
        user = turn.user
        tx = self.repos.transactions.get(pending.transaction_id)
        if tx is None or tx.user_id != user.id:
            self.repos.users.clear_pending(user)
            return False

        if parsing.is_affirmative(turn.message):
            fixed, status = self.fixed_expenses.mark_transaction_as_fixed(user, tx)
            self.handlers.confirm_fixed(turn, fixed, status)
            return True

        self.fixed_expenses.reject_suggestion(user, tx)
        self.repos.users.clear_pending(user)
        if parsing.is_negative(turn.message):
            turn.notify("👍 Entendido, no te lo volveré a sugerir.")
        return False
