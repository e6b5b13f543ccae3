import asyncio
import unittest
from datetime import date
from decimal import Decimal

from app.bot import messages
from app.models.intents import IntentType
from app.models.pending import (
    AwaitingFixedExpenseEdit,
    AwaitingMarkAsFixedConfirm,
    AwaitingReminderDay,
    AwaitingTransactionEdit,
    NoPendingAction,
)
from app.models.schemas import OnboardingStep
from tests.helpers import ADMIN_PHONE, FakeMessenger, add_transaction, make_services, onboarded_user

PHONE = "+56911111111"


class RouterTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.messenger = FakeMessenger()
        self.services, self.clock, self.classifier = make_services(messenger=self.messenger)
        self.repos = self.services.repos

    async def send(self, text: str, phone: str = PHONE) -> list[str]:
        outbox = await self.services.router.handle(phone, text)
        return [message.body for message in outbox]

    def reload(self, phone: str = PHONE):
        return self.repos.users.get_by_phone(phone)


class TestOnboarding(RouterTestCase):
    async def test_full_onboarding_with_re_prompts(self):
        self.assertIn("¿cómo te llamas?", (await self.send("hola"))[0])
        self.assertIn("¡Un gusto, Ana María!", (await self.send("me llamo ana maría"))[0])

        self.assertIn("No detecté un monto válido", (await self.send("no sé"))[0])
        self.assertIn("No detecté un monto válido", (await self.send("30 lucas"))[0])
        self.assertIn("$800.000", (await self.send("800 lucas"))[0])

        self.assertIn("muy alta", (await self.send("700 lucas"))[0])
        self.assertEqual(self.reload().onboarding_step, OnboardingStep.AWAITING_SAVINGS_GOAL)

        done = (await self.send("100 lucas"))[0]
        self.assertIn("Presupuesto para gastos: $700.000", done)

        user = self.reload()
        self.assertTrue(user.onboarding_complete)
        self.assertEqual((user.monthly_income, user.savings_goal), (Decimal(800_000), Decimal(100_000)))
        self.assertEqual(self.classifier.requests, [])

    async def test_non_admin_slash_command_goes_to_onboarding(self):
        self.assertIn("¿cómo te llamas?", (await self.send("/stats"))[0])


class TestTransactions(RouterTestCase):
    def setUp(self):
        super().setUp()
        self.user = onboarded_user(self.services, PHONE)

    async def test_transaction_triggers_one_health_alert_per_day(self):
        self.classifier.queue(IntentType.TRANSACTION, amount=560_000, category="comida", description="supermercado")
        bodies = await self.send("gasté 560 lucas en el super")
        self.assertIn("Gasto registrado", bodies[0])
        self.assertEqual(sum("Alerta Financiera" in body for body in bodies), 1)
        self.assertEqual(len(bodies), 2)

        self.classifier.queue(IntentType.TRANSACTION, amount=1000, category="comida", description="cafe")
        self.assertEqual(len(await self.send("un café de 1000")), 1)

    async def test_budget_warning_follows_the_reply(self):
        self.classifier.queue(IntentType.BUDGET, category="comida", amount=100_000)
        self.assertIn("Presupuesto configurado", (await self.send("máximo 100 lucas en comida"))[0])

        self.classifier.queue(IntentType.TRANSACTION, amount=85_000, category="comida", description="super")
        bodies = await self.send("85 lucas en el super")
        self.assertEqual(len(bodies), 2)
        self.assertIn("85%", bodies[1])

    async def test_classifier_failure_replies_try_again(self):
        self.classifier.error = RuntimeError("boom")
        self.assertEqual(await self.send("gasté 5000"), [messages.TRY_AGAIN])

    async def test_missing_default_category_asks_to_contact_support(self):
        otros = self.repos.categories.find("otros", "expense")
        self.repos.categories.update(otros.id, is_active=False)
        self.classifier.queue(IntentType.TRANSACTION, amount=1000, category="mascotas")
        self.assertEqual(await self.send("1000 en la mascota"), [messages.CONTACT_SUPPORT])
        self.assertEqual(self.repos.transactions.count(), 0)

    async def test_invalid_payload_is_not_understood(self):
        self.classifier.queue(IntentType.EDIT_FIXED_EXPENSE, index=1, reminder_day=40)
        self.assertIn("No pude entender bien los datos", (await self.send("cambia el día al 40"))[0])

    async def test_edit_last_without_fields_waits_for_input(self):
        self.services.ledger.record(
            self.user, Decimal(5000), self.services.ledger.resolve_category("comida", False), "almuerzo"
        )
        self.classifier.queue(IntentType.EDIT_LAST_TRANSACTION)
        self.assertIn("Editando *almuerzo*", (await self.send("quiero editar el último"))[0])
        self.assertIsInstance(self.reload().pending_action, AwaitingTransactionEdit)

        self.assertIn("Editando *almuerzo*", (await self.send("hmm"))[0])
        self.assertIn("$4.500", (await self.send("4500"))[0])
        self.assertIsInstance(self.reload().pending_action, NoPendingAction)
        self.assertEqual(len(self.classifier.requests), 1)

    async def test_position_outside_shown_list(self):
        self.services.ledger.record(
            self.user, Decimal(5000), self.services.ledger.resolve_category("comida", False), "almuerzo"
        )
        self.classifier.queue(IntentType.QUERY, period="month", detail=True)
        detail = (await self.send("detalle de este mes"))[0]
        self.assertIn("1. almuerzo: $5.000", detail)

        self.classifier.queue(IntentType.EDIT_TRANSACTION_BY_INDEX, index=3, amount=100)
        self.assertIn("No encontré el movimiento número 3", (await self.send("cambia el 3 a 100"))[0])

    async def test_help_greets_by_name(self):
        self.classifier.queue(IntentType.HELP)
        self.assertTrue((await self.send("ayuda"))[0].startswith("👋 ¡Hola, Ana!"))


class TestFixedExpenseSuggestion(RouterTestCase):
    def setUp(self):
        super().setUp()
        self.user = onboarded_user(self.services, PHONE)

    async def _netflix(self) -> list[str]:
        self.classifier.queue(
            IntentType.TRANSACTION, amount=9000, category="entretenimiento", description="Netflix"
        )
        return await self.send("pagué netflix 9 lucas")

    async def test_accepting_suggestion_then_choosing_a_day(self):
        bodies = await self._netflix()
        self.assertIn("gasto fijo", bodies[-1])
        self.assertIsInstance(self.reload().pending_action, AwaitingMarkAsFixedConfirm)

        self.assertIn("Guardé *Netflix*", (await self.send("sí"))[0])
        self.assertIsInstance(self.reload().pending_action, AwaitingReminderDay)

        self.assertIn("El día debe estar entre 1 y 31", (await self.send("el 40"))[0])
        self.assertIn("el día 5", (await self.send("el 5"))[0])

        fixed = self.services.fixed_expenses.listing(self.user)
        self.assertEqual([(f.description, f.reminder_day) for f in fixed], [("Netflix", 5)])
        tx = self.repos.transactions.for_user(self.user.id)[0]
        self.assertEqual((tx.expense_type, tx.fixed_expense_id), ("fixed", fixed[0].id))

    async def test_unrelated_message_declines_and_is_classified(self):
        await self._netflix()
        self.classifier.queue(IntentType.QUERY, period="month")
        bodies = await self.send("cuánto gasté este mes")

        self.assertIn("Resumen este mes", bodies[0])
        self.assertEqual(bodies[-1], messages.PREMIUM_UPSELL)
        self.assertEqual(len(self.classifier.requests), 2)

        stored = self.repos.fixed_expenses.for_user(self.user.id, include_rejected=True)
        self.assertEqual([f.state for f in stored], ["rejected"])
        self.assertEqual(self.services.fixed_expenses.listing(self.user), [])

    async def test_plain_no_declines_and_is_classified(self):
        await self._netflix()
        bodies = await self.send("no")
        self.assertEqual(bodies, [messages.NOT_UNDERSTOOD, "👍 Entendido, no te lo volveré a sugerir."])
        self.assertEqual(len(self.classifier.requests), 2)
        self.assertEqual(self.classifier.requests[-1].message, "no")
        self.assertIsInstance(self.reload().pending_action, NoPendingAction)

        stored = self.repos.fixed_expenses.for_user(self.user.id, include_rejected=True)
        self.assertEqual([f.state for f in stored], ["rejected"])

        # Same description again: no new suggestion
        bodies = await self._netflix()
        self.assertEqual(len(bodies), 1)


class TestBulkReminder(RouterTestCase):
    def setUp(self):
        super().setUp()
        self.user = onboarded_user(self.services, PHONE)
        hogar = self.services.ledger.resolve_category("hogar", False)
        self.services.fixed_expenses.create(self.user, "Arriendo", Decimal(450_000), hogar, 18)

    async def test_register_all_once_per_month(self):
        result = await self.services.reminders.run()
        self.assertEqual((result.notified, result.errors), (1, 0))
        self.assertIn("Arriendo", self.messenger.sent[0][1])

        self.assertIn("Responde con una opción", (await self.send("quizás"))[0])
        self.assertIn("Registré 1 gastos fijos por $450.000", (await self.send("1"))[0])

        await self.services.reminders.run()
        self.assertIn("Ya estaban registrados este mes: Arriendo", (await self.send("1"))[0])
        self.assertEqual(self.repos.transactions.count(), 1)

    async def test_skip_clears_pending(self):
        await self.services.reminders.run()
        self.assertIn("no registro", (await self.send("omitir"))[0])
        self.assertIsInstance(self.reload().pending_action, NoPendingAction)
        self.assertEqual(self.repos.transactions.count(), 0)

    async def test_admin_can_trigger_a_day(self):
        bodies = await self.send("/reminders 18", phone=ADMIN_PHONE)
        self.assertIn("1 usuarios notificados", bodies[0])
        self.assertEqual(len(self.messenger.sent), 1)

        stats = (await self.send("/stats", phone=ADMIN_PHONE))[0]
        self.assertIn("Gastos fijos: 1", stats)
        self.assertEqual(self.classifier.requests, [])


class TestIncomeAndAccount(RouterTestCase):
    async def test_income_update_prompt_and_acceptance(self):
        user = onboarded_user(self.services, PHONE, income=500_000, goal=50_000)
        for month in (date(2025, 12, 1), date(2026, 1, 1), date(2026, 2, 1)):
            add_transaction(self.services, user, 650_000, month, "sueldo", is_income=True)

        self.classifier.queue(
            IntentType.TRANSACTION, amount=650_000, category="sueldo", description="sueldo marzo", is_income=True
        )
        bodies = await self.send("me pagaron el sueldo, 650 lucas")
        self.assertIn("Ingreso registrado", bodies[0])
        self.assertIn("¿Quieres actualizar tu ingreso mensual?", bodies[-1])

        self.assertIn("$650.000", (await self.send("sí"))[0])
        self.assertEqual(self.reload().monthly_income, Decimal(650_000))
        self.assertEqual(len(self.classifier.requests), 1)

    async def test_account_deletion_needs_exact_token(self):
        onboarded_user(self.services, PHONE)
        self.classifier.queue(IntentType.DELETE_ACCOUNT)
        self.assertIn("Escribe ELIMINAR", (await self.send("borra mi cuenta"))[0])
        self.assertIn("Escribe ELIMINAR", (await self.send("eliminar"))[0])
        self.assertIsNotNone(self.reload())

        self.assertIn("fueron eliminados", (await self.send("ELIMINAR"))[0])
        self.assertIsNone(self.reload())

        self.assertIn("¿cómo te llamas?", (await self.send("hola"))[0])

    async def test_account_deletion_can_be_cancelled(self):
        onboarded_user(self.services, PHONE)
        self.classifier.queue(IntentType.DELETE_ACCOUNT)
        await self.send("borra mi cuenta")
        self.assertIn("sigue activa", (await self.send("cancelar"))[0])
        self.assertIsInstance(self.reload().pending_action, NoPendingAction)


class TestPendingEdits(RouterTestCase):
    def setUp(self):
        super().setUp()
        self.user = onboarded_user(self.services, PHONE)

    async def _edit_internet(self) -> list[str]:
        self.classifier.queue(IntentType.EDIT_FIXED_EXPENSE, index=1)
        return await self.send("quiero editar internet")

    def _internet(self):
        return self.services.fixed_expenses.listing(self.user)[0]

    async def test_fixed_expense_edit_replies(self):
        servicios = self.services.ledger.resolve_category("servicios", False)
        self.services.fixed_expenses.create(self.user, "Internet", Decimal(25_000), servicios, 3)

        self.assertIn("Editando *Internet*", (await self._edit_internet())[0])
        self.assertIsInstance(self.reload().pending_action, AwaitingFixedExpenseEdit)

        bodies = await self.send("el 40")
        self.assertIn("El día debe estar entre 1 y 31", bodies[0])
        self.assertIn("Editando *Internet*", bodies[0])
        self.assertIsInstance(self.reload().pending_action, AwaitingFixedExpenseEdit)

        bodies = await self.send("50 lucas el 5")
        self.assertEqual(bodies, ["✅ Actualicé *Internet*: $50.000 al mes\n📅 Recordatorio: día 5"])
        self.assertEqual((self._internet().typical_amount, self._internet().reminder_day), (Decimal(50_000), 5))
        self.assertIsInstance(self.reload().pending_action, NoPendingAction)

        await self._edit_internet()
        self.assertEqual(await self.send("sin recordatorio"), ["🔕 Internet quedó sin recordatorio."])
        self.assertIsNone(self._internet().reminder_day)

        await self._edit_internet()
        self.assertEqual(await self.send("cancelar"), ["👍 Edición cancelada."])
        self.assertIsInstance(self.reload().pending_action, NoPendingAction)
        self.assertEqual(self._internet().typical_amount, Decimal(50_000))
        self.assertEqual(len(self.classifier.requests), 3)

    async def _edit_last(self) -> None:
        self.classifier.queue(IntentType.EDIT_LAST_TRANSACTION)
        await self.send("quiero editar el último")
        self.assertIsInstance(self.reload().pending_action, AwaitingTransactionEdit)

    async def test_transaction_edit_replies(self):
        tx = self.services.ledger.record(
            self.user, Decimal(5000), self.services.ledger.resolve_category("comida", False), "almuerzo"
        )

        await self._edit_last()
        self.assertEqual(await self.send("cancelar"), ["👍 Edición cancelada."])
        self.assertIsInstance(self.reload().pending_action, NoPendingAction)

        await self._edit_last()
        bodies = await self.send("descripción: Almuerzo con Pedro")
        self.assertEqual(bodies, ["✏️ Descripción actualizada: Almuerzo con Pedro"])
        self.assertEqual(self.repos.transactions.get(tx.id).description, "Almuerzo con Pedro")

        await self._edit_last()
        self.assertEqual(await self.send("eliminar"), ["🗑️ Eliminé Almuerzo con Pedro ($5.000)."])
        self.assertIsNone(self.repos.transactions.get(tx.id))
        self.assertIsInstance(self.reload().pending_action, NoPendingAction)
        self.assertEqual(len(self.classifier.requests), 3)


class TestSameSenderConcurrency(RouterTestCase):
    async def test_second_message_sees_state_left_by_the_first(self):
        onboarded_user(self.services, PHONE)
        self.classifier.delay = 0.05
        self.classifier.queue(IntentType.DELETE_ACCOUNT)

        first, second = await asyncio.gather(
            self.services.router.handle(PHONE, "borra mi cuenta"),
            self.services.router.handle(PHONE, "ELIMINAR"),
        )
        self.assertIn("Escribe ELIMINAR", first[0].body)
        self.assertIn("fueron eliminados", second[0].body)
        self.assertIsNone(self.reload())
        self.assertEqual(len(self.classifier.requests), 1)
        self.assertEqual(len(self.services.router.locks), 0)
