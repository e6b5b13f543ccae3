from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from fastapi import Request
from loguru import logger
from telegram import Bot
from tinydb import TinyDB

from app.bot.admin import AdminCommands
from app.bot.handlers import AdviceGenerator, IntentHandlers
from app.bot.onboarding import Onboarding
from app.bot.router import Classifier, ConversationRouter
from app.config import Settings
from app.db.repository import Repositories, connect
from app.db.seed import DEFAULT_CATEGORIES
from app.llm.advisor import FinancialAdvisor
from app.llm.classifier import IntentClassifier
from app.messaging.messenger import Dispatcher, Messenger, TelegramMessenger, TwilioMessenger
from app.services.alerts import AlertEngine
from app.services.fixed_expenses import FixedExpenseManager
from app.services.income import IncomeEstimator
from app.services.ledger import TransactionLedger
from app.services.locks import UserLocks
from app.services.reminders import ReminderJob
from app.services.reports import Reports


@dataclass
class Services:
    """Everything a request needs, built once at startup and passed around explicitly."""

    settings: Settings
    repos: Repositories
    ledger: TransactionLedger
    fixed_expenses: FixedExpenseManager
    income: IncomeEstimator
    alerts: AlertEngine
    reports: Reports
    reminders: ReminderJob
    router: ConversationRouter
    messenger: Messenger
    dispatcher: Dispatcher

    async def close(self) -> None:
        await self.dispatcher.close()
        self.repos.close()


def build_messenger(settings: Settings) -> Messenger:
    if settings.messaging_provider == "telegram":
        return TelegramMessenger(Bot(settings.telegram_bot_token))
    return TwilioMessenger(
        account_sid=settings.twilio_account_sid,
        auth_token=settings.twilio_auth_token,
        from_number=settings.twilio_whatsapp_number,
        country_code=settings.default_country_code,
    )


def build_services(
    settings: Settings,
    messenger: Messenger | None = None,
    classifier: Classifier | None = None,
    advisor: AdviceGenerator | None = None,
    db: TinyDB | None = None,
    now: Callable[[], datetime] = datetime.now,
) -> Services:
    repos = Repositories(db if db is not None else connect(settings.db_path))
    seeded = repos.categories.seed(DEFAULT_CATEGORIES)
    if seeded:
        logger.info("Seeded {} default categories", seeded)

    messenger = messenger or build_messenger(settings)
    classifier = classifier or IntentClassifier(
        api_key=settings.openrouter_api_key, model=settings.llm_model
    )
    advisor = advisor or FinancialAdvisor(
        api_key=settings.openrouter_api_key, model=settings.llm_model
    )
    locks = UserLocks()

    ledger = TransactionLedger(
        repos,
        default_expense_category=settings.default_expense_category,
        default_income_category=settings.default_income_category,
        now=now,
    )
    fixed_expenses = FixedExpenseManager(repos, ledger, now=now)
    income = IncomeEstimator(repos, now=now)
    alerts = AlertEngine(repos, income, advisor, now=now)
    reports = Reports(repos, ledger, now=now)
    reminders = ReminderJob(repos, fixed_expenses, messenger, locks, now=now)

    handlers = IntentHandlers(
        repos,
        ledger,
        fixed_expenses,
        alerts,
        income,
        reports,
        advisor,
        suggestion_delay_seconds=settings.suggestion_delay_seconds,
        upsell_delay_seconds=settings.upsell_delay_seconds,
    )
    router = ConversationRouter(
        repos,
        classifier,
        handlers,
        Onboarding(repos.users),
        AdminCommands(repos, reminders, settings.admin_phone, now=now),
        ledger,
        fixed_expenses,
        income,
        locks,
    )
    return Services(
        settings=settings,
        repos=repos,
        ledger=ledger,
        fixed_expenses=fixed_expenses,
        income=income,
        alerts=alerts,
        reports=reports,
        reminders=reminders,
        router=router,
        messenger=messenger,
        dispatcher=Dispatcher(messenger),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
