"""Fakes and builders shared by the test modules."""

import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal

from app.config import Settings
from app.db.repository import connect
from app.deps import Services, build_services
from app.models.intents import Intent, IntentType
from app.models.schemas import OnboardingStep, Transaction, User

ADMIN_PHONE = "+56900000000"
CRON_SECRET = "s3cret"
TWILIO_TOKEN = "twilio-token"


class Clock:
    def __init__(self, current: datetime):
        self.current = current

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class FakeClassifier:
    def __init__(self):
        self.intents: list[Intent] = []
        self.requests = []
        self.error: Exception | None = None
        self.delay = 0.0

    def queue(self, type: IntentType, **data) -> None:
        self.intents.append(Intent(type=type, data=data))

    async def classify(self, request) -> Intent:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.intents:
            return self.intents.pop(0)
        return Intent.fallback()


class FakeAdvisor:
    def __init__(self, tip: str | None = "Cocina en casa esta semana.", answer: str | None = "Sí, pero ahorra antes."):
        self.tip = tip
        self.answer_text = answer
        self.questions: list[str] = []

    async def alert_tip(self, snapshot) -> str | None:
        return self.tip

    async def answer(self, question, snapshot, budgets) -> str | None:
        self.questions.append(question)
        return self.answer_text


class FakeMessenger:
    def __init__(self, fail: bool = False):
        self.sent: list[tuple[str, str]] = []
        self.fail = fail
        self.closed = False

    async def send(self, to: str, body: str) -> bool:
        if self.fail:
            return False
        self.sent.append((to, body))
        return True

    async def close(self) -> None:
        self.closed = True


def make_settings(**overrides) -> Settings:
    values = dict(
        admin_phone=ADMIN_PHONE,
        cron_secret=CRON_SECRET,
        twilio_auth_token=TWILIO_TOKEN,
        suggestion_delay_seconds=0,
        upsell_delay_seconds=0,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_services(
    now: datetime = datetime(2026, 3, 18, 12, 0),
    advisor: FakeAdvisor | None = None,
    messenger: FakeMessenger | None = None,
    db=None,
    **settings,
) -> tuple[Services, Clock, FakeClassifier]:
    clock = Clock(now)
    classifier = FakeClassifier()
    services = build_services(
        make_settings(**settings),
        messenger=messenger or FakeMessenger(),
        classifier=classifier,
        advisor=advisor or FakeAdvisor(),
        db=db if db is not None else connect(":memory:"),
        now=clock,
    )
    return services, clock, classifier


def onboarded_user(
    services: Services, phone: str = "+56911111111", income: int = 800_000, goal: int = 100_000
) -> User:
    user, _ = services.repos.users.get_or_create(phone)
    user.name = "Ana"
    user.onboarding_step = OnboardingStep.COMPLETE
    user.monthly_income = Decimal(income)
    user.savings_goal = Decimal(goal)
    return services.repos.users.save(user)


def add_transaction(
    services: Services,
    user: User,
    amount: int,
    on: date,
    category: str | None = None,
    is_income: bool = False,
    description: str = "",
) -> Transaction:
    """Insert a transaction on an arbitrary date, bypassing the clock."""
    resolved = services.ledger.resolve_category(category, is_income)
    return services.repos.transactions.add(
        Transaction(
            user_id=user.id,
            amount=Decimal(amount),
            category_id=resolved.id,
            description=description,
            date=on,
            is_income=is_income,
            created_at=datetime.combine(on, datetime.min.time()),
        )
    )
