import re
from decimal import Decimal

from loguru import logger

from app.bot.messages import SEPARATOR, format_clp
from app.bot.parsing import extract_amount
from app.bot.turn import Turn
from app.db.repository import UserRepository
from app.models.schemas import OnboardingStep

MIN_MONTHLY_INCOME = Decimal(50_000)
MAX_SAVINGS_RATIO = Decimal("0.8")
MAX_NAME_LENGTH = 40

_NAME_PREFIX = re.compile(r"^(?:hola[,!.\s]*)?(?:me llamo|mi nombre es|soy)\s+", re.IGNORECASE)


def clean_name(text: str) -> str | None:
    name = _NAME_PREFIX.sub("", text.strip()).strip(" .,!¡")
    if not name or len(name) > MAX_NAME_LENGTH:
        return None
    if not any(ch.isalpha() for ch in name):
        return None
    return " ".join(part.capitalize() for part in name.split())


class Onboarding:
    """name → income → savings goal. Invalid input re-prompts without advancing."""

    def __init__(self, users: UserRepository):
        self.users = users

    def handle(self, turn: Turn) -> None:
        step = turn.user.onboarding_step
        if step == OnboardingStep.AWAITING_NAME:
            self._welcome(turn)
        elif step == OnboardingStep.AWAITING_NAME_RESPONSE:
            self._name(turn)
        elif step == OnboardingStep.AWAITING_INCOME:
            self._income(turn)
        elif step == OnboardingStep.AWAITING_SAVINGS_GOAL:
            self._savings_goal(turn)

    def _advance(self, turn: Turn, step: OnboardingStep) -> None:
        turn.user.onboarding_step = step
        self.users.save(turn.user)
        logger.info("User #{} onboarding → {}", turn.user.id, step.value)

    def _welcome(self, turn: Turn) -> None:
        self._advance(turn, OnboardingStep.AWAITING_NAME_RESPONSE)
        turn.reply(
            "👋 ¡Hola! Bienvenido a Ordénate, tu asesor financiero por chat.\n\n"
            "Para empezar, ¿cómo te llamas?"
        )

    def _name(self, turn: Turn) -> None:
        name = clean_name(turn.message)
        if name is None:
            turn.reply("🤔 No entendí tu nombre. ¿Cómo te gustaría que te llame?")
            return
        turn.user.name = name
        self._advance(turn, OnboardingStep.AWAITING_INCOME)
        turn.reply(
            f"¡Un gusto, {name}! 😊\n\n"
            "💰 ¿Cuál es tu ingreso mensual aproximado?\n"
            '(Puedes responder en miles, ej: "800 lucas" o "$800000")'
        )

    def _income(self, turn: Turn) -> None:
        amount = extract_amount(turn.message)
        if amount is None or amount < MIN_MONTHLY_INCOME:
            turn.reply(
                "🤔 No detecté un monto válido.\n\n"
                'Por favor indícame tu ingreso mensual.\nEj: "800000" o "800 lucas"'
            )
            return
        turn.user.monthly_income = amount
        self._advance(turn, OnboardingStep.AWAITING_SAVINGS_GOAL)
        turn.reply(
            f"✅ Perfecto, ingreso mensual: {format_clp(amount)}\n\n"
            "🎯 ¿Cuánto te gustaría ahorrar al mes?\n\n"
            "Tip: se recomienda ahorrar al menos el 10-20% de tus ingresos.\n"
            f"(En tu caso, entre {format_clp(amount * Decimal('0.1'))} "
            f"y {format_clp(amount * Decimal('0.2'))})"
        )

    def _savings_goal(self, turn: Turn) -> None:
        amount = extract_amount(turn.message)
        if amount is None or amount <= 0:
            turn.reply(
                "🤔 No detecté un monto válido.\n\n"
                'Por favor indícame cuánto quieres ahorrar al mes.\nEj: "100000" o "100 lucas"'
            )
            return

        income = turn.user.monthly_income or Decimal(0)
        if amount > income * MAX_SAVINGS_RATIO:
            turn.reply(
                f"⚠️ Tu meta de ahorro ({format_clp(amount)}) es muy alta comparada con "
                f"tu ingreso ({format_clp(income)}).\n\n"
                "Te sugiero una meta más realista (máximo 80% del ingreso).\n\n"
                "¿Cuál será tu meta de ahorro mensual?"
            )
            return

        turn.user.savings_goal = amount
        self._advance(turn, OnboardingStep.COMPLETE)
        share = amount / income * 100
        turn.reply(
            "🎉 ¡Listo! Tu perfil financiero está configurado:\n\n"
            f"💰 Ingreso mensual: {format_clp(income)}\n"
            f"🎯 Meta de ahorro: {format_clp(amount)} ({share:.0f}%)\n"
            f"💸 Presupuesto para gastos: {format_clp(income - amount)}\n\n"
            f"{SEPARATOR}\n\n"
            "Ahora puedes registrar gastos como \"Gasté 5000 en almuerzo\" "
            "o preguntarme \"¿Cuánto gasté esta semana?\". ¡Comienza registrando tu primer gasto! 🚀"
        )
