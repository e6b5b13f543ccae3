from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Protocol

from loguru import logger

from app.bot.messages import format_clp, format_percentage
from app.db.repository import Repositories
from app.models.schemas import Category, User
from app.services.income import IncomeEstimator
from app.services.periods import days_in_month, month_bounds

BUDGET_WARNING_PERCENT = 80
BUDGET_EXCEEDED_PERCENT = 100
HIGH_SPENDING_PERCENT = 70
SAVINGS_RISK_RATIO = Decimal("0.8")
CATEGORY_SHARE_PERCENT = 30
FINANCIAL_HEALTH = "financial_health"


def percentage(part: Decimal, whole: Decimal) -> float:
    """part / whole * 100, or 0 when the denominator is not positive."""
    if whole is None or whole <= 0:
        return 0.0
    return float(part / whole * 100)


@dataclass
class BudgetAlert:
    category: Category
    spent: Decimal
    limit: Decimal
    percentage: float

    @property
    def exceeded(self) -> bool:
        return self.percentage >= BUDGET_EXCEEDED_PERCENT

    def text(self) -> str:
        if self.exceeded:
            return (
                f"🚨 ¡Alerta! Superaste tu presupuesto de {self.category.label}:\n\n"
                f"Gastado: {format_clp(self.spent)}\nPresupuesto: {format_clp(self.limit)}"
            )
        return (
            f"⚠️ Atención: llevas {format_percentage(self.percentage)} "
            f"de tu presupuesto en {self.category.label}"
        )


@dataclass
class HealthSnapshot:
    income: Decimal
    savings_goal: Decimal
    total_spent: Decimal
    day_of_month: int
    days_in_month: int
    by_category: list[tuple[Category | None, Decimal]]

    @property
    def spending_budget(self) -> Decimal:
        return self.income - self.savings_goal

    @property
    def percentage_used(self) -> float:
        return percentage(self.total_spent, self.spending_budget)

    @property
    def projected_total(self) -> Decimal:
        if self.total_spent <= 0:
            return Decimal(0)
        return self.total_spent / self.day_of_month * self.days_in_month

    @property
    def projected_savings(self) -> Decimal:
        return self.income - self.projected_total

    @property
    def top_category(self) -> Category | None:
        return self.by_category[0][0] if self.by_category else None

    @property
    def top_amount(self) -> Decimal:
        return self.by_category[0][1] if self.by_category else Decimal(0)

    @property
    def top_percentage(self) -> float:
        return percentage(self.top_amount, self.income)


@dataclass
class HealthAlert:
    kind: str  # high_spending | savings_risk | category_high
    snapshot: HealthSnapshot
    text: str = ""


class Advisor(Protocol):
    async def alert_tip(self, snapshot: HealthSnapshot) -> str | None: ...


class AlertEngine:
    def __init__(
        self,
        repos: Repositories,
        income: IncomeEstimator,
        advisor: Advisor,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.repos = repos
        self.income = income
        self.advisor = advisor
        self.now = now

    def _month_expenses(self, user: User, category_id: int | None = None):
        start, end = month_bounds(self.now().date())
        return self.repos.transactions.for_user(
            user.id, start=start, end=end, is_income=False, category_id=category_id
        )

    def check_budget(self, user: User, category: Category) -> BudgetAlert | None:
        """Threshold alert for one budgeted category; fires on every qualifying write."""
        budget = self.repos.budgets.get_for(user.id, category.id)
        if budget is None:
            return None
        spent = self.repos.transactions.total(self._month_expenses(user, category.id))
        used = percentage(spent, budget.monthly_limit)
        if used < BUDGET_WARNING_PERCENT:
            return None
        return BudgetAlert(category=category, spent=spent, limit=budget.monthly_limit, percentage=used)

    def snapshot(self, user: User) -> HealthSnapshot:
        today = self.now().date()
        totals: dict[int, Decimal] = defaultdict(Decimal)
        for tx in self._month_expenses(user):
            totals[tx.category_id] += tx.amount
        ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
        return HealthSnapshot(
            income=self.income.effective_income(user),
            savings_goal=user.savings_goal or Decimal(0),
            total_spent=sum(totals.values(), Decimal(0)),
            day_of_month=today.day,
            days_in_month=days_in_month(today),
            by_category=[(self.repos.categories.get(cid), amount) for cid, amount in ranked],
        )

    def evaluate_health(self, user: User) -> HealthAlert | None:
        """First matching condition in priority order, without dedup."""
        snapshot = self.snapshot(user)
        if snapshot.total_spent <= 0:
            return None

        used = snapshot.percentage_used
        if HIGH_SPENDING_PERCENT < used < 100:
            return HealthAlert("high_spending", snapshot)
        if snapshot.projected_savings < snapshot.savings_goal * SAVINGS_RISK_RATIO:
            return HealthAlert("savings_risk", snapshot)
        if snapshot.top_percentage > CATEGORY_SHARE_PERCENT:
            return HealthAlert("category_high", snapshot)
        return None

    async def check_financial_health(self, user: User) -> HealthAlert | None:
        """At most one composite alert per user per calendar day."""
        if user.monthly_income is None or user.savings_goal is None:
            return None
        today = self.now().date()
        if self.repos.alerts.exists(user.id, FINANCIAL_HEALTH, today):
            return None

        alert = self.evaluate_health(user)
        if alert is None:
            return None

        tip = await self.advisor.alert_tip(alert.snapshot)
        if not tip:
            tip = fallback_tip(alert.snapshot.top_category)
        alert.text = health_alert_text(alert) + f"💡 Consejo:\n{tip}"

        if not self.repos.alerts.record(user.id, FINANCIAL_HEALTH, today):
            return None
        logger.info("Financial health alert '{}' for user #{}", alert.kind, user.id)
        return alert


def fallback_tip(category: Category | None) -> str:
    name = category.label if category else "tus gastos variables"
    return f"Trata de reducir gastos en {name} esta semana para volver al presupuesto."


def health_alert_text(alert: HealthAlert) -> str:
    s = alert.snapshot
    top = s.top_category.label if s.top_category else "otros"
    if alert.kind == "high_spending":
        return (
            "⚠️ Alerta Financiera\n\n"
            f"Llevas gastado {format_clp(s.total_spent)} este mes "
            f"({format_percentage(s.percentage_used)} de tu presupuesto).\n\n"
            f"📊 Presupuesto para gastos: {format_clp(s.spending_budget)}\n"
            f"💰 Te quedan: {format_clp(s.spending_budget - s.total_spent)}\n"
            f"📂 Tu mayor gasto: {top} ({format_clp(s.top_amount)})\n\n"
        )
    if alert.kind == "savings_risk":
        return (
            "🚨 Tu meta de ahorro está en riesgo\n\n"
            "📈 Proyección fin de mes:\n"
            f"Gastos estimados: {format_clp(s.projected_total)}\n"
            f"Ahorro estimado: {format_clp(s.projected_savings)}\n"
            f"Meta de ahorro: {format_clp(s.savings_goal)}\n\n"
        )
    return (
        "💡 Consejo Financiero\n\n"
        f"Noté que gastas mucho en {top}:\n"
        f"{format_clp(s.top_amount)} ({format_percentage(s.top_percentage)} de tu ingreso)\n\n"
        "Se recomienda que ninguna categoría supere el 30% de tus ingresos.\n\n"
    )
