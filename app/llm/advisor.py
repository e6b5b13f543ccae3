from decimal import Decimal

from loguru import logger
from openai import AsyncOpenAI

from app.bot.messages import format_clp, format_percentage
from app.llm.classifier import OPENROUTER_BASE_URL
from app.llm.prompts import ADVICE_PROMPT, ALERT_TIP_PROMPT
from app.services.alerts import HealthSnapshot, percentage


class FinancialAdvisor:
    """Free-text advice from the LLM. Returns ``None`` whenever generation fails."""

    def __init__(self, api_key: str, model: str, client: AsyncOpenAI | None = None):
        self.client = client or AsyncOpenAI(base_url=OPENROUTER_BASE_URL, api_key=api_key)
        self.model = model

    async def _complete(self, prompt: str, max_tokens: int) -> str | None:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=0.4,
                max_tokens=max_tokens,
            )
            text = (response.choices[0].message.content or "").strip()
        except Exception as e:
            logger.error("Advice generation failed: {}", e)
            return None
        return text or None

    async def alert_tip(self, snapshot: HealthSnapshot) -> str | None:
        top = snapshot.top_category.label if snapshot.top_category else "otros"
        prompt = ALERT_TIP_PROMPT.format(
            income=format_clp(snapshot.income),
            savings_goal=format_clp(snapshot.savings_goal),
            spending_budget=format_clp(snapshot.spending_budget),
            total_spent=format_clp(snapshot.total_spent),
            top_category=top,
            top_amount=format_clp(snapshot.top_amount),
        )
        return await self._complete(prompt, max_tokens=200)

    async def answer(
        self, question: str, snapshot: HealthSnapshot, budgets: list[tuple[str, Decimal, Decimal]]
    ) -> str | None:
        """Answer a user question given this month's numbers.

        ``budgets`` holds (category label, spent, limit) triples.
        """
        categories = "\n".join(
            f"- {category.label if category else 'otros'}: {format_clp(amount)} "
            f"({format_percentage(percentage(amount, snapshot.income))} del ingreso)"
            for category, amount in snapshot.by_category
        ) or "- Sin gastos registrados"
        budget_lines = "\n".join(
            f"- {label}: {format_clp(spent)} de {format_clp(limit)} "
            f"({format_percentage(percentage(spent, limit))})"
            for label, spent, limit in budgets
        ) or "- Sin presupuestos"

        prompt = ADVICE_PROMPT.format(
            question=question,
            income=format_clp(snapshot.income),
            savings_goal=format_clp(snapshot.savings_goal),
            spending_budget=format_clp(snapshot.spending_budget),
            day=snapshot.day_of_month,
            days_in_month=snapshot.days_in_month,
            total_spent=format_clp(snapshot.total_spent),
            used=format_percentage(snapshot.percentage_used),
            projected_total=format_clp(snapshot.projected_total),
            projected_savings=format_clp(snapshot.projected_savings),
            categories=categories,
            budgets=budget_lines,
        )
        return await self._complete(prompt, max_tokens=400)
