from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable

from loguru import logger

from app.db.repository import Repositories
from app.models.schemas import User
from app.services.periods import add_months, month_bounds

TRAILING_MONTHS = 3
MIN_MONTHS_WITH_INCOME = 2
RELATIVE_DIFFERENCE_THRESHOLD = 0.20
PROMPT_COOLDOWN = timedelta(days=30)
DECLINED_PROMPT_COOLDOWN = timedelta(days=60)
RESPONSE_WINDOW = timedelta(minutes=5)


@dataclass
class IncomeSuggestion:
    declared: Decimal
    average: Decimal
    months: int
    relative_difference: float


def relative_difference(declared: Decimal, average: Decimal) -> float:
    if declared <= 0:
        return 0.0
    return float(abs(average - declared) / declared)


class IncomeEstimator:
    """Effective income and the periodic "update your income?" prompt."""

    def __init__(self, repos: Repositories, now: Callable[[], datetime] = datetime.now):
        self.repos = repos
        self.now = now

    def trailing_incomes(self, user: User) -> list[Decimal]:
        """Income totals of up to three previous calendar months, zero months dropped."""
        this_month = month_bounds(self.now().date())[0]
        totals = []
        for offset in range(1, TRAILING_MONTHS + 1):
            start = add_months(this_month, -offset)
            end = add_months(start, 1)
            total = self.repos.transactions.total(
                self.repos.transactions.for_user(user.id, start=start, end=end, is_income=True)
            )
            if total > 0:
                totals.append(total)
        return totals

    def trailing_average(self, user: User) -> Decimal | None:
        totals = self.trailing_incomes(user)
        if not totals:
            return None
        return sum(totals, Decimal(0)) / len(totals)

    def month_to_date_income(self, user: User) -> Decimal:
        start, end = month_bounds(self.now().date())
        return self.repos.transactions.total(
            self.repos.transactions.for_user(user.id, start=start, end=end, is_income=True)
        )

    def effective_income(self, user: User) -> Decimal:
        """max(declared, trailing average), raised to this month's income so far."""
        effective = user.monthly_income or Decimal(0)
        average = self.trailing_average(user)
        if average is not None and average > effective:
            effective = average
        return max(effective, self.month_to_date_income(user))

    # ── Re-estimation prompt ─────────────────────────────────────────

    def cooldown_elapsed(self, user: User) -> bool:
        """30 days since the last prompt, or 60 since a decline."""
        if user.last_income_update_prompt_at is None:
            return True
        if user.income_update_declined:
            since = user.income_update_answered_at or user.last_income_update_prompt_at
            return self.now() - since >= DECLINED_PROMPT_COOLDOWN
        return self.now() - user.last_income_update_prompt_at >= PROMPT_COOLDOWN

    def awaiting_response(self, user: User) -> bool:
        """A prompt went out in the last five minutes and has not been answered."""
        prompted_at = user.last_income_update_prompt_at
        if prompted_at is None or self.now() - prompted_at > RESPONSE_WINDOW:
            return False
        answered_at = user.income_update_answered_at
        return answered_at is None or answered_at < prompted_at

    def suggestion(self, user: User) -> IncomeSuggestion | None:
        if not user.onboarding_complete or not user.monthly_income:
            return None
        if not self.cooldown_elapsed(user):
            return None
        totals = self.trailing_incomes(user)
        if len(totals) < MIN_MONTHS_WITH_INCOME:
            return None
        average = sum(totals, Decimal(0)) / len(totals)
        difference = relative_difference(user.monthly_income, average)
        if difference < RELATIVE_DIFFERENCE_THRESHOLD:
            return None
        return IncomeSuggestion(
            declared=user.monthly_income,
            average=average.quantize(Decimal(1), rounding=ROUND_HALF_UP),
            months=len(totals),
            relative_difference=difference,
        )

    def mark_prompted(self, user: User) -> None:
        user.last_income_update_prompt_at = self.now()
        self.repos.users.save(user)
        logger.info("Income re-estimation prompt sent to user #{}", user.id)

    def resolve(self, user: User, accepted: bool) -> Decimal | None:
        """Apply the user's answer; returns the new declared income when accepted."""
        user.income_update_answered_at = self.now()
        if not accepted:
            user.income_update_declined = True
            self.repos.users.save(user)
            logger.info("User #{} declined the income update", user.id)
            return None

        average = self.trailing_average(user)
        user.income_update_declined = False
        if average is None:
            self.repos.users.save(user)
            return None
        user.monthly_income = average.quantize(Decimal(1), rounding=ROUND_HALF_UP)
        self.repos.users.save(user)
        logger.info("User #{} income updated to {}", user.id, user.monthly_income)
        return user.monthly_income
