from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable

from loguru import logger

from app.bot import messages
from app.db.repository import Repositories
from app.messaging.messenger import Messenger
from app.models.pending import AwaitingBulkReminderResponse
from app.services.fixed_expenses import FixedExpenseManager
from app.services.locks import UserLocks
from app.services.periods import reminder_days_for


@dataclass
class ReminderRunResult:
    day: date
    notified: int = 0
    errors: int = 0


class ReminderJob:
    """Monthly fixed-expense reminders, triggered from outside (cron or admin)."""

    def __init__(
        self,
        repos: Repositories,
        fixed_expenses: FixedExpenseManager,
        messenger: Messenger,
        locks: UserLocks,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.repos = repos
        self.fixed_expenses = fixed_expenses
        self.messenger = messenger
        self.locks = locks
        self.now = now

    async def run(self, today: date | None = None) -> ReminderRunResult:
        today = today or self.now().date()
        result = ReminderRunResult(day=today)
        due = self.fixed_expenses.due(reminder_days_for(today))
        logger.info("Reminder run for {}: {} users with fixed expenses due", today, len(due))

        for user_id, items in due.items():
            try:
                if await self._notify(user_id, items):
                    result.notified += 1
                else:
                    result.errors += 1
            except Exception:
                logger.exception("Reminder for user #{} failed", user_id)
                result.errors += 1

        logger.info(
            "Reminder run for {} done: {} notified, {} errors", today, result.notified, result.errors
        )
        return result

    async def _notify(self, user_id: int, items) -> bool:
        user = self.repos.users.get(user_id)
        if user is None:
            logger.warning("Fixed expenses due for missing user #{}", user_id)
            return False

        async with self.locks.for_user(user.phone):
            # Re-read under the lock; the user may have changed since the query
            user = self.repos.users.get(user_id)
            if user is None:
                return False
            self.repos.users.set_pending(
                user, AwaitingBulkReminderResponse(fixed_expense_ids=[f.id for f in items])
            )

        rows = [
            (fixed, self.repos.categories.get(fixed.category_id) if fixed.category_id else None)
            for fixed in items
        ]
        return await self.messenger.send(user.phone, messages.bulk_reminder(rows))
