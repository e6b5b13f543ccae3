from datetime import date, datetime
from typing import Callable

from loguru import logger

from app.bot.turn import Turn
from app.db.repository import Repositories
from app.services.reminders import ReminderJob

COMMANDS = {"/stats", "/reminders", "/user"}


def is_command(text: str) -> bool:
    parts = text.split()
    return bool(parts) and parts[0].lower() in COMMANDS


class AdminCommands:
    """Slash commands accepted only from the operator's phone."""

    def __init__(
        self,
        repos: Repositories,
        reminders: ReminderJob,
        admin_phone: str,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.repos = repos
        self.reminders = reminders
        self.admin_phone = admin_phone
        self.now = now

    def is_admin(self, phone: str) -> bool:
        return bool(self.admin_phone) and phone == self.admin_phone

    async def handle(self, turn: Turn) -> bool:
        """Run the command in ``turn``; False when it is not an admin command."""
        if not is_command(turn.message):
            return False
        parts = turn.message.split()
        command, args = parts[0].lower(), parts[1:]
        logger.info("Admin command {} {}", command, args)

        if command == "/stats":
            users = self.repos.users.all()
            complete = sum(1 for u in users if u.onboarding_complete)
            turn.reply(
                "📊 Stats\n\n"
                f"Usuarios: {len(users)}\n"
                f"Onboarding completo: {complete}\n"
                f"Transacciones: {self.repos.transactions.count()}\n"
                f"Gastos fijos: {self.repos.fixed_expenses.count()}"
            )
            return True

        if command == "/reminders":
            today = self.now().date()
            if args:
                try:
                    today = date(today.year, today.month, int(args[0]))
                except ValueError:
                    turn.reply("Uso: /reminders [día]")
                    return True
            result = await self.reminders.run(today)
            turn.reply(
                f"📅 Recordatorios del día {result.day:%d/%m}: "
                f"{result.notified} usuarios notificados, {result.errors} errores"
            )
            return True

        if command == "/user":
            if not args:
                turn.reply("Uso: /user <teléfono>")
                return True
            user = self.repos.users.get_by_phone(args[0])
            if user is None:
                turn.reply(f"No existe el usuario {args[0]}")
                return True
            turn.reply(
                f"👤 {user.name or 'Sin nombre'} ({user.phone})\n"
                f"Onboarding: {user.onboarding_step.value}\n"
                f"Plan: {user.plan}\n"
                f"Acción pendiente: {user.pending_action.kind}"
            )
            return True

        return False
