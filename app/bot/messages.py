"""User-facing text. Decisions live in the services; this only renders them."""

from decimal import Decimal
from typing import Sequence

from app.models.schemas import Category, FixedExpense, Transaction

SEPARATOR = "━━━━━━━━━━━━━"

MONTHS = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio", "julio",
    "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]

PERIOD_LABELS = {
    "today": "hoy",
    "yesterday": "ayer",
    "week": "esta semana",
    "month": "este mes",
    "year": "este año",
    "last_week": "la semana pasada",
    "last_month": "el mes pasado",
}

RECORDED_VARIANTS = ["¡Listo!", "¡Anotado!", "¡Registrado!", "Hecho ✅"]

HELP_TEXT = (
    "Puedo ayudarte con:\n\n"
    '💸 "Gasté 5 lucas en almuerzo"\n'
    '📊 "¿Cuánto gasté esta semana?" o "detalle de este mes"\n'
    '✏️ "Cambia el 3 a 4500" o "borra el último"\n'
    '💰 "Quiero gastar máximo 100 lucas en comida"\n'
    '📌 "Arriendo 450 lucas todos los 5" o "mis gastos fijos"\n'
    '💡 "¿Puedo comprarme un auto?"'
)

NOT_UNDERSTOOD = "🤔 No entendí tu mensaje.\n\n" + HELP_TEXT
TRY_AGAIN = "Ups, tuve un problema. ¿Puedes intentar de nuevo? 🔧"
CONTACT_SUPPORT = (
    "⚠️ Tuve un problema con la configuración de categorías. "
    "Por favor contacta a soporte."
)
PREMIUM_UPSELL = (
    "💎 ¿Quieres ver gráficos y análisis detallados?\n\n"
    'Upgrade a Premium por $10/mes\nEscribe "premium" para más info'
)


def pick(variants: Sequence[str], seed: int) -> str:
    """Deterministic choice among reply variants."""
    return variants[seed % len(variants)]


def format_clp(amount: Decimal | float | int) -> str:
    """Format an amount as Chilean pesos: 1234567 -> '$1.234.567'."""
    value = Decimal(str(amount))
    sign = "-" if value < 0 else ""
    rounded = abs(value).quantize(Decimal(1))
    return f"{sign}${int(rounded):,}".replace(",", ".")


def format_percentage(value: float) -> str:
    return f"{value:.0f}%"


def category_label(category: Category | None) -> str:
    if category is None:
        return "Sin categoría"
    return f"{category.emoji} {category.label}"


def transaction_line(index: int, tx: Transaction) -> str:
    description = tx.description or "Sin descripción"
    return f"  {index}. {description}: {format_clp(tx.amount)} ({tx.date:%d/%m})"


def transaction_recorded(tx: Transaction, category: Category, seed: int) -> str:
    kind = "Ingreso" if tx.is_income else "Gasto"
    emoji = "💰" if tx.is_income else "💸"
    lines = [
        f"{pick(RECORDED_VARIANTS, seed)} {emoji} {kind} registrado\n",
        f"💵 {format_clp(tx.amount)}",
        f"📂 {category.label}",
    ]
    if tx.description:
        lines.append(f"📝 {tx.description}")
    return "\n".join(lines)


def fixed_expense_line(index: int, fixed: FixedExpense, category: Category | None) -> str:
    line = f"{index}. {fixed.description}: {format_clp(fixed.typical_amount)}"
    if category is not None:
        line += f" ({category.label})"
    if fixed.reminder_day:
        line += f" — día {fixed.reminder_day}"
    if not fixed.is_active:
        line += " ⏸️ pausado"
    return line


def reminder_day_prompt(fixed: FixedExpense) -> str:
    return (
        f"📅 ¿Qué día del mes quieres que te recuerde pagar *{fixed.description}*?\n\n"
        'Responde con un número del 1 al 31, "sin recordatorio" o "cancelar".'
    )


def fixed_expense_edit_prompt(fixed: FixedExpense) -> str:
    return (
        f"✏️ Editando *{fixed.description}* ({format_clp(fixed.typical_amount)}).\n\n"
        'Envía el nuevo monto, el día ("el 5"), ambos ("50 lucas el 5"), '
        '"sin recordatorio" o "cancelar".'
    )


def transaction_edit_prompt(tx: Transaction) -> str:
    description = tx.description or "Sin descripción"
    return (
        f"✏️ Editando *{description}* ({format_clp(tx.amount)}).\n\n"
        'Envía el nuevo monto, "descripción: nuevo texto", "eliminar" o "cancelar".'
    )


def mark_as_fixed_prompt(tx: Transaction) -> str:
    return (
        f"🔁 ¿*{tx.description}* es un gasto fijo que pagas todos los meses?\n\n"
        'Responde "sí" para guardarlo como gasto fijo.'
    )


def bulk_reminder(items: list[tuple[FixedExpense, Category | None]]) -> str:
    lines = ["📅 Hoy vencen tus gastos fijos:\n"]
    total = Decimal(0)
    for fixed, category in items:
        total += fixed.typical_amount
        label = f" ({category.label})" if category else ""
        lines.append(f"• {fixed.description}{label}: {format_clp(fixed.typical_amount)}")
    lines.append(f"\nTotal: {format_clp(total)}\n")
    lines.append("1️⃣ Registrar todos\n2️⃣ Ajustar montos\n3️⃣ Omitir este mes")
    return "\n".join(lines)


def account_deletion_prompt() -> str:
    return (
        "⚠️ Esto eliminará tu cuenta y todos tus registros de forma permanente.\n\n"
        'Escribe ELIMINAR para confirmar o "cancelar" para volver.'
    )


def income_update_prompt(declared: Decimal, average: Decimal, months: int) -> str:
    return (
        f"📈 Tus ingresos de los últimos {months} meses promedian {format_clp(average)}, "
        f"pero tu ingreso declarado es {format_clp(declared)}.\n\n"
        "¿Quieres actualizar tu ingreso mensual? (sí/no)"
    )
