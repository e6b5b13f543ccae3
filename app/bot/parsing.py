"""Deterministic parsing of short replies: amounts, days and yes/no tokens.

These run before (or instead of) the classifier, so they only accept
unambiguous input and return ``None`` otherwise.
"""

import re
import unicodedata
from decimal import Decimal

AFFIRMATIVE = {
    "si", "s", "yes", "y", "ok", "okay", "dale", "claro", "ya", "sip",
    "bueno", "confirmo", "de acuerdo", "si por favor", "si gracias", "obvio",
}
NEGATIVE = {"no", "n", "nop", "nope", "nah", "no gracias", "para nada"}
CANCEL = {"cancelar", "cancela", "cancel", "salir", "olvidalo", "nada"}
DELETE = {"eliminar", "elimina", "eliminalo", "borrar", "borra", "borralo"}
REMOVE_REMINDER = {
    "sin recordatorio", "quitar recordatorio", "quita el recordatorio",
    "eliminar recordatorio", "borrar recordatorio", "no recordar", "sin aviso",
}

BULK_REGISTER_ALL = {"1", "registrar", "registrar todo", "registrar todos", "todos", "si"}
BULK_ADJUST = {"2", "ajustar", "ajustar montos", "cambiar montos"}
BULK_SKIP = {"3", "omitir", "saltar", "no este mes", "este mes no", "no"}

ACCOUNT_DELETION_TOKEN = "ELIMINAR"

_THOUSANDS = re.compile(r"(\d+)\s*(lucas|luca|lukas|mil|k)\b")
_MILLIONS = re.compile(r"(\d+)\s*(palos|palo|millones|millon)\b")
_NUMBER = re.compile(r"(\d+)")
_DAY = re.compile(r"\b(?:el\s+)?dia\s+(\d{1,2})\b|\b(?:el|los|cada)\s+(\d{1,2})\b")
_DESCRIPTION = re.compile(
    r"^\s*(?:descripci[oó]n|nombre|desc|detalle)\s*[:=]?\s*(.+?)\s*$", re.IGNORECASE
)


def normalize(text: str) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFKD", text.lower())
    plain = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    plain = re.sub(r"[^\w\s]", " ", plain)
    return " ".join(plain.split())


def extract_amount(text: str) -> Decimal | None:
    """Parse '5 lucas', '5 mil', '5k', '2 palos', '$5.000' or plain digits."""
    cleaned = normalize(text.replace(".", "").replace(",", "").replace("$", ""))

    match = _THOUSANDS.search(cleaned)
    if match:
        return Decimal(match.group(1)) * 1000

    match = _MILLIONS.search(cleaned)
    if match:
        return Decimal(match.group(1)) * 1_000_000

    match = _NUMBER.search(cleaned)
    if match:
        return Decimal(match.group(1))
    return None


def extract_day(text: str) -> int | None:
    """Day of month from 'el 5', 'día 15', 'los 30' or a bare number.

    Returns ``None`` when nothing day-like is present or it is outside 1-31.
    """
    cleaned = normalize(text)
    match = _DAY.search(cleaned)
    if match:
        raw = match.group(1) or match.group(2)
    elif cleaned.isdigit() and len(cleaned) <= 2:
        raw = cleaned
    else:
        return None
    day = int(raw)
    if 1 <= day <= 31:
        return day
    return None


def has_day_reference(text: str) -> bool:
    """True when the text names a day, valid or not ('el 40' counts)."""
    cleaned = normalize(text)
    return bool(_DAY.search(cleaned)) or (cleaned.isdigit() and len(cleaned) <= 2)


def split_amount_and_day(text: str) -> tuple[Decimal | None, int | None]:
    """Parse '50 lucas el 5' into (50000, 5); either side may be missing."""
    cleaned = normalize(text.replace(".", "").replace(",", "").replace("$", ""))
    match = _DAY.search(cleaned)
    if not match:
        return None, None
    raw_day = int(match.group(1) or match.group(2))
    day = raw_day if 1 <= raw_day <= 31 else None
    remainder = (cleaned[: match.start()] + " " + cleaned[match.end():]).strip()
    amount = extract_amount(remainder) if remainder else None
    return amount, day


def extract_description(text: str) -> str | None:
    match = _DESCRIPTION.match(text)
    if not match:
        return None
    description = match.group(1).strip().strip("\"'")
    return description or None


def is_affirmative(text: str) -> bool:
    return normalize(text) in AFFIRMATIVE


def is_negative(text: str) -> bool:
    return normalize(text) in NEGATIVE


def is_yes_no(text: str) -> bool:
    return is_affirmative(text) or is_negative(text)


def is_cancel(text: str) -> bool:
    return normalize(text) in CANCEL


def is_delete(text: str) -> bool:
    return normalize(text) in DELETE


def is_remove_reminder(text: str) -> bool:
    return normalize(text) in REMOVE_REMINDER


def bulk_reminder_choice(text: str) -> str | None:
    """Map a reply to the monthly reminder onto register_all / adjust / skip."""
    token = normalize(text)
    if token in BULK_REGISTER_ALL:
        return "register_all"
    if token in BULK_ADJUST:
        return "adjust"
    if token in BULK_SKIP:
        return "skip"
    return None


def is_account_deletion_confirmation(text: str) -> bool:
    return text.strip() == ACCOUNT_DELETION_TOKEN
