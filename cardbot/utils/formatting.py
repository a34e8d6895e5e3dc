from __future__ import annotations

import re
from datetime import date, datetime
from typing import Dict, Optional, Sequence, Union

from babel.dates import format_date
from dateutil import parser

from cardbot.errors import ValidationError

EDIT_FIELD_ALIASES: Dict[str, Sequence[str]] = {
    "first_name": ("imię", "imie"),
    "last_name": ("nazwisko",),
    "start_date": ("data wydania", "wydana", "od"),
    "end_date": ("data ważności", "data waznosci", "ważna do", "wazna do", "do"),
}

# Year first is never day first, zero padding optional.
ISO_DATE = re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")


def normalize_name(value: str) -> str:
    return value.strip().upper()


def full_name(first_name: str, last_name: str) -> str:
    return f"{first_name} {last_name}"


def card_filename(card_number: Union[int, str], first_name: str, last_name: str) -> str:
    return f"{int(card_number)}_{full_name(first_name, last_name)}.jpg"


def format_validity(expires_at: date) -> str:
    return f"{expires_at.month:02d}/{expires_at.year}"


def format_ledger_date(value: Union[date, datetime, str, None]) -> str:
    """Serialise a ledger date as ``YYYY-MM-DD``; ``None`` becomes an empty cell."""
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return parse_date(value).isoformat()


def format_long_date(value: date) -> str:
    return format_date(value, format="long", locale="pl_PL")


def parse_date(text: str) -> date:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("Pusta data")
    try:
        iso = ISO_DATE.fullmatch(cleaned)
        if iso:
            return date(*(int(part) for part in iso.groups()))
        return parser.parse(cleaned, dayfirst=True).date()
    except (ValueError, OverflowError, parser.ParserError) as exc:
        raise ValidationError(f"Nieprawidłowa data: {cleaned}") from exc


def parse_edit_text(raw_text: str) -> Dict[str, Optional[object]]:
    """Parse an operator's correction message.

    Every line is ``Pole: wartość``; any subset of first name, last name,
    issue date and expiry date may be given. Fields that are absent or empty
    are returned as ``None``.
    """

    cleaned = (raw_text or "").strip()
    if not cleaned:
        raise ValidationError("Pusty tekst")

    data: Dict[str, str] = {}
    for line in cleaned.splitlines():
        if ":" not in line:
            continue
        key, value = line.split(":", 1)
        data[key.strip().lower()] = value.strip()

    mapped: Dict[str, Optional[object]] = {field: None for field in EDIT_FIELD_ALIASES}
    for field, aliases in EDIT_FIELD_ALIASES.items():
        for key, value in data.items():
            if key in aliases and value:
                mapped[field] = value
                break

    if all(value is None for value in mapped.values()):
        raise ValidationError("Nie znaleziono żadnego pola do zmiany")

    for field in ("start_date", "end_date"):
        if mapped[field] is not None:
            mapped[field] = parse_date(str(mapped[field]))
    return mapped


__all__ = [
    "normalize_name",
    "full_name",
    "card_filename",
    "format_validity",
    "format_ledger_date",
    "format_long_date",
    "parse_date",
    "parse_edit_text",
]
