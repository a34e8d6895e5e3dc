"""Data models used across the cardbot package."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from PIL import Image

from cardbot.utils.composer import compute_expiration
from cardbot.utils.formatting import card_filename, full_name, normalize_name


@dataclass(slots=True)
class IssueCardRequest:
    """Validated input of a single issuance."""

    first_name: str
    last_name: str
    photo_bytes: bytes
    photo_filename: str
    photo_length: int
    explicit_card_number: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    confirm_overwrite: bool = False


@dataclass(slots=True)
class CardResult:
    card_number: str
    stored_path: str
    mirror_path: str = ""
    overwritten: bool = False
    valid_until: str = ""


@dataclass(slots=True)
class ResidentCard:
    """Card being issued. Names are upper-cased once, here."""

    card_number: int
    first_name: str
    last_name: str
    photo: Image.Image
    issued_at: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        self.first_name = normalize_name(self.first_name)
        self.last_name = normalize_name(self.last_name)

    @property
    def full_name(self) -> str:
        return full_name(self.first_name, self.last_name)

    @property
    def expires_at(self) -> date:
        return compute_expiration(self.issued_at)

    @property
    def filename(self) -> str:
        return card_filename(self.card_number, self.first_name, self.last_name)


@dataclass(slots=True)
class LedgerRow:
    """One ledger line. Dates are kept in their serialised ``YYYY-MM-DD`` form."""

    card_number: str
    full_name: str
    start_date: str = ""
    end_date: str = ""
    first_name: str = ""
    last_name: str = ""

    def names(self) -> tuple[str, str]:
        """Return (first, last), splitting ``full_name`` for rows written without name columns."""
        if self.first_name or self.last_name:
            return self.first_name, self.last_name
        first, _, last = self.full_name.partition(" ")
        return first, last


__all__ = ["IssueCardRequest", "CardResult", "ResidentCard", "LedgerRow"]
