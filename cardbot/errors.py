"""Errors raised by the card issuance pipeline.

Every error carries a ``kind`` tag and a human readable ``detail`` so the
front end can report it without inspecting the exception type.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional


class CardError(Exception):
    """Base class for all expected pipeline failures."""

    kind = "error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail

    def __str__(self) -> str:
        return f"{self.kind}: {self.detail}"


class ValidationError(CardError):
    """Raised for bad input. Nothing has been written when it is raised."""

    kind = "validation"


class OverwriteConfirmationRequired(ValidationError):
    """Raised when an explicit card number belongs to another resident."""

    kind = "overwrite"

    def __init__(self, detail: str, existing_name: str) -> None:
        super().__init__(detail)
        self.existing_name = existing_name


class MissingAssetError(CardError):
    """Raised when the card background template cannot be loaded."""

    kind = "missing_asset"


class StorageError(CardError):
    """Raised when writing a card file fails.

    ``partial`` is set when the authoritative copy was written but the
    mirror copy was not; the authoritative file is left in place.
    """

    kind = "storage"

    def __init__(
        self,
        detail: str,
        partial: bool = False,
        authoritative_path: Optional[Path] = None,
    ) -> None:
        super().__init__(detail)
        self.partial = partial
        self.authoritative_path = authoritative_path


class LedgerError(CardError):
    """Raised when the ledger workbook cannot be read or written, or a key is unknown."""

    kind = "ledger"


__all__ = [
    "CardError",
    "ValidationError",
    "OverwriteConfirmationRequired",
    "MissingAssetError",
    "StorageError",
    "LedgerError",
]
