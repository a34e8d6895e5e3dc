from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Optional, Set

from cardbot.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)


def scan_card_numbers(folder: Path) -> Set[int]:
    """Collect the numbers of all ``{number}_{name}.jpg`` files in ``folder``."""
    numbers: Set[int] = set()
    if not folder.is_dir():
        return numbers
    for path in folder.glob("*.jpg"):
        parts = path.stem.split("_")
        if len(parts) > 1 and parts[0].isdigit():
            numbers.add(int(parts[0]))
    return numbers


def allocate_number(existing: Iterable[int], explicit: Optional[str] = None) -> int:
    """Return the next card number, or the explicit one if given.

    An explicit number is returned as-is even when it is already taken;
    the caller decides what overwriting means.
    """
    if explicit is not None and explicit.strip():
        text = explicit.strip()
        try:
            number = int(text)
        except ValueError as exc:
            raise ValidationError(f"Numer karty musi być liczbą: {text!r}") from exc
        if number <= 0:
            raise ValidationError(f"Numer karty musi być dodatni: {number}")
        return number
    return max(existing, default=0) + 1


def load_last_number(counter_file: Path) -> int:
    if not counter_file.exists():
        return 0
    try:
        with counter_file.open("r", encoding="utf-8") as fh:
            data = json.load(fh)
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Ignoring unreadable counter file %s: %s", counter_file, exc)
        return 0
    return int(data.get("value", 0))


def store_last_number(counter_file: Path, number: int) -> None:
    """Record ``number`` as issued; the stored value never goes down."""
    current = load_last_number(counter_file)
    if number <= current:
        return
    try:
        counter_file.parent.mkdir(parents=True, exist_ok=True)
        with counter_file.open("w", encoding="utf-8") as fh:
            json.dump({"value": number}, fh, ensure_ascii=False, indent=2)
    except OSError as exc:
        raise StorageError(f"Nie można zapisać licznika kart {counter_file}: {exc}") from exc


__all__ = ["scan_card_numbers", "allocate_number", "load_last_number", "store_last_number"]
