"""Card issuance pipeline.

validate photo -> allocate number -> compose -> store -> ledger

Each stage may abort the request; nothing is retried and completed stages
are not undone. The card file and the ledger row are written separately, so
a ledger failure after a successful store leaves the file without a row.
"""

from __future__ import annotations

import logging
import threading
from datetime import date, datetime
from pathlib import Path
from typing import Optional, Tuple, Union

from cardbot.errors import OverwriteConfirmationRequired, ValidationError
from cardbot.models import CardResult, IssueCardRequest, LedgerRow, ResidentCard
from cardbot.utils.composer import compose_card, encode_card, load_background, load_font
from cardbot.utils.counter import allocate_number, load_last_number, store_last_number
from cardbot.utils.formatting import format_validity, normalize_name
from cardbot.utils.ledger import Ledger
from cardbot.utils.photo import load_photo, validate_photo
from cardbot.utils.storage import CardStore

logger = logging.getLogger(__name__)

COUNTER_FILENAME = "counter.json"


class CardIssuer:
    def __init__(
        self,
        store: CardStore,
        ledger: Ledger,
        background_path: Path,
        counter_file: Optional[Path] = None,
        font_path: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.ledger = ledger
        self.background_path = Path(background_path)
        self.counter_file = counter_file or store.authoritative_dir / COUNTER_FILENAME
        self.font_path = font_path
        # Allocation and persistence of one request happen atomically with
        # respect to every other request served by this issuer.
        self._lock = threading.RLock()

    def _validate(self, request: IssueCardRequest) -> None:
        if not request.photo_bytes or not request.first_name.strip() or not request.last_name.strip():
            raise ValidationError("Wszystkie pola są wymagane.")
        if not validate_photo(request.photo_filename, request.photo_length):
            raise ValidationError("Nieprawidłowy format lub rozmiar zdjęcia.")

    def _existing_name(self, card_number: int) -> Optional[str]:
        row = self.ledger.get(card_number)
        if row is not None:
            return row.full_name
        path = self.store.find_card(card_number)
        if path is not None:
            return path.stem.split("_", 1)[1]
        return None

    def issue(self, request: IssueCardRequest, now: Optional[datetime] = None) -> CardResult:
        self._validate(request)
        issued_at = now or datetime.now()
        photo = load_photo(request.photo_bytes)
        background = load_background(self.background_path)
        font = load_font(self.font_path)

        with self._lock:
            existing = self.store.list_numbers()
            existing.add(load_last_number(self.counter_file))
            number = allocate_number(existing, request.explicit_card_number)

            card = ResidentCard(
                card_number=number,
                first_name=request.first_name,
                last_name=request.last_name,
                photo=photo,
                issued_at=issued_at,
            )

            overwritten = False
            if request.explicit_card_number is not None:
                previous = self._existing_name(number)
                if previous is not None:
                    if previous != card.full_name and not request.confirm_overwrite:
                        raise OverwriteConfirmationRequired(
                            f"Karta nr {number} należy do {previous}. Potwierdź nadpisanie.",
                            existing_name=previous,
                        )
                    logger.warning("Overwriting card %s (was %s, now %s)", number, previous, card.full_name)
                    overwritten = True

            image = compose_card(
                background,
                card.photo,
                card.first_name,
                card.last_name,
                number,
                card.issued_at,
                font=font,
            )
            data = encode_card(image)
            store_last_number(self.counter_file, number)

            stored_path, mirror_path = self.store.persist(data, card.filename)
            if overwritten:
                self.store.remove_stale(number, keep=card.filename)

            self.ledger.upsert(
                number,
                card.full_name,
                request.start_date or issued_at.date(),
                request.end_date,
                first_name=card.first_name,
                last_name=card.last_name,
            )

        logger.info("Issued card %s for %s", number, card.full_name)
        return CardResult(
            card_number=str(number),
            stored_path=str(stored_path),
            mirror_path=str(mirror_path),
            overwritten=overwritten,
            valid_until=format_validity(card.expires_at),
        )

    def edit(
        self,
        card_number: Union[int, str],
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> LedgerRow:
        first = normalize_name(first_name) if first_name else None
        last = normalize_name(last_name) if last_name else None
        with self._lock:
            return self.ledger.edit(card_number, first, last, start_date, end_date)

    def lookup(self, card_number: Union[int, str]) -> Tuple[Optional[LedgerRow], Optional[Path]]:
        text = str(card_number).strip()
        if not text.isdigit():
            raise ValidationError(f"Numer karty musi być liczbą: {text!r}")
        with self._lock:
            return self.ledger.get(text), self.store.find_card(int(text))


__all__ = ["CardIssuer", "COUNTER_FILENAME"]
